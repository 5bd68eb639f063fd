import math

import pytest

from orbitlab.config import EPSILON, N_BODY_CHAOS, SimulationConfig, normalize_config


def test_playground_forces_conservative_settings():
    config = normalize_config(SimulationConfig(velocity_damping=0.5, max_force=250.0, softening=0.0))
    assert config.velocity_damping == 0.0
    assert config.max_force == 0.0
    assert config.softening == EPSILON
    assert config.energy_conserving


def test_chaos_keeps_non_conservative_extras():
    config = normalize_config(SimulationConfig(physics_mode=N_BODY_CHAOS, velocity_damping=0.5, max_force=250.0))
    assert config.velocity_damping == 0.5
    assert config.max_force == 250.0
    assert not config.energy_conserving


def test_out_of_range_values_are_clamped():
    config = normalize_config(SimulationConfig(
        min_mass=10.0, max_mass=2.0,
        angular_guidance_strength=3.0, radial_clamp_factor=-1.0, mass_resistance_factor=7.0,
        max_bodies=0, gravity_constant=float("nan"), physics_mode="bogus",
    ))
    assert config.max_mass >= config.min_mass
    assert config.angular_guidance_strength == 1.0
    assert config.radial_clamp_factor == 0.0
    assert config.mass_resistance_factor == 1.0
    assert config.max_bodies == 1
    assert math.isfinite(config.gravity_constant)
    assert config.physics_mode == SimulationConfig().physics_mode


def test_normalize_is_idempotent():
    config = normalize_config(SimulationConfig(physics_mode=N_BODY_CHAOS, max_force=-5.0, fixed_dt=-1.0))
    assert normalize_config(config) == config
    assert config.max_force == 0.0
    assert config.fixed_dt > 0


def test_step_dt():
    assert SimulationConfig(fixed_dt=0.01, max_dt=0.1).step_dt == pytest.approx(0.01)
    assert SimulationConfig(fixed_dt=0.01, max_dt=0.001).step_dt == pytest.approx(0.001)
