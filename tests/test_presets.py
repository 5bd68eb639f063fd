import numpy as np
import pytest

from orbitlab.config import N_BODY_CHAOS, ORBIT_PLAYGROUND, SimulationConfig, normalize_config
from orbitlab.presets import (
    UNIVERSE_PRESETS,
    apply_preset,
    apply_random_mass_boost,
    build_preview_config,
    random_layout,
    randomize_universe,
)


@pytest.mark.parametrize("key", sorted(UNIVERSE_PRESETS))
def test_every_preset_builds_a_normalized_config(key):
    config = apply_preset(key)
    assert config == normalize_config(config)
    for name, value in UNIVERSE_PRESETS[key].overrides.items():
        assert getattr(config, name) == value


def test_chaos_preset_keeps_force_cap():
    config = apply_preset("n_body_chaos")
    assert config.physics_mode == N_BODY_CHAOS
    assert config.max_force == 5000.0
    assert config.enforce_speed_limit


def test_unknown_preset():
    with pytest.raises(KeyError):
        apply_preset("no_such_universe")


def test_apply_preset_from_overrides_dict():
    config = apply_preset({"physics_mode": ORBIT_PLAYGROUND, "max_force": 300.0, "softening": 4.0})
    # Playground mode drops the force cap
    assert config.max_force == 0.0
    assert config.softening == 4.0


def test_randomize_universe():
    rng = np.random.default_rng(11)
    for _ in range(20):
        config = apply_preset(randomize_universe(rng))
        assert config.softening >= 1.0
        assert 0.0 <= config.angular_guidance_strength <= 1.0
        if config.physics_mode == ORBIT_PLAYGROUND:
            assert config.max_force == 0.0


def test_build_preview_config():
    base = SimulationConfig()
    config = build_preview_config(base, width=300, height=300)
    # size_scale 0.5, degree 2: G * 0.7 * 0.5^3
    assert config.gravity_constant == pytest.approx(875.0)
    assert config.softening == pytest.approx(base.softening * 0.5)
    assert config.radius_scale == pytest.approx(base.radius_scale * 0.7 * 0.5)
    assert config.wrap_boundary
    assert config.enable_merging
    assert config.max_mass == pytest.approx(base.max_mass * (2.0 / 3.0) * 0.85 * 1.5)
    assert config.merge_stop_mass == pytest.approx(3.0 * config.max_mass)

    tiny = build_preview_config(base, width=10, height=10)
    assert tiny.softening == pytest.approx(base.softening * 0.1)

    overridden = build_preview_config(base, {"gravity_constant": 2000.0}, width=600, height=600)
    assert overridden.gravity_constant == pytest.approx(1400.0)


def test_random_layout_within_annulus():
    rng = np.random.default_rng(2)
    layout = random_layout(rng, 800, 600, 25)
    assert len(layout) == 25
    for body in layout:
        r = np.hypot(body["x"] - 400.0, body["y"] - 300.0)
        assert 60.0 - 1e-9 <= r <= 270.0 + 1e-9
        assert 5.0 <= body["mass"] <= 20.0
    assert random_layout(rng, 800, 600, 0) == []


def test_random_mass_boost():
    rng = np.random.default_rng(4)
    layout = [{"x": 0.0, "y": 0.0, "mass": float(m)} for m in range(1, 11)]
    before = [b["mass"] for b in layout]
    apply_random_mass_boost(layout, rng)
    boosted = [i for i, b in enumerate(layout) if b["mass"] != before[i]]
    assert 2 <= len(boosted) <= 5
    assert 9 not in boosted
    for i in boosted:
        assert layout[i]["mass"] == pytest.approx(2.0 * before[i])
    assert apply_random_mass_boost([], rng) == []
