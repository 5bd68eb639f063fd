"""
Named universe presets, random universes and small preview worlds.

Presets are partial overrides on top of SimulationConfig; every function here
returns normalized configurations.
"""
import math
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

import numpy as np

from .config import (
    GRAVITY_CONSTANT,
    N_BODY_CHAOS,
    ORBIT_PLAYGROUND,
    SimulationConfig,
    normalize_config,
)


@dataclass(frozen=True)
class UniversePreset:
    name: str
    description: str
    overrides: Dict[str, object]


UNIVERSE_PRESETS: Dict[str, UniversePreset] = {
    "stable_orbits": UniversePreset(
        "Stable Orbits",
        "Near-circular orbits with small softening",
        dict(physics_mode=ORBIT_PLAYGROUND, gravity_constant=GRAVITY_CONSTANT, softening=1.5,
             max_force=0.0, orbit_factor=1.0, launch_vmax=550.0, launch_strength=0.9),
    ),
    "elliptical_orbits": UniversePreset(
        "Elliptical Orbits",
        "Slightly sub-circular seeding gives elliptical orbits",
        dict(physics_mode=ORBIT_PLAYGROUND, gravity_constant=GRAVITY_CONSTANT, softening=3.0,
             max_force=0.0, orbit_factor=0.85, launch_vmax=550.0, launch_strength=0.9),
    ),
    "tight_orbits": UniversePreset(
        "Tight Orbits",
        "Fast, close orbits around heavier bodies",
        dict(physics_mode=ORBIT_PLAYGROUND, gravity_constant=GRAVITY_CONSTANT, softening=1.5,
             max_force=0.0, orbit_factor=1.0, min_mass=8.0, max_mass=30.0,
             launch_vmax=550.0, launch_strength=0.9),
    ),
    "wide_orbits": UniversePreset(
        "Wide Orbits",
        "Larger orbital distances with lighter bodies",
        dict(physics_mode=ORBIT_PLAYGROUND, gravity_constant=GRAVITY_CONSTANT, softening=1.5,
             max_force=0.0, orbit_factor=1.0, min_mass=3.0, max_mass=15.0,
             launch_vmax=550.0, launch_strength=0.9),
    ),
    "n_body_chaos": UniversePreset(
        "N-Body Chaos",
        "Full pairwise gravity with a force cap (chaotic)",
        dict(physics_mode=N_BODY_CHAOS, gravity_constant=GRAVITY_CONSTANT, softening=3.0,
             max_force=5000.0, orbit_factor=1.0, launch_vmax=550.0, launch_strength=0.9,
             enforce_speed_limit=True),
    ),
}


def _log_uniform(rng: np.random.Generator, low: float, high: float) -> float:
    return 10.0 ** rng.uniform(math.log10(low), math.log10(high))


def randomize_universe(rng: np.random.Generator) -> Dict[str, object]:
    """Random preset overrides, drawn in the same ranges the named presets live in."""
    chaos = rng.random() < 0.5
    return dict(
        physics_mode=N_BODY_CHAOS if chaos else ORBIT_PLAYGROUND,
        gravity_constant=GRAVITY_CONSTANT,
        softening=_log_uniform(rng, 1.0, 10.0),
        max_force=0.0 if rng.random() < 0.5 else _log_uniform(rng, 100.0, 10000.0),
        launch_vmax=400.0 + rng.random() * 150.0,
        launch_s0=_log_uniform(rng, 100.0, 1000.0),
        orbit_factor=0.7 + rng.random() * 0.6,
        launch_strength=0.6 + rng.random() * 0.6,
        mass_resistance_factor=rng.random() * 0.5,
        angular_guidance_strength=rng.random() * 0.8,
        radial_clamp_factor=rng.random() * 0.7,
        radius_scale=0.5 + rng.random() * 2.0,
        radius_power=0.5,
        enforce_speed_limit=chaos,
    )


def apply_preset(preset, base: Optional[SimulationConfig] = None) -> SimulationConfig:
    """
    Build a configuration from a preset key, a UniversePreset or a plain
    overrides dict layered on `base` (defaults when None).
    """
    if isinstance(preset, str):
        if preset not in UNIVERSE_PRESETS:
            raise KeyError(f"Unknown preset: {preset!r}. Available: {sorted(UNIVERSE_PRESETS)}")
        overrides = UNIVERSE_PRESETS[preset].overrides
    elif isinstance(preset, UniversePreset):
        overrides = preset.overrides
    else:
        overrides = dict(preset)
    base = base if base is not None else SimulationConfig()
    return normalize_config(replace(base, **overrides))


def build_preview_config(base: SimulationConfig, overrides: Dict[str, object] = None,
                         width: float = 300.0, height: float = 200.0) -> SimulationConfig:
    """
    Shrink a universe to a small preview window.

    Masses are bumped for readability and merging stops at three times the
    preview max mass so previews do not collapse into a single body. The
    world is scaled by size_scale = clamp(min(width, height) / 600, 0.1, 1):
    softening and radius scale linearly, gravity by size_scale^(degree + 1)
    so orbital periods stay the same as in the full-size world.
    """
    config = replace(base, **(overrides or {}))

    min_mass = max(0.001, config.min_mass * 0.85 * 1.5)
    max_mass = max(min_mass + 0.001, config.max_mass * (2.0 / 3.0) * 0.85 * 1.5)
    size_scale = max(0.1, min(1.0, min(width, height) / 600.0))
    gravity_scale = size_scale ** (config.potential_degree + 1.0)

    config = replace(
        config,
        enable_merging=True,
        wrap_boundary=True,
        gravity_constant=config.gravity_constant * 0.7 * gravity_scale,
        softening=config.softening * size_scale,
        min_mass=min_mass,
        max_mass=max_mass,
        radius_scale=config.radius_scale * 0.7 * size_scale,
        merge_stop_mass=max_mass * 3.0,
    )
    return normalize_config(config)


def random_layout(rng: np.random.Generator, width: float, height: float, count: int,
                  config: SimulationConfig = None) -> List[dict]:
    """
    Random seeding layout ({"x", "y", "mass"} entries) on an annulus around
    the field center. Masses follow min + (max - min) * u^k with the
    configuration's mass-shape exponent k.
    """
    config = config if config is not None else SimulationConfig()
    cx, cy = width / 2.0, height / 2.0
    min_dim = min(width, height)
    r_in, r_out = 0.1 * min_dim, 0.45 * min_dim

    layout = []
    for _ in range(max(0, int(count))):
        angle = rng.uniform(0.0, 2.0 * math.pi)
        # Uniform in area
        radius = math.sqrt(rng.uniform(r_in * r_in, r_out * r_out))
        mass = config.min_mass + (config.max_mass - config.min_mass) * rng.random() ** config.mass_shape_exponent
        layout.append({
            "x": cx + math.cos(angle) * radius,
            "y": cy + math.sin(angle) * radius,
            "mass": float(mass),
        })
    return layout


def apply_random_mass_boost(layout: List[dict], rng: np.random.Generator, boost_factor: float = 2.0,
                            min_count: int = 2, max_count: int = 5,
                            exclude_heaviest: bool = True) -> List[dict]:
    """Multiply the mass of a few random bodies (2-5 by default) by `boost_factor`, in place."""
    if not layout:
        return layout

    heaviest = int(np.argmax([b["mass"] for b in layout]))
    candidates = [i for i in range(len(layout)) if not (exclude_heaviest and i == heaviest)]
    if not candidates:
        return layout

    k = int(rng.integers(min_count, max_count + 1))
    k = max(0, min(len(candidates), k))
    for i in rng.permutation(candidates)[:k]:
        layout[int(i)]["mass"] *= boost_factor
    return layout
