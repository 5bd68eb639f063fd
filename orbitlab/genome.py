"""
Genome: the log-space parameterization searched by the genetic algorithm.

Scale-like parameters (gravity, softening, force cap, launch speeds, dt, mass)
are stored as log10 values so that mutation explores orders of magnitude
evenly. The remaining genes are linear.
"""
import math
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional, Tuple

import numpy as np

from .config import N_BODY_CHAOS, SimulationConfig, normalize_config


@dataclass(frozen=True)
class GeneSpec:
    """
    Default search range [low, high] of one gene plus the hard domain limits
    that adaptive range expansion may never cross.
    """
    low: float
    high: float
    log_space: bool
    hard_low: float
    hard_high: float


GENE_SPECS: Dict[str, GeneSpec] = {
    # name                           low     high   log    hard_low hard_high
    "log10_g":                   GeneSpec(3.699, 4.699, True, 0.0, 8.0),
    "log10_softening":           GeneSpec(-2.0, 2.0, True, -4.0, 4.0),
    "log10_force_cap":           GeneSpec(-1.0, 5.0, True, -2.0, 8.0),
    "log10_launch_vmax":         GeneSpec(2.0, 2.74, True, 0.0, 4.0),
    "log10_launch_s0":           GeneSpec(1.0, 4.0, True, -1.0, 6.0),
    "log10_dt_clamp":            GeneSpec(-3.0, -1.0, True, -5.0, 0.0),
    "log10_mass_min":            GeneSpec(0.5, 2.0, True, -1.0, 4.0),
    "log10_mass_ratio":          GeneSpec(0.0, 2.0, True, 0.0, 4.0),
    "mass_shape_exponent":       GeneSpec(0.3, 3.0, False, 0.05, 10.0),
    "radius_scale":              GeneSpec(0.1, 5.0, False, 0.01, 20.0),
    "radius_power":              GeneSpec(0.33, 0.6, False, 0.05, 1.5),
    "launch_strength":           GeneSpec(0.1, 2.0, False, 0.0, 5.0),
    "mass_resistance_factor":    GeneSpec(0.0, 1.0, False, 0.0, 1.0),
    "angular_guidance_strength": GeneSpec(0.0, 1.0, False, 0.0, 1.0),
    "radial_clamp_factor":       GeneSpec(0.0, 1.0, False, 0.0, 1.0),
}

GENE_NAMES: Tuple[str, ...] = tuple(GENE_SPECS)

# Below this log10 value the force cap gene means "no cap"
FORCE_CAP_DISABLED_BELOW = -0.5

# Fixed (non-evolving) parts of a decoded configuration
DECODED_HOLD_TO_MAX_SECONDS = 0.8
DECODED_FLICK_WINDOW = 0.07
DECODED_CENTER_SEARCH_RADIUS = 300.0
DECODED_MAX_BODIES = 60

Bounds = Dict[str, Tuple[float, float]]


def default_bounds() -> Bounds:
    """Fresh, mutable copy of the default search ranges."""
    return {name: (spec.low, spec.high) for name, spec in GENE_SPECS.items()}


def _mid(name: str) -> float:
    spec = GENE_SPECS[name]
    return 0.5 * (spec.low + spec.high)


@dataclass(frozen=True)
class Genome:
    log10_g: float = _mid("log10_g")
    log10_softening: float = _mid("log10_softening")
    log10_force_cap: float = GENE_SPECS["log10_force_cap"].low
    log10_launch_vmax: float = _mid("log10_launch_vmax")
    log10_launch_s0: float = _mid("log10_launch_s0")
    log10_dt_clamp: float = -2.0
    log10_mass_min: float = _mid("log10_mass_min")
    log10_mass_ratio: float = _mid("log10_mass_ratio")
    mass_shape_exponent: float = 1.0
    radius_scale: float = 1.2
    radius_power: float = 0.5
    launch_strength: float = 0.9
    mass_resistance_factor: float = 0.3
    angular_guidance_strength: float = 0.6
    radial_clamp_factor: float = 0.5

    # Boundary choice; inherited, never mutated
    toroidal: bool = False

    # Written once by the evaluator
    fitness: Optional[float] = field(default=None, compare=False)
    fitness_details: Optional[dict] = field(default=None, compare=False)

    # ------------------------------------------------------------------

    def genes(self) -> Dict[str, float]:
        return {name: float(getattr(self, name)) for name in GENE_NAMES}

    @classmethod
    def from_genes(cls, genes: Dict[str, float], toroidal: bool = False) -> "Genome":
        known = {f.name for f in fields(cls)}
        values = {k: float(v) for k, v in genes.items() if k in GENE_SPECS and k in known}
        return cls(toroidal=bool(toroidal), **values)

    @classmethod
    def random(cls, rng: np.random.Generator, bounds: Bounds = None, toroidal: bool = False) -> "Genome":
        """Uniform sample inside the current search ranges."""
        bounds = bounds or default_bounds()
        values = {name: float(rng.uniform(lo, hi)) for name, (lo, hi) in bounds.items()}
        return cls(toroidal=toroidal, **values).clamp(bounds)

    def clamp(self, bounds: Bounds = None) -> "Genome":
        """
        Pull every gene back inside `bounds` (defaults when None). Non-finite
        genes are replaced by the middle of their range.
        """
        bounds = bounds or default_bounds()
        values = {}
        for name in GENE_NAMES:
            lo, hi = bounds[name]
            value = float(getattr(self, name))
            if not math.isfinite(value):
                value = 0.5 * (lo + hi)
            values[name] = min(hi, max(lo, value))
        return replace(self, **values)

    def mutate(self, rate: float, strength: float, rng: np.random.Generator, bounds: Bounds = None) -> "Genome":
        """
        Each gene mutates with probability `rate` by
        U(-0.5, 0.5) * strength * (max - min), then is clamped.
        The result carries no fitness.
        """
        bounds = bounds or default_bounds()
        values = {}
        for name in GENE_NAMES:
            value = float(getattr(self, name))
            if rng.random() < rate:
                lo, hi = bounds[name]
                value += (rng.random() - 0.5) * strength * (hi - lo)
            values[name] = value
        return replace(self, fitness=None, fitness_details=None, **values).clamp(bounds)

    def crossover(self, other: "Genome", rng: np.random.Generator) -> "Genome":
        """Uniform crossover: every gene (and the toroidal flag) from either parent with p = 0.5."""
        values = {}
        for name in GENE_NAMES:
            values[name] = getattr(self, name) if rng.random() < 0.5 else getattr(other, name)
        toroidal = self.toroidal if rng.random() < 0.5 else other.toroidal
        return Genome(toroidal=toroidal, **values)

    def with_fitness(self, fitness: float, details: dict = None) -> "Genome":
        return replace(self, fitness=fitness, fitness_details=details)

    # ------------------------------------------------------------------

    @property
    def mass_min(self) -> float:
        return 10.0 ** self.log10_mass_min

    @property
    def mass_max(self) -> float:
        return self.mass_min * 10.0 ** self.log10_mass_ratio

    def sample_mass(self, rng: np.random.Generator) -> float:
        """mass = min + (max - min) * u^k with u ~ U(0, 1)."""
        u = rng.random()
        return self.mass_min + (self.mass_max - self.mass_min) * u ** self.mass_shape_exponent

    def decode(self) -> SimulationConfig:
        """Map the genes to a normalized n_body_chaos configuration."""
        if self.log10_force_cap < FORCE_CAP_DISABLED_BELOW:
            max_force = 0.0
        else:
            max_force = 10.0 ** self.log10_force_cap

        config = SimulationConfig(
            physics_mode=N_BODY_CHAOS,
            gravity_constant=10.0 ** self.log10_g,
            softening=10.0 ** self.log10_softening,
            max_force=max_force,
            velocity_damping=0.0,
            max_dt=10.0 ** self.log10_dt_clamp,
            enforce_speed_limit=True,
            wrap_boundary=self.toroidal,
            enable_merging=True,
            min_mass=self.mass_min,
            max_mass=self.mass_max,
            mass_shape_exponent=self.mass_shape_exponent,
            radius_scale=self.radius_scale,
            radius_power=self.radius_power,
            hold_to_max_seconds=DECODED_HOLD_TO_MAX_SECONDS,
            flick_window=DECODED_FLICK_WINDOW,
            launch_s0=10.0 ** self.log10_launch_s0,
            launch_vmax=10.0 ** self.log10_launch_vmax,
            launch_strength=self.launch_strength,
            mass_resistance_factor=self.mass_resistance_factor,
            orbit_factor=1.0,
            angular_guidance_strength=self.angular_guidance_strength,
            radial_clamp_factor=self.radial_clamp_factor,
            orbital_center_search_radius=DECODED_CENTER_SEARCH_RADIUS,
            max_bodies=DECODED_MAX_BODIES,
        )
        return normalize_config(config)

    def to_record(self) -> dict:
        record = self.genes()
        record["toroidal"] = self.toroidal
        return record
