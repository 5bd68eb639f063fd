"""
Fitness evaluation: run a decoded genome on one standardized scenario and
score the resulting orbits.

Every genome sees the same 40-body, three-ring layout, so fitness differences
come from the physics parameters alone.
"""
import math
from dataclasses import asdict, dataclass, field
from typing import List, Optional

import numpy as np

from .analysis import OrbitMetrics, average_metrics, compute_orbit_metrics
from .body import Body
from .config import (
    FITNESS_DURATION,
    FITNESS_SAMPLES,
    FITNESS_TICK,
    FITNESS_TIME_ACCELERATION,
)
from .genome import Genome
from .physics import kinetic_energy
from .world import SimulationWorld

FIELD_WIDTH = 800.0
FIELD_HEIGHT = 600.0

# (count, base radius, radius step, radius cycle)
RINGS = (
    (12, 80.0, 20.0, 3),
    (16, 150.0, 15.0, 4),
    (12, 220.0, 20.0, 3),
)
LAYOUT_MASS = (5.0, 20.0)
LAYOUT_SPEED = (100.0, 550.0)

# Score weights
W_RADIAL = 0.3
W_TANGENTIAL = 0.15
W_TURNS = 0.15
W_ENERGY = 0.25
W_SURVIVORS = 0.3
TURNS_FOR_FULL_SCORE = 5.0
SURVIVOR_TARGET = 20
NO_METRICS_PENALTY = 0.5
LOSS_PENALTY = 0.2


@dataclass(frozen=True)
class FitnessSettings:
    duration: float = FITNESS_DURATION                    # nominal seconds of ticks
    tick: float = FITNESS_TICK
    time_acceleration: float = FITNESS_TIME_ACCELERATION  # each tick advances tick * acceleration
    samples: int = FITNESS_SAMPLES


@dataclass
class FitnessResult:
    fitness: float
    radial_variance: float = 1.0
    energy_drift: float = 0.0
    escape_count: int = 0
    merge_count: int = 0
    playability_score: float = 0.0
    bodies_remaining: int = 0
    orbit_metrics: Optional[OrbitMetrics] = None
    error: Optional[str] = None
    scenario_scores: List[float] = field(default_factory=list)

    def details(self) -> dict:
        out = asdict(self)
        out.pop("fitness")
        return out


def standardized_layout(radius_scale: float = 1.2, radius_power: float = 0.5) -> List[Body]:
    """
    The fixed evaluation layout: 40 bodies on three rings around the field
    center, mass rising linearly 5 -> 20 and tangential (counter-clockwise)
    speed rising linearly 100 -> 550 with the body index.
    """
    cx = FIELD_WIDTH / 2.0
    cy = FIELD_HEIGHT / 2.0

    points = []
    for count, base, step, cycle in RINGS:
        for i in range(count):
            angle = i / count * 2.0 * math.pi
            radius = base + (i % cycle) * step
            points.append((cx + math.cos(angle) * radius, cy + math.sin(angle) * radius))

    n = len(points)
    bodies = []
    for i, (x, y) in enumerate(points):
        frac = i / (n - 1)
        mass = LAYOUT_MASS[0] + (LAYOUT_MASS[1] - LAYOUT_MASS[0]) * frac
        speed = LAYOUT_SPEED[0] + (LAYOUT_SPEED[1] - LAYOUT_SPEED[0]) * frac
        angle = math.atan2(y - cy, x - cx)
        bodies.append(Body(
            position=(x, y),
            velocity=(-math.sin(angle) * speed, math.cos(angle) * speed),
            mass=mass,
            radius_scale=radius_scale,
            radius_power=radius_power,
        ))
    return bodies


def score(metrics: Optional[OrbitMetrics], energy_drift: float, remaining: int, initial: int) -> float:
    fitness = 0.0
    if metrics is not None:
        fitness += W_RADIAL / (1.0 + metrics.rad_var)
        fitness += W_TANGENTIAL * metrics.tan_ratio
        fitness += W_TURNS * min(1.0, metrics.turns / TURNS_FOR_FULL_SCORE)
    else:
        fitness -= NO_METRICS_PENALTY

    fitness += W_ENERGY * (1.0 - min(1.0, energy_drift))
    fitness += W_SURVIVORS * min(1.0, remaining / SURVIVOR_TARGET)

    lost = initial - remaining
    if lost > SURVIVOR_TARGET:
        fitness -= LOSS_PENALTY * (lost - SURVIVOR_TARGET) / SURVIVOR_TARGET

    if not math.isfinite(fitness):
        return 0.0
    return max(0.0, fitness)


def evaluate_fitness(genome: Genome, settings: FitnessSettings = FitnessSettings()) -> FitnessResult:
    """Simulate `genome` on the standardized layout and score it."""
    config = genome.decode()
    world = SimulationWorld(config, FIELD_WIDTH, FIELD_HEIGHT)
    for body in standardized_layout(config.radius_scale, config.radius_power):
        world.add_body(body)
    initial_count = world.body_count
    initial_ke = world.kinetic_energy()
    center = np.array([FIELD_WIDTH / 2.0, FIELD_HEIGHT / 2.0])

    # uid -> list of (position, velocity) samples
    tracks = {}
    ticks = int(math.floor(settings.duration / settings.tick))
    interval = max(1, ticks // max(1, settings.samples))
    advance_dt = settings.tick * settings.time_acceleration

    for tick in range(ticks):
        world.advance(advance_dt)
        if tick % interval == 0 and world.body_count > 0:
            for uid, p, v in zip(world.uids, world.positions, world.velocities):
                tracks.setdefault(int(uid), []).append((p.copy(), v.copy()))

    per_body = []
    for samples in tracks.values():
        if len(samples) < 3:
            continue
        per_body.append(compute_orbit_metrics(
            [s[0] for s in samples], [s[1] for s in samples], center,
        ))
    metrics = average_metrics(per_body)

    remaining = world.body_count
    energy_drift = 0.0
    if remaining > 0 and initial_ke > 1e-6:
        final_ke = kinetic_energy(world.velocities, world.masses)
        energy_drift = abs((final_ke - initial_ke) / initial_ke)
    if not math.isfinite(energy_drift):
        energy_drift = 1.0

    outside = 0
    if remaining > 0 and not world.boundary.wrap:
        p = world.positions
        outside = int(np.sum((p[:, 0] < 0) | (p[:, 0] > FIELD_WIDTH) | (p[:, 1] < 0) | (p[:, 1] > FIELD_HEIGHT)))

    fitness = score(metrics, energy_drift, remaining, initial_count)
    return FitnessResult(
        fitness=fitness,
        radial_variance=metrics.rad_var if metrics is not None else 1.0,
        energy_drift=energy_drift,
        escape_count=outside,
        merge_count=initial_count - remaining,
        playability_score=metrics.tan_ratio if metrics is not None else 0.0,
        bodies_remaining=remaining,
        orbit_metrics=metrics,
        scenario_scores=[fitness],
    )


def safe_evaluate(genome: Genome, settings: FitnessSettings = FitnessSettings()) -> FitnessResult:
    """
    evaluate_fitness that never raises: a failing evaluation scores 0, the
    lowest fitness possible, and carries the error text.
    """
    try:
        return evaluate_fitness(genome, settings)
    except Exception as e:
        return FitnessResult(fitness=0.0, error=f"{type(e).__name__}: {e}")
