"""
Point-mass bodies.

A Body is the record that crosses the SimulationWorld boundary. Inside the
world the same data lives in parallel numpy arrays so the numba kernels can
work on it; `Body` snapshots are packed into / materialized from those arrays.
"""
from dataclasses import dataclass, field
from typing import Optional

import numpy as np


def body_radius(mass, radius_scale, radius_power):
    """
    Visual/collision radius derived from mass.

        radius = mass^radius_power * radius_scale / 2

    Works on scalars and numpy arrays alike. Radius is never stored, so it can
    not drift out of sync with the mass (e.g. after a merge).
    """
    return (np.power(mass, radius_power) * radius_scale) / 2.0


@dataclass
class Body:
    """
    Fields:
    - position: (x, y)
    - velocity: (vx, vy), synced from half_step_velocity after each full step
    - mass: strictly positive
    - radius_scale, radius_power: radius mapping, see body_radius()
    - half_step_velocity: integrator state; defaults to `velocity`
    - uid: world-assigned identity (-1 until the body joins a world)
    """
    position: np.ndarray
    velocity: np.ndarray
    mass: float
    radius_scale: float = 1.2
    radius_power: float = 0.5
    half_step_velocity: Optional[np.ndarray] = None
    uid: int = field(default=-1)

    def __post_init__(self):
        self.position = np.array(self.position, dtype=np.float64).reshape(2)
        self.velocity = np.array(self.velocity, dtype=np.float64).reshape(2)
        if self.half_step_velocity is None:
            self.half_step_velocity = self.velocity.copy()
        else:
            self.half_step_velocity = np.array(self.half_step_velocity, dtype=np.float64).reshape(2)
        self.mass = float(self.mass)

    @property
    def radius(self) -> float:
        return float(body_radius(self.mass, self.radius_scale, self.radius_power))

    @property
    def speed(self) -> float:
        return float(np.hypot(self.velocity[0], self.velocity[1]))

    def momentum(self) -> np.ndarray:
        return self.mass * self.velocity
