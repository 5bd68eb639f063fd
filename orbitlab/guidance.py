"""
Launch-time velocity shaping.

Everything here runs once, when a body is created. `guide` only rotates the
launch velocity toward the local tangential direction, so speed (and therefore
kinetic energy) is unchanged. Calling it from the step loop would inject a
steady angular-momentum bias and is a bug.
"""
import math
from typing import Optional, Tuple

import numpy as np

from .config import EPSILON
from .physics import BoundaryPolicy


def _as_vec(v) -> np.ndarray:
    return np.array(v, dtype=np.float64).reshape(2)


def compress_speed(raw_speed: float, s0: float, vmax: float) -> float:
    """Exponential speed compressor: vmax * (1 - exp(-raw / s0))."""
    if s0 <= 0 or raw_speed <= 0:
        return 0.0
    return vmax * (1.0 - math.exp(-raw_speed / s0))


def circular_speed(gravity_constant: float, central_mass: float, radius: float) -> float:
    if radius <= EPSILON or central_mass <= 0:
        return 0.0
    return math.sqrt(gravity_constant * central_mass / radius)


def escape_speed(gravity_constant: float, central_mass: float, radius: float) -> float:
    if radius <= EPSILON or central_mass <= 0:
        return 0.0
    return math.sqrt(2.0 * gravity_constant * central_mass / radius)


def find_orbital_center(position, positions, masses, search_radius: float,
                        boundary: Optional[BoundaryPolicy] = None) -> Optional[Tuple[np.ndarray, float]]:
    """
    Locate the local orbital center around `position`.

    Every body closer than `search_radius` contributes to a mass-weighted
    center, using minimum-image offsets on a torus (so the center may lie
    just outside the field). Returns (center, total_mass) or None when
    nothing is in range.
    """
    if boundary is None:
        boundary = BoundaryPolicy()
    position = _as_vec(position)
    if len(masses) == 0:
        return None

    offsets = np.array([boundary.delta(position, p) for p in positions])
    distances = np.hypot(offsets[:, 0], offsets[:, 1])
    in_range = distances < search_radius
    if not np.any(in_range):
        return None

    weights = np.asarray(masses, dtype=np.float64)[in_range]
    total_mass = float(np.sum(weights))
    if total_mass <= 0:
        return None

    relative = position + offsets[in_range]
    center = np.sum(relative * weights[:, None], axis=0) / total_mass
    return center, total_mass


def decompose_velocity(position, center, velocity) -> Tuple[np.ndarray, np.ndarray]:
    """Split `velocity` into (radial, tangential) parts relative to `center`."""
    position = _as_vec(position)
    velocity = _as_vec(velocity)
    r = position - _as_vec(center)
    r_len = math.hypot(r[0], r[1])
    if r_len < EPSILON:
        return np.zeros(2), velocity
    r_hat = r / r_len
    radial = r_hat * float(np.dot(velocity, r_hat))
    return radial, velocity - radial


def guide(position, velocity, center, strength: float) -> np.ndarray:
    """
    Rotate `velocity` toward the tangential direction around `center`.

    The tangent is signed to keep the current rotational sense, the new
    direction is normalize((1 - strength) * v_hat + strength * t_hat) and the
    original speed is restored, so |result| == |velocity|.

    strength <= 0, a negligible speed or a position on top of the center
    return the input unchanged.
    """
    velocity = _as_vec(velocity)
    if strength <= 0:
        return velocity

    speed = math.hypot(velocity[0], velocity[1])
    if speed < EPSILON:
        return velocity

    r = _as_vec(position) - _as_vec(center)
    r_len = math.hypot(r[0], r[1])
    if r_len < EPSILON:
        return velocity

    strength = min(1.0, float(strength))
    r_hat = r / r_len
    t_hat = np.array([-r_hat[1], r_hat[0]])
    if np.dot(velocity, t_hat) < 0:
        t_hat = -t_hat

    blended = (1.0 - strength) * (velocity / speed) + strength * t_hat
    blended_len = math.hypot(blended[0], blended[1])
    if blended_len < EPSILON:
        # Purely radial velocity fully opposed to the tangent; keep it as is.
        return velocity
    return blended / blended_len * speed


def clamp_radial_velocity(position, velocity, center, factor: float) -> np.ndarray:
    """
    Damp an excessive radial launch component.

    The part of the radial speed that exceeds the tangential speed is scaled
    by (1 - factor). factor 0 is a no-op. Creation-time only.
    """
    velocity = _as_vec(velocity)
    if factor <= 0:
        return velocity
    radial, tangential = decompose_velocity(position, center, velocity)
    v_r = math.hypot(radial[0], radial[1])
    v_t = math.hypot(tangential[0], tangential[1])
    if v_r <= v_t or v_r < EPSILON:
        return velocity
    allowed = v_t + (v_r - v_t) * (1.0 - min(1.0, factor))
    return tangential + radial * (allowed / v_r)
