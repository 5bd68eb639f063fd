# ==============================================================================
# orbitlab/physics.py
# ------------------------------------------------------------------------------
# Core physics engine: softened pairwise gravity, periodic (toroidal) boundary
# math and the kick-drift-kick (velocity Verlet) integrator.
# All pairwise loops are JIT-compiled with Numba and work on the parallel
# numpy arrays owned by SimulationWorld.
# ==============================================================================

import math
from dataclasses import dataclass, field

import numpy as np
from numba import njit

# ==============================================================================
# BOUNDARY HELPERS
# ==============================================================================

@njit(inline="always")
def min_image_delta(d, size):
    """
    Shortest displacement along one periodic axis (minimum-image convention).
    """
    half = 0.5 * size
    if d > half:
        d -= size
    elif d < -half:
        d += size
    return d


@njit(inline="always")
def wrap_coordinate(x, size):
    """
    Map a coordinate back into [0, size). Non-finite values are returned as-is.
    """
    if not math.isfinite(x):
        return x
    x -= size * np.floor(x / size)
    if x >= size:
        x -= size
    if x < 0.0:
        x = 0.0
    return x


# ==============================================================================
# FORCE LAW KERNELS
# ==============================================================================
# Every kernel shares one signature so ForceLaw can pick one up front:
#   (pos, mass, G, eps, degree, cap, wrap, width, height, acc)
# and writes the acceleration of each body into the pre-allocated `acc`.
# Positions are only read, so all forces come from the same snapshot.

@njit(fastmath=True)
def plummer_accelerations(pos, mass, G, eps, degree, cap, wrap, width, height, acc):
    """
    Classical softened gravity (degree 2):

        a_i = sum_j G * m_j * d_ij / (|d_ij|^2 + eps^2)^(3/2)

    Gradient of U = -G*m_i*m_j / sqrt(r^2 + eps^2), so it is conservative.
    """
    n = pos.shape[0]
    eps2 = eps * eps
    for i in range(n):
        xi = pos[i, 0]
        yi = pos[i, 1]
        ax = 0.0
        ay = 0.0
        for j in range(n):
            if i == j:
                continue
            dx = pos[j, 0] - xi
            dy = pos[j, 1] - yi
            if wrap:
                dx = min_image_delta(dx, width)
                dy = min_image_delta(dy, height)

            r2 = dx * dx + dy * dy + eps2
            inv_r3 = 1.0 / (r2 * np.sqrt(r2))
            factor = G * mass[j] * inv_r3

            ax += factor * dx
            ay += factor * dy
        acc[i, 0] = ax
        acc[i, 1] = ay


@njit(fastmath=True)
def power_accelerations(pos, mass, G, eps, degree, cap, wrap, width, height, acc):
    """
    Softened power-law gravity for an arbitrary potential degree:

        F = G * m1 * m2 * d / (|d|^2 + eps^2)^((degree + 1) / 2)
    """
    n = pos.shape[0]
    eps2 = eps * eps
    exponent = 0.5 * (degree + 1.0)
    for i in range(n):
        xi = pos[i, 0]
        yi = pos[i, 1]
        ax = 0.0
        ay = 0.0
        for j in range(n):
            if i == j:
                continue
            dx = pos[j, 0] - xi
            dy = pos[j, 1] - yi
            if wrap:
                dx = min_image_delta(dx, width)
                dy = min_image_delta(dy, height)

            r2 = dx * dx + dy * dy + eps2
            factor = G * mass[j] / (r2 ** exponent)

            ax += factor * dx
            ay += factor * dy
        acc[i, 0] = ax
        acc[i, 1] = ay


@njit(fastmath=True)
def capped_accelerations(pos, mass, G, eps, degree, cap, wrap, width, height, acc):
    """
    Power-law gravity with |F| clamped to `cap`.

    NOTE: the clamp makes the force non-conservative; energy is no longer a
    constant of motion when it engages.
    """
    n = pos.shape[0]
    eps2 = eps * eps
    exponent = 0.5 * (degree + 1.0)
    for i in range(n):
        xi = pos[i, 0]
        yi = pos[i, 1]
        ax = 0.0
        ay = 0.0
        for j in range(n):
            if i == j:
                continue
            dx = pos[j, 0] - xi
            dy = pos[j, 1] - yi
            if wrap:
                dx = min_image_delta(dx, width)
                dy = min_image_delta(dy, height)

            r2 = dx * dx + dy * dy + eps2
            factor = G * mass[j] / (r2 ** exponent)

            # |F| = m_i * |a| = G * m_i * m_j * |d| / r2^exponent
            magnitude = mass[i] * factor * np.sqrt(dx * dx + dy * dy)
            if magnitude > cap:
                factor *= cap / magnitude

            ax += factor * dx
            ay += factor * dy
        acc[i, 0] = ax
        acc[i, 1] = ay


@njit(fastmath=True)
def potential_energy(pos, mass, G, eps, degree, wrap, width, height):
    """
    Total pairwise potential energy, consistent with the force kernels:

        degree == 1:  U = G*m_i*m_j * 0.5 * ln(r^2 + eps^2)
        otherwise:    U = -G*m_i*m_j / ((degree - 1) * (r^2 + eps^2)^((degree - 1) / 2))

    For degree 2 this is the familiar -G*m_i*m_j / sqrt(r^2 + eps^2).
    """
    n = pos.shape[0]
    eps2 = eps * eps
    logarithmic = abs(degree - 1.0) < 1e-9
    exponent = 0.5 * (degree - 1.0)
    total = 0.0
    for i in range(n):
        for j in range(i + 1, n):
            dx = pos[j, 0] - pos[i, 0]
            dy = pos[j, 1] - pos[i, 1]
            if wrap:
                dx = min_image_delta(dx, width)
                dy = min_image_delta(dy, height)

            r2 = dx * dx + dy * dy + eps2
            gmm = G * mass[i] * mass[j]
            if logarithmic:
                total += 0.5 * gmm * np.log(r2)
            else:
                total -= gmm / ((degree - 1.0) * r2 ** exponent)
    return total


def kinetic_energy(velocities, masses):
    """K = sum 0.5 * m * |v|^2"""
    if len(masses) == 0:
        return 0.0
    return float(0.5 * np.sum(masses * np.einsum("ij,ij->i", velocities, velocities)))


# ==============================================================================
# INTEGRATOR PASSES
# ==============================================================================

@njit(fastmath=True)
def kick_drift(pos, vel_half, acc, dt, damping, speed_limit, wrap, width, height):
    """
    Pass 1 of kick-drift-kick: half-kick, drift, wrap, then the optional
    non-Hamiltonian extras (damping, speed limit). A value of 0 disables
    damping / speed_limit.
    """
    half_dt = 0.5 * dt
    for i in range(pos.shape[0]):
        vx = vel_half[i, 0] + acc[i, 0] * half_dt
        vy = vel_half[i, 1] + acc[i, 1] * half_dt

        pos[i, 0] += vx * dt
        pos[i, 1] += vy * dt

        if wrap:
            pos[i, 0] = wrap_coordinate(pos[i, 0], width)
            pos[i, 1] = wrap_coordinate(pos[i, 1], height)

        if damping > 0.0:
            vx *= 1.0 - damping
            vy *= 1.0 - damping

        if speed_limit > 0.0:
            speed = np.sqrt(vx * vx + vy * vy)
            if speed > speed_limit:
                scale = speed_limit / speed
                vx *= scale
                vy *= scale

        vel_half[i, 0] = vx
        vel_half[i, 1] = vy


@njit(fastmath=True)
def kick(vel_half, acc, dt, speed_limit):
    """
    Pass 2 of kick-drift-kick: second half-kick with accelerations evaluated
    at the new positions.
    """
    half_dt = 0.5 * dt
    for i in range(vel_half.shape[0]):
        vx = vel_half[i, 0] + acc[i, 0] * half_dt
        vy = vel_half[i, 1] + acc[i, 1] * half_dt

        if speed_limit > 0.0:
            speed = np.sqrt(vx * vx + vy * vy)
            if speed > speed_limit:
                scale = speed_limit / speed
                vx *= scale
                vy *= scale

        vel_half[i, 0] = vx
        vel_half[i, 1] = vy


# ==============================================================================
# PUBLIC API
# ==============================================================================

# Map force-law name -> kernel. The variant is chosen once per configuration,
# never per pairwise interaction.
FORCE_LAW_KERNELS = {
    "plummer": plummer_accelerations,
    "power": power_accelerations,
    "capped": capped_accelerations,
}


@dataclass(frozen=True)
class BoundaryPolicy:
    """
    Open space (wrap=False) or a closed 2-torus of size width x height.

    WARNING: the torus is not Newtonian free space. With wrap enabled energy
    and momentum conservation guarantees no longer hold.
    """
    wrap: bool = False
    width: float = 0.0
    height: float = 0.0

    @classmethod
    def from_config(cls, config, width, height):
        wrap = bool(config.wrap_boundary) and width > 0 and height > 0
        return cls(wrap=wrap, width=float(width), height=float(height))

    def delta(self, a, b) -> np.ndarray:
        """Displacement from point `a` to point `b`."""
        dx = float(b[0]) - float(a[0])
        dy = float(b[1]) - float(a[1])
        if self.wrap:
            dx = min_image_delta(dx, self.width)
            dy = min_image_delta(dy, self.height)
        return np.array([dx, dy])

    def distance(self, a, b) -> float:
        d = self.delta(a, b)
        return float(math.hypot(d[0], d[1]))

    def wrap_position(self, p) -> np.ndarray:
        if not self.wrap:
            return np.array(p, dtype=np.float64)
        return np.array([
            wrap_coordinate(float(p[0]), self.width),
            wrap_coordinate(float(p[1]), self.height),
        ])


@dataclass(frozen=True)
class ForceLaw:
    """
    Softened gravitational force law, one of a closed set of variants:

    - "plummer": degree 2, uncapped (fast inverse-cube path)
    - "power":   any degree, uncapped
    - "capped":  any degree with |F| <= max_force (non-conservative)
    """
    kind: str
    gravity_constant: float
    softening: float
    degree: float = 2.0
    max_force: float = 0.0
    kernel: object = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.kind not in FORCE_LAW_KERNELS:
            raise ValueError(f"Unknown force law: {self.kind!r}")
        object.__setattr__(self, "kernel", FORCE_LAW_KERNELS[self.kind])

    @classmethod
    def from_config(cls, config):
        if config.max_force > 0:
            kind = "capped"
        elif config.potential_degree == 2.0:
            kind = "plummer"
        else:
            kind = "power"
        return cls(
            kind=kind,
            gravity_constant=float(config.gravity_constant),
            softening=float(config.softening),
            degree=float(config.potential_degree),
            max_force=float(config.max_force),
        )

    @property
    def conservative(self) -> bool:
        return self.kind != "capped"

    def accelerations(self, positions, masses, boundary, out=None):
        if out is None:
            out = np.zeros_like(positions)
        if positions.shape[0] == 0:
            return out
        self.kernel(
            positions, masses, self.gravity_constant, self.softening, self.degree,
            self.max_force, boundary.wrap, boundary.width, boundary.height, out,
        )
        return out

    def potential(self, positions, masses, boundary) -> float:
        if positions.shape[0] < 2:
            return 0.0
        return float(potential_energy(
            positions, masses, self.gravity_constant, self.softening, self.degree,
            boundary.wrap, boundary.width, boundary.height,
        ))


def integrate_step(positions, velocities, half_velocities, masses, force_law, boundary, config, dt, acc=None):
    """
    Advance every body by exactly `dt` with kick-drift-kick.

    Pass 1 evaluates all accelerations from one snapshot of positions, then
    half-kicks and drifts. Pass 2 re-evaluates the accelerations at the new
    positions and applies the second half-kick. Both passes are required for
    the scheme to stay symplectic.

    Damping is skipped in the energy-conserving mode. The speed limit runs
    only when `config.enforce_speed_limit` is set; it is a safety valve for
    close encounters and is not part of Hamiltonian dynamics.
    """
    if positions.shape[0] == 0:
        return
    if acc is None:
        acc = np.zeros_like(positions)

    damping = 0.0 if config.energy_conserving else float(config.velocity_damping)
    speed_limit = float(config.speed_limit) if config.enforce_speed_limit else 0.0

    # 1. Half-kick + drift from accelerations at time t
    force_law.accelerations(positions, masses, boundary, acc)
    kick_drift(positions, half_velocities, acc, dt, damping, speed_limit,
               boundary.wrap, boundary.width, boundary.height)

    # 2. Second half-kick from accelerations at time t + dt
    force_law.accelerations(positions, masses, boundary, acc)
    kick(half_velocities, acc, dt, speed_limit)

    velocities[:] = half_velocities
