"""
SimulationWorld: the stateful container a UI or the fitness evaluator drives.

Bodies are stored as a structure of numpy arrays (positions, velocities,
half-step velocities, masses, radius mapping, uids). `Body` objects are only
built at the public boundary.
"""
import math
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from .body import Body, body_radius
from .config import (
    EPSILON,
    HOLD_EASING_POWER,
    MAX_FRAME_TIME,
    MAX_RELEASE_SPEED,
    WORLD_HEIGHT,
    WORLD_WIDTH,
    SimulationConfig,
    normalize_config,
)
from .energy import EnergyLedger, EnergyLedgerView
from .guidance import (
    circular_speed,
    clamp_radial_velocity,
    compress_speed,
    escape_speed,
    find_orbital_center,
    guide,
)
from .merging import find_merge_pairs, resolve_merges
from .physics import BoundaryPolicy, ForceLaw, integrate_step, kinetic_energy

# Relative tolerance used by the fixed-step accumulator
ACCUMULATOR_TOLERANCE = 1e-9


@dataclass
class LaunchStats:
    """Diagnostics of the last finished creation gesture."""
    hold_drag_speed: float = 0.0
    release_flick_speed: float = 0.0
    compressed_speed: float = 0.0
    final_launch_speed: float = 0.0
    estimated_v_circ: float = 0.0
    estimated_v_esc: float = 0.0


@dataclass(frozen=True)
class CreationPreview:
    x: float
    y: float
    mass: float
    radius: float
    estimated_speed: float
    v_circ: Optional[float] = None
    v_esc: Optional[float] = None


def _flick_velocity(history, now: float, window: float) -> Optional[np.ndarray]:
    """
    Average of the segment velocities recorded in the last `window` seconds.
    None when fewer than two points fall in the window or no time elapsed.
    """
    cutoff = now - window
    recent = [p for p in history if p[2] > cutoff]
    if len(recent) < 2:
        return None
    total = np.zeros(2)
    elapsed = 0.0
    for (x0, y0, t0), (x1, y1, t1) in zip(recent[:-1], recent[1:]):
        dt = t1 - t0
        if dt > 0:
            total[0] += (x1 - x0) / dt
            total[1] += (y1 - y0) / dt
            elapsed += dt
    if elapsed <= 0:
        return None
    return total / (len(recent) - 1)


class SimulationWorld:
    def __init__(self, config: SimulationConfig = None, width: float = WORLD_WIDTH, height: float = WORLD_HEIGHT):
        self.config = normalize_config(config if config is not None else SimulationConfig())
        self.width = float(width)
        self.height = float(height)

        self.positions = np.zeros((0, 2))
        self.velocities = np.zeros((0, 2))
        self.half_velocities = np.zeros((0, 2))
        self.masses = np.zeros(0)
        self.radius_scales = np.zeros(0)
        self.radius_powers = np.zeros(0)
        self.uids = np.zeros(0, dtype=np.int64)
        self._next_uid = 0

        self.accumulated_time = 0.0
        self.step_count = 0
        self.ledger = EnergyLedger()
        self.launch_stats: Optional[LaunchStats] = None

        self._creating = False
        self._creation_x = 0.0
        self._creation_y = 0.0
        self._creation_start = 0.0
        self._cursor_history = []
        self._hold_drag_speed = 0.0

        self._rebuild_physics()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _rebuild_physics(self):
        self.force_law = ForceLaw.from_config(self.config)
        self.boundary = BoundaryPolicy.from_config(self.config, self.width, self.height)

    def _rebase_energy(self, before_total: float) -> None:
        self.ledger.rebase(before_total, self.kinetic_energy(), self.potential_energy())

    def update_config(self, config: SimulationConfig) -> None:
        """Hot-swap the configuration. It is normalized again here."""
        before = self.total_energy()
        self.config = normalize_config(config)
        self._rebuild_physics()
        self._rebase_energy(before)

    def resize(self, width: float, height: float) -> None:
        before = self.total_energy()
        self.width = float(width)
        self.height = float(height)
        self._rebuild_physics()
        self._rebase_energy(before)

    # ------------------------------------------------------------------
    # Body storage
    # ------------------------------------------------------------------

    @property
    def body_count(self) -> int:
        return int(self.masses.shape[0])

    @property
    def bodies(self) -> List[Body]:
        return [self._body_at(i) for i in range(self.body_count)]

    def _body_at(self, i: int) -> Body:
        return Body(
            position=self.positions[i].copy(),
            velocity=self.velocities[i].copy(),
            mass=float(self.masses[i]),
            radius_scale=float(self.radius_scales[i]),
            radius_power=float(self.radius_powers[i]),
            half_step_velocity=self.half_velocities[i].copy(),
            uid=int(self.uids[i]),
        )

    def radii(self) -> np.ndarray:
        return body_radius(self.masses, self.radius_scales, self.radius_powers)

    def _set_arrays(self, bodies: List[Body]) -> None:
        n = len(bodies)
        self.positions = np.array([b.position for b in bodies], dtype=np.float64).reshape(n, 2)
        self.velocities = np.array([b.velocity for b in bodies], dtype=np.float64).reshape(n, 2)
        self.half_velocities = np.array([b.half_step_velocity for b in bodies], dtype=np.float64).reshape(n, 2)
        self.masses = np.array([b.mass for b in bodies], dtype=np.float64)
        self.radius_scales = np.array([b.radius_scale for b in bodies], dtype=np.float64)
        self.radius_powers = np.array([b.radius_power for b in bodies], dtype=np.float64)
        self.uids = np.array([b.uid for b in bodies], dtype=np.int64)

    def _assign_uid(self, body: Body) -> Body:
        body.uid = self._next_uid
        self._next_uid += 1
        return body

    def add_body(self, body: Body) -> bool:
        """
        Append a body. Refused (False) when the world is full or mass <= 0.
        The energy ledger takes a new baseline, so the added energy never
        shows up as integrator drift.
        """
        if self.body_count >= self.config.max_bodies or not body.mass > 0:
            return False
        before = self.total_energy()
        body = Body(
            position=self.boundary.wrap_position(body.position),
            velocity=body.velocity,
            mass=body.mass,
            radius_scale=body.radius_scale,
            radius_power=body.radius_power,
            half_step_velocity=body.half_step_velocity,
        )
        self._assign_uid(body)
        self.positions = np.vstack([self.positions, body.position[None, :]])
        self.velocities = np.vstack([self.velocities, body.velocity[None, :]])
        self.half_velocities = np.vstack([self.half_velocities, body.half_step_velocity[None, :]])
        self.masses = np.append(self.masses, body.mass)
        self.radius_scales = np.append(self.radius_scales, body.radius_scale)
        self.radius_powers = np.append(self.radius_powers, body.radius_power)
        self.uids = np.append(self.uids, np.int64(body.uid))
        self._rebase_energy(before)
        return True

    def clear(self) -> None:
        self._set_arrays([])
        self.accumulated_time = 0.0
        self.step_count = 0
        self.ledger.reset()
        self.launch_stats = None
        self.cancel_creation()

    def seed(self, layout, width: float = None, height: float = None) -> int:
        """
        Replace all bodies with `layout` (a sequence of {"x", "y", "mass"}).

        Each body gets a counter-clockwise tangential velocity around the field
        center, v = sqrt(G * M / r) * orbit_factor, where M approximates the
        central mass as 10x the mean layout mass (100 for an empty layout).
        Bodies sitting on the center are skipped. Returns the body count.
        """
        if width is not None and height is not None:
            self.resize(width, height)
        self.clear()

        layout = list(layout)
        if layout:
            central_mass = float(np.mean([float(b["mass"]) for b in layout])) * 10.0
        else:
            central_mass = 100.0

        cx = self.width / 2.0
        cy = self.height / 2.0
        G = self.config.gravity_constant
        bodies = []
        for entry in layout:
            x = float(entry["x"])
            y = float(entry["y"])
            dx = x - cx
            dy = y - cy
            r = math.hypot(dx, dy)
            if r < EPSILON:
                continue
            if len(bodies) >= self.config.max_bodies:
                break
            v = math.sqrt(G * central_mass / r) * self.config.orbit_factor
            angle = math.atan2(dy, dx) + math.pi / 2
            body = Body(
                position=(x, y),
                velocity=(math.cos(angle) * v, math.sin(angle) * v),
                mass=float(entry["mass"]),
                radius_scale=self.config.radius_scale,
                radius_power=self.config.radius_power,
            )
            bodies.append(self._assign_uid(body))

        self._set_arrays(bodies)
        self._rebase_energy(0.0)
        return self.body_count

    # ------------------------------------------------------------------
    # Time stepping
    # ------------------------------------------------------------------

    def advance(self, real_dt: float) -> int:
        """
        Accumulate real time and run as many fixed steps as fit.

        The frame delta is capped at MAX_FRAME_TIME. Returns the number of
        steps taken; an energy sample is recorded when at least one ran.
        """
        if not real_dt > 0:
            return 0
        dt = self.config.step_dt
        self.accumulated_time += min(float(real_dt), MAX_FRAME_TIME)

        steps = 0
        while self.accumulated_time + ACCUMULATOR_TOLERANCE * dt >= dt:
            self.step(dt)
            self.accumulated_time -= dt
            steps += 1
        if self.accumulated_time < 0:
            self.accumulated_time = 0.0
        if steps:
            self.record_energy()
        return steps

    def step(self, dt: float = None) -> None:
        """One atomic step: kick-drift-kick, then merge resolution."""
        if dt is None:
            dt = self.config.step_dt
        if self.body_count:
            integrate_step(
                self.positions, self.velocities, self.half_velocities, self.masses,
                self.force_law, self.boundary, self.config, dt,
            )
            if self.config.enable_merging and self.body_count > 1:
                self._resolve_merges()
        self.step_count += 1

    def _resolve_merges(self) -> int:
        pairs = find_merge_pairs(
            self.positions, self.radii(), self.masses, float(self.config.merge_stop_mass),
            self.boundary.wrap, self.boundary.width, self.boundary.height,
        )
        if len(pairs) == 0:
            return 0

        pre_energy = self.total_energy()
        kept, merged = resolve_merges(self.bodies, pairs, self.boundary)
        for body in merged:
            self._assign_uid(body)
        self._set_arrays(kept + merged)

        self.ledger.record_merge(self.step_count, pre_energy, self.total_energy())
        return len(merged)

    # ------------------------------------------------------------------
    # Energy
    # ------------------------------------------------------------------

    def kinetic_energy(self) -> float:
        return kinetic_energy(self.velocities, self.masses)

    def potential_energy(self) -> float:
        return self.force_law.potential(self.positions, self.masses, self.boundary)

    def total_energy(self) -> float:
        return self.kinetic_energy() + self.potential_energy()

    def record_energy(self) -> None:
        self.ledger.sample(self.kinetic_energy(), self.potential_energy())

    def energy_snapshot(self) -> EnergyLedgerView:
        return self.ledger.view()

    # ------------------------------------------------------------------
    # Creation gesture
    # ------------------------------------------------------------------

    def _current_max_mass(self) -> float:
        if self.body_count == 0:
            return self.config.max_mass
        return max(self.config.min_mass, float(math.floor(float(np.max(self.masses)))))

    def _hold_mass(self, now: float, current_max: float) -> float:
        hold = max(0.0, now - self._creation_start)
        t = min(1.0, hold / self.config.hold_to_max_seconds)
        eased = t ** HOLD_EASING_POWER
        return self.config.min_mass + (current_max - self.config.min_mass) * eased

    def _mass_resistance(self, mass: float, current_max: float) -> float:
        return 1.0 - (mass / current_max) * self.config.mass_resistance_factor

    def create_body(self, x: float, y: float, timestamp: float = None) -> bool:
        """Start a creation gesture at (x, y). False when the world is full."""
        if self.body_count >= self.config.max_bodies:
            return False
        now = time.monotonic() if timestamp is None else float(timestamp)
        self._creating = True
        self._creation_x = float(x)
        self._creation_y = float(y)
        self._creation_start = now
        self._cursor_history = [(float(x), float(y), now)]
        self._hold_drag_speed = 0.0
        return True

    def update_creation_gesture(self, x: float, y: float, timestamp: float = None) -> None:
        if not self._creating:
            return
        now = time.monotonic() if timestamp is None else float(timestamp)
        self._creation_x = float(x)
        self._creation_y = float(y)
        self._cursor_history.append((float(x), float(y), now))
        cutoff = now - self.config.flick_window
        self._cursor_history = [p for p in self._cursor_history if p[2] > cutoff]

        drag = _flick_velocity(self._cursor_history, now, self.config.flick_window)
        if drag is not None:
            self._hold_drag_speed = float(np.hypot(drag[0], drag[1]))

    def cancel_creation(self) -> None:
        self._creating = False
        self._cursor_history = []
        self._hold_drag_speed = 0.0

    @property
    def is_creating(self) -> bool:
        return self._creating

    def finish_creation(self, timestamp: float = None) -> Optional[Body]:
        """
        Release the gesture and add the new body.

        Mass grows with hold time; the launch velocity comes from the flick,
        then is compressed, scaled by launch strength and mass resistance,
        rotated by angular guidance and finally radially clamped. Returns the
        created body or None (no gesture, or the world filled up meanwhile).
        """
        if not self._creating:
            return None
        now = time.monotonic() if timestamp is None else float(timestamp)
        cfg = self.config
        current_max = self._current_max_mass()
        mass = self._hold_mass(now, current_max)
        position = np.array([self._creation_x, self._creation_y])

        velocity = np.zeros(2)
        release_speed = 0.0
        compressed = 0.0
        flick = _flick_velocity(self._cursor_history, now, cfg.flick_window)
        if flick is not None:
            raw_speed = float(np.hypot(flick[0], flick[1]))
            if raw_speed > MAX_RELEASE_SPEED:
                flick = flick * (MAX_RELEASE_SPEED / raw_speed)
                raw_speed = MAX_RELEASE_SPEED
            release_speed = raw_speed
            if raw_speed > EPSILON:
                compressed = compress_speed(raw_speed, cfg.launch_s0, cfg.launch_vmax)
                velocity = flick / raw_speed * compressed * cfg.launch_strength

        velocity = velocity * self._mass_resistance(mass, current_max)

        stats = LaunchStats(
            hold_drag_speed=self._hold_drag_speed,
            release_flick_speed=release_speed,
            compressed_speed=compressed,
        )
        if self.body_count > 0:
            found = find_orbital_center(position, self.positions, self.masses,
                                        cfg.orbital_center_search_radius, self.boundary)
            if found is not None:
                center, total_mass = found
                velocity = guide(position, velocity, center, cfg.angular_guidance_strength)
                velocity = clamp_radial_velocity(position, velocity, center, cfg.radial_clamp_factor)
                r = float(np.hypot(*(position - center)))
                stats.estimated_v_circ = circular_speed(cfg.gravity_constant, total_mass, r)
                stats.estimated_v_esc = escape_speed(cfg.gravity_constant, total_mass, r)

        stats.final_launch_speed = float(np.hypot(velocity[0], velocity[1]))
        self.cancel_creation()

        body = Body(position=position, velocity=velocity, mass=mass,
                    radius_scale=cfg.radius_scale, radius_power=cfg.radius_power)
        if not self.add_body(body):
            return None
        self.launch_stats = stats
        return self._body_at(self.body_count - 1)

    def creation_state(self, timestamp: float = None) -> Optional[CreationPreview]:
        """Live preview of the body the current gesture would create."""
        if not self._creating:
            return None
        now = time.monotonic() if timestamp is None else float(timestamp)
        cfg = self.config
        current_max = self._current_max_mass()
        mass = self._hold_mass(now, current_max)

        estimated = 0.0
        flick = _flick_velocity(self._cursor_history, now, cfg.flick_window)
        if flick is not None:
            raw_speed = min(float(np.hypot(flick[0], flick[1])), MAX_RELEASE_SPEED)
            estimated = (compress_speed(raw_speed, cfg.launch_s0, cfg.launch_vmax)
                         * cfg.launch_strength * self._mass_resistance(mass, current_max))

        v_circ = None
        v_esc = None
        position = np.array([self._creation_x, self._creation_y])
        if self.body_count > 0:
            found = find_orbital_center(position, self.positions, self.masses,
                                        cfg.orbital_center_search_radius, self.boundary)
            if found is not None:
                center, total_mass = found
                r = float(np.hypot(*(position - center)))
                if r > EPSILON:
                    v_circ = circular_speed(cfg.gravity_constant, total_mass, r)
                    v_esc = escape_speed(cfg.gravity_constant, total_mass, r)

        return CreationPreview(
            x=self._creation_x,
            y=self._creation_y,
            mass=mass,
            radius=float(body_radius(mass, cfg.radius_scale, cfg.radius_power)),
            estimated_speed=estimated,
            v_circ=v_circ,
            v_esc=v_esc,
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def total_momentum(self) -> np.ndarray:
        if self.body_count == 0:
            return np.zeros(2)
        return np.sum(self.velocities * self.masses[:, None], axis=0)

    def debug_stats(self) -> Dict[str, object]:
        ledger = self.ledger.view()
        stats = {
            "body_count": self.body_count,
            "step_count": self.step_count,
            "total_mass": float(np.sum(self.masses)),
            "kinetic": ledger.kinetic,
            "potential": ledger.potential,
            "total_energy": ledger.total,
            "energy_trend": ledger.trend,
            "integrator_drift": ledger.integrator_drift,
            "merge_loss": ledger.merge_loss,
            "merge_count": len(ledger.merge_events),
            "force_law": self.force_law.kind,
            "wrap": self.boundary.wrap,
        }
        if self.launch_stats is not None:
            stats["launch"] = dict(vars(self.launch_stats))
        return stats
