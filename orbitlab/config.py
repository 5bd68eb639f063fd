import math
import os
from dataclasses import dataclass, replace

# ----------------------------
# Physics modes
# ----------------------------
# "orbit_playground": energy-conserving mode. Damping and the force cap are
#                     always forced off by normalize_config().
#
# "n_body_chaos":     full pairwise gravity with the optional
#                     non-conservative extras (damping, force cap) allowed.
#
ORBIT_PLAYGROUND = "orbit_playground"
N_BODY_CHAOS = "n_body_chaos"
PHYSICS_MODES = (ORBIT_PLAYGROUND, N_BODY_CHAOS)

PHYSICS_MODE = ORBIT_PLAYGROUND

# ----------------------------
# Gravity
# ----------------------------
GRAVITY_CONSTANT = 10000.0
SOFTENING = 1.5             # Plummer softening length (pixels)
POTENTIAL_DEGREE = 2.0      # 2 = classical inverse-square force
MAX_FORCE_MAGNITUDE = 0.0   # 0 disables the (non-conservative) force cap
VELOCITY_DAMPING = 0.0      # Must stay 0 for energy conservation

# ----------------------------
# Integration
# ----------------------------
FIXED_DT = 0.01             # Physics step used by the accumulator
MAX_DT = 0.1                # Integration dt ceiling (the effective step is min(FIXED_DT, MAX_DT))
MAX_FRAME_TIME = 0.1        # Largest real delta accepted by one advance() call
SPEED_LIMIT = 1000.0        # Safety clamp on |v|, only applied when enabled
ENFORCE_SPEED_LIMIT = False

# ----------------------------
# Boundary and merging
# ----------------------------
WRAP_BOUNDARY = False       # Toroidal topology (not Newtonian free space)
ENABLE_MERGING = True
MERGE_STOP_MASS = 0.0       # 0 disables; bodies at or above it never merge again

# ----------------------------
# Mass and radius mapping
# ----------------------------
MIN_MASS = 5.0
MAX_MASS = 20.0
MASS_SHAPE_EXPONENT = 1.0   # k in mass = min + (max-min) * u^k
RADIUS_SCALE = 1.2          # radius = mass^RADIUS_POWER * RADIUS_SCALE / 2
RADIUS_POWER = 0.5
HOLD_TO_MAX_SECONDS = 5.0   # Hold time needed to reach the largest on-screen mass
HOLD_EASING_POWER = 0.7

# ----------------------------
# Launch shaping
# ----------------------------
FLICK_WINDOW = 0.07         # Seconds of gesture history used for the launch velocity
MAX_RELEASE_SPEED = 550.0   # Raw flick speed clamp before compression
LAUNCH_S0 = 400.0           # Speed compressor scale
LAUNCH_VMAX = 550.0         # Speed compressor ceiling
LAUNCH_STRENGTH = 0.9
MASS_RESISTANCE_FACTOR = 0.3
ORBIT_FACTOR = 1.0          # Multiplier on circular speed when seeding layouts

# Angular momentum guidance (launch assist only, never applied per step)
ANGULAR_GUIDANCE_STRENGTH = 0.6
RADIAL_CLAMP_FACTOR = 0.5
ORBITAL_CENTER_SEARCH_RADIUS = 300.0

# ----------------------------
# World
# ----------------------------
WORLD_WIDTH = 800.0
WORLD_HEIGHT = 600.0
MAX_BODIES = 60

# Energy ledger
ENERGY_HISTORY_LENGTH = 100
MERGE_EVENT_HISTORY = 50
ENERGY_TREND_THRESHOLD = 0.01
ENERGY_TREND_MIN_SAMPLES = 10

# Numerical guard for lengths and speeds
EPSILON = 1e-6

# ----------------------------
# Genetic algorithm run parameters (used by main.py)
# ----------------------------
POPULATION_SIZE = 16
ELITE_COUNT = 2
MUTATION_RATE = 0.1
MUTATION_STRENGTH = 0.1
TOURNAMENT_SIZE = 3
ENABLE_RANGE_EXPANSION = True
BOUNDARY_PROXIMITY = 0.02           # Fraction of a gene range counted as "at the bound"
BOUNDARY_GENERATIONS = 2            # Consecutive generations before a bound is widened
GENERATIONS = 10
WORKERS = None                      # None/1 = in-process, >1 = process pool
OUTPUT_DIR = os.path.join("data", "evolution")

# Fitness scenario
FITNESS_DURATION = 20.0             # Nominal seconds of ticks
FITNESS_TICK = 1.0 / 180.0
FITNESS_TIME_ACCELERATION = 3.0
FITNESS_SAMPLES = 100

# Reproducibility (set to None for non-deterministic runs)
SEED = None


@dataclass(frozen=True)
class SimulationConfig:
    """Immutable per-step simulation parameters.

    Build it with keyword overrides and always pass it through
    normalize_config() before use; SimulationWorld does this on every update.
    """

    physics_mode: str = PHYSICS_MODE

    gravity_constant: float = GRAVITY_CONSTANT
    softening: float = SOFTENING
    potential_degree: float = POTENTIAL_DEGREE
    max_force: float = MAX_FORCE_MAGNITUDE
    velocity_damping: float = VELOCITY_DAMPING

    fixed_dt: float = FIXED_DT
    max_dt: float = MAX_DT
    speed_limit: float = SPEED_LIMIT
    enforce_speed_limit: bool = ENFORCE_SPEED_LIMIT

    wrap_boundary: bool = WRAP_BOUNDARY
    enable_merging: bool = ENABLE_MERGING
    merge_stop_mass: float = MERGE_STOP_MASS

    min_mass: float = MIN_MASS
    max_mass: float = MAX_MASS
    mass_shape_exponent: float = MASS_SHAPE_EXPONENT
    radius_scale: float = RADIUS_SCALE
    radius_power: float = RADIUS_POWER
    hold_to_max_seconds: float = HOLD_TO_MAX_SECONDS

    flick_window: float = FLICK_WINDOW
    launch_s0: float = LAUNCH_S0
    launch_vmax: float = LAUNCH_VMAX
    launch_strength: float = LAUNCH_STRENGTH
    mass_resistance_factor: float = MASS_RESISTANCE_FACTOR
    orbit_factor: float = ORBIT_FACTOR

    angular_guidance_strength: float = ANGULAR_GUIDANCE_STRENGTH
    radial_clamp_factor: float = RADIAL_CLAMP_FACTOR
    orbital_center_search_radius: float = ORBITAL_CENTER_SEARCH_RADIUS

    max_bodies: int = MAX_BODIES

    @property
    def step_dt(self) -> float:
        """Fixed integration step actually used by the accumulator."""
        return min(self.fixed_dt, self.max_dt)

    @property
    def energy_conserving(self) -> bool:
        return self.physics_mode == ORBIT_PLAYGROUND


def _finite(value, fallback):
    try:
        value = float(value)
    except (TypeError, ValueError):
        return float(fallback)
    if math.isnan(value) or math.isinf(value):
        return float(fallback)
    return value


def _clamp(value, low, high):
    return max(low, min(high, value))


def normalize_config(config: SimulationConfig) -> SimulationConfig:
    """
    Return a copy of `config` with every field pulled back into its domain.

    Out-of-range values are corrected by clamping instead of raising, so a
    genome decoded from the edge of its search range still produces a
    runnable world. In the energy-conserving mode damping and the force cap
    are forced off here, whatever the caller asked for.
    """
    defaults = SimulationConfig()

    mode = config.physics_mode if config.physics_mode in PHYSICS_MODES else PHYSICS_MODE

    min_mass = max(EPSILON, _finite(config.min_mass, defaults.min_mass))
    max_mass = max(min_mass, _finite(config.max_mass, defaults.max_mass))

    damping = _clamp(_finite(config.velocity_damping, 0.0), 0.0, 1.0)
    max_force = max(0.0, _finite(config.max_force, 0.0))
    if mode == ORBIT_PLAYGROUND:
        damping = 0.0
        max_force = 0.0

    fixed_dt = _finite(config.fixed_dt, defaults.fixed_dt)
    if fixed_dt <= 0:
        fixed_dt = defaults.fixed_dt
    max_dt = _finite(config.max_dt, defaults.max_dt)
    if max_dt <= 0:
        max_dt = defaults.max_dt

    return replace(
        config,
        physics_mode=mode,
        gravity_constant=max(0.0, _finite(config.gravity_constant, defaults.gravity_constant)),
        softening=max(EPSILON, _finite(config.softening, defaults.softening)),
        potential_degree=max(EPSILON, _finite(config.potential_degree, defaults.potential_degree)),
        max_force=max_force,
        velocity_damping=damping,
        fixed_dt=fixed_dt,
        max_dt=max_dt,
        speed_limit=max(EPSILON, _finite(config.speed_limit, defaults.speed_limit)),
        enforce_speed_limit=bool(config.enforce_speed_limit),
        wrap_boundary=bool(config.wrap_boundary),
        enable_merging=bool(config.enable_merging),
        merge_stop_mass=max(0.0, _finite(config.merge_stop_mass, 0.0)),
        min_mass=min_mass,
        max_mass=max_mass,
        mass_shape_exponent=max(EPSILON, _finite(config.mass_shape_exponent, defaults.mass_shape_exponent)),
        radius_scale=max(EPSILON, _finite(config.radius_scale, defaults.radius_scale)),
        radius_power=max(EPSILON, _finite(config.radius_power, defaults.radius_power)),
        hold_to_max_seconds=max(EPSILON, _finite(config.hold_to_max_seconds, defaults.hold_to_max_seconds)),
        flick_window=max(EPSILON, _finite(config.flick_window, defaults.flick_window)),
        launch_s0=max(EPSILON, _finite(config.launch_s0, defaults.launch_s0)),
        launch_vmax=max(0.0, _finite(config.launch_vmax, defaults.launch_vmax)),
        launch_strength=max(0.0, _finite(config.launch_strength, defaults.launch_strength)),
        mass_resistance_factor=_clamp(_finite(config.mass_resistance_factor, 0.0), 0.0, 1.0),
        orbit_factor=max(0.0, _finite(config.orbit_factor, defaults.orbit_factor)),
        angular_guidance_strength=_clamp(_finite(config.angular_guidance_strength, 0.0), 0.0, 1.0),
        radial_clamp_factor=_clamp(_finite(config.radial_clamp_factor, 0.0), 0.0, 1.0),
        orbital_center_search_radius=max(0.0, _finite(config.orbital_center_search_radius, 0.0)),
        max_bodies=max(1, int(_finite(config.max_bodies, defaults.max_bodies))),
    )


# ----------------------------
# Sanity checks (fail fast)
# ----------------------------
assert PHYSICS_MODE in PHYSICS_MODES, "PHYSICS_MODE must be one of: orbit_playground, n_body_chaos"
assert GRAVITY_CONSTANT > 0, "GRAVITY_CONSTANT must be > 0"
assert SOFTENING > 0, "SOFTENING must be > 0"
assert POTENTIAL_DEGREE > 0, "POTENTIAL_DEGREE must be > 0"
assert FIXED_DT > 0 and MAX_DT > 0, "FIXED_DT and MAX_DT must be > 0"
assert 0 < MIN_MASS <= MAX_MASS, "Invalid mass range"
assert 0 <= ANGULAR_GUIDANCE_STRENGTH <= 1, "ANGULAR_GUIDANCE_STRENGTH must be in [0, 1]"
assert 0 <= RADIAL_CLAMP_FACTOR <= 1, "RADIAL_CLAMP_FACTOR must be in [0, 1]"
assert 0 <= MASS_RESISTANCE_FACTOR <= 1, "MASS_RESISTANCE_FACTOR must be in [0, 1]"
assert MAX_BODIES > 0, "MAX_BODIES must be > 0"
assert POPULATION_SIZE > 0, "POPULATION_SIZE must be > 0"
assert 0 <= ELITE_COUNT <= POPULATION_SIZE, "ELITE_COUNT must be in [0, POPULATION_SIZE]"
assert TOURNAMENT_SIZE > 0, "TOURNAMENT_SIZE must be > 0"
assert 0 <= MUTATION_RATE <= 1, "MUTATION_RATE must be in [0, 1]"
assert GENERATIONS > 0, "GENERATIONS must be > 0"
assert FITNESS_DURATION > 0 and FITNESS_TICK > 0, "Fitness scenario timing must be > 0"
