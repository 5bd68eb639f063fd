"""
Population management and the generational GA loop.

Per generation:
    evaluate -> sort -> range expansion check -> elitism + (tournament x2,
    uniform crossover, mutation, clamp) -> next generation
"""
from concurrent.futures import ProcessPoolExecutor, as_completed
from contextlib import nullcontext
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .config import (
    BOUNDARY_GENERATIONS,
    BOUNDARY_PROXIMITY,
    ELITE_COUNT,
    ENABLE_RANGE_EXPANSION,
    MUTATION_RATE,
    MUTATION_STRENGTH,
    POPULATION_SIZE,
    TOURNAMENT_SIZE,
)
from .fitness import FitnessResult, FitnessSettings, safe_evaluate
from .genome import GENE_NAMES, GENE_SPECS, Genome, default_bounds

# Log genes widen by one decade per expansion
LOG_EXPANSION_STEP = 1.0


@dataclass(frozen=True)
class GAParameters:
    population_size: int = POPULATION_SIZE
    elite_count: int = ELITE_COUNT
    mutation_rate: float = MUTATION_RATE
    mutation_strength: float = MUTATION_STRENGTH
    tournament_size: int = TOURNAMENT_SIZE
    enable_range_expansion: bool = ENABLE_RANGE_EXPANSION
    boundary_proximity: float = BOUNDARY_PROXIMITY
    boundary_generations: int = BOUNDARY_GENERATIONS


def _fitness_key(genome: Genome) -> float:
    return genome.fitness if genome.fitness is not None else 0.0


def _failed(error: Exception) -> FitnessResult:
    return FitnessResult(fitness=0.0, error=f"{type(error).__name__}: {error}")


class Population:
    def __init__(self, parameters: GAParameters = GAParameters(), rng: np.random.Generator = None,
                 settings: FitnessSettings = FitnessSettings(), evaluator: Callable = safe_evaluate,
                 workers: Optional[int] = None, toroidal: bool = False):
        self.parameters = parameters
        self.rng = rng if rng is not None else np.random.default_rng()
        self.settings = settings
        self.evaluator = evaluator
        self.workers = workers
        self.toroidal = toroidal

        self.genomes: List[Genome] = []
        self.generation = 0
        self.bounds = default_bounds()
        # (gene, "min" | "max") -> consecutive generations an elite sat on that bound
        self.boundary_pressure: Dict[tuple, int] = {}
        self.history: List[dict] = []

    def __len__(self):
        return len(self.genomes)

    # ------------------------------------------------------------------

    def initialize(self) -> None:
        self.genomes = [
            Genome.random(self.rng, self.bounds, toroidal=self.toroidal)
            for _ in range(self.parameters.population_size)
        ]
        self.generation = 0

    def _pool(self):
        """A process pool when workers > 1, otherwise a no-op context (None)."""
        if self.workers and self.workers > 1:
            return ProcessPoolExecutor(max_workers=self.workers)
        return nullcontext()

    def evaluate(self, progress_callback: Callable[[float], None] = None, executor=None) -> None:
        """
        Score every genome that has no fitness yet. Elites carried over from
        the previous generation keep theirs. Results are written back only
        once the whole generation is done.

        An evaluator that raises scores 0 with the error text, whether it ran
        in-process or in a worker. `executor` lets run() reuse one pool (and
        its already compiled kernels) across generations.
        """
        pending = [i for i, g in enumerate(self.genomes) if g.fitness is None]
        total = len(pending)
        if not total:
            return
        if executor is None and self.workers and self.workers > 1:
            with self._pool() as pool:
                self.evaluate(progress_callback, pool)
            return

        results: Dict[int, FitnessResult] = {}
        if executor is not None:
            futures = {
                executor.submit(self.evaluator, self.genomes[i], self.settings): i
                for i in pending
            }
            for done, future in enumerate(as_completed(futures), start=1):
                index = futures[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    results[index] = _failed(e)
                if progress_callback is not None:
                    progress_callback(done / total)
        else:
            for done, i in enumerate(pending, start=1):
                try:
                    results[i] = self.evaluator(self.genomes[i], self.settings)
                except Exception as e:
                    results[i] = _failed(e)
                if progress_callback is not None:
                    progress_callback(done / total)

        for i, result in results.items():
            fitness = result.fitness
            if fitness is None or not np.isfinite(fitness):
                fitness = 0.0
            self.genomes[i] = self.genomes[i].with_fitness(float(fitness), result.details())

    def sort(self) -> None:
        self.genomes.sort(key=_fitness_key, reverse=True)

    def best(self) -> Optional[Genome]:
        if not self.genomes:
            return None
        return max(self.genomes, key=_fitness_key)

    # ------------------------------------------------------------------

    def _widen(self, name: str, side: str) -> None:
        spec = GENE_SPECS[name]
        lo, hi = self.bounds[name]
        step = LOG_EXPANSION_STEP if spec.log_space else (hi - lo)
        if side == "min":
            lo = max(spec.hard_low, lo - step)
        else:
            hi = min(spec.hard_high, hi + step)
        self.bounds[name] = (lo, hi)

    def check_range_expansion(self) -> List[tuple]:
        """
        Widen the bounds the elites keep pressing against.

        A bound counts as pinned when any elite is within `boundary_proximity`
        of the range width from it. After `boundary_generations` consecutive
        pinned generations the bound moves outward and its counter resets;
        a bound that is not pinned loses its counter. Returns the widened
        (gene, side) pairs. Expects a sorted population.
        """
        params = self.parameters
        if not params.enable_range_expansion or not self.genomes:
            return []

        elites = self.genomes[:max(1, params.elite_count)]
        widened = []
        for name in GENE_NAMES:
            lo, hi = self.bounds[name]
            margin = (hi - lo) * params.boundary_proximity
            values = [getattr(g, name) for g in elites]
            for side, pinned in (("min", any(v <= lo + margin for v in values)),
                                 ("max", any(v >= hi - margin for v in values))):
                key = (name, side)
                if not pinned:
                    self.boundary_pressure.pop(key, None)
                    continue
                count = self.boundary_pressure.get(key, 0) + 1
                if count >= params.boundary_generations:
                    self._widen(name, side)
                    widened.append(key)
                    count = 0
                self.boundary_pressure[key] = count
        return widened

    def tournament_select(self, size: int = None) -> Genome:
        size = size or self.parameters.tournament_size
        picks = self.rng.integers(0, len(self.genomes), size=size)
        return max((self.genomes[i] for i in picks), key=_fitness_key)

    def _child(self, parent_a: Genome, parent_b: Genome) -> Genome:
        child = parent_a.crossover(parent_b, self.rng)
        return child.mutate(self.parameters.mutation_rate, self.parameters.mutation_strength,
                            self.rng, self.bounds)

    def evolve(self) -> None:
        """Replace the population by the next generation."""
        self.sort()
        self.check_range_expansion()

        size = self.parameters.population_size
        elite_count = min(self.parameters.elite_count, len(self.genomes), size)
        next_generation = list(self.genomes[:elite_count])
        while len(next_generation) < size:
            next_generation.append(self._child(self.tournament_select(), self.tournament_select()))

        self.genomes = next_generation
        self.generation += 1

    def breed_from(self, selected_indices: Sequence[int]) -> List[Genome]:
        """
        Build a full generation only from the hand-picked parents. Needs at
        least two valid indices; otherwise nothing changes and [] is returned.
        """
        parents = [self.genomes[i] for i in selected_indices if 0 <= i < len(self.genomes)]
        if len(parents) < 2:
            return []

        children = []
        for _ in range(self.parameters.population_size):
            a = parents[self.rng.integers(0, len(parents))]
            b = parents[self.rng.integers(0, len(parents))]
            children.append(self._child(a, b))

        self.genomes = children
        self.generation += 1
        return list(children)

    # ------------------------------------------------------------------

    def record_history(self) -> dict:
        values = np.array([_fitness_key(g) for g in self.genomes]) if self.genomes else np.zeros(1)
        record = {
            "generation": self.generation,
            "best": float(np.max(values)),
            "mean": float(np.mean(values)),
            "worst": float(np.min(values)),
            "bounds": dict(self.bounds),
        }
        self.history.append(record)
        return record

    def run(self, generations: int, should_stop: Callable[[], bool] = None,
            progress_callback: Callable[[float], None] = None,
            generation_callback: Callable[["Population"], None] = None) -> List[dict]:
        """
        Evaluate and evolve for up to `generations` generations.

        `should_stop` is polled between generations only; a generation that
        has started always finishes. The final population is left evaluated
        and sorted. With workers > 1 a single process pool serves every
        generation of the run.
        """
        if not self.genomes:
            self.initialize()

        with self._pool() as pool:
            for index in range(generations):
                if should_stop is not None and should_stop():
                    break
                self.evaluate(progress_callback, pool)
                self.sort()
                self.record_history()
                if generation_callback is not None:
                    generation_callback(self)
                if index < generations - 1:
                    self.evolve()
        return self.history

    # ------------------------------------------------------------------

    def export_best(self) -> Optional[dict]:
        best = self.best()
        if best is None:
            return None
        return export_genome(best)


def export_genome(genome: Genome) -> dict:
    config = genome.decode()
    return {
        "genome": genome.to_record(),
        "decoded_config": asdict(config),
        "fitness": genome.fitness,
        "fitness_details": genome.fitness_details,
    }


def import_genome(record: dict, bounds=None) -> Genome:
    """
    Accept an export_best() record or a bare gene dict; unknown keys are
    ignored, missing genes take their defaults and the result is clamped.
    """
    data = record.get("genome", record) if isinstance(record, dict) else {}
    genome = Genome.from_genes(data, toroidal=bool(data.get("toroidal", False)))
    return genome.clamp(bounds)
