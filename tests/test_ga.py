import json
from concurrent.futures import Future

import numpy as np
import pytest

import orbitlab.ga as ga
from orbitlab.fitness import FitnessResult
from orbitlab.ga import GAParameters, Population, import_genome
from orbitlab.genome import GENE_SPECS, Genome


def launch_strength_fitness(genome, settings):
    return FitnessResult(fitness=genome.launch_strength)


def make_population(size=12, elite_count=2, seed=0, **kwargs):
    params = GAParameters(population_size=size, elite_count=elite_count, **kwargs)
    population = Population(params, np.random.default_rng(seed), evaluator=launch_strength_fitness)
    population.initialize()
    return population


def test_best_fitness_never_regresses():
    population = make_population()
    population.evaluate()
    best = population.best().fitness
    for _ in range(15):
        population.evolve()
        population.evaluate()
        current = population.best().fitness
        assert current >= best
        best = current


def test_elites_are_not_reevaluated():
    calls = []

    def counting(genome, settings):
        calls.append(genome)
        return launch_strength_fitness(genome, settings)

    population = make_population(size=10, elite_count=3)
    population.evaluator = counting
    population.evaluate()
    assert len(calls) == 10

    population.evolve()
    elites = population.genomes[:3]
    assert all(g.fitness is not None for g in elites)
    assert all(g.fitness is None for g in population.genomes[3:])

    calls.clear()
    population.evaluate()
    assert len(calls) == 7
    assert population.genomes[:3] == elites


def test_nan_fitness_becomes_zero():
    population = make_population(size=4)
    population.evaluator = lambda genome, settings: FitnessResult(fitness=float("nan"))
    population.evaluate()
    assert all(g.fitness == 0.0 for g in population.genomes)


def test_raising_evaluator_scores_zero_and_generation_continues():
    calls = []

    def flaky(genome, settings):
        calls.append(genome)
        if len(calls) == 2:
            raise RuntimeError("diverged")
        return launch_strength_fitness(genome, settings)

    population = make_population(size=4)
    population.evaluator = flaky
    population.evaluate()

    assert len(calls) == 4
    assert all(g.fitness is not None for g in population.genomes)
    failed = population.genomes[1]
    assert failed.fitness == 0.0
    assert failed.fitness_details["error"] == "RuntimeError: diverged"
    assert population.genomes[0].fitness == population.genomes[0].launch_strength


class InlineExecutor:
    """Runs submitted work immediately; counts how many pools were opened."""
    created = 0

    def __init__(self, max_workers=None):
        InlineExecutor.created += 1

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def submit(self, fn, *args):
        future = Future()
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)
        return future


def test_run_reuses_one_worker_pool(monkeypatch):
    monkeypatch.setattr(ga, "ProcessPoolExecutor", InlineExecutor)
    InlineExecutor.created = 0

    def sometimes_raises(genome, settings):
        if genome.launch_strength > 1.9:
            raise ValueError("too strong")
        return launch_strength_fitness(genome, settings)

    params = GAParameters(population_size=6, elite_count=1)
    population = Population(params, np.random.default_rng(3), evaluator=sometimes_raises, workers=2)
    history = population.run(4)

    assert len(history) == 4
    assert InlineExecutor.created == 1
    assert all(g.fitness is not None for g in population.genomes)

    # A direct evaluate() outside run() opens its own pool
    population.genomes = [g.with_fitness(None) for g in population.genomes]
    population.evaluate()
    assert InlineExecutor.created == 2


def test_range_expansion_after_pinned_generations():
    population = make_population(size=4, elite_count=1, boundary_generations=2)
    pinned = Genome(log10_g=GENE_SPECS["log10_g"].high, radius_power=GENE_SPECS["radius_power"].high)
    population.genomes = [pinned.with_fitness(1.0)] + [Genome().with_fitness(0.0) for _ in range(3)]

    assert ("log10_g", "max") not in population.check_range_expansion()
    assert population.bounds["log10_g"] == (3.699, 4.699)

    widened = population.check_range_expansion()
    assert ("log10_g", "max") in widened
    assert ("radius_power", "max") in widened
    assert population.bounds["log10_g"] == pytest.approx((3.699, 5.699))
    # Linear genes widen by their current width
    assert population.bounds["radius_power"] == pytest.approx((0.33, 0.87))
    assert population.boundary_pressure[("log10_g", "max")] == 0

    # No longer at the (new) bound: the counter is dropped
    population.check_range_expansion()
    assert ("log10_g", "max") not in population.boundary_pressure


def test_range_expansion_respects_hard_limits():
    population = make_population(size=2, elite_count=1, boundary_generations=1)
    population.genomes = [Genome(log10_force_cap=-1.0).with_fitness(1.0), Genome().with_fitness(0.0)]
    for _ in range(5):
        population.check_range_expansion()
        population.genomes[0] = Genome(log10_force_cap=population.bounds["log10_force_cap"][0]).with_fitness(1.0)
    assert population.bounds["log10_force_cap"][0] == GENE_SPECS["log10_force_cap"].hard_low


def test_range_expansion_disabled():
    population = make_population(size=2, elite_count=1, boundary_generations=1, enable_range_expansion=False)
    population.genomes = [Genome(log10_g=4.699).with_fitness(1.0), Genome().with_fitness(0.0)]
    assert population.check_range_expansion() == []
    assert population.bounds["log10_g"] == (3.699, 4.699)


def test_children_stay_within_bounds():
    population = make_population(size=20)
    for _ in range(5):
        population.evaluate()
        population.evolve()
    for genome in population.genomes:
        for name, value in genome.genes().items():
            lo, hi = population.bounds[name]
            assert lo <= value <= hi


def test_breed_from_selected_parents():
    population = make_population(size=8)
    population.evaluate()
    generation = population.generation

    assert population.breed_from([0]) == []
    assert population.breed_from([0, 99]) == []
    assert population.generation == generation

    children = population.breed_from([0, 1])
    assert len(children) == 8
    assert population.generation == generation + 1
    assert all(g.fitness is None for g in population.genomes)


def test_run_history_and_callbacks():
    population = make_population(size=6)
    seen = []
    history = population.run(4, generation_callback=lambda p: seen.append(p.generation))
    assert len(history) == 4
    assert seen == [0, 1, 2, 3]
    assert [h["generation"] for h in history] == [0, 1, 2, 3]
    assert all(h["best"] >= h["mean"] >= h["worst"] for h in history)
    # The final population is left evaluated
    assert all(g.fitness is not None for g in population.genomes)


def test_run_should_stop_between_generations():
    population = make_population(size=6)
    polls = []

    def should_stop():
        polls.append(None)
        return len(polls) > 2

    history = population.run(10, should_stop=should_stop)
    assert len(history) == 2


def test_export_and_import_best():
    population = make_population(size=6)
    population.run(2)
    record = population.export_best()
    # Must be JSON serializable as written by main.py
    restored = import_genome(json.loads(json.dumps(record)))
    best = population.best()
    assert restored.genes() == pytest.approx(best.genes())
    assert record["fitness"] == best.fitness
    assert record["decoded_config"]["physics_mode"] == "n_body_chaos"

    bare = import_genome({"log10_g": 99.0, "unknown": 1.0})
    assert bare.log10_g == GENE_SPECS["log10_g"].high
