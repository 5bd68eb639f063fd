import math

import numpy as np
import pytest

import orbitlab.fitness as fitness
from orbitlab.analysis import OrbitMetrics
from orbitlab.fitness import FitnessSettings, evaluate_fitness, safe_evaluate, score, standardized_layout
from orbitlab.genome import Genome

SHORT = FitnessSettings(duration=0.2, samples=10)


def test_standardized_layout():
    bodies = standardized_layout()
    assert len(bodies) == 40
    assert bodies[0].mass == pytest.approx(5.0)
    assert bodies[-1].mass == pytest.approx(20.0)
    assert bodies[0].speed == pytest.approx(100.0)
    assert bodies[-1].speed == pytest.approx(550.0)

    # Tangential, counter-clockwise around the field center
    center = np.array([400.0, 300.0])
    for body in bodies:
        r = body.position - center
        assert abs(np.dot(r, body.velocity)) < 1e-6 * np.linalg.norm(r) * body.speed
        assert r[0] * body.velocity[1] - r[1] * body.velocity[0] > 0


def test_evaluate_fitness_short_run():
    result = evaluate_fitness(Genome(), SHORT)
    assert math.isfinite(result.fitness)
    assert result.fitness >= 0
    assert result.error is None
    assert 0 < result.bodies_remaining <= 40
    assert result.merge_count == 40 - result.bodies_remaining
    assert result.orbit_metrics is not None
    assert "fitness" not in result.details()


def test_evaluate_fitness_toroidal_has_no_escapes():
    result = evaluate_fitness(Genome(toroidal=True), SHORT)
    assert result.escape_count == 0


def test_score_components():
    perfect = OrbitMetrics(rad_var=0.0, turns=10.0, tan_ratio=1.0)
    assert score(perfect, 0.0, 40, 40) == pytest.approx(0.3 + 0.15 + 0.15 + 0.25 + 0.3)

    # Missing metrics cost 0.5 and the total never goes negative
    assert score(None, 0.0, 40, 40) == pytest.approx(0.25 + 0.3 - 0.5)
    assert score(None, 1.0, 0, 40) == 0.0

    # Losing more than 20 bodies is penalized
    assert score(perfect, 0.0, 10, 40) == pytest.approx(0.85 + 0.15 - 0.2 * 10 / 20)


def test_safe_evaluate_turns_errors_into_zero(monkeypatch):
    def broken(genome, settings):
        raise FloatingPointError("overflow")

    monkeypatch.setattr(fitness, "evaluate_fitness", broken)
    result = safe_evaluate(Genome(), SHORT)
    assert result.fitness == 0.0
    assert "FloatingPointError" in result.error
