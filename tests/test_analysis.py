import math

import numpy as np
import pandas as pd
import pytest

from orbitlab.analysis import (
    OrbitMetrics,
    average_metrics,
    best_per_generation,
    compute_orbit_metrics,
    summarize_generations,
    unwrap_delta_angle,
)


def circle_track(revolutions, samples, radius=100.0, center=(400.0, 300.0)):
    theta = np.linspace(0.0, 2.0 * math.pi * revolutions, samples)
    pos = np.column_stack([center[0] + radius * np.cos(theta), center[1] + radius * np.sin(theta)])
    vel = np.column_stack([-np.sin(theta), np.cos(theta)]) * 50.0
    return pos, vel


def test_three_revolutions_count_three_turns():
    pos, vel = circle_track(3, 301)
    metrics = compute_orbit_metrics(pos, vel, (400.0, 300.0))
    assert metrics.turns == pytest.approx(3.0, rel=1e-9)
    assert metrics.rad_var == pytest.approx(0.0, abs=1e-12)
    assert metrics.tan_ratio == pytest.approx(1.0, abs=1e-6)


def test_seam_crossing_has_no_spurious_jumps():
    # Oscillate back and forth across the +-pi seam
    angles = np.array([math.pi - 0.1, -math.pi + 0.1] * 20)
    pos = np.column_stack([100 * np.cos(angles), 100 * np.sin(angles)])
    vel = np.zeros_like(pos)
    metrics = compute_orbit_metrics(pos, vel, (0.0, 0.0))
    # 39 steps of 0.2 rad each
    assert metrics.turns == pytest.approx(39 * 0.2 / (2 * math.pi), rel=1e-9)
    assert metrics.tan_ratio == 0.0


def test_radial_motion_has_zero_tangential_ratio():
    r = np.linspace(50.0, 150.0, 10)
    pos = np.column_stack([r, np.zeros_like(r)])
    vel = np.tile([10.0, 0.0], (10, 1))
    metrics = compute_orbit_metrics(pos, vel, (0.0, 0.0))
    assert metrics.tan_ratio == pytest.approx(0.0, abs=1e-9)
    assert metrics.rad_var > 0
    assert metrics.turns == 0.0


def test_too_few_samples():
    assert compute_orbit_metrics([[1.0, 0.0], [0.0, 1.0]], [[0.0, 1.0], [-1.0, 0.0]], (0.0, 0.0)) is None


def test_unwrap_delta_angle_range():
    for d in np.linspace(-20.0, 20.0, 401):
        u = unwrap_delta_angle(float(d))
        assert -math.pi < u <= math.pi
        assert math.isclose(math.cos(u), math.cos(d), abs_tol=1e-9)
    assert unwrap_delta_angle(-math.pi) == pytest.approx(math.pi)


def test_average_metrics():
    a = OrbitMetrics(rad_var=0.2, turns=1.0, tan_ratio=0.5)
    b = OrbitMetrics(rad_var=0.4, turns=3.0, tan_ratio=1.0)
    avg = average_metrics([a, None, b])
    assert avg.rad_var == pytest.approx(0.3)
    assert avg.turns == pytest.approx(2.0)
    assert avg.tan_ratio == pytest.approx(0.75)
    assert average_metrics([None]) is None


def test_summarize_generations():
    df = pd.DataFrame({
        "generation": [0, 0, 1, 1],
        "fitness": [0.2, 0.4, 0.5, 0.3],
        "log10_g": [4.0, 4.1, 4.2, 4.3],
    })
    summary = summarize_generations(df)
    assert list(summary.index) == [0, 1]
    assert summary.loc[0, "best"] == pytest.approx(0.4)
    assert summary.loc[1, "mean"] == pytest.approx(0.4)
    assert summary.loc[1, "count"] == 2

    best = best_per_generation(df, ["log10_g"])
    assert list(best["log10_g"]) == [4.1, 4.2]

    with pytest.raises(KeyError):
        summarize_generations(df.drop(columns=["fitness"]))
