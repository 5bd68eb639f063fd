import math

import numpy as np
import pytest

from orbitlab.guidance import (
    clamp_radial_velocity,
    compress_speed,
    decompose_velocity,
    find_orbital_center,
    guide,
)
from orbitlab.physics import BoundaryPolicy


@pytest.mark.parametrize("strength", [0.1, 0.5, 0.9, 1.0])
def test_guide_preserves_speed(strength):
    rng = np.random.default_rng(7)
    center = np.array([0.0, 0.0])
    for _ in range(50):
        position = rng.uniform(-200, 200, size=2)
        velocity = rng.uniform(-300, 300, size=2)
        guided = guide(position, velocity, center, strength)
        assert np.hypot(*guided) == pytest.approx(np.hypot(*velocity), rel=1e-12)


def test_guide_is_identity_at_zero_strength():
    v = np.array([3.0, -7.0])
    np.testing.assert_array_equal(guide((10.0, 0.0), v, (0.0, 0.0), 0.0), v)
    np.testing.assert_array_equal(guide((10.0, 0.0), v, (0.0, 0.0), -1.0), v)


def test_guide_degenerate_inputs_unchanged():
    np.testing.assert_array_equal(guide((10.0, 0.0), (0.0, 0.0), (0.0, 0.0), 1.0), [0.0, 0.0])
    np.testing.assert_array_equal(guide((0.0, 0.0), (5.0, 1.0), (0.0, 0.0), 1.0), [5.0, 1.0])


def test_guide_keeps_rotational_sense():
    # Mostly outward, slightly clockwise around the origin
    guided = guide((10.0, 0.0), (10.0, -1.0), (0.0, 0.0), 1.0)
    np.testing.assert_allclose(guided, [0.0, -math.hypot(10.0, 1.0)], atol=1e-12)


def test_decompose_velocity():
    radial, tangential = decompose_velocity((10.0, 0.0), (0.0, 0.0), (3.0, 4.0))
    np.testing.assert_allclose(radial, [3.0, 0.0])
    np.testing.assert_allclose(tangential, [0.0, 4.0])


def test_compress_speed():
    assert compress_speed(0.0, 400.0, 550.0) == 0.0
    assert compress_speed(100.0, 0.0, 550.0) == 0.0
    assert compress_speed(400.0, 400.0, 550.0) == pytest.approx(550.0 * (1 - math.exp(-1)))
    assert compress_speed(1e9, 400.0, 550.0) <= 550.0


def test_clamp_radial_velocity():
    # radial 10 > tangential 2: the 8 excess is halved
    clamped = clamp_radial_velocity((10.0, 0.0), (10.0, 2.0), (0.0, 0.0), 0.5)
    np.testing.assert_allclose(clamped, [6.0, 2.0])
    # no excess: unchanged
    np.testing.assert_allclose(clamp_radial_velocity((10.0, 0.0), (1.0, 2.0), (0.0, 0.0), 0.5), [1.0, 2.0])
    # factor 0: no-op
    np.testing.assert_allclose(clamp_radial_velocity((10.0, 0.0), (10.0, 2.0), (0.0, 0.0), 0.0), [10.0, 2.0])


def test_find_orbital_center_mass_weighted():
    positions = np.array([[100.0, 0.0], [120.0, 0.0], [1000.0, 0.0]])
    masses = np.array([10.0, 30.0, 500.0])
    center, total = find_orbital_center((0.0, 0.0), positions, masses, 300.0)
    np.testing.assert_allclose(center, [115.0, 0.0])
    assert total == 40.0


def test_find_orbital_center_none_out_of_range():
    assert find_orbital_center((0.0, 0.0), np.array([[500.0, 0.0]]), np.array([5.0]), 300.0) is None
    assert find_orbital_center((0.0, 0.0), np.zeros((0, 2)), np.zeros(0), 300.0) is None


def test_find_orbital_center_uses_minimum_image():
    boundary = BoundaryPolicy(wrap=True, width=100.0, height=100.0)
    center, _ = find_orbital_center((2.0, 50.0), np.array([[98.0, 50.0]]), np.array([5.0]), 10.0, boundary)
    # Reported relative to the query position, across the seam
    np.testing.assert_allclose(center, [-2.0, 50.0])
