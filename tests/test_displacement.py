"""Tests for displacement strategies and simplex noise."""
import numpy as np
import pytest

from displacement import (
    DisplacementStrategy,
    NoiseDisplacement,
    displace_loops,
    permutation_table,
    simplex_noise_2d,
)
from geometry_primitives import SurfaceLoop, SurfaceVertex


class ConstantDisplacement(DisplacementStrategy):
    """Moves every vertex by the strength itself."""

    def compute_displacement(self, vertex):
        return self.strength


def _loop(positions, normal=(0.0, 0.0, 1.0)):
    verts = tuple(
        SurfaceVertex(position=p, normal=normal, rel_pos=(0.0, 0.0)) for p in positions
    )
    return SurfaceLoop(verts + verts[:1])


class TestSimplexNoise:

    def test_scalar_returns_float(self):
        assert isinstance(simplex_noise_2d(0.3, 0.7), float)

    def test_range(self):
        rng = np.random.default_rng(0)
        x, y = rng.uniform(-50, 50, (2, 5000))
        values = simplex_noise_2d(x, y)
        assert values.shape == (5000,)
        assert np.all(np.abs(values) <= 1.05)
        assert values.std() > 0.1

    def test_zero_at_lattice_origin(self):
        assert simplex_noise_2d(0.0, 0.0) == pytest.approx(0.0)

    def test_seeded_tables(self):
        a = permutation_table(1)
        assert len(a) == 512
        np.testing.assert_array_equal(a[:256], a[256:])
        np.testing.assert_array_equal(a, permutation_table(1))
        assert not np.array_equal(a, permutation_table(2))

    def test_vectorized_matches_scalar(self):
        perm = permutation_table(3)
        xs = np.array([0.1, 1.7, -4.2])
        ys = np.array([2.5, -0.3, 9.9])
        values = simplex_noise_2d(xs, ys, perm)
        for x, y, v in zip(xs, ys, values):
            assert simplex_noise_2d(x, y, perm) == pytest.approx(v)


class TestNoiseDisplacement:

    def test_strength_is_clamped(self):
        strategy = NoiseDisplacement()
        strategy.set_strength(250.0)
        assert strategy.strength == 100.0
        strategy.set_strength(-3.0)
        assert strategy.strength == 0.0

    def test_amount_is_never_negative(self):
        strategy = NoiseDisplacement(strength=50.0)
        rng = np.random.default_rng(1)
        positions = np.column_stack([rng.uniform(-500, 500, (200, 2)), np.zeros(200)])
        verts = [SurfaceVertex(position=p, normal=(1, 0, 0), rel_pos=(0, 0)) for p in positions]
        amounts = strategy.compute_displacements(positions, verts)
        assert np.all(amounts >= 0.0)
        assert np.all(amounts <= 50.0 * 1.05)

    def test_vectorized_matches_per_vertex(self):
        strategy = NoiseDisplacement(strength=30.0, seed=4)
        positions = np.array([[10.0, 20.0, 0.0], [-130.0, 75.0, 5.0], [400.0, -90.0, 1.0]])
        verts = [SurfaceVertex(position=p, normal=(0, 0, 1), rel_pos=(0, 0)) for p in positions]
        expected = [strategy.compute_displacement(v) for v in verts]
        np.testing.assert_allclose(strategy.compute_displacements(positions, verts), expected)

    def test_same_vertex_at_two_strengths(self):
        vertex = SurfaceVertex(position=(10.0, 20.0, 3.0), normal=(0, 0, 1), rel_pos=(0.5, 0.5))
        original = vertex.position.copy()
        strategy = NoiseDisplacement(strength=10.0)

        low = vertex.displaced(strategy.compute_displacement(vertex))
        np.testing.assert_array_equal(vertex.position, original)

        strategy.set_strength(90.0)
        high = vertex.displaced(strategy.compute_displacement(vertex))
        np.testing.assert_array_equal(vertex.position, original)

        assert not np.allclose(low, high)
        np.testing.assert_allclose(high - original, (low - original) * 9.0)

    def test_zero_strength_is_identity(self):
        loop = _loop([[0, 0, 0], [10, 0, 0], [10, 10, 0]])
        (moved,), _bounds = displace_loops([loop], NoiseDisplacement(strength=0.0))
        np.testing.assert_allclose(moved, loop.positions)


class TestDisplaceLoops:

    def test_moves_along_normal(self):
        loop = _loop([[0, 0, 0], [10, 0, 0], [10, 10, 0]], normal=(0.0, 0.0, 2.0))
        (moved,), bounds = displace_loops([loop], ConstantDisplacement(strength=5.0))
        np.testing.assert_allclose(moved[:, 2], 5.0)
        np.testing.assert_allclose(moved[:, :2], loop.positions[:, :2])
        np.testing.assert_allclose(bounds.min_corner, [0, 0, 5])
        np.testing.assert_allclose(bounds.max_corner, [10, 10, 5])

    def test_input_is_not_mutated(self):
        loop = _loop([[0, 0, 0], [10, 0, 0], [10, 10, 0]])
        before = loop.positions.copy()
        displace_loops([loop], ConstantDisplacement(strength=7.0))
        np.testing.assert_array_equal(loop.positions, before)

    def test_loops_stay_closed(self):
        loop = _loop([[0, 0, 0], [10, 0, 0], [10, 10, 0]])
        (moved,), _ = displace_loops([loop], NoiseDisplacement(strength=40.0))
        np.testing.assert_allclose(moved[0], moved[-1])

    def test_empty_input(self):
        loops, bounds = displace_loops([], ConstantDisplacement(strength=1.0))
        assert loops == []
        assert bounds.is_empty
