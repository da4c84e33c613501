"""Tests for geometry_primitives module."""
import numpy as np
import pytest
from shapely.geometry import Polygon

from geometry_primitives import (
    Bounds3D,
    Rect2D,
    SurfaceLoop,
    SurfaceVertex,
    decimate_polyline,
    loops_to_segments,
    polygon_to_vertices,
    signed_area,
    vertices_to_polygon,
)


class TestRect2D:
    """Test the world-bounds rectangle."""

    def test_corners_and_centroid(self):
        rect = Rect2D(100, 0, 100, 400)
        assert rect.centroid == pytest.approx([150.0, 200.0])
        assert rect.min_corner == pytest.approx([100.0, 0.0])
        assert rect.max_corner == pytest.approx([200.0, 400.0])

    def test_contains_point_includes_edges(self):
        rect = Rect2D(0, 0, 10, 10)
        assert rect.contains_point((0, 0))
        assert rect.contains_point((10, 5))
        assert not rect.contains_point((10.01, 5))

    def test_constrain_clamps_points(self):
        rect = Rect2D(0, 0, 10, 20)
        pts = rect.constrain(np.array([[-5.0, 3.0], [12.0, 25.0], [4.0, 4.0]]))
        np.testing.assert_allclose(pts, [[0, 3], [10, 20], [4, 4]])

    def test_scaled_about_centroid(self):
        rect = Rect2D(0, 0, 100, 50).scaled(2.0)
        assert rect.centroid == pytest.approx([50.0, 25.0])
        assert rect.width == pytest.approx(200.0)
        assert rect.height == pytest.approx(100.0)

    def test_random_points_inside(self):
        rect = Rect2D(10, 20, 30, 40)
        pts = rect.random_points(np.random.default_rng(0), 200)
        assert pts.shape == (200, 2)
        assert all(rect.contains_point(p) for p in pts)

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            Rect2D(0, 0, -1, 5)


class TestBounds3D:
    """Test the growable bounding box."""

    def test_starts_empty(self):
        bounds = Bounds3D()
        assert bounds.is_empty
        np.testing.assert_allclose(bounds.extent, 0.0)

    def test_grow_to_contain(self):
        bounds = Bounds3D()
        bounds.grow_to_contain(np.array([[1.0, 2.0, 3.0]]))
        bounds.grow_to_contain(np.array([[-1.0, 5.0, 0.0], [0.0, 0.0, 4.0]]))
        assert not bounds.is_empty
        np.testing.assert_allclose(bounds.min_corner, [-1, 0, 0])
        np.testing.assert_allclose(bounds.max_corner, [1, 5, 4])
        np.testing.assert_allclose(bounds.center, [0, 2.5, 2])

    def test_single_point_has_zero_extent(self):
        bounds = Bounds3D().grow_to_contain(np.array([2.0, 2.0, 2.0]))
        assert not bounds.is_empty
        np.testing.assert_allclose(bounds.extent, 0.0)


class TestSurfaceVertex:
    """Test the immutable draped vertex."""

    def test_arrays_are_read_only(self):
        v = SurfaceVertex(position=[1, 2, 3], normal=[0, 0, 1], rel_pos=[0.5, 0.5])
        with pytest.raises(ValueError):
            v.position[0] = 10.0

    def test_displaced_moves_along_normal(self):
        v = SurfaceVertex(position=[1, 2, 3], normal=[0, 0, 2], rel_pos=[0, 0])
        moved = v.displaced(5.0)
        np.testing.assert_allclose(moved, [1, 2, 8])
        np.testing.assert_allclose(v.position, [1, 2, 3])

    def test_zero_normal_does_not_move(self):
        v = SurfaceVertex(position=[1, 2, 3], normal=[0, 0, 0], rel_pos=[0, 0])
        np.testing.assert_allclose(v.displaced(5.0), [1, 2, 3])

    def test_loop_closed_when_first_repeated(self):
        a = SurfaceVertex(position=[0, 0, 0], normal=[1, 0, 0], rel_pos=[0, 0])
        b = SurfaceVertex(position=[1, 0, 0], normal=[1, 0, 0], rel_pos=[1, 0])
        loop = SurfaceLoop((a, b, a))
        assert loop.is_closed
        assert len(loop) == 3
        assert loop.positions.shape == (3, 3)


class TestPolygonConversions:
    """Test Shapely <-> vertex array conversions."""

    def test_polygon_to_vertices_drops_closing_point(self):
        poly = Polygon([(0, 0), (10, 0), (10, 5), (0, 5)])
        verts = polygon_to_vertices(poly)
        assert verts.shape == (4, 2)

    def test_empty_polygon(self):
        assert polygon_to_vertices(Polygon()).shape == (0, 2)
        assert vertices_to_polygon(np.zeros((2, 2))).is_empty

    def test_roundtrip_area(self):
        verts = np.array([[0, 0], [100, 0], [100, 50], [0, 50]], dtype=float)
        assert vertices_to_polygon(verts).area == pytest.approx(5000.0)

    def test_signed_area_winding(self):
        ccw = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=float)
        assert signed_area(ccw) == pytest.approx(1.0)
        assert signed_area(ccw[::-1]) == pytest.approx(-1.0)


class TestDecimatePolyline:
    """Test uniform arclength resampling."""

    def test_uniform_spacing(self):
        line = np.array([[0.0, 0.0], [10.0, 0.0]])
        out = decimate_polyline(line, 1.0)
        assert len(out) == 11
        steps = np.linalg.norm(np.diff(out, axis=0), axis=1)
        np.testing.assert_allclose(steps, 1.0)

    def test_spacing_follows_corners(self):
        line = np.array([[0.0, 0.0], [3.0, 0.0], [3.0, 3.0]])
        out = decimate_polyline(line, 1.5)
        np.testing.assert_allclose(out[-1], [3.0, 3.0])
        assert len(out) == 5

    def test_exclude_last(self):
        ring = np.array([[0.0, 0.0], [4.0, 0.0], [4.0, 4.0], [0.0, 4.0], [0.0, 0.0]])
        out = decimate_polyline(ring, 2.0, include_last=False)
        assert len(out) == 8

    def test_zero_length_collapses(self):
        out = decimate_polyline(np.array([[1.0, 1.0], [1.0, 1.0]]), 1.0)
        np.testing.assert_allclose(out, [[1.0, 1.0]])


def test_loops_to_segments():
    loop = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 0, 0]], dtype=float)
    segs = loops_to_segments([loop, np.zeros((1, 3))])
    assert segs.shape == (3, 2, 3)
    np.testing.assert_allclose(segs[0], [[0, 0, 0], [1, 0, 0]])
