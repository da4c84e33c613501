"""
Core geometry types for the facade pipeline.

Built on numpy arrays with Shapely for 2D polygon operations. Provides the
world-bounds rectangle shared by the simulator, tessellator and surface
mapper, the growable 3D bounding box used by displacement and voxelization,
and the immutable surface vertex / loop value types produced by draping.
"""
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Polygon, box as shapely_box


@dataclass(frozen=True)
class Rect2D:
    """Axis-aligned rectangle given by its top-left corner and size."""
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Rect2D needs non-negative size, got {self.width}x{self.height}"
            )

    @property
    def min_corner(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)

    @property
    def max_corner(self) -> np.ndarray:
        return np.array([self.x + self.width, self.y + self.height], dtype=float)

    @property
    def size(self) -> np.ndarray:
        return np.array([self.width, self.height], dtype=float)

    @property
    def centroid(self) -> np.ndarray:
        return np.array(
            [self.x + self.width * 0.5, self.y + self.height * 0.5], dtype=float
        )

    def contains_point(self, point: Sequence[float]) -> bool:
        """Closed containment test (edges count as inside)."""
        px, py = float(point[0]), float(point[1])
        return (
            self.x <= px <= self.x + self.width
            and self.y <= py <= self.y + self.height
        )

    def constrain(self, points: np.ndarray) -> np.ndarray:
        """Clamp a point or (N, 2) array of points into the rectangle."""
        return np.clip(np.asarray(points, dtype=float), self.min_corner, self.max_corner)

    def scaled(self, factor: float) -> "Rect2D":
        """Copy scaled about the centroid."""
        cx, cy = self.centroid
        w = self.width * factor
        h = self.height * factor
        return Rect2D(cx - w * 0.5, cy - h * 0.5, w, h)

    def random_points(self, rng: np.random.Generator, count: int) -> np.ndarray:
        """Uniformly distributed points inside the rectangle, shape (count, 2)."""
        return self.min_corner + rng.random((count, 2)) * self.size

    def to_polygon(self) -> Polygon:
        return shapely_box(self.x, self.y, self.x + self.width, self.y + self.height)

    def corners(self) -> np.ndarray:
        """Corners in order top-left, top-right, bottom-right, bottom-left."""
        x0, y0 = self.min_corner
        x1, y1 = self.max_corner
        return np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=float)


@dataclass
class Bounds3D:
    """Growable axis-aligned bounding box.

    Starts empty (inverted infinite corners) and grows to contain whatever
    points are added.
    """
    min_corner: np.ndarray = field(default_factory=lambda: np.full(3, np.inf))
    max_corner: np.ndarray = field(default_factory=lambda: np.full(3, -np.inf))

    @property
    def is_empty(self) -> bool:
        return bool(np.any(self.min_corner > self.max_corner))

    def grow_to_contain(self, points: np.ndarray) -> "Bounds3D":
        pts = np.asarray(points, dtype=float).reshape(-1, 3)
        if len(pts) == 0:
            return self
        self.min_corner = np.minimum(self.min_corner, pts.min(axis=0))
        self.max_corner = np.maximum(self.max_corner, pts.max(axis=0))
        return self

    @property
    def extent(self) -> np.ndarray:
        """Full size along each axis (zeros when empty)."""
        if self.is_empty:
            return np.zeros(3)
        return self.max_corner - self.min_corner

    @property
    def center(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros(3)
        return (self.min_corner + self.max_corner) * 0.5


# ─── Surface value types ─────────────────────────────────────────────────────

def _frozen_array(values, length: int) -> np.ndarray:
    arr = np.array(values, dtype=float).reshape(length)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class SurfaceVertex:
    """A draped 3D position paired with its surface normal.

    ``rel_pos`` is the vertex' normalized location inside the particle world
    bounds at draping time. All three arrays are read-only.
    """
    position: np.ndarray   # (3,)
    normal: np.ndarray     # (3,) unit length, or zero on a degenerate curve
    rel_pos: np.ndarray    # (2,) in [0, 1] x [0, 1]

    def __post_init__(self):
        object.__setattr__(self, "position", _frozen_array(self.position, 3))
        object.__setattr__(self, "normal", _frozen_array(self.normal, 3))
        object.__setattr__(self, "rel_pos", _frozen_array(self.rel_pos, 2))

    def displaced(self, amount: float) -> np.ndarray:
        """Return a new position moved ``amount`` units along the normal.

        The vertex itself is never modified.
        """
        length = float(np.linalg.norm(self.normal))
        if length == 0.0:
            return self.position.copy()
        return self.position + self.normal * (float(amount) / length)


@dataclass(frozen=True)
class SurfaceLoop:
    """Closed 3D polyline draped from one tessellation cell.

    The first vertex is repeated at the end.
    """
    vertices: Tuple[SurfaceVertex, ...]

    def __len__(self) -> int:
        return len(self.vertices)

    def __iter__(self) -> Iterator[SurfaceVertex]:
        return iter(self.vertices)

    @property
    def is_closed(self) -> bool:
        return len(self.vertices) > 1 and self.vertices[0] is self.vertices[-1]

    @property
    def positions(self) -> np.ndarray:
        """(N, 3) array of vertex positions."""
        if not self.vertices:
            return np.zeros((0, 3))
        return np.array([v.position for v in self.vertices])

    @property
    def normals(self) -> np.ndarray:
        if not self.vertices:
            return np.zeros((0, 3))
        return np.array([v.normal for v in self.vertices])


# ─── Conversion functions ────────────────────────────────────────────────────

def vertices_to_polygon(vertices: np.ndarray) -> Polygon:
    """Build a Shapely polygon from an (N, 2) vertex array (open ring)."""
    pts = np.asarray(vertices, dtype=float)
    if len(pts) < 3:
        return Polygon()
    return Polygon(pts)


def polygon_to_vertices(poly: Optional[Polygon]) -> np.ndarray:
    """Exterior ring of a Shapely polygon as an open (N, 2) array.

    The closing duplicate Shapely stores is dropped.
    """
    if poly is None or poly.is_empty:
        return np.zeros((0, 2))
    coords = np.asarray(poly.exterior.coords, dtype=float)
    if len(coords) > 1 and np.allclose(coords[0], coords[-1]):
        coords = coords[:-1]
    return coords[:, :2]


def signed_area(vertices: np.ndarray) -> float:
    """Shoelace area; positive for counter-clockwise in a y-up frame."""
    pts = np.asarray(vertices, dtype=float)
    if len(pts) < 3:
        return 0.0
    x, y = pts[:, 0], pts[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))


def decimate_polyline(
    points: np.ndarray,
    step: float,
    include_last: bool = True,
) -> np.ndarray:
    """Resample a polyline at uniform arclength spacing ``step``.

    The first vertex is always kept; the final vertex is appended when
    ``include_last`` is set and it does not already fall on a station.
    A polyline of zero length collapses to its first vertex.
    """
    pts = np.asarray(points, dtype=float)
    if len(pts) == 0:
        return np.zeros((0, 2)) if pts.ndim < 2 else pts.copy()
    seg_len = np.linalg.norm(np.diff(pts, axis=0), axis=1)
    keep = np.concatenate([[True], seg_len > 0.0])
    pts = pts[keep]
    seg_len = seg_len[seg_len > 0.0]
    total = float(seg_len.sum())
    if total <= 0.0 or step <= 0.0:
        return pts[:1].copy()

    cumulative = np.concatenate([[0.0], np.cumsum(seg_len)])
    stations = np.arange(0.0, total, float(step))
    # drop a float-noise station sitting on the end point
    stations = stations[(stations == 0.0) | (total - stations > 1e-9)]
    if include_last and total - stations[-1] > 1e-9:
        stations = np.append(stations, total)
    return np.column_stack(
        [np.interp(stations, cumulative, pts[:, k]) for k in range(pts.shape[1])]
    )


def loops_to_segments(loops: List[np.ndarray]) -> np.ndarray:
    """Consecutive point pairs of every polyline, shape (M, 2, 3)."""
    segments = [
        np.stack([pts[:-1], pts[1:]], axis=1)
        for pts in (np.asarray(loop, dtype=float).reshape(-1, 3) for loop in loops)
        if len(pts) >= 2
    ]
    if not segments:
        return np.zeros((0, 2, 3))
    return np.concatenate(segments, axis=0)
