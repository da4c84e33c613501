"""
Planar tessellation of the particle cloud.

The particle positions plus a ring of synthetic points on a slightly enlarged
copy of the world bounds are triangulated (Delaunay). Depending on the cell
mode either the triangles themselves or the dual Voronoi regions become the
facade cells. Every cell is clipped against the world bounds and degenerate
results are dropped.

In region mode four far-away sentinel points close off the regions of the
ring, so the clipped cells cover the whole world up to its edges.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np
import shapely
from scipy.spatial import Delaunay, Voronoi
from shapely.geometry import Polygon
from shapely.geometry.polygon import orient

from geometry_primitives import (
    Rect2D,
    decimate_polyline,
    polygon_to_vertices,
    signed_area,
)

logger = logging.getLogger(__name__)


class CellMode(Enum):
    """Which planar partition is turned into facade cells."""
    REGION = "region"       # Voronoi regions
    TRIANGLE = "triangle"   # Delaunay triangles


@dataclass
class TessellationConfig:
    """Configuration for cell generation."""
    mode: CellMode = CellMode.REGION
    boundary_scale: float = 1.05
    boundary_spacing: float = 50.0
    sentinel_scale: float = 10.0


def boundary_ring(bounds: Rect2D, scale: float = 1.05, spacing: float = 50.0) -> np.ndarray:
    """Points every ``spacing`` units along the perimeter of scaled bounds.

    Each side is sampled from its own corner, so all four corners are on the
    ring and its hull encloses the bounds. Keeps cells near the edges finite
    so that only the clipper decides their outline.
    """
    corners = bounds.scaled(scale).corners()
    sides = [
        decimate_polyline(np.vstack([corners[i], corners[(i + 1) % 4]]), spacing, include_last=False)
        for i in range(4)
    ]
    return np.vstack(sides)


def clip_polygon_to_bounds(vertices: np.ndarray, bounds: Rect2D) -> Optional[np.ndarray]:
    """Clip a polygon to the bounds, keeping the input winding.

    Returns an open (N, 2) vertex array, or None when fewer than three
    vertices survive.
    """
    pts = np.asarray(vertices, dtype=float)
    if len(pts) < 3:
        return None
    area = signed_area(pts)
    if area == 0.0:
        return None

    clipped = shapely.clip_by_rect(
        Polygon(pts),
        bounds.x, bounds.y, bounds.x + bounds.width, bounds.y + bounds.height,
    )
    if clipped.is_empty or clipped.geom_type != "Polygon" or clipped.area == 0.0:
        return None

    clipped = orient(clipped, sign=1.0 if area > 0 else -1.0)
    out = bounds.constrain(polygon_to_vertices(clipped))
    if len(out) < 3:
        return None
    return out


def _voronoi_regions(points: np.ndarray, sentinels: np.ndarray) -> List[np.ndarray]:
    """Regions of ``points``; the sentinels only bound them and are skipped."""
    vor = Voronoi(np.vstack([points, sentinels]))
    regions = []
    for region_index in vor.point_region[:len(points)]:
        region = vor.regions[region_index]
        if not region or -1 in region:
            logger.warning("Skipping unbounded Voronoi region")
            continue
        regions.append(vor.vertices[region])
    return regions


def _delaunay_triangles(points: np.ndarray) -> List[np.ndarray]:
    tri = Delaunay(points)
    return [points[simplex] for simplex in tri.simplices]


def compute_clipped_cells(
    points: np.ndarray,
    bounds: Rect2D,
    config: Optional[TessellationConfig] = None,
) -> List[np.ndarray]:
    """Tessellate the point cloud and clip every cell to ``bounds``.

    Args:
        points: (N, 2) particle positions
        bounds: world bounds of the simulation
        config: tessellation settings (cell mode, boundary ring)

    Returns:
        Fresh list of open (k, 2) vertex arrays with k >= 3.
    """
    if config is None:
        config = TessellationConfig()

    ring = boundary_ring(bounds, config.boundary_scale, config.boundary_spacing)
    cloud = np.vstack([np.asarray(points, dtype=float).reshape(-1, 2), ring])
    # coincident points (e.g. particles pinned in a corner) upset qhull
    cloud = np.unique(cloud, axis=0)

    if config.mode is CellMode.REGION:
        sentinels = bounds.scaled(config.sentinel_scale).corners()
        raw = _voronoi_regions(cloud, sentinels)
    else:
        raw = _delaunay_triangles(cloud)

    cells: List[np.ndarray] = []
    dropped = 0
    for poly in raw:
        clipped = clip_polygon_to_bounds(poly, bounds)
        if clipped is None:
            dropped += 1
            continue
        cells.append(clipped)

    logger.info(
        "Tessellated %d points (%s): %d cells, %d dropped",
        len(cloud), config.mode.value, len(cells), dropped,
    )
    return cells
