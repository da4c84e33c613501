"""
Drape 2D tessellation cells onto the profile curve.

The relative X coordinate of each cell vertex inside the world bounds picks a
point on the uniformly resampled profile curve; the vertex' Y coordinate
becomes the facade height. The curve is upright in its editor while the
particle field is horizontal, hence the coordinate swizzle:

    X = curve.y - centroid.y
    Y = vertex.y - bounds_height / 2
    Z = curve.x - centroid.x

Surface normals are the curve's 2D perpendicular lifted into the XZ plane.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from facade_errors import MissingPrerequisiteError
from geometry_primitives import Rect2D, SurfaceLoop, SurfaceVertex, decimate_polyline
from profile_curve import ProfileCurve

logger = logging.getLogger(__name__)


@dataclass
class SurfaceMapperConfig:
    """Sampling settings for the profile curve."""
    curve_resolution: int = 20
    decimation_step: float = 1.0


def sample_profile(curve: ProfileCurve, config: Optional[SurfaceMapperConfig] = None) -> np.ndarray:
    """Dense curve samples spaced ``decimation_step`` apart along the arc."""
    if config is None:
        config = SurfaceMapperConfig()
    dense = curve.sample(config.curve_resolution)
    return decimate_polyline(dense, config.decimation_step)


def curve_normals(samples: np.ndarray) -> np.ndarray:
    """Per-sample 3D surface normals, shape (L, 3).

    The tangent at sample i is the normalized perpendicular of
    ``S[i] - S[i-1]``; sample 0 has no predecessor and borrows the first
    segment instead.
    """
    S = np.asarray(samples, dtype=float)
    if len(S) < 2:
        return np.zeros((len(S), 3))
    diff = np.empty_like(S)
    diff[1:] = S[1:] - S[:-1]
    diff[0] = S[1] - S[0]
    perp = np.column_stack([-diff[:, 1], diff[:, 0]])
    length = np.linalg.norm(perp, axis=1)
    safe = np.where(length > 0.0, length, 1.0)
    tangent = perp / safe[:, None]
    tangent[length == 0.0] = 0.0
    return np.column_stack([tangent[:, 1], np.zeros(len(S)), tangent[:, 0]])


def relative_positions(vertices: np.ndarray, bounds: Rect2D) -> np.ndarray:
    """Normalize 2D positions to [0, 1] per axis of the bounds."""
    size = bounds.size
    safe = np.where(size > 0.0, size, 1.0)
    return (np.asarray(vertices, dtype=float) - bounds.min_corner) / safe


def drape_cells(
    cells: Sequence[np.ndarray],
    samples: np.ndarray,
    bounds: Rect2D,
) -> List[SurfaceLoop]:
    """Map every clipped cell onto the sampled curve.

    Args:
        cells: open (k, 2) vertex arrays inside ``bounds``
        samples: (L, 2) uniformly spaced curve samples
        bounds: world bounds of the particle field

    Returns:
        One closed SurfaceLoop per cell.
    """
    S = np.asarray(samples, dtype=float)
    if len(S) == 0:
        raise MissingPrerequisiteError("Cannot drape onto an empty curve sample")

    last = len(S) - 1
    centroid = (S.min(axis=0) + S.max(axis=0)) * 0.5
    normals = curve_normals(S)
    half_height = bounds.height * 0.5

    loops: List[SurfaceLoop] = []
    for cell in cells:
        pts = np.asarray(cell, dtype=float)
        if len(pts) == 0:
            continue
        rel = relative_positions(pts, bounds)
        index = np.clip(np.floor(rel[:, 0] * last).astype(int), 0, last)
        on_curve = S[index]
        positions = np.column_stack([
            on_curve[:, 1] - centroid[1],
            pts[:, 1] - bounds.y - half_height,
            on_curve[:, 0] - centroid[0],
        ])
        vertices = tuple(
            SurfaceVertex(position=positions[k], normal=normals[index[k]], rel_pos=rel[k])
            for k in range(len(pts))
        )
        loops.append(SurfaceLoop(vertices + vertices[:1]))
    return loops


def compute_surface(
    cells: Sequence[np.ndarray],
    curve: ProfileCurve,
    bounds: Rect2D,
    config: Optional[SurfaceMapperConfig] = None,
) -> List[SurfaceLoop]:
    """Sample the curve and drape all cells onto it."""
    samples = sample_profile(curve, config)
    loops = drape_cells(cells, samples, bounds)
    logger.info(
        "Draped %d cells onto %d curve samples", len(loops), len(samples),
    )
    return loops
