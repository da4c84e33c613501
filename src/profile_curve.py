"""
Editable 2D profile curve defining the facade's cross section.

Control points live inside a rectangular edit area. The curve interpolates
them with a cubic spline parameterised by chord length and is sampled on
demand; nothing is cached between calls.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from scipy.interpolate import CubicSpline

from facade_errors import MissingPrerequisiteError
from geometry_primitives import Rect2D

logger = logging.getLogger(__name__)

MIN_CURVE_POINTS = 3


@dataclass
class ProfileCurveConfig:
    """Configuration for the curve editor."""
    edit_bounds: Rect2D = field(default_factory=lambda: Rect2D(1024.0, 0.0, 256.0, 720.0))
    snap_distance: float = 10.0
    segment_resolution: int = 20
    # offsets of the default curve, as fractions of the edit area size
    reset_offset_x: float = 0.5
    reset_offset_y: float = 0.25


class ProfileCurve:
    """Ordered control points with pointer-style editing."""

    def __init__(self, config: Optional[ProfileCurveConfig] = None):
        if config is None:
            config = ProfileCurveConfig()
        self.config = config
        self._points: List[np.ndarray] = []
        self._selected: Optional[int] = None
        self.reset()

    def __len__(self) -> int:
        return len(self._points)

    @property
    def edit_bounds(self) -> Rect2D:
        return self.config.edit_bounds

    @property
    def points(self) -> np.ndarray:
        """Copy of the control points, shape (N, 2)."""
        if not self._points:
            return np.zeros((0, 2))
        return np.array(self._points)

    @property
    def selected_index(self) -> Optional[int]:
        return self._selected

    # ── Editing ──────────────────────────────────────────────────────────────

    def add_point(self, point: Sequence[float]) -> int:
        """Append a control point clamped into the edit area."""
        self._points.append(self.edit_bounds.constrain(point))
        return len(self._points) - 1

    def move_point(self, index: int, new_pos: Sequence[float]) -> None:
        if not 0 <= index < len(self._points):
            raise IndexError(f"No control point {index} (curve has {len(self._points)})")
        self._points[index] = self.edit_bounds.constrain(new_pos)

    def reset(self) -> None:
        """Replace all points with the default three-point arc."""
        rect = self.edit_bounds
        centroid = rect.centroid
        dx = rect.width * self.config.reset_offset_x
        dy = rect.height * self.config.reset_offset_y
        self._points = [
            centroid - np.array([0.0, dy]),
            centroid - np.array([dx, 0.0]),
            centroid + np.array([0.0, dy]),
        ]
        self._selected = None

    def find_point_near(self, pos: Sequence[float]) -> Optional[int]:
        """Index of the first control point within the snap distance."""
        target = np.asarray(pos, dtype=float)
        for i, p in enumerate(self._points):
            if np.linalg.norm(p - target) < self.config.snap_distance:
                return i
        return None

    def press(self, pos: Sequence[float]) -> bool:
        """Select the point under ``pos`` or add a new one there.

        Returns True when a point was hit or created; positions outside the
        edit area are ignored.
        """
        if not self.edit_bounds.contains_point(pos):
            return False
        index = self.find_point_near(pos)
        if index is None:
            index = self.add_point(pos)
        self._selected = index
        return True

    def drag(self, pos: Sequence[float]) -> bool:
        """Move the selected point; returns True if the curve changed."""
        if self._selected is None:
            return False
        self.move_point(self._selected, pos)
        return True

    def release(self) -> None:
        self._selected = None

    # ── Sampling ─────────────────────────────────────────────────────────────

    def sample(self, resolution: Optional[int] = None) -> np.ndarray:
        """Dense polyline through all control points.

        Each span between consecutive control points gets ``resolution``
        segments. Raises MissingPrerequisiteError with fewer than three
        control points.
        """
        if len(self._points) < MIN_CURVE_POINTS:
            raise MissingPrerequisiteError(
                f"Profile curve needs at least {MIN_CURVE_POINTS} points, "
                f"has {len(self._points)}"
            )
        if resolution is None:
            resolution = self.config.segment_resolution
        resolution = max(int(resolution), 1)

        pts = np.array(self._points)
        step = np.linalg.norm(np.diff(pts, axis=0), axis=1)
        pts = pts[np.concatenate([[True], step > 0.0])]
        if len(pts) < 2:
            logger.warning("Profile curve collapsed to a single point")
            return pts.copy()

        knots = np.concatenate([[0.0], np.cumsum(np.linalg.norm(np.diff(pts, axis=0), axis=1))])
        params = np.concatenate(
            [np.linspace(knots[i], knots[i + 1], resolution, endpoint=False)
             for i in range(len(knots) - 1)]
            + [knots[-1:]]
        )
        if len(pts) == 2:
            return np.column_stack(
                [np.interp(params, knots, pts[:, 0]), np.interp(params, knots, pts[:, 1])]
            )
        spline = CubicSpline(knots, pts, bc_type="natural")
        return spline(params)
