"""
Surface displacement strategies.

A strategy turns a draped SurfaceVertex into a scalar displacement amount;
the vertex is then offset along its normal. Strategies never modify the
vertex they are given.

- DisplacementStrategy: abstract interface (amount + strength setting)
- NoiseDisplacement: 2D simplex noise over the vertex' X/Y position
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np

from geometry_primitives import Bounds3D, SurfaceLoop, SurfaceVertex

logger = logging.getLogger(__name__)


# =============================================================================
# Simplex noise
# =============================================================================

_F2 = 0.5 * (np.sqrt(3.0) - 1.0)
_G2 = (3.0 - np.sqrt(3.0)) / 6.0

_GRAD2 = np.array(
    [
        [1, 1], [-1, 1], [1, -1], [-1, -1],
        [1, 0], [-1, 0], [1, 0], [-1, 0],
        [0, 1], [0, -1], [0, 1], [0, -1],
    ],
    dtype=float,
)


def permutation_table(seed: Optional[int] = 0) -> np.ndarray:
    """Doubled 256-entry permutation table for simplex noise lookups."""
    perm = np.random.default_rng(seed).permutation(256)
    return np.concatenate([perm, perm])


def _corner(gi: np.ndarray, dx: np.ndarray, dy: np.ndarray) -> np.ndarray:
    t = np.maximum(0.5 - dx * dx - dy * dy, 0.0)
    t *= t
    return t * t * (_GRAD2[gi, 0] * dx + _GRAD2[gi, 1] * dy)


def simplex_noise_2d(x, y, perm: Optional[np.ndarray] = None):
    """2D simplex noise, roughly in [-1, 1].

    Accepts scalars or arrays of matching shape.
    """
    if perm is None:
        perm = permutation_table(0)
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)

    # skew to find the simplex cell
    s = (x + y) * _F2
    i = np.floor(x + s)
    j = np.floor(y + s)
    t = (i + j) * _G2
    x0 = x - (i - t)
    y0 = y - (j - t)

    # lower or upper triangle of the cell
    i1 = (x0 > y0).astype(int)
    j1 = 1 - i1

    x1 = x0 - i1 + _G2
    y1 = y0 - j1 + _G2
    x2 = x0 - 1.0 + 2.0 * _G2
    y2 = y0 - 1.0 + 2.0 * _G2

    ii = i.astype(int) & 255
    jj = j.astype(int) & 255
    gi0 = perm[ii + perm[jj]] % 12
    gi1 = perm[ii + i1 + perm[jj + j1]] % 12
    gi2 = perm[ii + 1 + perm[jj + 1]] % 12

    value = 70.0 * (_corner(gi0, x0, y0) + _corner(gi1, x1, y1) + _corner(gi2, x2, y2))
    if value.ndim == 0:
        return float(value)
    return value


# =============================================================================
# Strategies
# =============================================================================

class DisplacementStrategy(ABC):
    """Computes how far a surface vertex moves along its normal."""

    def __init__(
        self,
        strength: float = 0.0,
        strength_range: Tuple[float, float] = (0.0, 100.0),
    ):
        self.strength_range = strength_range
        self._strength = 0.0
        self.set_strength(strength)

    @property
    def strength(self) -> float:
        return self._strength

    def set_strength(self, strength: float) -> None:
        """Set the displacement strength, clamped to ``strength_range``."""
        self._strength = float(np.clip(strength, *self.strength_range))

    @abstractmethod
    def compute_displacement(self, vertex: SurfaceVertex) -> float:
        """Signed displacement amount for a single vertex."""
        ...

    def compute_displacements(self, positions: np.ndarray, vertices: Sequence[SurfaceVertex]) -> np.ndarray:
        """Amounts for many vertices at once.

        ``positions`` is the stacked vertex positions; subclasses may use it
        to vectorize. The default falls back to per-vertex evaluation.
        """
        return np.array([self.compute_displacement(v) for v in vertices], dtype=float)


class NoiseDisplacement(DisplacementStrategy):
    """Simplex noise displacement sampled at the vertex' X/Y position.

    The absolute value is used, so vertices only ever move outward along
    their normals.
    """

    def __init__(
        self,
        noise_scale: float = 0.005,
        strength: float = 0.0,
        strength_range: Tuple[float, float] = (0.0, 100.0),
        seed: Optional[int] = 0,
    ):
        super().__init__(strength, strength_range)
        self.noise_scale = noise_scale
        self._perm = permutation_table(seed)

    def compute_displacement(self, vertex: SurfaceVertex) -> float:
        x, y = vertex.position[0], vertex.position[1]
        noise = simplex_noise_2d(x * self.noise_scale, y * self.noise_scale, self._perm)
        return abs(noise * self._strength)

    def compute_displacements(self, positions: np.ndarray, vertices: Sequence[SurfaceVertex]) -> np.ndarray:
        pts = np.asarray(positions, dtype=float).reshape(-1, 3)
        noise = simplex_noise_2d(
            pts[:, 0] * self.noise_scale, pts[:, 1] * self.noise_scale, self._perm,
        )
        return np.abs(np.asarray(noise) * self._strength)


# =============================================================================
# Surface displacement
# =============================================================================

def displace_loops(
    loops: Sequence[SurfaceLoop],
    strategy: DisplacementStrategy,
) -> Tuple[List[np.ndarray], Bounds3D]:
    """Displace every vertex of every loop along its normal.

    Returns the displaced loops as (k, 3) arrays together with the bounding
    box grown from empty to contain all displaced points. Input loops are
    left untouched.
    """
    bounds = Bounds3D()
    displaced: List[np.ndarray] = []
    for loop in loops:
        if len(loop) == 0:
            continue
        positions = loop.positions
        normals = loop.normals
        amounts = strategy.compute_displacements(positions, loop.vertices)

        length = np.linalg.norm(normals, axis=1)
        unit = np.divide(
            normals, length[:, None], out=np.zeros_like(normals), where=length[:, None] > 0.0,
        )
        moved = positions + unit * amounts[:, None]
        bounds.grow_to_contain(moved)
        displaced.append(moved)

    logger.debug(
        "Displaced %d loops (strength %.2f), bounds extent %s",
        len(displaced), strategy.strength, np.round(bounds.extent, 2),
    )
    return displaced, bounds
