"""
Constrained 2D particle system driving the facade pattern.

Particles are integrated with a Verlet scheme inside fixed world bounds.
User placed attractors pull nearby particles into loose clusters while every
particle carries its own repulsion field (the "separation" radius) that keeps
neighbours apart. Denser clusters later become smaller tessellation cells and
so areas of lower light transmission in the facade.

Apart from the simulation itself this module holds the interaction logic for
selecting, dragging and resizing attractors.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from geometry_primitives import Rect2D

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class ParticleSystemConfig:
    """Configuration for the particle simulation."""
    width: float = 640.0
    height: float = 360.0
    drag: float = 0.03
    drag_range: Tuple[float, float] = (0.0, 0.1)
    separation: float = 20.0
    separation_range: Tuple[float, float] = (0.0, 50.0)
    repulsion_strength: float = -1.2
    attractor_strength: float = 0.5
    attractor_radius_range: Tuple[float, float] = (50.0, 200.0)
    attractor_particle_range: Tuple[int, int] = (10, 60)
    seed: Optional[int] = None


@dataclass
class Attractor:
    """Force source pulling particles toward its center within a radius."""
    center: np.ndarray   # (2,)
    radius: float
    strength: float

    def contains_point(self, point: Sequence[float]) -> bool:
        delta = np.asarray(point, dtype=float) - self.center
        return float(delta @ delta) <= self.radius * self.radius


def _falloff_forces(
    targets: np.ndarray,
    sources: np.ndarray,
    radius_sq: np.ndarray,
    strength: float,
) -> np.ndarray:
    """Force on each target from the matching source row.

    The force points from target to source with magnitude
    ``(1 - d^2 / r^2) * strength`` and vanishes outside the radius.
    """
    delta = sources - targets
    dist_sq = np.einsum("ij,ij->i", delta, delta)
    active = (dist_sq < radius_sq) & (dist_sq > 0.0)
    forces = np.zeros_like(targets)
    if not np.any(active):
        return forces
    dist = np.sqrt(dist_sq[active])
    scale = (1.0 - dist_sq[active] / radius_sq[active]) * strength / dist
    forces[active] = delta[active] * scale[:, None]
    return forces


# =============================================================================
# Particle system
# =============================================================================

class ParticleSystem:
    """Verlet particle simulation with attractors and pairwise repulsion."""

    def __init__(self, config: Optional[ParticleSystemConfig] = None):
        if config is None:
            config = ParticleSystemConfig()
        self.config = config
        self._bounds = Rect2D(0.0, 0.0, float(config.width), float(config.height))
        self._rng = np.random.default_rng(config.seed)

        self._positions = np.zeros((0, 2))
        self._previous = np.zeros((0, 2))
        self._radii = np.zeros(0)

        self._attractors: List[Attractor] = []
        self._selected: Optional[int] = None
        self._click_offset = np.zeros(2)

        self._drag = float(np.clip(config.drag, *config.drag_range))
        self._separation = float(np.clip(config.separation, *config.separation_range))

    # ── Read access ──────────────────────────────────────────────────────────

    @property
    def bounds(self) -> Rect2D:
        return self._bounds

    @property
    def positions(self) -> np.ndarray:
        """Copy of the current particle positions, shape (N, 2)."""
        return self._positions.copy()

    @property
    def particle_count(self) -> int:
        return len(self._positions)

    @property
    def attractors(self) -> Tuple[Attractor, ...]:
        return tuple(self._attractors)

    @property
    def repulsion_radii(self) -> np.ndarray:
        """Radius of every particle's repulsion field."""
        return self._radii.copy()

    @property
    def drag(self) -> float:
        return self._drag

    @property
    def separation(self) -> float:
        return self._separation

    @property
    def selected_index(self) -> Optional[int]:
        return self._selected

    @property
    def selected_attractor(self) -> Optional[Attractor]:
        if self._selected is None:
            return None
        return self._attractors[self._selected]

    @property
    def has_selected_attractor(self) -> bool:
        return self._selected is not None

    # ── Population ───────────────────────────────────────────────────────────

    def particle_count_for_radius(self, radius: float) -> int:
        """Linear map of an attractor radius onto the particle count range."""
        r_lo, r_hi = self.config.attractor_radius_range
        n_lo, n_hi = self.config.attractor_particle_range
        if r_hi <= r_lo:
            return int(n_lo)
        t = float(np.clip((radius - r_lo) / (r_hi - r_lo), 0.0, 1.0))
        return int(n_lo + t * (n_hi - n_lo))

    def add_attractor(self) -> Attractor:
        """Place an attractor at random and seed particles inside its disc.

        The new attractor becomes the current selection.
        """
        r_lo, r_hi = self.config.attractor_radius_range
        radius = float(self._rng.uniform(r_lo, r_hi))
        center = self._bounds.random_points(self._rng, 1)[0]
        attractor = Attractor(
            center=center, radius=radius, strength=self.config.attractor_strength,
        )
        self._attractors.append(attractor)

        count = self.particle_count_for_radius(radius)
        angles = self._rng.uniform(0.0, 2.0 * np.pi, count)
        dist = radius * np.sqrt(self._rng.random(count))
        offsets = np.column_stack([np.cos(angles), np.sin(angles)]) * dist[:, None]
        self._add_particles_at(center + offsets)

        self._selected = len(self._attractors) - 1
        self._click_offset = np.zeros(2)
        logger.debug(
            "Added attractor at (%.1f, %.1f) r=%.1f with %d particles",
            center[0], center[1], radius, count,
        )
        return attractor

    def add_particles(self, count: int) -> None:
        """Add ``count`` free particles uniformly inside the world bounds."""
        if count <= 0:
            return
        self._add_particles_at(self._bounds.random_points(self._rng, int(count)))

    def _add_particles_at(self, points: np.ndarray) -> None:
        pts = self._bounds.constrain(np.asarray(points, dtype=float).reshape(-1, 2))
        self._positions = np.vstack([self._positions, pts])
        self._previous = np.vstack([self._previous, pts])
        self._radii = np.concatenate([self._radii, np.full(len(pts), self._separation)])

    def remove_attractor(self, index: Optional[int] = None) -> bool:
        """Remove an attractor (default: the selected one).

        Particles seeded by it stay in the simulation. Returns False when
        there was nothing to remove.
        """
        if index is None:
            index = self._selected
        if index is None or not 0 <= index < len(self._attractors):
            return False
        del self._attractors[index]
        if self._selected is not None:
            if self._selected == index:
                self._selected = None
            elif self._selected > index:
                self._selected -= 1
        return True

    def clear(self) -> None:
        """Remove all particles, attractors and the selection."""
        self._positions = np.zeros((0, 2))
        self._previous = np.zeros((0, 2))
        self._radii = np.zeros(0)
        self._attractors = []
        self._selected = None
        self._click_offset = np.zeros(2)

    # ── Parameters ───────────────────────────────────────────────────────────

    def set_drag(self, drag: float) -> None:
        self._drag = float(np.clip(drag, *self.config.drag_range))

    def set_separation(self, separation: float) -> None:
        """Apply a new repulsion radius to every particle field.

        Attractor radii are not touched.
        """
        self._separation = float(np.clip(separation, *self.config.separation_range))
        self._radii[:] = self._separation

    def set_selected_radius(self, radius: float) -> bool:
        """Resize the selected attractor's radius of influence."""
        attractor = self.selected_attractor
        if attractor is None:
            return False
        attractor.radius = float(np.clip(radius, *self.config.attractor_radius_range))
        return True

    # ── Selection ────────────────────────────────────────────────────────────

    def select_attractor_near_position(self, pos: Sequence[float]) -> bool:
        """Select the first attractor whose disc contains ``pos``.

        Any previous selection is cleared when nothing matches.
        """
        self._selected = None
        point = np.asarray(pos, dtype=float)
        for i, attractor in enumerate(self._attractors):
            if attractor.contains_point(point):
                self._selected = i
                self._click_offset = point - attractor.center
                return True
        return False

    def move_selected_attractor(self, pos: Sequence[float]) -> bool:
        """Drag the selected attractor so it follows the pointer."""
        attractor = self.selected_attractor
        if attractor is None:
            return False
        target = np.asarray(pos, dtype=float) - self._click_offset
        attractor.center = self._bounds.constrain(target)
        return True

    def deselect_attractor(self) -> None:
        self._selected = None

    # ── Simulation ───────────────────────────────────────────────────────────

    def update(self) -> None:
        """Advance the simulation by one step."""
        n = len(self._positions)
        if n == 0:
            return
        pos = self._positions
        forces = np.zeros_like(pos)

        for attractor in self._attractors:
            center = np.broadcast_to(attractor.center, pos.shape)
            radius_sq = np.full(n, attractor.radius * attractor.radius)
            forces += _falloff_forces(pos, center, radius_sq, attractor.strength)

        forces += self._repulsion_forces(pos)

        velocity = (pos - self._previous) * (1.0 - self._drag)
        self._previous = pos.copy()
        self._positions = self._bounds.constrain(pos + velocity + forces)

    def _repulsion_forces(self, pos: np.ndarray) -> np.ndarray:
        forces = np.zeros_like(pos)
        max_radius = float(self._radii.max()) if len(self._radii) else 0.0
        if max_radius <= 0.0 or len(pos) < 2:
            return forces

        pairs = cKDTree(pos).query_pairs(r=max_radius, output_type="ndarray")
        if len(pairs) == 0:
            return forces
        i, j = pairs[:, 0], pairs[:, 1]
        strength = self.config.repulsion_strength

        # field of j acting on i, and field of i acting on j
        f_ij = _falloff_forces(pos[i], pos[j], self._radii[j] ** 2, strength)
        f_ji = _falloff_forces(pos[j], pos[i], self._radii[i] ** 2, strength)
        np.add.at(forces, i, f_ij)
        np.add.at(forces, j, f_ji)
        return forces
