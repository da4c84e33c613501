"""
Headless facade design session.

Owns the particle simulation, the profile curve and the displacement
strategy, and chains the pipeline stages:

    particles -> cells -> draped surface -> displaced outlines -> mesh

Every input (particles, curve, cell mode, strength, resolution) and every
stage result carries a revision number. A stage remembers the revisions it
was computed from, so ``is_stale()`` can tell when an input moved on and
``refresh()`` re-runs exactly the stale part of the chain. Stages always read
the latest completed result of the stage before them.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import trimesh

from displacement import DisplacementStrategy, NoiseDisplacement, displace_loops
from facade_errors import MissingPrerequisiteError
from geometry_primitives import Bounds3D, SurfaceLoop
from particle_system import Attractor, ParticleSystem, ParticleSystemConfig
from profile_curve import ProfileCurve, ProfileCurveConfig
from surface_mapper import SurfaceMapperConfig, compute_surface
from tessellation import CellMode, TessellationConfig, compute_clipped_cells
from volumetric import VolumetricConfig, VolumetricReconstructor, voxelize_structure

logger = logging.getLogger(__name__)

STAGES = ("cells", "surface", "displaced", "mesh")

# (upstream stage, settings) each stage is computed from
_STAGE_INPUTS = {
    "cells": ("particles", "cell_mode"),
    "surface": ("cells", "curve"),
    "displaced": ("surface", "strength"),
    "mesh": ("displaced", "resolution"),
}


@dataclass
class FacadeSessionConfig:
    """Top-level configuration bundling every stage's settings."""
    particles: ParticleSystemConfig = field(default_factory=ParticleSystemConfig)
    curve: ProfileCurveConfig = field(default_factory=ProfileCurveConfig)
    tessellation: TessellationConfig = field(default_factory=TessellationConfig)
    surface: SurfaceMapperConfig = field(default_factory=SurfaceMapperConfig)
    volumetric: VolumetricConfig = field(default_factory=VolumetricConfig)
    noise_scale: float = 0.005
    noise_seed: Optional[int] = 0
    displacement_strength: float = 0.0
    particles_per_batch: int = 50
    # recompute existing downstream results right after an edit
    auto_recompute: bool = True


class FacadeSession:
    """Simulation, curve and pipeline state behind the presentation layer."""

    def __init__(
        self,
        config: Optional[FacadeSessionConfig] = None,
        displacement: Optional[DisplacementStrategy] = None,
    ):
        if config is None:
            config = FacadeSessionConfig()
        self.config = config
        self.particles = ParticleSystem(config.particles)
        self.curve = ProfileCurve(config.curve)
        if displacement is None:
            displacement = NoiseDisplacement(
                noise_scale=config.noise_scale,
                strength=config.displacement_strength,
                seed=config.noise_seed,
            )
        self.displacement = displacement
        self.cell_mode = CellMode(config.tessellation.mode)
        self.voxel_resolution = int(
            np.clip(config.volumetric.resolution, *config.volumetric.resolution_range)
        )

        self._cells: Optional[List[np.ndarray]] = None
        self._surface: Optional[List[SurfaceLoop]] = None
        self._displaced: Optional[List[np.ndarray]] = None
        self._bounds3d: Optional[Bounds3D] = None
        self._reconstructor: Optional[VolumetricReconstructor] = None

        self._revisions: Dict[str, int] = {
            name: 0 for name in ("particles", "curve", "cell_mode", "strength", "resolution") + STAGES
        }
        self._computed_from: Dict[str, Tuple[int, ...]] = {}

    # ── Results ──────────────────────────────────────────────────────────────

    @property
    def cells(self) -> Optional[List[np.ndarray]]:
        return self._cells

    @property
    def surface(self) -> Optional[List[SurfaceLoop]]:
        return self._surface

    @property
    def displaced(self) -> Optional[List[np.ndarray]]:
        return self._displaced

    @property
    def bounds3d(self) -> Optional[Bounds3D]:
        return self._bounds3d

    @property
    def mesh(self) -> Optional[trimesh.Trimesh]:
        if self._reconstructor is None:
            return None
        return self._reconstructor.mesh

    def triangles(self) -> np.ndarray:
        """Final mesh as (M, 3, 3) triangle corners for export or rendering."""
        if self._reconstructor is None:
            raise MissingPrerequisiteError("No mesh yet; call voxelize() first")
        return self._reconstructor.triangles()

    # ── Revisions ────────────────────────────────────────────────────────────

    def revision(self, name: str) -> int:
        return self._revisions[name]

    def _bump(self, name: str) -> None:
        self._revisions[name] += 1

    def _current_inputs(self, stage: str) -> Tuple[int, ...]:
        return tuple(self._revisions[name] for name in _STAGE_INPUTS[stage])

    def _mark_computed(self, stage: str) -> None:
        self._computed_from[stage] = self._current_inputs(stage)
        self._bump(stage)

    def is_stale(self, stage: str) -> bool:
        """True if ``stage`` was never computed or an input changed since."""
        if stage not in _STAGE_INPUTS:
            raise ValueError(f"Unknown stage {stage!r}, expected one of {STAGES}")
        return self._computed_from.get(stage) != self._current_inputs(stage)

    def refresh(self, through: str = "mesh") -> List[str]:
        """Re-run every stale stage up to and including ``through``.

        Stages run in pipeline order, so a recomputed stage makes all later
        ones stale as well. Returns the names of the stages that ran.
        """
        if through not in _STAGE_INPUTS:
            raise ValueError(f"Unknown stage {through!r}, expected one of {STAGES}")
        runners = {
            "cells": self.compute_cells,
            "surface": self.compute_surface,
            "displaced": self.compute_displaced,
            "mesh": self.voxelize,
        }
        ran = []
        for stage in STAGES[:STAGES.index(through) + 1]:
            if self.is_stale(stage):
                runners[stage]()
                ran.append(stage)
        return ran

    # ── Simulation controls ──────────────────────────────────────────────────

    def update(self) -> None:
        """One simulation tick."""
        self.particles.update()
        self._bump("particles")

    def add_attractor(self) -> Attractor:
        attractor = self.particles.add_attractor()
        self._bump("particles")
        return attractor

    def remove_attractor(self, index: Optional[int] = None) -> bool:
        removed = self.particles.remove_attractor(index)
        if removed:
            self._bump("particles")
        return removed

    def add_particles(self, count: Optional[int] = None) -> None:
        if count is None:
            count = self.config.particles_per_batch
        self.particles.add_particles(count)
        self._bump("particles")

    def set_drag(self, drag: float) -> None:
        self.particles.set_drag(drag)

    def set_separation(self, separation: float) -> None:
        self.particles.set_separation(separation)

    def set_selected_radius(self, radius: float) -> bool:
        return self.particles.set_selected_radius(radius)

    def select_attractor_near(self, pos: Sequence[float]) -> bool:
        return self.particles.select_attractor_near_position(pos)

    def move_selected_attractor(self, pos: Sequence[float]) -> bool:
        return self.particles.move_selected_attractor(pos)

    def deselect_attractor(self) -> None:
        self.particles.deselect_attractor()

    def clear(self) -> None:
        self.particles.clear()
        self._bump("particles")

    # ── Curve controls ───────────────────────────────────────────────────────

    def press_curve(self, pos: Sequence[float]) -> bool:
        """Hit or create a curve point; True if the curve handled the press."""
        count = len(self.curve)
        handled = self.curve.press(pos)
        if handled and len(self.curve) != count:
            self._curve_changed()
        return handled

    def drag_curve(self, pos: Sequence[float]) -> bool:
        moved = self.curve.drag(pos)
        if moved:
            self._curve_changed()
        return moved

    def release_curve(self) -> None:
        self.curve.release()

    def reset_curve(self) -> None:
        self.curve.reset()
        self._curve_changed()

    def _curve_changed(self) -> None:
        self._bump("curve")
        if self.config.auto_recompute and self._surface is not None:
            self.compute_surface()
            self.compute_displaced()

    # ── Pipeline settings ────────────────────────────────────────────────────

    def set_cell_mode(self, mode: CellMode) -> None:
        mode = CellMode(mode)
        if mode is not self.cell_mode:
            self.cell_mode = mode
            self._bump("cell_mode")

    def set_displacement_strength(self, strength: float) -> None:
        self.displacement.set_strength(strength)
        self._bump("strength")
        if self.config.auto_recompute and self._surface is not None:
            self.compute_displaced()

    def set_voxel_resolution(self, resolution: int) -> None:
        vol = self.config.volumetric
        self.voxel_resolution = int(np.clip(resolution, *vol.resolution_range))
        self._bump("resolution")
        if self.config.auto_recompute and self._reconstructor is not None:
            self.voxelize()

    # ── Pipeline stages ──────────────────────────────────────────────────────

    def compute_cells(self) -> List[np.ndarray]:
        """Tessellate the current particle positions."""
        tess = TessellationConfig(
            mode=self.cell_mode,
            boundary_scale=self.config.tessellation.boundary_scale,
            boundary_spacing=self.config.tessellation.boundary_spacing,
        )
        self._cells = compute_clipped_cells(self.particles.positions, self.particles.bounds, tess)
        self._mark_computed("cells")
        return self._cells

    def compute_surface(self) -> List[SurfaceLoop]:
        """Drape the latest cells onto the profile curve."""
        if self._cells is None:
            raise MissingPrerequisiteError("No cells yet; call compute_cells() first")
        self._surface = compute_surface(
            self._cells, self.curve, self.particles.bounds, self.config.surface,
        )
        self._mark_computed("surface")
        return self._surface

    def compute_displaced(self) -> List[np.ndarray]:
        """Displace the latest surface and refresh its bounding volume."""
        if self._surface is None:
            raise MissingPrerequisiteError("No surface yet; call compute_surface() first")
        self._displaced, self._bounds3d = displace_loops(self._surface, self.displacement)
        self._mark_computed("displaced")
        return self._displaced

    def voxelize(self) -> trimesh.Trimesh:
        """Rebuild the closed, smoothed mesh from the displaced outlines."""
        if self._displaced is None or self._bounds3d is None:
            raise MissingPrerequisiteError(
                "No displaced surface yet; call compute_displaced() first"
            )
        recon = voxelize_structure(
            self._displaced, self._bounds3d, self.config.volumetric, self.voxel_resolution,
        )
        self._reconstructor = recon
        self._mark_computed("mesh")
        logger.info(
            "Voxelized %d loops at resolution %d -> %d faces",
            len(self._displaced), self.voxel_resolution, len(recon.mesh.faces),
        )
        return recon.mesh

    def run_pipeline(self, voxelize: bool = True) -> Optional[trimesh.Trimesh]:
        """Recompute every stage from the current particles onward."""
        self.compute_cells()
        self.compute_surface()
        self.compute_displaced()
        if not voxelize:
            return None
        return self.voxelize()
