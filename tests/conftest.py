"""
Shared test fixtures for the facade pipeline tests.
"""
import sys
import warnings
from pathlib import Path

# Suppress trimesh internal RuntimeWarning for degenerate triangles
# (divide-by-zero when normalizing zero-area faces of tiny test meshes).
warnings.filterwarnings(
    "ignore",
    message="invalid value encountered in divide",
    category=RuntimeWarning,
    module=r"trimesh\.triangles",
)

import numpy as np
import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from facade_session import FacadeSession, FacadeSessionConfig
from geometry_primitives import Bounds3D, Rect2D
from particle_system import ParticleSystem, ParticleSystemConfig
from profile_curve import ProfileCurve, ProfileCurveConfig
from volumetric import VolumetricConfig


@pytest.fixture
def world_bounds():
    """The default 640x360 particle world."""
    return Rect2D(0.0, 0.0, 640.0, 360.0)


@pytest.fixture
def seeded_system():
    """Particle system with a fixed seed, three attractors and free particles."""
    system = ParticleSystem(ParticleSystemConfig(seed=42))
    for _ in range(3):
        system.add_attractor()
    system.add_particles(40)
    return system


@pytest.fixture
def small_curve():
    """Default three-point curve in a 100x400 edit area."""
    return ProfileCurve(ProfileCurveConfig(edit_bounds=Rect2D(100.0, 0.0, 100.0, 400.0)))


@pytest.fixture
def coarse_volumetric_config():
    """Low resolution voxel settings so reconstruction tests stay fast."""
    return VolumetricConfig(resolution=24, resolution_range=(8, 64), step=2.0, brush_radius=3.0)


@pytest.fixture
def square_loop():
    """Closed 3D square outline (40 units per side) in the XY plane."""
    return np.array([
        [0.0, 0.0, 0.0],
        [40.0, 0.0, 0.0],
        [40.0, 40.0, 0.0],
        [0.0, 40.0, 0.0],
        [0.0, 0.0, 0.0],
    ])


@pytest.fixture
def square_bounds(square_loop):
    return Bounds3D().grow_to_contain(square_loop)


@pytest.fixture
def small_session(coarse_volumetric_config):
    """Seeded session with a small population and coarse voxels."""
    config = FacadeSessionConfig(
        particles=ParticleSystemConfig(seed=7),
        volumetric=coarse_volumetric_config,
        displacement_strength=10.0,
    )
    session = FacadeSession(config)
    session.add_attractor()
    session.add_particles(30)
    for _ in range(10):
        session.update()
    return session
