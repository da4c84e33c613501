#!/usr/bin/env python3
"""
Generate a facade mesh from a particle simulation.

Seeds a session with random attractors and free particles, lets the
simulation settle, then runs tessellation, draping, displacement and
volumetric reconstruction and writes the result as STL.

Usage:
    python scripts/generate_facade.py
    python scripts/generate_facade.py --attractors 4 --steps 300 --strength 40
    python scripts/generate_facade.py --mode triangle --resolution 96 --output out/ --seed 7
"""
import sys
import os
import argparse
import logging
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from facade_session import FacadeSession, FacadeSessionConfig
from particle_system import ParticleSystemConfig
from tessellation import CellMode


def export_filename(timestamp=None):
    """``facade-<timestamp>.stl`` for the given (default: current) time."""
    if timestamp is None:
        timestamp = time.time()
    return f"facade-{int(timestamp * 1000)}.stl"


def main():
    parser = argparse.ArgumentParser(
        description="Generate a particle-driven facade mesh and export it as STL.",
    )
    parser.add_argument(
        "--output", default=".",
        help="Output directory (default: current directory)",
    )
    parser.add_argument(
        "--attractors", type=int, default=3,
        help="Number of random attractors (default: 3)",
    )
    parser.add_argument(
        "--particles", type=int, default=100,
        help="Number of free particles added on top of attractor seeds (default: 100)",
    )
    parser.add_argument(
        "--steps", type=int, default=200,
        help="Simulation steps before tessellating (default: 200)",
    )
    parser.add_argument(
        "--separation", type=float, default=20.0,
        help="Particle repulsion radius 0-50 (default: 20)",
    )
    parser.add_argument(
        "--drag", type=float, default=0.03,
        help="Velocity drag 0-0.1 (default: 0.03)",
    )
    parser.add_argument(
        "--mode", default=CellMode.REGION.value,
        choices=[m.value for m in CellMode],
        help="Cell mode: Voronoi regions or Delaunay triangles (default: region)",
    )
    parser.add_argument(
        "--strength", type=float, default=25.0,
        help="Noise displacement strength 0-100 (default: 25)",
    )
    parser.add_argument(
        "--resolution", type=int, default=128,
        help="Voxel resolution along the longest axis, 32-192 (default: 128)",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Random seed for attractor and particle placement",
    )
    parser.add_argument(
        "--visualize", action="store_true",
        help="Show matplotlib figure with all pipeline stages",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    # Logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.steps < 0:
        parser.error(f"--steps must be non-negative, got {args.steps}")

    output_dir = os.path.abspath(args.output)
    os.makedirs(output_dir, exist_ok=True)

    config = FacadeSessionConfig(
        particles=ParticleSystemConfig(
            drag=args.drag, separation=args.separation, seed=args.seed,
        ),
        displacement_strength=args.strength,
    )
    config.volumetric.resolution = args.resolution
    session = FacadeSession(config)
    session.set_cell_mode(CellMode(args.mode))

    print(f"Seeding {args.attractors} attractors and {args.particles} particles ...")
    for _ in range(args.attractors):
        session.add_attractor()
    session.deselect_attractor()
    session.add_particles(args.particles)

    print(f"Simulating {session.particles.particle_count} particles for {args.steps} steps ...")
    for _ in range(args.steps):
        session.update()

    if args.visualize:
        from visualize_facade import show_session
        session.run_pipeline()
        show_session(session)
    else:
        session.run_pipeline()

    mesh = session.mesh
    print(f"\nResult: {len(session.cells)} cells, "
          f"{len(mesh.vertices)} vertices, {len(mesh.faces)} faces")
    if len(mesh.faces) == 0:
        print("Mesh is empty; nothing exported.")
        return 1

    print(f"  Watertight: {mesh.is_watertight}")
    extents = mesh.extents
    print(f"  Extents: {extents[0]:.1f} x {extents[1]:.1f} x {extents[2]:.1f}")

    stl_path = os.path.join(output_dir, export_filename())
    mesh.export(stl_path)
    print(f"\nMesh saved to {stl_path}")
    print("\nDone.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
