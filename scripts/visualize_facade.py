#!/usr/bin/env python3
"""
Visualize facade pipeline stages.

Shows:
  1. Particles and attractors
  2. Clipped tessellation cells
  3. Profile curve with its surface normals
  4. Draped surface outlines
  5. Displaced surface outlines
  6. Reconstructed mesh

Usage:
    python scripts/visualize_facade.py
    python scripts/visualize_facade.py --attractors 5 --steps 400 --strength 60 --output out/
"""
import sys
import os
import argparse
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.patches import Circle, Polygon as PolygonPatch
from mpl_toolkits.mplot3d.art3d import Line3DCollection, Poly3DCollection

from facade_session import FacadeSession, FacadeSessionConfig
from particle_system import ParticleSystemConfig
from surface_mapper import curve_normals, sample_profile
from tessellation import CellMode


def _set_axes_equal(ax, points):
    """Equal aspect ratio for 3D axes around a point cloud."""
    pts = np.asarray(points).reshape(-1, 3)
    if len(pts) == 0:
        return
    lo, hi = pts.min(axis=0), pts.max(axis=0)
    center = (lo + hi) / 2.0
    extent = max((hi - lo).max() / 2.0 * 1.1, 1.0)
    ax.set_xlim(center[0] - extent, center[0] + extent)
    ax.set_ylim(center[1] - extent, center[1] + extent)
    ax.set_zlim(center[2] - extent, center[2] + extent)


def _draw_bounds(ax, bounds):
    corners = np.vstack([bounds.corners(), bounds.corners()[:1]])
    ax.plot(corners[:, 0], corners[:, 1], color="gray", lw=0.8)
    ax.set_aspect("equal")
    ax.invert_yaxis()


def plot_step1_particles(ax, session):
    ax.set_title("1. Particles", fontsize=11, weight="bold")
    particles = session.particles
    _draw_bounds(ax, particles.bounds)
    pos = particles.positions
    ax.scatter(pos[:, 0], pos[:, 1], s=3, color="black")
    for i, attractor in enumerate(particles.attractors):
        selected = i == particles.selected_index
        ax.add_patch(Circle(
            attractor.center, attractor.radius, fill=False,
            color="tab:red" if selected else "tab:blue", lw=1.0,
        ))
    ax.text(0.02, 0.02, f"{len(pos)} particles, {len(particles.attractors)} attractors",
            transform=ax.transAxes, fontsize=8, color="gray")


def plot_step2_cells(ax, session):
    ax.set_title("2. Cells", fontsize=11, weight="bold")
    _draw_bounds(ax, session.particles.bounds)
    cells = session.cells or []
    for cell in cells:
        ax.add_patch(PolygonPatch(cell, closed=True, fill=False, lw=0.5))
    ax.text(0.02, 0.02, f"{len(cells)} cells ({session.cell_mode.value})",
            transform=ax.transAxes, fontsize=8, color="gray")


def plot_step3_curve(ax, session):
    ax.set_title("3. Profile Curve", fontsize=11, weight="bold")
    curve = session.curve
    _draw_bounds(ax, curve.edit_bounds)
    samples = sample_profile(curve, session.config.surface)
    ax.plot(samples[:, 0], samples[:, 1], color="tab:blue", lw=1.0)
    points = curve.points
    ax.scatter(points[:, 0], points[:, 1], s=20, color="tab:red", zorder=3)

    normals = curve_normals(samples)
    step = max(1, len(samples) // 30)
    # normals are stored in the XZ plane; map back to curve space
    ax.quiver(samples[::step, 0], samples[::step, 1],
              normals[::step, 2], normals[::step, 0],
              angles="xy", scale=0.08, scale_units="xy", width=0.004, color="gray")
    ax.text(0.02, 0.02, f"{len(points)} points, {len(samples)} samples",
            transform=ax.transAxes, fontsize=8, color="gray")


def _plot_loops_3d(ax, loops, color):
    segments = [np.stack([loop[:-1], loop[1:]], axis=1) for loop in loops if len(loop) > 1]
    if not segments:
        return
    segs = np.concatenate(segments)
    ax.add_collection3d(Line3DCollection(segs, colors=color, linewidths=0.4))
    _set_axes_equal(ax, segs)


def plot_step4_surface(ax, session):
    ax.set_title("4. Draped Surface", fontsize=11, weight="bold")
    loops = [loop.positions for loop in session.surface or []]
    _plot_loops_3d(ax, loops, "tab:blue")


def plot_step5_displaced(ax, session):
    ax.set_title("5. Displaced Surface", fontsize=11, weight="bold")
    _plot_loops_3d(ax, session.displaced or [], "tab:orange")
    ax.text2D(0.02, 0.02, f"strength {session.displacement.strength:.1f}",
              transform=ax.transAxes, fontsize=8, color="gray")


def plot_step6_mesh(ax, session):
    ax.set_title("6. Reconstructed Mesh", fontsize=11, weight="bold")
    mesh = session.mesh
    if mesh is None or len(mesh.faces) == 0:
        return
    faces = mesh.faces
    # Sub-sample faces for large meshes
    max_faces = 8000
    if len(faces) > max_faces:
        idx = np.random.choice(len(faces), max_faces, replace=False)
        faces = faces[idx]
    tri = mesh.vertices[faces]
    ax.add_collection3d(Poly3DCollection(tri, alpha=0.6, edgecolor="none", facecolor="lightsteelblue"))
    _set_axes_equal(ax, mesh.vertices)
    ax.text2D(0.02, 0.02, f"{len(mesh.faces)} faces, resolution {session.voxel_resolution}",
              transform=ax.transAxes, fontsize=8, color="gray")


def build_figure(session):
    """Six-panel figure of every pipeline stage of a computed session."""
    fig = plt.figure(figsize=(18, 11))
    fig.suptitle(
        f"Facade Pipeline  ({session.particles.particle_count} particles, "
        f"{len(session.cells or [])} cells)",
        fontsize=13, weight="bold",
    )

    panels_2d = [plot_step1_particles, plot_step2_cells, plot_step3_curve]
    panels_3d = [plot_step4_surface, plot_step5_displaced, plot_step6_mesh]

    for idx, plot_fn in enumerate(panels_2d):
        plot_fn(fig.add_subplot(2, 3, idx + 1), session)
    for idx, plot_fn in enumerate(panels_3d):
        ax = fig.add_subplot(2, 3, idx + 4, projection="3d")
        ax.set_box_aspect([1, 1, 1])
        plot_fn(ax, session)

    plt.tight_layout(rect=[0, 0, 1, 0.95])
    return fig


def show_session(session, output_dir=None, show=True):
    """Plot a session's stages, optionally saving the figure as PNG."""
    fig = build_figure(session)

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        png_path = os.path.join(output_dir, "facade_steps.png")
        fig.savefig(png_path, dpi=150, bbox_inches="tight")
        print(f"\nSaved figure to {png_path}")

    if show:
        plt.show(block=True)
    return fig


def main():
    parser = argparse.ArgumentParser(
        description="Visualize facade pipeline stages.",
    )
    parser.add_argument("--output", default=None,
                        help="Output directory for saving the figure")
    parser.add_argument("--attractors", type=int, default=3)
    parser.add_argument("--particles", type=int, default=100)
    parser.add_argument("--steps", type=int, default=200)
    parser.add_argument("--mode", default=CellMode.REGION.value,
                        choices=[m.value for m in CellMode])
    parser.add_argument("--strength", type=float, default=25.0)
    parser.add_argument("--resolution", type=int, default=64,
                        help="Voxel resolution (smaller = faster)")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--no-show", action="store_true",
                        help="Only save the figure, do not open a window")
    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = FacadeSessionConfig(
        particles=ParticleSystemConfig(seed=args.seed),
        displacement_strength=args.strength,
    )
    config.volumetric.resolution = args.resolution
    session = FacadeSession(config)
    session.set_cell_mode(CellMode(args.mode))

    for _ in range(args.attractors):
        session.add_attractor()
    session.add_particles(args.particles)
    for _ in range(args.steps):
        session.update()

    print("Running pipeline...")
    session.run_pipeline()
    show_session(session, args.output, show=not args.no_show)


if __name__ == "__main__":
    main()
