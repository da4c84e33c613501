from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import trimesh

REPO_ROOT = Path(__file__).resolve().parent.parent


def test_cli_generate_exports_stl(tmp_path: Path):
    cmd = [
        sys.executable,
        str(REPO_ROOT / "scripts" / "generate_facade.py"),
        "--output",
        str(tmp_path),
        "--attractors",
        "1",
        "--particles",
        "20",
        "--steps",
        "5",
        "--resolution",
        "32",
        "--seed",
        "3",
    ]
    proc = subprocess.run(cmd, capture_output=True, text=True)
    assert proc.returncode == 0, proc.stderr
    assert "Mesh saved to" in proc.stdout

    exported = list(tmp_path.glob("facade-*.stl"))
    assert len(exported) == 1
    mesh = trimesh.load(exported[0])
    assert len(mesh.faces) > 0


def test_cli_rejects_unknown_mode(tmp_path: Path):
    cmd = [
        sys.executable,
        str(REPO_ROOT / "scripts" / "generate_facade.py"),
        "--output",
        str(tmp_path),
        "--mode",
        "hexagon",
    ]
    proc = subprocess.run(cmd, capture_output=True, text=True)
    assert proc.returncode != 0


def test_export_filename():
    sys.path.insert(0, str(REPO_ROOT / "scripts"))
    from generate_facade import export_filename

    assert export_filename(1700000000.5) == "facade-1700000000500.stl"
