"""
Unit tests for the chhaya CLI.

These tests verify that the command-line interface:
1. Projects a saved cell table and writes an HDF5 map
2. Executes a dry-run without writing anything
3. Handles missing inputs and invalid requests with a non-zero exit code
4. Applies level filters and unit-table overrides to saved cell tables

"""

import subprocess
import sys

import numpy as np
import pytest

from chhaya import load_projection, resolve, save_cell_table


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def _run(*args):
    return subprocess.run(
        [sys.executable, "-m", "chhaya.cli", *args],
        capture_output=True,
        text=True,
    )


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_cli_projects_cell_table(uniform, tmp_path):
    """Project a cell table and check the written maps."""
    cells = save_cell_table(uniform, str(tmp_path / "cells.h5"))
    out_dir = tmp_path / "maps"

    result = _run(
        "--cell-table", cells,
        "--vars", "mass,rho",
        "--units", "Msol,standard",
        "--res", "8",
        "--center", "bc",
        "--z-range", "0.25:0.75",
        "-o", "slab",
        "--output-dir", str(out_dir),
    )

    assert result.returncode == 0, result.stderr
    proj = load_projection(str(out_dir / "slab.h5"))
    assert proj.shape == (8, 8)
    assert proj.units == {"mass": "Msol", "rho": "standard"}
    assert proj.ranges[2] == (0.25, 0.75)
    assert np.all(proj["mass"] > 0)


def test_cli_dry_run(uniform, tmp_path):
    """A dry-run validates the request but writes nothing."""
    cells = save_cell_table(uniform, str(tmp_path / "cells.h5"))
    out_dir = tmp_path / "maps"

    result = _run("--cell-table", cells, "--dry-run", "--verbose", "--output-dir", str(out_dir))

    assert result.returncode == 0, result.stderr
    assert "dry-run" in result.stderr.lower()
    assert not out_dir.exists()


def test_cli_invalid_request(uniform, tmp_path):
    """Mismatched variables and units exit with status 1."""
    cells = save_cell_table(uniform, str(tmp_path / "cells.h5"))

    result = _run("--cell-table", cells, "--vars", "mass,rho", "--units", "Msol", "--output-dir", str(tmp_path))

    assert result.returncode == 1
    assert "projection failed" in result.stderr.lower()


def test_cli_invalid_folder(tmp_path):
    """Check that the CLI returns a non-zero exit code for a non-existent folder."""
    result = _run(
        "--base-dir", "/non/existent/path",
        "--folder-name", "output_999",
        "-n", "1",
        "--output-dir", str(tmp_path),
    )

    assert result.returncode != 0
    assert "not found" in result.stderr.lower() or "error" in result.stderr.lower()


def test_cli_missing_inputs():
    result = _run("--vars", "mass")
    assert result.returncode != 0
    assert "required" in result.stderr.lower()


def test_cli_rejects_fields_with_cell_table(uniform, tmp_path):
    """osyris field selection has no meaning for a saved cell table."""
    cells = save_cell_table(uniform, str(tmp_path / "cells.h5"))

    result = _run("--cell-table", cells, "--fields", "density", "--output-dir", str(tmp_path))

    assert result.returncode == 2
    assert "--fields" in result.stderr
    assert not (tmp_path / "projection.h5").exists()


def test_cli_level_filter_on_cell_table(two_level, tmp_path):
    """Only the coarse half of the two-level table survives --level-end 5."""
    cells = save_cell_table(two_level, str(tmp_path / "cells.h5"))

    result = _run(
        "--cell-table", cells, "--level-end", "5", "--res", "32",
        "-o", "coarse", "--output-dir", str(tmp_path),
    )

    assert result.returncode == 0, result.stderr
    proj = load_projection(str(tmp_path / "coarse.h5"))
    assert proj.level_range == (5, 5)
    assert (proj["mass"][:16] == 0.0).all()
    assert (proj["mass"][16:] == 32.0).all()


def test_cli_scale_file_overrides_unit_table(uniform, tmp_path):
    cells = save_cell_table(uniform, str(tmp_path / "cells.h5"))
    scale_file = tmp_path / "units.toml"
    scale_file.write_text("Msol = 10.0\n")

    result = _run(
        "--cell-table", cells, "--vars", "mass", "--units", "Msol", "--res", "8",
        "--scale", str(scale_file), "-o", "scaled", "--output-dir", str(tmp_path),
    )

    assert result.returncode == 0, result.stderr
    proj = load_projection(str(tmp_path / "scaled.h5"))
    assert proj["mass"].sum() == pytest.approx(10.0 * resolve(uniform, "mass").sum(), rel=1e-12)


def test_cli_invalid_scale_file(uniform, tmp_path):
    cells = save_cell_table(uniform, str(tmp_path / "cells.h5"))
    scale_file = tmp_path / "units.toml"
    scale_file.write_text('Msol = "many"\n')

    result = _run("--cell-table", cells, "--scale", str(scale_file), "--output-dir", str(tmp_path))

    assert result.returncode == 2
    assert "scale" in result.stderr.lower()
