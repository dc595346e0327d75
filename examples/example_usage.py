#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

─────────────────────────────────────────────────────────────
Example Usage of Chhaya
─────────────────────────────────────────────────────────────

This script builds a small synthetic AMR box (a refined dense
clump in a uniform background) and walks through the main
chhaya calls:

1. Projecting surface density and mass-weighted temperature
2. Checking that the projected mass matches the cell total
3. Computing a velocity dispersion map
4. Computing a radial density profile
5. Saving the projection to HDF5 and reading it back

Set RAMSES_OUTPUT_ROOT to project a real snapshot instead.

─────────────────────────────────────────────────────────────

"""

import os
from typing import Optional

import numpy as np

from chhaya import (
    CellTable,
    load_cell_table_from_snapshot,
    load_projection,
    profile,
    projection,
    resolve,
    save_projection,
)

# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

RAMSES_OUTPUT_ROOT: Optional[str] = None  # e.g. "ramses_outputs/sedov_3d"

SNAPSHOT_NUMBER = 1

BASE_LEVEL = 4

SCALE = {"Msol": 2.5e9, "pc": 1000.0, "Msol_pc2": 2.5e3, "km_s": 65.6, "K": 1.0e4}

OUTPUT_DIR = "example_outputs"


# ──────────────────────────────────────────────────────────────
# Helper Functions
# ──────────────────────────────────────────────────────────────


def build_synthetic_table(level: int = BASE_LEVEL, seed: int = 42) -> CellTable:
    """Uniform box at ``level`` whose central 2x2x2 cells are refined once."""

    n = 2 ** level
    idx = np.arange(n)
    cx, cy, cz = (a.ravel() for a in np.meshgrid(idx, idx, idx, indexing="ij"))

    centre = (cx >= n // 2 - 1) & (cx < n // 2 + 1) & (cy >= n // 2 - 1) & (cy < n // 2 + 1) \
        & (cz >= n // 2 - 1) & (cz < n // 2 + 1)
    coarse = ~centre

    fine = np.arange(2 * (n // 2 - 1), 2 * (n // 2 + 1))
    fx, fy, fz = (a.ravel() for a in np.meshgrid(fine, fine, fine, indexing="ij"))

    level_col = np.concatenate([np.full(coarse.sum(), level), np.full(len(fx), level + 1)])
    x = np.concatenate([cx[coarse], fx])
    y = np.concatenate([cy[coarse], fy])
    z = np.concatenate([cz[coarse], fz])

    rng = np.random.default_rng(seed)
    size = 2.0 ** -level_col.astype(float)
    r = np.sqrt(sum(((c + 0.5) * size - 0.5) ** 2 for c in (x, y, z)))
    rho = 1.0 + 50.0 * np.exp(-(r / 0.05) ** 2)

    fields = {
        "rho": rho,
        "vx": rng.normal(0.0, 0.3, len(rho)),
        "vy": rng.normal(0.0, 0.3, len(rho)),
        "vz": rng.normal(0.0, 0.3, len(rho)),
        "p": np.full(len(rho), 0.5),
    }
    return CellTable(level=level_col, cx=x, cy=y, cz=z, fields=fields, scale=SCALE)


def print_map_summary(name: str, arr: np.ndarray, unit: str):

    print(f"  {name:>4} [{unit}]: shape={arr.shape} min={arr.min():.4g} max={arr.max():.4g}")


# ──────────────────────────────────────────────────────────────
# Main Example Workflow
# ──────────────────────────────────────────────────────────────

def main():

    print("=== Chhaya Example Usage ===\n")

    if RAMSES_OUTPUT_ROOT:
        table = load_cell_table_from_snapshot(RAMSES_OUTPUT_ROOT, SNAPSHOT_NUMBER, scale=SCALE)
    else:
        table = build_synthetic_table()
    print(f"Cells: {len(table)}  levels: {table.levels_present()}  boxlen: {table.boxlen}")

    # 1. Surface density and temperature
    result = projection(table, ["sd", "T"], ["Msol_pc2", "K"], res=64, direction="z")
    print("\n🔹 Projection along z:")
    for name, arr in result.maps.items():
        print_map_summary(name, arr, result.units[name])

    # 2. Mass conservation
    mass_map = projection(table, "mass", "Msol", res=50)["mass"]
    total = resolve(table, "mass", "Msol").sum()
    print(f"\n🔹 Projected mass {mass_map.sum():.6e} Msol vs cells {total:.6e} Msol")

    # 3. Velocity dispersion in a central slab
    disp = projection(
        table, "vz", "km_s", "std", res=32, center="bc",
        xrange=(-0.25, 0.25), yrange=(-0.25, 0.25), zrange=(-0.1, 0.1),
    )
    print("\n🔹 Line-of-sight velocity dispersion:")
    print_map_summary("vz", disp["vz"], "km_s")

    # 4. Radial profile
    prof = profile(table, "rho", nbins=10, rrange=(0.0, 250.0), range_unit="pc")
    print("\n🔹 Density profile (volume weighted):")
    for r, v in zip(prof.centers, prof.values):
        print(f"  r={r:7.1f} pc  rho={v:.4g}")

    # 5. Save and reload
    os.makedirs(OUTPUT_DIR, exist_ok=True)
    path = save_projection(result, os.path.join(OUTPUT_DIR, "example_projection.h5"))
    reloaded = load_projection(path)
    print(f"\n✅ Saved '{path}' and reloaded maps {list(reloaded.maps)}")

    print("\n🎉 Example usage finished!")


# ──────────────────────────────────────────────────────────────
# Entry Point
# ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
