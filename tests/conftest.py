"""
Shared synthetic AMR tables for the chhaya tests.

No RAMSES output is needed: every table is built from integer cell
coordinates with seeded random fields.

"""

import numpy as np
import pytest

from chhaya import CellTable

# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

SCALE = {
    "Msol": 2.5e9,
    "km_s": 65.6,
    "Msol_pc2": 3.3,
    "pc": 1000.0,
    "K": 1.0e4,
    "g_cm3": 6.77e-23,
}


# ──────────────────────────────────────────────────────────────
# Builders
# ──────────────────────────────────────────────────────────────

def _hydro_fields(n, rng):
    rho = rng.uniform(0.5, 2.0, n)
    return {
        "rho": rho,
        "vx": rng.normal(0.0, 1.0, n),
        "vy": rng.normal(0.0, 1.0, n),
        "vz": rng.normal(0.0, 1.0, n),
        "p": rng.uniform(0.1, 1.0, n),
    }


def _grid(lo, hi):
    """All integer (cx, cy, cz) with lo[i] <= c_i < hi[i]."""
    axes = [np.arange(a, b) for a, b in zip(lo, hi)]
    cx, cy, cz = np.meshgrid(*axes, indexing="ij")
    return cx.ravel(), cy.ravel(), cz.ravel()


def build_uniform(level=3, boxlen=1.0, seed=0):
    """Every cell of one level."""
    n = 2 ** level
    cx, cy, cz = _grid((0, 0, 0), (n, n, n))
    rng = np.random.default_rng(seed)
    return CellTable(
        level=np.full(len(cx), level),
        cx=cx, cy=cy, cz=cz,
        fields=_hydro_fields(len(cx), rng),
        boxlen=boxlen,
        scale=SCALE,
    )


def build_two_level(lmin=5, seed=1):
    """
    Full box at lmin where the half x < 0.5 is refined one level,
    with a raw unit 'mass' field on every cell.
    """
    n = 2 ** lmin
    coarse = _grid((n // 2, 0, 0), (n, n, n))
    fine = _grid((0, 0, 0), (n, 2 * n, 2 * n))
    level = np.concatenate([np.full(len(coarse[0]), lmin), np.full(len(fine[0]), lmin + 1)])
    cx, cy, cz = (np.concatenate([c, f]) for c, f in zip(coarse, fine))
    rng = np.random.default_rng(seed)
    fields = _hydro_fields(len(level), rng)
    fields["mass"] = np.ones(len(level))
    return CellTable(level=level, cx=cx, cy=cy, cz=cz, fields=fields, lmin=lmin, lmax=lmin + 1, scale=SCALE)


def build_clump(level=10, width=4, seed=2):
    """
    Small cube of cells around the box center; its lower-x half is refined
    one level. Everything lies inside [0.49, 0.51]^3.
    """
    c0 = 2 ** level // 2 - width // 2
    coarse = _grid((c0 + width // 2, c0, c0), (c0 + width, c0 + width, c0 + width))
    fine = _grid((2 * c0, 2 * c0, 2 * c0), (2 * c0 + width, 2 * (c0 + width), 2 * (c0 + width)))
    level_col = np.concatenate([np.full(len(coarse[0]), level), np.full(len(fine[0]), level + 1)])
    cx, cy, cz = (np.concatenate([c, f]) for c, f in zip(coarse, fine))
    rng = np.random.default_rng(seed)
    return CellTable(
        level=level_col, cx=cx, cy=cy, cz=cz,
        fields=_hydro_fields(len(level_col), rng),
        lmin=level, lmax=level + 1, scale=SCALE,
    )


# ──────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────

@pytest.fixture
def uniform():
    return build_uniform()


@pytest.fixture
def two_level():
    return build_two_level()


@pytest.fixture
def clump():
    return build_clump()


@pytest.fixture
def make_uniform():
    return build_uniform
