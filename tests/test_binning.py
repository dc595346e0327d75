"""
Unit tests for the level-wise binning engine.

Checks exact overlap fractions for fine, coarse and straddling cells and
that every deposited cell keeps its total.

"""

import numpy as np
import pytest

from chhaya import CellTable, DenseAccumulator, compute_geometry
from chhaya.binning import axis_overlap, bin_level


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def _grid(res, **kwargs):
    table = CellTable(level=[0], cx=[0], cy=[0], cz=[0])
    return compute_geometry(table, res=res, **kwargs)


# ──────────────────────────────────────────────────────────────
# Axis overlap
# ──────────────────────────────────────────────────────────────

def test_fine_cell_single_pixel():
    """A level-3 cell inside an 4-pixel axis lands in one pixel with fraction 1."""
    local, frac = axis_overlap(np.array([5]), level=3, res=4, offset=0, npix=4)
    assert frac.shape == (1, 1)
    assert local[0, 0] == 2
    assert frac[0, 0] == 1.0


def test_coarse_cell_spans_pixels():
    local, frac = axis_overlap(np.array([1]), level=1, res=8, offset=0, npix=8)
    hit = frac[0] > 0
    np.testing.assert_array_equal(local[0][hit], [4, 5, 6, 7])
    np.testing.assert_allclose(frac[0][hit], 0.25)


def test_straddling_cell_split_by_overlap():
    """Level-1 cell 0 covers [0, 0.5); with res 3 pixel 1 spans [1/3, 2/3)."""
    local, frac = axis_overlap(np.array([0]), level=1, res=3, offset=0, npix=3)
    hit = frac[0] > 0
    np.testing.assert_array_equal(local[0][hit], [0, 1])
    np.testing.assert_allclose(frac[0][hit], [2.0 / 3.0, 1.0 / 3.0])
    assert frac[0].sum() == pytest.approx(1.0, rel=1e-15)


def test_pixels_outside_extent_get_nothing():
    local, frac = axis_overlap(np.array([0]), level=0, res=4, offset=2, npix=2)
    hit = frac[0] > 0
    np.testing.assert_array_equal(local[0][hit], [0, 1])


# ──────────────────────────────────────────────────────────────
# bin_level
# ──────────────────────────────────────────────────────────────

def test_coarse_cell_spread_evenly():
    geometry = _grid(4)
    acc = DenseAccumulator(geometry.shape, ["m"])
    bin_level(acc, geometry, 1, np.array([0]), np.array([1]), {"m": np.array([8.0])})
    expected = np.zeros((4, 4))
    expected[0:2, 2:4] = 2.0
    np.testing.assert_array_equal(acc.channel("m"), expected)


def test_column_folding_sums_along_line_of_sight():
    geometry = _grid(2)
    acc = DenseAccumulator(geometry.shape, ["m"])
    cu = np.array([0, 0, 1])
    cv = np.array([1, 1, 1])
    bin_level(acc, geometry, 1, cu, cv, {"m": np.array([1.0, 2.0, 4.0])})
    np.testing.assert_array_equal(acc.channel("m"), [[0.0, 3.0], [0.0, 4.0]])


@pytest.mark.parametrize("res", [3, 5, 7, 10])
def test_non_aligned_resolution_conserves_total(res):
    rng = np.random.default_rng(res)
    level = 3
    cu = rng.integers(0, 8, 40)
    cv = rng.integers(0, 8, 40)
    q = rng.uniform(0.1, 1.0, 40)
    geometry = _grid(res)
    acc = DenseAccumulator(geometry.shape, ["m"])
    bin_level(acc, geometry, level, cu, cv, {"m": q})
    assert acc.channel("m").sum() == pytest.approx(q.sum(), rel=1e-12)


def test_cells_outside_map_partially_clipped():
    """Only the part of a cell inside the extent is deposited."""
    geometry = _grid(4, xrange=(0.0, 0.25))
    acc = DenseAccumulator(geometry.shape, ["m"])
    bin_level(acc, geometry, 1, np.array([0]), np.array([0]), {"m": np.array([4.0])})
    assert geometry.shape == (1, 4)
    assert acc.channel("m").sum() == pytest.approx(2.0)
