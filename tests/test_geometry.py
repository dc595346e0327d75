"""
Unit tests for the grid geometry calculator.

These tests verify resolution handling, direction mapping, center tokens,
range validation, extent snapping and cell selection.

"""

import numpy as np
import pytest

from chhaya import InvalidDirection, InvalidParameter, InvalidRange, compute_geometry
from chhaya.geometry import select_cells


# ──────────────────────────────────────────────────────────────
# Resolution
# ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize("res", [1, 8, 100])
def test_full_box_shape(uniform, res):
    g = compute_geometry(uniform, res=res)
    assert g.shape == (res, res)
    assert g.origin_offset == (0, 0)
    assert g.pixel_size == pytest.approx(uniform.boxlen / res)


def test_default_resolution_from_level_cap(uniform):
    assert compute_geometry(uniform).resolution == 2 ** uniform.lmax
    assert compute_geometry(uniform, level_cap=5).resolution == 32


def test_zero_resolution_gives_empty_grid(uniform):
    g = compute_geometry(uniform, res=0)
    assert g.shape == (0, 0)
    assert g.is_empty


def test_pixel_size_sets_resolution(uniform):
    g = compute_geometry(uniform, res=4, pxsize=0.125)
    assert g.resolution == 8


def test_pixel_size_with_unit(uniform):
    """pc has factor 1000 in the test scale table: 125 pc = 0.125 code units."""
    assert compute_geometry(uniform, pxsize=125.0, pxsize_unit="pc").resolution == 8


@pytest.mark.parametrize("bad", [-1, 2.5, "64"])
def test_invalid_resolution(uniform, bad):
    with pytest.raises(InvalidParameter):
        compute_geometry(uniform, res=bad)


def test_invalid_pixel_size(uniform):
    with pytest.raises(InvalidParameter):
        compute_geometry(uniform, pxsize=0.0)


# ──────────────────────────────────────────────────────────────
# Direction and center
# ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize("direction, axes", [("x", (1, 2)), ("y", (0, 2)), ("z", (0, 1)), (2, (0, 1))])
def test_plane_axes(uniform, direction, axes):
    g = compute_geometry(uniform, res=4, direction=direction)
    assert g.axes == axes


@pytest.mark.parametrize("bad", ["w", 3, (1, 1, 0), None])
def test_invalid_direction(uniform, bad):
    with pytest.raises(InvalidDirection):
        compute_geometry(uniform, res=4, direction=bad)


def test_box_center_tokens(uniform):
    assert compute_geometry(uniform, res=4, center="bc").center == (0.5, 0.5, 0.5)
    assert compute_geometry(uniform, res=4, center=["boxcenter"]).center == (0.5, 0.5, 0.5)
    assert compute_geometry(uniform, res=4, center=(0.1, "bc", 0.2)).center == (0.1, 0.5, 0.2)


# ──────────────────────────────────────────────────────────────
# Ranges and extent
# ──────────────────────────────────────────────────────────────

def test_ranges_relative_to_center(uniform):
    g = compute_geometry(uniform, res=8, center="bc", xrange=(-0.25, 0.25), yrange=(-0.125, 0.375))
    assert g.ranges[0] == pytest.approx((0.25, 0.75))
    assert g.ranges[1] == pytest.approx((0.375, 0.875))
    assert g.shape == (4, 4)
    assert g.origin_offset == (2, 3)
    assert g.extent_center == pytest.approx((-0.25, 0.25, -0.125, 0.375))


def test_range_unit_conversion(uniform):
    g = compute_geometry(uniform, res=8, xrange=(250.0, 500.0), range_unit="pc")
    assert g.ranges[0] == pytest.approx((0.25, 0.5))


def test_extent_snapped_outward(uniform):
    g = compute_geometry(uniform, res=8, xrange=(0.3, 0.6))
    assert g.extent[0:2] == pytest.approx((0.25, 0.625))
    assert g.shape[0] == 3


@pytest.mark.parametrize("bounds", [(0.5, 0.5), (0.7, 0.2)])
def test_invalid_range(uniform, bounds):
    with pytest.raises(InvalidRange):
        compute_geometry(uniform, res=8, zrange=bounds)


# ──────────────────────────────────────────────────────────────
# Cell selection
# ──────────────────────────────────────────────────────────────

def test_select_cells_by_depth(uniform):
    """Only cells overlapping the line-of-sight range are kept, whole."""
    g = compute_geometry(uniform, res=8, zrange=(0.3, 0.5))
    mask = select_cells(uniform, g)
    assert set(np.unique(uniform.cz[mask])) == {2, 3}


def test_touching_cells_excluded(uniform):
    g = compute_geometry(uniform, res=8, xrange=(0.5, 1.0))
    mask = select_cells(uniform, g)
    assert uniform.cx[mask].min() == 4
