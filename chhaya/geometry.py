#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Output grid geometry
──────────────────────────────────────────────────────────────────────────────
Derives the pixel grid of a projection from the request:

 - resolution: pxsize > res > 2**level_cap (pixel size = boxlen / res)
 - plane axes for the line-of-sight direction
 - center (numbers in range units, or 'bc' / 'boxcenter' for the box center)
 - ranges relative to the center, converted with the range unit
 - map extent snapped outward to the global pixel grid

The global grid is anchored at the box origin, so pixel ``i`` spans
``[i * boxlen / res, (i + 1) * boxlen / res)`` whatever the selected range is.

"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidDirection, InvalidParameter, InvalidRange
from .table import AXES, CellTable
from .variables import unit_factor

logger = logging.getLogger("chhaya")

# plane axes (u, v) for each line of sight
PLANE_AXES = {0: (1, 2), 1: (0, 2), 2: (0, 1)}

BOX_CENTER_TOKENS = ("bc", "boxcenter", "box")

SNAP_TOL = 1e-9

Range = Optional[Tuple[Optional[float], Optional[float]]]


@dataclass(frozen=True)
class GridGeometry:
    direction: str
    axes: Tuple[int, int]
    projected_axis: int
    resolution: int
    pixel_size: float
    shape: Tuple[int, int]
    origin_offset: Tuple[int, int]
    extent: Tuple[float, float, float, float]
    extent_center: Tuple[float, float, float, float]
    center: Tuple[float, float, float]
    ranges: Tuple[Tuple[float, float], Tuple[float, float], Tuple[float, float]]
    boxlen: float
    level_cap: int

    @property
    def npix(self) -> int:
        return self.shape[0] * self.shape[1]

    @property
    def pixel_area(self) -> float:
        return self.pixel_size ** 2

    @property
    def is_empty(self) -> bool:
        return self.npix == 0


def parse_direction(direction) -> int:
    """Line-of-sight axis index for 'x'/'y'/'z' or 0/1/2."""
    if isinstance(direction, str):
        key = direction.strip().lower()
        if key in AXES:
            return AXES.index(key)
    elif isinstance(direction, (int, np.integer)) and not isinstance(direction, bool):
        if 0 <= int(direction) <= 2:
            return int(direction)
    raise InvalidDirection(direction)


def _snap_floor(x: float) -> int:
    r = round(x)
    return int(r) if abs(x - r) < SNAP_TOL else math.floor(x)


def _snap_ceil(x: float) -> int:
    r = round(x)
    return int(r) if abs(x - r) < SNAP_TOL else math.ceil(x)


def _length_factor(unit: str, scale, what: str) -> float:
    return unit_factor(what, "length", unit, scale)


def resolve_center(center, boxlen: float, factor: float = 1.0) -> Tuple[float, float, float]:
    """
    Center in code units.

    ``center`` is a 3-sequence of numbers in range units, where any component
    may be a box-center token, or a single token for the whole vector.
    """
    if center is None:
        return (0.0, 0.0, 0.0)

    if isinstance(center, str):
        if center.lower() in BOX_CENTER_TOKENS:
            return (0.5 * boxlen,) * 3
        raise InvalidParameter(f"Invalid center {center!r}.", parameter="center")

    center = list(center)
    if len(center) == 1 and isinstance(center[0], str):
        return resolve_center(center[0], boxlen, factor)
    if len(center) != 3:
        raise InvalidParameter(f"Center needs 3 components, got {len(center)}.", parameter="center")

    out = []
    for comp in center:
        if isinstance(comp, str):
            if comp.lower() not in BOX_CENTER_TOKENS:
                raise InvalidParameter(f"Invalid center component {comp!r}.", parameter="center")
            out.append(0.5 * boxlen)
        else:
            out.append(float(comp) / factor)
    return tuple(out)


def resolve_range(axis: int, bounds: Range, center: float, boxlen: float, factor: float = 1.0) -> Tuple[float, float]:
    """Absolute [lo, hi] in code units; missing bounds fall back to the box."""
    if bounds is None:
        bounds = (None, None)
    if len(bounds) != 2:
        raise InvalidParameter(f"{AXES[axis]}-range needs two bounds.", parameter=f"{AXES[axis]}range")

    lo, hi = bounds
    lo = 0.0 if lo is None else center + float(lo) / factor
    hi = boxlen if hi is None else center + float(hi) / factor

    if not (np.isfinite(lo) and np.isfinite(hi)) or lo >= hi:
        raise InvalidRange(AXES[axis], (lo, hi))
    return (lo, hi)


def resolve_resolution(boxlen: float, res=None, pxsize=None, pxsize_unit: str = "standard",
                       scale=None, level_cap: int = 0) -> int:
    if pxsize is not None:
        try:
            px = float(pxsize)
        except (TypeError, ValueError):
            raise InvalidParameter(f"Invalid pixel size {pxsize!r}.", parameter="pxsize") from None
        if not (np.isfinite(px) and px > 0):
            raise InvalidParameter(f"Pixel size must be positive, got {pxsize!r}.", parameter="pxsize")
        px_code = px / _length_factor(pxsize_unit, scale or {}, "pxsize")
        if res is not None:
            logger.debug("Both res and pxsize given; pxsize takes priority.")
        return max(1, _snap_ceil(boxlen / px_code))

    if res is None:
        return 2 ** int(level_cap)

    if isinstance(res, bool) or not isinstance(res, (int, np.integer)) or res < 0:
        raise InvalidParameter(f"Resolution must be a non-negative integer, got {res!r}.", parameter="res")
    return int(res)


def compute_geometry(
    table: CellTable,
    res: Optional[int] = None,
    pxsize: Optional[float] = None,
    pxsize_unit: str = "standard",
    direction="z",
    center=(0.0, 0.0, 0.0),
    xrange: Range = None,
    yrange: Range = None,
    zrange: Range = None,
    range_unit: str = "standard",
    level_cap: Optional[int] = None,
) -> GridGeometry:
    """
    Pixel grid for projecting ``table`` along ``direction``.

    Raises:
        InvalidParameter: bad resolution, pixel size, center or level cap.
        InvalidDirection: direction is not a principal axis.
        InvalidRange: a range has min >= max.
    """
    boxlen = table.boxlen
    w = parse_direction(direction)
    u, v = PLANE_AXES[w]

    if level_cap is None:
        level_cap = table.lmax
    if isinstance(level_cap, bool) or not isinstance(level_cap, (int, np.integer)) or level_cap < 0:
        raise InvalidParameter(f"Level cap must be a non-negative integer, got {level_cap!r}.", parameter="level_cap")
    level_cap = int(level_cap)

    factor = _length_factor(range_unit, table.scale, "range")
    c = resolve_center(center, boxlen, factor)
    ranges = tuple(
        resolve_range(ax, bounds, c[ax], boxlen, factor)
        for ax, bounds in enumerate((xrange, yrange, zrange))
    )

    resolution = resolve_resolution(boxlen, res, pxsize, pxsize_unit, table.scale, level_cap)

    if resolution == 0:
        lo_u, lo_v = ranges[u][0], ranges[v][0]
        extent = (lo_u, lo_u, lo_v, lo_v)
        return GridGeometry(
            direction=AXES[w], axes=(u, v), projected_axis=w, resolution=0, pixel_size=0.0,
            shape=(0, 0), origin_offset=(0, 0), extent=extent,
            extent_center=(extent[0] - c[u], extent[1] - c[u], extent[2] - c[v], extent[3] - c[v]),
            center=c, ranges=ranges, boxlen=boxlen, level_cap=level_cap,
        )

    pixel_size = boxlen / resolution

    bounds = []
    for ax in (u, v):
        lo, hi = ranges[ax]
        i0 = _snap_floor(lo / boxlen * resolution)
        i1 = _snap_ceil(hi / boxlen * resolution)
        bounds.append((i0, max(i1, i0 + 1)))

    (i0, i1), (j0, j1) = bounds
    extent = (i0 * pixel_size, i1 * pixel_size, j0 * pixel_size, j1 * pixel_size)

    geometry = GridGeometry(
        direction=AXES[w],
        axes=(u, v),
        projected_axis=w,
        resolution=resolution,
        pixel_size=pixel_size,
        shape=(i1 - i0, j1 - j0),
        origin_offset=(i0, j0),
        extent=extent,
        extent_center=(extent[0] - c[u], extent[1] - c[u], extent[2] - c[v], extent[3] - c[v]),
        center=c,
        ranges=ranges,
        boxlen=boxlen,
        level_cap=level_cap,
    )

    logger.debug(
        "Grid: direction=%s res=%d shape=%s pixel=%.6g extent=%s",
        geometry.direction, resolution, geometry.shape, pixel_size, extent,
    )
    return geometry


def select_cells(table: CellTable, geometry: GridGeometry) -> np.ndarray:
    """
    Rows whose footprint overlaps the map extent in the plane and the
    requested range along the line of sight (positive-length overlap only).
    """
    if len(table) == 0 or geometry.is_empty:
        return np.zeros(len(table), dtype=bool)

    size = table.cell_size()
    u, v = geometry.axes
    bounds = {
        u: geometry.extent[0:2],
        v: geometry.extent[2:4],
        geometry.projected_axis: geometry.ranges[geometry.projected_axis],
    }

    mask = np.ones(len(table), dtype=bool)
    for ax, (lo, hi) in bounds.items():
        lower = table.coord(ax) * size
        mask &= (lower + size > lo) & (lower < hi)
    return mask
