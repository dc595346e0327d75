#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Level-wise binning
──────────────────────────────────────────────────────────────────────────────
Deposits the cells of one refinement level onto the output pixel grid.

Overlaps are computed exactly with integers: along one axis a level-L cell
``c`` spans ``[c * res, (c + 1) * res)`` and pixel ``i`` spans
``[i * 2**L, (i + 1) * 2**L)``, both in units of ``boxlen / (res * 2**L)``.
A cell's area fractions therefore sum to one and mass is conserved whatever
the relative size of cells and pixels:

 - fine cells (smaller than a pixel) fan in, usually with fraction 1
 - coarse cells (larger than a pixel) fan out over every pixel they cover
 - cells straddling pixel edges are split by overlap area

"""

from __future__ import annotations

from typing import Iterator, Mapping, Tuple

import numpy as np

from .geometry import GridGeometry


def axis_overlap(coord: np.ndarray, level: int, res: int, offset: int, npix: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pixels touched by level cells along one axis.

    Returns:
        (local pixel index, overlap fraction), both of shape (ncells, span).
        Fractions are 0 for padding entries and for pixels outside [0, npix).
    """
    side = 1 << level
    lo = coord.astype(np.int64) * res
    hi = lo + res
    first = lo // side
    last = (hi - 1) // side

    span = int((last - first).max()) + 1
    pix = first[:, None] + np.arange(span, dtype=np.int64)[None, :]
    overlap = np.minimum(hi[:, None], (pix + 1) * side) - np.maximum(lo[:, None], pix * side)
    frac = np.clip(overlap, 0, None) / float(res)

    local = pix - offset
    frac[(local < 0) | (local >= npix)] = 0.0
    return local, frac


def footprints(geometry: GridGeometry, level: int, cu: np.ndarray, cv: np.ndarray) -> Iterator[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """
    Yield (cell rows, flat pixel index, area fraction) batches, one per
    pixel offset along the first plane axis.
    """
    nu, nv = geometry.shape
    i0, j0 = geometry.origin_offset
    iu, fu = axis_overlap(cu, level, geometry.resolution, i0, nu)
    iv, fv = axis_overlap(cv, level, geometry.resolution, j0, nv)

    for du in range(iu.shape[1]):
        frac = fu[:, du, None] * fv
        hit = frac > 0.0
        if not hit.any():
            continue
        rows, cols = np.nonzero(hit)
        flat = iu[rows, du] * nv + iv[rows, cols]
        yield rows, flat, frac[rows, cols]


def bin_level(
    accumulator,
    geometry: GridGeometry,
    level: int,
    cu: np.ndarray,
    cv: np.ndarray,
    quantities: Mapping[str, np.ndarray],
) -> int:
    """
    Deposit ``quantity * area_fraction`` for every channel in ``quantities``.

    Cells of the same level that share a plane column cover the same pixels,
    so their quantities are summed before the footprint is computed.

    Args:
        accumulator: dense or sparse accumulator holding every channel.
        geometry: output grid.
        level: refinement level of all the given cells.
        cu, cv: cell coordinates along the plane axes.
        quantities: channel -> per-cell amount to deposit.

    Returns:
        Number of (column, pixel) deposits made.
    """
    if len(cu) == 0 or geometry.is_empty:
        return 0

    side = 1 << level
    columns, inverse = np.unique(cu.astype(np.int64) * side + cv, return_inverse=True)
    inverse = inverse.ravel()
    folded = {ch: np.bincount(inverse, weights=q, minlength=len(columns)) for ch, q in quantities.items()}

    deposits = 0
    for rows, flat, frac in footprints(geometry, level, columns // side, columns % side):
        accumulator.deposit(flat, {ch: q[rows] * frac for ch, q in folded.items()})
        deposits += len(flat)
    return deposits


def bin_level_centered(
    accumulator,
    geometry: GridGeometry,
    level: int,
    cu: np.ndarray,
    cv: np.ndarray,
    spreads: Mapping[str, Tuple[np.ndarray, np.ndarray, np.ndarray]],
) -> int:
    """
    Second pass of the weighted variance: deposit ``w * f * (v - mean)**2``.

    ``spreads`` maps channel -> (values, weights, flat per-pixel mean map).
    No column folding here, the squared deviation depends on each cell.
    """
    if len(cu) == 0 or geometry.is_empty:
        return 0

    deposits = 0
    for rows, flat, frac in footprints(geometry, level, cu, cv):
        accumulator.deposit(
            flat,
            {ch: w[rows] * frac * (v[rows] - mean[flat]) ** 2 for ch, (v, w, mean) in spreads.items()},
        )
        deposits += len(flat)
    return deposits
