#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Gap filling for projected maps.

A gap is a pixel whose detection channel is at or below a threshold while
enough of its 8-connected neighbours are populated. Every channel of a gap
pixel takes the average of its populated neighbours, so a weighted mean
becomes the weighted average of the neighbouring means.

Conservative maps (sum / surface) only accept fills while the added amount
stays within ``GAP_FILL_TOLERANCE`` of the map total; pixels past that budget
are left empty.

"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Tuple

import numpy as np
from scipy import ndimage

from .config_module import get_config

logger = logging.getLogger("chhaya")

NEIGHBOURS = np.array([[1.0, 1.0, 1.0], [1.0, 0.0, 1.0], [1.0, 1.0, 1.0]])


def find_gaps(detect: np.ndarray, threshold: float = 0.0, min_neighbors: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Returns:
        (gap mask, populated-neighbour count per pixel)
    """
    if min_neighbors is None:
        min_neighbors = get_config()["GAP_MIN_NEIGHBORS"]

    populated = detect > threshold
    counts = ndimage.convolve(populated.astype(np.float64), NEIGHBOURS, mode="constant", cval=0.0)
    gaps = ~populated & (counts >= min_neighbors)
    return gaps, counts


def fill_gaps(
    channels: Mapping[str, np.ndarray],
    detect: np.ndarray,
    conservative: bool = False,
    threshold: float = 0.0,
    min_neighbors: Optional[int] = None,
    tolerance: Optional[float] = None,
) -> Tuple[Dict[str, np.ndarray], int]:
    """
    Fill isolated empty pixels of one variable's channels.

    Args:
        channels: name -> 2D array, all of the same shape as ``detect``.
        detect: channel deciding which pixels are populated (weight or coverage).
        conservative: True for sum / surface maps.
        threshold: pixels with ``detect <= threshold`` count as empty.
        min_neighbors: populated neighbours required (default GAP_MIN_NEIGHBORS).
        tolerance: relative change of a conservative total allowed (default GAP_FILL_TOLERANCE).

    Returns:
        (new channels, number of filled pixels)
    """
    out = {name: np.array(arr, dtype=np.float64) for name, arr in channels.items()}
    if detect.size == 0:
        return out, 0

    gaps, counts = find_gaps(detect, threshold, min_neighbors)
    if not gaps.any():
        return out, 0

    populated = detect > threshold
    candidates = {}
    for name, arr in out.items():
        sums = ndimage.convolve(np.where(populated, arr, 0.0), NEIGHBOURS, mode="constant", cval=0.0)
        candidates[name] = sums[gaps] / counts[gaps]

    if conservative:
        if tolerance is None:
            tolerance = get_config()["GAP_FILL_TOLERANCE"]
        budget = float(tolerance) * max(abs(float(arr.sum())) for arr in out.values())
        accept = np.ones(int(gaps.sum()), dtype=bool)
        for name, arr in out.items():
            added = np.abs(candidates[name] - arr[gaps])
            accept &= np.cumsum(added) <= budget
        skipped = int((~accept).sum())
        if skipped:
            logger.debug("Gap filling skipped %d pixel(s) to keep the map total within tolerance", skipped)
        rows, cols = np.nonzero(gaps)
        gaps = np.zeros_like(gaps)
        gaps[rows[accept], cols[accept]] = True
        candidates = {name: cand[accept] for name, cand in candidates.items()}

    for name, arr in out.items():
        arr[gaps] = candidates[name]

    filled = int(gaps.sum())
    logger.debug("Gap filling: %d pixel(s) filled", filled)
    return out, filled
