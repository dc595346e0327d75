#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Reduction of accumulated channels into final maps.

Modes:
 - sum       accumulated value per pixel
 - surface   accumulated value divided by the pixel area
 - mean      weighted mean, sum(w v f) / sum(w f)
 - variance  two-pass weighted variance, sum(w f (v - mean)^2) / sum(w f)
 - std       square root of the variance

Pixels without weight are exactly 0 in the mean/variance/std modes.

"""

from __future__ import annotations

from enum import Enum
from typing import Optional

import numpy as np

from .errors import InvalidParameter


class ReductionMode(str, Enum):
    SUM = "sum"
    SURFACE = "surface"
    MEAN = "mean"
    VARIANCE = "variance"
    STD = "std"

    @property
    def weighted(self) -> bool:
        return self in (ReductionMode.MEAN, ReductionMode.VARIANCE, ReductionMode.STD)

    @property
    def needs_spread(self) -> bool:
        return self in (ReductionMode.VARIANCE, ReductionMode.STD)

    @property
    def conservative(self) -> bool:
        return self in (ReductionMode.SUM, ReductionMode.SURFACE)

    @property
    def unit_power(self) -> int:
        return 2 if self is ReductionMode.VARIANCE else 1


_ALIASES = {
    "standard": ReductionMode.MEAN,
    "weighted": ReductionMode.MEAN,
    "average": ReductionMode.MEAN,
    "var": ReductionMode.VARIANCE,
    "sigma": ReductionMode.STD,
    "dispersion": ReductionMode.STD,
    "sd": ReductionMode.SURFACE,
    "surface_density": ReductionMode.SURFACE,
}

# dimensions summed by default
EXTENSIVE = ("mass", "energy", "volume", "angular_momentum")


def parse_mode(mode) -> ReductionMode:
    if isinstance(mode, ReductionMode):
        return mode
    key = str(mode).strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return ReductionMode(key)
    except ValueError:
        raise InvalidParameter(f"Unknown reduction mode {mode!r}.", parameter="modes") from None


def default_mode(dimension: str) -> ReductionMode:
    """sum for extensive quantities, surface for surface densities, mean otherwise."""
    if dimension == "surface_density":
        return ReductionMode.SURFACE
    if dimension in EXTENSIVE:
        return ReductionMode.SUM
    return ReductionMode.MEAN


def weighted_ratio(numerator: np.ndarray, weight: np.ndarray) -> np.ndarray:
    out = np.zeros_like(numerator, dtype=np.float64)
    np.divide(numerator, weight, out=out, where=weight > 0)
    return out


def reduce_map(
    mode: ReductionMode,
    value: np.ndarray,
    weight: Optional[np.ndarray] = None,
    spread: Optional[np.ndarray] = None,
    pixel_area: float = 1.0,
) -> np.ndarray:
    """
    Final map for one variable.

    Args:
        mode: reduction mode.
        value: accumulated value channel (sum of w v f, or v f for sums).
        weight: accumulated weight channel, required by weighted modes.
        spread: accumulated squared deviations, required by variance/std.
        pixel_area: area of one pixel, used by the surface mode.
    """
    mode = parse_mode(mode)

    if mode is ReductionMode.SUM:
        return np.array(value, dtype=np.float64)
    if mode is ReductionMode.SURFACE:
        return np.asarray(value, dtype=np.float64) / pixel_area if pixel_area > 0 else np.array(value, dtype=np.float64)

    if weight is None:
        raise InvalidParameter(f"Reduction mode '{mode.value}' needs a weight channel.", parameter="weighting")
    if mode is ReductionMode.MEAN:
        return weighted_ratio(value, weight)

    if spread is None:
        raise InvalidParameter(f"Reduction mode '{mode.value}' needs a spread channel.", parameter="modes")
    variance = np.clip(weighted_ratio(spread, weight), 0.0, None)
    return variance if mode is ReductionMode.VARIANCE else np.sqrt(variance)
