#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Radial profiles.

Bins cell centers by spherical or cylindrical radius around a center and
reduces a variable per shell with the same accumulators, thread driver and
reduction modes as the 2D projection.

Surface densities are only defined on cylindrical annuli: the mass of each
annulus is divided by its area pi (r_out^2 - r_in^2).

"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import partial
from typing import Optional, Tuple

import numpy as np

from .accumulator import DenseAccumulator
from .config_module import get_config
from .errors import InvalidParameter, InvalidRange
from .geometry import PLANE_AXES, parse_direction, resolve_center
from .parallel import effective_workers, partition_cells, run_parallel_binning
from .reduce import ReductionMode, default_mode, parse_mode, reduce_map, weighted_ratio
from .table import CellTable
from .variables import check_unit, lookup, resolve, unit_factor

logger = logging.getLogger("chhaya")

COORDINATES = ("spherical", "cylindrical")


@dataclass
class ProfileResult:
    variable: str
    unit: str
    mode: str
    coordinate: str
    edges: np.ndarray
    values: np.ndarray
    weights: np.ndarray
    counts: np.ndarray
    center: Tuple[float, float, float]
    range_unit: str = "standard"
    weighting: Optional[str] = None
    cumulative: Optional[np.ndarray] = None

    @property
    def centers(self) -> np.ndarray:
        return 0.5 * (self.edges[1:] + self.edges[:-1])

    @property
    def nbins(self) -> int:
        return len(self.values)


def cell_radius(table: CellTable, center, coordinate: str = "spherical", direction="z") -> np.ndarray:
    """Distance of every cell center to ``center`` (code units)."""
    if coordinate == "spherical":
        axes = (0, 1, 2)
    else:
        axes = PLANE_AXES[parse_direction(direction)]
    r2 = np.zeros(len(table), dtype=np.float64)
    for ax in axes:
        r2 += (table.position(ax) - center[ax]) ** 2
    return np.sqrt(r2)


def profile(
    table: CellTable,
    variable: str,
    unit: str = "standard",
    mode="auto",
    center="bc",
    coordinate: str = "auto",
    direction="z",
    nbins: int = 50,
    rrange: Optional[Tuple[Optional[float], Optional[float]]] = None,
    range_unit: str = "standard",
    weighting: Optional[str] = "default",
    mask=None,
    max_threads: Optional[int] = None,
    verbose: bool = False,
) -> ProfileResult:
    """
    Radial profile of ``variable``.

    Args:
        table: source cells.
        variable: raw field, alias or derived quantity.
        unit: unit symbol for the values.
        mode: 'sum', 'surface', 'mean', 'variance', 'std' or 'auto'.
        center: profile center in range units, or 'bc'.
        coordinate: 'spherical', 'cylindrical' (axis = ``direction``) or
            'auto' (cylindrical for surface densities, spherical otherwise).
        nbins: number of linear radial bins.
        rrange: (rmin, rmax) in range units; defaults to [0, largest radius].
        range_unit: unit of center, rrange and the returned edges.
        weighting: weighting variable; 'default' uses volume for density
            and mass for everything else, None means unit weights.
        mask: optional boolean row selection.
        max_threads: thread budget.
        verbose: log progress at INFO.

    Returns:
        ProfileResult with bin edges in ``range_unit``.
    """
    t0 = time.time()
    log = logger.info if verbose else logger.debug

    if isinstance(nbins, bool) or not isinstance(nbins, (int, np.integer)) or nbins <= 0:
        raise InvalidParameter(f"nbins must be a positive integer, got {nbins!r}.", parameter="nbins")
    if coordinate != "auto" and coordinate not in COORDINATES:
        raise InvalidParameter(f"Unknown coordinate type {coordinate!r}; use one of {COORDINATES}.", parameter="coordinate")
    parse_direction(direction)
    if mask is not None and np.shape(mask) != (len(table),):
        raise InvalidParameter(f"Mask has shape {np.shape(mask)}, expected ({len(table)},).", parameter="mask")

    spec, _ = check_unit(table, variable, unit)
    mode = default_mode(spec.dimension) if str(mode) == "auto" else parse_mode(mode)
    if spec.dimension == "surface_density" and mode is not ReductionMode.SURFACE:
        raise InvalidParameter(
            f"Surface density '{variable}' can only be profiled in 'surface' mode, got '{mode.value}'.",
            parameter="mode",
        )
    if coordinate == "auto":
        coordinate = "cylindrical" if mode is ReductionMode.SURFACE else "spherical"
    if mode is ReductionMode.SURFACE and coordinate != "cylindrical":
        raise InvalidParameter("Surface profiles need cylindrical annuli.", parameter="coordinate")
    factor = unit_factor(variable, spec.dimension, unit, table.scale, spec.unit_power * mode.unit_power)

    if weighting == "default":
        weighting = "volume" if spec.dimension == "density" else get_config()["DEFAULT_WEIGHTING"]
    if mode.weighted and weighting is not None:
        lookup(table, weighting)

    length_factor = unit_factor("range", "length", range_unit, table.scale)
    c = resolve_center(center, table.boxlen, length_factor)

    cells = table if mask is None else table.select(mask)
    radius = cell_radius(cells, c, coordinate, direction)

    lo, hi = (None, None) if rrange is None else rrange
    lo = 0.0 if lo is None else float(lo) / length_factor
    if hi is None:
        hi = float(radius.max()) if len(radius) else 0.5 * table.boxlen
        hi = hi if hi > lo else lo + 0.5 * table.boxlen
    else:
        hi = float(hi) / length_factor
    if lo < 0.0:
        raise InvalidParameter(f"Radial range must start at r >= 0, got {lo!r}.", parameter="rrange")
    if not lo < hi:
        raise InvalidRange("r", (lo, hi))

    edges = np.linspace(lo, hi, nbins + 1)
    idx = np.floor((radius - lo) / (hi - lo) * nbins).astype(np.int64)
    idx[radius == hi] = nbins - 1
    inside = (idx >= 0) & (idx < nbins)

    cells = cells.select(inside)
    idx = idx[inside]
    ncells = len(cells)
    log("Profile of '%s': %d cell(s) in %d bin(s)", variable, ncells, nbins)

    values = resolve(cells, variable, center=c)
    if mode.weighted and weighting is not None:
        weights = resolve(cells, weighting, center=c)
    else:
        weights = np.ones(ncells, dtype=np.float64)

    quantities = {
        "count": np.ones(ncells, dtype=np.float64),
        "weight": weights,
        "value": weights * values if mode.weighted else values,
    }

    nworkers = effective_workers(max_threads, ncells)
    partitions = partition_cells(cells.level, nworkers)

    def first_pass(acc, level, rows):
        acc.deposit(idx[rows], {ch: q[rows] for ch, q in quantities.items()})

    merged = run_parallel_binning(
        partitions, first_pass, partial(DenseAccumulator, (nbins, 1), list(quantities)),
        nworkers=nworkers, verbose=verbose,
    )

    weight = merged.channel_flat("weight")
    spread = None
    if mode.needs_spread:
        means = weighted_ratio(merged.channel_flat("value"), weight)

        def second_pass(acc, level, rows):
            acc.deposit(idx[rows], {"spread": weights[rows] * (values[rows] - means[idx[rows]]) ** 2})

        spread = run_parallel_binning(
            partitions, second_pass, partial(DenseAccumulator, (nbins, 1), ["spread"]),
            nworkers=nworkers, verbose=verbose,
        ).channel_flat("spread")

    if mode is ReductionMode.SURFACE:
        area = np.pi * (edges[1:] ** 2 - edges[:-1] ** 2)
        reduced = reduce_map(ReductionMode.SUM, merged.channel_flat("value")) / area * factor
    else:
        reduced = reduce_map(mode, merged.channel_flat("value"), weight, spread) * factor

    log("Profile done in %.2fs", time.time() - t0)

    return ProfileResult(
        variable=variable,
        unit=unit,
        mode=mode.value,
        coordinate=coordinate,
        edges=edges * length_factor,
        values=reduced,
        weights=weight,
        counts=merged.channel_flat("count").astype(np.int64),
        center=c,
        range_unit=range_unit,
        weighting=weighting if mode.weighted else None,
        cumulative=np.cumsum(reduced) if mode is ReductionMode.SUM else None,
    )
