#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Projection
──────────────────────────────────────────────────────────────────────────────
Projects AMR cells along a principal axis onto a uniform 2D grid.

Pipeline (one call, nothing persists between calls):

    validate request -> grid geometry -> cell selection -> variable values
      -> partition by level -> per-thread binning -> ordered merge
      -> (second pass for variance / std) -> optional gap filling
      -> reduction -> unit scaling -> ProjectionResult

Every parameter error surfaces before any cell is binned. An empty
selection is not an error: it yields all-zero maps of the requested shape.

──────────────────────────────────────────────────────────────────────────────
Usage
──────────────────────────────────────────────────────────────────────────────

    from chhaya import projection

    res = projection(table, ["sd", "T"], ["Msol_pc2", "K"], res=512,
                     direction="z", center="bc", zrange=(-0.05, 0.05))
    res.maps["sd"]

"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .accumulator import STRATEGIES, make_accumulator, select_strategy
from .binning import bin_level, bin_level_centered
from .config_module import get_config
from .errors import InvalidParameter
from .gapfill import fill_gaps
from .geometry import GridGeometry, compute_geometry, select_cells
from .parallel import effective_workers, partition_cells, run_parallel_binning
from .reduce import ReductionMode, default_mode, parse_mode, reduce_map, weighted_ratio
from .table import CellTable, UnitTable
from .variables import check_unit, lookup, resolve, unit_factor

logger = logging.getLogger("chhaya")

COVERAGE = "coverage"
WEIGHT = "weight"


def _as_tuple(arg, n: int, default, name: str) -> Tuple:
    if arg is None:
        return (default,) * n
    if isinstance(arg, (str, ReductionMode)):
        return (arg,) * n
    arg = tuple(arg)
    if len(arg) != n:
        raise InvalidParameter(f"Got {len(arg)} {name} for {n} variable(s).", parameter=name)
    return arg


@dataclass(frozen=True)
class ProjectionRequest:
    """
    Everything one projection needs, fixed at construction.

    Parameters:
    - variables: names to project (raw fields, aliases or derived quantities).
    - units: one unit symbol per variable ("standard" = code units).
    - modes: one reduction mode per variable, "auto" picks by dimension.
    - res / pxsize / pxsize_unit: output resolution; pxsize wins over res.
    - direction: line of sight, 'x', 'y' or 'z'.
    - center: reference point in range units, or 'bc' for the box center.
    - xrange, yrange, zrange: (lo, hi) relative to the center, in range_unit.
    - mask: optional boolean selection aligned with the table rows.
    - weighting: weighting variable for mean/variance/std, None for unit weights.
    - level_cap: level defining the default resolution 2**level_cap.
    - max_threads: thread budget (0 or None = all available).
    - strategy: 'auto', 'dense' or 'sparse' accumulation.
    - fill_gaps / gap_threshold: gap filling switch and emptiness threshold.
    - verbose: log progress at INFO instead of DEBUG.
    """

    variables: Tuple[str, ...]
    units: Tuple[str, ...] = ()
    modes: Tuple[str, ...] = ()
    res: Optional[int] = None
    pxsize: Optional[float] = None
    pxsize_unit: str = "standard"
    direction: Union[str, int] = "z"
    center: Any = (0.0, 0.0, 0.0)
    xrange: Optional[Tuple[Optional[float], Optional[float]]] = None
    yrange: Optional[Tuple[Optional[float], Optional[float]]] = None
    zrange: Optional[Tuple[Optional[float], Optional[float]]] = None
    range_unit: str = "standard"
    mask: Optional[np.ndarray] = field(default=None, compare=False)
    weighting: Optional[str] = "mass"
    level_cap: Optional[int] = None
    max_threads: Optional[int] = None
    strategy: str = "auto"
    fill_gaps: bool = False
    gap_threshold: float = 0.0
    verbose: bool = False

    @classmethod
    def build(cls, variables, units=None, modes=None, **options) -> "ProjectionRequest":
        """Normalize variables/units/modes to equal-length tuples."""
        if isinstance(variables, str):
            variables = (variables,)
        variables = tuple(variables)
        if not variables:
            raise InvalidParameter("At least one variable is required.", parameter="variables")
        n = len(variables)
        if "weighting" not in options:
            options["weighting"] = get_config()["DEFAULT_WEIGHTING"]
        return cls(
            variables=variables,
            units=_as_tuple(units, n, "standard", "units"),
            modes=_as_tuple(modes, n, "auto", "modes"),
            **options,
        )


@dataclass
class ProjectionResult:
    maps: Dict[str, np.ndarray]
    units: Dict[str, str]
    modes: Dict[str, str]
    weighting: Optional[str]
    pixel_size: float
    extent: Tuple[float, float, float, float]
    extent_center: Tuple[float, float, float, float]
    level_range: Tuple[int, int]
    lmax_projected: int
    boxlen: float
    direction: str
    resolution: int
    center: Tuple[float, float, float]
    ranges: Tuple[Tuple[float, float], ...]
    scale: UnitTable
    strategy: str = "dense"
    n_cells: int = 0

    def __getitem__(self, name: str) -> np.ndarray:
        return self.maps[name]

    def __contains__(self, name: str) -> bool:
        return name in self.maps

    @property
    def shape(self) -> Tuple[int, int]:
        if not self.maps:
            return (0, 0)
        return next(iter(self.maps.values())).shape

    @property
    def ratio(self) -> float:
        """Aspect ratio of the map extent (height / width)."""
        du = self.extent[1] - self.extent[0]
        return (self.extent[3] - self.extent[2]) / du if du > 0 else 0.0


@dataclass(frozen=True)
class _Plan:
    name: str
    unit: str
    mode: ReductionMode
    factor: float


def _validate(table: CellTable, request: ProjectionRequest) -> Tuple[List[_Plan], GridGeometry]:
    """All parameter checks; raises before any cell is touched."""
    n = len(request.variables)
    for label in ("units", "modes"):
        got = len(getattr(request, label))
        if got != n:
            raise InvalidParameter(f"Got {got} {label} for {n} variable(s).", parameter=label)

    if len(set(request.variables)) != n:
        raise InvalidParameter("Each variable may appear only once per projection.", parameter="variables")

    if request.strategy not in STRATEGIES:
        raise InvalidParameter(f"Unknown accumulation strategy {request.strategy!r}.", parameter="strategy")

    if request.mask is not None and np.shape(request.mask) != (len(table),):
        raise InvalidParameter(
            f"Mask has shape {np.shape(request.mask)}, expected ({len(table)},).", parameter="mask"
        )

    if not np.isfinite(request.gap_threshold) or request.gap_threshold < 0:
        raise InvalidParameter("Gap threshold must be a finite non-negative number.", parameter="gap_threshold")

    effective_workers(request.max_threads, 1)

    geometry = compute_geometry(
        table,
        res=request.res,
        pxsize=request.pxsize,
        pxsize_unit=request.pxsize_unit,
        direction=request.direction,
        center=request.center,
        xrange=request.xrange,
        yrange=request.yrange,
        zrange=request.zrange,
        range_unit=request.range_unit,
        level_cap=request.level_cap,
    )

    plans = []
    for name, unit, mode in zip(request.variables, request.units, request.modes):
        spec, _ = check_unit(table, name, unit)
        mode = default_mode(spec.dimension) if str(mode) == "auto" else parse_mode(mode)
        if spec.dimension == "surface_density" and mode is not ReductionMode.SURFACE:
            raise InvalidParameter(
                f"Surface density '{name}' can only be projected in 'surface' mode, got '{mode.value}'.",
                parameter="modes",
            )
        factor = unit_factor(name, spec.dimension, unit, table.scale, spec.unit_power * mode.unit_power)
        plans.append(_Plan(name, unit, mode, factor))

    if request.weighting is not None and any(p.mode.weighted for p in plans):
        lookup(table, request.weighting)

    return plans, geometry


def project(table: CellTable, request: ProjectionRequest) -> ProjectionResult:
    """
    Run one projection.

    Raises:
        InvalidParameter, InvalidDirection, InvalidRange: malformed request.
        UnknownVariable, IncompatibleUnit: variables or units not resolvable.
        WorkerFailure: a binning worker failed; nothing is returned.
    """
    t0 = time.time()
    log = logger.info if request.verbose else logger.debug

    plans, geometry = _validate(table, request)

    selection = select_cells(table, geometry)
    if request.mask is not None:
        selection &= np.asarray(request.mask, dtype=bool)
    cells = table.select(selection)
    ncells = len(cells)

    log("Selected %d of %d cell(s); levels to project: %s", ncells, len(table), cells.levels_present())

    weighted = any(p.mode.weighted for p in plans)
    if weighted and request.weighting is not None:
        weights = resolve(cells, request.weighting, center=geometry.center)
    else:
        weights = np.ones(ncells, dtype=np.float64)

    values = {p.name: resolve(cells, p.name, center=geometry.center) for p in plans}

    quantities = {COVERAGE: np.ones(ncells, dtype=np.float64)}
    if weighted:
        quantities[WEIGHT] = weights
    for p in plans:
        quantities[f"value:{p.name}"] = weights * values[p.name] if p.mode.weighted else values[p.name]

    kind = select_strategy(geometry.shape, ncells, request.strategy) if not geometry.is_empty else "dense"
    log("Map %dx%d (res %d) with %s accumulation", geometry.shape[0], geometry.shape[1], geometry.resolution, kind)

    u, v = geometry.axes
    cu, cv = cells.coord(u), cells.coord(v)
    nworkers = effective_workers(request.max_threads, ncells)
    partitions = partition_cells(cells.level, nworkers)

    def first_pass(acc, level, rows):
        bin_level(acc, geometry, level, cu[rows], cv[rows], {ch: q[rows] for ch, q in quantities.items()})

    merged = run_parallel_binning(
        partitions,
        first_pass,
        partial(make_accumulator, kind, geometry.shape, list(quantities)),
        nworkers=nworkers,
        verbose=request.verbose,
    )

    spread_plans = [p for p in plans if p.mode.needs_spread]
    spread = None
    if spread_plans and ncells:
        weight_flat = merged.channel_flat(WEIGHT)
        means = {p.name: weighted_ratio(merged.channel_flat(f"value:{p.name}"), weight_flat) for p in spread_plans}

        def second_pass(acc, level, rows):
            bin_level_centered(
                acc, geometry, level, cu[rows], cv[rows],
                {f"spread:{name}": (values[name][rows], weights[rows], mean) for name, mean in means.items()},
            )

        spread = run_parallel_binning(
            partitions,
            second_pass,
            partial(make_accumulator, kind, geometry.shape, [f"spread:{p.name}" for p in spread_plans]),
            nworkers=nworkers,
            verbose=request.verbose,
        )

    maps = {}
    for p in plans:
        channels = {"value": merged.channel(f"value:{p.name}")}
        if p.mode.weighted:
            channels["weight"] = merged.channel(WEIGHT)
        if p.mode.needs_spread:
            channels["spread"] = spread.channel(f"spread:{p.name}") if spread is not None else np.zeros(geometry.shape)

        if request.fill_gaps:
            detect = channels["weight"] if p.mode.weighted else merged.channel(COVERAGE)
            channels, nfilled = fill_gaps(
                channels, detect, conservative=p.mode.conservative, threshold=request.gap_threshold
            )
            log("Gap filling '%s': %d pixel(s)", p.name, nfilled)

        out = reduce_map(
            p.mode,
            channels["value"],
            channels.get("weight"),
            channels.get("spread"),
            pixel_area=geometry.pixel_area,
        )
        if p.factor != 1.0:
            out = out * p.factor
        maps[p.name] = out

    log("Projection of %s done in %.2fs", list(request.variables), time.time() - t0)

    return ProjectionResult(
        maps=maps,
        units={p.name: p.unit for p in plans},
        modes={p.name: p.mode.value for p in plans},
        weighting=request.weighting if weighted else None,
        pixel_size=geometry.pixel_size,
        extent=geometry.extent,
        extent_center=geometry.extent_center,
        level_range=(table.lmin, table.lmax),
        lmax_projected=geometry.level_cap,
        boxlen=table.boxlen,
        direction=geometry.direction,
        resolution=geometry.resolution,
        center=geometry.center,
        ranges=geometry.ranges,
        scale=table.scale,
        strategy=kind,
        n_cells=ncells,
    )


def projection(
    table: CellTable,
    variables: Union[str, Sequence[str]],
    units: Union[None, str, Sequence[str]] = None,
    modes: Union[None, str, Sequence[str]] = None,
    **options,
) -> ProjectionResult:
    """
    Project ``variables`` of ``table``; keyword options are the fields of
    ``ProjectionRequest``.
    """
    return project(table, ProjectionRequest.build(variables, units, modes, **options))
