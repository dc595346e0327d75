#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

HDF5 persistence for cell tables and projection results.

Layout of a projection file:

    /Projection            attrs: geometry, level range, generator metadata
    /Projection/Maps/<var> one 2D float64 dataset per variable (attrs: unit, mode)
    /Projection/Scale      attrs: unit symbol -> factor

Layout of a cell table file:

    /Cells                 attrs: lmin, lmax, boxlen, gamma
    /Cells/level, cx, cy, cz
    /Cells/Fields/<name>
    /Cells/Scale           attrs: unit symbol -> factor

"""

from __future__ import annotations

import logging
import os
import shlex
import sys
import time

import numpy as np
import h5py as h5

from .projection import ProjectionResult
from .table import CellTable, UnitTable

logger = logging.getLogger("chhaya")


def _stamp(group) -> None:
    from . import __version__

    group.attrs["generator_command"] = shlex.join(sys.argv)
    group.attrs["generator_timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
    group.attrs["generator_version"] = __version__


def _write_scale(group, scale) -> None:
    sg = group.create_group("Scale")
    for symbol, factor in scale.items():
        sg.attrs[symbol] = float(factor)


def _read_scale(group) -> UnitTable:
    if "Scale" not in group:
        return UnitTable()
    return UnitTable({k: float(v) for k, v in group["Scale"].attrs.items()})


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)


def save_projection(result: ProjectionResult, path: str) -> str:
    """Write ``result`` to ``path`` (overwritten); returns the path."""
    _ensure_parent(path)
    with h5.File(path, "w") as f:
        root = f.create_group("Projection", track_order=True)
        root.attrs["direction"] = result.direction
        root.attrs["resolution"] = result.resolution
        root.attrs["pixel_size"] = result.pixel_size
        root.attrs["extent"] = np.asarray(result.extent, dtype=np.float64)
        root.attrs["extent_center"] = np.asarray(result.extent_center, dtype=np.float64)
        root.attrs["level_range"] = np.asarray(result.level_range, dtype=np.int64)
        root.attrs["lmax_projected"] = result.lmax_projected
        root.attrs["boxlen"] = result.boxlen
        root.attrs["center"] = np.asarray(result.center, dtype=np.float64)
        root.attrs["ranges"] = np.asarray(result.ranges, dtype=np.float64)
        root.attrs["weighting"] = result.weighting or "none"
        root.attrs["strategy"] = result.strategy
        root.attrs["n_cells"] = result.n_cells
        _stamp(root)

        maps = root.create_group("Maps", track_order=True)
        for name, arr in result.maps.items():
            ds = maps.create_dataset(name, data=np.asarray(arr, dtype=np.float64))
            ds.attrs["unit"] = result.units[name]
            ds.attrs["mode"] = result.modes[name]

        _write_scale(root, result.scale)

    logger.debug("Saved projection with %d map(s) to '%s'", len(result.maps), path)
    return path


def load_projection(path: str) -> ProjectionResult:
    with h5.File(path, "r") as f:
        root = f["Projection"]
        a = root.attrs
        maps, units, modes = {}, {}, {}
        for name, ds in root["Maps"].items():
            maps[name] = ds[()]
            units[name] = str(ds.attrs["unit"])
            modes[name] = str(ds.attrs["mode"])

        return ProjectionResult(
            maps=maps,
            units=units,
            modes=modes,
            weighting=None if str(a["weighting"]) == "none" else str(a["weighting"]),
            pixel_size=float(a["pixel_size"]),
            extent=tuple(float(x) for x in a["extent"]),
            extent_center=tuple(float(x) for x in a["extent_center"]),
            level_range=tuple(int(x) for x in a["level_range"]),
            lmax_projected=int(a["lmax_projected"]),
            boxlen=float(a["boxlen"]),
            direction=str(a["direction"]),
            resolution=int(a["resolution"]),
            center=tuple(float(x) for x in a["center"]),
            ranges=tuple(tuple(float(x) for x in r) for r in a["ranges"]),
            scale=_read_scale(root),
            strategy=str(a["strategy"]),
            n_cells=int(a["n_cells"]),
        )


def save_cell_table(table: CellTable, path: str) -> str:
    _ensure_parent(path)
    with h5.File(path, "w") as f:
        root = f.create_group("Cells", track_order=True)
        root.attrs["lmin"] = table.lmin
        root.attrs["lmax"] = table.lmax
        root.attrs["boxlen"] = table.boxlen
        root.attrs["gamma"] = table.gamma
        _stamp(root)

        root.create_dataset("level", data=table.level)
        root.create_dataset("cx", data=table.cx)
        root.create_dataset("cy", data=table.cy)
        root.create_dataset("cz", data=table.cz)

        fields = root.create_group("Fields", track_order=True)
        for name, col in table.fields.items():
            fields.create_dataset(name, data=col)

        _write_scale(root, table.scale)

    logger.debug("Saved %d cell(s) to '%s'", len(table), path)
    return path


def load_cell_table(path: str) -> CellTable:
    with h5.File(path, "r") as f:
        root = f["Cells"]
        return CellTable(
            level=root["level"][()],
            cx=root["cx"][()],
            cy=root["cy"][()],
            cz=root["cz"][()],
            fields={name: ds[()] for name, ds in root["Fields"].items()},
            lmin=int(root.attrs["lmin"]),
            lmax=int(root.attrs["lmax"]),
            boxlen=float(root.attrs["boxlen"]),
            scale=_read_scale(root),
            gamma=float(root.attrs["gamma"]),
        )
