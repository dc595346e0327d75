#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Loads RAMSES outputs with osyris and turns the AMR mesh into a CellTable
that the projection engine understands.

──────────────────────────────────────────────────────────────────────────────
WHY THIS EXISTS
──────────────────────────────────────────────────────────────────────────────
- osyris hands out cell-center positions and cell sizes with physical units
  attached; the projection engine works on integer cell coordinates per
  refinement level, which is exact and keeps binning mass-conserving.
- Field names differ between the two: ``density`` becomes ``rho``,
  ``pressure`` becomes ``p``, and vector fields are split in components
  (``velocity`` -> ``vx``, ``vy``, ``vz``).

──────────────────────────────────────────────────────────────────────────────
IT SUPPORTS:
──────────────────────────────────────────────────────────────────────────────
 - Level filtering (level_start / level_end)
 - Code units and unit table from the snapshot metadata (unit_l, unit_d, unit_t)
 - Field discovery (list_fields_for_snapshot) and explicit field selection
 - Parsing helpers shared with the command line (output numbers, ranges, lists)

"""


from __future__ import annotations

import argparse
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import osyris

from .table import CellTable
from .units import code_unit_scale


def setup_logging(verbose: bool) -> None:
    """
    Configure global logging.

    Args:
        verbose: If True, set DEBUG level, otherwise INFO.
    """

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )

    # Reduce noise from libraries (adjustable)
    logging.getLogger("h5py").setLevel(logging.WARNING)


logger = logging.getLogger("chhaya")

# osyris name -> CellTable field name(s)
SCALAR_FIELDS = {"density": "rho", "pressure": "p"}
VECTOR_FIELDS = {"velocity": ("vx", "vy", "vz")}

DEFAULT_FIELDS = ["density", "velocity", "pressure"]

# cgs unit of the osyris fields rescaled to code units
CGS_UNITS = {
    "dx": "cm",
    "position": "cm",
    "density": "g/cm**3",
    "velocity": "cm/s",
    "pressure": "g/(cm*s**2)",
}


def parse_output_numbers(arg: str) -> List[int]:
    """
    Parse output numbers strings like '5', '1,3,5', or '2-7' into a list of ints.

    Args:
        arg: user-provided string

    Returns:
        List of ints representing snapshot/output numbers.

    Raises:
        argparse.ArgumentTypeError on invalid format.
    """

    if "-" in arg and "," in arg:
        raise argparse.ArgumentTypeError("Do not mix ranges and lists; use either 'a-b' or 'a,b,c'.")

    if "-" in arg:
        try:
            start, end = map(int, arg.split("-", 1))
        except ValueError:
            raise argparse.ArgumentTypeError("Invalid range; use 'start-end'.")
        if end < start:
            raise argparse.ArgumentTypeError("Range end must be >= start.")
        return list(range(start, end + 1))

    if "," in arg:
        nums = []
        for x in arg.split(","):
            x = x.strip()
            if x == "":
                continue
            try:
                nums.append(int(x))
            except ValueError:
                raise argparse.ArgumentTypeError(f"Invalid integer in list: '{x}'")
        return nums

    try:
        return [int(arg)]
    except ValueError:
        raise argparse.ArgumentTypeError("Output number must be an integer.")


def parse_norm_range(arg: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse normalized axis range spec: 'min:max', ':max', 'min:', or ':'.

    Returns (min_norm, max_norm) where each entry is a float in [0,1], or None when not provided.
    The projection needs min < max, so equal bounds are rejected here already.
    """

    if arg is None:
        return (None, None)

    s = arg.strip()

    if s == "":
        return (None, None)

    if ":" not in s:
        raise argparse.ArgumentTypeError("Axis range must be 'min:max' (e.g., 0.2:0.8, :0.6, 0.1:, :).")

    left, right = s.split(":", 1)
    try:
        minv = float(left) if left.strip() != "" else 0.0
        maxv = float(right) if right.strip() != "" else 1.0
    except ValueError:
        raise argparse.ArgumentTypeError(f"Axis bounds must be numbers, got '{s}'.")

    if not (0.0 <= minv <= 1.0 and 0.0 <= maxv <= 1.0):
        raise argparse.ArgumentTypeError("Axis normalized bounds must be within [0, 1].")

    if minv >= maxv:
        raise argparse.ArgumentTypeError("Axis min must be smaller than axis max.")

    return (minv, maxv)


def parse_fields_arg(arg: Optional[str]) -> Optional[List[str]]:
    """
    Parse a comma-separated list of names (fields, variables, units, modes).

    Returns None if user didn't pass anything (means use defaults or auto-detect).
    """

    if arg is None:
        return None

    fields = [f.strip() for f in arg.split(",") if f.strip() != ""]

    return fields if fields else None


def parse_center_arg(arg: str):
    """'bc' / 'boxcenter', or three comma-separated numbers in [0, 1] (normalized)."""

    s = arg.strip()
    if s.lower() in ("bc", "boxcenter", "box"):
        return s.lower()

    parts = [p.strip() for p in s.split(",")]
    if len(parts) != 3:
        raise argparse.ArgumentTypeError("Center must be 'bc' or 'x,y,z'.")
    try:
        values = tuple(float(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid center '{arg}'.")
    if not all(0.0 <= v <= 1.0 for v in values):
        raise argparse.ArgumentTypeError("Normalized center components must be within [0, 1].")
    return values


def _values(array, unit: Optional[str] = None) -> np.ndarray:
    """
    Magnitudes of an osyris Array, converted to ``unit`` first when given.
    Arrays without units attached are taken to be in that unit already.
    """
    if unit is not None and hasattr(array, "to"):
        array = array.to(unit)
    return np.asarray(array.values, dtype=float)


def _extract_vector(vec_field, unit: Optional[str] = None) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Extract vector components x,y,z from a vector-like osyris field.

    Tries ``vec_field['x'].values`` then ``vec_field.x.values``.

    Returns:
        tuple of 1D numpy arrays (vx, vy, vz)

    Raises:
        RuntimeError when neither access pattern works.
    """
    try:
        return tuple(_values(vec_field[c], unit) for c in ("x", "y", "z"))
    except (KeyError, TypeError, AttributeError, IndexError):
        pass
    try:
        return tuple(_values(getattr(vec_field, c), unit) for c in ("x", "y", "z"))
    except AttributeError:
        logger.debug("Vector field has no x/y/z components: %r", vec_field)
        raise RuntimeError("Unable to extract vector components from osyris field; incompatible format.")


def _collect_fields_from_mesh(mesh) -> List[str]:
    try:
        return list(mesh.keys())
    except AttributeError as e:
        logger.error("Cannot extract fields from mesh: %s", e)
        return []


def _filter_levels(levels: Iterable[int], level_start: Optional[int], level_end: Optional[int]) -> List[int]:
    """Apply level_start/level_end filters to the list/iterable of levels."""
    levels = list(levels)
    if level_start is not None:
        levels = [lvl for lvl in levels if lvl >= level_start]
    if level_end is not None:
        levels = [lvl for lvl in levels if lvl <= level_end]
    return levels


def infer_boxlen(data) -> Optional[float]:
    """
    Box length from osyris metadata (``data.meta['boxlen']``), or None if not found.
    """
    meta = getattr(data, "meta", None)
    if isinstance(meta, Mapping) and "boxlen" in meta:
        value = meta["boxlen"]
        return float(getattr(value, "magnitude", value))
    return None


def infer_code_units(data) -> Optional[Tuple[float, float, float]]:
    """
    ``(unit_l, unit_d, unit_t)`` in cgs from osyris metadata, or None if any is missing.
    """
    meta = getattr(data, "meta", None)
    if not isinstance(meta, Mapping):
        return None

    units = []
    for key, unit in (("unit_l", "cm"), ("unit_d", "g/cm**3"), ("unit_t", "s")):
        if key not in meta:
            return None
        value = meta[key]
        if hasattr(value, "to"):
            value = value.to(unit)
        units.append(float(getattr(value, "magnitude", value)))
    return tuple(units)


def _code_divisors(unit_l: float, unit_d: float, unit_t: float) -> Dict[str, float]:
    """cgs value of one code unit for every field in CGS_UNITS."""
    unit_v = unit_l / unit_t
    return {
        "dx": unit_l,
        "position": unit_l,
        "density": unit_d,
        "velocity": unit_v,
        "pressure": unit_d * unit_v ** 2,
    }


def cell_table_from_mesh(
    mesh,
    fields: Optional[List[str]] = None,
    level_start: Optional[int] = None,
    level_end: Optional[int] = None,
    boxlen: Optional[float] = None,
    scale: Optional[Mapping[str, float]] = None,
    gamma: Optional[float] = None,
    code_units: Optional[Tuple[float, float, float]] = None,
) -> CellTable:
    """
    Convert an osyris mesh into a CellTable.

    Integer coordinates are recovered as ``floor(position / dx)`` per cell; the
    box length follows from ``dx * 2**level`` (same units as the positions),
    falling back to ``boxlen`` for an empty mesh.

    Args:
        mesh: osyris Datagroup (or any mapping with ``level``, ``dx``, ``position``).
        fields: osyris field names to carry (default: density, velocity, pressure).
        level_start, level_end: inclusive level filter.
        boxlen: box length used when the mesh has no cells.
        scale: unit table for the CellTable.
        gamma: adiabatic index (default: GAMMA from the configuration).
        code_units: ``(unit_l, unit_d, unit_t)`` in cgs. When given, positions,
            cell sizes and the hydro fields of CGS_UNITS are converted to cgs
            and divided by the matching code unit; other fields are kept as is.

    Raises:
        KeyError: a requested field is not in the mesh.
    """
    divisors = _code_divisors(*code_units) if code_units is not None else {}

    def unit_of(name):
        return CGS_UNITS.get(name) if code_units is not None else None

    def scalar(name):
        return _values(mesh[name], unit_of(name)) / divisors.get(name, 1.0)

    def vector(name):
        return tuple(c / divisors.get(name, 1.0) for c in _extract_vector(mesh[name], unit_of(name)))

    levels_all = np.asarray(mesh["level"].values).astype(np.int64)
    dx_all = scalar("dx")

    levels = _filter_levels(np.unique(levels_all), level_start, level_end)
    keep = np.isin(levels_all, levels)
    logger.info("Levels kept: %s (%d of %d cells)", [int(l) for l in levels], int(keep.sum()), len(levels_all))

    level = levels_all[keep]
    dx = dx_all[keep]
    px, py, pz = (c[keep] for c in vector("position"))

    if len(level):
        boxlen = float(dx[0] * 2.0 ** level[0])
    elif boxlen is None:
        boxlen = 1.0

    coords = [np.floor(p / dx).astype(np.int64) for p in (px, py, pz)]

    out: Dict[str, np.ndarray] = {}
    for name in fields or DEFAULT_FIELDS:
        if name not in mesh:
            raise KeyError(f"Field '{name}' not found in mesh")
        if name in VECTOR_FIELDS:
            for comp, arr in zip(VECTOR_FIELDS[name], vector(name)):
                out[comp] = arr[keep]
        elif name in SCALAR_FIELDS:
            out[SCALAR_FIELDS[name]] = scalar(name)[keep]
        elif hasattr(mesh[name], "x"):
            for comp, arr in zip("xyz", _extract_vector(mesh[name])):
                out[f"{name}_{comp}"] = arr[keep]
        else:
            out[name] = np.asarray(mesh[name].values, dtype=float)[keep]

    lmin = int(min(levels)) if levels else None
    lmax = int(max(levels)) if levels else None

    return CellTable(
        level=level,
        cx=coords[0],
        cy=coords[1],
        cz=coords[2],
        fields=out,
        lmin=lmin,
        lmax=lmax,
        boxlen=boxlen,
        scale=scale or {},
        gamma=gamma,
    )


def read_snapshot(input_folder: str, output_num: int):
    """
    Load a RAMSES snapshot using osyris.RamsesDataset and return the loaded dataset.
    """
    return osyris.RamsesDataset(output_num, path=input_folder).load()


def load_cell_table_from_snapshot(
    input_folder: str,
    output_num: int,
    fields: Optional[List[str]] = None,
    level_start: Optional[int] = None,
    level_end: Optional[int] = None,
    scale: Optional[Mapping[str, float]] = None,
) -> CellTable:
    """
    Read one output and convert its mesh.

    When the metadata carries the RAMSES code units, the mesh is brought
    back to code units and, unless ``scale`` is given, the unit table is
    derived from them.

    Raises:
        KeyError: the dataset has no 'mesh', or a requested field is missing.
    """
    data = read_snapshot(input_folder, output_num)
    if "mesh" not in data:
        raise KeyError(f"Dataset {output_num} does not contain a 'mesh' key")

    code_units = infer_code_units(data)
    if scale is None and code_units is None:
        logger.warning("No code units in the metadata of output %s; only 'standard' units are available.", output_num)
    elif scale is None:
        scale = code_unit_scale(*code_units)
        logger.debug("Unit table from unit_l=%g cm, unit_d=%g g/cm3, unit_t=%g s", *code_units)

    meta = getattr(data, "meta", None)
    gamma = meta.get("gamma") if isinstance(meta, Mapping) else None

    return cell_table_from_mesh(
        data["mesh"],
        fields=fields,
        level_start=level_start,
        level_end=level_end,
        boxlen=infer_boxlen(data),
        scale=scale,
        gamma=None if gamma is None else float(getattr(gamma, "magnitude", gamma)),
        code_units=code_units,
    )


def list_fields_for_snapshot(input_folder: str, output_num: int) -> List[str]:
    """
    Load one snapshot and return the list of fields found in its mesh.
    """
    try:
        ds = read_snapshot(input_folder, output_num)
    except (OSError, ValueError, KeyError) as e:
        logger.error("Failed to load output %s for field listing: %s", output_num, e)
        return []

    if ds is None or "mesh" not in ds:
        logger.warning("No 'mesh' found in snapshot %s; cannot list fields.", output_num)
        return []

    unique_fields = []
    for f in _collect_fields_from_mesh(ds["mesh"]):
        if f not in unique_fields:
            unique_fields.append(f)
    return unique_fields
