#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Variable resolution
──────────────────────────────────────────────────────────────────────────────
Turns a variable name plus a unit symbol into one float64 value per cell.

Lookup order:
 1. raw field of the cell table (``rho``, ``vx``, ``p``, or anything else)
 2. alias of a raw field (``density`` -> ``rho``, ``pressure`` -> ``p``)
 3. derived quantity from the closed ``DERIVED`` table below

Each entry carries its physical dimension so that unit symbols of another
dimension are rejected before any number is produced.

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np

from .config_module import field_alias, field_dimension, unit_dimension
from .errors import IncompatibleUnit, UnknownVariable
from .table import CellTable


@dataclass(frozen=True)
class VariableSpec:
    name: str
    dimension: str
    requires: Tuple[str, ...] = ()
    derive: Optional[Callable[..., np.ndarray]] = None
    unit_power: int = 1

    @property
    def is_raw(self) -> bool:
        return self.derive is None


def _get(table: CellTable, name: str, center=None) -> np.ndarray:
    return resolve(table, name, center=center)


def _cellsize(table, center):
    return table.cell_size()


def _volume(table, center):
    return table.cell_size() ** 3


def _mass(table, center):
    return _get(table, "rho") * table.cell_size() ** 3


def _speed2(table, center):
    return _get(table, "vx") ** 2 + _get(table, "vy") ** 2 + _get(table, "vz") ** 2


def _square(component):
    def derive(table, center):
        return _get(table, component) ** 2
    return derive


def _position(axis):
    def derive(table, center):
        return table.position(axis)
    return derive


def _sound_speed(table, center):
    return np.sqrt(table.gamma * _get(table, "p") / _get(table, "rho"))


def _temperature(table, center):
    return _get(table, "p") / _get(table, "rho")


def _kinetic_energy(table, center):
    return 0.5 * _get(table, "mass") * _speed2(table, center)


def _thermal_energy(table, center):
    return _get(table, "p") * table.cell_size() ** 3


def _radius(axes):
    def derive(table, center):
        c = _center(table, center)
        r2 = np.zeros(len(table), dtype=np.float64)
        for ax in axes:
            r2 += (table.position(ax) - c[ax]) ** 2
        return np.sqrt(r2)
    return derive


def _center(table: CellTable, center) -> Tuple[float, float, float]:
    if center is None:
        half = 0.5 * table.boxlen
        return (half, half, half)
    return tuple(float(c) for c in center)


def _relative(table, center):
    c = _center(table, center)
    return [table.position(ax) - c[ax] for ax in range(3)]


def _safe_ratio(numerator, denominator):
    # 0 on the axis / at the center, where the direction is undefined
    out = np.zeros_like(numerator, dtype=np.float64)
    np.divide(numerator, denominator, out=out, where=denominator > 0)
    return out


def _velocity(table):
    return [_get(table, v) for v in VELOCITY]


def _vr_cylinder(table, center):
    x, y, _ = _relative(table, center)
    vx, vy, _ = _velocity(table)
    return _safe_ratio(x * vx + y * vy, np.hypot(x, y))


def _vphi_cylinder(table, center):
    x, y, _ = _relative(table, center)
    vx, vy, _ = _velocity(table)
    return _safe_ratio(x * vy - y * vx, np.hypot(x, y))


def _vr_sphere(table, center):
    x, y, z = _relative(table, center)
    vx, vy, vz = _velocity(table)
    return _safe_ratio(x * vx + y * vy + z * vz, np.sqrt(x ** 2 + y ** 2 + z ** 2))


def _vtheta_sphere(table, center):
    """Polar component, positive away from the +z axis."""
    x, y, z = _relative(table, center)
    vx, vy, vz = _velocity(table)
    rc2 = x ** 2 + y ** 2
    return _safe_ratio(z * (x * vx + y * vy) - rc2 * vz, np.sqrt(rc2 + z ** 2) * np.sqrt(rc2))


def _squared(derive):
    def squared(table, center):
        return derive(table, center) ** 2
    return squared


def _specific_angular_momentum(axis):
    """Component ``axis`` of r x v, with r relative to the center."""
    a, b = {0: (1, 2), 1: (2, 0), 2: (0, 1)}[axis]

    def derive(table, center):
        r = _relative(table, center)
        v = _velocity(table)
        return r[a] * v[b] - r[b] * v[a]
    return derive


def _specific_angular_momentum_norm(table, center):
    return np.sqrt(sum(_specific_angular_momentum(ax)(table, center) ** 2 for ax in range(3)))


def _angular_momentum(specific):
    def derive(table, center):
        return _get(table, "mass") * specific(table, center)
    return derive


def _cylindrical_angular_momentum(component):
    """Projection of r x v on the cylindrical radial or azimuthal unit vector."""
    def derive(table, center):
        x, y, _ = _relative(table, center)
        hx = _specific_angular_momentum(0)(table, center)
        hy = _specific_angular_momentum(1)(table, center)
        along = hx * x + hy * y if component == "r" else hy * x - hx * y
        return _get(table, "mass") * _safe_ratio(along, np.hypot(x, y))
    return derive


def _entropy_index(table, center):
    return _get(table, "p") / _get(table, "rho") ** table.gamma


def _mach(component):
    def derive(table, center):
        speed = np.sqrt(_speed2(table, center)) if component is None else _get(table, component)
        return speed / _sound_speed(table, center)
    return derive


VELOCITY = ("vx", "vy", "vz")
HYDRO = VELOCITY + ("p", "rho")

DERIVED: Dict[str, VariableSpec] = {
    spec.name: spec
    for spec in (
        VariableSpec("mass", "mass", ("rho",), _mass),
        VariableSpec("sd", "surface_density", ("mass",), lambda t, c: _get(t, "mass")),
        VariableSpec("volume", "volume", (), _volume),
        VariableSpec("cellsize", "length", (), _cellsize),
        VariableSpec("level", "dimensionless", (), lambda t, c: t.level.astype(np.float64)),
        VariableSpec("x", "length", (), _position(0)),
        VariableSpec("y", "length", (), _position(1)),
        VariableSpec("z", "length", (), _position(2)),
        VariableSpec("vx2", "velocity", ("vx",), _square("vx"), unit_power=2),
        VariableSpec("vy2", "velocity", ("vy",), _square("vy"), unit_power=2),
        VariableSpec("vz2", "velocity", ("vz",), _square("vz"), unit_power=2),
        VariableSpec("v2", "velocity", VELOCITY, _speed2, unit_power=2),
        VariableSpec("v", "velocity", VELOCITY, lambda t, c: np.sqrt(_speed2(t, c))),
        VariableSpec("cs", "velocity", ("p", "rho"), _sound_speed),
        VariableSpec("T", "temperature", ("p", "rho"), _temperature),
        VariableSpec("ekin", "energy", ("mass",) + VELOCITY, _kinetic_energy),
        VariableSpec("etherm", "energy", ("p",), _thermal_energy),
        VariableSpec("r_sphere", "length", (), _radius((0, 1, 2))),
        VariableSpec("r_cylinder", "length", (), _radius((0, 1))),
        VariableSpec("vr_cylinder", "velocity", VELOCITY, _vr_cylinder),
        VariableSpec("vphi_cylinder", "velocity", VELOCITY, _vphi_cylinder),
        VariableSpec("vr_cylinder2", "velocity", VELOCITY, _squared(_vr_cylinder), unit_power=2),
        VariableSpec("vphi_cylinder2", "velocity", VELOCITY, _squared(_vphi_cylinder), unit_power=2),
        VariableSpec("vr_sphere", "velocity", VELOCITY, _vr_sphere),
        VariableSpec("vtheta_sphere", "velocity", VELOCITY, _vtheta_sphere),
        VariableSpec("vphi_sphere", "velocity", VELOCITY, _vphi_cylinder),
        VariableSpec("mach", "dimensionless", HYDRO, _mach(None)),
        VariableSpec("machx", "dimensionless", HYDRO, _mach("vx")),
        VariableSpec("machy", "dimensionless", HYDRO, _mach("vy")),
        VariableSpec("machz", "dimensionless", HYDRO, _mach("vz")),
        VariableSpec("hx", "specific_angular_momentum", VELOCITY, _specific_angular_momentum(0)),
        VariableSpec("hy", "specific_angular_momentum", VELOCITY, _specific_angular_momentum(1)),
        VariableSpec("hz", "specific_angular_momentum", VELOCITY, _specific_angular_momentum(2)),
        VariableSpec("h", "specific_angular_momentum", VELOCITY, _specific_angular_momentum_norm),
        VariableSpec("lx", "angular_momentum", ("mass",) + VELOCITY, _angular_momentum(_specific_angular_momentum(0))),
        VariableSpec("ly", "angular_momentum", ("mass",) + VELOCITY, _angular_momentum(_specific_angular_momentum(1))),
        VariableSpec("lz", "angular_momentum", ("mass",) + VELOCITY, _angular_momentum(_specific_angular_momentum(2))),
        VariableSpec("l", "angular_momentum", ("mass",) + VELOCITY, _angular_momentum(_specific_angular_momentum_norm)),
        VariableSpec("lr_cylinder", "angular_momentum", ("mass",) + VELOCITY, _cylindrical_angular_momentum("r")),
        VariableSpec("lphi_cylinder", "angular_momentum", ("mass",) + VELOCITY, _cylindrical_angular_momentum("phi")),
        # K = p / rho**gamma, code units only
        VariableSpec("entropy_index", "entropy_index", ("p", "rho"), _entropy_index),
    )
}


def lookup(table: CellTable, name: str) -> VariableSpec:
    """
    Find how ``name`` is obtained for ``table`` without computing anything.

    Raises:
        UnknownVariable: name is unknown, or a field it needs is missing.
    """
    if name in table.fields:
        return VariableSpec(name, field_dimension(name))

    canonical = field_alias(name)
    if canonical in table.fields:
        return VariableSpec(canonical, field_dimension(canonical))

    spec = DERIVED.get(canonical)
    if spec is None:
        raise UnknownVariable(name)

    for req in spec.requires:
        try:
            lookup(table, req)
        except UnknownVariable:
            raise UnknownVariable(name, missing=req) from None
    return spec


def unit_factor(variable: str, dimension: str, unit: str, scale, power: int = 1) -> float:
    """
    Multiplicative factor converting ``variable`` from code units to ``unit``.

    Raises:
        IncompatibleUnit: unknown symbol, wrong dimension, or symbol absent from ``scale``.
    """
    if unit is None or unit == "standard":
        return 1.0

    udim = unit_dimension(unit)
    if udim is None:
        raise IncompatibleUnit(variable, unit, dimension, "unknown unit symbol")
    if udim != dimension:
        raise IncompatibleUnit(variable, unit, dimension, f"unit measures {udim}")
    if unit not in scale:
        raise IncompatibleUnit(variable, unit, dimension, "no conversion factor in the scale table")

    return float(scale[unit]) ** power


def check_unit(table: CellTable, name: str, unit: str) -> Tuple[VariableSpec, float]:
    """Validate a (variable, unit) pair; returns the spec and the conversion factor."""
    spec = lookup(table, name)
    return spec, unit_factor(name, spec.dimension, unit, table.scale, spec.unit_power)


def resolve(
    table: CellTable,
    name: str,
    unit: str = "standard",
    mask=None,
    center: Optional[Sequence[float]] = None,
) -> np.ndarray:
    """
    Values of ``name`` for every (selected) cell, converted to ``unit``.

    Args:
        table: source cells.
        name: raw field, alias or derived quantity.
        unit: unit symbol, "standard" for code units.
        mask: optional boolean row selection.
        center: reference point in code units for radii and for the
            center-relative velocity and angular momentum components
            (default: box center).

    Returns:
        1D float64 array, one value per selected cell.
    """
    spec, factor = check_unit(table, name, unit)

    if mask is not None:
        table = table.select(mask)

    if spec.is_raw:
        values = np.array(table.fields[spec.name], dtype=np.float64)
    else:
        values = np.asarray(spec.derive(table, center), dtype=np.float64)

    if factor != 1.0:
        values = values * factor
    return values
