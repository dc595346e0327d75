#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Unit tables from RAMSES code units
──────────────────────────────────────────────────────────────────────────────
A RAMSES output defines its code units through three cgs numbers:
``unit_l`` [cm], ``unit_d`` [g/cm^3] and ``unit_t`` [s]. Every conversion
factor of the scale table follows from them and a few physical constants.

Temperatures assume a fully ionised primordial gas with hydrogen mass
fraction X = 0.76 and mean molecular weight 1 / X.

"""

from __future__ import annotations

from typing import Dict

from .errors import InvalidParameter

# cgs
AU = 1.495978707e13
PC = 3.08567758128e18
LY = 9.4607304725808e17
MSOL = 1.9891e33
MH = 1.66e-24
KB = 1.380649e-16
YR = 3.15576e7

X_FRAC = 0.76
MU = 1.0 / X_FRAC


def code_unit_scale(unit_l: float, unit_d: float, unit_t: float) -> Dict[str, float]:
    """
    Conversion factors from code units to every registered unit symbol.

    Args:
        unit_l: code length in cm.
        unit_d: code density in g/cm^3.
        unit_t: code time in s.

    Returns:
        dict ``symbol -> factor`` suitable for ``CellTable(scale=...)``.
    """
    unit_l, unit_d, unit_t = float(unit_l), float(unit_d), float(unit_t)
    if not (unit_l > 0 and unit_d > 0 and unit_t > 0):
        raise InvalidParameter(f"Code units must be positive, got {(unit_l, unit_d, unit_t)!r}.", parameter="scale")

    unit_m = unit_d * unit_l ** 3
    unit_v = unit_l / unit_t
    unit_e = unit_m * unit_v ** 2
    unit_p = unit_d * unit_v ** 2
    pc = unit_l / PC

    return {
        # mass
        "Msol": unit_m / MSOL,
        "g": unit_m,
        "kg": unit_m / 1e3,
        # length
        "pc": pc,
        "kpc": pc / 1e3,
        "Mpc": pc / 1e6,
        "cm": unit_l,
        "m": unit_l / 1e2,
        "km": unit_l / 1e5,
        "au": unit_l / AU,
        "ly": unit_l / LY,
        # density
        "g_cm3": unit_d,
        "kg_m3": unit_d * 1e3,
        "Msol_pc3": unit_d * PC ** 3 / MSOL,
        "Msol_kpc3": unit_d * (PC * 1e3) ** 3 / MSOL,
        "nH": X_FRAC / MH * unit_d,
        # velocity
        "km_s": unit_v / 1e5,
        "m_s": unit_v / 1e2,
        "cm_s": unit_v,
        # temperature of p / rho
        "K": MH / KB * unit_v ** 2 * MU,
        # volume
        "pc3": pc ** 3,
        "kpc3": (pc / 1e3) ** 3,
        "cm3": unit_l ** 3,
        "m3": (unit_l / 1e2) ** 3,
        # surface density
        "Msol_pc2": unit_d * unit_l * PC ** 2 / MSOL,
        "Msol_kpc2": unit_d * unit_l * (PC * 1e3) ** 2 / MSOL,
        "g_cm2": unit_d * unit_l,
        # energy
        "erg": unit_e,
        "J": unit_e / 1e7,
        # pressure
        "Ba": unit_p,
        "erg_cm3": unit_p,
        "Pa": unit_p / 10.0,
        # time
        "yr": unit_t / YR,
        "Myr": unit_t / YR / 1e6,
        "Gyr": unit_t / YR / 1e9,
        "s": unit_t,
        # specific angular momentum
        "pc_km_s": pc * unit_v / 1e5,
        "kpc_km_s": pc / 1e3 * unit_v / 1e5,
        "cm2_s": unit_l * unit_v,
        # angular momentum
        "Msol_pc_km_s": unit_m / MSOL * pc * unit_v / 1e5,
        "Msol_kpc_km_s": unit_m / MSOL * pc / 1e3 * unit_v / 1e5,
        "g_cm2_s": unit_m * unit_l * unit_v,
    }
