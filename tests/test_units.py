"""
Tests for unit tables derived from RAMSES code units.

"""

import pytest

from chhaya import InvalidParameter, code_unit_scale
from chhaya.config_module import get_config
from chhaya.units import KB, MH, MSOL, PC, X_FRAC, YR


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_every_registered_symbol_has_a_factor():
    scale = code_unit_scale(3.0e21, 1.0e-24, 3.0e13)
    assert set(get_config()["UNIT_DIMENSIONS"]) <= set(scale)


def test_astronomical_code_units():
    """Code units of 1 pc, 1 Msol/pc^3 and 1 yr make those symbols exactly 1."""
    scale = code_unit_scale(PC, MSOL / PC ** 3, YR)
    for symbol in ("pc", "Msol", "Msol_pc3", "Msol_pc2", "yr"):
        assert scale[symbol] == pytest.approx(1.0, rel=1e-12)
    assert scale["kpc"] == pytest.approx(1e-3, rel=1e-12)
    assert scale["km_s"] == pytest.approx(PC / YR / 1e5, rel=1e-12)
    assert scale["pc_km_s"] == pytest.approx(scale["km_s"], rel=1e-12)
    assert scale["Msol_pc_km_s"] == pytest.approx(scale["km_s"], rel=1e-12)


def test_cgs_code_units():
    scale = code_unit_scale(1.0, 1.0, 1.0)
    assert scale["cm"] == scale["g"] == scale["s"] == scale["erg"] == scale["Ba"] == 1.0
    assert scale["J"] == pytest.approx(1e-7)
    assert scale["Pa"] == pytest.approx(0.1)
    assert scale["nH"] == pytest.approx(X_FRAC / MH)
    assert scale["K"] == pytest.approx(MH / KB / X_FRAC)


@pytest.mark.parametrize("units", [(0.0, 1.0, 1.0), (1.0, -1.0, 1.0), (1.0, 1.0, float("nan"))])
def test_non_positive_code_units_rejected(units):
    with pytest.raises(InvalidParameter):
        code_unit_scale(*units)
