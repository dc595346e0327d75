"""
Unit tests for the osyris mesh adapter.

These tests use small in-memory stand-ins for osyris Datagroups:
every field exposes ``.values`` and vector fields expose ``.x/.y/.z``.

"""

from types import SimpleNamespace

import numpy as np
import pytest

from chhaya import (
    cell_table_from_mesh,
    infer_code_units,
    list_fields_for_snapshot,
    load_cell_table_from_snapshot,
    projection,
    resolve,
)
from chhaya.config_module import get_config
from chhaya.loader import infer_boxlen


# ──────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────

def _array(values):
    return SimpleNamespace(values=np.asarray(values, dtype=float))


def _vector(x, y, z):
    return SimpleNamespace(x=_array(x), y=_array(y), z=_array(z))


def _fake_mesh(scale=1.0):
    """Two level-1 cells and one level-2 cell in a box of length ``scale``."""
    return {
        "level": _array([1, 1, 2]),
        "dx": _array([0.5 * scale, 0.5 * scale, 0.25 * scale]),
        "position": _vector(
            [0.25 * scale, 0.75 * scale, 0.125 * scale],
            [0.25 * scale, 0.25 * scale, 0.625 * scale],
            [0.25 * scale, 0.25 * scale, 0.875 * scale],
        ),
        "density": _array([1.0, 2.0, 3.0]),
        "pressure": _array([0.1, 0.2, 0.3]),
        "velocity": _vector([1.0, 2.0, 3.0], [0.0, 0.0, 0.0], [-1.0, -2.0, -3.0]),
        "B_field": _vector([0.1, 0.1, 0.1], [0.2, 0.2, 0.2], [0.3, 0.3, 0.3]),
        "passive_scalar_1": _array([0.5, 0.5, 0.5]),
    }


# ──────────────────────────────────────────────────────────────
# cell_table_from_mesh
# ──────────────────────────────────────────────────────────────

def test_coordinates_from_positions():
    table = cell_table_from_mesh(_fake_mesh())
    np.testing.assert_array_equal(table.level, [1, 1, 2])
    np.testing.assert_array_equal(table.cx, [0, 1, 0])
    np.testing.assert_array_equal(table.cy, [0, 0, 2])
    np.testing.assert_array_equal(table.cz, [0, 0, 3])
    assert table.boxlen == 1.0
    assert (table.lmin, table.lmax) == (1, 2)


def test_boxlen_from_cell_size():
    table = cell_table_from_mesh(_fake_mesh(scale=4.0))
    assert table.boxlen == 4.0
    np.testing.assert_array_equal(table.cy, [0, 0, 2])


def test_field_renaming():
    table = cell_table_from_mesh(_fake_mesh())
    assert set(table.fields) == {"rho", "p", "vx", "vy", "vz"}
    np.testing.assert_array_equal(table.fields["vz"], [-1.0, -2.0, -3.0])


def test_extra_fields():
    table = cell_table_from_mesh(_fake_mesh(), fields=["density", "B_field", "passive_scalar_1"])
    assert set(table.fields) == {"rho", "B_field_x", "B_field_y", "B_field_z", "passive_scalar_1"}


def test_level_filter():
    table = cell_table_from_mesh(_fake_mesh(), level_start=2)
    assert len(table) == 1
    assert (table.lmin, table.lmax) == (2, 2)
    np.testing.assert_array_equal(table.fields["rho"], [3.0])


def test_empty_level_selection_uses_fallback_boxlen():
    table = cell_table_from_mesh(_fake_mesh(), level_start=5, boxlen=2.0)
    assert len(table) == 0
    assert table.boxlen == 2.0


def test_missing_field():
    with pytest.raises(KeyError):
        cell_table_from_mesh(_fake_mesh(), fields=["metallicity"])


# ──────────────────────────────────────────────────────────────
# Snapshot helpers
# ──────────────────────────────────────────────────────────────

def test_infer_boxlen():
    assert infer_boxlen(SimpleNamespace(meta={"boxlen": 2.0})) == 2.0
    assert infer_boxlen(SimpleNamespace(meta={"boxlen": SimpleNamespace(magnitude=3.0)})) == 3.0
    assert infer_boxlen(SimpleNamespace(meta={})) is None
    assert infer_boxlen({"mesh": {}}) is None


def test_snapshot_helpers_use_reader(monkeypatch):
    monkeypatch.setattr("chhaya.loader.read_snapshot", lambda folder, num: {"mesh": _fake_mesh()})
    assert list_fields_for_snapshot("run", 1)[:3] == ["level", "dx", "position"]
    table = load_cell_table_from_snapshot("run", 1, fields=["density"], scale={"pc": 1000.0})
    assert set(table.fields) == {"rho"}
    assert table.scale["pc"] == 1000.0


def test_snapshot_without_mesh(monkeypatch):
    monkeypatch.setattr("chhaya.loader.read_snapshot", lambda folder, num: {"part": {}})
    with pytest.raises(KeyError):
        load_cell_table_from_snapshot("run", 1)
    assert list_fields_for_snapshot("run", 1) == []


# ──────────────────────────────────────────────────────────────
# Code units
# ──────────────────────────────────────────────────────────────

UNIT_L = 3.08567758128e21  # 1 kpc
UNIT_D = 1.0e-24
UNIT_T = 3.15576e13
UNIT_V = UNIT_L / UNIT_T


class _Dataset(dict):
    """Groups by name plus an osyris-like ``meta`` dict."""

    def __init__(self, groups, meta):
        super().__init__(groups)
        self.meta = meta


def _cgs_mesh():
    """The fake mesh of a 1 kpc box with hydro fields in cgs."""
    mesh = _fake_mesh(scale=UNIT_L)
    mesh["density"] = _array(np.array([1.0, 2.0, 3.0]) * UNIT_D)
    mesh["velocity"] = _vector(
        np.array([1.0, 2.0, 3.0]) * UNIT_V, [0.0, 0.0, 0.0], np.array([-1.0, -2.0, -3.0]) * UNIT_V,
    )
    mesh["pressure"] = _array(np.array([0.1, 0.2, 0.3]) * UNIT_D * UNIT_V ** 2)
    return mesh


def _meta(**extra):
    return {"unit_l": UNIT_L, "unit_d": UNIT_D, "unit_t": UNIT_T, "boxlen": 1.0, **extra}


def test_infer_code_units():
    meta = {"unit_l": SimpleNamespace(magnitude=UNIT_L), "unit_d": UNIT_D, "unit_t": UNIT_T}
    assert infer_code_units(SimpleNamespace(meta=meta)) == (UNIT_L, UNIT_D, UNIT_T)
    assert infer_code_units(SimpleNamespace(meta={"unit_l": UNIT_L})) is None
    assert infer_code_units({"mesh": {}}) is None


def test_snapshot_converted_to_code_units(monkeypatch):
    data = _Dataset({"mesh": _cgs_mesh()}, _meta())
    monkeypatch.setattr("chhaya.loader.read_snapshot", lambda folder, num: data)
    table = load_cell_table_from_snapshot("run", 1)

    assert table.boxlen == pytest.approx(1.0, rel=1e-14)
    np.testing.assert_array_equal(table.cx, [0, 1, 0])
    np.testing.assert_array_equal(table.cz, [0, 0, 3])
    np.testing.assert_allclose(table.fields["rho"], [1.0, 2.0, 3.0], rtol=1e-12)
    np.testing.assert_allclose(table.fields["vx"], [1.0, 2.0, 3.0], rtol=1e-12)
    np.testing.assert_allclose(table.fields["p"], [0.1, 0.2, 0.3], rtol=1e-12)


def test_snapshot_unit_table_from_code_units(monkeypatch):
    data = _Dataset({"mesh": _cgs_mesh()}, _meta())
    monkeypatch.setattr("chhaya.loader.read_snapshot", lambda folder, num: data)
    table = load_cell_table_from_snapshot("run", 1)

    assert table.scale["pc"] == pytest.approx(1000.0, rel=1e-12)
    assert table.scale["km_s"] == pytest.approx(UNIT_V / 1e5, rel=1e-12)
    assert table.scale["Msol_pc2"] == pytest.approx(UNIT_D * UNIT_L * 3.08567758128e18 ** 2 / 1.9891e33, rel=1e-12)

    # cell masses in grams straight from the cgs inputs
    rho = np.array([1.0, 2.0, 3.0]) * UNIT_D
    dx = np.array([0.5, 0.5, 0.25]) * UNIT_L
    assert resolve(table, "mass", "g").sum() == pytest.approx((rho * dx ** 3).sum(), rel=1e-12)

    total = resolve(table, "mass", "Msol").sum()
    res = projection(table, "sd", "Msol_pc2", res=4)
    pixel_pc = res.pixel_size * table.scale["pc"]
    assert res["sd"].sum() * pixel_pc ** 2 == pytest.approx(total, rel=1e-10)


def test_snapshot_explicit_scale_wins(monkeypatch):
    data = _Dataset({"mesh": _cgs_mesh()}, _meta(gamma=1.4))
    monkeypatch.setattr("chhaya.loader.read_snapshot", lambda folder, num: data)
    table = load_cell_table_from_snapshot("run", 1, scale={"pc": 1.0})

    assert table.scale["pc"] == 1.0
    assert "Msol" not in table.scale
    assert table.gamma == 1.4
    np.testing.assert_allclose(table.fields["rho"], [1.0, 2.0, 3.0], rtol=1e-12)


def test_mesh_gamma_defaults_to_config(monkeypatch):
    monkeypatch.setitem(get_config(), "GAMMA", 1.4)
    assert cell_table_from_mesh(_fake_mesh()).gamma == 1.4
