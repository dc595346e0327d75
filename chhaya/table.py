#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Cell tables
──────────────────────────────────────────────────────────────────────────────
Columnar, read-only containers for AMR leaf cells.

A cell at refinement ``level`` has integer coordinates ``0 <= c < 2**level``
along each axis; its edge length is ``boxlen * 2**-level`` and its lower
corner sits at ``c * boxlen * 2**-level``.

"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .config_module import get_config
from .errors import InvalidParameter

AXES = ("x", "y", "z")


def axis_index(axis) -> int:
    """Map 'x'/'y'/'z' (or 0/1/2) to a column index."""
    if isinstance(axis, str) and axis in AXES:
        return AXES.index(axis)
    if isinstance(axis, (int, np.integer)) and not isinstance(axis, bool) and 0 <= int(axis) <= 2:
        return int(axis)
    raise InvalidParameter(f"Invalid axis {axis!r}; use 'x', 'y' or 'z'.", parameter="axis")


class UnitTable(Mapping):
    """
    Read-only mapping ``unit symbol -> multiplicative factor`` from code units.

    The symbol ``"standard"`` always maps to 1.0.
    """

    def __init__(self, factors: Optional[Mapping[str, float]] = None):
        data = {str(k): float(v) for k, v in (factors or {}).items()}
        data["standard"] = 1.0
        self._factors = MappingProxyType(data)

    def __getitem__(self, symbol: str) -> float:
        return self._factors[symbol]

    def __iter__(self):
        return iter(self._factors)

    def __len__(self) -> int:
        return len(self._factors)

    def __repr__(self) -> str:
        return f"UnitTable({dict(self._factors)!r})"

    def to_dict(self) -> Dict[str, float]:
        return dict(self._factors)


@dataclass(frozen=True)
class Cell:
    level: int
    coord: Tuple[int, int, int]
    values: Dict[str, float] = field(default_factory=dict)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class CellTable:
    """
    Immutable columnar table of AMR cells.

    Parameters:
    - level: refinement level of every cell.
    - cx, cy, cz: integer cell coordinates at that level.
    - fields: mapping of field name -> float64 column (e.g. rho, vx, vy, vz, p).
    - lmin, lmax: level range of the snapshot (default: from the data).
    - boxlen: box length in code units.
    - scale: unit table used to convert code units.
    - gamma: adiabatic index (default: GAMMA from the configuration).
    """

    level: np.ndarray
    cx: np.ndarray
    cy: np.ndarray
    cz: np.ndarray
    fields: Mapping[str, np.ndarray] = field(default_factory=dict)
    lmin: Optional[int] = None
    lmax: Optional[int] = None
    boxlen: float = 1.0
    scale: UnitTable = field(default_factory=UnitTable)
    gamma: Optional[float] = None

    def __post_init__(self):
        level = np.array(self.level, dtype=np.int64).ravel()
        coords = [np.array(c, dtype=np.int64).ravel() for c in (self.cx, self.cy, self.cz)]
        n = len(level)

        for name, col in zip(AXES, coords):
            if len(col) != n:
                raise InvalidParameter(
                    f"Coordinate column c{name} has {len(col)} entries, expected {n}.", parameter=f"c{name}"
                )

        fields = {}
        for name, col in dict(self.fields).items():
            col = np.array(col, dtype=np.float64).ravel()
            if len(col) != n:
                raise InvalidParameter(f"Field '{name}' has {len(col)} entries, expected {n}.", parameter=name)
            fields[name] = _readonly(col)

        lmin = int(level.min()) if self.lmin is None and n else self.lmin
        lmax = int(level.max()) if self.lmax is None and n else self.lmax
        lmin = 0 if lmin is None else int(lmin)
        lmax = lmin if lmax is None else int(lmax)

        if lmin < 0 or lmax < lmin:
            raise InvalidParameter(f"Invalid level range [{lmin}, {lmax}].", parameter="lmin")
        if n and (level.min() < lmin or level.max() > lmax):
            raise InvalidParameter(
                f"Cell levels [{level.min()}, {level.max()}] fall outside [{lmin}, {lmax}].", parameter="level"
            )
        if not self.boxlen > 0:
            raise InvalidParameter(f"Box length must be positive, got {self.boxlen!r}.", parameter="boxlen")

        if n:
            ncell = np.left_shift(1, level)
            for name, col in zip(AXES, coords):
                if (col < 0).any() or (col >= ncell).any():
                    raise InvalidParameter(
                        f"Cell coordinates c{name} must satisfy 0 <= c < 2**level.", parameter=f"c{name}"
                    )

        scale = self.scale if isinstance(self.scale, UnitTable) else UnitTable(self.scale)

        object.__setattr__(self, "level", _readonly(level))
        object.__setattr__(self, "cx", _readonly(coords[0]))
        object.__setattr__(self, "cy", _readonly(coords[1]))
        object.__setattr__(self, "cz", _readonly(coords[2]))
        object.__setattr__(self, "fields", MappingProxyType(fields))
        object.__setattr__(self, "lmin", lmin)
        object.__setattr__(self, "lmax", lmax)
        object.__setattr__(self, "boxlen", float(self.boxlen))
        object.__setattr__(self, "scale", scale)
        gamma = get_config()["GAMMA"] if self.gamma is None else self.gamma
        object.__setattr__(self, "gamma", float(gamma))

    def __len__(self) -> int:
        return len(self.level)

    @property
    def coords(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return (self.cx, self.cy, self.cz)

    def coord(self, axis) -> np.ndarray:
        return self.coords[axis_index(axis)]

    def cell_size(self) -> np.ndarray:
        """Edge length of every cell in code units."""
        return self.boxlen * np.exp2(-self.level.astype(np.float64))

    def position(self, axis) -> np.ndarray:
        """Cell-center position along ``axis`` in code units."""
        return (self.coord(axis) + 0.5) * self.cell_size()

    def levels_present(self) -> List[int]:
        return [int(lvl) for lvl in np.unique(self.level)]

    def select(self, mask) -> "CellTable":
        """New table restricted to the rows where ``mask`` is True."""
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != (len(self),):
            raise InvalidParameter(
                f"Mask has shape {mask.shape}, expected ({len(self)},).", parameter="mask"
            )
        return CellTable(
            level=self.level[mask],
            cx=self.cx[mask],
            cy=self.cy[mask],
            cz=self.cz[mask],
            fields={k: v[mask] for k, v in self.fields.items()},
            lmin=self.lmin,
            lmax=self.lmax,
            boxlen=self.boxlen,
            scale=self.scale,
            gamma=self.gamma,
        )

    def cells(self) -> Iterable[Cell]:
        for i in range(len(self)):
            yield Cell(
                level=int(self.level[i]),
                coord=(int(self.cx[i]), int(self.cy[i]), int(self.cz[i])),
                values={k: float(v[i]) for k, v in self.fields.items()},
            )

    @classmethod
    def from_cells(cls, cells: Iterable[Cell], **kwargs) -> "CellTable":
        """Build a table from ``Cell`` records; every cell must carry the same field names."""
        cells = list(cells)
        names = sorted(cells[0].values) if cells else []
        for c in cells:
            if sorted(c.values) != names:
                raise InvalidParameter("All cells must carry the same fields.", parameter="fields")
        coords = np.array([c.coord for c in cells], dtype=np.int64).reshape(-1, 3)
        return cls(
            level=np.array([c.level for c in cells], dtype=np.int64),
            cx=coords[:, 0],
            cy=coords[:, 1],
            cz=coords[:, 2],
            fields={name: np.array([c.values[name] for c in cells], dtype=np.float64) for name in names},
            **kwargs,
        )
