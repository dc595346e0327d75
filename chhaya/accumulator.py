#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Pixel accumulators
──────────────────────────────────────────────────────────────────────────────
Per-worker storage for binned contributions, one float64 channel per named
quantity (``<var>:value``, ``weight``, ``coverage``, ...). Pixels are
addressed by a flat index ``iu * nv + iv`` into a map of shape ``(nu, nv)``.

 - DenseAccumulator: one flat array per channel.
 - SparseAccumulator: pixel-index keyed columns; only touched pixels are
   stored. Deposits are buffered and folded into the keyed columns in
   arrival order.

Both fold every deposit batch the same way (``fold``) and add batches in
the same order, so for identical input they hold bit-for-bit identical
values.

"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Tuple

import numpy as np

from .config_module import get_config
from .errors import InvalidParameter

logger = logging.getLogger("chhaya")

STRATEGIES = ("auto", "dense", "sparse")


def fold(flat: np.ndarray, values: Mapping[str, np.ndarray]) -> Tuple[np.ndarray, Dict[str, np.ndarray]]:
    """
    Sum values that land on the same pixel.

    Returns:
        (sorted unique pixel indices, channel -> per-pixel sums)
    """
    keys, inverse = np.unique(flat, return_inverse=True)
    inverse = inverse.ravel()
    return keys, {ch: np.bincount(inverse, weights=v, minlength=len(keys)) for ch, v in values.items()}


class DenseAccumulator:
    kind = "dense"

    def __init__(self, shape: Tuple[int, int], channels: Iterable[str]):
        self.shape = (int(shape[0]), int(shape[1]))
        self.size = self.shape[0] * self.shape[1]
        self._data: Dict[str, np.ndarray] = {ch: np.zeros(self.size, dtype=np.float64) for ch in channels}

    @property
    def channels(self) -> List[str]:
        return list(self._data)

    def deposit(self, flat: np.ndarray, values: Mapping[str, np.ndarray]) -> None:
        if len(flat) == 0:
            return
        keys, sums = fold(flat, values)
        for ch, s in sums.items():
            self._data[ch][keys] += s

    def merge(self, other: "DenseAccumulator") -> None:
        for ch in self._data:
            self._data[ch] += other._data[ch]

    def channel_flat(self, name: str) -> np.ndarray:
        return self._data[name].copy()

    def channel(self, name: str) -> np.ndarray:
        return self.channel_flat(name).reshape(self.shape)

    def occupied(self) -> int:
        if not self._data:
            return 0
        touched = np.zeros(self.size, dtype=bool)
        for arr in self._data.values():
            touched |= arr != 0.0
        return int(np.count_nonzero(touched))


class SparseAccumulator:
    kind = "sparse"

    def __init__(self, shape: Tuple[int, int], channels: Iterable[str], flush_size: int = 4_000_000):
        self.shape = (int(shape[0]), int(shape[1]))
        self.size = self.shape[0] * self.shape[1]
        self.flush_size = int(flush_size)
        self._keys = np.empty(0, dtype=np.int64)
        self._values: Dict[str, np.ndarray] = {ch: np.empty(0, dtype=np.float64) for ch in channels}
        self._pending_keys: List[np.ndarray] = []
        self._pending: Dict[str, List[np.ndarray]] = {ch: [] for ch in self._values}
        self._pending_count = 0

    @property
    def channels(self) -> List[str]:
        return list(self._values)

    def _push(self, keys: np.ndarray, sums: Mapping[str, np.ndarray]) -> None:
        self._pending_keys.append(keys)
        for ch in self._values:
            self._pending[ch].append(sums[ch])
        self._pending_count += len(keys)
        if self._pending_count >= self.flush_size:
            self._consolidate()

    def _consolidate(self) -> None:
        if not self._pending_keys:
            return
        keys, inverse = np.unique(np.concatenate([self._keys] + self._pending_keys), return_inverse=True)
        inverse = inverse.ravel()
        for ch in self._values:
            merged = np.concatenate([self._values[ch]] + self._pending[ch])
            self._values[ch] = np.bincount(inverse, weights=merged, minlength=len(keys))
            self._pending[ch] = []
        self._keys = keys
        self._pending_keys = []
        self._pending_count = 0

    def deposit(self, flat: np.ndarray, values: Mapping[str, np.ndarray]) -> None:
        if len(flat) == 0:
            return
        keys, sums = fold(flat, values)
        self._push(keys, sums)

    def merge(self, other: "SparseAccumulator") -> None:
        other._consolidate()
        if len(other._keys):
            self._push(other._keys, other._values)

    def keys(self) -> np.ndarray:
        self._consolidate()
        return self._keys.copy()

    def channel_flat(self, name: str) -> np.ndarray:
        self._consolidate()
        out = np.zeros(self.size, dtype=np.float64)
        out[self._keys] = self._values[name]
        return out

    def channel(self, name: str) -> np.ndarray:
        return self.channel_flat(name).reshape(self.shape)

    def occupied(self) -> int:
        self._consolidate()
        return len(self._keys)


def select_strategy(shape: Tuple[int, int], n_cells: int, strategy: str = "auto") -> str:
    """
    Pick "dense" or "sparse" accumulation for an output map.

    Dense while the longest side is at most DENSE_MAX_RESOLUTION, or when the
    estimated fill ratio (cells per pixel) exceeds SPARSE_MAX_FILL.
    """
    if strategy not in STRATEGIES:
        raise InvalidParameter(f"Unknown accumulation strategy {strategy!r}; use one of {STRATEGIES}.", parameter="strategy")
    if strategy != "auto":
        return strategy

    cfg = get_config()
    nu, nv = shape
    if max(nu, nv) <= cfg["DENSE_MAX_RESOLUTION"]:
        return "dense"

    fill = n_cells / float(nu * nv)
    chosen = "dense" if fill > cfg["SPARSE_MAX_FILL"] else "sparse"
    logger.debug("Map %dx%d, fill ratio %.3g -> %s accumulation", nu, nv, fill, chosen)
    return chosen


def make_accumulator(kind: str, shape: Tuple[int, int], channels: Iterable[str]):
    if kind == "dense":
        return DenseAccumulator(shape, channels)
    if kind == "sparse":
        return SparseAccumulator(shape, channels, flush_size=get_config()["SPARSE_FLUSH_SIZE"])
    raise InvalidParameter(f"Unknown accumulator kind {kind!r}.", parameter="strategy")
