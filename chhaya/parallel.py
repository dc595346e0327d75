#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Parallel execution utilities for chhaya.

Cells are ordered by level and cut into contiguous partitions, one per
worker thread. Every worker fills a private accumulator; the partials are
merged on the calling thread in partition order, so a given thread count
always produces the same bits. Any worker error aborts the whole run.

"""

from __future__ import annotations

from functools import partial
from typing import Callable, List, Optional, Sequence, Tuple

import concurrent.futures
import logging
import os
import time

import numpy as np

from .config_module import get_config
from .errors import InvalidParameter, WorkerFailure

logger = logging.getLogger("chhaya")

Partition = List[Tuple[int, np.ndarray]]


def available_threads() -> int:
    try:
        return len(os.sched_getaffinity(0))
    except AttributeError:
        return os.cpu_count() or 1


def effective_workers(max_threads: Optional[int], n_items: int) -> int:
    """
    Number of worker threads: min(hardware threads, budget), and never more
    than there are cells to share out.
    """
    if max_threads is None:
        max_threads = get_config()["DEFAULT_MAX_THREADS"]
    if isinstance(max_threads, bool) or not isinstance(max_threads, (int, np.integer)) or max_threads < 0:
        raise InvalidParameter(f"Thread budget must be a non-negative integer, got {max_threads!r}.", parameter="max_threads")

    nworkers = available_threads()
    if max_threads > 0:
        nworkers = min(nworkers, int(max_threads))
    return max(1, min(nworkers, n_items))


def get_executor(n_workers: int) -> concurrent.futures.Executor:
    return concurrent.futures.ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="chhaya")


def partition_cells(levels: np.ndarray, n_parts: int) -> List[Partition]:
    """
    Split row indices into ``n_parts`` contiguous, level-ordered partitions.

    Returns:
        One list of (level, row indices) pieces per non-empty partition.
    """
    order = np.argsort(levels, kind="stable")
    partitions = []
    for chunk in np.array_split(order, max(1, n_parts)):
        if len(chunk) == 0:
            continue
        chunk_levels = levels[chunk]
        partitions.append([(int(lvl), chunk[chunk_levels == lvl]) for lvl in np.unique(chunk_levels)])
    return partitions


def process_single_partition(
    index: int,
    pieces: Partition,
    worker: Callable,
    factory: Callable,
):
    """
    Worker function executed in each thread.

    Args:
        index: partition number (used in log messages only).
        pieces: (level, row indices) pairs of this partition.
        worker: callable ``worker(accumulator, level, rows)`` doing the binning.
        factory: callable returning an empty accumulator.

    Returns:
        The partition's private accumulator.
    """
    acc = factory()
    t0 = time.time()
    ncells = 0
    for level, rows in pieces:
        worker(acc, level, rows)
        ncells += len(rows)
    logger.debug("[partition %d] %d cell(s) on %d level(s) in %.2fs", index, ncells, len(pieces), time.time() - t0)
    return acc


def run_parallel_binning(
    partitions: Sequence[Partition],
    worker: Callable,
    factory: Callable,
    nworkers: int = 1,
    verbose: bool = False,
):
    """
    Fork-join runner: bins every partition and merges the partials.

    Parameters:
    - partitions: output of ``partition_cells``.
    - worker: ``worker(accumulator, level, rows)``.
    - factory: returns an empty accumulator (dense or sparse).
    - nworkers: number of threads; 1 runs on the calling thread.
    - verbose: log progress at INFO instead of DEBUG.

    Behavior:
    - A failing partition cancels the ones not yet started; once the running
      ones finish, a single WorkerFailure carrying every error is raised.
      No partial result is returned.

    Returns:
    - The merged accumulator.
    """
    log = logger.info if verbose else logger.debug
    log("Starting on %d worker(s) for %d partition(s)", nworkers, len(partitions))
    t0 = time.time()

    task = partial(process_single_partition, worker=worker, factory=factory)
    partials = [None] * len(partitions)
    errors = []

    if nworkers <= 1:
        for i, pieces in enumerate(partitions):
            try:
                partials[i] = task(i, pieces)
            except Exception as e:
                logger.exception("[partition %d] Worker error", i)
                errors.append((i, e))
                break
    else:
        with get_executor(nworkers) as ex:
            futures = {ex.submit(task, i, pieces): i for i, pieces in enumerate(partitions)}
            for fut in concurrent.futures.as_completed(futures):
                i = futures[fut]
                if fut.cancelled():
                    continue
                try:
                    partials[i] = fut.result()
                except Exception as e:
                    logger.exception("[partition %d] Worker error", i)
                    errors.append((i, e))
                    for other in futures:
                        other.cancel()

    if errors:
        raise WorkerFailure(errors) from errors[0][1]

    merged = factory()
    for acc in partials:
        merged.merge(acc)

    log("Binned and merged %d partition(s) in %.2fs", len(partitions), time.time() - t0)
    return merged
