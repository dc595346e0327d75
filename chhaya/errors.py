#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Exception types raised by chhaya.

Parameter problems derive from ``ValueError`` so callers that only care about
"bad input" can catch that; worker faults derive from ``RuntimeError``.
Empty selections are never errors: they produce all-zero maps.

"""

from __future__ import annotations

from typing import List, Optional, Tuple


class ChhayaError(Exception):
    """Base class for every error raised by the projection engine."""


class InvalidParameter(ChhayaError, ValueError):
    """A request field is malformed or inconsistent with the others."""

    def __init__(self, message: str, parameter: Optional[str] = None):
        super().__init__(message)
        self.parameter = parameter


class InvalidDirection(InvalidParameter):
    """Projection direction is not one of the principal axes."""

    def __init__(self, direction):
        super().__init__(
            f"Invalid projection direction {direction!r}; use 'x', 'y' or 'z'.",
            parameter="direction",
        )
        self.direction = direction


class InvalidRange(InvalidParameter):
    """A spatial range has min >= max."""

    def __init__(self, axis: str, bounds: Tuple[float, float]):
        super().__init__(
            f"Invalid {axis}-range {bounds!r}: lower bound must be smaller than upper bound.",
            parameter=f"{axis}range",
        )
        self.axis = axis
        self.bounds = bounds


class UnknownVariable(ChhayaError, ValueError):
    """Variable is neither a field of the table nor a derived quantity."""

    def __init__(self, variable: str, missing: Optional[str] = None):
        if missing is not None and missing != variable:
            message = f"Cannot resolve variable {variable!r}: required field {missing!r} is not available."
        else:
            message = f"Unknown variable {variable!r}."
        super().__init__(message)
        self.variable = variable
        self.missing = missing


class IncompatibleUnit(ChhayaError, ValueError):
    """Unit symbol is unknown or belongs to a different physical dimension."""

    def __init__(self, variable: str, unit: str, dimension: Optional[str], reason: str = ""):
        message = f"Unit {unit!r} cannot be applied to {variable!r} (dimension: {dimension})"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.variable = variable
        self.unit = unit
        self.dimension = dimension


class WorkerFailure(ChhayaError, RuntimeError):
    """
    One or more parallel workers failed; the whole projection is aborted.

    Attributes:
        errors: list of (partition index, exception) pairs, in partition order.
    """

    def __init__(self, errors: List[Tuple[int, BaseException]]):
        self.errors = sorted(errors, key=lambda item: item[0])
        details = "; ".join(f"partition {idx}: {type(exc).__name__}: {exc}" for idx, exc in self.errors)
        super().__init__(f"{len(self.errors)} worker(s) failed: {details}")
