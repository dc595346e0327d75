# -*- coding: utf-8 -*-

"""

Chhaya: AMR → uniform grid projections
======================================

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Chhaya projects the leaf cells of RAMSES adaptive-mesh-refinement outputs
onto a uniform 2D grid (or radial bins) and reduces them into maps:
column sums, surface densities, weighted means, variances and dispersions.

──────────────────────────────────────────────────────────────────────────────
WHY THIS EXISTS
──────────────────────────────────────────────────────────────────────────────
- AMR cells come in many sizes; a fixed pixel grid needs every cell split or
  gathered without losing or double counting mass.
- Large maps and many cells call for sparse storage and several threads,
  while results must not depend on either choice.

"""

__version__ = "1.0.0"

from .errors import (
    ChhayaError,
    InvalidParameter,
    InvalidDirection,
    InvalidRange,
    UnknownVariable,
    IncompatibleUnit,
    WorkerFailure,
)

from .table import Cell, CellTable, UnitTable
from .units import code_unit_scale
from .variables import resolve, lookup, DERIVED
from .geometry import GridGeometry, compute_geometry
from .accumulator import DenseAccumulator, SparseAccumulator, select_strategy
from .reduce import ReductionMode
from .projection import ProjectionRequest, ProjectionResult, project, projection
from .profiles import ProfileResult, profile
from .io import save_projection, load_projection, save_cell_table, load_cell_table

from .loader import (
    cell_table_from_mesh,
    infer_code_units,
    load_cell_table_from_snapshot,
    list_fields_for_snapshot,
    parse_output_numbers,
    parse_norm_range,
    parse_fields_arg,
)
