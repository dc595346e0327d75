#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
CLI QUICK START (copy–paste, then tweak)
──────────────────────────────────────────────────────────────────────────────
Project RAMSES outputs (surface density and mass-weighted temperature):

    chhaya \
        --base-dir ./simulations \
        --folder-name output_dir \
        --numbers 1,3,5-7 \
        --vars sd,T --units Msol_pc2,standard \
        --res 512 --direction z \
        --z-range 0.45:0.55 \
        --threads 8 \
        --verbose

Project a saved cell table instead of a snapshot:

    chhaya --cell-table cells.h5 --vars mass --res 256 -o mass_map

Exploration mode :

    # Lists fields osyris sees in the mesh (no projection happens)
    chhaya --base-dir ./simulations --folder-name output_dir -n 5 --list-fields

    # Dry-run: load and validate, but don't project or write
    chhaya --base-dir ./simulations --folder-name output_dir -n 5 --dry-run --verbose

Input (one of):

    --cell-table       HDF5 cell table written by chhaya.save_cell_table
    --base-dir / --folder-name / -n
                       RAMSES run root, output folder and output numbers
                       ("7" or "3,5,9" or "10-15")

Optional args:

    --fields                      osyris fields to load (snapshots only)
    --level-start / --level-end   inclusive AMR level filter
    --scale                       TOML file of unit factors (default: from the
                                  snapshot code units or the cell table)
    --vars / --units / --modes    comma-separated, one entry per variable
    --res / --pxsize              output resolution (pxsize wins)
    --direction                   line of sight: x, y or z
    --center                      'bc' or normalized 'x,y,z'
    --x-range / --y-range / --z-range   normalized ranges [0,1] over box length
    --weighting                   weighting variable, 'none' for unit weights
    --threads                     worker threads (0 = all cores)
    --strategy                    auto, dense or sparse accumulation
    --fill-gaps                   fill isolated empty pixels
    --output-prefix / -o, --output-dir
    --list-fields, --dry-run, --verbose

Tip on “normalized ranges”:
    Ranges and the center are fractions of the box length, so [0,1] always
    spans the full domain regardless of units.

"""


import os
import argparse
import logging
import tomllib
from dataclasses import replace
from typing import Dict, Optional

import numpy as np

from .errors import ChhayaError
from .io import load_cell_table, save_projection
from .loader import (
    load_cell_table_from_snapshot,
    list_fields_for_snapshot,
    parse_center_arg,
    parse_fields_arg,
    parse_norm_range,
    parse_output_numbers,
    setup_logging,
)
from .projection import ProjectionRequest, project
from .table import CellTable

logger = logging.getLogger("chhaya")


def non_negative_int(val: str) -> int:
    try:
        iv = int(val)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer value: {val}")
    if iv < 0:
        raise argparse.ArgumentTypeError(f"Invalid value: {val}. Must be non-negative.")
    return iv


def positive_float(val: str) -> float:
    try:
        fv = float(val)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number: {val}")
    if not fv > 0:
        raise argparse.ArgumentTypeError(f"Invalid value: {val}. Must be positive.")
    return fv


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Project RAMSES AMR cells onto uniform 2D maps")

    # Inputs
    parser.add_argument("--cell-table", type=str, default=None, help="HDF5 cell table to project instead of a RAMSES snapshot.")
    parser.add_argument("--base-dir", type=str, default=None, help="Base directory containing simulation folders.")
    parser.add_argument("--folder-name", type=str, default=None, help="Folder inside base_dir to process.")
    parser.add_argument("-n", "--numbers", type=parse_output_numbers, default=None, help="Output numbers like '1', '1,3,5' or '2-7'.")
    parser.add_argument("--fields", type=parse_fields_arg, default=None, help="osyris fields to load (default: density,velocity,pressure).")
    parser.add_argument("--level-start", type=non_negative_int, default=None, help="Minimum AMR level to load (inclusive).")
    parser.add_argument("--level-end", type=non_negative_int, default=None, help="Maximum AMR level to load (inclusive).")
    parser.add_argument("--scale", type=str, default=None, help="TOML file of unit symbol = factor from code units (default: from the snapshot or the cell table).")

    # What to project
    parser.add_argument("--vars", type=parse_fields_arg, default=["mass"], help="Comma-separated variables (default: mass).")
    parser.add_argument("--units", type=parse_fields_arg, default=None, help="Comma-separated unit symbols, one per variable.")
    parser.add_argument("--modes", type=parse_fields_arg, default=None, help="Comma-separated reduction modes (sum, mean, variance, std, surface, auto).")
    parser.add_argument("--weighting", type=str, default="mass", help="Weighting variable for mean/variance/std ('none' for unit weights).")

    # Grid
    parser.add_argument("--res", type=non_negative_int, default=None, help="Pixels across the box (default: 2**lmax).")
    parser.add_argument("--pxsize", type=positive_float, default=None, help="Pixel size in code units (overrides --res).")
    parser.add_argument("--direction", choices=["x", "y", "z"], default="z", help="Line of sight (default: z).")
    parser.add_argument("--center", type=parse_center_arg, default=None, help="'bc' or normalized 'x,y,z' (default: box origin).")
    parser.add_argument("--x-range", type=parse_norm_range, default=None, help="Normalized x range 'min:max' (e.g., 0.2:0.8, :0.7, 0.1:, :).")
    parser.add_argument("--y-range", type=parse_norm_range, default=None, help="Normalized y range 'min:max'.")
    parser.add_argument("--z-range", type=parse_norm_range, default=None, help="Normalized z range 'min:max'.")

    # Execution
    parser.add_argument("--threads", type=non_negative_int, default=0, help="Worker threads (0 = all available).")
    parser.add_argument("--strategy", choices=["auto", "dense", "sparse"], default="auto", help="Accumulation strategy.")
    parser.add_argument("--fill-gaps", action="store_true", help="Fill isolated empty pixels.")

    # Output
    parser.add_argument("-o", "--output-prefix", dest="output_prefix", default="projection", help="Output file prefix (default: projection)")
    parser.add_argument("--output-dir", type=str, default=None, help="Directory for output files (default: current directory).")

    # Utility flags
    parser.add_argument("--list-fields", action="store_true", help="List available fields in the first requested snapshot and exit.")
    parser.add_argument("--dry-run", action="store_true", help="Validate the request without projecting or writing files.")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging.")

    return parser


def read_scale_file(path: str) -> Dict[str, float]:
    """Unit table from a TOML file of ``symbol = factor`` lines."""
    with open(path, "rb") as f:
        raw = tomllib.load(f)
    scale = {}
    for symbol, factor in raw.items():
        if isinstance(factor, bool) or not isinstance(factor, (int, float)) or not factor > 0:
            raise ValueError(f"Scale factor for '{symbol}' must be a positive number, got {factor!r}.")
        scale[symbol] = float(factor)
    return scale


def filter_table_levels(table: CellTable, level_start: Optional[int], level_end: Optional[int]) -> CellTable:
    """Keep the cells with level_start <= level <= level_end; the level range follows the kept cells."""
    if level_start is None and level_end is None:
        return table
    keep = np.ones(len(table), dtype=bool)
    if level_start is not None:
        keep &= table.level >= level_start
    if level_end is not None:
        keep &= table.level <= level_end
    selected = table.select(keep)
    logger.info("Levels kept: %s (%d of %d cells)", selected.levels_present(), len(selected), len(table))
    return replace(selected, lmin=None, lmax=None) if len(selected) else selected


def _absolute_range(norm, boxlen: float, origin: float):
    """Normalized (lo, hi) -> bounds relative to ``origin`` in code units."""
    if norm is None or norm == (None, None):
        return None
    lo, hi = norm
    return (lo * boxlen - origin, hi * boxlen - origin)


def request_for_table(args, boxlen: float) -> ProjectionRequest:
    if args.center is None:
        center = (0.0, 0.0, 0.0)
    elif isinstance(args.center, str):
        center = (0.5 * boxlen,) * 3
    else:
        center = tuple(c * boxlen for c in args.center)

    weighting = None if args.weighting.lower() == "none" else args.weighting

    return ProjectionRequest.build(
        args.vars,
        args.units,
        args.modes,
        res=args.res,
        pxsize=args.pxsize,
        direction=args.direction,
        center=center,
        xrange=_absolute_range(args.x_range, boxlen, center[0]),
        yrange=_absolute_range(args.y_range, boxlen, center[1]),
        zrange=_absolute_range(args.z_range, boxlen, center[2]),
        weighting=weighting,
        max_threads=args.threads,
        strategy=args.strategy,
        fill_gaps=args.fill_gaps,
        verbose=args.verbose,
    )


def run_projection(table, args, output_filename: str) -> None:
    request = request_for_table(args, table.boxlen)

    if args.dry_run:
        logger.info(
            "[dry-run] Would write '%s' with variables %s (%d cells, levels %s).",
            output_filename, list(request.variables), len(table), table.levels_present(),
        )
        return

    result = project(table, request)
    save_projection(result, output_filename)
    logger.info("DONE: Saved '%s' (%dx%d)", output_filename, *result.shape)


def main() -> None:

    """
    Parse CLI args and run the projection pipeline.
    """

    parser = build_parser()
    args = parser.parse_args()

    # Configure logging early
    setup_logging(args.verbose)

    if args.cell_table is None and (args.base_dir is None or args.folder_name is None or args.numbers is None):
        parser.error("Either --cell-table or all of --base-dir, --folder-name and --numbers are required.")

    if args.level_start is not None and args.level_end is not None:
        if args.level_end < args.level_start:
            parser.error(f"Invalid level range: end ({args.level_end}) < start ({args.level_start}).")

    if args.cell_table is not None and args.fields is not None:
        parser.error("--fields selects osyris fields of a snapshot; a cell table carries its own fields.")

    scale = None
    if args.scale is not None:
        try:
            scale = read_scale_file(args.scale)
        except (OSError, ValueError) as e:
            parser.error(f"Cannot read scale file '{args.scale}': {e}")

    output_dir = os.path.abspath(args.output_dir) if args.output_dir else os.getcwd()
    if not args.dry_run:
        os.makedirs(output_dir, exist_ok=True)

    if args.cell_table is not None:
        if not os.path.exists(args.cell_table):
            logger.error("Cell table not found: %s", args.cell_table)
            raise FileNotFoundError(f"Cell table not found: {args.cell_table}")

        if args.list_fields:
            print("Available fields:")
            for f in load_cell_table(args.cell_table).fields:
                print(" -", f)
            return

        jobs = [(None, os.path.join(output_dir, f"{args.output_prefix}.h5"))]
        input_folder = None
    else:
        # Build absolute input folder path and validate
        input_folder = os.path.join(os.path.abspath(args.base_dir), args.folder_name)

        if not os.path.exists(input_folder):
            logger.error("Input folder not found: %s", input_folder)
            raise FileNotFoundError(f"Input folder not found: {input_folder}")

        # If user requested to list fields, inspect the first snapshot in args.numbers
        if args.list_fields:
            first_num = args.numbers[0]
            logger.info("Listing fields for snapshot %s in folder '%s'...", first_num, input_folder)
            fields = list_fields_for_snapshot(input_folder, first_num)

            if fields:
                print("Available fields:")
                for f in fields:
                    print(" -", f)
            else:
                print("No fields discovered (see logs for details).")
            return

        jobs = [(num, os.path.join(output_dir, f"{args.output_prefix}_{num:05d}.h5")) for num in args.numbers]

    try:
        for num, output_filename in jobs:
            if num is None:
                table = filter_table_levels(load_cell_table(args.cell_table), args.level_start, args.level_end)
                if scale is not None:
                    table = replace(table, scale=scale)
            else:
                table = load_cell_table_from_snapshot(
                    input_folder, num, fields=args.fields, level_start=args.level_start,
                    level_end=args.level_end, scale=scale,
                )
            run_projection(table, args, output_filename)
    except ChhayaError as e:
        logger.error("Projection failed: %s", e)
        raise SystemExit(1)
    except Exception as e:
        logger.exception("FATAL: Unexpected error: %s", e)
        raise


if __name__ == "__main__":
    main()
