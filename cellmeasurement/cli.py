#!/usr/bin/env python3
"""
Command-line interface for cell measurement.

Usage:
    cellmeasurement run -n nuclei.tif -w cells.tif -t image.ome.tif -o cells.geojson
    cellmeasurement run -n nuclei.tif -w cells.tif -t image.tif -o out.geojson --threads 8 --percentiles 50 95
    cellmeasurement export csv --results cells.geojson
    cellmeasurement validate cells.geojson
    cellmeasurement info image.ome.tif

Subcommands:
    run         Match masks, measure cells, export GeoJSON
    export      Export measurements to other formats
    validate    Validate exported GeoJSON files
    info        Show information about images, masks or results
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from cellmeasurement.utils.config import (
    COMPARTMENT_NAMES,
    STATISTIC_NAMES,
    ConfigValidationError,
    get_cpu_worker_count,
    load_config,
    save_config,
    validate_config,
)
from cellmeasurement.utils.logging import get_logger, setup_logging


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""

    parser = argparse.ArgumentParser(
        prog="cellmeasurement",
        description="Pair nuclear and whole-cell masks and measure per-compartment intensities",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Measure cells with default settings
  cellmeasurement run -n nuclei.tif -w cells.tif -t image.ome.tif -o cells.geojson

  # Masks at half resolution, 8 threads, custom percentiles
  cellmeasurement run -n nuclei.tif -w cells.tif -t image.tif -o cells.geojson \\
      -d 2 --threads 8 --percentiles 1 50 99

  # Export the measurement table
  cellmeasurement export csv --results cells.geojson

  # Validate an exported file
  cellmeasurement validate cells.geojson
""",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress most output",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Write logs to file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # === RUN command ===
    run_parser = subparsers.add_parser(
        "run",
        help="Match masks and measure cells",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_run_arguments(run_parser)

    # === EXPORT command ===
    export_parser = subparsers.add_parser(
        "export",
        help="Export results to other formats",
    )
    export_subparsers = export_parser.add_subparsers(dest="format", help="Export format")

    csv_parser = export_subparsers.add_parser("csv", help="Export per-cell measurements to CSV")
    csv_parser.add_argument("--results", "-r", type=Path, required=True, help="Path to exported GeoJSON")
    csv_parser.add_argument("--output", "-o", type=Path, help="Output CSV file")

    # === VALIDATE command ===
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate exported GeoJSON files",
    )
    validate_parser.add_argument(
        "files",
        type=Path,
        nargs="+",
        help="GeoJSON files to validate",
    )
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on first validation error",
    )

    # === INFO command ===
    info_parser = subparsers.add_parser(
        "info",
        help="Show information about images, masks or results",
    )
    info_parser.add_argument(
        "path",
        type=Path,
        help="Path to a TIFF image/mask or exported GeoJSON",
    )

    return parser


def _thread_count(value: str) -> int:
    if value.strip().lower() == "auto":
        return get_cpu_worker_count()
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer or 'auto', got {value!r}") from None


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    """Add arguments for the run command."""

    input_group = parser.add_argument_group("Input Options")
    input_group.add_argument(
        "-n", "--nuclear-mask",
        type=Path, required=True,
        help="Nuclear label mask (TIFF)",
    )
    input_group.add_argument(
        "-w", "--whole-cell-mask",
        type=Path, required=True,
        help="Whole-cell label mask (TIFF)",
    )
    input_group.add_argument(
        "-t", "--tiff-file",
        type=Path, required=True,
        help="Multi-channel image to measure (TIFF/OME-TIFF)",
    )
    input_group.add_argument(
        "--config",
        type=Path,
        help="JSON config file (command-line flags take precedence)",
    )

    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "-o", "--output-file",
        type=Path, required=True,
        help="Output GeoJSON file",
    )
    output_group.add_argument(
        "--save-config",
        type=Path,
        help="Write the effective configuration to this file",
    )

    proc_group = parser.add_argument_group("Processing Options")
    proc_group.add_argument(
        "-d", "--downsample-factor",
        type=float,
        help="Downsample factor of the masks relative to the image (default: 1.0)",
    )
    proc_group.add_argument(
        "-p", "--pixel-size-microns",
        type=float,
        help="Pixel size in microns (default: 0.5)",
    )
    proc_group.add_argument(
        "--skip-measurements",
        action="store_true", default=None,
        help="Only match and export cells, without measurements",
    )
    proc_group.add_argument(
        "-i", "--dist-threshold",
        type=float,
        help="Maximum nucleus-to-cell centroid distance in pixels (default: 10.0)",
    )
    proc_group.add_argument(
        "-e", "--cell-expansion",
        type=float,
        help="Expansion for cell boundary estimation in pixels (default: 3.0)",
    )
    proc_group.add_argument(
        "--threads",
        type=_thread_count,
        help="Worker threads for matching and measurements, or 'auto' (default: 1)",
    )
    proc_group.add_argument(
        "--no-overlap-resolution",
        action="store_true",
        help="Keep overlapping cell boundaries",
    )
    proc_group.add_argument(
        "--progress",
        action="store_true", default=None,
        help="Show progress bars",
    )

    meas_group = parser.add_argument_group("Measurement Options")
    meas_group.add_argument(
        "--percentiles",
        type=float, nargs="+",
        help="Percentiles to measure, 0-100 (default: 5 25 50 75 95)",
    )
    meas_group.add_argument(
        "--compartments",
        nargs="+", choices=COMPARTMENT_NAMES,
        help="Compartments to measure (default: all)",
    )
    meas_group.add_argument(
        "--statistics",
        nargs="*", choices=STATISTIC_NAMES,
        help="Summary statistics besides percentiles (default: all)",
    )
    meas_group.add_argument(
        "--channel-names",
        nargs="+",
        help="Channel names overriding the image metadata",
    )


def _config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    overrides = {
        "downsample_factor": args.downsample_factor,
        "pixel_size_um": args.pixel_size_microns,
        "skip_measurements": args.skip_measurements,
        "dist_threshold": args.dist_threshold,
        "cell_expansion": args.cell_expansion,
        "threads": args.threads,
        "percentiles": args.percentiles,
        "compartments": args.compartments,
        "statistics": args.statistics,
        "channel_names": args.channel_names,
        "show_progress": args.progress,
    }
    if args.no_overlap_resolution:
        overrides["resolve_overlaps"] = False
    return load_config(args.config, **overrides)


def cmd_run(args: argparse.Namespace) -> int:
    """Execute the run command."""
    logger = get_logger(__name__)

    from cellmeasurement.io.image_source import ImageSourceError
    from cellmeasurement.processing.pipeline import CellMeasurementPipeline
    from cellmeasurement.roi.extraction import MaskFormatError

    try:
        config = _config_from_args(args)
        validate_config(config, raise_on_error=True)
    except ConfigValidationError as e:
        logger.error(str(e))
        return 1

    if args.save_config:
        save_config(config, args.save_config)
        logger.info(f"Config saved to {args.save_config}")

    try:
        pipeline = CellMeasurementPipeline(config)
        result = pipeline.run(
            args.nuclear_mask,
            args.whole_cell_mask,
            args.tiff_file,
            args.output_file,
        )
    except FileNotFoundError as e:
        logger.error(f"Input not found: {e}")
        return 1
    except MaskFormatError as e:
        logger.error(f"Invalid mask: {e}")
        return 1
    except ImageSourceError as e:
        logger.error(f"Cannot read image {args.tiff_file}: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid input: {e}")
        return 1

    logger.info(f"Wrote {result.n_cells} cells to {result.output_path}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Execute the export command."""
    logger = get_logger(__name__)

    if args.format == "csv":
        from cellmeasurement.io.geojson_export import export_measurements_csv, load_geojson_measurements

        try:
            rows = load_geojson_measurements(args.results)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Cannot read {args.results}: {e}")
            return 1

        output = args.output or args.results.with_suffix(".csv")
        export_measurements_csv(rows, output)
        logger.info(f"CSV exported to: {output}")

    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Execute the validate command."""
    logger = get_logger(__name__)
    from cellmeasurement.utils.schemas import validate_geojson_file

    errors = 0
    for file_path in args.files:
        try:
            collection = validate_geojson_file(file_path, raise_on_error=True)
            logger.info(f"✓ {file_path}: Valid ({len(collection.cells())} cells)")
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"✗ {file_path}: {e}")
            errors += 1
            if args.strict:
                return 1

    if errors:
        logger.error(f"{errors} file(s) failed validation")
        return 1

    logger.info(f"All {len(args.files)} file(s) valid")
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Execute the info command."""
    logger = get_logger(__name__)

    path = args.path
    if not path.is_file():
        logger.error(f"Not a file: {path}")
        return 1

    if path.suffix in (".json", ".geojson"):
        from cellmeasurement.utils.json_utils import load_json

        try:
            data = load_json(path)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Cannot read {path}: {e}")
            return 1
        features = data.get("features", [])
        cells = [ft for ft in features if ft.get("properties", {}).get("objectType") == "cell"]
        names = list(cells[0]["properties"].get("measurements", {})) if cells else []

        print(f"File: {path}")
        print(f"Type: GeoJSON")
        print(f"Cell count: {len(cells)}")
        print(f"Estimated boundaries: {sum(1 for c in cells if c['properties'].get('estimated'))}")
        print(f"Measurements per cell: {len(names)}")
        for name in names[:10]:
            print(f"  {name}")
        if len(names) > 10:
            print(f"  ... ({len(names) - 10} more)")

    elif path.suffix.lower() in (".tif", ".tiff"):
        from cellmeasurement.io.image_source import ImageSourceError, TiffImageSource

        try:
            source = TiffImageSource(path)
        except ImageSourceError as e:
            logger.error(str(e))
            return 1
        print(f"File: {path}")
        print(f"Type: TIFF")
        print(f"Dimensions: {source.width} x {source.height} px")
        print(f"Channels: {', '.join(source.channel_names)}")
        print(f"Size: {path.stat().st_size / 1e6:.2f} MB")

    else:
        logger.error(f"Unsupported file type: {path.suffix}")
        return 1

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Setup logging
    level = "DEBUG" if args.verbose else ("WARNING" if args.quiet else "INFO")
    setup_logging(level=level, log_file=args.log_file)

    # Dispatch to command handler
    if args.command == "run":
        return cmd_run(args)

    elif args.command == "export":
        if not args.format:
            parser.parse_args(["export", "--help"])
            return 1
        return cmd_export(args)

    elif args.command == "validate":
        return cmd_validate(args)

    elif args.command == "info":
        return cmd_info(args)

    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
