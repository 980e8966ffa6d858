#!/usr/bin/env python3
"""
LSPWRAPPER Command Line Interface
=================================

Command-line interface for the land surface parameter wrapper.
Provides access to LSP computation, DEM inspection, SAGA tool usage
and the SAGA version.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import rasterio
from rasterio.errors import RasterioIOError

from . import __version__
from .config import environment_from_config, load_config
from .core import lsp
from .exceptions import LSPError


def setup_logging(verbose: bool = False, logging_config: Optional[Dict[str, Any]] = None) -> None:
    """Setup logging configuration."""
    logging_config = logging_config or {}
    level = logging.DEBUG if verbose else getattr(logging, logging_config.get("level", "INFO"))
    logging.basicConfig(
        level=level,
        format=logging_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )


def _overrides_from_args(args) -> Dict[str, Any]:
    """Collect configuration overrides given on the command line."""
    overrides: Dict[str, Any] = {"saga": {}}
    if args.workspace:
        overrides["workspace"] = args.workspace
    if args.saga_path:
        overrides["saga"]["path"] = args.saga_path
    if args.cores:
        overrides["saga"]["cores"] = args.cores
    if args.timeout:
        overrides["saga"]["timeout_seconds"] = args.timeout
    return overrides


def compute_command(args) -> None:
    """Execute land surface parameter computation."""
    try:
        if not Path(args.dem).exists():
            print(f"DEM file not found: {args.dem}", file=sys.stderr)
            sys.exit(1)

        config = load_config(args.config, _overrides_from_args(args))
        setup_logging(args.verbose, config.get("logging"))
        env = environment_from_config(config)

        print(f"Computing land surface parameters from: {args.dem}")
        result = lsp(
            args.dem,
            calculate_all=args.all,
            hillshade=args.hillshade,
            slope=args.slope,
            twi=args.twi,
            pisr=args.pisr,
            tpi=args.tpi,
            rel_ele=args.rel_ele,
            tpi_radius=args.tpi_radius,
            rel_ele_radius=args.rel_ele_radius,
            rm_twi_tmp_files=True if args.rm_twi_tmp_files else None,
            use_sca=True if args.use_sca else None,
            pisr_start_day=args.pisr_start_day,
            pisr_end_day=args.pisr_end_day,
            pisr_start_month=args.pisr_start_month,
            pisr_end_month=args.pisr_end_month,
            pisr_day_step=args.pisr_day_step,
            pisr_time_step=args.pisr_time_step,
            pisr_year=args.pisr_year,
            pisr_latitude=args.pisr_latitude,
            log_file=args.log_file,
            env=env,
            config=config,
        )

        for variable, path in result.outputs.items():
            print(f"  {variable}: {path}")
        for variable in result.skipped:
            print(f"  {variable}: already exists, skipped")

        print("\nLand surface parameters completed successfully!")

    except LSPError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(1)


def info_command(args) -> None:
    """Execute DEM information command."""
    try:
        with rasterio.open(args.dem) as dataset:
            print(f"DEM Information: {args.dem}")
            print(f"  Size: {dataset.width}x{dataset.height} pixels")
            print(f"  Resolution: {dataset.res[0]} x {dataset.res[1]} map units")
            print(f"  CRS: {dataset.crs}")
            print(f"  Bounds: {dataset.bounds}")
            print(f"  Data type: {dataset.dtypes[0]}")
            print(f"  No-data value: {dataset.nodata}")

            data = dataset.read(1, masked=True)
            valid_data = data.compressed()
            valid_data = valid_data[np.isfinite(valid_data)]

            if len(valid_data) > 0:
                print(f"  Elevation range: {valid_data.min():.1f} - {valid_data.max():.1f}")
                print(f"  Mean elevation: {valid_data.mean():.1f}")
                print(f"  Valid pixels: {len(valid_data)}/{data.size} ({len(valid_data)/data.size*100:.1f}%)")

    except RasterioIOError as e:
        print(f"Error reading DEM: {e}", file=sys.stderr)
        sys.exit(1)


def usage_command(args) -> None:
    """Print SAGA usage for a tool."""
    try:
        config = load_config(args.config, _overrides_from_args(args))
        setup_logging(args.verbose, config.get("logging"))
        env = environment_from_config(config)
        print(env.get_usage(args.library, args.tool))
    except LSPError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def saga_version_command(args) -> None:
    """Print the version of the configured saga_cmd."""
    try:
        config = load_config(args.config, _overrides_from_args(args))
        setup_logging(args.verbose, config.get("logging"))
        env = environment_from_config(config)
        print(f"{env.executable}: {env.version()}")
    except LSPError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _add_environment_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--config', help='Configuration file (YAML)')
    parser.add_argument('--workspace', help='Directory where SAGA runs and outputs are written')
    parser.add_argument('--saga-path', help='saga_cmd executable or its directory')
    parser.add_argument('--cores', type=int, help='Number of cores for SAGA')
    parser.add_argument('--timeout', type=float, help='Timeout in seconds per SAGA call')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description="LSPWRAPPER - Land Surface Parameters from DEMs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Compute every parameter with default names
  lspwrapper compute --dem dem.tif --all

  # Slope and TPI with a 100 m radius
  lspwrapper compute --dem dem.tif --slope slope --tpi tpi_100 --tpi-radius 100

  # Get DEM information
  lspwrapper info --dem dem.tif

  # Show SAGA parameters of a tool
  lspwrapper usage ta_hydrology 20

  # Check which SAGA version is used
  lspwrapper saga-version --saga-path /usr/local/bin
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Compute command
    compute_parser = subparsers.add_parser(
        'compute',
        help='Compute land surface parameters from a DEM'
    )
    compute_parser.add_argument('--dem', required=True, help='Path to DEM file')
    compute_parser.add_argument('--all', action='store_true', help='Compute every parameter with default names')
    compute_parser.add_argument('--hillshade', help='Output name for hillshade')
    compute_parser.add_argument('--slope', help='Output name for slope')
    compute_parser.add_argument('--twi', help='Output name for topographic wetness index')
    compute_parser.add_argument('--pisr', help='Output name for potential incoming solar radiation')
    compute_parser.add_argument('--tpi', help='Output name for topographic position index')
    compute_parser.add_argument('--rel-ele', help='Output name for relative elevation')
    compute_parser.add_argument('--tpi-radius', type=float, help='TPI radius in map units (default 50)')
    compute_parser.add_argument('--rel-ele-radius', type=float, help='Relative elevation radius in map units (default 50)')
    compute_parser.add_argument('--use-sca', action='store_true', help='Use specific catchment area for TWI')
    compute_parser.add_argument('--rm-twi-tmp-files', action='store_true', help='Delete intermediate TWI grids')
    compute_parser.add_argument('--pisr-start-day', type=int, help='Day of month of the first date')
    compute_parser.add_argument('--pisr-end-day', type=int, help='Day of month of the last date')
    compute_parser.add_argument('--pisr-start-month', type=int, help='Month of the first date')
    compute_parser.add_argument('--pisr-end-month', type=int, help='Month of the last date')
    compute_parser.add_argument('--pisr-day-step', type=int, help='Days between solar evaluations')
    compute_parser.add_argument('--pisr-time-step', type=float, help='Hours between solar evaluations')
    compute_parser.add_argument('--pisr-year', type=int, help='Year of the PISR period')
    compute_parser.add_argument('--pisr-latitude', type=float, help='Latitude in degrees')
    compute_parser.add_argument('--log-file', help='Log file for this run (must not exist)')
    _add_environment_arguments(compute_parser)

    # Info command
    info_parser = subparsers.add_parser(
        'info',
        help='Display DEM information'
    )
    info_parser.add_argument('--dem', required=True, help='Path to DEM file')

    # Usage command
    usage_parser = subparsers.add_parser(
        'usage',
        help='Show SAGA usage for a tool'
    )
    usage_parser.add_argument('library', help='SAGA tool library (e.g. ta_hydrology)')
    usage_parser.add_argument('tool', help='Tool number within the library')
    _add_environment_arguments(usage_parser)

    # SAGA version command
    saga_version_parser = subparsers.add_parser(
        'saga-version',
        help='Show the version of the configured saga_cmd'
    )
    _add_environment_arguments(saga_version_parser)

    # Global options
    parser.add_argument('--version', action='version', version=f'LSPWRAPPER {__version__}')

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Execute command; commands reading a config file set up logging from it
    if args.command == 'compute':
        compute_command(args)
    elif args.command == 'info':
        setup_logging()
        info_command(args)
    elif args.command == 'usage':
        usage_command(args)
    elif args.command == 'saga-version':
        saga_version_command(args)
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
