#!/usr/bin/env python3
"""
Command-line interface: convert spherical panoramas to rectilinear images.

Conversion mode (default) writes `{basename}_{camera}.{ext}` for every
panorama in the input directory plus a `focal.txt` sidecar. Demo mode
(-D) writes `test.svg`, the projected frustum borders of the rig.

Exit codes: 0 on success, 1 on configuration or discovery errors,
2 on command-line usage errors.
"""

from dataclasses import replace
from pathlib import Path
from typing import List, Optional
import argparse
import json
import logging
import sys

import yaml

from pano2pinholes.core import (
    ProjectionBackend,
    ConfigurationError,
    DiscoveryError,
)
from pano2pinholes.prepare.convert import ConverterConfig, PanoConverter

logger = logging.getLogger("pano2pinholes")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pano2pinholes",
        description="Convert spherical panoramic images to rectilinear (pinhole) images",
    )

    # Required (may also come from --config)
    parser.add_argument(
        "-i", "--input_dir", type=str, default=None,
        help="the path where the spherical panoramic images are saved"
    )
    parser.add_argument(
        "-o", "--output_dir", type=str, default=None,
        help="the path where output rectilinear image will be saved"
    )

    # Rig
    parser.add_argument(
        "-r", "--image_resolution", type=int, default=None,
        help="the rectilinear image size (default: 1024)"
    )
    parser.add_argument(
        "-n", "--nb_split", type=int, default=None,
        help="the number of rectilinear image along the X axis (default: 5)"
    )
    parser.add_argument(
        "-f", "--fov", type=float, default=None,
        help="the rectilinear camera FoV in degrees (default: 60)"
    )
    parser.add_argument(
        "-D", "--demo_mode", action="store_true",
        help="export a SVG file that simulates the asked rectilinear "
             "frustum configuration on the spherical image"
    )

    # Processing
    parser.add_argument(
        "-c", "--config", type=Path, default=None,
        help="configuration file (YAML/JSON); command-line values override it"
    )
    parser.add_argument(
        "-w", "--workers", type=int, default=None,
        help="threads used per panorama (-1 for auto)"
    )
    parser.add_argument(
        "--backend", choices=[b.value for b in ProjectionBackend], default=None,
        help="resampling backend (default: auto)"
    )
    parser.add_argument(
        "--ext", type=str, default=None,
        help="output image extension (default: jpg)"
    )
    parser.add_argument(
        "--colmap-rig", action="store_true",
        help="also write a COLMAP rig JSON for the ring"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="enable debug logging"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ConverterConfig:
    """Merge the optional config file with command-line overrides."""
    if args.config:
        try:
            config = ConverterConfig.load(args.config)
        except (OSError, TypeError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot load config file {args.config}: {e}") from e
    else:
        config = ConverterConfig()

    overrides = {
        'input_dir': args.input_dir,
        'output_dir': args.output_dir,
        'image_resolution': args.image_resolution,
        'nb_split': args.nb_split,
        'fov': args.fov,
        'num_workers': args.workers,
        'output_extension': args.ext,
        'backend': ProjectionBackend(args.backend) if args.backend else None,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}

    # Flags only switch features on
    if args.demo_mode:
        overrides['demo_mode'] = True
    if args.colmap_rig:
        overrides['generate_colmap_rig'] = True
    if args.verbose:
        overrides['log_level'] = "DEBUG"

    return replace(config, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point. Returns the process exit code."""
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()

    if not argv:
        parser.print_usage(sys.stderr)
        logger.error("Invalid command line parameter.")
        return EXIT_FAILURE

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    try:
        config = config_from_args(args)
        converter = PanoConverter(config)
        result = converter.process()
    except (ConfigurationError, DiscoveryError) as e:
        logger.error(str(e))
        return EXIT_FAILURE

    logger.debug(json.dumps(result.metrics, indent=2))
    for error in result.errors:
        logger.warning(f"Skipped {error}")
    if result.items_failed:
        logger.warning(f"{result.items_failed} panoramas were skipped")

    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
