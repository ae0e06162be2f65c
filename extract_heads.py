#!/usr/bin/env python3
"""
HeadExtractor CLI - print the player head profiles found in Minecraft worlds

Scans heads carried by entities, heads placed in the world or in containers,
heads in players' inventories and base64-encoded profiles in data pack
.json/.mcfunction files. Each unique profile is printed on its own line.

Usage:
    python extract_heads.py [OPTIONS] <WORLD DIRECTORIES>
    python extract_heads.py --exclude-datapacks --workers 4 saves/MyWorld
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from headextractor import LOG_FORMAT
from headextractor.extraction import HeadExtractor

# (flag suffix, destination, what the flag covers)
SOURCES = [
    ("entities", "include_entities", "heads carried by entities"),
    ("region", "include_region", "heads placed in the world and in containers"),
    ("playerdata", "include_player_data", "heads in players' inventories"),
    (
        "datapacks",
        "include_data_packs",
        "base64-encoded player profiles in .json or .mcfunction files in data packs",
    ),
]


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure logging; stdout is reserved for the extracted heads."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract the player profile from the player heads in Minecraft worlds.",
        epilog="The default behavior is to include all heads.",
    )
    parser.add_argument("worlds", nargs="+", type=Path, help="World directories to scan")
    for suffix, dest, covers in SOURCES:
        group = parser.add_mutually_exclusive_group()
        group.add_argument(
            f"--include-{suffix}", dest=dest, action="store_true", help=f"Include {covers}"
        )
        group.add_argument(
            f"--exclude-{suffix}", dest=dest, action="store_false", help=f"Exclude {covers}"
        )
        parser.set_defaults(**{dest: True})
    parser.add_argument("--config", type=Path, help="Path to config YAML file")
    parser.add_argument("--workers", type=int, help="Number of worker processes")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument("--log-file", type=Path, help="Also write log messages to this file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    for world in args.worlds:
        if not world.is_dir():
            parser.error(f"World path {world} does not exist")

    setup_logging(args.log_level, args.log_file)
    logger = logging.getLogger(__name__)

    try:
        extractor = HeadExtractor(config_path=args.config, num_workers=args.workers)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Failed to load configuration: {e}")
        return 1
    if args.progress:
        extractor.show_progress = True

    heads = extractor.extract_heads(
        dict.fromkeys(args.worlds),
        include_entities=args.include_entities,
        include_region=args.include_region,
        include_player_data=args.include_player_data,
        include_data_packs=args.include_data_packs,
    )
    for head in heads:
        print(head)
    return 0


if __name__ == "__main__":
    sys.exit(main())
