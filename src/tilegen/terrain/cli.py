"""Command-line interface for tile generation."""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

import structlog


def main() -> None:
    """CLI entry point for tile generation."""
    parser = argparse.ArgumentParser(description="Generate a procedural terrain tile")
    parser.add_argument(
        "--seed", type=int, default=42, help="Random seed (default: 42)"
    )
    parser.add_argument(
        "--resolution",
        type=int,
        default=None,
        help="Height samples per side (default: from config, 257)",
    )
    parser.add_argument(
        "--config", "-c", type=str, default=None, help="TOML config file (optional)"
    )
    parser.add_argument(
        "--no-erosion", action="store_true", help="Skip hydraulic erosion"
    )
    parser.add_argument(
        "--no-placement", action="store_true", help="Skip object placement"
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        default="tile.npz",
        help="Output path (default: tile.npz)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Verbose logging"
    )

    args = parser.parse_args()

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )

    # Import here to avoid slow startup for --help
    from ..exceptions import ConfigurationError
    from ..tiles import TileBuilder, TileRegistry
    from ..types import TileCoord
    from .config import GeneratorConfig, load_config
    from .persistence import save_tile
    from .validation import validate_tile

    try:
        config = load_config(Path(args.config)) if args.config else GeneratorConfig()
        updates = {}
        if args.resolution is not None:
            updates["resolution"] = args.resolution
        if args.no_erosion:
            updates["erosion"] = config.erosion.model_copy(update={"enabled": False})
        if args.no_placement:
            updates["placement"] = config.placement.model_copy(update={"enabled": False})
        config = GeneratorConfig.model_validate({**config.model_dump(), **updates})
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    output_path = Path(args.output)
    print(f"Generating {config.resolution}x{config.resolution} tile with seed {args.seed}")
    print(f"Output: {output_path}")
    print()

    registry = TileRegistry(tile_size=config.map_size, render_distance=0)
    builder = TileBuilder(config, registry, seed=args.seed)

    start_time = time.time()
    tile = asyncio.run(builder.build(TileCoord(x=0, y=0)))
    gen_time = time.time() - start_time

    if not tile.is_ready:
        print(f"Generation {tile.outcome.status.value}: {tile.outcome.reason}", file=sys.stderr)
        sys.exit(1)

    print()
    print(f"Generation complete in {gen_time:.1f}s")

    validation = validate_tile(tile.outcome.heights, tile.clusters, config.placement)
    if not validation.passed:
        print(f"Validation reported {len(validation.errors)} errors", file=sys.stderr)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    save_tile(
        output_path,
        tile.outcome.heights,
        config,
        args.seed,
        clusters=tile.clusters,
        classification=tile.surface.classification,
        origin=tile.origin,
    )

    print(f"Saved to {output_path}")


if __name__ == "__main__":
    main()
