"""Tileable procedural terrain generation."""

from .exceptions import (
    ConfigurationError,
    DegenerateDropletError,
    GenerationCancelled,
    GenerationInProgressError,
    TerrainError,
    WorkerFailure,
)
from .scheduler import CancellationToken, ChunkedScheduler, partition_rows
from .surface import ArrayTerrainSurface, TerrainSurface
from .tiles import Tile, TileBuilder, TileNeighbors, TileRegistry, TileUpdate
from .types import DomainBounds, SamplePoint, TileCoord

__all__ = [
    # Types
    "DomainBounds",
    "SamplePoint",
    "TileCoord",
    # Scheduling
    "CancellationToken",
    "ChunkedScheduler",
    "partition_rows",
    # Surface
    "ArrayTerrainSurface",
    "TerrainSurface",
    # Tiles
    "Tile",
    "TileBuilder",
    "TileNeighbors",
    "TileRegistry",
    "TileUpdate",
    # Exceptions
    "TerrainError",
    "ConfigurationError",
    "GenerationInProgressError",
    "WorkerFailure",
    "DegenerateDropletError",
    "GenerationCancelled",
]
