"""Procedural terrain tile generation package.

This package implements noise-based height fields with edge falloff,
hydraulic erosion, slope classification, detail vegetation and
Poisson-disk object placement.
"""

from .config import GeneratorConfig, load_config
from .erosion import Erosion, ErosionStats
from .generator import GenerationOutcome, GenerationStatus, TerrainGenerator
from .persistence import TileData, load_tile, save_tile
from .placement import Cluster, PlacementPlanner, PlacementTransform
from .sampling import expected_point_count, sample
from .shaping import terrain_height
from .validation import ValidationResult, validate_samples, validate_tile

__all__ = [
    "Cluster",
    "Erosion",
    "ErosionStats",
    "GenerationOutcome",
    "GenerationStatus",
    "GeneratorConfig",
    "PlacementPlanner",
    "PlacementTransform",
    "TerrainGenerator",
    "TileData",
    "ValidationResult",
    "expected_point_count",
    "load_config",
    "load_tile",
    "sample",
    "save_tile",
    "terrain_height",
    "validate_samples",
    "validate_tile",
]
