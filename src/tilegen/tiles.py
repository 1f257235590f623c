"""Tile registry and per-tile build pipeline."""

import asyncio
import math
from concurrent.futures import Executor
from dataclasses import dataclass, field

import numpy as np
import structlog

from .surface import ArrayTerrainSurface
from .terrain.classification import classify_surface
from .terrain.config import GeneratorConfig
from .terrain.generator import GenerationOutcome, TerrainGenerator
from .terrain.placement import Cluster, PlacementPlanner
from .terrain.shaping import terrain_height
from .terrain.vegetation import DetailLayer, generate_details
from .types import DomainBounds, TileCoord

logger = structlog.get_logger()

LEFT = TileCoord(x=-1, y=0)
RIGHT = TileCoord(x=1, y=0)
TOP = TileCoord(x=0, y=1)
BOTTOM = TileCoord(x=0, y=-1)


def tile_coord_for(x: float, y: float, tile_size: float) -> TileCoord:
    """Tile containing a world position."""
    return TileCoord(x=math.floor(x / tile_size), y=math.floor(y / tile_size))


@dataclass
class Tile:
    """One terrain tile and everything built for it."""

    coord: TileCoord
    origin: tuple[float, float]
    surface: ArrayTerrainSurface
    generator: TerrainGenerator
    outcome: GenerationOutcome | None = None
    clusters: list[Cluster] = field(default_factory=list)
    details: list[DetailLayer] = field(default_factory=list)
    seams: dict[str, float] = field(default_factory=dict)
    version: int = 0

    @property
    def is_ready(self) -> bool:
        return self.outcome is not None and self.outcome.completed

    def increment_version(self) -> None:
        self.version += 1


@dataclass
class TileNeighbors:
    """Loaded tiles sharing an edge with a tile (None where not loaded)."""

    left: Tile | None
    top: Tile | None
    right: Tile | None
    bottom: Tile | None


def seam_mismatch(tile: Tile, neighbors: TileNeighbors) -> dict[str, float]:
    """Largest height difference along each edge shared with a ready neighbour.

    Keys are the neighbour sides; sides whose tile is missing or not yet
    generated are left out.
    """
    heights = tile.outcome.heights
    edges = {
        "left": (neighbors.left, heights[:, 0], lambda other: other[:, -1]),
        "right": (neighbors.right, heights[:, -1], lambda other: other[:, 0]),
        "bottom": (neighbors.bottom, heights[0, :], lambda other: other[-1, :]),
        "top": (neighbors.top, heights[-1, :], lambda other: other[0, :]),
    }
    seams = {}
    for side, (neighbor, edge, opposite) in edges.items():
        if neighbor is None or not neighbor.is_ready:
            continue
        seams[side] = float(np.abs(edge - opposite(neighbor.outcome.heights)).max())
    return seams


@dataclass
class TileUpdate:
    """Change in the loaded set after the focus moved."""

    added: list[TileCoord] = field(default_factory=list)
    removed: list[Tile] = field(default_factory=list)


class TileRegistry:
    """Tiles keyed by coordinate, kept to a window around a focus tile.

    The registry is an ordinary object owned by whoever drives tile
    streaming; it is passed to the builder explicitly.
    """

    def __init__(self, tile_size: float, render_distance: int = 2):
        self.tile_size = tile_size
        self.render_distance = render_distance
        self.current: TileCoord | None = None
        self._tiles: dict[TileCoord, Tile] = {}

    def __len__(self) -> int:
        return len(self._tiles)

    def __contains__(self, coord: TileCoord) -> bool:
        return coord in self._tiles

    def get(self, coord: TileCoord) -> Tile | None:
        return self._tiles.get(coord)

    def add(self, tile: Tile) -> None:
        self._tiles[tile.coord] = tile

    def remove(self, coord: TileCoord) -> Tile | None:
        return self._tiles.pop(coord, None)

    def all_tiles(self) -> dict[TileCoord, Tile]:
        return dict(self._tiles)

    def window(self, center: TileCoord) -> list[TileCoord]:
        """Coordinates within render_distance of center, row by row."""
        d = self.render_distance
        return [
            TileCoord(x=center.x + dx, y=center.y + dy)
            for dy in range(-d, d + 1)
            for dx in range(-d, d + 1)
        ]

    def focus(self, x: float, y: float) -> TileUpdate:
        """Move the focus to a world position.

        Tiles that fall out of the window are dropped from the registry and
        returned; coordinates that entered the window are returned for the
        caller to build. Staying inside the current tile changes nothing.
        """
        center = tile_coord_for(x, y, self.tile_size)
        if center == self.current:
            return TileUpdate()
        self.current = center

        keep = self.window(center)
        keep_set = set(keep)
        removed = [self._tiles.pop(coord) for coord in list(self._tiles) if coord not in keep_set]
        added = [coord for coord in keep if coord not in self._tiles]

        logger.debug(
            "tile_focus_changed",
            center=str(center),
            added=len(added),
            removed=len(removed),
        )
        return TileUpdate(added=added, removed=removed)

    def neighbors(self, coord: TileCoord) -> TileNeighbors:
        """Loaded tiles on the four sides of ``coord``."""
        return TileNeighbors(
            left=self._tiles.get(coord + LEFT),
            top=self._tiles.get(coord + TOP),
            right=self._tiles.get(coord + RIGHT),
            bottom=self._tiles.get(coord + BOTTOM),
        )


class TileBuilder:
    """
    Runs the full pipeline for tiles in a registry.

    Order per tile: generate heights, publish them, measure the seams with
    ready neighbours, classify the finished surface, publish the
    classification, build detail layers, then plan placement against the
    finalized surface.

    Usage:
        registry = TileRegistry(tile_size=config.map_size, render_distance=1)
        builder = TileBuilder(config, registry, seed=42)
        await builder.focus(500.0, 500.0)
    """

    def __init__(
        self,
        config: GeneratorConfig,
        registry: TileRegistry,
        seed: int = 0,
        executor: Executor | None = None,
    ):
        self.config = config
        self.registry = registry
        self.seed = seed
        self.executor = executor

    def create_tile(self, coord: TileCoord) -> Tile:
        """Create and register an empty tile at ``coord``."""
        size = self.config.map_size
        origin = (coord.x * size, coord.y * size)
        surface = ArrayTerrainSurface(width=size, depth=size, height=terrain_height(self.config))
        generator = TerrainGenerator(
            self.config, surface=surface, origin=origin, executor=self.executor
        )
        tile = Tile(coord=coord, origin=origin, surface=surface, generator=generator)
        self.registry.add(tile)
        return tile

    async def build(self, coord: TileCoord) -> Tile:
        """Build (or rebuild) the tile at ``coord``."""
        tile = self.registry.get(coord) or self.create_tile(coord)
        log = logger.bind(tile=str(coord))

        tile.outcome = await tile.generator.generate(self.seed)
        if not tile.outcome.completed:
            log.warning(
                "tile_build_stopped",
                status=tile.outcome.status.value,
                stage=tile.outcome.stage,
            )
            return tile

        tile.seams = seam_mismatch(tile, self.registry.neighbors(coord))
        loop = asyncio.get_running_loop()
        splat = await loop.run_in_executor(
            self.executor,
            classify_surface,
            tile.surface,
            self.config.classification,
            self.config.resolution,
        )
        tile.surface.set_classification(0, 0, splat)
        tile.details = generate_details(splat, self.config.vegetation, self.seed)

        size = self.config.map_size
        bounds = DomainBounds(
            min_x=tile.origin[0],
            min_y=tile.origin[1],
            max_x=tile.origin[0] + size,
            max_y=tile.origin[1] + size,
        )
        planner = PlacementPlanner(tile.surface)
        tile.clusters = await planner.plan_async(
            bounds, self.config.placement, self.seed, self.executor
        )
        tile.increment_version()

        log.info(
            "tile_built",
            clusters=len(tile.clusters),
            detail_layers=len(tile.details),
            seams=tile.seams,
            duration_ms=round(tile.outcome.duration_ms, 1),
        )
        return tile

    async def apply(self, update: TileUpdate) -> list[Tile]:
        """Cancel dropped tiles and build the added ones, in order."""
        for tile in update.removed:
            tile.generator.cancel()
        built = []
        for coord in update.added:
            built.append(await self.build(coord))
        return built

    async def focus(self, x: float, y: float) -> list[Tile]:
        return await self.apply(self.registry.focus(x, y))
