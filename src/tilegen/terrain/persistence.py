"""Tile persistence: save and load generated tiles."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from ..types import SamplePoint
from .config import GeneratorConfig
from .placement import Cluster, PlacementTransform

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


@dataclass
class TileData:
    """Everything read back from a saved tile."""

    heights: NDArray[np.float64]
    classification: NDArray[np.float64] | None = None
    clusters: list[Cluster] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


def _cluster_to_dict(cluster: Cluster) -> dict:
    return {
        "center": [cluster.center.x, cluster.center.y],
        "prototype": cluster.prototype,
        "members": [
            {
                "x": m.x,
                "y": m.y,
                "elevation": m.elevation,
                "rotation": m.rotation,
                "scale": m.scale,
            }
            for m in cluster.members
        ],
    }


def _cluster_from_dict(data: dict) -> Cluster:
    return Cluster(
        center=SamplePoint(data["center"][0], data["center"][1]),
        prototype=data["prototype"],
        members=[PlacementTransform(**member) for member in data["members"]],
    )


def save_tile(
    path: Path,
    heights: NDArray[np.float64],
    config: GeneratorConfig,
    seed: int,
    clusters: list[Cluster] | None = None,
    classification: NDArray[np.float64] | None = None,
    origin: tuple[float, float] = (0.0, 0.0),
) -> None:
    """Save a generated tile to disk.

    Uses numpy's compressed .npz format for efficient storage.

    Args:
        path: Output path (should end with .npz).
        heights: Final height field.
        config: Generation configuration used.
        seed: Generation seed.
        clusters: Planned placement clusters.
        classification: Splat map, if one was computed.
        origin: World origin of the tile.
    """
    metadata = {
        "version": FORMAT_VERSION,
        "seed": seed,
        "resolution": config.resolution,
        "map_size": config.map_size,
        "origin": list(origin),
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "config": config.model_dump(mode="json"),
    }
    arrays = {
        "heights": heights,
        "clusters": json.dumps([_cluster_to_dict(c) for c in clusters or []]).encode("utf-8"),
        "metadata": json.dumps(metadata).encode("utf-8"),
    }
    if classification is not None:
        arrays["classification"] = classification

    np.savez_compressed(path, **arrays)

    file_size = path.stat().st_size / 1024
    logger.info(f"Saved tile to {path} ({file_size:.1f} KB)")


def load_tile(path: Path) -> TileData:
    """Load a tile from disk.

    Args:
        path: Path to .npz file.

    Returns:
        TileData with heights, optional classification, clusters and
        metadata.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If file format is invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Tile file not found: {path}")

    with np.load(path) as data:
        if "heights" not in data:
            raise ValueError("Invalid tile file: missing 'heights' array")
        heights = data["heights"]
        classification = data["classification"] if "classification" in data else None

        clusters = []
        if "clusters" in data:
            clusters_json = data["clusters"].tobytes().decode("utf-8")
            clusters = [_cluster_from_dict(c) for c in json.loads(clusters_json)]

        metadata = {}
        if "metadata" in data:
            metadata = json.loads(data["metadata"].tobytes().decode("utf-8"))

    logger.info(f"Loaded tile from {path}: {heights.shape[1]}x{heights.shape[0]}")
    return TileData(
        heights=heights,
        classification=classification,
        clusters=clusters,
        metadata=metadata,
    )
