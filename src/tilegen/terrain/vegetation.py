"""Detail vegetation density grids (grass and similar instanced details)."""

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .config import VegetationConfig, VegetationLayer
from .noise import perlin

logger = logging.getLogger(__name__)

NOISE_OFFSET_RANGE = 10_000


@dataclass
class DetailLayer:
    """Per-cell detail counts for one prototype."""

    name: str
    prototype: str
    density: NDArray[np.int32]


def patch_centers(
    layer: VegetationLayer, resolution: int, rng: np.random.Generator
) -> NDArray[np.int64]:
    """Random patch centers covering roughly ``patch_density`` of the grid.

    Returns:
        Array of shape (n, 2) holding (x, y) cell indices.
    """
    total_cells = round(resolution * resolution * layer.patch_density)
    cells_per_patch = max(1, layer.patch_size * layer.patch_size * 4)
    count = max(1, total_cells // cells_per_patch)
    return rng.integers(0, resolution, size=(count, 2))


def patch_mask(
    centers: NDArray[np.int64], resolution: int, radius: int
) -> NDArray[np.bool_]:
    """Cells within ``radius`` of any patch center, indexed [y, x]."""
    ys, xs = np.mgrid[0:resolution, 0:resolution]
    mask = np.zeros((resolution, resolution), dtype=bool)
    for cx, cy in centers:
        mask |= (xs - cx) ** 2 + (ys - cy) ** 2 <= radius * radius
    return mask


def road_cells(splat: NDArray[np.float64], resolution: int) -> NDArray[np.bool_]:
    """Detail cells whose splat map cell is dominated by the road layer."""
    rows, cols = splat.shape[:2]
    norm = np.arange(resolution, dtype=np.float64) / resolution
    splat_rows = np.minimum((norm * rows).astype(np.int64), rows - 1)
    splat_cols = np.minimum((norm * cols).astype(np.int64), cols - 1)
    road = splat[..., -1] > 0.5
    return road[np.ix_(splat_rows, splat_cols)]


def layer_density(
    layer: VegetationLayer,
    resolution: int,
    offset: tuple[int, int],
    blocked: NDArray[np.bool_],
    patches: NDArray[np.bool_] | None,
) -> NDArray[np.int32]:
    """Density grid for one prototype of a layer.

    Outside patches, density ramps with how far the noise exceeds the
    threshold. Inside patches, cells above the threshold get the full
    layer density.
    """
    ys, xs = np.mgrid[0:resolution, 0:resolution].astype(np.float64)
    noise = perlin((xs + offset[0]) * layer.noise_scale, (ys + offset[1]) * layer.noise_scale)

    if patches is None:
        ramp = (noise - layer.noise_threshold) * layer.density / (1.0 - layer.noise_threshold)
        density = np.maximum(np.rint(ramp), 0.0).astype(np.int32)
    else:
        density = np.where(patches & (noise > layer.noise_threshold), layer.density, 0)
        density = density.astype(np.int32)

    density[blocked] = 0
    return density


def generate_details(
    splat: NDArray[np.float64] | None,
    config: VegetationConfig,
    seed: int,
) -> list[DetailLayer]:
    """Build detail density grids for every layer prototype.

    Args:
        splat: Classification splat map (road layer last), or None.
        config: Vegetation configuration.
        seed: Generator seed.

    Returns:
        One DetailLayer per (layer, prototype) pair, in config order.
    """
    if not config.enabled:
        return []

    resolution = config.resolution
    rng = np.random.default_rng(seed)
    if splat is None:
        blocked = np.zeros((resolution, resolution), dtype=bool)
    else:
        blocked = road_cells(splat, resolution)

    details: list[DetailLayer] = []
    for layer in config.layers:
        if not layer.prototypes:
            continue
        patches = None
        if layer.spawn_in_patches:
            centers = patch_centers(layer, resolution, rng)
            patches = patch_mask(centers, resolution, layer.patch_size)

        for prototype in layer.prototypes:
            offset = (
                int(rng.integers(0, NOISE_OFFSET_RANGE)),
                int(rng.integers(0, NOISE_OFFSET_RANGE)),
            )
            density = layer_density(layer, resolution, offset, blocked, patches)
            details.append(DetailLayer(name=layer.name, prototype=prototype, density=density))
            logger.debug(
                f"Detail layer {layer.name}/{prototype}: {int(density.sum())} instances"
            )

    return details
