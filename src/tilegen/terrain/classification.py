"""Surface classification: steepness-banded layers plus an edge road band."""

import numpy as np
from numpy.typing import NDArray

from ..surface import TerrainSurface
from .config import ClassificationConfig
from .shaping import normalized_axis


def layer_names(config: ClassificationConfig) -> list[str]:
    """Splat map layer names; the road layer is always last."""
    return [layer.name for layer in config.layers] + [config.road.name]


def road_mask(u: NDArray[np.float64], v: NDArray[np.float64], offset: float) -> NDArray[np.bool_]:
    """Cells inside the outer ``offset`` band of the tile."""
    return (u < offset) | (u > 1.0 - offset) | (v < offset) | (v > 1.0 - offset)


def classify_slopes(
    steepness: NDArray[np.float64],
    config: ClassificationConfig,
) -> NDArray[np.float64]:
    """Build a one-hot splat map from a steepness grid.

    Road cells take the road layer when the road band accepts their
    steepness (or always, with ``override_steepness_for_road``). Other cells
    take the first layer whose band contains their steepness, falling back
    to layer 0 when none does.

    Args:
        steepness: Slope in degrees, shape (res, res), indexed [row, col].
        config: Classification configuration.

    Returns:
        Splat map of shape (res, res, len(layers) + 1) with exactly one
        1.0 per cell.
    """
    rows, cols = steepness.shape
    u, v = np.meshgrid(normalized_axis(cols), normalized_axis(rows))
    road_index = len(config.layers)
    splat = np.zeros((rows, cols, road_index + 1), dtype=np.float64)

    is_road = road_mask(u, v, config.road_offset)
    if not config.override_steepness_for_road:
        is_road &= (steepness >= config.road.min_steepness) & (
            steepness <= config.road.max_steepness
        )
    splat[..., road_index] = is_road

    assigned = is_road.copy()
    for index, layer in enumerate(config.layers):
        match = (
            ~assigned
            & (steepness >= layer.min_steepness)
            & (steepness <= layer.max_steepness)
        )
        splat[..., index][match] = 1.0
        assigned |= match

    # No band matched: first layer
    splat[..., 0][~assigned] = 1.0
    return splat


def classify_surface(
    surface: TerrainSurface,
    config: ClassificationConfig,
    resolution: int,
) -> NDArray[np.float64]:
    """Classify a finalized surface at the given splat map resolution."""
    resolution = config.resolution or resolution
    axis = normalized_axis(resolution)
    u, v = np.meshgrid(axis, axis)
    steepness = np.asarray(surface.get_slope_at(u, v), dtype=np.float64).reshape(u.shape)
    return classify_slopes(steepness, config)
