"""Height field shaping: weighted noise sum, base elevation, boundary falloff.

The row workers in this module are what the chunked scheduler dispatches.
Each one owns the rows it is handed, writes whole rows at a time, and
returns early once the cancellation token trips.
"""

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ..scheduler import CancellationToken
from .config import FalloffConfig, FalloffType, GeneratorConfig, NoiseIteration
from .noise import SeedOffsets, evaluate, smoothstep

SEED_OFFSET_RANGE = 10_000.0


def enabled_iterations(iterations: list[NoiseIteration]) -> list[NoiseIteration]:
    return [iteration for iteration in iterations if iteration.enabled]


def total_depth(iterations: list[NoiseIteration]) -> int:
    """Sum of the depths of enabled iterations."""
    return sum(iteration.depth for iteration in enabled_iterations(iterations))


def terrain_height(config: GeneratorConfig) -> float:
    """World-space height that a normalized elevation of 1.0 maps to."""
    return total_depth(config.iterations) * config.world_scale / config.world_depth_divider


def derive_seed_offsets(seed: int, iterations: list[NoiseIteration]) -> list[SeedOffsets]:
    """Draw two noise offsets per enabled iteration from one seeded generator.

    Disabled iterations consume nothing, so toggling one does not shift
    the offsets of the others that precede it.

    Args:
        seed: Generation seed.
        iterations: Configured iterations, in order.

    Returns:
        One SeedOffsets per enabled iteration.
    """
    rng = np.random.default_rng(seed)
    offsets: list[SeedOffsets] = []
    for _ in enabled_iterations(iterations):
        offset_x = float(rng.random() * SEED_OFFSET_RANGE)
        offset_y = float(rng.random() * SEED_OFFSET_RANGE)
        offsets.append(SeedOffsets(x=offset_x, y=offset_y))
    return offsets


def normalized_axis(resolution: int) -> NDArray[np.float64]:
    """Sample positions i / (resolution - 1); a single sample sits at 0."""
    if resolution == 1:
        return np.zeros(1, dtype=np.float64)
    return np.arange(resolution, dtype=np.float64) / (resolution - 1)


def noise_axis(
    resolution: int,
    map_size: float,
    world_scale: float,
    origin: float,
    world_offset: float = 0.0,
) -> NDArray[np.float64]:
    """Noise-space coordinates along one axis of a tile.

    A tile at origin ``map_size * k`` ends exactly where the tile at
    ``map_size * (k + 1)`` begins, so neighbouring tiles share edge samples.
    """
    return (
        normalized_axis(resolution) * map_size / world_scale
        + world_offset
        + origin / world_scale
    )


@dataclass(frozen=True)
class NoisePlan:
    """Everything the noise workers need, resolved once on the driver."""

    iterations: tuple[NoiseIteration, ...]
    offsets: tuple[SeedOffsets, ...]
    weights: tuple[float, ...]
    x_axis: NDArray[np.float64]
    y_axis: NDArray[np.float64]


def build_noise_plan(
    config: GeneratorConfig,
    seed: int,
    origin: tuple[float, float] = (0.0, 0.0),
) -> NoisePlan:
    """Resolve seed offsets, depth weights and axis coordinates for a tile."""
    active = enabled_iterations(config.iterations)
    offsets = derive_seed_offsets(seed, config.iterations)
    depth = total_depth(config.iterations)

    if depth > 0:
        weights = tuple(iteration.depth / depth for iteration in active)
    else:
        weights = tuple(0.0 for _ in active)

    x_axis = noise_axis(
        config.resolution, config.map_size, config.world_scale, origin[0], config.world_offset_x
    )
    y_axis = noise_axis(
        config.resolution, config.map_size, config.world_scale, origin[1], config.world_offset_y
    )
    return NoisePlan(
        iterations=tuple(active),
        offsets=tuple(offsets),
        weights=weights,
        x_axis=x_axis,
        y_axis=y_axis,
    )


def noise_rows(
    heights: NDArray[np.float64],
    rows: range,
    plan: NoisePlan,
    token: CancellationToken | None = None,
) -> None:
    """Fill rows with the depth-weighted sum of all enabled iterations."""
    for row in rows:
        if token is not None and token.cancelled:
            return
        total = np.zeros(heights.shape[1], dtype=np.float64)
        for iteration, offsets, weight in zip(plan.iterations, plan.offsets, plan.weights):
            if weight == 0.0:
                continue
            total += evaluate(plan.x_axis, plan.y_axis[row], iteration, offsets) * weight
        heights[row, :] = total


def elevation_rows(
    heights: NDArray[np.float64],
    rows: range,
    base_elevation: float,
    token: CancellationToken | None = None,
) -> None:
    """Lift rows by base_elevation and clamp to [0, 1]."""
    for row in rows:
        if token is not None and token.cancelled:
            return
        heights[row, :] = np.clip(heights[row, :] + base_elevation, 0.0, 1.0)


def boundary_distance(
    u: ArrayLike,
    v: ArrayLike,
    use_radial: bool = False,
) -> NDArray[np.float64]:
    """Distance metric from the affected boundary, in [0, 0.5].

    Edge mode measures the distance to the nearest side; radial mode
    measures how far inside the inscribed circle a point lies.

    Args:
        u: Normalized x coordinates.
        v: Normalized y coordinates (broadcast against u).
        use_radial: Use the radial metric instead of the edge metric.

    Returns:
        Boundary distance with the broadcast shape of u and v.
    """
    u = np.asarray(u, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    if use_radial:
        radius = np.hypot(u - 0.5, v - 0.5)
        return np.maximum(0.0, 0.5 - radius)
    return np.minimum(np.minimum(u, 1.0 - u), np.minimum(v, 1.0 - v))


def falloff_factor(distance: ArrayLike, config: FalloffConfig) -> NDArray[np.float64]:
    """Map boundary distance to a falloff factor in [0, 1].

    The factor is 0 on the boundary, reaches 1 at ``config.distance`` and
    never decreases in between, whatever the shape.
    """
    t = np.clip(np.asarray(distance, dtype=np.float64) / config.distance, 0.0, 1.0)
    t = t ** config.smoothness

    if config.falloff_type == FalloffType.LINEAR:
        factor = t
    elif config.falloff_type == FalloffType.SMOOTHSTEP:
        factor = smoothstep(0.0, 1.0, t)
    elif config.falloff_type == FalloffType.EXPONENTIAL:
        k = config.exponential_sharpness
        factor = (1.0 - np.exp(-k * t)) / (1.0 - np.exp(-k))
    elif config.falloff_type == FalloffType.COSINE:
        factor = 0.5 - 0.5 * np.cos(np.pi * t)
    else:
        factor = config.custom_curve.evaluate(t)

    return np.clip(factor, 0.0, 1.0)


def falloff_rows(
    heights: NDArray[np.float64],
    rows: range,
    config: FalloffConfig,
    base_elevation: float,
    token: CancellationToken | None = None,
) -> None:
    """Blend rows toward the edge height by the falloff factor."""
    resolution = heights.shape[0]
    u = normalized_axis(heights.shape[1])
    v = normalized_axis(resolution)
    edge_height = base_elevation * config.edge_min_height

    for row in rows:
        if token is not None and token.cancelled:
            return
        factor = falloff_factor(boundary_distance(u, v[row], config.use_radial), config)
        heights[row, :] = edge_height + (heights[row, :] - edge_height) * factor


def apply_falloff(
    elevation: NDArray[np.float64],
    config: FalloffConfig,
    base_elevation: float,
) -> NDArray[np.float64]:
    """Apply the falloff pass to a whole field.

    Args:
        elevation: Input height field.
        config: Falloff parameters.
        base_elevation: Base elevation the edge height is derived from.

    Returns:
        New height field with falloff applied.
    """
    result = np.array(elevation, dtype=np.float64, copy=True)
    falloff_rows(result, range(result.shape[0]), config, base_elevation)
    return result
