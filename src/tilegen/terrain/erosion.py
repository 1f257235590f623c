"""Droplet-based hydraulic erosion.

Each droplet spawns at a random sub-cell position, follows the bilinear
gradient downhill with some inertia, picks up sediment while it has
spare capacity and drops it when it slows down, climbs, or evaporates.
Droplets share nothing but the height buffer, which they read and write
in place; callers must not run two erosion batches on the same buffer
concurrently.
"""

import logging
import math
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from ..exceptions import DegenerateDropletError
from ..scheduler import CancellationToken
from .config import ErosionConfig

logger = logging.getLogger(__name__)


@dataclass
class ErosionStats:
    """Counters for one erosion run (or one batch of it)."""

    simulated: int = 0
    skipped: int = 0
    eroded: float = 0.0
    deposited: float = 0.0
    cancelled: bool = False

    def merge(self, other: "ErosionStats") -> "ErosionStats":
        return ErosionStats(
            simulated=self.simulated + other.simulated,
            skipped=self.skipped + other.skipped,
            eroded=self.eroded + other.eroded,
            deposited=self.deposited + other.deposited,
            cancelled=self.cancelled or other.cancelled,
        )


@dataclass
class _Footprint:
    """Bilinear footprint of a sub-cell position on the flat buffer."""

    index: int
    weights: tuple[float, float, float, float] = field(default=(0.0, 0.0, 0.0, 0.0))


def _footprint(pos_x: float, pos_y: float, resolution: int) -> _Footprint:
    node_x = int(pos_x)
    node_y = int(pos_y)
    fx = pos_x - node_x
    fy = pos_y - node_y
    return _Footprint(
        index=node_y * resolution + node_x,
        weights=(
            (1.0 - fx) * (1.0 - fy),
            fx * (1.0 - fy),
            (1.0 - fx) * fy,
            fx * fy,
        ),
    )


def height_and_gradient(
    flat: NDArray[np.float64],
    resolution: int,
    pos_x: float,
    pos_y: float,
) -> tuple[float, float, float]:
    """Bilinear height and gradient at a sub-cell position.

    Args:
        flat: Flattened height buffer (row-major).
        resolution: Side length of the buffer.
        pos_x: Column position, 0 <= pos_x < resolution - 1.
        pos_y: Row position, 0 <= pos_y < resolution - 1.

    Returns:
        Tuple of (height, gradient_x, gradient_y).
    """
    node_x = int(pos_x)
    node_y = int(pos_y)
    fx = pos_x - node_x
    fy = pos_y - node_y

    index = node_y * resolution + node_x
    h_nw = float(flat[index])
    h_ne = float(flat[index + 1])
    h_sw = float(flat[index + resolution])
    h_se = float(flat[index + resolution + 1])

    grad_x = (h_ne - h_nw) * (1.0 - fy) + (h_se - h_sw) * fy
    grad_y = (h_sw - h_nw) * (1.0 - fx) + (h_se - h_ne) * fx
    height = (
        h_nw * (1.0 - fx) * (1.0 - fy)
        + h_ne * fx * (1.0 - fy)
        + h_sw * (1.0 - fx) * fy
        + h_se * fx * fy
    )
    return height, grad_x, grad_y


class Erosion:
    """Hydraulic erosion simulator.

    Usage:
        erosion = Erosion(ErosionConfig(), seed=42)
        stats = erosion.erode(heights, resolution, iterations=50_000)
    """

    def __init__(self, config: ErosionConfig | None = None, seed: int = 0):
        self.config = config or ErosionConfig()
        self.seed = seed

    def make_rng(self, is_seeded: bool = True) -> np.random.Generator:
        """Droplet spawn generator; unseeded runs draw OS entropy."""
        if is_seeded:
            return np.random.default_rng(self.seed + self.config.seed_salt)
        return np.random.default_rng()

    def erode(
        self,
        heights: NDArray[np.float64],
        resolution: int,
        iterations: int,
        is_seeded: bool = True,
        token: CancellationToken | None = None,
    ) -> ErosionStats:
        """Simulate ``iterations`` droplets on the buffer, in place.

        Args:
            heights: Height buffer, (resolution, resolution) or flat.
            resolution: Side length of the buffer.
            iterations: Number of droplets.
            is_seeded: Use the seeded generator for reproducible runs.
            token: Optional cancellation token, checked per droplet.

        Returns:
            ErosionStats for the run.
        """
        rng = self.make_rng(is_seeded)
        return self.run_droplets(heights, resolution, iterations, rng, token)

    def run_droplets(
        self,
        heights: NDArray[np.float64],
        resolution: int,
        count: int,
        rng: np.random.Generator,
        token: CancellationToken | None = None,
    ) -> ErosionStats:
        """Simulate ``count`` droplets drawing spawn points from ``rng``."""
        flat = _flat_view(heights, resolution)
        stats = ErosionStats()
        if resolution < 2:
            return stats

        for _ in range(count):
            if token is not None and token.cancelled:
                stats.cancelled = True
                break
            spawn_x = float(rng.random() * (resolution - 1))
            spawn_y = float(rng.random() * (resolution - 1))
            try:
                eroded, deposited = self.simulate_droplet(flat, resolution, spawn_x, spawn_y)
            except (DegenerateDropletError, ArithmeticError) as exc:
                stats.skipped += 1
                logger.debug(f"Skipped droplet at ({spawn_x:.2f}, {spawn_y:.2f}): {exc}")
                continue
            stats.simulated += 1
            stats.eroded += eroded
            stats.deposited += deposited

        return stats

    def simulate_droplet(
        self,
        flat: NDArray[np.float64],
        resolution: int,
        pos_x: float,
        pos_y: float,
    ) -> tuple[float, float]:
        """Run one droplet from its spawn position until it stops.

        Writes only touch the bilinear footprint of positions the droplet
        visits, and only with finite amounts. Erosion and deposition both land
        on the footprint of the cell the droplet is leaving, so a climbing
        droplet fills the pit behind it rather than the slope ahead.

        Returns:
            Tuple of (material eroded, material deposited).

        Raises:
            DegenerateDropletError: If the droplet state becomes non-finite.
        """
        cfg = self.config
        limit = resolution - 1
        dir_x = 0.0
        dir_y = 0.0
        speed = cfg.initial_speed
        water = cfg.initial_water_volume
        sediment = 0.0
        eroded_total = 0.0
        deposited_total = 0.0

        for _ in range(cfg.max_lifetime):
            height, grad_x, grad_y = height_and_gradient(flat, resolution, pos_x, pos_y)
            origin = _footprint(pos_x, pos_y, resolution)

            dir_x = dir_x * cfg.inertia - grad_x * (1.0 - cfg.inertia)
            dir_y = dir_y * cfg.inertia - grad_y * (1.0 - cfg.inertia)
            length = math.hypot(dir_x, dir_y)
            if not math.isfinite(length):
                raise DegenerateDropletError(f"direction length {length}")
            if length == 0.0:
                break
            dir_x /= length
            dir_y /= length

            pos_x += dir_x * cfg.step_size
            pos_y += dir_y * cfg.step_size
            if not (0.0 <= pos_x < limit and 0.0 <= pos_y < limit):
                break

            new_height, _, _ = height_and_gradient(flat, resolution, pos_x, pos_y)
            delta_height = new_height - height
            capacity = max(
                -delta_height * speed * water * cfg.sediment_capacity_factor,
                cfg.min_sediment_capacity,
            )
            if not math.isfinite(capacity):
                raise DegenerateDropletError(f"capacity {capacity}")

            if sediment > capacity or delta_height > 0:
                # Climbing: fill the pit just left. Otherwise shed surplus.
                if delta_height > 0:
                    amount = min(delta_height, sediment)
                else:
                    amount = (sediment - capacity) * cfg.deposit_speed
                sediment -= amount
                deposited_total += amount
                _deposit(flat, resolution, origin, amount)
            else:
                amount = min((capacity - sediment) * cfg.erode_speed, -delta_height)
                removed = _erode(flat, resolution, origin, amount)
                sediment += removed
                eroded_total += removed

            speed = math.sqrt(max(0.0, speed * speed - delta_height * cfg.gravity))
            water *= 1.0 - cfg.evaporate_speed
            if speed < cfg.min_speed:
                break

        return eroded_total, deposited_total


def _flat_view(heights: NDArray[np.float64], resolution: int) -> NDArray[np.float64]:
    """Flat view onto the caller's buffer; never a copy."""
    if heights.size != resolution * resolution:
        raise ValueError(
            f"Height buffer has {heights.size} cells, expected {resolution * resolution}"
        )
    if not heights.flags.c_contiguous:
        raise ValueError("Height buffer must be C-contiguous to erode in place")
    return heights.reshape(-1)


def _corners(origin: _Footprint, resolution: int) -> tuple[int, int, int, int]:
    i = origin.index
    return (i, i + 1, i + resolution, i + resolution + 1)


def _deposit(
    flat: NDArray[np.float64], resolution: int, origin: _Footprint, amount: float
) -> None:
    for index, weight in zip(_corners(origin, resolution), origin.weights):
        flat[index] += amount * weight


def _erode(
    flat: NDArray[np.float64], resolution: int, origin: _Footprint, amount: float
) -> float:
    """Remove up to ``amount`` around the footprint; no cell goes below zero."""
    removed = 0.0
    for index, weight in zip(_corners(origin, resolution), origin.weights):
        current = float(flat[index])
        delta = min(max(current, 0.0), amount * weight)
        flat[index] = current - delta
        removed += delta
    return removed
