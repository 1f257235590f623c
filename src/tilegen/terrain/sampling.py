"""Poisson-disk (blue noise) point sampling.

Bridson, "Fast Poisson Disk Sampling in Arbitrary Dimensions" (2007). The
sampler is sequential by nature: every acceptance changes the rejection
test for every later candidate, so it runs on one thread with one seeded
generator and its output is a pure function of its arguments.
"""

import logging
import math

import numpy as np

from ..exceptions import ConfigurationError
from ..types import DomainBounds, SamplePoint

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS_PER_POINT = 30
INVERSE_ROOT_TWO = 1.0 / math.sqrt(2.0)

# Cell size is min_distance / sqrt(2), so a conflicting point is never
# more than two cells away.
NEIGHBORHOOD = 2


class _Grid:
    """Acceleration grid holding at most one accepted point per cell."""

    def __init__(self, bounds: DomainBounds, cell_size: float):
        self.bounds = bounds
        self.cell_size = cell_size
        self.width = math.ceil(bounds.width / cell_size)
        self.height = math.ceil(bounds.height / cell_size)
        self.cells: list[list[SamplePoint | None]] = [
            [None] * (self.height + 1) for _ in range(self.width + 1)
        ]

    def index(self, x: float, y: float) -> tuple[int, int]:
        return (
            math.floor((x - self.bounds.min_x) / self.cell_size),
            math.floor((y - self.bounds.min_y) / self.cell_size),
        )

    def insert(self, point: SamplePoint) -> None:
        i, j = point.cell
        self.cells[i][j] = point

    def has_neighbor_within(
        self, x: float, y: float, cell: tuple[int, int], distance: float
    ) -> bool:
        """True if an accepted point lies within ``distance`` of (x, y)."""
        limit = distance * distance
        i_min = max(0, cell[0] - NEIGHBORHOOD)
        i_max = min(self.width, cell[0] + NEIGHBORHOOD)
        j_min = max(0, cell[1] - NEIGHBORHOOD)
        j_max = min(self.height, cell[1] + NEIGHBORHOOD)
        for i in range(i_min, i_max + 1):
            column = self.cells[i]
            for j in range(j_min, j_max + 1):
                other = column[j]
                if other is None:
                    continue
                dx = other.x - x
                dy = other.y - y
                if dx * dx + dy * dy <= limit:
                    return True
        return False


def _annulus_offset(
    rng: np.random.Generator, inner: float, outer: float
) -> tuple[float, float]:
    """Uniform (by area) random offset in the annulus [inner, outer]."""
    theta = rng.random() * math.pi * 2.0
    radius = math.sqrt(rng.random() * (outer * outer - inner * inner) + inner * inner)
    return radius * math.cos(theta), radius * math.sin(theta)


def sample(
    bottom_left: tuple[float, float],
    top_right: tuple[float, float],
    minimum_distance: float,
    iterations_per_point: int = DEFAULT_ITERATIONS_PER_POINT,
    seed: int = 0,
) -> list[SamplePoint]:
    """Generate a blue-noise point set over a rectangular domain.

    Any two returned points are strictly more than ``minimum_distance``
    apart. Points are returned in acceptance order.

    Args:
        bottom_left: (x, y) of the domain's lower corner.
        top_right: (x, y) of the domain's upper corner.
        minimum_distance: Minimum spacing between points.
        iterations_per_point: Candidates tried around each active point
            before retiring it; values <= 0 use the default of 30.
        seed: Generator seed.

    Returns:
        Accepted points, each tagged with its grid cell.

    Raises:
        ConfigurationError: If the distance is not positive or the domain
            is empty.
    """
    if minimum_distance <= 0:
        raise ConfigurationError(f"minimum_distance must be > 0, got {minimum_distance}")
    bounds = DomainBounds(
        min_x=bottom_left[0], min_y=bottom_left[1], max_x=top_right[0], max_y=top_right[1]
    )
    if iterations_per_point <= 0:
        iterations_per_point = DEFAULT_ITERATIONS_PER_POINT

    rng = np.random.default_rng(seed)
    grid = _Grid(bounds, minimum_distance * INVERSE_ROOT_TWO)

    first_x = rng.random() * bounds.width + bounds.min_x
    first_y = rng.random() * bounds.height + bounds.min_y
    first = SamplePoint(first_x, first_y, grid.index(first_x, first_y))
    grid.insert(first)
    accepted = [first]
    active = [first]

    while active:
        index = int(rng.integers(0, len(active)))
        origin = active[index]
        found = False

        for _ in range(iterations_per_point):
            dx, dy = _annulus_offset(rng, minimum_distance, 2.0 * minimum_distance)
            x = origin.x + dx
            y = origin.y + dy
            if not bounds.contains(x, y):
                continue
            cell = grid.index(x, y)
            if grid.has_neighbor_within(x, y, cell, minimum_distance):
                continue
            point = SamplePoint(x, y, cell)
            grid.insert(point)
            accepted.append(point)
            active.append(point)
            found = True

        if not found:
            active.pop(index)

    logger.debug(
        f"Sampled {len(accepted)} points over {bounds.width:.1f}x{bounds.height:.1f} "
        f"at spacing {minimum_distance}"
    )
    return accepted


def expected_point_count(bounds: DomainBounds, minimum_distance: float) -> float:
    """Approximate accepted count for a domain: area / (d^2 * pi / 4)."""
    return bounds.area / (minimum_distance * minimum_distance * math.pi / 4.0)
