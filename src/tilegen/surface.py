"""Terrain surface: the consumer of finished height and classification data.

Generation writes through ``set_heights``/``set_classification``; placement
reads back through the elevation and slope queries. The in-memory
``ArrayTerrainSurface`` is what the CLI and tests use.
"""

from typing import Protocol

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.ndimage import map_coordinates


class TerrainSurface(Protocol):
    """Surface contract consumed by the generator and the placement planner."""

    @property
    def size(self) -> tuple[float, float]:
        """World (width, depth) of the surface."""
        ...

    def set_heights(self, origin_x: int, origin_y: int, heights: NDArray[np.float64]) -> None:
        ...

    def set_classification(
        self, origin_x: int, origin_y: int, layers: NDArray[np.float64]
    ) -> None:
        ...

    def get_elevation_at(self, normalized_x: ArrayLike, normalized_y: ArrayLike):
        """World-space elevation at normalized coordinates."""
        ...

    def get_slope_at(self, normalized_x: ArrayLike, normalized_y: ArrayLike):
        """Slope in degrees at normalized coordinates."""
        ...

    def get_classification_at(self, normalized_x: float, normalized_y: float) -> int | None:
        """Index of the dominant classification layer, or None if unset."""
        ...


class ArrayTerrainSurface:
    """Terrain surface backed by numpy arrays.

    Heights are stored normalized and scaled by ``height`` on read. Slope
    is derived once per ``set_heights`` from the world-space gradient.

    Usage:
        surface = ArrayTerrainSurface(width=1000, depth=1000, height=120)
        surface.set_heights(0, 0, heights)
        surface.get_elevation_at(0.5, 0.5)
    """

    def __init__(self, width: float, depth: float, height: float):
        self.width = width
        self.depth = depth
        self.height = height
        self.heights: NDArray[np.float64] | None = None
        self.slopes: NDArray[np.float64] | None = None
        self.classification: NDArray[np.float64] | None = None
        self.height_writes = 0

    @property
    def size(self) -> tuple[float, float]:
        return (self.width, self.depth)

    @property
    def resolution(self) -> int:
        return 0 if self.heights is None else self.heights.shape[0]

    def set_heights(self, origin_x: int, origin_y: int, heights: NDArray[np.float64]) -> None:
        """Store a height block at (origin_x, origin_y) sample offsets.

        A block at the origin that covers everything replaces the field;
        otherwise it is written into the existing field.
        """
        heights = np.asarray(heights, dtype=np.float64)
        at_origin = origin_x == 0 and origin_y == 0
        if self.heights is None:
            if not at_origin:
                raise ValueError("First height block must start at the origin")
            self.heights = heights
        elif at_origin and heights.shape == self.heights.shape:
            self.heights = heights
        else:
            rows, cols = heights.shape
            self.heights[origin_y:origin_y + rows, origin_x:origin_x + cols] = heights
        self.slopes = self._compute_slopes()
        self.height_writes += 1

    def set_classification(
        self, origin_x: int, origin_y: int, layers: NDArray[np.float64]
    ) -> None:
        layers = np.asarray(layers, dtype=np.float64)
        if self.classification is None or (origin_x == 0 and origin_y == 0):
            self.classification = layers
        else:
            rows, cols = layers.shape[:2]
            self.classification[origin_y:origin_y + rows, origin_x:origin_x + cols] = layers

    def get_elevation_at(self, normalized_x: ArrayLike, normalized_y: ArrayLike):
        """Bilinear world-space elevation; scalars in, float out."""
        return self._sample(self._require_heights(), normalized_x, normalized_y) * self.height

    def get_slope_at(self, normalized_x: ArrayLike, normalized_y: ArrayLike):
        """Bilinear slope in degrees; scalars in, float out."""
        self._require_heights()
        return self._sample(self.slopes, normalized_x, normalized_y)

    def get_classification_at(self, normalized_x: float, normalized_y: float) -> int | None:
        if self.classification is None:
            return None
        rows, cols = self.classification.shape[:2]
        col = int(round(np.clip(normalized_x, 0.0, 1.0) * (cols - 1)))
        row = int(round(np.clip(normalized_y, 0.0, 1.0) * (rows - 1)))
        return int(np.argmax(self.classification[row, col]))

    def _require_heights(self) -> NDArray[np.float64]:
        if self.heights is None:
            raise RuntimeError("Surface has no heights yet")
        return self.heights

    def _compute_slopes(self) -> NDArray[np.float64]:
        heights = self.heights
        resolution = heights.shape[0]
        if resolution < 2:
            return np.zeros_like(heights)
        # Spacing between samples in world units along each axis
        dy = self.depth / (resolution - 1)
        dx = self.width / (heights.shape[1] - 1)
        grad_y, grad_x = np.gradient(heights * self.height, dy, dx)
        return np.degrees(np.arctan(np.hypot(grad_x, grad_y)))

    @staticmethod
    def _sample(field: NDArray[np.float64], normalized_x: ArrayLike, normalized_y: ArrayLike):
        scalar = np.ndim(normalized_x) == 0 and np.ndim(normalized_y) == 0
        u, v = np.broadcast_arrays(
            np.atleast_1d(np.asarray(normalized_x, dtype=np.float64)),
            np.atleast_1d(np.asarray(normalized_y, dtype=np.float64)),
        )
        rows, cols = field.shape
        # map_coordinates takes (row, col) order
        coords = np.array([
            np.clip(v, 0.0, 1.0).ravel() * (rows - 1),
            np.clip(u, 0.0, 1.0).ravel() * (cols - 1),
        ])
        result = map_coordinates(field, coords, order=1, mode="nearest").reshape(u.shape)
        if scalar:
            return float(result[0])
        return result
