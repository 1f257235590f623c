"""Core value types shared by the sampler, planner and tile registry."""

from dataclasses import dataclass

from pydantic import BaseModel, model_validator

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class SamplePoint:
    """A world-space sample tagged with its sampler grid cell."""

    x: float
    y: float
    cell: tuple[int, int] = (0, 0)

    def distance_to(self, other: "SamplePoint") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        return (dx * dx + dy * dy) ** 0.5


class DomainBounds(BaseModel, frozen=True):
    """Axis-aligned rectangle in world space (bottom-left inclusive)."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @model_validator(mode="after")
    def _check_extent(self) -> "DomainBounds":
        if self.max_x <= self.min_x or self.max_y <= self.min_y:
            raise ConfigurationError(
                f"Empty domain: ({self.min_x}, {self.min_y})-({self.max_x}, {self.max_y})"
            )
        return self

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def area(self) -> float:
        return self.width * self.height

    def contains(self, x: float, y: float) -> bool:
        """Half-open containment test: min inclusive, max exclusive."""
        return self.min_x <= x < self.max_x and self.min_y <= y < self.max_y

    def normalize(self, x: float, y: float) -> tuple[float, float]:
        """Convert a world position to [0, 1] coordinates within the domain."""
        return ((x - self.min_x) / self.width, (y - self.min_y) / self.height)


class TileCoord(BaseModel, frozen=True):
    """Integer tile coordinate in the tile registry."""

    x: int
    y: int

    def __add__(self, other: "TileCoord") -> "TileCoord":
        return TileCoord(x=self.x + other.x, y=self.y + other.y)

    def __hash__(self) -> int:
        return hash((self.x, self.y))

    def __str__(self) -> str:
        return f"({self.x}, {self.y})"
