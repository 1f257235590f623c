"""Post-generation validation of tiles and placement output."""

import logging
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.spatial import cKDTree

from ..types import SamplePoint
from .config import PlacementConfig
from .placement import Cluster

logger = logging.getLogger(__name__)


class ValidationResult:
    """Result of tile validation."""

    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.passed = True

    def add_error(self, message: str) -> None:
        """Add validation error."""
        self.errors.append(message)
        self.passed = False

    def add_warning(self, message: str) -> None:
        """Add validation warning."""
        self.warnings.append(message)


def validate_tile(
    heights: NDArray[np.float64],
    clusters: list[Cluster],
    config: PlacementConfig,
) -> ValidationResult:
    """Validate a finished tile.

    Args:
        heights: Final height field.
        clusters: Planned placement clusters.
        config: Placement configuration the clusters were planned with.

    Returns:
        ValidationResult with any errors/warnings.
    """
    result = ValidationResult()

    _check_height_range(heights, result)

    positions = [(m.x, m.y) for cluster in clusters for m in cluster.members]
    _check_spacing(positions, config.min_distance, result)
    _check_clusters(clusters, config, result)

    if result.passed:
        logger.info("Tile validation passed")
    else:
        logger.warning(f"Tile validation failed with {len(result.errors)} errors")
        for error in result.errors:
            logger.error(f"  - {error}")

    for warning in result.warnings:
        logger.warning(f"  - {warning}")

    return result


def validate_samples(points: Sequence[SamplePoint], minimum_distance: float) -> ValidationResult:
    """Check that no two sampled points are closer than ``minimum_distance``."""
    result = ValidationResult()
    _check_spacing([(p.x, p.y) for p in points], minimum_distance, result)
    return result


def _check_height_range(heights: NDArray[np.float64], result: ValidationResult) -> None:
    """Check every height is finite and inside [0, 1]."""
    non_finite = int(np.count_nonzero(~np.isfinite(heights)))
    if non_finite:
        result.add_error(f"{non_finite} non-finite heights")
        return

    out_of_range = int(np.count_nonzero((heights < 0.0) | (heights > 1.0)))
    if out_of_range:
        result.add_error(f"{out_of_range} heights outside [0, 1]")


def _check_spacing(
    positions: list[tuple[float, float]],
    minimum_distance: float,
    result: ValidationResult,
) -> None:
    """Check pairwise spacing with a KD-tree radius query."""
    if len(positions) < 2:
        return
    coords = np.asarray(positions, dtype=np.float64)
    tree = cKDTree(coords)
    too_close = 0
    for i, j in tree.query_pairs(r=minimum_distance):
        if np.hypot(*(coords[i] - coords[j])) < minimum_distance:
            too_close += 1
    if too_close:
        result.add_error(f"{too_close} point pairs closer than {minimum_distance}")


def _check_clusters(
    clusters: list[Cluster],
    config: PlacementConfig,
    result: ValidationResult,
) -> None:
    """Check cluster sizes, radii and that no point is in two clusters."""
    cluster_config = config.cluster
    seen: set[tuple[float, float]] = set()
    duplicates = 0
    oversized = 0
    undersized = 0
    outside_radius = 0

    for cluster in clusters:
        if cluster.size == 0 or cluster.size > cluster_config.max_size:
            oversized += 1
        elif cluster.size < cluster_config.min_size:
            undersized += 1

        for member in cluster.members:
            key = (member.x, member.y)
            if key in seen:
                duplicates += 1
            seen.add(key)
            distance = np.hypot(member.x - cluster.center.x, member.y - cluster.center.y)
            if distance > cluster_config.radius + 1e-9:
                outside_radius += 1

    if duplicates:
        result.add_error(f"{duplicates} points belong to more than one cluster")
    if oversized:
        result.add_error(f"{oversized} clusters outside size range")
    if outside_radius:
        result.add_error(f"{outside_radius} members outside their cluster radius")
    if undersized:
        # Allowed when a cluster ran out of candidates
        result.add_warning(f"{undersized} clusters below min size {cluster_config.min_size}")
