"""Discrete object placement: terrain-filtered Poisson samples grouped into clusters."""

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field

import numpy as np
from scipy.spatial import cKDTree

from ..surface import TerrainSurface
from ..types import DomainBounds, SamplePoint
from .config import ClusterConfig, PlacementConfig
from .sampling import sample

logger = logging.getLogger(__name__)


@dataclass
class PlacementTransform:
    """Where and how one object instance is placed."""

    x: float
    y: float
    elevation: float
    rotation: int
    scale: float


@dataclass
class Candidate:
    """A sample that passed every terrain test."""

    point: SamplePoint
    u: float
    v: float
    elevation: float


@dataclass
class Cluster:
    """A group of nearby placements sharing one prototype.

    The center is always the first member.
    """

    center: SamplePoint
    prototype: str
    members: list[PlacementTransform] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.members)


def is_excluded(u: float, v: float, config: PlacementConfig) -> bool:
    """True if a normalized position lies in the edge band or an exclusion zone."""
    margin = config.edge_margin
    if u < margin or u > 1.0 - margin or v < margin or v > 1.0 - margin:
        return True
    return any(zone.contains(u, v) for zone in config.exclusion_zones)


def filter_candidates(
    samples: list[SamplePoint],
    surface: TerrainSurface,
    bounds: DomainBounds,
    config: PlacementConfig,
    rng: np.random.Generator,
) -> list[Candidate]:
    """Keep the samples that may hold an object.

    Every sample consumes exactly one density draw, in sample order, before
    any terrain test, so the stream stays aligned whatever the terrain.

    Args:
        samples: Sampler output, in acceptance order.
        surface: Finalized terrain surface.
        bounds: World-space domain the samples cover.
        config: Placement constraints.
        rng: Placement generator.

    Returns:
        Accepted candidates, in sample order.
    """
    if not samples:
        return []

    draws = rng.random(len(samples))
    us = np.empty(len(samples))
    vs = np.empty(len(samples))
    for i, point in enumerate(samples):
        us[i], vs[i] = bounds.normalize(point.x, point.y)

    elevations = np.asarray(surface.get_elevation_at(us, vs), dtype=np.float64)
    slopes = np.asarray(surface.get_slope_at(us, vs), dtype=np.float64)
    excluded_layers = set(config.excluded_layers)

    candidates: list[Candidate] = []
    for i, point in enumerate(samples):
        if draws[i] > config.density:
            continue
        elevation = float(elevations[i])
        if elevation < config.min_level or elevation > config.max_level:
            continue
        if slopes[i] > config.max_steepness:
            continue
        u, v = float(us[i]), float(vs[i])
        if is_excluded(u, v, config):
            continue
        if excluded_layers and surface.get_classification_at(u, v) in excluded_layers:
            continue
        candidates.append(Candidate(point=point, u=u, v=v, elevation=elevation))

    return candidates


def build_clusters(
    candidates: list[Candidate],
    config: ClusterConfig,
    rng: np.random.Generator,
) -> list[Cluster]:
    """Greedily group candidates into clusters.

    A random unclustered candidate becomes the center; unclustered
    neighbours within ``config.radius`` are offered nearest first. Until the
    cluster holds ``config.min_size`` members every free neighbour joins;
    past that each joins with probability ``config.density`` until the
    cluster reaches its target size. A neighbour that declines stays free for
    later clusters. A cluster ends below ``min_size`` only when its radius
    runs out of free candidates. Every candidate ends up in exactly one
    cluster.

    Args:
        candidates: Accepted candidates.
        config: Cluster shape parameters.
        rng: Placement generator, continuing the candidate filter's stream.

    Returns:
        Clusters in creation order.
    """
    if not candidates:
        return []

    positions = np.array([[c.point.x, c.point.y] for c in candidates], dtype=np.float64)
    tree = cKDTree(positions)
    clustered = np.zeros(len(candidates), dtype=bool)
    remaining = list(range(len(candidates)))
    clusters: list[Cluster] = []

    while remaining:
        center = remaining[int(rng.integers(0, len(remaining)))]
        clustered[center] = True
        prototype = config.prototypes[int(rng.integers(0, len(config.prototypes)))]
        target = int(rng.integers(config.min_size, config.max_size + 1))
        member_indices = [center]

        origin = positions[center]
        neighbours = sorted(
            tree.query_ball_point(origin, r=config.radius),
            key=lambda i: (float(np.hypot(*(positions[i] - origin))), i),
        )
        for index in neighbours:
            if len(member_indices) >= target:
                break
            if clustered[index]:
                continue
            if len(member_indices) >= config.min_size and rng.random() >= config.density:
                continue
            clustered[index] = True
            member_indices.append(index)

        members = []
        for index in member_indices:
            candidate = candidates[index]
            members.append(
                PlacementTransform(
                    x=candidate.point.x,
                    y=candidate.point.y,
                    elevation=candidate.elevation,
                    rotation=int(rng.integers(0, 360)),
                    scale=float(rng.uniform(config.min_scale, config.max_scale)),
                )
            )
        clusters.append(
            Cluster(center=candidates[center].point, prototype=prototype, members=members)
        )
        remaining = [i for i in remaining if not clustered[i]]

    return clusters


class PlacementPlanner:
    """Plans object placement over a finalized terrain surface.

    Usage:
        planner = PlacementPlanner(surface)
        clusters = planner.plan(bounds, config.placement, seed=42)
    """

    def __init__(self, surface: TerrainSurface):
        self.surface = surface

    def plan(self, bounds: DomainBounds, config: PlacementConfig, seed: int) -> list[Cluster]:
        """Sample, filter and cluster placements for one domain.

        Args:
            bounds: World-space domain to cover.
            config: Placement constraints and cluster parameters.
            seed: Seed for both the sampler and the placement draws.

        Returns:
            Ordered clusters; empty when placement is disabled.
        """
        if not config.enabled:
            return []

        samples = sample(
            (bounds.min_x, bounds.min_y),
            (bounds.max_x, bounds.max_y),
            config.min_distance,
            config.iterations_per_point,
            seed,
        )
        rng = np.random.default_rng(seed)
        candidates = filter_candidates(samples, self.surface, bounds, config, rng)
        clusters = build_clusters(candidates, config.cluster, rng)

        logger.info(
            f"Placement: {len(samples)} samples, {len(candidates)} accepted, "
            f"{len(clusters)} clusters"
        )
        return clusters

    async def plan_async(
        self,
        bounds: DomainBounds,
        config: PlacementConfig,
        seed: int,
        executor: Executor | None = None,
    ) -> list[Cluster]:
        """Run ``plan`` off the event loop as a single suspension point."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, self.plan, bounds, config, seed)
