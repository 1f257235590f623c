"""Tests for object placement planning."""

from collections import Counter

import numpy as np
import pytest

from tilegen.surface import ArrayTerrainSurface
from tilegen.terrain.config import ClusterConfig, ExclusionZone, PlacementConfig
from tilegen.terrain.placement import (
    Candidate,
    PlacementPlanner,
    build_clusters,
    filter_candidates,
    is_excluded,
)
from tilegen.terrain.sampling import sample
from tilegen.terrain.validation import validate_tile
from tilegen.types import DomainBounds, SamplePoint

BOUNDS = DomainBounds(min_x=0.0, min_y=0.0, max_x=100.0, max_y=100.0)


@pytest.fixture
def samples():
    return sample((0.0, 0.0), (100.0, 100.0), 5.0, 30, seed=7)


def _open_config(**overrides) -> PlacementConfig:
    """Config that accepts everything on the test surfaces unless overridden."""
    values = dict(density=1.0, edge_margin=0.0, min_level=0.0, max_level=100.0, max_steepness=90.0)
    values.update(overrides)
    return PlacementConfig(**values)


class TestFilterCandidates:
    """Tests for terrain filtering."""

    def test_open_config_accepts_all(self, samples, flat_surface) -> None:
        """With no constraints every sample is accepted, in order."""
        rng = np.random.default_rng(0)
        candidates = filter_candidates(samples, flat_surface, BOUNDS, _open_config(), rng)
        assert [c.point for c in candidates] == samples
        assert all(c.elevation == pytest.approx(50.0) for c in candidates)

    def test_zero_density_rejects_all(self, samples, flat_surface) -> None:
        """Density 0 accepts nothing."""
        rng = np.random.default_rng(0)
        config = _open_config(density=0.0)
        assert filter_candidates(samples, flat_surface, BOUNDS, config, rng) == []

    def test_partial_density(self, samples, flat_surface) -> None:
        """Density 0.5 keeps roughly half."""
        rng = np.random.default_rng(0)
        config = _open_config(density=0.5)
        kept = len(filter_candidates(samples, flat_surface, BOUNDS, config, rng))
        assert 0.35 * len(samples) < kept < 0.65 * len(samples)

    def test_one_draw_per_sample(self, samples, flat_surface) -> None:
        """The density stream advances once per sample whatever is rejected."""
        a = np.random.default_rng(5)
        b = np.random.default_rng(5)
        filter_candidates(samples, flat_surface, BOUNDS, _open_config(), a)
        filter_candidates(samples, flat_surface, BOUNDS, _open_config(min_level=90.0), b)
        assert a.random() == b.random()

    def test_elevation_band(self, samples, flat_surface) -> None:
        """Surface at elevation 50 is outside [60, 100]."""
        rng = np.random.default_rng(0)
        config = _open_config(min_level=60.0)
        assert filter_candidates(samples, flat_surface, BOUNDS, config, rng) == []

    def test_slope_limit(self, samples, ramp_surface) -> None:
        """A 45 degree ramp fails a 30 degree limit and passes a 60 degree one."""
        steep = _open_config(max_steepness=30.0)
        gentle = _open_config(max_steepness=60.0)
        rejected = filter_candidates(samples, ramp_surface, BOUNDS, steep, np.random.default_rng(0))
        accepted = filter_candidates(
            samples, ramp_surface, BOUNDS, gentle, np.random.default_rng(0)
        )
        assert rejected == []
        assert len(accepted) == len(samples)

    def test_edge_margin(self, samples, flat_surface) -> None:
        """Nothing is accepted within the edge band."""
        config = _open_config(edge_margin=0.2)
        candidates = filter_candidates(
            samples, flat_surface, BOUNDS, config, np.random.default_rng(0)
        )
        assert candidates
        for c in candidates:
            assert 0.2 <= c.u <= 0.8
            assert 0.2 <= c.v <= 0.8

    def test_exclusion_zone(self, samples, flat_surface) -> None:
        """Nothing is accepted inside an exclusion zone."""
        zone = ExclusionZone(min_x=0.4, min_y=0.4, max_x=0.6, max_y=0.6)
        config = _open_config(exclusion_zones=[zone])
        candidates = filter_candidates(
            samples, flat_surface, BOUNDS, config, np.random.default_rng(0)
        )
        assert candidates
        assert not any(zone.contains(c.u, c.v) for c in candidates)

    def test_excluded_classification_layer(self, samples, flat_surface) -> None:
        """Cells classified as an excluded layer hold nothing."""
        splat = np.zeros((33, 33, 3))
        splat[..., 1] = 1.0
        flat_surface.set_classification(0, 0, splat)
        config = _open_config(excluded_layers=[1])
        assert filter_candidates(
            samples, flat_surface, BOUNDS, config, np.random.default_rng(0)
        ) == []

    def test_empty_samples(self, flat_surface) -> None:
        """No samples, no candidates."""
        rng = np.random.default_rng(0)
        assert filter_candidates([], flat_surface, BOUNDS, _open_config(), rng) == []


class TestIsExcluded:
    """Tests for the exclusion band."""

    def test_margin(self) -> None:
        config = PlacementConfig(edge_margin=0.1)
        assert is_excluded(0.05, 0.5, config)
        assert is_excluded(0.5, 0.95, config)
        assert not is_excluded(0.5, 0.5, config)


class TestBuildClusters:
    """Tests for greedy clustering."""

    @pytest.fixture
    def candidates(self, samples, flat_surface):
        return filter_candidates(
            samples, flat_surface, BOUNDS, _open_config(), np.random.default_rng(1)
        )

    def test_every_candidate_in_exactly_one_cluster(self, candidates) -> None:
        """Clusters partition the accepted points."""
        clusters = build_clusters(candidates, ClusterConfig(), np.random.default_rng(2))
        members = Counter((m.x, m.y) for c in clusters for m in c.members)
        assert set(members) == {(c.point.x, c.point.y) for c in candidates}
        assert all(count == 1 for count in members.values())

    def test_sizes_bounded(self, candidates) -> None:
        """No cluster exceeds max_size and none is empty."""
        config = ClusterConfig(min_size=2, max_size=5)
        clusters = build_clusters(candidates, config, np.random.default_rng(2))
        assert all(1 <= c.size <= 5 for c in clusters)

    def test_sizes_reach_target_when_candidates_plentiful(self, candidates) -> None:
        """With everything in range and density 1, clusters fill to the target."""
        config = ClusterConfig(radius=1000.0, density=1.0, min_size=4, max_size=4)
        clusters = build_clusters(candidates, config, np.random.default_rng(2))
        assert all(c.size == 4 for c in clusters[:-1])
        assert 1 <= clusters[-1].size <= 4

    def test_low_density_still_reaches_min_size(self) -> None:
        """Declined neighbours do not leave a cluster short while free ones remain."""
        row = [
            Candidate(point=SamplePoint(x=6.0 * i, y=0.0), u=0.0, v=0.0, elevation=0.0)
            for i in range(10)
        ]
        config = ClusterConfig(radius=1000.0, density=0.3, min_size=4, max_size=4)
        sizes = [c.size for c in build_clusters(row, config, np.random.default_rng(0))]
        assert sizes == [4, 4, 2]

    def test_min_size_with_partial_density(self, candidates) -> None:
        """Only the final cluster may fall short of min_size when all are in range."""
        config = ClusterConfig(radius=1000.0, density=0.3, min_size=3, max_size=5)
        clusters = build_clusters(candidates, config, np.random.default_rng(6))
        assert all(3 <= c.size <= 5 for c in clusters[:-1])
        assert sum(c.size for c in clusters) == len(candidates)

    def test_center_is_first_member(self, candidates) -> None:
        """The chosen center leads the member list."""
        for cluster in build_clusters(candidates, ClusterConfig(), np.random.default_rng(3)):
            first = cluster.members[0]
            assert (first.x, first.y) == (cluster.center.x, cluster.center.y)

    def test_members_within_radius(self, candidates) -> None:
        """Members are absorbed only from within the cluster radius."""
        config = ClusterConfig(radius=12.0, density=1.0)
        for cluster in build_clusters(candidates, config, np.random.default_rng(3)):
            for m in cluster.members:
                assert np.hypot(m.x - cluster.center.x, m.y - cluster.center.y) <= 12.0

    def test_member_transforms(self, candidates) -> None:
        """Rotation is whole degrees in [0, 360), scale within range."""
        config = ClusterConfig(min_scale=0.5, max_scale=1.5, prototypes=["oak", "pine"])
        for cluster in build_clusters(candidates, config, np.random.default_rng(4)):
            assert cluster.prototype in ("oak", "pine")
            for m in cluster.members:
                assert 0 <= m.rotation < 360
                assert 0.5 <= m.scale <= 1.5

    def test_zero_density_gives_singletons(self, candidates) -> None:
        """Density 0 absorbs nothing, so every point is its own cluster."""
        config = ClusterConfig(density=0.0)
        clusters = build_clusters(candidates, config, np.random.default_rng(4))
        assert len(clusters) == len(candidates)

    def test_empty(self) -> None:
        assert build_clusters([], ClusterConfig(), np.random.default_rng(0)) == []


class TestPlacementPlanner:
    """Tests for the planner entry points."""

    def test_deterministic(self, flat_surface) -> None:
        """Same seed, same clusters."""
        planner = PlacementPlanner(flat_surface)
        config = PlacementConfig()
        assert planner.plan(BOUNDS, config, seed=42) == planner.plan(BOUNDS, config, seed=42)

    def test_disabled(self, flat_surface) -> None:
        """Disabled placement plans nothing."""
        planner = PlacementPlanner(flat_surface)
        assert planner.plan(BOUNDS, PlacementConfig(enabled=False), seed=1) == []

    def test_output_validates(self, flat_surface) -> None:
        """Planned clusters satisfy spacing, radius and membership checks."""
        config = PlacementConfig(density=0.8)
        clusters = PlacementPlanner(flat_surface).plan(BOUNDS, config, seed=3)
        assert clusters
        result = validate_tile(flat_surface.heights, clusters, config)
        assert result.passed, result.errors

    def test_world_offset_domain(self) -> None:
        """Domains away from the origin are normalized against their own bounds."""
        surface = ArrayTerrainSurface(width=100.0, depth=100.0, height=100.0)
        surface.set_heights(0, 0, np.full((17, 17), 0.5))
        bounds = DomainBounds(min_x=1000.0, min_y=-100.0, max_x=1100.0, max_y=0.0)
        clusters = PlacementPlanner(surface).plan(bounds, PlacementConfig(), seed=5)
        for cluster in clusters:
            for m in cluster.members:
                assert 1010.0 <= m.x <= 1090.0
                assert -90.0 <= m.y <= -10.0

    @pytest.mark.asyncio
    async def test_plan_async_matches_plan(self, flat_surface) -> None:
        """The async entry point returns the same clusters."""
        planner = PlacementPlanner(flat_surface)
        config = PlacementConfig()
        expected = planner.plan(BOUNDS, config, seed=9)
        assert await planner.plan_async(BOUNDS, config, seed=9) == expected
