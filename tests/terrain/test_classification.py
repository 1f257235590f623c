"""Tests for steepness classification and the road band."""

import numpy as np
import pytest

from tilegen.terrain.classification import (
    classify_slopes,
    classify_surface,
    layer_names,
    road_mask,
)
from tilegen.terrain.config import ClassificationConfig, TextureLayer
from tilegen.terrain.shaping import normalized_axis

RES = 21
GRASS, ROCK, ROAD = 0, 1, 2


def _uniform(steepness: float) -> np.ndarray:
    return np.full((RES, RES), steepness)


class TestLayerNames:
    def test_road_last(self) -> None:
        assert layer_names(ClassificationConfig()) == ["grass", "rock", "road"]


class TestRoadMask:
    """Tests for the edge band mask."""

    def test_band_width(self) -> None:
        """Offset 0.1 on 21 samples covers two samples on each side."""
        axis = normalized_axis(RES)
        u, v = np.meshgrid(axis, axis)
        mask = road_mask(u, v, 0.1)
        assert mask[10, 0] and mask[10, 1]
        assert not mask[10, 2]
        assert mask[10, 19] and mask[10, 20]
        assert not mask[10, 18]
        assert not mask[10, 10]

    def test_zero_offset_is_empty(self) -> None:
        axis = normalized_axis(RES)
        u, v = np.meshgrid(axis, axis)
        assert not road_mask(u, v, 0.0).any()


class TestClassifySlopes:
    """Tests for the one-hot splat map."""

    def test_flat_without_road_is_grass(self) -> None:
        """Gentle slopes and no road band select the first layer everywhere."""
        splat = classify_slopes(_uniform(0.0), ClassificationConfig(road_offset=0.0))
        assert splat.shape == (RES, RES, 3)
        assert np.all(splat[..., GRASS] == 1.0)

    def test_steep_is_rock(self) -> None:
        """40 degrees falls in the rock band."""
        splat = classify_slopes(_uniform(40.0), ClassificationConfig(road_offset=0.0))
        assert np.all(splat[..., ROCK] == 1.0)

    def test_border_is_road(self) -> None:
        """The outer band is road and the interior is not."""
        splat = classify_slopes(_uniform(5.0), ClassificationConfig())
        for edge in (splat[0], splat[-1], splat[:, 0], splat[:, -1]):
            assert np.all(edge[:, ROAD] == 1.0)
        assert splat[10, 10, GRASS] == 1.0
        assert splat[10, 10, ROAD] == 0.0

    def test_road_respects_its_steepness_band(self) -> None:
        """Too steep for the road layer: the band falls through to the slope layers."""
        config = ClassificationConfig(
            road=TextureLayer(name="road", min_steepness=0.0, max_steepness=10.0)
        )
        splat = classify_slopes(_uniform(40.0), config)
        assert not splat[..., ROAD].any()
        assert np.all(splat[0, :, ROCK] == 1.0)

    def test_override_ignores_road_steepness(self) -> None:
        """With the override, the band is road whatever its slope."""
        config = ClassificationConfig(
            road=TextureLayer(name="road", min_steepness=0.0, max_steepness=10.0),
            override_steepness_for_road=True,
        )
        splat = classify_slopes(_uniform(40.0), config)
        assert np.all(splat[0, :, ROAD] == 1.0)
        assert splat[10, 10, ROCK] == 1.0

    def test_unmatched_falls_back_to_first_layer(self) -> None:
        """A steepness between bands takes layer 0."""
        config = ClassificationConfig(
            road_offset=0.0,
            layers=[
                TextureLayer(name="grass", min_steepness=0.0, max_steepness=10.0),
                TextureLayer(name="rock", min_steepness=30.0, max_steepness=40.0),
            ],
        )
        splat = classify_slopes(_uniform(20.0), config)
        assert np.all(splat[..., GRASS] == 1.0)

    def test_overlapping_bands_take_first(self) -> None:
        """25 degrees is in both default bands; grass is listed first."""
        splat = classify_slopes(_uniform(25.0), ClassificationConfig(road_offset=0.0))
        assert np.all(splat[..., GRASS] == 1.0)
        assert not splat[..., ROCK].any()

    def test_exactly_one_layer_per_cell(self) -> None:
        """Weights are one-hot for arbitrary slopes."""
        steepness = np.random.default_rng(0).uniform(0.0, 90.0, size=(RES, RES))
        splat = classify_slopes(steepness, ClassificationConfig())
        np.testing.assert_array_equal(splat.sum(axis=-1), 1.0)
        assert set(np.unique(splat)) <= {0.0, 1.0}


class TestClassifySurface:
    """Tests for classifying a finished surface."""

    def test_uses_height_resolution_by_default(self, flat_surface) -> None:
        splat = classify_surface(flat_surface, ClassificationConfig(), 17)
        assert splat.shape == (17, 17, 3)

    def test_config_resolution_wins(self, flat_surface) -> None:
        splat = classify_surface(flat_surface, ClassificationConfig(resolution=9), 33)
        assert splat.shape == (9, 9, 3)

    def test_ramp_interior_is_rock(self, ramp_surface) -> None:
        """A 45 degree ramp is rock inside the road band."""
        splat = classify_surface(ramp_surface, ClassificationConfig(), 33)
        assert splat[16, 16, ROCK] == 1.0
        assert splat[0, 16, ROAD] == 1.0

    def test_flat_interior_is_grass(self, flat_surface) -> None:
        splat = classify_surface(flat_surface, ClassificationConfig(), 33)
        assert splat[16, 16, GRASS] == 1.0


@pytest.mark.parametrize(
    "steepness,layer", [(0.0, GRASS), (24.9, GRASS), (25.1, ROCK), (90.0, ROCK)]
)
def test_band_edges(steepness: float, layer: int) -> None:
    """Slopes on either side of the shared 25 degree edge pick their own band."""
    splat = classify_slopes(np.full((3, 3), steepness), ClassificationConfig(road_offset=0.0))
    assert splat[1, 1, layer] == 1.0
