"""Tests for noise evaluation."""

import numpy as np
import pytest

from tilegen.terrain.config import NoiseIteration, ResponseCurve
from tilegen.terrain.noise import (
    SeedOffsets,
    evaluate,
    fractal,
    perlin,
    rarity_remap,
    smoothstep,
)


@pytest.fixture
def grid() -> tuple[np.ndarray, np.ndarray]:
    xs, ys = np.meshgrid(np.linspace(0.0, 20.0, 64), np.linspace(0.0, 20.0, 64))
    return xs, ys


class TestPerlin:
    """Tests for 2D Perlin noise."""

    def test_output_range(self, grid) -> None:
        """Output is mapped to [0, 1]."""
        result = perlin(*grid)
        assert result.min() >= 0.0
        assert result.max() <= 1.0

    def test_lattice_points_are_midpoint(self) -> None:
        """Gradient noise is zero at integer points, which maps to 0.5."""
        xs = np.arange(0.0, 10.0)
        result = perlin(xs, xs[::-1])
        np.testing.assert_allclose(result, 0.5)

    def test_deterministic(self, grid) -> None:
        """Same coordinates give identical output."""
        np.testing.assert_array_equal(perlin(*grid), perlin(*grid))

    def test_broadcasts(self) -> None:
        """Row of x against a scalar y gives a row of values."""
        result = perlin(np.linspace(0.0, 5.0, 17), 2.3)
        assert result.shape == (17,)

    def test_varies(self, grid) -> None:
        """Noise is not constant away from the lattice."""
        assert perlin(*grid).std() > 0.01


class TestFractal:
    """Tests for the octave sum."""

    def test_output_range(self, grid) -> None:
        """Normalized by total amplitude, so stays in [0, 1]."""
        iteration = NoiseIteration(octaves=6, scale=3.0)
        result = fractal(*grid, iteration)
        assert result.min() >= 0.0
        assert result.max() <= 1.0

    def test_single_octave_is_scaled_perlin(self, grid) -> None:
        """One octave is plain Perlin at frequency 1/scale."""
        iteration = NoiseIteration(octaves=1, scale=4.0)
        xs, ys = grid
        np.testing.assert_allclose(fractal(xs, ys, iteration), perlin(xs / 4.0, ys / 4.0))

    def test_distortion_stretches_axis(self, grid) -> None:
        """Distortion multiplies the sampled frequency per axis."""
        xs, ys = grid
        stretched = NoiseIteration(octaves=1, scale=4.0, distortion_x=2.0)
        np.testing.assert_allclose(
            fractal(xs, ys, stretched), perlin(xs * 2.0 / 4.0, ys / 4.0)
        )

    def test_more_octaves_more_detail(self) -> None:
        """Extra octaves add high-frequency variation."""
        xs = np.linspace(0.0, 50.0, 2000)
        low = fractal(xs, 3.7, NoiseIteration(octaves=1, scale=10.0))
        high = fractal(xs, 3.7, NoiseIteration(octaves=6, scale=10.0))
        assert np.abs(np.diff(high)).mean() > np.abs(np.diff(low)).mean()


class TestRarityRemap:
    """Tests for the rarity remap."""

    def test_rarity_one_is_identity(self) -> None:
        """Rarity 1 leaves noise unchanged."""
        noise = np.linspace(0.0, 1.0, 11)
        np.testing.assert_allclose(rarity_remap(noise, 1.0), noise)

    def test_top_stays_at_one(self) -> None:
        """Noise of 1 maps to 1 for any rarity."""
        for rarity in (0.5, 2.0, 4.0):
            assert rarity_remap(1.0, rarity) == pytest.approx(1.0)

    def test_higher_rarity_sinks_midrange(self) -> None:
        """Higher rarity pushes mid values down, leaving sparser peaks."""
        assert rarity_remap(0.5, 3.0) < rarity_remap(0.5, 1.0)


class TestEvaluate:
    """Tests for full iteration evaluation."""

    def test_output_range(self, grid) -> None:
        """Output is clipped to [0, 1], even with strong rarity."""
        iteration = NoiseIteration(rarity=3.0, octaves=3, scale=5.0)
        result = evaluate(*grid, iteration, SeedOffsets(12.5, 99.0))
        assert result.min() >= 0.0
        assert result.max() <= 1.0

    def test_seed_offsets_shift_field(self, grid) -> None:
        """Different seed offsets sample different regions."""
        iteration = NoiseIteration(octaves=2, scale=5.0)
        a = evaluate(*grid, iteration, SeedOffsets(0.0, 0.0))
        b = evaluate(*grid, iteration, SeedOffsets(417.3, 12.9))
        assert not np.allclose(a, b)

    def test_offsets_are_additive(self) -> None:
        """Iteration offset and seed offset both translate the sample point."""
        iteration = NoiseIteration(octaves=1, scale=1.0, offset_x=3.0, offset_y=0.0)
        shifted = NoiseIteration(octaves=1, scale=1.0, offset_x=0.0, offset_y=0.0)
        xs = np.linspace(0.1, 4.0, 9)
        np.testing.assert_allclose(
            evaluate(xs, 0.25, iteration, SeedOffsets(1.5, 0.0)),
            evaluate(xs + 4.5, 0.25, shifted, SeedOffsets(0.0, 0.0)),
        )

    def test_response_curve_applied(self, grid) -> None:
        """A constant response curve flattens the output."""
        iteration = NoiseIteration(response=ResponseCurve(keys=[(0.0, 0.3), (1.0, 0.3)]))
        result = evaluate(*grid, iteration, SeedOffsets(0.0, 0.0))
        np.testing.assert_allclose(result, 0.3)


class TestSmoothstep:
    """Tests for smoothstep helper."""

    def test_edges(self) -> None:
        """Zero below edge0, one above edge1."""
        result = smoothstep(0.2, 0.8, np.array([0.0, 0.2, 0.8, 1.0]))
        np.testing.assert_allclose(result, [0.0, 0.0, 1.0, 1.0])

    def test_midpoint(self) -> None:
        """Midpoint maps to one half."""
        assert smoothstep(0.0, 1.0, 0.5) == pytest.approx(0.5)
