"""Coherent noise for terrain height generation.

Classic 2D gradient (Perlin) noise over a fixed permutation table, fractal
octave summation, and the per-iteration rarity/response remap. Everything
here is a pure function of its inputs so it can run on any worker thread.
"""

from typing import NamedTuple

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .config import NoiseIteration

# Ken Perlin's reference permutation, repeated to avoid index wrapping.
_PERMUTATION = np.array([
    151, 160, 137, 91, 90, 15, 131, 13, 201, 95, 96, 53, 194, 233, 7, 225,
    140, 36, 103, 30, 69, 142, 8, 99, 37, 240, 21, 10, 23, 190, 6, 148,
    247, 120, 234, 75, 0, 26, 197, 62, 94, 252, 219, 203, 117, 35, 11, 32,
    57, 177, 33, 88, 237, 149, 56, 87, 174, 20, 125, 136, 171, 168, 68, 175,
    74, 165, 71, 134, 139, 48, 27, 166, 77, 146, 158, 231, 83, 111, 229, 122,
    60, 211, 133, 230, 220, 105, 92, 41, 55, 46, 245, 40, 244, 102, 143, 54,
    65, 25, 63, 161, 1, 216, 80, 73, 209, 76, 132, 187, 208, 89, 18, 169,
    200, 196, 135, 130, 116, 188, 159, 86, 164, 100, 109, 198, 173, 186, 3, 64,
    52, 217, 226, 250, 124, 123, 5, 202, 38, 147, 118, 126, 255, 82, 85, 212,
    207, 206, 59, 227, 47, 16, 58, 17, 182, 189, 28, 42, 223, 183, 170, 213,
    119, 248, 152, 2, 44, 154, 163, 70, 221, 153, 101, 155, 167, 43, 172, 9,
    129, 22, 39, 253, 19, 98, 108, 110, 79, 113, 224, 232, 178, 185, 112, 104,
    218, 246, 97, 228, 251, 34, 242, 193, 238, 210, 144, 12, 191, 179, 162, 241,
    81, 51, 145, 235, 249, 14, 239, 107, 49, 192, 214, 31, 181, 199, 106, 157,
    184, 84, 204, 176, 115, 121, 50, 45, 127, 4, 150, 254, 138, 236, 205, 93,
    222, 114, 67, 29, 24, 72, 243, 141, 128, 195, 78, 66, 215, 61, 156, 180,
], dtype=np.int64)
_P = np.concatenate([_PERMUTATION, _PERMUTATION])

_GRADIENTS = np.array(
    [
        (1.0, 1.0), (-1.0, 1.0), (1.0, -1.0), (-1.0, -1.0),
        (1.0, 0.0), (-1.0, 0.0), (0.0, 1.0), (0.0, -1.0),
    ],
    dtype=np.float64,
)


class SeedOffsets(NamedTuple):
    """Per-iteration noise-space offsets derived from the generation seed."""

    x: float
    y: float


def _fade(t: NDArray[np.float64]) -> NDArray[np.float64]:
    # Quintic fade 6t^5 - 15t^4 + 10t^3
    return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)


def _grad(
    hashed: NDArray[np.int64], dx: NDArray[np.float64], dy: NDArray[np.float64]
) -> NDArray[np.float64]:
    g = _GRADIENTS[hashed & 7]
    return g[..., 0] * dx + g[..., 1] * dy


def perlin(x: ArrayLike, y: ArrayLike) -> NDArray[np.float64]:
    """Evaluate 2D Perlin noise, mapped to [0, 1].

    Args:
        x: Sample x coordinates (any shape, broadcast against y).
        y: Sample y coordinates.

    Returns:
        Noise values in [0, 1] with the broadcast shape of x and y.
    """
    x, y = np.broadcast_arrays(
        np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)
    )
    x_floor = np.floor(x)
    y_floor = np.floor(y)
    xi = x_floor.astype(np.int64) & 255
    yi = y_floor.astype(np.int64) & 255
    dx = x - x_floor
    dy = y - y_floor
    u = _fade(dx)
    v = _fade(dy)

    a = _P[xi] + yi
    b = _P[xi + 1] + yi
    n_aa = _grad(_P[a], dx, dy)
    n_ba = _grad(_P[b], dx - 1.0, dy)
    n_ab = _grad(_P[a + 1], dx, dy - 1.0)
    n_bb = _grad(_P[b + 1], dx - 1.0, dy - 1.0)

    lower = n_aa + u * (n_ba - n_aa)
    upper = n_ab + u * (n_bb - n_ab)
    noise = lower + v * (upper - lower)

    return np.clip((noise + 1.0) * 0.5, 0.0, 1.0)


def fractal(
    x: ArrayLike,
    y: ArrayLike,
    iteration: NoiseIteration,
) -> NDArray[np.float64]:
    """Sum octaves of Perlin noise for one iteration.

    Frequency starts at 1/scale and grows by lacunarity; amplitude starts
    at 1 and shrinks by persistence. The sum is divided by the total
    amplitude so the result stays in [0, 1].

    Args:
        x: Noise-space x coordinates (offsets already applied).
        y: Noise-space y coordinates.
        iteration: Octave parameters.

    Returns:
        Normalized fractal noise in [0, 1].
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    frequency = 1.0 / iteration.scale
    amplitude = 1.0
    total_amplitude = 0.0
    noise = np.zeros(np.broadcast_shapes(x.shape, y.shape), dtype=np.float64)

    for _ in range(iteration.octaves):
        sample_x = x * frequency * iteration.distortion_x
        sample_y = y * frequency * iteration.distortion_y
        noise += perlin(sample_x, sample_y) * amplitude
        total_amplitude += amplitude
        amplitude *= iteration.persistence
        frequency *= iteration.lacunarity

    return noise / total_amplitude


def rarity_remap(noise: ArrayLike, rarity: float) -> NDArray[np.float64]:
    """Bias noise toward sparser peaks: rarity 1 is the identity."""
    noise = np.asarray(noise, dtype=np.float64)
    return noise * rarity - (1.0 - 1.0 / rarity) * rarity


def evaluate(
    x: ArrayLike,
    y: ArrayLike,
    iteration: NoiseIteration,
    seed_offsets: SeedOffsets,
) -> NDArray[np.float64]:
    """Evaluate one noise iteration at noise-space coordinates.

    Args:
        x: Tile-relative noise-space x coordinates.
        y: Tile-relative noise-space y coordinates.
        iteration: Noise iteration configuration.
        seed_offsets: Offsets derived from the generation seed.

    Returns:
        Response-curve output clipped to [0, 1].
    """
    sample_x = np.asarray(x, dtype=np.float64) + iteration.offset_x + seed_offsets.x
    sample_y = np.asarray(y, dtype=np.float64) + iteration.offset_y + seed_offsets.y

    noise = fractal(sample_x, sample_y, iteration)
    shaped = iteration.response.evaluate(rarity_remap(noise, iteration.rarity))
    return np.clip(shaped, 0.0, 1.0)


def smoothstep(edge0: float, edge1: float, x: ArrayLike) -> NDArray[np.float64]:
    """Smooth Hermite interpolation between 0 and 1.

    Args:
        edge0: Lower edge of transition.
        edge1: Upper edge of transition.
        x: Input values.

    Returns:
        Smoothly interpolated values in [0, 1].
    """
    t = np.clip((np.asarray(x, dtype=np.float64) - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)
