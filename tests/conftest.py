"""Shared test fixtures for tile generation tests."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
import pytest

from tilegen.surface import ArrayTerrainSurface
from tilegen.terrain.config import (
    ErosionConfig,
    FalloffConfig,
    GeneratorConfig,
    NoiseIteration,
)

GOLDEN_DIR = Path(__file__).parent / "golden"


def pytest_addoption(parser) -> None:
    parser.addoption(
        "--update-golden",
        action="store_true",
        default=False,
        help="Re-record golden snapshots under tests/golden/",
    )


@pytest.fixture
def small_config() -> GeneratorConfig:
    """33x33 tile with light erosion and no pacing delay."""
    return GeneratorConfig(
        resolution=33,
        processing_chunks=4,
        chunk_delay_ms=0,
        erosion_iterations=400,
        erosion=ErosionConfig(batch_size=100),
        iterations=[NoiseIteration(name="Base", octaves=2, scale=50.0, depth=20)],
    )


@pytest.fixture
def scenario_config() -> GeneratorConfig:
    """65x65 regression scenario: one octave, no falloff."""
    return GeneratorConfig(
        resolution=65,
        base_elevation=0.2,
        processing_chunks=8,
        chunk_delay_ms=0,
        erosion_iterations=1000,
        erosion=ErosionConfig(batch_size=250),
        falloff=FalloffConfig(enabled=False),
        iterations=[
            NoiseIteration(
                name="Base",
                octaves=1,
                scale=50.0,
                persistence=0.5,
                lacunarity=2.0,
                depth=20,
            )
        ],
    )


@pytest.fixture
def flat_surface() -> ArrayTerrainSurface:
    """100x100 surface, 100 units tall, flat at half height."""
    surface = ArrayTerrainSurface(width=100.0, depth=100.0, height=100.0)
    surface.set_heights(0, 0, np.full((33, 33), 0.5))
    return surface


@pytest.fixture
def ramp_surface() -> ArrayTerrainSurface:
    """100x100 surface rising from 0 to 100 along x (45 degree slope)."""
    surface = ArrayTerrainSurface(width=100.0, depth=100.0, height=100.0)
    ramp = np.tile(np.linspace(0.0, 1.0, 33), (33, 1))
    surface.set_heights(0, 0, ramp)
    return surface


@pytest.fixture
def executor():
    """Thread pool shared by a test, shut down afterwards."""
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def golden(request):
    """Compare against a recorded ``.npz`` snapshot in tests/golden/.

    ``golden(name, **arrays)`` returns the recorded arrays. A missing
    snapshot (or ``--update-golden``) records ``arrays`` and skips the test;
    commit the recorded file to pin the values.
    """

    def load(name: str, **arrays) -> dict[str, np.ndarray]:
        path = GOLDEN_DIR / f"{name}.npz"
        if request.config.getoption("--update-golden") or not path.exists():
            GOLDEN_DIR.mkdir(exist_ok=True)
            np.savez(path, **arrays)
            pytest.skip(f"recorded golden snapshot {path.name}")
        with np.load(path) as recorded:
            return {key: recorded[key] for key in recorded.files}

    return load
