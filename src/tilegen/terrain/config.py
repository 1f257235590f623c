"""Terrain generation configuration models."""

import tomllib
from enum import Enum
from pathlib import Path

import numpy as np
from numpy.typing import ArrayLike, NDArray
from pydantic import BaseModel, Field, ValidationError, model_validator

from ..exceptions import ConfigurationError


class ResponseCurve(BaseModel):
    """Piecewise-linear response curve over normalized input.

    Values outside the key range are clamped to the first/last key.
    """

    keys: list[tuple[float, float]] = Field(
        default_factory=lambda: [(0.0, 0.0), (1.0, 1.0)],
        description="Keyframes as (t, value), strictly increasing in t",
    )

    @model_validator(mode="after")
    def _check_keys(self) -> "ResponseCurve":
        if not self.keys:
            raise ConfigurationError("Response curve needs at least one key")
        times = [t for t, _ in self.keys]
        if any(b <= a for a, b in zip(times, times[1:])):
            raise ConfigurationError(f"Curve key times must increase: {times}")
        return self

    @property
    def is_non_decreasing(self) -> bool:
        values = [v for _, v in self.keys]
        return all(b >= a for a, b in zip(values, values[1:]))

    def evaluate(self, t: ArrayLike) -> NDArray[np.float64]:
        times = np.array([k[0] for k in self.keys], dtype=np.float64)
        values = np.array([k[1] for k in self.keys], dtype=np.float64)
        return np.interp(np.asarray(t, dtype=np.float64), times, values)


class NoiseIteration(BaseModel):
    """One weighted layer of fractal noise in the base height field."""

    name: str = Field(default="Iteration", description="Label for logs")
    enabled: bool = Field(default=True, description="Skip when False")
    depth: int = Field(default=20, description="Vertical weight of this layer")
    scale: float = Field(default=20.0, description="Feature size (frequency = 1/scale)")
    rarity: float = Field(default=1.0, description="Peak sparsity exponent (1 = off)")
    offset_x: float = Field(default=100.0, description="Noise space x offset")
    offset_y: float = Field(default=100.0, description="Noise space y offset")
    distortion_x: float = Field(default=1.0, description="x frequency stretch")
    distortion_y: float = Field(default=1.0, description="y frequency stretch")
    octaves: int = Field(default=4, description="Number of octaves")
    lacunarity: float = Field(default=2.0, description="Frequency multiplier per octave")
    persistence: float = Field(default=0.5, description="Amplitude multiplier per octave")
    response: ResponseCurve = Field(default_factory=ResponseCurve)

    @model_validator(mode="after")
    def _check_ranges(self) -> "NoiseIteration":
        if self.depth < 0:
            raise ConfigurationError(f"{self.name}: depth must be >= 0, got {self.depth}")
        if self.scale <= 0:
            raise ConfigurationError(f"{self.name}: scale must be > 0, got {self.scale}")
        if self.rarity <= 0:
            raise ConfigurationError(f"{self.name}: rarity must be > 0, got {self.rarity}")
        if self.octaves < 1:
            raise ConfigurationError(f"{self.name}: octaves must be >= 1, got {self.octaves}")
        if self.lacunarity <= 0 or self.persistence < 0:
            raise ConfigurationError(
                f"{self.name}: lacunarity must be > 0 and persistence >= 0"
            )
        return self


class FalloffType(str, Enum):
    """Shape of the boundary falloff curve."""

    LINEAR = "linear"
    SMOOTHSTEP = "smoothstep"
    EXPONENTIAL = "exponential"
    COSINE = "cosine"
    CUSTOM = "custom"


class FalloffConfig(BaseModel):
    """Edge or radial falloff toward a minimum edge height."""

    enabled: bool = Field(default=True, description="Apply the falloff pass")
    falloff_type: FalloffType = Field(default=FalloffType.SMOOTHSTEP)
    use_radial: bool = Field(
        default=False, description="Distance from centre instead of nearest edge"
    )
    distance: float = Field(
        default=0.5, description="Normalized boundary distance where falloff reaches 1"
    )
    smoothness: float = Field(
        default=1.0, description="Exponent applied to normalized distance"
    )
    edge_min_height: float = Field(
        default=1.0, description="Edge height as a fraction of base elevation"
    )
    exponential_sharpness: float = Field(
        default=5.0, description="Rate of the exponential falloff shape"
    )
    custom_curve: ResponseCurve = Field(default_factory=ResponseCurve)

    @model_validator(mode="after")
    def _check_ranges(self) -> "FalloffConfig":
        if self.distance <= 0:
            raise ConfigurationError(f"Falloff distance must be > 0, got {self.distance}")
        if self.smoothness <= 0:
            raise ConfigurationError(f"Falloff smoothness must be > 0, got {self.smoothness}")
        if not 0.0 <= self.edge_min_height <= 1.0:
            raise ConfigurationError(
                f"edge_min_height must be in [0, 1], got {self.edge_min_height}"
            )
        if self.exponential_sharpness <= 0:
            raise ConfigurationError("exponential_sharpness must be > 0")
        if self.falloff_type == FalloffType.CUSTOM and not self.custom_curve.is_non_decreasing:
            raise ConfigurationError("Custom falloff curve must be non-decreasing")
        return self


class ErosionConfig(BaseModel):
    """Droplet hydraulic erosion tuning."""

    enabled: bool = Field(default=True, description="Run the erosion stage")
    seeded: bool = Field(default=True, description="Derive droplet RNG from the seed")
    seed_salt: int = Field(default=7919, description="Added to the seed for droplet RNG")
    inertia: float = Field(default=0.05, description="Weight of previous direction (0-1)")
    sediment_capacity_factor: float = Field(default=4.0, description="Capacity multiplier")
    min_sediment_capacity: float = Field(default=0.01, description="Capacity floor")
    erode_speed: float = Field(default=0.3, description="Fraction of free capacity eroded")
    deposit_speed: float = Field(default=0.3, description="Fraction of surplus deposited")
    evaporate_speed: float = Field(default=0.01, description="Water lost per step")
    gravity: float = Field(default=4.0, description="Acceleration from height change")
    max_lifetime: int = Field(default=30, description="Maximum steps per droplet")
    initial_water_volume: float = Field(default=1.0)
    initial_speed: float = Field(default=1.0)
    step_size: float = Field(default=1.0, description="Distance moved per step in cells")
    min_speed: float = Field(default=1e-3, description="Droplet stops below this speed")
    batch_size: int = Field(default=2000, description="Droplets per dispatched batch")

    @model_validator(mode="after")
    def _check_ranges(self) -> "ErosionConfig":
        if not 0.0 <= self.inertia <= 1.0:
            raise ConfigurationError(f"inertia must be in [0, 1], got {self.inertia}")
        if not 0.0 <= self.evaporate_speed <= 1.0:
            raise ConfigurationError("evaporate_speed must be in [0, 1]")
        if self.max_lifetime < 1:
            raise ConfigurationError("max_lifetime must be >= 1")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1")
        if self.step_size <= 0:
            raise ConfigurationError("step_size must be > 0")
        return self


class TextureLayer(BaseModel):
    """Classification layer selected by a steepness band (degrees)."""

    name: str
    min_steepness: float = 0.0
    max_steepness: float = 90.0

    @model_validator(mode="after")
    def _check_band(self) -> "TextureLayer":
        if self.min_steepness > self.max_steepness:
            raise ConfigurationError(
                f"{self.name}: min_steepness {self.min_steepness} > max_steepness "
                f"{self.max_steepness}"
            )
        return self


class ClassificationConfig(BaseModel):
    """Steepness-banded surface classification with an edge road band."""

    layers: list[TextureLayer] = Field(
        default_factory=lambda: [
            TextureLayer(name="grass", min_steepness=0.0, max_steepness=25.0),
            TextureLayer(name="rock", min_steepness=25.0, max_steepness=90.0),
        ]
    )
    road: TextureLayer = Field(
        default_factory=lambda: TextureLayer(name="road", min_steepness=0.0, max_steepness=90.0)
    )
    road_offset: float = Field(
        default=0.1, description="Normalized edge band that becomes road (0-0.5)"
    )
    override_steepness_for_road: bool = Field(
        default=False, description="Road band ignores the road steepness limits"
    )
    resolution: int | None = Field(
        default=None, description="Splat map resolution (None = height resolution)"
    )

    @model_validator(mode="after")
    def _check_ranges(self) -> "ClassificationConfig":
        if not self.layers:
            raise ConfigurationError("Classification needs at least one layer")
        if not 0.0 <= self.road_offset <= 0.5:
            raise ConfigurationError(f"road_offset must be in [0, 0.5], got {self.road_offset}")
        if self.resolution is not None and self.resolution < 1:
            raise ConfigurationError("Classification resolution must be >= 1")
        return self


class VegetationLayer(BaseModel):
    """Detail (grass) density layer."""

    name: str = "grass"
    prototypes: list[str] = Field(default_factory=lambda: ["grass"])
    density: int = Field(default=16, description="Maximum detail count per cell")
    noise_scale: float = Field(default=0.05, description="Noise frequency in cells")
    noise_threshold: float = Field(default=0.4, description="Noise cut-off (0-1)")
    spawn_in_patches: bool = False
    patch_density: float = Field(default=0.1, description="Covered fraction (0-1)")
    patch_size: int = Field(default=16, description="Patch radius in cells")

    @model_validator(mode="after")
    def _check_ranges(self) -> "VegetationLayer":
        if not 0.0 <= self.noise_threshold < 1.0:
            raise ConfigurationError("noise_threshold must be in [0, 1)")
        if not 0.0 <= self.patch_density <= 1.0:
            raise ConfigurationError("patch_density must be in [0, 1]")
        if self.density < 0 or self.patch_size < 1:
            raise ConfigurationError("density must be >= 0 and patch_size >= 1")
        return self


class VegetationConfig(BaseModel):
    """Detail vegetation parameters."""

    enabled: bool = False
    resolution: int = Field(default=512, description="Detail grid resolution")
    layers: list[VegetationLayer] = Field(default_factory=lambda: [VegetationLayer()])


class ClusterConfig(BaseModel):
    """Clustering of accepted placement points."""

    radius: float = Field(default=15.0, description="Cluster radius in world units")
    density: float = Field(default=0.7, description="Absorption probability (0-1)")
    min_size: int = Field(default=1, description="Minimum cluster size")
    max_size: int = Field(default=6, description="Maximum cluster size")
    min_scale: float = Field(default=0.8, description="Minimum member scale")
    max_scale: float = Field(default=1.2, description="Maximum member scale")
    prototypes: list[str] = Field(default_factory=lambda: ["tree"])

    @model_validator(mode="after")
    def _check_ranges(self) -> "ClusterConfig":
        if self.radius < 0:
            raise ConfigurationError(f"Cluster radius must be >= 0, got {self.radius}")
        if not 0.0 <= self.density <= 1.0:
            raise ConfigurationError(f"Cluster density must be in [0, 1], got {self.density}")
        if self.min_size < 1 or self.min_size > self.max_size:
            raise ConfigurationError(
                f"Cluster size range invalid: [{self.min_size}, {self.max_size}]"
            )
        if self.min_scale > self.max_scale:
            raise ConfigurationError(
                f"Scale range invalid: [{self.min_scale}, {self.max_scale}]"
            )
        if not self.prototypes:
            raise ConfigurationError("At least one prototype is required")
        return self


class ExclusionZone(BaseModel):
    """Rectangle in normalized tile coordinates where nothing is placed."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def contains(self, u: float, v: float) -> bool:
        return self.min_x <= u <= self.max_x and self.min_y <= v <= self.max_y


class PlacementConfig(BaseModel):
    """Discrete object placement parameters."""

    enabled: bool = True
    min_level: float = Field(default=0.0, description="Lowest accepted elevation")
    max_level: float = Field(default=100.0, description="Highest accepted elevation")
    max_steepness: float = Field(default=70.0, description="Slope limit in degrees")
    density: float = Field(default=0.5, description="Acceptance probability (0-1)")
    min_distance: float = Field(default=5.0, description="Poisson-disk spacing")
    iterations_per_point: int = Field(default=30, description="Candidates per active point")
    edge_margin: float = Field(
        default=0.1, description="Normalized edge band excluded from placement"
    )
    exclusion_zones: list[ExclusionZone] = Field(default_factory=list)
    excluded_layers: list[int] = Field(
        default_factory=list, description="Classification layers nothing is placed on"
    )
    cluster: ClusterConfig = Field(default_factory=ClusterConfig)

    @model_validator(mode="after")
    def _check_ranges(self) -> "PlacementConfig":
        if self.min_level > self.max_level:
            raise ConfigurationError(
                f"Elevation range invalid: [{self.min_level}, {self.max_level}]"
            )
        if not 0.0 <= self.max_steepness <= 90.0:
            raise ConfigurationError("max_steepness must be in [0, 90]")
        if not 0.0 <= self.density <= 1.0:
            raise ConfigurationError(f"density must be in [0, 1], got {self.density}")
        if self.min_distance <= 0:
            raise ConfigurationError(f"min_distance must be > 0, got {self.min_distance}")
        if not 0.0 <= self.edge_margin < 0.5:
            raise ConfigurationError("edge_margin must be in [0, 0.5)")
        return self


class GeneratorConfig(BaseModel):
    """Complete tile generation configuration."""

    resolution: int = Field(default=257, description="Height samples per side (2^n+1)")
    map_size: float = Field(default=1000.0, description="World size of one tile")
    world_scale: float = Field(default=6000.0, description="World units per noise unit")
    world_depth_divider: float = Field(default=1000.0, description="Height scale divisor")
    world_offset_x: float = Field(default=0.0, description="Global noise offset x")
    world_offset_y: float = Field(default=0.0, description="Global noise offset y")
    base_elevation: float = Field(
        default=0.2, description="Normalized lift applied to the whole field (0-1)"
    )
    processing_chunks: int = Field(default=8, description="Row bands per pass")
    chunk_delay_ms: int = Field(default=10, description="Pause between bands")
    parallel_bands: int = Field(default=1, description="Bands in flight at once")
    max_workers: int | None = Field(default=None, description="Thread pool size")
    erosion_iterations: int = Field(default=50_000, description="Droplets per tile")

    iterations: list[NoiseIteration] = Field(default_factory=lambda: [NoiseIteration()])
    falloff: FalloffConfig = Field(default_factory=FalloffConfig)
    erosion: ErosionConfig = Field(default_factory=ErosionConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    vegetation: VegetationConfig = Field(default_factory=VegetationConfig)
    placement: PlacementConfig = Field(default_factory=PlacementConfig)

    @model_validator(mode="after")
    def _check_ranges(self) -> "GeneratorConfig":
        if self.resolution < 1:
            raise ConfigurationError(f"resolution must be >= 1, got {self.resolution}")
        if self.map_size <= 0 or self.world_scale <= 0 or self.world_depth_divider <= 0:
            raise ConfigurationError("map_size, world_scale and world_depth_divider must be > 0")
        if not 0.0 <= self.base_elevation <= 1.0:
            raise ConfigurationError(
                f"base_elevation must be in [0, 1], got {self.base_elevation}"
            )
        if self.processing_chunks < 1:
            raise ConfigurationError("processing_chunks must be >= 1")
        if self.chunk_delay_ms < 0:
            raise ConfigurationError("chunk_delay_ms must be >= 0")
        if self.parallel_bands < 1:
            raise ConfigurationError("parallel_bands must be >= 1")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError("max_workers must be >= 1")
        if self.erosion_iterations < 0:
            raise ConfigurationError("erosion_iterations must be >= 0")
        return self


def load_config(config_path: Path) -> GeneratorConfig:
    """Load a generator configuration from a TOML file.

    Args:
        config_path: Path to the TOML config file.

    Returns:
        Parsed GeneratorConfig.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        tomllib.TOMLDecodeError: If TOML is malformed.
        ConfigurationError: If values fail validation.
    """
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    try:
        return GeneratorConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config {config_path}: {exc}") from exc
