"""Async height field generation pipeline for one terrain tile."""

import asyncio
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

import numpy as np
import structlog
from numpy.typing import NDArray

from ..exceptions import (
    ConfigurationError,
    GenerationCancelled,
    GenerationInProgressError,
    WorkerFailure,
)
from ..scheduler import CancellationToken, ChunkedScheduler, ProgressCallback
from ..surface import TerrainSurface
from .config import GeneratorConfig
from .erosion import Erosion, ErosionStats
from .shaping import build_noise_plan, elevation_rows, falloff_rows, noise_rows

logger = structlog.get_logger()

# Share of overall progress each stage accounts for
STAGE_WEIGHTS = {
    "noise": 0.35,
    "elevation": 0.05,
    "falloff": 0.05,
    "erosion": 0.55,
}


class GenerationStatus(str, Enum):
    """Terminal state of one generate() call."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class GenerationOutcome:
    """Result of one generation: completed heights, or why there are none."""

    status: GenerationStatus
    seed: int
    heights: NDArray[np.float64] | None = None
    reason: str = ""
    stage: str | None = None
    index: int | None = None
    erosion: ErosionStats | None = None
    duration_ms: float = 0.0

    @property
    def completed(self) -> bool:
        return self.status == GenerationStatus.COMPLETED


class TerrainGenerator:
    """
    Generates one tile's height field off the event loop.

    Stages run strictly in order: noise, elevation, falloff, erosion, then
    a final clamp. Only a completed generation is handed to the surface.

    Usage:
        generator = TerrainGenerator(config, surface=surface)
        outcome = await generator.generate(seed=42)

        # From another task:
        generator.cancel()
    """

    def __init__(
        self,
        config: GeneratorConfig | None = None,
        surface: TerrainSurface | None = None,
        origin: tuple[float, float] = (0.0, 0.0),
        executor: Executor | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.config = config or GeneratorConfig()
        self.surface = surface
        self.origin = origin
        self.executor = executor
        self.on_progress = on_progress

        self._token: CancellationToken | None = None
        self._progress = 0.0
        self._completed_weight = 0.0
        self._is_generating = False
        self._has_finished_generation = False

    @property
    def progress(self) -> float:
        """Overall progress of the current (or last) generation, 0 to 1."""
        return self._progress

    @property
    def is_generating(self) -> bool:
        return self._is_generating

    @property
    def has_finished_generation(self) -> bool:
        """Whether the last generation completed and was published."""
        return self._has_finished_generation

    def cancel(self) -> None:
        """Request cancellation of the running generation, if any."""
        if self._token is not None:
            logger.info("generation_cancel_requested")
            self._token.cancel()

    async def generate(self, seed: int) -> GenerationOutcome:
        """Generate the height field for ``seed``.

        Cancellation and worker failures are reported through the outcome,
        never raised. Cancelling the awaiting task trips the token, waits
        for in-flight workers and re-raises CancelledError.

        Args:
            seed: Non-negative generation seed.

        Returns:
            GenerationOutcome; ``heights`` is set only when completed.

        Raises:
            ConfigurationError: If the seed is negative.
            GenerationInProgressError: If a generation is already running.
        """
        if seed < 0:
            raise ConfigurationError(f"seed must be >= 0, got {seed}")
        if self._is_generating:
            raise GenerationInProgressError("generation already running")

        token = CancellationToken()
        self._token = token
        self._is_generating = True
        self._has_finished_generation = False
        self._progress = 0.0
        self._completed_weight = 0.0

        owns_executor = self.executor is None
        executor = self.executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="tilegen"
        )
        start = time.monotonic()
        logger.info(
            "generation_started",
            seed=seed,
            resolution=self.config.resolution,
            origin=self.origin,
        )

        try:
            heights, stats = await self._run_stages(seed, token, executor)
        except GenerationCancelled as exc:
            logger.info("generation_cancelled", seed=seed, stage=exc.stage)
            return GenerationOutcome(
                status=GenerationStatus.CANCELLED,
                seed=seed,
                reason=str(exc),
                stage=exc.stage,
                duration_ms=_elapsed_ms(start),
            )
        except WorkerFailure as exc:
            logger.error(
                "generation_failed", seed=seed, stage=exc.stage, index=exc.index, error=str(exc)
            )
            return GenerationOutcome(
                status=GenerationStatus.FAILED,
                seed=seed,
                reason=str(exc),
                stage=exc.stage,
                index=exc.index,
                duration_ms=_elapsed_ms(start),
            )
        finally:
            self._is_generating = False
            self._token = None
            if owns_executor:
                executor.shutdown(wait=True)

        if self.surface is not None:
            self.surface.set_heights(0, 0, heights)
        self._has_finished_generation = True
        self._progress = 1.0

        duration_ms = _elapsed_ms(start)
        logger.info(
            "generation_completed",
            seed=seed,
            duration_ms=round(duration_ms, 1),
            min_height=float(heights.min()),
            max_height=float(heights.max()),
        )
        return GenerationOutcome(
            status=GenerationStatus.COMPLETED,
            seed=seed,
            heights=heights,
            erosion=stats,
            duration_ms=duration_ms,
        )

    async def _run_stages(
        self,
        seed: int,
        token: CancellationToken,
        executor: Executor,
    ) -> tuple[NDArray[np.float64], ErosionStats | None]:
        config = self.config
        resolution = config.resolution
        heights = np.zeros((resolution, resolution), dtype=np.float64)
        scheduler = ChunkedScheduler(
            executor,
            token,
            chunk_delay_ms=config.chunk_delay_ms,
            parallel_bands=config.parallel_bands,
            on_progress=self._on_stage_progress,
        )

        plan = build_noise_plan(config, seed, self.origin)
        await self._bands(
            scheduler, "noise", lambda rows, tok: noise_rows(heights, rows, plan, tok)
        )
        await self._bands(
            scheduler,
            "elevation",
            lambda rows, tok: elevation_rows(heights, rows, config.base_elevation, tok),
        )
        if config.falloff.enabled:
            await self._bands(
                scheduler,
                "falloff",
                lambda rows, tok: falloff_rows(
                    heights, rows, config.falloff, config.base_elevation, tok
                ),
            )
        else:
            self._finish_stage("falloff")

        stats = None
        if config.erosion.enabled and config.erosion_iterations > 0:
            stats = await self._erode(scheduler, heights, seed)
        else:
            self._finish_stage("erosion")

        token.raise_if_cancelled("finalize")
        np.clip(heights, 0.0, 1.0, out=heights)
        return heights, stats

    async def _bands(self, scheduler: ChunkedScheduler, stage: str, work) -> None:
        bands = await scheduler.run_bands(
            stage, self.config.resolution, self.config.processing_chunks, work
        )
        self._finish_stage(stage)
        logger.debug("stage_completed", stage=stage, bands=bands)

    async def _erode(
        self,
        scheduler: ChunkedScheduler,
        heights: NDArray[np.float64],
        seed: int,
    ) -> ErosionStats:
        erosion = Erosion(self.config.erosion, seed)
        rng = erosion.make_rng(self.config.erosion.seeded)
        resolution = self.config.resolution

        # Batches run one at a time and share the generator in order
        results = await scheduler.run_batches(
            "erosion",
            self.config.erosion_iterations,
            self.config.erosion.batch_size,
            lambda batch, tok: erosion.run_droplets(heights, resolution, len(batch), rng, tok),
        )
        stats = ErosionStats()
        for result in results:
            stats = stats.merge(result)

        self._finish_stage("erosion")
        logger.debug(
            "stage_completed",
            stage="erosion",
            droplets=stats.simulated,
            skipped=stats.skipped,
        )
        return stats

    def _on_stage_progress(self, stage: str, fraction: float) -> None:
        self._progress = self._completed_weight + STAGE_WEIGHTS[stage] * fraction
        if self.on_progress:
            self.on_progress(stage, fraction)

    def _finish_stage(self, stage: str) -> None:
        self._completed_weight += STAGE_WEIGHTS[stage]
        self._progress = self._completed_weight


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000
