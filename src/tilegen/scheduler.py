"""Chunked, cancellable dispatch of height field work onto a thread pool."""

import asyncio
import math
import threading
from concurrent.futures import Executor
from typing import Callable

import structlog

from .exceptions import GenerationCancelled, WorkerFailure

logger = structlog.get_logger()


class CancellationToken:
    """Cooperative cancellation flag shared by the driver and its workers."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise GenerationCancelled(stage)


# Worker signatures: a band worker fills rows, a batch worker runs a slice
# of independent units (erosion droplets).
BandWork = Callable[[range, CancellationToken], None]
BatchWork = Callable[[range, CancellationToken], object]
ProgressCallback = Callable[[str, float], None]


def partition_rows(resolution: int, chunks: int) -> list[range]:
    """Split [0, resolution) into at most ``chunks`` contiguous bands.

    Bands are ceil(resolution / chunks) rows tall; trailing empty bands
    are dropped.
    """
    if resolution <= 0:
        return []
    chunk_size = math.ceil(resolution / max(chunks, 1))
    bands = []
    for start in range(0, resolution, chunk_size):
        bands.append(range(start, min(start + chunk_size, resolution)))
    return bands


class ChunkedScheduler:
    """
    Cooperative driver for band and batch work.

    The driver runs on the event loop; each unit runs on the executor. The
    driver suspends until the unit (or window of units) completes, checks
    the token, optionally sleeps, and moves on.

    Usage:
        scheduler = ChunkedScheduler(executor, token, chunk_delay_ms=10)
        await scheduler.run_bands("noise", resolution, 8, work)
    """

    def __init__(
        self,
        executor: Executor | None,
        token: CancellationToken,
        chunk_delay_ms: int = 0,
        parallel_bands: int = 1,
        on_progress: ProgressCallback | None = None,
    ):
        self.executor = executor
        self.token = token
        self.chunk_delay_ms = chunk_delay_ms
        self.parallel_bands = max(1, parallel_bands)
        self.on_progress = on_progress

    async def run_bands(
        self,
        stage: str,
        resolution: int,
        chunks: int,
        work: BandWork,
    ) -> int:
        """Run ``work`` over every row band of the buffer.

        Bands own disjoint rows, so up to ``parallel_bands`` of them may be
        in flight together.

        Returns:
            Number of bands completed.

        Raises:
            GenerationCancelled: If the token tripped before, during or
                after a band.
            WorkerFailure: If a band raised; later bands are not started.
        """
        bands = partition_rows(resolution, chunks)
        completed = 0

        for window_start in range(0, len(bands), self.parallel_bands):
            self.token.raise_if_cancelled(stage)
            window = bands[window_start:window_start + self.parallel_bands]
            futures = [self._submit(work, band) for band in window]
            results = await self._gather(futures)

            for offset, result in enumerate(results):
                if isinstance(result, GenerationCancelled):
                    raise result
                if isinstance(result, BaseException):
                    index = window_start + offset
                    logger.error(
                        "band_failed", stage=stage, band=index, error=str(result)
                    )
                    raise WorkerFailure(stage, index, str(result)) from result

            completed += len(window)
            self.token.raise_if_cancelled(stage)
            self._report(stage, completed / len(bands))
            logger.debug("bands_completed", stage=stage, completed=completed, total=len(bands))

            if completed < len(bands):
                await self._pace()

        return completed

    async def run_batches(
        self,
        stage: str,
        total: int,
        batch_size: int,
        work: BatchWork,
    ) -> list[object]:
        """Run ``work`` over [0, total) in sequential slices of ``batch_size``.

        Only one batch is ever in flight, so units that touch overlapping
        cells never race each other.

        Returns:
            The value each batch returned, in order.
        """
        results: list[object] = []
        batches = [
            range(start, min(start + batch_size, total))
            for start in range(0, total, max(batch_size, 1))
        ]

        for index, batch in enumerate(batches):
            self.token.raise_if_cancelled(stage)
            (result,) = await self._gather([self._submit(work, batch)])
            if isinstance(result, GenerationCancelled):
                raise result
            if isinstance(result, BaseException):
                logger.error("batch_failed", stage=stage, batch=index, error=str(result))
                raise WorkerFailure(stage, index, str(result)) from result

            results.append(result)
            self.token.raise_if_cancelled(stage)
            self._report(stage, (index + 1) / len(batches))

            if index + 1 < len(batches):
                await self._pace()

        return results

    def _submit(self, work: Callable, unit: range) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self.executor, work, unit, self.token)

    async def _gather(self, futures: list[asyncio.Future]) -> list[object]:
        """Wait for every future; a task cancellation trips the token first."""
        try:
            return await asyncio.shield(asyncio.gather(*futures, return_exceptions=True))
        except asyncio.CancelledError:
            self.token.cancel()
            await asyncio.gather(*futures, return_exceptions=True)
            raise

    async def _pace(self) -> None:
        if self.chunk_delay_ms > 0:
            await asyncio.sleep(self.chunk_delay_ms / 1000)
        else:
            await asyncio.sleep(0)

    def _report(self, stage: str, fraction: float) -> None:
        if self.on_progress:
            self.on_progress(stage, fraction)
