"""Bounded-concurrency upload scheduler.

Runs one upload job per chunk file:

* Limits in-flight uploads with ``asyncio.Semaphore``
* Counts completions under an ``asyncio.Lock`` and redraws progress
* Never aborts the batch on a per-chunk failure
* Deletes a chunk only after it uploaded successfully (when cleanup is on)
* Handles graceful shutdown on Ctrl+C (SIGINT/SIGTERM)
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable, Sequence
from typing import Any

from w3s.constants import DEFAULT_CONCURRENCY
from w3s.models import BatchSummary, ChunkFile, JobResult, UploadContext, UploadOutcome
from w3s.upload.client import RateLimitError, UploadError, Web3StorageClient

logger = logging.getLogger(__name__)


class BatchState:
    """Completion counter shared by every job in a batch.

    ``total`` is fixed when the batch starts. ``completed`` only moves
    through :meth:`mark_complete`, one step per job, and never passes
    ``total``.
    """

    def __init__(self, total: int) -> None:
        if total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        self.total = total
        self._completed = 0
        self._lock = asyncio.Lock()

    @property
    def completed(self) -> int:
        return self._completed

    async def mark_complete(
        self, on_complete: Callable[[int, int], None] | None = None
    ) -> int:
        """Record one finished job and return the new count.

        *on_complete* is called with ``(completed, total)`` while the lock
        is still held, so progress output never interleaves.

        Raises:
            RuntimeError: If every job has already been counted.
        """
        async with self._lock:
            if self._completed >= self.total:
                raise RuntimeError(
                    f"completed counter would exceed total ({self.total})"
                )
            self._completed += 1
            if on_complete is not None:
                on_complete(self._completed, self.total)
            return self._completed


class UploadScheduler:
    """Uploads a batch of chunk files with at most *max_concurrent* in flight.

    Usage::

        async with Web3StorageClient(token) as client:
            scheduler = UploadScheduler(client, UploadContext(name="archive.car"))
            summary = await scheduler.run(files)

    Args:
        client: web3.storage upload client.
        context: Settings shared by every job (``X-NAME``, cleanup flag).
        max_concurrent: Upper bound on simultaneous uploads.
        progress: Optional Rich progress tracker (omit for headless mode).
    """

    def __init__(
        self,
        client: Web3StorageClient,
        context: UploadContext,
        max_concurrent: int = DEFAULT_CONCURRENCY,
        progress: Any | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")

        self._client = client
        self._context = context
        self._max_concurrent = max_concurrent
        self._progress = progress

        self._shutdown_event = asyncio.Event()
        self._semaphore: asyncio.Semaphore | None = None
        self._state: BatchState | None = None

    @property
    def state(self) -> BatchState | None:
        """Counter for the most recent (or current) batch."""
        return self._state

    # ------------------------------------------------------------------
    # Signal handling
    # ------------------------------------------------------------------

    def setup_signal_handlers(self) -> None:
        """Register SIGINT/SIGTERM handlers for graceful shutdown.

        First signal sets the shutdown event (in-flight uploads finish,
        queued ones are skipped). Second signal forces immediate exit.
        """
        self._signal_count = 0

        def _handler(signum: int, frame: Any) -> None:
            self._signal_count += 1
            if self._signal_count == 1:
                logger.warning(
                    "Graceful shutdown initiated, completing current uploads..."
                )
                self._shutdown_event.set()
            else:
                logger.warning("Forced shutdown. Exiting immediately.")
                raise SystemExit(1)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except (OSError, ValueError):
            # signal handlers can only be set in main thread
            logger.debug("Could not set signal handlers (not main thread)")

    def request_shutdown(self) -> None:
        """Skip every job that has not started yet."""
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(self, files: Sequence[ChunkFile]) -> BatchSummary:
        """Upload every file and return once all jobs have completed.

        Individual failures never abort the batch; they are reported in
        the returned summary.
        """
        files = list(files)
        self._state = BatchState(len(files))
        self._semaphore = asyncio.Semaphore(self._max_concurrent)

        if not files:
            logger.info("No chunk files to upload")
            return BatchSummary.from_results([])

        logger.info(
            "Uploading %d chunks with concurrency %d", len(files), self._max_concurrent
        )

        if self._progress is not None:
            self._progress.start()
        try:
            raw = await asyncio.gather(
                *(self._upload_one(f) for f in files), return_exceptions=True
            )
        finally:
            if self._progress is not None:
                self._progress.stop()

        results: list[JobResult] = []
        for chunk, result in zip(files, raw):
            if isinstance(result, BaseException):
                logger.error("Upload task exception for %s: %r", chunk.path, result)
                result = JobResult(chunk.path, UploadOutcome.FAILED, error=repr(result))
            results.append(result)

        summary = BatchSummary.from_results(results)
        logger.info(
            "Upload complete: %d succeeded, %d failed, %d rate limited, %d skipped of %d total",
            summary.succeeded,
            summary.failed,
            summary.rate_limited,
            summary.skipped,
            summary.total,
        )
        return summary

    # ------------------------------------------------------------------
    # Single chunk
    # ------------------------------------------------------------------

    async def _upload_one(self, chunk: ChunkFile) -> JobResult:
        """Run one job; the counter moves exactly once whatever happens."""
        result: JobResult | None = None
        try:
            result = await self._transfer(chunk)
            return result
        finally:
            await self._state.mark_complete(
                lambda done, total: self._report(chunk, result, done, total)
            )

    async def _transfer(self, chunk: ChunkFile) -> JobResult:
        if self._shutdown_event.is_set():
            return JobResult(chunk.path, UploadOutcome.SKIPPED)

        async with self._semaphore:
            # Shutdown may have been requested while waiting for a slot
            if self._shutdown_event.is_set():
                return JobResult(chunk.path, UploadOutcome.SKIPPED)

            try:
                response = await self._client.upload_car(chunk.path, self._context.name)
            except RateLimitError as exc:
                logger.warning("Rate limit hit uploading %s: %s", chunk.path, exc)
                return JobResult(
                    chunk.path,
                    UploadOutcome.RATE_LIMITED,
                    status_code=exc.status_code,
                    error=str(exc),
                )
            except UploadError as exc:
                logger.error("Error uploading file %s: %s", chunk.path, exc)
                return JobResult(
                    chunk.path,
                    UploadOutcome.FAILED,
                    status_code=exc.status_code,
                    error=str(exc),
                )
            except OSError as exc:
                logger.error("Cannot read chunk %s: %s", chunk.path, exc)
                return JobResult(chunk.path, UploadOutcome.FAILED, error=str(exc))

        cleaned_up = self._cleanup(chunk) if self._context.cleanup else False
        return JobResult(
            chunk.path,
            UploadOutcome.SUCCEEDED,
            status_code=response.status_code,
            cleaned_up=cleaned_up,
        )

    def _cleanup(self, chunk: ChunkFile) -> bool:
        try:
            chunk.path.unlink()
        except OSError as exc:
            logger.error("Error cleaning up %s: %s", chunk.filename, exc)
            return False
        logger.debug("Deleted uploaded chunk %s", chunk.path)
        return True

    def _report(
        self, chunk: ChunkFile, result: JobResult | None, done: int, total: int
    ) -> None:
        logger.debug("%d / %d %s", done, total, chunk.filename)
        if self._progress is None:
            return
        path = str(chunk.path)
        if result is None:
            self._progress.file_failed(path, "unexpected error")
        elif result.outcome == UploadOutcome.SUCCEEDED:
            self._progress.file_uploaded(path)
        elif result.outcome == UploadOutcome.RATE_LIMITED:
            self._progress.file_rate_limited(path)
        elif result.outcome == UploadOutcome.SKIPPED:
            self._progress.file_skipped(path)
        else:
            self._progress.file_failed(path, result.error or "")
