"""End-to-end ``put-car`` pipeline.

split (optional) -> discover chunks -> upload -> resolve root CID.

The external helpers are reached through a :class:`CommandRunner` and the
HTTP layer through an optional httpx transport, so every step can be
exercised without spawning processes or touching the network.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from w3s.exceptions import NoTokenError
from w3s.fsm import PipelineSM
from w3s.models import BatchSummary, ChunkFile, UploadConfig, UploadContext
from w3s.scanner import discover_chunk_files
from w3s.tools import CommandRunner, SubprocessRunner, list_roots, split_car
from w3s.upload.client import Web3StorageClient
from w3s.upload.orchestrator import UploadScheduler

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """What a finished run produced."""

    cid: str
    summary: BatchSummary
    chunk_count: int
    states: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.summary.ok


class BatchPipeline:
    """Drives one ``put-car`` run through :class:`PipelineSM`.

    Usage::

        pipeline = BatchPipeline(load_upload_config())
        result = pipeline.run(Path("library.car"))
        print(result.cid)

    Args:
        config: Run configuration (token, chunk size, concurrency ...).
        runner: Process runner for carbites / ipfs-car.
        transport: Optional httpx transport for the upload client.
        progress_factory: Called with the chunk count to build a progress
            tracker; ``None`` runs headless.
        install_signal_handlers: Register SIGINT/SIGTERM for graceful
            shutdown during the upload step.
    """

    def __init__(
        self,
        config: UploadConfig,
        runner: CommandRunner | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        progress_factory: Callable[[int], Any] | None = None,
        install_signal_handlers: bool = False,
    ) -> None:
        self._config = config
        self._runner = runner if runner is not None else SubprocessRunner()
        self._transport = transport
        self._progress_factory = progress_factory
        self._install_signal_handlers = install_signal_handlers

    def run(self, archive: Path) -> PipelineResult:
        """Synchronous entry point; see :meth:`run_async`."""
        return asyncio.run(self.run_async(archive))

    async def run_async(self, archive: Path) -> PipelineResult:
        """Split, discover, upload and resolve the CID of *archive*.

        Raises:
            NoTokenError: No API token configured (checked before any work).
            FileNotFoundError: *archive* does not exist.
            ExternalToolError: carbites or ipfs-car failed.
        """
        archive = Path(archive)
        if not self._config.token:
            raise NoTokenError("No API token set")
        if not archive.is_file():
            raise FileNotFoundError(f"CAR file not found: {archive}")

        sm = PipelineSM()
        states = [sm.current_state_value]

        def advance(event: str) -> None:
            sm.send(event)
            states.append(sm.current_state_value)

        try:
            if not self._config.skip_chunking:
                advance("split")
                logger.info(
                    "Splitting %s into %dMB chunks", archive, self._config.chunk_size_mb
                )
                await asyncio.to_thread(
                    split_car,
                    self._runner,
                    archive,
                    self._config.chunk_size_mb,
                    self._config.split_strategy,
                    self._config.carbites_bin,
                )
            else:
                logger.info("Skipping chunking for %s", archive)

            advance("discover")
            files = discover_chunk_files(archive.parent, exclude=[archive])

            advance("upload")
            summary = await self._upload(archive, files)

            advance("resolve")
            cid = await asyncio.to_thread(
                list_roots, self._runner, archive, self._config.ipfs_car_bin
            )

            advance("finish")
        except Exception:
            advance("fail")
            raise

        logger.info("Upload complete: %s", cid)
        return PipelineResult(
            cid=cid, summary=summary, chunk_count=len(files), states=states
        )

    async def _upload(self, archive: Path, files: list[ChunkFile]) -> BatchSummary:
        progress = (
            self._progress_factory(len(files))
            if self._progress_factory is not None and files
            else None
        )
        context = UploadContext(name=archive.name, cleanup=self._config.cleanup)

        async with Web3StorageClient(
            token=self._config.token,
            endpoint=self._config.endpoint,
            timeout=self._config.timeout_seconds,
            transport=self._transport,
        ) as client:
            scheduler = UploadScheduler(
                client,
                context,
                max_concurrent=self._config.max_concurrent_uploads,
                progress=progress,
            )
            if self._install_signal_handlers:
                scheduler.setup_signal_handlers()
            return await scheduler.run(files)
