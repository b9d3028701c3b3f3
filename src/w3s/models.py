"""Data models and enums for the w3s upload pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from w3s.constants import (
    CARBITES_BIN,
    DEFAULT_CHUNK_SIZE_MB,
    DEFAULT_CONCURRENCY,
    DEFAULT_SPLIT_STRATEGY,
    DEFAULT_TIMEOUT_SECONDS,
    IPFS_CAR_BIN,
    UPLOAD_ENDPOINT,
)


class UploadOutcome(str, Enum):
    """Terminal outcome of a single chunk upload."""

    SUCCEEDED = "succeeded"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class ChunkFile:
    """A locally stored CAR fragment produced by the chunker."""

    path: Path
    filename: str
    size: int = 0

    @classmethod
    def from_path(cls, path: Path, size: int = 0) -> ChunkFile:
        path = Path(path)
        return cls(path=path.absolute(), filename=path.name, size=size)


@dataclass(slots=True, frozen=True)
class UploadContext:
    """Immutable settings shared by every job in a batch.

    ``name`` is sent as the ``X-NAME`` header. All chunks of one archive
    share the archive's filename so the service groups them together.
    """

    name: str
    cleanup: bool = True


@dataclass(slots=True)
class JobResult:
    """Outcome of one upload job."""

    path: Path
    outcome: UploadOutcome
    status_code: int | None = None
    error: str | None = None
    cleaned_up: bool = False

    @property
    def ok(self) -> bool:
        return self.outcome == UploadOutcome.SUCCEEDED


@dataclass
class BatchSummary:
    """Aggregated results for one batch of chunk uploads."""

    total: int = 0
    results: list[JobResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[JobResult]) -> BatchSummary:
        return cls(total=len(results), results=list(results))

    def _count(self, outcome: UploadOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def succeeded(self) -> int:
        return self._count(UploadOutcome.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(UploadOutcome.FAILED)

    @property
    def rate_limited(self) -> int:
        return self._count(UploadOutcome.RATE_LIMITED)

    @property
    def skipped(self) -> int:
        return self._count(UploadOutcome.SKIPPED)

    @property
    def failed_paths(self) -> list[Path]:
        """Every chunk that was not uploaded successfully, in batch order."""
        return [r.path for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return self.succeeded == self.total

    def to_dict(self) -> dict[str, int]:
        """Counts keyed by outcome, for display."""
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "rate_limited": self.rate_limited,
            "skipped": self.skipped,
        }


@dataclass
class UploadConfig:
    """Configuration for a ``put-car`` run.

    Controls chunking, concurrency, cleanup and the external helper
    binaries. The API token is read from the system keyring by
    :func:`w3s.config.load_upload_config`.
    """

    token: str | None = None
    endpoint: str = UPLOAD_ENDPOINT
    chunk_size_mb: int = DEFAULT_CHUNK_SIZE_MB
    max_concurrent_uploads: int = DEFAULT_CONCURRENCY
    cleanup: bool = True
    skip_chunking: bool = False
    timeout_seconds: float | None = DEFAULT_TIMEOUT_SECONDS
    carbites_bin: str = CARBITES_BIN
    ipfs_car_bin: str = IPFS_CAR_BIN
    split_strategy: str = DEFAULT_SPLIT_STRATEGY

    def __post_init__(self) -> None:
        if self.chunk_size_mb < 1:
            raise ValueError(f"chunk_size_mb must be >= 1, got {self.chunk_size_mb}")
        if self.max_concurrent_uploads < 1:
            raise ValueError(
                f"max_concurrent_uploads must be >= 1, got {self.max_concurrent_uploads}"
            )
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            self.timeout_seconds = None
