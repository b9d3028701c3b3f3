"""Split CAR archives into chunks and push them to web3.storage."""

__version__ = "0.1.0"

from w3s.models import BatchSummary, ChunkFile, JobResult, UploadConfig, UploadOutcome

__all__ = [
    "BatchSummary",
    "ChunkFile",
    "JobResult",
    "UploadConfig",
    "UploadOutcome",
    "__version__",
]
