"""Concurrent chunk upload to web3.storage.

Public API
----------
.. autoclass:: Web3StorageClient
.. autoclass:: UploadScheduler
.. autoclass:: BatchState
.. autoclass:: UploadProgressTracker
"""

from w3s.upload.client import (
    PermanentError,
    RateLimitError,
    TransientError,
    UploadError,
    Web3StorageClient,
)
from w3s.upload.orchestrator import BatchState, UploadScheduler
from w3s.upload.progress import UploadProgressTracker

__all__ = [
    "BatchState",
    "PermanentError",
    "RateLimitError",
    "TransientError",
    "UploadError",
    "UploadProgressTracker",
    "UploadScheduler",
    "Web3StorageClient",
]
