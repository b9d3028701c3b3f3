"""Exceptions shared across the w3s pipeline."""

from __future__ import annotations

from collections.abc import Sequence


class W3SError(Exception):
    """Base class for all w3s errors."""


class NoTokenError(W3SError):
    """Raised when no web3.storage API token is configured."""


class ExternalToolError(W3SError):
    """Raised when an external helper (carbites, ipfs-car) fails.

    Attributes:
        args_list: The command line that was executed.
        returncode: Process exit status (``None`` if it never started).
        stderr: Captured standard error, if any.
    """

    def __init__(
        self,
        message: str,
        args_list: Sequence[str] = (),
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.args_list = list(args_list)
        self.returncode = returncode
        self.stderr = stderr
