"""web3.storage CAR upload client.

One request per chunk::

    POST https://api.web3.storage/car
    Authorization: Bearer <token>
    Content-Type: application/vnd.ipld.car
    X-NAME: <archive filename>

    <raw CAR bytes>

Any 2xx is success. 429 means the account is being rate limited. There
is no retry here: the caller decides what to do with a failed chunk.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx

from w3s.constants import CAR_CONTENT_TYPE, UPLOAD_ENDPOINT

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class UploadError(Exception):
    """Base class for a failed chunk upload.

    Attributes:
        status_code: HTTP status of the response, or ``None`` when the
            request never produced one.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(UploadError):
    """Raised when the API returns a 429 rate-limit response."""


class TransientError(UploadError):
    """Raised on network failures and 5xx server errors."""


class PermanentError(UploadError):
    """Raised on client errors (4xx except 429)."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class Web3StorageClient:
    """Async wrapper around ``httpx.AsyncClient`` for the ``/car`` endpoint.

    Usage::

        async with Web3StorageClient(token="...") as client:
            response = await client.upload_car(Path("archive-0.car"), "archive.car")

    Args:
        token: web3.storage API token, sent as a bearer token.
        endpoint: Upload URL.
        timeout: Per-request timeout in seconds; ``None`` waits indefinitely.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        token: str,
        endpoint: str = UPLOAD_ENDPOINT,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._token = token
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> Web3StorageClient:
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    def build_headers(self, name: str) -> dict[str, str]:
        """Request headers for a chunk upload named *name*."""
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": CAR_CONTENT_TYPE,
            "X-NAME": name,
        }

    async def upload_car(self, path: Path, name: str) -> httpx.Response:
        """POST the bytes of *path* to the upload endpoint.

        Args:
            path: Local chunk file.
            name: Value for the ``X-NAME`` header.

        Returns:
            The successful (2xx) response.

        Raises:
            RateLimitError: On HTTP 429.
            TransientError: On connection errors, timeouts and 5xx.
            PermanentError: On any other non-2xx status.
        """
        content = await asyncio.to_thread(Path(path).read_bytes)

        try:
            response = await self._http.post(
                self.endpoint,
                content=content,
                headers=self.build_headers(name),
            )
        except httpx.TransportError as exc:
            raise TransientError(f"{type(exc).__name__}: {exc}") from exc

        if response.is_success:
            logger.debug("Uploaded %s (%d bytes) -> %d", path, len(content), response.status_code)
            return response

        detail = _response_excerpt(response)
        status = response.status_code
        if status == 429:
            raise RateLimitError(f"429 rate limit: {detail}", status_code=status)
        if status >= 500:
            raise TransientError(f"HTTP {status}: {detail}", status_code=status)
        raise PermanentError(f"HTTP {status}: {detail}", status_code=status)


def _response_excerpt(response: httpx.Response, limit: int = 200) -> str:
    """First *limit* characters of a response body, for log lines."""
    text = response.text.strip()
    if not text:
        return response.reason_phrase or "no body"
    return text[:limit]
