"""Shared pytest fixtures for the w3s test suite.

Provides chunk directories on the real tmp filesystem, a recording fake
process runner, an httpx mock transport factory and an isolated keyring
/ config location so no test touches the user's real settings.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from w3s.models import ChunkFile
from w3s.tools import CommandResult
from w3s.upload.client import Web3StorageClient

TEST_ENDPOINT = "https://upload.test/car"
TEST_TOKEN = "test-token-123456"


def write_chunks(directory: Path, count: int, base: str = "archive") -> list[ChunkFile]:
    """Create ``<base>-<i>.car`` files whose body is their own filename."""
    directory.mkdir(parents=True, exist_ok=True)
    chunks = []
    for i in range(count):
        path = directory / f"{base}-{i}.car"
        path.write_bytes(path.name.encode())
        chunks.append(ChunkFile.from_path(path, size=path.stat().st_size))
    return chunks


def make_client(handler: Callable, **kwargs) -> Web3StorageClient:
    """Web3StorageClient wired to an ``httpx.MockTransport``."""
    return Web3StorageClient(
        token=TEST_TOKEN,
        endpoint=TEST_ENDPOINT,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class FakeRunner:
    """Records commands and answers carbites / ipfs-car like the real tools.

    ``carbites split`` writes *chunk_count* chunk files next to the archive.
    ``ipfs-car --list-roots`` prints *cid* padded with whitespace.
    """

    def __init__(
        self,
        chunk_count: int = 3,
        cid: str = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi",
        split_returncode: int = 0,
        list_returncode: int = 0,
    ) -> None:
        self.calls: list[list[str]] = []
        self.chunk_count = chunk_count
        self.cid = cid
        self.split_returncode = split_returncode
        self.list_returncode = list_returncode

    def run(self, args: Sequence[str]) -> CommandResult:
        argv = [str(a) for a in args]
        self.calls.append(argv)
        if argv[1] == "split":
            if self.split_returncode == 0:
                archive = Path(argv[2])
                write_chunks(archive.parent, self.chunk_count, base=archive.stem)
            return CommandResult(argv, self.split_returncode, "", "split failed")
        if argv[1] == "--list-roots":
            return CommandResult(argv, self.list_returncode, f"  {self.cid}\n", "bad car")
        raise AssertionError(f"unexpected command {argv}")

    def commands(self) -> list[str]:
        return [c[1] for c in self.calls]


@pytest.fixture
def chunk_dir(tmp_path: Path) -> Path:
    d = tmp_path / "chunks"
    d.mkdir()
    return d


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> MagicMock:
    """Dict-backed keyring with the env var and default config isolated."""
    store: dict[tuple[str, str], str] = {}
    mock = MagicMock()
    mock.get_password.side_effect = lambda svc, key: store.get((svc, key))
    mock.set_password.side_effect = lambda svc, key, value: store.__setitem__((svc, key), value)
    mock.delete_password.side_effect = lambda svc, key: store.pop((svc, key))
    mock.store = store
    monkeypatch.setattr("w3s.config.keyring", mock)
    monkeypatch.delenv("W3S_TOKEN", raising=False)
    monkeypatch.setattr("w3s.config.DEFAULT_CONFIG_PATH", tmp_path / "no-config.json")
    return mock


def ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"cid": "bafychunk"})
