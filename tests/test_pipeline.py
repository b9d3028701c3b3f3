"""Tests for the end-to-end put-car pipeline and its state machine.

External tools are replaced by ``FakeRunner`` and HTTP by
``httpx.MockTransport``; no processes are spawned.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from conftest import FakeRunner, ok_handler, write_chunks
from w3s.exceptions import ExternalToolError, NoTokenError
from w3s.fsm import PipelineSM
from w3s.models import UploadConfig
from w3s.pipeline import BatchPipeline


@pytest.fixture
def archive(tmp_path: Path) -> Path:
    path = tmp_path / "work" / "library.car"
    path.parent.mkdir()
    path.write_bytes(b"full car")
    return path


def _pipeline(runner, handler=ok_handler, **config_kwargs) -> BatchPipeline:
    config_kwargs.setdefault("token", "tok")
    return BatchPipeline(
        UploadConfig(**config_kwargs),
        runner=runner,
        transport=httpx.MockTransport(handler),
    )


# ======================================================================
# Happy path
# ======================================================================


class TestRun:
    def test_full_run(self, archive, fake_runner):
        requests: list[httpx.Request] = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        result = _pipeline(fake_runner, handler).run(archive)

        assert fake_runner.commands() == ["split", "--list-roots"]
        split_cmd = fake_runner.calls[0]
        assert split_cmd == [
            "carbites", "split", str(archive), "--size", "50MB", "--strategy", "treewalk",
        ]
        assert fake_runner.calls[1] == ["ipfs-car", "--list-roots", str(archive)]

        assert result.cid == fake_runner.cid
        assert result.chunk_count == 3
        assert result.summary.succeeded == 3
        assert result.ok
        assert {r.headers["X-NAME"] for r in requests} == {"library.car"}
        assert result.states == [
            "idle", "splitting", "discovering", "uploading", "resolving", "done",
        ]
        # Chunks removed, source archive untouched
        assert sorted(p.name for p in archive.parent.iterdir()) == ["library.car"]

    def test_custom_size_and_binaries(self, archive, fake_runner):
        _pipeline(
            fake_runner,
            chunk_size_mb=10,
            carbites_bin="/opt/bin/carbites",
            ipfs_car_bin="/opt/bin/ipfs-car",
        ).run(archive)

        assert fake_runner.calls[0][:1] == ["/opt/bin/carbites"]
        assert "10MB" in fake_runner.calls[0]
        assert fake_runner.calls[1][0] == "/opt/bin/ipfs-car"

    def test_skip_chunking_never_invokes_chunker(self, archive):
        runner = FakeRunner()
        write_chunks(archive.parent, 2, base="library")

        result = _pipeline(runner, skip_chunking=True).run(archive)

        assert runner.commands() == ["--list-roots"]
        assert result.chunk_count == 2
        assert result.states == ["idle", "discovering", "uploading", "resolving", "done"]

    def test_cleanup_disabled_leaves_chunks(self, archive, fake_runner):
        result = _pipeline(fake_runner, cleanup=False).run(archive)

        assert result.ok
        names = sorted(p.name for p in archive.parent.iterdir())
        assert names == ["library-0.car", "library-1.car", "library-2.car", "library.car"]

    def test_archive_named_like_a_chunk_is_not_uploaded(self, tmp_path, fake_runner):
        archive = tmp_path / "work" / "backup-2023.car"
        archive.parent.mkdir()
        archive.write_bytes(b"full car")
        bodies: list[bytes] = []

        def handler(request):
            bodies.append(request.content)
            return httpx.Response(200)

        result = _pipeline(fake_runner, handler).run(archive)

        assert result.chunk_count == 3
        assert b"full car" not in bodies
        assert sorted(bodies) == [b"backup-2023-0.car", b"backup-2023-1.car", b"backup-2023-2.car"]
        assert archive.read_bytes() == b"full car"
        assert fake_runner.calls[-1] == ["ipfs-car", "--list-roots", str(archive)]

    def test_partial_failure_still_resolves_cid(self, archive, fake_runner):
        def handler(request):
            if request.content == b"library-1.car":
                return httpx.Response(429)
            return httpx.Response(200)

        result = _pipeline(fake_runner, handler).run(archive)

        assert result.cid == fake_runner.cid
        assert not result.ok
        assert result.summary.rate_limited == 1
        assert (archive.parent / "library-1.car").exists()

    def test_no_chunks_found(self, archive):
        runner = FakeRunner(chunk_count=0)
        result = _pipeline(runner).run(archive)

        assert result.chunk_count == 0
        assert result.summary.total == 0
        assert result.cid == runner.cid

    def test_progress_factory_receives_chunk_count(self, archive, fake_runner):
        progress = MagicMock()
        factory = MagicMock(return_value=progress)
        pipeline = BatchPipeline(
            UploadConfig(token="tok"),
            runner=fake_runner,
            transport=httpx.MockTransport(ok_handler),
            progress_factory=factory,
        )

        pipeline.run(archive)

        factory.assert_called_once_with(3)
        progress.start.assert_called_once()
        progress.stop.assert_called_once()
        assert progress.file_uploaded.call_count == 3


# ======================================================================
# Fatal errors
# ======================================================================


class TestFatal:
    def test_missing_token_aborts_before_discovery(self, archive, fake_runner):
        with patch("w3s.pipeline.discover_chunk_files") as discover:
            with pytest.raises(NoTokenError):
                _pipeline(fake_runner, token=None).run(archive)

        discover.assert_not_called()
        assert fake_runner.calls == []

    def test_empty_token_is_missing(self, archive, fake_runner):
        with pytest.raises(NoTokenError):
            _pipeline(fake_runner, token="").run(archive)

    def test_missing_archive(self, tmp_path, fake_runner):
        with pytest.raises(FileNotFoundError):
            _pipeline(fake_runner).run(tmp_path / "nope.car")
        assert fake_runner.calls == []

    def test_chunker_failure_stops_pipeline(self, archive):
        runner = FakeRunner(split_returncode=2)
        requests = []

        with pytest.raises(ExternalToolError) as exc_info:
            _pipeline(runner, lambda r: requests.append(r) or httpx.Response(200)).run(archive)

        assert exc_info.value.returncode == 2
        assert "split failed" in str(exc_info.value)
        assert runner.commands() == ["split"]
        assert requests == []

    def test_lister_failure(self, archive, fake_runner):
        fake_runner.list_returncode = 1
        with pytest.raises(ExternalToolError, match="ipfs-car"):
            _pipeline(fake_runner).run(archive)


# ======================================================================
# State machine
# ======================================================================


class TestPipelineSM:
    @pytest.mark.filterwarnings("error:.*current_state:DeprecationWarning")
    def test_recorded_states_without_deprecation_warnings(self, tmp_path, fake_runner):
        archive = tmp_path / "library.car"
        archive.write_bytes(b"full car")

        result = _pipeline(fake_runner).run(archive)

        assert result.states[-1] == "done"

    def test_starts_idle(self):
        assert PipelineSM().current_state_value == "idle"

    def test_full_sequence(self):
        sm = PipelineSM()
        for event in ["split", "discover", "upload", "resolve", "finish"]:
            sm.send(event)
        assert sm.current_state_value == "done"

    def test_discover_directly_from_idle(self):
        sm = PipelineSM()
        sm.discover()
        assert sm.current_state_value == "discovering"

    @pytest.mark.parametrize("steps", [[], ["split"], ["discover"], ["discover", "upload"]])
    def test_fail_from_any_active_state(self, steps):
        sm = PipelineSM()
        for event in steps:
            sm.send(event)
        sm.fail()
        assert sm.current_state_value == "failed"

    def test_illegal_upload_before_discovery(self):
        sm = PipelineSM()
        with pytest.raises(Exception):
            sm.upload()

    def test_illegal_split_after_discovery(self):
        sm = PipelineSM()
        sm.discover()
        with pytest.raises(Exception):
            sm.split()
