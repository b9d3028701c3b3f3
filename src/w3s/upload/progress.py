"""Rich progress display for chunk uploads.

Renders a single line that is redrawn in place after every completed
chunk::

    ⠋ Uploading ━━━━━━━━━━━━━━━━━━━━ 3 / 12 0:01:20 archive-7.car
"""

from __future__ import annotations

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)


class UploadProgressTracker:
    """Single-line Rich progress tracker for one batch.

    Usage::

        tracker = UploadProgressTracker(total_files=12)
        with tracker:
            tracker.file_uploaded("/path/archive-0.car")

    The tracker does no locking of its own; callers serialise updates
    (the scheduler calls it while holding the batch counter lock).
    """

    def __init__(self, total_files: int, console: Console | None = None) -> None:
        self._total_files = total_files

        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed:.0f} / {task.total:.0f}"),
            TimeRemainingColumn(),
            TextColumn("{task.fields[status]}", style="dim"),
            console=console,
        )
        self._task: TaskID | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the Rich progress display."""
        self._progress.start()
        self._task = self._progress.add_task(
            "[green]Uploading",
            total=self._total_files,
            status="starting...",
        )

    def stop(self) -> None:
        """Stop the Rich progress display."""
        self._progress.stop()

    def __enter__(self) -> UploadProgressTracker:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # File-level events
    # ------------------------------------------------------------------

    def file_uploaded(self, file_path: str) -> None:
        self._advance(_display_name(file_path))

    def file_failed(self, file_path: str, error: str) -> None:
        self._advance(f"[red]FAIL[/red] {_display_name(file_path)}")

    def file_rate_limited(self, file_path: str) -> None:
        self._advance(f"[yellow]Rate limited[/yellow] {_display_name(file_path)}")

    def file_skipped(self, file_path: str) -> None:
        self._advance(f"[dim]skipped[/dim] {_display_name(file_path)}")

    def _advance(self, status: str) -> None:
        if self._task is not None:
            self._progress.update(self._task, advance=1, status=status)


def _display_name(file_path: str, max_len: int = 40) -> str:
    """Filename portion of *file_path*, truncated from the left."""
    name = str(file_path).rsplit("/", 1)[-1]
    if len(name) <= max_len:
        return name
    return "..." + name[-(max_len - 3) :]
