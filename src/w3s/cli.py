"""CLI entry point for w3s.

Provides commands:
  - token: Store the web3.storage API token in the system keyring
  - put-car: Split a CAR file, upload the chunks, print the root CID
  - config: Inspect or remove the stored token
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Annotated

import typer
from keyring.errors import KeyringError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from w3s.config import (
    CONFIG_DIR,
    delete_token,
    get_token,
    load_upload_config,
    mask_token,
    require_token,
    set_token,
)
from w3s.constants import KEYRING_SERVICE
from w3s.exceptions import ExternalToolError, NoTokenError
from w3s.pipeline import BatchPipeline, PipelineResult
from w3s.upload.progress import UploadProgressTracker

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Pushes files to web3.storage",
    rich_markup_mode="rich",
    no_args_is_help=True,
)
console = Console()

# Config command group
config_app = typer.Typer(help="Inspect or remove the stored API token")
app.add_typer(config_app, name="config")


@app.callback()
def app_callback(
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Write debug logs to ~/.w3s/debug.log"),
    ] = False,
) -> None:
    """Pushes files to web3.storage."""
    if debug:
        CONFIG_DIR.mkdir(exist_ok=True)
        fh = logging.FileHandler(CONFIG_DIR / "debug.log")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        # lastResort stops firing once fh is attached
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        sh.setLevel(logging.WARNING)
        pkg_logger = logging.getLogger("w3s")
        pkg_logger.setLevel(logging.DEBUG)
        pkg_logger.addHandler(fh)
        pkg_logger.addHandler(sh)


@app.command()
def token(
    value: Annotated[
        str,
        typer.Argument(metavar="TOKEN", help="Your web3.storage API token"),
    ],
) -> None:
    """Sets your API token."""
    try:
        set_token(value)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to store API token: {e}")
        raise typer.Exit(code=1)

    console.print(
        f"[green]✓[/green] Saved token: {mask_token(value.strip())} "
        f"(service: {KEYRING_SERVICE})"
    )


@app.command("put-car")
def put_car(
    file: Annotated[
        Path,
        typer.Argument(help="A CAR file to be split"),
    ],
    size: Annotated[
        int | None,
        typer.Option("--size", help="The target size of the output chunks in MB, default is 50"),
    ] = None,
    concurrent: Annotated[
        int | None,
        typer.Option("--concurrent", help="The number of concurrent uploads allowed, default is 4"),
    ] = None,
    cleanup: Annotated[
        bool | None,
        typer.Option(
            "--cleanup/--no-cleanup",
            help="Automatically clean up CAR chunks. Defaults to true.",
        ),
    ] = None,
    skip_chunking: Annotated[
        bool,
        typer.Option("--skip-chunking", help="Skips the chunking process. Useful for retries."),
    ] = False,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Per-chunk request timeout in seconds (0 = wait forever)"),
    ] = None,
    endpoint: Annotated[
        str | None,
        typer.Option("--endpoint", help="Upload endpoint URL"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="JSON config file (default ~/.w3s/config.json)"),
    ] = None,
) -> None:
    """Uploads a car file.

    The API token is read from the system keyring (service: w3s).
    To set it:  w3s token YOUR_TOKEN
    """
    overrides = {
        "chunk_size_mb": size,
        "max_concurrent_uploads": concurrent,
        "cleanup": cleanup,
        "skip_chunking": True if skip_chunking else None,
        "timeout_seconds": timeout,
        "endpoint": endpoint,
    }
    try:
        # replace() re-runs UploadConfig validation on the overridden values
        config = dataclasses.replace(
            load_upload_config(config_path),
            **{k: v for k, v in overrides.items() if v is not None},
        )
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    try:
        require_token()
    except NoTokenError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            f"Uploading [bold]{file.name}[/bold] to [bold]{config.endpoint}[/bold]\n"
            + (
                "Chunking: skipped | "
                if config.skip_chunking
                else f"Splitting into {config.chunk_size_mb}MB chunks | "
            )
            + f"Concurrency: {config.max_concurrent_uploads} | "
            f"Cleanup: {'on' if config.cleanup else 'off'}",
            title="put-car",
        )
    )

    pipeline = BatchPipeline(
        config,
        progress_factory=lambda total: UploadProgressTracker(total, console=console),
        install_signal_handlers=True,
    )

    try:
        result = pipeline.run(file)
    except NoTokenError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except ExternalToolError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    _print_summary(result)
    console.print(f"Upload complete: {result.cid}")

    if not result.ok:
        raise typer.Exit(code=1)


def _print_summary(result: PipelineResult) -> None:
    summary = result.summary
    if summary.total == 0:
        console.print("[yellow]No chunk files found to upload.[/yellow]")
        return

    counts = summary.to_dict()
    summary_table = Table(title="Upload Summary")
    summary_table.add_column("Metric", style="bold")
    summary_table.add_column("Count", justify="right")

    summary_table.add_row("Total chunks", str(counts["total"]))
    summary_table.add_row("Succeeded", f"[green]{counts['succeeded']}[/green]")
    summary_table.add_row("Failed", f"[red]{counts['failed']}[/red]")
    summary_table.add_row("Rate limited", f"[yellow]{counts['rate_limited']}[/yellow]")
    summary_table.add_row("Skipped", f"[yellow]{counts['skipped']}[/yellow]")
    console.print(summary_table)

    if summary.ok:
        return

    failed_table = Table(title="Chunks Not Uploaded")
    failed_table.add_column("File", style="cyan", no_wrap=True)
    failed_table.add_column("Outcome")
    failed_table.add_column("Error", style="dim")
    for r in summary.results:
        if not r.ok:
            failed_table.add_row(r.path.name, r.outcome.value, r.error or "")
    console.print(failed_table)
    console.print(
        "Retry the remaining chunks with "
        "[bold]w3s put-car FILE --skip-chunking[/bold]"
    )


@config_app.command("show-token")
def show_token() -> None:
    """Display the stored API token (masked)."""
    value = get_token()
    if not value:
        console.print(
            "[yellow]No API token found.[/yellow]\n"
            "Set it with: [bold]w3s token YOUR_TOKEN[/bold]"
        )
        raise typer.Exit(code=1)

    console.print(f"[green]API token:[/green] {mask_token(value)}")
    console.print(f"[dim](stored in service: {KEYRING_SERVICE})[/dim]")


@config_app.command("remove-token")
def remove_token() -> None:
    """Delete the stored API token from the system keyring."""
    try:
        removed = delete_token()
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to remove API token: {e}")
        raise typer.Exit(code=1)

    if not removed:
        console.print(
            "[yellow]Warning:[/yellow] No API token found in keyring.\n"
            "Nothing to remove."
        )
        return
    console.print(f"[green]✓[/green] API token removed (service: {KEYRING_SERVICE})")
