"""CLI commands for speedup using Typer and Rich.

Implements 2 CLI commands:
- run: Speed up one video file 2x and save the result next to it
- check: Load the ffmpeg engine and report whether it is usable
"""

import asyncio
import shutil
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from speedup.config import settings
from speedup.engine import EngineLifecycleManager, get_engine_manager
from speedup.logging_config import configure_logging
from speedup.orchestrator import JobStateMachine
from speedup.schemas import JobStatus, MediaAsset
from speedup.services.assets import UnsupportedMediaType, asset_from_path
from speedup.services.resources import ResourceLifecycleManager

app = typer.Typer(name="speedup", help="Speed up videos 2x with an automatic video-only fallback")
console = Console()

# How often the progress bar polls the job state
_POLL_SECONDS = 0.2


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", "-l", help="Logging level"),
):
    """Speed up videos 2x with ffmpeg."""
    configure_logging(log_level)


@app.command()
def run(
    path: Path = typer.Argument(..., help="Video file (.mov, .mp4, .m4v)"),
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", "-o", help="Directory for the result (default: next to the input)"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t", help="Seconds allowed per ffmpeg run"
    ),
):
    """Speed up a video file 2x.

    Tries video+audio first and falls back to video-only when that fails
    (for example when the file has no audio track).
    """
    try:
        asset = asset_from_path(path)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except UnsupportedMediaType as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)

    destination_dir = output_dir or path.resolve().parent
    try:
        code = asyncio.run(_run_async(get_engine_manager(), asset, destination_dir, timeout))
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]Interrupted. No output was written.[/yellow]")
        raise typer.Exit(code=130)

    if code:
        raise typer.Exit(code=code)


async def _run_async(
    manager: EngineLifecycleManager,
    asset: MediaAsset,
    destination_dir: Path,
    timeout: Optional[float],
) -> int:
    """Async implementation of run command. Returns the exit code."""
    resources = ResourceLifecycleManager()
    machine = JobStateMachine(manager, resources, exec_timeout=timeout)

    with console.status("[bold green]Loading FFmpeg core..."):
        await manager.initialize()
    if not manager.is_ready:
        console.print(f"[red]✗ {escape(machine.status_message)}[/red]")
        return 1

    try:
        machine.select(asset)
        console.print(f"[green]Selected:[/green] {asset.name} ({asset.size:,} bytes)")

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold green]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            bar = progress.add_task(machine.status_message, total=100)
            job_task = machine.start()
            while not job_task.done():
                await asyncio.wait({job_task}, timeout=_POLL_SECONDS)
                progress.update(bar, completed=machine.progress_percent, description=machine.status_message)

        job = machine.job
        if job.status is JobStatus.CANCELLED:
            console.print(f"[yellow]✗ {machine.status_message}[/yellow] {escape(job.error.detail) if job.error else ''}")
            return 1
        if job.status is JobStatus.FAILED:
            console.print(f"[red]✗ {escape(machine.status_message)}[/red]")
            if job.error and job.error.detail:
                console.print(f"[dim]{escape(job.error.detail)}[/dim]")
            return 1

        destination_dir.mkdir(parents=True, exist_ok=True)
        destination = destination_dir / job.output_asset.name
        await asyncio.to_thread(shutil.copyfile, job.output_asset.preview_handle.path, destination)

        console.print(f"[green]✓[/green] {machine.status_message}")
        if job.status is JobStatus.PARTIALLY_SUCCEEDED:
            console.print("[yellow]The result has no audio track.[/yellow]")
        console.print(f"[green]Output:[/green] {destination}")
        return 0
    finally:
        if not machine.in_flight:
            machine.reset()
        await manager.shutdown()


@app.command()
def check():
    """Load the ffmpeg engine and report its state."""
    manager = get_engine_manager()

    async def _check():
        await manager.initialize()
        state, error = manager.state, manager.error
        await manager.shutdown()
        return state, error

    state, error = asyncio.run(_check())
    if error:
        console.print(f"[red]✗ Engine {state.value}:[/red] {escape(error)}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Engine {state.value}[/green]")
