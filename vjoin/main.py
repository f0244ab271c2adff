import shutil
import typer
import pydantic
from contextlib import nullcontext
from pathlib import Path
from typing import Optional, List
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from vjoin.config.loader import load_config
from vjoin.config.models import AppConfig, SingleCompressConfig
from vjoin.domain.errors import VjoinError, UploadConflictError
from vjoin.domain.models import JobRequest
from vjoin.infrastructure.logging import setup_logging
from vjoin.infrastructure.event_bus import EventBus
from vjoin.infrastructure.downloader import HttpDownloader
from vjoin.infrastructure.object_store import ObjectStore
from vjoin.infrastructure.housekeeping import HousekeepingService
from vjoin.infrastructure.process import run_process
from vjoin.pipeline.orchestrator import Orchestrator
from vjoin.pipeline.single_compress import SingleVideoCompressor
from vjoin.ui.state import UIState
from vjoin.ui.manager import UIManager
from vjoin.ui.dashboard import Dashboard

app = typer.Typer(help="vjoin - concatenate remote videos into one size-capped MP4")

DEFAULT_CONFIG = Path("conf/vjoin.yaml")
EXIT_FAILURE = 1
EXIT_UPLOAD_CONFLICT = 2

def _load(config_path: Optional[Path], debug: bool = False) -> AppConfig:
    load_dotenv()
    try:
        config = load_config(config_path)
    except (pydantic.ValidationError, ValueError) as e:
        typer.secho(f"Invalid configuration: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    if debug:
        config.general.debug = True
    return config

@app.command()
def concat(
    urls: List[str] = typer.Argument(..., help="Video URLs, in output order (at least two)"),
    aspect: Optional[str] = typer.Option(None, "--aspect", "-a", help="Target format: 9:16, 1:1 or 16:9"),
    output: str = typer.Option("final.mp4", "--output", "-o", help="Output file name"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    storage_key: Optional[str] = typer.Option(None, "--storage-key", help="Object key for the upload"),
    upload: bool = typer.Option(True, "--upload/--no-upload", help="Upload the result when storage is configured"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Override worker pool size"),
    dashboard: bool = typer.Option(False, "--dashboard/--no-dashboard", help="Show the live dashboard"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Download, normalize, concatenate and size-cap a list of videos."""
    config = _load(config_path, debug)
    if workers:
        config.general.max_workers = workers

    try:
        request = JobRequest(urls=urls, aspect=aspect, output_filename=output,
                             storage_key=storage_key, upload=upload)
    except pydantic.ValidationError as e:
        typer.secho(f"validation: {e.errors()[0]['msg']}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE)

    logger = setup_logging(config.general.log_dir, debug=config.general.debug, console=not dashboard)
    logger.info(f"vjoin started: {len(urls)} videos, aspect={aspect or config.general.default_aspect}")

    bus = EventBus()
    ui_state = UIState()
    UIManager(bus, ui_state)

    store = None
    if upload:
        if config.storage.enabled:
            store = ObjectStore(config.storage)
        else:
            logger.warning("Storage not configured, skipping upload")

    housekeeper = HousekeepingService(config.general.scratch_root, config.sweeper, event_bus=bus)
    housekeeper.start()

    orchestrator = Orchestrator(
        config=config,
        event_bus=bus,
        downloader=HttpDownloader(config.download),
        object_store=store,
        logger=logger,
    )

    try:
        with (Dashboard(ui_state) if dashboard else nullcontext()):
            result = orchestrator.run(request)
    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=130)
    except UploadConflictError as e:
        typer.secho(f"{e.category}: {e.message}", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=EXIT_UPLOAD_CONFLICT)
    except VjoinError as e:
        typer.secho(f"{e.category}: {e.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    finally:
        housekeeper.stop()
        if store is not None:
            store.close()

    typer.secho(f"{result.output_path} ({result.size_bytes / 1024 / 1024:.2f} MB)", fg=typer.colors.GREEN)
    if result.public_url:
        typer.echo(result.public_url)
    for warning in result.warnings:
        typer.secho(f"warning: {warning}", fg=typer.colors.YELLOW, err=True)

@app.command()
def compress(
    url: str = typer.Argument(..., help="Video URL"),
    crf: Optional[int] = typer.Option(None, "--crf", help="Constant rate factor (0-51)"),
    preset: Optional[str] = typer.Option(None, "--preset", help="Encoder preset"),
    max_bitrate: Optional[str] = typer.Option(None, "--max-bitrate", help="Bitrate cap, e.g. 5M"),
    codec: Optional[str] = typer.Option(None, "--codec", help="Video encoder"),
    audio_bitrate: Optional[str] = typer.Option(None, "--audio-bitrate", help="Audio bitrate, e.g. 128k"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output file name"),
    storage_key: Optional[str] = typer.Option(None, "--storage-key", help="Upload under this key (never overwrites)"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Re-encode a single video with explicit quality settings."""
    config = _load(config_path, debug)
    overrides = {
        "crf": crf, "preset": preset, "max_bitrate": max_bitrate,
        "codec": codec, "audio_bitrate": audio_bitrate,
    }
    try:
        settings = SingleCompressConfig(**{
            **config.single_compress.model_dump(),
            **{k: v for k, v in overrides.items() if v is not None},
        })
    except pydantic.ValidationError as e:
        typer.secho(f"validation: {e.errors()[0]['msg']}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE)

    logger = setup_logging(config.general.log_dir, debug=config.general.debug)
    store = None
    if storage_key:
        if config.storage.enabled:
            store = ObjectStore(config.storage)
        else:
            logger.warning("Storage not configured, skipping upload")

    compressor = SingleVideoCompressor(config, HttpDownloader(config.download), object_store=store, logger=logger)
    try:
        result = compressor.run(url, settings, output_filename=output, storage_key=storage_key)
    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=130)
    except UploadConflictError as e:
        typer.secho(f"{e.category}: {e.message}", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=EXIT_UPLOAD_CONFLICT)
    except VjoinError as e:
        typer.secho(f"{e.category}: {e.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_FAILURE)
    finally:
        if store is not None:
            store.close()

    typer.secho(
        f"{result.output_path} ({result.original_size / 1024 / 1024:.2f} MB -> "
        f"{result.compressed_size / 1024 / 1024:.2f} MB, {result.reduction_percent}% reduction)",
        fg=typer.colors.GREEN,
    )
    if result.public_url:
        typer.echo(result.public_url)

@app.command()
def sweep(
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """Run one cleanup pass over the scratch root."""
    config = _load(config_path)
    setup_logging(config.general.log_dir, debug=config.general.debug)
    housekeeper = HousekeepingService(config.general.scratch_root, config.sweeper)
    removed = housekeeper.sweep_once()
    typer.echo(f"Removed {removed} stale director{'y' if removed == 1 else 'ies'}")

@app.command()
def diagnostics(
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
):
    """Report engine availability, scratch space and running ffmpeg processes."""
    config = _load(config_path)
    table = Table(title="vjoin diagnostics", show_header=False)
    table.add_column("Check", style="dim")
    table.add_column("Value")

    healthy = True
    for tool in ("ffmpeg", "ffprobe"):
        path = shutil.which(tool)
        if path is None:
            healthy = False
            table.add_row(tool, "[red]not found[/]")
            continue
        result = run_process([tool, "-version"], timeout=10)
        version = result.stdout.splitlines()[0] if result.ok and result.stdout else result.describe()
        table.add_row(tool, f"{version} ({path})")

    scratch = config.general.scratch_root
    if scratch.exists():
        usage = shutil.disk_usage(scratch)
        table.add_row("scratch", f"{scratch}: {usage.free / 1024 ** 3:.1f} GB free of {usage.total / 1024 ** 3:.1f} GB")
        stale = [p for p in scratch.iterdir() if any(p.name.startswith(x) for x in config.sweeper.prefixes)]
        table.add_row("scratch dirs", str(len(stale)))
    else:
        healthy = False
        table.add_row("scratch", f"[red]{scratch} does not exist[/]")

    housekeeper = HousekeepingService(scratch, config.sweeper)
    table.add_row("ffmpeg processes", str(housekeeper.count_engine_processes()))
    table.add_row("storage", "configured" if config.storage.enabled else "[yellow]not configured[/]")
    table.add_row("profiles", ", ".join(config.profiles))

    Console().print(table)
    if not healthy:
        raise typer.Exit(code=EXIT_FAILURE)

if __name__ == "__main__":
    app()
