import time
from datetime import datetime
from typing import Optional
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from vjoin.domain.models import JobStage
from vjoin.ui.state import UIState

MB = 1024 * 1024

# Stages in the order a successful job walks through them.
STAGE_ORDER = [
    JobStage.DOWNLOADING,
    JobStage.VALIDATING,
    JobStage.NORMALIZING,
    JobStage.CONCATENATING_VIDEO,
    JobStage.EXTRACTING_AUDIO,
    JobStage.COMPRESSING,
    JobStage.MUXING,
    JobStage.UPLOADING,
]

def human_size(size: Optional[int]) -> str:
    if size is None:
        return ""
    if size < 1024:
        return f"{size}B"
    if size < MB:
        return f"{size / 1024:.1f}KB"
    return f"{size / MB:.1f}MB"

def clock(seconds: float) -> str:
    """m:ss, or h:mm:ss past the hour."""
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"

class Dashboard:
    """Live view of one job; rich re-renders it from UIState on every refresh."""

    def __init__(self, state: UIState, console: Optional[Console] = None, refresh_per_second: float = 2):
        self.state = state
        self.console = console or Console()
        self.refresh_per_second = refresh_per_second
        self._live: Optional[Live] = None

    def _generate_status_panel(self) -> Panel:
        with self.state._lock:
            stage = self.state.stage
            if stage == JobStage.FAILED:
                color = "bright_red"
            elif stage == JobStage.DONE:
                color = "cyan"
            else:
                color = "green"
            stage_elapsed = 0.0
            if self.state.stage_started_at:
                stage_elapsed = (datetime.now() - self.state.stage_started_at).total_seconds()
            lines = [
                f"[dim]Job:[/] {self.state.job_id or '-'} | [dim]Format:[/] {self.state.profile_name or '-'}",
                f"[dim]Stage:[/] [bold {color}]{stage.value}[/] ({clock(stage_elapsed)}) | "
                f"[dim]Elapsed:[/] {clock(self.state.elapsed_seconds)}",
            ]
            if self.state.sweeps_run:
                lines.append(
                    f"[dim]Sweeper:[/] {self.state.sweeps_run} run(s), "
                    f"{self.state.dirs_swept} stale dir(s) removed"
                )
            last_action = self.state.get_last_action()
        if last_action:
            lines.append(f"[bright_red]{last_action}[/bright_red]")
        return Panel("\n".join(lines), title="JOB STATUS", border_style="cyan")

    def _generate_stages_panel(self) -> Panel:
        with self.state._lock:
            visited = set(self.state.stage_history)
            current = self.state.stage
            failed = current == JobStage.FAILED
        spinner = "◐◓◑◒"[int(time.monotonic() * 2) % 4]
        parts = []
        for stage in STAGE_ORDER:
            name = stage.value.lower().replace("_", " ")
            if stage == current:
                parts.append(f"[bold yellow]{spinner} {name}[/]")
            elif stage in visited:
                parts.append(f"[red]✗ {name}[/]" if failed and stage == self._last_visited() else f"[green]✓ {name}[/]")
            else:
                parts.append(f"[dim]· {name}[/]")
        return Panel("  ".join(parts), title="PIPELINE", border_style="white")

    def _last_visited(self) -> Optional[JobStage]:
        with self.state._lock:
            history = [s for s in self.state.stage_history if s in STAGE_ORDER]
        return history[-1] if history else None

    def _generate_videos_panel(self) -> Panel:
        with self.state._lock:
            rows = [self.state.videos[i] for i in sorted(self.state.videos)]
            if not rows:
                return Panel("No videos yet", title="INPUTS", border_style="yellow")

            table = Table(show_header=True, box=None, padding=(0, 1))
            table.add_column("#", width=3, justify="right", style="dim")
            table.add_column("Source", width=40, no_wrap=True, overflow="ellipsis")
            table.add_column("Size", justify="right", style="cyan")
            table.add_column("Probe", no_wrap=True, overflow="ellipsis")
            table.add_column("Prepared", style="magenta")

            for row in rows:
                if row.valid is None:
                    probe = ""
                elif row.valid:
                    probe = f"[green]{row.summary}[/]"
                else:
                    probe = f"[red]{row.summary}[/]"
                table.add_row(
                    str(row.index + 1),
                    row.url[-40:],
                    human_size(row.size_bytes),
                    probe,
                    row.method or "",
                )
        return Panel(table, title="INPUTS", border_style="yellow")

    def _generate_compression_panel(self) -> Optional[Panel]:
        with self.state._lock:
            attempts = list(self.state.compression_attempts)
        if not attempts:
            return None
        table = Table(show_header=True, box=None, padding=(0, 1))
        table.add_column("Try", justify="right")
        table.add_column("CRF", justify="right", style="cyan")
        table.add_column("Cap")
        table.add_column("Before", justify="right")
        table.add_column("After", justify="right")
        table.add_column("", width=2)
        for a in attempts:
            table.add_row(
                str(a.attempt),
                str(a.crf),
                f"{a.maxrate}/{a.bufsize}",
                human_size(a.size_before),
                human_size(a.size_after) if a.size_after is not None else "[red]failed[/]",
                "✓" if a.accepted else "✗",
            )
        return Panel(table, title="COMPRESSION", border_style="magenta")

    def _generate_result_panel(self) -> Optional[Panel]:
        with self.state._lock:
            if self.state.stage == JobStage.FAILED:
                return Panel(
                    f"[bold red]{self.state.error_category}[/]: {self.state.error_message}",
                    title="FAILED", border_style="red",
                )
            if self.state.stage != JobStage.DONE:
                return None
            lines = [f"{self.state.output_path} ({human_size(self.state.output_size_bytes)})"]
            if self.state.public_url:
                lines.append(f"[dim]URL:[/] {self.state.public_url}")
            for w in self.state.warnings:
                lines.append(f"[yellow]⚠ {w}[/]")
        return Panel("\n".join(lines), title="RESULT", border_style="green")

    def create_display(self) -> Group:
        panels = [
            self._generate_status_panel(),
            self._generate_stages_panel(),
            self._generate_videos_panel(),
        ]
        for optional in (self._generate_compression_panel(), self._generate_result_panel()):
            if optional is not None:
                panels.append(optional)
        return Group(*panels)

    def __enter__(self):
        self._live = Live(
            console=self.console,
            get_renderable=self.create_display,
            refresh_per_second=self.refresh_per_second,
        )
        self._live.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._live is not None:
            self._live.stop()
            self._live = None
