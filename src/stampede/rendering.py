import logging
from typing import Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import MetricsSnapshot
from .utils import format_duration, format_number, progress_bar, truncate

logger = logging.getLogger(__name__)


def _counter_table(snap: MetricsSnapshot) -> Table:
    t = Table.grid(padding=(0, 2))
    t.add_column(style="bold yellow")
    t.add_column()
    if snap.current_counter > 0:
        t.add_row("Current", format_number(snap.current_counter))
        t.add_row("Initial", format_number(snap.initial_counter))
        t.add_row("Gained", f"{format_number(snap.counter_gained)} (+{snap.counter_gained})")
        t.add_row("Rate", f"{snap.rate_per_minute:.1f}/min ({snap.rate_per_second:.2f}/sec)")
    else:
        t.add_row("Current", Text("unable to fetch", style="red"))
    return t


def _worker_table(snap: MetricsSnapshot) -> Table:
    t = Table.grid(padding=(0, 2))
    t.add_column(style="bold yellow")
    t.add_column()
    t.add_row("Workers", str(len(snap.workers)))
    t.add_row("Active / Finished", f"{snap.active_workers} / {snap.finished_workers}")
    t.add_row("Succeeded", Text(format_number(snap.total_successful), style="green"))
    t.add_row("Failed", Text(format_number(snap.total_failed), style="red"))
    t.add_row("Success rate", f"{snap.success_rate:.1f}%")
    t.add_row("Requests/sec", f"{snap.requests_per_second:.2f}")
    t.add_row("Proxies", str(snap.proxies_available) if snap.proxies_available else "direct")
    return t


def render_recent_errors(snap: MetricsSnapshot, limit: int = 3, width: int = 40) -> list[str]:
    lines = []
    for rec in snap.workers:
        if rec.last_error and len(lines) < limit:
            lines.append(f"W{rec.worker_id:02d}: {rec.status} ({truncate(rec.last_error, width)})")
    return lines


class Dashboard:
    """Full-screen rich view, redrawn on each tick."""

    def __init__(self, target: str, console: Optional[Console] = None, clear: bool = True):
        self.target = target
        self.console = console or Console()
        self.clear = clear

    def render(self, snap: MetricsSnapshot) -> Panel:
        header = Table.grid(padding=(0, 2))
        header.add_column(style="bold cyan")
        header.add_column()
        header.add_row("Target", self.target)
        header.add_row("Runtime", format_duration(snap.elapsed_s))
        if snap.eta_seconds:
            header.add_row("ETA", format_duration(snap.eta_seconds))

        progress = Text(
            f"[{progress_bar(snap.progress, 40)}] {snap.progress:.1f}% "
            f"of {format_number(snap.target_total)}"
        )

        errors = render_recent_errors(snap)
        activity = (
            Text("\n".join(errors), style="red")
            if errors
            else Text("All workers running smoothly", style="green")
        )

        body = Group(
            header,
            Text("\nCounter", style="bold"),
            _counter_table(snap),
            Text("\nWorkers", style="bold"),
            _worker_table(snap),
            Text("\nProgress", style="bold"),
            progress,
            Text("\nRecent activity", style="bold"),
            activity,
        )
        return Panel(body, title="stampede", subtitle="Ctrl+C to stop", border_style="cyan")

    def __call__(self, snap: MetricsSnapshot) -> None:
        if self.clear:
            self.console.clear()
        self.console.print(self.render(snap))


class LogSink:
    """One log line per tick, for non-interactive runs."""

    def __init__(self, target: str, log: logging.Logger = logger):
        self.target = target
        self.log = log

    def __call__(self, snap: MetricsSnapshot) -> None:
        self.log.info(
            f"{self.target} | ok={snap.total_successful} failed={snap.total_failed} "
            f"active={snap.active_workers} finished={snap.finished_workers} "
            f"progress={snap.progress:.1f}% success_rate={snap.success_rate:.1f}% "
            f"counter={snap.current_counter} gained={snap.counter_gained} "
            f"rate={snap.rate_per_minute:.1f}/min"
        )
        for line in render_recent_errors(snap):
            self.log.warning(line)


def render_summary(snap: MetricsSnapshot) -> str:
    return (
        f"Run completed in {format_duration(snap.elapsed_s)}: "
        f"{snap.total_successful} succeeded, {snap.total_failed} failed | "
        f"success rate {snap.success_rate:.1f}% | "
        f"counter gained {snap.counter_gained}"
    )
