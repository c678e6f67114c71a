"""Rich terminal output for cdnspeed."""

from __future__ import annotations

from typing import Callable, Optional

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from cdnspeed.config import BYTES_PER_MB
from cdnspeed.models import CSV_HEADERS, IPResult, ScanConfig

console = Console()

_BAR_WIDTH = 30


# ── Progress tracking ─────────────────────────────────────────────────


class ProgressTracker:
    """Live single-line progress bar.

    ``suffix`` is re-evaluated on every refresh, so callers can show
    values that change between updates (such as live bandwidth).
    """

    def __init__(self, total: int, suffix: Optional[Callable[[], str]] = None):
        self.total = total
        self.completed = 0
        self.suffix = suffix
        self.live: Optional[Live] = None

    def _render(self) -> Text:
        filled = int((self.completed / self.total) * _BAR_WIDTH) if self.total > 0 else 0
        filled = min(filled, _BAR_WIDTH)
        text = Text(f"{self.completed} / {self.total} ")
        text.append("█" * filled, style="green")
        text.append("░" * (_BAR_WIDTH - filled), style="dim")
        if self.suffix:
            text.append(f" {self.suffix()}", style="cyan")
        return text

    def start(self) -> None:
        self.live = Live(get_renderable=self._render, console=console, refresh_per_second=4)
        self.live.start()

    def advance(self, count: int = 1) -> None:
        self.completed += count
        if self.live:
            self.live.refresh()

    def finish(self) -> None:
        if self.live:
            self.live.stop()
            self.live = None


def format_bandwidth(bytes_per_sec: float) -> str:
    return f"{bytes_per_sec / BYTES_PER_MB:.2f} MB/s"


# ── Stage banners ─────────────────────────────────────────────────────


def render_probe_start(config: ScanConfig, candidates: int) -> None:
    mode = "HTTP" if config.httping else "TCP"
    console.print(
        f"[bold]Latency test[/bold] [dim](mode: {mode}, port: {config.effective_port}, "
        f"delay: {config.min_delay_ms:.0f} ~ {config.max_delay_ms:.0f} ms, "
        f"loss: {config.max_loss_rate:.2f}, candidates: {candidates})[/dim]"
    )


def render_download_start(config: ScanConfig, queued: int) -> None:
    console.print(
        f"[bold]Download test[/bold] [dim](floor: {config.min_speed:.2f} MB/s, "
        f"count: {config.effective_test_count}, queue: {queued})[/dim]"
    )


# ── Results ───────────────────────────────────────────────────────────


def build_results_table(results: list[IPResult], limit: int, show_colo: bool = False) -> Table:
    """Build the result table for the first *limit* entries."""
    rows = [r.to_row() for r in results[:limit]]
    with_colo = show_colo or any(row[6] for row in rows)
    headers = CSV_HEADERS if with_colo else CSV_HEADERS[:-1]

    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        header_style="bold",
    )
    table.add_column(headers[0], style="bold", min_width=15)
    for header in headers[1:]:
        table.add_column(header, justify="right")

    for row in rows:
        table.add_row(*row[:len(headers)])
    return table


def render_results(results: list[IPResult], print_num: int, show_colo: bool = False) -> None:
    """Print the top *print_num* results; nothing when *print_num* is 0."""
    if print_num <= 0:
        return
    if not results:
        render_info("No addresses met the test criteria, nothing to show.")
        return
    console.print()
    console.print(build_results_table(results, print_num, show_colo))


def render_info(message: str) -> None:
    console.print(f"[cyan]Info:[/cyan] {message}")


def render_error(message: str) -> None:
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")
