"""
Rich-based terminal dashboard for the quality monitor.

All formatting helpers live in ``netq.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

from typing import List, Optional

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from netq.config import Config
from netq.history import sparkline
from netq.models import Snapshot, TimelineSample
from netq.stats import format_latency, format_speed

console = Console()

# Timeline chart is downsampled to this many columns.
_CHART_WIDTH = 60


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def tier_style(tier: Optional[str], config: Config) -> str:
    """Rich style string for *tier* using the configured colour."""
    return f"bold {config.tier_color(tier)}"


def timeline_chart(samples: List[TimelineSample], width: int = _CHART_WIDTH) -> str:
    """Downsample the score timeline into a sparkline of *width* columns."""
    if not samples:
        return ""
    stride = max(1, len(samples) // width)
    scores = [s.quality_score for s in samples[::stride]]
    return sparkline(scores)


def metrics_table(snapshot: Snapshot) -> Table:
    table = Table(box=box.ROUNDED, show_header=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Detail", style="dim")

    table.add_row("Download", format_speed(snapshot.download_mbps), snapshot.download.endpoint or snapshot.last_download_error)
    table.add_row("Upload", format_speed(snapshot.upload_mbps), snapshot.upload.endpoint or snapshot.last_upload_error)
    table.add_row("Latency", format_latency(snapshot.latency_ms), snapshot.latency_host)
    table.add_row("Jitter", format_latency(snapshot.jitter_ms), "")
    table.add_row("Loss", f"{snapshot.loss_pct:.1f}%", "")
    table.add_row("Consistency", f"{snapshot.consistency_score * 100:.0f}%", "")
    return table


def render_snapshot(
    snapshot: Optional[Snapshot],
    config: Config,
    timeline: Optional[List[TimelineSample]] = None,
) -> Panel:
    """One full dashboard frame."""
    if snapshot is None:
        return Panel("[dim]Collecting first samples...[/dim]", title="[bold]Network Quality[/bold]", border_style="cyan")

    style = tier_style(snapshot.tier, config)
    nic = snapshot.interface
    heading = Text.assemble(
        (f"{snapshot.quality_score:5.1f}", style),
        "  ",
        (snapshot.tier, style),
        ("   " + (f"{nic.name} ({nic.interface_type}, {nic.link_mbps:.0f} Mbps)" if nic.is_connected else "no interface"), "dim"),
    )

    parts = [heading, metrics_table(snapshot)]
    if timeline:
        parts.append(Text(timeline_chart(timeline), style=style))
        parts.append(Text("last 60 s", style="dim"))

    return Panel(
        Group(*parts),
        title="[bold]Network Quality[/bold]",
        subtitle=f"[dim]{snapshot.timestamp_utc:%H:%M:%S} UTC[/dim]",
        border_style=config.tier_color(snapshot.tier),
    )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Network Quality Sentinel[/bold cyan]\n"
            "[dim]Continuous latency and throughput monitoring[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_snapshot(snapshot: Snapshot, config: Config, timeline: Optional[List[TimelineSample]] = None) -> None:
    console.print(render_snapshot(snapshot, config, timeline))
