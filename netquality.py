#!/usr/bin/env python3
"""
Network Quality Sentinel -- continuous connection quality from the terminal.

Usage::

    python netquality.py                        # live rich dashboard
    python netquality.py --once                 # one full cycle, then print
    python netquality.py --once --json          # JSON to stdout
    python netquality.py --once -o result.json  # save to file
    python netquality.py --csv log.csv          # append a CSV row per refresh
    python netquality.py --duration 600         # stop after ten minutes
    python netquality.py --write-config         # write normalised config and exit
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler

from netq.config import config_path, load_config, save_config
from netq.models import Snapshot
from netq.monitor import NetworkQualityMonitor
from ui.dashboard import console, print_header, print_snapshot, render_snapshot
from ui.output import (
    create_snapshot_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)

logger = logging.getLogger("netquality")

_ONCE_POLL_SECONDS = 0.25


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

def setup_logging(level: str) -> None:
    """Route log records through rich on stderr so stdout stays parseable."""
    handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    logging.basicConfig(level=level.upper(), format="%(message)s", datefmt="[%X]", handlers=[handler])


# ---------------------------------------------------------------------------
# Runners
# ---------------------------------------------------------------------------

def _append_csv(path: str, snapshot: Snapshot) -> None:
    """Append a single CSV row, writing the header if the file is new."""
    write_header = not os.path.isfile(path) or os.path.getsize(path) == 0
    with open(path, "a", encoding="utf-8") as fh:
        if write_header:
            fh.write(format_csv_header() + "\n")
        fh.write(format_csv_row(snapshot) + "\n")


async def run_once(
    monitor: NetworkQualityMonitor,
    *,
    json_output: bool = False,
    simple: bool = False,
    output_file: Optional[str] = None,
    csv_file: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Optional[dict]:
    """Run until the first throughput cycle completes and report it."""
    monitor.start()
    started = time.monotonic()
    try:
        while monitor.probe_cycles < 1 or monitor.snapshot() is None:
            if timeout is not None and time.monotonic() - started >= timeout:
                break
            await asyncio.sleep(_ONCE_POLL_SECONDS)
    finally:
        await monitor.stop()

    snapshot = monitor.snapshot()
    if snapshot is None:
        console.print("[red]Error: no samples collected[/red]")
        return None

    result = create_snapshot_json(snapshot)

    if json_output:
        print(json.dumps(result, indent=2))
    elif simple:
        print(format_text_result(snapshot))
    else:
        print_snapshot(snapshot, monitor.config, monitor.timeline())

    if output_file:
        save_json(result, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    if csv_file:
        _append_csv(csv_file, snapshot)
        if not json_output:
            console.print(f"[green]CSV row appended to:[/green] {csv_file}")

    return result


async def run_live(
    monitor: NetworkQualityMonitor,
    *,
    refresh: float = 1.0,
    duration: Optional[float] = None,
    csv_file: Optional[str] = None,
) -> None:
    """Redraw the dashboard every *refresh* seconds until cancelled."""
    print_header()
    monitor.start()
    started = time.monotonic()
    last_csv = None
    try:
        with Live(render_snapshot(None, monitor.config), console=console, refresh_per_second=4) as live:
            while duration is None or time.monotonic() - started < duration:
                await asyncio.sleep(refresh)
                snapshot = monitor.snapshot()
                live.update(render_snapshot(snapshot, monitor.config, monitor.timeline()))
                if csv_file and snapshot is not None and snapshot.timestamp_utc != last_csv:
                    _append_csv(csv_file, snapshot)
                    last_csv = snapshot.timestamp_utc
    finally:
        await monitor.stop()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Network Quality Sentinel -- continuous connection quality monitoring",
    )
    parser.add_argument("--config", type=str, metavar="PATH", help=f"Config file (default: {config_path()})")
    parser.add_argument("--write-config", action="store_true", help="Write the normalised config and exit")

    # Output modes
    parser.add_argument("--once", action="store_true", help="Run one full probe cycle, print and exit")
    parser.add_argument("--json", "-j", action="store_true", help="Output the snapshot as JSON (with --once)")
    parser.add_argument("--simple", "-s", action="store_true", help="Plain text output (with --once)")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save the snapshot to a JSON file (with --once)")
    parser.add_argument("--csv", type=str, metavar="FILE", help="Append snapshots as CSV rows")

    # Live mode
    parser.add_argument("--duration", type=float, default=None, metavar="SECS", help="Stop after this many seconds")
    parser.add_argument("--refresh", type=float, default=1.0, metavar="SECS", help="Dashboard refresh interval (default: 1)")

    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log verbosity (default: WARNING)",
    )
    return parser


def main(argv: Optional[list] = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.refresh <= 0:
        console.print("[red]Error: --refresh must be > 0[/red]")
        sys.exit(1)
    if args.duration is not None and args.duration <= 0:
        console.print("[red]Error: --duration must be > 0[/red]")
        sys.exit(1)

    config = load_config(args.config)

    if args.write_config:
        path = save_config(config, args.config)
        console.print(f"[green]Config written to:[/green] {path}")
        return

    monitor = NetworkQualityMonitor(config)

    try:
        if args.once:
            result = asyncio.run(
                run_once(
                    monitor,
                    json_output=args.json,
                    simple=args.simple,
                    output_file=args.output,
                    csv_file=args.csv,
                    timeout=args.duration,
                )
            )
            if result is None:
                sys.exit(1)
        else:
            asyncio.run(run_live(monitor, refresh=args.refresh, duration=args.duration, csv_file=args.csv))

    except KeyboardInterrupt:
        console.print("\n[yellow]Monitoring stopped by user[/yellow]")
    except OSError as exc:
        logger.debug("Fatal error", exc_info=True)
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
