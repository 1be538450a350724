"""Entry point for the hostwatch monitoring daemon — `hostwatch` console script."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from hostwatch import __version__
from hostwatch.autonomy.scheduler import Scheduler
from hostwatch.config import Settings, settings
from hostwatch.health.models import DispatchRecord, ExceptionRecord, FindingsRecord
from hostwatch.health.store import EXCEPTION_PREFIX, FindingsStore

logger = logging.getLogger(__name__)
console = Console()

EXIT_OK = 0
EXIT_FATAL = 1


def configure_logging(cfg: Settings) -> None:
    cfg.state_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, cfg.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(cfg.log_file, encoding="utf-8"),
        ],
    )


async def _serve(scheduler: Scheduler) -> int:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, scheduler.request_stop)
    return await scheduler.run()


def run_start(cfg: Settings) -> int:
    """Enter the monitoring loop until stopped."""
    console.print(
        Panel.fit(
            f"[bold]hostwatch {__version__}[/bold]\n"
            f"State:     {cfg.state_dir}\n"
            f"Threshold: {cfg.issue_threshold} issues\n"
            f"Agent:     {cfg.claude_cli_path}\n"
            f"PID:       {os.getpid()}",
            title="autonomous monitoring",
            border_style="green",
        )
    )
    scheduler = Scheduler.from_settings(cfg)
    cfg.pid_file.write_text(str(os.getpid()), encoding="utf-8")
    try:
        return asyncio.run(_serve(scheduler))
    finally:
        cfg.pid_file.unlink(missing_ok=True)


def run_stop(cfg: Settings) -> int:
    """Deliver the shutdown signal to a running daemon."""
    try:
        pid = int(cfg.pid_file.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        console.print(f"[yellow]No running daemon (pid file {cfg.pid_file} missing)[/yellow]")
        return EXIT_FATAL
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        console.print(f"[yellow]Stale pid file: process {pid} is gone[/yellow]")
        cfg.pid_file.unlink(missing_ok=True)
        return EXIT_FATAL
    console.print(f"[green]Shutdown signal sent to {pid}[/green]")
    return EXIT_OK


def run_once(cfg: Settings) -> int:
    """Run a single cycle and print its report."""
    try:
        scheduler = Scheduler.from_settings(cfg)
        with console.status("[bold green]Sampling..."):
            report = scheduler.run_cycle()
    except Exception as e:
        logger.debug("Single cycle failed", exc_info=True)
        console.print(f"[red]Monitoring cycle failed: {type(e).__name__}: {e}[/red]")
        return EXIT_FATAL
    console.print_json(json.dumps(report.to_dict()))
    return EXIT_OK


def _summarize(name: str, data: dict) -> tuple[str, str]:
    if name.startswith("dispatch_"):
        dispatch = DispatchRecord.from_dict(data)
        return dispatch.timestamp, f"{dispatch.kind.value} agent pid={dispatch.pid} ({dispatch.context})"
    if name.startswith(EXCEPTION_PREFIX):
        exc = ExceptionRecord.from_dict(data)
        return exc.timestamp, f"exception in {exc.failed_operation}"
    record = FindingsRecord.from_dict(data)
    summary = f"{record.source.value}: {record.issue_count} issue(s)"
    if record.probe_errors:
        summary += f", {len(record.probe_errors)} probe error(s)"
    return record.timestamp, summary


def run_status(cfg: Settings, limit: int = 10) -> int:
    """Show the most recent records in the findings directory."""
    store = FindingsStore(cfg.findings_dir, cfg.performance_log)
    table = Table(title=f"Recent records in {cfg.findings_dir}")
    table.add_column("File")
    table.add_column("Timestamp")
    table.add_column("Summary")

    for path in store.list_records(limit=limit):
        try:
            timestamp, summary = _summarize(path.name, store.read(path))
        except (OSError, ValueError, KeyError, TypeError) as e:
            table.add_row(path.name, "?", f"[red]unreadable: {e}[/red]")
            continue
        table.add_row(path.name, timestamp, summary)

    console.print(table)
    console.print(f"[dim]Performance samples: {store.performance_count()}[/dim]")
    return EXIT_OK


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="hostwatch autonomous monitoring daemon")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("start", help="Start the monitoring loop")
    sub.add_parser("stop", help="Send the shutdown signal to a running daemon")
    sub.add_parser("once", help="Run one monitoring cycle and exit")
    status_parser = sub.add_parser("status", help="Show recent records")
    status_parser.add_argument("-n", "--limit", type=int, default=10)

    args = parser.parse_args(argv)

    if args.command == "start":
        configure_logging(settings)
        sys.exit(run_start(settings))
    elif args.command == "stop":
        sys.exit(run_stop(settings))
    elif args.command == "once":
        configure_logging(settings)
        sys.exit(run_once(settings))
    elif args.command == "status":
        sys.exit(run_status(settings, args.limit))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
