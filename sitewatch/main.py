"""Entry point for SiteWatch."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sitewatch.config import settings
from sitewatch.endpoints.loader import load_endpoints_file
from sitewatch.endpoints.models import format_duration
from sitewatch.errors import SiteWatchError

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STATUS_STYLE = {"healthy": "green", "unhealthy": "bold red", "unknown": "dim"}


def run_server() -> None:
    """Start the API server (monitoring runs inside its lifespan)."""
    console.print(Panel("Starting SiteWatch API Server", style="bold green"))
    uvicorn.run(
        "sitewatch.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


async def _run_monitor() -> None:
    from sitewatch.api.server import Monitor

    monitor = Monitor()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # Windows
            pass

    await monitor.start()
    console.print(f"[bold]Monitoring {len(monitor.registry)} endpoints[/bold] (Ctrl+C to stop)")
    try:
        await stop.wait()
    finally:
        console.print("Shutting down SiteWatch...")
        await monitor.stop()


def run_monitor() -> None:
    """Run the scheduler without the HTTP API until SIGINT/SIGTERM."""
    console.print(Panel("Starting SiteWatch monitor", style="bold blue"))
    asyncio.run(_run_monitor())


def run_import(path: str) -> None:
    from sitewatch.api.server import Monitor

    monitor = Monitor()
    try:
        count = monitor.registry.import_definitions(load_endpoints_file(path))
    finally:
        monitor.kv.close()
    console.print(f"Imported [bold]{count}[/bold] endpoints from {path}")


def show_status() -> None:
    """Print stored endpoints with their most recent recorded outcome."""
    from sitewatch.api.server import Monitor

    monitor = Monitor()
    table = Table(title="SiteWatch endpoints")
    for col in ("ID", "Name", "URL", "Interval", "Enabled", "Last status", "Last check"):
        table.add_column(col)
    try:
        for defn in monitor.store.all():
            last = monitor.history.query(defn.id, limit=1)
            status = last[0].status if last else "unknown"
            table.add_row(
                defn.id,
                defn.name,
                defn.url,
                format_duration(defn.check_interval),
                "yes" if defn.enabled else "no",
                f"[{_STATUS_STYLE.get(status, '')}]{status}[/]",
                last[0].timestamp.isoformat(timespec="seconds") if last else "-",
            )
    finally:
        monitor.kv.close()
    console.print(table)


def run_prune() -> None:
    from sitewatch.api.server import Monitor

    monitor = Monitor()
    try:
        removed = monitor.history.prune()
    finally:
        monitor.kv.close()
    console.print(f"Pruned [bold]{removed}[/bold] history records")


def main() -> None:
    parser = argparse.ArgumentParser(description="SiteWatch endpoint health monitor")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server with monitoring")
    sub.add_parser("run", help="Run monitoring without the API")
    import_parser = sub.add_parser("import", help="Import endpoints from a YAML file")
    import_parser.add_argument("file", help="Path to endpoints.yaml")
    sub.add_parser("status", help="Show stored endpoints and their last outcome")
    sub.add_parser("prune", help="Delete history older than the retention window")

    args = parser.parse_args()

    try:
        if args.command == "serve":
            run_server()
        elif args.command == "run":
            run_monitor()
        elif args.command == "import":
            run_import(args.file)
        elif args.command == "status":
            show_status()
        elif args.command == "prune":
            run_prune()
        else:
            parser.print_help()
            sys.exit(1)
    except SiteWatchError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
