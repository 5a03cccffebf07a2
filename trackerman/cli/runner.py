# trackerman/cli/runner.py

"""Command handlers for the trackerman CLI, one per subcommand."""

import argparse
import json
import logging
import threading
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from trackerman.errors import TrackermanError, ValidationError
from trackerman.models.fetch_options import FetchOptions
from trackerman.models.market_listing import MarketListing
from trackerman.models.tracked_item import Thresholds, TrackedItem
from trackerman.services.tracker_service import TrackerService

logger = logging.getLogger("trackerman.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def parse_assignment(raw: str) -> dict[str, Any]:
    """Turn ``a.b.c=value`` into ``{"a": {"b": {"c": value}}}``.

    The value is decoded as JSON when possible (``true``, ``15``,
    ``null``) and kept as a string otherwise.
    """
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise ValidationError(f"Expected KEY=VALUE, got {raw!r}")
    try:
        decoded: Any = json.loads(value)
    except json.JSONDecodeError:
        decoded = value
    nested: dict[str, Any] = {}
    cursor = nested
    parts = [p.strip() for p in key.split(".")]
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = decoded
    return nested


def _merge_into(target: dict[str, Any], update: dict[str, Any]) -> None:
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge_into(target[key], value)
        else:
            target[key] = value


def _thresholds(
    high: float | None, low: float | None,
) -> Thresholds | None:
    if high is None and low is None:
        return None
    return Thresholds(high=high, low=low)


def _format_price(price: float, currency: str) -> str:
    return f"{currency}{price:,.2f}" if price > 0 else "N/A"


def _print_items(items: list[TrackedItem], title: str) -> None:
    """Render tracked items and their (current or full) history."""
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("Name", max_width=50)
    table.add_column("Exterior", style="magenta")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Observed", style="dim")
    table.add_column("High / Low", justify="right")
    table.add_column("Status", justify="center")

    for item in items:
        bounds = item.thresholds
        bounds_text = (
            f"{bounds.high if bounds.high is not None else '—'} / "
            f"{bounds.low if bounds.low is not None else '—'}"
            if bounds
            else "—"
        )
        if not item.history:
            table.add_row(
                item.name, item.exterior.value, "—", "—", bounds_text, "",
            )
            continue
        for obs in item.history:
            table.add_row(
                item.name,
                item.exterior.value,
                _format_price(obs.price, obs.currency),
                obs.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                bounds_text,
                "superseded" if obs.superseded else "[bold]current[/bold]",
            )

    Console().print(table)


def _listings_to_dicts(
    results: dict[str, list[MarketListing]],
) -> dict[str, list[dict[str, object]]]:
    return {
        label: [
            {
                "name": listing.name,
                "exterior": listing.exterior.value,
                "price": listing.price,
                "currency": listing.currency,
                "listing_id": listing.listing_id,
                "seller_id": listing.seller_id,
                "seller_name": listing.seller_name,
            }
            for listing in listings
        ]
        for label, listings in results.items()
    }


# ── Handlers ─────────────────────────────────────────────


def cmd_add(service: TrackerService, args: argparse.Namespace) -> int:
    item = service.add_item(
        args.url,
        _thresholds(args.high, args.low),
        args.exterior,
    )
    _err.print(f"[green]✓ Tracking {item.label}[/green]")
    return 0


def cmd_remove(service: TrackerService, args: argparse.Namespace) -> int:
    if service.remove_item(args.name, args.exterior):
        _err.print(f"[green]✓ Removed {args.name} ({args.exterior})[/green]")
    else:
        _err.print(f"[dim]{args.name} ({args.exterior}) was not tracked[/dim]")
    return 0


def cmd_list(service: TrackerService, args: argparse.Namespace) -> int:
    items = service.get_items()
    if not items:
        _err.print("[yellow]No items tracked.[/yellow]")
        return 0
    _print_items(items, "Tracked Items")
    return 0


def cmd_history(service: TrackerService, args: argparse.Namespace) -> int:
    items = service.get_history(args.name, args.exterior)
    if args.json:
        print(json.dumps(
            [i.to_dict() for i in items], ensure_ascii=False, indent=2,
        ))
        return 0
    _print_items(items, "Price History")
    return 0


def cmd_thresholds(
    service: TrackerService, args: argparse.Namespace,
) -> int:
    service.update_thresholds(
        args.name, args.exterior, _thresholds(args.high, args.low),
    )
    _err.print(f"[green]✓ Thresholds updated for {args.name}[/green]")
    return 0


def cmd_fetch(service: TrackerService, args: argparse.Namespace) -> int:
    fetch_type = "single" if args.item else "all"
    options = FetchOptions(
        fetch_type=fetch_type,
        price_type=args.price_type,
        count=args.count,
        exterior_filter=args.exterior_filter or "",
    )
    name, exterior = args.item if args.item else (None, None)
    results = service.fetch(options, name, exterior)
    print(json.dumps(
        _listings_to_dicts(results), ensure_ascii=False, indent=2,
    ))
    return 0


def cmd_settings(
    service: TrackerService, args: argparse.Namespace,
) -> int:
    if args.assignments:
        partial: dict[str, Any] = {}
        for raw in args.assignments:
            _merge_into(partial, parse_assignment(raw))
        settings = service.update_settings(partial)
        _err.print("[green]✓ Settings updated[/green]")
    else:
        settings = service.get_settings()
    print(json.dumps(settings.to_dict(), indent=2))
    return 0


def cmd_trigger(service: TrackerService, args: argparse.Namespace) -> int:
    report = service.trigger_scheduler()
    _err.print(
        f"[green]✓ Cycle complete: {report.succeeded} ok[/green], "
        f"[red]{report.failed} failed[/red], "
        f"[yellow]{report.skipped} skipped[/yellow]"
    )
    for label, message in report.errors.items():
        _err.print(f"[red]{label}: {message}[/red]")
    return 0


def cmd_status(service: TrackerService, args: argparse.Namespace) -> int:
    status = service.get_scheduler_status()
    print(json.dumps(
        {
            "enabled": status.enabled,
            "interval_minutes": status.interval_minutes,
            "running": status.running,
            "last_run": (
                status.last_run.isoformat() if status.last_run else None
            ),
            "next_run": (
                status.next_run.isoformat() if status.next_run else None
            ),
        },
        indent=2,
    ))
    return 0


def cmd_run(service: TrackerService, args: argparse.Namespace) -> int:
    if not service.get_settings().auto_scheduler.enabled:
        _err.print(
            "[yellow]Auto-scheduler is disabled; enable it with "
            "`settings --set auto_scheduler.enabled=true`.[/yellow]"
        )
        return 1
    service.initialize()
    status = service.get_scheduler_status()
    _err.print(
        f"[bold]Running every {status.interval_minutes} minutes.[/bold] "
        "[dim]Ctrl+C to stop.[/dim]"
    )
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        _err.print("[dim]Stopping...[/dim]")
    return 0


def cmd_test_webhook(
    service: TrackerService, args: argparse.Namespace,
) -> int:
    if service.test_webhook():
        _err.print("[green]✓ Discord webhook test successful[/green]")
        return 0
    _err.print("[red]Discord webhook test failed[/red]")
    return 1


def cmd_import_legacy(
    service: TrackerService, args: argparse.Namespace,
) -> int:
    count = service.import_legacy(Path(args.path))
    _err.print(f"[green]✓ Imported {count:,} observations[/green]")
    return 0


def run_command(
    args: argparse.Namespace,
    service: TrackerService | None = None,
) -> int:
    """Build the service, run the selected handler, map errors to exit codes."""
    svc = service or TrackerService()
    try:
        return int(args.handler(svc, args))
    except TrackermanError as exc:
        logger.error("Command %s failed: %s", args.command, exc)
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        svc.stop()
