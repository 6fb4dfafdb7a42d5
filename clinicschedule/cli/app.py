"""
Operator CLI using Typer.

The engine itself has no clock and no I/O; this command line reads the
clock (unless --now is given), loads a snapshot or talks to the backend,
and renders the results with rich.
"""

import asyncio
from datetime import date
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.table import Table

from ..adapters.http_repository import (
    ClinicApiClient,
    HttpBookingRepository,
    HttpScheduleRepository,
)
from ..adapters.memory_repository import load_snapshot_file
from ..config import AppConfig
from ..domain.exceptions import SchedulingError
from ..domain.models import DayStatus, SlotRequest
from ..domain.time_utils import format_time, parse_date
from ..logging_setup import configure_logging
from ..services.factory import build_fee_policy, build_scheduling_service
from ..services.scheduling import SchedulingService

app = typer.Typer(
    name="clinicschedule",
    help="Inspect provider availability, validate bookings and evaluate reschedule fees",
    add_completion=False
)

console = Console()

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DataOption = Annotated[Optional[Path], typer.Option("--data", help="JSON snapshot file; omit to use the clinic backend")]
NowOption = Annotated[Optional[str], typer.Option("--now", help="Current time override (ISO 8601, clinic timezone)")]


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config = AppConfig.load_or_default(config_file)
    configure_logging(config.log_level)
    return config


def _build_service(config: AppConfig, data_file: Optional[Path]) -> SchedulingService:
    """Wire the service to a JSON snapshot or to the clinic backend."""
    if data_file:
        schedules, bookings = load_snapshot_file(data_file)
    else:
        client = ClinicApiClient(
            base_url=config.backend.base_url,
            timeout_seconds=config.backend.timeout_seconds,
            api_token=config.backend.api_token,
        )
        schedules, bookings = HttpScheduleRepository(client), HttpBookingRepository(client)
    return build_scheduling_service(config, schedules, bookings)


def _resolve_now(now_option: Optional[str], tz: str):
    if now_option:
        try:
            return pendulum.parse(now_option, tz=tz)
        except Exception as e:
            console.print(f"[red]Error parsing --now: {e}[/red]")
            raise typer.Exit(1)
    return pendulum.now(tz)


def _resolve_day(date_option: Optional[str], now) -> date:
    if not date_option:
        return now.date()
    try:
        return parse_date(date_option)
    except ValueError as e:
        console.print(f"[red]Error parsing date: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def slots(
    provider: Annotated[str, typer.Argument(help="Provider (doctor) id")],
    day: Annotated[Optional[str], typer.Option("--date", "-d", help="Day to inspect (YYYY-MM-DD). Defaults to today")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", help="Visit duration in minutes")] = None,
    show_all: Annotated[bool, typer.Option("--all", help="Also list unavailable slots")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the slots as JSON")] = False,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    now_option: NowOption = None,
):
    """
    List the bookable slots of a provider for one day.

    Examples:

        clinicschedule slots dr-lan --date 2025-12-15 --data snapshot.json
        clinicschedule slots dr-lan --duration 60 --all
        clinicschedule slots dr-lan --json --now 2025-12-15T07:00
    """
    try:
        config = _load_config(config_file)
        now = _resolve_now(now_option, config.timezone)
        target = _resolve_day(day, now)
        minutes = duration or config.booking.default_duration_minutes

        service = _build_service(config, data_file)
        request = SlotRequest(provider_id=provider, date=target, duration_minutes=minutes, now=now)
        availability = asyncio.run(service.query(request))

        if as_json:
            console.print_json(data=[slot.to_dict() for slot in availability.slots])
            return

        if availability.status is DayStatus.DAY_OFF:
            console.print(f"[yellow]Provider {provider} does not work on {target.isoformat()}.[/yellow]")
            return
        if availability.status is DayStatus.BLOCKED:
            console.print(f"[yellow]Provider {provider} is blocked for the whole day {target.isoformat()}.[/yellow]")
            return

        rows = availability.slots if show_all else availability.available_slots
        if not rows:
            console.print(f"[yellow]⚠ No free {minutes}-minute slots on {target.isoformat()} (fully booked).[/yellow]")
            return

        table = Table(
            title=f"{provider} · {DAY_NAMES[(target.isoweekday()) % 7]} {target.isoformat()} · {minutes} min",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Start", style="bold")
        table.add_column("End")
        table.add_column("Status")

        for slot in rows:
            status = "[green]available[/green]" if slot.available else f"[red]{slot.reason.value}[/red]"
            table.add_row(format_time(slot.start_time), format_time(slot.end_time), status)

        console.print()
        console.print(table)
        console.print(f"[bold green]✓ {len(availability.available_slots)} available slot(s)[/bold green]\n")

    except (FileNotFoundError, SchedulingError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def validate(
    provider: Annotated[str, typer.Argument(help="Provider (doctor) id")],
    day: Annotated[str, typer.Argument(help="Day (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    duration: Annotated[Optional[int], typer.Option("--duration", help="Visit duration in minutes")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    now_option: NowOption = None,
):
    """
    Check whether a slot can be booked right now.
    """
    try:
        config = _load_config(config_file)
        now = _resolve_now(now_option, config.timezone)
        target = _resolve_day(day, now)
        minutes = duration or config.booking.default_duration_minutes

        service = _build_service(config, data_file)
        result = asyncio.run(service.validate_booking(provider, target, start, minutes, now))

        if result.ok:
            console.print(
                f"[bold green]✓ {target.isoformat()} {format_time(result.slot.start_time)}-"
                f"{format_time(result.slot.end_time)} can be booked.[/bold green]"
            )
            return

        console.print(f"[bold red]✗ Rejected:[/bold red] {result.reason.value}")
        if result.message:
            console.print(f"  {result.message}")
        raise typer.Exit(2)

    except (FileNotFoundError, SchedulingError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def fee(
    appointment_start: Annotated[str, typer.Argument(help="Original appointment start (ISO 8601, clinic timezone)")],
    config_file: ConfigOption = None,
    now_option: NowOption = None,
):
    """
    Show whether moving an appointment now would cost a reservation fee.
    """
    try:
        config = _load_config(config_file)
        now = _resolve_now(now_option, config.timezone)
        old_start = pendulum.parse(appointment_start, tz=config.timezone)

        decision = build_fee_policy(config).evaluate(old_start, now)
        minutes_left = int((old_start - now).total_seconds() // 60)

        if decision.fee_charged:
            console.print(
                f"[bold red]Fee applies:[/bold red] {decision.amount:,} {decision.currency} "
                f"({minutes_left} min before the visit)"
            )
        else:
            console.print(f"[green]No fee[/green] ({minutes_left} min before the visit)")

    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def schedule(
    provider: Annotated[str, typer.Argument(help="Provider (doctor) id")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
):
    """
    Show a provider's weekly working hours and blocked intervals.
    """
    try:
        config = _load_config(config_file)
        service = _build_service(config, data_file)
        today = pendulum.now(config.timezone).date()
        snapshot = asyncio.run(service.fetch_snapshot(provider, today))

        table = Table(title=f"Weekly schedule · {provider}", show_header=True, header_style="bold cyan")
        table.add_column("Day", style="bold yellow")
        table.add_column("Working hours")

        by_index = {d.day_index: d for d in snapshot.weekly_schedule.days}
        for index in [1, 2, 3, 4, 5, 6, 0]:
            entry = by_index.get(index)
            if entry is None or not entry.windows:
                hours = "[dim]day off[/dim]"
            else:
                hours = ", ".join(str(w) for w in entry.windows)
            table.add_row(DAY_NAMES[index], hours)

        console.print()
        console.print(table)

        if snapshot.blocked_intervals:
            console.print("\n[bold]Blocked today:[/bold]")
            for blocked in snapshot.blocked_intervals:
                span = "all day" if blocked.start_time is None else (
                    f"{format_time(blocked.start_time)}-{format_time(blocked.end_time)}"
                )
                console.print(f"  {blocked.start_date} → {blocked.end_date} {span} {blocked.reason}")
        console.print()

    except (FileNotFoundError, SchedulingError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]clinicschedule[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
