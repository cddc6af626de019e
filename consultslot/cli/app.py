"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from datetime import date as Date, time as Time
from typing import Annotated, List, NoReturn, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.memory_store import InMemoryStore
from ..adapters.rest_store import RestStore
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookingEngineError
from ..domain.models import format_time_display
from ..services.commit_guard import BookingCommitGuard
from ..services.enumerator import SlotEnumerator

app = typer.Typer(
    name="consultslot",
    help="Find bookable consulting slots and commit bookings without double-booking",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
DataOption = Annotated[Optional[Path], typer.Option("--data", help="YAML/JSON fixture file; uses an in-memory store instead of the backend")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path], data_file: Optional[Path]) -> AppConfig:
    """Load the config file; with a fixture file the defaults are enough."""
    config_path = config_file or get_default_config_path()
    if config_file is None and data_file is not None and not config_path.exists():
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


def _build_store(config: AppConfig, data_file: Optional[Path]):
    if data_file is not None:
        return InMemoryStore.from_file(
            data_file,
            default_minimum_advance_hours=config.engine.default_minimum_advance_hours,
        )
    return RestStore(
        config.store,
        default_minimum_advance_hours=config.engine.default_minimum_advance_hours,
    )


def _build_enumerator(config: AppConfig, store) -> SlotEnumerator:
    return SlotEnumerator(
        store, store, store,
        settings=config.engine,
        timezone=config.timezone,
        store_timeout=config.store.timeout_seconds,
    )


def _build_guard(config: AppConfig, store) -> BookingCommitGuard:
    return BookingCommitGuard(
        store, store, store,
        settings=config.engine,
        timezone=config.timezone,
        store_timeout=config.store.timeout_seconds,
        lock_timeout=config.store.lock_timeout_seconds,
    )


def _fail(message: object) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


def _parse_day(value: str) -> Date:
    return pendulum.from_format(value, "YYYY-MM-DD").date()


def _parse_start(value: str) -> Time:
    parsed = pendulum.parse(value, exact=True)
    if not isinstance(parsed, Time):
        raise ValueError(f"{value!r} is not a time of day")
    return parsed


@app.command()
def dates(
    service: Annotated[str, typer.Argument(help="Service id")],
    consultants: Annotated[List[str], typer.Argument(help="One or more consultant ids (the pool)")],
    days_ahead: Annotated[Optional[int], typer.Option("--days-ahead", "-d", help="How many days to look ahead")] = None,
    max_results: Annotated[Optional[int], typer.Option("--max-results", "-n", help="Stop after this many dates")] = None,
    start_after: Annotated[Optional[str], typer.Option("--from", help="List dates after this one (YYYY-MM-DD); defaults to today")] = None,
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    verbose: VerboseOption = False,
):
    """
    List dates with availability for a service across a consultant pool.

    Examples:

        consultslot dates intro alice bob --days-ahead 14

        consultslot dates intro alice --data fixtures.yaml
    """
    _setup_logging(verbose)
    try:
        from_date = _parse_day(start_after) if start_after else None
    except ValueError as e:
        _fail(f"Could not parse date {start_after!r}: {e}")

    try:
        config = _load_config(config_file, data_file)
        enumerator = _build_enumerator(config, _build_store(config, data_file))
        found = asyncio.run(enumerator.list_available_dates(
            service_id=service,
            consultant_ids=consultants,
            days_ahead=days_ahead,
            max_results=max_results,
            from_date=from_date,
        ))
    except (BookingEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not found:
        console.print("[yellow]⚠ No available dates found.[/yellow]")
        return

    table = Table(title=f"Available dates for {service}", show_header=True, header_style="bold cyan")
    table.add_column("Date", style="bold yellow")
    table.add_column("Day")
    table.add_column("Open capacity", justify="right")
    for availability in found:
        table.add_row(availability.value, availability.format_display(), str(availability.total_available_slots))

    console.print()
    console.print(table)
    console.print()


@app.command()
def times(
    service: Annotated[str, typer.Argument(help="Service id")],
    consultant: Annotated[str, typer.Argument(help="Consultant id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    verbose: VerboseOption = False,
):
    """
    List bookable start times for one consultant on one date.
    """
    _setup_logging(verbose)
    try:
        day = _parse_day(date)
    except ValueError as e:
        _fail(f"Could not parse date {date!r}: {e}")

    try:
        config = _load_config(config_file, data_file)
        enumerator = _build_enumerator(config, _build_store(config, data_file))
        slots = asyncio.run(enumerator.list_available_times(
            service_id=service,
            consultant_id=consultant,
            date=day,
        ))
    except (BookingEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not slots:
        console.print(f"[yellow]⚠ No open times for {consultant} on {day}.[/yellow]")
        return

    console.print(f"[bold green]✓ {len(slots)} open start time(s) on {day}:[/bold green]\n")
    for slot in slots:
        console.print(f"  {slot.value}  {slot.format_display():>8}  ({slot.available_slots} left)")
    console.print()


@app.command()
def book(
    service: Annotated[str, typer.Argument(help="Service id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    consultants: Annotated[List[str], typer.Option("--consultant", "-p", help="Consultant id; repeat to book from a pool")],
    config_file: ConfigOption = None,
    data_file: DataOption = None,
    verbose: VerboseOption = False,
):
    """
    Book a slot. With several --consultant options the configured
    assignment strategy picks one. Bookings against --data are not saved.
    """
    _setup_logging(verbose)
    try:
        day = _parse_day(date)
        start_time = _parse_start(start)
    except ValueError as e:
        _fail(f"Could not parse date/time: {e}")

    try:
        config = _load_config(config_file, data_file)
        guard = _build_guard(config, _build_store(config, data_file))
        if len(consultants) == 1:
            outcome = asyncio.run(guard.try_book(
                service_id=service, consultant_id=consultants[0], date=day, time=start_time,
            ))
        else:
            outcome = asyncio.run(guard.try_book_any(
                service_id=service, consultant_ids=consultants, date=day, time=start_time,
            ))
    except (BookingEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not outcome.ok:
        console.print(f"[bold red]✗ Rejected ({outcome.rejection.reason}):[/bold red] {outcome.rejection}")
        raise typer.Exit(2)

    booking = outcome.booking
    console.print(Panel.fit(
        f"[bold green]✓ Booked[/bold green]\n\n"
        f"[bold]Reference:[/bold] {booking.booking_reference or booking.id}\n"
        f"[bold]Consultant:[/bold] {booking.consultant_id}\n"
        f"[bold]When:[/bold] {booking.scheduled_date} {format_time_display(booking.scheduled_time)}\n"
        f"[bold]Status:[/bold] {booking.status.value}",
        title="Booking"
    ))


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Cancel a booking in the backend.
    """
    _setup_logging(verbose)
    try:
        config = _load_config(config_file, None)
        guard = _build_guard(config, _build_store(config, None))
        booking = asyncio.run(guard.cancel_booking(booking_id))
    except (BookingEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[green]✓ Booking {booking.booking_reference or booking.id} cancelled.[/green]\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]consultslot[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
