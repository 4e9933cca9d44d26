"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, List, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.json_snapshot import JsonSnapshotSource
from ..config import load_config
from ..domain.exceptions import SchedulingError
from ..domain.models import (
    BookingSnapshot,
    Priority,
    SchedulingRequest,
    SuggestionPreferences,
    TimeRange,
    hours_to_minutes,
)
from ..services.scheduler import SchedulingService

app = typer.Typer(
    name="bayplanner",
    help="Find and rank service-bay appointment slots",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
BookingsOption = Annotated[Optional[Path], typer.Option("--bookings", "-b", help="JSON file with the current bookings")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Service-bay scheduling: slots, availability, conflicts and suggestions.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load(config_file: Optional[Path], bookings_file: Optional[Path]):
    """Build the config, service and snapshot for a command."""
    config = load_config(config_file)
    source = JsonSnapshotSource(bookings_file, timezone=config.timezone) if bookings_file else None
    service = SchedulingService.from_config(config, snapshot_source=source)
    snapshot = service.load_snapshot() if source else BookingSnapshot()
    return config, service, snapshot


def _parse_date(value: Optional[str], tz: str):
    if not value:
        return pendulum.now(tz).start_of("day")
    try:
        return pendulum.from_format(value, "YYYY-MM-DD", tz=tz)
    except ValueError as e:
        console.print(f"[red]Could not parse date '{value}': {e}[/red]")
        raise typer.Exit(1)


def _parse_start(value: str, tz: str):
    try:
        return pendulum.parse(value, tz=tz)
    except ValueError as e:
        console.print(f"[red]Could not parse start time '{value}': {e}[/red]")
        raise typer.Exit(1)


def _fail(error: Exception):
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _hhmm(window: TimeRange) -> str:
    return f"{window.start.format('ddd DD.MM. HH:mm')} - {window.end.format('HH:mm')}"


@app.command()
def bays(config_file: ConfigOption = None):
    """
    List all configured bays.
    """
    try:
        config = load_config(config_file)
    except (FileNotFoundError, SchedulingError) as e:
        _fail(e)

    registry = config.build_registry()
    table = Table(
        title="Configured bays",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Id", style="bold yellow")
    table.add_column("Label")
    table.add_column("Capabilities", style="dim")
    table.add_column("Hours", style="dim")
    table.add_column("Active")

    weekday_names = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    for resource in registry:
        hours = ", ".join(
            f"{weekday_names[day]} {h.open.strftime('%H:%M')}-{h.close.strftime('%H:%M')}"
            for day, h in sorted(resource.hours.days.items())
        )
        table.add_row(
            resource.id,
            resource.label,
            ", ".join(sorted(resource.capabilities)) or "-",
            hours or "closed",
            "yes" if resource.active else "[red]no[/red]",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def slots(
    resource: Annotated[str, typer.Argument(help="Bay id, e.g. bay-1")],
    day: Annotated[Optional[str], typer.Option("--date", help="Date (YYYY-MM-DD), defaults to today")] = None,
    duration: Annotated[Optional[float], typer.Option("--duration", "-d", help="Job duration in hours")] = None,
    granularity: Annotated[Optional[float], typer.Option("--granularity", "-g", help="Grid step in hours")] = None,
    config_file: ConfigOption = None,
    bookings_file: BookingsOption = None,
):
    """
    Show the candidate slots for a bay on a day and whether each is free.
    """
    try:
        config, service, snapshot = _load(config_file, bookings_file)
        target = _parse_date(day, config.timezone)
        hours = duration if duration is not None else config.scheduling.default_duration_hours
        windows = service.generate_slots(resource, target, hours, granularity)
    except (FileNotFoundError, SchedulingError) as e:
        _fail(e)

    if not windows:
        console.print(f"[yellow]⚠ No {hours:g}h slots on {resource} for {target.format('DD.MM.YYYY')}.[/yellow]")
        return

    table = Table(title=f"{resource} - {target.format('dddd DD.MM.YYYY')}", header_style="bold cyan")
    table.add_column("Slot")
    table.add_column("Status")
    for window in windows:
        free = service.check_availability(resource, window, snapshot)
        table.add_row(_hhmm(window), "[green]free[/green]" if free else "[red]booked[/red]")
    console.print(table)


@app.command()
def check(
    resource: Annotated[str, typer.Argument(help="Bay id, e.g. bay-1")],
    start: Annotated[str, typer.Option("--start", "-s", help="Start time, e.g. '2024-11-25 09:30'")],
    duration: Annotated[Optional[float], typer.Option("--duration", "-d", help="Job duration in hours")] = None,
    exclude: Annotated[Optional[str], typer.Option("--exclude", help="Booking id to ignore (reschedule in place)")] = None,
    config_file: ConfigOption = None,
    bookings_file: BookingsOption = None,
):
    """
    Check whether a bay is free for a window.
    """
    try:
        config, service, snapshot = _load(config_file, bookings_file)
        hours = duration if duration is not None else config.scheduling.default_duration_hours
        window = TimeRange.starting_at(_parse_start(start, config.timezone), hours_to_minutes(hours))
        blocking = service.availability.find_blocking(resource, window, snapshot, exclude)
    except (FileNotFoundError, SchedulingError) as e:
        _fail(e)

    if not blocking:
        console.print(f"[green]✓ {resource} is free for {_hhmm(window)}[/green]")
        return

    console.print(f"[red]✗ {resource} is booked for {_hhmm(window)}[/red]")
    for booking in blocking:
        console.print(f"  {booking.id}: {_hhmm(booking.window)} ({booking.status.value})")
    raise typer.Exit(2)


@app.command()
def suggest(
    day: Annotated[Optional[str], typer.Option("--date", help="Date (YYYY-MM-DD), defaults to today")] = None,
    duration: Annotated[Optional[float], typer.Option("--duration", "-d", help="Job duration in hours")] = None,
    priority: Annotated[Priority, typer.Option("--priority", "-p", help="Job priority")] = Priority.MEDIUM,
    capability: Annotated[Optional[List[str]], typer.Option("--capability", help="Required bay capability (repeatable)")] = None,
    prefer: Annotated[Optional[str], typer.Option("--prefer", help="Preferred bay id")] = None,
    allow_lunch: Annotated[bool, typer.Option("--allow-lunch", help="Do not penalise lunch-hour starts")] = False,
    config_file: ConfigOption = None,
    bookings_file: BookingsOption = None,
):
    """
    Rank the best slots for a new job across all bays.

    Examples:

        bayplanner suggest --date 2024-11-25 --duration 2 --bookings bookings.json

        bayplanner suggest -d 1.5 -p high --capability heavy-duty --prefer bay-2
    """
    try:
        config, service, snapshot = _load(config_file, bookings_file)
        target = _parse_date(day, config.timezone)
        request = SchedulingRequest(
            duration_hours=duration if duration is not None else config.scheduling.default_duration_hours,
            priority=priority,
            required_capabilities=frozenset(capability or []),
        )
        preferences = SuggestionPreferences(
            preferred_resource_id=prefer,
            avoid_lunch_hours=not allow_lunch,
        )
        proposals = service.suggest_slots(request, snapshot, target, preferences)
    except (FileNotFoundError, SchedulingError) as e:
        _fail(e)

    console.print()
    if not proposals:
        console.print(
            "[yellow]⚠ No suitable slots found.[/yellow]\n"
            "Try another date, a shorter duration or fewer required capabilities."
        )
        return

    table = Table(
        title=f"Suggestions for {target.format('dddd DD.MM.YYYY')}",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", justify="right")
    table.add_column("Bay", style="bold yellow")
    table.add_column("Slot")
    table.add_column("Score", justify="right")
    table.add_column("Type")
    table.add_column("Why")
    for index, proposal in enumerate(proposals, 1):
        why = proposal.rationale.description
        if proposal.rationale.warnings:
            why += f"\n[yellow]⚠ {'; '.join(proposal.rationale.warnings)}[/yellow]"
        table.add_row(
            str(index),
            proposal.resource_id,
            _hhmm(proposal.window),
            f"{proposal.score:.2f}",
            proposal.label.title,
            why,
        )
    console.print(table)
    console.print()


@app.command()
def resolve(
    resource: Annotated[str, typer.Argument(help="Requested bay id")],
    start: Annotated[str, typer.Option("--start", "-s", help="Requested start, e.g. '2024-11-25 09:30'")],
    duration: Annotated[Optional[float], typer.Option("--duration", "-d", help="Job duration in hours")] = None,
    priority: Annotated[Priority, typer.Option("--priority", "-p", help="Job priority")] = Priority.MEDIUM,
    title: Annotated[str, typer.Option("--title", help="Job title")] = "New job",
    config_file: ConfigOption = None,
    bookings_file: BookingsOption = None,
):
    """
    Show ranked ways to fit a job that collides with existing bookings.
    """
    try:
        config, service, snapshot = _load(config_file, bookings_file)
        request = SchedulingRequest(
            duration_hours=duration if duration is not None else config.scheduling.default_duration_hours,
            priority=priority,
            title=title,
            preferred_resource_id=resource,
            preferred_start=_parse_start(start, config.timezone),
        )
        result = service.resolve_conflict(request, snapshot)
    except (FileNotFoundError, SchedulingError) as e:
        _fail(e)

    console.print()
    if not result.has_conflict:
        console.print(f"[green]✓ No conflict: {resource} is free for {_hhmm(result.window)}[/green]\n")
        return

    blocking = ", ".join(f"{b.title or b.id} ({_hhmm(b.window)})" for b in result.blocking)
    console.print(f"[bold red]⚠ Conflict on {resource}:[/bold red] {blocking}\n")

    if result.resolutions:
        table = Table(title="Resolutions", header_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Option", style="bold")
        table.add_column("Bay")
        table.add_column("New job")
        table.add_column("Moves")
        table.add_column("Notes")
        for index, resolution in enumerate(result.resolutions, 1):
            moves = "\n".join(f"{m.booking_id} → {_hhmm(m.window)}" for m in resolution.moves) or "-"
            notes = resolution.rationale.description
            if resolution.rationale.warnings:
                notes += f"\n[yellow]{'; '.join(resolution.rationale.warnings)}[/yellow]"
            table.add_row(
                str(index), resolution.title, resolution.resource_id,
                _hhmm(resolution.window), moves, notes,
            )
        console.print(table)
    else:
        console.print(
            f"[yellow]No resolution found within {config.scheduling.search_horizon_days} day(s).[/yellow]"
        )

    force = result.force_option
    console.print(Panel.fit(
        f"Book {force.resource_id} at {_hhmm(force.window)} anyway, overlapping "
        f"{len(force.overlapping)} booking(s).\n"
        "[bold]Requires explicit operator confirmation.[/bold]",
        title=f"[red]{force.title}[/red]",
    ))
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]bayplanner[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
