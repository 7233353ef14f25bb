"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from pendulum import Date
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters import YamlProfileStore, build_calendar_sources
from ..config import AppConfig, get_default_config_path, parse_duration
from ..domain.exceptions import SlotEngineError
from ..domain.timezones import DEFAULT_TIMEZONE_DATABASE, today_in
from ..services import AvailabilityService

app = typer.Typer(
    name="slotengine",
    help="Compute bookable appointment slots for an organizer",
    add_completion=False
)

console = Console()
err_console = Console(stderr=True)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    try:
        return AppConfig.load_from_yaml(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


def _build_service(config: AppConfig) -> AvailabilityService:
    """Wire the YAML store and configured calendars into a service."""
    store = YamlProfileStore(config)
    return AvailabilityService(
        profile_repository=store,
        booking_repository=store,
        calendars=build_calendar_sources(config),
    )


def _parse_date(value: str) -> Date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] invalid date {value!r}: {e}")
        raise typer.Exit(1)


def _print_degraded(failed_sources) -> None:
    console.print(
        "[yellow]⚠ Some calendars may be out of date "
        f"({', '.join(failed_sources)}); shown times may already be taken.[/yellow]"
    )


@app.command()
def slots(
    profile_id: Annotated[str, typer.Argument(help="Profile id from the config file")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD), default today")] = None,
    viewer_tz: Annotated[Optional[str], typer.Option("--viewer-tz", help="Zone to show slots in")] = None,
    duration: Annotated[Optional[str], typer.Option("--duration", help="Slot length, e.g. 30 or '45 min'")] = None,
    buffer: Annotated[Optional[int], typer.Option("--buffer", help="Minutes kept free around busy time")] = None,
    by_viewer_date: Annotated[bool, typer.Option("--by-viewer-date", help="Read --date in the viewer's zone")] = False,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Show bookable slots for one date.

    Examples:

        slotengine slots alice --date 2024-06-03

        slotengine slots alice --viewer-tz Asia/Tokyo --duration "45 min"
    """
    _configure_logging(verbose)
    config = _load_config(config_file)

    try:
        profile = config.get_profile(profile_id)
        organizer_tz = config.profile_timezone(profile)
        viewer_zone = DEFAULT_TIMEZONE_DATABASE.validate(viewer_tz or organizer_tz)
        slot_config = config.slot_defaults_for(profile).to_slot_config(
            profile.id,
            duration_minutes=parse_duration(duration) if duration is not None else None,
            buffer_minutes=buffer,
        )

        if date:
            day = _parse_date(date)
        else:
            day = today_in(viewer_zone if by_viewer_date else organizer_tz, pendulum.now("UTC"))

        result = asyncio.run(
            _build_service(config).available_slots(
                profile_id=profile.id,
                day=day,
                organizer_tz=organizer_tz,
                viewer_tz=viewer_zone,
                config=slot_config,
                by_viewer_date=by_viewer_date,
            )
        )
    except SlotEngineError as e:
        console.print(f"[bold red]Cannot compute availability:[/bold red] {e}")
        raise typer.Exit(1)

    console.print()
    if result.degraded:
        _print_degraded(result.failed_sources)

    if not result.slots:
        console.print(f"[yellow]⚠ No available slots on {day.isoformat()}.[/yellow]\n")
        return

    table = Table(
        title=f"{profile.display_name()}: {day.isoformat()} ({slot_config.duration_minutes} min)",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column(f"Organizer ({organizer_tz})", style="bold yellow")
    table.add_column(f"Viewer ({viewer_zone})")

    for idx, slot in enumerate(result.slots, 1):
        table.add_row(
            str(idx),
            slot.organizer.format_time(),
            f"{slot.viewer.date.format('ddd DD.MM')} {slot.viewer.format_time()}",
        )

    console.print(table)
    console.print(f"[bold green]✓ {len(result.slots)} slot(s) available[/bold green]\n")


@app.command()
def month(
    profile_id: Annotated[str, typer.Argument(help="Profile id from the config file")],
    year: Annotated[Optional[int], typer.Option("--year", help="Year, default current")] = None,
    month_number: Annotated[Optional[int], typer.Option("--month", help="Month 1-12, default current")] = None,
    viewer_tz: Annotated[Optional[str], typer.Option("--viewer-tz", help="Zone to show slots in")] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Show which dates of a month have at least one bookable slot.
    """
    _configure_logging(verbose)
    config = _load_config(config_file)

    try:
        profile = config.get_profile(profile_id)
        organizer_tz = config.profile_timezone(profile)
        current = today_in(organizer_tz, pendulum.now("UTC"))
        year = current.year if year is None else year
        month_number = current.month if month_number is None else month_number

        result = asyncio.run(
            _build_service(config).month_availability(
                profile_id=profile.id,
                year=year,
                month=month_number,
                organizer_tz=organizer_tz,
                viewer_tz=viewer_tz or organizer_tz,
                config=config.slot_defaults_for(profile).to_slot_config(profile.id),
            )
        )
    except SlotEngineError as e:
        console.print(f"[bold red]Cannot compute availability:[/bold red] {e}")
        raise typer.Exit(1)

    console.print()
    if result.degraded:
        _print_degraded(result.failed_sources)

    table = Table(
        title=f"{profile.display_name()}: {year}-{month_number:02d}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold")
    table.add_column("Day", style="dim")
    table.add_column("Available")

    for day, available in result.days.items():
        table.add_row(
            day.isoformat(),
            day.format("ddd"),
            "[green]yes[/green]" if available else "[dim]no[/dim]",
        )

    console.print(table)
    console.print(
        f"[bold green]✓ {len(result.available_dates())} of {len(result.days)} "
        f"date(s) have availability[/bold green]\n"
    )


@app.command()
def list_profiles(config_file: ConfigOption = None):
    """
    List all configured organizer profiles.
    """
    config = _load_config(config_file)

    if not config.profiles:
        console.print("[yellow]No profiles defined in the config file.[/yellow]")
        return

    table = Table(
        title="Configured profiles",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Id", style="bold yellow")
    table.add_column("Name")
    table.add_column("Timezone", style="dim")
    table.add_column("Hours", style="dim")

    for profile in config.profiles:
        hours = f"preset {profile.preset}" if profile.preset else f"{len(profile.weekly)} weekly entries"
        table.add_row(profile.id, profile.display_name(), config.profile_timezone(profile), hours)

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
