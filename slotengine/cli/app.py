"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..adapters.json_store import JsonBookingStore
from ..adapters.scheduler_api_client import SchedulerApiClient
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import BookingError, SlotEngineError
from ..domain.models import GenerationWindow, SlotCandidate, TimeRange
from ..domain.slot_generator import generate_slots
from ..services.booking_service import BookingService
from ..services.slot_cache import SlotCache

app = typer.Typer(
    name="slotengine",
    help="Generate bookable appointment slots and commit bookings",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """
    Appointment availability and booking slot engine.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load_config(config_file: Optional[Path]) -> AppConfig:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    root = logging.getLogger()
    level = logging.getLevelName(config.log_level)
    if level < root.level:
        root.setLevel(level)
    return config


def _build_service(config: AppConfig) -> tuple[BookingService, JsonBookingStore]:
    store = JsonBookingStore(
        data_file=config.data_file,
        availabilities=config.availabilities(),
        appointment_types=config.domain_appointment_types(),
    )
    service = BookingService(
        store=store,
        cache=SlotCache(ttl_seconds=config.defaults.cache_ttl_seconds),
        horizon_days=config.defaults.max_horizon_days,
    )
    return service, store


def _print_slots(slots: list[SlotCandidate], tz: str, show_hosts: bool) -> None:
    if not slots:
        console.print(
            "[yellow]⚠ No bookable slots found.[/yellow]\n"
            "Try a longer window or check the hosts' availability."
        )
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Start (local)", style="bold")
    table.add_column("Start (UTC)", style="dim")
    if show_hosts:
        table.add_column("Eligible hosts")

    for idx, slot in enumerate(slots, 1):
        row = [str(idx), slot.label(tz), slot.start.to_iso8601_string()]
        if show_hosts:
            row.append(", ".join(sorted(slot.eligible_host_ids)))
        table.add_row(*row)

    console.print(table)
    console.print(f"[bold green]✓ {len(slots)} slot(s) found[/bold green]")


@app.command()
def slots(
    type_id: Annotated[str, typer.Argument(help="Appointment type id")],
    config_file: ConfigOption = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Window start date (YYYY-MM-DD), defaults to now")] = None,
    days: Annotated[Optional[int], typer.Option("--days", "-d", help="Window length in days (1-60)")] = None,
    step: Annotated[Optional[int], typer.Option("--step", help="Minutes between candidate starts")] = None,
    max_slots: Annotated[Optional[int], typer.Option("--max", help="Maximum number of slots")] = None,
    tz: Annotated[Optional[str], typer.Option("--tz", help="Timezone for display, defaults to the first host's")] = None,
):
    """
    List bookable slots for an appointment type.

    Examples:

        slotengine slots intro-call

        slotengine slots team-demo --days 3 --step 30
    """
    try:
        config = _load_config(config_file)
        entry = config.find_appointment_type(type_id)
        if entry is None:
            console.print(f"[bold red]Error:[/bold red] Unknown appointment type '{type_id}'")
            raise typer.Exit(1)

        display_tz = tz or config.find_host(entry.hosts[0]).timezone
        now = pendulum.now("UTC")

        if start:
            try:
                window_start = pendulum.from_format(start, "YYYY-MM-DD", tz=display_tz).start_of("day")
            except ValueError as e:
                console.print(f"[red]Invalid start date: {e}[/red]")
                raise typer.Exit(1)
        else:
            window_start = now

        window = GenerationWindow.from_days(
            window_start,
            days if days is not None else config.defaults.window_days,
            step_minutes=step or config.defaults.step_minutes,
            max_slots=max_slots or config.defaults.max_slots,
        )

        service, _ = _build_service(config)
        found = service.available_slots(type_id, window, now=now)

        console.print(
            f"\n[bold cyan]🗓️  {entry.name or entry.id}[/bold cyan] "
            f"({entry.duration_minutes} min, {entry.mode.value})\n"
        )
        _print_slots(found, display_tz, show_hosts=len(entry.hosts) > 1)
        console.print()

    except (FileNotFoundError, ValueError, SlotEngineError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def book(
    type_id: Annotated[str, typer.Argument(help="Appointment type id")],
    start: Annotated[str, typer.Argument(help="Slot start as ISO 8601, e.g. 2024-11-25T09:00:00+01:00")],
    config_file: ConfigOption = None,
):
    """
    Book a slot; the host is assigned at commit time.
    """
    try:
        config = _load_config(config_file)
        service, _ = _build_service(config)

        try:
            requested = pendulum.parse(start)
        except ValueError as e:
            console.print(f"[red]Invalid start: {e}[/red]")
            raise typer.Exit(1)

        if not isinstance(requested, pendulum.DateTime):
            console.print("[red]Invalid start: a date and time are required[/red]")
            raise typer.Exit(1)

        receipt = service.book_start(type_id, requested)
        host = config.find_host(receipt.booking.host_id)

        console.print(
            f"\n[bold green]✓ Booked[/bold green] {receipt.booking.booking_id}\n"
            f"   Host: {host.display_name() if host else receipt.booking.host_id}\n"
            f"   Start: {receipt.booking.start.in_timezone(host.timezone if host else 'UTC').format('ddd, DD.MM.YYYY HH:mm zz')}\n"
        )

    except BookingError as e:
        hint = " Regenerate slots and try again." if e.retryable else ""
        console.print(f"[bold red]Booking failed:[/bold red] {e}.{hint}")
        raise typer.Exit(2)

    except (FileNotFoundError, KeyError, ValueError, SlotEngineError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def bookings(
    config_file: ConfigOption = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Only show this host")] = None,
):
    """
    List committed bookings.
    """
    try:
        config = _load_config(config_file)
        _, store = _build_service(config)

        rows = [b for b in store.all_bookings() if host is None or b.host_id == host]
        if not rows:
            console.print("[yellow]No bookings yet.[/yellow]")
            return

        table = Table(title="Bookings", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Host", style="bold yellow")
        table.add_column("Start (UTC)")
        table.add_column("End (UTC)")
        table.add_column("Minutes", justify="right")

        for booking in rows:
            table.add_row(
                booking.booking_id,
                booking.host_id,
                booking.start.to_iso8601_string(),
                booking.end.to_iso8601_string(),
                str(TimeRange(start=booking.start, end=booking.end).duration_minutes()),
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError, SlotEngineError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def list_hosts(config_file: ConfigOption = None):
    """
    List all configured hosts and their weekly availability.
    """
    try:
        config = _load_config(config_file)

        if not config.hosts:
            console.print("[yellow]No hosts defined in the config file.[/yellow]")
            return

        table = Table(
            title="Configured hosts",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Id", style="bold yellow")
        table.add_column("Name")
        table.add_column("Timezone", style="dim")
        table.add_column("Weekly availability")

        for host_config in config.hosts:
            availability = host_config.to_availability()
            table.add_row(
                host_config.id,
                host_config.display_name(),
                host_config.timezone,
                ", ".join(str(rule) for rule in availability.days if rule.enabled),
            )

        console.print()
        console.print(table)
        console.print()

    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def remote_slots(
    slug: Annotated[str, typer.Argument(help="Public booking link slug")],
    base_url: Annotated[Optional[str], typer.Option("--url", help="CRM API base URL, defaults to api_base_url from config")] = None,
    config_file: ConfigOption = None,
    days: Annotated[int, typer.Option("--days", "-d", help="Window length in days (1-60)")] = 14,
    step: Annotated[int, typer.Option("--step", help="Minutes between candidate starts")] = 15,
    max_slots: Annotated[int, typer.Option("--max", help="Maximum number of slots")] = 48,
):
    """
    Generate slots from a live booking-link snapshot of the CRM API.
    """
    try:
        if not base_url:
            base_url = _load_config(config_file).api_base_url
        if not base_url:
            console.print("[bold red]Error:[/bold red] No API base URL given (use --url or api_base_url).")
            raise typer.Exit(1)

        snapshot = SchedulerApiClient(base_url).get_booking_link(slug, window_days=days)
        found = generate_slots(
            host_availabilities=snapshot.host_availabilities(),
            booked_by_host=snapshot.booked_by_host(),
            appointment_type=snapshot.appointment_type,
            window=snapshot.window(step_minutes=step, max_slots=max_slots),
            now=pendulum.now("UTC"),
        )

        console.print(f"\n[bold cyan]🗓️  {snapshot.name}[/bold cyan]\n")
        _print_slots(found, snapshot.availability.time_zone, show_hosts=False)
        console.print()

    except (FileNotFoundError, ValueError, SlotEngineError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
