"""Click CLI commands for seatsnipe."""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import date, timedelta

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from seatsnipe.api import SeatApiClient
from seatsnipe.auth import CredentialStore
from seatsnipe.config import load_seat_config, load_user_info, task_by_key, task_for_day
from seatsnipe.errors import SeatLookupError, SeatSnipeError
from seatsnipe.models import UserCredentials
from seatsnipe.notifications import display_result
from seatsnipe.scheduler import booking_start, local_now, plan_release
from seatsnipe.seatmap import SeatMap
from seatsnipe.sniper import SeatSniper
from seatsnipe.sso import SessionProvider

console = Console()

# Offset added to a real seat id so the probe request can never book it.
PROBE_SEAT_OFFSET = 1_000_000


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_credentials(user_info: str | None) -> UserCredentials:
    if user_info:
        return load_user_info(user_info)
    return CredentialStore().load()


def _fail(message: str) -> None:
    console.print(message, style="red", markup=False)
    sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """seatsnipe: grab a library seat the moment bookings open."""
    _setup_logging(verbose)


@main.command()
def configure() -> None:
    """Store SSO credentials in the OS keyring and verify them."""
    school_id = click.prompt("School id")
    password = click.prompt("Password", hide_input=True)

    CredentialStore().store(school_id, password)
    console.print("[green]Credentials stored.[/green] Verifying...")

    credentials = UserCredentials(school_id=school_id, password=password)
    try:
        asyncio.run(SessionProvider().validate(credentials))
        console.print("[green]Login OK.[/green]")
    except Exception as e:
        console.print(f"Verification failed: {e}", style="red", markup=False)
        console.print("Credentials were still saved. Fix them with 'seatsnipe configure'.")


@main.command()
@click.option("--user-info", type=click.Path(exists=True), help="user_info.yml instead of keyring.")
def test_auth(user_info: str | None) -> None:
    """Log in once and show the account uid."""
    try:
        credentials = _load_credentials(user_info)
    except SeatSnipeError as e:
        _fail(str(e))

    async def _test() -> None:
        session = await SessionProvider().login(credentials)
        try:
            console.print("[green]Authentication successful![/green]")
            console.print(f"UID: {session.uid}")
            console.print(f"PHPSESSID: {session.php_sess_id[:8]}...")
        finally:
            await session.aclose()

    try:
        asyncio.run(_test())
    except Exception as e:
        _fail(f"Auth test failed: {e}")


@main.command()
@click.argument("room")
@click.option("--seat-map", "seat_map_path", default="seat_report.txt", show_default=True)
def seats(room: str, seat_map_path: str) -> None:
    """List the seats of ROOM from the seat map."""
    try:
        seat_map = SeatMap.load(seat_map_path)
        room_seats = seat_map.seats(room)
    except SeatSnipeError as e:
        _fail(str(e))

    table = Table(title=room)
    table.add_column("Title")
    table.add_column("Seat ID", justify="right")
    for seat in room_seats:
        table.add_row(seat.title, str(seat.seat_id))
    console.print(table)


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.option("--seat-map", "seat_map_path", default="seat_report.txt", show_default=True)
@click.option("--user-info", type=click.Path(exists=True), help="user_info.yml instead of keyring.")
@click.option("--day", "day_key", default=None, help="week_config key to run instead of today's.")
def run(config_file: str, seat_map_path: str, user_info: str | None, day_key: str | None) -> None:
    """Run today's booking task from CONFIG_FILE."""
    try:
        config = load_seat_config(config_file)
        seat_map = SeatMap.load(seat_map_path)
        credentials = _load_credentials(user_info)
        if day_key:
            found = (day_key, task_by_key(config, day_key))
        else:
            found = task_for_day(config, date.today())
    except SeatSnipeError as e:
        _fail(str(e))

    if found is None or not found[1].enable or not found[1].seats:
        console.print("[yellow]Booking is not enabled for today or no seats configured.[/yellow]")
        return
    day_name, task = found

    settings = config.settings
    now = local_now()
    plan = plan_release(
        task.run_at_hour, task.run_at_minute,
        settings.preempt_seconds, settings.fallback_seconds, now=now,
    )
    begin = booking_start(now, settings.book_days_ahead, task.book_start_hour)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Task", day_name)
    table.add_row("Account", credentials.school_id)
    table.add_row("Room", task.name)
    table.add_row("Reservation", f"{begin:%Y-%m-%d %H:%M} for {task.duration}h")
    table.add_row("Attack phase", f"{plan.attack_window} (seat {task.primary_seat})")
    table.add_row("Fallback phase", f"{plan.fallback_window} (all seats)")
    for i, seat in enumerate(task.seats, 1):
        table.add_row(f"Seat #{i}", seat)
    console.print(Panel(table, title="Booking Task"))

    if plan.attack_start > now:
        wait = plan.attack_start - now
        hours, remainder = divmod(int(wait.total_seconds()), 3600)
        minutes, secs = divmod(remainder, 60)
        console.print(f"Attack starts in [bold]{hours}h {minutes}m {secs}s[/bold]")

    sniper = SeatSniper(seat_map, settings)
    try:
        result = asyncio.run(sniper.execute(task, credentials))
    except KeyboardInterrupt:
        console.print("\n[yellow]Run cancelled.[/yellow]")
        sys.exit(130)
    display_result(result)
    if not result.success:
        sys.exit(1)


@main.command()
@click.argument("config_file", type=click.Path(exists=True))
@click.option("--task", "task_key", default="fast_test_task", show_default=True)
@click.option("--seat-map", "seat_map_path", default="seat_report.txt", show_default=True)
@click.option("--user-info", type=click.Path(exists=True), help="user_info.yml instead of keyring.")
def probe(config_file: str, task_key: str, seat_map_path: str, user_info: str | None) -> None:
    """Log in and send one booking for an invalid seat to exercise the API."""
    try:
        config = load_seat_config(config_file)
        task = task_by_key(config, task_key)
        seat_map = SeatMap.load(seat_map_path)
        credentials = _load_credentials(user_info)
    except SeatSnipeError as e:
        _fail(str(e))
    if not task.seats:
        _fail(f"Task '{task_key}' has no seats configured.")

    label = task.primary_seat
    try:
        seat_id = seat_map.resolve(task.name, label) + PROBE_SEAT_OFFSET
        console.print(f"Seat exists locally; offset to id {seat_id} to keep the request invalid.")
    except SeatLookupError:
        seat_id = int(label) if label.isdigit() else 0
        console.print(f"Seat '{label}' not in map (expected); using dummy id {seat_id}.")

    api = SeatApiClient()
    begin = booking_start(local_now(), config.settings.book_days_ahead, task.book_start_hour)

    async def _probe() -> None:
        session = await SessionProvider(api=api).login(credentials)
        try:
            console.print(f"[green]Login OK[/green] (uid {session.uid})")
            resp = await api.book_seat(session, seat_id, begin, timedelta(hours=task.duration))
            console.print(f"Server answered: [{resp.code}] {resp.message}")
            if resp.accepted:
                console.print("[yellow]Unexpectedly accepted; cancel it on the website.[/yellow]")
        finally:
            await session.aclose()

    try:
        asyncio.run(_probe())
    except Exception as e:
        _fail(f"Probe failed: {e}")
