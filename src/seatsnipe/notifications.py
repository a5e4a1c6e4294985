"""Post-run output: Rich console panel + macOS notification."""

from __future__ import annotations

import logging
import subprocess
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from seatsnipe.models import BookingResult, BookingStatus

logger = logging.getLogger(__name__)

console = Console()


def _booking_table(result: BookingResult) -> Table:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Room", result.room)
    if result.booking_start:
        table.add_row(
            "Reservation",
            f"{result.booking_start:%Y-%m-%d %H:%M} for {result.duration_hours}h",
        )
    return table


def display_result(result: BookingResult) -> None:
    """Display the run result with Rich formatting."""
    table = _booking_table(result)
    if result.status is BookingStatus.CONFIRMED:
        table.add_row("Seat", f"{result.seat} (id {result.seat_id})")
        table.add_row("Phase", result.phase.value if result.phase else "-")
        if result.confirmation_id:
            table.add_row("Booking id", result.confirmation_id)
        table.add_row("Requests", str(result.attempts))
        table.add_row("Elapsed", f"{result.elapsed_seconds:.1f}s")
        console.print(Panel(table, title="SEAT BOOKED", border_style="green"))
        _macos_notify("Seat booked!", f"{result.room} seat {result.seat}")
        return

    title = {
        BookingStatus.EXHAUSTED: "EXHAUSTED",
        BookingStatus.SETUP_FAILED: "SETUP FAILED",
        BookingStatus.WINDOW_PASSED: "WINDOW ALREADY PASSED",
    }[result.status]
    table.add_row("Error", result.error or "Unknown")
    table.add_row("Requests", str(result.attempts))
    table.add_row("Elapsed", f"{result.elapsed_seconds:.1f}s")
    console.print(Panel(table, title=title, border_style="red"))
    _macos_notify("Seat booking failed", result.error or title)


def _macos_notify(title: str, message: str) -> None:
    """Send a macOS notification via osascript."""
    if sys.platform != "darwin":
        return
    try:
        script = f'display notification "{message}" with title "{title}"'
        subprocess.run(["osascript", "-e", script], capture_output=True, timeout=5)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Notification failed: %s", e)
