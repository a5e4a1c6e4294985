"""Fixed-interval attempt loop over a time window.

One clock drives everything: every ``tick_interval`` the executor checks the
window and, when inside it, walks the seats in priority order once. The
first seat that books wins; a seat that fails never ends the phase.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Sequence, Union

import httpx

from seatsnipe.errors import (
    BookingRejectedError,
    MalformedResponseError,
    SeatLookupError,
    UnretryableError,
)
from seatsnipe.models import BookResponse
from seatsnipe.retry import with_retry
from seatsnipe.scheduler import Clock, Sleep, TimeWindow, local_now

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.5

# Per-seat immediate retry: absorbs a network blip without eating the next tick.
ATTEMPT_RETRIES = 2
ATTEMPT_RETRY_DELAY = 0.1


# --- Attempt outcomes ---


@dataclass(frozen=True)
class Success:
    confirmation_id: str
    seat_id: int


@dataclass(frozen=True)
class ServerRejected:
    code: object
    message: str


@dataclass(frozen=True)
class TransportFailure:
    cause: BaseException


@dataclass(frozen=True)
class ResolutionFailure:
    cause: SeatLookupError


AttemptOutcome = Union[Success, ServerRejected, TransportFailure, ResolutionFailure]


@dataclass(frozen=True)
class PhaseWin:
    seat: str
    seat_id: int
    confirmation_id: str


class PhaseExecutor:
    """
    Runs booking phases for one room.

    ``resolve`` maps a seat label to its numeric id (raises ``SeatLookupError``).
    ``book`` sends one booking request for a seat id.
    """

    def __init__(
        self,
        resolve: Callable[[str], int],
        book: Callable[[int], Awaitable[BookResponse]],
        *,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        attempt_retries: int = ATTEMPT_RETRIES,
        attempt_retry_delay: float = ATTEMPT_RETRY_DELAY,
        clock: Clock = local_now,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        self._resolve = resolve
        self._book = book
        self._interval = timedelta(seconds=tick_interval)
        self._retries = attempt_retries
        self._retry_delay = attempt_retry_delay
        self._clock = clock
        self._sleep = sleep
        self.requests = 0

    async def run_phase(
        self,
        window: TimeWindow,
        seats: Sequence[str],
        *,
        name: str = "booking",
        stop_event: asyncio.Event | None = None,
    ) -> PhaseWin | None:
        """Tick until a seat books (returns it) or the window closes (returns None)."""
        logger.info(
            "--- Entering %s phase %s: trying %d seat(s) %s ---",
            name, window, len(seats), list(seats),
        )
        next_tick = self._clock() + self._interval

        while True:
            await self._sleep_until(next_tick)
            t = self._clock()

            if stop_event is not None and stop_event.is_set():
                logger.info("%s phase stopped on request", name.capitalize())
                return None
            if t > window.end:
                logger.info("%s phase window closed without success", name.capitalize())
                return None

            if t >= window.start:
                for seat in seats:
                    outcome = await self.attempt(seat)
                    if isinstance(outcome, Success):
                        logger.info(
                            "%s phase won seat '%s' (%d), booking id %s",
                            name.capitalize(), seat, outcome.seat_id,
                            outcome.confirmation_id or "-",
                        )
                        return PhaseWin(seat, outcome.seat_id, outcome.confirmation_id)

            next_tick = self._next_tick(next_tick)

    async def attempt(self, seat: str) -> AttemptOutcome:
        """Resolve one seat and try to book it with a short immediate retry."""
        try:
            seat_id = self._resolve(seat)
        except SeatLookupError as e:
            logger.warning("Cannot find seat '%s', skipping: %s", seat, e)
            return ResolutionFailure(e)

        async def _book_once() -> BookResponse:
            self.requests += 1
            try:
                resp = await self._book(seat_id)
            except MalformedResponseError as e:
                raise UnretryableError(e) from e
            # A well-formed rejection (seat taken, too frequent) is final for
            # this tick; the next tick is the retry.
            if not resp.accepted and resp.message:
                raise UnretryableError(BookingRejectedError(resp.code, resp.message))
            return resp

        logger.info("Attempting seat '%s' (%d)", seat, seat_id)
        try:
            resp = await with_retry(
                _book_once,
                self._retries,
                self._retry_delay,
                sleep=self._sleep,
                label=f"Seat {seat_id}",
            )
        except BookingRejectedError as e:
            logger.info("Seat '%s' rejected: [%s] %s", seat, e.code, e.message)
            return ServerRejected(e.code, e.message)
        except (httpx.HTTPError, MalformedResponseError) as e:
            logger.warning("Seat '%s' (%d) failed after retries: %s", seat, seat_id, e)
            return TransportFailure(e)
        except Exception as e:
            logger.error(
                "Seat '%s' (%d): unexpected error: %s", seat, seat_id, e, exc_info=True
            )
            return TransportFailure(e)

        logger.info("Booking result for seat '%s': [%s] %s", seat, resp.code, resp.message)
        if resp.accepted:
            return Success(resp.booking_id, seat_id)
        return ServerRejected(resp.code, resp.message)

    async def _sleep_until(self, target: datetime) -> None:
        delay = (target - self._clock()).total_seconds()
        if delay > 0:
            await self._sleep(delay)

    def _next_tick(self, previous: datetime) -> datetime:
        """Next grid instant after ``previous``; ticks missed while busy are dropped."""
        nxt = previous + self._interval
        now = self._clock()
        dropped = 0
        while nxt < now:
            nxt += self._interval
            dropped += 1
        if dropped:
            logger.debug("Dropped %d tick(s) while attempts were running", dropped)
        return nxt
