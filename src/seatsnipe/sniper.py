"""Run orchestrator: validate → wait → login → attack → fallback.

Timeline for a 20:00 release with a 15s lead:

    any time:   Validate credentials (login, discard session)
    19:59:45:   Login for real (retry for ~1 minute)
    19:59:45 →  20:00:00   Attack phase, primary seat only
    20:00:00 →  20:00:15   Fallback phase, every seat in priority order
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Awaitable, Callable, TypeVar

from seatsnipe.api import SeatApiClient, Session
from seatsnipe.errors import InvalidCredentialsError, UnretryableError
from seatsnipe.models import (
    BookResponse,
    BookingResult,
    BookingStatus,
    DayTask,
    GlobalSettings,
    SnipePhase,
    UserCredentials,
)
from seatsnipe.phase import PhaseExecutor, PhaseWin
from seatsnipe.retry import with_retry
from seatsnipe.scheduler import (
    Clock,
    ReleasePlan,
    Sleep,
    booking_start,
    check_ntp_offset_async,
    local_now,
    plan_release,
    wait_until,
)
from seatsnipe.seatmap import SeatMap
from seatsnipe.sso import SessionProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Credential check before waiting: tolerate a short auth-service hiccup.
VALIDATE_ATTEMPTS = 3
VALIDATE_DELAY_SECONDS = 2.0

# Real login at window open: 20 x 3s spans about a minute of overload.
LOGIN_ATTEMPTS = 20
LOGIN_DELAY_SECONDS = 3.0

# Clock drift above this is worth a warning before the window opens.
NTP_WARN_SECONDS = 0.5


class SeatSniper:
    """
    Orchestrates one booking run for one set of credentials.

    Each run owns its session; nothing is shared between instances.
    """

    def __init__(
        self,
        seat_map: SeatMap,
        settings: GlobalSettings | None = None,
        session_provider: SessionProvider | None = None,
        api: SeatApiClient | None = None,
        *,
        clock: Clock = local_now,
        sleep: Sleep = asyncio.sleep,
        validate_attempts: int = VALIDATE_ATTEMPTS,
        validate_delay: float = VALIDATE_DELAY_SECONDS,
        login_attempts: int = LOGIN_ATTEMPTS,
        login_delay: float = LOGIN_DELAY_SECONDS,
        on_phase: Callable[[SnipePhase], None] | None = None,
        ntp_check: Callable[[], Awaitable[float | None]] = check_ntp_offset_async,
    ) -> None:
        self.seat_map = seat_map
        self.settings = settings or GlobalSettings()
        self.api = api or SeatApiClient()
        self.session_provider = session_provider or SessionProvider(api=self.api)
        self._clock = clock
        self._sleep = sleep
        self._validate_attempts = validate_attempts
        self._validate_delay = validate_delay
        self._login_attempts = login_attempts
        self._login_delay = login_delay
        self._on_phase = on_phase
        self._ntp_check = ntp_check
        self.phase = SnipePhase.IDLE

    def _enter(self, phase: SnipePhase) -> None:
        self.phase = phase
        logger.debug("Phase -> %s", phase.value)
        if self._on_phase:
            self._on_phase(phase)

    def plan(self, task: DayTask) -> ReleasePlan:
        return plan_release(
            task.run_at_hour,
            task.run_at_minute,
            self.settings.preempt_seconds,
            self.settings.fallback_seconds,
            now=self._clock(),
        )

    async def execute(
        self,
        task: DayTask,
        credentials: UserCredentials,
        stop_event: asyncio.Event | None = None,
    ) -> BookingResult:
        """Run the whole flow. Failures come back as a result, never as an exception."""
        started = time.monotonic()
        plan = self.plan(task)
        begin = booking_start(self._clock(), self.settings.book_days_ahead, task.book_start_hour)
        base = {
            "room": task.name,
            "booking_start": begin,
            "duration_hours": task.duration,
        }

        def _result(status: BookingStatus, **kwargs) -> BookingResult:
            self._enter(SnipePhase.DONE)
            return BookingResult(
                status=status,
                elapsed_seconds=time.monotonic() - started,
                **base,
                **kwargs,
            )

        logger.info(
            "Task for %s: room '%s', %s from %s for %dh, seats %s",
            credentials.school_id, task.name, begin.strftime("%Y-%m-%d"),
            begin.strftime("%H:%M"), task.duration, task.seats,
        )
        logger.info("Attack phase:   %s (primary seat)", plan.attack_window)
        logger.info("Fallback phase: %s (all seats)", plan.fallback_window)

        if not task.seats:
            return _result(BookingStatus.SETUP_FAILED, error="No seats configured")

        # Clock check runs in a thread while credentials are validated
        ntp_task = asyncio.create_task(self._ntp_check())

        # Validate
        self._enter(SnipePhase.VALIDATING)
        logger.info("Validating credentials...")
        try:
            await with_retry(
                lambda: self._guard_credentials(self.session_provider.validate(credentials)),
                self._validate_attempts,
                self._validate_delay,
                sleep=self._sleep,
                label="Credential validation",
            )
        except Exception as e:
            ntp_task.cancel()
            logger.error("Credential validation failed: %s", e)
            return _result(BookingStatus.SETUP_FAILED, error=f"Credential validation failed: {e}")
        logger.info("Credentials are valid.")
        self._report_clock_offset(await ntp_task)

        # Wait for the attack window
        self._enter(SnipePhase.WAITING)
        opened = await wait_until(
            plan.attack_start, clock=self._clock, sleep=self._sleep, stop_event=stop_event
        )
        if not opened:
            return _result(BookingStatus.EXHAUSTED, error="Stopped before window opened")
        if self._clock() > plan.fallback_end:
            logger.warning("Booking window has already passed.")
            return _result(BookingStatus.WINDOW_PASSED, error="Booking window already passed")

        # Login
        self._enter(SnipePhase.LOGGING_IN)
        logger.info("Booking window opened. Logging in...")
        try:
            session = await with_retry(
                lambda: self._guard_credentials(self.session_provider.login(credentials)),
                self._login_attempts,
                self._login_delay,
                sleep=self._sleep,
                label="Login",
            )
        except Exception as e:
            logger.error("Login failed after persistent retries: %s", e)
            return _result(BookingStatus.SETUP_FAILED, error=f"Login failed: {e}")

        try:
            executor = self._executor(session, task, begin)
            win, phase = await self._run_phases(executor, plan, task, stop_event)
        finally:
            await session.aclose()

        if win is None:
            logger.info("All attempts failed within all windows.")
            return _result(
                BookingStatus.EXHAUSTED,
                attempts=executor.requests,
                error="All attempts failed within all windows",
            )

        logger.info(
            "BOOKING SUCCESSFUL for %s in %s phase! Seat '%s' in room '%s' on %s from %s for %dh.",
            credentials.school_id, phase.value, win.seat, task.name,
            begin.strftime("%Y-%m-%d"), begin.strftime("%H:%M"), task.duration,
        )
        return _result(
            BookingStatus.CONFIRMED,
            seat=win.seat,
            seat_id=win.seat_id,
            phase=phase,
            confirmation_id=win.confirmation_id or None,
            attempts=executor.requests,
        )

    async def _run_phases(
        self,
        executor: PhaseExecutor,
        plan: ReleasePlan,
        task: DayTask,
        stop_event: asyncio.Event | None,
    ) -> tuple[PhaseWin | None, SnipePhase]:
        self._enter(SnipePhase.ATTACK)
        win = await executor.run_phase(
            plan.attack_window, [task.primary_seat], name="attack", stop_event=stop_event
        )
        if win is not None:
            return win, SnipePhase.ATTACK
        if stop_event is not None and stop_event.is_set():
            return None, SnipePhase.ATTACK

        if self._clock() > plan.fallback_end:
            logger.warning("Fallback window already elapsed, skipping fallback phase")
            return None, SnipePhase.ATTACK

        self._enter(SnipePhase.FALLBACK)
        win = await executor.run_phase(
            plan.fallback_window, task.seats, name="fallback", stop_event=stop_event
        )
        return win, SnipePhase.FALLBACK

    def _executor(self, session: Session, task: DayTask, begin: datetime) -> PhaseExecutor:
        duration = timedelta(hours=task.duration)

        def _resolve(label: str) -> int:
            return self.seat_map.resolve(task.name, label)

        async def _book(seat_id: int) -> BookResponse:
            return await self.api.book_seat(session, seat_id, begin, duration)

        return PhaseExecutor(
            _resolve,
            _book,
            tick_interval=self.settings.request_interval_ms / 1000,
            clock=self._clock,
            sleep=self._sleep,
        )

    @staticmethod
    def _report_clock_offset(offset: float | None) -> None:
        if offset is None:
            logger.debug("NTP offset unavailable")
        elif abs(offset) > NTP_WARN_SECONDS:
            logger.warning(
                "System clock is off by %.1fs! Consider syncing with NTP.", offset
            )
        else:
            logger.info("NTP offset: %.0fms (OK)", offset * 1000)

    @staticmethod
    async def _guard_credentials(call: Awaitable[T]) -> T:
        """Invalid credentials end the retry loop at once."""
        try:
            return await call
        except InvalidCredentialsError as e:
            raise UnretryableError(e) from e
