"""Release-window planning and timed waits.

The release instant is announced (e.g. 20:00 every day). We start firing
``preempt_seconds`` before it (attack window, primary seat only) and keep
going for a short grace period afterwards (fallback window, every seat).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# Grace period after the release instant during which all seats are tried.
# Older deployments used two minutes.
FALLBACK_WINDOW_SECONDS = 15.0

# Longest single sleep while waiting for a window, so a stop request is seen.
WAIT_CHUNK_SECONDS = 1.0

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"window start {self.start} is after end {self.end}")

    def contains(self, t: datetime) -> bool:
        return self.start <= t <= self.end

    def __str__(self) -> str:
        return f"{self.start:%H:%M:%S} -> {self.end:%H:%M:%S}"


@dataclass(frozen=True)
class ReleasePlan:
    attack_start: datetime
    release: datetime
    fallback_end: datetime

    def __post_init__(self) -> None:
        if not (self.attack_start <= self.release <= self.fallback_end):
            raise ValueError("release plan instants out of order")

    @property
    def attack_window(self) -> TimeWindow:
        return TimeWindow(self.attack_start, self.release)

    @property
    def fallback_window(self) -> TimeWindow:
        return TimeWindow(self.release, self.fallback_end)


def plan_release(
    release_hour: int,
    release_minute: int,
    preempt_lead_seconds: float,
    fallback_seconds: float = FALLBACK_WINDOW_SECONDS,
    now: datetime | None = None,
) -> ReleasePlan:
    """
    Compute the attack start, release instant and fallback end for today.

    Example: release 20:00, lead 15s, fallback 15s
    → attack 19:59:45-20:00:00, fallback 20:00:00-20:00:15

    Inputs are assumed valid (config validation happens upstream).
    """
    now = now or local_now()
    release = now.replace(
        hour=release_hour, minute=release_minute, second=0, microsecond=0
    )
    return ReleasePlan(
        attack_start=release - timedelta(seconds=preempt_lead_seconds),
        release=release,
        fallback_end=release + timedelta(seconds=fallback_seconds),
    )


def booking_start(now: datetime, days_ahead: int, start_hour: int) -> datetime:
    """Begin instant of the reservation itself: ``days_ahead`` days out at ``start_hour``:00."""
    day = now + timedelta(days=days_ahead)
    return day.replace(hour=start_hour, minute=0, second=0, microsecond=0)


async def wait_until(
    target: datetime,
    *,
    clock: Clock = local_now,
    sleep: Sleep = asyncio.sleep,
    stop_event: asyncio.Event | None = None,
) -> bool:
    """Sleep until ``target``. Returns False if ``stop_event`` was set first."""
    total_wait = (target - clock()).total_seconds()
    if total_wait <= 0:
        logger.info("Target time already passed (%.1fs ago)", -total_wait)
        return True

    logger.info("Waiting %.1fs until %s", total_wait, target.isoformat())
    while True:
        if stop_event is not None and stop_event.is_set():
            return False
        remaining = (target - clock()).total_seconds()
        if remaining <= 0:
            return True
        await sleep(min(remaining, WAIT_CHUNK_SECONDS))


def check_ntp_offset(server: str = "pool.ntp.org") -> float | None:
    """System clock offset against NTP in seconds, or None when unreachable.

    Blocking: use check_ntp_offset_async() inside the event loop.
    """
    try:
        import ntplib

        resp = ntplib.NTPClient().request(server, version=3, timeout=3)
        return resp.offset
    except Exception as e:
        logger.debug("NTP check failed: %s", e)
        return None


async def check_ntp_offset_async(server: str = "pool.ntp.org") -> float | None:
    """Non-blocking NTP check, run in a worker thread."""
    return await asyncio.to_thread(check_ntp_offset, server)
