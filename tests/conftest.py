"""Shared test fixtures."""

from datetime import datetime, timedelta

import pytest

from seatsnipe.models import BookResponse
from seatsnipe.seatmap import SeatMap


class FakeClock:
    """Deterministic clock: ``sleep`` advances time instead of waiting."""

    def __init__(self, start: datetime) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


SEAT_REPORT = """\
# Room: 二楼东自习室
SeatID: 1201, Title: 001
SeatID: 1202, Title: 002
SeatID: 1203, Title: 003

# Room: 三楼西自习室
SeatID: 2301, Title: A1
"""


def ok_response(booking_id: str = "bk-1") -> BookResponse:
    return BookResponse.model_validate(
        {"CODE": "ok", "MESSAGE": "预约成功", "DATA": {"bookingId": booking_id}}
    )


def rejected_response(message: str = "该座位已被预约") -> BookResponse:
    return BookResponse.model_validate({"CODE": "fail", "MESSAGE": message, "DATA": []})


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 19, 50, 0))


@pytest.fixture
def seat_map():
    return SeatMap.parse(SEAT_REPORT)


@pytest.fixture
def sample_book_response():
    """A realistic bookSeats success response."""
    return {
        "CODE": "ok",
        "MESSAGE": "预约成功",
        "DATA": {"bookingId": "bk-20260304-1201"},
    }


@pytest.fixture
def sample_user_response():
    """A realistic searchSeats response (only DATA matters)."""
    return {
        "CODE": "ok",
        "DATA": {"uid": "u42", "uname": "20051234", "unickname": "张三"},
    }
