"""Seat label → numeric seat id lookup from the seat report file.

File format::

    # Room: 二楼东自习室
    SeatID: 1201, Title: 001
    SeatID: 1202, Title: 002
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from seatsnipe.errors import ConfigError, SeatLookupError

logger = logging.getLogger(__name__)

_ROOM_RE = re.compile(r"^# Room: (.+)$")
_SEAT_RE = re.compile(r"^SeatID: (\d+), Title: (.+)$")


@dataclass(frozen=True)
class SeatInfo:
    seat_id: int
    title: str


class SeatMap:
    """Room name → ordered seats. Lookups are exact matches on the title."""

    def __init__(self, rooms: dict[str, list[SeatInfo]] | None = None) -> None:
        self._rooms: dict[str, list[SeatInfo]] = rooms or {}

    @classmethod
    def parse(cls, text: str) -> SeatMap:
        rooms: dict[str, list[SeatInfo]] = {}
        current: str | None = None
        for line in text.splitlines():
            line = line.rstrip("\r")
            room_match = _ROOM_RE.match(line)
            if room_match:
                current = room_match.group(1).strip()
                rooms.setdefault(current, [])
                continue
            seat_match = _SEAT_RE.match(line)
            if seat_match and current is not None:
                rooms[current].append(
                    SeatInfo(int(seat_match.group(1)), seat_match.group(2).strip())
                )
        return cls(rooms)

    @classmethod
    def load(cls, path: str | Path) -> SeatMap:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Seat map not found: {path}")
        seat_map = cls.parse(path.read_text(encoding="utf-8"))
        logger.info(
            "Seat map loaded: %d rooms, %d seats",
            len(seat_map._rooms), sum(len(s) for s in seat_map._rooms.values()),
        )
        return seat_map

    @property
    def rooms(self) -> list[str]:
        return list(self._rooms)

    def seats(self, room: str) -> list[SeatInfo]:
        if room not in self._rooms:
            raise SeatLookupError(f"room '{room}' not found in seat map")
        return list(self._rooms[room])

    def resolve(self, room: str, title: str) -> int:
        for seat in self.seats(room):
            if seat.title == title:
                return seat.seat_id
        raise SeatLookupError(f"seat '{title}' not found in room '{room}'")
