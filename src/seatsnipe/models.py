"""Pydantic models for configuration, wire responses and run results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)

from seatsnipe.scheduler import FALLBACK_WINDOW_SECONDS

# Reading room opening hours: reservations must sit inside [7, 22].
OPENING_HOUR = 7
CLOSING_HOUR = 22


# --- Credential / Config Models ---


class UserCredentials(BaseModel):
    """SSO credentials. Loaded from user_info.yml or the OS keyring."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    school_id: str
    password: SecretStr

    @field_validator("password", mode="before")
    @classmethod
    def _numeric_password(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class DayTask(BaseModel):
    """One weekday's booking task with a prioritized seat list.

    Unquoted numeric seat labels are read as strings, but YAML has already
    dropped leading zeros by then: write labels like ``"001"`` in quotes.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    enable: bool = Field(default=False, validation_alias=AliasChoices("enable", "启用"))
    run_at_hour: int = Field(ge=0, le=23)
    run_at_minute: int = Field(ge=0, le=59)
    name: str
    seats: list[str] = []
    book_start_hour: int = Field(ge=OPENING_HOUR, le=CLOSING_HOUR)
    duration: int = Field(ge=1)

    @model_validator(mode="after")
    def _check_closing_hour(self) -> DayTask:
        end = self.book_start_hour + self.duration
        if end > CLOSING_HOUR:
            raise ValueError(
                f"book_start_hour + duration ({end}) must not exceed {CLOSING_HOUR}"
            )
        return self

    @property
    def primary_seat(self) -> str:
        return self.seats[0]


class GlobalSettings(BaseModel):
    """Settings shared by every weekday task."""

    preempt_seconds: int = Field(default=15, ge=0)
    fallback_seconds: float = Field(default=FALLBACK_WINDOW_SECONDS, gt=0)
    request_interval_ms: int = Field(default=500, ge=50)
    book_days_ahead: int = Field(default=2, ge=0)


class SeatConfig(BaseModel):
    """Loaded from user_config.yml."""

    model_config = ConfigDict(populate_by_name=True)

    settings: GlobalSettings = Field(
        default_factory=GlobalSettings,
        validation_alias=AliasChoices("global", "settings"),
    )
    week_config: dict[str, DayTask] = {}


# --- API Response Models ---


class UserProfile(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    uid: str
    uname: str = ""
    unickname: str = ""


class BookResponse(BaseModel):
    """Booking endpoint answer.

    ``CODE`` has been seen both as the string ``"ok"`` and as other JSON
    types across site revisions, so it is normalized into ``accepted`` at
    decode time and nothing downstream looks at the raw value.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    code: Any = Field(default=None, alias="CODE")
    message: str = Field(default="", alias="MESSAGE")
    data: Any = Field(default=None, alias="DATA")
    accepted: bool = False

    @field_validator("message", mode="before")
    @classmethod
    def _null_message(cls, v: Any) -> Any:
        return "" if v is None else v

    @model_validator(mode="after")
    def _normalize_code(self) -> BookResponse:
        self.accepted = _code_accepted(self.code)
        return self

    @property
    def booking_id(self) -> str:
        if isinstance(self.data, dict):
            return str(self.data.get("bookingId") or "")
        return ""


def _code_accepted(code: Any) -> bool:
    if isinstance(code, bool):
        return code
    if isinstance(code, str):
        return code.strip().lower() == "ok"
    return False


# --- Run Result ---


class SnipePhase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    WAITING = "waiting"
    LOGGING_IN = "logging_in"
    ATTACK = "attack"
    FALLBACK = "fallback"
    DONE = "done"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    EXHAUSTED = "exhausted"
    SETUP_FAILED = "setup_failed"
    WINDOW_PASSED = "window_passed"


class BookingResult(BaseModel):
    status: BookingStatus
    room: str = ""
    seat: str | None = None
    seat_id: int | None = None
    phase: SnipePhase | None = None
    confirmation_id: str | None = None
    booking_start: datetime | None = None
    duration_hours: int = 0
    attempts: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status is BookingStatus.CONFIRMED
