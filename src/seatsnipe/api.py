"""Async client for the library seat-booking site.

All requests go through the session's own ``httpx.AsyncClient`` so the
cookies set during SSO login (PHPSESSID) travel with them. The client itself
holds no session state and can be shared between runs.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, TypeVar

import httpx
import orjson
from pydantic import BaseModel, ValidationError

from seatsnipe.errors import AuthError, MalformedResponseError
from seatsnipe.models import BookResponse, UserProfile

logger = logging.getLogger(__name__)

BASE_URL = "https://hdu.huitu.zhishulib.com"
USER_INFO_PATH = "/Seat/Index/searchSeats?LAB_JSON=1"
BOOK_PATH = "/Seat/Index/bookSeats?LAB_JSON=1"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36 Edg/142.0.0.0"
)
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded;charset=UTF-8"

_PREVIEW_CHARS = 100

M = TypeVar("M", bound=BaseModel)


def api_token(api_time: str) -> str:
    """Value of the ``api-token`` header: md5 hex digest of ``api_time``."""
    return hashlib.md5(api_time.encode()).hexdigest()


@dataclass
class Session:
    """Authenticated handle owned by exactly one run."""

    http: httpx.AsyncClient
    php_sess_id: str
    uid: str = ""

    async def aclose(self) -> None:
        await self.http.aclose()


def _decode(content: bytes, what: str) -> dict:
    """Parse a JSON body, rejecting HTML error pages (502/503/WAF)."""
    if content[:1] == b"<":
        preview = content[:_PREVIEW_CHARS].decode(errors="replace")
        if len(content) > _PREVIEW_CHARS:
            preview += "..."
        raise MalformedResponseError(f"server returned HTML (likely error page): {preview}")
    try:
        data = orjson.loads(content)
    except orjson.JSONDecodeError as e:
        raise MalformedResponseError(
            f"failed to decode {what} response: {e} | Body: {content[:_PREVIEW_CHARS]!r}"
        ) from e
    if not isinstance(data, dict):
        raise MalformedResponseError(f"{what} response is not a JSON object")
    return data


def _parse(model: type[M], data: dict, what: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(f"unexpected {what} response shape: {e}") from e


class SeatApiClient:
    """
    Issues requests to the seat site on behalf of a ``Session``.

        client = SeatApiClient()
        profile = await client.fetch_profile(session)
        resp = await client.book_seat(session, 1201, begin, timedelta(hours=4))
    """

    def __init__(
        self,
        base_url: str = BASE_URL,
        timestamp: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timestamp = timestamp

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {
            "Content-Type": FORM_CONTENT_TYPE,
            "Accept": "application/json, text/plain, */*",
            "User-Agent": USER_AGENT,
            "Referer": f"{self.base_url}/",
        }
        headers.update(extra)
        return headers

    async def fetch_profile(self, session: Session) -> UserProfile:
        """POST searchSeats; the logged-in user's uid lives under DATA."""
        resp = await session.http.post(
            self.base_url + USER_INFO_PATH, headers=self._headers()
        )
        data = _decode(resp.content, "user info")
        profile = data.get("DATA")
        if not isinstance(profile, dict) or not profile.get("uid"):
            raise AuthError("user uid not found in response")
        return _parse(UserProfile, profile, "user info")

    def build_booking_form(
        self, uid: str, seat_id: int, begin_time: datetime, duration: timedelta, api_time: str
    ) -> dict[str, str]:
        return {
            "beginTime": str(int(begin_time.timestamp())),
            "duration": str(int(duration.total_seconds())),
            "seats[0]": str(seat_id),
            "seatBookers[0]": uid,
            "is_recommend": "1",
            "api_time": api_time,
        }

    async def book_seat(
        self,
        session: Session,
        seat_id: int,
        begin_time: datetime,
        duration: timedelta,
    ) -> BookResponse:
        """
        POST bookSeats for one seat.

        Raises ``httpx.TransportError`` on network trouble and
        ``MalformedResponseError`` when the body is not the expected JSON.
        A rejection by the server is a normal return with ``accepted=False``.
        """
        api_time = str(int(self._timestamp()))
        form = self.build_booking_form(session.uid, seat_id, begin_time, duration, api_time)
        resp = await session.http.post(
            self.base_url + BOOK_PATH,
            data=form,
            headers=self._headers(**{"api-token": api_token(api_time)}),
        )
        data = _decode(resp.content, "book")
        return _parse(BookResponse, data, "book")
