"""Tests for the seat-site API client."""

import hashlib
from datetime import datetime, timedelta
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from seatsnipe.api import BASE_URL, SeatApiClient, Session, api_token
from seatsnipe.errors import AuthError, MalformedResponseError

HOST = "hdu.huitu.zhishulib.com"
API_TIME = 1772450400


def test_api_token_is_md5_of_time():
    assert api_token("1772450400") == hashlib.md5(b"1772450400").hexdigest()


def test_booking_form():
    client = SeatApiClient()
    begin = datetime(2026, 3, 4, 8, 0).astimezone()
    form = client.build_booking_form("u42", 1201, begin, timedelta(hours=4), "123")

    assert form == {
        "beginTime": str(int(begin.timestamp())),
        "duration": "14400",
        "seats[0]": "1201",
        "seatBookers[0]": "u42",
        "is_recommend": "1",
        "api_time": "123",
    }


@pytest.mark.asyncio
class TestSeatApiClient:
    async def _session(self) -> Session:
        return Session(http=httpx.AsyncClient(), php_sess_id="sess", uid="u42")

    async def test_book_seat_success(self, sample_book_response):
        with respx.mock:
            route = respx.post(host=HOST, path="/Seat/Index/bookSeats").mock(
                return_value=httpx.Response(200, json=sample_book_response)
            )
            session = await self._session()
            client = SeatApiClient(timestamp=lambda: API_TIME)
            begin = datetime(2026, 3, 4, 8, 0).astimezone()

            resp = await client.book_seat(session, 1201, begin, timedelta(hours=4))
            await session.aclose()

        assert resp.accepted
        assert resp.booking_id == "bk-20260304-1201"

        request = route.calls[0].request
        assert request.url.params["LAB_JSON"] == "1"
        assert request.headers["api-token"] == api_token(str(API_TIME))
        assert request.headers["Referer"] == f"{BASE_URL}/"
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        assert form["seats[0]"] == "1201"
        assert form["seatBookers[0]"] == "u42"
        assert form["duration"] == "14400"
        assert form["api_time"] == str(API_TIME)
        assert form["beginTime"] == str(int(begin.timestamp()))

    async def test_book_seat_rejection_is_returned(self):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/bookSeats").mock(
                return_value=httpx.Response(
                    200, json={"CODE": "fail", "MESSAGE": "该座位已被预约", "DATA": []}
                )
            )
            session = await self._session()
            resp = await SeatApiClient().book_seat(
                session, 1201, datetime(2026, 3, 4, 8, 0), timedelta(hours=1)
            )
            await session.aclose()

        assert not resp.accepted
        assert resp.message == "该座位已被预约"

    async def test_html_error_page(self):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/bookSeats").mock(
                return_value=httpx.Response(502, text="<html><body>502 Bad Gateway</body></html>")
            )
            session = await self._session()
            with pytest.raises(MalformedResponseError, match="HTML"):
                await SeatApiClient().book_seat(
                    session, 1201, datetime(2026, 3, 4, 8, 0), timedelta(hours=1)
                )
            await session.aclose()

    async def test_broken_json(self):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/bookSeats").mock(
                return_value=httpx.Response(200, text='{"CODE": "ok", ')
            )
            session = await self._session()
            with pytest.raises(MalformedResponseError, match="decode"):
                await SeatApiClient().book_seat(
                    session, 1201, datetime(2026, 3, 4, 8, 0), timedelta(hours=1)
                )
            await session.aclose()

    async def test_transport_error_propagates(self):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/bookSeats").mock(
                side_effect=httpx.ConnectError("refused")
            )
            session = await self._session()
            with pytest.raises(httpx.ConnectError):
                await SeatApiClient().book_seat(
                    session, 1201, datetime(2026, 3, 4, 8, 0), timedelta(hours=1)
                )
            await session.aclose()

    async def test_fetch_profile(self, sample_user_response):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/searchSeats").mock(
                return_value=httpx.Response(200, json=sample_user_response)
            )
            session = await self._session()
            profile = await SeatApiClient().fetch_profile(session)
            await session.aclose()

        assert profile.uid == "u42"
        assert profile.unickname == "张三"

    async def test_fetch_profile_without_uid(self):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/searchSeats").mock(
                return_value=httpx.Response(200, json={"DATA": {"uid": ""}})
            )
            session = await self._session()
            with pytest.raises(AuthError, match="uid not found"):
                await SeatApiClient().fetch_profile(session)
            await session.aclose()

    async def test_null_message_decodes_as_rejection(self):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/bookSeats").mock(
                return_value=httpx.Response(200, json={"CODE": "fail", "MESSAGE": None})
            )
            session = await self._session()
            resp = await SeatApiClient().book_seat(
                session, 1201, datetime(2026, 3, 4, 8, 0), timedelta(hours=1)
            )
            await session.aclose()

        assert not resp.accepted
        assert resp.message == ""

    async def test_unexpected_shape_is_malformed(self):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/bookSeats").mock(
                return_value=httpx.Response(200, json={"CODE": "fail", "MESSAGE": {"zh": "x"}})
            )
            session = await self._session()
            with pytest.raises(MalformedResponseError, match="response shape"):
                await SeatApiClient().book_seat(
                    session, 1201, datetime(2026, 3, 4, 8, 0), timedelta(hours=1)
                )
            await session.aclose()

    async def test_fetch_profile_numeric_uid(self):
        with respx.mock:
            respx.post(host=HOST, path="/Seat/Index/searchSeats").mock(
                return_value=httpx.Response(200, json={"DATA": {"uid": 4242}})
            )
            session = await self._session()
            profile = await SeatApiClient().fetch_profile(session)
            await session.aclose()

        assert profile.uid == "4242"
