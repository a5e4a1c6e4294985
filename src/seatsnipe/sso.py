"""CAS single sign-on login producing a per-run ``Session``.

Every login builds (or is handed) its own ``httpx.AsyncClient``; the cookie
jar of that client is what carries the seat-site session, so concurrent runs
never share cookies.
"""

from __future__ import annotations

import base64
import logging
import re
from urllib.parse import urlparse

import httpx
from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, modes

from seatsnipe.api import BASE_URL, USER_AGENT, SeatApiClient, Session
from seatsnipe.errors import AuthError, InvalidCredentialsError
from seatsnipe.models import UserCredentials

logger = logging.getLogger(__name__)

LOGIN_URL = (
    "https://sso.hdu.edu.cn/login?service=https:%2F%2Fhdu.huitu.zhishulib.com"
    "%2FUser%2FIndex%2FhduCASLogin%3Fforward%3D%252FSpace%252FCategory%252Fredirect"
    "%253Fcategory_id%253D591"
)
SESSION_COOKIE = "PHPSESSID"

_CROYPTO_RE = re.compile(r'id="login-croypto"[^>]*>\s*([^<\s]+)\s*<')
_FLOWKEY_RE = re.compile(r'id="login-page-flowkey"[^>]*>\s*([^<\s]+)\s*<')
_ERROR_RE = re.compile(r'id="login-error-msg"[^>]*>\s*(?:<[^>]+>\s*)*([^<]+?)\s*<')


def encrypt_password(password: str, croypto: str) -> str:
    """DES/ECB/PKCS7 encrypt with the base64 key the login page hands out."""
    key = base64.b64decode(croypto)
    padder = padding.PKCS7(64).padder()
    padded = padder.update(password.encode()) + padder.finalize()
    encryptor = Cipher(TripleDES(key), modes.ECB()).encryptor()
    return base64.b64encode(encryptor.update(padded) + encryptor.finalize()).decode()


def parse_login_page(html: str) -> tuple[str, str]:
    """Return (croypto, flowkey) from the SSO login form."""
    croypto = _CROYPTO_RE.search(html)
    flowkey = _FLOWKEY_RE.search(html)
    if not croypto or not flowkey:
        raise AuthError("SSO login page missing croypto/flowkey (layout changed?)")
    return croypto.group(1), flowkey.group(1)


def _login_error(html: str) -> str | None:
    m = _ERROR_RE.search(html)
    return m.group(1).strip() if m and m.group(1).strip() else None


class SessionProvider:
    """Performs the SSO exchange and returns an authenticated ``Session``."""

    def __init__(
        self,
        login_url: str = LOGIN_URL,
        api: SeatApiClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.login_url = login_url
        self.api = api or SeatApiClient()
        self.timeout = timeout
        self._login_host = urlparse(login_url).hostname or ""
        self._seat_host = urlparse(self.api.base_url or BASE_URL).hostname or ""

    def new_http_client(self) -> httpx.AsyncClient:
        """Fresh client with its own cookie jar."""
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(self.timeout, connect=5.0),
            headers={"User-Agent": USER_AGENT},
        )

    async def login(
        self, credentials: UserCredentials, http: httpx.AsyncClient | None = None
    ) -> Session:
        """
        Log in through SSO and fetch the user's uid.

        ``http`` lets the caller supply the client whose cookie jar should
        receive the session; otherwise a new one is created and owned by the
        returned ``Session``.

        Raises ``InvalidCredentialsError`` when the SSO answers with its login
        form again, ``AuthError`` or ``httpx.HTTPError`` otherwise.
        """
        owned = http is None
        client = http or self.new_http_client()
        try:
            php_sess_id = await self._cas_exchange(client, credentials)
            session = Session(http=client, php_sess_id=php_sess_id)
            profile = await self.api.fetch_profile(session)
            session.uid = profile.uid
        except BaseException:
            if owned:
                await client.aclose()
            raise
        logger.info("Logged in as %s (uid=%s)", credentials.school_id, session.uid)
        return session

    async def validate(self, credentials: UserCredentials) -> None:
        """Login and discard the session; confirms the credentials work."""
        session = await self.login(credentials)
        await session.aclose()

    async def _cas_exchange(
        self, client: httpx.AsyncClient, credentials: UserCredentials
    ) -> str:
        page = await client.get(self.login_url)
        if page.status_code >= 500:
            raise AuthError(f"SSO service unavailable (HTTP {page.status_code})")
        croypto, flowkey = parse_login_page(page.text)

        resp = await client.post(
            self.login_url,
            data={
                "username": credentials.school_id,
                "type": "UsernamePassword",
                "_eventId": "submit",
                "geolocation": "",
                "execution": flowkey,
                "captcha_code": "",
                "croypto": croypto,
                "password": encrypt_password(
                    credentials.password.get_secret_value(), croypto
                ),
            },
        )
        if resp.status_code >= 500:
            raise AuthError(f"SSO service unavailable (HTTP {resp.status_code})")

        php_sess_id = self._session_cookie(client)
        if php_sess_id:
            return php_sess_id

        if resp.url.host == self._login_host:
            reason = _login_error(resp.text) or "login form returned again"
            raise InvalidCredentialsError(f"SSO rejected credentials: {reason}")
        raise AuthError(f"{SESSION_COOKIE} not found after login")

    def _session_cookie(self, client: httpx.AsyncClient) -> str | None:
        for cookie in client.cookies.jar:
            domain = cookie.domain.lstrip(".")
            if cookie.name == SESSION_COOKIE and self._seat_host.endswith(domain):
                return cookie.value
        return None
