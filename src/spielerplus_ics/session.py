"""Authenticated HTTP session against the SpielerPlus website.

A :class:`SpielerPlusSession` wraps a :class:`requests.Session` whose cookie
jar is the session's cookie store. The classifier borrows the session for
each event page it fetches and hands newly issued cookies back through
:meth:`SpielerPlusSession.merge_cookies`.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Iterable

import requests
from bs4 import BeautifulSoup

from .exceptions import AuthError

logger = logging.getLogger(__name__)

BASE_URL = "https://www.spielerplus.de"
"""Origin of the SpielerPlus website."""

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

LOGIN_EMAIL_FIELD = "LoginForm[email]"
LOGIN_PASSWORD_FIELD = "LoginForm[password]"


@dataclass
class PageResponse:
    """The parts of a fetched page the classifier looks at.

    :param final_url: URL after all HTTP redirects were followed.
    :param status: HTTP status code of the final response.
    :param body: Decoded response body.
    :param set_cookie_headers: Raw ``Set-Cookie`` values from every hop.
    """

    final_url: str
    status: int
    body: str
    set_cookie_headers: list[str] = field(default_factory=list)


def _set_cookie_headers(response: requests.Response) -> list[str]:
    """Return every ``Set-Cookie`` header of *response* as a separate string."""
    raw_headers = getattr(response.raw, "headers", None)
    if raw_headers is not None and hasattr(raw_headers, "getlist"):
        return list(raw_headers.getlist("Set-Cookie"))
    header = response.headers.get("Set-Cookie")
    return [header] if header else []


def _digest(username: str, password: str) -> bytes:
    return hashlib.sha256(f"{username}\x00{password}".encode("utf-8")).digest()


class SpielerPlusSession:
    """A logged-in browser-like session on the SpielerPlus website.

    :param base_url: Site origin, used for the login form.
    :param timeout: Timeout in seconds for the login requests.
    :param user_agent: ``User-Agent`` sent with every request.
    """

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        user_agent: str = USER_AGENT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = requests.Session()
        self._http.headers["User-Agent"] = user_agent
        self._credentials_digest: bytes | None = None

    @property
    def login_url(self) -> str:
        return f"{self.base_url}/site/login"

    @property
    def cookies(self) -> dict[str, str]:
        """Snapshot of the cookie store as ``name -> value``."""
        return self._http.cookies.get_dict()

    def is_authenticated_as(self, username: str, password: str) -> bool:
        """Return ``True`` if this session already logged in with these credentials."""
        if self._credentials_digest is None:
            return False
        return hmac.compare_digest(self._credentials_digest, _digest(username, password))

    def login(self, username: str, password: str) -> None:
        """Log in through the website's login form.

        Does nothing if the session is already logged in with the same
        credentials.

        :raises AuthError: If the CSRF token is missing, the form is
            rejected, or no session cookie is issued.
        """
        if self.is_authenticated_as(username, password):
            logger.debug("Reusing authenticated session")
            return

        self._credentials_digest = None
        try:
            page = self._http.get(self.login_url, timeout=self.timeout)
            page.raise_for_status()
        except requests.RequestException as e:
            raise AuthError(f"Could not load login page: {e}") from e

        soup = BeautifulSoup(page.text, "html.parser")
        csrf_input = soup.find("input", attrs={"name": "_csrf"})
        csrf_token = csrf_input.get("value") if csrf_input else None
        if not csrf_token:
            raise AuthError("Could not find CSRF token on login page")

        form = {
            LOGIN_EMAIL_FIELD: username,
            LOGIN_PASSWORD_FIELD: password,
            "_csrf": csrf_token,
        }
        try:
            response = self._http.post(
                self.login_url,
                data=form,
                allow_redirects=False,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"Login request failed: {e}") from e

        if response.status_code not in (200, 302):
            raise AuthError(f"Login rejected with HTTP {response.status_code}")
        if response.status_code == 200 and LOGIN_PASSWORD_FIELD in response.text:
            raise AuthError("Invalid username or password")

        issued = _set_cookie_headers(response)
        if not issued:
            raise AuthError("Login did not issue a session cookie")
        self.merge_cookies(issued)

        self._credentials_digest = _digest(username, password)
        logger.info("Logged into SpielerPlus")

    def get(
        self,
        url: str,
        max_redirects: int = 5,
        timeout: float = 30.0,
    ) -> PageResponse:
        """Fetch *url* with the session's cookies, following HTTP redirects.

        :raises requests.RequestException: On transport errors, timeouts and
            when more than *max_redirects* redirects are needed.
        """
        self._http.max_redirects = max_redirects
        response = self._http.get(url, timeout=timeout, allow_redirects=True)
        set_cookies = [
            header
            for hop in (*response.history, response)
            for header in _set_cookie_headers(hop)
        ]
        return PageResponse(
            final_url=response.url,
            status=response.status_code,
            body=response.text,
            set_cookie_headers=set_cookies,
        )

    def merge_cookies(self, set_cookie_headers: Iterable[str]) -> None:
        """Merge raw ``Set-Cookie`` values into the cookie store.

        A cookie replaces any stored cookie of the same name; new names are
        appended. When a name repeats, the last value wins.
        """
        for header in set_cookie_headers:
            pair = header.split(";", 1)[0]
            name, sep, value = pair.partition("=")
            name = name.strip()
            if not sep or not name:
                continue
            # set() drops every stored cookie with this name first
            self._http.cookies.set(name, value.strip())

    def close(self) -> None:
        self._http.close()


def authenticate(
    username: str,
    password: str,
    base_url: str = BASE_URL,
    timeout: float = 30.0,
) -> SpielerPlusSession:
    """Log in and return a fresh :class:`SpielerPlusSession`.

    :raises AuthError: If logging in fails.
    """
    session = SpielerPlusSession(base_url=base_url, timeout=timeout)
    session.login(username, password)
    return session
