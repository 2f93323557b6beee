"""Infers the user's attendance status from an event detail page.

The detail page has no stable API, so the status is read from the rendered
HTML. Two paths exist:

* **Participation widget**: the page shows one ``.participation-button``
  per choice (confirm, uncertain, decline). The button carrying the
  ``selected`` class is the user's answer; if every button is disabled and
  none is selected, the user is not nominated. Widget state is trusted over
  anything else on the page.
* **Text fallback**: without any buttons, the visible text and inline
  scripts are searched for German status keywords.

Fetching is wrapped around the pure :func:`parse_attendance` so that the
heuristics can be tested against static HTML. Network and parse problems
never escape :meth:`AttendanceClassifier.classify`; they become an
:class:`~spielerplus_ics.models.AttendanceResult` instead.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol
from urllib.parse import parse_qs, urljoin, urlparse

import requests
from bs4 import BeautifulSoup, Comment, Tag
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .models import AttendanceResult, AttendanceStatus
from .session import BASE_URL, LOGIN_EMAIL_FIELD, LOGIN_PASSWORD_FIELD, PageResponse

logger = logging.getLogger(__name__)

INTERSTITIAL_PATH = "/site/login-by-team"
PARTICIPATION_SELECTOR = ".participation-button"
NOT_NOMINATED_MARKER = "Nicht nominiert"

DECLINE_LABELS = ("abgesagt", "absage", "nicht teilnehmen", "abwesend", "declined")
UNCERTAIN_LABELS = ("unsicher", "vielleicht", "uncertain")
CONFIRM_LABELS = ("zugesagt", "zusage", "teilnehmen", "confirmed")

DECLINE_KEYWORDS = ("abgesagt", "absage", "nicht teilnehmen", "abwesend")
CONFIRM_KEYWORDS = ("zugesagt", "teilnehmen")
UNCERTAIN_KEYWORDS = ("unsicher", "vielleicht")

_SCRIPT_DECLINE = re.compile(
    r"(?:user|participation|status)[^;{}]{0,80}?"
    r"(?:declined|absent|abgesagt|not_attending)",
    re.IGNORECASE,
)
_SCRIPT_CONFIRM = re.compile(
    r"(?:user|participation|status)[^;{}]{0,80}?"
    r"(?:confirmed|accepted|zugesagt|attending)",
    re.IGNORECASE,
)
_META_REFRESH_URL = re.compile(r"url\s*=\s*['\"]?([^'\";]+)", re.IGNORECASE)
_SCRIPT_LOCATION = re.compile(
    r"location(?:\.href)?\s*=\s*['\"]([^'\"]+)['\"]"
    r"|location\.(?:replace|assign)\(\s*['\"]([^'\"]+)['\"]\s*\)"
)

_RESULTS = {status: AttendanceResult.from_status(status) for status in AttendanceStatus}


def _result(status: AttendanceStatus) -> AttendanceResult:
    return _RESULTS[status]


@dataclass(frozen=True)
class RetryPolicy:
    """Timing and retry limits for classification and pacing.

    :param max_redirects: HTTP redirects followed per fetch.
    :param timeout: Per-request timeout in seconds.
    :param fetch_attempts: Attempts per fetch on timeouts and connection errors.
    :param fetch_delay: Pause between those attempts.
    :param render_retries: Extra fetches while the page is an empty shell.
    :param render_delay: Pause before each of those fetches.
    :param redirect_delay: Pause before following the login-by-team page.
    :param pacing_delay: Pause between two classified events.
    :param sleep: Called with the number of seconds to pause.
    """

    max_redirects: int = 5
    timeout: float = 30.0
    fetch_attempts: int = 2
    fetch_delay: float = 1.0
    render_retries: int = 3
    render_delay: float = 1.0
    redirect_delay: float = 2.0
    pacing_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    @classmethod
    def immediate(cls, **overrides) -> RetryPolicy:
        """A policy with every delay set to zero."""
        values = {
            "fetch_delay": 0.0,
            "render_delay": 0.0,
            "redirect_delay": 0.0,
            "pacing_delay": 0.0,
        }
        values.update(overrides)
        return cls(**values)

    def pause(self, seconds: float) -> None:
        if seconds > 0:
            self.sleep(seconds)


class PageSession(Protocol):
    """What the classifier needs from a session."""

    def get(self, url: str, max_redirects: int = ..., timeout: float = ...) -> PageResponse: ...

    def merge_cookies(self, set_cookie_headers: list[str]) -> None: ...


def page_text(soup: BeautifulSoup) -> str:
    """Return the visible text of *soup*, ignoring scripts, styles and comments."""
    root = soup.body or soup
    parts = []
    for string in root.find_all(string=True):
        if isinstance(string, Comment):
            continue
        if string.parent is not None and string.parent.name in ("script", "style", "template"):
            continue
        text = string.strip()
        if text:
            parts.append(text)
    return " ".join(parts)


def _control_label(control: Tag) -> str:
    for attr in ("title", "data-original-title", "aria-label"):
        value = control.get(attr)
        if value:
            return str(value).strip().casefold()
    return control.get_text(" ", strip=True).casefold()


def _has_class(control: Tag, name: str) -> bool:
    return name in (control.get("class") or [])


def _is_disabled(control: Tag) -> bool:
    return control.has_attr("disabled") or _has_class(control, "disabled")


def _is_selected(control: Tag) -> bool:
    return _has_class(control, "selected")


def _status_from_label(label: str) -> AttendanceStatus:
    # Decline labels first: "nicht teilnehmen" also contains "teilnehmen".
    if any(word in label for word in DECLINE_LABELS):
        return AttendanceStatus.NOT_ATTENDING
    if any(word in label for word in UNCERTAIN_LABELS):
        return AttendanceStatus.MAYBE
    if any(word in label for word in CONFIRM_LABELS):
        return AttendanceStatus.ATTENDING
    return AttendanceStatus.NO_RESPONSE


def _classify_widget(controls: list[Tag]) -> AttendanceStatus:
    selected = [c for c in controls if _is_selected(c)]
    if not selected:
        if all(_is_disabled(c) for c in controls):
            return AttendanceStatus.NOT_NOMINATED
        return AttendanceStatus.NO_RESPONSE
    return _status_from_label(_control_label(selected[0]))


def _classify_scripts(soup: BeautifulSoup) -> AttendanceStatus | None:
    for script in soup.find_all("script"):
        payload = script.string or ""
        if "participation" not in payload.casefold():
            continue
        if _SCRIPT_DECLINE.search(payload):
            return AttendanceStatus.NOT_ATTENDING
        if _SCRIPT_CONFIRM.search(payload):
            return AttendanceStatus.ATTENDING
    return None


def _classify_text(soup: BeautifulSoup, text: str) -> AttendanceStatus:
    lowered = text.casefold()
    if any(word in lowered for word in DECLINE_KEYWORDS):
        return AttendanceStatus.NOT_ATTENDING
    from_scripts = _classify_scripts(soup)
    if from_scripts is not None:
        return from_scripts
    if any(word in lowered for word in CONFIRM_KEYWORDS):
        return AttendanceStatus.ATTENDING
    if any(word in lowered for word in UNCERTAIN_KEYWORDS):
        return AttendanceStatus.MAYBE
    # No evidence of participation at all.
    return AttendanceStatus.NOT_NOMINATED


def parse_attendance(soup: BeautifulSoup, text: str | None = None) -> AttendanceResult:
    """Classify an already fetched and parsed event detail page.

    :param soup: The parsed page.
    :param text: Visible page text; computed with :func:`page_text` if omitted.
    :returns: The inferred :class:`AttendanceResult`.
    """
    if text is None:
        text = page_text(soup)

    # The marker usually sits inside a ".deactivated" block; any occurrence counts.
    if NOT_NOMINATED_MARKER in text:
        return _result(AttendanceStatus.NOT_NOMINATED)

    controls = soup.select(PARTICIPATION_SELECTOR)
    if controls:
        return _result(_classify_widget(controls))

    return _result(_classify_text(soup, text))


def is_rendered(soup: BeautifulSoup) -> bool:
    """Return ``True`` once the page has a title or a participation control."""
    for tag_name in ("title", "h1"):
        tag = soup.find(tag_name)
        if tag is not None and tag.get_text(strip=True):
            return True
    return bool(soup.select(PARTICIPATION_SELECTOR))


def is_login_form(body: str) -> bool:
    return LOGIN_EMAIL_FIELD in body and LOGIN_PASSWORD_FIELD in body


def find_redirect_target(soup: BeautifulSoup, page_url: str) -> str | None:
    """Find where the login-by-team page sends the browser next.

    Looks at the meta refresh tag, then at script location assignments,
    then at the ``redirect`` query parameter of *page_url*.
    """
    meta = soup.find("meta", attrs={"http-equiv": re.compile("^refresh$", re.IGNORECASE)})
    if meta is not None:
        m = _META_REFRESH_URL.search(meta.get("content", ""))
        if m:
            return m.group(1).strip()

    for script in soup.find_all("script"):
        m = _SCRIPT_LOCATION.search(script.string or "")
        if m:
            return m.group(1) or m.group(2)

    redirect = parse_qs(urlparse(page_url).query).get("redirect")
    if redirect and redirect[0]:
        return redirect[0]
    return None


class AttendanceClassifier:
    """Fetches event detail pages and classifies them.

    :param policy: Retry limits and delays; see :class:`RetryPolicy`.
    :param base_url: Origin that relative redirect targets are joined to.
    """

    def __init__(self, policy: RetryPolicy | None = None, base_url: str = BASE_URL) -> None:
        self.policy = policy or RetryPolicy()
        self.base_url = base_url

    def _fetch(self, session: PageSession, url: str) -> PageResponse:
        """Fetch *url*, retrying timeouts and connection errors.

        :raises requests.RequestException: When every attempt failed.
        """
        retrying = Retrying(
            stop=stop_after_attempt(max(1, self.policy.fetch_attempts)),
            wait=wait_fixed(self.policy.fetch_delay),
            retry=retry_if_exception_type((requests.Timeout, requests.ConnectionError)),
            sleep=self.policy.pause,
            reraise=True,
        )
        return retrying(
            session.get,
            url,
            max_redirects=self.policy.max_redirects,
            timeout=self.policy.timeout,
        )

    def _follow_interstitial(
        self, session: PageSession, page: PageResponse
    ) -> PageResponse | None:
        """Pass the login-by-team page, returning the real page or ``None``."""
        if page.set_cookie_headers:
            session.merge_cookies(page.set_cookie_headers)

        soup = BeautifulSoup(page.body, "html.parser")
        target = find_redirect_target(soup, page.final_url)
        if not target:
            logger.warning("No redirect target on login-by-team page")
            return None

        target_url = urljoin(self.base_url, target)
        self.policy.pause(self.policy.redirect_delay)
        try:
            followed = self._fetch(session, target_url)
        except requests.RequestException as e:
            logger.warning(f"Following login-by-team redirect failed: {e}")
            return None
        if followed.status >= 400:
            logger.warning(f"Login-by-team redirect returned HTTP {followed.status}")
            return None
        if INTERSTITIAL_PATH in followed.final_url:
            logger.warning("Still on login-by-team page after redirect")
            return None
        return followed

    def _rejected(self, page: PageResponse) -> AttendanceResult | None:
        """Return the result for a page that cannot be classified, else ``None``."""
        if page.status >= 400:
            logger.warning(f"Event page returned HTTP {page.status}")
            return _result(AttendanceStatus.NO_RESPONSE)
        if is_login_form(page.body):
            logger.warning("Event page redirected to the login form")
            return _result(AttendanceStatus.AUTH_FAILED)
        return None

    def classify(self, session: PageSession, url: str) -> AttendanceResult:
        """Determine the user's attendance for the event page at *url*.

        Never raises; every failure maps to a concrete result:
        network errors give ``no_response`` and failed re-authentication
        gives ``auth_failed``.
        """
        try:
            page = self._fetch(session, url)
        except requests.RequestException as e:
            logger.warning(f"Fetching event page failed: {e}")
            return _result(AttendanceStatus.NO_RESPONSE)
        except Exception:
            logger.exception("Fetching event page failed")
            return _result(AttendanceStatus.NO_RESPONSE)
        if page.status >= 400:
            logger.warning(f"Event page returned HTTP {page.status}")
            return _result(AttendanceStatus.NO_RESPONSE)

        try:
            page_url = url
            if INTERSTITIAL_PATH in page.final_url:
                followed = self._follow_interstitial(session, page)
                if followed is None:
                    return _result(AttendanceStatus.AUTH_FAILED)
                page = followed
                page_url = followed.final_url

            rejected = self._rejected(page)
            if rejected is not None:
                return rejected

            soup = BeautifulSoup(page.body, "html.parser")
            for _ in range(self.policy.render_retries):
                if is_rendered(soup):
                    break
                self.policy.pause(self.policy.render_delay)
                page = self._fetch(session, page_url)
                # the session may have expired between attempts
                rejected = self._rejected(page)
                if rejected is not None:
                    return rejected
                soup = BeautifulSoup(page.body, "html.parser")
            result = parse_attendance(soup)
        except requests.RequestException as e:
            logger.warning(f"Refetching unrendered event page failed: {e}")
            return _result(AttendanceStatus.NO_RESPONSE)
        except Exception:
            logger.exception("Could not parse event page")
            return _result(AttendanceStatus.NO_RESPONSE)

        logger.debug(f"Classified event page as {result.status.value}")
        return result
