"""Shared fixtures: static pages, a scripted session and a zero-delay policy."""

from pathlib import Path

import pytest

from spielerplus_ics.classifier import RetryPolicy
from spielerplus_ics.session import PageResponse

FIXTURES = Path(__file__).parent / "fixtures"

EVENT_URL = "https://www.spielerplus.de/events/view?id=1001"


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


class FakeSession:
    """Returns scripted responses per URL and records every call.

    Each URL maps to a list of responses (or exceptions) consumed in order;
    the last one is repeated once the list is exhausted.
    """

    def __init__(self, routes=None):
        self.routes = {url: list(items) for url, items in (routes or {}).items()}
        self.calls = []
        self.merged = []

    def add(self, url, *items):
        self.routes.setdefault(url, []).extend(items)

    def get(self, url, max_redirects=5, timeout=30.0):
        self.calls.append(url)
        items = self.routes[url]
        item = items.pop(0) if len(items) > 1 else items[0]
        if isinstance(item, Exception):
            raise item
        return item

    def merge_cookies(self, set_cookie_headers):
        self.merged.extend(set_cookie_headers)


def page(body, url=EVENT_URL, status=200, cookies=None):
    """Build a :class:`PageResponse` for the fake session."""
    return PageResponse(final_url=url, status=status, body=body, set_cookie_headers=cookies or [])


@pytest.fixture()
def policy():
    """A retry policy without any delays."""
    return RetryPolicy.immediate()

