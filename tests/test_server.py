"""Tests for the FastAPI calendar endpoint."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from spielerplus_ics.config import Settings
from spielerplus_ics.exceptions import AuthError, FetchError
from spielerplus_ics.server import create_app

ICS = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n"
AUTH = ("me@example.com", "secret")


@pytest.fixture()
def app():
    return create_app(Settings(pacing_delay=0, render_delay=0, redirect_delay=0, fetch_delay=0))


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def fake_ics():
    with patch("spielerplus_ics.server.SpielerPlusIcs") as cls:
        cls.return_value.get_ics.return_value = ICS
        yield cls


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_index_lists_emoji(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "showNotNominated" in resp.text
    assert "🔒" in resp.text


def test_missing_credentials(client, fake_ics):
    resp = client.get("/calendar/token?u=42")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"].startswith("Basic")
    assert resp.json()["error"] == "Authentication required"
    fake_ics.assert_not_called()


def test_missing_user_parameter(client, fake_ics):
    resp = client.get("/calendar/token", auth=AUTH)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing user parameter"


def test_calendar_response(client, fake_ics):
    resp = client.get(
        "/calendar/token?u=42&name=Erste&showNotNominated=true",
        auth=AUTH,
    )
    assert resp.status_code == 200
    assert resp.text == ICS
    assert resp.headers["content-type"].startswith("text/calendar")
    assert "no-store" in resp.headers["cache-control"]
    assert resp.headers["vary"] == "Authorization"

    request = fake_ics.call_args.args[0]
    assert request.feed_url == "https://www.spielerplus.de/events/ics?t=token&u=42"
    assert request.display_name == "Erste"
    assert request.show_not_nominated is True
    assert request.credentials.username == "me@example.com"


def test_defaults_for_name_and_filter(client, fake_ics):
    client.get("/calendar/token?u=42", auth=AUTH)
    request = fake_ics.call_args.args[0]
    assert request.display_name == "Team Calendar"
    assert request.show_not_nominated is False


def test_session_is_reused_per_user_and_token(app, client, fake_ics):
    client.get("/calendar/token?u=42", auth=AUTH)
    client.get("/calendar/token?u=42", auth=AUTH)
    client.get("/calendar/other?u=42", auth=AUTH)
    sessions = [c.kwargs["session"] for c in fake_ics.call_args_list]
    assert sessions[0] is sessions[1]
    assert sessions[0] is not sessions[2]
    assert len(app.state.sessions) == 2


def test_auth_error_is_401_and_drops_session(app, client, fake_ics):
    fake_ics.return_value.get_ics.side_effect = AuthError("bad password")
    resp = client.get("/calendar/token?u=42", auth=AUTH)
    assert resp.status_code == 401
    assert resp.json()["error"] == "Authentication failed"
    assert "WWW-Authenticate" in resp.headers
    assert len(app.state.sessions) == 0


def test_fetch_error_is_502(client, fake_ics):
    fake_ics.return_value.get_ics.side_effect = FetchError("feed down")
    resp = client.get("/calendar/token?u=42", auth=AUTH)
    assert resp.status_code == 502
    assert resp.json() == {"error": "Failed to fetch calendar", "details": "feed down"}


def test_unexpected_error_is_500(client, fake_ics):
    fake_ics.return_value.get_ics.side_effect = RuntimeError("boom")
    resp = client.get("/calendar/token?u=42", auth=AUTH)
    assert resp.status_code == 500
    assert resp.json()["error"] == "Failed to generate calendar"


def test_cors_allows_any_origin(client):
    resp = client.get("/health", headers={"Origin": "https://calendar.example.com"})
    assert resp.headers["access-control-allow-origin"] == "*"


def test_cors_preflight_for_calendar(client):
    resp = client.options(
        "/calendar/token?u=42",
        headers={
            "Origin": "https://calendar.example.com",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "Authorization",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"


def test_session_cache_evicts_least_recently_used(fake_ics):
    app = create_app(Settings(max_sessions=2))
    client = TestClient(app)
    client.get("/calendar/a?u=42", auth=AUTH)
    client.get("/calendar/b?u=42", auth=AUTH)
    client.get("/calendar/a?u=42", auth=AUTH)
    client.get("/calendar/c?u=42", auth=AUTH)
    sessions = app.state.sessions
    assert len(sessions) == 2
    assert "me@example.com:a" in sessions
    assert "me@example.com:b" not in sessions
    assert "me@example.com:c" in sessions
