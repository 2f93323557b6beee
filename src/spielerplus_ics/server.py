"""FastAPI application serving filtered calendars.

## Usage

```python
from spielerplus_ics.server import create_app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
```

Calendar clients subscribe to
``/calendar/<ICAL_TOKEN>?u=<USER_ID>&name=<NAME>&showNotNominated=true``
and authenticate with the user's SpielerPlus login via HTTP Basic auth.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from email.utils import formatdate
from html import escape

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .config import Settings, get_settings
from .exceptions import AuthError, FetchError
from .logging_config import new_request_id, reset_request_id, set_request_id
from .models import Credentials, FilterRequest
from .session import SpielerPlusSession
from .spielerplus_ics import SpielerPlusIcs

logger = logging.getLogger(__name__)

REALM = "SpielerPlus Calendar Filter"

security = HTTPBasic(auto_error=False)

NO_CACHE_HEADERS = {
    "Content-Disposition": 'attachment; filename="filtered-calendar.ics"',
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
    "Vary": "Authorization",
    "X-Accel-Expires": "0",
}


class SessionCache:
    """Keeps one SpielerPlus session per user and feed token.

    Each entry has its own lock so that two requests for the same user
    never use the session's cookie store at the same time. At most
    ``settings.max_sessions`` entries are kept; the least recently used
    one is evicted first.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[SpielerPlusSession, threading.Lock]] = OrderedDict()

    def get(self, key: str) -> tuple[SpielerPlusSession, threading.Lock]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
                return entry
            session = SpielerPlusSession(
                base_url=self.settings.base_url,
                timeout=self.settings.request_timeout,
                user_agent=self.settings.user_agent,
            )
            entry = (session, threading.Lock())
            self._entries[key] = entry
            while len(self._entries) > self.settings.max_sessions:
                _, evicted = self._entries.popitem(last=False)
                _close_when_idle(evicted)
            return entry

    def discard(self, key: str) -> None:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is not None:
            entry[0].close()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _close_when_idle(entry: tuple[SpielerPlusSession, threading.Lock]) -> None:
    session, lock = entry
    # a request still using the session keeps it open
    if lock.acquire(blocking=False):
        try:
            session.close()
        finally:
            lock.release()


def _auth_required(error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"error": error, "message": message},
        headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
    )


def _index_page(settings: Settings) -> str:
    example = (
        f"http://localhost:{settings.port}/calendar/ICAL_TOKEN"
        "?u=USER_ID&amp;name=TEAM_NAME&amp;showNotNominated=true"
    )
    return f"""<!DOCTYPE html>
<html>
<head><title>{escape(REALM)}</title></head>
<body>
<h1>{escape(REALM)}</h1>
<p>Your team calendar with attendance status emoji.</p>
<h3>Calendar URL format</h3>
<pre>{example}</pre>
<ol>
<li>Copy the token (after <code>t=</code>) and user id (after <code>u=</code>) from your SpielerPlus calendar subscription URL.</li>
<li>Put them into the URL above.</li>
<li>Subscribe in your calendar app using your SpielerPlus email and password.</li>
</ol>
<h3>Emoji</h3>
<ul>
<li>👍 attending</li>
<li>👎 not attending</li>
<li>❓ maybe</li>
<li>🤷 no response yet</li>
<li>❌ not nominated</li>
<li>🔒 could not check (login problem)</li>
</ul>
<h3>Parameters</h3>
<ul>
<li><code>showNotNominated=true</code>: include events you are not nominated for</li>
<li><code>name=TEAM_NAME</code>: calendar name</li>
</ul>
</body>
</html>"""


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    sessions = SessionCache(settings)

    app = FastAPI(title=REALM, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.sessions = sessions

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        token = set_request_id(new_request_id())
        try:
            return await call_next(request)
        finally:
            reset_request_id(token)

    @app.get("/", response_class=HTMLResponse)
    def index():
        return _index_page(settings)

    @app.get("/health")
    def health_check():
        return {"status": "healthy"}

    @app.get("/calendar/{ical_token}")
    def calendar(
        ical_token: str,
        u: str | None = None,
        name: str | None = None,
        show_not_nominated: str = Query("false", alias="showNotNominated"),
        basic: HTTPBasicCredentials | None = Depends(security),
    ):
        if basic is None:
            return _auth_required(
                "Authentication required",
                "Please provide your SpielerPlus username and password",
            )
        if not u:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "Missing user parameter",
                    "message": "Please include the user parameter: ?u=YOUR_USER_ID",
                },
            )

        filter_request = FilterRequest.for_token(
            token=ical_token,
            user_id=u,
            credentials=Credentials(basic.username, basic.password),
            display_name=name or settings.default_calendar_name,
            show_not_nominated=show_not_nominated.lower() == "true",
        )
        key = f"{basic.username}:{ical_token}"
        session, lock = sessions.get(key)

        try:
            with lock:
                ics = SpielerPlusIcs(
                    filter_request,
                    session=session,
                    policy=settings.retry_policy(),
                    base_url=settings.base_url,
                    timezone=settings.timezone,
                ).get_ics()
        except AuthError as e:
            logger.warning(f"Authentication failed: {e}")
            sessions.discard(key)
            return _auth_required(
                "Authentication failed",
                "Invalid SpielerPlus username or password",
            )
        except FetchError as e:
            logger.error(f"Calendar fetch failed: {e}")
            return JSONResponse(
                status_code=502,
                content={"error": "Failed to fetch calendar", "details": str(e)},
            )
        except Exception as e:
            logger.exception("Calendar generation failed")
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to generate calendar", "details": str(e)},
            )

        headers = dict(NO_CACHE_HEADERS)
        headers["Last-Modified"] = formatdate(usegmt=True)
        headers["ETag"] = f'"{new_request_id()}"'
        return Response(content=ics, media_type="text/calendar; charset=utf-8", headers=headers)

    return app
