# Browser transport: renders the page in headless Chromium via Playwright and
# records uncaught script errors (the `pageerror` event) alongside the status
# of the main navigation.

# Each load gets a fresh browser context, closed afterwards, so cookies and
# storage never leak between checks. Images, media and fonts are aborted;
# they cannot change the verdict and only cost bandwidth. Nothing on the page
# is clicked, filled or submitted.

import logging
import re
from datetime import datetime, timezone

from playwright.async_api import Browser, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from page_monitor.config import BROWSER_NAVIGATION_TIMEOUT_MS, USER_AGENT
from page_monitor.errors import FetchNetworkError, FetchTimeout
from page_monitor.models import JsError, NetworkError, PageLoad

log = logging.getLogger(__name__)

_SKIPPED_RESOURCES = {"image", "media", "font"}

# "    at render (https://example.com/static/app.js:120:17)" or "@https://...:3:9"
_FRAME_RE = re.compile(r"(?:\(|@|at )(?P<src>[a-z]+://[^\s()]+?):(?P<line>\d+):(?P<col>\d+)\)?", re.I)

# Chromium net::ERR_* codes -> NetworkError, first match wins
_NET_ERRORS: list[tuple[str, NetworkError]] = [
    ("err_name_not_resolved",   NetworkError.DNS),
    ("err_name_resolution",     NetworkError.DNS),
    ("err_cert_",               NetworkError.TLS),
    ("err_ssl_",                NetworkError.TLS),
    ("err_connection_refused",  NetworkError.CONNECTION_REFUSED),
    ("err_timed_out",           NetworkError.TIMEOUT),
    ("err_connection_timed_out", NetworkError.TIMEOUT),
]


def browser_error_kind(message: str) -> NetworkError:
    text = message.lower()
    for needle, kind in _NET_ERRORS:
        if needle in text:
            return kind
    return NetworkError.CONNECTION_ERROR


def js_error_from(exc) -> JsError:
    """Build a JsError from the object Playwright hands to `pageerror` listeners."""
    message = getattr(exc, "message", None) or str(exc)
    name    = getattr(exc, "name", None)
    stack   = getattr(exc, "stack", None)
    if name and not message.startswith(name):
        message = f"{name}: {message}"

    source = line = column = None
    match = _FRAME_RE.search(stack or "")
    if match:
        source = match.group("src")
        line   = int(match.group("line"))
        column = int(match.group("col"))

    return JsError(
        message=message,
        source=source,
        line=line,
        column=column,
        timestamp=datetime.now(tz=timezone.utc),
        stack=stack,
    )


async def _route_filter(route) -> None:
    if route.request.resource_type in _SKIPPED_RESOURCES:
        await route.abort()
        return
    await route.continue_()


class BrowserTransport:

    def __init__(self, browser: Browser, navigation_timeout_ms: int = BROWSER_NAVIGATION_TIMEOUT_MS) -> None:
        self._browser = browser
        self._timeout_ms = navigation_timeout_ms

    async def load(self, url: str) -> PageLoad:
        context = await self._browser.new_context(
            viewport={"width": 1280, "height": 720},
            user_agent=USER_AGENT,
        )
        try:
            await context.route("**/*", _route_filter)
            page = await context.new_page()

            errors: list[JsError] = []
            page.on("pageerror", lambda exc: errors.append(js_error_from(exc)))

            try:
                response = await page.goto(url, wait_until="load", timeout=self._timeout_ms)
            except PlaywrightTimeoutError as exc:
                raise FetchTimeout(f"Timed out loading {url}") from exc
            except PlaywrightError as exc:
                kind = browser_error_kind(str(exc))
                log.warning("%s loading %s: %s", kind.value, url, exc)
                raise FetchNetworkError(str(exc), kind=kind) from exc

            return PageLoad(
                status=response.status if response else None,
                js_errors=tuple(errors),
                final_url=page.url,
            )
        finally:
            await context.close()
