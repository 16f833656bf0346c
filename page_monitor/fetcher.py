# Fetcher: one check of one URL, always returning a RawObservation.

# The transport does the actual loading (HttpTransport, BrowserTransport, or a
# scripted double in tests). The Fetcher adds the parts every transport needs:
#   - a hard wall-clock cap, so a hung load can never pin a worker slot
#   - timing
#   - turning every failure into data; a broken page is a result, not an error
# Only cancellation propagates.

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Protocol

from page_monitor.config import REQUEST_TIMEOUT_SECONDS
from page_monitor.errors import FetchError
from page_monitor.models import NetworkError, PageLoad, RawObservation, utc_now

log = logging.getLogger(__name__)


class Transport(Protocol):
    async def load(self, url: str) -> PageLoad: ...


class Fetcher:

    def __init__(
        self,
        transport: Transport,
        timeout_s: float = REQUEST_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.transport = transport
        self.timeout_s = timeout_s
        self._clock    = clock

    async def check(self, url: str, timeout_s: float | None = None) -> RawObservation:
        timeout    = self.timeout_s if timeout_s is None else timeout_s
        started_at = self._clock()
        started    = time.perf_counter()

        status: int | None = None
        js_errors = ()
        network_error: NetworkError | None = None
        detail: str | None = None

        try:
            page = await asyncio.wait_for(self.transport.load(url), timeout=timeout)
            status    = page.status
            js_errors = page.js_errors

        except (asyncio.TimeoutError, TimeoutError):
            network_error = NetworkError.TIMEOUT
            detail = f"no response within {timeout:g}s"
            log.warning("Check of %s timed out after %gs", url, timeout)

        except FetchError as exc:
            network_error = exc.kind
            detail = str(exc)

        except Exception as exc:
            network_error = NetworkError.FETCH_FAILED
            detail = f"{type(exc).__name__}: {exc}"
            log.exception("Unexpected error checking %s", url)

        return RawObservation(
            url=url,
            started_at=started_at,
            http_status=status,
            network_error=network_error,
            js_errors=tuple(js_errors),
            duration_ms=int((time.perf_counter() - started) * 1000),
            detail=detail,
        )
