# Plain HTTP transport: one read-only GET per check.

# Follows redirects and reports the status of the final response. Non-2xx
# responses are not errors here, the classifier decides what they mean.
# Connection-level failures are mapped onto NetworkError kinds and raised as
# FetchNetworkError so the Fetcher can record them.
#
# This transport cannot see JavaScript errors; BrowserTransport does that.

import asyncio
import errno
import logging
import socket
import ssl

import aiohttp

from page_monitor.config import REQUEST_TIMEOUT_SECONDS
from page_monitor.errors import FetchNetworkError, FetchTimeout
from page_monitor.models import NetworkError, PageLoad

log = logging.getLogger(__name__)


def network_error_kind(exc: BaseException) -> NetworkError:
    """Map an aiohttp / OS level exception to the NetworkError it represents."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, aiohttp.ServerTimeoutError)):
        return NetworkError.TIMEOUT
    if isinstance(exc, (aiohttp.ClientSSLError, ssl.SSLError)):
        return NetworkError.TLS
    os_error = exc.os_error if isinstance(exc, aiohttp.ClientConnectorError) else exc
    if isinstance(os_error, socket.gaierror):
        return NetworkError.DNS
    if isinstance(os_error, ConnectionRefusedError) or getattr(os_error, "errno", None) == errno.ECONNREFUSED:
        return NetworkError.CONNECTION_REFUSED
    return NetworkError.CONNECTION_ERROR


class HttpTransport:
    """
    Wraps a shared aiohttp.ClientSession.

    One instance serves every account; the session's connector is the
    connection pool.
    """

    def __init__(self, session: aiohttp.ClientSession, timeout_s: float = REQUEST_TIMEOUT_SECONDS) -> None:
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    async def load(self, url: str) -> PageLoad:
        try:
            async with self._session.get(url, allow_redirects=True, timeout=self._timeout) as resp:
                await resp.read()    # a page is loaded once its body has arrived
                return PageLoad(status=resp.status, final_url=str(resp.url))

        except asyncio.TimeoutError as exc:
            log.warning("Timeout fetching %s", url)
            raise FetchTimeout(f"Timed out loading {url}") from exc
        except aiohttp.ClientError as exc:
            kind = network_error_kind(exc)
            log.warning("%s fetching %s: %s", kind.value, url, exc)
            raise FetchNetworkError(str(exc), kind=kind) from exc
