from page_monitor.models import NetworkError


class PageMonitorError(Exception):
    """Base class for everything the engine raises."""


class ConfigValidationError(PageMonitorError, ValueError):
    """Account configuration rejected at the config boundary."""


class FetchError(PageMonitorError):
    """
    Raised by transports when a page could not be loaded at all.

    The Fetcher turns these into a Broken CheckResult; they never reach
    the scheduler.
    """

    kind: NetworkError = NetworkError.CONNECTION_ERROR

    def __init__(self, message: str = "", kind: NetworkError | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        if kind is not None:
            self.kind = kind


class FetchTimeout(FetchError):
    kind = NetworkError.TIMEOUT


class FetchNetworkError(FetchError):
    """DNS, TLS or connection-level failure."""


class SchedulerOverlapPrevented(PageMonitorError):
    """A second check was about to be dispatched for a path that is still in flight."""


class RetentionEvictionError(PageMonitorError):
    """History for a path broke its size bound; indicates a storage bug."""
