from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

# (account_id, path): how history and scheduling state address a monitored path
PathKey = tuple[str, str]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def format_dt(dt: datetime | None) -> str:
    """Human-readable UTC timestamp for console display."""
    if dt is None:
        return "Unknown"
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


class Verdict(str, Enum):
    HEALTHY = "healthy"
    BROKEN = "broken"


class NetworkError(str, Enum):
    """Connection-level reasons a page produced no HTTP response."""
    DNS = "DNS"
    TLS = "TLS"
    CONNECTION_REFUSED = "ConnectionRefused"
    TIMEOUT = "Timeout"
    CONNECTION_ERROR = "NetworkError"
    FETCH_FAILED = "FetchFailed"    # the transport itself blew up


class AlertState(str, Enum):
    ACTIVE = "active"
    SUPPRESSED = "suppressed"    # alert-worthy, but held back by the daily cap
    RECOVERED = "recovered"


class PathState(str, Enum):
    IDLE = "idle"
    DUE = "due"
    IN_FLIGHT = "in_flight"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class MonitoredPath:
    account_id: str
    path: str
    added_at: datetime

    @property
    def key(self) -> PathKey:
        return (self.account_id, self.path)


@dataclass(frozen=True)
class JsError:
    """One uncaught script error seen while the page loaded."""
    message: str
    source: str | None = None
    line: int | None = None
    column: int | None = None
    timestamp: datetime | None = None
    stack: str | None = None


@dataclass(frozen=True)
class PageLoad:
    """What a transport saw: final status of the main navigation plus script errors."""
    status: int | None
    js_errors: tuple[JsError, ...] = ()
    final_url: str | None = None


@dataclass(frozen=True)
class RawObservation:
    url: str
    started_at: datetime
    http_status: int | None
    network_error: NetworkError | None
    js_errors: tuple[JsError, ...]
    duration_ms: int
    detail: str | None = None


@dataclass(frozen=True)
class CheckResult:
    """
    One check of one path. Immutable once built; history and alerting
    both hold references to the same object.
    """
    account_id: str
    path: str
    timestamp: datetime
    http_status: int | None
    network_error: NetworkError | None
    js_error_count: int
    js_error_messages: tuple[str, ...]
    js_errors: tuple[JsError, ...]
    duration_ms: int
    verdict: Verdict
    reason_code: str

    @property
    def key(self) -> PathKey:
        return (self.account_id, self.path)

    @property
    def ok(self) -> bool:
        return self.verdict is Verdict.HEALTHY


@dataclass(frozen=True)
class BrokenPath:
    path: str
    reason_code: str
    timestamp: datetime


@dataclass(frozen=True)
class AlertEvent:
    """
    Consolidated alert for one sweep. Formatting and delivery belong to
    the handler that receives it.
    """
    account_id: str
    domain: str
    alert_email: str
    broken_paths: tuple[BrokenPath, ...]
    cycle_timestamp: datetime


@dataclass
class SweepCycle:
    """All checks an account dispatched in one scheduling pass."""
    account_id: str
    cycle_started_at: datetime
    paths: tuple[str, ...]
    results: list[CheckResult] = field(default_factory=list)
    finished_at: datetime | None = None
    alert: AlertEvent | None = None
    recovered: list[str] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.finished_at is not None


@dataclass(frozen=True)
class PathStatus:
    path: str
    latest: CheckResult | None
    next_check_at: datetime | None
    uptime_percent: float | None


@dataclass(frozen=True)
class AccountSummary:
    """Latest-result view per path, built once per sweep for dashboards."""
    account_id: str
    domain: str
    generated_at: datetime
    paths: tuple[PathStatus, ...]

    @property
    def total(self) -> int:
        return len(self.paths)

    @property
    def healthy(self) -> int:
        return sum(1 for p in self.paths if p.latest is not None and p.latest.ok)

    @property
    def broken(self) -> int:
        return sum(1 for p in self.paths if p.latest is not None and not p.latest.ok)

    @property
    def unchecked(self) -> int:
        return sum(1 for p in self.paths if p.latest is None)
