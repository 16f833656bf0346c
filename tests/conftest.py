from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

import pytest

from page_monitor.accounts import AccountConfig, load_account
from page_monitor.fetcher import Fetcher
from page_monitor.history import HistoryStore
from page_monitor.models import AlertEvent, PageLoad
from page_monitor.scheduler import AccountScheduler

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ScriptedTransport:
    """
    Serves scripted responses per path. A script entry is either a PageLoad,
    an int status, or an exception instance to raise. The last entry of a
    script repeats. `delay` makes every load sleep first; `delays` overrides
    it per path.
    """

    def __init__(
        self,
        scripts: dict[str, list] | None = None,
        default: object = 200,
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.default = default
        self.delay = delay
        self.delays = delays or {}
        self.calls: list[str] = []
        self.in_flight: dict[str, int] = defaultdict(int)
        self.max_in_flight: dict[str, int] = defaultdict(int)
        self.total_in_flight = 0
        self.max_total_in_flight = 0

    def script(self, path: str, *entries: object) -> None:
        self.scripts[path] = list(entries)

    def _next(self, path: str) -> object:
        script = self.scripts.get(path)
        if not script:
            return self.default
        return script.pop(0) if len(script) > 1 else script[0]

    async def load(self, url: str) -> PageLoad:
        path = urlsplit(url).path or "/"
        self.calls.append(path)
        self.in_flight[path] += 1
        self.total_in_flight += 1
        self.max_in_flight[path] = max(self.max_in_flight[path], self.in_flight[path])
        self.max_total_in_flight = max(self.max_total_in_flight, self.total_in_flight)
        try:
            delay = self.delays.get(path, self.delay)
            if delay:
                await asyncio.sleep(delay)
            entry = self._next(path)
            if isinstance(entry, BaseException):
                raise entry
            if isinstance(entry, int):
                return PageLoad(status=entry)
            return entry
        finally:
            self.in_flight[path] -= 1
            self.total_in_flight -= 1


class CollectingHandler:
    def __init__(self) -> None:
        self.events: list[AlertEvent] = []

    async def handle(self, event: AlertEvent) -> None:
        self.events.append(event)


def make_account(**overrides: object) -> AccountConfig:
    raw = {
        "account_id": "acme",
        "domain": "example.com",
        "plan": "starter",
        "frequency": "30m",
        "paths": ["/pricing"],
        "alert_email": "ops@example.com",
    }
    raw.update(overrides)
    return load_account(raw)


def make_scheduler(
    account: AccountConfig,
    transport: ScriptedTransport,
    clock: FakeClock,
    handler: CollectingHandler | None = None,
    history: HistoryStore | None = None,
    per_account_limit: int = 4,
    timeout_s: float = 5.0,
) -> AccountScheduler:
    return AccountScheduler(
        account,
        fetcher=Fetcher(transport, timeout_s=timeout_s, clock=clock),
        history=history or HistoryStore(),
        handler=handler or CollectingHandler(),
        per_account_limit=per_account_limit,
        clock=clock,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def handler() -> CollectingHandler:
    return CollectingHandler()
