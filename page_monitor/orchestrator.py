# PageMonitor: the top-level orchestrator.

# Responsibilities:
#   - validate every account at the config boundary before anything is scheduled
#   - create the shared transport: one aiohttp session and connection pool, or
#     one headless Chromium when browser checks are enabled
#   - spin up one AccountScheduler coroutine per account, all sharing the
#     global concurrency limit and the history store
#   - expire old history on a housekeeping timer
#   - expose history / summary queries and mid-run config updates to the
#     collaborators (dashboard, settings)
#   - provide a clean stop() method for graceful shutdown
#
# Concurrency model:
#   100 accounts = 100 scheduler coroutines plus short-lived sweep tasks,
#   all on one event loop. At most MAX_CONCURRENT_CHECKS page loads run at
#   once, and at most MAX_CHECKS_PER_ACCOUNT against any one domain.

import asyncio
import logging
from contextlib import AsyncExitStack
from datetime import datetime
from typing import Callable

import aiohttp
from playwright.async_api import async_playwright

from page_monitor.accounts import AccountConfig, load_account
from page_monitor.browser import BrowserTransport
from page_monitor.config import (
    BROWSER_CHECKS_ENABLED,
    MAX_CHECKS_PER_ACCOUNT,
    MAX_CONCURRENT_CHECKS,
    REQUEST_TIMEOUT_SECONDS,
    SCAN_INTERVAL_SECONDS,
    USER_AGENT,
)
from page_monitor.fetcher import Fetcher, Transport
from page_monitor.handlers import AlertHandler, ConsoleAlertHandler
from page_monitor.history import HistoryStore
from page_monitor.http_client import HttpTransport
from page_monitor.models import AccountSummary, CheckResult, utc_now
from page_monitor.scheduler import AccountScheduler

log = logging.getLogger(__name__)

HOUSEKEEPING_INTERVAL_SECONDS = 3600


class PageMonitor:

    def __init__(
        self,
        accounts: list[dict],
        handler: AlertHandler | None = None,
        transport: Transport | None = None,
        browser_checks: bool = BROWSER_CHECKS_ENABLED,
        scan_interval: float = SCAN_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._configs: dict[str, AccountConfig] = {}
        for raw in accounts:
            account = load_account(raw)
            self._configs[account.account_id] = account

        self.history = HistoryStore()
        self._handler = handler or ConsoleAlertHandler()
        self._transport = transport
        self._browser_checks = browser_checks
        self._scan_interval = scan_interval
        self._clock = clock
        self._limit = asyncio.Semaphore(MAX_CONCURRENT_CHECKS)
        self._fetcher: Fetcher | None = None
        self._schedulers: dict[str, AccountScheduler] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._stopping = asyncio.Event()

    async def run(self) -> None:
        async with AsyncExitStack() as stack:
            transport = self._transport or await self._open_transport(stack)
            self._fetcher = Fetcher(transport, timeout_s=REQUEST_TIMEOUT_SECONDS, clock=self._clock)

            for account in self._configs.values():
                self._start(account)
            housekeeping = asyncio.create_task(self._housekeeping(), name="history-housekeeping")

            log.info(
                "PageMonitor running — %d account(s), %d path(s). Press Ctrl+C to stop.",
                len(self._configs),
                sum(len(a.paths) for a in self._configs.values()),
            )

            try:
                # blocks until stop() is called (or run() itself is cancelled)
                await self._stopping.wait()
            finally:
                housekeeping.cancel()
                for task in self._tasks.values():
                    task.cancel()
                await asyncio.gather(housekeeping, *self._tasks.values(), return_exceptions=True)

    async def _open_transport(self, stack: AsyncExitStack) -> Transport:
        if self._browser_checks:
            playwright = await stack.enter_async_context(async_playwright())
            browser = await playwright.chromium.launch(headless=True)
            stack.push_async_callback(browser.close)
            log.info("Using headless Chromium for page checks")
            return BrowserTransport(browser)

        connector = aiohttp.TCPConnector(limit=MAX_CONCURRENT_CHECKS)  # shared connection pool
        session = await stack.enter_async_context(
            aiohttp.ClientSession(connector=connector, headers={"User-Agent": USER_AGENT})
        )
        return HttpTransport(session)

    def _start(self, account: AccountConfig) -> None:
        scheduler = AccountScheduler(
            account,
            fetcher=self._fetcher,
            history=self.history,
            handler=self._handler,
            global_limit=self._limit,
            per_account_limit=MAX_CHECKS_PER_ACCOUNT,
            scan_interval=self._scan_interval,
            clock=self._clock,
        )
        self._schedulers[account.account_id] = scheduler
        self._tasks[account.account_id] = asyncio.create_task(
            scheduler.run_forever(),
            name=f"scheduler-{account.account_id}",
        )

    async def _housekeeping(self) -> None:
        while True:
            await asyncio.sleep(HOUSEKEEPING_INTERVAL_SECONDS)
            self.history.expire(self._clock())

    # ─── config updates from the settings collaborator ──────────────────

    def update_account(self, raw: dict) -> AccountConfig:
        """
        Validate and apply a new or changed account. Raises
        ConfigValidationError and leaves the running config untouched when
        the update is invalid.
        """
        account = load_account(raw)
        self._configs[account.account_id] = account

        scheduler = self._schedulers.get(account.account_id)
        if scheduler is not None:
            scheduler.apply_config(account)
        elif self._fetcher is not None:
            self._start(account)
        return account

    def remove_account(self, account_id: str, purge_history: bool = False) -> None:
        self._configs.pop(account_id, None)
        scheduler = self._schedulers.pop(account_id, None)
        task = self._tasks.pop(account_id, None)
        if task is not None:
            task.cancel()
        if purge_history:
            for key in self.history.keys():
                if key[0] == account_id:
                    self.history.purge(key)
        if scheduler is not None:
            log.info("Stopped monitoring account %s", account_id)

    # ─── queries for dashboards ─────────────────────────────────────────

    def history_for(self, account_id: str, path: str, limit: int | None = 50) -> list[CheckResult]:
        """Most recent first."""
        return self.history.query((account_id, path), limit)

    def summary(self, account_id: str) -> AccountSummary | None:
        """Latest-result view as of the account's last finished sweep."""
        scheduler = self._schedulers.get(account_id)
        return scheduler.summary if scheduler else None

    def next_checks(self, account_id: str) -> list[tuple[str, datetime | None]]:
        scheduler = self._schedulers.get(account_id)
        return scheduler.next_checks() if scheduler else []

    def stop(self) -> None:
        """Cancel all scheduler tasks. The event loop will drain them cleanly."""
        for task in self._tasks.values():
            task.cancel()
        self._stopping.set()

    @property
    def tasks(self) -> list[asyncio.Task]:
        return list(self._tasks.values())
