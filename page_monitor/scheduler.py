# AccountScheduler: keeps every monitored path of one account on its schedule.

# responsibilities:
#   - track, per path, when the next check is due
#   - on each scan, group the due paths into a SweepCycle and dispatch them
#     through a per-account and a global concurrency limit
#   - wait for the whole sweep (the barrier) before alerting, so the
#     aggregator always sees the complete picture of the account
#   - re-arm each path from its completion time, not from its old due time,
#     so slow checks under load never drift the schedule forward
#
# per-path states: Idle -> Due -> InFlight -> Cooldown -> Idle
#   Due       picked by a scan, waiting for a worker slot
#   InFlight  the Fetcher is running; a path in flight is never dispatched again
#   Cooldown  bookkeeping only: next_due_at = completion + interval, then Idle

import asyncio
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from page_monitor.accounts import AccountConfig
from page_monitor.alerting import AlertAggregator
from page_monitor.classifier import build_result
from page_monitor.config import (
    DEFAULT_SCHEME,
    MAX_CHECKS_PER_ACCOUNT,
    MAX_CONCURRENT_CHECKS,
    SCAN_INTERVAL_SECONDS,
)
from page_monitor.errors import SchedulerOverlapPrevented
from page_monitor.fetcher import Fetcher
from page_monitor.handlers import AlertHandler
from page_monitor.history import HistoryStore
from page_monitor.models import (
    AccountSummary,
    AlertEvent,
    MonitoredPath,
    PathState,
    SweepCycle,
    utc_now,
)


@dataclass
class PathSchedule:
    path: MonitoredPath
    seq: int                       # insertion order, breaks ties between equal due times
    next_due_at: datetime
    state: PathState = PathState.IDLE
    dispatched_at: datetime | None = None
    removed: bool = False


class AccountScheduler:
    """
    Runs the scan loop for a single account.

    Results of a path that is removed while its check is in flight are
    dropped: not stored, not alerted on, and the path is not re-armed. If it
    is re-added meanwhile, the new path waits until the old check is done.
    A path removed before the sweep barrier is left out of the alert.
    Config changes (paths, frequency, plan) apply from the next scheduling
    decision; a path already armed keeps its current due time.
    """

    def __init__(
        self,
        account: AccountConfig,
        fetcher: Fetcher,
        history: HistoryStore,
        handler: AlertHandler,
        global_limit: asyncio.Semaphore | None = None,
        per_account_limit: int = MAX_CHECKS_PER_ACCOUNT,
        scan_interval: float = SCAN_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        scheme: str = DEFAULT_SCHEME,
    ) -> None:
        self.account = account
        self.aggregator = AlertAggregator(account.account_id)
        self.summary: AccountSummary | None = None
        self._fetcher = fetcher
        self._history = history
        self._handler = handler
        self._global = global_limit or asyncio.Semaphore(MAX_CONCURRENT_CHECKS)
        self._local = asyncio.Semaphore(per_account_limit)
        self._scan_interval = scan_interval
        self._clock = clock
        self._scheme = scheme
        self._schedules: dict[str, PathSchedule] = {}
        self._retiring: dict[str, PathSchedule] = {}    # removed while in flight
        self._seq = itertools.count()
        self._sweeps: set[asyncio.Task] = set()
        self._log = logging.getLogger(f"scheduler.{account.account_id}")

        now = clock()
        for path in account.paths:
            self.add_path(path, now=now)

    # ─── path management ────────────────────────────────────────────────

    def add_path(self, path: str, now: datetime | None = None) -> MonitoredPath:
        """Start monitoring `path`; its first check is due immediately."""
        existing = self._schedules.get(path)
        if existing is not None:
            return existing.path

        now = now or self._clock()
        monitored = MonitoredPath(account_id=self.account.account_id, path=path, added_at=now)
        self._schedules[path] = PathSchedule(path=monitored, seq=next(self._seq), next_due_at=now)
        self._log.info("Monitoring %s%s", self.account.domain, path)
        return monitored

    def remove_path(self, path: str) -> None:
        schedule = self._schedules.pop(path, None)
        if schedule is None:
            return
        schedule.removed = True
        self.aggregator.forget(path)
        if schedule.state is PathState.IN_FLIGHT:
            self._retiring[path] = schedule
            self._log.info("Stopped monitoring %s; in-flight result will be discarded", path)
        else:
            self._log.info("Stopped monitoring %s", path)

    def apply_config(self, account: AccountConfig) -> None:
        if account.account_id != self.account.account_id:
            raise ValueError(f"Config for {account.account_id} applied to scheduler for {self.account.account_id}")

        previous, self.account = self.account, account
        if previous.frequency is not account.frequency:
            self._log.info("Frequency %s -> %s", previous.frequency.label, account.frequency.label)
        if previous.plan is not account.plan:
            self._log.info("Plan %s -> %s", previous.plan.value, account.plan.value)

        wanted = set(account.paths)
        for path in [p for p in self._schedules if p not in wanted]:
            self.remove_path(path)
        now = self._clock()
        for path in account.paths:
            if path not in self._schedules:
                self.add_path(path, now=now)

    def url_for(self, path: str) -> str:
        return f"{self._scheme}://{self.account.domain}{path}"

    def paths(self) -> list[str]:
        return list(self._schedules)

    def state_of(self, path: str) -> PathState | None:
        schedule = self._schedules.get(path)
        return schedule.state if schedule else None

    def next_checks(self) -> list[tuple[str, datetime | None]]:
        """(path, next due time) in insertion order; None while a check is pending or running."""
        return [
            (s.path.path, s.next_due_at if s.state is PathState.IDLE else None)
            for s in self._schedules.values()
        ]

    # ─── scheduling ─────────────────────────────────────────────────────

    def _due(self, now: datetime) -> list[PathSchedule]:
        due = [
            s for s in self._schedules.values()
            if s.state is PathState.IDLE
            and now >= s.next_due_at
            and s.path.path not in self._retiring    # old check of a re-added path still running
        ]
        due.sort(key=lambda s: (s.next_due_at, s.seq))
        return due

    def scan(self, now: datetime | None = None) -> asyncio.Task | None:
        """
        Start a sweep for every path that is due at `now`.

        Returns the sweep task (already running) or None when nothing is due.
        Never waits for the sweep itself.
        """
        now = now or self._clock()
        due = self._due(now)
        if not due:
            return None

        for schedule in due:
            schedule.state = PathState.DUE

        cycle = SweepCycle(
            account_id=self.account.account_id,
            cycle_started_at=now,
            paths=tuple(s.path.path for s in due),
        )
        self._log.debug("Sweep of %d path(s) started", len(due))

        task = asyncio.create_task(
            self._run_sweep(cycle, due),
            name=f"sweep-{self.account.account_id}",
        )
        self._sweeps.add(task)
        task.add_done_callback(self._sweeps.discard)
        return task

    async def run_due(self, now: datetime | None = None) -> SweepCycle | None:
        """Scan and wait for the resulting sweep, if any."""
        task = self.scan(now)
        if task is None:
            return None
        return await task

    async def drain(self) -> None:
        """Wait for every sweep currently running."""
        if self._sweeps:
            await asyncio.gather(*list(self._sweeps), return_exceptions=True)

    async def _run_sweep(self, cycle: SweepCycle, due: list[PathSchedule]) -> SweepCycle:
        outcomes = await asyncio.gather(
            *(self._dispatch(schedule, cycle) for schedule in due),
            return_exceptions=True,
        )
        for schedule, outcome in zip(due, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                # storage or invariant bug: reported, and the path goes back on schedule
                self._log.error(
                    "Check of %s failed inside the engine", schedule.path.path, exc_info=outcome,
                )
                schedule.state = PathState.IDLE

        # barrier reached: every dispatched check has completed or timed out.
        # Paths removed during the sweep take no part in alerting.
        live = {s.path.path for s in due if not s.removed}
        cycle.results = [r for r in cycle.results if r.path in live]
        cycle.finished_at = self._clock()
        event = self.aggregator.complete_cycle(cycle, self.account, cycle.finished_at)
        self.summary = self._history.snapshot(
            self.account.account_id, self.account.domain, self.next_checks(), cycle.finished_at,
        )

        broken = sum(1 for r in cycle.results if not r.ok)
        self._log.info(
            "Sweep finished: %d checked, %d broken, %d recovered",
            len(cycle.results), broken, len(cycle.recovered),
        )
        if event is not None:
            await self._notify(event)
        return cycle

    async def _dispatch(self, schedule: PathSchedule, cycle: SweepCycle) -> None:
        async with self._local, self._global:
            if schedule.removed:
                return    # removed while waiting for a slot
            if schedule.state is PathState.IN_FLIGHT:
                raise SchedulerOverlapPrevented(f"{schedule.path.path} is already being checked")

            schedule.state = PathState.IN_FLIGHT
            schedule.dispatched_at = self._clock()
            try:
                raw = await self._fetcher.check(self.url_for(schedule.path.path))
            except asyncio.CancelledError:
                schedule.state = PathState.IDLE
                raise
            finally:
                if self._retiring.get(schedule.path.path) is schedule:
                    del self._retiring[schedule.path.path]
            completed_at = self._clock()
            schedule.state = PathState.COOLDOWN

        if schedule.removed:
            self._log.debug("Discarding result for removed path %s", schedule.path.path)
            return

        result = build_result(schedule.path, raw, self.account.plan)
        cycle.results.append(result)
        try:
            await self._history.append(schedule.path.key, result, self.account.limits.retention)
        finally:
            schedule.next_due_at = completed_at + self.account.frequency.interval
            schedule.state = PathState.IDLE

        if result.ok:
            self._log.debug("%s healthy in %dms", schedule.path.path, result.duration_ms)
        else:
            self._log.info("%s broken: %s", schedule.path.path, result.reason_code)

    async def _notify(self, event: AlertEvent) -> None:
        try:
            await self._handler.handle(event)
        except Exception:
            # delivery (and retrying it) is the handler's job; the schedule keeps going
            self._log.exception("Alert handler failed for %s", event.domain)

    # ─── loop ───────────────────────────────────────────────────────────

    async def run_forever(self) -> None:
        self._log.info(
            "Started scheduling %d path(s) on %s, %s",
            len(self._schedules), self.account.domain, self.account.frequency.label,
        )
        try:
            while True:
                try:
                    self.scan()
                except Exception as exc:
                    self._log.exception("Unexpected error scanning %s: %s", self.account.account_id, exc)
                await asyncio.sleep(self._scan_interval)

        except asyncio.CancelledError:
            self._log.info("Scheduler for %s cancelled.", self.account.account_id)
            for task in list(self._sweeps):
                task.cancel()
            await asyncio.gather(*list(self._sweeps), return_exceptions=True)
            raise
