# Per-path check history, held in memory.

# Each path keeps a deque of CheckResults, oldest on the left. Two bounds apply
# and the tighter one wins:
#   - the plan's retention window (7/30/90 days), enforced on every append and
#     by expire(), which the orchestrator runs on a housekeeping timer
#   - HISTORY_MAX_RECORDS, so a 15-minute path on a 90-day plan cannot grow
#     to 8,640 entries
# Eviction is always from the old end.
#
# Appends for one path are serialized by that path's asyncio.Lock. Different
# paths have different locks and never wait on each other.

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from page_monitor.config import HISTORY_MAX_RECORDS
from page_monitor.errors import RetentionEvictionError
from page_monitor.models import AccountSummary, CheckResult, PathKey, PathStatus, utc_now

log = logging.getLogger(__name__)


@dataclass
class _PathHistory:
    retention: timedelta
    records: deque[CheckResult]
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class HistoryStore:

    def __init__(self, max_records: int = HISTORY_MAX_RECORDS) -> None:
        self._max_records = max_records
        self._paths: dict[PathKey, _PathHistory] = {}

    def _entry(self, key: PathKey, retention: timedelta) -> _PathHistory:
        entry = self._paths.get(key)
        if entry is None:
            entry = _PathHistory(retention=retention, records=deque(maxlen=self._max_records))
            self._paths[key] = entry
        return entry

    async def append(self, key: PathKey, result: CheckResult, retention: timedelta) -> None:
        entry = self._entry(key, retention)
        async with entry.lock:
            entry.retention = retention    # plan changes shrink or widen the window from here on
            records = entry.records
            if records and records[-1].timestamp > result.timestamp:
                # clock jump or a late result: keep the deque time-ordered
                ordered = sorted([*records, result], key=lambda r: r.timestamp)
                records.clear()
                records.extend(ordered[-self._max_records:])
            else:
                records.append(result)    # deque(maxlen) drops the oldest on overflow
            self._evict(key, entry, now=records[-1].timestamp)

    def _evict(self, key: PathKey, entry: _PathHistory, now: datetime) -> int:
        cutoff  = now - entry.retention
        records = entry.records
        evicted = 0
        while records and records[0].timestamp < cutoff:
            records.popleft()
            evicted += 1
        if len(records) > self._max_records:
            raise RetentionEvictionError(
                f"History for {key[0]}{key[1]} holds {len(records)} records (cap {self._max_records})"
            )
        return evicted

    def query(self, key: PathKey, limit: int | None = None) -> list[CheckResult]:
        """Most recent first."""
        entry = self._paths.get(key)
        if entry is None:
            return []
        newest_first = list(reversed(entry.records))
        return newest_first if limit is None else newest_first[:max(0, limit)]

    def latest(self, key: PathKey) -> CheckResult | None:
        entry = self._paths.get(key)
        if entry is None or not entry.records:
            return None
        return entry.records[-1]

    def availability(self, key: PathKey, since: datetime) -> tuple[int, int, float | None]:
        """
        Returns (total, ok_count, ok_percent_or_None_if_total_0) over the
        records at or after `since`.
        """
        entry = self._paths.get(key)
        if entry is None:
            return 0, 0, None
        window = [r for r in entry.records if r.timestamp >= since]
        total = len(window)
        if total == 0:
            return 0, 0, None
        ok_count = sum(1 for r in window if r.ok)
        return total, ok_count, (ok_count / float(total)) * 100.0

    def purge(self, key: PathKey) -> None:
        self._paths.pop(key, None)

    def expire(self, now: datetime | None = None) -> int:
        """Apply every path's retention window against `now`; forget paths left empty."""
        now = now or utc_now()
        evicted = 0
        for key in list(self._paths):
            entry = self._paths[key]
            if entry.lock.locked():
                continue    # an append is mid-flight and will evict on its own
            evicted += self._evict(key, entry, now)
            if not entry.records:
                del self._paths[key]
        if evicted:
            log.debug("Expired %d history record(s)", evicted)
        return evicted

    def keys(self) -> list[PathKey]:
        return list(self._paths)

    def snapshot(
        self,
        account_id: str,
        domain: str,
        paths: list[tuple[str, datetime | None]],
        now: datetime,
        uptime_window: timedelta = timedelta(days=1),
    ) -> AccountSummary:
        """
        Build the dashboard view for one account.

        `paths` is (path, next_check_at) in display order.
        """
        statuses: list[PathStatus] = []
        for path, next_check_at in paths:
            key = (account_id, path)
            _, _, uptime = self.availability(key, since=now - uptime_window)
            statuses.append(PathStatus(
                path=path,
                latest=self.latest(key),
                next_check_at=next_check_at,
                uptime_percent=uptime,
            ))
        return AccountSummary(
            account_id=account_id,
            domain=domain,
            generated_at=now,
            paths=tuple(statuses),
        )
