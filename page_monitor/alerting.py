import logging
from collections import deque
from datetime import datetime, timedelta

from page_monitor.accounts import AccountConfig
from page_monitor.models import AlertEvent, AlertState, BrokenPath, CheckResult, SweepCycle

ALERT_CAP_WINDOW = timedelta(hours=24)


class AlertAggregator:
    """
    Tracks alert state per path for one account and decides, once a sweep
    has finished, whether that sweep produces a consolidated alert.

    Why keep state per path and not just alert on every Broken verdict?

    A page that stays down for a day on a 15-minute schedule would otherwise
    produce 96 emails. With per-path state:
      - the first Broken verdict of a failure streak makes the path Active
        and is alert-worthy
      - further Broken verdicts while Active are deduplicated
      - a Healthy verdict moves it to Recovered, so the next break alerts again
      - every path that broke in the same sweep goes into one event

    Plans with a daily alert cap (free: 3 per rolling 24h) still track the
    break, but the path becomes Suppressed instead of Active. A Suppressed
    path is treated as broken for dedup and recovery, and is notified by the
    first later sweep that still sees it broken and has room under the cap.
    """

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        self._states: dict[str, AlertState] = {}
        self._sent_at: deque[datetime] = deque()
        self._log = logging.getLogger(f"alerts.{account_id}")

    def state(self, path: str) -> AlertState | None:
        """None means the path has never been alert-worthy."""
        return self._states.get(path)

    def forget(self, path: str) -> None:
        self._states.pop(path, None)

    def sent_in_window(self, now: datetime) -> int:
        self._prune(now)
        return len(self._sent_at)

    def _prune(self, now: datetime) -> None:
        cutoff = now - ALERT_CAP_WINDOW
        while self._sent_at and self._sent_at[0] <= cutoff:
            self._sent_at.popleft()

    def _under_cap(self, cap: int | None, now: datetime) -> bool:
        if cap is None:
            return True
        self._prune(now)
        return len(self._sent_at) < cap

    def complete_cycle(self, cycle: SweepCycle, account: AccountConfig, now: datetime) -> AlertEvent | None:
        """
        Apply every verdict of a finished sweep and return the alert to send,
        if any. Also records recovered/suppressed paths on the cycle.
        """
        alert_worthy: list[CheckResult] = []

        for result in cycle.results:
            previous = self._states.get(result.path)

            if result.ok:
                if previous in (AlertState.ACTIVE, AlertState.SUPPRESSED):
                    self._states[result.path] = AlertState.RECOVERED
                    cycle.recovered.append(result.path)
                    self._log.info("%s recovered", result.path)
                continue

            if previous is AlertState.ACTIVE:
                self._log.debug("%s still broken (%s), already alerted", result.path, result.reason_code)
                continue

            # first break of a streak, or a break still waiting for room under the cap
            alert_worthy.append(result)

        if not alert_worthy:
            return None

        if not self._under_cap(account.limits.daily_alert_cap, now):
            for result in alert_worthy:
                self._states[result.path] = AlertState.SUPPRESSED
                cycle.suppressed.append(result.path)
            self._log.warning(
                "Daily alert cap (%d) reached; holding back alert for %d path(s)",
                account.limits.daily_alert_cap, len(alert_worthy),
            )
            return None

        for result in alert_worthy:
            self._states[result.path] = AlertState.ACTIVE
        self._sent_at.append(now)

        event = AlertEvent(
            account_id=account.account_id,
            domain=account.domain,
            alert_email=account.alert_email,
            broken_paths=tuple(
                BrokenPath(path=r.path, reason_code=r.reason_code, timestamp=r.timestamp)
                for r in alert_worthy
            ),
            cycle_timestamp=cycle.cycle_started_at,
        )
        cycle.alert = event
        self._log.info("Alert for %d broken path(s) on %s", len(alert_worthy), account.domain)
        return event
