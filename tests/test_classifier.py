from __future__ import annotations

import itertools
from datetime import datetime, timezone

import pytest

from page_monitor.classifier import build_result, classify
from page_monitor.models import JsError, MonitoredPath, NetworkError, RawObservation, Verdict
from page_monitor.plans import PlanTier

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _raw(status: int | None = 200, network_error: NetworkError | None = None, js: int = 0) -> RawObservation:
    return RawObservation(
        url="https://example.com/pricing",
        started_at=NOW,
        http_status=status,
        network_error=network_error,
        js_errors=tuple(JsError(message=f"TypeError #{i}", stack=f"at f (https://x/app.js:{i}:1)") for i in range(js)),
        duration_ms=120,
    )


@pytest.mark.parametrize(
    "plan, status, network_error, js",
    list(itertools.product(
        list(PlanTier),
        [None, 200, 204, 299, 301, 404, 500],
        [None, NetworkError.TIMEOUT, NetworkError.DNS],
        [0, 2],
    )),
)
def test_truth_table(plan: PlanTier, status: int | None, network_error: NetworkError | None, js: int) -> None:
    verdict, reason = classify(_raw(status, network_error, js), plan)

    rule1 = network_error is not None
    rule2 = status is None or not 200 <= status <= 299
    rule3 = plan is not PlanTier.FREE and js > 0
    assert (verdict is Verdict.BROKEN) == (rule1 or rule2 or rule3)

    if rule1:
        assert reason == network_error.value
    elif rule2:
        assert reason == ("HTTP_MISSING" if status is None else f"HTTP_{status}")
    elif rule3:
        assert reason == "JS_ERROR"
    else:
        assert reason == "OK"


def test_http_500_reason_code() -> None:
    assert classify(_raw(500), PlanTier.STARTER) == (Verdict.BROKEN, "HTTP_500")


def test_timeout_beats_missing_status() -> None:
    assert classify(_raw(None, NetworkError.TIMEOUT), PlanTier.GROWTH) == (Verdict.BROKEN, "Timeout")


def test_build_result_keeps_js_details_and_strips_stacks_on_free() -> None:
    path = MonitoredPath(account_id="acme", path="/pricing", added_at=NOW)

    starter = build_result(path, _raw(200, js=2), PlanTier.STARTER)
    assert starter.verdict is Verdict.BROKEN
    assert starter.js_error_count == 2
    assert starter.js_error_messages == ("TypeError #0", "TypeError #1")
    assert all(e.stack for e in starter.js_errors)

    free = build_result(path, _raw(200, js=2), PlanTier.FREE)
    assert free.verdict is Verdict.HEALTHY
    assert free.js_error_count == 2
    assert all(e.stack is None for e in free.js_errors)


def test_js_error_messages_are_bounded() -> None:
    path = MonitoredPath(account_id="acme", path="/", added_at=NOW)
    result = build_result(path, _raw(200, js=50), PlanTier.GROWTH)
    assert result.js_error_count == 50
    assert len(result.js_error_messages) == 20
    assert result.timestamp == NOW
