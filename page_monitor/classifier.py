# Turns a raw observation into a verdict. Pure: no I/O, no clock, no state.

# Rules, first match wins:
#   1. connection-level failure        -> Broken, reason = the failure (e.g. "Timeout")
#   2. no status, or status not 2xx    -> Broken, reason = "HTTP_<status>" / "HTTP_MISSING"
#   3. JS errors on a plan that detects them -> Broken, reason = "JS_ERROR"
#   4. otherwise                       -> Healthy, reason = "OK"

from dataclasses import replace

from page_monitor.config import MAX_JS_ERRORS_PER_CHECK
from page_monitor.models import CheckResult, JsError, MonitoredPath, RawObservation, Verdict
from page_monitor.plans import PlanTier, limits_for

REASON_OK = "OK"
REASON_HTTP_MISSING = "HTTP_MISSING"
REASON_JS_ERROR = "JS_ERROR"


def classify(raw: RawObservation, plan: PlanTier) -> tuple[Verdict, str]:
    if raw.network_error is not None:
        return Verdict.BROKEN, raw.network_error.value

    if raw.http_status is None:
        return Verdict.BROKEN, REASON_HTTP_MISSING
    if not 200 <= raw.http_status <= 299:
        return Verdict.BROKEN, f"HTTP_{raw.http_status}"

    if limits_for(plan).js_error_detection and raw.js_errors:
        return Verdict.BROKEN, REASON_JS_ERROR

    return Verdict.HEALTHY, REASON_OK


def build_result(path: MonitoredPath, raw: RawObservation, plan: PlanTier) -> CheckResult:
    """Classify and freeze one observation into the CheckResult stored and alerted on."""
    verdict, reason = classify(raw, plan)

    kept = raw.js_errors[:MAX_JS_ERRORS_PER_CHECK]
    if not limits_for(plan).stack_traces:
        kept = tuple(_without_stack(e) for e in kept)

    return CheckResult(
        account_id=path.account_id,
        path=path.path,
        timestamp=raw.started_at,
        http_status=raw.http_status,
        network_error=raw.network_error,
        js_error_count=len(raw.js_errors),
        js_error_messages=tuple(e.message for e in kept),
        js_errors=tuple(kept),
        duration_ms=raw.duration_ms,
        verdict=verdict,
        reason_code=reason,
    )


def _without_stack(error: JsError) -> JsError:
    return error if error.stack is None else replace(error, stack=None)
