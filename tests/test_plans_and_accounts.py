from __future__ import annotations

from datetime import timedelta

import pytest

from page_monitor.accounts import load_account, normalize_path
from page_monitor.errors import ConfigValidationError
from page_monitor.plans import (
    Frequency,
    PlanTier,
    ensure_frequency_allowed,
    limits_for,
    parse_frequency,
    permitted_frequencies,
)


def _raw(**overrides: object) -> dict:
    raw = {
        "account_id": "acme",
        "domain": "example.com",
        "plan": "free",
        "frequency": "Every 6 hours",
        "paths": ["/"],
        "alert_email": "ops@example.com",
    }
    raw.update(overrides)
    return raw


@pytest.mark.parametrize("plan", list(PlanTier))
def test_frequencies_outside_plan_are_rejected(plan: PlanTier) -> None:
    allowed = set(permitted_frequencies(plan))
    for freq in Frequency:
        if freq in allowed:
            ensure_frequency_allowed(plan, freq)
        else:
            with pytest.raises(ConfigValidationError):
                ensure_frequency_allowed(plan, freq)


def test_plan_table_matches_pricing() -> None:
    assert permitted_frequencies(PlanTier.FREE) == [Frequency.EVERY_6_HOURS]
    assert permitted_frequencies(PlanTier.STARTER) == [Frequency.EVERY_30_MINUTES, Frequency.EVERY_HOUR]
    assert permitted_frequencies(PlanTier.GROWTH) == [
        Frequency.EVERY_15_MINUTES,
        Frequency.EVERY_30_MINUTES,
        Frequency.EVERY_HOUR,
    ]
    assert limits_for(PlanTier.FREE).retention == timedelta(days=7)
    assert limits_for(PlanTier.STARTER).retention == timedelta(days=30)
    assert limits_for(PlanTier.GROWTH).retention == timedelta(days=90)
    assert limits_for(PlanTier.FREE).js_error_detection is False
    assert limits_for(PlanTier.FREE).daily_alert_cap == 3
    assert limits_for(PlanTier.STARTER).daily_alert_cap is None


def test_parse_frequency_accepts_labels_and_short_form() -> None:
    assert parse_frequency("Every 15 minutes") is Frequency.EVERY_15_MINUTES
    assert parse_frequency("every 1 hour") is Frequency.EVERY_HOUR
    assert parse_frequency("12h") is Frequency.EVERY_12_HOURS
    assert Frequency.EVERY_15_MINUTES.checks_per_day == 96
    with pytest.raises(ConfigValidationError):
        parse_frequency("Every 5 minutes")


def test_free_plan_rejects_15_minutes_and_accepts_6_hours() -> None:
    with pytest.raises(ConfigValidationError, match="not available on the free plan"):
        load_account(_raw(frequency="Every 15 minutes"))

    account = load_account(_raw(frequency="Every 6 hours"))
    assert account.frequency is Frequency.EVERY_6_HOURS
    assert account.plan is PlanTier.FREE


def test_paths_are_normalized_at_the_boundary() -> None:
    assert normalize_path(" pricing ") == "/pricing"
    account = load_account(_raw(paths=["pricing", "/about"]))
    assert account.paths == ("/pricing", "/about")


def test_duplicate_and_malformed_paths_are_rejected() -> None:
    with pytest.raises(ConfigValidationError, match="already being monitored"):
        load_account(_raw(paths=["/a", "a"]))
    with pytest.raises(ConfigValidationError):
        load_account(_raw(paths=["/has space"]))
    with pytest.raises(ConfigValidationError):
        load_account(_raw(paths=["   "]))


def test_path_limit_includes_add_on_capacity() -> None:
    six = [f"/p{i}" for i in range(6)]
    with pytest.raises(ConfigValidationError, match="plan limit of 5"):
        load_account(_raw(paths=six))

    account = load_account(_raw(paths=six, extra_paths=10))
    assert account.max_paths == 15
    assert len(account.paths) == 6


def test_domain_email_and_plan_are_validated() -> None:
    assert load_account(_raw(domain="https://Example.com/")).domain == "example.com"
    with pytest.raises(ConfigValidationError):
        load_account(_raw(domain="example.com/blog"))
    with pytest.raises(ConfigValidationError):
        load_account(_raw(alert_email="not-an-email"))
    with pytest.raises(ConfigValidationError, match="Unknown plan"):
        load_account(_raw(plan="enterprise"))
    with pytest.raises(ConfigValidationError, match="account_id"):
        load_account(_raw(account_id=""))
