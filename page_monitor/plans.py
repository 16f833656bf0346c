# Plan tiers, check frequencies and the plan-limit table.

# Frequencies are gated per plan. Offering every frequency to every plan is
# treated as a regression, it would let free accounts poll every 15 minutes.

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from page_monitor.errors import ConfigValidationError


class PlanTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    GROWTH = "growth"


class Frequency(str, Enum):
    EVERY_15_MINUTES = "15m"
    EVERY_30_MINUTES = "30m"
    EVERY_HOUR = "1h"
    EVERY_3_HOURS = "3h"
    EVERY_6_HOURS = "6h"
    EVERY_12_HOURS = "12h"
    EVERY_DAY = "1d"

    @property
    def interval(self) -> timedelta:
        return _INTERVALS[self]

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def checks_per_day(self) -> int:
        return int(timedelta(days=1) / self.interval)


_INTERVALS: dict[Frequency, timedelta] = {
    Frequency.EVERY_15_MINUTES: timedelta(minutes=15),
    Frequency.EVERY_30_MINUTES: timedelta(minutes=30),
    Frequency.EVERY_HOUR:       timedelta(hours=1),
    Frequency.EVERY_3_HOURS:    timedelta(hours=3),
    Frequency.EVERY_6_HOURS:    timedelta(hours=6),
    Frequency.EVERY_12_HOURS:   timedelta(hours=12),
    Frequency.EVERY_DAY:        timedelta(days=1),
}

_LABELS: dict[Frequency, str] = {
    Frequency.EVERY_15_MINUTES: "Every 15 minutes",
    Frequency.EVERY_30_MINUTES: "Every 30 minutes",
    Frequency.EVERY_HOUR:       "Every 1 hour",
    Frequency.EVERY_3_HOURS:    "Every 3 hours",
    Frequency.EVERY_6_HOURS:    "Every 6 hours",
    Frequency.EVERY_12_HOURS:   "Every 12 hours",
    Frequency.EVERY_DAY:        "Every 1 day",
}


@dataclass(frozen=True)
class PlanLimits:
    max_paths: int
    frequencies: frozenset[Frequency]
    retention: timedelta
    js_error_detection: bool
    stack_traces: bool
    daily_alert_cap: int | None    # None = unbounded


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits(
        max_paths=5,
        frequencies=frozenset({Frequency.EVERY_6_HOURS}),
        retention=timedelta(days=7),
        js_error_detection=False,
        stack_traces=False,
        daily_alert_cap=3,
    ),
    PlanTier.STARTER: PlanLimits(
        max_paths=20,
        frequencies=frozenset({Frequency.EVERY_30_MINUTES, Frequency.EVERY_HOUR}),
        retention=timedelta(days=30),
        js_error_detection=True,
        stack_traces=True,
        daily_alert_cap=None,
    ),
    PlanTier.GROWTH: PlanLimits(
        max_paths=100,
        frequencies=frozenset({
            Frequency.EVERY_15_MINUTES,
            Frequency.EVERY_30_MINUTES,
            Frequency.EVERY_HOUR,
        }),
        retention=timedelta(days=90),
        js_error_detection=True,
        stack_traces=True,
        daily_alert_cap=None,
    ),
}


def limits_for(plan: PlanTier) -> PlanLimits:
    return PLAN_LIMITS[plan]


def parse_plan(value: str) -> PlanTier:
    try:
        return PlanTier(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(p.value for p in PlanTier)
        raise ConfigValidationError(f"Unknown plan {value!r} (expected one of: {allowed})") from None


def parse_frequency(value: str) -> Frequency:
    """
    Accepts the short form ('6h') or the label shown in settings
    ('Every 6 hours'), case-insensitively.
    """
    text = str(value).strip()
    for freq in Frequency:
        if text.lower() in (freq.value, freq.label.lower()):
            return freq
    raise ConfigValidationError(f"Unknown check frequency {value!r}")


def permitted_frequencies(plan: PlanTier) -> list[Frequency]:
    """Frequencies the plan may use, fastest first."""
    return sorted(PLAN_LIMITS[plan].frequencies, key=lambda f: f.interval)


def ensure_frequency_allowed(plan: PlanTier, frequency: Frequency) -> None:
    if frequency not in PLAN_LIMITS[plan].frequencies:
        allowed = ", ".join(f.label for f in permitted_frequencies(plan))
        raise ConfigValidationError(
            f"{frequency.label} is not available on the {plan.value} plan (allowed: {allowed})"
        )
