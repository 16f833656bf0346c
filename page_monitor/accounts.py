# Validates account configuration handed over by the settings/onboarding
# collaborator and turns it into an AccountConfig the scheduler can trust.

# Everything is checked here, once. Inside the engine a config is never
# coerced again:
#   - a missing leading slash is added before validation, as the path
#     manager does when a user types "pricing" instead of "/pricing"
#   - duplicate paths are rejected, not silently merged
#   - path count is bounded by the plan plus any add-on bundle capacity
#   - the frequency must be one the plan offers

import logging
from dataclasses import dataclass

from page_monitor.errors import ConfigValidationError
from page_monitor.plans import (
    Frequency,
    PlanLimits,
    PlanTier,
    ensure_frequency_allowed,
    limits_for,
    parse_frequency,
    parse_plan,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountConfig:
    account_id: str
    domain: str
    plan: PlanTier
    frequency: Frequency
    paths: tuple[str, ...]
    alert_email: str
    extra_paths: int = 0    # capacity bought through add-on bundles

    @property
    def limits(self) -> PlanLimits:
        return limits_for(self.plan)

    @property
    def max_paths(self) -> int:
        return self.limits.max_paths + self.extra_paths


def normalize_path(raw: str) -> str:
    path = str(raw).strip()
    if path and not path.startswith("/"):
        path = "/" + path
    return path


def validate_path(path: str) -> str:
    if not path:
        raise ConfigValidationError("Path must not be empty")
    if not path.startswith("/"):
        raise ConfigValidationError(f"Path {path!r} must be absolute (start with '/')")
    if any(ch.isspace() for ch in path):
        raise ConfigValidationError(f"Path {path!r} must not contain whitespace")
    return path


def normalize_domain(raw: str) -> str:
    domain = str(raw or "").strip().lower()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    domain = domain.rstrip("/")
    if not domain or "/" in domain or " " in domain:
        raise ConfigValidationError(f"Invalid domain {raw!r}")
    return domain


def _validate_email(raw: str) -> str:
    email = str(raw or "").strip()
    local, _, host = email.partition("@")
    if not local or "." not in host:
        raise ConfigValidationError(f"Invalid alert email {raw!r}")
    return email


def load_account(raw: dict) -> AccountConfig:
    """
    Build an AccountConfig from a plain dict.

    Raises ConfigValidationError with a message naming the offending field.
    """
    account_id = str(raw.get("account_id") or "").strip()
    if not account_id:
        raise ConfigValidationError("account_id is required")

    plan      = parse_plan(raw.get("plan", ""))
    frequency = parse_frequency(raw.get("frequency", ""))
    ensure_frequency_allowed(plan, frequency)

    extra_paths = int(raw.get("extra_paths", 0) or 0)
    if extra_paths < 0:
        raise ConfigValidationError("extra_paths must not be negative")

    paths: list[str] = []
    for entry in raw.get("paths") or []:
        path = validate_path(normalize_path(entry))
        if path in paths:
            raise ConfigValidationError(f"Path {path!r} is already being monitored")
        paths.append(path)

    account = AccountConfig(
        account_id=account_id,
        domain=normalize_domain(raw.get("domain", "")),
        plan=plan,
        frequency=frequency,
        paths=tuple(paths),
        alert_email=_validate_email(raw.get("alert_email", "")),
        extra_paths=extra_paths,
    )

    if len(account.paths) > account.max_paths:
        raise ConfigValidationError(
            f"{len(account.paths)} paths exceed the {plan.value} plan limit of {account.max_paths}"
        )

    log.debug(
        "Loaded account %s: %s, %d path(s), %s",
        account.account_id, account.domain, len(account.paths), frequency.label,
    )
    return account
