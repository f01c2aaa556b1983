"""
Quota arithmetic for classified provider statuses.

Turns a provider status into a normalized remaining percentage (0-100) and
a time-to-reset string. All functions are pure: `now` is injectable and no
I/O happens here. Malformed-but-classified input yields None, never an
exception; passing the wrong variant to a per-variant calculator is a
programmer error and raises TypeError.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional

from omoquota.core.config import load_app_config
from omoquota.core.timeutil import now_utc
from omoquota.domain.alerts import WarningLevel
from omoquota.domain.providers import (
    BalanceProvider,
    HourlyResetProvider,
    MonthlyResetProvider,
    ProviderKind,
    ProviderStatus,
    UnknownProvider,
)

EXPIRED = "expired"

# Window assumed when an hourly provider never recorded lastReset
DEFAULT_HOURLY_WINDOW = timedelta(hours=5)

# Assumed starting balance per currency. No initial balance is persisted,
# so balance percentages are an approximation.
DEFAULT_INITIAL_BALANCE: dict[str, float] = {"CNY": 500.0, "default": 100.0}

_BALANCE_NUMBER = re.compile(r"\d+(?:\.\d+)?")


@dataclass(frozen=True)
class WarningThresholds:
    """Remaining-percentage thresholds; a value strictly below one applies it."""
    warning: float = 20.0
    critical: float = 10.0

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "WarningThresholds":
        quota = (config or load_app_config()).get("quota", {})
        return cls(
            warning=float(quota.get("warning_threshold", cls.warning)),
            critical=float(quota.get("critical_threshold", cls.critical)),
        )


@dataclass(frozen=True)
class QuotaEstimate:
    """
    Derived quota figures for one provider.

    `expired` is distinct from a numeric 0%: an expired hourly provider
    needs a re-baseline (`omo-quota reset`), not a switch away.
    """
    provider: str
    kind: ProviderKind
    remaining_pct: Optional[float]
    level: WarningLevel
    expired: bool = False
    resets_in: Optional[str] = None
    error: Optional[str] = None

    @property
    def used_pct(self) -> Optional[float]:
        if self.remaining_pct is None:
            return None
        return round(100.0 - self.remaining_pct, 1)


def _round1(value: float) -> float:
    return round(value * 10) / 10


def assumed_initial_balance(
    currency: str,
    table: Optional[Mapping[str, float]] = None,
) -> float:
    """Assumed starting balance for a currency (500 CNY, 100 otherwise)."""
    table = table or DEFAULT_INITIAL_BALANCE
    return float(table.get(currency.upper(), table.get("default", 100.0)))


def parse_balance(balance: str) -> Optional[float]:
    """Numeric portion of a balance string such as "¥450.50" or "$1,200"."""
    match = _BALANCE_NUMBER.search(balance.replace(",", ""))
    if not match:
        return None
    return float(match.group(0))


def monthly_remaining(status: MonthlyResetProvider) -> Optional[float]:
    if not isinstance(status, MonthlyResetProvider):
        raise TypeError(f"expected MonthlyResetProvider, got {type(status).__name__}")
    if status.limit <= 0:
        return None
    return _round1((status.limit - status.used) * 100 / status.limit)


def hourly_window(status: HourlyResetProvider) -> timedelta:
    if status.last_reset is None:
        return DEFAULT_HOURLY_WINDOW
    return status.next_reset - status.last_reset


def is_expired(status: HourlyResetProvider, now: Optional[datetime] = None) -> bool:
    if not isinstance(status, HourlyResetProvider):
        raise TypeError(f"expected HourlyResetProvider, got {type(status).__name__}")
    return (now or now_utc()) >= status.next_reset


def hourly_remaining(
    status: HourlyResetProvider,
    now: Optional[datetime] = None,
) -> Optional[float]:
    """
    Time-weighted remaining capacity.

    The share of the window still ahead, further bounded by the declared
    usage when present. 0.0 once the window has passed.
    """
    if not isinstance(status, HourlyResetProvider):
        raise TypeError(f"expected HourlyResetProvider, got {type(status).__name__}")
    now = now or now_utc()

    total = hourly_window(status).total_seconds()
    if total <= 0:
        return None
    if now >= status.next_reset:
        return 0.0

    remaining_time = (status.next_reset - now).total_seconds()
    time_pct = min(100.0, remaining_time * 100 / total)
    if status.usage is None:
        return time_pct
    return max(0.0, min(100.0 - status.usage, time_pct))


def balance_remaining(
    status: BalanceProvider,
    initial_balance: Optional[Mapping[str, float]] = None,
) -> Optional[float]:
    if not isinstance(status, BalanceProvider):
        raise TypeError(f"expected BalanceProvider, got {type(status).__name__}")
    amount = parse_balance(status.balance)
    if amount is None:
        return None
    initial = assumed_initial_balance(status.currency, initial_balance)
    return max(0.0, min(100.0, _round1(amount * 100 / initial)))


def remaining_percentage(
    provider_id: str,
    status: ProviderStatus,
    now: Optional[datetime] = None,
    initial_balance: Optional[Mapping[str, float]] = None,
) -> Optional[float]:
    """
    Normalized remaining capacity for any classified status.

    Returns None for unknown shapes and for values that cannot be
    evaluated (limit <= 0, empty window, balance without a number).
    """
    if isinstance(status, MonthlyResetProvider):
        return monthly_remaining(status)
    if isinstance(status, HourlyResetProvider):
        return hourly_remaining(status, now)
    if isinstance(status, BalanceProvider):
        return balance_remaining(status, initial_balance)
    return None


def time_until_reset(next_reset: datetime, now: Optional[datetime] = None) -> str:
    """"{h}h {m}m" until next_reset, or "expired" once it has passed."""
    now = now or now_utc()
    if next_reset <= now:
        return EXPIRED

    total_minutes = int((next_reset - now).total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def classify_warning_level(
    remaining_pct: Optional[float],
    thresholds: Optional[WarningThresholds] = None,
) -> WarningLevel:
    thresholds = thresholds or WarningThresholds()
    if remaining_pct is None:
        return WarningLevel.UNKNOWN
    if remaining_pct < thresholds.critical:
        return WarningLevel.CRITICAL
    if remaining_pct < thresholds.warning:
        return WarningLevel.WARNING
    return WarningLevel.OK


def estimate(
    provider_id: str,
    status: ProviderStatus,
    now: Optional[datetime] = None,
    thresholds: Optional[WarningThresholds] = None,
    initial_balance: Optional[Mapping[str, float]] = None,
) -> QuotaEstimate:
    """Bundle remaining, expiry, time-to-reset and warning level."""
    now = now or now_utc()

    if isinstance(status, UnknownProvider):
        return QuotaEstimate(
            provider=provider_id,
            kind=status.kind,
            remaining_pct=None,
            level=WarningLevel.UNKNOWN,
            error=status.reason,
        )

    remaining = remaining_percentage(provider_id, status, now, initial_balance)

    expired = False
    resets_in = None
    if isinstance(status, HourlyResetProvider):
        expired = is_expired(status, now)
        resets_in = time_until_reset(status.next_reset, now)

    if expired:
        # Expired windows are a reset prompt, not a capacity warning
        level = WarningLevel.OK
    else:
        level = classify_warning_level(remaining, thresholds)

    return QuotaEstimate(
        provider=provider_id,
        kind=status.kind,
        remaining_pct=remaining,
        level=level,
        expired=expired,
        resets_in=resets_in,
    )


def estimate_all(
    statuses: Mapping[str, ProviderStatus],
    now: Optional[datetime] = None,
    thresholds: Optional[WarningThresholds] = None,
    initial_balance: Optional[Mapping[str, float]] = None,
) -> list[QuotaEstimate]:
    """Estimate every provider; one malformed status never hides the others."""
    now = now or now_utc()
    return [
        estimate(name, status, now, thresholds, initial_balance)
        for name, status in statuses.items()
    ]
