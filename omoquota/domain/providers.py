"""
Provider status model.

The tracker file stores provider statuses as plain JSON objects without a
type tag. classify() inspects the fields once, at the boundary, and returns
one of the explicit variants below; calculation code only ever sees those.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union

from omoquota.core.timeutil import parse_iso


class ProviderKind(str, Enum):
    """How a provider's capacity resets."""
    HOURLY = "hourly"
    MONTHLY = "monthly"
    BALANCE = "balance"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HourlyResetProvider:
    """
    Capacity pool that fully refills at next_reset.

    Attributes:
        next_reset: When the pool refills
        reset_interval: Interval string, e.g. "5h"
        last_reset: Start of the current window (None if never recorded)
        usage: Operator-declared percent used, 0-100
    """
    next_reset: datetime
    reset_interval: str
    last_reset: Optional[datetime] = None
    usage: Optional[float] = None
    kind: ProviderKind = field(default=ProviderKind.HOURLY, init=False)


@dataclass(frozen=True)
class MonthlyResetProvider:
    """Hard cap reset once per calendar month. `month` is advanced externally."""
    month: str
    used: float
    limit: float
    kind: ProviderKind = field(default=ProviderKind.MONTHLY, init=False)


@dataclass(frozen=True)
class BalanceProvider:
    """Prepaid balance with no reset. `balance` is kept as written, e.g. "¥450.50"."""
    balance: str
    currency: str
    kind: ProviderKind = field(default=ProviderKind.BALANCE, init=False)


@dataclass(frozen=True)
class UnknownProvider:
    """Status whose shape matches no variant, or whose fields are malformed."""
    raw: Any
    reason: str
    kind: ProviderKind = field(default=ProviderKind.UNKNOWN, init=False)


ProviderStatus = Union[
    HourlyResetProvider,
    MonthlyResetProvider,
    BalanceProvider,
    UnknownProvider,
]


def _number(value: Any) -> Optional[float]:
    # bool is an int subclass; true/false in JSON is not a quantity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _classify_monthly(raw: Mapping[str, Any]) -> ProviderStatus:
    limit = _number(raw.get("limit"))
    if limit is None:
        return UnknownProvider(raw, f"monthly provider has non-numeric limit: {raw.get('limit')!r}")

    # Older trackers recorded monthly consumption under "usage"
    used_raw = raw.get("used", raw.get("usage", 0))
    used = _number(used_raw)
    if used is None:
        return UnknownProvider(raw, f"monthly provider has non-numeric used: {used_raw!r}")

    return MonthlyResetProvider(month=str(raw["month"]), used=used, limit=limit)


def _classify_balance(raw: Mapping[str, Any]) -> ProviderStatus:
    balance = raw["balance"]
    if not isinstance(balance, (str, int, float)) or isinstance(balance, bool):
        return UnknownProvider(raw, f"balance must be a string, got {balance!r}")
    return BalanceProvider(balance=str(balance), currency=str(raw["currency"]))


def _classify_hourly(raw: Mapping[str, Any]) -> ProviderStatus:
    if "nextReset" not in raw:
        return UnknownProvider(raw, "hourly provider is missing nextReset")
    try:
        next_reset = parse_iso(raw["nextReset"])
    except ValueError:
        return UnknownProvider(raw, f"unparseable nextReset: {raw['nextReset']!r}")

    last_reset = None
    if raw.get("lastReset") is not None:
        try:
            last_reset = parse_iso(raw["lastReset"])
        except ValueError:
            return UnknownProvider(raw, f"unparseable lastReset: {raw['lastReset']!r}")

    usage = None
    if raw.get("usage") is not None:
        usage = _number(raw["usage"])
        if usage is None:
            return UnknownProvider(raw, f"non-numeric usage: {raw['usage']!r}")

    return HourlyResetProvider(
        next_reset=next_reset,
        reset_interval=str(raw["resetInterval"]),
        last_reset=last_reset,
        usage=usage,
    )


def classify(status: Any) -> ProviderStatus:
    """
    Classify a raw provider status by its fields.

    Precedence: month+limit -> monthly, balance+currency -> balance,
    resetInterval -> hourly, anything else -> unknown. Never raises;
    malformed values produce an UnknownProvider carrying the reason.
    """
    if not isinstance(status, Mapping):
        return UnknownProvider(status, f"status must be an object, got {type(status).__name__}")

    if "month" in status and "limit" in status:
        return _classify_monthly(status)
    if "balance" in status and "currency" in status:
        return _classify_balance(status)
    if "resetInterval" in status:
        return _classify_hourly(status)

    fields = ", ".join(sorted(status)) or "no fields"
    return UnknownProvider(status, f"unrecognized provider shape ({fields})")
