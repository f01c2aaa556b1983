"""
Alert definitions for the quota monitor.

Alerts are deterministic: the same statuses and thresholds always produce
the same alerts and keys.
"""

from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Any, Optional

from omoquota.core.timeutil import format_timestamp, now_utc


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    INFO = "info"
    MILD = "mild"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class WarningLevel(str, Enum):
    """Remaining-capacity classification used by `status`."""
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


@dataclass
class QuotaAlert:
    """
    A quota alert raised by one monitor tick.

    Attributes:
        key: De-duplication key, "{provider}-{decile}" or "{provider}-expired"
        provider: Provider id
        severity: Alert severity
        message: Human readable message
        used_pct: Percent of capacity used (None for expiry notices)
        triggered_at: Timestamp when the alert was raised
    """
    key: str
    provider: str
    severity: str
    message: str
    used_pct: Optional[float] = None
    triggered_at: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.triggered_at:
            self.triggered_at = format_timestamp(now_utc())

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return asdict(self)


def alert_key(provider: str, used_pct: float) -> str:
    """Alerts within the same 10% band of the same provider share a key."""
    return f"{provider}-{int(used_pct // 10)}"


def expired_key(provider: str) -> str:
    return f"{provider}-expired"
