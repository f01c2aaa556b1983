"""
Domain module - Tracker and provider status models

Pure data models without I/O.
"""

from omoquota.domain.providers import (
    ProviderKind,
    HourlyResetProvider,
    MonthlyResetProvider,
    BalanceProvider,
    UnknownProvider,
    ProviderStatus,
    classify,
)
from omoquota.domain.tracker import TrackerDocument, default_tracker
from omoquota.domain.alerts import AlertSeverity, WarningLevel, QuotaAlert

__all__ = [
    # Providers
    "ProviderKind",
    "HourlyResetProvider",
    "MonthlyResetProvider",
    "BalanceProvider",
    "UnknownProvider",
    "ProviderStatus",
    "classify",
    # Tracker
    "TrackerDocument",
    "default_tracker",
    # Alerts
    "AlertSeverity",
    "WarningLevel",
    "QuotaAlert",
]
