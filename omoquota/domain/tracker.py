"""
Tracker document: the single persisted state of omo-quota.

Provider statuses are kept as raw JSON objects so fields this version does
not understand survive a load/save round-trip. Use statuses() to get the
classified view.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from omoquota.core.timeutil import current_month, now_utc, to_iso
from omoquota.domain.providers import ProviderStatus, classify

DEFAULT_STRATEGY = "balanced"


@dataclass
class TrackerDocument:
    """
    Attributes:
        current_strategy: Name of the active strategy. May be a name the
            catalog does not know; that is reported, not rejected.
        providers: Raw provider status objects keyed by provider id
    """
    current_strategy: str = DEFAULT_STRATEGY
    providers: dict[str, dict[str, Any]] = field(default_factory=dict)

    def statuses(self) -> dict[str, ProviderStatus]:
        """Classify every provider status."""
        return {name: classify(raw) for name, raw in self.providers.items()}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk JSON shape."""
        return {
            "providers": self.providers,
            "currentStrategy": self.current_strategy,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackerDocument":
        return cls(
            current_strategy=data.get("currentStrategy", DEFAULT_STRATEGY),
            providers=dict(data.get("providers", {})),
        )


def default_tracker(now: Optional[datetime] = None) -> TrackerDocument:
    """
    Seeded tracker written by `omo-quota init`.

    Four 5-hour subscription pools, the monthly Copilot premium request cap,
    and three prepaid balances.
    """
    now = now or now_utc()
    hourly = {
        "lastReset": to_iso(now),
        "nextReset": to_iso(now + timedelta(hours=5)),
        "resetInterval": "5h",
    }
    return TrackerDocument(
        current_strategy=DEFAULT_STRATEGY,
        providers={
            "anthropic": dict(hourly),
            "google-1": dict(hourly),
            "google-2": dict(hourly),
            "zhipuai": dict(hourly),
            "github-copilot-premium": {
                "month": current_month(now),
                "used": 0,
                "limit": 300,
            },
            "deepseek": {"balance": "¥300", "currency": "CNY"},
            "siliconflow": {"balance": "¥200", "currency": "CNY"},
            "openrouter": {"balance": "$100", "currency": "USD"},
        },
    )


PROVIDER_NAMES: dict[str, str] = {
    "anthropic": "Claude Pro",
    "google-1": "Gemini Pro #1",
    "google-2": "Gemini Pro #2",
    "zhipuai": "ZhiPuAI Max",
    "fangzhou": "方舟 CodingPlan Pro",
    "github-copilot-premium": "GitHub Copilot Premium",
    "github-copilot-free": "GitHub Copilot Free",
    "deepseek": "DeepSeek",
    "siliconflow": "硅基流动",
    "openrouter": "OpenRouter",
}


def provider_display_name(provider: str) -> str:
    return PROVIDER_NAMES.get(provider, provider)
