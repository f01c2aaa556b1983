"""
Usage synchronizer.

Aggregates per-provider usage from OpenCode's message storage:

    <storage>/ses_<id>/msg_<id>.json

Each assistant message with a `tokens` object contributes its input and
output tokens, and one request, to its `providerID`.
"""

import json
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from omoquota.core.config import Settings, get_settings
from omoquota.core.logging import LoggerMixin
from omoquota.core.timeutil import current_month


@dataclass
class ProviderUsage:
    """Aggregated usage of one provider."""
    tokens: int = 0
    messages: int = 0
    monthly_messages: Counter = field(default_factory=Counter)

    def add(self, tokens: int, month: str) -> None:
        self.tokens += tokens
        self.messages += 1
        self.monthly_messages[month] += 1

    def messages_in(self, month: str) -> int:
        """Requests made during a YYYY-MM month."""
        return self.monthly_messages.get(month, 0)


def _int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    # json.load accepts NaN and Infinity
    if not math.isfinite(value):
        return 0
    return int(value)


class UsageSynchronizer(LoggerMixin):
    """Scans message storage and aggregates usage by provider."""

    def __init__(
        self,
        storage_path: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.storage_path = Path(storage_path) if storage_path else settings.message_storage_path

    def collect(self) -> dict[str, ProviderUsage]:
        """
        Aggregate usage across all sessions.

        Returns:
            Provider id -> usage. Empty if the storage directory is absent.
        """
        usage: dict[str, ProviderUsage] = {}
        if not self.storage_path.is_dir():
            self.logger.info(f"Message storage not found: {self.storage_path}")
            return usage

        scanned = 0
        for message_file in sorted(self.storage_path.glob("ses_*/msg_*.json")):
            message = self._parse_message(message_file)
            if message is None:
                continue
            scanned += 1
            provider, tokens, month = message
            usage.setdefault(provider, ProviderUsage()).add(tokens, month)

        self.logger.info(f"Scanned {scanned} assistant messages across {len(usage)} providers")
        return usage

    def _parse_message(self, path: Path) -> Optional[tuple[str, int, str]]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            self.logger.debug(f"Skipping unreadable message {path}: {e}")
            return None

        if not isinstance(content, dict) or content.get("role") != "assistant":
            return None
        tokens = content.get("tokens")
        if not isinstance(tokens, dict):
            return None

        provider = content.get("providerID") or "unknown"
        if not isinstance(provider, str):
            self.logger.debug(f"Skipping message {path}: providerID is not a string")
            return None
        total = _int(tokens.get("input")) + _int(tokens.get("output"))
        return provider, total, self._message_month(content)

    @staticmethod
    def _message_month(content: dict[str, Any]) -> str:
        times = content.get("time")
        created = times.get("created") if isinstance(times, dict) else None
        if isinstance(created, (int, float)) and not isinstance(created, bool):
            try:
                # Epoch milliseconds
                return current_month(datetime.fromtimestamp(created / 1000, tz=timezone.utc))
            except (ValueError, OverflowError, OSError):
                # Out of range for the platform; count it in the current month
                return current_month()
        return current_month()


def create_usage_synchronizer(settings: Optional[Settings] = None) -> UsageSynchronizer:
    return UsageSynchronizer(settings=settings)
