"""
Tracker persistence.

The tracker is a single JSON document. Loading never fails the caller: a
missing file yields the default document and a corrupt one yields the
default document plus a diagnostic. Saving is atomic (temp file + rename)
and a failed save raises SaveError, which is fatal to the command.
"""

import contextlib
import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from omoquota.core.config import Settings, get_settings, load_app_config
from omoquota.core.errors import (
    CorruptStateError,
    InvalidUsageError,
    ProviderNotFoundError,
    SaveError,
)
from omoquota.core.logging import get_logger
from omoquota.core.timeutil import now_utc, parse_interval, to_iso
from omoquota.domain.providers import (
    HourlyResetProvider,
    MonthlyResetProvider,
    ProviderStatus,
    classify,
)
from omoquota.domain.tracker import DEFAULT_STRATEGY, TrackerDocument, default_tracker
from omoquota.services.usage_sync import ProviderUsage

logger = get_logger("tracker")

Number = Union[int, float]


class _TrackerFile(BaseModel):
    """Expected on-disk shape; anything else is treated as corrupt."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    current_strategy: str = Field(default=DEFAULT_STRATEGY, alias="currentStrategy")
    providers: dict[str, Any] = Field(default_factory=dict)


@dataclass
class LoadResult:
    """
    Outcome of loading the tracker.

    Attributes:
        document: Loaded document, or the default one
        exists: Whether the tracker file was present
        diagnostic: Set when the file existed but could not be used
    """
    document: TrackerDocument
    exists: bool = False
    diagnostic: Optional[CorruptStateError] = None

    @property
    def corrupted(self) -> bool:
        return self.diagnostic is not None


@dataclass
class SyncSummary:
    """Providers updated by a sync (id -> recorded value) and ids skipped."""
    updated: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


def _json_number(value: Number) -> Number:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _is_hourly_shape(raw: Any) -> bool:
    # Same precedence as classify(): monthly and balance fields win
    if not isinstance(raw, Mapping):
        return False
    if "month" in raw and "limit" in raw:
        return False
    if "balance" in raw and "currency" in raw:
        return False
    return "resetInterval" in raw


class TrackerStore:
    """
    JSON file backed tracker store.

    The path defaults to Settings.tracker_path, which honours the
    OMO_QUOTA_TRACKER_PATH override.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
        config: Optional[dict[str, Any]] = None,
    ):
        settings = settings or get_settings()
        self.path = Path(path) if path else settings.tracker_path
        self.config = config or load_app_config()

    @property
    def default_interval(self) -> str:
        return self.config.get("quota", {}).get("default_reset_interval", "5h")

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def load_result(self) -> LoadResult:
        """Load the tracker, reporting corruption instead of raising."""
        if not self.path.exists():
            return LoadResult(document=TrackerDocument(), exists=False)

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            parsed = _TrackerFile.model_validate(data)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            diagnostic = CorruptStateError(
                f"Tracker file is unreadable, using defaults: {e}",
                path=str(self.path),
            )
            logger.warning(diagnostic.message)
            return LoadResult(document=TrackerDocument(), exists=True, diagnostic=diagnostic)

        document = TrackerDocument(
            current_strategy=parsed.current_strategy,
            providers=dict(parsed.providers),
        )
        return LoadResult(document=document, exists=True)

    def load(self) -> TrackerDocument:
        return self.load_result().document

    def save(self, doc: TrackerDocument) -> None:
        """
        Write the tracker atomically.

        Raises:
            SaveError: If the directory or file cannot be written
        """
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc.to_dict(), f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            logger.error(f"Failed to save tracker {self.path}: {e}")
            raise SaveError(f"Failed to save tracker: {self.path}", path=str(self.path), cause=e) from e
        finally:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)

        logger.debug(f"Saved tracker: {self.path}")

    def initialize(self, force: bool = False, now: Optional[datetime] = None) -> bool:
        """
        Write the seeded default tracker.

        Returns:
            False if a tracker already existed and force was not given
        """
        if self.exists() and not force:
            return False
        self.save(default_tracker(now))
        logger.info(f"Initialized tracker: {self.path}")
        return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_strategy(self, name: str) -> TrackerDocument:
        """Record the active strategy. Only currentStrategy changes."""
        doc = self.load()
        doc.current_strategy = name
        self.save(doc)
        return doc

    def update_usage(self, provider: str, value: Number) -> ProviderStatus:
        """
        Set the raw usage number of one provider.

        Monthly providers take a request count (`used`); hourly providers
        take a percent used (`usage`, 0-100).

        Raises:
            ProviderNotFoundError: Provider id not in the tracker
            InvalidUsageError: Provider shape takes no usage, or value out of range
        """
        doc = self.load()
        raw = doc.providers.get(provider)
        if raw is None:
            raise ProviderNotFoundError(provider)

        if value < 0:
            raise InvalidUsageError(f"Usage must not be negative: {value}", provider=provider)

        status = classify(raw)
        if isinstance(status, MonthlyResetProvider):
            raw["used"] = _json_number(value)
            raw.pop("usage", None)
        elif isinstance(status, HourlyResetProvider):
            if value > 100:
                raise InvalidUsageError(
                    f"Hourly usage is a percentage (0-100), got {value}",
                    provider=provider,
                )
            raw["usage"] = _json_number(value)
        else:
            raise InvalidUsageError(
                f"Provider {provider} ({status.kind.value}) does not track usage",
                provider=provider,
            )

        self.save(doc)
        logger.info(f"Updated {provider} usage to {value}")
        return classify(raw)

    def reset(self, provider: str, now: Optional[datetime] = None) -> list[str]:
        """
        Re-baseline hourly providers: window restarts now, usage is cleared.

        Args:
            provider: Provider id, or "all" for every hourly provider.
                An unknown id starts tracking a new hourly provider.

        Returns:
            Ids that were reset

        Raises:
            InvalidUsageError: Provider exists but is not an hourly provider
        """
        now = now or now_utc()
        doc = self.load()

        if provider == "all":
            targets = [name for name, raw in doc.providers.items() if _is_hourly_shape(raw)]
        else:
            raw = doc.providers.get(provider)
            if raw is None:
                doc.providers[provider] = {"resetInterval": self.default_interval}
            elif not _is_hourly_shape(raw):
                raise InvalidUsageError(
                    f"Provider {provider} does not reset on an hourly window",
                    provider=provider,
                )
            targets = [provider]

        for name in targets:
            self._rebaseline(name, doc.providers[name], now)

        self.save(doc)
        return targets

    def _rebaseline(self, name: str, raw: dict[str, Any], now: datetime) -> None:
        try:
            interval = parse_interval(str(raw.get("resetInterval", self.default_interval)))
        except ValueError:
            logger.warning(
                f"{name}: invalid resetInterval {raw.get('resetInterval')!r}, "
                f"using {self.default_interval}"
            )
            raw["resetInterval"] = self.default_interval
            interval = parse_interval(self.default_interval)

        raw["lastReset"] = to_iso(now)
        raw["nextReset"] = to_iso(now + interval)
        raw.pop("usage", None)
        logger.info(f"Reset {name}; next reset {raw['nextReset']}")

    def sync(self, usage: Mapping[str, ProviderUsage]) -> SyncSummary:
        """
        Bulk-set usage from aggregated counts.

        Monthly providers get this month's message count as `used`; every
        other tracked provider records its token total as `tokens`.
        Providers the tracker does not track are skipped.
        """
        doc = self.load()
        summary = SyncSummary()

        for provider, counts in usage.items():
            raw = doc.providers.get(provider)
            if not isinstance(raw, dict):
                summary.skipped.append(provider)
                continue

            status = classify(raw)
            if isinstance(status, MonthlyResetProvider):
                raw["used"] = counts.messages_in(status.month)
                raw.pop("usage", None)
                summary.updated[provider] = raw["used"]
            else:
                raw["tokens"] = counts.tokens
                summary.updated[provider] = counts.tokens

        if summary.updated:
            self.save(doc)
        if summary.skipped:
            logger.info(f"Sync skipped untracked providers: {', '.join(sorted(summary.skipped))}")
        return summary


def create_tracker_store(settings: Optional[Settings] = None) -> TrackerStore:
    """Create tracker store at the configured path."""
    return TrackerStore(settings=settings)
