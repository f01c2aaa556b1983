"""
Quota monitor loop for `omo-quota watch`.

Each tick: sync usage, reload the tracker, evaluate every provider against
the warning threshold, and optionally switch to the economical strategy.

De-duplication state is explicit: evaluate_tick() takes the keys that fired
on the previous tick and returns the keys firing now. The returned set
replaces the previous one, so a provider that recovers drops out and will
alert again if it degrades later.

Scheduling uses APScheduler with a single worker and max_instances=1, so
only one tick is ever in flight and a slow tick delays the next one.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from omoquota.core.config import Settings, get_settings, load_app_config
from omoquota.core.errors import OmoQuotaError, SaveError
from omoquota.core.logging import get_logger
from omoquota.core.quota import WarningThresholds, estimate
from omoquota.core.timeutil import now_utc
from omoquota.domain.alerts import AlertSeverity, QuotaAlert, alert_key, expired_key
from omoquota.domain.providers import ProviderStatus
from omoquota.services.switcher import StrategySwitcher, SwitchResult
from omoquota.services.tracker_store import TrackerStore
from omoquota.services.usage_sync import UsageSynchronizer

logger = get_logger("monitor")

CRITICAL_USED_PCT = 90.0
ELEVATED_USED_PCT = 80.0


@dataclass
class TickResult:
    """
    Outcome of one evaluation.

    Attributes:
        alerts: Alerts whose keys were not firing on the previous tick
        keys: Every key firing now; pass to the next tick
        all_clear: Nothing fires now, something fired before
        switch_to: Strategy to switch to, when auto-switch applies
        warnings: Per-provider problems (unknown shapes)
    """
    alerts: list[QuotaAlert] = field(default_factory=list)
    keys: frozenset[str] = frozenset()
    all_clear: bool = False
    switch_to: Optional[str] = None
    warnings: dict[str, str] = field(default_factory=dict)


def _severity(used_pct: float) -> AlertSeverity:
    if used_pct >= CRITICAL_USED_PCT:
        return AlertSeverity.CRITICAL
    if used_pct >= ELEVATED_USED_PCT:
        return AlertSeverity.ELEVATED
    return AlertSeverity.MILD


def _message(provider: str, used_pct: float, severity: AlertSeverity, economical: str) -> str:
    if severity == AlertSeverity.CRITICAL:
        return f"{provider}: {used_pct:.1f}% used - critically low, switch to {economical} now"
    if severity == AlertSeverity.ELEVATED:
        return f"{provider}: {used_pct:.1f}% used - quota tight, consider {economical}"
    return f"{provider}: {used_pct:.1f}% used - quota running low"


def evaluate_tick(
    statuses: Mapping[str, ProviderStatus],
    previous_keys: frozenset[str],
    *,
    threshold: float,
    current_strategy: str,
    auto_switch: bool = False,
    economical_strategy: str = "economical",
    now: Optional[datetime] = None,
    thresholds: Optional[WarningThresholds] = None,
    initial_balance: Optional[Mapping[str, float]] = None,
) -> TickResult:
    """
    Evaluate all providers once. Pure; no I/O.

    Args:
        statuses: Classified provider statuses
        previous_keys: Keys returned by the previous tick
        threshold: Alert when remaining capacity is below this percent
        current_strategy: Active strategy name
        auto_switch: Request a switch on a new critical alert
        economical_strategy: Strategy to switch to
        now: Evaluation time
        thresholds: Warning levels attached to each estimate
        initial_balance: Assumed starting balance per currency
    """
    now = now or now_utc()
    result = TickResult()
    firing: set[str] = set()

    for provider, status in statuses.items():
        est = estimate(provider, status, now, thresholds, initial_balance)

        if est.error is not None:
            result.warnings[provider] = est.error
            continue

        if est.expired:
            key = expired_key(provider)
            firing.add(key)
            if key not in previous_keys:
                result.alerts.append(QuotaAlert(
                    key=key,
                    provider=provider,
                    severity=AlertSeverity.INFO.value,
                    message=f"{provider}: reset window has passed, run `omo-quota reset {provider}`",
                ))
            continue

        if est.used_pct is None or est.used_pct < 100 - threshold:
            continue

        key = alert_key(provider, est.used_pct)
        firing.add(key)
        if key in previous_keys:
            continue

        severity = _severity(est.used_pct)
        result.alerts.append(QuotaAlert(
            key=key,
            provider=provider,
            severity=severity.value,
            message=_message(provider, est.used_pct, severity, economical_strategy),
            used_pct=est.used_pct,
        ))
        if (
            severity == AlertSeverity.CRITICAL
            and auto_switch
            and current_strategy != economical_strategy
        ):
            result.switch_to = economical_strategy

    result.keys = frozenset(firing)
    result.all_clear = not firing and bool(previous_keys)
    return result


class QuotaMonitor:
    """
    Stateful driver around evaluate_tick().

    Holds only the previous tick's key set. A failing tick is logged and
    the loop continues; a SaveError is re-raised so the caller stops.
    """

    def __init__(
        self,
        store: TrackerStore,
        synchronizer: Optional[UsageSynchronizer],
        switcher: Optional[StrategySwitcher] = None,
        *,
        threshold: float = 20.0,
        auto_switch: bool = False,
        economical_strategy: Optional[str] = None,
        on_tick: Optional[Callable[[TickResult], None]] = None,
        on_switch: Optional[Callable[[SwitchResult], None]] = None,
    ):
        self.store = store
        self.synchronizer = synchronizer
        self.switcher = switcher
        self.threshold = threshold
        self.auto_switch = auto_switch
        config = load_app_config()
        self.economical_strategy = economical_strategy or config.get(
            "monitor", {}
        ).get("economical_strategy", "economical")
        self.thresholds = WarningThresholds.from_config(config)
        self.initial_balance = config.get("quota", {}).get("initial_balance")
        self.on_tick = on_tick
        self.on_switch = on_switch
        self.keys: frozenset[str] = frozenset()

    def tick(self, now: Optional[datetime] = None) -> Optional[TickResult]:
        """Run one sync-evaluate cycle. Returns None if the tick failed."""
        try:
            if self.synchronizer is not None:
                self.store.sync(self.synchronizer.collect())

            doc = self.store.load()
            result = evaluate_tick(
                doc.statuses(),
                self.keys,
                threshold=self.threshold,
                current_strategy=doc.current_strategy,
                auto_switch=self.auto_switch,
                economical_strategy=self.economical_strategy,
                now=now,
                thresholds=self.thresholds,
                initial_balance=self.initial_balance,
            )
            self.keys = result.keys

            if self.on_tick is not None:
                self.on_tick(result)

            if result.switch_to and self.switcher is not None:
                logger.warning(f"Auto-switching to {result.switch_to}")
                switched = self.switcher.switch(result.switch_to)
                if self.on_switch is not None:
                    self.on_switch(switched)
            return result
        except SaveError:
            raise
        except OmoQuotaError as e:
            logger.error(f"Quota check failed: {e.to_dict()}")
            return None


class MonitorScheduler:
    """
    Runs QuotaMonitor.tick on a fixed interval.

    BackgroundScheduler with one worker thread: ticks never overlap and
    missed runs are coalesced.
    """

    def __init__(
        self,
        monitor: QuotaMonitor,
        interval_seconds: int,
        settings: Optional[Settings] = None,
    ):
        self.monitor = monitor
        self.interval_seconds = interval_seconds
        self.settings = settings or get_settings()
        self._scheduler: Optional[BackgroundScheduler] = None
        self.failed: Optional[BaseException] = None

    @property
    def scheduler(self) -> BackgroundScheduler:
        """Lazy-initialize scheduler."""
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(
                executors={"default": ThreadPoolExecutor(max_workers=1)},
                job_defaults={"coalesce": True, "max_instances": 1},
                timezone=self.settings.timezone,
            )
        return self._scheduler

    def _run_tick(self) -> None:
        try:
            self.monitor.tick()
        except SaveError as e:
            # Cannot persist state: stop ticking, caller exits non-zero
            logger.critical(f"Stopping monitor: {e.message}")
            self.failed = e
            self.scheduler.pause()

    def start(self) -> None:
        """Start ticking; the first check runs immediately."""
        self.scheduler.add_job(
            self._run_tick,
            "interval",
            seconds=self.interval_seconds,
            id="quota_check",
            name="quota_check",
            next_run_time=now_utc(),
            replace_existing=True,
        )
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info(f"Monitor started, interval {self.interval_seconds}s")

    def stop(self) -> None:
        """Stop the scheduler, waiting for an in-flight tick to finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            logger.info("Monitor stopped")

    def next_run(self) -> Optional[str]:
        job = self.scheduler.get_job("quota_check")
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()
