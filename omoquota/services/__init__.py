"""
Services module - Stateful operations

Contains:
- Usage synchronization from message storage
- Tracker persistence
- Strategy catalog and switch transaction
- Quota monitor loop
"""

from omoquota.services.usage_sync import UsageSynchronizer, ProviderUsage
from omoquota.services.tracker_store import TrackerStore, LoadResult, create_tracker_store
from omoquota.services.catalog import StrategyCatalog
from omoquota.services.switcher import StrategySwitcher, SwitchResult, create_strategy_switcher
from omoquota.services.monitor import QuotaMonitor, MonitorScheduler, evaluate_tick

__all__ = [
    "UsageSynchronizer",
    "ProviderUsage",
    "TrackerStore",
    "LoadResult",
    "create_tracker_store",
    "StrategyCatalog",
    "StrategySwitcher",
    "SwitchResult",
    "create_strategy_switcher",
    "QuotaMonitor",
    "MonitorScheduler",
    "evaluate_tick",
]
