"""
Strategy catalog.

Maps strategy names to their JSONC source files. Read-only: the catalog
never touches the files themselves beyond checking they exist.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

from omoquota.core.config import Settings, get_settings, load_app_config


@dataclass(frozen=True)
class StrategyEntry:
    """One catalog entry."""
    name: str
    file: str
    display_name: str = ""
    use_case: str = ""


class StrategyCatalog:
    """Known strategies, in catalog order."""

    def __init__(self, entries: list[StrategyEntry], strategies_dir: Path):
        self._entries = {entry.name: entry for entry in entries}
        self.strategies_dir = Path(strategies_dir)

    @classmethod
    def from_config(
        cls,
        config: Optional[dict[str, Any]] = None,
        settings: Optional[Settings] = None,
    ) -> "StrategyCatalog":
        """Build from the `strategies:` section of config.yaml."""
        config = config or load_app_config()
        settings = settings or get_settings()
        entries = [
            StrategyEntry(
                name=name,
                file=spec["file"],
                display_name=spec.get("display_name", ""),
                use_case=spec.get("use_case", ""),
            )
            for name, spec in config.get("strategies", {}).items()
        ]
        return cls(entries, settings.strategies_dir)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[StrategyEntry]:
        return iter(self._entries.values())

    def names(self) -> list[str]:
        return list(self._entries)

    def get(self, name: str) -> Optional[StrategyEntry]:
        return self._entries.get(name)

    def path_for(self, name: str) -> Path:
        """
        Raises:
            KeyError: If the strategy is not in the catalog
        """
        return self.strategies_dir / self._entries[name].file

    def display_name(self, name: str) -> str:
        entry = self._entries.get(name)
        if entry is None:
            return "unknown"
        return entry.display_name or name
