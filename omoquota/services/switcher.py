"""
Strategy switch transaction.

Stages, in order:

    VALIDATING -> BACKING_UP -> INSTALLING -> RECORDING -> DONE

Any failure moves to FAILED and raises a StrategySwitchError naming the
stage. The active configuration file is never left missing or half
written: it is backed up before any change, the new strategy is written
to a sibling temp file and renamed into place, and a failed install
restores the backup. A failure while recording the strategy in the
tracker does not roll back the (valid) installed configuration.

Strategy files are opaque JSONC and are copied byte-for-byte.
"""

import contextlib
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from omoquota.core.config import Settings, get_settings
from omoquota.core.errors import (
    BackupError,
    InstallError,
    OmoQuotaError,
    StrategyFileMissingError,
    TrackerRecordError,
    UnknownStrategyError,
)
from omoquota.core.logging import LoggerMixin
from omoquota.services.catalog import StrategyCatalog
from omoquota.services.tracker_store import TrackerStore

CopyFunc = Callable[[Path, Path], object]


class SwitchStage(str, Enum):
    """Transaction stages."""
    IDLE = "idle"
    VALIDATING = "validating"
    BACKING_UP = "backing_up"
    INSTALLING = "installing"
    RECORDING = "recording"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SwitchResult:
    """
    Successful switch.

    The consuming process only reads its configuration at startup, so it
    must be restarted to pick up the change (restart_required).
    """
    strategy: str
    previous_strategy: str
    config_path: Path
    backup_path: Optional[Path] = None
    stages: list[SwitchStage] = field(default_factory=list)
    restart_required: bool = True


class StrategySwitcher(LoggerMixin):
    """
    Swaps the active configuration for a catalog strategy.

    Args:
        catalog: Strategy name -> source file mapping
        store: Tracker store that records the active strategy
        config_path: Active configuration file
        backup_path: Single retained backup of the previous configuration
        copy_file: Byte copy used for backup and install
    """

    def __init__(
        self,
        catalog: StrategyCatalog,
        store: TrackerStore,
        config_path: Path,
        backup_path: Path,
        copy_file: CopyFunc = shutil.copyfile,
    ):
        self.catalog = catalog
        self.store = store
        self.config_path = Path(config_path)
        self.backup_path = Path(backup_path)
        self._copy = copy_file
        self.stage = SwitchStage.IDLE

    @property
    def _install_tmp_path(self) -> Path:
        return self.config_path.with_name(f".{self.config_path.name}.installing")

    def _enter(self, stage: SwitchStage, result: SwitchResult) -> None:
        self.stage = stage
        result.stages.append(stage)
        self.logger.debug(f"switch {result.strategy}: {stage.value}")

    def switch(self, name: str) -> SwitchResult:
        """
        Run the full transaction. Switching to the active strategy is legal
        and still performs every stage.

        Raises:
            UnknownStrategyError: Name not in catalog (nothing touched)
            StrategyFileMissingError: Strategy source missing (nothing touched)
            BackupError: Backup failed (active config untouched)
            InstallError: Install failed; see `config_intact` / `restored`
            TrackerRecordError: Config installed, tracker not updated
        """
        previous = self.store.load().current_strategy
        result = SwitchResult(
            strategy=name,
            previous_strategy=previous,
            config_path=self.config_path,
        )
        self.stage = SwitchStage.IDLE

        try:
            self._enter(SwitchStage.VALIDATING, result)
            source = self._validate(name)

            self._enter(SwitchStage.BACKING_UP, result)
            result.backup_path = self._backup(name)

            self._enter(SwitchStage.INSTALLING, result)
            self._install(name, source, result.backup_path)

            self._enter(SwitchStage.RECORDING, result)
            self._record(name)
        except OmoQuotaError:
            self.stage = SwitchStage.FAILED
            result.stages.append(SwitchStage.FAILED)
            raise

        self._enter(SwitchStage.DONE, result)
        self.logger.info(f"Switched strategy {previous} -> {name}")
        return result

    def _validate(self, name: str) -> Path:
        if name not in self.catalog:
            raise UnknownStrategyError(name, available=self.catalog.names())
        source = self.catalog.path_for(name)
        if not source.is_file():
            raise StrategyFileMissingError(name, path=str(source))
        return source

    def _backup(self, name: str) -> Optional[Path]:
        if not self.config_path.exists():
            self.logger.info(f"No active configuration at {self.config_path}; nothing to back up")
            return None
        try:
            self.backup_path.parent.mkdir(parents=True, exist_ok=True)
            self._copy(self.config_path, self.backup_path)
        except OSError as e:
            self.logger.error(f"Backup to {self.backup_path} failed: {e}")
            raise BackupError(name, path=str(self.backup_path), cause=e) from e
        self.logger.info(f"Backed up active configuration to {self.backup_path}")
        return self.backup_path

    def _install(self, name: str, source: Path, backup: Optional[Path]) -> None:
        tmp = self._install_tmp_path
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self._copy(source, tmp)
            os.replace(tmp, self.config_path)
        except OSError as e:
            self.logger.error(f"Installing {source} failed: {e}")
            with contextlib.suppress(OSError):
                tmp.unlink()
            restored, intact = self._restore(backup)
            raise InstallError(name, config_intact=intact, restored=restored, cause=e) from e

    def _restore(self, backup: Optional[Path]) -> tuple[bool, bool]:
        """
        Put the backup back over the active configuration.

        Returns:
            (restored, config_intact)
        """
        if backup is None:
            # There was no active config before; there is none now either
            return False, not self.config_path.exists()
        try:
            shutil.copyfile(backup, self.config_path)
        except OSError as e:
            self.logger.critical(
                f"Could not restore {self.config_path} from {backup}: {e}. "
                f"Restore it manually."
            )
            return False, False
        self.logger.warning(f"Restored previous configuration from {backup}")
        return True, True

    def _record(self, name: str) -> None:
        try:
            self.store.set_strategy(name)
        except OmoQuotaError as e:
            self.logger.error(f"Recording strategy {name} in tracker failed: {e}")
            raise TrackerRecordError(name, cause=e) from e


def create_strategy_switcher(
    store: Optional[TrackerStore] = None,
    settings: Optional[Settings] = None,
) -> StrategySwitcher:
    """Create switcher wired to the configured paths."""
    settings = settings or get_settings()
    return StrategySwitcher(
        catalog=StrategyCatalog.from_config(settings=settings),
        store=store or TrackerStore(settings=settings),
        config_path=settings.active_config_path,
        backup_path=settings.backup_config_path,
    )
