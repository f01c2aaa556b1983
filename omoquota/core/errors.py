"""
Unified exception definitions for omo-quota.

All custom exceptions inherit from OmoQuotaError for easy catching.

Process exit codes (stable; scripts may branch on them):

    0  success
    1  general error (OmoQuotaError, unknown provider, invalid usage)
    2  command-line usage error (raised by click)
    3  SaveError - tracker file could not be written
    4  UnknownStrategyError
    5  StrategyFileMissingError
    6  BackupError
    7  InstallError
    8  TrackerRecordError
"""

from typing import Any, Optional


class OmoQuotaError(Exception):
    """Base exception for all omo-quota errors."""

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "OMO_QUOTA_ERROR"
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging/serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class CorruptStateError(OmoQuotaError):
    """
    Tracker file exists but is unreadable or has the wrong shape.

    Never raised to callers: TrackerStore attaches it to the load result
    and falls back to the default document.
    """

    def __init__(self, message: str, *, path: str, **kwargs):
        details = kwargs.pop("details", {})
        details["path"] = path
        super().__init__(message, code="CORRUPT_STATE", details=details, **kwargs)
        self.path = path


class SaveError(OmoQuotaError):
    """Tracker file could not be written. Fatal to the invoking command."""

    exit_code = 3

    def __init__(self, message: str, *, path: str, cause: Optional[Exception] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["path"] = path
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, code="SAVE_ERROR", details=details, **kwargs)
        self.path = path
        self.cause = cause


class ProviderNotFoundError(OmoQuotaError):
    """Provider id is not present in the tracker."""

    def __init__(self, provider: str, **kwargs):
        details = kwargs.pop("details", {})
        details["provider"] = provider
        super().__init__(
            f"Provider not found: {provider}",
            code="PROVIDER_NOT_FOUND",
            details=details,
            **kwargs,
        )
        self.provider = provider


class InvalidUsageError(OmoQuotaError):
    """Operation does not apply to the provider or the value is out of range."""

    def __init__(self, message: str, *, provider: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["provider"] = provider
        super().__init__(message, code="INVALID_USAGE", details=details, **kwargs)
        self.provider = provider


class StrategySwitchError(OmoQuotaError):
    """
    Strategy switch transaction failed.

    Attributes:
        stage: Transaction stage that failed
        config_intact: Whether the active configuration file is guaranteed
            to be a complete, valid file after the failure
    """

    def __init__(
        self,
        message: str,
        *,
        strategy: str,
        stage: str,
        config_intact: bool,
        code: str = "SWITCH_ERROR",
        cause: Optional[Exception] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["strategy"] = strategy
        details["stage"] = stage
        details["config_intact"] = config_intact
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, code=code, details=details, **kwargs)
        self.strategy = strategy
        self.stage = stage
        self.config_intact = config_intact
        self.cause = cause


class UnknownStrategyError(StrategySwitchError):
    """Requested strategy is not in the catalog."""

    exit_code = 4

    def __init__(self, strategy: str, *, available: list[str], **kwargs):
        details = kwargs.pop("details", {})
        details["available"] = available
        super().__init__(
            f"Unknown strategy: {strategy}. Available: {', '.join(available)}",
            strategy=strategy,
            stage="validating",
            config_intact=True,
            code="UNKNOWN_STRATEGY",
            details=details,
            **kwargs,
        )
        self.available = available


class StrategyFileMissingError(StrategySwitchError):
    """Strategy is known but its source file does not exist."""

    exit_code = 5

    def __init__(self, strategy: str, *, path: str, **kwargs):
        details = kwargs.pop("details", {})
        details["path"] = path
        super().__init__(
            f"Strategy file not found: {path}",
            strategy=strategy,
            stage="validating",
            config_intact=True,
            code="STRATEGY_FILE_MISSING",
            details=details,
            **kwargs,
        )
        self.path = path


class BackupError(StrategySwitchError):
    """Active configuration could not be backed up. Nothing was changed."""

    exit_code = 6

    def __init__(self, strategy: str, *, path: str, cause: Optional[Exception] = None, **kwargs):
        super().__init__(
            f"Failed to back up active configuration to {path}",
            strategy=strategy,
            stage="backing_up",
            config_intact=True,
            code="BACKUP_ERROR",
            cause=cause,
            **kwargs,
        )
        self.path = path


class InstallError(StrategySwitchError):
    """Strategy file could not be installed as the active configuration."""

    exit_code = 7

    def __init__(
        self,
        strategy: str,
        *,
        config_intact: bool,
        restored: bool,
        cause: Optional[Exception] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["restored"] = restored
        super().__init__(
            f"Failed to install strategy '{strategy}'",
            strategy=strategy,
            stage="installing",
            config_intact=config_intact,
            code="INSTALL_ERROR",
            cause=cause,
            details=details,
            **kwargs,
        )
        self.restored = restored


class TrackerRecordError(StrategySwitchError):
    """
    Strategy was installed but the tracker could not record it.

    The active configuration and the tracker's current strategy diverge.
    """

    exit_code = 8

    def __init__(self, strategy: str, *, cause: Optional[Exception] = None, **kwargs):
        super().__init__(
            f"Strategy '{strategy}' installed but tracker was not updated",
            strategy=strategy,
            stage="recording",
            config_intact=True,
            code="TRACKER_RECORD_ERROR",
            cause=cause,
            **kwargs,
        )
