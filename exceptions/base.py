"""
Base Exception Classes for Model Vitals

Root of the exception hierarchy. Probe, exporter and database errors
derive from VitalsException so callers can catch the whole family at
the seams where failures are turned into outcomes or log lines.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from datetime import datetime, timezone

from config.constants import ErrorCodes


class VitalsException(Exception):
    """
    Base Exception Class

    Attributes:
        message: Human-readable error message
        error_code: Numeric code from ErrorCodes
        details: Structured context (target, config key, attempts, ...)
        cause: The lower-level exception, if any
        timestamp: When the error was raised (UTC)
    """

    default_error_code: int = ErrorCodes.UNKNOWN_ERROR

    def __init__(
        self,
        message: str = "An error occurred",
        error_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Overrides the class default code
            details: Extra context merged into ``details``
            cause: The underlying exception
        """
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details: Dict[str, Any] = dict(details or {})
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the error, for structured logs."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "cause": repr(self.cause) if self.cause else None,
        }

    def log_format(self) -> str:
        """
        One-line rendering used in log records.

        Returns:
            ``Type [code]: message | key=value ... | cause: ...``
        """
        line = f"{self.__class__.__name__} [{self.error_code}]: {self.message}"

        if self.details:
            line += " | " + " ".join(f"{k}={v}" for k, v in self.details.items())

        if self.cause:
            line += f" | cause: {type(self.cause).__name__}: {self.cause}"

        return line

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code}, "
            f"details={self.details})"
        )


class ConfigurationError(VitalsException):
    """
    Configuration Error

    Raised when the settings or the targets file are invalid: duplicate
    monitor names, unknown probe kinds, bad cron expressions, missing
    exporter URL. Fatal at startup; the process exits with status 2.
    """

    default_error_code = ErrorCodes.CONFIGURATION_ERROR

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Args:
            message: Error message
            config_key: Setting or targets-file location at fault
            **kwargs: Passed to VitalsException
        """
        super().__init__(message, **kwargs)

        if config_key:
            self.details["config_key"] = config_key


class InitializationError(VitalsException):
    """
    Raised when an optional component (results server) cannot start.
    """

    default_error_code = ErrorCodes.INITIALIZATION_ERROR

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if component:
            self.details["component"] = component
