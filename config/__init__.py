"""
Configuration Package for Model Vitals

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the application

Probe targets live in ``config.targets`` and are imported from there
directly (they depend on the exceptions package).
"""

from config.settings import (
    Settings,
    ExporterSettings,
    ProbeSettings,
    DatabaseSettings,
    LoggingSettings,
    WebSettings
)

from config.constants import (
    ProbeKind,
    ProbeState,
    PingState,
    RunMode,
    ExitCode,
    StatusCodes,
    Messages,
    ProbeRequests,
    Limits,
    Defaults,
    ErrorCodes
)

__all__ = [
    # Settings
    "Settings",
    "ExporterSettings",
    "ProbeSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "WebSettings",

    # Constants
    "ProbeKind",
    "ProbeState",
    "PingState",
    "RunMode",
    "ExitCode",
    "StatusCodes",
    "Messages",
    "ProbeRequests",
    "Limits",
    "Defaults",
    "ErrorCodes"
]
