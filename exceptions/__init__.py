"""
Exceptions Package for Model Vitals

Provides the exception hierarchy used for error handling
throughout the application.
"""

from exceptions.base import (
    VitalsException,
    ConfigurationError,
    InitializationError
)

from exceptions.database import (
    DatabaseException,
    DatabaseConnectionError,
    ResultWriteError
)

from exceptions.probe import (
    ProbeException,
    ProbeTimeoutError,
    TransportError,
    ProtocolError,
    CollectionRunnerError
)

from exceptions.exporter import (
    ExporterException,
    ExporterUnavailableError
)

__all__ = [
    # Base exceptions
    "VitalsException",
    "ConfigurationError",
    "InitializationError",

    # Database exceptions
    "DatabaseException",
    "DatabaseConnectionError",
    "ResultWriteError",

    # Probe exceptions
    "ProbeException",
    "ProbeTimeoutError",
    "TransportError",
    "ProtocolError",
    "CollectionRunnerError",

    # Exporter exceptions
    "ExporterException",
    "ExporterUnavailableError"
]
