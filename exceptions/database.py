"""
Database Exception Classes for Model Vitals

Provides specialized exceptions for result-store errors. The store is an
advisory channel: these are logged, never propagated into probe outcomes.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from config.constants import ErrorCodes
from exceptions.base import VitalsException


class DatabaseException(VitalsException):
    """
    Base Database Exception

    Parent class for all database-related exceptions.
    """

    default_error_code = ErrorCodes.DB_ERROR

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize database exception.

        Args:
            message: Error message
            table: The database table involved
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        if table:
            self.details["table"] = table


class DatabaseConnectionError(DatabaseException):
    """
    Database Connection Error

    Raised when unable to establish or maintain the database connection.
    """

    default_error_code = ErrorCodes.DB_CONNECTION_ERROR

    def __init__(
        self,
        message: str = "Unable to connect to database",
        url: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if url:
            self.details["url"] = mask_password(url)


class ResultWriteError(DatabaseException):
    """
    Result Write Error

    Raised when appending a monitoring result fails after all attempts.
    """

    default_error_code = ErrorCodes.DB_WRITE_ERROR

    def __init__(
        self,
        message: str = "Failed to write monitoring result",
        series_id: Optional[str] = None,
        attempts: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, table="monitoring_results", **kwargs)

        if series_id:
            self.details["series_id"] = series_id

        if attempts:
            self.details["attempts"] = attempts


def mask_password(url: str) -> str:
    """
    Mask the password in a database URL for logging.

    Args:
        url: Database URL

    Returns:
        Masked URL
    """
    return re.sub(r"(://[^:/@]+:)[^@]*@", r"\1****@", url)
