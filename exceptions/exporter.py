"""
Exporter Exception Classes for Model Vitals

Raised per ping attempt inside the exporter client and caught there:
exporter failures never change a probe outcome.
"""

from __future__ import annotations

from typing import Any, Optional

from config.constants import ErrorCodes
from exceptions.base import VitalsException


class ExporterException(VitalsException):
    """Base Exporter Exception."""

    default_error_code = ErrorCodes.EXPORTER_ERROR


class ExporterUnavailableError(ExporterException):
    """
    Exporter Unavailable Error

    The exporter could not be reached or answered with a non-2xx status.
    """

    default_error_code = ErrorCodes.EXPORTER_UNAVAILABLE

    def __init__(
        self,
        message: str = "Exporter unavailable",
        monitor: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        self.status_code = status_code

        if monitor:
            self.details["monitor"] = monitor

        if status_code is not None:
            self.details["status_code"] = status_code
