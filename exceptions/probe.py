"""
Probe Exception Classes for Model Vitals

Raised inside the probe variants and converted into Fail outcomes by the
Probe base class. None of them escape ``Probe.execute``.
"""

from __future__ import annotations

from typing import Any, Optional

from config.constants import ErrorCodes, StatusCodes
from exceptions.base import VitalsException


class ProbeException(VitalsException):
    """
    Base Probe Exception

    Carries the status code the resulting outcome should report.
    """

    default_error_code = ErrorCodes.PROBE_ERROR
    default_status_code: int = StatusCodes.TRANSPORT_ERROR

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        target: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        """
        Initialize probe exception.

        Args:
            message: Error message, copied to the outcome
            status_code: Outcome status code (defaults per subclass)
            target: URL or collection that was probed
            **kwargs: Additional arguments
        """
        super().__init__(message, **kwargs)

        self.status_code = (
            status_code if status_code is not None else self.default_status_code
        )

        if target:
            self.details["target"] = target


class ProbeTimeoutError(ProbeException):
    """Raised when the target does not answer within the probe timeout."""

    default_error_code = ErrorCodes.PROBE_TIMEOUT
    default_status_code = StatusCodes.TIMEOUT


class TransportError(ProbeException):
    """Connection refused, DNS failure or any error before a response arrived."""

    default_error_code = ErrorCodes.TRANSPORT_ERROR


class ProtocolError(ProbeException):
    """
    Protocol Error

    A response arrived but it is not a success: non-200 status or a body
    that does not parse as the expected completion/embedding shape.
    """

    default_error_code = ErrorCodes.PROTOCOL_ERROR

    def __init__(
        self,
        message: str,
        status_code: int,
        body_excerpt: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, status_code=status_code, **kwargs)

        if body_excerpt:
            self.details["body"] = body_excerpt


class CollectionRunnerError(ProbeException):
    """
    Collection Runner Error

    The external collection runner is missing, crashed, or reported failed
    assertions. ``report`` carries the runner's own failure digest.
    """

    default_error_code = ErrorCodes.COLLECTION_RUNNER_ERROR

    def __init__(
        self,
        message: str,
        report: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if report:
            self.details["report"] = report
