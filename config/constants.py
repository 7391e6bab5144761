"""
Constants Module for Model Vitals

Contains the enumerations, reserved status codes, request templates and
static defaults shared by the probes, the runner and the exporter client.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Dict, Final


class ProbeKind(str, Enum):
    """
    Probe Kind Enumeration

    Selects which probe variant checks a model. Unknown kinds are rejected
    when the targets file is loaded.
    """

    CHAT = "chat"
    EMBEDDING = "embedding"
    COLLECTION = "collection"


class ProbeState(str, Enum):
    """
    Probe Outcome State

    ``RUNNING`` is the start signal of an execution and is never terminal.
    """

    RUNNING = "Running"
    COMPLETE = "Complete"
    FAIL = "Fail"

    @property
    def is_terminal(self) -> bool:
        return self is not ProbeState.RUNNING


class PingState(str, Enum):
    """
    Exporter Ping State

    The ``state`` query parameter sent to the exporter.
    """

    RUN = "run"
    COMPLETE = "complete"
    FAIL = "fail"

    @classmethod
    def from_probe_state(cls, state: ProbeState) -> "PingState":
        """Map a probe outcome state to the exporter ping state."""
        mapping = {
            ProbeState.RUNNING: cls.RUN,
            ProbeState.COMPLETE: cls.COMPLETE,
            ProbeState.FAIL: cls.FAIL,
        }
        return mapping[state]


class RunMode(str, Enum):
    """Process run mode."""

    ONCE = "once"
    RECURRING = "recurring"


class ExitCode(IntEnum):
    """
    Process Exit Codes

    Consumed by external schedulers (e.g. a CronJob) to decide whether an
    invocation succeeded.
    """

    SUCCESS = 0
    PROBE_FAILURE = 1
    CONFIGURATION_ERROR = 2
    TIMEOUT = 124


class StatusCodes:
    """
    Reserved outcome status codes.
    """

    # No HTTP response was received (connect refused, DNS failure, ...)
    TRANSPORT_ERROR: Final[int] = 0

    # Mirrors coreutils `timeout`
    TIMEOUT: Final[int] = 124

    HTTP_OK: Final[int] = 200


class Messages:
    """Outcome message templates."""

    REQUEST_TIMEOUT: Final[str] = "request timeout"
    TRANSPORT_ERROR: Final[str] = "transport error: {error}"
    HTTP_ERROR: Final[str] = "HTTP {status_code}: {body}"
    MALFORMED_BODY: Final[str] = "malformed response body: {reason}"
    UNEXPECTED_ERROR: Final[str] = "unexpected probe error: {error}"
    RUNNER_MISSING: Final[str] = "collection runner not found: {runner}"
    RUNNER_FAILED: Final[str] = "collection runner exited with code {code}: {output}"
    ASSERTIONS_FAILED: Final[str] = "{failed} of {total} assertions failed: {failures}"


class ProbeRequests:
    """
    Request paths and bodies sent by the HTTP probes.

    Chat requests receive a single message containing 'test' with one output
    token requested. Embedding requests receive the single input 'test'.
    """

    CHAT_PATH: Final[str] = "/v1/chat/completions"
    EMBEDDING_PATH: Final[str] = "/v1/embeddings"
    TEST_PROMPT: Final[str] = "test"
    CHAT_MAX_TOKENS: Final[int] = 1

    @classmethod
    def chat_payload(cls, model_name: str) -> Dict[str, Any]:
        return {
            "model": model_name,
            "messages": [{"role": "user", "content": cls.TEST_PROMPT}],
            "max_tokens": cls.CHAT_MAX_TOKENS,
        }

    @classmethod
    def embedding_payload(cls, model_name: str) -> Dict[str, Any]:
        return {
            "model": model_name,
            "input": cls.TEST_PROMPT,
        }


class Limits:
    """
    Application Limits and Constraints
    """

    # Truncation of free-form text carried in outcome messages
    MAX_MESSAGE_LENGTH: Final[int] = 500
    MAX_BODY_EXCERPT: Final[int] = 200
    MAX_REPORTED_FAILURES: Final[int] = 5

    # Results API pagination
    DEFAULT_RESULTS_LIMIT: Final[int] = 100
    MAX_RESULTS_LIMIT: Final[int] = 1000


class Defaults:
    """
    Default Values
    """

    PROBE_TIMEOUT: Final[int] = 60
    SCHEDULE: Final[str] = "*/5 * * * *"
    ONCE_SCHEDULE: Final[str] = "@once"
    ENVIRONMENT: Final[str] = "production"
    EXPORTER_API_URL: Final[str] = "https://cronitor.io/api/monitors"
    EXPORTER_TIMEOUT: Final[float] = 5.0
    EXPORTER_ATTEMPTS: Final[int] = 3
    EXPORTER_RETRY_DELAY: Final[float] = 0.5
    COLLECTION_RUNNER: Final[str] = "newman"
    USER_AGENT: Final[str] = "ModelVitals/1.0 (+probe)"
    DB_WRITE_ATTEMPTS: Final[int] = 2


class ErrorCodes:
    """Application error codes."""

    # General errors (1xxx)
    UNKNOWN_ERROR: Final[int] = 1000
    CONFIGURATION_ERROR: Final[int] = 1100
    INITIALIZATION_ERROR: Final[int] = 1200

    # Database errors (2xxx)
    DB_ERROR: Final[int] = 2000
    DB_CONNECTION_ERROR: Final[int] = 2001
    DB_WRITE_ERROR: Final[int] = 2002

    # Probe errors (5xxx)
    PROBE_ERROR: Final[int] = 5000
    PROBE_TIMEOUT: Final[int] = 5001
    TRANSPORT_ERROR: Final[int] = 5002
    PROTOCOL_ERROR: Final[int] = 5003
    COLLECTION_RUNNER_ERROR: Final[int] = 5004

    # Exporter errors (6xxx)
    EXPORTER_ERROR: Final[int] = 6000
    EXPORTER_UNAVAILABLE: Final[int] = 6001
