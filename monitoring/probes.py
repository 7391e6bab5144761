"""
============================================================================
MODEL VITALS - PROBES
============================================================================
Active checks against one model on one endpoint. Every execution produces a
single terminal ProbeOutcome; the Probe base class owns the timeout contract
so no variant can hang the runner.

Architecture
------------
Probe                     ← execute(timeout) → ProbeOutcome, never raises
├── ChatProbe             ← POST /v1/chat/completions via httpx
├── EmbeddingProbe        ← POST /v1/embeddings via httpx
└── CollectionProbe       ← external collection runner (newman) subprocess

build_probe()             ← exhaustive dispatch on ProbeKind

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import json
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List

import httpx

from config.constants import (
    ProbeKind, ProbeState, StatusCodes, Messages, ProbeRequests,
    Limits, Defaults
)
from config.targets import EndpointConfig, ModelProbeConfig
from exceptions import (
    ProbeException, ProbeTimeoutError, TransportError, ProtocolError,
    CollectionRunnerError
)
from utils.logger import get_logger
from utils.helpers import utc_now, truncate, single_line


logger = get_logger("Probe")


# ============================================================================
# PROBE OUTCOME
# ============================================================================

class ProbeOutcome:
    """
    Value object carrying the result of one probe execution (or its start
    signal) from the probe up to the runner, the exporter and the store.
    """
    __slots__ = (
        "state", "status_code", "message", "duration", "series_id",
        "timed_out", "started_at", "finished_at",
    )

    def __init__(
        self,
        state: ProbeState,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
        duration: float = 0.0,
        series_id: str = "",
        timed_out: bool = False,
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
    ):
        self.state = state
        self.status_code = status_code
        self.message = message
        self.duration = duration
        self.series_id = series_id
        self.timed_out = timed_out
        self.started_at = started_at or utc_now()
        self.finished_at = finished_at

    @classmethod
    def running(cls, series_id: str) -> "ProbeOutcome":
        """The start signal of an execution."""
        return cls(state=ProbeState.RUNNING, series_id=series_id)

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.state == ProbeState.COMPLETE

    @property
    def duration_ms(self) -> Optional[int]:
        if not self.is_terminal:
            return None
        return int(round(self.duration * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "status_code": self.status_code,
            "message": self.message,
            "duration": round(self.duration, 4),
            "series_id": self.series_id,
            "timed_out": self.timed_out,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"ProbeOutcome(state={self.state.value}, status_code={self.status_code}, "
            f"series_id={self.series_id!r}, duration={self.duration:.3f})"
        )


# ============================================================================
# PROBE BASE
# ============================================================================

class Probe:
    """
    Base class for all probe variants.

    Subclasses implement ``_run()``, which returns the status code of a
    successful check or raises a ProbeException describing the failure.
    ``execute()`` enforces the hard timeout and converts every failure into
    a Fail outcome.
    """

    kind: ProbeKind

    def __init__(self, name: str, target: str):
        self.name = name
        self.target = target

    async def execute(self, timeout: float, series_id: str = "") -> ProbeOutcome:
        """
        Run the probe once.

        Parameters
        ----------
        timeout : float
            Hard wall-clock bound in seconds. On expiry the in-flight work is
            cancelled and a Fail outcome with status 124 is returned.
        series_id : str
            Identifier of this execution, copied onto the outcome.

        Returns
        -------
        ProbeOutcome
            Always terminal; this method never raises.
        """
        started_at = utc_now()
        start = time.perf_counter()

        def finish(state: ProbeState, status_code: Optional[int],
                   message: Optional[str] = None, timed_out: bool = False) -> ProbeOutcome:
            return ProbeOutcome(
                state=state,
                status_code=status_code,
                message=truncate(message, Limits.MAX_MESSAGE_LENGTH) if message else None,
                duration=time.perf_counter() - start,
                series_id=series_id,
                timed_out=timed_out,
                started_at=started_at,
                finished_at=utc_now(),
            )

        try:
            status_code = await asyncio.wait_for(self._run(timeout), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.kind.value}] {self.name} timed out after {timeout}s")
            return finish(
                ProbeState.FAIL, StatusCodes.TIMEOUT, Messages.REQUEST_TIMEOUT,
                timed_out=True
            )
        except ProbeException as e:
            timed_out = isinstance(e, ProbeTimeoutError)
            logger.warning(f"[{self.kind.value}] {self.name} failed: {e.message}")
            return finish(ProbeState.FAIL, e.status_code, e.message, timed_out=timed_out)
        except Exception as e:
            logger.error(
                f"[{self.kind.value}] {self.name} raised unexpectedly: "
                f"{type(e).__name__}: {e}"
            )
            return finish(
                ProbeState.FAIL, StatusCodes.TRANSPORT_ERROR,
                Messages.UNEXPECTED_ERROR.format(error=f"{type(e).__name__}: {e}")
            )

        outcome = finish(ProbeState.COMPLETE, status_code)
        logger.debug(
            f"[{self.kind.value}] {self.name} → {status_code} in {outcome.duration:.3f}s"
        )
        return outcome

    async def _run(self, timeout: float) -> int:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, target={self.target!r})"


# ============================================================================
# HTTP PROBES
# ============================================================================

class HTTPProbe(Probe):
    """
    POSTs a minimal request to an OpenAI-compatible endpoint and checks that
    the answer is an HTTP 200 with a well-formed body.

    A fresh httpx client is used per execution; its timeout equals the probe
    timeout, so an httpx timeout is reported exactly like the hard timeout.
    """

    path: str = ""

    def __init__(
        self,
        name: str,
        base_url: str,
        model_name: str,
        user_agent: str = Defaults.USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(name, base_url.rstrip("/") + self.path)
        self.model_name = model_name
        self.user_agent = user_agent
        self.transport = transport

    def payload(self) -> Dict[str, Any]:
        raise NotImplementedError

    def validate_body(self, body: Any) -> None:
        """Raise ValueError when *body* is not the expected success shape."""
        raise NotImplementedError

    async def _run(self, timeout: float) -> int:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout),
                transport=self.transport,
                headers={"User-Agent": self.user_agent},
            ) as client:
                response = await client.post(self.target, json=self.payload())
        except httpx.TimeoutException as e:
            raise ProbeTimeoutError(Messages.REQUEST_TIMEOUT, target=self.target, cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(
                Messages.TRANSPORT_ERROR.format(error=str(e) or type(e).__name__),
                target=self.target,
                cause=e,
            ) from e

        if response.status_code != StatusCodes.HTTP_OK:
            excerpt = truncate(single_line(response.text), Limits.MAX_BODY_EXCERPT)
            raise ProtocolError(
                Messages.HTTP_ERROR.format(status_code=response.status_code, body=excerpt),
                status_code=response.status_code,
                body_excerpt=excerpt,
                target=self.target,
            )

        try:
            self.validate_body(response.json())
        except ValueError as e:
            raise ProtocolError(
                Messages.MALFORMED_BODY.format(reason=str(e) or type(e).__name__),
                status_code=response.status_code,
                body_excerpt=truncate(single_line(response.text), Limits.MAX_BODY_EXCERPT),
                target=self.target,
            ) from e

        return response.status_code


class ChatProbe(HTTPProbe):
    """One-token chat completion."""

    kind = ProbeKind.CHAT
    path = ProbeRequests.CHAT_PATH

    def payload(self) -> Dict[str, Any]:
        return ProbeRequests.chat_payload(self.model_name)

    def validate_body(self, body: Any) -> None:
        if not isinstance(body, dict):
            raise ValueError("expected a JSON object")
        choices = body.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ValueError("missing 'choices'")


class EmbeddingProbe(HTTPProbe):
    """Single-input embedding request."""

    kind = ProbeKind.EMBEDDING
    path = ProbeRequests.EMBEDDING_PATH

    def payload(self) -> Dict[str, Any]:
        return ProbeRequests.embedding_payload(self.model_name)

    def validate_body(self, body: Any) -> None:
        if not isinstance(body, dict):
            raise ValueError("expected a JSON object")
        data = body.get("data")
        if not isinstance(data, list) or not data:
            raise ValueError("missing 'data'")
        first = data[0]
        if not isinstance(first, dict) or not isinstance(first.get("embedding"), list):
            raise ValueError("missing 'data[0].embedding'")


# ============================================================================
# COLLECTION PROBE
# ============================================================================

class CollectionProbe(Probe):
    """
    Runs a request collection with an external runner (newman by default)
    against the endpoint and reads the runner's JSON report.

    The endpoint URL is passed as the ``baseUrl`` collection variable. If the
    probe is cancelled by its timeout the runner process is killed.
    """

    kind = ProbeKind.COLLECTION

    def __init__(
        self,
        name: str,
        base_url: str,
        collection: str,
        environment: Optional[str] = None,
        runner: str = Defaults.COLLECTION_RUNNER,
    ):
        super().__init__(name, collection)
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.environment = environment
        self.runner = runner

    def command(self, report_path: Path) -> List[str]:
        cmd = [
            self.runner, "run", self.collection,
            "--env-var", f"baseUrl={self.base_url}",
        ]
        if self.environment:
            cmd += ["--environment", self.environment]
        cmd += ["--reporters", "json", "--reporter-json-export", str(report_path)]
        return cmd

    async def _run(self, timeout: float) -> int:
        with tempfile.TemporaryDirectory(prefix="model-vitals-") as tmp:
            report_path = Path(tmp) / "report.json"
            try:
                process = await asyncio.create_subprocess_exec(
                    *self.command(report_path),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
            except FileNotFoundError as e:
                raise CollectionRunnerError(
                    Messages.RUNNER_MISSING.format(runner=self.runner),
                    target=self.collection,
                    cause=e,
                ) from e

            try:
                output, _ = await process.communicate()
            except asyncio.CancelledError:
                _kill(process)
                await process.wait()
                raise

            report = _load_report(report_path)

        text = single_line(output.decode("utf-8", errors="replace"))
        if report is None:
            if process.returncode == 0:
                raise CollectionRunnerError(
                    Messages.MALFORMED_BODY.format(reason="runner wrote no JSON report"),
                    target=self.collection,
                )
            raise CollectionRunnerError(
                Messages.RUNNER_FAILED.format(
                    code=process.returncode,
                    output=truncate(text, Limits.MAX_BODY_EXCERPT),
                ),
                target=self.collection,
            )

        summary = summarize_report(report)
        if summary["failed"] or process.returncode != 0:
            raise CollectionRunnerError(
                Messages.ASSERTIONS_FAILED.format(
                    failed=summary["failed"],
                    total=summary["total"],
                    failures="; ".join(summary["failures"]) or f"exit code {process.returncode}",
                ),
                status_code=summary["status_code"],
                report="; ".join(summary["failures"]),
                target=self.collection,
            )

        return StatusCodes.TRANSPORT_ERROR


def summarize_report(report: Dict[str, Any]) -> Dict[str, Any]:
    """
    Digest a newman JSON report.

    Returns
    -------
    dict
        ``total``/``failed`` assertion counts (run failures included),
        up to Limits.MAX_REPORTED_FAILURES failure descriptions and the
        response code of the first failing request (0 if it had none).
    """
    run = report.get("run") or {}
    assertions = (run.get("stats") or {}).get("assertions") or {}
    failures = run.get("failures") or []

    descriptions = []
    for failure in failures[:Limits.MAX_REPORTED_FAILURES]:
        error = failure.get("error") or {}
        source = (failure.get("source") or {}).get("name") or "collection"
        test = error.get("test") or error.get("name") or "error"
        descriptions.append(f"{source}: {test}: {error.get('message', '')}".rstrip(": "))

    status_code = StatusCodes.TRANSPORT_ERROR
    for execution in run.get("executions") or []:
        failed = execution.get("requestError") or any(
            a.get("error") for a in execution.get("assertions") or []
        )
        if failed:
            status_code = (execution.get("response") or {}).get("code") or StatusCodes.TRANSPORT_ERROR
            break

    return {
        "total": int(assertions.get("total", 0)),
        "failed": max(int(assertions.get("failed", 0)), len(failures)),
        "failures": descriptions,
        "status_code": status_code,
    }


def _load_report(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with path.open(encoding="utf-8") as fh:
            report = json.load(fh)
    except (OSError, ValueError):
        return None
    return report if isinstance(report, dict) else None


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


# ============================================================================
# FACTORY
# ============================================================================

def build_probe(
    endpoint: EndpointConfig,
    model: ModelProbeConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    user_agent: str = Defaults.USER_AGENT,
    collection_runner: str = Defaults.COLLECTION_RUNNER,
) -> Probe:
    """
    Build the probe variant for *model* on *endpoint*.

    Parameters
    ----------
    transport : httpx.AsyncBaseTransport, optional
        Custom transport for the HTTP probes (tests use httpx.MockTransport).
    """
    name = endpoint.monitor_name(model)

    if model.kind == ProbeKind.CHAT:
        return ChatProbe(name, endpoint.url, model.request_model, user_agent, transport)
    if model.kind == ProbeKind.EMBEDDING:
        return EmbeddingProbe(name, endpoint.url, model.request_model, user_agent, transport)
    if model.kind == ProbeKind.COLLECTION:
        return CollectionProbe(
            name, endpoint.url, model.collection,
            environment=model.environment,
            runner=collection_runner,
        )
    raise ValueError(f"Unsupported probe kind: {model.kind!r}")
