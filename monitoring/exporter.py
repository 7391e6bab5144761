"""
============================================================================
MODEL VITALS - EXPORTER CLIENT
============================================================================
Reports probe executions to a Cronitor-style telemetry exporter.

Every execution produces exactly two pings sharing one series id:

    GET {base}/{monitor}?state=run&series={id}&env={env}&host={host}
    GET {base}/{monitor}?state=complete|fail&series={id}&status_code={code}
        &env={env}&host={host}[&message={urlencoded}]

Reporting is best-effort: a ping is retried a bounded number of times with
exponential back-off, failures are logged, and ping() never raises.

When an exporter API key is configured, each monitor is enriched once per
process (schedule, tolerances, duration assertion) through the monitors API.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from datetime import datetime
from typing import Optional, Dict, Any, List, Set
from urllib.parse import quote

import httpx

from config.constants import PingState, Defaults
from config.settings import ExporterSettings, validate_http_url
from exceptions import ConfigurationError, ExporterUnavailableError
from monitoring.probes import ProbeOutcome
from utils.logger import get_logger
from utils.helpers import get_host_identifier


logger = get_logger("Exporter")


class ExporterClient:
    """
    Translates probe outcomes into exporter pings.

    Attributes
    ----------
    base_url : str             — resolved exporter base URL, no trailing slash
    environment : str          — ``env`` tag sent with every ping
    host : str                 — ``host`` tag sent with every ping
    _enriched : set            — monitors already pushed to the monitors API
    _success_count : int
    _fail_count : int
    """

    def __init__(
        self,
        settings: ExporterSettings,
        host: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        try:
            base_url = settings.resolve_base_url()
        except OSError as e:
            raise ConfigurationError(
                f"cannot read exporter base URL file {settings.base_url_file}: {e}",
                config_key="EXPORTER_BASE_URL_FILE",
                cause=e,
            ) from e
        if not base_url:
            raise ConfigurationError(
                "exporter base URL is not configured "
                "(set EXPORTER_BASE_URL or EXPORTER_BASE_URL_FILE)",
                config_key="EXPORTER_BASE_URL",
            )
        try:
            validate_http_url(base_url)
        except ValueError:
            # Do not echo the URL: it embeds the exporter key
            raise ConfigurationError(
                "exporter base URL is not an absolute http(s) URL",
                config_key="EXPORTER_BASE_URL",
            ) from None

        self.base_url = base_url
        self.environment = settings.environment
        self.host = get_host_identifier(host or settings.host)
        self._transport = transport
        self._timeout = settings.timeout_seconds
        self._max_attempts = settings.max_attempts
        self._retry_delay = settings.retry_delay

        # State
        self._enriched: Set[str] = set()
        self._success_count = 0
        self._fail_count = 0
        self._last_ping_time: Optional[float] = None

    # ------------------------------------------------------------------
    # URL BUILDING
    # ------------------------------------------------------------------

    def build_ping_url(
        self,
        monitor: str,
        state: PingState,
        series_id: str,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
    ) -> str:
        """
        Build the ping URL for one state transition.

        ``state=run`` never carries a status code or message; terminal
        states always carry a status code (0 when none is known).
        """
        params = [("state", state.value), ("series", series_id)]
        if state != PingState.RUN:
            params.append(("status_code", str(status_code if status_code is not None else 0)))
        params.append(("env", self.environment))
        params.append(("host", self.host))
        if state != PingState.RUN and message:
            params.append(("message", message))

        query = "&".join(f"{key}={quote(value, safe='')}" for key, value in params)
        return f"{self.base_url}/{quote(monitor, safe='')}?{query}"

    def url_for(self, monitor: str, outcome: ProbeOutcome) -> str:
        return self.build_ping_url(
            monitor,
            PingState.from_probe_state(outcome.state),
            outcome.series_id,
            status_code=outcome.status_code,
            message=outcome.message,
        )

    # ------------------------------------------------------------------
    # PING (with retry)
    # ------------------------------------------------------------------

    async def ping(self, monitor: str, outcome: ProbeOutcome) -> bool:
        """
        Report *outcome* for *monitor*.

        Returns
        -------
        bool
            True if one attempt got a 2xx answer. Never raises.
        """
        url = self.url_for(monitor, outcome)
        state = PingState.from_probe_state(outcome.state).value
        self._last_ping_time = time.time()
        delay = self._retry_delay

        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._send(url, monitor)
                self._success_count += 1
                logger.debug(
                    f"[Exporter] ✓ {monitor} state={state} series={outcome.series_id}"
                )
                return True
            except ExporterUnavailableError as e:
                logger.warning(
                    f"[Exporter] {monitor} state={state} attempt "
                    f"{attempt}/{self._max_attempts}: {e.message}"
                )

            if attempt < self._max_attempts:
                await asyncio.sleep(delay)
                delay *= 2

        self._fail_count += 1
        logger.error(
            f"[Exporter] ✗ gave up on {monitor} state={state} "
            f"series={outcome.series_id} after {self._max_attempts} attempts"
        )
        return False

    async def _send(self, url: str, monitor: str) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise ExporterUnavailableError(
                f"timeout after {self._timeout}s", monitor=monitor, cause=e
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ExporterUnavailableError(
                f"{type(e).__name__}: {e}", monitor=monitor, cause=e
            ) from e

        if not response.is_success:
            raise ExporterUnavailableError(
                f"unexpected status {response.status_code}",
                monitor=monitor,
                status_code=response.status_code,
            )

    # ------------------------------------------------------------------
    # MONITOR ENRICHMENT
    # ------------------------------------------------------------------

    @property
    def enrichment_enabled(self) -> bool:
        return self.settings.api_key is not None

    def monitor_definition(
        self,
        monitor: str,
        schedule: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Monitor definition pushed to the monitors API."""
        definition: Dict[str, Any] = {"type": "job", "key": monitor}

        if schedule and schedule != Defaults.ONCE_SCHEDULE:
            definition["schedule"] = schedule
            if self.settings.consecutive_missing is not None:
                definition["schedule_tolerance"] = self.settings.consecutive_missing
        if self.settings.consecutive_failures is not None:
            definition["failure_tolerance"] = self.settings.consecutive_failures
        if self.settings.group:
            definition["group"] = self.settings.group

        assertions: List[str] = []
        if timeout_seconds:
            assertions.append(f"metric.duration < {int(timeout_seconds * 2)}s")
        if self.settings.min_success_freq is not None:
            assertions.append(f"job.completes < {self.settings.min_success_freq} minute")
        if assertions:
            definition["assertions"] = assertions

        return definition

    async def ensure_monitor(
        self,
        monitor: str,
        schedule: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> bool:
        """
        Push the monitor definition once per process.

        A no-op without an API key or when the monitor was already handled.
        Failures are logged and not retried for the rest of the process.
        """
        if not self.enrichment_enabled or monitor in self._enriched:
            return False
        self._enriched.add(monitor)

        payload = {"monitors": [self.monitor_definition(monitor, schedule, timeout_seconds)]}
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
                auth=(self.settings.api_key.get_secret_value(), ""),
            ) as client:
                response = await client.put(self.settings.api_url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"[Exporter] Could not enrich monitor {monitor}: {e}")
            return False

        if not response.is_success:
            logger.warning(
                f"[Exporter] Monitor enrichment for {monitor} answered "
                f"{response.status_code}: {response.text[:200]}"
            )
            return False

        logger.info(f"[Exporter] ✓ Monitor {monitor} enriched")
        return True

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Return current ping statistics."""
        return {
            "environment": self.environment,
            "host": self.host,
            "success_count": self._success_count,
            "fail_count": self._fail_count,
            "enriched_monitors": len(self._enriched),
            "last_ping_time": (
                datetime.fromtimestamp(self._last_ping_time).isoformat()
                if self._last_ping_time else None
            ),
        }
