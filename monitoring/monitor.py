"""
============================================================================
MODEL VITALS - MONITOR
============================================================================
Top-level orchestrator. Turns the resolved settings and probe targets into
bindings, wires the exporter client, the optional result store and the
optional results server around a ProbeRunner, and folds the latest
outcomes into a process exit status.

Architecture
------------
Monitor
├── ExporterClient        ← run/complete/fail pings (required)
├── ResultStore           ← append-only result rows (optional, advisory)
├── ProbeRunner           ← once, or per cron schedule
└── ResultsServer         ← /health and the results API (recurring only)

Startup Order
-------------
1.  Build bindings from targets (configuration errors are fatal)
2.  Initialize the result store if enabled (failure disables it)
3.  Create the runner
4.  Recurring mode: start the runner, then the results server

Shutdown Order (reverse)
------------------------
    Stop results server → stop runner (drains in-flight executions) →
    close DB

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from typing import Optional, Dict, Any, Iterable, List

import httpx

from config.constants import ExitCode
from config.settings import Settings
from config.targets import TargetsConfig
from database.manager import DatabaseManager, ResultRepository
from database.store import ResultStore
from exceptions import ConfigurationError, DatabaseException, InitializationError
from monitoring.exporter import ExporterClient
from monitoring.probes import ProbeOutcome, build_probe
from monitoring.scheduler import ProbeBinding, ProbeRunner
from monitoring.web import ResultsServer
from utils.logger import get_logger


logger = get_logger("Monitor")


class Monitor:
    """
    Single entry point for one process.

    Parameters
    ----------
    settings : Settings
        Resolved application settings.
    targets : TargetsConfig
        Validated probe targets.
    transport : httpx.AsyncBaseTransport, optional
        Custom transport shared by the probes and the exporter client.
    host : str, optional
        Originating host identifier override.

    Raises
    ------
    ConfigurationError
        If the exporter is not configured or no probe is defined.
    """

    def __init__(
        self,
        settings: Settings,
        targets: TargetsConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        host: Optional[str] = None,
    ):
        self.settings = settings
        self.targets = targets

        self.exporter = ExporterClient(settings.exporter, host=host, transport=transport)
        self.bindings = self._build_bindings(transport)

        # --- subsystems (populated during startup) ---
        self.db_manager: Optional[DatabaseManager] = None
        self.store: Optional[ResultStore] = None
        self.repository: Optional[ResultRepository] = None
        self.runner: Optional[ProbeRunner] = None
        self.results_server: Optional[ResultsServer] = None

        # --- lifecycle ---
        self._started = False
        self._shutdown_event = asyncio.Event()

    # ------------------------------------------------------------------
    # BINDINGS
    # ------------------------------------------------------------------

    def _build_bindings(
        self, transport: Optional[httpx.AsyncBaseTransport]
    ) -> List[ProbeBinding]:
        probe_settings = self.settings.probe
        bindings = []

        for endpoint in self.targets.endpoints:
            for model in endpoint.models:
                bindings.append(ProbeBinding(
                    monitor=endpoint.monitor_name(model),
                    probe=build_probe(
                        endpoint, model,
                        transport=transport,
                        user_agent=probe_settings.user_agent,
                        collection_runner=probe_settings.collection_runner,
                    ),
                    endpoint_url=endpoint.url,
                    model_name=model.request_model,
                    timeout_seconds=model.timeout_seconds or probe_settings.timeout_seconds,
                    schedule=model.schedule or probe_settings.default_schedule,
                ))

        if not bindings:
            raise ConfigurationError(
                "no model probes configured",
                config_key="endpoints",
            )
        return bindings

    # ------------------------------------------------------------------
    # STARTUP
    # ------------------------------------------------------------------

    async def startup(self) -> None:
        """Initialize the optional store and create the runner."""
        if self._started:
            return

        if self.settings.database.enabled:
            await self._init_store()

        self.runner = ProbeRunner(
            self.bindings,
            self.exporter,
            store=self.store,
            environment=self.settings.exporter.environment,
        )

        if self.settings.is_recurring and self.settings.web.enabled:
            self.results_server = ResultsServer(
                self.settings.web, self.runner, self.repository
            )

        self._started = True
        logger.info(
            f"✓ Monitor ready: {len(self.bindings)} probes, "
            f"mode={self.settings.run_mode.value}, "
            f"store={'on' if self.store else 'off'}, "
            f"env={self.settings.exporter.environment}"
        )

    async def _init_store(self) -> None:
        """
        Bring up the result store. Persistence is advisory, so a store that
        cannot be initialized is logged and disabled.
        """
        db_manager = DatabaseManager(self.settings.database)
        try:
            await db_manager.initialize()
        except DatabaseException as e:
            logger.error(f"✗ Result store disabled: {e.log_format()}")
            return

        self.db_manager = db_manager
        self.store = ResultStore(db_manager, write_attempts=self.settings.database.write_attempts)
        self.repository = ResultRepository(db_manager)

    # ------------------------------------------------------------------
    # RUN
    # ------------------------------------------------------------------

    async def run(self) -> ExitCode:
        """
        Run according to the configured mode.

        Returns
        -------
        ExitCode
            Exit status of the latest outcomes.
        """
        await self.startup()
        try:
            if self.settings.is_recurring:
                return await self._run_recurring()
            return await self.run_once()
        finally:
            await self.shutdown()

    async def run_once(self) -> ExitCode:
        """Execute every probe once and return the exit status."""
        await self.startup()
        outcomes = await self.runner.run_once()
        status = self.exit_status(outcomes)
        logger.info(
            f"One-shot run finished: {sum(o.succeeded for o in outcomes)}/"
            f"{len(outcomes)} complete → exit {int(status)}"
        )
        return status

    async def _run_recurring(self) -> ExitCode:
        await self.runner.start()

        if self.results_server is not None:
            try:
                await self.results_server.start()
            except InitializationError as e:
                logger.error(f"✗ Results server not started: {e.log_format()}")
                self.results_server = None

        await self._shutdown_event.wait()
        logger.info("Shutdown requested")

        await self._stop_services()
        status = self.exit_status(self.runner.latest_outcomes().values())
        logger.info(f"Recurring run finished → exit {int(status)}")
        return status

    def request_shutdown(self) -> None:
        """Ask a recurring run to stop. Safe to call from a signal handler."""
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # SHUTDOWN
    # ------------------------------------------------------------------

    async def _stop_services(self) -> None:
        if self.results_server is not None:
            await self.results_server.stop()
            self.results_server = None

        if self.runner is not None and self.runner.is_running:
            await self.runner.stop()

    async def shutdown(self) -> None:
        """Stop everything in reverse startup order."""
        await self._stop_services()

        if self.db_manager is not None:
            await self.db_manager.close()
            self.db_manager = None
            self.store = None
            self.repository = None

        self._started = False

    # ------------------------------------------------------------------
    # EXIT STATUS
    # ------------------------------------------------------------------

    @staticmethod
    def exit_status(outcomes: Iterable[Optional[ProbeOutcome]]) -> ExitCode:
        """
        Fold the latest outcome of every probe into an exit status.

        0 when every outcome is Complete; 124 when every failure is a
        timeout; 1 otherwise, including probes without any outcome.
        """
        failures = [o for o in outcomes if o is None or not o.succeeded]
        if not failures:
            return ExitCode.SUCCESS
        if all(o is not None and o.timed_out for o in failures):
            return ExitCode.TIMEOUT
        return ExitCode.PROBE_FAILURE

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "app_name": self.settings.app_name,
            "app_version": self.settings.app_version,
            "run_mode": self.settings.run_mode.value,
            "environment": self.settings.exporter.environment,
            "default_schedule": self.settings.probe.default_schedule,
        }
        if self.runner is not None:
            stats.update(self.runner.get_stats())
        return stats
