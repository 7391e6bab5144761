"""
============================================================================
MODEL VITALS - PROBE SCHEDULER & RUNNER
============================================================================
An asyncio-native runner that drives probe executions, either once for the
whole probe set or repeatedly per cron schedule. All executions run as
coroutines in the same event loop; no broker, no worker processes.

One execution
-------------
    series id → probe.execute(timeout) → terminal outcome
        └─ reporting task: exporter run ping → monitor enrichment
                 → exporter terminal ping → result store write (optional)

The probe never waits on the exporter or the store. Reporting for one
execution runs in its own task and stays ordered run → terminal → store.

Schedules
---------
Probes sharing a cron expression share one Schedule and one loop task.
Schedules are independent: a slow probe on one schedule never delays
another schedule. If a probe is still executing its previous run when
its schedule fires again, that tick is skipped for the probe and counted.
Fire times are computed in UTC.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from datetime import datetime
from typing import Optional, Dict, Any, List, Set, Tuple
from dataclasses import dataclass, field

from croniter import croniter

from config.constants import Defaults, Messages, ProbeState, StatusCodes
from database.store import ResultStore
from monitoring.exporter import ExporterClient
from monitoring.probes import Probe, ProbeOutcome
from utils.logger import get_logger, log_execution_time
from utils.helpers import new_series_id, utc_now


logger = get_logger("Scheduler")


# ============================================================================
# BINDINGS & SCHEDULES
# ============================================================================

@dataclass
class ProbeBinding:
    """
    A probe bound to its monitor identity and schedule.

    Attributes
    ----------
    monitor : str
        Exporter monitor identifier (unique per process).
    probe : Probe
        The probe to execute.
    endpoint_url : str
        Base URL of the probed endpoint.
    model_name : str
        Model id the probe targets.
    timeout_seconds : float
        Hard bound for one execution.
    schedule : str
        Cron expression or ``@once``.
    run_count : int
        Executions started since startup.
    skip_count : int
        Ticks skipped because the previous execution was still in flight.
    error_count : int
        Executions that raised past the probe's own error handling.
    last_outcome : Optional[ProbeOutcome]
        Terminal outcome of the latest finished execution.
    """
    monitor: str
    probe: Probe
    endpoint_url: str
    model_name: str
    timeout_seconds: float
    schedule: str = Defaults.SCHEDULE
    run_count: int = 0
    skip_count: int = 0
    error_count: int = 0
    last_run: Optional[float] = None
    last_outcome: Optional[ProbeOutcome] = None
    in_flight: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_running(self) -> bool:
        return self.in_flight is not None and not self.in_flight.done()


@dataclass
class Schedule:
    """
    A cron expression (or ``@once``) and the bindings it fires.
    """
    expression: str
    bindings: List[ProbeBinding] = field(default_factory=list)
    last_fire: Optional[datetime] = None
    fire_count: int = 0

    @property
    def is_once(self) -> bool:
        return self.expression == Defaults.ONCE_SCHEDULE

    def next_fire(self, after: datetime) -> Optional[datetime]:
        """
        Next fire time strictly after the previous fire and not before *after*.

        ``@once`` schedules fire immediately the first time and never again.
        """
        if self.is_once:
            return None if self.fire_count else after

        base = after
        if self.last_fire is not None and self.last_fire > base:
            base = self.last_fire
        return croniter(self.expression, base).get_next(datetime)


def group_schedules(bindings: List[ProbeBinding]) -> List[Schedule]:
    """Group bindings by schedule expression, keeping first-seen order."""
    schedules: Dict[str, Schedule] = {}
    for binding in bindings:
        schedule = schedules.setdefault(binding.schedule, Schedule(binding.schedule))
        schedule.bindings.append(binding)
    return list(schedules.values())


# ============================================================================
# RUNNER
# ============================================================================

class ProbeRunner:
    """
    Executes probes and fans their outcomes out to the exporter and the
    result store.

    Usage
    -----
        runner = ProbeRunner(bindings, exporter, store, environment="production")
        outcomes = await runner.run_once()
        # or
        await runner.start()
        # ... later ...
        await runner.stop()
    """

    def __init__(
        self,
        bindings: List[ProbeBinding],
        exporter: ExporterClient,
        store: Optional[ResultStore] = None,
        environment: str = Defaults.ENVIRONMENT,
    ):
        self.bindings = list(bindings)
        self.schedules = group_schedules(self.bindings)
        self.exporter = exporter
        self.store = store
        self.environment = environment

        self._running = False
        self._loop_tasks: List[asyncio.Task] = []
        self._in_flight: Set[asyncio.Task] = set()
        self._reporting: Set[asyncio.Task] = set()
        self._started_at: Optional[float] = None

        logger.info(
            f"ProbeRunner created with {len(self.bindings)} probes "
            f"on {len(self.schedules)} schedules"
        )

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # SINGLE EXECUTION
    # ------------------------------------------------------------------

    async def execute(self, binding: ProbeBinding) -> ProbeOutcome:
        """
        Run *binding* once and wait until its outcome is fully reported.

        The run ping always precedes the terminal ping, which always precedes
        the store write. Exporter and store failures never change the outcome,
        and an exception escaping the probe becomes a ``Fail`` outcome.

        Returns
        -------
        ProbeOutcome
            The terminal outcome of this execution.
        """
        outcome, reporting = await self._run_probe(binding)
        await reporting
        return outcome

    async def _run_probe(
        self, binding: ProbeBinding
    ) -> Tuple[ProbeOutcome, asyncio.Task]:
        """
        Execute the probe and hand its reporting to background tasks.

        Returns the terminal outcome together with the task that sends the
        terminal ping and writes the store row. The probe itself never waits
        on the exporter or the store.
        """
        series_id = new_series_id()
        binding.run_count += 1
        binding.last_run = time.time()

        started = self._report(self._report_start(binding, series_id))

        try:
            outcome = await binding.probe.execute(binding.timeout_seconds, series_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            binding.error_count += 1
            logger.opt(exception=e).error(
                f"[Runner] Execution of {binding.monitor} raised unexpectedly: {e}"
            )
            now = utc_now()
            outcome = ProbeOutcome(
                state=ProbeState.FAIL,
                status_code=StatusCodes.TRANSPORT_ERROR,
                message=Messages.UNEXPECTED_ERROR.format(error=f"{type(e).__name__}: {e}"),
                series_id=series_id,
                started_at=now,
                finished_at=now,
            )

        binding.last_outcome = outcome

        log = logger.info if outcome.succeeded else logger.warning
        log(
            f"[Runner] {binding.monitor} → {outcome.state.value} "
            f"(status={outcome.status_code}, {outcome.duration:.3f}s, series={series_id})"
            + (f": {outcome.message}" if outcome.message else "")
        )

        finished = self._report(self._report_finish(binding, outcome, started))
        return outcome, finished

    # ------------------------------------------------------------------
    # REPORTING
    # ------------------------------------------------------------------

    def _report(self, coro) -> asyncio.Task:
        """Track a reporting coroutine so stop() can drain it."""
        task = asyncio.create_task(coro)
        self._reporting.add(task)
        task.add_done_callback(self._reporting.discard)
        return task

    async def _report_start(self, binding: ProbeBinding, series_id: str) -> None:
        """Run ping, then one-time monitor enrichment."""
        try:
            await self.exporter.ping(binding.monitor, ProbeOutcome.running(series_id))
            await self.exporter.ensure_monitor(
                binding.monitor, binding.schedule, binding.timeout_seconds
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.opt(exception=e).error(
                f"[Runner] Reporting the start of {binding.monitor} failed: {e}"
            )

    async def _report_finish(
        self,
        binding: ProbeBinding,
        outcome: ProbeOutcome,
        started: asyncio.Task,
    ) -> None:
        """Terminal ping once the run ping is out, then the store write."""
        await started
        try:
            await self.exporter.ping(binding.monitor, outcome)
            if self.store is not None:
                await self.store.record(binding, outcome, self.environment)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.opt(exception=e).error(
                f"[Runner] Reporting the outcome of {binding.monitor} failed: {e}"
            )

    async def _execute_job(self, binding: ProbeBinding) -> None:
        """Run one scheduled execution; the binding is busy only while it probes."""
        try:
            await self._run_probe(binding)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            binding.error_count += 1
            logger.opt(exception=e).error(
                f"[Runner] Scheduled execution of {binding.monitor} failed: {e}"
            )

    # ------------------------------------------------------------------
    # ONE-SHOT MODE
    # ------------------------------------------------------------------

    @log_execution_time
    async def run_once(self) -> List[ProbeOutcome]:
        """
        Execute every probe once, concurrently.

        Returns
        -------
        list of ProbeOutcome
            Terminal outcomes in binding order.
        """
        logger.info(f"[Runner] Running {len(self.bindings)} probes once")
        return list(await asyncio.gather(*(self.execute(b) for b in self.bindings)))

    # ------------------------------------------------------------------
    # RECURRING MODE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start one loop task per schedule."""
        if self._running:
            logger.warning("ProbeRunner is already running")
            return

        self._running = True
        self._started_at = time.time()
        for schedule in self.schedules:
            task = asyncio.create_task(
                self._schedule_loop(schedule),
                name=f"schedule:{schedule.expression}",
            )
            self._loop_tasks.append(task)
        logger.info(f"✓ ProbeRunner started ({len(self._loop_tasks)} schedules)")

    async def stop(self) -> None:
        """
        Stop firing new executions, then wait for every in-flight execution
        and for every pending terminal ping and store write.
        """
        self._running = False

        for task in self._loop_tasks:
            task.cancel()
        if self._loop_tasks:
            await asyncio.gather(*self._loop_tasks, return_exceptions=True)
        self._loop_tasks = []

        if self._in_flight:
            logger.info(
                f"[Runner] Waiting for {len(self._in_flight)} in-flight executions"
            )
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

        while self._reporting:
            logger.info(
                f"[Runner] Waiting for {len(self._reporting)} pending reports"
            )
            await asyncio.gather(*list(self._reporting), return_exceptions=True)

        logger.info("✓ ProbeRunner stopped")

    async def _schedule_loop(self, schedule: Schedule) -> None:
        """Sleep until the schedule's next fire time, fire, repeat."""
        logger.debug(f"[Runner] Schedule '{schedule.expression}' loop started")

        while self._running:
            fire_at = schedule.next_fire(utc_now())
            if fire_at is None:
                break

            delay = (fire_at - utc_now()).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            if not self._running:
                break

            schedule.last_fire = fire_at
            self.fire(schedule)

        logger.debug(f"[Runner] Schedule '{schedule.expression}' loop exited")

    def fire(self, schedule: Schedule) -> List[asyncio.Task]:
        """
        Launch every binding of *schedule* as its own task.

        A binding whose previous execution is still in flight is skipped for
        this tick and its ``skip_count`` is incremented.

        Returns
        -------
        list of asyncio.Task
            The executions launched by this tick.
        """
        schedule.fire_count += 1
        launched = []

        for binding in schedule.bindings:
            if binding.is_running:
                binding.skip_count += 1
                logger.warning(
                    f"[Runner] {binding.monitor} still running, skipping tick "
                    f"of '{schedule.expression}' (skipped {binding.skip_count}x)"
                )
                continue

            task = asyncio.create_task(
                self._execute_job(binding), name=f"probe:{binding.monitor}"
            )
            binding.in_flight = task
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            launched.append(task)

        return launched

    # ------------------------------------------------------------------
    # RESULTS & DIAGNOSTICS
    # ------------------------------------------------------------------

    def latest_outcomes(self) -> Dict[str, Optional[ProbeOutcome]]:
        """Latest terminal outcome per monitor (None if it never finished)."""
        return {b.monitor: b.last_outcome for b in self.bindings}

    def get_stats(self) -> Dict[str, Any]:
        """Return runner and per-probe statistics."""
        return {
            "is_running": self._running,
            "started_at": (
                datetime.fromtimestamp(self._started_at).isoformat()
                if self._started_at else None
            ),
            "in_flight": len(self._in_flight),
            "reporting": len(self._reporting),
            "schedules": [
                {
                    "expression": s.expression,
                    "fire_count": s.fire_count,
                    "last_fire": s.last_fire.isoformat() if s.last_fire else None,
                    "monitors": [b.monitor for b in s.bindings],
                }
                for s in self.schedules
            ],
            "probes": [
                {
                    "monitor": b.monitor,
                    "kind": b.probe.kind.value,
                    "schedule": b.schedule,
                    "run_count": b.run_count,
                    "skip_count": b.skip_count,
                    "error_count": b.error_count,
                    "is_running": b.is_running,
                    "last_run": (
                        datetime.fromtimestamp(b.last_run).isoformat()
                        if b.last_run else None
                    ),
                    "last_outcome": b.last_outcome.to_dict() if b.last_outcome else None,
                }
                for b in self.bindings
            ],
            "exporter": self.exporter.get_stats(),
            "store": self.store.get_stats() if self.store is not None else None,
        }
