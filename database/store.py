"""
============================================================================
MODEL VITALS - RESULT STORE
============================================================================
Write side of the result log. Appends one MonitoringResult row per terminal
probe outcome. Persistence is advisory: write failures are retried a
bounded number of times, logged, and never propagated to the caller.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from config.constants import Defaults
from database.manager import DatabaseManager
from database.models import MonitoringResult
from exceptions import DatabaseException, ResultWriteError
from utils.logger import get_logger


logger = get_logger("ResultStore")


class ResultStore:
    """
    Appends terminal probe outcomes to ``monitoring_results``.

    Parameters
    ----------
    db_manager : DatabaseManager
        Initialized database manager.
    write_attempts : int
        Attempts per row before the write is given up.
    retry_delay : float
        Pause between attempts in seconds.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        write_attempts: int = Defaults.DB_WRITE_ATTEMPTS,
        retry_delay: float = 0.1,
    ):
        self.db = db_manager
        self.write_attempts = max(1, write_attempts)
        self.retry_delay = retry_delay
        self._written = 0
        self._failed = 0

    @staticmethod
    def build_row(binding: Any, outcome: Any, environment: str) -> MonitoringResult:
        """
        Build the row for one terminal outcome.

        ``binding`` needs ``monitor``, ``endpoint_url`` and ``model_name``;
        ``outcome`` is a terminal ProbeOutcome.
        """
        return MonitoringResult(
            timestamp=outcome.finished_at or outcome.started_at,
            monitor_name=binding.monitor,
            endpoint_url=binding.endpoint_url,
            model_name=binding.model_name,
            state=outcome.state.value,
            status_code=outcome.status_code,
            message=outcome.message,
            duration_ms=outcome.duration_ms,
            series_id=outcome.series_id,
            environment=environment,
        )

    async def record(self, binding: Any, outcome: Any, environment: str) -> bool:
        """
        Append *outcome* for *binding*.

        Running outcomes are ignored. Retrying a write may leave duplicate
        rows for the same series id, which readers tolerate.

        Returns
        -------
        bool
            True if the row was written. Never raises.
        """
        if not outcome.is_terminal:
            return False

        try:
            await self._write(binding, outcome, environment)
        except ResultWriteError as e:
            self._failed += 1
            logger.warning(f"[ResultStore] {e.log_format()}")
            return False

        self._written += 1
        logger.debug(
            f"[ResultStore] ✓ {binding.monitor} {outcome.state.value} "
            f"series={outcome.series_id}"
        )
        return True

    async def _write(self, binding: Any, outcome: Any, environment: str) -> None:
        last_error: Optional[Exception] = None

        for attempt in range(1, self.write_attempts + 1):
            try:
                async with self.db.session() as session:
                    session.add(self.build_row(binding, outcome, environment))
                return
            except (SQLAlchemyError, DatabaseException, OSError) as e:
                last_error = e
                logger.debug(
                    f"[ResultStore] write attempt {attempt}/{self.write_attempts} "
                    f"for series {outcome.series_id} failed: {e}"
                )
                if attempt < self.write_attempts:
                    await asyncio.sleep(self.retry_delay)

        raise ResultWriteError(
            f"Failed to write result for {binding.monitor}: {last_error}",
            series_id=outcome.series_id,
            attempts=self.write_attempts,
            cause=last_error,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {"written": self._written, "failed": self._failed}
