"""
============================================================================
MODEL VITALS - RESULTS SERVER
============================================================================
A lightweight aiohttp server that runs next to the probe runner in
recurring mode. It exposes the runner's health and the persisted results
for later querying. Rows are returned as stored; nothing is aggregated.

    GET /health                        → 200 JSON runner statistics
    GET /api/monitors                  → distinct monitor names
    GET /api/results?monitor_name=&state=&limit=&offset=
                                       → most recent rows first
    GET /api/probe-details?series_id=  → every row of one execution

The /api routes need a result store and answer 503 without one.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import time
from typing import Optional, Dict, Any

from aiohttp import web
from sqlalchemy.exc import SQLAlchemyError

from config.constants import Limits, ProbeState
from config.settings import WebSettings
from database.manager import ResultRepository
from exceptions import DatabaseException, InitializationError
from monitoring.scheduler import ProbeRunner
from utils.logger import get_logger
from utils.helpers import seconds_to_human_readable, utc_now


logger = get_logger("ResultsServer")


class ResultsServer:
    """
    aiohttp server exposing runner health and stored results.

    Attributes
    ----------
    app : aiohttp.web.Application
    _runner : aiohttp.web.AppRunner
    _site : aiohttp.web.TCPSite
    _start_time : float          — epoch seconds when the server started
    _request_count : int         — total requests served
    """

    def __init__(
        self,
        settings: WebSettings,
        probe_runner: ProbeRunner,
        repository: Optional[ResultRepository] = None,
    ):
        self.settings = settings
        self.probe_runner = probe_runner
        self.repository = repository

        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = time.time()
        self._request_count: int = 0

        # Register routes
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/api/monitors", self._handle_monitors)
        self.app.router.add_get("/api/results", self._handle_results)
        self.app.router.add_get("/api/probe-details", self._handle_probe_details)

    async def start(self) -> None:
        """
        Bind and start serving.

        Raises
        ------
        InitializationError
            If the address cannot be bound.
        """
        self._start_time = time.time()
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        try:
            self._site = web.TCPSite(self._runner, self.settings.host, self.settings.port)
            await self._site.start()
        except OSError as e:
            await self._runner.cleanup()
            self._runner = None
            raise InitializationError(
                f"cannot bind {self.settings.host}:{self.settings.port}: {e}",
                component="ResultsServer",
                cause=e,
            ) from e
        logger.info(f"✓ ResultsServer listening on {self.settings.host}:{self.settings.port}")

    async def stop(self) -> None:
        """Gracefully shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ ResultsServer stopped")

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health — runner statistics."""
        self._request_count += 1
        uptime_seconds = time.time() - self._start_time

        health: Dict[str, Any] = {
            "status": "healthy" if self.probe_runner.is_running else "stopped",
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime_human": seconds_to_human_readable(uptime_seconds),
            "requests_served": self._request_count,
            "timestamp": utc_now().isoformat(),
            "store": self.repository is not None,
        }
        health.update(self.probe_runner.get_stats())

        return web.json_response(health)

    async def _handle_monitors(self, request: web.Request) -> web.Response:
        """GET /api/monitors — distinct monitor names with stored rows."""
        self._request_count += 1
        if self.repository is None:
            return _store_unavailable()

        try:
            monitors = await self.repository.get_monitor_names()
        except (SQLAlchemyError, DatabaseException) as e:
            return _query_failed(e)

        return web.json_response({"monitors": monitors})

    async def _handle_results(self, request: web.Request) -> web.Response:
        """GET /api/results — most recent rows, optionally filtered."""
        self._request_count += 1
        if self.repository is None:
            return _store_unavailable()

        query = request.query
        try:
            limit = int(query.get("limit", Limits.DEFAULT_RESULTS_LIMIT))
            offset = int(query.get("offset", 0))
        except ValueError:
            return _bad_request("limit and offset must be integers")
        if limit < 1 or offset < 0:
            return _bad_request("limit must be positive and offset non-negative")
        limit = min(limit, Limits.MAX_RESULTS_LIMIT)

        state = query.get("state") or None
        if state is not None and state not in (ProbeState.COMPLETE.value, ProbeState.FAIL.value):
            return _bad_request(f"unknown state: {state}")

        try:
            rows = await self.repository.get_recent(
                monitor_name=query.get("monitor_name") or None,
                state=state,
                limit=limit,
                offset=offset,
            )
        except (SQLAlchemyError, DatabaseException) as e:
            return _query_failed(e)

        return web.json_response({
            "results": [row.to_dict() for row in rows],
            "limit": limit,
            "offset": offset,
            "count": len(rows),
        })

    async def _handle_probe_details(self, request: web.Request) -> web.Response:
        """GET /api/probe-details — every row written for one series id."""
        self._request_count += 1
        if self.repository is None:
            return _store_unavailable()

        series_id = request.query.get("series_id")
        if not series_id:
            return _bad_request("series_id is required")

        try:
            rows = await self.repository.get_by_series_id(series_id)
        except (SQLAlchemyError, DatabaseException) as e:
            return _query_failed(e)

        if not rows:
            return web.json_response(
                {"error": f"no results for series {series_id}"}, status=404
            )
        return web.json_response({
            "series_id": series_id,
            "results": [row.to_dict() for row in rows],
        })


# ============================================================================
# RESPONSES
# ============================================================================

def _bad_request(message: str) -> web.Response:
    return web.json_response({"error": message}, status=400)


def _store_unavailable() -> web.Response:
    return web.json_response({"error": "result store is not enabled"}, status=503)


def _query_failed(error: Exception) -> web.Response:
    logger.error(f"[ResultsServer] Query failed: {error}")
    return web.json_response({"error": "query failed"}, status=500)
