"""Tests for the results server routes."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from aiohttp import test_utils

from config.constants import ProbeState
from config.settings import WebSettings
from database import ResultRepository, ResultStore
from exceptions import InitializationError
from monitoring.exporter import ExporterClient
from monitoring.probes import EmbeddingProbe, ProbeOutcome
from monitoring.scheduler import ProbeBinding, ProbeRunner
from monitoring.web import ResultsServer


@pytest.fixture
def probe_runner(exporter_settings, stub):
    probe = EmbeddingProbe("svc-embed", "http://svc", "embed", transport=stub.transport)
    binding = ProbeBinding(
        monitor="svc-embed",
        probe=probe,
        endpoint_url="http://svc",
        model_name="embed",
        timeout_seconds=2,
        schedule="*/5 * * * *",
    )
    exporter = ExporterClient(exporter_settings, transport=stub.transport)
    return ProbeRunner([binding], exporter)


@pytest_asyncio.fixture
async def make_client():
    """Factory for aiohttp test clients over a ResultsServer app."""
    clients = []

    async def _make(server: ResultsServer) -> test_utils.TestClient:
        client = test_utils.TestClient(test_utils.TestServer(server.app))
        await client.start_server()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.close()


@pytest_asyncio.fixture
async def repository(db_manager):
    """Repository over three stored executions."""
    store = ResultStore(db_manager)
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    rows = [
        ("svc-embed", ProbeState.COMPLETE, 200),
        ("svc-chat", ProbeState.FAIL, 503),
        ("svc-embed", ProbeState.FAIL, 124),
    ]
    for i, (monitor, state, code) in enumerate(rows):
        binding = SimpleNamespace(monitor=monitor, endpoint_url="http://svc", model_name="m")
        finished = base + timedelta(minutes=i)
        outcome = ProbeOutcome(
            state=state, status_code=code, series_id=f"series-{i}",
            duration=0.1, started_at=finished, finished_at=finished,
        )
        await store.record(binding, outcome, "test")
    return ResultRepository(db_manager)


def web_settings():
    return WebSettings(enabled=True, host="127.0.0.1", port=test_utils.unused_port())


class TestHealth:
    """Test cases for /health."""

    @pytest.mark.asyncio
    async def test_health(self, probe_runner, make_client):
        """Test runner statistics are reported."""
        client = await make_client(ResultsServer(web_settings(), probe_runner))

        response = await client.get("/health")

        assert response.status == 200
        body = await response.json()
        assert body["status"] == "stopped"
        assert body["store"] is False
        assert body["probes"][0]["monitor"] == "svc-embed"
        assert body["probes"][0]["kind"] == "embedding"


class TestResultsApi:
    """Test cases for the /api routes."""

    @pytest.mark.asyncio
    async def test_store_disabled(self, probe_runner, make_client):
        """Test the API answers 503 without a store."""
        client = await make_client(ResultsServer(web_settings(), probe_runner))

        for path in ("/api/monitors", "/api/results", "/api/probe-details?series_id=x"):
            response = await client.get(path)
            assert response.status == 503

    @pytest.mark.asyncio
    async def test_results(self, probe_runner, repository, make_client):
        """Test rows come back newest first with filters applied."""
        client = await make_client(ResultsServer(web_settings(), probe_runner, repository))

        everything = await (await client.get("/api/results")).json()
        embed = await (await client.get("/api/results?monitor_name=svc-embed")).json()
        failures = await (await client.get("/api/results?state=Fail&limit=1")).json()

        assert [r["series_id"] for r in everything["results"]] == [
            "series-2", "series-1", "series-0"
        ]
        assert [r["series_id"] for r in embed["results"]] == ["series-2", "series-0"]
        assert failures["count"] == 1
        assert failures["results"][0]["status_code"] == 124

    @pytest.mark.asyncio
    async def test_results_bad_parameters(self, probe_runner, repository, make_client):
        """Test invalid paging and states are rejected."""
        client = await make_client(ResultsServer(web_settings(), probe_runner, repository))

        for query in ("limit=abc", "limit=0", "offset=-1", "state=Running"):
            response = await client.get(f"/api/results?{query}")
            assert response.status == 400

    @pytest.mark.asyncio
    async def test_monitors(self, probe_runner, repository, make_client):
        """Test distinct monitor names are listed."""
        client = await make_client(ResultsServer(web_settings(), probe_runner, repository))

        body = await (await client.get("/api/monitors")).json()

        assert body == {"monitors": ["svc-chat", "svc-embed"]}

    @pytest.mark.asyncio
    async def test_probe_details(self, probe_runner, repository, make_client):
        """Test one execution can be looked up by series id."""
        client = await make_client(ResultsServer(web_settings(), probe_runner, repository))

        found = await client.get("/api/probe-details?series_id=series-1")
        missing = await client.get("/api/probe-details?series_id=nope")
        no_id = await client.get("/api/probe-details")

        assert found.status == 200
        body = await found.json()
        assert body["results"][0]["monitor_name"] == "svc-chat"
        assert missing.status == 404
        assert no_id.status == 400


class TestLifecycle:
    """Test cases for binding the server."""

    @pytest.mark.asyncio
    async def test_port_in_use(self, probe_runner):
        """Test a taken port is an initialization error."""
        settings = web_settings()
        first = ResultsServer(settings, probe_runner)
        second = ResultsServer(settings, probe_runner)

        await first.start()
        try:
            with pytest.raises(InitializationError):
                await second.start()
        finally:
            await first.stop()
