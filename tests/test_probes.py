"""Tests for the probe variants."""

import asyncio
import json
import os
import sys
import time

import httpx
import pytest

from config.constants import ProbeKind, ProbeState
from config.targets import TargetsConfig
from monitoring.probes import (
    ChatProbe,
    CollectionProbe,
    EmbeddingProbe,
    build_probe,
    summarize_report,
)

from conftest import CHAT_OK, EMBEDDING_OK


NEWMAN_REPORT_OK = {
    "run": {
        "stats": {"assertions": {"total": 2, "failed": 0}},
        "failures": [],
        "executions": [
            {"item": {"name": "chat"}, "response": {"code": 200}, "assertions": [{"assertion": "ok"}]},
        ],
    }
}

NEWMAN_REPORT_FAILED = {
    "run": {
        "stats": {"assertions": {"total": 3, "failed": 1}},
        "failures": [
            {
                "error": {"name": "AssertionError", "test": "status is 200", "message": "expected 503 to equal 200"},
                "source": {"name": "chat completion"},
            }
        ],
        "executions": [
            {"item": {"name": "models"}, "response": {"code": 200}, "assertions": [{"assertion": "ok"}]},
            {
                "item": {"name": "chat completion"},
                "response": {"code": 503},
                "assertions": [{"assertion": "status is 200", "error": {"message": "expected 503"}}],
            },
        ],
    }
}


def write_runner(tmp_path, body: str):
    """Write an executable stand-in for the collection runner."""
    path = tmp_path / "fake-newman"
    path.write_text("#!/bin/sh\n" + body)
    os.chmod(path, 0o755)
    return str(path)


def report_writing_runner(tmp_path, report, exit_code=0):
    report_file = tmp_path / "canned-report.json"
    report_file.write_text(json.dumps(report))
    return write_runner(
        tmp_path,
        'while [ $# -gt 0 ]; do\n'
        '  if [ "$1" = "--reporter-json-export" ]; then out="$2"; fi\n'
        '  shift\n'
        'done\n'
        f'cp "{report_file}" "$out"\n'
        f'exit {exit_code}\n',
    )


class TestChatProbe:
    """Test cases for the chat completion probe."""

    @pytest.mark.asyncio
    async def test_success(self, stub):
        """Test a 200 with choices completes with status 200."""
        stub.route("http://svc/v1/chat/completions", json=CHAT_OK)
        probe = ChatProbe("svc-chat", "http://svc", "llama", transport=stub.transport)

        outcome = await probe.execute(timeout=2, series_id="1-2-abc")

        assert outcome.state == ProbeState.COMPLETE
        assert outcome.status_code == 200
        assert outcome.series_id == "1-2-abc"
        assert outcome.timed_out is False
        assert outcome.duration >= 0
        assert outcome.finished_at >= outcome.started_at

        request = stub.model_requests()[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {
            "model": "llama",
            "messages": [{"role": "user", "content": "test"}],
            "max_tokens": 1,
        }

    @pytest.mark.asyncio
    async def test_server_error(self, stub):
        """Test a 500 fails with the HTTP status and a body excerpt."""
        stub.route("http://svc/v1/chat/completions", status=500, text="upstream exploded")
        probe = ChatProbe("svc-chat", "http://svc", "llama", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 500
        assert outcome.message == "HTTP 500: upstream exploded"

    @pytest.mark.asyncio
    async def test_malformed_body(self, stub):
        """Test a 200 without choices fails with status 200."""
        stub.route("http://svc/v1/chat/completions", json={"choices": []})
        probe = ChatProbe("svc-chat", "http://svc", "llama", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 200
        assert outcome.message.startswith("malformed response body")

    @pytest.mark.asyncio
    async def test_non_json_body(self, stub):
        """Test a 200 that is not JSON fails with status 200."""
        stub.route("http://svc/v1/chat/completions", text="<html>ok</html>")
        probe = ChatProbe("svc-chat", "http://svc", "llama", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 200

    @pytest.mark.asyncio
    async def test_transport_error(self, stub):
        """Test a refused connection fails with status 0."""
        probe = ChatProbe("svc-chat", "http://nowhere", "llama", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 0
        assert outcome.message.startswith("transport error: ")
        assert outcome.timed_out is False

    @pytest.mark.asyncio
    async def test_hanging_endpoint_times_out(self, stub):
        """Test a hanging endpoint fails with 124 within the timeout plus margin."""
        async def hang(request):
            await asyncio.sleep(30)
            return httpx.Response(200, json=CHAT_OK)

        stub.route("http://svc/v1/chat/completions", handler=hang)
        probe = ChatProbe("svc-chat", "http://svc", "llama", transport=stub.transport)

        start = time.monotonic()
        outcome = await probe.execute(timeout=0.3)
        elapsed = time.monotonic() - start

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 124
        assert outcome.message == "request timeout"
        assert outcome.timed_out is True
        assert elapsed < 0.3 + 1.0

    @pytest.mark.asyncio
    async def test_client_timeout_reported_as_timeout(self, stub):
        """Test an httpx timeout is classified like the hard timeout."""
        def read_timeout(request):
            raise httpx.ReadTimeout("timed out", request=request)

        stub.route("http://svc/v1/chat/completions", handler=read_timeout)
        probe = ChatProbe("svc-chat", "http://svc", "llama", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.status_code == 124
        assert outcome.message == "request timeout"
        assert outcome.timed_out is True

    @pytest.mark.asyncio
    async def test_unexpected_error_never_raises(self, stub):
        """Test an unexpected exception becomes a Fail outcome."""
        def boom(request):
            raise RuntimeError("boom")

        stub.route("http://svc/v1/chat/completions", handler=boom)
        probe = ChatProbe("svc-chat", "http://svc", "llama", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 0
        assert "boom" in outcome.message

    @pytest.mark.asyncio
    async def test_long_error_body_truncated(self, stub):
        """Test error bodies are truncated in the message."""
        stub.route("http://svc/v1/chat/completions", status=502, text="x" * 5000)
        probe = ChatProbe("svc-chat", "http://svc", "llama", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.status_code == 502
        assert len(outcome.message) < 300


class TestEmbeddingProbe:
    """Test cases for the embedding probe."""

    @pytest.mark.asyncio
    async def test_success(self, stub):
        """Test a 200 with an embedding completes."""
        stub.route("http://svc/v1/embeddings", json=EMBEDDING_OK)
        probe = EmbeddingProbe("svc-embed", "http://svc", "embed", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.state == ProbeState.COMPLETE
        assert outcome.status_code == 200
        assert json.loads(stub.model_requests()[0].content) == {"model": "embed", "input": "test"}

    @pytest.mark.asyncio
    async def test_missing_embedding(self, stub):
        """Test data without an embedding list is malformed."""
        stub.route("http://svc/v1/embeddings", json={"data": [{"embedding": "nope"}]})
        probe = EmbeddingProbe("svc-embed", "http://svc", "embed", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 200

    @pytest.mark.asyncio
    async def test_service_unavailable(self, stub):
        """Test a 503 fails with status 503."""
        stub.route("http://svc/v1/embeddings", status=503, json={"error": "loading"})
        probe = EmbeddingProbe("svc-embed", "http://svc", "embed", transport=stub.transport)

        outcome = await probe.execute(timeout=2)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 503


class TestCollectionProbe:
    """Test cases for the collection runner probe."""

    def test_command_line(self, tmp_path):
        """Test the runner receives the endpoint as baseUrl."""
        probe = CollectionProbe(
            "gw-smoke", "https://gw/", "smoke.json", environment="env.json"
        )

        cmd = probe.command(tmp_path / "report.json")

        assert cmd == [
            "newman", "run", "smoke.json",
            "--env-var", "baseUrl=https://gw",
            "--environment", "env.json",
            "--reporters", "json", "--reporter-json-export", str(tmp_path / "report.json"),
        ]

    @pytest.mark.asyncio
    async def test_missing_runner(self, tmp_path):
        """Test a missing runner binary fails with status 0."""
        probe = CollectionProbe(
            "gw-smoke", "https://gw", "smoke.json",
            runner=str(tmp_path / "does-not-exist"),
        )

        outcome = await probe.execute(timeout=5)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 0
        assert "collection runner not found" in outcome.message

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    @pytest.mark.asyncio
    async def test_passing_collection(self, tmp_path):
        """Test a clean report completes."""
        runner = report_writing_runner(tmp_path, NEWMAN_REPORT_OK)
        probe = CollectionProbe("gw-smoke", "https://gw", "smoke.json", runner=runner)

        outcome = await probe.execute(timeout=10)

        assert outcome.state == ProbeState.COMPLETE
        assert outcome.status_code == 0

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    @pytest.mark.asyncio
    async def test_failing_collection(self, tmp_path):
        """Test failed assertions fail with the runner's own digest."""
        runner = report_writing_runner(tmp_path, NEWMAN_REPORT_FAILED, exit_code=1)
        probe = CollectionProbe("gw-smoke", "https://gw", "smoke.json", runner=runner)

        outcome = await probe.execute(timeout=10)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 503
        assert outcome.message.startswith("1 of 3 assertions failed")
        assert "chat completion: status is 200" in outcome.message

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    @pytest.mark.asyncio
    async def test_runner_crash_without_report(self, tmp_path):
        """Test a runner that exits non-zero without a report fails."""
        runner = write_runner(tmp_path, 'echo "could not load collection"\nexit 1\n')
        probe = CollectionProbe("gw-smoke", "https://gw", "smoke.json", runner=runner)

        outcome = await probe.execute(timeout=10)

        assert outcome.state == ProbeState.FAIL
        assert outcome.status_code == 0
        assert "exited with code 1" in outcome.message
        assert "could not load collection" in outcome.message

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    @pytest.mark.asyncio
    async def test_hanging_runner_killed(self, tmp_path):
        """Test a hanging runner is killed and reported as a timeout."""
        runner = write_runner(tmp_path, "exec sleep 30\n")
        probe = CollectionProbe("gw-smoke", "https://gw", "smoke.json", runner=runner)

        start = time.monotonic()
        outcome = await probe.execute(timeout=0.5)

        assert time.monotonic() - start < 5
        assert outcome.status_code == 124
        assert outcome.timed_out is True

    def test_summarize_report(self):
        """Test the report digest picks the first failing response code."""
        summary = summarize_report(NEWMAN_REPORT_FAILED)

        assert summary["total"] == 3
        assert summary["failed"] == 1
        assert summary["status_code"] == 503
        assert summary["failures"] == [
            "chat completion: status is 200: expected 503 to equal 200"
        ]

    def test_summarize_empty_report(self):
        """Test an empty report has nothing failed."""
        assert summarize_report({}) == {
            "total": 0, "failed": 0, "failures": [], "status_code": 0,
        }


class TestBuildProbe:
    """Test cases for the probe factory."""

    def test_dispatch(self, make_targets):
        """Test each kind maps to its variant."""
        targets: TargetsConfig = make_targets({
            "name": "svc",
            "url": "http://svc",
            "models": [
                {"name": "c", "type": "chat", "model_name": "llama"},
                {"name": "e", "type": "embedding"},
                {"name": "p", "type": "collection", "collection": "smoke.json"},
            ],
        })
        endpoint = targets.endpoints[0]

        probes = [build_probe(endpoint, m, collection_runner="my-newman") for m in endpoint.models]

        assert [p.kind for p in probes] == [
            ProbeKind.CHAT, ProbeKind.EMBEDDING, ProbeKind.COLLECTION,
        ]
        assert probes[0].target == "http://svc/v1/chat/completions"
        assert probes[0].model_name == "llama"
        assert probes[1].target == "http://svc/v1/embeddings"
        assert probes[2].runner == "my-newman"
        assert probes[0].name == "svc-c"
