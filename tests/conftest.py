"""Shared fixtures: settings/target factories and an httpx stub server."""

import inspect
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from config.settings import (
    DatabaseSettings,
    ExporterSettings,
    LoggingSettings,
    ProbeSettings,
    Settings,
    WebSettings,
)
from config.targets import TargetsConfig
from config.constants import RunMode
from database.manager import DatabaseManager


EXPORTER_BASE = "https://cronitor.link/p/test-key"
EXPORTER_HOST = "cronitor.link"
EXPORTER_API_HOST = "cronitor.io"

CHAT_OK = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "ok"},
            "finish_reason": "length",
        }
    ],
}

EMBEDDING_OK = {
    "object": "list",
    "data": [{"object": "embedding", "index": 0, "embedding": [0.01, -0.02, 0.03]}],
}


class StubServer:
    """
    In-process stand-in for model endpoints and the exporter.

    Exporter requests always succeed unless ``exporter_handler`` is set.
    Model routes are keyed by (host, path); unknown routes raise a connect
    error like a refused connection would.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Callable[[httpx.Request], Any]] = {}
        self.requests: List[httpx.Request] = []
        self.exporter_handler: Optional[Callable[[httpx.Request], Any]] = None

    def route(
        self,
        url: str,
        status: int = 200,
        json: Any = None,
        text: Optional[str] = None,
        handler: Optional[Callable[[httpx.Request], Any]] = None,
    ) -> None:
        parsed = httpx.URL(url)
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                if text is not None:
                    return httpx.Response(status, text=text)
                return httpx.Response(status, json=json)
        self.routes[(parsed.host, parsed.path)] = handler

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host in (EXPORTER_HOST, EXPORTER_API_HOST):
            handler = self.exporter_handler or (lambda r: httpx.Response(200, text="OK"))
        else:
            handler = self.routes.get((request.url.host, request.url.path))
            if handler is None:
                raise httpx.ConnectError("Connection refused", request=request)

        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def pings(self, monitor: Optional[str] = None) -> List[Dict[str, str]]:
        """Exporter pings in arrival order, as flat query dicts plus ``monitor``."""
        pings = []
        for request in self.requests:
            if request.url.host != EXPORTER_HOST:
                continue
            ping = dict(request.url.params)
            ping["monitor"] = request.url.path.rsplit("/", 1)[-1]
            if monitor is None or ping["monitor"] == monitor:
                pings.append(ping)
        return pings

    def model_requests(self) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.host not in (EXPORTER_HOST, EXPORTER_API_HOST)
        ]


@pytest.fixture
def stub() -> StubServer:
    """Stub endpoints and exporter."""
    return StubServer()


@pytest.fixture
def exporter_settings() -> ExporterSettings:
    """Exporter settings without back-off delays."""
    return ExporterSettings(
        base_url=EXPORTER_BASE,
        environment="test",
        host="test-host",
        timeout_seconds=1,
        max_attempts=3,
        retry_delay=0,
    )


@pytest.fixture
def make_settings(exporter_settings: ExporterSettings, tmp_path):
    """Factory for Settings with fast, isolated defaults."""

    def _make(
        run_mode: RunMode = RunMode.ONCE,
        timeout_seconds: float = 2,
        default_schedule: str = "@once",
        db_enabled: bool = False,
        web_enabled: bool = False,
        exporter: Optional[ExporterSettings] = None,
    ) -> Settings:
        return Settings(
            run_mode=run_mode,
            exporter=exporter or exporter_settings,
            probe=ProbeSettings(
                timeout_seconds=timeout_seconds,
                default_schedule=default_schedule,
                targets_file=tmp_path / "targets.yaml",
            ),
            database=DatabaseSettings(
                enabled=db_enabled,
                url=f"sqlite+aiosqlite:///{tmp_path / 'results.db'}",
                write_attempts=2,
            ),
            logging=LoggingSettings(level="DEBUG", colorize=False),
            web=WebSettings(enabled=web_enabled, host="127.0.0.1", port=18080),
        )

    return _make


@pytest.fixture
def make_targets():
    """Factory for TargetsConfig from plain dicts."""

    def _make(*endpoints: Dict[str, Any]) -> TargetsConfig:
        return TargetsConfig.from_dict({"endpoints": list(endpoints)})

    return _make


@pytest.fixture
def svc_targets(make_targets) -> TargetsConfig:
    """The ``svc`` endpoint with one embedding model ``embed``."""
    return make_targets({
        "name": "svc",
        "url": "http://svc",
        "models": [{"name": "embed", "type": "embedding"}],
    })


@pytest_asyncio.fixture
async def db_manager(tmp_path):
    """Initialized SQLite manager in a temp directory."""
    manager = DatabaseManager(
        DatabaseSettings(enabled=True, url=f"sqlite+aiosqlite:///{tmp_path / 'db' / 'results.db'}")
    )
    await manager.initialize()
    yield manager
    await manager.close()
