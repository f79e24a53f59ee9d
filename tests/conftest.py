"""Shared test fixtures for the healthprobe test suite."""

from __future__ import annotations

import asyncio
import json
import logging
import socket
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest
from aiohttp import web

from healthprobe.dsl.http_client import HttpClient
from healthprobe.metrics.custom import registry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


@pytest.fixture(autouse=True)
def _fresh_metrics() -> Iterator[None]:
    """Zero the global metric registry and let caplog see healthprobe logs."""
    registry.reset()
    logger = logging.getLogger("healthprobe")
    logger.propagate = True
    yield
    registry.reset()


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Fake health service
# =============================================================================

READY_PATH = "/q/health/ready"
LIVE_PATH = "/q/health/live"
HEALTH_PATH = "/q/health"

KEYCLOAK_UP = {"name": "Keycloak health check", "status": "UP"}


@dataclass
class EndpointBehavior:
    """What one fake health endpoint answers."""

    status: int = 200
    body: str = '{"status": "UP"}'
    content_type: str = "application/json"


def _healthy_behaviors() -> dict[str, EndpointBehavior]:
    return {
        READY_PATH: EndpointBehavior(
            body=json.dumps({"status": "UP", "checks": [KEYCLOAK_UP]}),
        ),
        LIVE_PATH: EndpointBehavior(body=json.dumps({"status": "UP", "checks": []})),
        HEALTH_PATH: EndpointBehavior(
            body=json.dumps({"status": "UP", "checks": [KEYCLOAK_UP]}),
        ),
    }


@dataclass
class HealthService:
    """Configurable stand-in for a service exposing the three health endpoints.

    Every endpoint starts out healthy; tests override one with ``configure``.
    Received requests are recorded as ``(path, headers)``.
    """

    behaviors: dict[str, EndpointBehavior] = field(default_factory=_healthy_behaviors)
    requests: list[tuple[str, dict[str, str]]] = field(default_factory=list)

    def configure(
        self,
        path: str,
        *,
        status: int = 200,
        body: Any = None,
        content_type: str = "application/json",
    ) -> None:
        """Replace the answer of *path*; a non-string body is JSON-encoded."""
        text = body if isinstance(body, str) else json.dumps(body)
        self.behaviors[path] = EndpointBehavior(status=status, body=text, content_type=content_type)

    def hits(self, path: str) -> int:
        return sum(1 for p, _ in self.requests if p == path)


HEALTH_SERVICE_KEY = web.AppKey("health_service", HealthService)


async def _health_handler(request: web.Request) -> web.Response:
    service = request.app[HEALTH_SERVICE_KEY]
    service.requests.append((request.path, dict(request.headers)))
    behavior = service.behaviors[request.path]
    return web.Response(
        status=behavior.status,
        text=behavior.body,
        content_type=behavior.content_type,
    )


async def _echo_handler(request: web.Request) -> web.Response:
    """Echo back request details as JSON."""
    body = await request.read()
    return web.json_response(
        {
            "method": request.method,
            "path": str(request.path),
            "headers": dict(request.headers),
            "body": body.decode("utf-8", errors="replace"),
        }
    )


def _create_health_app(service: HealthService) -> web.Application:
    app = web.Application()
    app[HEALTH_SERVICE_KEY] = service
    app.router.add_route("*", "/echo{path:.*}", _echo_handler)
    for path in (READY_PATH, LIVE_PATH, HEALTH_PATH):
        app.router.add_get(path, _health_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def health_service() -> HealthService:
    return HealthService()


@pytest.fixture
async def health_server(health_service: HealthService) -> AsyncIterator[str]:
    """Fake health service on a free port.

    Returns the base URL (e.g., 'http://127.0.0.1:54321').
    """
    runner = web.AppRunner(_create_health_app(health_service))
    await runner.setup()
    port = _get_free_port()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"http://127.0.0.1:{port}"
    await runner.cleanup()


@pytest.fixture
def sync_health_server(health_service: HealthService) -> Iterator[str]:
    """Fake health service running in a background thread for sync tests.

    Used where the code under test calls ``asyncio.run`` and blocks the
    main thread (CLI tests).
    """
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        runner = web.AppRunner(_create_health_app(health_service))
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield f"http://127.0.0.1:{port}"

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)


@pytest.fixture
def client_timeouts(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record the timeout every virtual user's HttpClient is created with."""
    seen: list[float] = []

    class RecordingClient(HttpClient):
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            seen.append(kwargs["timeout"])
            super().__init__(*args, **kwargs)

    monkeypatch.setattr("healthprobe.engine.session.HttpClient", RecordingClient)
    return seen
