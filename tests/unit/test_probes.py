"""Tests for the health endpoint probes and the built-in health scenario."""

from __future__ import annotations

import logging
import time
from typing import Any

import pytest

from healthprobe._internal.errors import ProbeError
from healthprobe.dsl.http_client import HttpClient
from healthprobe.metrics.custom import MetricRegistry, Rate, registry
from healthprobe.probes.context import RunContext
from healthprobe.probes.endpoints import (
    GENERAL,
    HEALTH_ENDPOINTS,
    HEALTH_GROUP,
    LIVENESS,
    READINESS,
    ProbeResponse,
    checks_array_exists,
    keycloak_check_exists,
    probe_endpoint,
    response_is_json,
    status_is_up,
)
from healthprobe.probes.scenario import ERROR_RATE_METRIC, HealthCheckScenario

READY_PATH = "/q/health/ready"
LIVE_PATH = "/q/health/live"
HEALTH_PATH = "/q/health"
KEYCLOAK_UP = {"name": "Keycloak health check", "status": "UP"}


class _FakeResponse:
    """Minimal stand-in for ``aiohttp.ClientResponse``."""

    def __init__(self, text: str, *, status: int = 200, headers: dict[str, str] | None = None):
        self.status = status
        self.headers = headers if headers is not None else {}
        self._text = text

    async def text(self) -> str:
        return self._text


def _probe(body: dict[str, Any], *, status: int = 200, content_type: str = "application/json") -> ProbeResponse:
    return ProbeResponse(status=status, content_type=content_type, body=body)


# =========================================================================
# ProbeResponse and predicates
# =========================================================================


class TestProbeResponse:
    async def test_reads_status_content_type_and_body(self):
        resp = _FakeResponse(
            '{"status": "UP"}',
            status=503,
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        probe = await ProbeResponse.read(resp)  # type: ignore[arg-type]
        assert probe.status == 503
        assert probe.content_type == "application/json; charset=utf-8"
        assert probe.body == {"status": "UP"}

    async def test_missing_content_type_is_empty(self):
        probe = await ProbeResponse.read(_FakeResponse("{}"))  # type: ignore[arg-type]
        assert probe.content_type == ""
        assert response_is_json(probe) is False

    async def test_invalid_json_raises(self):
        with pytest.raises(ProbeError, match="not valid JSON"):
            await ProbeResponse.read(_FakeResponse("<html>oops</html>"))  # type: ignore[arg-type]

    @pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
    async def test_non_standard_constants_raise(self, constant: str):
        text = f'{{"status": "UP", "uptime": {constant}}}'
        with pytest.raises(ProbeError, match="not valid JSON"):
            await ProbeResponse.read(_FakeResponse(text))  # type: ignore[arg-type]

    async def test_non_object_body_raises(self):
        with pytest.raises(ProbeError, match="must be a JSON object"):
            await ProbeResponse.read(_FakeResponse('["UP"]'))  # type: ignore[arg-type]


class TestPredicates:
    def test_status_is_up_is_case_sensitive(self):
        assert status_is_up(_probe({"status": "UP"}))
        assert not status_is_up(_probe({"status": "up"}))
        assert not status_is_up(_probe({}))

    def test_checks_array_must_be_a_list(self):
        assert checks_array_exists(_probe({"checks": []}))
        assert not checks_array_exists(_probe({"checks": {}}))
        assert not checks_array_exists(_probe({"checks": "none"}))

    def test_missing_checks_counts_as_empty_array(self):
        assert checks_array_exists(_probe({}))
        assert checks_array_exists(_probe({"checks": None}))
        assert not keycloak_check_exists(_probe({}))

    def test_keycloak_check_must_be_up(self):
        assert keycloak_check_exists(_probe({"checks": [KEYCLOAK_UP]}))
        down = {"name": "Keycloak health check", "status": "DOWN"}
        assert not keycloak_check_exists(_probe({"checks": [down]}))
        assert not keycloak_check_exists(_probe({"checks": ["Keycloak health check"]}))
        assert not keycloak_check_exists(_probe({"checks": None}))

    def test_endpoint_table(self):
        assert [e.path for e in HEALTH_ENDPOINTS] == [READY_PATH, LIVE_PATH, HEALTH_PATH]
        assert list(READINESS.predicates) == [
            "status is 200",
            "response is JSON",
            "status is UP",
            "checks array exists",
            "keycloak check exists",
        ]
        assert list(LIVENESS.predicates) == ["status is 200", "response is JSON", "status is UP"]
        assert GENERAL.predicates == LIVENESS.predicates


# =========================================================================
# RunContext
# =========================================================================


class TestRunContext:
    def test_strips_trailing_slash(self):
        context = RunContext(api_url="http://svc:8080/")
        assert context.url(READY_PATH) == "http://svc:8080/q/health/ready"

    def test_is_read_only(self):
        context = RunContext(api_url="http://svc", headers={"X-Tenant": "acme"})
        with pytest.raises(AttributeError):
            context.api_url = "http://other"  # type: ignore[misc]
        with pytest.raises(TypeError):
            context.headers["X-Tenant"] = "other"  # type: ignore[index]

    def test_headers_are_copied(self):
        headers = {"X-Tenant": "acme"}
        context = RunContext(api_url="http://svc", headers=headers)
        headers["X-Tenant"] = "changed"
        assert context.headers["X-Tenant"] == "acme"


# =========================================================================
# probe_endpoint
# =========================================================================


@pytest.fixture
def error_rate() -> Rate:
    return Rate("errors")


class TestProbeEndpoint:
    async def test_healthy_endpoints_record_zero(self, health_server: str, error_rate: Rate):
        context = RunContext(api_url=health_server)
        async with HttpClient() as client:
            for endpoint in HEALTH_ENDPOINTS:
                assert await probe_endpoint(client, context, endpoint, error_rate=error_rate)
        assert error_rate.total == 3
        assert error_rate.hits == 0

    async def test_server_error_counts_once(self, health_server, health_service, error_rate):
        """All three base checks fail but the error rate gets a single hit."""
        health_service.configure(LIVE_PATH, status=500, body={"status": "DOWN"})
        context = RunContext(api_url=health_server)

        async with HttpClient() as client:
            passed = await probe_endpoint(client, context, LIVENESS, error_rate=error_rate)

        assert passed is False
        assert (error_rate.hits, error_rate.total) == (1, 1)

    async def test_wrong_content_type_counts_once(self, health_server, health_service, error_rate):
        health_service.configure(
            HEALTH_PATH,
            body={"status": "UP", "checks": []},
            content_type="text/plain",
        )
        context = RunContext(api_url=health_server)

        async with HttpClient() as client:
            await probe_endpoint(client, context, GENERAL, error_rate=error_rate)

        assert (error_rate.hits, error_rate.total) == (1, 1)
        tally = {c.name: c for c in registry.check_tally.results()}
        assert tally["response is JSON"].fails == 1
        assert tally["status is UP"].passes == 1

    async def test_readiness_requires_keycloak(self, health_server, health_service, error_rate):
        health_service.configure(READY_PATH, body={"status": "UP", "checks": []})
        health_service.configure(LIVE_PATH, body={"status": "UP", "checks": []})
        context = RunContext(api_url=health_server)

        async with HttpClient() as client:
            assert not await probe_endpoint(client, context, READINESS, error_rate=error_rate)
            assert await probe_endpoint(client, context, LIVENESS, error_rate=error_rate)

        assert (error_rate.hits, error_rate.total) == (1, 2)

    async def test_unparsable_body_is_logged_and_contained(
        self,
        health_server,
        health_service,
        error_rate,
        caplog: pytest.LogCaptureFixture,
    ):
        health_service.configure(READY_PATH, body="definitely not json")
        context = RunContext(api_url=health_server)

        with caplog.at_level(logging.ERROR, logger="healthprobe"):
            async with HttpClient() as client:
                results = [
                    await probe_endpoint(client, context, endpoint, error_rate=error_rate)
                    for endpoint in HEALTH_ENDPOINTS
                ]

        assert results == [False, True, True]
        assert (error_rate.hits, error_rate.total) == (1, 3)
        assert any(r.getMessage().startswith("Readiness check failed:") for r in caplog.records)
        # No check outcomes were recorded for the unreadable response
        assert not any(c.group.endswith("Readiness Check") for c in registry.check_tally.results())

    async def test_nan_in_body_takes_exception_path(self, health_server, health_service, error_rate):
        health_service.configure(LIVE_PATH, body='{"status": "UP", "uptime": NaN}')
        context = RunContext(api_url=health_server)

        async with HttpClient() as client:
            passed = await probe_endpoint(client, context, LIVENESS, error_rate=error_rate)

        assert passed is False
        assert (error_rate.hits, error_rate.total) == (1, 1)
        assert registry.checks.total == 0

    async def test_transport_error_counts_once(self, error_rate, caplog):
        context = RunContext(api_url="http://127.0.0.1:1")

        with caplog.at_level(logging.ERROR, logger="healthprobe"):
            async with HttpClient(timeout=1.0) as client:
                passed = await probe_endpoint(client, context, GENERAL, error_rate=error_rate)

        assert passed is False
        assert (error_rate.hits, error_rate.total) == (1, 1)
        assert any("Health check failed" in r.getMessage() for r in caplog.records)

    async def test_sends_context_headers(self, health_server, health_service, error_rate):
        context = RunContext(
            api_url=health_server,
            headers={"Content-Type": "application/json", "X-Tenant": "acme"},
        )
        async with HttpClient() as client:
            await probe_endpoint(client, context, LIVENESS, error_rate=error_rate)

        (path, headers), = health_service.requests
        assert path == LIVE_PATH
        assert headers["X-Tenant"] == "acme"

    async def test_checks_are_tagged_with_group_path(self, health_server, error_rate):
        metrics = MetricRegistry()
        context = RunContext(api_url=health_server)

        async with HttpClient() as client:
            await probe_endpoint(client, context, READINESS, error_rate=error_rate, metrics=metrics)

        results = metrics.check_tally.results()
        assert {c.group for c in results} == {f"{HEALTH_GROUP}::Readiness Check"}
        assert len(results) == 5
        assert metrics.checks.total == 5
        assert metrics.checks.rate == 1.0
        # The global registry is untouched
        assert registry.checks.total == 0

    async def test_request_metric_named_after_endpoint(self, health_server, error_rate):
        seen = []
        context = RunContext(api_url=health_server)
        async with HttpClient(metric_callback=seen.append) as client:
            await probe_endpoint(client, context, READINESS, error_rate=error_rate)
        assert [m.name for m in seen] == ["Readiness Check"]


# =========================================================================
# Built-in scenario
# =========================================================================


class TestHealthCheckScenario:
    def test_profile_and_thresholds(self):
        assert HealthCheckScenario.name == "Health Check Endpoints"
        assert HealthCheckScenario.pattern.describe() == "Stages: 30s -> 2, 1m -> 4, 30s -> 0 (2m total)"
        assert {(t.metric, t.expression) for t in HealthCheckScenario.thresholds} == {
            ("http_req_duration", "p(95)<500"),
            (ERROR_RATE_METRIC, "rate<0.01"),
        }

    def test_error_rate_is_registered(self):
        assert registry.get(ERROR_RATE_METRIC) is HealthCheckScenario.cls.error_rate

    async def test_setup_reads_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("HEALTHPROBE_API_URL", "http://svc.internal:9000/")
        monkeypatch.setenv("HEALTHPROBE_AUTH_TOKEN", "t0ken")
        instance = HealthCheckScenario.cls()

        context = await HealthCheckScenario.setup_func(instance)

        assert context.api_url == "http://svc.internal:9000"
        assert context.headers["Authorization"] == "Bearer t0ken"

    @pytest.mark.timeout(10)
    async def test_iteration_probes_all_and_pauses(self, health_server, health_service):
        context = RunContext(api_url=health_server)
        iteration = HealthCheckScenario.tasks[0].func

        started = time.monotonic()
        async with HttpClient() as client:
            await iteration(HealthCheckScenario.cls(), client, context)
        elapsed = time.monotonic() - started

        assert elapsed >= 1.0
        assert [path for path, _ in health_service.requests] == [READY_PATH, LIVE_PATH, HEALTH_PATH]
        error_rate = registry.rate(ERROR_RATE_METRIC)
        assert (error_rate.hits, error_rate.total) == (0, 3)
        assert registry.checks.total == 11
        assert registry.checks.rate == 1.0
