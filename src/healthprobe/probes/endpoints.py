"""Health endpoint probes: request, parse once, check, feed the error rate."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from healthprobe._internal.errors import ProbeError
from healthprobe._internal.logging import get_logger
from healthprobe.dsl.checks import check, group_path

if TYPE_CHECKING:
    import aiohttp

    from healthprobe.dsl.http_client import HttpClient
    from healthprobe.metrics.custom import MetricRegistry, Rate
    from healthprobe.probes.context import RunContext

logger = get_logger("probes.endpoints")

HEALTH_GROUP = "Health Check Endpoints"
KEYCLOAK_CHECK_NAME = "Keycloak health check"
STATUS_UP = "UP"


def _reject_constant(name: str) -> Any:
    msg = f"{name} is not a JSON value"
    raise ValueError(msg)


@dataclass(frozen=True)
class ProbeResponse:
    """A health endpoint response with its JSON body decoded once.

    Attributes:
        status: HTTP status code.
        content_type: Raw ``Content-Type`` header, empty when absent.
        body: Decoded JSON object.
    """

    status: int
    content_type: str
    body: dict[str, Any]

    @classmethod
    async def read(cls, resp: aiohttp.ClientResponse) -> ProbeResponse:
        """Build a ProbeResponse from an aiohttp response.

        The body is decoded regardless of the declared content type, so a
        JSON body served as ``text/plain`` still reaches the checks.

        Raises:
            ProbeError: If the body is not valid JSON or not a JSON object.
        """
        try:
            body = json.loads(await resp.text(), parse_constant=_reject_constant)
        except ValueError as exc:
            msg = f"response body is not valid JSON: {exc}"
            raise ProbeError(msg) from exc

        if not isinstance(body, dict):
            msg = f"response body must be a JSON object, got: {type(body).__name__}"
            raise ProbeError(msg)

        return cls(
            status=resp.status,
            content_type=resp.headers.get("Content-Type", ""),
            body=body,
        )


Predicate = Callable[[ProbeResponse], bool]


def _check_entries(resp: ProbeResponse) -> Any:
    entries = resp.body.get("checks")
    return [] if entries is None else entries


def status_is_200(resp: ProbeResponse) -> bool:
    return resp.status == 200


def response_is_json(resp: ProbeResponse) -> bool:
    return "application/json" in resp.content_type


def status_is_up(resp: ProbeResponse) -> bool:
    return resp.body.get("status") == STATUS_UP


def checks_array_exists(resp: ProbeResponse) -> bool:
    """A missing or null ``checks`` counts as an empty array."""
    return isinstance(_check_entries(resp), list)


def keycloak_check_exists(resp: ProbeResponse) -> bool:
    """True if some entry of ``checks`` is the Keycloak check reporting UP."""
    entries = _check_entries(resp)
    if not isinstance(entries, list):
        return False
    return any(
        isinstance(entry, dict)
        and entry.get("name") == KEYCLOAK_CHECK_NAME
        and entry.get("status") == STATUS_UP
        for entry in entries
    )


BASE_PREDICATES: Mapping[str, Predicate] = {
    "status is 200": status_is_200,
    "response is JSON": response_is_json,
    "status is UP": status_is_up,
}

READINESS_PREDICATES: Mapping[str, Predicate] = {
    **BASE_PREDICATES,
    "checks array exists": checks_array_exists,
    "keycloak check exists": keycloak_check_exists,
}


@dataclass(frozen=True)
class HealthEndpoint:
    """One probed endpoint and the checks its response must pass.

    Attributes:
        name: Group name, also used as the request metric name.
        path: URL path appended to the context's ``api_url``.
        label: Prefix of the error log line, e.g. ``"Readiness"``.
        predicates: Named checks evaluated against the response.
    """

    name: str
    path: str
    label: str
    predicates: Mapping[str, Predicate]


READINESS = HealthEndpoint(
    name="Readiness Check",
    path="/q/health/ready",
    label="Readiness",
    predicates=READINESS_PREDICATES,
)
LIVENESS = HealthEndpoint(
    name="Liveness Check",
    path="/q/health/live",
    label="Liveness",
    predicates=BASE_PREDICATES,
)
GENERAL = HealthEndpoint(
    name="General Health Check",
    path="/q/health",
    label="Health",
    predicates=BASE_PREDICATES,
)

HEALTH_ENDPOINTS: tuple[HealthEndpoint, ...] = (READINESS, LIVENESS, GENERAL)


async def probe_endpoint(
    client: HttpClient,
    context: RunContext,
    endpoint: HealthEndpoint,
    *,
    error_rate: Rate,
    parent_group: str = HEALTH_GROUP,
    metrics: MetricRegistry | None = None,
) -> bool:
    """Probe one endpoint and add exactly one sample to *error_rate*.

    Every predicate is evaluated and recorded under the group path
    ``"{parent_group}::{endpoint.name}"``.  The sample is ``1`` when any
    predicate fails or when the request, body decoding or a predicate
    raises; the exception is logged and not propagated.  Otherwise the
    sample is ``0``.

    Args:
        client: HTTP client of the calling virtual user.
        context: Run context with the base URL and shared headers.
        endpoint: The endpoint to probe.
        error_rate: Rate metric receiving the outcome.
        parent_group: Enclosing group name.
        metrics: Registry the checks are recorded into. Defaults to the
            global registry.

    Returns:
        True if every check passed.
    """
    group = group_path(parent_group, endpoint.name)
    try:
        resp = await client.get(
            context.url(endpoint.path),
            name=endpoint.name,
            headers=context.headers,
        )
        probe = await ProbeResponse.read(resp)
        passed = check(probe, endpoint.predicates, group=group, metrics=metrics)
    except Exception as exc:
        logger.error(
            "%s check failed: %s",
            endpoint.label,
            exc,
            extra={"endpoint": endpoint.name, "group": group},
        )
        error_rate.add(1)
        return False

    error_rate.add(0 if passed else 1)
    return passed
