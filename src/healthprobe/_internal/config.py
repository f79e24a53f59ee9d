"""Configuration loading for healthprobe."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from healthprobe._internal.errors import ConfigError

if TYPE_CHECKING:
    from healthprobe._internal.types import Headers

DEFAULT_API_URL = "http://localhost:8080"
DEFAULT_TIMEOUT = 30.0


def _default_headers() -> Headers:
    return {"Content-Type": "application/json"}


@dataclass(frozen=True)
class ProbeConfig:
    """Environment-specific settings for a health probe run.

    Attributes:
        api_url: Base URL of the service under test, without trailing slash.
        headers: HTTP headers attached to every probe request.
        request_timeout: Per-request timeout in seconds.
    """

    api_url: str = DEFAULT_API_URL
    headers: Headers = field(default_factory=_default_headers)
    request_timeout: float = DEFAULT_TIMEOUT


def load_config() -> ProbeConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        HEALTHPROBE_API_URL: Base URL of the service (default: localhost:8080).
        HEALTHPROBE_AUTH_TOKEN: Bearer token sent as ``Authorization``.
        HEALTHPROBE_HEADERS: JSON object of extra headers.
        HEALTHPROBE_TIMEOUT: Request timeout in seconds (default: 30.0).

    Returns:
        Populated ProbeConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    api_url = os.environ.get("HEALTHPROBE_API_URL", DEFAULT_API_URL).strip()
    if not api_url.startswith(("http://", "https://")):
        msg = f"HEALTHPROBE_API_URL must be an http(s) URL, got: {api_url!r}"
        raise ConfigError(msg)

    timeout_str = os.environ.get("HEALTHPROBE_TIMEOUT", str(DEFAULT_TIMEOUT))
    try:
        timeout = float(timeout_str)
    except ValueError:
        msg = f"HEALTHPROBE_TIMEOUT must be a number, got: {timeout_str!r}"
        raise ConfigError(msg) from None

    if timeout <= 0:
        msg = f"HEALTHPROBE_TIMEOUT must be positive, got: {timeout}"
        raise ConfigError(msg)

    headers = _default_headers()
    headers.update(_parse_extra_headers(os.environ.get("HEALTHPROBE_HEADERS")))

    token = os.environ.get("HEALTHPROBE_AUTH_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"

    return ProbeConfig(
        api_url=api_url.rstrip("/"),
        headers=headers,
        request_timeout=timeout,
    )


def _parse_extra_headers(raw: str | None) -> Headers:
    """Parse the ``HEALTHPROBE_HEADERS`` JSON object.

    Args:
        raw: Raw environment value, or None when unset.

    Returns:
        Header mapping; empty when *raw* is unset or blank.

    Raises:
        ConfigError: If the value is not a JSON object of strings.
    """
    if raw is None or not raw.strip():
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"HEALTHPROBE_HEADERS must be valid JSON: {exc}"
        raise ConfigError(msg) from None

    if not isinstance(parsed, dict):
        msg = f"HEALTHPROBE_HEADERS must be a JSON object, got: {type(parsed).__name__}"
        raise ConfigError(msg)

    for key, value in parsed.items():
        if not isinstance(value, str):
            msg = f"HEALTHPROBE_HEADERS value for {key!r} must be a string"
            raise ConfigError(msg)

    return dict(parsed)
