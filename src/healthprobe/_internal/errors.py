"""Custom exception hierarchy for healthprobe."""

from __future__ import annotations


class HealthProbeError(Exception):
    """Base exception for all healthprobe errors.

    Every custom exception in the package inherits from this class, so a
    single ``except HealthProbeError`` clause catches any of them.
    """


class ScenarioError(HealthProbeError):
    """Raised when a scenario definition is invalid.

    Examples:
        - A class decorated with @scenario has no @task methods.
        - A @task, @setup or @teardown method is not a coroutine function.
        - A scenario file cannot be loaded or parsed.
    """


class ConfigError(HealthProbeError):
    """Raised when configuration is invalid or missing.

    Examples:
        - An environment variable has an invalid value.
        - A stage duration, threshold expression or think time is malformed.
    """


class EngineError(HealthProbeError):
    """Raised when a load session cannot start or fails while running."""


class ProbeError(HealthProbeError):
    """Raised when a health endpoint response cannot be interpreted.

    The probe harness catches this (together with transport errors) and
    counts it as a failed endpoint group instead of propagating it.
    """
