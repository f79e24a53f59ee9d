"""Abstract base class for load profiles."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from healthprobe._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator


class LoadPattern(ABC):
    """Abstract base for load profiles.

    A load profile defines how the target concurrency (number of virtual
    users) changes over wall-clock time, and for how long.  Concrete
    subclasses implement :meth:`iter_concurrency` to yield
    ``(elapsed_seconds, target_concurrency)`` tuples at a tick interval.

    Example::

        pattern = StagedPattern([Stage(30.0, 2), Stage(60.0, 4), Stage(30.0, 0)])
        for elapsed, users in pattern.iter_concurrency(tick_interval=1.0):
            print(f"t={elapsed:.1f}s -> {users} users")
    """

    @property
    @abstractmethod
    def duration_seconds(self) -> float:
        """Total length of the profile in seconds."""

    @abstractmethod
    def iter_concurrency(
        self,
        tick_interval: float = 1.0,
    ) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed_seconds, target_concurrency)`` at each tick.

        Ticks run from ``0`` up to and including :attr:`duration_seconds`.

        Args:
            tick_interval: Seconds between each yielded tick.  Defaults to 1.0.

        Yields:
            A tuple of ``(elapsed_seconds, target_concurrency)``.
        """

    @abstractmethod
    def describe(self) -> str:
        """Return a short human-readable description for logs and summaries."""


def _validate_positive(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is not strictly positive.

    Args:
        value: The numeric value to validate.
        name: Parameter name used in the error message.

    Raises:
        ConfigError: If *value* is not > 0.
    """
    if value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ConfigError(msg)


def _validate_non_negative(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is negative.

    Args:
        value: The numeric value to validate.
        name: Parameter name used in the error message.

    Raises:
        ConfigError: If *value* is < 0.
    """
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ConfigError(msg)
