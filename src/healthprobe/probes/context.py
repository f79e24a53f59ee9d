"""Shared, read-only context handed from setup to every probe iteration."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from healthprobe._internal.config import ProbeConfig
    from healthprobe._internal.types import ReadOnlyHeaders


@dataclass(frozen=True)
class RunContext:
    """Base URL and headers every probe request is sent with.

    The headers are stored as a ``MappingProxyType``; iterations can read
    them but not change them.

    Attributes:
        api_url: Base URL of the service under test, without trailing slash.
        headers: Read-only HTTP headers for every probe request.
    """

    api_url: str
    headers: ReadOnlyHeaders = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "api_url", self.api_url.rstrip("/"))
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @classmethod
    def from_config(cls, config: ProbeConfig) -> RunContext:
        return cls(api_url=config.api_url, headers=config.headers)

    def url(self, path: str) -> str:
        """Return the absolute URL for an endpoint *path*."""
        return f"{self.api_url}{path}"
