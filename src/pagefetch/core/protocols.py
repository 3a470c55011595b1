"""Data types and protocol definitions shared by the fetch components."""

import enum
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlparse

from ..errors import InvalidInputError

if TYPE_CHECKING:
    from .identity import Identity


def validate_url(url: str | None) -> str:
    """Return the URL unchanged if it is an absolute http(s) URL."""
    if not url:
        raise InvalidInputError("URL is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidInputError("Invalid URL")
    return url


class ReadinessOutcome(enum.Enum):
    """Verdict of one readiness detection pass."""

    READY = "ready"
    TIMED_OUT = "timed_out"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class ReadinessStrategies:
    """Which readiness strategies run, and their sub-timings."""

    loading_indicators: bool = True
    network_idle: bool = False
    dom_stable: bool = False
    early_exit: bool = True
    network_idle_ms: int = 3000
    dom_stable_ms: int = 1000

    @property
    def any_enabled(self) -> bool:
        return self.loading_indicators or self.network_idle or self.dom_stable

    def required_idle_checks(self, interval_ms: int) -> int:
        return max(1, math.ceil(self.network_idle_ms / interval_ms))

    def required_stable_checks(self, interval_ms: int) -> int:
        return max(1, math.ceil(self.dom_stable_ms / interval_ms))


@dataclass(frozen=True)
class FetchRequest:
    """A single page fetch, immutable once the first attempt starts."""

    url: str
    timeout_ms: int = 15000
    wait_after_load_ms: int = 0
    check_selector: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    strategies: ReadinessStrategies | None = None
    block_media: bool | None = None

    def __post_init__(self):
        validate_url(self.url)
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        if self.timeout_ms <= 0:
            raise InvalidInputError("timeout must be greater than 0")
        if self.wait_after_load_ms < 0:
            raise InvalidInputError("wait_after_load must not be negative")

    @property
    def user_agent_override(self) -> str | None:
        for name, value in self.headers.items():
            if name.lower() == "user-agent":
                return value
        return None


@dataclass
class NavigationResponse:
    """Main document response as seen by the browser."""

    status: int
    headers: dict[str, str]


@dataclass
class FetchResult:
    """Rendered page returned by a successful attempt."""

    content: str
    status: int | None
    headers: dict[str, str] | None
    content_type: str | None
    elapsed_ms: float
    readiness: ReadinessOutcome | None = None
    attempts: int = 1


class PageDriver(Protocol):
    """Browser capabilities the fetch components rely on.

    All waits take an explicit timeout so callers can bound them by the
    remaining budget.
    """

    async def navigate(self, url: str, timeout_ms: float) -> NavigationResponse | None:
        """Load the URL; returns None when the engine produced no response."""
        ...

    async def query_selector(self, selector: str) -> bool:
        """Whether any element currently matches the selector."""
        ...

    async def wait_for_element(self, selector: str, timeout_ms: float) -> None:
        """Wait for the selector to match; raises on timeout."""
        ...

    async def wait_for_millis(self, ms: float) -> None:
        ...

    async def outer_html(self) -> str:
        """Serialized document element."""
        ...

    async def body_html(self) -> str:
        ...

    async def pending_requests(self) -> int:
        """Number of network requests currently in flight."""
        ...

    async def close(self) -> None:
        ...


class DriverFactory(Protocol):
    """Creates a fresh driver presenting the given identity.

    Setup work such as address lookups must finish within ``timeout_ms``.
    """

    async def __call__(self, identity: "Identity", timeout_ms: float) -> PageDriver:
        ...
