"""Shared fakes: a manual clock and an in-memory page driver."""

from collections import Counter

import pytest

from pagefetch.config import ServiceSettings
from pagefetch.core.protocols import NavigationResponse

PAGE_HTML = "<html><head><title>Example</title></head><body><h1>Hello</h1></body></html>"


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms / 1000

    async def sleep(self, seconds: float):
        self.advance(seconds * 1000)


class FakeDriver:
    """PageDriver whose page behaviour is scripted up front."""

    def __init__(
        self,
        clock: FakeClock,
        *,
        content: str = PAGE_HTML,
        status: int | None = 200,
        headers: dict[str, str] | None = None,
        loading_polls: int = 0,
        pending: list[int] | None = None,
        bodies: list[str] | None = None,
        selector_found: bool = True,
        navigate_error: Exception | None = None,
        navigate_ms: float = 0,
        query_error: Exception | None = None,
    ):
        self.clock = clock
        self.content = content
        self.status = status
        self.headers = headers if headers is not None else {"content-type": "text/html; charset=utf-8"}
        self.loading_polls = loading_polls
        self.pending = list(pending or [])
        self.bodies = list(bodies or [])
        self.selector_found = selector_found
        self.navigate_error = navigate_error
        self.navigate_ms = navigate_ms
        self.query_error = query_error

        self.calls = Counter()
        self.waits: list[float] = []
        self.navigations: list[tuple[str, float]] = []
        self.selector_timeouts: list[float] = []
        self.closed = 0

    async def navigate(self, url, timeout_ms):
        self.calls["navigate"] += 1
        self.navigations.append((url, timeout_ms))
        self.clock.advance(self.navigate_ms)
        if self.navigate_error is not None:
            raise self.navigate_error
        if self.status is None:
            return None
        return NavigationResponse(status=self.status, headers=dict(self.headers))

    async def query_selector(self, selector):
        self.calls["query_selector"] += 1
        if self.query_error is not None:
            raise self.query_error
        if self.loading_polls > 0:
            self.loading_polls -= 1
            return True
        return False

    async def wait_for_element(self, selector, timeout_ms):
        self.calls["wait_for_element"] += 1
        self.selector_timeouts.append(timeout_ms)
        if not self.selector_found:
            self.clock.advance(timeout_ms)
            raise TimeoutError(f"Timeout {timeout_ms}ms exceeded waiting for {selector}")

    async def wait_for_millis(self, ms):
        self.waits.append(ms)
        self.clock.advance(ms)

    async def outer_html(self):
        self.calls["outer_html"] += 1
        return self.content

    async def body_html(self):
        self.calls["body_html"] += 1
        if len(self.bodies) > 1:
            return self.bodies.pop(0)
        return self.bodies[0] if self.bodies else ""

    async def pending_requests(self):
        self.calls["pending_requests"] += 1
        if len(self.pending) > 1:
            return self.pending.pop(0)
        return self.pending[0] if self.pending else 0

    async def close(self):
        self.closed += 1


class FakeDriverFactory:
    """Hands out the given drivers in order, repeating the last one."""

    def __init__(
        self,
        *drivers: FakeDriver,
        error: Exception | None = None,
        clock: FakeClock | None = None,
        acquire_ms: float = 0,
    ):
        self.drivers = list(drivers)
        self.error = error
        self.clock = clock
        self.acquire_ms = acquire_ms
        self.user_agents: list[str] = []
        self.identities = []
        self.timeouts: list[float] = []

    @property
    def calls(self) -> int:
        return len(self.user_agents)

    async def __call__(self, identity, timeout_ms):
        self.user_agents.append(identity.user_agent)
        self.identities.append(identity)
        self.timeouts.append(timeout_ms)
        if self.clock is not None:
            self.clock.advance(self.acquire_ms)
        if self.error is not None:
            raise self.error
        if len(self.drivers) > 1:
            return self.drivers.pop(0)
        return self.drivers[0]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service_settings():
    return ServiceSettings(
        proxy_server=None,
        proxy_username=None,
        proxy_password=None,
        proxy_ip=None,
        public_ip=None,
        block_media=False,
        preset="stealth",
    )
