"""One fetch attempt: navigate, wait for readiness, extract."""

import re
import time

import structlog

from ..errors import FetchTimeoutError, SelectorNotFoundError, UnsupportedBrowserError
from .identity import Identity
from .protocols import DriverFactory, FetchRequest, FetchResult, PageDriver
from .readiness import ReadinessDetector
from .retry import Budget, Clock

logger = structlog.get_logger(__name__)

# Time kept back from readiness and selector waits for reading the DOM
EXTRACTION_MARGIN_MS = 300

UNSUPPORTED_BROWSER_PATTERNS = [
    re.compile(r"(your )?browser is (not|no longer) supported", re.IGNORECASE),
    re.compile(r"unsupported browser", re.IGNORECASE),
    re.compile(r"please (upgrade|update) your browser", re.IGNORECASE),
    re.compile(r"upgrade to a (modern|supported|newer|different) browser", re.IGNORECASE),
    re.compile(r"(you are|you're) using an? (outdated|unsupported|old) browser", re.IGNORECASE),
    re.compile(r"this browser is (outdated|out of date|too old)", re.IGNORECASE),
    re.compile(r"switch to a supported browser", re.IGNORECASE),
]


def find_unsupported_browser_phrase(content: str) -> str | None:
    """Return the first "unsupported browser" phrase found in the page, if any."""
    for pattern in UNSUPPORTED_BROWSER_PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(0)
    return None


class FetchOrchestrator:
    """Drives one browser through a single fetch attempt."""

    def __init__(
        self,
        driver_factory: DriverFactory,
        detector: ReadinessDetector | None = None,
        extraction_margin_ms: float = EXTRACTION_MARGIN_MS,
        clock: Clock = time.monotonic,
    ):
        self.driver_factory = driver_factory
        self.detector = detector or ReadinessDetector(clock=clock)
        self.extraction_margin_ms = extraction_margin_ms
        self.clock = clock

    async def fetch(self, identity: Identity, request: FetchRequest, remaining_ms: float) -> FetchResult:
        """Fetch the page within ``remaining_ms``.

        Raises:
            NavigationError: The browser could not load the page.
            SelectorNotFoundError: ``check_selector`` never matched.
            UnsupportedBrowserError: The page is a browser-gate page.
            FetchTimeoutError: No time was left for a required phase.
        """
        budget = Budget(remaining_ms, self.clock)
        if budget.expired:
            raise FetchTimeoutError("No time left to start the fetch")

        driver = await self.driver_factory(identity, budget.remaining_ms)
        try:
            return await self._run(driver, request, budget)
        finally:
            await driver.close()

    async def _run(self, driver: PageDriver, request: FetchRequest, budget: Budget) -> FetchResult:
        if budget.expired:
            raise FetchTimeoutError("No time left to navigate")
        response = await driver.navigate(request.url, timeout_ms=budget.remaining_ms)

        readiness = None
        if request.strategies is not None and request.strategies.any_enabled:
            leftover = budget.remaining_ms - self.extraction_margin_ms
            if leftover > 0:
                readiness = await self.detector.detect(driver, leftover, request.strategies)

        if request.wait_after_load_ms > 0:
            if budget.expired:
                raise FetchTimeoutError("No time left for the post-load wait")
            await driver.wait_for_millis(min(request.wait_after_load_ms, budget.remaining_ms))

        if request.check_selector:
            await self._wait_for_selector(driver, request.check_selector, budget)

        content = await driver.outer_html()

        phrase = find_unsupported_browser_phrase(content)
        if phrase is not None:
            raise UnsupportedBrowserError(phrase)

        status = response.status if response is not None else None
        headers = response.headers if response is not None else None
        content_type = _header(headers, "content-type")

        return FetchResult(
            content=content,
            status=status,
            headers=headers,
            content_type=content_type,
            elapsed_ms=budget.elapsed_ms,
            readiness=readiness,
        )

    async def _wait_for_selector(self, driver: PageDriver, selector: str, budget: Budget) -> None:
        timeout = budget.remaining_ms - self.extraction_margin_ms
        if timeout <= 0:
            raise FetchTimeoutError("No time left to wait for the required selector")
        try:
            await driver.wait_for_element(selector, timeout_ms=timeout)
        except Exception as e:
            logger.debug("selector_wait_failed", error=str(e))
            raise SelectorNotFoundError(selector) from e


def _header(headers: dict[str, str] | None, name: str) -> str | None:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None
