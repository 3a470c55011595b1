"""Scrape service: identity, retries and the fetch orchestrator put together."""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any

import structlog

from .config import ServiceSettings
from .config import settings as default_settings
from .core.identity import IdentityPolicy
from .core.orchestrator import FetchOrchestrator
from .core.protocols import DriverFactory, FetchRequest, FetchResult
from .core.retry import Clock, Sleep, retry
from .errors import FetchError, UnsupportedBrowserError
from .presets import FetchPreset, get_preset
from .status import page_error

logger = structlog.get_logger(__name__)

HEALTH_CHECK_TIMEOUT_MS = 15000


@dataclass
class ScrapeResult:
    """Fetched page plus the page-level error derived from its status."""

    result: FetchResult
    page_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "content": self.result.content,
            "pageStatusCode": self.result.status,
            "contentType": self.result.content_type,
        }
        if self.page_error:
            data["pageError"] = self.page_error
        return data


class FetchService:
    """Runs scrape requests against fresh browsers."""

    def __init__(
        self,
        settings: ServiceSettings | None = None,
        driver_factory: DriverFactory | None = None,
        policy: IdentityPolicy | None = None,
        preset: FetchPreset | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings or default_settings
        self.policy = policy or IdentityPolicy(self.settings)
        if driver_factory is None:
            from .core import get_playwright_factory
            driver_factory = get_playwright_factory()(self.settings, self.policy)
        self.driver_factory = driver_factory
        self.preset = preset or get_preset(self.settings.preset)
        self.orchestrator = FetchOrchestrator(driver_factory, clock=clock)
        self.clock = clock
        self.sleep = sleep

    async def scrape(self, request: FetchRequest, preset: FetchPreset | None = None) -> ScrapeResult:
        """Fetch ``request.url``, retrying per the preset.

        Raises:
            RetryExhaustedError: Every allowed attempt failed.
            FetchTimeoutError: The request's budget ran out between attempts.
        """
        preset = preset or self.preset
        log = logger.bind(request_id=uuid.uuid4().hex[:12], url=request.url)
        log.info(
            "scrape_request",
            preset=preset.name,
            timeout_ms=request.timeout_ms,
            wait_after_load_ms=request.wait_after_load_ms,
            check_selector=request.check_selector,
            readiness=request.strategies is not None,
        )
        if not self.settings.proxy_server:
            log.warning("no_proxy_configured")

        identity = self.policy.build_identity(
            override_user_agent=request.user_agent_override,
            block_media=request.block_media,
            headers=dict(request.headers),
        )
        attempts = 0

        async def fetch_page(remaining_ms: float) -> FetchResult:
            nonlocal attempts
            attempts += 1
            log.debug("fetch_attempt", attempt=attempts, remaining_ms=round(remaining_ms))
            return await self.orchestrator.fetch(identity, request, remaining_ms)

        def on_failure(error: Exception):
            if preset.rotate_user_agent and isinstance(error, UnsupportedBrowserError):
                identity.user_agent = self.policy.rotate_user_agent(identity.user_agent)
                log.info("user_agent_rotated", user_agent=identity.user_agent)

        try:
            result = await retry(
                fetch_page,
                max_retry=preset.max_retry,
                retry_interval_ms=preset.retry_interval_ms,
                timeout_ms=request.timeout_ms,
                on_failure=on_failure,
                name="fetch_page",
                clock=self.clock,
                sleep=self.sleep,
            )
        except FetchError as e:
            log.error("scrape_failed", attempts=attempts, error=str(e))
            raise

        result.attempts = attempts
        error = page_error(result.status)
        if error:
            log.warning("scrape_page_error", status=result.status, page_error=error)
        else:
            log.info("scrape_succeeded", attempts=attempts, elapsed_ms=round(result.elapsed_ms))
        return ScrapeResult(result=result, page_error=error)

    async def health_check(self) -> None:
        """Open a browser and load a blank page; raises if that fails."""
        driver = await self.driver_factory(self.policy.build_identity(), HEALTH_CHECK_TIMEOUT_MS)
        try:
            await driver.navigate("about:blank", timeout_ms=HEALTH_CHECK_TIMEOUT_MS)
        finally:
            await driver.close()
