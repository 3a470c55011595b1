"""Heuristics for deciding when a client-rendered page has settled.

Detection is best effort: polling failures are logged and treated as
inconclusive, and the caller's overall budget is the real backstop.
"""

import math
import time

import structlog

from .protocols import PageDriver, ReadinessOutcome, ReadinessStrategies
from .retry import Budget, Clock

logger = structlog.get_logger(__name__)

# Generic loading indicators that work across most websites
LOADING_INDICATOR_SELECTORS = (
    '[class*="loading"]',
    '[class*="spinner"]',
    '[class*="loader"]',
    '[id*="loading"]',
    '[id*="spinner"]',
    '[id*="loader"]',
    '[data-testid*="loading"]',
    '[data-testid*="spinner"]',
    ".loading",
    ".spinner",
    ".loader",
    ".sk-circle",
    ".sk-cube-grid",
    ".fa-spinner",
    ".fa-circle-o-notch",
)

LOADING_POLL_INTERVAL_MS = 1000
NETWORK_POLL_INTERVAL_MS = 500
DOM_POLL_INTERVAL_MS = 500
SETTLE_DELAY_MS = 500


class ReadinessDetector:
    """Runs the enabled readiness strategies against a live page."""

    def __init__(
        self,
        selectors: tuple[str, ...] = LOADING_INDICATOR_SELECTORS,
        settle_delay_ms: float = SETTLE_DELAY_MS,
        clock: Clock = time.monotonic,
    ):
        self.loading_selector = ", ".join(selectors)
        self.settle_delay_ms = settle_delay_ms
        self.clock = clock

    async def detect(
        self,
        driver: PageDriver,
        budget_ms: float,
        strategies: ReadinessStrategies,
    ) -> ReadinessOutcome:
        """Wait until the page looks ready, never longer than ``budget_ms``."""
        budget = Budget(budget_ms, self.clock)
        ready = False

        checks = (
            (strategies.loading_indicators, self._loading_indicators_gone),
            (strategies.network_idle, self._network_idle),
            (strategies.dom_stable, self._dom_stable),
        )
        for enabled, check in checks:
            if not enabled:
                continue
            if budget.expired:
                break
            outcome = await check(driver, budget, strategies)
            logger.debug("readiness_strategy", strategy=check.__name__.strip("_"), outcome=outcome.value)
            if outcome is ReadinessOutcome.READY:
                ready = True
                if strategies.early_exit:
                    break

        await self._settle(driver, budget)

        if ready:
            result = ReadinessOutcome.READY
        elif budget.expired:
            result = ReadinessOutcome.TIMED_OUT
        else:
            result = ReadinessOutcome.INDETERMINATE

        logger.info("readiness_complete", outcome=result.value, waited_ms=round(budget.elapsed_ms))
        return result

    async def _pause(self, driver: PageDriver, budget: Budget, ms: float) -> bool:
        """Wait up to ``ms`` without crossing the deadline; False if nothing is left."""
        ms = min(ms, budget.remaining_ms)
        if ms <= 0:
            return False
        await driver.wait_for_millis(ms)
        return True

    async def _loading_indicators_gone(
        self, driver: PageDriver, budget: Budget, strategies: ReadinessStrategies
    ) -> ReadinessOutcome:
        try:
            if not await driver.query_selector(self.loading_selector):
                return ReadinessOutcome.READY

            logger.debug("loading_indicators_found")
            max_attempts = math.floor(budget.total_ms / LOADING_POLL_INTERVAL_MS)
            for _ in range(max_attempts):
                if not await self._pause(driver, budget, LOADING_POLL_INTERVAL_MS):
                    break
                if not await driver.query_selector(self.loading_selector):
                    return ReadinessOutcome.READY
        except Exception as e:
            logger.debug("loading_indicator_check_failed", error=str(e))
            return ReadinessOutcome.INDETERMINATE

        return ReadinessOutcome.TIMED_OUT if budget.expired else ReadinessOutcome.INDETERMINATE

    async def _network_idle(
        self, driver: PageDriver, budget: Budget, strategies: ReadinessStrategies
    ) -> ReadinessOutcome:
        required = strategies.required_idle_checks(NETWORK_POLL_INTERVAL_MS)
        idle_count = 0
        try:
            while idle_count < required:
                if not await self._pause(driver, budget, NETWORK_POLL_INTERVAL_MS):
                    return ReadinessOutcome.TIMED_OUT
                if await driver.pending_requests() == 0:
                    idle_count += 1
                else:
                    idle_count = 0
        except Exception as e:
            logger.debug("network_idle_check_failed", error=str(e))
            return ReadinessOutcome.INDETERMINATE

        return ReadinessOutcome.READY

    async def _dom_stable(
        self, driver: PageDriver, budget: Budget, strategies: ReadinessStrategies
    ) -> ReadinessOutcome:
        required = strategies.required_stable_checks(DOM_POLL_INTERVAL_MS)
        previous: str | None = None
        stable_count = 0
        try:
            while stable_count < required:
                if not await self._pause(driver, budget, DOM_POLL_INTERVAL_MS):
                    return ReadinessOutcome.TIMED_OUT
                try:
                    current = await driver.body_html()
                except Exception as e:
                    logger.debug("dom_sample_failed", error=str(e))
                    stable_count = 0
                    continue

                # first sample has nothing to compare against
                if previous is not None and current != previous:
                    stable_count = 0
                else:
                    stable_count += 1
                previous = current
        except Exception as e:
            logger.debug("dom_stability_check_failed", error=str(e))
            return ReadinessOutcome.INDETERMINATE

        return ReadinessOutcome.READY

    async def _settle(self, driver: PageDriver, budget: Budget) -> None:
        """Short pause for trailing script execution."""
        try:
            await self._pause(driver, budget, self.settle_delay_ms)
        except Exception as e:
            logger.debug("settle_wait_failed", error=str(e))
