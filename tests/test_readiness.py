"""Tests for the readiness detector."""

from conftest import FakeDriver

from pagefetch.core.protocols import ReadinessOutcome, ReadinessStrategies
from pagefetch.core.readiness import LOADING_INDICATOR_SELECTORS, ReadinessDetector

LOADING_ONLY = ReadinessStrategies(loading_indicators=True, network_idle=False, dom_stable=False)
NETWORK_ONLY = ReadinessStrategies(
    loading_indicators=False, network_idle=True, dom_stable=False, network_idle_ms=1000
)
DOM_ONLY = ReadinessStrategies(loading_indicators=False, network_idle=False, dom_stable=True, dom_stable_ms=1000)


def make_detector(clock):
    return ReadinessDetector(clock=clock)


class TestLoadingIndicators:
    async def test_no_indicators_is_ready_without_polling(self, clock):
        """No spinner on the page should mean ready, with only the settle delay."""
        driver = FakeDriver(clock)

        outcome = await make_detector(clock).detect(driver, 10_000, LOADING_ONLY)

        assert outcome is ReadinessOutcome.READY
        assert driver.calls["query_selector"] == 1
        assert 1000 not in driver.waits
        assert driver.waits == [500]

    async def test_waits_for_indicators_to_disappear(self, clock):
        """Indicators should be polled once per second until they vanish."""
        driver = FakeDriver(clock, loading_polls=2)

        outcome = await make_detector(clock).detect(driver, 10_000, LOADING_ONLY)

        assert outcome is ReadinessOutcome.READY
        assert driver.waits == [1000, 1000, 500]

    async def test_poll_count_capped_by_budget(self, clock):
        """Persistent indicators should be polled at most floor(budget / 1000) times."""
        driver = FakeDriver(clock, loading_polls=100)

        outcome = await make_detector(clock).detect(driver, 3000, LOADING_ONLY)

        assert outcome is ReadinessOutcome.TIMED_OUT
        assert driver.waits == [1000, 1000, 1000]
        assert sum(driver.waits) <= 3000

    async def test_query_failure_is_not_an_error(self, clock):
        """A failing DOM query should degrade to indeterminate."""
        driver = FakeDriver(clock, query_error=RuntimeError("Execution context was destroyed"))

        outcome = await make_detector(clock).detect(driver, 5000, LOADING_ONLY)

        assert outcome is ReadinessOutcome.INDETERMINATE
        assert driver.waits == [500]

    def test_selector_vocabulary(self):
        """The vocabulary should cover class, id and test-id markers."""
        assert '[class*="loading"]' in LOADING_INDICATOR_SELECTORS
        assert '[id*="spinner"]' in LOADING_INDICATOR_SELECTORS
        assert '[data-testid*="loading"]' in LOADING_INDICATOR_SELECTORS
        assert ".fa-spinner" in LOADING_INDICATOR_SELECTORS


class TestNetworkIdle:
    async def test_consecutive_idle_checks(self, clock):
        """Network idle should need ceil(network_idle_ms / 500) idle checks in a row."""
        driver = FakeDriver(clock, pending=[0, 2, 0, 0])

        outcome = await make_detector(clock).detect(driver, 10_000, NETWORK_ONLY)

        assert outcome is ReadinessOutcome.READY
        assert driver.calls["pending_requests"] == 4
        assert driver.waits == [500, 500, 500, 500, 500]

    async def test_busy_network_times_out(self, clock):
        """A network that never goes idle should stop at the deadline."""
        driver = FakeDriver(clock, pending=[3])

        outcome = await make_detector(clock).detect(driver, 2000, NETWORK_ONLY)

        assert outcome is ReadinessOutcome.TIMED_OUT
        assert sum(driver.waits) == 2000

    async def test_partial_interval_at_deadline(self, clock):
        """The last poll should be shortened so the deadline is never crossed."""
        driver = FakeDriver(clock, pending=[1])

        await make_detector(clock).detect(driver, 1200, NETWORK_ONLY)

        assert driver.waits == [500, 500, 200]


class TestDomStability:
    async def test_resets_on_change(self, clock):
        """Changed markup should reset the stability counter."""
        driver = FakeDriver(clock, bodies=["<p>a</p>", "<p>b</p>", "<p>b</p>", "<p>b</p>"])

        outcome = await make_detector(clock).detect(driver, 10_000, DOM_ONLY)

        assert outcome is ReadinessOutcome.READY
        assert driver.calls["body_html"] == 4

    async def test_first_sample_counts_as_stable(self, clock):
        """The first sample has nothing to differ from."""
        driver = FakeDriver(clock, bodies=["<p>same</p>"])

        outcome = await make_detector(clock).detect(driver, 10_000, DOM_ONLY)

        assert outcome is ReadinessOutcome.READY
        assert driver.calls["body_html"] == 2

    async def test_required_checks_round_up(self, clock):
        """dom_stable_ms that is not a multiple of 500 should round up."""
        strategies = ReadinessStrategies(
            loading_indicators=False, network_idle=False, dom_stable=True, dom_stable_ms=1200
        )
        driver = FakeDriver(clock, bodies=["<p>same</p>"])

        await make_detector(clock).detect(driver, 10_000, strategies)

        assert driver.calls["body_html"] == 3


class TestEarlyExit:
    async def test_skips_later_strategies_when_ready(self, clock):
        """With early exit, a ready loading check should skip network and DOM checks."""
        strategies = ReadinessStrategies(
            loading_indicators=True, network_idle=True, dom_stable=True, early_exit=True
        )
        driver = FakeDriver(clock)

        outcome = await make_detector(clock).detect(driver, 10_000, strategies)

        assert outcome is ReadinessOutcome.READY
        assert driver.calls["pending_requests"] == 0
        assert driver.calls["body_html"] == 0

    async def test_runs_all_strategies_when_disabled(self, clock):
        """Without early exit every enabled strategy should run."""
        strategies = ReadinessStrategies(
            loading_indicators=True,
            network_idle=True,
            dom_stable=True,
            early_exit=False,
            network_idle_ms=1000,
            dom_stable_ms=1000,
        )
        driver = FakeDriver(clock, bodies=["<p>x</p>"])

        outcome = await make_detector(clock).detect(driver, 10_000, strategies)

        assert outcome is ReadinessOutcome.READY
        assert driver.calls["query_selector"] == 1
        assert driver.calls["pending_requests"] == 2
        assert driver.calls["body_html"] == 2

    async def test_unready_strategy_does_not_short_circuit(self, clock):
        """Early exit should only fire on a ready verdict."""
        strategies = ReadinessStrategies(
            loading_indicators=True, network_idle=True, early_exit=True, network_idle_ms=500
        )
        driver = FakeDriver(clock, query_error=RuntimeError("detached"))

        outcome = await make_detector(clock).detect(driver, 10_000, strategies)

        assert outcome is ReadinessOutcome.READY
        assert driver.calls["pending_requests"] == 1


class TestDeadline:
    async def test_never_waits_past_budget(self, clock):
        """Total waiting should stay within the budget given at call time."""
        strategies = ReadinessStrategies(
            loading_indicators=True, network_idle=True, dom_stable=True, early_exit=False
        )
        driver = FakeDriver(
            clock,
            loading_polls=100,
            pending=[1],
            bodies=[f"<p>{i}</p>" for i in range(100)],
        )

        outcome = await make_detector(clock).detect(driver, 2500, strategies)

        assert outcome is ReadinessOutcome.TIMED_OUT
        assert sum(driver.waits) <= 2500

    async def test_no_strategies_is_indeterminate(self, clock):
        """With nothing enabled only the settle delay should run."""
        strategies = ReadinessStrategies(loading_indicators=False, network_idle=False, dom_stable=False)
        driver = FakeDriver(clock)

        outcome = await make_detector(clock).detect(driver, 5000, strategies)

        assert outcome is ReadinessOutcome.INDETERMINATE
        assert driver.waits == [500]
