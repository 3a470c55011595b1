"""Core fetch components."""

from .identity import Identity, IdentityPolicy
from .orchestrator import FetchOrchestrator
from .protocols import (
    DriverFactory,
    FetchRequest,
    FetchResult,
    NavigationResponse,
    PageDriver,
    ReadinessOutcome,
    ReadinessStrategies,
)
from .readiness import ReadinessDetector
from .retry import Budget, retry

__all__ = [
    "Budget",
    "DriverFactory",
    "FetchOrchestrator",
    "FetchRequest",
    "FetchResult",
    "Identity",
    "IdentityPolicy",
    "NavigationResponse",
    "PageDriver",
    "ReadinessDetector",
    "ReadinessOutcome",
    "ReadinessStrategies",
    "retry",
]

# Lazy import so the core can be used without a Playwright install
def get_playwright_factory():
    from .browser_driver import PlaywrightDriverFactory
    return PlaywrightDriverFactory
