"""Request body accepted by ``POST /scrape``."""

from dataclasses import replace

from pydantic import BaseModel

from .core.protocols import FetchRequest, ReadinessStrategies, validate_url
from .presets import SPA_STRATEGIES, FetchPreset


class SpaStrategiesPayload(BaseModel):
    """Per-request overrides; unset fields keep the preset's value."""

    loading_indicators: bool | None = None
    network_idle: bool | None = None
    dom_stable: bool | None = None
    early_exit: bool | None = None


class ScrapePayload(BaseModel):
    url: str | None = None
    wait_after_load: int = 0
    timeout: int = 15000
    headers: dict[str, str] | None = None
    check_selector: str | None = None
    block_media: bool | None = None
    spa_mode: bool | None = None
    network_idle_time: int | None = None
    dom_stable_time: int | None = None
    spa_strategies: SpaStrategiesPayload | None = None
    preset: str | None = None

    def strategies_for(self, preset: FetchPreset) -> ReadinessStrategies | None:
        if self.spa_mode is False:
            return None
        if self.spa_mode is None and preset.strategies is None:
            return None

        strategies = preset.strategies or SPA_STRATEGIES
        overrides = {}
        if self.spa_strategies is not None:
            overrides.update(self.spa_strategies.model_dump(exclude_none=True))
        if self.network_idle_time is not None:
            overrides["network_idle_ms"] = self.network_idle_time
        if self.dom_stable_time is not None:
            overrides["dom_stable_ms"] = self.dom_stable_time
        return replace(strategies, **overrides)

    def to_fetch_request(self, preset: FetchPreset) -> FetchRequest:
        """Build the immutable request; raises InvalidInputError on bad input."""
        return FetchRequest(
            url=validate_url(self.url),
            timeout_ms=self.timeout,
            wait_after_load_ms=self.wait_after_load,
            check_selector=self.check_selector or None,
            headers=dict(self.headers or {}),
            strategies=self.strategies_for(preset),
            block_media=self.block_media,
        )
