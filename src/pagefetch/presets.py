"""Named fetch behaviours.

The service used to ship as several near-identical variants. They are now one
code path parameterised by these presets.
"""

from dataclasses import dataclass

from .core.protocols import ReadinessStrategies

SPA_STRATEGIES = ReadinessStrategies(
    loading_indicators=True,
    network_idle=False,
    dom_stable=False,
    early_exit=True,
)


@dataclass(frozen=True)
class FetchPreset:
    name: str
    description: str
    strategies: ReadinessStrategies | None
    max_retry: int = 0
    retry_interval_ms: int = 1000
    rotate_user_agent: bool = False


PRESETS = {
    preset.name: preset
    for preset in (
        FetchPreset(
            name="basic",
            description="Navigate and extract, no readiness detection or retries",
            strategies=None,
        ),
        FetchPreset(
            name="spa",
            description="Wait for loading indicators to clear, single attempt",
            strategies=SPA_STRATEGIES,
        ),
        FetchPreset(
            name="resilient",
            description="SPA waiting with up to two retries",
            strategies=SPA_STRATEGIES,
            max_retry=2,
        ),
        FetchPreset(
            name="stealth",
            description="Resilient, rotating the user agent when a browser gate is hit",
            strategies=SPA_STRATEGIES,
            max_retry=2,
            rotate_user_agent=True,
        ),
    )
}


def get_preset(name: str) -> FetchPreset:
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown preset {name!r}; expected one of {', '.join(PRESETS)}") from None
