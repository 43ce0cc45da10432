"""Human-like pacing between UI interactions."""

from __future__ import annotations

import random
from dataclasses import dataclass

from ..config.settings import DiscoverySettings


def jittered_ms(base_ms: int, jitter_ratio: float, rng: random.Random | None = None) -> int:
    """``base_ms`` randomized by +/- ``jitter_ratio``; never below 1ms."""
    rng = rng or random
    spread = base_ms * jitter_ratio
    return max(1, int(round(base_ms + rng.uniform(-spread, spread))))


@dataclass(frozen=True)
class PacingProfile:
    page_load_ms: int
    click_settle_ms: int
    processing_ms: int
    removal_ms: int
    jitter_ratio: float = 0.3

    def __post_init__(self) -> None:
        for name in ("page_load_ms", "click_settle_ms", "processing_ms", "removal_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

    @classmethod
    def from_settings(cls, settings: DiscoverySettings) -> PacingProfile:
        return cls(
            page_load_ms=settings.page_load_delay_ms,
            click_settle_ms=settings.click_settle_delay_ms,
            processing_ms=settings.processing_delay_ms,
            removal_ms=settings.removal_delay_ms,
            jitter_ratio=settings.delay_jitter_ratio,
        )


async def human_delay(page, base_ms: int, jitter_ratio: float = 0.3) -> int:
    """Pause on the page's clock and return the delay actually used."""
    delay = jittered_ms(base_ms, jitter_ratio)
    await page.wait(delay)
    return delay
