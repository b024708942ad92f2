from __future__ import annotations

import asyncio
import random

from ..config import RetryConfig


def compute_backoff(
    attempt: int, base: float = 0.05, factor: float = 2.0, jitter: float = 0.05
) -> float:
    """Compute exponential backoff with jitter."""
    delay = base * factor**attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, config: RetryConfig | None = None) -> None:
    """Sleep for computed backoff delay before retrying."""
    config = config or RetryConfig()
    delay = compute_backoff(
        attempt, base=config.initial_delay, factor=config.factor, jitter=config.jitter
    )
    await asyncio.sleep(delay)
