"""Pacing helpers used between page interactions."""

from __future__ import annotations

import asyncio
import random

from pantrywatch.playwright_env import apply_wait_policy


async def _sleep_ms(ms: float) -> None:
    if ms > 0:
        await asyncio.sleep(ms / 1000)


async def human_wait(min_ms: int = 350, max_ms: int = 900) -> None:
    """Pause for a random interval inside ``[min_ms, max_ms]`` after scaling."""

    low, high = apply_wait_policy(max(min_ms, 0), max(min_ms, max_ms, 0))
    await _sleep_ms(random.uniform(low, high))


async def settle(delay_ms: int) -> None:
    """Let client-side rendering finish after a navigation or click."""

    scaled, _ = apply_wait_policy(max(delay_ms, 0), max(delay_ms, 0))
    await _sleep_ms(scaled)
