"""Reusable pacing and page actions: randomized sleeps and lazy-section scrolling.

Rules:
  - Incremental scroll, not a single jump. Max 5 attempts.
  - Delays between page loads are randomized; floors are enforced in code.
  - No fixed asyncio.sleep() outside random_sleep().
"""

import asyncio
import logging
import random
from typing import Any

logger = logging.getLogger(__name__)

MAX_SCROLL_ATTEMPTS = 5

# Floor values. Code enforces these regardless of caller args.
SCROLL_DELAY_FLOOR = 1.0
PAGE_DELAY_FLOOR = 3.0


async def random_sleep(min_s: float, max_s: float) -> float:
    """Sleep for a random duration between min_s and max_s seconds.

    Floor enforcement: min_s is always respected as the absolute minimum.
    If max_s < min_s, max_s is raised to min_s.

    Returns the actual sleep duration (useful for testing).
    """
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await asyncio.sleep(duration)
    return duration


async def scroll_until_stable(
    page: Any,
    *,
    item_selectors: tuple[str, ...],
    max_attempts: int = MAX_SCROLL_ATTEMPTS,
    scroll_delay_min: float = 1.0,
    scroll_delay_max: float = 2.0,
) -> int:
    """Scroll a profile page until its lazily-loaded sections stop growing.

    Args:
        page: Browser page object (patchright Page or mock).
        item_selectors: CSS selectors to try, in fallback order.
        max_attempts: Max scroll iterations before giving up.
        scroll_delay_min: Minimum delay between scrolls (floor enforced).
        scroll_delay_max: Maximum delay between scrolls.

    Returns:
        Final count of matched elements.
    """
    scroll_delay_min = max(scroll_delay_min, SCROLL_DELAY_FLOOR)
    scroll_delay_max = max(scroll_delay_max, scroll_delay_min)

    previous_count = 0

    for attempt in range(max_attempts):
        current_count = await _count_items(page, item_selectors)
        logger.debug(
            "Scroll attempt %d/%d: %d sections (prev: %d)",
            attempt + 1, max_attempts, current_count, previous_count,
        )

        if current_count == previous_count and attempt > 0:
            break

        previous_count = current_count
        await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        await random_sleep(scroll_delay_min, scroll_delay_max)

    return previous_count


async def _count_items(page: Any, selectors: tuple[str, ...]) -> int:
    """Count elements using the first matching selector."""
    for selector in selectors:
        items = await page.query_selector_all(selector)
        if items:
            return len(items)
    return 0
