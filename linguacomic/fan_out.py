"""
LinguaComic — Image Fan-Out.

Issues one synthesis request per item, all at once, and waits for every
request to settle. A failed item comes back as the original object; a
successful one comes back as a copy carrying the image. Output order always
matches input order.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Settled:
    """Outcome of one request: ok with a value, or failed with an error."""
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None


async def settle(awaitable: Awaitable) -> Settled:
    """Await and capture the outcome instead of raising. Cancellation still propagates."""
    try:
        return Settled(ok=True, value=await awaitable)
    except Exception as e:
        return Settled(ok=False, error=e)


async def settle_all(awaitables: Sequence[Awaitable]) -> list[Settled]:
    """Run all awaitables concurrently; return one Settled per input, in order."""
    return list(await asyncio.gather(*(settle(a) for a in awaitables)))


class ImageFanOut:
    """Illustrates a batch of items with one concurrent request per item."""

    def __init__(self, synthesize: Callable[[str], Awaitable[str]], label: str = "item"):
        """
        Args:
            synthesize: async callable(prompt) -> image reference
            label: Name used in log lines ("panel", "vocab", ...)
        """
        self._synthesize = synthesize
        self.label = label

    async def run(self, items: Sequence[T], prompt_for: Callable[[T], str]) -> list[T]:
        """
        Illustrate every item.

        Returns:
            One entry per input, in input order: a copy with `image` set on
            success, the original item untouched on failure. Never raises
            a synthesis error.
        """
        if not items:
            return []

        logger.info(f"Illustrating {len(items)} {self.label}(s)...")
        outcomes = await settle_all([self._synthesize(prompt_for(item)) for item in items])

        results = []
        failed = 0
        for index, (item, outcome) in enumerate(zip(items, outcomes)):
            if outcome.ok:
                results.append(dataclasses.replace(item, image=outcome.value))
            else:
                failed += 1
                logger.error(f"Failed to generate image for {self.label} #{index + 1}: {outcome.error}")
                results.append(item)

        logger.info(f"Illustrated {len(items) - failed}/{len(items)} {self.label}(s)")
        return results
