"""
Windowed batch execution for many independent async operations.

Items are split into consecutive windows of ``concurrency`` items.  A window
runs concurrently with :func:`asyncio.gather`; the next window starts only
after the whole window has settled and ``delay`` seconds have passed.  No
delay follows the last window.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchError(Generic[T]):
    item: T
    error: str


@dataclass
class BatchResult(Generic[T, R]):
    results: List[R] = field(default_factory=list)
    errors: List[BatchError[T]] = field(default_factory=list)


async def process_batch(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[Optional[R]]],
    concurrency: int,
    *,
    delay: float = 0.0,
) -> BatchResult[T, R]:
    """Run *operation* over *items*, at most *concurrency* at a time.

    A failing item is recorded in ``errors`` and never aborts its siblings or
    later windows.  ``None`` results are dropped.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    out: BatchResult[T, R] = BatchResult()

    async def _run_one(item: T) -> Optional[R]:
        try:
            return await operation(item)
        except asyncio.CancelledError:  # pragma: no cover
            raise
        except Exception as e:
            logger.error("Batch item %r failed: %s", item, e)
            out.errors.append(BatchError(item=item, error=str(e)))
            return None

    total = len(items)
    for start in range(0, total, concurrency):
        window = items[start:start + concurrency]
        logger.debug("Window %d-%d of %d", start + 1, start + len(window), total)

        settled = await asyncio.gather(*(_run_one(item) for item in window))
        out.results.extend(r for r in settled if r is not None)

        if start + concurrency < total and delay > 0:
            await asyncio.sleep(delay)

    return out
