"""Task combinators for render-time concurrency.

Everything runs on one event loop. ``parallel`` lets awaitables
interleave at their suspension points; ``series`` starts each coroutine
only after the previous one finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)


async def parallel(*awaitables: Awaitable[Any]) -> list[Any]:
    """Await all, returning results in submission order.

    Every awaitable runs to completion even when one fails. The first
    error is raised afterwards; later errors are logged and attached to it
    as notes.
    """
    if not awaitables:
        return []
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    errors = [r for r in results if isinstance(r, BaseException)]
    if errors:
        first = errors[0]
        for other in errors[1:]:
            if other is first:
                continue
            logger.warning("Additional error in parallel task: %r", other)
            # Errors of shared futures reach several callers
            note = f"Also failed: {type(other).__name__}: {other}"
            if note not in getattr(first, "__notes__", ()):
                first.add_note(note)
        raise first
    return list(results)


async def series(*factories: Callable[[], Awaitable[Any]]) -> list[Any]:
    """Run coroutine factories strictly one after another.

    Stops at the first error.
    """
    results: list[Any] = []
    for factory in factories:
        results.append(await factory())
    return results


def flatten(values: Iterable[Any]) -> list[Any]:
    """Flatten nested lists and tuples, dropping None."""
    out: list[Any] = []
    for value in values:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            out.extend(flatten(value))
        else:
            out.append(value)
    return out
