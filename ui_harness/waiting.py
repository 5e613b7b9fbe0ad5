"""Bounded polling: the single mechanism behind every "eventually" check."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

type Predicate = Callable[[], Any | Awaitable[Any]]

DEFAULT_POLL_INTERVAL_MS = 100


@dataclass(frozen=True, kw_only=True)
class Ok:
    """The predicate held."""

    value: Any
    elapsed_ms: float
    polls: int


@dataclass(frozen=True, kw_only=True)
class TimedOut:
    """The deadline elapsed before the predicate held."""

    last_value: Any
    elapsed_ms: float
    polls: int


type WaitResult = Ok | TimedOut


async def wait_for(
    predicate: Predicate,
    timeout_ms: float,
    poll_interval_ms: float = DEFAULT_POLL_INTERVAL_MS,
) -> WaitResult:
    """Poll predicate until it returns a truthy value or the deadline elapses.

    The first poll happens immediately. Sleeps are clipped to the remaining
    time, so a timed out wait returns at most one poll interval (plus the
    cost of the last poll) after the deadline.

    Args:
        predicate: Sync or async callable evaluated against live state
        timeout_ms: Maximum wait time in milliseconds
        poll_interval_ms: Milliseconds between polls

    Returns:
        Ok with the truthy value, or TimedOut with the last value seen

    """
    if poll_interval_ms <= 0:
        raise ValueError("poll_interval_ms must be positive")

    loop = asyncio.get_running_loop()
    started = loop.time()
    deadline = started + max(timeout_ms, 0) / 1000
    polls = 0

    while True:
        value = predicate()
        if inspect.isawaitable(value):
            value = await value
        polls += 1

        now = loop.time()
        if value:
            return Ok(value=value, elapsed_ms=(now - started) * 1000, polls=polls)

        if now >= deadline:
            return TimedOut(
                last_value=value, elapsed_ms=(now - started) * 1000, polls=polls
            )

        await asyncio.sleep(min(poll_interval_ms / 1000, deadline - now))
