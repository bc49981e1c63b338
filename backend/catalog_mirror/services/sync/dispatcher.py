"""
Dispatch Loop - paced batch submission

Each batch is handed to ``submit`` exactly once. After every submission the
loop suspends for ``poll_interval_ms`` and re-checks the backpressure gate,
moving on to the next batch only once the gate reports not-busy.
"""
import asyncio
from typing import Callable, Iterable, List, TypeVar

from ...utils.logger import get_logger
from .backpressure import BackpressureGate

logger = get_logger('dispatcher')

T = TypeVar('T')


async def wait_until_idle(gate: BackpressureGate, poll_interval_ms: int) -> int:
    """Sleep-then-check until the gate clears.

    Always sleeps at least once, so freshly submitted work has a chance to
    show up in the load counters before the first check.

    Returns:
        Number of polls it took
    """
    polls = 0
    while True:
        await asyncio.sleep(poll_interval_ms / 1000)
        polls += 1
        if not gate.is_busy():
            return polls


async def dispatch(
    batches: Iterable[List[T]],
    submit: Callable[[List[T]], object],
    poll_interval_ms: int,
    gate: BackpressureGate,
) -> int:
    """Submit ``batches`` in order, waiting for the gate after each one.

    Submission failures are the job queue's business and are not observed
    here; an error raised while polling the gate propagates and aborts the
    caller.

    Args:
        batches: Ordered batches, consumed once
        submit: Enqueues one unit of work for a batch
        poll_interval_ms: Sleep between gate checks
        gate: Backpressure gate sampled on every poll

    Returns:
        Number of batches submitted
    """
    submitted = 0
    for batch in batches:
        submit(batch)
        submitted += 1
        await wait_until_idle(gate, poll_interval_ms)

    logger.debug(f"[Dispatch] Submitted {submitted} batches")
    return submitted
