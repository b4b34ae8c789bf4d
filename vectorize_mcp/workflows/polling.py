from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional

from ..errors import JobCancelledError, JobFailedError, JobTimeoutError
from ..schemas import AsyncJobHandle, JobKind, JobStatus


StartFn = Callable[[], Awaitable[AsyncJobHandle]]
PollFn = Callable[[AsyncJobHandle], Awaitable[JobStatus]]
SleepFn = Callable[[float], Awaitable[None]]


async def _wait(interval_s: float, cancel_event: Optional[asyncio.Event], sleep: SleepFn, kind: JobKind) -> None:
    if cancel_event is None:
        await sleep(interval_s)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=interval_s)
    except asyncio.TimeoutError:
        return
    raise JobCancelledError(kind)


async def poll_until_ready(
    start: StartFn,
    poll: PollFn,
    *,
    kind: JobKind,
    interval_s: float,
    max_attempts: int,
    timeout_s: Optional[float] = None,
    cancel_event: Optional[asyncio.Event] = None,
    sleep: SleepFn = asyncio.sleep,
) -> JobStatus:
    """Start an async job and poll it until it reports ready.

    Returns the final status when the job succeeded. Raises:
      - JobFailedError when the job is ready but unsuccessful (never retried)
      - JobTimeoutError after `max_attempts` polls, or when the next wait would
        cross `timeout_s`
      - JobCancelledError when `cancel_event` is set before a poll or during a wait

    Errors raised by `start` or `poll` propagate unchanged.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    started = time.monotonic()
    handle = await start()

    attempts = 0
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise JobCancelledError(kind)

        status = await poll(handle)
        attempts += 1

        if status.ready:
            if not status.success:
                raise JobFailedError(kind, status.error)
            return status

        elapsed = time.monotonic() - started
        if attempts >= max_attempts or (timeout_s is not None and elapsed + interval_s > timeout_s):
            raise JobTimeoutError(kind, attempts=attempts, elapsed_s=elapsed)

        await _wait(interval_s, cancel_event, sleep, kind)
