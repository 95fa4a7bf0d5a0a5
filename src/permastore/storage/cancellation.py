"""Racing network calls against a caller's cancellation signal."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from permastore.errors.storage import UploadCancelledError

T = TypeVar("T")


async def run_cancellable(
    aw: Awaitable[T],
    cancel_event: Optional[asyncio.Event],
    *,
    timeout: Optional[float] = None,
) -> T:
    """
    Await ``aw`` unless ``cancel_event`` fires or ``timeout`` elapses first.

    The pending call is cancelled in both cases, so no request leaks.

    Raises:
        UploadCancelledError: The event was set first (``funds_spent=False``)
        asyncio.TimeoutError: The timeout elapsed first
    """
    task = asyncio.ensure_future(aw)

    if cancel_event is None:
        if timeout is None:
            return await task
        return await asyncio.wait_for(task, timeout)

    if cancel_event.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise UploadCancelledError(funds_spent=False)

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    if cancel_event.is_set():
        raise UploadCancelledError(funds_spent=False)
    raise asyncio.TimeoutError()
