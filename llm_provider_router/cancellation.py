"""Deadline and caller-cancellation handling for in-flight calls."""

import asyncio
from typing import Any, Awaitable, TypeVar

from .exceptions import RequestCancelledError

T = TypeVar("T")


class CallAbortedError(Exception):
    """The awaited call ended cancelled without the caller asking for it."""


def _discard_result(task: "asyncio.Task[Any]") -> None:
    # Retrieve the outcome of an abandoned task so it is never reported as unhandled
    if not task.cancelled():
        task.exception()


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel: asyncio.Event | None = None,
    timeout: float | None = None,
) -> T:
    """Await a call, abandoning it when the deadline passes or `cancel` is set.

    Raises:
        RequestCancelledError: the cancel event fired first
        asyncio.TimeoutError: the deadline passed first
        CallAbortedError: the call itself ended cancelled

    The abandoned call is cancelled and anything it produces later is dropped.
    """
    task = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Future[Any] | None = None
    if cancel is not None:
        if cancel.is_set():
            task.cancel()
            task.add_done_callback(_discard_result)
            raise RequestCancelledError()
        cancel_waiter = asyncio.ensure_future(cancel.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        task.add_done_callback(_discard_result)
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        if task.cancelled():
            # Cancelled from inside, e.g. the call raised CancelledError itself
            raise CallAbortedError("Call was cancelled before it finished")
        return task.result()

    task.cancel()
    task.add_done_callback(_discard_result)
    if cancel_waiter is not None and cancel_waiter in done:
        raise RequestCancelledError()
    raise asyncio.TimeoutError()
