"""Marshalling controller calls from the HTTP thread onto the GUI thread.

Window objects may only be touched from the thread running the GUI loop. The
API handlers run on uvicorn's loop, so every controller call goes through a
`Dispatcher`, which returns a `concurrent.futures.Future` the handler awaits.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Any, Callable


def settle(target: "Future[Any]", value: Any) -> None:
    """Resolve `target` with `value`, following it if it is itself a Future."""
    if isinstance(value, Future):
        def _follow(inner: "Future[Any]") -> None:
            try:
                target.set_result(inner.result())
            except Exception as e:  # noqa: BLE001
                target.set_exception(e)

        value.add_done_callback(_follow)
    else:
        target.set_result(value)


def run_into(target: "Future[Any]", fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    if not target.set_running_or_notify_cancel():
        return
    try:
        value = fn(*args, **kwargs)
    except Exception as e:  # noqa: BLE001
        target.set_exception(e)
        return
    settle(target, value)


class Dispatcher(ABC):
    @abstractmethod
    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Future[Any]":
        """Run fn on the GUI thread; the future carries its (possibly deferred) result."""

    async def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.wrap_future(self.submit(fn, *args, **kwargs))


class InlineDispatcher(Dispatcher):
    """Runs calls on the calling thread. Used by tests and headless runs."""

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Future[Any]":
        target: "Future[Any]" = Future()
        run_into(target, fn, *args, **kwargs)
        return target
