# =============================================================================
# reconnecting-ws -- Abort Signals
# =============================================================================
#
# One-shot cancellation signal shared between the reconnection loop, the
# per-attempt listener scope and the inter-attempt sleep.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any, Callable

from ._logging import logger
from .errors import AbortError

AbortCallback = Callable[[Any], Any]


class AbortSignal:
    """Read side of an :class:`AbortController`.

    Callbacks registered with :meth:`add_listener` run once, synchronously,
    when the signal is aborted. Aborting happens at most once; the reason
    never changes afterwards.
    """

    def __init__(self) -> None:
        self._aborted = False
        self._reason: Any = None
        self._callbacks: list[AbortCallback] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    def add_listener(self, callback: AbortCallback) -> None:
        """Call *callback(reason)* when the signal aborts."""
        if not self._aborted:
            self._callbacks.append(callback)

    def remove_listener(self, callback: AbortCallback) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def throw_if_aborted(self) -> None:
        if self._aborted:
            raise _abort_exception(self)

    async def wait(self) -> Any:
        """Suspend until the signal aborts; return the reason."""
        if self._aborted:
            return self._reason
        waiter = asyncio.get_running_loop().create_future()

        def wake(reason: Any) -> None:
            if not waiter.done():
                waiter.set_result(reason)

        self.add_listener(wake)
        try:
            return await waiter
        finally:
            self.remove_listener(wake)

    def _abort(self, reason: Any) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception:
                logger.exception("Abort callback failed")


class AbortController:
    """Owns an :class:`AbortSignal` and the right to abort it."""

    def __init__(self) -> None:
        self._signal = AbortSignal()

    @property
    def signal(self) -> AbortSignal:
        return self._signal

    def abort(self, reason: Any = None) -> None:
        """Abort the signal. No-op when already aborted."""
        if reason is None:
            reason = AbortError("The operation was aborted")
        self._signal._abort(reason)


async def sleep(delay: float, signal: AbortSignal | None = None) -> None:
    """Wait *delay* seconds, or until *signal* aborts.

    Raises:
        BaseException: The signal's reason if it is an exception,
            otherwise :class:`AbortError`, when the signal is (or becomes)
            aborted before the delay elapses.
    """
    if signal is None:
        await asyncio.sleep(delay)
        return
    signal.throw_if_aborted()

    loop = asyncio.get_running_loop()
    waiter = loop.create_future()

    def on_timeout() -> None:
        if not waiter.done():
            waiter.set_result(None)

    def on_abort(_reason: Any) -> None:
        if not waiter.done():
            waiter.set_exception(_abort_exception(signal))

    timer = loop.call_later(max(delay, 0.0), on_timeout)
    signal.add_listener(on_abort)
    try:
        await waiter
    finally:
        timer.cancel()
        signal.remove_listener(on_abort)


def _abort_exception(signal: AbortSignal) -> BaseException:
    reason = signal.reason
    if isinstance(reason, BaseException):
        return reason
    return AbortError(f"The operation was aborted: {reason!r}")
