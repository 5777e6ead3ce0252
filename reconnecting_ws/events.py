# =============================================================================
# reconnecting-ws -- Event Target
# =============================================================================
#
# DOM-style multi-listener registry. Both the long-lived
# ReconnectingWebSocket and each per-attempt transport are EventTargets.
# =============================================================================

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from ._logging import logger
from .signals import AbortSignal
from .types import Event

# A callable taking the event, or an object with a ``handle_event`` method.
# Coroutine functions are allowed; the coroutine runs as a background task.
Listener = Any
EventHandler = Callable[[Event], Any]


@dataclass(eq=False)
class _Registration:
    callback: Listener
    capture: bool
    once: bool
    removed: bool = False


class EventTarget:
    """Registry of event listeners keyed by event type.

    Registering the same ``(listener, capture)`` pair twice for a type is a
    no-op, and removal is idempotent. Listener exceptions are logged and do
    not prevent delivery to the remaining listeners.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[_Registration]] = defaultdict(list)
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def add_event_listener(
        self,
        type: str,
        listener: Listener | None,
        *,
        once: bool = False,
        capture: bool = False,
        signal: AbortSignal | None = None,
    ) -> None:
        """Register *listener* for events of *type*.

        Args:
            type: Event type, e.g. ``"message"``.
            listener: Callable or object with ``handle_event``. ``None`` is
                ignored.
            once: Remove the listener after its first invocation.
            capture: Part of the registration identity only.
            signal: Remove the listener when this signal aborts.
        """
        if listener is None:
            return
        if signal is not None and signal.aborted:
            return

        registrations = self._listeners[type]
        for reg in registrations:
            if _same_listener(reg.callback, listener) and reg.capture == capture:
                return
        registrations.append(_Registration(listener, capture, once))

        if signal is not None:
            signal.add_listener(
                lambda _reason: self.remove_event_listener(type, listener, capture=capture)
            )

    def remove_event_listener(
        self,
        type: str,
        listener: Listener | None,
        *,
        capture: bool = False,
    ) -> None:
        """Remove a registration. Unknown listeners are ignored."""
        registrations = self._listeners.get(type)
        if not registrations or listener is None:
            return
        for reg in registrations:
            if _same_listener(reg.callback, listener) and reg.capture == capture:
                reg.removed = True
                registrations.remove(reg)
                return

    def dispatch_event(self, event: Event) -> bool:
        """Deliver *event* to the listeners registered for its type.

        Listeners added during dispatch are not invoked for this event;
        listeners removed during dispatch are skipped.

        Returns:
            Always True (events are not cancelable).
        """
        event.target = self
        for reg in list(self._listeners.get(event.type, ())):
            if reg.removed:
                continue
            if reg.once:
                self.remove_event_listener(event.type, reg.callback, capture=reg.capture)
            self._invoke(reg.callback, event)
        return True

    def listener_count(self, type: str) -> int:
        """Number of active registrations for *type*."""
        return len(self._listeners.get(type, ()))

    # -- Decorator sugar ---------------------------------------------------------

    def on(self, type: str, *, once: bool = False) -> Callable[[EventHandler], EventHandler]:
        """Decorator to register a listener.

        Example::

            @ws.on("message")
            async def handle(event: MessageEvent):
                print(event.data)
        """

        def decorator(fn: EventHandler) -> EventHandler:
            self.add_event_listener(type, fn, once=once)
            return fn

        return decorator

    def off(self, type: str, fn: EventHandler) -> None:
        """Remove a listener registered with :meth:`on`."""
        self.remove_event_listener(type, fn)

    # -- Internal ----------------------------------------------------------------

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(_log_task_error)

    def _invoke(self, callback: Listener, event: Event) -> None:
        handler = callback if callable(callback) else getattr(callback, "handle_event", None)
        if handler is None:
            logger.error("Listener for '%s' is not callable: %r", event.type, callback)
            return
        try:
            result = handler(event)
            if asyncio.iscoroutine(result):
                self._fire_task(result)
        except Exception:
            logger.exception("Listener error for '%s'", event.type)


def _log_task_error(task: asyncio.Task[Any]) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Async listener failed", exc_info=task.exception())


def _same_listener(registered: Listener, listener: Listener) -> bool:
    # Bound methods are recreated on every attribute access; compare those by equality
    return registered is listener or (inspect.ismethod(listener) and registered == listener)
