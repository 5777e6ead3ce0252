# =============================================================================
# reconnecting-ws -- Error Types
# =============================================================================

from __future__ import annotations

from .types import TerminationCode


class WSError(Exception):
    """Base exception for all reconnecting-ws errors."""


class InvalidStateError(WSError):
    """Operation not allowed in the transport's current ready state."""


class AbortError(WSError):
    """An operation was aborted through an :class:`AbortSignal`."""


class ReconnectingWebSocketError(WSError):
    """Permanent termination of a :class:`ReconnectingWebSocket`.

    Attributes:
        code: Why the instance was terminated:

            - ``RECONNECTION_LIMIT``: ``max_retries`` exhausted.
            - ``TERMINATED_BY_USER``: permanent ``close()``.
            - ``UNKNOWN_ERROR``: an exception escaped a user-provided
              callable or the reconnection loop itself.
        cause: The underlying exception, if any (also ``__cause__``).
    """

    def __init__(self, code: TerminationCode, cause: BaseException | None = None) -> None:
        self.code = TerminationCode(code)
        self.cause = cause
        super().__init__(f"Error when reconnecting WebSocket: {self.code.value}")
        self.__cause__ = cause
