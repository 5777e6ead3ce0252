# =============================================================================
# reconnecting-ws -- Outbound Buffer
# =============================================================================
#
# Holds messages sent while no connection is open and replays them, in
# order, when the next connection opens. In-memory only: buffered
# messages do not survive a process restart.
# =============================================================================

from __future__ import annotations

from collections import deque
from typing import Any, Callable

from ._logging import logger
from .types import SendData


class OutboundBuffer:
    """FIFO of payloads waiting for an open connection.

    :meth:`flush` is all-or-nothing per message but partial across the
    queue: when a send fails, exactly the messages already sent are
    removed and the unsent suffix stays queued for the next open.
    """

    def __init__(self) -> None:
        self._queue: deque[SendData] = deque()

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def size(self) -> int:
        return len(self._queue)

    def append(self, data: SendData) -> None:
        self._queue.append(data)

    def flush(self, send: Callable[[SendData], Any]) -> int:
        """Send every queued message through *send*, oldest first.

        Returns:
            Number of messages sent.

        Raises:
            Exception: Whatever *send* raised. Messages sent before the
                failure are removed; the failed one and the rest remain.
        """
        pending = list(self._queue)
        sent = 0
        try:
            for data in pending:
                send(data)
                sent += 1
        except Exception:
            logger.debug("Flush failed after %d/%d messages", sent, len(pending))
            raise
        finally:
            for _ in range(sent):
                self._queue.popleft()

        if sent:
            logger.debug("Flushed %d buffered messages", sent)
        return sent

    def clear(self) -> None:
        """Discard all queued messages."""
        self._queue.clear()

    def get_stats(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "bytes": sum(payload_size(m) for m in self._queue),
        }


def payload_size(data: SendData) -> int:
    """Size of *data* on the wire, in bytes."""
    if isinstance(data, str):
        return len(data.encode("utf-8"))
    if isinstance(data, memoryview):
        return data.nbytes
    return len(data)
