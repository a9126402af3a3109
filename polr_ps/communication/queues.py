"""FIFO mailboxes connecting workers to the master and back."""

import threading
import time
from collections import deque
from typing import Any, Optional

from polr_ps.communication.protocol import (
    GlobalParameterVectorUpdateMessage,
    GradientUpdateMessage,
)
from polr_ps.exceptions import ProtocolError, QueueUnderflowError


class MessageQueue:
    """
    Multi-producer, single-consumer FIFO of protocol messages.

    Messages leave in insertion order. ``get_nowait`` is the synchronous
    contract: draining an empty queue is a caller bug and raises
    QueueUnderflowError. ``get`` blocks until a message arrives, the timeout
    expires, or the queue is closed and drained.
    """

    message_type: Optional[type] = None

    def __init__(self, name: str, maxsize: int = 0):
        """
        Args:
            name: Queue name used in error messages
            maxsize: Capacity; 0 means unbounded
        """
        self.name = name
        self.maxsize = maxsize
        self._items: deque = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        self._closed = False
        self._total_put = 0

    def _check_type(self, msg: Any):
        if self.message_type is not None and not isinstance(msg, self.message_type):
            raise TypeError(
                f"{self.name} accepts {self.message_type.__name__}, "
                f"got {type(msg).__name__}"
            )

    def put(self, msg: Any, block: bool = True, timeout: Optional[float] = None):
        """
        Append a message.

        Raises:
            ProtocolError: if the queue is closed, or full and not waiting
        """
        self._check_type(msg)
        with self._not_full:
            if self._closed:
                raise ProtocolError(f"Queue {self.name} is closed")
            if self.maxsize > 0:
                deadline = None if timeout is None else time.monotonic() + timeout
                while len(self._items) >= self.maxsize:
                    if not block:
                        raise ProtocolError(f"Queue {self.name} is full")
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        raise ProtocolError(f"Timed out putting to full queue {self.name}")
                    self._not_full.wait(remaining)
                    if self._closed:
                        raise ProtocolError(f"Queue {self.name} is closed")
            self._items.append(msg)
            self._total_put += 1
            self._not_empty.notify()

    def get_nowait(self) -> Any:
        """Pop the oldest message or raise QueueUnderflowError."""
        return self.get(block=False)

    def get(self, block: bool = True, timeout: Optional[float] = None) -> Any:
        """
        Pop the oldest message.

        Args:
            block: Wait for a message when empty
            timeout: Maximum wait in seconds (None waits indefinitely)

        Raises:
            QueueUnderflowError: empty and not blocking, timed out, or
                closed and drained
        """
        with self._not_empty:
            if block:
                deadline = None if timeout is None else time.monotonic() + timeout
                while not self._items and not self._closed:
                    remaining = None if deadline is None else deadline - time.monotonic()
                    if remaining is not None and remaining <= 0:
                        raise QueueUnderflowError(
                            f"Timed out after {timeout}s waiting on queue {self.name}"
                        )
                    self._not_empty.wait(remaining)
            if not self._items:
                state = "closed" if self._closed else "empty"
                raise QueueUnderflowError(f"Queue {self.name} is {state}")
            msg = self._items.popleft()
            self._not_full.notify()
            return msg

    def close(self):
        """Reject further puts and wake every waiter."""
        with self._lock:
            self._closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def total_put(self) -> int:
        """Messages ever enqueued."""
        return self._total_put

    def empty(self) -> bool:
        with self._lock:
            return not self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class GradientQueue(MessageQueue):
    """Workers -> master."""

    message_type = GradientUpdateMessage

    def __init__(self, name: str = "gradients", maxsize: int = 0):
        super().__init__(name, maxsize)


class BroadcastQueue(MessageQueue):
    """Master -> one worker."""

    message_type = GlobalParameterVectorUpdateMessage

    def __init__(self, name: str = "broadcast", maxsize: int = 0):
        super().__init__(name, maxsize)
