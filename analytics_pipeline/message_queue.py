"""Unbounded FIFO shared by producers and the batch worker.

Data messages and the FLUSH / POISON control tokens travel through the same
queue, so a flush or shutdown is observed only after every message pushed
before it.
"""

import queue


class _ControlToken:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name


FLUSH = _ControlToken("FLUSH")
POISON = _ControlToken("POISON")


class MessageQueue:
    """Thread-safe queue for many producers and a single consumer."""

    def __init__(self):
        # maxsize=0: unbounded, put never blocks
        self._queue: queue.Queue = queue.Queue()

    def push(self, entry) -> None:
        self._queue.put_nowait(entry)

    def pop(self, timeout: float | None):
        """Block up to *timeout* seconds for the next entry. Returns None
        on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list:
        """Remove and return everything currently queued."""
        entries = []
        while True:
            try:
                entries.append(self._queue.get_nowait())
            except queue.Empty:
                return entries

    def qsize(self) -> int:
        return self._queue.qsize()
