"""Batch worker — single consumer that accumulates messages and decides
when to flush them to the uploader."""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from analytics_pipeline.errors import UploadFailure
from analytics_pipeline.message_queue import FLUSH, POISON, MessageQueue
from analytics_pipeline.messages import Message
from analytics_pipeline.metrics import PipelineMetrics
from analytics_pipeline.uploader import BatchUploader

logger = logging.getLogger(__name__)

ThreadFactory = Callable[[Callable[[], None], str], threading.Thread]


class WorkerState(Enum):
    AWAITING_ENTRY = "awaiting_entry"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


def default_thread_factory(target: Callable[[], None], name: str) -> threading.Thread:
    return threading.Thread(target=target, name=name, daemon=True)


class BatchWorker:
    """Drains the message queue on a dedicated thread.

    Two triggers flush the in-progress batch, evaluated independently on
    every wake-up:

    - size: the batch reached ``flush_queue_size`` messages.
    - time: ``flush_interval`` seconds passed since the first message of
      the batch was appended.

    FLUSH forces an upload of whatever has accumulated; POISON performs one
    final flush and terminates the worker. Uploads run synchronously on the
    worker thread, so batches reach the endpoint in order and never overlap.
    The in-progress batch is only ever touched by the worker thread.
    """

    def __init__(
        self,
        message_queue: MessageQueue,
        uploader: BatchUploader,
        flush_queue_size: int,
        flush_interval: float,
        metrics: Optional[PipelineMetrics] = None,
        thread_factory: Optional[ThreadFactory] = None,
        thread_name: str = "analytics-worker",
        log: Optional[logging.Logger] = None,
        on_terminated: Optional[Callable[[], None]] = None,
    ):
        self._queue = message_queue
        self._uploader = uploader
        self._flush_queue_size = flush_queue_size
        self._flush_interval = flush_interval
        self._metrics = metrics or PipelineMetrics()
        self._thread_factory = thread_factory or default_thread_factory
        self._thread_name = thread_name
        self._log = log or logger
        self._on_terminated = on_terminated

        self._batch: list[Message] = []
        self._deadline: Optional[float] = None
        self._state = WorkerState.AWAITING_ENTRY
        self._thread: Optional[threading.Thread] = None

    # Public API

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self._thread is not None:
            raise RuntimeError("BatchWorker already started")
        self._thread = self._thread_factory(self._run, self._thread_name)
        self._thread.start()
        self._log.debug("Started %s", self._thread_name)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread to exit. Returns True if it has."""
        if self._thread is None:
            return self._state is WorkerState.TERMINATED
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # Worker loop

    def _run(self):
        try:
            while self._state is not WorkerState.TERMINATED:
                self._step()
        except Exception:
            self._log.exception("Batch worker crashed; %d pending messages lost", len(self._batch))
            self._state = WorkerState.TERMINATED
        finally:
            if self._on_terminated is not None:
                self._on_terminated()

    def _step(self):
        entry = self._queue.pop(timeout=self._next_timeout())

        if entry is None:
            # Timed out: the time trigger fires only for a non-empty batch.
            if self._batch:
                self._flush("timer")
            return

        if entry is POISON:
            self._shut_down()
            return

        if entry is FLUSH:
            self._flush("flush")
            return

        self._append(entry)
        if len(self._batch) >= self._flush_queue_size:
            self._flush("size")
        elif time.monotonic() >= self._deadline:
            self._flush("timer")

    def _next_timeout(self) -> float:
        if not self._batch:
            return self._flush_interval
        return max(0.0, self._deadline - time.monotonic())

    def _append(self, message: Message):
        if not self._batch:
            self._deadline = time.monotonic() + self._flush_interval
        self._batch.append(message)
        self._state = WorkerState.ACCUMULATING

    def _flush(self, trigger: str):
        previous = self._state
        self._state = WorkerState.FLUSHING

        if not self._batch:
            self._log.debug("Flush requested (%s) with empty batch, skipping upload", trigger)
        else:
            self._upload(tuple(self._batch), trigger)
            self._batch.clear()
            self._deadline = None

        self._state = (
            WorkerState.SHUTTING_DOWN
            if previous is WorkerState.SHUTTING_DOWN
            else WorkerState.AWAITING_ENTRY
        )

    def _upload(self, batch: tuple, trigger: str):
        start = time.monotonic()
        try:
            self._uploader.upload(batch)
        except UploadFailure as exc:
            self._metrics.record_failure(len(batch), trigger)
            self._log.error("Failed to upload batch of %d messages: %s", len(batch), exc)
            return
        except Exception:
            self._metrics.record_failure(len(batch), trigger)
            self._log.exception("Unexpected error uploading batch of %d messages", len(batch))
            return

        elapsed_ms = (time.monotonic() - start) * 1000
        self._metrics.record_upload(len(batch), elapsed_ms, trigger)
        self._log.info(
            "Uploaded batch of %d messages (%s trigger, %.1f ms)", len(batch), trigger, elapsed_ms
        )

    def _shut_down(self):
        self._state = WorkerState.SHUTTING_DOWN
        self._flush("shutdown")

        discarded = [e for e in self._queue.drain() if isinstance(e, Message)]
        if discarded:
            self._metrics.record_discarded(len(discarded))
            self._log.warning("Discarded %d messages enqueued after shutdown", len(discarded))

        self._state = WorkerState.TERMINATED
        self._log.debug("%s terminated", self._thread_name)
