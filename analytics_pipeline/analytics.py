"""Analytics facade — the public entry point wiring interceptors, queue,
worker and uploader together."""

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Iterable, Optional, Sequence

from analytics_pipeline.batch_worker import BatchWorker, ThreadFactory, WorkerState
from analytics_pipeline.config import AnalyticsConfig
from analytics_pipeline.errors import ClientShutdownError, InvalidArgumentError
from analytics_pipeline.interceptors import Interceptor, InterceptorChain
from analytics_pipeline.message_queue import FLUSH, POISON, MessageQueue
from analytics_pipeline.messages import Message
from analytics_pipeline.metrics import PipelineMetrics
from analytics_pipeline.sender import HttpSender, Sender
from analytics_pipeline.uploader import BatchUploader, UploadCallback

logger = logging.getLogger(__name__)


class Analytics:
    """Batches analytics messages and uploads them in the background.

    ``enqueue``, ``flush`` and ``shutdown`` only ever push onto the shared
    queue, so they never block on the network and their relative order is
    preserved. After ``shutdown``, or once the worker has died, further
    ``enqueue``/``flush`` calls raise ClientShutdownError.

    Collaborators left as None get explicit defaults: an HttpSender built
    from *config*, a ThreadPoolExecutor owned (and shut down) by this
    instance, a daemon worker thread and the module logger.
    """

    def __init__(
        self,
        config: AnalyticsConfig,
        sender: Optional[Sender] = None,
        interceptors: Iterable[Interceptor] = (),
        executor: Optional[Executor] = None,
        thread_factory: Optional[ThreadFactory] = None,
        log: Optional[logging.Logger] = None,
        callbacks: Sequence[UploadCallback] = (),
    ):
        if config is None:
            raise InvalidArgumentError("Null config")
        self._config = config
        self._log = log or logger
        self._chain = InterceptorChain(interceptors)
        self._metrics = PipelineMetrics()
        self._queue = MessageQueue()
        self._lock = threading.Lock()
        self._shut_down = False

        self._owns_sender = sender is None
        self._sender = sender if sender is not None else HttpSender(
            config.write_key, config.endpoint, timeout=config.request_timeout
        )
        self._owns_executor = executor is None
        self._executor = executor if executor is not None else ThreadPoolExecutor(
            max_workers=config.network_workers,
            thread_name_prefix=f"{config.thread_name}-network",
        )

        uploader = BatchUploader(
            self._sender,
            self._executor,
            max_retries=config.max_retries,
            callbacks=callbacks,
            log=self._log,
        )
        self._worker = BatchWorker(
            self._queue,
            uploader,
            flush_queue_size=config.flush_queue_size,
            flush_interval=config.flush_interval,
            metrics=self._metrics,
            thread_factory=thread_factory,
            thread_name=config.thread_name,
            log=self._log,
            on_terminated=self._release_resources,
        )

        self._chain.freeze()
        try:
            self._worker.start()
        except Exception:
            self._release_resources()
            raise
        self._log.info(
            "Analytics started: endpoint=%s, flush_queue_size=%d, flush_interval=%.1fs",
            config.endpoint, config.flush_queue_size, config.flush_interval,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, message: Message):
        """Run *message* through the interceptors and queue it for upload."""
        if not isinstance(message, Message):
            raise InvalidArgumentError(f"Expected Message, got {type(message).__name__}")
        self._ensure_running()

        result = self._chain.run(message)
        if result is None:
            self._metrics.record_suppressed()
            self._log.debug("Message %s suppressed by interceptor", message.message_id)
            return

        with self._lock:
            self._ensure_running()
            self._queue.push(result)
        self._metrics.record_enqueued()

    def flush(self):
        """Ask the worker to upload whatever has accumulated. Does not wait."""
        with self._lock:
            self._ensure_running()
            self._queue.push(FLUSH)

    def shutdown(self):
        """Stop accepting messages; the worker uploads its final batch and exits."""
        with self._lock:
            if self._shut_down:
                self._log.debug("shutdown() called more than once")
                return
            self._shut_down = True
            self._queue.push(POISON)
        self._log.info("Analytics shutting down")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker to terminate after shutdown(). Returns True
        if it has terminated."""
        return self._worker.join(timeout)

    @property
    def is_shutdown(self) -> bool:
        return self._shut_down

    @property
    def pending_count(self) -> int:
        """Entries queued but not yet picked up by the worker."""
        return self._queue.qsize()

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    @property
    def config(self) -> AnalyticsConfig:
        return self._config

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_running(self):
        if self._shut_down:
            raise ClientShutdownError("Analytics has been shut down")
        if self._worker.state is WorkerState.TERMINATED:
            raise ClientShutdownError("Analytics worker is no longer running")

    def _release_resources(self):
        """Runs on the worker thread once it terminates, or directly if the
        worker could not be started."""
        if self._owns_executor:
            self._executor.shutdown(wait=False)
        if self._owns_sender:
            self._sender.close()
