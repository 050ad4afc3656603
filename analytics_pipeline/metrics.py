"""Metrics collector — thread-safe counters and latency stats for the pipeline."""

import threading
import time


class PipelineMetrics:
    """Collects counters about enqueued, suppressed and uploaded messages."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages_enqueued: int = 0
        self._messages_suppressed: int = 0
        self._messages_discarded: int = 0
        self._batches_uploaded: int = 0
        self._messages_uploaded: int = 0
        self._batches_failed: int = 0
        self._messages_failed: int = 0
        self._batch_sizes: list[int] = []
        self._upload_times: list[float] = []
        self._flush_triggers: dict = {"size": 0, "timer": 0, "flush": 0, "shutdown": 0}
        self._start_time = time.monotonic()

    def record_enqueued(self) -> None:
        with self._lock:
            self._messages_enqueued += 1

    def record_suppressed(self) -> None:
        with self._lock:
            self._messages_suppressed += 1

    def record_discarded(self, count: int) -> None:
        with self._lock:
            self._messages_discarded += count

    def record_upload(self, batch_size: int, upload_time_ms: float, trigger: str) -> None:
        """Record a successful batch upload.

        Args:
            batch_size: Number of messages in the batch.
            upload_time_ms: Time taken by the upload, in milliseconds.
            trigger: What caused the flush — "size", "timer", "flush" or "shutdown".
        """
        with self._lock:
            self._batches_uploaded += 1
            self._messages_uploaded += batch_size
            self._batch_sizes.append(batch_size)
            self._upload_times.append(upload_time_ms)
            self._flush_triggers[trigger] = self._flush_triggers.get(trigger, 0) + 1

    def record_failure(self, batch_size: int, trigger: str) -> None:
        with self._lock:
            self._batches_failed += 1
            self._messages_failed += batch_size
            self._flush_triggers[trigger] = self._flush_triggers.get(trigger, 0) + 1

    def snapshot(self) -> dict:
        """Return a point-in-time snapshot of all collected metrics."""
        with self._lock:
            batch_sizes = list(self._batch_sizes)
            upload_times = list(self._upload_times)

            return {
                "messages_enqueued": self._messages_enqueued,
                "messages_suppressed": self._messages_suppressed,
                "messages_discarded": self._messages_discarded,
                "batches_uploaded": self._batches_uploaded,
                "messages_uploaded": self._messages_uploaded,
                "batches_failed": self._batches_failed,
                "messages_failed": self._messages_failed,
                "avg_batch_size": (
                    sum(batch_sizes) / len(batch_sizes) if batch_sizes else 0.0
                ),
                "p50_upload_time_ms": self._percentile(upload_times, 50),
                "p95_upload_time_ms": self._percentile(upload_times, 95),
                "flush_triggers": dict(self._flush_triggers),
                "uptime_seconds": time.monotonic() - self._start_time,
            }

    @staticmethod
    def _percentile(data: list, pct: float) -> float:
        """Interpolated percentile of *data*; 0.0 when empty."""
        if not data:
            return 0.0

        sorted_data = sorted(data)
        n = len(sorted_data)

        if n == 1:
            return float(sorted_data[0])

        idx = (pct / 100) * (n - 1)
        lower = int(idx)
        upper = lower + 1
        fraction = idx - lower

        if upper >= n:
            return float(sorted_data[-1])

        return float(sorted_data[lower] + fraction * (sorted_data[upper] - sorted_data[lower]))
