"""Batch uploader — hands a sealed batch to the sender on the network executor."""

import logging
import random
import time
from concurrent.futures import Executor
from typing import Optional, Protocol, Sequence

from analytics_pipeline.errors import SendError, UploadFailure
from analytics_pipeline.messages import Message
from analytics_pipeline.sender import Sender, SendResult
from analytics_pipeline.serializer import serialize_batch

logger = logging.getLogger(__name__)


class UploadCallback(Protocol):
    def on_success(self, message: Message) -> None:
        ...

    def on_failure(self, message: Message, error: Exception) -> None:
        ...


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class BatchUploader:
    """Uploads one batch at a time.

    The sender call runs on *executor* while the caller (the batch worker)
    waits for its result, so at most one upload is ever in flight.
    """

    def __init__(
        self,
        sender: Sender,
        executor: Executor,
        max_retries: int = 0,
        callbacks: Sequence[UploadCallback] = (),
        log: Optional[logging.Logger] = None,
    ):
        self._sender = sender
        self._executor = executor
        self._max_retries = max_retries
        self._callbacks = tuple(callbacks)
        self._log = log or logger
        self._sequence = 0

    def upload(self, batch: Sequence[Message]) -> None:
        """Upload *batch*. Returns on success, raises UploadFailure otherwise."""
        self._sequence += 1
        try:
            payload = serialize_batch(batch, sequence=self._sequence)
        except (TypeError, ValueError) as exc:
            failure = UploadFailure(f"Could not serialize batch: {exc}", len(batch))
            self._notify_failure(batch, failure)
            raise failure from exc

        try:
            self._send_with_retry(payload, len(batch))
        except UploadFailure as exc:
            self._notify_failure(batch, exc)
            raise

        self._log.debug("Uploaded batch #%d of %d messages", self._sequence, len(batch))
        self._notify_success(batch)

    def _send_with_retry(self, payload: bytes, batch_size: int):
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            status_code = None
            try:
                result: SendResult = self._executor.submit(self._sender.send, payload).result()
            except SendError as exc:
                error = str(exc)
            except Exception as exc:
                # Custom senders may raise anything; treat it as a transport error.
                error = f"{type(exc).__name__}: {exc}"
            else:
                if result.ok:
                    return
                status_code = result.status_code
                error = f"HTTP {result.status_code}: {result.body[:200]}"
                if not _is_retryable(result.status_code):
                    raise UploadFailure(
                        f"Upload rejected: {error}", batch_size, status_code
                    )

            if attempt < attempts - 1:
                self._log.warning(
                    "Upload failed (attempt %d/%d): %s", attempt + 1, attempts, error
                )
                time.sleep(self._backoff_delay(attempt))
            else:
                raise UploadFailure(
                    f"Upload failed after {attempts} attempt(s): {error}",
                    batch_size,
                    status_code,
                )

    @staticmethod
    def _backoff_delay(attempt: int) -> float:
        """Exponential backoff with jitter.

        Base delay doubles each attempt (0.1s, 0.2s, 0.4s, ...), capped at
        2.0 seconds, then multiplied by a random factor in [0.8, 1.2].
        """
        base = 0.1 * (2 ** attempt)
        capped = min(base, 2.0)
        jitter = random.uniform(0.8, 1.2)
        return capped * jitter

    def _notify_success(self, batch: Sequence[Message]):
        for callback in self._callbacks:
            for message in batch:
                try:
                    callback.on_success(message)
                except Exception:
                    self._log.exception("Upload callback %r failed", callback)

    def _notify_failure(self, batch: Sequence[Message], error: Exception):
        for callback in self._callbacks:
            for message in batch:
                try:
                    callback.on_failure(message, error)
                except Exception:
                    self._log.exception("Upload callback %r failed", callback)
