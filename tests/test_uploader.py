"""Tests for BatchUploader: failure mapping, retry policy and callbacks."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from analytics_pipeline import uploader as uploader_module
from analytics_pipeline.errors import SendError, UploadFailure
from analytics_pipeline.messages import identify, track
from analytics_pipeline.serializer import deserialize_batch
from analytics_pipeline.uploader import BatchUploader


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(uploader_module.time, "sleep", lambda _: None)


def _batch():
    return (identify("user-1"), track("user-1", event="A"))


class TestUpload:
    def test_success(self, sender, executor):
        BatchUploader(sender, executor).upload(_batch())

        assert sender.call_count == 1
        envelope = deserialize_batch(sender.payloads[0])
        assert [m["type"] for m in envelope["batch"]] == ["identify", "track"]
        assert envelope["sequence"] == 1

    def test_sequence_increments(self, sender, executor):
        uploader = BatchUploader(sender, executor)
        uploader.upload(_batch())
        uploader.upload(_batch())
        assert [deserialize_batch(p)["sequence"] for p in sender.payloads] == [1, 2]

    def test_runs_sender_on_executor(self, sender):
        executor = MagicMock()
        future = MagicMock()
        future.result.return_value = sender.send(b"{}")
        executor.submit.return_value = future

        BatchUploader(sender, executor).upload(_batch())

        executor.submit.assert_called_once()
        fn, payload = executor.submit.call_args.args
        assert fn == sender.send
        assert isinstance(payload, bytes)

    def test_http_error_raises_upload_failure(self, make_sender, executor):
        sender = make_sender(responses=[400])
        with pytest.raises(UploadFailure) as exc_info:
            BatchUploader(sender, executor).upload(_batch())
        assert exc_info.value.status_code == 400
        assert exc_info.value.batch_size == 2

    def test_transport_error_raises_upload_failure(self, make_sender, executor):
        sender = make_sender(responses=[SendError("connection refused")])
        with pytest.raises(UploadFailure) as exc_info:
            BatchUploader(sender, executor).upload(_batch())
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value, UploadFailure)

    def test_arbitrary_sender_exception_raises_upload_failure(self, make_sender, executor):
        sender = make_sender(responses=[RuntimeError("socket closed")])
        with pytest.raises(UploadFailure):
            BatchUploader(sender, executor).upload(_batch())

    def test_no_retry_by_default(self, make_sender, executor):
        sender = make_sender(responses=[503, 200])
        with pytest.raises(UploadFailure):
            BatchUploader(sender, executor).upload(_batch())
        assert sender.call_count == 1

    def test_datetime_property_is_uploaded(self, sender, executor):
        message = track("user-1", event="Ordered", properties={"at": datetime(2024, 1, 1)})
        BatchUploader(sender, executor).upload((message,))

        assert sender.batches[0][0]["properties"]["at"] == "2024-01-01T00:00:00"

    def test_unserializable_batch_raises_upload_failure(self, sender, executor):
        cyclic = {}
        cyclic["self"] = cyclic
        batch = (track("user-1", event="A"), track("user-1", event="B", properties=cyclic))
        callback = MagicMock()

        with pytest.raises(UploadFailure) as exc_info:
            BatchUploader(sender, executor, callbacks=[callback]).upload(batch)

        assert exc_info.value.batch_size == 2
        assert sender.call_count == 0
        assert [c.args[0] for c in callback.on_failure.call_args_list] == list(batch)


class TestRetry:
    def test_retries_server_errors(self, make_sender, executor):
        sender = make_sender(responses=[503, 429, 200])
        BatchUploader(sender, executor, max_retries=2).upload(_batch())
        assert sender.call_count == 3

    def test_retries_transport_errors(self, make_sender, executor):
        sender = make_sender(responses=[SendError("timeout"), 200])
        BatchUploader(sender, executor, max_retries=1).upload(_batch())
        assert sender.call_count == 2

    def test_gives_up_after_max_retries(self, make_sender, executor):
        sender = make_sender(responses=[500, 500, 500])
        with pytest.raises(UploadFailure) as exc_info:
            BatchUploader(sender, executor, max_retries=2).upload(_batch())
        assert sender.call_count == 3
        assert exc_info.value.status_code == 500

    def test_client_errors_not_retried(self, make_sender, executor):
        sender = make_sender(responses=[401, 200])
        with pytest.raises(UploadFailure):
            BatchUploader(sender, executor, max_retries=3).upload(_batch())
        assert sender.call_count == 1

    def test_retry_sends_same_payload(self, make_sender, executor):
        sender = make_sender(responses=[500, 200])
        BatchUploader(sender, executor, max_retries=1).upload(_batch())
        assert sender.payloads[0] == sender.payloads[1]


class TestBackoffDelay:
    def test_backoff_delay_calculation(self):
        """Delay grows exponentially: 0.1, 0.2, 0.4, 0.8 (before jitter)."""
        for attempt, expected_base in enumerate([0.1, 0.2, 0.4, 0.8]):
            delay = BatchUploader._backoff_delay(attempt)
            assert expected_base * 0.8 <= delay <= expected_base * 1.2

    def test_max_delay_cap(self):
        for _ in range(50):
            assert BatchUploader._backoff_delay(10) <= 2.0 * 1.2


class TestCallbacks:
    def test_success_callback_per_message(self, sender, executor):
        callback = MagicMock()
        batch = _batch()
        BatchUploader(sender, executor, callbacks=[callback]).upload(batch)

        assert [c.args[0] for c in callback.on_success.call_args_list] == list(batch)
        callback.on_failure.assert_not_called()

    def test_failure_callback_per_message(self, make_sender, executor):
        sender = make_sender(responses=[500])
        callback = MagicMock()
        batch = _batch()
        with pytest.raises(UploadFailure):
            BatchUploader(sender, executor, callbacks=[callback]).upload(batch)

        assert callback.on_failure.call_count == 2
        message, error = callback.on_failure.call_args_list[0].args
        assert message is batch[0]
        assert isinstance(error, UploadFailure)
        callback.on_success.assert_not_called()

    def test_failing_callback_does_not_break_upload(self, sender, executor):
        broken = MagicMock()
        broken.on_success.side_effect = RuntimeError("callback bug")
        healthy = MagicMock()

        BatchUploader(sender, executor, callbacks=[broken, healthy]).upload(_batch())

        assert healthy.on_success.call_count == 2
