"""Tests for the shared message queue."""

import threading
import time

from analytics_pipeline.message_queue import FLUSH, POISON, MessageQueue


class TestMessageQueue:
    def test_fifo_across_data_and_control(self):
        q = MessageQueue()
        for entry in ("a", FLUSH, "b", POISON):
            q.push(entry)

        assert [q.pop(timeout=0.1) for _ in range(4)] == ["a", FLUSH, "b", POISON]

    def test_pop_timeout_returns_none(self):
        q = MessageQueue()
        start = time.monotonic()
        assert q.pop(timeout=0.2) is None
        assert time.monotonic() - start >= 0.15

    def test_pop_wakes_on_push(self):
        q = MessageQueue()
        threading.Timer(0.1, q.push, args=("late",)).start()
        assert q.pop(timeout=5.0) == "late"

    def test_push_never_blocks(self):
        q = MessageQueue()
        for i in range(10_000):
            q.push(i)
        assert q.qsize() == 10_000

    def test_concurrent_producers(self):
        q = MessageQueue()

        def produce(prefix):
            for i in range(500):
                q.push((prefix, i))

        threads = [threading.Thread(target=produce, args=(p,)) for p in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = q.drain()
        assert len(entries) == 2000
        # Per-producer order is preserved
        for p in range(4):
            assert [i for prefix, i in entries if prefix == p] == list(range(500))

    def test_drain_empties_queue(self):
        q = MessageQueue()
        q.push(1)
        q.push(2)
        assert q.drain() == [1, 2]
        assert q.qsize() == 0
        assert q.drain() == []

    def test_control_tokens_repr(self):
        assert repr(FLUSH) == "FLUSH"
        assert repr(POISON) == "POISON"
