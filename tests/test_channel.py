"""
Unit tests for the inter-process channels and cluster environment detection.
"""
import multiprocessing
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from services.cluster_service.channel import ChannelError, PipeChannel, QueueChannel
from services.cluster_service.environment import WORKER_ID_ENV, get_worker_id, is_cluster_worker


# ── QueueChannel ────────────────────────────────────────────

class TestQueueChannel:
    def test_send_then_drain(self):
        ch = QueueChannel()
        received = []
        ch.on_message(received.append)
        ch.send({"n": 1})
        ch.send({"n": 2})
        assert received == []
        assert ch.drain() == 2
        assert received == [{"n": 1}, {"n": 2}]

    def test_every_handler_called(self):
        ch = QueueChannel()
        a, b = [], []
        ch.on_message(a.append)
        ch.on_message(b.append)
        ch.send({"n": 1})
        ch.drain()
        assert a == b == [{"n": 1}]

    def test_send_after_close(self):
        ch = QueueChannel()
        ch.close()
        with pytest.raises(ChannelError):
            ch.send({"n": 1})

    def test_channel_error_is_runtime_error(self):
        assert issubclass(ChannelError, RuntimeError)


# ── PipeChannel ─────────────────────────────────────────────

class TestPipeChannel:
    def test_round_trip(self):
        left, right = multiprocessing.Pipe()
        sender, receiver = PipeChannel(left), PipeChannel(right)
        received = []
        receiver.on_message(received.append)
        sender.send({"type": "worker-metrics", "workerId": 1})
        assert receiver.drain() == 1
        assert received == [{"type": "worker-metrics", "workerId": 1}]
        sender.close()
        receiver.close()

    def test_drain_empty(self):
        left, right = multiprocessing.Pipe()
        receiver = PipeChannel(right)
        assert receiver.drain() == 0
        left.close()
        receiver.close()

    def test_send_on_closed_connection(self):
        left, right = multiprocessing.Pipe()
        left.close()
        with pytest.raises(ChannelError):
            PipeChannel(left).send({"n": 1})
        right.close()

    def test_drain_after_peer_closed(self):
        left, right = multiprocessing.Pipe()
        sender, receiver = PipeChannel(left), PipeChannel(right)
        sender.send({"n": 1})
        sender.close()
        received = []
        receiver.on_message(received.append)
        assert receiver.drain() == 1
        assert received == [{"n": 1}]
        receiver.close()


# ── Environment detection ───────────────────────────────────

class TestEnvironment:
    def test_explicit_worker_id(self, monkeypatch):
        monkeypatch.setenv(WORKER_ID_ENV, "3")
        assert is_cluster_worker() is True
        assert get_worker_id() == 3

    def test_gunicorn(self, monkeypatch):
        monkeypatch.delenv(WORKER_ID_ENV, raising=False)
        monkeypatch.setenv("SERVER_SOFTWARE", "gunicorn/21.2.0")
        assert is_cluster_worker() is True
        assert get_worker_id() == os.getpid()

    def test_standalone(self, monkeypatch):
        monkeypatch.delenv(WORKER_ID_ENV, raising=False)
        monkeypatch.delenv("SERVER_SOFTWARE", raising=False)
        monkeypatch.setattr(multiprocessing, "parent_process", lambda: None)
        assert is_cluster_worker() is False
        assert get_worker_id() == 0
