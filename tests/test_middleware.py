import io
import threading
from types import SimpleNamespace

import pytest

from arpc import log
from arpc.log import Level, Logger
from arpc.middleware import Graceful, ShutdownError, logger, recover
from arpc.proto import CMD_REQUEST, CMD_RESPONSE, new_message


class FakeContext:
    def __init__(self, cmd=CMD_REQUEST, on_next=None):
        self.message = new_message(cmd, "hello", "x", False, False, 0, None, None, None)
        self.client = SimpleNamespace(conn=None)
        self.next_calls = 0
        self.errors = []
        self.done_calls = 0
        self._on_next = on_next

    def next(self):
        self.next_calls += 1
        if self._on_next is not None:
            self._on_next()

    def error(self, err):
        self.errors.append(err)

    def done(self):
        self.done_calls += 1


@pytest.fixture
def captured():
    out = io.StringIO()
    previous = log.set_logger(Logger(Level.ALL, output=out))
    yield out
    log.set_logger(previous)


def test_graceful_passes_through():
    graceful = Graceful()
    ctx = FakeContext()
    graceful.handler()(ctx)
    assert ctx.next_calls == 1
    assert ctx.errors == []


def test_graceful_rejects_after_shutdown():
    graceful = Graceful()
    graceful.shutdown()
    ctx = FakeContext()
    graceful.handler()(ctx)
    assert ctx.next_calls == 0
    assert len(ctx.errors) == 1
    assert isinstance(ctx.errors[0], ShutdownError)
    assert str(ctx.errors[0]) == "shutting down"


def test_graceful_waits_for_inflight():
    graceful = Graceful()
    started = threading.Event()
    release = threading.Event()

    def block():
        started.set()
        release.wait(5)

    inflight = FakeContext(on_next=block)
    worker = threading.Thread(target=graceful.handler(), args=(inflight,))
    worker.start()
    assert started.wait(5)

    finished = threading.Event()
    stopper = threading.Thread(target=lambda: (graceful.shutdown(), finished.set()))
    stopper.start()
    assert not finished.wait(0.3)
    release.set()
    stopper.join(5)
    worker.join(5)
    assert finished.is_set()
    assert inflight.next_calls == 1
    assert inflight.errors == []

    late = FakeContext()
    graceful.handler()(late)
    assert late.next_calls == 0
    assert [str(err) for err in late.errors] == ["shutting down"]


def test_logger_logs_request(captured):
    ctx = FakeContext()
    logger()(ctx)
    assert ctx.next_calls == 1
    text = captured.getvalue()
    assert "'hello'" in text
    assert "ms cost" in text
    assert ctx.done_calls == 0


def test_logger_drops_invalid_cmd(captured):
    ctx = FakeContext(cmd=CMD_RESPONSE)
    logger()(ctx)
    assert ctx.done_calls == 1
    assert "invalid cmd: 2" in captured.getvalue()


def test_recover_swallows_exception(captured):
    def boom():
        raise RuntimeError("kaboom")

    ctx = FakeContext(on_next=boom)
    recover()(ctx)
    assert ctx.next_calls == 1
    assert "kaboom" in captured.getvalue()