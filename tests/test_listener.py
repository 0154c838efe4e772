import socket
import threading

import pytest

from arpc.listener import ListenerClosedError, listen


@pytest.fixture
def running():
    started = []

    def start(max_online_a, logtag=""):
        ln = listen("tcp", "127.0.0.1:0", max_online_a, logtag)
        thread = threading.Thread(target=ln.run, daemon=True)
        thread.start()
        started.append((ln, thread))
        return ln

    yield start
    for ln, thread in started:
        ln.close()
        thread.join(5)


def _connect(ln):
    return socket.create_connection(ln.addr()[:2], timeout=5)


def test_addr_and_defaults(running):
    ln = running(1)
    assert ln.addr()[0] == "127.0.0.1"
    assert ln.addr()[1] > 0
    assert ln.logtag == "[ARPC SVR]"
    a, b = ln.listeners()
    assert a.addr() == ln.addr()
    assert b.addr() == ln.addr()


def test_negative_limit_clamped(running):
    ln = running(-3, "tag")
    assert ln.max_online_a == 0
    assert ln.logtag == "tag"


def test_split_between_queues(running):
    ln = running(1)
    a, b = ln.listeners()
    first = _connect(ln)
    conn_a = a.accept()
    second = _connect(ln)
    conn_b = b.accept()
    try:
        assert conn_a.getpeername() == first.getsockname()
        assert conn_b.getpeername() == second.getsockname()
        assert ln.online_a == 1
    finally:
        for s in (first, second, conn_a, conn_b):
            s.close()


def test_offline_frees_a_slot(running):
    ln = running(1)
    a, _ = ln.listeners()
    first = _connect(ln)
    conn1 = a.accept()
    ln.offline_a()
    assert ln.online_a == 0
    second = _connect(ln)
    conn2 = a.accept()
    try:
        assert conn2.getpeername() == second.getsockname()
    finally:
        for s in (first, second, conn1, conn2):
            s.close()


def test_zero_limit_sends_all_to_b(running):
    ln = running(0)
    _, b = ln.listeners()
    client = _connect(ln)
    conn = b.accept()
    try:
        assert conn.getpeername() == client.getsockname()
        assert ln.online_a == 0
    finally:
        client.close()
        conn.close()


def test_close_stops_accepting():
    ln = listen("tcp", "127.0.0.1:0", 1)
    thread = threading.Thread(target=ln.run, daemon=True)
    thread.start()
    a, b = ln.listeners()
    ln.close()
    thread.join(5)
    assert not thread.is_alive()
    with pytest.raises(ListenerClosedError):
        a.accept()
    with pytest.raises(ListenerClosedError):
        b.accept()


def test_unknown_network():
    with pytest.raises(ValueError):
        listen("udp", "127.0.0.1:0", 1)


def test_missing_port():
    with pytest.raises(ValueError):
        listen("tcp", "127.0.0.1", 1)