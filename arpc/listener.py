"""A listener that splits accepted connections between two queues.

Up to a limit of online connections go to queue A; the rest go to queue B.
Each queue is exposed as its own listener.
"""

from __future__ import annotations

import errno
import select
import socket
import threading
import time
from collections import deque
from typing import Any, Deque, Optional, Tuple

from arpc import log

_QUEUE_CAPACITY = 4096
_DEFAULT_LOG_TAG = "[ARPC SVR]"
_FIRST_RETRY_DELAY = 0.02
_MAX_RETRY_DELAY = 1.0
_POLL_INTERVAL = 0.1

_TEMPORARY_ERRNOS = {
    code
    for code in (
        getattr(errno, name, None)
        for name in ("EAGAIN", "EWOULDBLOCK", "EINTR", "ECONNABORTED", "EMFILE",
                     "ENFILE", "ENOBUFS", "ENOMEM", "EPROTO")
    )
    if code is not None
}


class ListenerClosedError(OSError):
    """Raised when accepting from a listener that has been closed."""

    def __init__(self, message: str = "use of closed network connection"):
        super().__init__(message)


class _EventChannel:
    """A bounded, closable queue of connections."""

    def __init__(self, capacity: int):
        self._capacity = capacity
        self._items: Deque[Any] = deque()
        self._cond = threading.Condition()
        self._closed = False

    def send(self, conn: Any) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self._closed or len(self._items) < self._capacity)
            if self._closed:
                raise ListenerClosedError()
            self._items.append(conn)
            self._cond.notify_all()

    def receive(self) -> Any:
        with self._cond:
            self._cond.wait_for(lambda: self._closed or bool(self._items))
            if self._items:
                conn = self._items.popleft()
                self._cond.notify_all()
                return conn
            raise ListenerClosedError()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


def _is_temporary(exc: OSError) -> bool:
    return isinstance(exc, socket.timeout) or exc.errno in _TEMPORARY_ERRNOS


class ChanListener:
    """A listener fed by one of the queues of a Listener."""

    def __init__(self, address: Any, channel: _EventChannel):
        self._address = address
        self._channel = channel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def accept(self) -> Any:
        """Wait for the next connection; raise ListenerClosedError once closed and drained."""
        if self._closed:
            raise ListenerClosedError()
        return self._channel.receive()

    def close(self) -> None:
        """Stop this view from accepting; the shared queue is closed by the owning Listener."""
        self._closed = True

    def addr(self) -> Any:
        return self._address


class Listener:
    """Accepts connections and hands them to queue A or queue B."""

    def __init__(self, sock: Optional[socket.socket], max_online_a: int, logtag: str):
        self.logtag = logtag
        self.max_online_a = max_online_a
        self._sock = sock
        self._online_a = 0
        self._online_lock = threading.Lock()
        self._closed = False
        self._events_a = _EventChannel(_QUEUE_CAPACITY)
        self._events_b = _EventChannel(_QUEUE_CAPACITY)

    @property
    def online_a(self) -> int:
        return self._online_a

    def accept(self) -> socket.socket:
        """Accept one connection from the underlying socket."""
        if self._sock is None:
            raise ListenerClosedError()
        conn, _ = self._sock.accept()
        return conn

    def close(self) -> None:
        """Close both queues and the underlying socket."""
        if self._sock is None:
            return
        self._closed = True
        self._events_a.close()
        self._events_b.close()
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()

    def addr(self) -> Any:
        """The address the listener is bound to, or None."""
        if self._sock is None:
            return None
        try:
            return self._sock.getsockname()
        except OSError:
            return None

    def listeners(self) -> Tuple[ChanListener, ChanListener]:
        """The listeners for queue A and queue B."""
        address = self.addr()
        return ChanListener(address, self._events_a), ChanListener(address, self._events_b)

    def offline_a(self) -> None:
        """Record that a connection handed to queue A has gone away."""
        with self._online_lock:
            self._online_a -= 1

    def _wait_readable(self) -> bool:
        try:
            ready, _, _ = select.select([self._sock], [], [], _POLL_INTERVAL)
        except (OSError, ValueError):
            return True
        return bool(ready)

    def _dispatch(self, conn: socket.socket) -> None:
        with self._online_lock:
            self._online_a += 1
            to_a = self._online_a <= self.max_online_a
            if not to_a:
                self._online_a -= 1
        channel = self._events_a if to_a else self._events_b
        try:
            channel.send(conn)
        except ListenerClosedError:
            conn.close()

    def run(self) -> None:
        """Accept connections until the listener is closed or a fatal error occurs."""
        delay = 0.0
        while not self._closed:
            if not self._wait_readable():
                continue
            try:
                conn = self.accept()
            except OSError as exc:
                if self._closed:
                    return
                if _is_temporary(exc):
                    log.error("%s Accept error: %s; retrying...", self.logtag, exc)
                    delay = _FIRST_RETRY_DELAY if delay == 0 else delay * 2
                    delay = min(delay, _MAX_RETRY_DELAY)
                    time.sleep(delay)
                    continue
                log.error("%s Accept error: %s", self.logtag, exc)
                return
            self._dispatch(conn)
            delay = 0.0


def _split_host_port(addr: str) -> Tuple[str, int]:
    if addr.startswith("["):
        host, _, rest = addr[1:].partition("]")
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address {addr!r}")
        port = rest[1:]
    else:
        host, sep, port = addr.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {addr!r}")
    return host, int(port) if port else 0


def listen(network: str, addr: str, max_online_a: int, logtag: str = "") -> Listener:
    """Bind a listening socket and wrap it in a Listener."""
    if network == "unix":
        family = getattr(socket, "AF_UNIX", None)
        if family is None:
            raise ValueError("unix sockets are not supported on this platform")
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.bind(addr)
            sock.listen()
        except OSError:
            sock.close()
            raise
    elif network in ("tcp", "tcp4", "tcp6"):
        host, port = _split_host_port(addr)
        if network == "tcp4":
            family = socket.AF_INET
        elif network == "tcp6" or ":" in host:
            family = socket.AF_INET6
        else:
            family = socket.AF_INET
        sock = socket.create_server((host, port), family=family)
    else:
        raise ValueError(f"unknown network {network!r}")
    return Listener(sock, max(max_online_a, 0), logtag or _DEFAULT_LOG_TAG)