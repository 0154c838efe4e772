"""Connection and message handler: settings, lifecycle hooks, routing and buffers."""

from __future__ import annotations

import io
import socket
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from arpc.proto import DEFAULT_MAX_BODY_LEN, Message, MessageCoder, new_message
from arpc.routing import HandlerFunc, Router, RouterHandler
from arpc.util import Codec, safe

ClientCallback = Callable[[Any], None]
MessageCallback = Callable[[Any, Message], None]

_POOL_MAX_PER_SIZE = 64


class _BufferPool:
    """Reuses freed buffers of the same size."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._free: Dict[int, List[bytearray]] = defaultdict(list)

    def malloc(self, size: int) -> bytearray:
        with self._lock:
            bucket = self._free.get(size)
            if bucket:
                return bucket.pop()
        return bytearray(size)

    def free(self, buffer: bytearray) -> None:
        if not isinstance(buffer, bytearray) or not buffer:
            return
        with self._lock:
            bucket = self._free[len(buffer)]
            if len(bucket) < _POOL_MAX_PER_SIZE:
                bucket.append(buffer)


_DEFAULT_POOL = _BufferPool()


def _plain_malloc(size: int) -> bytearray:
    return bytearray(size)


def _no_free(buffer: bytearray) -> None:
    return None


def _buffered_reader(conn: Any, size: int) -> Any:
    if isinstance(conn, socket.socket):
        return conn.makefile("rb", buffering=size)
    return io.BufferedReader(conn, buffer_size=max(size, 1))


class Handler:
    """Holds connection settings, event hooks, routes and message coders."""

    def __init__(self) -> None:
        self.log_tag = "[ARPC CLI]"
        self.batch_recv = True
        self.batch_send = True
        self.async_write = True
        self.recv_buffer_size = 8192
        self.send_buffer_size = 0
        self.read_timeout = 0.0
        self.write_timeout = 0.0
        self.send_queue_size = 4096
        self.max_body_len = DEFAULT_MAX_BODY_LEN
        self.max_reconnect_times = 0

        self.before_recv: Optional[Callable[[Any], None]] = None
        self.before_send: Optional[Callable[[Any], None]] = None
        self.reader_wrapper: Optional[Callable[[Any], Any]] = (
            lambda conn: _buffered_reader(conn, self.recv_buffer_size)
        )
        self.executor: Optional[Callable[[Callable[[], None]], None]] = None
        self.malloc_hook: Optional[Callable[[int], bytearray]] = None
        self.free_hook: Optional[Callable[[bytearray], None]] = None

        self._on_connected: Optional[ClientCallback] = None
        self._on_disconnected: Optional[ClientCallback] = None
        self._on_overstock: Optional[MessageCallback] = None
        self._on_message_done: Optional[MessageCallback] = None
        self._on_message_dropped: Optional[MessageCallback] = None
        self._on_session_miss: Optional[MessageCallback] = None
        self._on_context_done: Optional[Callable[[Any], None]] = None

        self._router = Router(async_response=True)
        self.coders: List[MessageCoder] = []
        self.done = threading.Event()

    @property
    def async_response(self) -> bool:
        """Default for whether method handlers run asynchronously."""
        return self._router.async_response

    @async_response.setter
    def async_response(self, value: bool) -> None:
        self._router.async_response = bool(value)

    def clone(self) -> "Handler":
        """An independent copy with its own routes, coders and done event."""
        copy = Handler.__new__(Handler)
        copy.__dict__.update(self.__dict__)
        copy._router = self._router.clone()
        copy.coders = list(self.coders)
        copy.done = threading.Event()
        if getattr(self.reader_wrapper, "__name__", "") == "<lambda>" and \
                self.reader_wrapper is self.__dict__.get("reader_wrapper"):
            copy.reader_wrapper = lambda conn: _buffered_reader(conn, copy.recv_buffer_size)
        return copy

    def handle_connected(self, callback: Optional[ClientCallback]) -> None:
        """Add a callback run after those already registered when a client connects."""
        if callback is None:
            return
        previous = self._on_connected

        def chained(client: Any) -> None:
            if previous is not None:
                previous(client)
            callback(client)

        self._on_connected = chained

    def on_connected(self, client: Any) -> None:
        if self._on_connected is not None:
            self._on_connected(client)

    def handle_disconnected(self, callback: Optional[ClientCallback]) -> None:
        """Add a callback run after those already registered when a client disconnects."""
        if callback is None:
            return
        previous = self._on_disconnected

        def chained(client: Any) -> None:
            if previous is not None:
                previous(client)
            callback(client)

        self._on_disconnected = chained

    def on_disconnected(self, client: Any) -> None:
        if self._on_disconnected is not None:
            self._on_disconnected(client)

    def handle_overstock(self, callback: Optional[MessageCallback]) -> None:
        """Set the callback for a message that does not fit the send queue."""
        self._on_overstock = callback

    def on_overstock(self, client: Any, message: Optional[Message]) -> None:
        if self._on_overstock is not None:
            self._on_overstock(client, message)
            self.on_message_done(client, message)

    def handle_message_done(self, callback: Optional[MessageCallback]) -> None:
        """Set the callback run when the handler is finished with a message."""
        self._on_message_done = callback

    def on_message_done(self, client: Any, message: Optional[Message]) -> None:
        if self._on_message_done is not None and message is not None:
            self._on_message_done(client, message)

    def handle_message_dropped(self, callback: Optional[MessageCallback]) -> None:
        """Set the callback for a message that was dropped."""
        self._on_message_dropped = callback

    def on_message_dropped(self, client: Any, message: Optional[Message]) -> None:
        if self._on_message_dropped is not None:
            self._on_message_dropped(client, message)
            self.on_message_done(client, message)

    def handle_session_miss(self, callback: Optional[MessageCallback]) -> None:
        """Set the callback for a response whose sequence number has no session."""
        self._on_session_miss = callback

    def on_session_miss(self, client: Any, message: Optional[Message]) -> None:
        if self._on_session_miss is not None:
            self._on_session_miss(client, message)
            self.on_message_done(client, message)

    def handle_context_done(self, callback: Optional[Callable[[Any], None]]) -> None:
        """Set the callback run once a request context has been handled."""
        self._on_context_done = callback

    def on_context_done(self, ctx: Any) -> None:
        if self._on_context_done is not None:
            self._on_context_done(ctx)

    def wrap_reader(self, conn: Any) -> Any:
        """The reader used to receive from conn; conn itself without a wrapper."""
        if self.reader_wrapper is not None:
            return self.reader_wrapper(conn)
        return conn

    def use(self, middleware: Optional[HandlerFunc]) -> None:
        """Register middleware run for every method."""
        self._router.use(middleware)

    def use_coder(self, coder: Optional[MessageCoder]) -> None:
        """Register a message coder; None is ignored."""
        if coder is not None:
            self.coders.append(coder)

    def handle(self, method: str, callback: HandlerFunc,
               is_async: Optional[bool] = None) -> None:
        """Register the handler for a method."""
        self._router.handle(method, callback, is_async)

    def handle_not_found(self, callback: HandlerFunc) -> None:
        """Register the handler run for unknown methods."""
        self._router.handle_not_found(callback)

    def route(self, method: str) -> Optional[RouterHandler]:
        """The handler chain for a method, or None."""
        return self._router.route(method)

    def malloc(self, size: int) -> bytearray:
        """A buffer of the given size."""
        if self.malloc_hook is not None:
            return self.malloc_hook(size)
        return bytearray(size)

    def free(self, buffer: bytearray) -> None:
        """Give a buffer back to the allocator."""
        if self.free_hook is not None:
            self.free_hook(buffer)

    def enable_pool(self, enable: bool) -> None:
        """Switch pooled buffers and releasing of contexts and messages on or off."""
        if enable:
            self.malloc_hook = _DEFAULT_POOL.malloc
            self.free_hook = _DEFAULT_POOL.free
            self.handle_context_done(lambda ctx: ctx.release())
            self.handle_message_done(lambda client, message: message.release())
        else:
            self.malloc_hook = _plain_malloc
            self.free_hook = _no_free
            self.handle_context_done(lambda ctx: None)
            self.handle_message_done(lambda client, message: None)

    def new_message(self, cmd: int, method: str, value: Any, seq: int,
                    codec: Optional[Codec] = None,
                    values: Optional[dict] = None) -> Message:
        """Build a message whose buffer comes from this handler."""
        return new_message(cmd, method, value, False, False, seq, self, codec, values)

    def new_message_with_buffer(self, buffer: bytes) -> Message:
        """Wrap an already framed buffer in a message owned by this handler."""
        if not isinstance(buffer, bytearray):
            buffer = bytearray(buffer)
        return Message(buffer=buffer, handler=self)

    def async_execute(self, func: Callable[[], None]) -> None:
        """Run func through the executor, or in a new daemon thread."""
        if self.executor is not None:
            self.executor(func)
        else:
            threading.Thread(target=safe, args=(func,), daemon=True).start()


_default_handler = Handler()


def default_handler() -> Handler:
    """The process-wide default handler."""
    return _default_handler


def set_handler(handler: Handler) -> Handler:
    """Install a new default handler and return the previous one."""
    global _default_handler
    previous = _default_handler
    _default_handler = handler
    return previous