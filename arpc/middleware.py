"""Router middleware: graceful shutdown, request logging and panic recovery."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from arpc import log
from arpc.proto import CMD_NOTIFY, CMD_REQUEST
from arpc.util import safe

HandlerFunc = Callable[[Any], None]


class ShutdownError(Exception):
    """Reported to callers whose requests arrive while shutting down."""

    def __init__(self, message: str = "shutting down"):
        super().__init__(message)


class Graceful:
    """Tracks in-flight requests so that shutdown can wait for them."""

    def __init__(self) -> None:
        self.is_shutdown = False
        self._active = 0
        self._cond = threading.Condition()

    def handler(self) -> HandlerFunc:
        """Middleware that refuses new requests once shutdown has begun."""

        def graceful(ctx: Any) -> None:
            if self.is_shutdown:
                ctx.error(ShutdownError())
                return
            with self._cond:
                self._active += 1
            try:
                ctx.next()
            finally:
                with self._cond:
                    self._active -= 1
                    if self._active == 0:
                        self._cond.notify_all()

        return graceful

    def shutdown(self) -> None:
        """Stop taking new requests and wait for the current ones to finish."""
        self.is_shutdown = True
        with self._cond:
            self._cond.wait_for(lambda: self._active == 0)
        time.sleep(0.1)


def _remote_addr(client: Any) -> Any:
    conn = getattr(client, "conn", None)
    try:
        return conn.getpeername()
    except (AttributeError, OSError):
        return None


def logger() -> HandlerFunc:
    """Middleware that logs each request's method, peer and duration."""

    def log_request(ctx: Any) -> None:
        started = time.monotonic()
        ctx.next()
        cmd = ctx.message.cmd
        method = ctx.message.method
        addr = _remote_addr(ctx.client)
        cost = int((time.monotonic() - started) * 1000)
        if cmd in (CMD_REQUEST, CMD_NOTIFY):
            log.info("'%s',\t%s,\t%s ms cost", method, addr, cost)
        else:
            log.error("invalid cmd: %d,\tdropped", cmd)
            ctx.done()

    return log_request


def recover() -> HandlerFunc:
    """Middleware that logs and swallows exceptions raised further down the chain."""

    def recovering(ctx: Any) -> None:
        safe(ctx.next)

    return recovering