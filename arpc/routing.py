"""Method routing: middleware chains and per-method handler lists."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from arpc.proto import MAX_METHOD_LEN

HandlerFunc = Callable[[Any], None]


class MethodNotFoundError(LookupError):
    """Reported to the caller when no handler exists for a method."""

    def __init__(self, message: str = "method not found"):
        super().__init__(message)


@dataclass(frozen=True)
class RouterHandler:
    """The chain of functions run for one method, and whether it runs asynchronously."""

    is_async: bool
    handlers: Tuple[HandlerFunc, ...]


def _chained(callback: HandlerFunc) -> HandlerFunc:
    def step(ctx: Any) -> None:
        callback(ctx)
        ctx.next()

    return step


def _not_found(ctx: Any) -> None:
    ctx.error(MethodNotFoundError())
    ctx.next()


class Router:
    """Keeps middleware and method handlers in registration order.

    Each registered function is wrapped so that it advances the context to the
    next function in the chain once it returns.
    """

    def __init__(self, async_response: bool = True):
        self.async_response = async_response
        self._middlewares: List[HandlerFunc] = []
        self._routes: Dict[str, RouterHandler] = {}

    def __contains__(self, method: str) -> bool:
        return method in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    @property
    def methods(self) -> List[str]:
        """Registered method names, including "" once a not-found route exists."""
        return list(self._routes)

    def clone(self) -> "Router":
        """An independent copy with the same middleware and routes."""
        copy = Router(self.async_response)
        copy._middlewares = list(self._middlewares)
        copy._routes = dict(self._routes)
        return copy

    def use(self, middleware: Optional[HandlerFunc]) -> None:
        """Add middleware to every future route and to the end of every existing one."""
        if middleware is None:
            return
        step = _chained(middleware)
        self._middlewares.append(step)
        self._routes = {
            method: RouterHandler(rh.is_async, rh.handlers + (step,))
            for method, rh in self._routes.items()
        }

    def handle(self, method: str, callback: HandlerFunc,
               is_async: Optional[bool] = None) -> None:
        """Register the handler for a method.

        The empty method is reserved for the not-found handler; a method may be
        registered only once. When is_async is None the router default applies.
        """
        if method == "":
            raise ValueError(
                "empty('') method is reserved for [method not found], "
                "should use handle_not_found to register '' handler"
            )
        self._register(method, callback, is_async)

    def handle_not_found(self, callback: HandlerFunc) -> None:
        """Register the handler run when a method has no route."""
        self._register("", callback, None)

    def route(self, method: str) -> Optional[RouterHandler]:
        """The chain registered for exactly this method, or None."""
        return self._routes.get(method)

    def _register(self, method: str, callback: HandlerFunc,
                  is_async: Optional[bool]) -> None:
        if not callable(callback):
            raise TypeError("handler callback must be callable")
        length = len(method.encode())
        if length > MAX_METHOD_LEN:
            raise ValueError(
                f"invalid method length {length}(> MaxMethodLen {MAX_METHOD_LEN})"
            )

        if "" not in self._routes:
            self._routes[""] = RouterHandler(
                False, tuple(self._middlewares) + (_not_found,)
            )

        if method != "" and method in self._routes:
            raise ValueError(f"handler exist for method {method} ")

        run_async = self.async_response if is_async is None else bool(is_async)
        self._routes[method] = RouterHandler(
            run_async, tuple(self._middlewares) + (_chained(callback),)
        )