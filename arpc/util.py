"""Codec and helpers for turning values into wire bytes."""

from __future__ import annotations

import dataclasses
import json
import traceback
from typing import Any, Callable, Optional, Protocol, TypeVar

from arpc import log

T = TypeVar("T")


class Codec(Protocol):
    def marshal(self, value: Any) -> bytes: ...

    def unmarshal(self, data: bytes) -> Any: ...


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"value of type {type(value).__name__} is not JSON serializable")


class JSONCodec:
    """Compact JSON encoding of values."""

    def marshal(self, value: Any) -> bytes:
        return json.dumps(value, separators=(",", ":"), default=_json_default).encode()

    def unmarshal(self, data: bytes) -> Any:
        return json.loads(data)


DEFAULT_CODEC = JSONCodec()


def safe(call: Callable[[], T]) -> Optional[T]:
    """Run call, logging and swallowing any exception it raises."""
    try:
        return call()
    except Exception as exc:  # noqa: BLE001
        log.error("runtime error: %s\ntraceback:\n%s\n", exc, traceback.format_exc())
        return None


def value_to_bytes(codec: Optional[Codec], value: Any) -> bytes:
    """Convert a value to bytes; raw data and text pass through, others are marshalled."""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode()
    if isinstance(value, BaseException):
        return str(value).encode()
    if codec is None:
        codec = DEFAULT_CODEC
    try:
        return codec.marshal(value)
    except Exception as exc:  # noqa: BLE001
        log.error("ValueToBytes: %s", exc)
        return b""