"""Topics carried by publish/subscribe messages and their wire layout.

A topic travels as its data, then its name, then a little-endian uint16
name length and a little-endian int64 timestamp in nanoseconds.
"""

from __future__ import annotations

import struct
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

MAX_TOPIC_NAME_LEN = 1024

ROUTE_AUTHENTICATE = "in_A"
ROUTE_SUBSCRIBE = "in_S"
ROUTE_UNSUBSCRIBE = "in_U"
ROUTE_PUBLISH = "in_P"
ROUTE_PUBLISH_TO_ONE = "in_P1"

ERR_REJECTED_LOGIN = "invalid password"
ERR_INVALID_TOPIC_EMPTY = 'invalid topic, should not be ""'
ERR_INVALID_TOPIC_BYTES = "invalid topic bytes, should be more than 10 bytes"
ERR_INVALID_TOPIC_NAME_LENGTH = "invalid topic name length, should not be more than 1024"

_TAIL = struct.Struct("<Hq")
_TAIL_LEN = _TAIL.size


class PubSubError(Exception):
    """Raised for malformed topics and rejected publish/subscribe requests."""


@dataclass
class Topic:
    """A named piece of published data with the time it was created."""

    name: str
    data: bytes = b""
    timestamp: int = 0
    raw: bytes = field(default=b"", repr=False, compare=False)

    def to_bytes(self) -> bytes:
        """Encode the topic for the wire and remember the encoding as raw."""
        name = self.name.encode()
        self.raw = bytes(self.data or b"") + name + _TAIL.pack(len(name), self.timestamp)
        return self.raw

    @classmethod
    def from_bytes(cls, data: bytes) -> "Topic":
        """Decode a topic from its wire form."""
        data = bytes(data)
        if len(data) < _TAIL_LEN:
            raise PubSubError(ERR_INVALID_TOPIC_BYTES)
        name_len, timestamp = _TAIL.unpack_from(data, len(data) - _TAIL_LEN)
        if name_len == 0 or name_len > MAX_TOPIC_NAME_LEN:
            raise PubSubError(ERR_INVALID_TOPIC_NAME_LENGTH)
        name_end = len(data) - _TAIL_LEN
        name_begin = name_end - name_len
        if name_begin < 0:
            raise PubSubError(ERR_INVALID_TOPIC_BYTES)
        return cls(
            name=data[name_begin:name_end].decode(errors="replace"),
            data=data[:name_begin],
            timestamp=timestamp,
            raw=data,
        )


TopicHandler = Callable[[Topic], None]


def new_topic(name: str, data: Optional[bytes]) -> Topic:
    """A topic stamped with the current time; the name must be 1..1024 bytes."""
    if name == "":
        raise PubSubError(ERR_INVALID_TOPIC_EMPTY)
    if len(name.encode()) > MAX_TOPIC_NAME_LEN:
        raise PubSubError(ERR_INVALID_TOPIC_NAME_LENGTH)
    return Topic(name=name, data=bytes(data or b""), timestamp=time.time_ns())