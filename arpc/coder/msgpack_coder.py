"""Message coder that carries message values inside a msgpack body."""

from __future__ import annotations

from typing import Any

import msgpack

from arpc.proto import HEAD_LEN, Message, MessageCoder


class MsgPackCoder(MessageCoder):
    """Packs the body and values as a map with "Body" and "Values" keys."""

    def encode(self, client: Any, message: Message) -> Message:
        try:
            packed = msgpack.packb(
                {"Body": message.data, "Values": message.values}, use_bin_type=True
            )
        except (TypeError, ValueError, OverflowError):
            return message
        ml = message.method_len
        message.buffer[HEAD_LEN + ml:] = packed
        message.body_len = ml + len(packed)
        return message

    def decode(self, client: Any, message: Message) -> Message:
        try:
            decoded = msgpack.unpackb(message.data, raw=False, strict_map_key=False)
        except (ValueError, TypeError, msgpack.UnpackException):
            return message
        if not isinstance(decoded, dict):
            return message
        body = decoded.get("Body", message.data)
        if body is None:
            body = b""
        elif isinstance(body, str):
            body = body.encode()
        body = bytes(body)
        ml = message.method_len
        message.buffer[HEAD_LEN + ml:] = body
        message.body_len = ml + len(body)
        values = decoded.get("Values")
        if isinstance(values, dict):
            for key, value in values.items():
                message.set(key, value)
        return message