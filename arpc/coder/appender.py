"""Message coder that appends a named value to the end of a message."""

from __future__ import annotations

from typing import Any, Callable, Optional

from arpc.proto import HEAD_LEN, InvalidFlagBitIndexError, Message, MessageCoder

FLAG_BIT_OPEN_TRACING = 0
FLAG_BIT_GZIP = 7

_TRAILER_LEN = 2


class Appender(MessageCoder):
    """Carries one message value across the wire in a trailer.

    The trailer is the appender name, the encoded value, and a big-endian
    uint16 holding the trailer's whole length; a reserved flag bit marks it.
    """

    def __init__(self, appender_name: str, flag_bit_index: int,
                 value_to_bytes: Optional[Callable[[Any], bytes]],
                 bytes_to_value: Optional[Callable[[bytes], Any]]):
        self.appender_name = appender_name
        self.flag_bit_index = flag_bit_index
        self.value_to_bytes = value_to_bytes
        self.bytes_to_value = bytes_to_value

    def encode(self, client: Any, message: Message) -> Message:
        if not self.appender_name or self.value_to_bytes is None:
            return message
        value = message.get(self.appender_name)
        if value is None:
            return message
        try:
            message.set_flag_bit(self.flag_bit_index, True)
        except InvalidFlagBitIndexError:
            return message
        try:
            value_data = bytes(self.value_to_bytes(value))
        except Exception:  # noqa: BLE001
            return message
        key = self.appender_name.encode()
        append_len = (len(key) + len(value_data) + _TRAILER_LEN) & 0xFFFF
        message.buffer.extend(key)
        message.buffer.extend(value_data)
        message.buffer.extend(append_len.to_bytes(2, "big"))
        message.body_len = len(message.buffer) - HEAD_LEN
        return message

    def decode(self, client: Any, message: Message) -> Message:
        if not message.is_flag_bit_set(self.flag_bit_index):
            return message
        buf = message.buffer
        buf_len = len(buf)
        if buf_len <= _TRAILER_LEN or self.bytes_to_value is None:
            return message
        key = self.appender_name.encode()
        append_len = int.from_bytes(buf[buf_len - 2:buf_len], "big")
        if buf_len < append_len:
            raise ValueError(f"invalid appended length {append_len} for buffer of {buf_len}")
        start = buf_len - append_len
        if bytes(buf[start:start + len(key)]) != key:
            return message
        payload = bytes(buf[start + len(key):buf_len - _TRAILER_LEN])
        try:
            value = self.bytes_to_value(payload)
        except Exception:  # noqa: BLE001
            pass
        else:
            message.set(self.appender_name, value)
        del buf[start:]
        message.set_flag_bit(self.flag_bit_index, False)
        message.body_len = len(buf) - HEAD_LEN
        return message