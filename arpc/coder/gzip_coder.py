"""Message coder that gzips everything after the reserved header byte."""

from __future__ import annotations

import gzip
import zlib
from typing import Any

from arpc.coder.appender import FLAG_BIT_GZIP
from arpc.proto import HEAD_LEN, HEADER_INDEX_RESERVED, Message, MessageCoder

_COMPRESS_FROM = HEADER_INDEX_RESERVED + 1


class GzipCoder(MessageCoder):
    """Compresses messages longer than a threshold when that makes them smaller."""

    def __init__(self, threshold: int):
        self.threshold = threshold

    def encode(self, client: Any, message: Message) -> Message:
        buf = message.buffer
        if len(buf) > self.threshold and not message.is_flag_bit_set(FLAG_BIT_GZIP):
            compressed = gzip.compress(bytes(buf[_COMPRESS_FROM:]), mtime=0)
            total = len(compressed) + _COMPRESS_FROM
            if total < len(buf):
                buf[_COMPRESS_FROM:] = compressed
                message.body_len = total - HEAD_LEN
                message.set_flag_bit(FLAG_BIT_GZIP, True)
        return message

    def decode(self, client: Any, message: Message) -> Message:
        if message.is_flag_bit_set(FLAG_BIT_GZIP):
            try:
                plain = gzip.decompress(bytes(message.buffer[_COMPRESS_FROM:]))
            except (OSError, EOFError, zlib.error):
                return message
            message.buffer[_COMPRESS_FROM:] = plain
            message.set_flag_bit(FLAG_BIT_GZIP, False)
            message.body_len = len(message.buffer) - HEAD_LEN
        return message