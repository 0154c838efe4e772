"""Wire format of messages: a 16-byte header, the method name, then the body."""

from __future__ import annotations

import abc
import struct
import threading
from typing import Any, Optional

from arpc.util import Codec, value_to_bytes

CMD_NONE = 0
CMD_REQUEST = 1
CMD_RESPONSE = 2
CMD_NOTIFY = 3
CMD_PING = 4
CMD_PONG = 5

HEADER_INDEX_BODY_LEN_BEGIN = 0
HEADER_INDEX_BODY_LEN_END = 4
HEADER_INDEX_RESERVED = 4
HEADER_INDEX_CMD = 5
HEADER_INDEX_FLAG = 6
HEADER_INDEX_METHOD_LEN = 7
HEADER_INDEX_SEQ_BEGIN = 8
HEADER_INDEX_SEQ_END = 16
HEADER_FLAG_MASK_ERROR = 0x01
HEADER_FLAG_MASK_ASYNC = 0x02

HEAD_LEN = 16
MAX_METHOD_LEN = 127
DEFAULT_MAX_BODY_LEN = 1024 * 1024 * 64 - 16

_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")


class InvalidFlagBitIndexError(ValueError):
    """Raised for a flag bit index outside 0..7."""

    def __init__(self, index: int):
        super().__init__(f"invalid flag bit index: {index}")
        self.index = index


def header_body_len(head: bytes) -> int:
    """Body length stored in the first four header bytes."""
    return _U32.unpack_from(head, HEADER_INDEX_BODY_LEN_BEGIN)[0]


def message_from_header(head: bytes, handler: Any) -> "Message":
    """Allocate a message sized for the body length the header announces."""
    body_len = header_body_len(head)
    if body_len > handler.max_body_len:
        raise ValueError(f"invalid body length: {body_len}")
    msg = Message(buffer=handler.malloc(HEAD_LEN + body_len), handler=handler)
    msg.body_len = body_len
    return msg


class Message:
    """A framed message whose header fields live in its buffer."""

    def __init__(self, buffer: Optional[bytearray] = None, handler: Any = None,
                 values: Optional[dict] = None):
        self.buffer = bytearray() if buffer is None else buffer
        self.handler = handler
        self.values = values
        self._ref = 0
        self._ref_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.buffer)

    def __bool__(self) -> bool:
        return True

    def retain(self) -> int:
        """Increment the reference count and return it."""
        with self._ref_lock:
            self._ref += 1
            return self._ref

    def release(self) -> int:
        """Decrement the reference count; the last release frees the buffer."""
        with self._ref_lock:
            self._ref -= 1
            n = self._ref
        if n == -1:
            if self.handler is not None:
                self.handler.free(self.buffer)
            self.buffer = bytearray()
            self.handler = None
            self.values = None
            self._ref = 0
        return n

    def reset_attrs(self) -> None:
        """Zero the reserved, cmd, flag and method-length bytes."""
        self.buffer[HEADER_INDEX_BODY_LEN_END:HEADER_INDEX_SEQ_BEGIN] = bytes(4)

    @property
    def cmd(self) -> int:
        return self.buffer[HEADER_INDEX_CMD]

    @cmd.setter
    def cmd(self, value: int) -> None:
        self.buffer[HEADER_INDEX_CMD] = value & 0xFF

    def _set_flag(self, mask: int, on: bool) -> None:
        if on:
            self.buffer[HEADER_INDEX_FLAG] |= mask
        else:
            self.buffer[HEADER_INDEX_FLAG] &= ~mask & 0xFF

    @property
    def is_error(self) -> bool:
        return bool(self.buffer[HEADER_INDEX_FLAG] & HEADER_FLAG_MASK_ERROR)

    @is_error.setter
    def is_error(self, value: bool) -> None:
        self._set_flag(HEADER_FLAG_MASK_ERROR, value)

    @property
    def is_async(self) -> bool:
        return bool(self.buffer[HEADER_INDEX_FLAG] & HEADER_FLAG_MASK_ASYNC)

    @is_async.setter
    def is_async(self, value: bool) -> None:
        self._set_flag(HEADER_FLAG_MASK_ASYNC, value)

    def error(self) -> Optional[Exception]:
        """The error the body carries, or None if the error flag is clear."""
        if not self.is_error:
            return None
        return Exception(bytes(self.buffer[HEAD_LEN + self.method_len:]).decode(errors="replace"))

    def set_flag_bit(self, index: int, value: bool) -> None:
        """Set or clear one of the eight reserved flag bits."""
        if not 0 <= index <= 7:
            raise InvalidFlagBitIndexError(index)
        if value:
            self.buffer[HEADER_INDEX_RESERVED] |= 1 << index
        else:
            self.buffer[HEADER_INDEX_RESERVED] &= ~(1 << index) & 0xFF

    def is_flag_bit_set(self, index: int) -> bool:
        if not 0 <= index <= 7:
            return False
        return bool(self.buffer[HEADER_INDEX_RESERVED] & (1 << index))

    @property
    def method_len(self) -> int:
        return self.buffer[HEADER_INDEX_METHOD_LEN]

    @method_len.setter
    def method_len(self, value: int) -> None:
        self.buffer[HEADER_INDEX_METHOD_LEN] = value & 0xFF

    @property
    def method(self) -> str:
        return bytes(self.buffer[HEAD_LEN:HEAD_LEN + self.method_len]).decode(errors="replace")

    @property
    def body_len(self) -> int:
        return _U32.unpack_from(self.buffer, HEADER_INDEX_BODY_LEN_BEGIN)[0]

    @body_len.setter
    def body_len(self, value: int) -> None:
        _U32.pack_into(self.buffer, HEADER_INDEX_BODY_LEN_BEGIN, value & 0xFFFFFFFF)

    @property
    def seq(self) -> int:
        return _U64.unpack_from(self.buffer, HEADER_INDEX_SEQ_BEGIN)[0]

    @seq.setter
    def seq(self, value: int) -> None:
        _U64.pack_into(self.buffer, HEADER_INDEX_SEQ_BEGIN, value & 0xFFFFFFFFFFFFFFFF)

    @property
    def data(self) -> bytes:
        """Payload after the method name."""
        return bytes(self.buffer[HEAD_LEN + self.method_len:])

    def get(self, key: Any) -> Any:
        """Value stored under key, or None."""
        if not self.values:
            return None
        return self.values.get(key)

    def set(self, key: Any, value: Any) -> None:
        """Store a value; None keys or values are ignored."""
        if key is None or value is None:
            return
        if self.values is None:
            self.values = {}
        self.values[key] = value


def new_message(cmd: int, method: str, value: Any, is_error: bool, is_async: bool,
                seq: int, handler: Any, codec: Optional[Codec],
                values: Optional[dict]) -> Message:
    """Build a message, allocating its buffer through the handler if one is given."""
    data = value_to_bytes(codec, value)
    method_bytes = method.encode()
    body_len = len(method_bytes) + len(data)
    size = HEAD_LEN + body_len
    buffer = handler.malloc(size) if handler is not None else bytearray(size)

    msg = Message(buffer=buffer, handler=handler, values=values)
    msg.reset_attrs()
    msg.cmd = cmd
    msg.is_error = is_error
    msg.is_async = is_async
    msg.method_len = len(method_bytes)
    msg.body_len = body_len
    msg.seq = seq
    start = HEAD_LEN + len(method_bytes)
    msg.buffer[HEAD_LEN:start] = method_bytes
    msg.buffer[start:start + len(data)] = data
    return msg


def check_method(method: str) -> None:
    """Raise ValueError unless the method name length is 1..MAX_METHOD_LEN bytes."""
    ml = len(method.encode())
    if ml == 0 or ml > MAX_METHOD_LEN:
        raise ValueError(f"invalid method length: {ml}, should <= {MAX_METHOD_LEN}")


class MessageCoder(abc.ABC):
    """Middleware that rewrites messages before sending and after receiving."""

    @abc.abstractmethod
    def encode(self, client: Any, message: Message) -> Message:
        """Wrap a message before it is sent."""

    @abc.abstractmethod
    def decode(self, client: Any, message: Message) -> Message:
        """Unwrap a message between receiving and handling it."""


PING_MESSAGE = new_message(CMD_PING, "", None, False, False, 0, None, None, None)
PONG_MESSAGE = new_message(CMD_PONG, "", None, False, False, 0, None, None, None)