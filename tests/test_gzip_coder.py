import os

from arpc.coder.appender import FLAG_BIT_GZIP
from arpc.coder.gzip_coder import GzipCoder
from arpc.proto import CMD_REQUEST, HEAD_LEN, Message, new_message


def _message(body):
    return new_message(CMD_REQUEST, "hello", body, False, False, 7, None, None, None)


def test_round_trip_compresses():
    msg = _message("a" * 1000)
    original = bytes(msg.buffer)
    coder = GzipCoder(16)
    coder.encode(None, msg)
    assert len(msg.buffer) < len(original)
    assert msg.is_flag_bit_set(FLAG_BIT_GZIP)
    assert msg.body_len == len(msg.buffer) - HEAD_LEN

    received = Message(buffer=bytearray(msg.buffer))
    coder.decode(None, received)
    assert not received.is_flag_bit_set(FLAG_BIT_GZIP)
    assert bytes(received.buffer) == original
    assert received.data == b"a" * 1000
    assert received.seq == 7


def test_short_message_untouched():
    msg = _message("tiny")
    original = bytes(msg.buffer)
    GzipCoder(1024).encode(None, msg)
    assert bytes(msg.buffer) == original


def test_incompressible_message_untouched():
    msg = _message(os.urandom(100))
    original = bytes(msg.buffer)
    GzipCoder(0).encode(None, msg)
    assert bytes(msg.buffer) == original
    assert not msg.is_flag_bit_set(FLAG_BIT_GZIP)


def test_already_flagged_not_recompressed():
    msg = _message("b" * 500)
    msg.set_flag_bit(FLAG_BIT_GZIP, True)
    original = bytes(msg.buffer)
    GzipCoder(0).encode(None, msg)
    assert bytes(msg.buffer) == original


def test_decode_unflagged_untouched():
    msg = _message("c" * 500)
    original = bytes(msg.buffer)
    GzipCoder(0).decode(None, msg)
    assert bytes(msg.buffer) == original


def test_decode_corrupt_untouched():
    msg = _message("not gzip data at all")
    msg.set_flag_bit(FLAG_BIT_GZIP, True)
    original = bytes(msg.buffer)
    GzipCoder(0).decode(None, msg)
    assert bytes(msg.buffer) == original
    assert msg.is_flag_bit_set(FLAG_BIT_GZIP)