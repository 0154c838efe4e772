import msgpack

from arpc.coder.msgpack_coder import MsgPackCoder
from arpc.proto import CMD_REQUEST, HEAD_LEN, Message, new_message


def _message(values=None):
    return new_message(CMD_REQUEST, "hello", "payload", False, False, 3, None, None, values)


def test_encode_packs_body_and_values():
    msg = _message({"k": "v"})
    MsgPackCoder().encode(None, msg)
    unpacked = msgpack.unpackb(msg.data, raw=False)
    assert unpacked == {"Body": b"payload", "Values": {"k": "v"}}
    assert msg.method == "hello"
    assert msg.body_len == len(msg.buffer) - HEAD_LEN


def test_round_trip_restores_values():
    msg = _message({"k": "v", "n": 5})
    MsgPackCoder().encode(None, msg)
    received = Message(buffer=bytearray(msg.buffer))
    MsgPackCoder().decode(None, received)
    assert received.data == b"payload"
    assert received.get("k") == "v"
    assert received.get("n") == 5
    assert received.method == "hello"
    assert received.seq == 3
    assert received.body_len == len(received.buffer) - HEAD_LEN


def test_round_trip_without_values():
    msg = _message()
    MsgPackCoder().encode(None, msg)
    received = Message(buffer=bytearray(msg.buffer))
    MsgPackCoder().decode(None, received)
    assert received.data == b"payload"
    assert received.values is None


def test_decode_garbage_untouched():
    msg = new_message(CMD_REQUEST, "hello", b"\xc1", False, False, 0, None, None, None)
    original = bytes(msg.buffer)
    MsgPackCoder().decode(None, msg)
    assert bytes(msg.buffer) == original


def test_decode_non_map_untouched():
    msg = new_message(CMD_REQUEST, "hello", msgpack.packb([1, 2]), False, False, 0,
                      None, None, None)
    original = bytes(msg.buffer)
    MsgPackCoder().decode(None, msg)
    assert bytes(msg.buffer) == original