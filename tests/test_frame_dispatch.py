import pytest

from frame_dispatch import FrameHandlers, UnknownMessageType, decode_json
from stream_framing import Frame, MessageType, decode, encode


def test_dispatch_routes_each_type():
    seen = []
    handlers = FrameHandlers(
        on_open=lambda: seen.append("open"),
        on_close=lambda: seen.append("close"),
        on_call=lambda p: seen.append(("call", bytes(p))),
        on_data=lambda p: seen.append(("data", bytes(p))),
    )
    for type_byte, payload in ((MessageType.OPEN, b""), (MessageType.CALL, b"c"),
                               (MessageType.DATA, b"d"), (MessageType.CLOSE, b"")):
        handlers.dispatch(decode(encode(type_byte, payload)))
    assert seen == ["open", ("call", b"c"), ("data", b"d"), "close"]


def test_empty_slots_ignore_frames():
    FrameHandlers().dispatch(Frame(MessageType.DATA, b"ignored"))


def test_reserved_type_raises():
    with pytest.raises(UnknownMessageType) as excinfo:
        FrameHandlers().dispatch(decode(encode(0x04, b"?")))
    assert excinfo.value.type_byte == 0x04
    assert "0x04" in str(excinfo.value)


def test_decode_json_from_view():
    frame = decode(encode(MessageType.CALL, b'{"method": "readFile", "path": "/tmp/x"}'))
    assert decode_json(frame.payload) == {"method": "readFile", "path": "/tmp/x"}
