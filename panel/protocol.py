"""
Panel - Terminal Control Frames
=================================
A one-byte opcode sub-protocol carried on the terminal WebSocket next to
raw keystrokes.

Client -> server:
    [0x01, cols_hi, cols_lo, rows_hi, rows_lo]   resize
    [0x02]                                       heartbeat
    anything else                                raw terminal input

Server -> client:
    [0x03]                                       pong (heartbeat reply)
    anything else                                raw terminal output

Multi-byte fields are big-endian. Frames carry no sequence numbers; each
one is handled on its own, in arrival order.

A keystroke whose first byte is 0x01, 0x02 or 0x03 (Ctrl-A, Ctrl-B, Ctrl-C)
sent alone as a frame is indistinguishable from a control frame. Clients
are expected to live with that; there is no escaping.
"""

import struct

OP_RESIZE = 0x01
OP_HEARTBEAT = 0x02
OP_PONG = 0x03

PONG_FRAME = bytes([OP_PONG])
RESIZE_FRAME_LEN = 5

_RESIZE = struct.Struct(">HH")


def decode_resize(frame: bytes) -> tuple[int, int] | None:
    """
    Parse a resize frame.

    Returns:
        (cols, rows), or None if the frame is not a complete resize frame.
    """
    if len(frame) < RESIZE_FRAME_LEN or frame[0] != OP_RESIZE:
        return None
    return _RESIZE.unpack_from(frame, 1)


def encode_resize(cols: int, rows: int) -> bytes:
    """Build a resize frame (what the browser client sends)."""
    return bytes([OP_RESIZE]) + _RESIZE.pack(cols, rows)


async def dispatch(session, websocket, frame: bytes) -> None:
    """
    Route one inbound frame.

    Args:
        session:   The PtySession the connection drives.
        websocket: The connection, used to answer heartbeats.
        frame:     A non-empty inbound message.

    Raises:
        OSError: If writing terminal input to the PTY fails.
        Whatever the connection raises when the pong cannot be sent.
    """
    opcode = frame[0]

    if opcode == OP_RESIZE:
        size = decode_resize(frame)
        if size is not None:
            session.resize(*size)
        # Truncated resize frames are dropped
        return

    if opcode == OP_HEARTBEAT:
        await websocket.send_bytes(PONG_FRAME)
        return

    await session.write(frame)
