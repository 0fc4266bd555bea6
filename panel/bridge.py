"""
Panel - Terminal Stream Bridge
================================
Pumps bytes between a PtySession and its WebSocket until either side ends.

Two flows run per session:

    output  (own task)     PTY -> WebSocket, one binary message per read
    input   (caller task)  WebSocket -> control frames / PTY input

There is no queue between the PTY and the socket: a slow client simply
holds up the output task at send time. Whichever side fails first, the
finally block of run() cancels the output task and terminates the session;
PtySession.terminate() makes repeated calls harmless.
"""

import asyncio

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from panel.protocol import dispatch
from panel.pty_session import PtySession


READ_CHUNK_SIZE = 4096
DISCONNECT_NOTICE = "\r\n[Connection closed]\r\n"


class StreamBridge:
    """
    Bidirectional byte pump for one terminal session.

    Attributes:
        session:    The PTY side.
        websocket:  The client side (already accepted).
        chunk_size: Maximum bytes per PTY read / outbound message.
    """

    def __init__(
        self,
        session: PtySession,
        websocket: WebSocket,
        chunk_size: int = READ_CHUNK_SIZE,
    ):
        self.session = session
        self.websocket = websocket
        self.chunk_size = chunk_size

    async def run(self) -> None:
        """Run both flows; returns once the session is over and cleaned up."""
        output_task = asyncio.create_task(self._forward_output())
        try:
            await self._forward_input()
        finally:
            output_task.cancel()
            await asyncio.gather(output_task, return_exceptions=True)
            self.session.terminate()
            await self._close_connection()

    # -- PTY -> WebSocket -----------------------------------------------------

    async def _forward_output(self) -> None:
        while True:
            try:
                data = await self.session.read(self.chunk_size)
            except OSError:
                # Shell exited (EIO) or the PTY broke
                await self._send_notice()
                self.session.terminate()
                break

            if not data:
                break

            try:
                await self.websocket.send_bytes(data)
            except Exception:
                # Client went away; the input flow notices on its next receive
                return

        await self._close_connection()

    # -- WebSocket -> PTY -----------------------------------------------------

    async def _forward_input(self) -> None:
        while True:
            try:
                message = await self.websocket.receive()
            except (WebSocketDisconnect, RuntimeError):
                break

            if message["type"] == "websocket.disconnect":
                break

            frame = message.get("bytes")
            if frame is None:
                frame = (message.get("text") or "").encode("utf-8")
            if not frame:
                continue

            try:
                await dispatch(self.session, self.websocket, frame)
            except (OSError, WebSocketDisconnect, RuntimeError):
                break

    # -- Helpers --------------------------------------------------------------

    async def _send_notice(self) -> None:
        try:
            await self.websocket.send_text(DISCONNECT_NOTICE)
        except Exception:
            pass

    async def _close_connection(self) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close()
        except Exception:
            pass
