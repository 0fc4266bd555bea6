"""
Panel - Terminal WebSocket Endpoint
=====================================
Interactive shell over a WebSocket at /ws/terminal.

Connection flow:
    1. Client connects to /ws/terminal?token=<jwt>[&cwd=/some/dir]
    2. Token is checked BEFORE the handshake; a bad or missing token gets
       an HTTP 401 denial response and no shell is started
    3. Handshake is accepted and a PTY session is spawned in cwd (or the
       default home directory when cwd is missing or not a directory)
    4. StreamBridge pumps bytes both ways until either side ends
    5. The session is unregistered and its shell killed

If the shell cannot be started the client receives a single text message
"Error: <reason>" and the connection is closed.

A plain HTTP request to /ws/terminal (no upgrade) gets 426 Upgrade Required.
"""

from fastapi import APIRouter, WebSocket
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketState

from panel.auth import TokenValidator, Unauthorized
from panel.bridge import StreamBridge
from panel.logger import PanelLogger
from panel.manager import TerminalManager
from panel.pty_session import SpawnError


TERMINAL_PATH = "/ws/terminal"

# Close code used when the server cannot send an HTTP denial response
POLICY_VIOLATION = 1008


async def reject(websocket: WebSocket, message: str, status_code: int = 401) -> None:
    """
    Refuse a WebSocket upgrade before the handshake.

    Sends a JSON HTTP response when the server supports the denial
    extension, otherwise closes the pending handshake (seen by clients as
    HTTP 403).
    """
    if "websocket.http.response" in websocket.scope.get("extensions", {}):
        response = JSONResponse(
            {"status": False, "message": message},
            status_code=status_code,
        )
        await websocket.send_denial_response(response)
    else:
        await websocket.close(code=POLICY_VIOLATION, reason=message)


async def report_spawn_error(websocket: WebSocket, message: str) -> None:
    """Tell the client why no shell started, then close. The client may be gone already."""
    try:
        await websocket.send_text(message)
    except Exception:
        pass
    if websocket.application_state == WebSocketState.DISCONNECTED:
        return
    try:
        await websocket.close()
    except Exception:
        pass


def create_terminal_router(
    validator: TokenValidator,
    manager: TerminalManager,
    logger: PanelLogger,
) -> APIRouter:
    """
    Build the router serving the terminal WebSocket.

    Args:
        validator: Shared token validator (same instance as the REST API).
        manager:   Spawns and tracks PTY sessions.
        logger:    Panel logger.

    Returns:
        APIRouter with the /ws/terminal routes.
    """
    router = APIRouter()

    @router.get(TERMINAL_PATH)
    async def terminal_requires_upgrade():
        """The terminal is only reachable through a WebSocket upgrade."""
        return JSONResponse(
            {"status": False, "message": "Upgrade Required"},
            status_code=426,
        )

    @router.websocket(TERMINAL_PATH)
    async def terminal_endpoint(websocket: WebSocket):
        token = websocket.query_params.get("token", "")
        if not token:
            await reject(websocket, "Token is required")
            return

        try:
            identity = validator.validate(token)
        except Unauthorized:
            await reject(websocket, "Invalid or expired token")
            return

        cwd = websocket.query_params.get("cwd", "")

        await websocket.accept()

        try:
            session = manager.open(cwd, identity)
        except SpawnError as e:
            logger.error(f"Terminal spawn failed for {identity.username}: {e}")
            await report_spawn_error(websocket, f"Error: {e}")
            return

        try:
            await StreamBridge(session, websocket).run()
        finally:
            manager.close(session)

    return router
