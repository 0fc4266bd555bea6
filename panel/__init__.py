"""
Panel - Terminal Server Package
=================================
Backend of the server panel's interactive terminal.

This package provides:
- Token-gated WebSocket terminal backed by a PTY shell per connection
- A one-byte opcode control protocol (resize, heartbeat) on that socket
- A REST endpoint running one-off shell commands
- JWT verification shared by the REST and WebSocket layers

Architecture:
    main.py        -> FastAPI app creation, middleware, lifespan
    auth.py        -> Token verification, REST auth dependency
    config.py      -> config.yaml loading, signing secret resolution
    logger.py      -> Tagged console + per-day file logging
    pty_session.py -> PTY spawn / resize / read / write / terminate
    protocol.py    -> Control frame opcodes and dispatch
    bridge.py      -> PTY <-> WebSocket byte pump
    manager.py     -> Live session registry and shutdown cleanup
    websocket.py   -> /ws/terminal endpoint
    executor.py    -> One-shot command execution with denylist
    routes.py      -> REST API endpoint handlers
"""
