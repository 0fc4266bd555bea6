"""
Panel - FastAPI Application
=============================
Creates and configures the FastAPI application serving the terminal
subsystem of the server panel.

Responsibilities:
    - Load config.yaml and resolve the token signing secret
    - Build the single TokenValidator shared by REST and WebSocket routes
    - Create the terminal manager and command executor
    - Register API routes and the /ws/terminal endpoint
    - Kill any remaining shells when the application shuts down

Architecture:
    API endpoints are prefixed with /api/.
    The interactive terminal is available at /ws/terminal.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from panel.auth import TokenValidator
from panel.config import ConfigManager, cors_origins, resolve_jwt_secret
from panel.executor import CommandExecutor
from panel.logger import PanelLogger
from panel.manager import TerminalManager
from panel.routes import create_router
from panel.websocket import create_terminal_router


def create_app(project_dir: str | None = None) -> FastAPI:
    """
    Application factory: create and configure the FastAPI instance.

    Args:
        project_dir: Root directory of the panel installation (holds
                     config.yaml and data/). If None, auto-detected from
                     this file's location.

    Returns:
        Configured FastAPI application ready to run with uvicorn.
    """
    # -- Resolve directories ---------------------------------------------------
    if project_dir is None:
        project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    config_manager = ConfigManager(project_dir)
    config = config_manager.load()
    logger = PanelLogger(os.path.join(config_manager.data_dir, "logs"))

    if "_config_error" in config:
        logger.warn(f"config.yaml could not be read, using defaults: {config['_config_error']}")

    # -- Signing secret ----------------------------------------------------------
    secret, generated = resolve_jwt_secret(config)
    if generated:
        logger.warn("JWT_SECRET not set, using a random secret. Tokens will be invalidated on restart!")

    # -- Initialize components ---------------------------------------------------
    validator = TokenValidator(secret, expiration_hours=config["auth"]["token_hours"])
    manager = TerminalManager(config["terminal"], logger)
    executor = CommandExecutor(
        shell=config["executor"]["shell"],
        max_timeout=config["executor"]["max_timeout"],
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Panel terminal service started")
        yield
        manager.shutdown()
        logger.info("Panel terminal service stopped")

    # -- Create FastAPI app ----------------------------------------------------
    app = FastAPI(
        title="Server Panel",
        description="Terminal and command execution API for the server panel",
        version="1.0.0",
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    # -- CORS middleware -------------------------------------------------------
    # Credentials cannot be combined with the "*" wildcard
    origins = cors_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
    )

    # -- Store components on app state -----------------------------------------
    app.state.config = config
    app.state.logger = logger
    app.state.token_validator = validator
    app.state.terminal_manager = manager
    app.state.command_executor = executor

    # -- Register routes -------------------------------------------------------
    app.include_router(create_router(validator=validator, executor=executor))
    app.include_router(create_terminal_router(validator, manager, logger))

    return app
