#!/usr/bin/env python3
"""
Server Panel - Entry Point
============================
One-command startup for the panel's terminal service.

Usage:
    python app.py              # Start with default settings
    python app.py --port 9000  # Start on custom port

This script:
    1. Creates config.yaml from config.yaml.example on first run
    2. Loads environment variables from .env (JWT_SECRET, CORS_ORIGINS)
    3. Creates the FastAPI web application
    4. Starts the uvicorn server
"""

import os
import shutil
import argparse
import uvicorn
from dotenv import load_dotenv


def main():
    """Parse arguments, load config, and start the web server."""

    # -- Parse command-line arguments ------------------------------------------
    parser = argparse.ArgumentParser(
        description="Server Panel - terminal and command execution service",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port number to listen on (overrides config.yaml)",
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Host binding address (overrides config.yaml)",
    )
    args = parser.parse_args()

    # -- Resolve project directory ---------------------------------------------
    project_dir = os.path.dirname(os.path.abspath(__file__))

    # -- Ensure configuration file exists --------------------------------------
    config_path = os.path.join(project_dir, "config.yaml")
    config_example = os.path.join(project_dir, "config.yaml.example")
    if not os.path.exists(config_path) and os.path.exists(config_example):
        shutil.copy2(config_example, config_path)
        print("[INIT] Created config.yaml from template")

    # -- Load environment variables from .env ----------------------------------
    env_path = os.path.join(project_dir, ".env")
    if os.path.exists(env_path):
        load_dotenv(env_path)

    # -- Load configuration to get web server settings -------------------------
    from panel.config import ConfigManager, DEFAULTS
    config = ConfigManager(project_dir).load()

    # Command-line args override config file
    host = args.host or config["web"].get("host", DEFAULTS["web"]["host"])
    port = args.port or config["web"].get("port", DEFAULTS["web"]["port"])

    print()
    print("  Server Panel terminal service")
    print(f"  Listening : http://{host}:{port}")
    print(f"  Terminal  : ws://{host}:{port}/ws/terminal?token=...")
    print()

    # -- Start the web server --------------------------------------------------
    uvicorn.run(
        "panel.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
