"""
Panel - REST API Routes
=========================
HTTP endpoints of the terminal subsystem.

Route groups:
    /api/auth/me        - Identity behind the caller's token
    /api/terminal/exec  - Run one shell command, return output + exit code

All routes require "Authorization: Bearer <token>".
See auth.py for token details.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from panel.auth import Identity, TokenValidator, require_auth
from panel.executor import (
    CommandExecutor,
    ExecutionError,
    ForbiddenCommandError,
    ValidationError,
)


# =============================================================================
# Request/Response Models (Pydantic)
# =============================================================================

class ExecRequest(BaseModel):
    """Run a single non-interactive command."""
    command: str = Field("", description="Shell command line")
    timeout: float | None = Field(None, description="Seconds before the command is killed")
    cwd: str | None = Field(None, description="Working directory for the command")

class ExecResponse(BaseModel):
    """Finished command. A non-zero exit_code is still a successful request."""
    status: bool = True
    output: str
    exit_code: int
    timed_out: bool = False

class MeResponse(BaseModel):
    status: bool = True
    user_id: int
    username: str


# =============================================================================
# Router Factory
# =============================================================================

def create_router(
    validator: TokenValidator,
    executor: CommandExecutor,
) -> APIRouter:
    """
    Create and configure the API router.

    Args:
        validator: Token validator shared with the terminal WebSocket.
        executor:  One-shot command runner.

    Returns:
        Configured APIRouter with all endpoints registered.
    """
    router = APIRouter(prefix="/api")

    # Shorthand for the auth dependency
    auth = Depends(require_auth(validator))

    @router.get("/auth/me", response_model=MeResponse)
    async def me(identity: Identity = auth):
        """Return the identity carried by the caller's token."""
        return MeResponse(user_id=identity.user_id, username=identity.username)

    @router.post("/terminal/exec", response_model=ExecResponse, dependencies=[auth])
    async def execute_command(req: ExecRequest):
        """
        Run one command through the shell and wait for it.

        400 for an empty command, 403 for a denylisted one, 500 if the
        shell could not be started.
        """
        try:
            result = await executor.execute(req.command, cwd=req.cwd, timeout=req.timeout)
        except ForbiddenCommandError as e:
            raise HTTPException(status_code=403, detail=str(e))
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ExecutionError as e:
            raise HTTPException(status_code=500, detail=str(e))

        return ExecResponse(**result)

    return router
