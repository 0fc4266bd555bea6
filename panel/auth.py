"""
Panel - Token Authentication
==============================
Verifies the JWT access tokens issued by the panel's login flow and turns
them into an Identity (user_id, username).

Security model:
- Tokens are HS256-signed with a single process-wide secret
- The secret is resolved at startup (see config.resolve_jwt_secret) and
  passed into one TokenValidator, shared by the REST routes and the
  terminal WebSocket upgrade
- REST routes read the token from "Authorization: Bearer <token>"
- The terminal WebSocket reads it from the "token" query parameter,
  because browsers cannot set headers on a WebSocket handshake

Required claims:
    user_id  : integer
    username : string
    exp      : optional, enforced when present
"""

from datetime import datetime, timedelta, timezone
from typing import NamedTuple

from jose import jwt, JWTError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials


JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = 24

# Security scheme for FastAPI dependency injection
security = HTTPBearer(auto_error=False)


class Identity(NamedTuple):
    """The authenticated user behind a token."""
    user_id: int
    username: str


class Unauthorized(Exception):
    """Token missing, malformed, wrongly signed, expired, or lacking claims."""


class TokenValidator:
    """
    Verifies tokens against a fixed signing secret.

    The secret is read-only after construction, so one instance can serve
    any number of concurrent validations.
    """

    def __init__(self, secret: str, expiration_hours: int = JWT_EXPIRATION_HOURS):
        """
        Args:
            secret:           HMAC signing secret.
            expiration_hours: Lifetime of tokens minted by create_token().
        """
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self.expiration_hours = expiration_hours

    def validate(self, token: str) -> Identity:
        """
        Verify a token and extract its identity claims.

        Args:
            token: The encoded JWT.

        Returns:
            The Identity carried by the token.

        Raises:
            Unauthorized: If the token is not acceptable for any reason.
        """
        if not token:
            raise Unauthorized("Token is required")

        try:
            claims = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            raise Unauthorized(f"Invalid or expired token: {e}") from e

        user_id = claims.get("user_id")
        username = claims.get("username")

        # bool is an int subclass; JSON numbers may also decode as floats
        if isinstance(user_id, bool):
            raise Unauthorized("Invalid token claims")
        if isinstance(user_id, float) and user_id.is_integer():
            user_id = int(user_id)
        if not isinstance(user_id, int) or not isinstance(username, str):
            raise Unauthorized("Invalid token claims")

        return Identity(user_id=user_id, username=username)

    def create_token(
        self,
        user_id: int,
        username: str,
        expires_in: timedelta | None = None,
    ) -> str:
        """
        Issue a signed token for the given identity.

        Args:
            user_id:    Numeric user id claim.
            username:   Username claim.
            expires_in: Token lifetime; defaults to expiration_hours.
                        A negative value yields an already-expired token.

        Returns:
            The encoded JWT string.
        """
        if expires_in is None:
            expires_in = timedelta(hours=self.expiration_hours)
        now = datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "username": username,
            "iat": now,
            "exp": now + expires_in,
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)


def require_auth(validator: TokenValidator):
    """
    Create a FastAPI dependency that enforces authentication.

    Usage in routes:
        auth = Depends(require_auth(validator))

        @router.get("/api/auth/me")
        async def me(identity: Identity = auth): ...

    Args:
        validator: The TokenValidator shared with the terminal endpoint.

    Returns:
        A FastAPI dependency function resolving to the caller's Identity.
    """
    async def _verify(
        credentials: HTTPAuthorizationCredentials | None = Depends(security),
    ) -> Identity:
        if credentials is None:
            raise HTTPException(status_code=401, detail="Authentication required")

        try:
            return validator.validate(credentials.credentials)
        except Unauthorized:
            raise HTTPException(status_code=401, detail="Invalid or expired token")

    return _verify
