"""
Authenticated principal resolution.

Accounts and logins live outside the portal; it only needs to turn a bearer
token signed with the shared secret into a Principal.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .exceptions import AuthorizationError, ForbiddenError


@dataclass(frozen=True)
class Principal:
    username: str
    is_admin: bool = False
    user_id: Optional[str] = None

    @property
    def owner_id(self) -> str:
        """Identity under which scores and quota are recorded."""
        return self.username


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Principal:
    """
    Verify ``token`` and build the Principal it describes.

    Raises:
        ForbiddenError: If the signature, expiry or claims are invalid
    """
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as e:
        raise ForbiddenError(f"Forbidden: Invalid token ({e})") from e

    username = claims.get("username")
    if not username or not isinstance(username, str):
        raise ForbiddenError("Forbidden: Token has no username claim")
    return Principal(
        username=username,
        is_admin=bool(claims.get("isAdmin", False)),
        user_id=str(claims["id"]) if claims.get("id") is not None else None,
    )


def principal_from_header(authorization: Optional[str], secret: str,
                          algorithm: str = "HS256") -> Principal:
    """
    Resolve the ``Authorization: Bearer <token>`` header.

    Raises:
        AuthorizationError: If the header is missing or not a bearer token
        ForbiddenError: If the token is invalid
    """
    if not authorization:
        raise AuthorizationError("Unauthorized: No token provided")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthorizationError("Unauthorized: Expected a Bearer token")
    return decode_token(parts[1], secret, algorithm)


def issue_token(username: str, secret: str, is_admin: bool = False,
                expires_in: timedelta = timedelta(hours=24),
                algorithm: str = "HS256", user_id: Optional[str] = None) -> str:
    """Sign a token in the format decode_token() accepts."""
    now = datetime.now(timezone.utc)
    claims = {
        "username": username,
        "isAdmin": is_admin,
        "iat": now,
        "exp": now + expires_in,
    }
    if user_id is not None:
        claims["id"] = user_id
    return jwt.encode(claims, secret, algorithm=algorithm)
