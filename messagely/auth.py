"""
Request authentication for the messages API.

Tokens are issued elsewhere; this module only verifies them and
exposes the caller's username as FastAPI dependencies.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from messagely.config import settings

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is reported as 401 rather than 403
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(username: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a token carrying the given username.

    Args:
        username: Identity to embed in the "username" claim
        expires_delta: Optional lifetime; tokens without one do not expire
    """
    claims = {"username": username}
    if expires_delta is not None:
        claims["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_username(token: str) -> Optional[str]:
    """Return the username claim of a valid token, or None."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected token: {e}")
        return None
    username = payload.get("username")
    return username if isinstance(username, str) and username else None


def ensure_logged_in(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> str:
    """
    Require a valid bearer token.

    Returns:
        The caller's username

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    if credentials is None:
        logger.info("Missing bearer token")
        raise _unauthorized()

    username = decode_username(credentials.credentials)
    if username is None:
        raise _unauthorized()
    return username


def ensure_correct_user(
    request: Request,
    username: Annotated[str, Depends(ensure_logged_in)],
) -> str:
    """
    Require a valid token whose username matches the route's username
    parameter. Routes without a username parameter only need a login.
    """
    route_username = request.path_params.get("username")
    if route_username is not None and route_username != username:
        logger.warning(f"User {username} attempted to act as {route_username}")
        raise _unauthorized()
    return username


CurrentUser = Annotated[str, Depends(ensure_logged_in)]
CorrectUser = Annotated[str, Depends(ensure_correct_user)]
