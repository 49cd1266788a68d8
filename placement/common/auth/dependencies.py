"""
Authentication dependencies for the placement test API.

Identity is resolved upstream by the BFF, which forwards the user id as a
bearer token. The token is taken as the user id without further checks.
"""

import logging
from fastapi import Header, HTTPException, status
from typing import Optional

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Resolve the user id from an "Authorization: Bearer <user id>" header.

    Raises:
        HTTPException: 401 if the header is missing, malformed or not a
            bearer credential
    """
    if not authorization:
        raise _unauthorized("Missing authorization header")

    parts = authorization.split()
    if len(parts) != 2:
        raise _unauthorized("Invalid authorization header format")

    scheme, user_id = parts
    if scheme.lower() != BEARER_SCHEME:
        raise _unauthorized("Invalid authentication scheme")

    return user_id
