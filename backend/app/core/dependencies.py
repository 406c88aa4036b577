"""
Caller identity for request handlers.

A verified bearer token yields a claims dict (user_id, role, partner_id).
The user row is re-read on every request so deactivation takes effect
before the token expires. Guest bookings use the optional variant.
"""

from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.core.jwt import decode_access_token
from backend.app.db.session import get_db
from backend.app.models.user import User

bearer_required = HTTPBearer()
bearer_optional = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _identity_from_token(token: str, db: AsyncSession) -> dict:
    claims = decode_access_token(token)
    if claims is None:
        raise _unauthorized("Could not validate credentials")
    if not claims["user_id"]:
        raise _unauthorized("Token carries no user_id")

    user = await db.get(User, claims["user_id"])
    if user is None:
        raise _unauthorized("Unknown user")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")
    return claims


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_required),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Claims of an authenticated caller; 401 otherwise."""
    return await _identity_from_token(credentials.credentials, db)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_optional),
    db: AsyncSession = Depends(get_db),
) -> Optional[dict]:
    """
    None for anonymous callers. A token that is present but invalid is
    still rejected.
    """
    if credentials is None:
        return None
    return await _identity_from_token(credentials.credentials, db)
