"""
Bearer token handling.

Tokens are minted by the identity provider. The booking core verifies
them and reads three claims: user_id, role and the optional partner_id
of a partner staff member. create_access_token exists so tests and
local tooling can mint tokens with the same secret.
"""

from datetime import timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.clock import utcnow
from backend.app.core.config import settings

IDENTITY_CLAIMS = ("user_id", "role", "partner_id")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    ttl = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "exp": utcnow() + ttl}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify signature and expiry, then return the claims.

    Returns None when the token is unusable. The identity claims are
    always present in the result (partner_id may be None).
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if not claims.get("role"):
        return None
    for name in IDENTITY_CLAIMS:
        claims.setdefault(name, None)
    return claims
