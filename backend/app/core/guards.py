"""
Authorization guards.

require_role gates an endpoint by token role. PartnerScopeGuard keeps
partner staff inside their own partner's cars and leads; the platform
owner is unrestricted.
"""

from typing import Iterable, Optional
from fastapi import Depends, HTTPException, status
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def token_role(current_user: dict) -> Optional[UserRole]:
    try:
        return UserRole(current_user.get("role"))
    except ValueError:
        return None


def require_role(allowed_roles: Iterable[UserRole]):
    """
    Build a dependency that admits only callers holding one of `allowed_roles`.

        @router.get("/admin/commissions")
        async def list_commissions(current_user: dict = Depends(require_role([UserRole.PLATFORM_OWNER]))):
            ...
    """
    allowed = frozenset(allowed_roles)

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        role = token_role(current_user)
        if role is None:
            raise _forbidden("Token carries no recognised role")
        if role not in allowed:
            required = ", ".join(sorted(r.value for r in allowed))
            raise _forbidden(f"Access denied. Required role: {required}")
        return current_user

    return role_checker


def verify_partner_access(resource_partner_id: int, current_user: dict) -> bool:
    role = token_role(current_user)
    if role == UserRole.PLATFORM_OWNER:
        return True
    if role == UserRole.PARTNER_ADMIN:
        return current_user.get("partner_id") == resource_partner_id
    return False


class PartnerScopeGuard:
    """Partner ownership checks for a single resource or for a listing query."""

    def enforce(self, resource_partner_id: int, current_user: dict, resource_name: str = "resource") -> None:
        if not verify_partner_access(resource_partner_id, current_user):
            raise _forbidden(f"This {resource_name} belongs to another partner")

    def filter_by_partner(self, current_user: dict) -> Optional[int]:
        """
        partner_id to restrict a listing to, or None for the platform owner.
        Partner staff without a partner_id claim are refused.
        """
        if token_role(current_user) == UserRole.PLATFORM_OWNER:
            return None
        partner_id = current_user.get("partner_id")
        if partner_id is None:
            raise _forbidden("Partner membership missing from token")
        return partner_id
