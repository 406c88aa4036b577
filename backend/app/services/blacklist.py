"""
Blacklist lookups.

A customer is refused when their account is flagged or their phone
matches a platform blacklist entry.
"""

from typing import Iterable, Optional, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.models.blacklist import BlacklistEntry
from backend.app.models.user import User


async def is_customer_blacklisted(
    db: AsyncSession,
    user_id: Optional[int],
    phone: Optional[str]
) -> bool:
    """Check the user's own flag, then the phone against blacklist entries."""
    if user_id is not None:
        user = await db.get(User, user_id)
        if user is not None and user.is_blacklisted:
            return True
    
    if phone:
        result = await db.execute(
            select(BlacklistEntry.id).where(BlacklistEntry.phone == phone.strip()).limit(1)
        )
        if result.first() is not None:
            return True
    
    return False


async def load_blacklist_keys(db: AsyncSession) -> tuple[Set[str], Set[str]]:
    """Return (phones, lower-cased full names) of every blacklist entry."""
    result = await db.execute(select(BlacklistEntry.phone, BlacklistEntry.full_name))
    phones, names = set(), set()
    for phone, full_name in result.all():
        if phone:
            phones.add(phone)
        names.add(full_name.lower())
    return phones, names


def matches_blacklist(phone: Optional[str], name: Optional[str], keys: tuple[Iterable[str], Iterable[str]]) -> bool:
    phones, names = keys
    if phone and phone in phones:
        return True
    return bool(name and name.lower() in names)
