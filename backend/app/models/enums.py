"""
User and partner role enumerations.

Defines the role types for the car rental platform.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.
    
    Roles:
        CUSTOMER: Browses cars and books them (default role)
        PARTNER_ADMIN: Staff of a rental partner, drives leads forward
        PLATFORM_OWNER: Platform administrator with system-level access
    """
    CUSTOMER = "CUSTOMER"
    PARTNER_ADMIN = "PARTNER_ADMIN"
    PLATFORM_OWNER = "PLATFORM_OWNER"


class PartnerMemberRole(str, enum.Enum):
    """Role of a user inside a partner's team."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    STAFF = "STAFF"


class PartnerStatus(str, enum.Enum):
    """Partner account status."""
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
