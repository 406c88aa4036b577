"""
Car-related enumerations.
"""

import enum


class ApprovalStatus(str, enum.Enum):
    """Platform approval of a partner's listing."""
    PENDING = "PENDING"  # Submitted by partner, awaiting review
    APPROVED = "APPROVED"  # Visible and bookable
    REJECTED = "REJECTED"  # Refused by platform


class RentalStatus(str, enum.Enum):
    """Operational status of a car."""
    AVAILABLE = "AVAILABLE"  # Can take new bookings
    RENTED = "RENTED"  # Out with a customer
    MAINTENANCE = "MAINTENANCE"  # Pulled from service by partner
