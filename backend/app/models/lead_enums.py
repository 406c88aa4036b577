"""
Lead (booking lifecycle) enumerations.
"""

import enum


class LeadStatus(str, enum.Enum):
    """Booking lifecycle status as seen by the partner."""
    NEW = "NEW"  # Submitted by customer, reservation hold running
    CLAIMED = "CLAIMED"  # Partner staff took ownership
    PICKUP = "PICKUP"  # Pickup confirmed
    ACTIVE = "ACTIVE"  # Car is with the customer
    RETURN = "RETURN"  # Return confirmed
    COMPLETED = "COMPLETED"  # Closed, commission logged
    CANCELLED = "CANCELLED"  # Closed without rental


TERMINAL_LEAD_STATUSES = frozenset({LeadStatus.COMPLETED, LeadStatus.CANCELLED})
