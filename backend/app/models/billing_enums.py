"""
Billing enumerations.
"""

import enum


class CommissionStatus(str, enum.Enum):
    """Payout status of a commission log row."""
    PENDING = "PENDING"  # Written at completion, owed by partner
    PAID = "PAID"  # Marked by external payout tooling
