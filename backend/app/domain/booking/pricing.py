"""
Rental Price Calculation.

Server-side price of record for a booking. Partial days are charged as
whole days. The client-submitted price is only compared against this
value as a tripwire and is never persisted.
"""

import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")
SECONDS_PER_DAY = 86400


class PricingCalculator:
    
    @staticmethod
    def rental_days(pickup_datetime: datetime, return_datetime: datetime) -> int:
        """Number of chargeable days, rounding any partial day up."""
        seconds = (return_datetime - pickup_datetime).total_seconds()
        return max(math.ceil(seconds / SECONDS_PER_DAY), 1)
    
    @staticmethod
    def total_price(price_per_day, pickup_datetime: datetime, return_datetime: datetime) -> Decimal:
        """ceil(days) x price_per_day, rounded to cents."""
        days = PricingCalculator.rental_days(pickup_datetime, return_datetime)
        return (Decimal(days) * Decimal(str(price_per_day))).quantize(CENTS, rounding=ROUND_HALF_UP)
    
    @staticmethod
    def within_tolerance(client_price, calculated_price: Decimal, tolerance: float) -> bool:
        """
        True if |client - calculated| / calculated <= tolerance.
        
        A zero calculated price only accepts a zero client price.
        """
        client = Decimal(str(client_price))
        if calculated_price == 0:
            return client == 0
        drift = abs(client - calculated_price) / calculated_price
        return drift <= Decimal(str(tolerance))
