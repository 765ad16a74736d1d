from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def commission(amount: int, rate: float, minimum_fee: int = 1) -> int:
    """
    Platform fee for an order amount (minor units).

    max(minimum_fee, round(amount * rate)), halves rounded away from zero.
    """
    if amount < 0:
        raise ValueError("amount must not be negative")
    if rate < 0:
        raise ValueError("rate must not be negative")

    fee = (Decimal(int(amount)) * Decimal(str(rate))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(int(minimum_fee), int(fee))
