"""Money rules: platform/gateway split, withdrawal fees, session pricing.

All amounts are whole rupees. Percentages round half-up, so 2% of 125 is 3
rather than Python's banker's-rounded 2.
"""
import math
from typing import NamedTuple

from mentorconnect import config


class Split(NamedTuple):
    platform_fee: int
    gateway_fee: int
    mentor_amount: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def payment_split(amount: int) -> Split:
    platform_fee = round_half_up(amount * config.PLATFORM_FEE_RATE)
    gateway_fee = round_half_up(amount * config.GATEWAY_FEE_RATE)
    return Split(platform_fee, gateway_fee, amount - platform_fee - gateway_fee)


def withdrawal_fee(amount: int) -> tuple[int, int]:
    """Return ``(processing_fee, net_amount)`` for a withdrawal request."""
    fee = max(round_half_up(amount * config.WITHDRAWAL_FEE_RATE), config.WITHDRAWAL_MIN_FEE)
    return fee, amount - fee


def session_price(hourly_rate: int, duration_minutes: int) -> int:
    return round_half_up(hourly_rate * duration_minutes / 60)


def to_paise(amount: int) -> int:
    return amount * 100
