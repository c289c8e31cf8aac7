from decimal import ROUND_DOWN, Decimal

from payout.constants import BASE_UNITS_PER_TOKEN


def tokens_to_base(tokens: Decimal | int | str) -> int:
    """Convert a token amount to integer base units, truncating toward zero."""
    base = Decimal(tokens) * BASE_UNITS_PER_TOKEN
    return int(base.to_integral_value(rounding=ROUND_DOWN))


def base_to_tokens(base_units: int) -> Decimal:
    return Decimal(base_units) / BASE_UNITS_PER_TOKEN
