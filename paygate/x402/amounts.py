# paygate/x402/amounts.py
"""
Decimal price to integer minor-unit conversion.

Prices are configured as decimal strings ("0.1", "2.50") and advertised to
clients as integer strings in the asset's smallest unit. USDC-like assets use
6 decimals, so "0.1" becomes "100000". Fractions below one minor unit are
truncated, never rounded up.
"""
from decimal import Decimal, InvalidOperation, Overflow, ROUND_FLOOR, localcontext

USDC_DECIMALS = 6


def parse_price(price: str) -> Decimal:
    """
    Parse a configured decimal price.

    Raises:
        ValueError: If the price is not a finite, non-negative decimal.
    """
    try:
        value = Decimal(str(price).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid price: {price!r}")

    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid price: {price!r}")
    return value


def to_minor_units(price: str, decimals: int = USDC_DECIMALS) -> str:
    """
    Convert a decimal price to minor units: floor(price * 10^decimals).

    Args:
        price: Decimal price string, e.g. "0.1"
        decimals: Decimal scale of the asset (6 for USDC)

    Returns:
        The amount in minor units as a string, e.g. "100000"

    Raises:
        ValueError: If the price is invalid or too large to convert.
    """
    value = parse_price(price)
    with localcontext() as ctx:
        # Enough precision that scaling never rounds the coefficient
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits) + 1)
        try:
            minor = value.scaleb(decimals).to_integral_value(rounding=ROUND_FLOOR)
            return str(int(minor))
        except (Overflow, InvalidOperation, ValueError) as e:
            raise ValueError(f"Price out of range: {price!r} ({e})")
