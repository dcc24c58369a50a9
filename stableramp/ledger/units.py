from decimal import Decimal, InvalidOperation
from typing import Union

from stableramp.core.errors import ValidationError


def to_raw_units(amount: Union[str, int, Decimal], decimals: int) -> int:
    """Scale a human amount to integer token units without going through float."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError(f"Invalid token amount: {amount!r}")
    if not value.is_finite() or value < 0:
        raise ValidationError(f"Invalid token amount: {amount!r}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def format_units(raw: Union[str, int], decimals: int) -> str:
    """Render integer token units with exactly ``decimals`` fractional digits."""
    value = int(raw)
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac:0{decimals}d}"
