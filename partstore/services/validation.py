from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from partstore.core.errors import ValidationError

# Quantities are stored in 32-bit INTEGER columns on both backends.
MAX_INT = 2**31 - 1


def clean_code(value: Any, field: str) -> str:
    v = "" if value is None else str(value).strip()
    if not v:
        raise ValidationError(f"{field} required", field=field)
    return v


def optional_code(value: Any) -> Optional[str]:
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def parse_int(value: Any, field: str, *, minimum: int) -> int:
    """
    Accept ints and integral strings/floats ("10", "10.0", 10.0); reject
    bools, fractions, values past ``MAX_INT`` and anything below ``minimum``.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        if abs(value) > MAX_INT:
            raise ValidationError(f"{field} is too large", field=field)
        number = value
    else:
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be an integer (got {value!r})", field=field)
        if not dec.is_finite():
            raise ValidationError(f"{field} must be an integer (got {value!r})", field=field)
        # Bound first: int() on something like 1e999999999 is very expensive.
        if abs(dec) > MAX_INT:
            raise ValidationError(f"{field} is too large", field=field)
        if dec != dec.to_integral_value():
            raise ValidationError(f"{field} must be an integer (got {value!r})", field=field)
        number = int(dec)
    if number < minimum:
        if minimum == 1:
            raise ValidationError(f"{field} must be a positive integer", field=field)
        raise ValidationError(f"{field} must be >= {minimum}", field=field)
    return number


def parse_quantity(value: Any, field: str = "quantity") -> int:
    return parse_int(value, field, minimum=1)


def parse_non_negative(value: Any, field: str) -> int:
    return parse_int(value, field, minimum=0)
