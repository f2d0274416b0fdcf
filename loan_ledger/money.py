"""
Money Arithmetic Module

Decimal helpers for loan figures. All amounts are rounded half-up to cents
at the point where they are computed or reported. NEVER uses float for
monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union
import re

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0')

Numeric = Union[Decimal, int, float, str]

# Optional sign, optional currency symbol, then a plain or exponent number
_AMOUNT_PATTERN = re.compile(
    r'^(?P<sign>[+-]?)[$€£¥₹]?(?P<number>(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)$'
)
_THOUSANDS_SEPARATOR = re.compile(r'(?<=\d),(?=\d{3}(?:\D|$))')


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert a numeric input to Decimal without float artifacts

    Floats go through str() so 0.1 becomes Decimal('0.1'), not the binary
    expansion. Strings may carry surrounding whitespace, a leading currency
    symbol and thousands separators; any other character is rejected.

    Raises:
        ValueError: If value is a bool, empty, or not a finite number
    """
    if isinstance(value, bool):
        raise ValueError("Boolean is not a numeric amount")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        match = _AMOUNT_PATTERN.match(_THOUSANDS_SEPARATOR.sub('', value.strip()))
        if not match:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
        try:
            result = Decimal(match.group('sign') + match.group('number'))
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
    else:
        raise ValueError(f"Unsupported numeric type: {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"Amount must be finite, got {value}")
    return result


def round2(value: Decimal) -> Decimal:
    """
    Round to two decimal places, half away from zero

    Raises:
        ValueError: If the value has too many digits to be held to the cent
    """
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Amount {value} is too large to round to cents")


def format_amount(value: Decimal) -> str:
    """Format for display and audit metadata"""
    return f"{round2(value):,.2f}"
