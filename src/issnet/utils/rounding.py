"""ABNT NBR 5891 rounding for fiscal values.

Values are first normalized to six decimal places (round half even) and then
reduced to two places by the four NBR 5891 rules:

2.1  third digit < 5                                   -> truncate
2.2  third digit > 5, or 5 followed by non-zero digits -> round up
2.3  5 followed only by zeros, second digit odd        -> round up
2.4  5 followed only by zeros, second digit even       -> keep
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal, InvalidOperation, localcontext

from issnet.services.exceptions import ComputationError
from issnet.utils.validators import to_decimal

SIX_PLACES = Decimal("0.000001")
CENT = Decimal("0.01")

# Wide enough for any realistic amount quantized to 6 places.
_PRECISION = 60


def round_abnt(value: Decimal | int | float | str) -> Decimal:
    """Round *value* to exactly two decimal places following ABNT NBR 5891.

    Raises ComputationError for NaN, Infinity, non-numeric input or amounts
    too large to carry six decimal places.
    """
    d = to_decimal(value)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        try:
            normalized = d.quantize(SIX_PLACES, rounding=ROUND_HALF_EVEN)
        except InvalidOperation:
            raise ComputationError(f"Valor fora do intervalo suportado: {value!r}") from None
        magnitude = abs(normalized)
        rounded = _round_magnitude(magnitude)
        if normalized < 0 and rounded != 0:
            return -rounded
        return rounded


def _round_magnitude(magnitude: Decimal) -> Decimal:
    base = magnitude.quantize(CENT, rounding=ROUND_DOWN)
    if magnitude == base:
        return base

    fraction = f"{magnitude:f}".partition(".")[2].ljust(6, "0")
    third = int(fraction[2])
    remainder = fraction[3:]

    if third < 5:
        return base  # 2.1
    if third > 5 or remainder.strip("0"):
        return base + CENT  # 2.2
    if int(fraction[1]) % 2 == 1:
        return base + CENT  # 2.3
    return base  # 2.4
