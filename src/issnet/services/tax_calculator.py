from __future__ import annotations

from decimal import Decimal, localcontext

from issnet.models.invoice import TaxBreakdown
from issnet.utils.rounding import round_abnt
from issnet.utils.validators import to_decimal

Number = Decimal | int | float | str

_PRECISION = 60


def calculate_iss(base_value: Number, rate: Number) -> Decimal:
    """ISS = base × rate at full precision, then ABNT rounding.

    >>> calculate_iss("86.06", "0.05")
    Decimal('4.30')
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        product = to_decimal(base_value) * to_decimal(rate)
    return round_abnt(product)


def calculate_net_value(base_value: Number, deductions: Number, iss_value: Number) -> Decimal:
    """Net value = base - deductions - ISS, ABNT rounded."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        net = to_decimal(base_value) - to_decimal(deductions) - to_decimal(iss_value)
    return round_abnt(net)


def calculate_tax_values(base_value: Number, iss_rate: Number, deductions: Number = 0) -> TaxBreakdown:
    """Compute the full tax breakdown for one invoice.

    Base and deductions are rounded on their own before use, ISS is taken on
    the rounded base and net value on the rounded figures, so every monetary
    field of the result is final.
    """
    rate = to_decimal(iss_rate)
    base = round_abnt(base_value)
    ded = round_abnt(deductions)
    iss = calculate_iss(base, rate)
    net = calculate_net_value(base, ded, iss)
    return TaxBreakdown(
        base_value=base,
        iss_rate=rate,
        iss_value=iss,
        deductions=ded,
        net_value=net,
    )
