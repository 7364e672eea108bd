from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation

from issnet.services.exceptions import ComputationError, ValidationError

# Municipal law caps ISS at 5%. The calculator accepts any non-negative rate;
# callers that want the cap check it with validate_iss_rate.
MAX_ISS_RATE = Decimal("0.05")

MIN_CANCEL_REASON_LENGTH = 10


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert *value* to a finite Decimal.

    Floats go through ``str()`` so their shortest repr is used instead of the
    exact binary expansion. Raises ComputationError for NaN, Infinity or text
    that is not a number.
    """
    if isinstance(value, bool):
        raise ComputationError(f"Valor numerico invalido: {value!r}")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ComputationError(f"Valor numerico invalido: {value!r}") from None
    if not d.is_finite():
        raise ComputationError(f"Valor numerico nao finito: {value!r}")
    return d


def only_digits(value: str) -> str:
    """Strip every non-digit character."""
    return re.sub(r"\D", "", value or "")


def tax_id_kind(value: str) -> str:
    """Return ``"Cpf"`` or ``"Cnpj"`` for a tax id with 11 or 14 digits."""
    digits = only_digits(value)
    if len(digits) == 11:
        return "Cpf"
    if len(digits) == 14:
        return "Cnpj"
    raise ValidationError(f"CPF/CNPJ deve ter 11 ou 14 digitos: '{value}'")


def validate_cnpj(value: str) -> str:
    """Validate a CNPJ (14 digits after stripping punctuation)."""
    digits = only_digits(value)
    if len(digits) != 14:
        raise ValidationError(f"CNPJ deve ter 14 digitos: '{value}'")
    return digits


def validate_monetary(value: Decimal | int | float | str) -> Decimal:
    """Validate a non-negative finite monetary amount."""
    d = to_decimal(value)
    if d < 0:
        raise ValidationError(f"Valor nao pode ser negativo: '{value}'")
    return d


def validate_iss_rate(value: Decimal | int | float | str) -> Decimal:
    """Validate an ISS rate given as a fraction (0.05 = 5%).

    Used by callers before building an InvoiceRequest. The tax calculator
    does not apply the municipal cap on its own.
    """
    d = to_decimal(value)
    if d < 0:
        raise ValidationError(f"Aliquota nao pode ser negativa: '{value}'")
    if d > MAX_ISS_RATE:
        raise ValidationError(f"Aliquota ISS acima do limite de 5%: '{value}'")
    return d


def validate_date(value: str) -> str:
    """Validate an ISO date string (YYYY-MM-DD)."""
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Data invalida: '{value}'. Use YYYY-MM-DD.") from None
    return value


def validate_cancel_reason(reason: str | None) -> str:
    """Return the stripped reason; at least 10 characters are required."""
    text = (reason or "").strip()
    if len(text) < MIN_CANCEL_REASON_LENGTH:
        raise ValidationError(
            f"Motivo do cancelamento deve ter pelo menos {MIN_CANCEL_REASON_LENGTH} caracteres"
        )
    return text


def validate_environment(value: str) -> str:
    if value not in ("homolog", "prod"):
        raise ValidationError(f"Ambiente invalido: '{value}'. Use homolog ou prod.")
    return value
