from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum

from issnet.services.exceptions import IssnetError, ValidationError
from issnet.utils.validators import to_decimal, validate_date


@dataclass(frozen=True)
class InvoiceRequest:
    """Immutable input of a single issuance attempt."""

    rps_number: str
    competence_date: str  # YYYY-MM-DD
    description: str
    base_amount: Decimal
    iss_rate: Decimal
    deductions: Decimal = Decimal("0")
    rps_series: str = "UNICA"
    service_code: str | None = None  # None means use the company's service-list item

    def __post_init__(self) -> None:
        if not str(self.rps_number).strip():
            raise ValidationError("Numero do RPS e obrigatorio")
        if not self.description or not self.description.strip():
            raise ValidationError("Discriminacao do servico e obrigatoria")
        validate_date(self.competence_date)
        object.__setattr__(self, "rps_number", str(self.rps_number).strip())
        object.__setattr__(self, "base_amount", to_decimal(self.base_amount))
        object.__setattr__(self, "iss_rate", to_decimal(self.iss_rate))
        object.__setattr__(self, "deductions", to_decimal(self.deductions))

    @classmethod
    def from_dict(cls, d: dict) -> InvoiceRequest:
        """Create a request from an API payload (``amount`` accepted for ``base_amount``)."""
        return cls(
            rps_number=str(d["rps_number"]),
            competence_date=d["competence_date"],
            description=d["description"],
            base_amount=d.get("base_amount", d.get("amount")),
            iss_rate=d["iss_rate"],
            deductions=d.get("deductions") or Decimal("0"),
            rps_series=d.get("rps_series") or "UNICA",
            service_code=d.get("service_code") or None,
        )


@dataclass(frozen=True)
class TaxBreakdown:
    """Rounded tax figures of one invoice. Every monetary field is final."""

    base_value: Decimal
    iss_rate: Decimal
    iss_value: Decimal
    deductions: Decimal
    net_value: Decimal


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    ISSUED = "issued"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({InvoiceStatus.FAILED, InvoiceStatus.CANCELED})


@dataclass(frozen=True)
class InvoiceRecord:
    """Snapshot of one issuance attempt.

    Transitions return a new snapshot; a record is never changed in place.
    """

    request: InvoiceRequest
    status: InvoiceStatus = InvoiceStatus.PENDING
    breakdown: TaxBreakdown | None = None
    protocol: str | None = None
    nfse_number: str | None = None
    verification_code: str | None = None
    errors: tuple[str, ...] = ()
    error: IssnetError | None = field(default=None, compare=False)
    simulated: bool = False

    def transition(self, status: InvoiceStatus, **changes) -> InvoiceRecord:
        allowed = _TRANSITIONS.get(self.status, frozenset())
        if status not in allowed:
            raise ValidationError(
                f"Transicao invalida: {self.status.value} -> {status.value}"
            )
        return replace(self, status=status, **changes)

    def raise_for_error(self) -> None:
        """Re-raise the error that made this attempt fail, if any."""
        if self.error is not None:
            raise self.error


_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.ISSUED, InvoiceStatus.FAILED}),
    InvoiceStatus.ISSUED: frozenset({InvoiceStatus.CANCELED}),
}
