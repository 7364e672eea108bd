"""Typed requests for each ISSNet operation.

The query request is a union of three variants, so a caller can only ever
express one query mode at a time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Union

from issnet.models.company import CompanyIdentity
from issnet.models.customer import CustomerIdentity
from issnet.models.invoice import InvoiceRequest, TaxBreakdown
from issnet.services.exceptions import ValidationError
from issnet.utils.validators import validate_cancel_reason, validate_monetary

_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class Withholdings:
    """Federal withholdings reported on the RPS. All zero unless supplied."""

    pis: Decimal = _ZERO
    cofins: Decimal = _ZERO
    inss: Decimal = _ZERO
    ir: Decimal = _ZERO
    csll: Decimal = _ZERO
    outras: Decimal = _ZERO

    def __post_init__(self) -> None:
        for name in ("pis", "cofins", "inss", "ir", "csll", "outras"):
            object.__setattr__(self, name, validate_monetary(getattr(self, name)))


@dataclass(frozen=True)
class SubmitRequest:
    company: CompanyIdentity
    customer: CustomerIdentity
    invoice: InvoiceRequest
    breakdown: TaxBreakdown
    withholdings: Withholdings = field(default_factory=Withholdings)
    emitted_at: datetime | None = None  # None means now (Brasília time)


@dataclass(frozen=True)
class QueryByProtocol:
    company: CompanyIdentity
    protocol: str

    def __post_init__(self) -> None:
        if not self.protocol or not self.protocol.strip():
            raise ValidationError("Protocolo e obrigatorio")


@dataclass(frozen=True)
class QueryByNumber:
    company: CompanyIdentity
    nfse_number: str

    def __post_init__(self) -> None:
        if not self.nfse_number or not str(self.nfse_number).strip():
            raise ValidationError("Numero da NFS-e e obrigatorio")


@dataclass(frozen=True)
class QueryByPeriod:
    """Issue-date window, both ends inclusive."""

    company: CompanyIdentity
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError("Data inicial posterior a data final")


QueryRequest = Union[QueryByProtocol, QueryByNumber, QueryByPeriod]


@dataclass(frozen=True)
class CancelRequest:
    company: CompanyIdentity
    nfse_number: str
    verification_code: str
    reason: str

    def __post_init__(self) -> None:
        if not self.nfse_number or not self.verification_code:
            raise ValidationError("Dados da NFS-e nao encontrados para cancelamento")
        object.__setattr__(self, "reason", validate_cancel_reason(self.reason))
