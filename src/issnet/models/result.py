from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class NfseRecord:
    """One NFS-e found in an ISSNet response."""

    number: str
    verification_code: str | None = None
    issue_date: str | None = None
    rps_number: str | None = None
    service_amount: str | None = None
    iss_value: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class IssuanceResult:
    """Outcome of one parsed ISSNet response.

    ``simulated`` marks results produced by the simulation double, never by
    the real web service.
    """

    success: bool
    raw_response_xml: str
    protocol: str | None = None
    nfse_number: str | None = None
    verification_code: str | None = None
    errors: tuple[str, ...] = ()
    records: tuple[NfseRecord, ...] = ()
    simulated: bool = False

    def as_simulated(self) -> IssuanceResult:
        return replace(self, simulated=True)
