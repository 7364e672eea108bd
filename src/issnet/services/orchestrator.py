from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Protocol

from issnet.models.company import CompanyIdentity
from issnet.models.customer import CustomerIdentity
from issnet.models.invoice import InvoiceRecord, InvoiceRequest, InvoiceStatus
from issnet.models.operations import CancelRequest, QueryByProtocol, QueryRequest, SubmitRequest, Withholdings
from issnet.models.result import IssuanceResult
from issnet.services.exceptions import ProtocolError, TransportError, ValidationError
from issnet.services.response_parser import parse_response
from issnet.services.tax_calculator import calculate_tax_values
from issnet.services.xml_builder import (
    OP_CANCEL,
    OP_SUBMIT,
    build_cancel,
    build_query,
    build_submit,
    query_operation,
    to_xml,
)
from issnet.services.xml_signer import sign_cancel, sign_submit
from issnet.utils.certificate import SigningCredential
from issnet.utils.masking import mask_sensitive_data

logger = logging.getLogger(__name__)

AuditHook = Callable[..., Any]


class SoapTransport(Protocol):
    env: str

    def submit_lot_sync(self, xml_body: str) -> str: ...
    def query_lot(self, xml_body: str) -> str: ...
    def query_nfse(self, xml_body: str) -> str: ...
    def cancel_nfse(self, xml_body: str) -> str: ...


@dataclass
class IssuanceOrchestrator:
    """Drives one invoice through Pending -> Issued | Failed -> (Issued -> Canceled).

    All collaborators are injected. ``audit`` receives every exchange with the
    XML already masked; ``issnet.utils.ws_log.record_exchange`` fits it.
    """

    client: SoapTransport
    credential: SigningCredential | None = None
    audit: AuditHook | None = None

    def new_invoice(self, request: InvoiceRequest) -> InvoiceRecord:
        return InvoiceRecord(request=request)

    def retry(self, record: InvoiceRecord, rps_number: str) -> InvoiceRecord:
        """Start a fresh Pending attempt for a failed invoice under a new RPS number."""
        if record.status is not InvoiceStatus.FAILED:
            raise ValidationError("Apenas notas com falha podem ser reenviadas")
        if str(rps_number).strip() == record.request.rps_number:
            raise ValidationError("Reenvio exige um novo numero de RPS")
        return self.new_invoice(replace(record.request, rps_number=str(rps_number)))

    def issue(
        self,
        record: InvoiceRecord,
        company: CompanyIdentity,
        customer: CustomerIdentity,
        withholdings: Withholdings | None = None,
    ) -> InvoiceRecord:
        """Compute taxes, build, sign, send and classify one RPS.

        Input errors raise before any network call. Transport failures and
        authority rejections return a ``failed`` record carrying the error.
        """
        if record.status is not InvoiceStatus.PENDING:
            raise ValidationError(f"Nota com status {record.status.value} nao pode ser emitida")

        request = record.request
        breakdown = calculate_tax_values(request.base_amount, request.iss_rate, request.deductions)
        envio = build_submit(
            SubmitRequest(
                company=company,
                customer=customer,
                invoice=request,
                breakdown=breakdown,
                withholdings=withholdings or Withholdings(),
            )
        )
        if self.credential is not None:
            sign_submit(envio, self.credential)
        xml = to_xml(envio)

        logger.info(
            "Emitindo RPS %s/%s (base %s, ISS %s)",
            request.rps_number,
            request.rps_series,
            breakdown.base_value,
            breakdown.iss_value,
        )
        try:
            raw = self.client.submit_lot_sync(xml)
        except TransportError as exc:
            self._audit(OP_SUBMIT, xml, None, request.rps_number, exc)
            logger.warning("Falha de transporte ao emitir RPS %s: %s", request.rps_number, exc)
            return record.transition(
                InvoiceStatus.FAILED,
                breakdown=breakdown,
                errors=(str(exc),),
                error=exc,
            )

        self._audit(OP_SUBMIT, xml, raw, request.rps_number)
        result = self._parse(raw)

        if result.success and result.nfse_number:
            logger.info("RPS %s convertido na NFS-e %s", request.rps_number, result.nfse_number)
            return record.transition(
                InvoiceStatus.ISSUED,
                breakdown=breakdown,
                protocol=result.protocol,
                nfse_number=result.nfse_number,
                verification_code=result.verification_code,
                simulated=result.simulated,
            )

        errors = result.errors or ("Resposta ISSNet sem numero de NFS-e",)
        logger.warning("ISSNet rejeitou RPS %s: %s", request.rps_number, "; ".join(errors))
        return record.transition(
            InvoiceStatus.FAILED,
            breakdown=breakdown,
            protocol=result.protocol,
            errors=tuple(errors),
            error=ProtocolError(list(errors), raw_xml=result.raw_response_xml),
            simulated=result.simulated,
        )

    def cancel(self, record: InvoiceRecord, company: CompanyIdentity, reason: str) -> InvoiceRecord:
        """Cancel an issued NFS-e.

        Raises ValidationError (before any network call) unless the record is
        ``issued`` and the reason has at least 10 characters; TransportError or
        ProtocolError when the cancellation does not go through.
        """
        if record.status is not InvoiceStatus.ISSUED:
            raise ValidationError("Apenas notas emitidas podem ser canceladas")

        cancel_request = CancelRequest(
            company=company,
            nfse_number=record.nfse_number or "",
            verification_code=record.verification_code or "",
            reason=reason,
        )
        envio = build_cancel(cancel_request)
        if self.credential is not None:
            sign_cancel(envio, self.credential)
        xml = to_xml(envio)

        try:
            raw = self.client.cancel_nfse(xml)
        except TransportError as exc:
            self._audit(OP_CANCEL, xml, None, record.nfse_number, exc)
            raise

        self._audit(OP_CANCEL, xml, raw, record.nfse_number)
        result = self._parse(raw)
        if not result.success:
            raise ProtocolError(list(result.errors), raw_xml=result.raw_response_xml)

        logger.info("NFS-e %s cancelada", record.nfse_number)
        return record.transition(InvoiceStatus.CANCELED)

    def query(self, query: QueryRequest) -> IssuanceResult:
        """Run one query. Rejections come back as ``success=False`` with errors."""
        xml = to_xml(build_query(query))
        operation = query_operation(query)
        if isinstance(query, QueryByProtocol):
            raw = self._call_audited(operation, xml, self.client.query_lot)
        else:
            raw = self._call_audited(operation, xml, self.client.query_nfse)
        return self._parse(raw)

    def _call_audited(self, operation: str, xml: str, send: Callable[[str], str]) -> str:
        try:
            raw = send(xml)
        except TransportError as exc:
            self._audit(operation, xml, None, None, exc)
            raise
        self._audit(operation, xml, raw, None)
        return raw

    def _parse(self, raw: str) -> IssuanceResult:
        result = parse_response(raw)
        if getattr(self.client, "simulated", False):
            result = result.as_simulated()
        return result

    def _audit(
        self,
        operation: str,
        request_xml: str,
        response_xml: str | None,
        invoice_ref: str | None,
        exc: TransportError | None = None,
    ) -> None:
        if self.audit is None:
            return
        try:
            self.audit(
                operation=operation,
                request_xml=mask_sensitive_data(request_xml),
                response_xml=mask_sensitive_data(response_xml) if response_xml else None,
                http_status=exc.status_code if exc is not None else 200,
                invoice_ref=invoice_ref,
                env=getattr(self.client, "env", None),
                error=str(exc) if exc is not None else None,
            )
        except Exception:
            logger.warning("Failed to record SOAP exchange in audit log", exc_info=True)
