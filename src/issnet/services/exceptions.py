from __future__ import annotations


class IssnetError(Exception):
    """Base class for every error raised by the issuance core."""


class ValidationError(IssnetError, ValueError):
    """Malformed or missing input, detected before any network activity."""


class ComputationError(IssnetError, ArithmeticError):
    """Arithmetic input out of domain (NaN, Infinity, unparsable number)."""


class TransportError(IssnetError):
    """The ISSNet endpoint could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ProtocolError(IssnetError):
    """ISSNet answered but signalled failure (SOAP Fault or MensagemRetorno)."""

    def __init__(self, errors: list[str], raw_xml: str = "") -> None:
        super().__init__("; ".join(errors) or "Resposta ISSNet sem sucesso")
        self.errors = list(errors)
        self.raw_xml = raw_xml
