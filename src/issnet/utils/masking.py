from __future__ import annotations

import re

MASK = "***"
SIGNATURE_MASK = "[SIGNATURE_REMOVED]"

_MASKED_TAGS = ("Cnpj", "Cpf", "InscricaoMunicipal", "Email")

# Responses may carry the ABRASF document entity-escaped inside the SOAP
# result, so every pattern exists for "<" / ">" and for "&lt;" / "&gt;".
_BRACKETS = (("<", ">"), ("&lt;", "&gt;"))


def _element_pattern(tag: str, open_: str, close: str, content: str, flags: int = 0) -> re.Pattern:
    # <Cnpj>…</Cnpj>, <ns:Cnpj attr="x">…</ns:Cnpj>
    o, c = re.escape(open_), re.escape(close)
    return re.compile(
        rf"({o}((?:[\w.-]+:)?{tag})(?:\s(?:(?!{c}).)*?)?{c})({content})({o}/\2{c})", flags
    )


_TAG_PATTERNS = [
    _element_pattern(tag, open_, close, rf"(?:(?!{re.escape(open_)}).)+", re.DOTALL)
    for open_, close in _BRACKETS
    for tag in _MASKED_TAGS
]

_SIGNATURE_PATTERNS = [
    _element_pattern("Signature", open_, close, r".*?", re.DOTALL) for open_, close in _BRACKETS
]


def mask_sensitive_data(xml: str) -> str:
    """Hide tax ids, municipal registration, e-mail and signatures in *xml*.

    Tags are kept so the masked document still shows its structure, whether
    it is plain or entity-escaped.
    """
    if not xml:
        return xml
    masked = xml
    for pattern in _SIGNATURE_PATTERNS:
        masked = pattern.sub(rf"\1{SIGNATURE_MASK}\4", masked)
    for pattern in _TAG_PATTERNS:
        masked = pattern.sub(rf"\1{MASK}\4", masked)
    return masked
