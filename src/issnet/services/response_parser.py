"""Interpretation of ISSNet SOAP responses.

ISSNet returns the ABRASF document either inside a CDATA section or
entity-escaped as the text of the ``<Operation>Result`` element. Both forms
are unwrapped into a single tree and then read by local element name, so
namespace prefixes and whitespace do not matter.
"""

from __future__ import annotations

import logging
import re

from lxml import etree

from issnet.config import ABRASF_NS
from issnet.models.result import IssuanceResult, NfseRecord

logger = logging.getLogger(__name__)

_CDATA = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_XML_DECL = re.compile(r"<\?xml[^>]*\?>")

# Numero elements that do not identify the NFS-e itself
_NON_NFSE_NUMERO_PARENTS = frozenset({"IdentificacaoRps", "Endereco", "RpsSubstituido"})

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)


def clean_response(raw_xml: str) -> str:
    """Drop CDATA wrappers and inner XML declarations, keeping the content."""
    text = _CDATA.sub(r"\1", raw_xml or "")
    return _XML_DECL.sub("", text).strip()


def _local(el: etree._Element) -> str:
    if not isinstance(el.tag, str):
        return ""
    return etree.QName(el).localname


def _expand_escaped(root: etree._Element) -> None:
    """Replace text that is itself an XML document by the parsed element.

    Only wrapper elements outside the ABRASF namespace are expanded, so a
    Discriminacao that happens to look like markup stays text.
    """
    for el in list(root.iter()):
        if not isinstance(el.tag, str) or etree.QName(el).namespace == ABRASF_NS:
            continue
        text = (el.text or "").strip()
        if len(el) == 0 and text.startswith("<") and text.endswith(">"):
            try:
                inner = etree.fromstring(_XML_DECL.sub("", text).encode("utf-8"), _PARSER)
            except etree.XMLSyntaxError:
                continue
            el.text = None
            el.append(inner)
            _expand_escaped(inner)


def parse_tree(raw_xml: str) -> etree._Element:
    """Parse a raw response (or a built document) into an lxml tree.

    Raises etree.XMLSyntaxError when the text is not well-formed.
    """
    cleaned = clean_response(raw_xml)
    root = etree.fromstring(cleaned.encode("utf-8"), _PARSER)
    _expand_escaped(root)
    return root


def _iter_local(root: etree._Element, name: str):
    for el in root.iter():
        if _local(el) == name:
            yield el


def _text(el: etree._Element | None, strip: bool = True) -> str | None:
    """Element text, or None when it is missing or blank.

    With ``strip=False`` non-blank text comes back exactly as sent.
    """
    if el is None or not (el.text or "").strip():
        return None
    return el.text.strip() if strip else el.text


def _child(el: etree._Element, name: str) -> etree._Element | None:
    for child in el:
        if _local(child) == name:
            return child
    return None


def _first_text(root: etree._Element, name: str, strip: bool = True) -> str | None:
    for el in _iter_local(root, name):
        text = _text(el, strip=strip)
        if text:
            return text
    return None


def _nfse_number(root: etree._Element) -> str | None:
    for el in _iter_local(root, "InfNfse"):
        number = _text(_child(el, "Numero"))
        if number:
            return number
    for el in _iter_local(root, "Numero"):
        parent = el.getparent()
        if parent is not None and _local(parent) in _NON_NFSE_NUMERO_PARENTS:
            continue
        text = _text(el)
        if text:
            return text
    return None


def _format_message(el: etree._Element) -> str | None:
    """``Codigo - Mensagem (Correcao)`` for structured entries, else the text."""
    if len(el) == 0:
        return _text(el)
    codigo = _text(_child(el, "Codigo"))
    mensagem = _text(_child(el, "Mensagem"))
    correcao = _text(_child(el, "Correcao"))
    parts = [p for p in (codigo, mensagem) if p]
    if not parts:
        return " ".join(t.strip() for t in el.itertext() if t.strip()) or None
    message = " - ".join(parts)
    if correcao:
        message += f" ({correcao})"
    return message


def _fault_messages(root: etree._Element) -> list[str]:
    messages = []
    for fault in _iter_local(root, "Fault"):
        reason = _first_text(fault, "faultstring")
        if reason is None:
            reason_el = next(_iter_local(fault, "Reason"), None)
            reason = _first_text(reason_el, "Text") if reason_el is not None else None
        messages.append(f"SOAP Fault: {reason or 'sem descricao'}")
    return messages


def extract_errors(root: etree._Element) -> list[str]:
    """SOAP Fault reasons followed by every MensagemRetorno entry."""
    errors = _fault_messages(root)
    for el in _iter_local(root, "MensagemRetorno"):
        message = _format_message(el)
        if message:
            errors.append(message)
    return errors


def _records(root: etree._Element) -> list[NfseRecord]:
    records = []
    for inf in _iter_local(root, "InfNfse"):
        number = _text(_child(inf, "Numero"))
        if not number:
            continue
        rps_ident = next(_iter_local(inf, "IdentificacaoRps"), None)
        records.append(
            NfseRecord(
                number=number,
                verification_code=_text(_child(inf, "CodigoVerificacao")),
                issue_date=_text(_child(inf, "DataEmissao")),
                rps_number=_text(_child(rps_ident, "Numero")) if rps_ident is not None else None,
                service_amount=_first_text(inf, "ValorServicos"),
                iss_value=_first_text(inf, "ValorIss"),
                description=_first_text(inf, "Discriminacao", strip=False),
            )
        )
    return records


def parse_response(raw_xml: str) -> IssuanceResult:
    """Interpret an ISSNet response.

    ``success`` is True only when neither a SOAP Fault nor any
    MensagemRetorno is present. The cleaned XML is kept on the result.
    """
    cleaned = clean_response(raw_xml)
    try:
        root = parse_tree(raw_xml)
    except etree.XMLSyntaxError as exc:
        logger.warning("Resposta ISSNet nao e XML valido: %s", exc)
        return IssuanceResult(
            success=False,
            raw_response_xml=cleaned or (raw_xml or ""),
            errors=(f"Erro ao processar resposta: {exc}",),
        )

    errors = extract_errors(root)
    records = _records(root)
    nfse_number = _nfse_number(root)
    verification_code = _first_text(root, "CodigoVerificacao")
    if records:
        verification_code = records[0].verification_code or verification_code

    return IssuanceResult(
        success=not errors,
        raw_response_xml=cleaned,
        protocol=_first_text(root, "Protocolo"),
        nfse_number=nfse_number,
        verification_code=verification_code,
        errors=tuple(errors),
        records=tuple(records),
    )


def extract_text(raw_xml: str, tag: str) -> str | None:
    """First non-blank text of an element named *tag*, namespace-agnostic.

    The text is returned verbatim, surrounding whitespace included.
    """
    return _first_text(parse_tree(raw_xml), tag, strip=False)


def extract_all(raw_xml: str, tag: str) -> list[str]:
    """Text of every element named *tag*, in document order."""
    return [el.text or "" for el in _iter_local(parse_tree(raw_xml), tag)]
