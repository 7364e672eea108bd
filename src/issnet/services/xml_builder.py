from __future__ import annotations

import time
from datetime import date, datetime
from decimal import Decimal

from lxml import etree

from issnet.config import (
    ABRASF_NS,
    ABRASF_VERSION,
    BRT,
    COD_MUNICIPIO_BRASILIA,
    ISSNET_WS_NS,
    SOAP12_NS,
    XSD_NS,
    XSI_NS,
)
from issnet.models.company import CompanyIdentity
from issnet.models.customer import CustomerIdentity
from issnet.models.operations import (
    CancelRequest,
    QueryByNumber,
    QueryByPeriod,
    QueryByProtocol,
    QueryRequest,
    SubmitRequest,
)
from issnet.services.exceptions import ValidationError
from issnet.utils.validators import only_digits, tax_id_kind

NSMAP = {None: ABRASF_NS}

SOAP_NSMAP = {"soap12": SOAP12_NS, "xsi": XSI_NS, "xsd": XSD_NS}

# Operation names understood by the ISSNet web service
OP_SUBMIT = "RecepcionarLoteRpsSincrono"
OP_QUERY_LOT = "ConsultarLoteRps"
OP_QUERY_NFSE = "ConsultarNfse"
OP_CANCEL = "CancelarNfse"

NATUREZA_TRIBUTACAO_MUNICIPIO = "1"
ISS_NAO_RETIDO = "2"
TIPO_RPS = "1"
STATUS_NORMAL = "1"
CANCELAMENTO_ERRO_EMISSAO = "1"


def _q(tag: str) -> str:
    return f"{{{ABRASF_NS}}}{tag}"


def _sub(parent: etree._Element, tag: str, text: str | None = None, **attrs: str) -> etree._Element:
    el = etree.SubElement(parent, _q(tag), attrs)
    if text is not None:
        el.text = text
    return el


def _root(tag: str) -> etree._Element:
    return etree.Element(_q(tag), nsmap=NSMAP)  # type: ignore[arg-type]  # lxml stubs don't model None key for default ns


def format_money(value: Decimal) -> str:
    """Render an amount with exactly two decimal digits."""
    return f"{Decimal(value):.2f}"


def format_rate(rate: Decimal) -> str:
    """Render a fractional rate as a percentage with four decimals (0.05 -> 5.0000)."""
    return f"{Decimal(rate) * 100:.4f}"


def format_datetime(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S")


def next_lot_number() -> str:
    """Lot number from a nanosecond timestamp, distinct for each call in practice."""
    return str(time.time_ns())


def _cpf_cnpj(parent: etree._Element, tax_id: str) -> etree._Element:
    cpf_cnpj = _sub(parent, "CpfCnpj")
    _sub(cpf_cnpj, tax_id_kind(tax_id), only_digits(tax_id))
    return cpf_cnpj


def _provider_identification(parent: etree._Element, company: CompanyIdentity) -> None:
    _cpf_cnpj(parent, company.cnpj)
    _sub(parent, "InscricaoMunicipal", company.municipal_registration)


def _customer_block(parent: etree._Element, customer: CustomerIdentity) -> None:
    tomador = _sub(parent, "Tomador")
    ident = _sub(tomador, "IdentificacaoTomador")
    _cpf_cnpj(ident, customer.tax_id)
    _sub(tomador, "RazaoSocial", customer.legal_name)

    if customer.address is not None:
        addr = customer.address
        end = _sub(tomador, "Endereco")
        _sub(end, "Endereco", addr.street)
        _sub(end, "Numero", addr.number or "S/N")
        _sub(end, "Complemento", addr.complement)
        _sub(end, "Bairro", addr.neighborhood)
        _sub(end, "CodigoMunicipio", addr.municipality_code or COD_MUNICIPIO_BRASILIA)
        _sub(end, "Uf", addr.state or "DF")
        _sub(end, "Cep", only_digits(addr.zip_code))

    if customer.email:
        contato = _sub(tomador, "Contato")
        _sub(contato, "Email", customer.email)


def build_submit(request: SubmitRequest, lot_number: str | None = None) -> etree._Element:
    """Build an EnviarLoteRpsSincronoEnvio document with a single RPS.

    Returns the root element, unsigned.
    """
    company = request.company
    invoice = request.invoice
    breakdown = request.breakdown
    wh = request.withholdings
    lote_number = lot_number or next_lot_number()
    emitted_at = request.emitted_at or datetime.now(BRT)

    envio = _root("EnviarLoteRpsSincronoEnvio")
    lote = _sub(envio, "LoteRps", Id=f"lote{lote_number}", versao=ABRASF_VERSION)
    _sub(lote, "NumeroLote", lote_number)
    _provider_identification(lote, company)
    _sub(lote, "QuantidadeRps", "1")

    lista = _sub(lote, "ListaRps")
    rps = _sub(lista, "Rps")
    inf = _sub(rps, "InfRps", Id=f"rps{invoice.rps_number}")

    ident = _sub(inf, "IdentificacaoRps")
    _sub(ident, "Numero", invoice.rps_number)
    _sub(ident, "Serie", invoice.rps_series or "UNICA")
    _sub(ident, "Tipo", TIPO_RPS)

    _sub(inf, "DataEmissao", format_datetime(emitted_at))
    _sub(inf, "Competencia", invoice.competence_date)
    _sub(inf, "NaturezaOperacao", NATUREZA_TRIBUTACAO_MUNICIPIO)
    if company.regime_especial_tributacao:
        _sub(inf, "RegimeEspecialTributacao", company.regime_especial_tributacao)
    _sub(inf, "OptanteSimplesNacional", company.optante_simples_nacional)
    _sub(inf, "IncentivadorCultural", company.incentivador_cultural)
    _sub(inf, "Status", STATUS_NORMAL)

    servico = _sub(inf, "Servico")
    valores = _sub(servico, "Valores")
    _sub(valores, "ValorServicos", format_money(breakdown.base_value))
    _sub(valores, "ValorDeducoes", format_money(breakdown.deductions))
    _sub(valores, "ValorPis", format_money(wh.pis))
    _sub(valores, "ValorCofins", format_money(wh.cofins))
    _sub(valores, "ValorInss", format_money(wh.inss))
    _sub(valores, "ValorIr", format_money(wh.ir))
    _sub(valores, "ValorCsll", format_money(wh.csll))
    _sub(valores, "IssRetido", ISS_NAO_RETIDO)
    _sub(valores, "ValorIss", format_money(breakdown.iss_value))
    _sub(valores, "OutrasRetencoes", format_money(wh.outras))
    _sub(valores, "Aliquota", format_rate(breakdown.iss_rate))
    _sub(valores, "DescontoIncondicionado", "0.00")
    _sub(valores, "DescontoCondicionado", "0.00")
    _sub(servico, "ItemListaServico", invoice.service_code or company.service_list_item)
    _sub(servico, "CodigoTributacaoMunicipio", company.municipal_taxation_code)
    _sub(servico, "Discriminacao", invoice.description)
    _sub(servico, "CodigoMunicipio", COD_MUNICIPIO_BRASILIA)

    prestador = _sub(inf, "Prestador")
    _provider_identification(prestador, company)

    _customer_block(inf, request.customer)

    return envio


def make_query(
    company: CompanyIdentity,
    *,
    protocol: str | None = None,
    nfse_number: str | None = None,
    period: tuple[date, date] | None = None,
) -> QueryRequest:
    """Turn keyword selections into a typed query; exactly one must be given."""
    chosen = [name for name, value in (
        ("protocol", protocol),
        ("nfse_number", nfse_number),
        ("period", period),
    ) if value]
    if len(chosen) != 1:
        raise ValidationError(
            "Informe exatamente um criterio de consulta: protocolo, numero ou periodo"
            f" (recebido: {', '.join(chosen) or 'nenhum'})"
        )
    if protocol:
        return QueryByProtocol(company=company, protocol=protocol)
    if nfse_number:
        return QueryByNumber(company=company, nfse_number=str(nfse_number))
    start, end = period  # type: ignore[misc]
    return QueryByPeriod(company=company, start=start, end=end)


def build_query(query: QueryRequest) -> etree._Element:
    """Build ConsultarLoteRpsEnvio (by protocol) or ConsultarNfseEnvio (by number/period)."""
    if isinstance(query, QueryByProtocol):
        envio = _root("ConsultarLoteRpsEnvio")
        prestador = _sub(envio, "Prestador")
        _provider_identification(prestador, query.company)
        _sub(envio, "Protocolo", query.protocol.strip())
        return envio

    if isinstance(query, QueryByNumber):
        envio = _root("ConsultarNfseEnvio")
        prestador = _sub(envio, "Prestador")
        _provider_identification(prestador, query.company)
        _sub(envio, "NumeroNfse", str(query.nfse_number).strip())
        return envio

    if isinstance(query, QueryByPeriod):
        envio = _root("ConsultarNfseEnvio")
        prestador = _sub(envio, "Prestador")
        _provider_identification(prestador, query.company)
        periodo = _sub(envio, "PeriodoEmissao")
        _sub(periodo, "DataInicial", query.start.isoformat())
        _sub(periodo, "DataFinal", query.end.isoformat())
        return envio

    raise ValidationError(f"Tipo de consulta desconhecido: {type(query).__name__}")


def query_operation(query: QueryRequest) -> str:
    """SOAP operation that serves *query*."""
    return OP_QUERY_LOT if isinstance(query, QueryByProtocol) else OP_QUERY_NFSE


def build_cancel(request: CancelRequest) -> etree._Element:
    """Build a CancelarNfseEnvio document. Cancellation code is fixed to 1."""
    company = request.company
    envio = _root("CancelarNfseEnvio")
    pedido = _sub(envio, "Pedido")
    inf = _sub(pedido, "InfPedidoCancelamento", Id=f"cancel{request.nfse_number}")
    ident = _sub(inf, "IdentificacaoNfse")
    _sub(ident, "Numero", request.nfse_number)
    _provider_identification(ident, company)
    _sub(ident, "CodigoMunicipio", COD_MUNICIPIO_BRASILIA)
    _sub(ident, "CodigoVerificacao", request.verification_code)
    _sub(inf, "CodigoCancelamento", CANCELAMENTO_ERRO_EMISSAO)
    _sub(inf, "MotivoCancelamento", request.reason)
    return envio


def to_xml(element: etree._Element, pretty: bool = False) -> str:
    """Serialize a document with an XML declaration."""
    return etree.tostring(
        element, xml_declaration=True, encoding="utf-8", pretty_print=pretty
    ).decode("utf-8")


def build_soap_envelope(xml_body: str, operation: str) -> str:
    """Wrap *xml_body* in a SOAP 1.2 envelope, as CDATA inside ArquivoXML."""
    envelope = etree.Element(f"{{{SOAP12_NS}}}Envelope", nsmap=SOAP_NSMAP)
    body = etree.SubElement(envelope, f"{{{SOAP12_NS}}}Body")
    op = etree.SubElement(body, f"{{{ISSNET_WS_NS}}}{operation}", nsmap={None: ISSNET_WS_NS})  # type: ignore[dict-item]
    arquivo = etree.SubElement(op, f"{{{ISSNET_WS_NS}}}ArquivoXML")
    arquivo.text = etree.CDATA(xml_body)
    return etree.tostring(envelope, xml_declaration=True, encoding="utf-8").decode("utf-8")


def validate_abrasf(xml: str) -> list[str]:
    """Cheap structural sanity check of a built document. Returns the problems found."""
    errors: list[str] = []
    if f'xmlns="{ABRASF_NS}"' not in xml:
        errors.append("Namespace ABRASF nao encontrado")
    if "<CpfCnpj>" not in xml:
        errors.append("Identificacao do prestador nao encontrada")
    if "<InscricaoMunicipal>" not in xml:
        errors.append("Inscricao municipal nao encontrada")
    if "EnviarLoteRpsSincronoEnvio" in xml and "<ValorServicos>" not in xml:
        errors.append("Valor dos servicos nao encontrado")
    return errors
