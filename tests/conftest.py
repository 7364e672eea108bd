from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from lxml import etree

from issnet.config import ABRASF_NS
from issnet.models.company import CompanyIdentity
from issnet.models.customer import CustomerIdentity
from issnet.models.invoice import InvoiceRequest
from issnet.utils.certificate import SigningCredential

NS = {"n": ABRASF_NS}


def xml_text(el: etree._Element, path: str) -> str | None:
    """Extract text by a slash path of ABRASF local names, e.g. ``LoteRps/NumeroLote``."""
    xpath = "/".join(f"n:{step}" for step in path.split("/"))
    found = el.find(xpath, namespaces=NS)
    return found.text if found is not None else None


# --- Company fixtures ---


@pytest.fixture
def company_dict() -> dict:
    return {
        "cnpj": "12.345.678/0001-99",
        "im": "0012345",
        "item_lista_servico": "01.07",
        "cod_tributacao_municipio": "010700",
        "environment": "homolog",
        "name": "ACME SOFTWARE LTDA",
    }


@pytest.fixture
def company(company_dict: dict) -> CompanyIdentity:
    return CompanyIdentity.from_dict(company_dict)


# --- Customer fixtures ---


@pytest.fixture
def customer_dict() -> dict:
    return {
        "cpf_cnpj": "123.456.789-09",
        "name": "Maria da Silva",
        "email": "maria@example.com",
        "address": {
            "street": "SQS 308 Bloco C",
            "number": "101",
            "complement": "Apto 101",
            "neighborhood": "Asa Sul",
            "state": "DF",
            "zip_code": "70355-030",
        },
    }


@pytest.fixture
def customer(customer_dict: dict) -> CustomerIdentity:
    return CustomerIdentity.from_dict(customer_dict)


@pytest.fixture
def company_customer() -> CustomerIdentity:
    return CustomerIdentity(tax_id="98.765.432/0001-10", legal_name="Cliente Corp LTDA")


# --- Invoice fixtures ---


@pytest.fixture
def invoice_request() -> InvoiceRequest:
    return InvoiceRequest(
        rps_number="000042",
        competence_date="2025-06-01",
        description="Desenvolvimento de software sob encomenda",
        base_amount=Decimal("86.06"),
        iss_rate=Decimal("0.05"),
    )


# --- Certificate / PFX fixtures ---


@pytest.fixture(scope="session")
def test_key_and_cert():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, "ACME SOFTWARE LTDA:12345678000199"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
        ]
    )
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime.now(UTC) - timedelta(days=1))
        .not_valid_after(datetime.now(UTC) + timedelta(days=365))
        .sign(key, hashes.SHA256())
    )
    return key, cert


@pytest.fixture(scope="session")
def pfx_bytes(test_key_and_cert) -> bytes:
    key, cert = test_key_and_cert
    return pkcs12.serialize_key_and_certificates(
        name=b"test",
        key=key,
        cert=cert,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(b"testpass"),
    )


@pytest.fixture
def credential(pfx_bytes) -> SigningCredential:
    return SigningCredential(pfx_data=pfx_bytes, passphrase="testpass")


@pytest.fixture
def test_pfx(tmp_path, pfx_bytes):
    pfx_path = tmp_path / "test.pfx"
    pfx_path.write_bytes(pfx_bytes)
    return str(pfx_path), "testpass"


# --- ISSNet response samples ---


@pytest.fixture
def issued_response() -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://www.w3.org/2003/05/soap-envelope">'
        "<soap:Body>"
        '<RecepcionarLoteRpsSincronoResponse xmlns="http://www.issnetonline.com.br/webserviceabrasf/homolog">'
        "<RecepcionarLoteRpsSincronoResult><![CDATA["
        '<?xml version="1.0" encoding="utf-8"?>'
        f'<EnviarLoteRpsSincronoResposta xmlns="{ABRASF_NS}">'
        "<NumeroLote>1718000000000</NumeroLote>"
        "<DataRecebimento>2025-06-01T10:00:00</DataRecebimento>"
        "<Protocolo>PROT123456</Protocolo>"
        "<ListaNfse><CompNfse><Nfse><InfNfse>"
        "<Numero>2025000123</Numero>"
        "<CodigoVerificacao>AB12CD34</CodigoVerificacao>"
        "<DataEmissao>2025-06-01T10:00:01</DataEmissao>"
        "<DeclaracaoPrestacaoServico><InfDeclaracaoPrestacaoServico><Rps>"
        "<IdentificacaoRps><Numero>000042</Numero><Serie>UNICA</Serie><Tipo>1</Tipo></IdentificacaoRps>"
        "</Rps><Servico><Valores><ValorServicos>86.06</ValorServicos><ValorIss>4.30</ValorIss></Valores>"
        "<Discriminacao>Desenvolvimento de software sob encomenda</Discriminacao></Servico>"
        "</InfDeclaracaoPrestacaoServico></DeclaracaoPrestacaoServico>"
        "</InfNfse></Nfse></CompNfse></ListaNfse>"
        "</EnviarLoteRpsSincronoResposta>"
        "]]></RecepcionarLoteRpsSincronoResult>"
        "</RecepcionarLoteRpsSincronoResponse>"
        "</soap:Body></soap:Envelope>"
    )


@pytest.fixture
def rejected_response() -> str:
    return (
        f'<EnviarLoteRpsSincronoResposta xmlns="{ABRASF_NS}">'
        "<ListaMensagemRetorno>"
        "<MensagemRetorno><Codigo>E160</Codigo>"
        "<Mensagem>CNPJ do prestador nao autorizado</Mensagem>"
        "<Correcao>Verifique o cadastro</Correcao></MensagemRetorno>"
        "<MensagemRetorno><Codigo>E10</Codigo><Mensagem>RPS ja informado</Mensagem></MensagemRetorno>"
        "</ListaMensagemRetorno>"
        "</EnviarLoteRpsSincronoResposta>"
    )


@pytest.fixture
def cancel_ok_response() -> str:
    return (
        f'<CancelarNfseResposta xmlns="{ABRASF_NS}">'
        "<RetCancelamento><NfseCancelamento><Confirmacao>"
        "<DataHora>2025-06-02T09:00:00</DataHora>"
        "</Confirmacao></NfseCancelamento></RetCancelamento>"
        "</CancelarNfseResposta>"
    )
