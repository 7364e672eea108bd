from __future__ import annotations

from lxml import etree
from signxml.algorithms import (
    DigestAlgorithm,
    SignatureConstructionMethod,
    SignatureMethod,
)
from signxml.signer import XMLSigner

from issnet.config import ABRASF_NS
from issnet.utils.certificate import SigningCredential

C14N_ALGORITHM = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"


def _find(parent: etree._Element, tag: str) -> etree._Element | None:
    found = parent.find(f"{{{ABRASF_NS}}}{tag}")
    if found is None:
        found = parent.find(tag)
    return found


def sign_element(container: etree._Element, inf_tag: str, key_pem: bytes, cert_pem: bytes) -> etree._Element:
    """Enveloped RSA-SHA256 signature over the *inf_tag* child of *container*.

    The Signature ends up as the last child of *container*, after the signed
    block, as the ABRASF schema lays it out. Returns the signed container.
    """
    inf = _find(container, inf_tag)
    if inf is None:
        raise ValueError(f"{inf_tag} element not found in {etree.QName(container).localname}")

    ref_id = inf.get("Id")
    if not ref_id:
        raise ValueError(f"{inf_tag} is missing Id attribute")

    signer = XMLSigner(
        method=SignatureConstructionMethod.enveloped,
        signature_algorithm=SignatureMethod.RSA_SHA256,
        digest_algorithm=DigestAlgorithm.SHA256,
        c14n_algorithm=C14N_ALGORITHM,
    )

    parent = container.getparent()
    index = parent.index(container) if parent is not None else None
    if parent is not None:
        parent.remove(container)

    signed = signer.sign(
        container,
        key=key_pem,
        cert=cert_pem.decode(),
        reference_uri=f"#{ref_id}",
    )

    if parent is not None:
        parent.insert(index, signed)
    return signed


def sign_submit(envio: etree._Element, credential: SigningCredential) -> etree._Element:
    """Sign every Rps of an EnviarLoteRpsSincronoEnvio document in place."""
    key_pem, cert_pem, _ = credential.load()
    rps_list = envio.findall(f".//{{{ABRASF_NS}}}Rps")
    if not rps_list:
        raise ValueError("Rps element not found in lote")
    for rps in rps_list:
        sign_element(rps, "InfRps", key_pem, cert_pem)
    return envio


def sign_cancel(envio: etree._Element, credential: SigningCredential) -> etree._Element:
    """Sign the Pedido of a CancelarNfseEnvio document in place."""
    key_pem, cert_pem, _ = credential.load()
    pedido = _find(envio, "Pedido")
    if pedido is None:
        raise ValueError("Pedido element not found in CancelarNfseEnvio")
    sign_element(pedido, "InfPedidoCancelamento", key_pem, cert_pem)
    return envio
