from __future__ import annotations

import logging

import requests
import requests.exceptions
from requests_pkcs12 import Pkcs12Adapter

from issnet import config
from issnet.services.exceptions import TransportError
from issnet.services.xml_builder import (
    OP_CANCEL,
    OP_QUERY_LOT,
    OP_QUERY_NFSE,
    OP_SUBMIT,
    build_soap_envelope,
)
from issnet.utils.certificate import SigningCredential
from issnet.utils.masking import mask_sensitive_data

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/soap+xml; charset=utf-8"
USER_AGENT = "emissor-issnet-df/0.1"

_BODY_EXCERPT = 500


class IssnetSoapClient:
    """Single-attempt SOAP 1.2 client for the ISSNet DF web service.

    When a credential is given the PFX is mounted on the session for mutual
    TLS. Query operations work without one; submit and cancel need it, which
    is for the caller to ensure.
    """

    simulated = False

    def __init__(
        self,
        url: str,
        timeout: float = config.DEFAULT_TIMEOUT_MS / 1000,
        credential: SigningCredential | None = None,
        session: requests.Session | None = None,
        env: str = "homolog",
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.env = env
        self.credential = credential
        self.session = session or requests.Session()
        if credential is not None:
            self.session.mount(
                "https://",
                Pkcs12Adapter(
                    pkcs12_data=credential.pfx_data,
                    pkcs12_password=credential.passphrase,
                ),
            )

    @classmethod
    def for_environment(
        cls,
        env: str | None = None,
        credential: SigningCredential | None = None,
    ) -> IssnetSoapClient:
        """Client configured from ISSNET_* variables for *env* (default ISSNET_ENV)."""
        env = env or config.get_environment()
        return cls(
            config.get_endpoint(env),
            timeout=config.get_timeout(),
            credential=credential,
            env=env,
        )

    def call(self, xml_body: str, operation: str) -> str:
        """POST *xml_body* wrapped in a SOAP envelope and return the raw response text.

        Raises TransportError for non-2xx statuses, timeouts, TLS and
        connection failures.
        """
        envelope = build_soap_envelope(xml_body, operation)
        headers = {
            "Content-Type": CONTENT_TYPE,
            "SOAPAction": f'"{config.ISSNET_WS_NS}/{operation}"',
            "User-Agent": USER_AGENT,
        }

        logger.info(
            "SOAP %s -> %s (%d bytes, mTLS=%s)",
            operation,
            self.url,
            len(envelope),
            self.credential is not None,
        )
        logger.debug("SOAP request: %s", mask_sensitive_data(envelope))

        try:
            resp = self.session.post(
                self.url,
                data=envelope.encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise TransportError(f"Tempo esgotado na chamada SOAP {operation}: {exc}") from exc
        except requests.exceptions.SSLError as exc:
            raise TransportError(f"Falha TLS na chamada SOAP {operation}: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"Erro de conexao na chamada SOAP {operation}: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            body = resp.text[:_BODY_EXCERPT] if resp.text else ""
            logger.warning("SOAP %s falhou com HTTP %s", operation, resp.status_code)
            raise TransportError(
                f"Erro SOAP {operation} ({resp.status_code}): {mask_sensitive_data(body)}",
                status_code=resp.status_code,
            )

        logger.info("SOAP %s <- HTTP %s (%d bytes)", operation, resp.status_code, len(resp.text or ""))
        logger.debug("SOAP response: %s", mask_sensitive_data(resp.text))
        return resp.text

    def submit_lot_sync(self, xml_body: str) -> str:
        return self.call(xml_body, OP_SUBMIT)

    def query_lot(self, xml_body: str) -> str:
        return self.call(xml_body, OP_QUERY_LOT)

    def query_nfse(self, xml_body: str) -> str:
        return self.call(xml_body, OP_QUERY_NFSE)

    def cancel_nfse(self, xml_body: str) -> str:
        return self.call(xml_body, OP_CANCEL)

    def check_connectivity(self) -> None:
        """Send an empty ConsultarNfse to prove the endpoint is reachable.

        Any HTTP answer, even an error status, counts as reachable. Network
        failures propagate as TransportError.
        """
        empty = f'<ConsultarNfseEnvio xmlns="{config.ABRASF_NS}"></ConsultarNfseEnvio>'
        try:
            self.query_nfse(empty)
        except TransportError as exc:
            if exc.status_code is None:
                raise
            logger.info("ISSNet respondeu HTTP %s ao teste de conectividade", exc.status_code)
