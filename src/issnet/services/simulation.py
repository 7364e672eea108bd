"""Simulated ISSNet transport for demos and offline development.

Every result obtained through this client is stamped ``simulated=True`` by
the orchestrator. It is never selected implicitly: build it directly or set
ISSNET_SIMULATE=true and use :func:`build_client`.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import datetime

from issnet import config
from issnet.services.soap_client import IssnetSoapClient
from issnet.services.xml_builder import OP_CANCEL, OP_QUERY_LOT, OP_QUERY_NFSE, OP_SUBMIT
from issnet.utils.certificate import SigningCredential

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _verification_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(8))


class SimulatedSoapClient:
    """Drop-in stand-in for IssnetSoapClient that never touches the network."""

    simulated = True

    def __init__(self, env: str = "homolog") -> None:
        self.env = env
        self.calls: list[tuple[str, str]] = []

    def call(self, xml_body: str, operation: str) -> str:
        self.calls.append((operation, xml_body))
        logger.info("SOAP %s simulado (nenhuma chamada de rede)", operation)
        stamp = time.time_ns()
        if operation == OP_SUBMIT:
            return self._nfse_response(
                "RecepcionarLoteRpsSincronoResposta",
                number=str(stamp)[-8:],
                protocol=f"PROT{str(stamp)[-8:]}",
            )
        if operation in (OP_QUERY_LOT, OP_QUERY_NFSE):
            return self._nfse_response(
                "ConsultarNfseResposta" if operation == OP_QUERY_NFSE else "ConsultarLoteRpsResposta",
                number=str(stamp)[-8:],
            )
        if operation == OP_CANCEL:
            return (
                f'<CancelarNfseResposta xmlns="{config.ABRASF_NS}">'
                "<RetCancelamento><NfseCancelamento><Confirmacao>"
                f"<DataHora>{datetime.now(config.BRT):%Y-%m-%dT%H:%M:%S}</DataHora>"
                "</Confirmacao></NfseCancelamento></RetCancelamento>"
                "</CancelarNfseResposta>"
            )
        raise ValueError(f"Operacao SOAP desconhecida: {operation}")

    def _nfse_response(self, root: str, number: str, protocol: str | None = None) -> str:
        protocolo = f"<Protocolo>{protocol}</Protocolo>" if protocol else ""
        return (
            f'<{root} xmlns="{config.ABRASF_NS}">{protocolo}'
            "<ListaNfse><CompNfse><Nfse><InfNfse>"
            f"<Numero>{number}</Numero>"
            f"<CodigoVerificacao>{_verification_code()}</CodigoVerificacao>"
            f"<DataEmissao>{datetime.now(config.BRT):%Y-%m-%dT%H:%M:%S}</DataEmissao>"
            f"</InfNfse></Nfse></CompNfse></ListaNfse></{root}>"
        )

    def submit_lot_sync(self, xml_body: str) -> str:
        return self.call(xml_body, OP_SUBMIT)

    def query_lot(self, xml_body: str) -> str:
        return self.call(xml_body, OP_QUERY_LOT)

    def query_nfse(self, xml_body: str) -> str:
        return self.call(xml_body, OP_QUERY_NFSE)

    def cancel_nfse(self, xml_body: str) -> str:
        return self.call(xml_body, OP_CANCEL)


def build_client(
    env: str | None = None,
    credential: SigningCredential | None = None,
) -> IssnetSoapClient | SimulatedSoapClient:
    """Real client for *env*, or the simulated one when ISSNET_SIMULATE is set.

    Without an explicit *credential* the real client uses the configured
    certificate (see :meth:`SigningCredential.from_config`).
    """
    env = env or config.get_environment()
    if config.is_simulation_enabled():
        logger.warning("ISSNET_SIMULATE ativo: respostas ISSNet serao simuladas")
        return SimulatedSoapClient(env=env)
    if credential is None:
        credential = SigningCredential.from_config()
    return IssnetSoapClient.for_environment(env, credential=credential)
