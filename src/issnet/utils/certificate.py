from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)
from cryptography.x509 import Certificate

from issnet import config


@dataclass(frozen=True)
class SigningCredential:
    """A decrypted A1 certificate: PFX bytes plus passphrase.

    Used both to sign XML and, by the SOAP client, for mutual TLS.
    """

    pfx_data: bytes = field(repr=False)
    passphrase: str = field(default="", repr=False)

    @classmethod
    def from_file(cls, pfx_path: str, passphrase: str) -> SigningCredential:
        return cls(pfx_data=Path(pfx_path).read_bytes(), passphrase=passphrase)

    @classmethod
    def from_config(cls) -> SigningCredential | None:
        """Credential named by CERT_PFX_PATH, or None when no certificate is configured.

        The password comes from CERT_PFX_PASSWORD or the OS keyring; KeyError
        propagates when neither has it.
        """
        try:
            pfx_path = config.get_cert_path()
        except KeyError:
            return None
        return cls.from_file(pfx_path, config.get_cert_password())

    def load(self) -> tuple[bytes, bytes, list[Certificate]]:
        """Return (private_key_pem, cert_pem, ca_chain)."""
        return load_pfx_bytes(self.pfx_data, self.passphrase)


def load_pfx_bytes(pfx_data: bytes, password: str) -> tuple[bytes, bytes, list[Certificate]]:
    """Load a .pfx/.p12 blob and return (private_key_pem, cert_pem, chain)."""
    private_key, certificate, chain = pkcs12.load_key_and_certificates(
        pfx_data, password.encode() if password else None
    )

    if private_key is None or certificate is None:
        raise ValueError("Certificate or private key not found in .pfx file")

    key_pem = private_key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=NoEncryption(),
    )
    cert_pem = certificate.public_bytes(Encoding.PEM)
    ca_certs = list(chain) if chain else []

    return key_pem, cert_pem, ca_certs


def certificate_info(credential: SigningCredential) -> dict:
    """Return subject, issuer and validity window of the credential's certificate."""
    _, certificate, _ = pkcs12.load_key_and_certificates(
        credential.pfx_data,
        credential.passphrase.encode() if credential.passphrase else None,
    )

    if certificate is None:
        raise ValueError("No certificate found in .pfx file")

    now = datetime.now(UTC)
    return {
        "subject": certificate.subject.rfc4514_string(),
        "issuer": certificate.issuer.rfc4514_string(),
        "not_before": certificate.not_valid_before_utc,
        "not_after": certificate.not_valid_after_utc,
        "valid": certificate.not_valid_before_utc <= now <= certificate.not_valid_after_utc,
        "serial": certificate.serial_number,
    }
