from __future__ import annotations

from dataclasses import dataclass

from issnet.config import COD_MUNICIPIO_BRASILIA
from issnet.utils.validators import only_digits, tax_id_kind


@dataclass(frozen=True)
class Address:
    street: str = ""
    number: str = "S/N"
    complement: str = ""
    neighborhood: str = ""
    municipality_code: str = COD_MUNICIPIO_BRASILIA
    state: str = "DF"
    zip_code: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> Address:
        return cls(
            street=d.get("street") or "",
            number=d.get("number") or "S/N",
            complement=d.get("complement") or "",
            neighborhood=d.get("neighborhood") or "",
            municipality_code=str(d.get("municipality_code") or COD_MUNICIPIO_BRASILIA),
            state=d.get("state") or "DF",
            zip_code=only_digits(str(d.get("zip_code") or "")),
        )


@dataclass(frozen=True)
class CustomerIdentity:
    """Service taker (tomador) receiving the NFS-e."""

    tax_id: str  # CPF or CNPJ, punctuation allowed
    legal_name: str
    email: str | None = None
    address: Address | None = None

    @property
    def tax_id_digits(self) -> str:
        return only_digits(self.tax_id)

    @property
    def tax_id_kind(self) -> str:
        """``"Cpf"`` for 11 digits, ``"Cnpj"`` for 14."""
        return tax_id_kind(self.tax_id)

    @classmethod
    def from_dict(cls, d: dict) -> CustomerIdentity:
        """Create a CustomerIdentity from a YAML-loaded dict or a customers row."""
        address = d.get("address")
        return cls(
            tax_id=str(d.get("tax_id") or d["cpf_cnpj"]),
            legal_name=d.get("legal_name") or d["name"],
            email=d.get("email") or None,
            address=Address.from_dict(address) if address else None,
        )
