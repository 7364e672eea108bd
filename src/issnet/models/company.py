from __future__ import annotations

from dataclasses import dataclass

from issnet.utils.validators import only_digits, validate_cnpj, validate_environment


@dataclass(frozen=True)
class CompanyIdentity:
    """Service provider (prestador) issuing the NFS-e."""

    cnpj: str
    municipal_registration: str
    service_list_item: str
    municipal_taxation_code: str
    environment: str = "homolog"  # homolog | prod
    name: str = ""
    optante_simples_nacional: str = "2"  # 1 = sim, 2 = nao
    incentivador_cultural: str = "2"  # 1 = sim, 2 = nao
    regime_especial_tributacao: str | None = None

    @property
    def cnpj_digits(self) -> str:
        return only_digits(self.cnpj)

    @classmethod
    def from_dict(cls, d: dict) -> CompanyIdentity:
        """Create a CompanyIdentity from a YAML-loaded dict or a companies row."""
        regime = d.get("regime_especial_tributacao")
        cnpj = str(d["cnpj"])
        validate_cnpj(cnpj)
        return cls(
            cnpj=cnpj,
            municipal_registration=str(d.get("municipal_registration") or d["im"]),
            service_list_item=str(d.get("service_list_item") or d["item_lista_servico"]),
            municipal_taxation_code=str(
                d.get("municipal_taxation_code") or d["cod_tributacao_municipio"]
            ),
            environment=validate_environment(str(d.get("environment", "homolog"))),
            name=d.get("name", ""),
            optante_simples_nacional=str(d.get("optante_simples_nacional", "2")),
            incentivador_cultural=str(d.get("incentivador_cultural", "2")),
            regime_especial_tributacao=str(regime) if regime not in (None, "") else None,
        )
