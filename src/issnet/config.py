from __future__ import annotations

import os
from datetime import timedelta, timezone
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv

APP_NAME = "emissor-issnet"

KEYRING_SERVICE = APP_NAME
KEYRING_USERNAME = "cert-pfx-password"


def _resolve_config_dir_for_dotenv() -> Path | None:
    """Resolve config dir for .env loading before .env itself is read.

    Returns None if only platformdirs would resolve and the dir does not exist.
    """
    from_env = os.environ.get("ISSNET_CONFIG_DIR")
    if from_env:
        return Path(from_env)
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / "config"
    if candidate.is_dir():
        return candidate
    pd = Path(platformdirs.user_config_dir(APP_NAME))
    if pd.is_dir():
        return pd
    return None


# Load .env: cwd first (highest priority), then config dir (won't override)
load_dotenv()
_cfg_dir = _resolve_config_dir_for_dotenv()
if _cfg_dir is not None:
    load_dotenv(_cfg_dir / ".env")


def _resolve_dir(env_var: str, default_subdir: str, kind: str) -> Path:
    """Resolve a directory from env var, repo layout, or platform default."""
    from_env = os.environ.get(env_var)
    if from_env:
        return Path(from_env)
    # Development layout: src/issnet/config.py -> ../../.. = project root
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / default_subdir
    if candidate.is_dir():
        return candidate
    if kind == "config":
        return Path(platformdirs.user_config_dir(APP_NAME))
    return Path(platformdirs.user_data_dir(APP_NAME))


def get_config_dir() -> Path:
    """Resolve config directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("ISSNET_CONFIG_DIR", "config", kind="config")


def get_data_dir() -> Path:
    """Resolve data directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("ISSNET_DATA_DIR", "data", kind="data")


ABRASF_NS = "http://www.abrasf.org.br/nfse.xsd"
SOAP12_NS = "http://www.w3.org/2003/05/soap-envelope"
ISSNET_WS_NS = "http://www.issnetonline.com.br/webserviceabrasf/homolog"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XSD_NS = "http://www.w3.org/2001/XMLSchema"

ABRASF_VERSION = "2.04"

# IBGE code for Brasília
COD_MUNICIPIO_BRASILIA = "5300108"

BRT = timezone(timedelta(hours=-3))

ENVIRONMENTS = ("homolog", "prod")

DEFAULT_ENDPOINTS = {
    "homolog": "https://homologacao.issnetonline.com.br/abrasf204/nfse.asmx",
    "prod": "https://www.issnetonline.com.br/abrasf204/nfse.asmx",
}

_ENDPOINT_ENV_VARS = {
    "homolog": "ISSNET_SOAP_URL_HOMOLOG",
    "prod": "ISSNET_SOAP_URL_PROD",
}

DEFAULT_TIMEOUT_MS = 30000


def get_environment() -> str:
    """Return the active environment from ISSNET_ENV (default: homolog)."""
    env = os.environ.get("ISSNET_ENV", "homolog").strip().lower()
    if env not in ENVIRONMENTS:
        raise ValueError(f"ISSNET_ENV invalido: '{env}'. Use homolog ou prod.")
    return env


def get_endpoint(env: str) -> str:
    """Return the SOAP endpoint for *env*, honouring the URL override variables."""
    if env not in ENVIRONMENTS:
        raise ValueError(f"Ambiente invalido: '{env}'")
    return os.environ.get(_ENDPOINT_ENV_VARS[env]) or DEFAULT_ENDPOINTS[env]


def get_timeout() -> float:
    """Return the SOAP timeout in seconds from ISSNET_SOAP_TIMEOUT_MS."""
    raw = os.environ.get("ISSNET_SOAP_TIMEOUT_MS")
    if not raw:
        return DEFAULT_TIMEOUT_MS / 1000
    try:
        ms = int(raw)
    except ValueError:
        raise ValueError(f"ISSNET_SOAP_TIMEOUT_MS invalido: '{raw}'") from None
    if ms <= 0:
        raise ValueError("ISSNET_SOAP_TIMEOUT_MS deve ser positivo")
    return ms / 1000


def is_simulation_enabled() -> bool:
    return os.environ.get("ISSNET_SIMULATE", "").strip().lower() in ("1", "true", "yes")


# --- Keyring helpers ---


def _get_keyring_password() -> str | None:
    """Try to get the certificate password from the OS keyring.

    Returns None on any failure (no backend, not stored, dbus errors, etc.).
    """
    try:
        import keyring

        return keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
    except Exception:
        return None


# --- Certificate access ---


def get_cert_path() -> str:
    """Return the path to the .pfx certificate from CERT_PFX_PATH env var.

    Raises KeyError if the variable is not set.
    """
    return os.environ["CERT_PFX_PATH"]


def get_cert_password() -> str:
    """Return the certificate password.

    Priority: 1) CERT_PFX_PASSWORD env var, 2) OS keyring.
    Raises KeyError if neither source has the password.
    """
    pwd = os.environ.get("CERT_PFX_PASSWORD")
    if pwd is not None:
        return pwd
    pwd = _get_keyring_password()
    if pwd is not None:
        return pwd
    raise KeyError("CERT_PFX_PASSWORD")


# --- YAML records ---


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict."""
    return yaml.safe_load(path.read_text())


def load_company() -> dict:
    """Load the issuing company from config/company.yaml."""
    return load_yaml(get_config_dir() / "company.yaml")


def load_customer(name: str) -> dict:
    """Load a customer from config/customers/{name}.yaml."""
    return load_yaml(get_config_dir() / "customers" / f"{name}.yaml")


def list_customers() -> list[str]:
    """Return sorted customer slugs (YAML file stems) from config/customers/."""
    customers_dir = get_config_dir() / "customers"
    if not customers_dir.exists():
        return []
    return sorted(f.stem for f in customers_dir.glob("*.yaml"))
