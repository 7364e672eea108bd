from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import yaml

import issnet.config as config_mod
from issnet.models.company import CompanyIdentity
from issnet.models.customer import CustomerIdentity


class TestResolveDir:
    def test_from_env_var(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ISSNET_CONFIG_DIR", str(tmp_path))
        assert config_mod.get_config_dir() == tmp_path

    def test_data_dir_from_env_var(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ISSNET_DATA_DIR", str(tmp_path))
        assert config_mod.get_data_dir() == tmp_path

    def test_project_root_fallback(self, monkeypatch, tmp_path):
        monkeypatch.delenv("ISSNET_CONFIG_DIR", raising=False)
        fake_root = tmp_path / "src" / "issnet"
        fake_root.mkdir(parents=True)
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        monkeypatch.setattr(config_mod, "__file__", str(fake_root / "config.py"))
        assert config_mod._resolve_dir("ISSNET_CONFIG_DIR", "config", kind="config") == config_dir

    def test_platformdirs_fallback(self, monkeypatch, tmp_path):
        monkeypatch.delenv("ISSNET_DATA_DIR", raising=False)
        fake = tmp_path / "nowhere" / "src" / "issnet"
        fake.mkdir(parents=True)
        monkeypatch.setattr(config_mod, "__file__", str(fake / "config.py"))
        result = config_mod._resolve_dir("ISSNET_DATA_DIR", "data", kind="data")
        assert "emissor-issnet" in str(result)

    def test_dotenv_dir_none_when_missing(self, monkeypatch, tmp_path):
        monkeypatch.delenv("ISSNET_CONFIG_DIR", raising=False)
        fake = tmp_path / "nowhere" / "src" / "issnet"
        fake.mkdir(parents=True)
        monkeypatch.setattr(config_mod, "__file__", str(fake / "config.py"))
        with patch("issnet.config.platformdirs.user_config_dir", return_value=str(fake / "pd")):
            assert config_mod._resolve_config_dir_for_dotenv() is None


class TestEnvironment:
    def test_default_homolog(self, monkeypatch):
        monkeypatch.delenv("ISSNET_ENV", raising=False)
        assert config_mod.get_environment() == "homolog"

    def test_prod_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("ISSNET_ENV", " PROD ")
        assert config_mod.get_environment() == "prod"

    def test_invalid(self, monkeypatch):
        monkeypatch.setenv("ISSNET_ENV", "staging")
        with pytest.raises(ValueError, match="ISSNET_ENV"):
            config_mod.get_environment()

    def test_endpoint_default(self, monkeypatch):
        monkeypatch.delenv("ISSNET_SOAP_URL_PROD", raising=False)
        assert config_mod.get_endpoint("prod") == config_mod.DEFAULT_ENDPOINTS["prod"]

    def test_endpoint_override(self, monkeypatch):
        monkeypatch.setenv("ISSNET_SOAP_URL_HOMOLOG", "https://h.example/ws")
        assert config_mod.get_endpoint("homolog") == "https://h.example/ws"

    def test_endpoint_unknown_env(self):
        with pytest.raises(ValueError):
            config_mod.get_endpoint("dev")

    def test_timeout_default(self, monkeypatch):
        monkeypatch.delenv("ISSNET_SOAP_TIMEOUT_MS", raising=False)
        assert config_mod.get_timeout() == 30.0

    def test_timeout_override(self, monkeypatch):
        monkeypatch.setenv("ISSNET_SOAP_TIMEOUT_MS", "1500")
        assert config_mod.get_timeout() == 1.5

    @pytest.mark.parametrize("raw", ["abc", "0", "-10"])
    def test_timeout_invalid(self, monkeypatch, raw):
        monkeypatch.setenv("ISSNET_SOAP_TIMEOUT_MS", raw)
        with pytest.raises(ValueError):
            config_mod.get_timeout()

    @pytest.mark.parametrize(("raw", "expected"), [("true", True), ("1", True), ("no", False), ("", False)])
    def test_simulation_flag(self, monkeypatch, raw, expected):
        monkeypatch.setenv("ISSNET_SIMULATE", raw)
        assert config_mod.is_simulation_enabled() is expected


class TestCertEnv:
    def test_get_cert_path_returns_env(self, monkeypatch):
        monkeypatch.setenv("CERT_PFX_PATH", "/some/path.pfx")
        assert config_mod.get_cert_path() == "/some/path.pfx"

    def test_get_cert_path_raises_missing(self, monkeypatch):
        monkeypatch.delenv("CERT_PFX_PATH", raising=False)
        with pytest.raises(KeyError):
            config_mod.get_cert_path()

    def test_get_cert_password_returns_env(self, monkeypatch):
        monkeypatch.setenv("CERT_PFX_PASSWORD", "secret")
        assert config_mod.get_cert_password() == "secret"

    def test_get_cert_password_raises_missing(self, monkeypatch):
        monkeypatch.delenv("CERT_PFX_PASSWORD", raising=False)
        with (
            patch.object(config_mod, "_get_keyring_password", return_value=None),
            pytest.raises(KeyError),
        ):
            config_mod.get_cert_password()

    def test_get_cert_password_keyring_fallback(self, monkeypatch):
        monkeypatch.delenv("CERT_PFX_PASSWORD", raising=False)
        with patch.object(config_mod, "_get_keyring_password", return_value="from-keyring"):
            assert config_mod.get_cert_password() == "from-keyring"

    def test_env_takes_priority(self, monkeypatch):
        monkeypatch.setenv("CERT_PFX_PASSWORD", "from-env")
        with patch.object(config_mod, "_get_keyring_password", return_value="from-keyring"):
            assert config_mod.get_cert_password() == "from-env"


class TestKeyring:
    def test_success(self):
        mock_kr = MagicMock()
        mock_kr.get_password.return_value = "stored"
        with patch.dict("sys.modules", {"keyring": mock_kr}):
            assert config_mod._get_keyring_password() == "stored"
        mock_kr.get_password.assert_called_once_with("emissor-issnet", "cert-pfx-password")

    def test_backend_error(self):
        mock_kr = MagicMock()
        mock_kr.get_password.side_effect = RuntimeError("no backend")
        with patch.dict("sys.modules", {"keyring": mock_kr}):
            assert config_mod._get_keyring_password() is None


class TestYamlRecords:
    @pytest.fixture
    def config_dir(self, tmp_path, company_dict, customer_dict):
        cfg = tmp_path / "config"
        (cfg / "customers").mkdir(parents=True)
        (cfg / "company.yaml").write_text(yaml.dump(company_dict))
        (cfg / "customers" / "maria.yaml").write_text(yaml.dump(customer_dict))
        (cfg / "customers" / "acme.yaml").write_text(
            yaml.dump({"cpf_cnpj": "98765432000110", "name": "Acme"})
        )
        return cfg

    def test_load_yaml(self, tmp_path):
        f = tmp_path / "test.yaml"
        f.write_text(yaml.dump({"key": "value"}))
        assert config_mod.load_yaml(f) == {"key": "value"}

    def test_load_yaml_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            config_mod.load_yaml(tmp_path / "missing.yaml")

    def test_load_company(self, monkeypatch, config_dir):
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: config_dir)
        company = CompanyIdentity.from_dict(config_mod.load_company())
        assert company.cnpj_digits == "12345678000199"

    def test_load_customer(self, monkeypatch, config_dir):
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: config_dir)
        customer = CustomerIdentity.from_dict(config_mod.load_customer("maria"))
        assert customer.legal_name == "Maria da Silva"

    def test_load_customer_missing(self, monkeypatch, config_dir):
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: config_dir)
        with pytest.raises(FileNotFoundError):
            config_mod.load_customer("nonexistent")

    def test_list_customers(self, monkeypatch, config_dir):
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: config_dir)
        assert config_mod.list_customers() == ["acme", "maria"]

    def test_list_customers_no_dir(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config_mod, "get_config_dir", lambda: tmp_path)
        assert config_mod.list_customers() == []
