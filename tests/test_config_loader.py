"""Tests for api_request.config_loader."""

from pathlib import Path

import pytest

from api_request.config_loader import load_client_config
from api_request.errors import ConfigError
from api_request.models import DEFAULT_HEADERS, ClientConfig


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "client.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadClientConfig:
    def test_full_config(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "default_headers:\n"
            "  X-Client: reports\n"
            "raise_on_status: false\n"
            "timeout: 12.5\n",
        )

        config = load_client_config(path)

        assert config.raise_on_status is False
        assert config.timeout == 12.5
        assert config.default_headers == {**DEFAULT_HEADERS, "X-Client": "reports"}

    def test_headers_override_defaults(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "default_headers:\n  Accept: text/csv\n")

        config = load_client_config(path)

        assert config.default_headers["Accept"] == "text/csv"
        assert config.default_headers["Content-Type"] == "application/json"

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_client_config(_write(tmp_path, "")) == ClientConfig()

    def test_env_substitution(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("API_TOKEN", "s3cret")
        path = _write(tmp_path, 'default_headers:\n  Authorization: "Bearer ${API_TOKEN}"\n')

        config = load_client_config(path)

        assert config.default_headers["Authorization"] == "Bearer s3cret"

    def test_unset_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("API_TOKEN_UNSET", raising=False)
        path = _write(tmp_path, 'default_headers:\n  Authorization: "${API_TOKEN_UNSET}"\n')

        with pytest.raises(ConfigError, match="API_TOKEN_UNSET"):
            load_client_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_client_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_client_config(_write(tmp_path, "default_headers: [unclosed\n"))

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            load_client_config(_write(tmp_path, "- a\n- b\n"))

    def test_headers_not_a_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="default_headers"):
            load_client_config(_write(tmp_path, "default_headers: text/csv\n"))

    def test_unknown_key(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid config structure"):
            load_client_config(_write(tmp_path, "retries: 3\n"))

    def test_invalid_timeout(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid config structure"):
            load_client_config(_write(tmp_path, "timeout: -5\n"))
