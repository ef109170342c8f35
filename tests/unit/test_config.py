"""
Unit tests for configuration loading.
"""

import pytest

from identity.config import AuthPolicy, DEFAULT_SECRET_KEY, load_config


class TestLoadConfig:

    @pytest.mark.unit
    def test_defaults(self, monkeypatch):
        for name in ("JWT_SECRET_KEY", "MCP_API_KEY", "STORAGE_BACKEND", "REQUIRE_VERIFICATION"):
            monkeypatch.delenv(name, raising=False)

        config = load_config()

        assert config.auth.secret_key == DEFAULT_SECRET_KEY
        assert config.auth.access_token_ttl == 900
        assert config.auth.refresh_token_ttl == 30 * 86400
        assert config.auth.code_ttl == 600
        assert config.auth.require_verification is False
        assert config.storage.backend == "sqlite"
        assert config.server.api_port == 8080
        assert config.server.mcp_port == 8001
        assert config.server.mcp_api_key is None

    @pytest.mark.unit
    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET_KEY", "from-env")
        monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "60")
        monkeypatch.setenv("VERIFICATION_CODE_LENGTH", "8")
        monkeypatch.setenv("REQUIRE_VERIFICATION", "yes")
        monkeypatch.setenv("VERIFICATION_CHANNEL", "sms")
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.setenv("MCP_API_KEY", "key")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = load_config()

        assert config.auth.secret_key == "from-env"
        assert config.auth.access_token_ttl == 60
        assert config.auth.code_length == 8
        assert config.auth.require_verification is True
        assert config.auth.verification_channel == "sms"
        assert config.storage.backend == "memory"
        assert config.server.mcp_api_key == "key"
        assert config.server.log_level == "DEBUG"

    @pytest.mark.unit
    def test_invalid_values(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "redis")
        with pytest.raises(ValueError):
            load_config()

        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "soon")
        with pytest.raises(ValueError):
            load_config()


class TestAuthPolicy:

    @pytest.mark.unit
    @pytest.mark.parametrize("overrides", [
        {"access_token_ttl": 0},
        {"refresh_token_ttl": -1},
        {"code_ttl": 0},
        {"code_length": 3},
        {"rate_limit_max": 0},
        {"verification_channel": "fax"},
        {"secret_key": ""},
    ])
    def test_rejects_invalid_policy(self, overrides):
        with pytest.raises(ValueError):
            AuthPolicy(**overrides)
