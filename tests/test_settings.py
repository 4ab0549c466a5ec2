"""Tests for nim_proxy/config/settings.py — Settings and startup validation."""

import pytest

from nim_proxy.config.settings import NIM_BASE_URL, ConfigurationError, Settings, check_settings


class TestSettings:

    def test_defaults(self, override_settings):
        s = override_settings()
        assert s.nim_api_key == ""
        assert s.nim_base_url == NIM_BASE_URL
        assert s.custom_auth_token == ""
        assert s.custom_auth_header == "x-custom-auth"
        assert s.port == 3000
        assert s.upstream_timeout == 60.0
        assert s.upstream_connect_timeout == 10.0
        assert s.log_level == "INFO"

    def test_env_override(self, override_settings):
        s = override_settings(
            NIM_API_KEY="nvapi-abc",
            CUSTOM_AUTH_TOKEN="secret",
            CUSTOM_AUTH_HEADER="X-Proxy-Key",
            PORT="8080",
            UPSTREAM_TIMEOUT="5",
        )
        assert s.nim_api_key == "nvapi-abc"
        assert s.custom_auth_token == "secret"
        assert s.custom_auth_header == "X-Proxy-Key"
        assert s.port == 8080
        assert s.upstream_timeout == 5.0

    def test_reads_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("NIM_API_KEY=from-dotenv\n", encoding="utf-8")
        assert Settings().nim_api_key == "from-dotenv"

    def test_auth_enabled_only_with_token(self):
        assert not Settings(custom_auth_token="").auth_enabled
        assert Settings(custom_auth_token="s").auth_enabled

    def test_lambda_mode_from_runtime_env(self, override_settings):
        assert not Settings().lambda_mode
        assert override_settings(AWS_LAMBDA_FUNCTION_NAME="nim-proxy").lambda_mode


class TestCheckSettings:

    def test_missing_key_raises(self):
        with pytest.raises(ConfigurationError, match="NIM_API_KEY"):
            check_settings(Settings())

    def test_blank_key_raises(self):
        with pytest.raises(ConfigurationError):
            check_settings(Settings(nim_api_key="   "))

    def test_key_present_passes(self):
        check_settings(Settings(nim_api_key="nvapi-abc"))
