"""Tests for config module."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from mcp_auth_helper.config import (
    AuthSettings,
    default_output_path,
    find_env_file,
    load_env_file,
)


class TestDefaultOutputPath:
    """Tests for locating the host application's auth file."""

    def test_uses_xdg_data_home(self):
        path = default_output_path({"XDG_DATA_HOME": "/data", "HOME": "/home/u"})
        assert path == Path("/data/opencode/mcp-auth.json")

    def test_falls_back_to_local_share(self):
        path = default_output_path({"HOME": "/home/u"})
        assert path == Path("/home/u/.local/share/opencode/mcp-auth.json")

    def test_empty_xdg_data_home_ignored(self):
        path = default_output_path({"XDG_DATA_HOME": "", "HOME": "/home/u"})
        assert path == Path("/home/u/.local/share/opencode/mcp-auth.json")

    def test_reads_process_environment_by_default(self, tmp_path):
        with patch.dict(os.environ, {"XDG_DATA_HOME": str(tmp_path)}):
            assert default_output_path() == tmp_path / "opencode" / "mcp-auth.json"


class TestEnvFile:
    """Tests for .env discovery and loading."""

    def test_explicit_path(self, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text("A=1\n")
        assert find_env_file(env_file) == env_file

    def test_explicit_path_missing(self, tmp_path):
        assert find_env_file(tmp_path / "missing.env") is None

    def test_finds_env_in_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("A=1\n")
        assert find_env_file() == Path(".env")

    def test_no_env_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert find_env_file() is None
        assert load_env_file() is None

    def test_load_does_not_override(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("MCP_AUTH_HELPER_OUTPUT=/from/dotenv\nMCP_AUTH_TEST_NEW=fresh\n")
        monkeypatch.setenv("MCP_AUTH_HELPER_OUTPUT", "/from/shell")
        monkeypatch.delenv("MCP_AUTH_TEST_NEW", raising=False)

        try:
            assert load_env_file(env_file) == env_file

            assert os.environ["MCP_AUTH_HELPER_OUTPUT"] == "/from/shell"
            assert os.environ["MCP_AUTH_TEST_NEW"] == "fresh"
        finally:
            os.environ.pop("MCP_AUTH_TEST_NEW", None)


class TestAuthSettings:
    """Tests for AuthSettings."""

    def test_defaults(self, tmp_path):
        settings = AuthSettings("figma", "https://ex.com/mcp", tmp_path / "a.json")
        assert settings.client_name == "Codex"
        assert settings.callback_port == 19876
        assert settings.callback_timeout == 120
        assert settings.redirect_uri == "http://localhost:19876/callback"

    def test_redirect_uri_follows_port(self, tmp_path):
        settings = AuthSettings("figma", "https://ex.com/mcp", tmp_path / "a.json",
                                callback_port=8080)
        assert settings.redirect_uri == "http://localhost:8080/callback"

    def test_valid_settings(self, settings):
        settings.validate()

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"server_name": ""}, "Server name"),
            ({"server_url": ""}, "--url"),
            ({"client_name": ""}, "Client name"),
            ({"callback_port": 0}, "between 1 and 65535"),
            ({"callback_port": 70000}, "between 1 and 65535"),
            ({"callback_timeout": 0}, "timeout"),
        ],
    )
    def test_invalid_settings(self, tmp_path, overrides, message):
        values = {
            "server_name": "figma",
            "server_url": "https://ex.com/mcp",
            "output_path": tmp_path / "a.json",
        }
        values.update(overrides)

        with pytest.raises(ValueError, match=message):
            AuthSettings(**values).validate()
