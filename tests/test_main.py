"""Tests for the command line entry point and the provider factory."""

import pytest

from leo.auth.credentials import Credentials, credentials_path, save_credentials
from leo.config import Settings
from leo.errors import ConfigError
from leo.llm import available_providers, create_client
from leo.llm.gemini import GeminiClient
from leo.llm.gemini_oauth import GeminiOAuthClient
from leo.main import build_parser, main


class TestParser:
    def test_agent_options(self):
        args = build_parser().parse_args(["agent", "-m", "hello", "-s", "work"])
        assert args.command == "agent"
        assert args.message == "hello"
        assert args.session == "work"

    def test_gateway_options(self):
        args = build_parser().parse_args(["gateway", "-p", "9000", "-v"])
        assert args.port == 9000
        assert args.verbose

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    def test_onboard_creates_workspace(self, isolated_config, capsys):
        main(["onboard"])
        assert (isolated_config / "config.json").exists()
        assert (isolated_config / "workspace" / "AGENTS.md").exists()
        assert "Next steps" in capsys.readouterr().out

    def test_status_reports_missing_key(self, capsys):
        main(["status"])
        out = capsys.readouterr().out
        assert "Provider:  gemini" in out
        assert "API key:   not set" in out

    def test_status_oauth_logged_in(self, monkeypatch, capsys):
        monkeypatch.setenv("LEO_PROVIDER", "google-cli")
        save_credentials(Credentials.new("access", "refresh", 3600))
        main(["status"])
        assert "OAuth:     logged in" in capsys.readouterr().out

    def test_logout(self, capsys):
        save_credentials(Credentials.new("access", "refresh", 3600))
        main(["logout"])
        assert not credentials_path().exists()
        main(["logout"])
        assert "Not logged in." in capsys.readouterr().out

    def test_agent_without_key_exits_with_hint(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["agent", "-m", "hi"])
        assert exc.value.code == 1
        err = capsys.readouterr().err
        assert "❌ Configuration error: gemini_api_key is not set" in err
        assert "GEMINI_API_KEY" in err


class TestCreateClient:
    def test_providers(self):
        assert available_providers() == ["gemini", "google-cli"]

    @pytest.mark.asyncio
    async def test_api_key_provider(self):
        client = create_client(Settings(gemini_api_key="k", model="gemini-2.0-flash"))
        assert isinstance(client, GeminiClient)
        assert client.default_model() == "gemini-2.0-flash"
        await client.close()

    def test_api_key_required(self):
        with pytest.raises(ConfigError, match="gemini_api_key"):
            create_client(Settings())

    @pytest.mark.asyncio
    async def test_oauth_provider(self):
        client = create_client(
            Settings(provider="google-cli", oauth_client_id="id", oauth_client_secret="secret")
        )
        assert isinstance(client, GeminiOAuthClient)
        await client.close()
