"""Settings via pydantic-settings with LEO_ env prefix.

Values come from (highest first) constructor kwargs, the environment, a
``.env`` file and finally ``~/.leo/config.json``.  A handful of fields also
read the unprefixed variables other Google tooling already uses
(GEMINI_API_KEY, GOOGLE_CLOUD_PROJECT, TELEGRAM_BOT_TOKEN) so an existing
shell setup works without renaming anything.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from leo.errors import ConfigError

logger = logging.getLogger(__name__)

PROVIDERS = ("gemini", "google-cli")


def config_dir() -> Path:
    """Directory holding config.json and credentials.json (``~/.leo``)."""
    override = os.environ.get("LEO_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".leo"


def config_path() -> Path:
    return config_dir() / "config.json"


def _default_workspace() -> str:
    return str(config_dir() / "workspace")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEO_",
        env_file=".env",
        extra="ignore",
    )

    workspace_dir: str = Field(default_factory=_default_workspace)

    # LLM
    provider: Literal["gemini", "google-cli"] = "gemini"
    gemini_api_key: str = Field(
        "",
        validation_alias=AliasChoices("gemini_api_key", "LEO_GEMINI_API_KEY", "GEMINI_API_KEY"),
    )
    model: str = "gemini-2.0-flash"
    temperature: float = 0.7
    max_output_tokens: int = 8192
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Agent loop
    max_iterations: int = Field(20, ge=1)
    history_window: int = Field(40, ge=0)
    token_budget: Literal["default", "small", "large"] = "default"

    # OAuth (google-cli provider).  Empty means "extract from the Gemini CLI".
    oauth_client_id: str = ""
    oauth_client_secret: str = ""
    google_cloud_project: str = Field(
        "",
        validation_alias=AliasChoices(
            "google_cloud_project",
            "LEO_GOOGLE_CLOUD_PROJECT",
            "GOOGLE_CLOUD_PROJECT",
            "GOOGLE_CLOUD_PROJECT_ID",
        ),
    )

    # Telegram gateway
    telegram_enabled: bool = False
    telegram_token: str = Field(
        "",
        validation_alias=AliasChoices("telegram_token", "LEO_TELEGRAM_TOKEN", "TELEGRAM_BOT_TOKEN"),
    )
    telegram_allow_from: list[str] = Field(default_factory=list)

    # Web search (Brave Search API). Empty disables web_search.
    brave_search_api_key: str = Field(
        "",
        validation_alias=AliasChoices(
            "brave_search_api_key", "LEO_BRAVE_SEARCH_API_KEY", "BRAVE_SEARCH_API_KEY"
        ),
    )

    # Gateway REST server
    host: str = "127.0.0.1"
    port: int = 18790
    log_level: str = "info"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=config_path()),
            file_secret_settings,
        )

    @property
    def workspace(self) -> Path:
        return Path(self.workspace_dir).expanduser()


def load_settings(**overrides) -> Settings:
    """Build Settings, turning validation failures into ConfigError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(problems, hint=f"Check {config_path()} and LEO_* variables") from e


def save_settings(settings: Settings) -> Path:
    """Write settings to config.json (owner read/write only: it may hold an API key)."""
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.model_dump(), indent=2), encoding="utf-8")
    os.chmod(path, 0o600)
    return path


def onboard(settings: Settings | None = None) -> Settings:
    """Create the workspace layout, bootstrap files and a default config.

    Existing files are left untouched.
    """
    from leo.templates import bootstrap_workspace

    settings = settings or load_settings()
    workspace = settings.workspace
    (workspace / "memory").mkdir(parents=True, exist_ok=True)
    (workspace / "skills").mkdir(parents=True, exist_ok=True)
    bootstrap_workspace(workspace)

    if not config_path().exists():
        save_settings(settings)
        logger.info("Wrote default config to %s", config_path())
    return settings
