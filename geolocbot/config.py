"""geolocbot configuration management."""

import logging
import os
from typing import Optional

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from .content import FAILURE_REACTION

logger = logging.getLogger("geolocbot.config")

DEFAULT_CONFIG_FILE = "botconfig.toml"


class BotSettings(BaseSettings):
    """Settings loaded from botconfig.toml, .env or BOT_* environment variables.

    Environment variables win over the file, e.g. ``BOT_AUTOJOIN=false``.
    """

    # Account
    homeserver_url: str = Field(description="Homeserver base URL, e.g. https://matrix.org")
    username: str = Field(description="Localpart or full MXID of the bot account")
    password: str = Field(description="Account password")
    device_name: str = Field(default="geolocbot", description="Display name of the login device")

    # Behaviour
    ignore_own_messages: bool = Field(default=True, description="Skip messages sent by the bot account")
    autojoin: bool = Field(default=True, description="Accept room invites automatically")
    failure_reaction: str = Field(default=FAILURE_REACTION, description="Reaction for images without location")

    # Redaction follow-up
    history_page_size: int = Field(default=10, ge=1, description="Events per history page")
    history_max_pages: int = Field(default=1, ge=1, description="History pages scanned per redaction")

    # Sync / logging
    sync_timeout_ms: int = Field(default=30000, ge=0, description="Sync long-poll timeout")
    log_file: str = Field(default="~/geolocbot.log", description="Log file path (empty = stderr only)")
    debug: bool = Field(default=False, description="Debug logging")

    model_config = SettingsConfigDict(
        env_prefix="BOT_",
        env_file=".env",
        extra="ignore",
        toml_file=DEFAULT_CONFIG_FILE,
    )

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
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def load_settings(config_file: Optional[str] = None, **overrides) -> BotSettings:
    """Load settings from the TOML file and environment.

    Args:
        config_file: TOML file path. Defaults to $BOT_CONFIG_FILE, then botconfig.toml
        **overrides: Explicit values, taking precedence over every other source

    Raises:
        pydantic.ValidationError: required settings are missing or invalid
    """
    path = config_file or os.environ.get("BOT_CONFIG_FILE") or DEFAULT_CONFIG_FILE

    class _FileSettings(BotSettings):
        model_config = SettingsConfigDict(toml_file=path)

    settings = _FileSettings(**overrides)

    if not settings.homeserver_url.startswith("https://"):
        logger.warning(
            f"Homeserver URL {settings.homeserver_url} is not HTTPS. "
            "The account password is sent in cleartext on login."
        )

    return settings
