"""Configuration helpers for the Beacon bot."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field, ValidationError

DEFAULT_ASSETS_DIR = Path(__file__).resolve().parent.parent / "assets"


class BotSettings(BaseModel):
    """Runtime configuration parsed from environment variables."""

    version: Optional[str] = Field(
        default=None,
        alias="VERSION",
        validation_alias=AliasChoices("VERSION", "APP_VERSION", "BOT_VERSION"),
    )
    discord_token: str = Field(..., alias="DISCORD_TOKEN")
    database_url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
    )
    health_host: str = Field(default="0.0.0.0", alias="HEALTH_HOST")
    health_port: int = Field(default=8080, alias="HEALTH_PORT")
    assets_dir: Path = Field(default=DEFAULT_ASSETS_DIR, alias="ASSETS_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        populate_by_name = True


def load_settings(env_file: str | None = ".env") -> BotSettings:
    """Load and validate configuration, raising a helpful error if missing."""

    if env_file and Path(env_file).exists():
        load_dotenv(env_file)

    try:
        settings = BotSettings.model_validate(dict(os.environ))
    except ValidationError as exc:
        missing = [err["loc"][0] for err in exc.errors() if err["type"] == "missing"]
        raise RuntimeError(
            (
                "Missing required configuration values: "
                f"{', '.join(str(key) for key in missing)}. "
                "Ensure DISCORD_TOKEN is set before running the bot."
            )
        ) from exc

    return settings
