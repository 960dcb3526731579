"""Configuration management for Photo Restorer.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PHOTORESTORER_
prefix, allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PHOTORESTORER_* prefix)
2. .env file in the project root
3. Default values defined in RestorerConfig

The Gemini API key is the one exception to the prefix rule: it is also read
from ``GEMINI_API_KEY`` or ``API_KEY`` so that keys exported for other Gemini
tooling work unchanged.

Example .env file:
    GEMINI_API_KEY=...
    PHOTORESTORER_MODEL_ID=gemini-2.5-flash-image-preview
    PHOTORESTORER_DATA_DIR=data
    PHOTORESTORER_SERVER_PORT=7860

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Importing never fails on a missing API key; the key is checked by
:meth:`RestorerConfig.require_api_key`, which the service calls on startup.

Usage Example
-------------
    from photorestorer.core.config import config

    config.require_api_key()
    print(config.model_id)
    print(config.data_dir)
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MissingCredentialsError(RuntimeError):
    """Raised when the Gemini API key is not configured."""


class RestorerConfig(BaseSettings):
    """Main configuration for Photo Restorer.

    Attributes
    ----------
    Generation API:
        api_key : str | None
            Gemini API key (PHOTORESTORER_API_KEY, GEMINI_API_KEY or API_KEY)
        model_id : str
            Gemini model used for image restoration

    Storage:
        data_dir : Path
            Directory holding the persisted history and saved prompts

    Media:
        max_source_images : int
            Maximum number of images in the source collection
        camera_environment_index : int
            OpenCV device index used for the rear ("environment") camera
        camera_user_index : int
            OpenCV device index used for the front ("user") camera

    Server:
        server_host : str
            Server bind address
        server_port : int
            Server port (1024-65535)
        log_level : Literal["DEBUG", "INFO", "WARNING", "ERROR"]
            Root logging level for the CLI entry point

    Notes
    -----
    - data_dir is created automatically if it doesn't exist
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PHOTORESTORER_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PHOTORESTORER_API_KEY", "GEMINI_API_KEY", "API_KEY", "api_key"),
        description="Gemini API key",
    )
    model_id: str = Field(
        default="gemini-2.5-flash-image-preview",
        description="Gemini model identifier used for restoration",
    )

    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for persisted history and saved prompts",
    )

    max_source_images: int = Field(default=10, ge=1, le=50)
    camera_environment_index: int = Field(default=0, ge=0)
    camera_user_index: int = Field(default=1, ge=0)

    server_host: str = Field(
        default="127.0.0.1",
        description="Server bind address",
    )
    server_port: int = Field(
        default=7860,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def require_api_key(self) -> str:
        """Return the configured API key.

        Raises:
            MissingCredentialsError: If no key is configured
        """
        if not self.api_key or not self.api_key.strip():
            raise MissingCredentialsError(
                "Gemini API key is not set. Export GEMINI_API_KEY (or PHOTORESTORER_API_KEY)."
            )
        return self.api_key.strip()


# Global configuration instance
config = RestorerConfig()
