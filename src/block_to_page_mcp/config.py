"""Configuration for the Logseq block-to-page MCP server."""

import logging
import sys
from typing import Literal

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import APIConfiguration

MissingPropertyPolicy = Literal["skip", "keep", "raw"]


class ConversionSettings(BaseModel):
    """Switches and knobs for one block-to-page conversion."""

    allow_without_children: bool = False
    redirect_to_page: bool = False
    create_first_block: bool = True
    move_block_properties_to_page: bool = False
    create_page_tags: bool = False

    # What to do with a key found in the text but absent from the resolved properties
    missing_property_policy: MissingPropertyPolicy = "skip"

    consistency_poll_interval: float = Field(default=0.1, gt=0)
    consistency_max_attempts: int = Field(default=50, ge=1)
    consistency_timeout: float = Field(default=10.0, gt=0)


class ServerConfig(BaseSettings):
    """Server configuration loaded from LOGSEQ_* environment variables or .env."""

    model_config = SettingsConfigDict(
        env_prefix="LOGSEQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_url: str = "http://127.0.0.1:12315"
    api_token: SecretStr
    timeout: float = 30.0
    request_delay: float = 0.0
    log_level: str = "INFO"

    allow_without_children: bool = False
    redirect_to_page: bool = False
    create_first_block: bool = True
    move_block_properties_to_page: bool = False
    create_page_tags: bool = False
    missing_property_policy: MissingPropertyPolicy = "skip"
    consistency_poll_interval: float = 0.1
    consistency_max_attempts: int = 50
    consistency_timeout: float = 10.0

    def get_api_config(self) -> APIConfiguration:
        return APIConfiguration(
            base_url=self.api_url,
            api_token=self.api_token,
            timeout=self.timeout,
            request_delay=self.request_delay,
        )

    def get_conversion_settings(self) -> ConversionSettings:
        return ConversionSettings(
            **{name: getattr(self, name) for name in ConversionSettings.model_fields}
        )


def setup_logging(level: str = "INFO") -> None:
    """Send stdlib logging to stderr; stdout belongs to the MCP stdio transport."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
