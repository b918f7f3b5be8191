"""
Centralized Configuration System for the mirror-template service

Type-safe configuration built on Pydantic Settings. Every group reads its
values from ``MIRROR_*`` environment variables (or a local ``.env`` file) and
is aggregated into a single ``ApplicationSettings`` instance.

Usage:

    from shared.config.settings import get_settings

    settings = get_settings()
    output_dir = settings.storage.output_dir
"""

import os
from enum import Enum
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file():
    return ".env" if not os.getenv("DOCKER_CONTAINER") else None


class Environment(str, Enum):
    """Application environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class ServiceSettings(BaseSettings):
    """HTTP service settings"""

    model_config = SettingsConfigDict(
        env_prefix="MIRROR_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8004, description="Bind port")
    log_level: str = Field(default="INFO", description="Root log level")
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated allowed CORS origins"
    )
    download_route_prefix: str = Field(
        default="/api/v1/mirror/templates/download",
        description="Route prefix used to build downloadPath values"
    )

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class StorageSettings(BaseSettings):
    """Local file and database locations"""

    model_config = SettingsConfigDict(
        env_prefix="MIRROR_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    output_dir: str = Field(default="tmp_outputs", description="Generated workbook directory")
    upload_dir: str = Field(default="tmp_uploads", description="Temporary upload directory")
    definitions_db_path: str = Field(
        default="data/mirror_templates.db",
        description="SQLite file holding confirmed sheet definitions"
    )
    output_naming: Literal["content_hash", "legacy"] = Field(
        default="content_hash",
        description="content_hash: <clientKey>-<id>-<digest>.xlsx, legacy: <clientKey>-<id>.xlsx"
    )


class CacheSettings(BaseSettings):
    """Definition cache settings"""

    model_config = SettingsConfigDict(
        env_prefix="MIRROR_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    cache_capacity: int = Field(default=256, ge=1, description="Max cached definitions (LRU)")


class LayoutSettings(BaseSettings):
    """Layout learning, fingerprinting and matching settings"""

    model_config = SettingsConfigDict(
        env_prefix="MIRROR_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    page_width: int = Field(default=1000, description="Logical page width")
    page_height: int = Field(default=1400, description="Logical page height")
    label_max_length: int = Field(default=40, description="Longest text still treated as a label")
    max_anchors: int = Field(default=12, description="Anchors kept per fingerprint")
    max_label_set: int = Field(default=40, description="Labels kept per fingerprint")
    match_enabled: bool = Field(default=True, description="Offer known templates on learn")
    match_label_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0,
        description="Minimum label-set Jaccard overlap for a template match"
    )


class RenderSettings(BaseSettings):
    """Default render hints applied to new drafts"""

    model_config = SettingsConfigDict(
        env_prefix="MIRROR_",
        env_file=_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    default_font: str = Field(default="Calibri")
    default_line_height: int = Field(default=14)
    default_exact_placement: bool = Field(default=True)
    default_column_width: int = Field(default=18)


class ApplicationSettings(BaseSettings):
    """Main application settings - aggregates all other settings"""

    model_config = SettingsConfigDict(
        env_file=_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )

    service: ServiceSettings = Field(default_factory=ServiceSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    render: RenderSettings = Field(default_factory=RenderSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment == Environment.PRODUCTION


settings = ApplicationSettings()


def get_settings() -> ApplicationSettings:
    """
    Get the global settings instance

    Can be used with FastAPI's Depends() for dependency injection.
    """
    return settings


def reload_settings() -> ApplicationSettings:
    """
    Reload settings from environment (useful for testing)

    Returns:
        ApplicationSettings: New settings instance with reloaded values
    """
    global settings
    settings = ApplicationSettings()
    return settings
