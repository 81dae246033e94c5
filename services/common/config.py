from enum import Enum
from typing import Literal, Optional, Type, TypeVar
import logging

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationMissing

logger = logging.getLogger(__name__)

SettingsT = TypeVar("SettingsT", bound="Settings")


class ReceiveMode(str, Enum):
    DESTRUCTIVE = "destructive"
    LEASE = "lease"


class Settings(BaseSettings):
    """Settings shared by the ingress and worker services"""

    # Application settings
    app_name: str = "Thumbnail Pipeline"
    environment: str = "development"
    log_level: str = "INFO"

    # Google Cloud settings
    google_cloud_project: str = Field(..., min_length=1)

    # Storage settings
    storage_container: str = Field(..., min_length=1)
    image_content_type: str = "image/jpeg"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


class IngressSettings(Settings):
    app_name: str = "Ingress Service"

    # Messaging settings
    pubsub_topic: str = Field(..., min_length=1)
    publish_timeout_seconds: float = 30.0

    # Upload settings
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, gt=0)  # 5MB

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8080


class WorkerSettings(Settings):
    app_name: str = "Worker Service"

    # Messaging settings
    pubsub_subscription: str = Field(..., min_length=1)
    receive_mode: ReceiveMode = ReceiveMode.DESTRUCTIVE
    pull_timeout_seconds: float = 10.0
    max_delivery_attempts: int = Field(default=5, ge=1)
    dead_letter_topic: Optional[str] = None
    poll_interval_seconds: float = 5.0

    # Streaming settings
    read_chunk_size: int = Field(default=0x2000, gt=0)  # 8KB

    # Thumbnail settings
    thumbnail_width: int = Field(default=100, gt=0)
    thumbnail_height: int = Field(default=100, gt=0)
    thumbnail_format: Literal["JPEG", "PNG", "WEBP"] = "JPEG"
    thumbnail_quality: int = Field(default=85, ge=1, le=95)
    resample_filter: Literal["nearest", "bilinear", "triangle", "bicubic", "catmullrom", "lanczos"] = "bilinear"
    allow_upscale: bool = True


def load_settings(settings_cls: Type[SettingsT], **overrides) -> SettingsT:
    """
    Build a settings object from the environment

    Args:
        settings_cls: Settings class to instantiate
        overrides: Explicit values taking precedence over the environment

    Returns:
        The frozen settings instance

    Raises:
        ConfigurationMissing: if a required value is absent or invalid
    """
    try:
        return settings_cls(**overrides)
    except ValidationError as e:
        fields = [".".join(str(part) for part in err.get("loc", [])) for err in e.errors()]
        for err in e.errors():
            loc = ".".join(str(part) for part in err.get("loc", []))
            logger.error(f"Invalid configuration {loc}: {err.get('msg', '')}")
        raise ConfigurationMissing(fields) from e
