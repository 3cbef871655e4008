import json
import logging
import os
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_PATH = os.getenv("CONFIG_PATH", "config.json")


class ApiConfig(BaseModel):
    title: str = Field(default="clipfetch", description="API title")
    description: str = Field(default="Social video metadata and download API", description="API description")
    version: str = Field(default="1.0.0", description="API version")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    debug: bool = Field(default=False, description="Enable debug mode")


class SecurityConfig(BaseModel):
    block_private_ips: bool = Field(default=True, description="Reject IP-literal hosts in private ranges")


class YtDlpConfig(BaseModel):
    binary_name: str = Field(default="yt-dlp", description="Executable name of the extraction tool")
    tool_dir: Optional[str] = Field(default=None, description="Secondary tool directory (defaults to <cwd>/bin)")
    cache_tool_path: bool = Field(default=False, description="Cache the resolved tool path until a spawn fails")
    socket_timeout: int = Field(default=10, ge=1, description="Socket timeout passed to yt-dlp")
    watermark_flags: List[str] = Field(default=["--no-watermark"], description="Flags requesting watermark-free TikTok media")


class MetadataConfig(BaseModel):
    timeout_seconds: float = Field(default=20.0, gt=0, description="Metadata subprocess timeout")
    max_output_bytes: int = Field(default=5 * 1024 * 1024, ge=1024, description="Metadata stdout cap")


class DownloadConfig(BaseModel):
    mode: Literal["stream", "redirect"] = Field(default="stream", description="Delivery adapter")
    chunk_size: int = Field(default=1024 * 1024, ge=1024, description="Max bytes read from yt-dlp per chunk")
    first_byte_timeout_seconds: float = Field(default=120.0, gt=0, description="Max wait for the first media byte")
    resolve_timeout_seconds: float = Field(default=30.0, gt=0, description="Direct URL resolution timeout")
    kill_grace_seconds: float = Field(default=5.0, gt=0, description="Wait between SIGTERM and SIGKILL")
    disconnect_poll_interval: float = Field(default=0.5, gt=0, description="Client disconnect polling interval")


class RedisConfig(BaseModel):
    enabled: bool = Field(default=False, description="Connect to Redis on startup")
    url: str = Field(default="redis://redis:6379", description="Redis connection URL")
    socket_timeout: int = Field(default=5, description="Redis socket timeout in seconds")


class RateLimitConfig(BaseModel):
    enabled: bool = Field(default=True, description="Enable rate limiting")
    max_requests: int = Field(default=30, ge=1, description="Max requests per window")
    window_seconds: int = Field(default=60, ge=1, description="Rate limit window in seconds")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    format: str = Field(default="%(message)s", description="Log format")
    enable_rich: bool = Field(default=True, description="Enable rich console logging")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class I18nConfig(BaseModel):
    default_locale: str = Field(default="en", description="Default locale")
    supported_locales: list = Field(default=["en", "ja"], description="Supported locales")


class Config(BaseSettings):
    """Main configuration model"""
    model_config = SettingsConfigDict(env_prefix="CLIPFETCH_", env_nested_delimiter="__")

    api: ApiConfig = Field(default_factory=ApiConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    ytdlp: YtDlpConfig = Field(default_factory=YtDlpConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)

    @classmethod
    def load_from_file(cls, config_path: str) -> "Config":
        """Load configuration from JSON file, falling back to env/defaults"""
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = json.load(f)
            logger.info(f"Configuration loaded from {config_path}")
            return cls(**config_data)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config from {config_path}: {str(e)}")
            logger.info("Using environment/default configuration")
            return cls()


def load_config() -> Config:
    """Load configuration with priority: config.json > env vars > defaults"""
    if os.path.exists(CONFIG_PATH):
        return Config.load_from_file(CONFIG_PATH)
    return Config()


config = load_config()
