"""chatsync configuration management with environment variable overrides.

This module provides centralized configuration management with support for:
- Environment variables, using the same names as the chat application
- `.env` / `.env.local` files in the working directory
- YAML config file overrides
- Pydantic validation

Priority order for configuration values:
1. YAML config file (when passed explicitly)
2. Environment variables
3. `.env.local`, then `.env`
4. Pydantic defaults (lowest priority)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatsync.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _env(name: str, field_name: str) -> AliasChoices:
    """Accept both the environment variable name and the field name."""
    return AliasChoices(name, field_name)


class SyncConfig(BaseSettings):
    """Main chatsync configuration.

    Attributes:
        use_local_redis: Read from a local Redis server instead of Upstash
        upstash_redis_rest_url: Upstash REST endpoint
        upstash_redis_rest_token: Upstash REST bearer token
        local_redis_url: URL of the local Redis server
        use_mongodb: MongoDB sync enablement (must be true)
        mongodb_uri: MongoDB connection string
        mongodb_db_name: Destination database
        mongodb_collection: Destination collection
        sync_interval_ms: Delay between the end of one pass and the next
        chat_version: Version tag of the chat index keys
        optimize_data: Report space savings of minimization
        max_message_length: Assistant content longer than this is truncated
        summary_length: Characters kept from truncated assistant content
        keep_system_messages: Keep system-role messages
        keep_metadata: Keep the session model identifier
        scan_batch_size: COUNT hint for incremental SCAN
        store_timeout_seconds: Time budget for one session store call
        max_concurrent_users: Users processed concurrently within a pass
        metrics_port: Prometheus endpoint port (0 disables it)
        log_level: Root log level
    """

    # Redis
    use_local_redis: bool = Field(False, validation_alias=_env("USE_LOCAL_REDIS", "use_local_redis"))
    upstash_redis_rest_url: str | None = Field(
        None, validation_alias=_env("UPSTASH_REDIS_REST_URL", "upstash_redis_rest_url")
    )
    upstash_redis_rest_token: str | None = Field(
        None, validation_alias=_env("UPSTASH_REDIS_REST_TOKEN", "upstash_redis_rest_token")
    )
    local_redis_url: str = Field(
        "redis://localhost:6379", validation_alias=_env("LOCAL_REDIS_URL", "local_redis_url")
    )

    # MongoDB
    use_mongodb: bool = Field(False, validation_alias=_env("USE_MONGODB", "use_mongodb"))
    mongodb_uri: str = Field("mongodb://localhost:27017", validation_alias=_env("MONGODB_URI", "mongodb_uri"))
    mongodb_db_name: str = Field("morphic", validation_alias=_env("MONGODB_DB_NAME", "mongodb_db_name"))
    mongodb_collection: str = Field("chats", validation_alias=_env("MONGODB_COLLECTION", "mongodb_collection"))

    # Sync
    sync_interval_ms: int = Field(60_000, gt=0, validation_alias=_env("SYNC_INTERVAL_MS", "sync_interval_ms"))
    chat_version: str = Field("v2", min_length=1, validation_alias=_env("CHAT_VERSION", "chat_version"))
    scan_batch_size: int = Field(1000, gt=0, validation_alias=_env("SCAN_BATCH_SIZE", "scan_batch_size"))
    store_timeout_seconds: float = Field(
        30.0, gt=0, validation_alias=_env("STORE_TIMEOUT_SECONDS", "store_timeout_seconds")
    )
    max_concurrent_users: int = Field(
        1, ge=1, validation_alias=_env("MAX_CONCURRENT_USERS", "max_concurrent_users")
    )

    # Data optimization
    optimize_data: bool = Field(True, validation_alias=_env("OPTIMIZE_CHAT_DATA", "optimize_data"))
    max_message_length: int = Field(500, gt=0, validation_alias=_env("MAX_MESSAGE_LENGTH", "max_message_length"))
    summary_length: int = Field(200, ge=0, validation_alias=_env("SUMMARY_LENGTH", "summary_length"))
    keep_system_messages: bool = Field(
        True, validation_alias=_env("KEEP_SYSTEM_MESSAGES", "keep_system_messages")
    )
    keep_metadata: bool = Field(True, validation_alias=_env("KEEP_METADATA", "keep_metadata"))

    # Monitoring
    metrics_port: int = Field(0, ge=0, le=65535, validation_alias=_env("METRICS_PORT", "metrics_port"))
    log_level: str = Field("INFO", validation_alias=_env("LOG_LEVEL", "log_level"))

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def check_lengths(self) -> "SyncConfig":
        """Truncated content must come out shorter than the threshold."""
        if self.summary_length >= self.max_message_length:
            raise ValueError(
                f"summary_length ({self.summary_length}) must be smaller than "
                f"max_message_length ({self.max_message_length})"
            )
        return self

    @property
    def sync_interval_seconds(self) -> float:
        return self.sync_interval_ms / 1000

    def require_destination(self) -> None:
        """Check the fatal preconditions for starting the sync service.

        Raises:
            ConfigurationError: If MongoDB is disabled or Upstash credentials are missing
        """
        if not self.use_mongodb:
            raise ConfigurationError(
                "MongoDB is not enabled. Set USE_MONGODB=true (and MONGODB_URI, "
                "MONGODB_DB_NAME) in .env.local"
            )
        if not self.use_local_redis and not (self.upstash_redis_rest_url and self.upstash_redis_rest_token):
            raise ConfigurationError(
                "Upstash Redis configuration missing: set UPSTASH_REDIS_REST_URL and "
                "UPSTASH_REDIS_REST_TOKEN, or USE_LOCAL_REDIS=true"
            )


def load_config_from_file(config_path: str) -> dict[str, Any]:
    """Load configuration overrides from a YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary (empty if the file is missing or unreadable)
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return {}

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return {}

    if not isinstance(config, dict):
        logger.error(f"Config file {config_path} does not contain a mapping, ignoring it")
        return {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_config(config_path: str | None = None) -> SyncConfig:
    """Get configuration instance.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        SyncConfig instance
    """
    if config_path:
        file_config = load_config_from_file(config_path)
        return SyncConfig(**file_config)

    return SyncConfig()


def describe_config(config: SyncConfig) -> list[str]:
    """Render the startup configuration banner.

    Credentials are never included.
    """
    lines = ["===== Redis -> MongoDB sync configuration ====="]
    lines.append(f"Redis backend: {'local Redis' if config.use_local_redis else 'Upstash Redis (REST)'}")
    if config.use_local_redis:
        lines.append(f"Redis URL: {config.local_redis_url}")
    lines.append(f"MongoDB database: {config.mongodb_db_name} (collection: {config.mongodb_collection})")
    lines.append(f"Sync interval: {config.sync_interval_seconds:g}s")
    lines.append(f"Data optimization: {'on' if config.optimize_data else 'off'}")
    if config.optimize_data:
        lines.append(f"- max message length: {config.max_message_length} characters")
        lines.append(f"- summary length: {config.summary_length} characters")
        lines.append(f"- keep system messages: {'yes' if config.keep_system_messages else 'no'}")
        lines.append(f"- keep metadata: {'yes' if config.keep_metadata else 'no'}")
    lines.append("=" * 47)
    return lines
