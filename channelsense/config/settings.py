"""Application settings with Pydantic Settings validation.

Secrets (tokens, API keys) are loaded from the environment / .env file.
Non-sensitive configuration is loaded from config/*.yaml files, merged and
validated against JSON schemas in config/schemas/.
"""

import json
from pathlib import Path
from typing import Any, Final, Literal, cast

import pytz
import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from channelsense.config.logging_config import get_logger
from channelsense.domain.reward_constants import (
    DEFAULT_ACTIVE_CHANNEL_LOOKBACK_DAYS,
    DEFAULT_ACTIVE_CHANNEL_MIN_MESSAGES,
    DEFAULT_EXTERNAL_CALL_TIMEOUT_SECONDS,
    DEFAULT_MIN_MESSAGES_FOR_REWARD,
    DEFAULT_RANKING_LIMIT,
    DEFAULT_REWARD_ISSUE_CONCURRENCY,
    DEFAULT_TOP_USERS_COUNT,
)

CONFIG_DIR: Final[Path] = Path("config")
SCHEMA_DIR: Final[Path] = CONFIG_DIR / "schemas"
MAIN_CONFIG_NAME: Final[str] = "main.yaml"

WALLET_SESSION_TTL_SECONDS_DEFAULT: Final[int] = 300

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries (override wins)."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str, schema_dir: Path = SCHEMA_DIR) -> dict[str, Any]:
    """Load JSON Schema for a config file.

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = schema_dir / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("config_schema_load_failed", schema=schema_name, error=str(e))
        return {}


def validate_config_section(
    config: dict[str, Any],
    schema_name: str,
    file_path: str = "",
    schema_dir: Path = SCHEMA_DIR,
) -> None:
    """Validate a config section against its JSON Schema.

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name, schema_dir)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def validate_timezone(name: str) -> str:
    """Return `name` unchanged if pytz knows the zone.

    Raises:
        ValueError: If the zone name is unknown
    """
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError as e:
        raise ValueError(f"Unknown timezone: {name}") from e
    return name


def load_all_configs(config_dir: Path = CONFIG_DIR) -> dict[str, Any]:
    """Load and merge all YAML configs from the config directory.

    Loading order (later overrides earlier):
    1. config/main.yaml
    2. All other config/*.yaml files (sorted alphabetically)

    Returns:
        Merged configuration dictionary
    """
    merged_config: dict[str, Any] = {}
    if not config_dir.is_dir():
        return merged_config

    schema_dir = config_dir / "schemas"
    main_path = config_dir / MAIN_CONFIG_NAME
    yaml_files = sorted(
        path for path in config_dir.glob("*.yaml") if path.name != MAIN_CONFIG_NAME
    )
    if main_path.exists():
        yaml_files.insert(0, main_path)

    for yaml_file in yaml_files:
        schema_name = yaml_file.stem
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("config_file_load_failed", path=str(yaml_file), error=str(e))
            continue

        try:
            validate_config_section(
                file_config, schema_name, str(yaml_file), schema_dir
            )
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    logger.debug("config_load_complete", file_count=len(yaml_files))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Environment variables take precedence over YAML values, which take
    precedence over field defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from .env) ===

    telegram_bot_token: SecretStr | None = Field(
        default=None, description="Telegram Bot API token (from .env)"
    )
    telegram_api_id: int | None = Field(
        default=None, description="Telegram API ID for the MTProto client (from .env)"
    )
    telegram_api_hash: SecretStr | None = Field(
        default=None, description="Telegram API hash (from .env)"
    )
    openai_api_key: SecretStr | None = Field(
        default=None, description="OpenAI API key (from .env)"
    )
    mistral_api_key: SecretStr | None = Field(
        default=None, description="Mistral API key (from .env)"
    )
    reward_service_token: SecretStr | None = Field(
        default=None, description="Bearer token for the reward minting service"
    )

    # === NON-SENSITIVE CONFIG (from config/*.yaml or defaults) ===

    def __init__(self, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs()

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        database_config = config.get("database") or {}
        _assign("database_type", database_config.get("type"))
        _assign("db_path", database_config.get("path"))

        rewards_config = config.get("rewards") or {}
        _assign("min_messages_for_reward", rewards_config.get("min_messages"))
        _assign("top_users_count", rewards_config.get("top_users_count"))
        _assign("ranking_limit", rewards_config.get("ranking_limit"))
        _assign("reward_type", rewards_config.get("reward_type"))
        _assign("reward_issue_concurrency", rewards_config.get("issue_concurrency"))
        _assign("reward_service_url", rewards_config.get("service_url"))
        _assign(
            "active_channel_min_messages",
            rewards_config.get("active_channel_min_messages"),
        )
        _assign(
            "active_channel_lookback_days",
            rewards_config.get("active_channel_lookback_days"),
        )

        runtime_config = config.get("runtime") or {}
        _assign(
            "external_call_timeout_seconds",
            runtime_config.get("external_call_timeout_seconds"),
        )
        tz_name = runtime_config.get("tz_default")
        _assign("tz_default", validate_timezone(tz_name) if tz_name else None)

        llm_config = config.get("llm") or {}
        _assign("llm_provider", llm_config.get("provider"))
        _assign("llm_model", llm_config.get("model"))
        _assign("llm_temperature", llm_config.get("temperature"))
        _assign("llm_timeout_seconds", llm_config.get("timeout_seconds"))

        telegram_config = config.get("telegram") or {}
        _assign("telegram_session_path", telegram_config.get("session_path"))

        wallet_config = config.get("wallet") or {}
        _assign("wallet_session_ttl_seconds", wallet_config.get("session_ttl_seconds"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))
        _assign("json_logs", logging_config.get("json"))

    # Database configuration
    database_type: Literal["sqlite"] = Field(
        default="sqlite", description="Activity store backend"
    )
    db_path: str = Field(
        default="data/channelsense.db", description="SQLite database path"
    )

    # Reward selection
    min_messages_for_reward: int = Field(
        default=DEFAULT_MIN_MESSAGES_FOR_REWARD,
        ge=0,
        description="Minimum weekly messages for reward eligibility",
    )
    top_users_count: int = Field(
        default=DEFAULT_TOP_USERS_COUNT,
        ge=0,
        description="Rewards per channel per week",
    )
    ranking_limit: int = Field(
        default=DEFAULT_RANKING_LIMIT, ge=1, description="Users ranked per channel"
    )
    reward_type: str = Field(default="weekly", description="Reward type label")
    reward_issue_concurrency: int = Field(
        default=DEFAULT_REWARD_ISSUE_CONCURRENCY,
        ge=1,
        description="Parallel issuance calls within one channel",
    )
    reward_service_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the reward minting service",
    )
    active_channel_min_messages: int = Field(
        default=DEFAULT_ACTIVE_CHANNEL_MIN_MESSAGES,
        ge=0,
        description="Channels need more than this many messages in the lookback",
    )
    active_channel_lookback_days: int = Field(
        default=DEFAULT_ACTIVE_CHANNEL_LOOKBACK_DAYS, ge=1
    )

    # Runtime
    external_call_timeout_seconds: float = Field(
        default=DEFAULT_EXTERNAL_CALL_TIMEOUT_SECONDS,
        gt=0,
        description="Timeout applied to every store/issuance/notification call",
    )
    tz_default: str = Field(
        default="UTC", description="Timezone used for report dates"
    )

    # LLM configuration
    llm_provider: Literal["openai", "mistral"] = Field(
        default="openai", description="Narrative generation provider"
    )
    llm_model: str | None = Field(
        default=None, description="Model override (provider default when unset)"
    )
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_timeout_seconds: int = Field(default=60, ge=1)

    # Telegram
    telegram_session_path: str = Field(
        default="data/channelsense_bot.session",
        description="Path to Telethon session file for the bot account",
    )

    # Wallet connect
    wallet_session_ttl_seconds: int = Field(
        default=WALLET_SESSION_TTL_SECONDS_DEFAULT,
        ge=1,
        description="Lifetime of a pending wallet-link session",
    )

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("reward_service_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("tz_default")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        return validate_timezone(v)

    @property
    def active_channel_lookback_hours(self) -> int:
        return self.active_channel_lookback_days * 24


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
