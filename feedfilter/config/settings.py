"""
FeedFilter Configuration System
===============================

Configuration management with Pydantic models. Sources, highest precedence
first: explicit overrides (CLI), environment variables, ``.env``, the JSON
config file (``appsettings.json`` by default), Field defaults.
"""

import re
from pathlib import Path
from typing import List, Dict, Optional, Any, Tuple, Type
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from ..utils.exceptions import ConfigurationError, ErrorCode


DEFAULT_CONFIG_FILE = "appsettings.json"


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TagCleanupRule(BaseModel):
    """Regex whose matches are deleted from every element with this name."""
    tag_name: str = Field(default="", description="Local name of the elements to clean")
    cleanup_pattern: str = Field(default="", description="Regex removed from the element text")


class TagSplitRule(BaseModel):
    """Regex with two capture groups whose parts feed new or existing tags."""
    tag_name: str = Field(default="", description="Local name of the elements to split")
    split_pattern: str = Field(default="", description="Regex with at least two capture groups")
    new_tags: Dict[str, str] = Field(
        default_factory=dict,
        description="Target tag name -> template using $1/$2, applied in declaration order",
    )


def _default_cleanup_rules() -> List[TagCleanupRule]:
    return [
        TagCleanupRule(tag_name="title", cleanup_pattern=r"\sS\d{2}E\d{2}.*"),
        TagCleanupRule(tag_name="description", cleanup_pattern=r"\s\d{3,4}p.*"),
    ]


class FeedSettings(BaseModel):
    """Upstream feed and rewrite rules."""
    input_source: Optional[str] = Field(default=None, description="URL of the upstream feed")
    tags_to_remove: List[str] = Field(
        default_factory=list,
        description="Tags to strip, as 'localName' or 'prefix:localName'",
    )
    cleanup_tags: bool = Field(default=False, description="Enable the split and cleanup phases")
    tag_cleanup_settings: List[TagCleanupRule] = Field(
        default_factory=_default_cleanup_rules,
        description="Cleanup rules applied when cleanup_tags is enabled",
    )
    tag_cleanup: List[TagCleanupRule] = Field(
        default_factory=list,
        description="Legacy cleanup rules, run after tag_cleanup_settings",
    )
    tag_split: List[TagSplitRule] = Field(
        default_factory=list,
        description="Split rules, run before any cleanup rule",
    )

    @field_validator('input_source')
    @classmethod
    def validate_input_source(cls, v):
        """Only http(s) sources can be polled."""
        if v is None or not v.strip():
            return None
        parsed = urlparse(v.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"input_source must be an http(s) URL, got '{v}'")
        return v.strip()

    @field_validator('tags_to_remove')
    @classmethod
    def validate_tags(cls, v):
        """Drop blank entries."""
        return [tag.strip() for tag in v if tag and tag.strip()]

    def all_cleanup_rules(self) -> List[TagCleanupRule]:
        """Cleanup rules in application order."""
        return list(self.tag_cleanup_settings) + list(self.tag_cleanup)


class LoggerSettings(BaseModel):
    """Bounded log file configuration."""
    log_directory: str = Field(default="logs", description="Directory holding one file per stream")
    max_file_size_bytes: int = Field(default=100 * 1024, ge=1, description="Size that triggers a trim")
    buffer_size: int = Field(default=50, ge=1, description="Oldest lines dropped per trim")


class MonitorSettings(BaseModel):
    """Polling and retry behaviour."""
    max_retries: int = Field(default=3, ge=1, le=20, description="Fetch attempts per cycle")
    retry_delay_seconds: float = Field(default=5.0, ge=0.0, description="Fixed delay between attempts")
    poll_interval_seconds: float = Field(default=300.0, gt=0.0, description="Delay between cycles")
    request_timeout: float = Field(default=30.0, gt=0.0, le=300.0, description="Request timeout in seconds")


class ServerSettings(BaseModel):
    """HTTP listener."""
    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=5000, ge=1, le=65535, description="Listening port")


class LoggingSettings(BaseModel):
    """Console logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    console_logging: bool = Field(default=True, description="Enable console logging")


# Path read by the JSON settings source; set by load_settings()
_config_file: Optional[str] = None

# PascalCase sections of the original appsettings.json layout
LEGACY_SECTIONS = {"RSSFilter": "feed", "Logger": "logger"}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _snake_case_keys(value: Any) -> Any:
    if isinstance(value, list):
        return [_snake_case_keys(item) for item in value]
    if not isinstance(value, dict):
        return value

    converted = {}
    for key, item in value.items():
        name = _snake_case(key)
        # new_tags maps tag names, which are data and keep their case
        converted[name] = item if name == "new_tags" else _snake_case_keys(item)
    return converted


def translate_legacy_layout(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map ``RSSFilter``/``Logger`` sections with PascalCase keys onto our sections.

    Sections already in the native layout pass through unchanged and win
    over translated legacy values.
    """
    translated: Dict[str, Any] = {}
    for key, value in data.items():
        section = LEGACY_SECTIONS.get(key)
        if section is not None and isinstance(value, dict):
            translated.setdefault(section, {}).update(_snake_case_keys(value))

    for key, value in data.items():
        if key in LEGACY_SECTIONS:
            continue
        if isinstance(value, dict) and isinstance(translated.get(key), dict):
            translated[key].update(value)
        else:
            translated[key] = value

    return translated


class AppSettingsJsonSource(JsonConfigSettingsSource):
    """JSON config source that understands both section layouts."""

    def _read_file(self, file_path: Path) -> Dict[str, Any]:
        data = super()._read_file(file_path)
        if not isinstance(data, dict):
            return data
        return translate_legacy_layout(data)


class FeedFilterSettings(BaseSettings):
    """Main application settings."""

    feed: FeedSettings = Field(default_factory=FeedSettings)
    logger: LoggerSettings = Field(default_factory=LoggerSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="FeedFilter", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        env_prefix="FEEDFILTER_",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        json_settings = AppSettingsJsonSource(
            settings_cls, json_file=_config_file or DEFAULT_CONFIG_FILE
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            json_settings,
            file_secret_settings,
        )

    def rule_errors(self) -> List[str]:
        """Compile every split and cleanup pattern, returning the failures."""
        errors = []

        for rule in self.feed.tag_split:
            try:
                compiled = re.compile(rule.split_pattern)
            except re.error as e:
                errors.append(f"Invalid split pattern for '{rule.tag_name}': {e}")
                continue
            if rule.split_pattern and compiled.groups < 2:
                errors.append(
                    f"Split pattern for '{rule.tag_name}' needs at least 2 capture groups"
                )

        for rule in self.feed.all_cleanup_rules():
            try:
                re.compile(rule.cleanup_pattern)
            except re.error as e:
                errors.append(f"Invalid cleanup pattern for '{rule.tag_name}': {e}")

        return errors

    def validate_configuration(self) -> None:
        """Validate configuration needed to serve the feed."""
        errors = []

        if not self.feed.input_source:
            errors.append("feed.input_source is required")

        errors.extend(self.rule_errors())

        try:
            Path(self.logger.log_directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid log directory: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings(
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> FeedFilterSettings:
    """Load settings from overrides, environment, .env and the JSON file.

    Args:
        config_path: JSON config file (defaults to appsettings.json)
        overrides: Nested values that win over every other source

    Returns:
        Loaded settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config_file

    from dotenv import load_dotenv
    load_dotenv()

    if config_path and not Path(config_path).is_file():
        raise ConfigurationError(
            f"Config file not found: {config_path}",
            config_key="config_path",
            error_code=ErrorCode.CONFIG_MISSING,
        )

    _config_file = config_path
    try:
        return FeedFilterSettings(**(overrides or {}))
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


# Global settings instance
_settings: Optional[FeedFilterSettings] = None


def get_settings(reload: bool = False) -> FeedFilterSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings(_config_file)

    return _settings


def set_settings(settings: FeedFilterSettings) -> None:
    """Install an already-built settings object as the global instance."""
    global _settings
    _settings = settings
