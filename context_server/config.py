"""Configuration management for the MCP context server."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from typing import Optional, Literal, List
from pathlib import Path
import json
import logging

from context_server.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class AnalyzerFeatures(BaseModel):
    """Project analyzer settings."""

    ignore_dirs: List[str] = [
        "bin", "obj", "node_modules", ".git", "target", "vendor",
        "__pycache__", "dist", "build", ".venv", "venv",
    ]
    max_file_size_mb: int = 10
    max_source_files: int = 2000
    parse_symbols: bool = True  # Run tree-sitter symbol extraction

    @field_validator("max_file_size_mb", "max_source_files")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Limits must be positive."""
        if v < 1:
            raise ValueError("analyzer limits must be >= 1")
        return v


class TrainingFeatures(BaseModel):
    """Pattern training settings."""

    default_relevance: float = Field(default=0.8, ge=0.0, le=1.0)
    default_version: str = "latest"
    auto_save: bool = True  # Persist immediately after train-pattern


class ServerConfig(BaseSettings):
    """
    Server configuration with environment variable support.

    Every field can be overridden with an ``MCP_CONTEXT_`` prefixed
    environment variable, e.g. ``MCP_CONTEXT_PATTERNS_PATH``.
    """

    # Core settings
    server_name: str = "mcp-context-server"
    server_version: str = "0.1.0"
    protocol_version: str = "2024-11-05"

    # Logging (always written to stderr; stdout carries the protocol)
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"
    log_file: Optional[str] = None

    # Pattern storage
    patterns_path: str = "~/.mcp-context/patterns"

    # Context building
    max_context_patterns: int = 10

    # Feature groups
    analyzer: AnalyzerFeatures = AnalyzerFeatures()
    training: TrainingFeatures = TrainingFeatures()

    model_config = SettingsConfigDict(
        env_prefix="MCP_CONTEXT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(_VALID_LOG_LEVELS)}, got '{v}'"
            )
        return level

    @model_validator(mode="after")
    def validate_config(self) -> "ServerConfig":
        """Validate configuration consistency and constraints."""
        if self.max_context_patterns < 1:
            raise ValueError("max_context_patterns must be >= 1")
        if self.max_context_patterns > 100:
            raise ValueError("max_context_patterns must not exceed 100")
        if not self.patterns_path.strip():
            raise ValueError("patterns_path cannot be empty")
        return self

    def get_expanded_path(self, path: str) -> Path:
        """Expand ~ and environment-independent path components."""
        return Path(path).expanduser()

    @property
    def patterns_path_expanded(self) -> Path:
        """Get the expanded pattern storage directory."""
        return self.get_expanded_path(self.patterns_path)


# Global config instance
_config: Optional[ServerConfig] = None

_USER_CONFIG_PATH = Path.home() / ".mcp-context" / "config.json"


def _load_user_config_overrides() -> dict:
    """
    Load user configuration overrides from ~/.mcp-context/config.json.

    Returns:
        Dict of config overrides, or empty dict if no config file exists
    """
    if not _USER_CONFIG_PATH.exists():
        return {}

    try:
        with open(_USER_CONFIG_PATH, "r") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load user config from {_USER_CONFIG_PATH}: {e}")
        return {}


def get_config() -> ServerConfig:
    """
    Get or create global configuration instance.

    Configuration priority (highest to lowest):
    1. Environment variables (MCP_CONTEXT_*)
    2. User config file (~/.mcp-context/config.json)
    3. Built-in defaults
    """
    global _config
    if _config is None:
        user_overrides = _load_user_config_overrides()
        try:
            # Init kwargs outrank env vars in pydantic-settings; drop file
            # overrides for keys the environment already sets.
            env_config = ServerConfig()
            env_set = env_config.model_fields_set
            merged = {k: v for k, v in user_overrides.items() if k not in env_set}
            _config = ServerConfig(**merged) if merged else env_config
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                f"Check MCP_CONTEXT_* environment variables and {_USER_CONFIG_PATH}",
            ) from e
    return _config


def set_config(config: Optional[ServerConfig]) -> None:
    """Set global configuration instance (mainly for testing)."""
    global _config
    _config = config
