"""
Configuration management for Relay.

Hybrid configuration system using YAML files and environment variables.
Priority: Environment variables > YAML config > Pydantic defaults
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Relay configuration schema.

    Loads configuration from:
    1. Environment variables (highest priority)
    2. YAML configuration files
    3. Pydantic defaults (lowest priority)

    Configuration files:
        - config/default.yaml: Base defaults
        - config/production.yaml: Production overrides
        - config/development.yaml: Development overrides
        - config/test.yaml: Test overrides
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Application
    APP_NAME: str = "UBY Relay"
    APP_VERSION: str = "2.0.0"
    ENV: str = Field(default="production", description="Environment name")
    DEBUG: bool = Field(default=False, description="Debug mode")

    # API Server (mapped from YAML 'host' and 'port')
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)

    # TLS listener (started only when both files are configured)
    tls_port: int = Field(default=3443, ge=1, le=65535)
    ssl_certfile: Optional[str] = Field(default=None)
    ssl_keyfile: Optional[str] = Field(default=None)

    # Abuse guard: connection attempts per IP
    connection_window_seconds: int = Field(
        default=300,
        ge=1,
        description="Window for counting connection attempts per IP",
    )
    max_connections_per_window: int = Field(
        default=10,
        ge=1,
        description="Connection attempts allowed per IP per window",
    )

    # Abuse guard: messages per connection
    message_window_seconds: int = Field(
        default=60,
        ge=1,
        description="Window for counting messages per connection",
    )
    max_messages_per_window: int = Field(
        default=60,
        ge=1,
        description="Messages allowed per connection per window",
    )
    rate_limit_exempt_heartbeat: bool = Field(
        default=False,
        description="Do not count ping/heartbeat against the message rate",
    )

    # Abuse guard: blocking
    block_duration_seconds: int = Field(
        default=1800,
        ge=1,
        description="How long a blocked IP stays rejected",
    )
    guard_sweep_interval: int = Field(
        default=300,
        ge=1,
        description="Seconds between sweeps of stale windows and blocks",
    )

    # Heartbeat
    heartbeat_check_interval: int = Field(default=30, ge=1)
    heartbeat_timeout: int = Field(default=60, ge=1)

    # Persistence
    data_dir: str = Field(default="data")
    state_file_name: str = Field(default="user-state.json")
    snapshot_interval: int = Field(
        default=300,
        ge=1,
        description="Seconds between periodic state snapshots",
    )
    restore_on_startup: bool = Field(default=True)

    # User directory
    users_file: Optional[str] = Field(
        default="config/users.json",
        description="JSON user directory, relative to the service root",
    )
    allow_unlisted_users: bool = Field(
        default=False,
        description="Authenticate users missing from the directory",
    )
    directory_reload_interval: int = Field(
        default=5,
        ge=0,
        description="Seconds between checks of the users file for edits (0 disables)",
    )

    # Message handling
    max_message_size: int = Field(
        default=1_048_576,  # 1MB
        ge=1024,
        description="Maximum WebSocket message size in bytes",
    )
    allow_remote_shutdown: bool = Field(
        default=False,
        description="Honour 'shutdown-server' from authenticated clients",
    )

    # Graceful Shutdown
    shutdown_timeout: int = Field(
        default=30,
        ge=1,
        description="Maximum seconds to wait for graceful shutdown",
    )
    shutdown_grace_period: float = Field(
        default=1.0,
        ge=0,
        description="Seconds between the shutdown notice and closing sockets",
    )

    # Logging (mapped from YAML 'log_level')
    log_level: str = Field(default="info")
    log_file: Optional[str] = Field(default=None)
    verbose: int = Field(default=1, ge=0, le=3)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["debug", "info", "warning", "error", "critical"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"Invalid log_level. Must be one of: {allowed}")
        return v_lower

    @model_validator(mode="after")
    def validate_tls_pair(self) -> "Settings":
        """Certificate and key must be configured together."""
        if bool(self.ssl_certfile) != bool(self.ssl_keyfile):
            raise ValueError("ssl_certfile and ssl_keyfile must be set together")
        return self

    @property
    def tls_enabled(self) -> bool:
        return bool(self.ssl_certfile and self.ssl_keyfile)

    @property
    def state_file(self) -> Path:
        """Full path of the persisted state document."""
        return resolve_path(self.data_dir) / self.state_file_name

    @property
    def users_path(self) -> Optional[Path]:
        if not self.users_file:
            return None
        return resolve_path(self.users_file)


def get_project_root() -> Path:
    """Service root (4 levels up from this file)."""
    return Path(__file__).resolve().parent.parent.parent.parent


def resolve_path(path: str) -> Path:
    """Resolve a configured path; relative paths are relative to the service root."""
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return get_project_root() / candidate


def load_config(
    config_file: Optional[str] = None,
    env_file: Optional[str] = None,
    env: Optional[str] = None,
) -> Settings:
    """
    Load configuration from YAML files and environment variables.

    Priority: ENV vars > environment-specific YAML > default YAML > defaults

    Args:
        config_file: Optional YAML config filename override
        env_file: Optional .env filename (e.g., ".env.development")
        env: Optional environment name override

    Returns:
        Settings instance

    Raises:
        ValidationError: If a configured value is invalid
    """
    project_root = get_project_root()
    config_dir = project_root / "config"

    # Determine environment (explicit parameter > ENV var > default)
    environment = env or os.getenv("ENV", "production")

    # Map environment to config and env files
    env_map = {
        "production": (".env.production", "production.yaml"),
        "development": (".env.development", "development.yaml"),
        "test": (".env.test", "test.yaml"),
    }

    # Load .env file FIRST (before Settings initialization)
    default_env_file, default_config_file = env_map.get(
        environment, (".env.production", "production.yaml")
    )
    if env_file is None:
        env_file = default_env_file
    if config_file is None:
        config_file = default_config_file

    env_file_path = project_root / env_file
    if env_file_path.exists():
        load_dotenv(env_file_path, override=True)

    # Load default config
    default_config_path = config_dir / "default.yaml"
    merged_config = {}

    if default_config_path.exists():
        with open(default_config_path, "r") as f:
            loaded = yaml.safe_load(f)
            if loaded:
                merged_config = loaded

    # Load environment-specific config (overrides defaults)
    env_config_path = config_dir / config_file
    if env_config_path.exists():
        with open(env_config_path, "r") as f:
            loaded = yaml.safe_load(f)
            if loaded:
                for key, value in loaded.items():
                    merged_config[key] = value

    merged_config["ENV"] = environment

    # Environment variables win over YAML
    for key in list(merged_config):
        if key in os.environ:
            merged_config.pop(key)

    return Settings(**merged_config)


# Global settings singleton (lazy initialization)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or initialize global settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """
    Override global settings (for testing).

    Args:
        new_settings: New Settings instance to use
    """
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """
    Reset settings to force re-initialization (for testing).

    This allows tests to change environment variables and reload config.
    """
    global _settings
    _settings = None
