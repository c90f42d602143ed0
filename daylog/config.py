"""Configuration loading for daylog."""

import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 3000
    environment: str = "development"  # "development" or "production"
    secret_key: str = ""  # Random per process when empty
    session_max_age_seconds: int = 14 * 24 * 3600

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@dataclass
class StorageConfig:
    """Where the server keeps entries and accounts."""

    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: str = "~/.daylog/journal.db"


@dataclass
class EmailConfig:
    """SMTP settings for new-entry notifications."""

    enabled: bool = False
    host: str = "smtp.gmail.com"
    port: int = 587
    secure: bool = False  # Implicit TLS; port 587 uses STARTTLS instead
    user: str | None = None
    password: str | None = None
    from_addr: str | None = None
    to: str | None = None
    timeout_seconds: float = 30.0

    @property
    def sender(self) -> str | None:
        return self.from_addr or self.user


@dataclass
class ProgressConfig:
    target_days: int = 65


@dataclass
class ClientConfig:
    """Settings for the command-line client."""

    server_url: str = "http://127.0.0.1:3000"
    cache_path: str = "~/.daylog/cache.db"
    username: str | None = None
    password: str | None = None
    retry_max_attempts: int = 3
    timeout_seconds: float = 10.0


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    email: EmailConfig = field(default_factory=EmailConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    client: ClientConfig = field(default_factory=ClientConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with DAYLOG_ prefix."""
    return os.environ.get(f"DAYLOG_{key}", default)


def _get_int_env(key: str) -> int | None:
    """Get an integer environment variable with DAYLOG_ prefix."""
    value = _get_env(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"DAYLOG_{key} must be an integer, got {value!r}") from e


def _is_true(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    if host := _get_env("HOST"):
        config.server.host = host
    if (port := _get_int_env("PORT")) is not None:
        config.server.port = port
    if environment := _get_env("ENV"):
        config.server.environment = environment
    if secret_key := _get_env("SECRET_KEY"):
        config.server.secret_key = secret_key

    # Storage overrides
    if backend := _get_env("STORAGE_BACKEND"):
        config.storage.backend = backend
    if db_path := _get_env("DB_PATH"):
        config.storage.db_path = db_path

    # Email overrides; a host in the environment turns notifications on
    if email_host := _get_env("EMAIL_HOST"):
        config.email.host = email_host
        config.email.enabled = True
    if email_enabled := _get_env("EMAIL_ENABLED"):
        config.email.enabled = _is_true(email_enabled)
    if (email_port := _get_int_env("EMAIL_PORT")) is not None:
        config.email.port = email_port
    if email_secure := _get_env("EMAIL_SECURE"):
        config.email.secure = _is_true(email_secure)
    if email_user := _get_env("EMAIL_USER"):
        config.email.user = email_user
    if email_password := _get_env("EMAIL_PASSWORD"):
        config.email.password = email_password
    if email_from := _get_env("EMAIL_FROM"):
        config.email.from_addr = email_from
    if email_to := _get_env("EMAIL_TO"):
        config.email.to = email_to

    # Progress overrides
    if (target_days := _get_int_env("TARGET_DAYS")) is not None:
        config.progress.target_days = target_days

    # Client overrides
    if server_url := _get_env("SERVER_URL"):
        config.client.server_url = server_url
    if cache_path := _get_env("CACHE_PATH"):
        config.client.cache_path = cache_path
    if username := _get_env("USERNAME"):
        config.client.username = username
    if password := _get_env("PASSWORD"):
        config.client.password = password

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None or missing, defaults
            are used.

    Returns:
        Loaded Config object.

    Raises:
        ConfigError: If the file is not valid YAML, an integer override is
            not a number, or a value is out of range.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                    environment=server_data.get("environment", config.server.environment),
                    secret_key=server_data.get("secret_key", config.server.secret_key),
                    session_max_age_seconds=server_data.get(
                        "session_max_age_seconds", config.server.session_max_age_seconds
                    ),
                )

            # Parse storage config
            if "storage" in data:
                storage_data = data["storage"]
                config.storage = StorageConfig(
                    backend=storage_data.get("backend", config.storage.backend),
                    db_path=storage_data.get("db_path", config.storage.db_path),
                )

            # Parse email config
            if "email" in data:
                email_data = data["email"]
                config.email = EmailConfig(
                    enabled=email_data.get("enabled", config.email.enabled),
                    host=email_data.get("host", config.email.host),
                    port=email_data.get("port", config.email.port),
                    secure=email_data.get("secure", config.email.secure),
                    user=email_data.get("user"),
                    password=email_data.get("password"),
                    from_addr=email_data.get("from"),
                    to=email_data.get("to"),
                    timeout_seconds=email_data.get(
                        "timeout_seconds", config.email.timeout_seconds
                    ),
                )

            # Parse progress config
            if "progress" in data:
                config.progress = ProgressConfig(
                    target_days=data["progress"].get(
                        "target_days", config.progress.target_days
                    )
                )

            # Parse client config
            if "client" in data:
                client_data = data["client"]
                config.client = ClientConfig(
                    server_url=client_data.get("server_url", config.client.server_url),
                    cache_path=client_data.get("cache_path", config.client.cache_path),
                    username=client_data.get("username"),
                    password=client_data.get("password"),
                    retry_max_attempts=client_data.get(
                        "retry_max_attempts", config.client.retry_max_attempts
                    ),
                    timeout_seconds=client_data.get(
                        "timeout_seconds", config.client.timeout_seconds
                    ),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    if config.storage.backend not in ("sqlite", "memory"):
        raise ConfigError(f"Unknown storage backend: {config.storage.backend}")
    if config.progress.target_days <= 0:
        raise ConfigError("progress.target_days must be positive")

    # Sessions do not survive a restart without a configured key
    if not config.server.secret_key:
        config.server.secret_key = secrets.token_hex(32)

    return config
