"""Configuration handling for the Mailroom conversation service."""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import yaml  # type: ignore
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# Load environment variables from .env file if it exists
load_dotenv()


class DatabaseBackend(Enum):
    """Message store backend type."""

    POSTGRES = "postgres"
    MEMORY = "memory"

    @classmethod
    def from_string(cls, value: str) -> "DatabaseBackend":
        normalized = value.lower().strip()
        if normalized in ("postgres", "postgresql"):
            return cls.POSTGRES
        elif normalized == "memory":
            return cls.MEMORY
        raise ValueError(
            f"Invalid database backend '{value}'. Must be 'postgres' or 'memory'."
        )


@dataclass
class PostgresConfig:
    """PostgreSQL database configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "mailroom"
    user: str = "mailroom"
    password: str = ""
    ssl_mode: str = "prefer"
    min_pool_size: int = 2
    max_pool_size: int = 10

    def __post_init__(self):
        if self.min_pool_size < 1 or self.max_pool_size < self.min_pool_size:
            raise ValueError(
                f"Invalid pool sizes min={self.min_pool_size} max={self.max_pool_size}"
            )

    @property
    def connection_string(self) -> str:
        user = quote(self.user, safe="")
        password = quote(self.password, safe="")
        return f"postgresql://{user}:{password}@{self.host}:{self.port}/{self.database}?sslmode={self.ssl_mode}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PostgresConfig":
        return cls(
            host=data.get("host") or os.environ.get("POSTGRES_HOST", "localhost"),
            port=int(data.get("port") or os.environ.get("POSTGRES_PORT", "5432")),
            database=data.get("database")
            or os.environ.get("POSTGRES_DATABASE", "mailroom"),
            user=data.get("user") or os.environ.get("POSTGRES_USER", "mailroom"),
            password=data.get("password") or os.environ.get("POSTGRES_PASSWORD", ""),
            ssl_mode=data.get("ssl_mode", "prefer"),
            min_pool_size=int(data.get("min_pool_size", 2)),
            max_pool_size=int(data.get("max_pool_size", 10)),
        )


@dataclass
class DatabaseConfig:
    """Message store configuration."""

    backend: DatabaseBackend = DatabaseBackend.POSTGRES
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    query_timeout_seconds: float = 10.0

    def __post_init__(self):
        if self.query_timeout_seconds <= 0:
            raise ValueError("query_timeout_seconds must be positive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabaseConfig":
        backend_str = data.get("backend") or os.environ.get(
            "MAILROOM_DB_BACKEND", "postgres"
        )
        return cls(
            backend=DatabaseBackend.from_string(backend_str),
            postgres=PostgresConfig.from_dict(data.get("postgres", {})),
            query_timeout_seconds=float(data.get("query_timeout_seconds", 10.0)),
        )


@dataclass
class LimitsConfig:
    """Page sizes and batch bounds."""

    conversation_page_default: int = 50
    conversation_page_max: int = 100
    message_page_default: int = 30
    message_page_max: int = 100
    search_page_default: int = 20
    search_page_max: int = 50
    min_query_length: int = 2
    max_bulk_ids: int = 500
    preview_length: int = 120

    def __post_init__(self):
        pairs = [
            ("conversation", self.conversation_page_default, self.conversation_page_max),
            ("message", self.message_page_default, self.message_page_max),
            ("search", self.search_page_default, self.search_page_max),
        ]
        for name, default, maximum in pairs:
            if default < 1 or maximum < 1:
                raise ValueError(f"{name} page sizes must be positive")
            if default > maximum:
                raise ValueError(
                    f"{name} page default ({default}) exceeds its maximum ({maximum})"
                )
        if self.min_query_length < 1:
            raise ValueError("min_query_length must be at least 1")
        if self.max_bulk_ids < 1:
            raise ValueError("max_bulk_ids must be positive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LimitsConfig":
        defaults = cls()
        return cls(
            **{
                name: int(data.get(name, getattr(defaults, name)))
                for name in defaults.__dataclass_fields__
            }
        )


@dataclass
class CacheConfig:
    """Aggregate cache configuration. A TTL of 0 disables caching."""

    ttl_seconds: float = 30.0
    max_entries: int = 1024

    def __post_init__(self):
        if self.ttl_seconds < 0:
            raise ValueError("cache ttl_seconds cannot be negative")
        if self.max_entries < 1:
            raise ValueError("cache max_entries must be at least 1")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        return cls(
            ttl_seconds=float(data.get("ttl_seconds", 30.0)),
            max_entries=int(data.get("max_entries", 1024)),
        )


@dataclass
class AccountsConfig:
    """Where account owner addresses come from.

    With ``service_url`` set, addresses are looked up over HTTP; otherwise the
    message store's account table is used. ``addresses`` seeds the in-memory
    backend.
    """

    service_url: Optional[str] = None
    timeout_seconds: float = 10.0
    addresses: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.addresses = {
            str(account_id): address.strip().lower()
            for account_id, address in self.addresses.items()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountsConfig":
        return cls(
            service_url=data.get("service_url")
            or os.environ.get("ACCOUNTS_SERVICE_URL"),
            timeout_seconds=float(data.get("timeout_seconds", 10.0)),
            addresses=data.get("addresses") or {},
        )


@dataclass
class AttachmentsConfig:
    """Attachment locator resolution."""

    base_url: str = "/attachments"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttachmentsConfig":
        base_url = data.get("base_url") or os.environ.get(
            "ATTACHMENTS_BASE_URL", "/attachments"
        )
        return cls(base_url=base_url.rstrip("/"))


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    def __post_init__(self):
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level '{self.log_level}'")
        self.log_level = self.log_level.upper()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WebConfig":
        return cls(
            host=data.get("host") or os.environ.get("MAILROOM_HOST", "0.0.0.0"),
            port=int(data.get("port") or os.environ.get("MAILROOM_PORT", "8080")),
            log_level=data.get("log_level") or os.environ.get("LOG_LEVEL", "INFO"),
        )


@dataclass
class ServerConfig:
    """Mailroom service configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    accounts: AccountsConfig = field(default_factory=AccountsConfig)
    attachments: AttachmentsConfig = field(default_factory=AttachmentsConfig)
    web: WebConfig = field(default_factory=WebConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        """Create configuration from dictionary."""
        return cls(
            database=DatabaseConfig.from_dict(data.get("database") or {}),
            limits=LimitsConfig.from_dict(data.get("limits") or {}),
            cache=CacheConfig.from_dict(data.get("cache") or {}),
            accounts=AccountsConfig.from_dict(data.get("accounts") or {}),
            attachments=AttachmentsConfig.from_dict(data.get("attachments") or {}),
            web=WebConfig.from_dict(data.get("web") or {}),
        )


def load_config(config_path: Optional[str] = None) -> ServerConfig:
    """Load configuration from file or environment variables.

    Args:
        config_path: Path to configuration file

    Returns:
        Server configuration

    Raises:
        ValueError: If configuration is invalid
    """
    default_locations = [
        Path("config/config.yaml"),
        Path("config/config.yml"),
        Path("config.yaml"),
        Path("config.yml"),
        Path("~/.config/mailroom/config.yaml"),
        Path("/etc/mailroom/config.yaml"),
    ]

    config_data: Dict[str, Any] = {}

    if config_path:
        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {config_path}")
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {config_path}")
    else:
        for path in default_locations:
            expanded_path = path.expanduser()
            if expanded_path.exists():
                with open(expanded_path, "r") as f:
                    config_data = yaml.safe_load(f) or {}
                logger.info(f"Loaded configuration from {expanded_path}")
                break

    if not config_data:
        logger.info("No configuration file found, using environment variables")

    if not isinstance(config_data, dict):
        raise ValueError("Configuration file must contain a mapping")

    return ServerConfig.from_dict(config_data)
