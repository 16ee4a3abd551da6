"""Tests for the config module."""

import tempfile

import pytest
import yaml

from mailroom.config import (
    AccountsConfig,
    AttachmentsConfig,
    CacheConfig,
    DatabaseBackend,
    DatabaseConfig,
    LimitsConfig,
    PostgresConfig,
    ServerConfig,
    WebConfig,
    load_config,
)

ENV_VARS = [
    "MAILROOM_DB_BACKEND",
    "POSTGRES_HOST",
    "POSTGRES_PORT",
    "POSTGRES_DATABASE",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "ACCOUNTS_SERVICE_URL",
    "ATTACHMENTS_BASE_URL",
    "MAILROOM_HOST",
    "MAILROOM_PORT",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_var in ENV_VARS:
        monkeypatch.delenv(env_var, raising=False)


class TestDatabaseConfig:
    """Test cases for the DatabaseConfig class."""

    def test_backend_from_string(self):
        assert DatabaseBackend.from_string("PostgreSQL") == DatabaseBackend.POSTGRES
        assert DatabaseBackend.from_string(" memory ") == DatabaseBackend.MEMORY
        with pytest.raises(ValueError):
            DatabaseBackend.from_string("sqlite")

    def test_defaults(self):
        config = DatabaseConfig.from_dict({})
        assert config.backend == DatabaseBackend.POSTGRES
        assert config.postgres.host == "localhost"
        assert config.postgres.port == 5432
        assert config.query_timeout_seconds == 10.0

    def test_env_fallbacks(self, monkeypatch):
        monkeypatch.setenv("MAILROOM_DB_BACKEND", "memory")
        monkeypatch.setenv("POSTGRES_HOST", "db.internal")
        monkeypatch.setenv("POSTGRES_PASSWORD", "secret")

        config = DatabaseConfig.from_dict({})

        assert config.backend == DatabaseBackend.MEMORY
        assert config.postgres.host == "db.internal"
        assert config.postgres.password == "secret"

    def test_file_values_win_over_env(self, monkeypatch):
        monkeypatch.setenv("POSTGRES_HOST", "db.internal")
        config = PostgresConfig.from_dict({"host": "db.example.com", "port": 6432})
        assert config.host == "db.example.com"
        assert config.port == 6432

    def test_connection_string(self):
        config = PostgresConfig(user="u", password="p", host="h", port=1, database="d")
        assert config.connection_string == "postgresql://u:p@h:1/d?sslmode=prefer"

    def test_connection_string_escapes_credentials(self):
        config = PostgresConfig(
            user="mail user", password="p@ss:w/rd?#", host="h", port=1, database="d"
        )
        assert config.connection_string == (
            "postgresql://mail%20user:p%40ss%3Aw%2Frd%3F%23@h:1/d?sslmode=prefer"
        )

    def test_invalid_pool_sizes(self):
        with pytest.raises(ValueError):
            PostgresConfig(min_pool_size=5, max_pool_size=2)

    def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            DatabaseConfig(query_timeout_seconds=0)


class TestLimitsConfig:
    """Test cases for the LimitsConfig class."""

    def test_defaults(self):
        limits = LimitsConfig()
        assert limits.conversation_page_default == 50
        assert limits.conversation_page_max == 100
        assert limits.search_page_max == 50
        assert limits.min_query_length == 2

    def test_from_dict_overrides_some_fields(self):
        limits = LimitsConfig.from_dict({"search_page_max": 25, "max_bulk_ids": "10"})
        assert limits.search_page_max == 25
        assert limits.max_bulk_ids == 10
        assert limits.message_page_default == 30

    def test_default_above_maximum(self):
        with pytest.raises(ValueError) as excinfo:
            LimitsConfig(search_page_default=60, search_page_max=50)
        assert "search" in str(excinfo.value)


class TestServiceConfigs:
    def test_account_addresses_are_lowercased(self):
        config = AccountsConfig.from_dict({"addresses": {1: " Me@Example.com "}})
        assert config.addresses == {"1": "me@example.com"}
        assert config.service_url is None

    def test_accounts_service_from_env(self, monkeypatch):
        monkeypatch.setenv("ACCOUNTS_SERVICE_URL", "http://accounts:9000")
        assert AccountsConfig.from_dict({}).service_url == "http://accounts:9000"

    def test_attachment_base_url_is_trimmed(self):
        config = AttachmentsConfig.from_dict({"base_url": "https://files.example.com/"})
        assert config.base_url == "https://files.example.com"

    def test_web_log_level(self):
        assert WebConfig(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValueError):
            WebConfig(log_level="chatty")

    def test_cache_size_cap(self):
        assert CacheConfig.from_dict({"max_entries": "50"}).max_entries == 50
        with pytest.raises(ValueError):
            CacheConfig(max_entries=0)


class TestLoadConfig:
    """Test cases for the load_config function."""

    def test_load_from_file(self):
        config_data = {
            "database": {"backend": "memory", "query_timeout_seconds": 2},
            "limits": {"conversation_page_default": 20},
            "cache": {"ttl_seconds": 0},
            "accounts": {"addresses": {"acct-1": "me@example.com"}},
            "web": {"port": 9090},
        }

        with tempfile.NamedTemporaryFile(suffix=".yaml", mode="w+") as temp_file:
            yaml.dump(config_data, temp_file)
            temp_file.flush()

            config = load_config(temp_file.name)

            assert config.database.backend == DatabaseBackend.MEMORY
            assert config.database.query_timeout_seconds == 2.0
            assert config.limits.conversation_page_default == 20
            assert config.cache.ttl_seconds == 0
            assert config.accounts.addresses == {"acct-1": "me@example.com"}
            assert config.web.port == 9090

    def test_missing_file_falls_back_to_env(self, monkeypatch):
        monkeypatch.setenv("MAILROOM_DB_BACKEND", "memory")
        monkeypatch.setenv("MAILROOM_PORT", "8181")

        config = load_config("nonexistent_file.yaml")

        assert config.database.backend == DatabaseBackend.MEMORY
        assert config.web.port == 8181

    def test_non_mapping_file_is_rejected(self):
        with tempfile.NamedTemporaryFile(suffix=".yaml", mode="w+") as temp_file:
            yaml.dump(["not", "a", "mapping"], temp_file)
            temp_file.flush()

            with pytest.raises(ValueError) as excinfo:
                load_config(temp_file.name)

            assert "mapping" in str(excinfo.value)

    def test_invalid_values_are_rejected(self):
        with pytest.raises(ValueError):
            ServerConfig.from_dict({"limits": {"search_page_max": 0}})
