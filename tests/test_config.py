"""
Tests for environment configuration.
"""

import pytest
from cryptography.fernet import Fernet

from whatsapp_gateway.auth.base import MemoryAuthStore
from whatsapp_gateway.auth.file_store import FileAuthStore
from whatsapp_gateway.auth.redis_store import RedisAuthStore
from whatsapp_gateway.config import GatewaySettings, get_settings

ENV_VARS = [
    "WHATSAPP_AUTH_DIR",
    "WHATSAPP_AUTH_BACKEND",
    "REDIS_URL",
    "WHATSAPP_ENCRYPTION_KEY",
    "WHATSAPP_AUTO_RECONNECT",
    "WHATSAPP_MAX_RECONNECT_ATTEMPTS",
    "WHATSAPP_RECONNECT_DELAY_MS",
    "WHATSAPP_RECONNECT_MULTIPLIER",
    "WHATSAPP_MESSAGES_PER_MINUTE",
    "WHATSAPP_MESSAGES_PER_DAY",
    "WHATSAPP_MIN_DELAY_MS",
    "WHATSAPP_MAX_DELAY_MS",
    "WHATSAPP_JITTER_MS",
    "WHATSAPP_PER_RECIPIENT_DELAY_MS",
    "WHATSAPP_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test from an empty gateway environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestGatewaySettings:
    """Tests for reading settings from the environment."""

    def test_defaults(self):
        """Test defaults match the documented limits."""
        settings = GatewaySettings.from_env()

        assert settings.auth_dir == "./sessions"
        assert settings.auth_backend == "file"
        assert settings.auto_reconnect is True
        policy = settings.reconnect_policy()
        assert (policy.max_attempts, policy.base_delay_ms, policy.backoff_multiplier) == (5, 3000, 1.5)
        limits = settings.rate_limit_config()
        assert (limits.messages_per_minute, limits.messages_per_day) == (20, 500)
        assert (limits.min_delay_ms, limits.max_delay_ms, limits.jitter_ms) == (800, 3000, 400)
        assert limits.per_recipient_delay_ms == 2000

    def test_overrides(self, monkeypatch):
        """Test environment values override defaults."""
        monkeypatch.setenv("WHATSAPP_AUTO_RECONNECT", "false")
        monkeypatch.setenv("WHATSAPP_MAX_RECONNECT_ATTEMPTS", "2")
        monkeypatch.setenv("WHATSAPP_MESSAGES_PER_MINUTE", "15")
        monkeypatch.setenv("WHATSAPP_MIN_DELAY_MS", "1000")
        monkeypatch.setenv("WHATSAPP_LOG_LEVEL", "debug")

        settings = GatewaySettings.from_env()

        assert settings.auto_reconnect is False
        assert settings.reconnect_policy().max_attempts == 2
        assert settings.rate_limit_config().messages_per_minute == 15
        assert settings.rate_limit_config().min_delay_ms == 1000
        assert settings.log_level == "DEBUG"

    def test_invalid_number(self, monkeypatch):
        """Test non-numeric values are rejected with the variable name."""
        monkeypatch.setenv("WHATSAPP_MESSAGES_PER_DAY", "lots")

        with pytest.raises(ValueError, match="WHATSAPP_MESSAGES_PER_DAY"):
            GatewaySettings.from_env()

    def test_invalid_backend(self, monkeypatch):
        """Test unknown auth backends are rejected."""
        monkeypatch.setenv("WHATSAPP_AUTH_BACKEND", "s3")

        with pytest.raises(ValueError):
            GatewaySettings.from_env()

    def test_settings_cached(self, monkeypatch):
        """Test get_settings reads the environment once."""
        first = get_settings()
        monkeypatch.setenv("WHATSAPP_AUTH_DIR", "/elsewhere")

        assert get_settings() is first


class TestBuildAuthStore:
    """Tests for choosing the credential store."""

    def test_file_store(self, monkeypatch, tmp_path):
        """Test the file backend uses the auth dir and key."""
        monkeypatch.setenv("WHATSAPP_AUTH_DIR", str(tmp_path))
        monkeypatch.setenv("WHATSAPP_ENCRYPTION_KEY", Fernet.generate_key().decode())

        store = GatewaySettings.from_env().build_auth_store()

        assert isinstance(store, FileAuthStore)
        assert store.auth_dir == tmp_path
        assert store.codec.encrypted

    def test_memory_store(self, monkeypatch):
        """Test the memory backend."""
        monkeypatch.setenv("WHATSAPP_AUTH_BACKEND", "memory")

        assert isinstance(GatewaySettings.from_env().build_auth_store(), MemoryAuthStore)

    def test_redis_store(self, monkeypatch):
        """Test the redis backend connects lazily from REDIS_URL."""
        monkeypatch.setenv("WHATSAPP_AUTH_BACKEND", "redis")
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6390/2")

        store = GatewaySettings.from_env().build_auth_store()

        assert isinstance(store, RedisAuthStore)
        assert store.key_prefix == "wa:auth:"
