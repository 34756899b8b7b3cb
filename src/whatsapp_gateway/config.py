"""
Gateway configuration.

Reads settings from the environment and builds the objects they describe.
Settings are read once per process; call get_settings.cache_clear() in tests.
"""

import functools
import os
from dataclasses import dataclass

from whatsapp_gateway.auth.base import AuthStore, MemoryAuthStore
from whatsapp_gateway.auth.file_store import FileAuthStore
from whatsapp_gateway.auth.redis_store import RedisAuthStore
from whatsapp_gateway.outbound.rate_queue import RateLimitConfig
from whatsapp_gateway.sessions.models import ReconnectPolicy

AUTH_BACKENDS = ("file", "redis", "memory")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


@dataclass(frozen=True)
class GatewaySettings:
    """Process-wide gateway settings. Durations are in milliseconds."""

    auth_dir: str = "./sessions"
    auth_backend: str = "file"
    redis_url: str = "redis://localhost:6379/0"
    encryption_key: str | None = None

    auto_reconnect: bool = True
    max_reconnect_attempts: int = 5
    reconnect_delay_ms: float = 3000.0
    reconnect_multiplier: float = 1.5

    messages_per_minute: int = 20
    messages_per_day: int = 500
    min_delay_ms: float = 800
    max_delay_ms: float = 3000
    jitter_ms: float = 400
    per_recipient_delay_ms: float = 2000

    log_level: str = "INFO"

    def __post_init__(self):
        if self.auth_backend not in AUTH_BACKENDS:
            raise ValueError(f"WHATSAPP_AUTH_BACKEND must be one of {', '.join(AUTH_BACKENDS)}, got {self.auth_backend!r}")

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        defaults = cls()
        return cls(
            auth_dir=os.getenv("WHATSAPP_AUTH_DIR", defaults.auth_dir),
            auth_backend=os.getenv("WHATSAPP_AUTH_BACKEND", defaults.auth_backend).strip().lower(),
            redis_url=os.getenv("REDIS_URL", defaults.redis_url),
            encryption_key=os.getenv("WHATSAPP_ENCRYPTION_KEY") or None,
            auto_reconnect=_env_bool("WHATSAPP_AUTO_RECONNECT", defaults.auto_reconnect),
            max_reconnect_attempts=_env_int("WHATSAPP_MAX_RECONNECT_ATTEMPTS", defaults.max_reconnect_attempts),
            reconnect_delay_ms=_env_float("WHATSAPP_RECONNECT_DELAY_MS", defaults.reconnect_delay_ms),
            reconnect_multiplier=_env_float("WHATSAPP_RECONNECT_MULTIPLIER", defaults.reconnect_multiplier),
            messages_per_minute=_env_int("WHATSAPP_MESSAGES_PER_MINUTE", defaults.messages_per_minute),
            messages_per_day=_env_int("WHATSAPP_MESSAGES_PER_DAY", defaults.messages_per_day),
            min_delay_ms=_env_float("WHATSAPP_MIN_DELAY_MS", defaults.min_delay_ms),
            max_delay_ms=_env_float("WHATSAPP_MAX_DELAY_MS", defaults.max_delay_ms),
            jitter_ms=_env_float("WHATSAPP_JITTER_MS", defaults.jitter_ms),
            per_recipient_delay_ms=_env_float("WHATSAPP_PER_RECIPIENT_DELAY_MS", defaults.per_recipient_delay_ms),
            log_level=os.getenv("WHATSAPP_LOG_LEVEL", defaults.log_level).upper(),
        )

    def reconnect_policy(self) -> ReconnectPolicy:
        return ReconnectPolicy(
            max_attempts=self.max_reconnect_attempts,
            base_delay_ms=self.reconnect_delay_ms,
            backoff_multiplier=self.reconnect_multiplier,
        )

    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            messages_per_minute=self.messages_per_minute,
            messages_per_day=self.messages_per_day,
            min_delay_ms=self.min_delay_ms,
            max_delay_ms=self.max_delay_ms,
            jitter_ms=self.jitter_ms,
            per_recipient_delay_ms=self.per_recipient_delay_ms,
        )

    def build_auth_store(self) -> AuthStore:
        """
        Build the configured credential store.

        Returns:
            FileAuthStore, RedisAuthStore or MemoryAuthStore
        """
        if self.auth_backend == "redis":
            return RedisAuthStore.from_url(self.redis_url, encryption_key=self.encryption_key)
        if self.auth_backend == "memory":
            return MemoryAuthStore()
        return FileAuthStore(self.auth_dir, encryption_key=self.encryption_key)


@functools.lru_cache()
def get_settings() -> GatewaySettings:
    """Get gateway settings from environment (cached)."""
    return GatewaySettings.from_env()
