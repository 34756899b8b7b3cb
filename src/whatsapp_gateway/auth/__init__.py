"""
Credential Stores

Persistence for per-session transport credentials.
"""

from whatsapp_gateway.auth.base import AuthStore, CredentialCodec, MemoryAuthStore
from whatsapp_gateway.auth.file_store import FileAuthStore
from whatsapp_gateway.auth.redis_store import RedisAuthStore

__all__ = [
    "AuthStore",
    "CredentialCodec",
    "MemoryAuthStore",
    "FileAuthStore",
    "RedisAuthStore",
]
