"""
Redis Credential Store

Stores each session's credentials under ``<prefix><session_id>``.
"""

import logging

import redis
import redis.asyncio as aioredis

from whatsapp_gateway.auth.base import AuthStore, CredentialCodec
from whatsapp_gateway.errors import AuthStoreError
from whatsapp_gateway.transport.base import Credentials

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "wa:auth:"


class RedisAuthStore(AuthStore):
    """
    Credential store backed by Redis.

    The client must be created with decode_responses=False; entries are
    raw bytes (possibly Fernet tokens).
    """

    def __init__(
        self,
        client: aioredis.Redis,
        encryption_key: str | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        self.redis = client
        self.codec = CredentialCodec(encryption_key)
        self.key_prefix = key_prefix

    @classmethod
    def from_url(
        cls,
        url: str,
        encryption_key: str | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> "RedisAuthStore":
        return cls(aioredis.from_url(url), encryption_key=encryption_key, key_prefix=key_prefix)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def load(self, session_id: str) -> Credentials | None:
        try:
            data = await self.redis.get(self._key(session_id))
        except redis.RedisError as e:
            raise AuthStoreError(
                f"Cannot read credentials for session {session_id}: {e}",
                details={"session_id": session_id},
            ) from e

        if data is None:
            return None
        if isinstance(data, str):
            data = data.encode("utf-8")
        return self.codec.decode(session_id, data)

    async def save(self, session_id: str, credentials: Credentials) -> None:
        try:
            await self.redis.set(self._key(session_id), self.codec.encode(credentials))
        except redis.RedisError as e:
            raise AuthStoreError(
                f"Cannot save credentials for session {session_id}: {e}",
                details={"session_id": session_id},
            ) from e

    async def delete(self, session_id: str) -> bool:
        try:
            return bool(await self.redis.delete(self._key(session_id)))
        except redis.RedisError as e:
            raise AuthStoreError(
                f"Cannot delete credentials for session {session_id}: {e}",
                details={"session_id": session_id},
            ) from e

    async def list_ids(self) -> list[str]:
        ids = []
        try:
            async for key in self.redis.scan_iter(match=f"{self.key_prefix}*"):
                if isinstance(key, bytes):
                    key = key.decode("utf-8")
                ids.append(key[len(self.key_prefix):])
        except redis.RedisError as e:
            raise AuthStoreError(f"Cannot list stored sessions: {e}") from e
        return sorted(ids)

    async def close(self) -> None:
        await self.redis.aclose()
