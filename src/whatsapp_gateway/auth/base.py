"""
Credential Store Base

Abstract interface for persisting per-session transport credentials.
"""

import json
import logging
from abc import ABC, abstractmethod

from cryptography.fernet import Fernet, InvalidToken

from whatsapp_gateway.errors import AuthStoreError
from whatsapp_gateway.transport.base import Credentials

logger = logging.getLogger(__name__)


class AuthStore(ABC):
    """
    Abstract interface for credential stores.

    Implementations must tolerate concurrent calls for distinct session ids.
    """

    @abstractmethod
    async def load(self, session_id: str) -> Credentials | None:
        """
        Load credentials for a session.

        Returns:
            Credentials, or None if nothing is stored for this session

        Raises:
            AuthStoreError: If the stored entry cannot be read
        """
        ...

    @abstractmethod
    async def save(self, session_id: str, credentials: Credentials) -> None:
        """Persist credentials for a session, replacing any previous entry."""
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """
        Remove stored credentials.

        Returns:
            True if an entry existed
        """
        ...

    @abstractmethod
    async def list_ids(self) -> list[str]:
        """List session ids with stored credentials."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        return None


class CredentialCodec:
    """
    Serializes credentials to bytes, encrypting them when a key is set.

    Args:
        encryption_key: Fernet key (urlsafe base64); None stores plain JSON
    """

    def __init__(self, encryption_key: str | None = None):
        self._fernet = Fernet(encryption_key.encode()) if encryption_key else None

    @property
    def encrypted(self) -> bool:
        return self._fernet is not None

    def encode(self, credentials: Credentials) -> bytes:
        data = json.dumps(credentials, separators=(",", ":")).encode("utf-8")
        if self._fernet:
            return self._fernet.encrypt(data)
        return data

    def decode(self, session_id: str, data: bytes) -> Credentials:
        if self._fernet:
            try:
                data = self._fernet.decrypt(data)
            except InvalidToken as e:
                raise AuthStoreError(
                    f"Cannot decrypt credentials for session {session_id}",
                    details={"session_id": session_id},
                ) from e

        try:
            credentials = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AuthStoreError(
                f"Corrupt credentials for session {session_id}: {e}",
                details={"session_id": session_id},
            ) from e

        if not isinstance(credentials, dict):
            raise AuthStoreError(
                f"Credentials for session {session_id} are not an object",
                details={"session_id": session_id},
            )
        return credentials


class MemoryAuthStore(AuthStore):
    """In-process credential store for tests and the stub transport."""

    def __init__(self, initial: dict[str, Credentials] | None = None):
        self._entries: dict[str, Credentials] = dict(initial or {})
        self.save_count = 0

    async def load(self, session_id: str) -> Credentials | None:
        credentials = self._entries.get(session_id)
        return dict(credentials) if credentials is not None else None

    async def save(self, session_id: str, credentials: Credentials) -> None:
        self._entries[session_id] = dict(credentials)
        self.save_count += 1

    async def delete(self, session_id: str) -> bool:
        return self._entries.pop(session_id, None) is not None

    async def list_ids(self) -> list[str]:
        return sorted(self._entries)
