"""
File Credential Store

Stores each session's credentials in its own directory under auth_dir:
``<auth_dir>/<session_id>/creds.json``.
"""

import asyncio
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from whatsapp_gateway.auth.base import AuthStore, CredentialCodec
from whatsapp_gateway.errors import AuthStoreError
from whatsapp_gateway.transport.base import Credentials

logger = logging.getLogger(__name__)

CREDS_FILE = "creds.json"

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.@+-]+$")


class FileAuthStore(AuthStore):
    """
    Credential store backed by the local filesystem.

    Writes go to a temp file in the session directory and are moved into
    place, so a crash never leaves a half-written creds file.
    """

    def __init__(
        self,
        auth_dir: str | Path = "./sessions",
        encryption_key: str | None = None,
    ):
        self.auth_dir = Path(auth_dir)
        self.codec = CredentialCodec(encryption_key)

    def _session_dir(self, session_id: str) -> Path:
        if not _SAFE_ID.match(session_id) or session_id in (".", ".."):
            raise AuthStoreError(
                f"Invalid session id for file store: {session_id!r}",
                details={"session_id": session_id},
            )
        return self.auth_dir / session_id

    async def load(self, session_id: str) -> Credentials | None:
        path = self._session_dir(session_id) / CREDS_FILE
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise AuthStoreError(
                f"Cannot read credentials for session {session_id}: {e}",
                details={"session_id": session_id, "path": str(path)},
            ) from e

        return self.codec.decode(session_id, data)

    async def save(self, session_id: str, credentials: Credentials) -> None:
        session_dir = self._session_dir(session_id)
        data = self.codec.encode(credentials)
        await asyncio.to_thread(self._write_atomic, session_dir, data)
        logger.debug(f"Saved credentials for session {session_id}", extra={"session_id": session_id})

    @staticmethod
    def _write_atomic(session_dir: Path, data: bytes) -> None:
        session_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=session_dir, prefix=".creds-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, session_dir / CREDS_FILE)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    async def delete(self, session_id: str) -> bool:
        session_dir = self._session_dir(session_id)
        if not session_dir.exists():
            return False
        await asyncio.to_thread(shutil.rmtree, session_dir)
        return True

    async def list_ids(self) -> list[str]:
        if not self.auth_dir.exists():
            return []
        return sorted(
            entry.name
            for entry in self.auth_dir.iterdir()
            if entry.is_dir() and (entry / CREDS_FILE).exists()
        )
