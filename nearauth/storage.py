"""Credential storage on top of an async secret-storage backend."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Protocol

from .errors import SecretStoreFailure
from .models import Identity

logger = logging.getLogger(__name__)

PUBLIC_KEY = "public_key"
PRIVATE_KEY = "private_key"
ACCOUNT_ID = "account_id"

CREDENTIAL_KEYS = (PUBLIC_KEY, PRIVATE_KEY, ACCOUNT_ID)

SECRETS_FILENAME = "secrets.json"


class SecretStorage(Protocol):
    """Async key-value secret storage provided by the host application."""

    async def store(self, key: str, value: str) -> None: ...

    async def get(self, key: str) -> str | None: ...


class MemorySecretStorage:
    """Process-local secret storage, lost on exit."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    async def store(self, key: str, value: str) -> None:
        self._values[key] = value

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    def __len__(self) -> int:
        return len(self._values)


class FileSecretStorage:
    """Secret storage persisted as a single JSON file.

    Every write rewrites the whole file atomically (temp file + rename) and
    restricts it to the owner. Reads go to disk so that an external change
    to the file is observed.
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._path = data_dir / SECRETS_FILENAME

    @property
    def path(self) -> Path:
        """Return the secrets file path."""
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        data = json.loads(self._path.read_text())
        if not isinstance(data, dict):
            raise ValueError(f"Secrets file is not a JSON object: {self._path}")
        return {str(k): str(v) for k, v in data.items()}

    def _write_all(self, values: dict[str, str]) -> None:
        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                dir=self._data_dir,
                suffix=".tmp",
                delete=False,
            ) as f:
                json.dump(values, f)
                temp_path = Path(f.name)
            os.chmod(temp_path, 0o600)
            temp_path.rename(self._path)
        except Exception:
            if temp_path is not None:
                with suppress(OSError):
                    temp_path.unlink()
            raise

    def _store_sync(self, key: str, value: str) -> None:
        values = self._read_all()
        values[key] = value
        self._write_all(values)

    async def store(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._store_sync, key, value)

    async def get(self, key: str) -> str | None:
        values = await asyncio.to_thread(self._read_all)
        return values.get(key)


class CredentialStore:
    """Holds the current identity's key material and account id.

    Clearing an entry stores an empty string rather than deleting the key,
    so readers must treat ``""`` and ``None`` alike as absent.
    """

    def __init__(self, secrets: SecretStorage) -> None:
        self._secrets = secrets

    async def store(self, key: str, value: str | None) -> None:
        """Store a value; ``None`` is stored as an empty string.

        Raises:
            SecretStoreFailure: If the backend write fails

        """
        try:
            await self._secrets.store(key, value or "")
        except Exception as e:
            logger.error(f"Failed to store secret {key!r}: {e!r}")
            raise SecretStoreFailure(f"Failed to store {key}: {e}") from e

    async def get(self, key: str) -> str | None:
        """Return the stored value, ``""`` after a clear, or ``None`` if never set.

        Raises:
            SecretStoreFailure: If the backend read fails

        """
        try:
            return await self._secrets.get(key)
        except Exception as e:
            logger.error(f"Failed to read secret {key!r}: {e!r}")
            raise SecretStoreFailure(f"Failed to read {key}: {e}") from e

    async def store_key_pair(self, public_key: str, private_key: str) -> None:
        """Write both halves of a key pair, public first."""
        await self.store(PUBLIC_KEY, public_key)
        await self.store(PRIVATE_KEY, private_key)

    async def clear(self) -> None:
        """Clear every credential entry.

        Every entry is attempted even when an earlier write fails.

        Raises:
            SecretStoreFailure: Naming each entry that could not be cleared

        """
        failed = []
        for key in CREDENTIAL_KEYS:
            try:
                await self.store(key, "")
            except SecretStoreFailure:
                failed.append(key)
        if failed:
            raise SecretStoreFailure(f"Failed to clear {', '.join(failed)}")
        logger.info("Cleared stored credentials")

    async def identity(self) -> Identity:
        """Return the stored identity with empty values normalized to None."""
        return Identity(
            account_id=await self.get(ACCOUNT_ID) or None,
            public_key=await self.get(PUBLIC_KEY) or None,
            private_key=await self.get(PRIVATE_KEY) or None,
        )


def create_secret_storage(data_dir: Path | None) -> SecretStorage:
    """Return file-backed storage when a data directory is configured."""
    if data_dir is None:
        logger.info("No data_dir configured, credentials are kept in memory only")
        return MemorySecretStorage()
    logger.info(f"Persisting credentials to {data_dir / SECRETS_FILENAME}")
    return FileSecretStorage(data_dir)
