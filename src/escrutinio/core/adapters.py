"""Adaptadores clave/valor asíncronos para la persistencia de actas.

Asynchronous key/value adapters backing acta persistence.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
import shutil
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base error for storage adapter operations."""


class StorageReadError(StorageError):
    """Raised when a value cannot be read from the backing store."""


class StorageWriteError(StorageError):
    """Raised when a value cannot be written, removed or cleared."""


class StorageAdapter(ABC):
    """Contrato de almacenamiento clave/valor consumido por el repositorio.

    English:
        Key/value storage contract consumed by the repository. Values are
        JSON-compatible structures; ``get`` returns ``None`` for missing or
        unreadable payloads.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value or ``None``."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Replace the whole value stored under ``key``."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete ``key`` if present."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete every key."""

    @abstractmethod
    async def list_keys(self) -> List[str]:
        """Return all stored keys."""


class InMemoryStorageAdapter(StorageAdapter):
    """Almacenamiento en memoria; copia valores para aislar al llamador.

    English: In-memory storage; deep-copies values to isolate callers.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.loads(json.dumps(value, ensure_ascii=False))
        except (TypeError, ValueError) as exc:
            raise StorageWriteError(f"value for {key} is not JSON serializable") from exc

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    async def list_keys(self) -> List[str]:
        return list(self._data)


_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


def write_atomic(path: Path, content: bytes) -> None:
    """Escritura atómica usando archivo temporal.

    English: Atomic write using a temporary file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(delete=False, dir=str(path.parent)) as tmp_file:
        tmp_file.write(content)
        temp_name = tmp_file.name
    shutil.move(temp_name, path)


class JsonFileStorageAdapter(StorageAdapter):
    """Un documento JSON por clave dentro de un directorio.

    English: One JSON document per key inside a directory.
    """

    suffix = ".json"

    def __init__(self, base_path: Path) -> None:
        self.base_path = Path(base_path)

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Unsafe storage key: {key!r}")
        return self.base_path / f"{key}{self.suffix}"

    async def get(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as exc:
            raise StorageReadError(f"cannot read {path}") from exc
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("storage_payload_corrupt key=%s path=%s error=%s", key, path, exc)
            return None

    async def set(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        try:
            content = json.dumps(value, ensure_ascii=False, indent=2).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise StorageWriteError(f"value for {key} is not JSON serializable") from exc
        try:
            await asyncio.to_thread(write_atomic, path, content)
        except OSError as exc:
            logger.error("storage_write_failed key=%s path=%s error=%s", key, path, exc)
            raise StorageWriteError(f"cannot write {path}") from exc

    async def remove(self, key: str) -> None:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            raise StorageWriteError(f"cannot remove {path}") from exc

    async def clear(self) -> None:
        for key in await self.list_keys():
            await self.remove(key)

    async def list_keys(self) -> List[str]:
        if not self.base_path.exists():
            return []
        return sorted(path.stem for path in self.base_path.glob(f"*{self.suffix}"))


class SqliteStorageAdapter(StorageAdapter):
    """Tabla ``storage`` en SQLite con valores JSON.

    English:
        SQLite ``storage`` table holding JSON values. Blocking calls run in a
        worker thread via ``asyncio.to_thread``.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._ensure_table()

    def close(self) -> None:
        """Cierra la conexión a la base de datos.

        English: Closes the database connection.
        """
        self._connection.close()

    def _ensure_table(self) -> None:
        with self._connection:
            self._connection.execute(
                """
                CREATE TABLE IF NOT EXISTS storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at INTEGER DEFAULT (strftime('%s', 'now'))
                )
                """
            )

    def _get(self, key: str) -> Optional[str]:
        row = self._connection.execute("SELECT value FROM storage WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def _set(self, key: str, raw: str) -> None:
        with self._connection:
            self._connection.execute(
                "INSERT OR REPLACE INTO storage (key, value) VALUES (?, ?)",
                (key, raw),
            )

    def _remove(self, key: str) -> None:
        with self._connection:
            self._connection.execute("DELETE FROM storage WHERE key = ?", (key,))

    def _clear(self) -> None:
        with self._connection:
            self._connection.execute("DELETE FROM storage")

    def _keys(self) -> List[str]:
        return [row["key"] for row in self._connection.execute("SELECT key FROM storage ORDER BY key")]

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await asyncio.to_thread(self._get, key)
        except sqlite3.Error as exc:
            raise StorageReadError(f"cannot read {key}") from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("storage_payload_corrupt key=%s db=%s error=%s", key, self.db_path, exc)
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise StorageWriteError(f"value for {key} is not JSON serializable") from exc
        try:
            await asyncio.to_thread(self._set, key, raw)
        except sqlite3.Error as exc:
            logger.error("storage_write_failed key=%s db=%s error=%s", key, self.db_path, exc)
            raise StorageWriteError(f"cannot write {key}") from exc

    async def remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._remove, key)
        except sqlite3.Error as exc:
            raise StorageWriteError(f"cannot remove {key}") from exc

    async def clear(self) -> None:
        try:
            await asyncio.to_thread(self._clear)
        except sqlite3.Error as exc:
            raise StorageWriteError("cannot clear storage") from exc

    async def list_keys(self) -> List[str]:
        try:
            return await asyncio.to_thread(self._keys)
        except sqlite3.Error as exc:
            raise StorageReadError("cannot list keys") from exc
