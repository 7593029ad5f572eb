"""
Local filesystem report storage.

Artifacts are written below a base directory; each one gets a
``.meta.json`` side file with its hash, size and storage time.
"""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath
from typing import Any

import aiofiles
import aiofiles.os

from ..core.exceptions import ValidationError
from ..core.logging import get_logger
from ..core.types import StorageKey, utc_now
from .interface import StorageBackend

logger = get_logger(__name__)

METADATA_SUFFIX = ".meta.json"


class LocalStorageBackend(StorageBackend):
    """Filesystem storage backend rooted at ``base_path``."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path.expanduser().resolve()

    def _path(self, key: StorageKey) -> Path:
        """Filesystem path of a key.

        Raises:
            ValidationError: If the key is absolute, empty, or escapes the
                base directory.
        """
        parts = PurePosixPath(key.replace("\\", "/")).parts
        if not parts or key.startswith(("/", "\\")) or ":" in key or ".." in parts:
            raise ValidationError(
                message=f"Invalid storage key: {key!r}",
                field_name="key",
                actual_value=key,
            )
        full_path = self.base_path.joinpath(*parts).resolve()
        try:
            full_path.relative_to(self.base_path)
        except ValueError as e:
            raise ValidationError(
                message=f"Storage key escapes the base directory: {key!r}",
                field_name="key",
                actual_value=key,
                cause=e,
            ) from e
        return full_path

    def _metadata_path(self, key: StorageKey) -> Path:
        return self._path(key + METADATA_SUFFIX)

    async def store_text(self, key: StorageKey, content: str, metadata: dict[str, Any] | None = None) -> StorageKey:
        full_path = self._path(key)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(full_path, "w", encoding="utf-8") as f:
            await f.write(content)

        encoded = content.encode("utf-8")
        meta = dict(metadata or {})
        meta.update(
            {
                "_key": key,
                "_stored_at": utc_now().isoformat(),
                "size_bytes": len(encoded),
                "hash": self.compute_hash(encoded),
            }
        )
        async with aiofiles.open(self._metadata_path(key), "w", encoding="utf-8") as f:
            await f.write(json.dumps(meta, indent=2, default=str))

        logger.debug("Stored artifact", key=key, size_bytes=len(encoded))
        return key

    async def load_text(self, key: StorageKey) -> str:
        full_path = self._path(key)
        if not full_path.is_file():
            raise FileNotFoundError(f"Key not found: {key}")
        async with aiofiles.open(full_path, "r", encoding="utf-8") as f:
            return await f.read()

    async def exists(self, key: StorageKey) -> bool:
        return self._path(key).is_file()

    async def delete(self, key: StorageKey) -> bool:
        full_path = self._path(key)
        meta_path = self._metadata_path(key)
        deleted = False
        if full_path.is_file():
            await aiofiles.os.remove(full_path)
            deleted = True
        if meta_path.is_file():
            await aiofiles.os.remove(meta_path)
        return deleted

    async def list_keys(self, prefix: str = "") -> list[StorageKey]:
        search_path = self._path(prefix) if prefix else self.base_path
        if not search_path.is_dir():
            return []
        return sorted(
            path.relative_to(self.base_path).as_posix()
            for path in search_path.rglob("*")
            if path.is_file() and not path.name.endswith(METADATA_SUFFIX)
        )

    async def get_metadata(self, key: StorageKey) -> dict[str, Any]:
        meta_path = self._metadata_path(key)
        if not meta_path.is_file():
            return {}
        async with aiofiles.open(meta_path, "r", encoding="utf-8") as f:
            return json.loads(await f.read())

    def get_local_path(self, key: StorageKey) -> Path | None:
        full_path = self._path(key)
        return full_path if full_path.exists() else None
