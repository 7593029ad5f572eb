"""
Report storage interface.

Audit runs persist their artifacts (JSON snapshot, Markdown report) through
this interface so the pipeline does not depend on where reports end up.
"""

from __future__ import annotations

import hashlib
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel

from ..core.types import Hash, StorageKey

T = TypeVar("T", bound=BaseModel)


def run_key(run_id: str, name: str) -> StorageKey:
    """Key of an artifact belonging to one audit run."""
    return f"runs/{run_id}/{name}"


class StorageBackend(ABC):
    """Abstract report storage backend."""

    @abstractmethod
    async def store_text(self, key: StorageKey, content: str, metadata: dict[str, Any] | None = None) -> StorageKey:
        """Store text content and return the storage key.

        Args:
            key: Storage key, a ``/`` separated relative path
            content: Text to store
            metadata: Optional metadata kept beside the artifact

        Returns:
            The final storage key
        """
        ...

    async def store_model(self, key: StorageKey, model: BaseModel, metadata: dict[str, Any] | None = None) -> StorageKey:
        """Store a Pydantic model as JSON."""
        meta = dict(metadata or {})
        meta["model_type"] = type(model).__name__
        return await self.store_text(key, model.model_dump_json(indent=2), meta)

    async def store_json(self, key: StorageKey, data: Any, metadata: dict[str, Any] | None = None) -> StorageKey:
        """Store any JSON-serializable value."""
        return await self.store_text(key, json.dumps(data, indent=2, default=str), metadata)

    @abstractmethod
    async def load_text(self, key: StorageKey) -> str:
        """Load text content.

        Raises:
            FileNotFoundError: If the key does not exist.
        """
        ...

    async def load_model(self, key: StorageKey, model_type: type[T]) -> T:
        """Load a Pydantic model stored with :meth:`store_model`."""
        return model_type.model_validate_json(await self.load_text(key))

    async def load_json(self, key: StorageKey) -> Any:
        return json.loads(await self.load_text(key))

    @abstractmethod
    async def exists(self, key: StorageKey) -> bool:
        """Check if a key exists in storage."""
        ...

    @abstractmethod
    async def delete(self, key: StorageKey) -> bool:
        """Delete a key and its metadata. Returns True if deleted."""
        ...

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[StorageKey]:
        """List all keys under ``prefix``, sorted."""
        ...

    @abstractmethod
    async def get_metadata(self, key: StorageKey) -> dict[str, Any]:
        """Metadata stored with a key, empty when there is none."""
        ...

    @abstractmethod
    def get_local_path(self, key: StorageKey) -> Path | None:
        """Filesystem path of a stored artifact, when the backend has one."""
        ...

    @staticmethod
    def compute_hash(data: bytes) -> Hash:
        """Compute SHA-256 hash of data."""
        return hashlib.sha256(data).hexdigest()
