"""
Client-side storage for the visitor identity and the active conversation handle.

Each tenant gets two slots: a visitor id that is created once and never
rotated, and a conversation id that exists only while a conversation is open.
Backends persist to a JSON file (the default), Redis, or memory. Every backend
keeps a write-through copy in memory so that a storage failure degrades the
store to memory-only for the rest of the process instead of crashing the widget.
"""
import json
import os
import random
import string
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import redis

from ..core.config import settings
from ..core.exceptions import StorageError
from ..core.logging_config import get_logger

logger = get_logger("identity_store")

VISITOR_SLOT = "visitor_id"
CONVERSATION_SLOT = "conversation_id"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_visitor_id() -> str:
    """Random, practically collision-free visitor id (not security sensitive)"""
    return "visitor_" + "".join(random.choices(_ID_ALPHABET, k=9))


class IdentityStore(ABC):
    """Tenant-scoped visitor identity and conversation handle slots"""

    def __init__(self, key_prefix: Optional[str] = None):
        self.key_prefix = key_prefix or settings.STORAGE_KEY_PREFIX
        self._memory: Dict[str, str] = {}
        self._degraded = False

    @property
    def degraded(self) -> bool:
        """True once a storage failure forced the store into memory-only mode"""
        return self._degraded

    def _get_storage_key(self, tenant_id: str, slot: str) -> str:
        return f"{self.key_prefix}:{tenant_id}:{slot}"

    @abstractmethod
    def _read(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def _write(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    def _degrade(self, operation: str, error: Exception) -> None:
        if not self._degraded:
            logger.warning(
                f"Identity storage {operation} failed, falling back to memory for this session: {error}"
            )
        self._degraded = True

    def _get(self, key: str) -> Optional[str]:
        if self._degraded:
            return self._memory.get(key)
        try:
            value = self._read(key)
        except StorageError as e:
            self._degrade("read", e)
            return self._memory.get(key)
        if value is None:
            self._memory.pop(key, None)
        else:
            self._memory[key] = value
        return value

    def _set(self, key: str, value: str) -> None:
        self._memory[key] = value
        if self._degraded:
            return
        try:
            self._write(key, value)
        except StorageError as e:
            self._degrade("write", e)

    def _remove(self, key: str) -> None:
        self._memory.pop(key, None)
        if self._degraded:
            return
        try:
            self._delete(key)
        except StorageError as e:
            self._degrade("delete", e)

    def get_or_create_visitor_id(self, tenant_id: str) -> str:
        key = self._get_storage_key(tenant_id, VISITOR_SLOT)
        visitor_id = self._get(key)
        if visitor_id:
            return visitor_id

        visitor_id = generate_visitor_id()
        self._set(key, visitor_id)
        logger.debug(f"Created visitor id {visitor_id} for tenant {tenant_id}")
        return visitor_id

    def get_conversation_handle(self, tenant_id: str) -> Optional[str]:
        return self._get(self._get_storage_key(tenant_id, CONVERSATION_SLOT))

    def set_conversation_handle(self, tenant_id: str, handle: str) -> None:
        self._set(self._get_storage_key(tenant_id, CONVERSATION_SLOT), handle)

    def clear_conversation_handle(self, tenant_id: str) -> None:
        self._remove(self._get_storage_key(tenant_id, CONVERSATION_SLOT))


class InMemoryIdentityStore(IdentityStore):
    """Store with no persistence; identity lives as long as the object"""

    def _read(self, key: str) -> Optional[str]:
        return self._memory.get(key)

    def _write(self, key: str, value: str) -> None:
        self._memory[key] = value

    def _delete(self, key: str) -> None:
        self._memory.pop(key, None)


class FileIdentityStore(IdentityStore):
    """Durable store backed by a single JSON document on disk"""

    def __init__(self, path: Optional[str] = None, key_prefix: Optional[str] = None):
        super().__init__(key_prefix)
        self.path = Path(os.path.expanduser(path or settings.STORAGE_PATH))
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected storage document in {self.path}")
        return data

    def _dump(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".identity-")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e

    def _read(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def _write(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def _delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)


class RedisIdentityStore(IdentityStore):
    """Store backed by Redis, for hosts that share identity across processes"""

    def __init__(self, redis_client=None, redis_url: Optional[str] = None, key_prefix: Optional[str] = None):
        super().__init__(key_prefix)
        if redis_client is None:
            url = redis_url or settings.REDIS_URL or os.environ.get("REDIS_URL")
            if not url:
                raise StorageError("REDIS_URL is required for the redis identity store")
            redis_client = redis.from_url(url, decode_responses=True)
        self.redis_client = redis_client

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.redis_client.get(key)
        except redis.RedisError as e:
            raise StorageError(f"Redis read failed: {e}") from e

    def _write(self, key: str, value: str) -> None:
        try:
            self.redis_client.set(key, value)
        except redis.RedisError as e:
            raise StorageError(f"Redis write failed: {e}") from e

    def _delete(self, key: str) -> None:
        try:
            self.redis_client.delete(key)
        except redis.RedisError as e:
            raise StorageError(f"Redis delete failed: {e}") from e


def create_identity_store(backend: Optional[str] = None) -> IdentityStore:
    """Build the store selected by STORAGE_BACKEND, degrading to memory if it cannot be built"""
    backend = (backend or settings.STORAGE_BACKEND).lower()
    try:
        if backend == "redis":
            return RedisIdentityStore()
        if backend == "file":
            return FileIdentityStore()
    except StorageError as e:
        logger.warning(f"Identity store backend '{backend}' unavailable, using memory: {e}")
        return InMemoryIdentityStore()

    if backend != "memory":
        logger.warning(f"Unknown identity store backend '{backend}', using memory")
    return InMemoryIdentityStore()
