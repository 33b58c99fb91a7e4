"""
Key-value storage scopes for session identities

Two scopes exist: tab scope, private to one browsing context and gone with
it, and shared scope, seen by every context of an origin and optionally
persisted to disk. Shared-scope writes are announced through a
StorageNotifier, which calls every subscriber synchronously, including the
context that made the write.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional

from core.exceptions import StorageUnavailable
from core.logging_config import get_logger
from ledger.models import IdentityScope

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """String key-value storage for one scope"""

    scope: IdentityScope = IdentityScope.TAB

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass


class MemoryStore(KeyValueStore):
    """In-process store; used for tab scope and as the degraded fallback"""

    def __init__(self, scope: IdentityScope = IdentityScope.TAB):
        self.scope = scope
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """
    Shared-scope store persisted as one JSON object on disk.

    The file is re-read when its modification time changes, so separate
    processes using the same path see each other's writes. Writes go to a
    temporary file that replaces the original.
    """

    scope = IdentityScope.SHARED

    def __init__(self, path: str):
        self.path = Path(path)
        self._data: Dict[str, str] = {}
        self._mtime: Optional[float] = None

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"Cannot create storage directory {self.path.parent}: {e}") from e

    def _load(self) -> Dict[str, str]:
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            self._data, self._mtime = {}, None
            return self._data
        except OSError as e:
            raise StorageUnavailable(f"Cannot read {self.path}: {e}") from e

        if mtime == self._mtime:
            return self._data

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except ValueError:
            logger.warning(f"Ignoring corrupt shared store at {self.path}")
            raw = {}
        except OSError as e:
            raise StorageUnavailable(f"Cannot read {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raw = {}
        self._data = {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}
        self._mtime = mtime
        return self._data

    def _save(self, data: Dict[str, str]) -> None:
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
            self._mtime = self.path.stat().st_mtime
        except OSError as e:
            raise StorageUnavailable(f"Cannot write {self.path}: {e}") from e
        self._data = data

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = dict(self._load())
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = dict(self._load())
        if key in data:
            del data[key]
            self._save(data)

    def keys(self) -> List[str]:
        return list(self._load())


class ResilientStore(KeyValueStore):
    """
    Falls back to memory when the wrapped backend fails.

    The first StorageUnavailable switches the store to memory-only operation
    for the rest of its life and calls on_degraded once.
    """

    def __init__(self, backend: KeyValueStore, on_degraded: Optional[Callable[[Exception], None]] = None):
        self.backend = backend
        self.scope = backend.scope
        self.on_degraded = on_degraded
        self.degraded = False
        self._memory = MemoryStore(backend.scope)

    def _degrade(self, error: StorageUnavailable) -> None:
        self.degraded = True
        logger.warning(f"{self.scope.value} storage unavailable, continuing in memory: {error}")
        if self.on_degraded:
            try:
                self.on_degraded(error)
            except Exception:
                logger.exception("Error in storage degraded callback")

    def get(self, key: str) -> Optional[str]:
        if not self.degraded:
            try:
                return self.backend.get(key)
            except StorageUnavailable as e:
                self._degrade(e)
        return self._memory.get(key)

    def set(self, key: str, value: str) -> None:
        if not self.degraded:
            try:
                self.backend.set(key, value)
                return
            except StorageUnavailable as e:
                self._degrade(e)
        self._memory.set(key, value)

    def remove(self, key: str) -> None:
        if not self.degraded:
            try:
                self.backend.remove(key)
                return
            except StorageUnavailable as e:
                self._degrade(e)
        self._memory.remove(key)

    def keys(self) -> List[str]:
        if not self.degraded:
            try:
                return self.backend.keys()
            except StorageUnavailable as e:
                self._degrade(e)
        return self._memory.keys()


StorageListener = Callable[[str, Optional[str]], None]


class StorageNotifier:
    """
    Publish/subscribe channel for shared-scope changes.

    publish() calls every subscriber before returning, the writing context's
    own subscribers included.
    """

    def __init__(self):
        self._subscribers: List[StorageListener] = []
        self.published = 0

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """
        Args:
            listener: Called with (key, writer id)

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(listener)

        def unsubscribe():
            if listener in self._subscribers:
                self._subscribers.remove(listener)

        return unsubscribe

    def publish(self, key: str, writer: Optional[str] = None) -> None:
        self.published += 1
        for listener in list(self._subscribers):
            try:
                listener(key, writer)
            except Exception:
                logger.exception(f"Error in storage listener for {key}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


class NotifyingStore(KeyValueStore):
    """A context's view of the shared store that announces its own writes"""

    def __init__(self, backend: KeyValueStore, notifier: StorageNotifier, writer: Optional[str] = None):
        self.backend = backend
        self.scope = backend.scope
        self.notifier = notifier
        self.writer = writer

    def get(self, key: str) -> Optional[str]:
        return self.backend.get(key)

    def set(self, key: str, value: str) -> None:
        self.backend.set(key, value)
        self.notifier.publish(key, self.writer)

    def remove(self, key: str) -> None:
        self.backend.remove(key)
        self.notifier.publish(key, self.writer)

    def keys(self) -> List[str]:
        return self.backend.keys()


def load_string_list(store: KeyValueStore, key: str) -> List[str]:
    """Read a JSON string array, dropping anything malformed"""
    raw = store.get(key)
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(parsed, list):
        return []
    return [item for item in parsed if isinstance(item, str) and item]


def save_string_list(store: KeyValueStore, key: str, values: List[str]) -> None:
    store.set(key, json.dumps(values))
