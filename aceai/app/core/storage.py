"""Persistent key/value storage for client state.

Provides a pluggable storage backend (in-memory and file-based) and a change
channel that tells other execution contexts when a key was written, in the
same way a browser fires ``storage`` events in every tab except the writer.
"""

import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from aceai.app.core.config import settings
from aceai.app.core.logging import get_logger

logger = get_logger(__name__)

ChangeHandler = Callable[[str], None]


class StorageBackend(ABC):
    """Abstract base class for string storage backends.

    Values are opaque strings; callers serialize their own data.
    """

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None if the key was never written."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Replace the value stored under ``key`` in a single write."""
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove ``key``. Removing a missing key is not an error."""
        pass


class InMemoryStorage(StorageBackend):
    """Dictionary-backed storage. Data is lost when the process exits."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileStorage(StorageBackend):
    """One file per key under a directory.

    Writes go to a temporary file that is then renamed over the target, so a
    concurrent reader sees either the old or the new value, never a mix.
    """

    def __init__(self, directory: str | os.PathLike) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self.directory / f"{safe}.json"

    def get_item(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set_item(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp_path, self._path(key))
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class ChangeChannel(ABC):
    """Cross-context notification of storage writes."""

    @abstractmethod
    def publish(self, key: str) -> None:
        """Announce that ``key`` was written by this context."""
        pass

    @abstractmethod
    def listen(self, handler: ChangeHandler) -> Callable[[], None]:
        """Register ``handler`` for writes made by other contexts.

        Returns:
            A callable that removes the handler. Safe to call repeatedly.
        """
        pass


class NullChannel(ChangeChannel):
    """Channel for a context that shares storage with nobody."""

    def publish(self, key: str) -> None:
        pass

    def listen(self, handler: ChangeHandler) -> Callable[[], None]:
        return lambda: None


class BroadcastHub:
    """Connects several in-process contexts sharing one storage backend.

    A publish from one context is delivered to the handlers of every other
    connected context, never back to the publisher.

    Example:
        >>> hub = BroadcastHub()
        >>> first, second = hub.connect(), hub.connect()
        >>> _ = second.listen(print)
        >>> first.publish("aceai_rate_limit")
        aceai_rate_limit
    """

    def __init__(self) -> None:
        self._channels: list["HubChannel"] = []
        self._lock = threading.Lock()

    def connect(self) -> "HubChannel":
        channel = HubChannel(self)
        with self._lock:
            self._channels.append(channel)
        return channel

    def _deliver(self, sender: "HubChannel", key: str) -> None:
        with self._lock:
            receivers = [c for c in self._channels if c is not sender]
        for channel in receivers:
            channel._dispatch(key)


class HubChannel(ChangeChannel):
    """One context's endpoint on a BroadcastHub."""

    def __init__(self, hub: BroadcastHub) -> None:
        self._hub = hub
        # Keyed by registration so the same handler may be registered twice
        self._handlers: dict[object, ChangeHandler] = {}

    @property
    def listener_count(self) -> int:
        return len(self._handlers)

    def publish(self, key: str) -> None:
        self._hub._deliver(self, key)

    def listen(self, handler: ChangeHandler) -> Callable[[], None]:
        token = object()
        self._handlers[token] = handler

        def remove() -> None:
            self._handlers.pop(token, None)

        return remove

    def _dispatch(self, key: str) -> None:
        for handler in list(self._handlers.values()):
            try:
                handler(key)
            except Exception:
                logger.exception(f"Storage change handler failed for key {key}")


_storage: StorageBackend | None = None


def get_storage() -> StorageBackend:
    """Get the global storage instance.

    Uses file storage under ``settings.storage_dir``.
    """
    global _storage
    if _storage is None:
        _storage = FileStorage(settings.storage_dir)
    return _storage


def reset_storage() -> None:
    """Reset the global storage instance (useful for testing)."""
    global _storage
    _storage = None
