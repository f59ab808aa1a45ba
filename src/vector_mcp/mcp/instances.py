"""Concurrency-safe registry of named vector database instances."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from vector_mcp.backends.base import VectorDatabase
from vector_mcp.errors import AlreadyExists, NotFound
from vector_mcp.obs.logging import get_logger

logger = get_logger(__name__)


class ReadWriteLock:
    """Many readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class InstanceRegistry:
    """Maps caller-chosen names to live backend handles.

    Lookups share the lock; inserts and removals take it exclusively, and
    only around map operations. `create` is the one exception: it runs the
    factory while holding the lock, so a name is never observable
    half-created. `discard` marks the name as closing, releases the handle
    with the lock dropped, then removes or restores the entry.
    """

    def __init__(self) -> None:
        self._instances: dict[str, VectorDatabase] = {}
        self._closing: set[str] = set()
        self._lock = ReadWriteLock()

    def create(self, name: str, factory: Callable[[], VectorDatabase]) -> VectorDatabase:
        with self._lock.write():
            if name in self._closing:
                raise AlreadyExists(f"vector database '{name}' is being cleaned up")
            if name in self._instances:
                raise AlreadyExists(f"vector database '{name}' already exists")
            handle = factory()
            self._instances[name] = handle
        logger.info(
            "Registered vector database",
            name=name,
            type=handle.db_type,
            collection=handle.collection_name,
        )
        return handle

    def get(self, name: str) -> VectorDatabase:
        with self._lock.read():
            closing = name in self._closing
            handle = self._instances.get(name)
        if closing:
            raise NotFound(f"vector database '{name}' is being cleaned up")
        if handle is None:
            raise NotFound(f"vector database '{name}' not found. Please create it first")
        return handle

    def remove(self, name: str) -> VectorDatabase:
        """Unregister `name` and hand back its handle for the caller to release."""
        with self._lock.write():
            handle = None if name in self._closing else self._instances.pop(name, None)
        if handle is None:
            raise NotFound(f"vector database '{name}' not found")
        logger.info("Unregistered vector database", name=name)
        return handle

    def discard(self, name: str, release: Callable[[VectorDatabase], None]) -> VectorDatabase:
        """Release and unregister `name`.

        While `release` runs the name is closing: `get` and `create` fail
        fast for it and every other name stays usable. If `release` raises,
        the instance is restored and the error propagates.
        """
        with self._lock.write():
            if name in self._closing:
                raise NotFound(f"vector database '{name}' is being cleaned up")
            handle = self._instances.get(name)
            if handle is None:
                raise NotFound(f"vector database '{name}' not found")
            self._closing.add(name)

        try:
            release(handle)
        except BaseException:
            with self._lock.write():
                self._closing.discard(name)
            logger.warning("Cleanup failed; vector database kept", name=name)
            raise

        with self._lock.write():
            self._closing.discard(name)
            del self._instances[name]
        logger.info("Cleaned up vector database", name=name)
        return handle

    def enumerate(self) -> dict[str, VectorDatabase]:
        with self._lock.read():
            return {
                name: handle
                for name, handle in self._instances.items()
                if name not in self._closing
            }

    def names(self) -> list[str]:
        return list(self.enumerate())

    def __contains__(self, name: object) -> bool:
        with self._lock.read():
            return name in self._instances and name not in self._closing

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._instances) - len(self._closing)
