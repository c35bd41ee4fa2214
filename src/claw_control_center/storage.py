"""File-backed record collections with transactional, thread-safe access.

Each collection lives in a single YAML document (``{version, <key>: [...]}``)
inside the project's ``.clawhub/`` directory. All reads and writes go through
:meth:`YamlCollection.transaction`, which holds a thread lock and an exclusive
file lock, reloads the file, and saves it back only when the block exits
cleanly after a mutation.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

from .constants import STORE_VERSION
from .errors import StoreCorruptedError
from .io_utils import FileLock, _atomic_write_yaml, _load_data_with_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CollectionTx(Generic[T]):
    """In-memory transaction over an ordered list of records.

    Records keep insertion order, which callers rely on for deterministic
    tie-breaks (agent registration order, task creation order).
    """

    def __init__(self, items: list[T], key_of: Callable[[T], str]) -> None:
        self.items = items
        self.dirty = False
        self._key_of = key_of
        self._index: dict[str, int] = {key_of(item): i for i, item in enumerate(items)}

    def get(self, item_id: str) -> Optional[T]:
        idx = self._index.get(item_id)
        return self.items[idx] if idx is not None else None

    def list_all(self) -> list[T]:
        return list(self.items)

    def add(self, item: T) -> T:
        item_id = self._key_of(item)
        if item_id in self._index:
            raise ValueError(f"{item_id} already exists")
        self._index[item_id] = len(self.items)
        self.items.append(item)
        self.dirty = True
        return item

    def remove(self, item_id: str) -> bool:
        idx = self._index.pop(item_id, None)
        if idx is None:
            return False
        self.items.pop(idx)
        self._index = {self._key_of(item): i for i, item in enumerate(self.items)}
        self.dirty = True
        return True

    def mark_dirty(self) -> None:
        self.dirty = True


class YamlCollection(Generic[T]):
    """Thread-safe, file-backed collection of records of one type."""

    tx_class: type[CollectionTx] = CollectionTx

    def __init__(
        self,
        path: Path,
        lock_path: Path,
        key: str,
        loader: Callable[[dict[str, Any]], T],
        dumper: Callable[[T], dict[str, Any]],
        key_of: Callable[[T], str],
    ) -> None:
        self._path = path
        self._lock = FileLock(lock_path)
        self._thread_lock = threading.RLock()
        self._key = key
        self._loader = loader
        self._dumper = dumper
        self._key_of = key_of

    @property
    def path(self) -> Path:
        return self._path

    # -- internal helpers ---------------------------------------------------

    def _load(self) -> list[T]:
        raw, err = _load_data_with_error(self._path, {})
        if err:
            raise StoreCorruptedError(err)
        items = raw.get(self._key, [])
        if not isinstance(items, list):
            raise StoreCorruptedError(f"{self._path.name}: '{self._key}' must be a list")
        return [self._loader(item) for item in items if isinstance(item, dict)]

    def _save(self, items: list[T]) -> None:
        payload = {"version": STORE_VERSION, self._key: [self._dumper(item) for item in items]}
        _atomic_write_yaml(self._path, payload)

    # -- public API ---------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Acquire the locks, load records, yield a transaction, and save on exit.

        An exception raised inside the block propagates and nothing is saved.
        """
        with self._thread_lock, self._lock:
            tx = self.tx_class(self._load(), self._key_of)
            yield tx
            if tx.dirty:
                self._save(tx.items)
                logger.debug("Saved %d %s to %s", len(tx.items), self._key, self._path)

    def read_snapshot(self) -> list[T]:
        """Return a copy of the current records (no lock held after return)."""
        with self._thread_lock, self._lock:
            return self._load()

    def get_one(self, item_id: str) -> Optional[T]:
        for item in self.read_snapshot():
            if self._key_of(item) == item_id:
                return item
        return None
