"""
storage.py - Keyed persistent store

The ledger and the vault keep every counter in a Storage. Keys are
tuples namespaced by the owning component's address, so several
components can share one store (and one atomic scope).

Absent keys read as the caller's default: an unseen balance is 0, an
unseen allowance is 0. Each entry may carry a retention hint (for
example an allowance expiration); hints are recorded but never
enforced here.
"""

from __future__ import annotations
from typing import Any, Dict, Hashable, Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from .core import StorageKey


# Opaque snapshot handed back to restore()
StorageSnapshot = Tuple[Dict[StorageKey, Any], Dict[StorageKey, Any]]


@runtime_checkable
class Storage(Protocol):
    """Keyed get/set/remove/has over opaque tuple keys."""

    def get(self, key: StorageKey, default: Any = None) -> Any:
        ...

    def set(self, key: StorageKey, value: Any, retention: Optional[Hashable] = None) -> None:
        ...

    def remove(self, key: StorageKey) -> None:
        ...

    def has(self, key: StorageKey) -> bool:
        ...

    def retention_of(self, key: StorageKey) -> Optional[Hashable]:
        ...

    def keys(self, prefix: StorageKey = ()) -> List[StorageKey]:
        ...

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


class InMemoryStorage:
    """
    Dictionary-backed Storage.

    Values stored here are ints, strings, bools and enums, all immutable,
    so a snapshot is a shallow copy of the two dictionaries.

    Thread Safety:
        Not thread-safe on its own. Env serializes access through its commit lock.
    """

    def __init__(self):
        self._entries: Dict[StorageKey, Any] = {}
        self._retention: Dict[StorageKey, Any] = {}

    def get(self, key: StorageKey, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: StorageKey, value: Any, retention: Optional[Hashable] = None) -> None:
        """
        Store a value.

        Args:
            key: Namespaced tuple key
            value: Immutable value to store
            retention: Optional retention hint kept alongside the entry
        """
        self._entries[key] = value
        if retention is not None:
            self._retention[key] = retention
        else:
            self._retention.pop(key, None)

    def remove(self, key: StorageKey) -> None:
        """Remove a key. Removing an absent key is a no-op."""
        self._entries.pop(key, None)
        self._retention.pop(key, None)

    def has(self, key: StorageKey) -> bool:
        return key in self._entries

    def retention_of(self, key: StorageKey) -> Optional[Hashable]:
        """Return the retention hint recorded for key, if any."""
        return self._retention.get(key)

    def keys(self, prefix: StorageKey = ()) -> List[StorageKey]:
        """All keys starting with prefix, in deterministic order."""
        n = len(prefix)
        return sorted(
            (k for k in self._entries if k[:n] == prefix),
            key=repr,
        )

    def snapshot(self) -> StorageSnapshot:
        return dict(self._entries), dict(self._retention)

    def restore(self, snapshot: StorageSnapshot) -> None:
        entries, retention = snapshot
        self._entries = dict(entries)
        self._retention = dict(retention)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[StorageKey]:
        return iter(self.keys())

    def __repr__(self) -> str:
        return f"InMemoryStorage({len(self._entries)} entries)"
