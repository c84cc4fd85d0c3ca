"""Per-identifier connection gating."""

import asyncio
from threading import RLock
from typing import Dict, Optional


def _identifier_key(identifier: Optional[str]) -> Optional[str]:
    """
    Normalize an identifier for gate lookups.

    Identifiers are matched case-insensitively, so "AA:BB" and "aa:bb" share a gate.
    Returns None for empty or whitespace-only identifiers.
    """
    if identifier is None:
        return None
    key = identifier.strip().lower()
    return key or None


class ConnectionGate:
    """Registry of asyncio locks serializing connect attempts per identifier.

    Concurrent connects for the same identifier run one after the other; different
    identifiers proceed independently. Locks are created lazily and belong to the
    event loop that first awaits them.
    """

    def __init__(self):
        self._registry_lock = RLock()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._shared = asyncio.Lock()

    def lock_for(self, identifier: Optional[str]) -> asyncio.Lock:
        """Return the lock guarding `identifier`, creating it on first use."""
        key = _identifier_key(identifier)
        if key is None:
            return self._shared
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    def is_locked(self, identifier: Optional[str]) -> bool:
        key = _identifier_key(identifier)
        if key is None:
            return self._shared.locked()
        with self._registry_lock:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def release(self, identifier: Optional[str]) -> None:
        """
        Forget the lock for `identifier` once nobody holds it.

        Keeps the registry from growing without bound in long-running processes.
        """
        key = _identifier_key(identifier)
        if key is None:
            return
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)


__all__ = ["ConnectionGate"]
