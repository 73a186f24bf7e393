import threading
import weakref
from collections.abc import Iterator
from contextlib import contextmanager


class AssetLockRegistry:
    """One mutex per asset id.

    Booking writes for the same asset run one at a time; different assets
    never wait on each other. An entry lives only while some caller holds or
    waits on its lock, so ids that never match an asset leave nothing behind.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, asset_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(asset_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[asset_id] = lock
            return lock

    @contextmanager
    def hold(self, asset_id: str) -> Iterator[None]:
        # the local reference keeps the entry alive until release
        lock = self.lock_for(asset_id)
        with lock:
            yield


_registry = AssetLockRegistry()


def asset_lock(asset_id: str):
    return _registry.hold(asset_id)


def registered_locks() -> int:
    return len(_registry)
