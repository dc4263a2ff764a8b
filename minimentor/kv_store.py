# minimentor/kv_store.py

import threading
from typing import Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from minimentor.entities import StorageEntry
from minimentor.errors import StorageCapacityError


def entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class KeyValueStore:
    """
    Key -> string storage medium with an optional total-size quota.

    Quota semantics follow browser local storage: a `set` that would push the
    total size of all entries above `quota_bytes` raises StorageCapacityError
    and leaves the previous value in place.
    """

    quota_bytes: Optional[int] = None

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def _check_quota(self, key: str, value: str, used_without_key: int) -> None:
        if self.quota_bytes is None:
            return
        needed = used_without_key + entry_size(key, value)
        if needed > self.quota_bytes:
            raise StorageCapacityError(
                f"Writing '{key}' needs {needed} bytes, quota is {self.quota_bytes}"
            )


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            used = sum(entry_size(k, v) for k, v in self._items.items() if k != key)
            self._check_quota(key, value, used)
            self._items[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())


class SqlKeyValueStore(KeyValueStore):
    """Persistent storage medium backed by the `mentor_storage` table."""

    def __init__(self, session_factory: Callable[[], Session], quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self.SessionFactory = session_factory

    def get(self, key: str) -> Optional[str]:
        session = self.SessionFactory()
        try:
            row = session.get(StorageEntry, key)
            return row.value if row is not None else None
        finally:
            session.close()

    def set(self, key: str, value: str) -> None:
        session = self.SessionFactory()
        try:
            if self.quota_bytes is not None:
                used = session.execute(
                    select(
                        func.coalesce(
                            func.sum(func.length(StorageEntry.key) + func.length(StorageEntry.value)),
                            0,
                        )
                    ).where(StorageEntry.key != key)
                ).scalar_one()
                # length() counts characters; close enough to bytes for the quota check
                self._check_quota(key, value, int(used))

            row = session.get(StorageEntry, key)
            if row is None:
                session.add(StorageEntry(key=key, value=value))
            else:
                row.value = value
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def remove(self, key: str) -> None:
        session = self.SessionFactory()
        try:
            row = session.get(StorageEntry, key)
            if row is not None:
                session.delete(row)
                session.commit()
        finally:
            session.close()

    def keys(self) -> List[str]:
        session = self.SessionFactory()
        try:
            return list(session.execute(select(StorageEntry.key)).scalars().all())
        finally:
            session.close()
