"""
按 key 分区的互斥锁（同进程内）：
  - 同一个 key（某个 scope / 某个 SKU）串行；
  - 不同 key 之间互不阻塞；
  - 某个 key 没有持有者也没有等待者时立即回收，表的大小只跟并发量有关。
"""

from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class _KeyedEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        # 持有者 + 等待者；在 _guard 下增减
        self.users = 0


class KeyedLocks:

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _KeyedEntry] = {}

    def _acquire_entry(self, key: Hashable) -> _KeyedEntry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _KeyedEntry()
                self._entries[key] = entry
            entry.users += 1
            return entry

    def _release_entry(self, key: Hashable, entry: _KeyedEntry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        entry = self._acquire_entry(key)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(key, entry)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
