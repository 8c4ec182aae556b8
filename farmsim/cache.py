from __future__ import annotations
from collections import OrderedDict
from typing import Hashable


class LRUCache:
    """
    只记录 key 是否存在的 LRU 缓存，用作命中/未命中判定。
    lookup 不刷新最近使用顺序；insert 刷新或新建，超出容量时淘汰最久未使用的 key。
    capacity == 0 表示关闭缓存。
    """

    def __init__(self, capacity: int):
        self.capacity = int(capacity)
        self._keys: "OrderedDict[Hashable, None]" = OrderedDict()

    def lookup(self, key: Hashable) -> bool:
        return key in self._keys

    def insert(self, key: Hashable) -> None:
        if self.capacity == 0:
            return
        if key in self._keys:
            self._keys.move_to_end(key)
            return
        self._keys[key] = None
        if len(self._keys) > self.capacity:
            self._keys.popitem(last=False)

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)
