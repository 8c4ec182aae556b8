from __future__ import annotations
import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

from .cache import LRUCache
from .errors import SimulationInvariantError

logger = logging.getLogger("farmsim.server")


@dataclass
class Request:
    item: int
    sent: int
    accepted: int = -1
    completed: int = -1     # 准入时预先计算的完成 tick
    cached: bool = False

    def as_tuple(self) -> tuple:
        return (self.item, self.sent, self.accepted, self.completed, self.cached)


class Server:
    """
    单台服务器：准入队列 + 固定数量的处理 slot + LRU 缓存。
    每个 tick 先把队列头部的请求放入空闲 slot（准入），再释放到期的 slot（完成）。
    """

    def __init__(
        self,
        n_slots: int,
        max_queue: int,
        cache_size: int,
        cached_time: int,
        uncached_time: int,
    ):
        self.n_slots = int(n_slots)
        self.max_queue = int(max_queue)
        self.cached_time = int(cached_time)
        self.uncached_time = int(uncached_time)

        self.queue: deque[Request] = deque()
        self.slots: List[Optional[Request]] = [None] * self.n_slots
        self.slots_used = 0
        self.cache = LRUCache(cache_size)

    # ================== 对外接口 ================== #
    def enqueue(self, r: Request) -> bool:
        """Append to the admission queue; returns False (and drops r) if the queue is full."""
        if len(self.queue) < self.max_queue:
            self.queue.append(r)
            return True
        return False

    def outstanding(self) -> int:
        return len(self.queue) + self.slots_used

    def tick(self, now: int) -> List[Request]:
        """
        推进一个 tick：
        1. 有空闲 slot 且队列非空时，按 FIFO 准入
        2. 扫描所有 slot，释放 completed <= now 的请求并写入缓存
        返回本 tick 完成的请求。
        """
        while self.slots_used < self.n_slots and self.queue:
            self._admit(self.queue.popleft(), now)

        done: List[Request] = []
        if self.slots_used == 0:
            return done
        for i, r in enumerate(self.slots):
            if r is not None and r.completed <= now:
                done.append(self._release(i))
        return done

    def check_invariants(self) -> None:
        occupied = sum(1 for r in self.slots if r is not None)
        if occupied != self.slots_used:
            raise SimulationInvariantError(
                f"slots_used={self.slots_used} but {occupied} slots are occupied"
            )
        if not 0 <= self.slots_used <= self.n_slots:
            raise SimulationInvariantError(
                f"slots_used={self.slots_used} outside [0, {self.n_slots}]"
            )
        if len(self.queue) > self.max_queue:
            raise SimulationInvariantError(
                f"queue length {len(self.queue)} exceeds max_queue={self.max_queue}"
            )

    # ================== 内部辅助函数 ================== #
    def _find_slot(self) -> int:
        for i, r in enumerate(self.slots):
            if r is None:
                return i
        logger.error(f"no free slot: slots_used={self.slots_used}, n_slots={self.n_slots}")
        raise SimulationInvariantError(f"all {self.n_slots} slots used")

    def _service_time(self, cached: bool) -> int:
        """Base time plus a linear surcharge once more than half the slots are busy."""
        t = self.cached_time if cached else self.uncached_time
        half = self.n_slots // 2
        if self.slots_used > half:
            t += (t // self.n_slots) * (self.slots_used - half)
        return t

    def _admit(self, r: Request, now: int):
        i = self._find_slot()
        r.accepted = now
        r.cached = self.cache.lookup(r.item)
        # 附加耗时按放入本请求之前的 slots_used 计算，同一 tick 内逐个递增
        r.completed = now + self._service_time(r.cached)
        self.slots[i] = r
        self.slots_used += 1

    def _release(self, i: int) -> Request:
        r = self.slots[i]
        self.slots[i] = None
        self.slots_used -= 1
        self.cache.insert(r.item)
        return r
