from __future__ import annotations
from typing import Dict

from .server import Request


def _ratio(num: float, den: float) -> float:
    return num / den if den else 0.0


class StatsCollector:
    """
    累计统计：产生/接受/丢弃请求数、缓存命中、排队时延、总时延。
    reset() 用于在运行中途清零，去掉预热阶段的偏差。
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.generated = 0
        self.accepted = 0       # 已完成（被服务）的请求数
        self.dropped = 0        # 队列已满被丢弃
        self.cached = 0
        self.total_queued = 0
        self.total_time = 0
        self.ticks = 0          # 上次 reset 以来经过的 tick

    def record_generated(self, dropped: bool = False):
        self.generated += 1
        if dropped:
            self.dropped += 1

    def record(self, r: Request):
        self.accepted += 1
        self.total_queued += r.accepted - r.sent
        self.total_time += r.completed - r.sent
        if r.cached:
            self.cached += 1

    def advance(self):
        self.ticks += 1

    def snapshot(self, tm: int) -> Dict[str, float]:
        return dict(
            tm=int(tm),
            generated=self.generated,
            accepted=self.accepted,
            dropped=self.dropped,
            accept_rate=_ratio(self.accepted, self.generated),
            hit_rate=_ratio(self.cached, self.accepted),
            avg_queue_delay=_ratio(self.total_queued, self.accepted),
            avg_latency=_ratio(self.total_time, self.accepted),
            throughput=_ratio(self.accepted, self.ticks),
        )


def format_report(snap: Dict[str, float]) -> str:
    """Human-readable progress line for one snapshot."""
    return (
        f"tm={snap['tm']} Requests: {snap['generated']}, "
        f"Accepted {snap['accepted']} ({100 * snap['accept_rate']:.2f}%), "
        f"Throughput {snap['throughput']:5f}, "
        f"Cache Hit {100 * snap['hit_rate']:.2f}%, "
        f"Avg Q: {snap['avg_queue_delay']:.2f}, "
        f"Avg Tm: {snap['avg_latency']:.2f}"
    )
