from __future__ import annotations
import logging
from typing import Callable, Dict, List, Optional

import numpy as np
from tqdm import tqdm

from .config import SimConfig
from .errors import SimulationInvariantError
from .policies import get_policy
from .random_process import RandomProcess
from .server import Request, Server
from .stats import StatsCollector, format_report

logger = logging.getLogger("farmsim")

REPORT_MIN_ACCEPTED = 1000      # 累计完成数达到此值后才开始按进度十分位输出


class FarmSim:
    """
    离散时间的服务器集群模拟器：
    - 每个 tick 按 Poisson 产生请求，经 policy_fn 分配到服务器队列
    - 每台服务器先准入再释放，完成的请求交给 StatsCollector
    - 时钟、随机流、服务器、统计都归本对象所有，多个实例互不干扰
    """

    def __init__(
        self,
        config: SimConfig,
        record_history: bool = False,
        check_invariants: bool = False,
        sink: Callable[[str], None] = print,
        max_ticks: Optional[int] = None,
        history_limit: Optional[int] = None,
    ):
        self.cfg = config.validate()
        self.n_servers = config.n_servers
        self.horizon = config.horizon
        self.choose2_bias = config.choose2_bias
        self.policy_fn = get_policy(config.policy)
        self.record_hist = record_history
        self.history_limit = history_limit      # None 表示不限制
        self.check_inv = check_invariants
        self.sink = sink
        self.max_ticks = int(max_ticks) if max_ticks is not None else self._drain_bound()

        self.random = RandomProcess(config.item_parameter, seed=config.seed)
        self.servers: List[Server] = [
            Server(
                n_slots=config.n_slots,
                max_queue=config.max_queue,
                cache_size=config.cache_size,
                cached_time=config.cached_time,
                uncached_time=config.uncached_time,
            )
            for _ in range(self.n_servers)
        ]
        self.stats = StatsCollector()

        # 时间步与策略状态
        self.tm = 0
        self.rr_idx = 0
        self._reset_done = False

        # 历史记录（仅在 record_hist=True 时填充）
        self.hist_steps: List[int] = []
        self.hist_completed: List[tuple] = []
        self.hist_outstanding: List[np.ndarray] = []

    # ================== 内部辅助函数 ================== #
    def _drain_bound(self) -> int:
        """Tick after which a run that has not drained is treated as corrupted."""
        cfg = self.cfg
        longest = max(cfg.cached_time, cfg.uncached_time)
        longest += (longest // cfg.n_slots) * cfg.n_slots
        return cfg.horizon + (cfg.max_queue + cfg.n_slots) * (longest + 1) + 1

    def _generate_requests(self) -> List[Request]:
        n = self.random.next_arrival_count(self.cfg.rate)
        return [Request(item=self.random.next_item_key(), sent=self.tm) for _ in range(n)]

    # ================== 对外接口 ================== #
    def submit(self, r: Request) -> bool:
        """Route one request through the policy and enqueue it; False if it was dropped."""
        gid = self.policy_fn(self, r)
        ok = self.servers[gid].enqueue(r)
        self.stats.record_generated(dropped=not ok)
        if not ok:
            logger.debug(f"tm={self.tm}: server {gid} queue full, dropped item {r.item}")
        return ok

    def total_outstanding(self) -> int:
        return sum(s.outstanding() for s in self.servers)

    def finished(self) -> bool:
        return self.tm >= self.horizon and self.total_outstanding() == 0

    def step(self) -> List[Request]:
        """Advance the clock by one tick; returns the requests completed in it."""
        self.tm += 1
        if self.tm <= self.horizon:
            for r in self._generate_requests():
                self.submit(r)

        done: List[Request] = []
        for s in self.servers:
            done.extend(s.tick(self.tm))
            if self.check_inv:
                s.check_invariants()
        for r in done:
            self.stats.record(r)
        self.stats.advance()

        # 到达 horizon 一半时清零一次统计，去掉预热阶段
        if self.cfg.warmup_reset and not self._reset_done and self.tm == self.horizon // 2:
            self.stats.reset()
            self._reset_done = True
            logger.debug(f"tm={self.tm}: warm-up statistics discarded")

        if self.record_hist and (self.history_limit is None or len(self.hist_steps) < self.history_limit):
            self.hist_steps.append(self.tm)
            self.hist_completed.append(tuple(r.as_tuple() for r in done))
            self.hist_outstanding.append(
                np.array([s.outstanding() for s in self.servers], dtype=np.int32)
            )
        return done

    # ================== 主循环 ================== #
    def run(self, verbose: bool = False, progress: bool = False) -> Dict[str, float]:
        """
        运行直到 tm >= horizon 且所有服务器清空，返回最终统计：
        generated、accepted、dropped、accept_rate、hit_rate、avg_queue_delay、avg_latency、throughput，
        以及 reports（每次输出的快照）、ticks、seed、policy。
        """
        logger.info(
            f"start: policy={self.cfg.policy}, rate={self.cfg.rate}, "
            f"servers={self.n_servers}, horizon={self.horizon}, seed={self.random.seed}"
        )
        prev_completion = -1
        reports: List[Dict[str, float]] = []

        with tqdm(total=self.horizon, desc=self.cfg.policy, ncols=80, disable=not progress) as pbar:
            while True:
                self.step()
                if self.tm <= self.horizon:
                    pbar.update(1)

                finish = self.finished()
                if not finish and self.tm >= self.max_ticks:
                    raise SimulationInvariantError(
                        f"not drained after {self.max_ticks} ticks "
                        f"({self.total_outstanding()} requests outstanding)"
                    )
                completion = 10 * self.tm // self.horizon if self.horizon else 10

                if (self.stats.accepted >= REPORT_MIN_ACCEPTED and completion != prev_completion) or finish:
                    prev_completion = completion
                    snap = self.stats.snapshot(self.tm)
                    reports.append(snap)
                    if verbose:
                        self.sink(format_report(snap))
                if finish:
                    break

        final = dict(reports[-1])
        final.update(
            reports=reports,
            ticks=self.tm,
            seed=self.random.seed,
            policy=self.cfg.policy,
        )
        logger.info(
            f"done: policy={self.cfg.policy}, tm={self.tm}, accepted={final['accepted']}, "
            f"hit_rate={final['hit_rate']:.4f}"
        )
        return final
