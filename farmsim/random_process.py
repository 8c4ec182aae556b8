from __future__ import annotations
import time
from typing import Optional

import numpy as np


class RandomProcess:
    """
    到达过程与请求键的随机源：
    - 每 tick 的到达数 ~ Poisson(rate)
    - 请求键 = floor(Exp(1) * item_parameter)，热点集中在 0 附近
    - choose_uniform 供 random 策略使用
    整个模拟只使用这一条随机流，种子在构造时确定一次。
    """

    def __init__(self, item_parameter: float, seed: Optional[int] = None):
        if seed is None:
            seed = time.time_ns()
        self.seed = int(seed)
        self.item_parameter = float(item_parameter)
        self.rng = np.random.default_rng(self.seed)

    def next_arrival_count(self, rate: float) -> int:
        if rate <= 0:
            return 0
        return int(self.rng.poisson(rate))

    def next_item_key(self) -> int:
        return int(self.rng.exponential() * self.item_parameter)

    def choose_uniform(self, n: int) -> int:
        """Uniform integer in [0, n)."""
        return int(self.rng.integers(n))
