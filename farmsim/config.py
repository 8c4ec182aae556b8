from __future__ import annotations
import math
from dataclasses import dataclass, asdict
from typing import Optional

from .errors import ConfigError
from .policies import POLICY_FUNCS


# -------- Default parameters --------
N_SERVERS = 100
N_SLOTS = 8
ITEM_PARAMETER = 10000
CACHED_TIME = 10
UNCACHED_TIME = 100
HORIZON = 4000000
CACHE_SIZE = int(1.8 * ITEM_PARAMETER / N_SERVERS)
MAX_QUEUE = 50
CHOOSE2_BIAS = 16           # second candidate must win by more than this

# (字段, 下限)
_INT_FIELDS = (
    ("n_servers", 1),
    ("n_slots", 1),
    ("cache_size", 0),
    ("cached_time", 0),
    ("uncached_time", 0),
    ("max_queue", 0),
    ("horizon", 0),
    ("choose2_bias", 0),
)


@dataclass
class SimConfig:
    policy: str
    rate: float                         # 每 tick 平均到达请求数
    n_servers: int = N_SERVERS
    n_slots: int = N_SLOTS
    cache_size: int = CACHE_SIZE        # 0 关闭缓存
    cached_time: int = CACHED_TIME
    uncached_time: int = UNCACHED_TIME
    max_queue: int = MAX_QUEUE
    horizon: int = HORIZON              # 产生请求的最后一个 tick
    item_parameter: float = ITEM_PARAMETER
    choose2_bias: int = CHOOSE2_BIAS
    warmup_reset: bool = True
    seed: Optional[int] = None

    def validate(self) -> "SimConfig":
        """Check every field; raises ConfigError on the first bad one."""
        if self.policy not in POLICY_FUNCS:
            raise ConfigError(
                f"unknown policy {self.policy!r}, expected one of {sorted(POLICY_FUNCS)}"
            )
        try:
            rate = float(self.rate)
        except (TypeError, ValueError):
            raise ConfigError(f"rate must be numeric, got {self.rate!r}") from None
        if not math.isfinite(rate) or rate < 0:
            raise ConfigError(f"rate must be a finite number >= 0, got {self.rate!r}")
        self.rate = rate

        for name, lower in _INT_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, int) or value < lower:
                raise ConfigError(f"{name} must be an integer >= {lower}, got {value!r}")
        if not isinstance(self.item_parameter, (int, float)) or not self.item_parameter > 0:
            raise ConfigError(f"item_parameter must be > 0, got {self.item_parameter}")
        # numpy 只接受非负整数种子
        if self.seed is not None and (not isinstance(self.seed, int) or self.seed < 0):
            raise ConfigError(f"seed must be a non-negative integer, got {self.seed!r}")
        return self

    def as_dict(self) -> dict:
        return asdict(self)
