"""
Discrete-time simulation of a load-balanced server farm with per-server LRU caches.
"""

from .config import SimConfig
from .errors import ConfigError, SimulationInvariantError
from .random_process import RandomProcess
from .cache import LRUCache
from .server import Request, Server
from .stats import StatsCollector, format_report
from .scheduler import FarmSim
from . import policies

__all__ = [
    "SimConfig",
    "ConfigError",
    "SimulationInvariantError",
    "RandomProcess",
    "LRUCache",
    "Request",
    "Server",
    "StatsCollector",
    "format_report",
    "FarmSim",
    "policies",
]
