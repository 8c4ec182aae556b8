"""
Exceptions raised by the simulator.
"""


class ConfigError(ValueError):
    """Invalid startup configuration (unknown policy, negative capacity, ...)."""


class SimulationInvariantError(RuntimeError):
    """Internal state is inconsistent; the run cannot continue."""
