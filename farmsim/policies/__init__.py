"""
Dispatch policy exports.

A policy maps (sim, request) to a server index. It may read the servers'
outstanding counts and the simulation's random stream / round-robin cursor,
but never mutates server state.
"""

from .policy_random import policy_random
from .policy_round_robin import policy_round_robin
from .policy_modulo_hash import policy_modulo_hash
from .policy_mod_choose2 import policy_mod_choose2, choose2_candidates
from ..errors import ConfigError

POLICY_FUNCS = {
    "random": policy_random,
    "roundrobin": policy_round_robin,
    "modulohash": policy_modulo_hash,
    "modchoose2": policy_mod_choose2,
}


def get_policy(name: str):
    """Resolve a policy name once at startup; unknown names are a ConfigError."""
    try:
        return POLICY_FUNCS[name]
    except KeyError:
        raise ConfigError(
            f"unknown policy {name!r}, expected one of {sorted(POLICY_FUNCS)}"
        ) from None


__all__ = [
    "POLICY_FUNCS",
    "get_policy",
    "choose2_candidates",
    "policy_random",
    "policy_round_robin",
    "policy_modulo_hash",
    "policy_mod_choose2",
]
