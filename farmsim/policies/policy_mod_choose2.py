import logging

logger = logging.getLogger("farmsim.policy")


def choose2_candidates(item: int, n_servers: int):
    """Two candidate servers derived from the key: (item mod n, (first*item + 1) mod n)."""
    first = item % n_servers
    second = (first * item + 1) % n_servers
    return first, second


def policy_mod_choose2(sim, r):
    """
    Power of two choices over mod-derived candidates.
    The second candidate is taken only when its outstanding count is lower than the
    first's by more than choose2_bias; an exact margin stays on the first, which keeps
    keys from flapping between the two servers.
    """
    first, second = choose2_candidates(r.item, sim.n_servers)
    servers = sim.servers
    if servers[second].outstanding() + sim.choose2_bias < servers[first].outstanding():
        logger.debug(f"item {r.item}: moved from server {first} to {second}")
        return second
    return first
