def policy_modulo_hash(sim, r):
    """
    Modulo hash: item key mod server count.
    Skewed keys pile onto the same few servers; kept as a baseline for comparison.
    """
    return r.item % sim.n_servers
