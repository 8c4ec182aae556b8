def policy_round_robin(sim, r):
    """
    Round Robin strategy: assign requests to servers 0, 1, 2, ..., n_servers-1 in sequence, then cycle.
    The cursor lives on the simulation and is shared by all requests regardless of key.
    """
    gid = sim.rr_idx
    sim.rr_idx = (sim.rr_idx + 1) % sim.n_servers
    return gid
