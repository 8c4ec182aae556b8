def policy_random(sim, r):
    """Random: 在所有服务器中均匀随机选择一台。"""
    return sim.random.choose_uniform(sim.n_servers)
