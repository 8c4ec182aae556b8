import unittest

from farmsim import FarmSim, SimConfig
from farmsim.errors import SimulationInvariantError
from farmsim.scheduler import REPORT_MIN_ACCEPTED
from farmsim.server import Request


def small_config(policy="random", **kwargs):
    params = dict(
        policy=policy,
        rate=6.0,
        n_servers=10,
        n_slots=4,
        cache_size=20,
        max_queue=8,
        horizon=400,
        item_parameter=100,
        seed=1234,
    )
    params.update(kwargs)
    return SimConfig(**params)


class TestManualInjection(unittest.TestCase):
    """rate 0, requests submitted by hand"""

    def make_sim(self, **kwargs):
        cfg = small_config(
            policy="modulohash", rate=0, n_servers=1, n_slots=1, max_queue=1,
            horizon=0, warmup_reset=False, **kwargs
        )
        return FarmSim(cfg, check_invariants=True, sink=lambda line: None)

    def test_miss_then_hit_through_engine(self):
        sim = self.make_sim()
        sim.submit(Request(item=5, sent=sim.tm))
        done = []
        while not done:
            done = sim.step()
        r1 = done[0]
        self.assertEqual((r1.sent, r1.accepted, r1.completed, r1.cached), (0, 1, 101, False))
        self.assertEqual(sim.tm, 101)

        sim.submit(Request(item=5, sent=sim.tm))
        done = []
        while not done:
            done = sim.step()
        r2 = done[0]
        self.assertEqual((r2.accepted, r2.completed, r2.cached), (102, 112, True))
        self.assertEqual(sim.stats.accepted, 2)
        self.assertEqual(sim.stats.cached, 1)

    def test_queue_full_drop_counts(self):
        sim = self.make_sim()
        self.assertTrue(sim.submit(Request(item=1, sent=0)))
        sim.step()                                  # slot busy
        self.assertTrue(sim.submit(Request(item=2, sent=sim.tm)))
        self.assertFalse(sim.submit(Request(item=3, sent=sim.tm)))
        self.assertEqual(sim.stats.generated, 3)
        self.assertEqual(sim.stats.dropped, 1)

        final = sim.run()
        self.assertEqual(final['accepted'], 2)
        self.assertEqual(final['generated'], final['accepted'] + final['dropped'])
        self.assertEqual(sim.total_outstanding(), 0)

    def test_not_draining_is_fatal(self):
        cfg = small_config(policy="modulohash", rate=0, n_servers=1, horizon=0)
        sim = FarmSim(cfg, max_ticks=5, sink=lambda line: None)
        sim.submit(Request(item=1, sent=0))
        with self.assertRaises(SimulationInvariantError):
            sim.run()


class TestRun(unittest.TestCase):

    def test_empty_horizon_finishes_immediately(self):
        sim = FarmSim(small_config(horizon=0), sink=lambda line: None)
        final = sim.run()
        self.assertEqual(final['ticks'], 1)
        self.assertEqual(final['generated'], 0)
        self.assertEqual(len(final['reports']), 1)

    def test_invariants_hold_under_overload(self):
        # far more arrivals than the farm can serve, so queues fill and drop
        for policy in ("random", "roundrobin", "modulohash", "modchoose2"):
            with self.subTest(policy=policy):
                cfg = small_config(policy=policy, rate=20.0, warmup_reset=False)
                sim = FarmSim(cfg, check_invariants=True, record_history=True, sink=lambda line: None)
                final = sim.run()
                self.assertGreater(final['dropped'], 0)
                self.assertEqual(final['generated'], final['accepted'] + final['dropped'])
                self.assertGreaterEqual(final['ticks'], cfg.horizon)
                for s in sim.servers:
                    self.assertEqual(s.outstanding(), 0)

    def test_monotonic_timestamps(self):
        sim = FarmSim(small_config(rate=10.0), record_history=True, sink=lambda line: None)
        sim.run()
        n = 0
        for tm, done in zip(sim.hist_steps, sim.hist_completed):
            for item, sent, accepted, completed, cached in done:
                self.assertLessEqual(sent, accepted)
                self.assertLessEqual(accepted, completed)
                self.assertEqual(completed, tm)
                n += 1
        self.assertGreater(n, 0)

    def test_hot_keys_hit_cache(self):
        sim = FarmSim(small_config(policy="modulohash", rate=2.0, item_parameter=5), sink=lambda line: None)
        final = sim.run()
        self.assertGreater(final['hit_rate'], 0.5)

    def test_cache_disabled_never_hits(self):
        sim = FarmSim(small_config(cache_size=0), sink=lambda line: None)
        final = sim.run()
        self.assertEqual(final['hit_rate'], 0.0)

    def test_determinism_with_seed(self):
        runs = []
        for _ in range(2):
            sim = FarmSim(small_config(policy="random", rate=8.0), record_history=True, sink=lambda line: None)
            final = sim.run()
            final.pop('reports')
            runs.append((sim.hist_completed, final))
        self.assertEqual(runs[0][0], runs[1][0])
        self.assertEqual(runs[0][1], runs[1][1])

    def test_history_limit(self):
        sim = FarmSim(small_config(), record_history=True, history_limit=50, sink=lambda line: None)
        sim.run()
        self.assertEqual(len(sim.hist_steps), 50)
        self.assertEqual(len(sim.hist_outstanding), 50)
        self.assertEqual(sim.hist_outstanding[0].shape, (10,))

    def test_warmup_reset_discards_first_half(self):
        with_reset = FarmSim(small_config(), sink=lambda line: None).run()
        without = FarmSim(small_config(warmup_reset=False), sink=lambda line: None).run()
        self.assertLess(with_reset['generated'], without['generated'])
        # same seed, same arrivals: only the counters differ
        self.assertEqual(with_reset['ticks'], without['ticks'])

    def test_warmup_reset_when_stepping_by_hand(self):
        sim = FarmSim(small_config(), sink=lambda line: None)
        for _ in range(sim.horizon // 2 - 1):
            sim.step()
        self.assertFalse(sim._reset_done)
        self.assertGreater(sim.stats.generated, 0)

        sim.step()                                  # tick horizon // 2
        self.assertTrue(sim._reset_done)
        self.assertEqual(sim.stats.generated, 0)
        self.assertEqual(sim.stats.accepted, 0)
        self.assertEqual(sim.stats.ticks, 0)

        sim.step()
        self.assertEqual(sim.stats.ticks, 1)

    def test_warmup_reset_happens_once(self):
        sim = FarmSim(small_config(), sink=lambda line: None)
        sim.run()
        self.assertTrue(sim._reset_done)
        # elapsed ticks counted from the reset at horizon // 2
        self.assertEqual(sim.stats.ticks, sim.tm - sim.horizon // 2)


class TestReporting(unittest.TestCase):

    def test_reports_per_decile_and_at_end(self):
        lines = []
        # short service times so 1000 completions arrive well inside the first decile
        cfg = small_config(rate=8.0, horizon=2000, cached_time=1, uncached_time=2, warmup_reset=False)
        sim = FarmSim(cfg, sink=lines.append)
        final = sim.run(verbose=True)
        reports = final['reports']
        self.assertEqual(len(lines), len(reports))
        self.assertGreaterEqual(len(reports), 10)
        self.assertTrue(lines[-1].startswith(f"tm={final['ticks']} "))
        # every report before the last one needs enough completions
        for snap in reports[:-1]:
            self.assertGreaterEqual(snap['accepted'], REPORT_MIN_ACCEPTED)
        deciles = [10 * snap['tm'] // cfg.horizon for snap in reports[:-1]]
        self.assertEqual(len(deciles), len(set(deciles)))
        self.assertLessEqual(len(reports), 12)

    def test_quiet_run_prints_nothing(self):
        lines = []
        sim = FarmSim(small_config(), sink=lines.append)
        final = sim.run()
        self.assertEqual(lines, [])
        self.assertGreaterEqual(len(final['reports']), 1)


if __name__ == '__main__':
    unittest.main(verbosity=2)
