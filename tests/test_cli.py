import contextlib
import importlib.util
import io
import unittest
from pathlib import Path

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "main.py"


def load_main():
    spec = importlib.util.spec_from_file_location("farmsim_main_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestCommandLine(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.script = load_main()

    def run_main(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = self.script.main(argv)
        return code, out.getvalue(), err.getvalue()

    def test_unknown_policy_exits_before_running(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main(["leastconn", "5"])
        self.assertEqual(ctx.exception.code, 2)

    def test_non_numeric_rate_exits(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main(["random", "fast"])
        self.assertEqual(ctx.exception.code, 2)

    def test_negative_capacity_exits(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main(["random", "5", "--max_queue", "-1"])
        self.assertEqual(ctx.exception.code, 2)

    def test_negative_seed_exits(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main(["random", "5", "--seed", "-1"])
        self.assertEqual(ctx.exception.code, 2)

    def test_single_run_prints_progress(self):
        code, out, _ = self.run_main([
            "roundrobin", "4", "--servers", "4", "--horizon", "300",
            "--item_parameter", "50", "--seed", "3",
        ])
        self.assertEqual(code, 0)
        lines = [l for l in out.splitlines() if l.startswith("tm=")]
        self.assertGreaterEqual(len(lines), 1)
        self.assertIn("Cache Hit", lines[-1])


if __name__ == '__main__':
    unittest.main(verbosity=2)
