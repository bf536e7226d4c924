import io
import json
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

import yaml

from conftest import free_port
from killtree_bench.__main__ import run_cli


class KillBenchCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self.tmp.name)
        self.config_path = self.tmp_path / "strategies.yaml"
        config = {
            "strategies": [
                {"name": "noop", "executable": sys.executable, "args": ["-c", "pass"], "label": "No-op killer"},
                {"name": "ghost", "executable": str(self.tmp_path / "missing-killer")},
            ]
        }
        self.config_path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
        self.base_port = min(free_port(), 65535 - 16)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _run(self, *extra: str):
        argv = [
            "run",
            "--config",
            str(self.config_path),
            "--base-port",
            str(self.base_port),
            "--reap-grace-ms",
            "100",
            "--log-level",
            "WARNING",
            *extra,
        ]
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = run_cli(argv, env={})
        return code, stdout.getvalue(), stderr.getvalue()

    def test_noop_strategy_completes(self) -> None:
        summary_path = self.tmp_path / "out" / "summary.json"
        code, out, _ = self._run("--strategy", "noop", "--trials", "3", "--summary-path", str(summary_path))
        self.assertEqual(code, 0)
        self.assertIn("noop (No-op killer): total:", out)
        self.assertIn("samples=3/3, failures: 0 [COMPLETE]", out)
        data = json.loads(summary_path.read_text(encoding="utf-8"))
        [strategy] = data["strategies"]
        self.assertEqual(strategy["sample_count"], 3)
        self.assertEqual(strategy["failure_count"], 0)
        self.assertEqual(data["settings"]["strategies"], ["noop"])
        self.assertEqual(data["settings"]["readiness"], "listening")

    def test_missing_killer_is_reported_incomplete(self) -> None:
        code, out, err = self._run("--strategy", "ghost", "--strategy", "noop", "--trials", "2")
        self.assertEqual(code, 1)
        self.assertIn("ghost: total: 0.000ms, mean: n/a, samples=0/2", out)
        self.assertIn("[INCOMPLETE]", out)
        self.assertIn("noop (No-op killer): total:", out)
        self.assertIn("Strategies not completed: ghost", err)

    def test_profile_respects_explicit_trials(self) -> None:
        summary_path = self.tmp_path / "profile.json"
        code, _, _ = self._run(
            "--profile",
            "reference",
            "--trials",
            "1",
            "--strategy",
            "noop",
            "--summary-path",
            str(summary_path),
        )
        self.assertEqual(code, 0)
        settings = json.loads(summary_path.read_text(encoding="utf-8"))["settings"]
        self.assertEqual(settings["trials"], 1)
        self.assertEqual(settings["readiness"], "spawn")

    def test_unknown_strategy_is_usage_error(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            self._run("--strategy", "nope", "--trials", "1")
        self.assertEqual(ctx.exception.code, 2)

    def test_port_overflow_is_usage_error(self) -> None:
        with self.assertRaises(SystemExit) as ctx:
            with redirect_stderr(io.StringIO()):
                run_cli(["run", "--base-port", "65535", "--trials", "2"], env={})
        self.assertEqual(ctx.exception.code, 2)

    def test_bad_env_integer_is_usage_error(self) -> None:
        stderr = io.StringIO()
        with self.assertRaises(SystemExit) as ctx:
            with redirect_stderr(stderr):
                run_cli(["run", "--trials", "1"], env={"KILLTREE_BENCH_BASE_PORT": "fifty"})
        self.assertEqual(ctx.exception.code, 2)
        self.assertIn("KILLTREE_BENCH_BASE_PORT must be an integer", stderr.getvalue())

    def test_all_failed_strategy_exits_non_zero(self) -> None:
        code, out, err = self._run(
            "--strategy",
            "noop",
            "--trials",
            "2",
            "--subject-command",
            str(self.tmp_path / "missing-subject"),
        )
        self.assertEqual(code, 1)
        self.assertIn("samples=0/2, failures: 2 (subject-launch=2) [ERRORED]", out)
        self.assertIn("Strategies not completed: noop: errored", err)

    def test_invalid_config_is_usage_error(self) -> None:
        self.config_path.write_text("strategies: [1, 2]\n", encoding="utf-8")
        with self.assertRaises(SystemExit) as ctx:
            self._run("--trials", "1")
        self.assertEqual(ctx.exception.code, 2)

    def test_env_defaults_are_used(self) -> None:
        summary_path = self.tmp_path / "env.json"
        stdout = io.StringIO()
        with redirect_stdout(stdout):
            code = run_cli(
                [
                    "run",
                    "--config",
                    str(self.config_path),
                    "--strategy",
                    "noop",
                    "--reap-grace-ms",
                    "100",
                    "--summary-path",
                    str(summary_path),
                ],
                env={
                    "KILLTREE_BENCH_TRIALS": "2",
                    "KILLTREE_BENCH_BASE_PORT": str(self.base_port),
                    "KILLTREE_BENCH_TIMEOUT_MS": "4000",
                },
            )
        self.assertEqual(code, 0)
        settings = json.loads(summary_path.read_text(encoding="utf-8"))["settings"]
        self.assertEqual(settings["trials"], 2)
        self.assertEqual(settings["base_port"], self.base_port)
        self.assertEqual(settings["timeout_ms"], 4000)


if __name__ == "__main__":
    unittest.main()
