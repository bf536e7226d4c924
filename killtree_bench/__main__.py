from __future__ import annotations

import argparse
import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Iterable, Mapping, Optional

from .adapters.process_runner import ProcessTrialRunner
from .app.service import BenchInterrupted, BenchReport, KillBenchService
from .domain.value_objects import ReadinessMode, validate_port_range
from .profiles import apply_env_overrides, get_profile, profile_names
from .reporting import render_report
from .strategies import StrategyConfigError, default_strategies, load_strategies, merge_strategies, resolve_strategies

LOG = logging.getLogger("killtree_bench.cli")

EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _flag_passed(argv_list: Optional[list[str]], flag: str) -> bool:
    if argv_list is None:
        argv_list = sys.argv[1:]
    prefix = f"{flag}="
    return any(arg == flag or arg.startswith(prefix) for arg in argv_list)


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"killtree-bench: error: {key} must be an integer, got {raw!r}", file=sys.stderr)
        raise SystemExit(EXIT_USAGE) from None


def build_parser(env: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="killtree-bench", description="Process-tree kill latency benchmark")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the benchmark for the selected strategies")
    run_parser.add_argument("--trials", type=int, default=_env_int(env, "KILLTREE_BENCH_TRIALS", 1000))
    run_parser.add_argument("--base-port", type=int, default=_env_int(env, "KILLTREE_BENCH_BASE_PORT", 50000))
    run_parser.add_argument(
        "--strategy",
        dest="strategies",
        action="append",
        help="Run only the named strategy (repeatable)",
    )
    run_parser.add_argument(
        "--timeout-ms",
        type=int,
        default=_env_int(env, "KILLTREE_BENCH_TIMEOUT_MS", ProcessTrialRunner.DEFAULT_TIMEOUT_MS),
        help="Upper bound for the readiness wait and for the killer exit wait",
    )
    run_parser.add_argument(
        "--readiness",
        choices=[mode.value for mode in ReadinessMode],
        default=None,
        help="spawn: kill right after the OS reports the process started; listening: wait for the bound listener",
    )
    run_parser.add_argument("--reap-grace-ms", type=int, default=ProcessTrialRunner.DEFAULT_REAP_GRACE_MS)
    run_parser.add_argument("--profile", choices=profile_names(), default=None)
    run_parser.add_argument("--config", type=Path, default=None, help="YAML file with extra strategy definitions")
    run_parser.add_argument("--subject-command", default=None, help="Subject launcher command; the port is appended")
    run_parser.add_argument("--summary-path", type=Path, default=None, help="Optional JSON summary export path")
    run_parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def run_cli(argv: Optional[Iterable[str]] = None, env: Optional[Mapping[str, str]] = None) -> int:
    env = dict(os.environ if env is None else env)
    argv_list = list(argv) if argv is not None else None
    parser = build_parser(env)
    args = parser.parse_args(argv_list)

    if args.command == "run":
        return _handle_run(parser, args, argv_list, env)
    return 0


def _handle_run(parser: argparse.ArgumentParser, args, argv_list, env: dict[str, str]) -> int:
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        stream=sys.stdout,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    profile_cfg = get_profile(args.profile)
    if profile_cfg is not None:
        env = apply_env_overrides(env, profile_cfg.env_overrides)
        if not _flag_passed(argv_list, "--trials"):
            args.trials = profile_cfg.trials
        if not _flag_passed(argv_list, "--timeout-ms"):
            args.timeout_ms = profile_cfg.timeout_ms
    if args.readiness is None:
        args.readiness = env.get("KILLTREE_BENCH_READINESS", ReadinessMode.LISTENING.value)

    try:
        readiness = ReadinessMode(args.readiness)
    except ValueError:
        parser.error(f"invalid readiness mode {args.readiness!r}")
    if args.timeout_ms <= 0:
        parser.error("--timeout-ms must be positive")
    if args.reap_grace_ms < 0:
        parser.error("--reap-grace-ms cannot be negative")
    try:
        validate_port_range(args.base_port, args.trials)
    except ValueError as err:
        parser.error(str(err))

    registry = default_strategies(env=env)
    if args.config is not None:
        try:
            registry = merge_strategies(registry, load_strategies(args.config))
        except StrategyConfigError as err:
            parser.error(str(err))
    try:
        strategies = resolve_strategies(args.strategies, registry)
    except ValueError as err:
        parser.error(str(err))

    subject_command = shlex.split(args.subject_command) if args.subject_command else None
    runner = ProcessTrialRunner(
        subject_command,
        readiness=readiness,
        timeout_ms=args.timeout_ms,
        reap_grace_ms=args.reap_grace_ms,
    )
    service = KillBenchService(runner)
    settings = {
        "trials": args.trials,
        "base_port": args.base_port,
        "timeout_ms": args.timeout_ms,
        "readiness": readiness.value,
        "strategies": [strategy.name for strategy in strategies],
    }

    try:
        report = service.run_suite(strategies, args.trials, args.base_port, settings=settings)
    except BenchInterrupted as interrupted:
        _finish(service, interrupted.report, args.summary_path)
        return _abort("benchmark interrupted", EXIT_INTERRUPTED)

    _finish(service, report, args.summary_path)
    if report.has_errors():
        return _abort(f"Strategies not completed: {'; '.join(report.unfinished_strategies())}")
    return 0


def _finish(service: KillBenchService, report: BenchReport, summary_path: Optional[Path]) -> None:
    print(render_report(report), end="")
    if summary_path is not None:
        service.export_summary(summary_path, report)
        print(f"Summary exported to {summary_path}")


def _abort(message: str, code: int = 1) -> int:
    print(message, file=sys.stderr)
    return code


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
