from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import yaml

from .domain.value_objects import Strategy

NATIVE_POSIX_SCRIPT = 'pkill -TERM -P "$1"; kill -TERM "$1"'


class StrategyConfigError(ValueError):
    """Raised when a strategy definition file is malformed."""


def _binary(default: str) -> str:
    if sys.platform.startswith("win"):
        return default + ".exe"
    return default


def build_blocking_strategy(*, env: Optional[Mapping[str, str]] = None) -> Strategy:
    env = os.environ if env is None else env
    return Strategy(
        name="blocking",
        executable=env.get("KILLTREE_BENCH_BLOCKING_BIN", _binary("target/release/kill_tree_blocking")),
        label="kill_tree blocking",
    )


def build_async_strategy(*, env: Optional[Mapping[str, str]] = None) -> Strategy:
    env = os.environ if env is None else env
    return Strategy(
        name="async",
        executable=env.get("KILLTREE_BENCH_ASYNC_BIN", _binary("target/release/kill_tree_tokio")),
        label="kill_tree tokio",
    )


def build_native_strategy(*, platform_name: Optional[str] = None) -> Strategy:
    platform_name = platform_name or sys.platform
    if platform_name.startswith("win"):
        return Strategy(
            name="native",
            executable="taskkill",
            args=("/T", "/F", "/PID"),
            label="taskkill",
        )
    # sh receives the pid as $1; "sh" fills $0.
    return Strategy(
        name="native",
        executable="sh",
        args=("-c", NATIVE_POSIX_SCRIPT, "sh"),
        label="pkill + kill",
    )


def default_strategies(*, env: Optional[Mapping[str, str]] = None) -> List[Strategy]:
    return [
        build_blocking_strategy(env=env),
        build_async_strategy(env=env),
        build_native_strategy(),
    ]


def _parse_entry(entry: object, source: Path) -> Strategy:
    if not isinstance(entry, dict):
        raise StrategyConfigError(f"{source}: strategy entries must be mappings")
    name = entry.get("name")
    executable = entry.get("executable")
    if not isinstance(name, str) or not isinstance(executable, str):
        raise StrategyConfigError(f"{source}: strategy entries need string 'name' and 'executable'")
    args = entry.get("args", [])
    if not isinstance(args, list):
        raise StrategyConfigError(f"{source}: 'args' of strategy {name} must be a list")
    label = entry.get("label", "")
    try:
        return Strategy(name=name, executable=executable, args=tuple(str(arg) for arg in args), label=str(label))
    except ValueError as exc:
        raise StrategyConfigError(f"{source}: {exc}") from exc


def load_strategies(path: Path) -> List[Strategy]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise StrategyConfigError(f"unable to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise StrategyConfigError(f"invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise StrategyConfigError(f"{path}: top level must be a mapping")
    entries = data.get("strategies", [])
    if not isinstance(entries, list):
        raise StrategyConfigError(f"{path}: 'strategies' must be a list")
    return [_parse_entry(entry, path) for entry in entries]


def merge_strategies(base: Iterable[Strategy], extra: Iterable[Strategy]) -> List[Strategy]:
    """Overrides keep the position of the strategy they replace; new names are appended."""

    merged: Dict[str, Strategy] = {strategy.name: strategy for strategy in base}
    for strategy in extra:
        merged[strategy.name] = strategy
    return list(merged.values())


def resolve_strategies(requested: Optional[Iterable[str]], registry: Iterable[Strategy]) -> List[Strategy]:
    available = {strategy.name: strategy for strategy in registry}
    if not requested:
        return list(available.values())
    resolved: List[Strategy] = []
    seen: set[str] = set()
    for name in requested:
        if name in seen:
            continue
        seen.add(name)
        if name not in available:
            known = ", ".join(available)
            raise ValueError(f"Unknown strategy {name} (known: {known})")
        resolved.append(available[name])
    return resolved
