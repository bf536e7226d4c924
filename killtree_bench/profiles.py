from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class ProfileConfig:
    name: str
    trials: int
    timeout_ms: int
    env_overrides: dict[str, str]


_PROFILES: dict[str, ProfileConfig] = {
    "quick": ProfileConfig(
        name="quick",
        trials=10,
        timeout_ms=2000,
        env_overrides={},
    ),
    "ci": ProfileConfig(
        name="ci",
        trials=50,
        timeout_ms=5000,
        env_overrides={},
    ),
    "reference": ProfileConfig(
        name="reference",
        trials=1000,
        timeout_ms=5000,
        env_overrides={"KILLTREE_BENCH_READINESS": "spawn"},
    ),
}


def profile_names() -> list[str]:
    return list(_PROFILES)


def get_profile(name: Optional[str]) -> Optional[ProfileConfig]:
    if name is None:
        return None
    key = name.lower()
    return _PROFILES.get(key)


def apply_env_overrides(
    base_env: Mapping[str, str],
    overrides: Mapping[str, str],
    *,
    overwrite: bool = False,
) -> dict[str, str]:
    result = dict(base_env)
    for key, value in overrides.items():
        if overwrite or key not in result:
            result[key] = value
    return result
