from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Tuple

MAX_PORT = 65535


class ReadinessMode(str, enum.Enum):
    """How the harness decides a subject process is ready to be killed."""

    SPAWN = "spawn"
    LISTENING = "listening"


class FailureKind(str, enum.Enum):
    SUBJECT_LAUNCH = "subject-launch"
    KILLER_LAUNCH = "killer-launch"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Strategy:
    """Named killer executable plus the arguments placed before the target pid."""

    name: str
    executable: str
    args: Tuple[str, ...] = field(default_factory=tuple)
    label: str = ""

    def __post_init__(self) -> None:
        name = self.name.strip()
        executable = self.executable.strip()
        if not name:
            raise ValueError("strategy name cannot be empty")
        if not executable:
            raise ValueError(f"strategy {name} needs an executable")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "executable", executable)
        object.__setattr__(self, "args", tuple(str(arg) for arg in self.args))
        if not self.label.strip():
            object.__setattr__(self, "label", name)

    def command(self, pid: int) -> List[str]:
        return [self.executable, *self.args, str(pid)]


def derive_port(base_port: int, index: int) -> int:
    """Port used by trial ``index``; every trial in a sequence gets its own."""

    if index < 0:
        raise ValueError("trial index must be non-negative")
    if base_port < 1:
        raise ValueError("base_port must be >= 1")
    port = base_port + index
    if port > MAX_PORT:
        raise ValueError(f"derived port {port} exceeds {MAX_PORT}")
    return port


def validate_port_range(base_port: int, trials: int) -> None:
    if trials < 1:
        raise ValueError("trials must be >= 1")
    derive_port(base_port, trials - 1)
