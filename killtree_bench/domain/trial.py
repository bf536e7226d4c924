from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple, Union

from .value_objects import FailureKind, Strategy

STATUS_COMPLETE = "complete"
STATUS_INCOMPLETE = "incomplete"
STATUS_ERRORED = "errored"


@dataclass
class Trial:
    """One spawn/kill/measure cycle. Only the runner executing it mutates it."""

    index: int
    port: int
    strategy: Strategy
    started_at: Optional[str] = None
    elapsed_ms: Optional[float] = None

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError("trial index must be non-negative")
        if not 0 < self.port <= 65535:
            raise ValueError(f"invalid port {self.port}")


@dataclass(frozen=True)
class TrialSample:
    index: int
    port: int
    subject_pid: int
    elapsed_ms: float
    killer_exit_code: int
    subject_survived: bool = False

    def __post_init__(self) -> None:
        if self.elapsed_ms < 0:
            raise ValueError("elapsed_ms cannot be negative")


@dataclass(frozen=True)
class TrialFailure:
    index: int
    port: int
    kind: FailureKind
    message: str


TrialOutcome = Union[TrialSample, TrialFailure]


@dataclass(frozen=True)
class AggregateResult:
    strategy: str
    label: str
    requested_trials: int
    attempted_trials: int
    sample_count: int
    total_ms: float
    mean_ms: float
    failures_by_kind: Dict[str, int]
    aborted: bool = False
    abort_reason: str = ""

    @property
    def failure_count(self) -> int:
        return sum(self.failures_by_kind.values())

    @property
    def status(self) -> str:
        if self.aborted or self.attempted_trials < self.requested_trials:
            return STATUS_INCOMPLETE
        if self.sample_count == 0:
            return STATUS_ERRORED
        return STATUS_COMPLETE

    @property
    def complete(self) -> bool:
        return self.status == STATUS_COMPLETE

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "label": self.label,
            "requested_trials": self.requested_trials,
            "attempted_trials": self.attempted_trials,
            "sample_count": self.sample_count,
            "failure_count": self.failure_count,
            "failures_by_kind": dict(sorted(self.failures_by_kind.items())),
            "total_ms": self.total_ms,
            "mean_ms": None if math.isnan(self.mean_ms) else self.mean_ms,
            "complete": self.complete,
            "status": self.status,
            "aborted": self.aborted,
            "abort_reason": self.abort_reason or None,
        }


@dataclass(frozen=True)
class StrategyAggregate:
    """Immutable accumulator folded over the outcomes of one strategy's trials."""

    strategy: Strategy
    requested_trials: int
    total_ms: float = 0.0
    sample_count: int = 0
    failures: Tuple[TrialFailure, ...] = field(default_factory=tuple)
    aborted: bool = False
    abort_reason: str = ""

    def __post_init__(self) -> None:
        if self.requested_trials < 1:
            raise ValueError("requested_trials must be >= 1")

    @property
    def attempted_trials(self) -> int:
        return self.sample_count + len(self.failures)

    def record(self, outcome: TrialOutcome) -> "StrategyAggregate":
        if self.aborted:
            raise ValueError(f"strategy {self.strategy.name} was aborted")
        if self.attempted_trials >= self.requested_trials:
            raise ValueError("trial count exceeds configured count")
        if isinstance(outcome, TrialFailure):
            return replace(self, failures=self.failures + (outcome,))
        return replace(
            self,
            total_ms=self.total_ms + outcome.elapsed_ms,
            sample_count=self.sample_count + 1,
        )

    def abort(self, reason: str) -> "StrategyAggregate":
        return replace(self, aborted=True, abort_reason=reason)

    @property
    def mean_ms(self) -> float:
        if self.sample_count == 0:
            return math.nan
        return self.total_ms / self.sample_count

    def to_result(self) -> AggregateResult:
        kinds = Counter(failure.kind.value for failure in self.failures)
        return AggregateResult(
            strategy=self.strategy.name,
            label=self.strategy.label,
            requested_trials=self.requested_trials,
            attempted_trials=self.attempted_trials,
            sample_count=self.sample_count,
            total_ms=self.total_ms,
            mean_ms=self.mean_ms,
            failures_by_kind=dict(kinds),
            aborted=self.aborted,
            abort_reason=self.abort_reason,
        )
