from __future__ import annotations

import json
import logging
import platform
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from ..domain.trial import AggregateResult, StrategyAggregate, Trial, TrialFailure
from ..domain.value_objects import Strategy, derive_port, validate_port_range
from ..ports.runner import KillerLaunchError, TrialExecutionError, TrialRunnerPort

LOG = logging.getLogger("killtree_bench.service")


@dataclass(frozen=True)
class BenchReport:
    results: List[AggregateResult]
    generated_at: str
    settings: Dict[str, object] = field(default_factory=dict)
    interrupted: bool = False

    def has_aborted(self) -> bool:
        return any(result.aborted for result in self.results)

    def aborted_strategies(self) -> List[str]:
        return [
            f"{result.strategy}: {result.abort_reason}"
            for result in self.results
            if result.aborted
        ]

    def has_errors(self) -> bool:
        return any(not result.complete for result in self.results)

    def unfinished_strategies(self) -> List[str]:
        lines: List[str] = []
        for result in self.results:
            if result.complete:
                continue
            if result.aborted:
                lines.append(f"{result.strategy}: {result.abort_reason}")
            else:
                lines.append(f"{result.strategy}: {result.status}, {result.failure_count} failed trial(s)")
        return lines

    def to_dict(self) -> dict:
        return {
            "generated_at": self.generated_at,
            "platform": platform.system().lower(),
            "arch": platform.machine().lower(),
            "settings": dict(self.settings),
            "interrupted": self.interrupted,
            "strategies": [result.to_dict() for result in self.results],
        }


class BenchInterrupted(Exception):
    """Raised when the run is interrupted; carries the partial report."""

    def __init__(self, report: BenchReport) -> None:
        super().__init__("benchmark interrupted")
        self.report = report


class KillBenchService:
    """Runs every strategy's trials strictly one after another and folds the outcomes."""

    def __init__(self, runner: TrialRunnerPort) -> None:
        self.runner = runner

    def run_strategy(self, strategy: Strategy, trials: int, base_port: int) -> AggregateResult:
        validate_port_range(base_port, trials)
        aggregate = StrategyAggregate(strategy, trials)
        for aggregate in self._fold_trials(aggregate, base_port):
            pass
        return aggregate.to_result()

    def run_suite(
        self,
        strategies: Sequence[Strategy],
        trials: int,
        base_port: int,
        *,
        settings: Optional[Dict[str, object]] = None,
    ) -> BenchReport:
        validate_port_range(base_port, trials)
        results: List[AggregateResult] = []
        for strategy in strategies:
            aggregate = StrategyAggregate(strategy, trials)
            LOG.info("Running %s trials for strategy %s", trials, strategy.name)
            try:
                for aggregate in self._fold_trials(aggregate, base_port):
                    pass
            except KeyboardInterrupt:
                LOG.error("Interrupted during strategy %s", strategy.name)
                results.append(aggregate.abort("interrupted").to_result())
                raise BenchInterrupted(
                    self._build_report(results, settings, interrupted=True)
                ) from None
            results.append(aggregate.to_result())
        return self._build_report(results, settings)

    def _fold_trials(self, aggregate: StrategyAggregate, base_port: int) -> Iterator[StrategyAggregate]:
        for index in range(aggregate.requested_trials):
            aggregate = self._run_trial(aggregate, index, base_port)
            yield aggregate
            if aggregate.aborted:
                return

    def _run_trial(self, aggregate: StrategyAggregate, index: int, base_port: int) -> StrategyAggregate:
        strategy = aggregate.strategy
        LOG.info("Iteration %s", index)
        trial = Trial(index=index, port=derive_port(base_port, index), strategy=strategy)
        try:
            sample = self.runner.run(trial)
        except KillerLaunchError as exc:
            LOG.error("Strategy %s aborted at trial %s: %s", strategy.name, index, exc)
            failure = TrialFailure(index, trial.port, exc.kind, str(exc))
            return aggregate.record(failure).abort(str(exc))
        except TrialExecutionError as exc:
            LOG.warning("Trial %s of %s failed (%s): %s", index, strategy.name, exc.kind.value, exc)
            return aggregate.record(TrialFailure(index, trial.port, exc.kind, str(exc)))
        return aggregate.record(sample)

    @staticmethod
    def _build_report(
        results: List[AggregateResult],
        settings: Optional[Dict[str, object]],
        *,
        interrupted: bool = False,
    ) -> BenchReport:
        return BenchReport(
            results=list(results),
            generated_at=datetime.now(timezone.utc).isoformat(),
            settings=dict(settings or {}),
            interrupted=interrupted,
        )

    def export_summary(self, path: Path, report: BenchReport) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(report.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
