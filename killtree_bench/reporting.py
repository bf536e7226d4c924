from __future__ import annotations

import math
import platform
from typing import TYPE_CHECKING, List

from .domain.trial import AggregateResult

if TYPE_CHECKING:  # pragma: no cover
    from .app.service import BenchReport


def format_ms(value: float) -> str:
    if math.isnan(value):
        return "n/a"
    return f"{value:.3f}ms"


def format_result(result: AggregateResult) -> str:
    marker = result.status.upper()
    name = result.strategy
    if result.label and result.label != result.strategy:
        name = f"{name} ({result.label})"
    failures = str(result.failure_count)
    if result.failures_by_kind:
        breakdown = ", ".join(f"{kind}={count}" for kind, count in sorted(result.failures_by_kind.items()))
        failures = f"{failures} ({breakdown})"
    line = (
        f"{name}: total: {format_ms(result.total_ms)}, mean: {format_ms(result.mean_ms)}, "
        f"samples={result.sample_count}/{result.requested_trials}, failures: {failures} [{marker}]"
    )
    if result.aborted:
        line += f"\n  aborted after {result.attempted_trials} trial(s): {result.abort_reason}"
    return line


def render_report(report: "BenchReport") -> str:
    lines: List[str] = [
        f"platform: {platform.system().lower()}, arch: {platform.machine().lower()}",
    ]
    if report.interrupted:
        lines.append("run interrupted; results below are partial")
    lines.extend(format_result(result) for result in report.results)
    return "\n".join(lines) + "\n"
