from __future__ import annotations

from abc import ABC, abstractmethod

from ..domain.trial import Trial, TrialSample
from ..domain.value_objects import FailureKind


class TrialExecutionError(RuntimeError):
    """Raised when a single trial cannot produce a sample."""

    kind: FailureKind = FailureKind.SUBJECT_LAUNCH


class SubjectLaunchError(TrialExecutionError):
    """Subject process missing, exited early or never became ready."""

    kind = FailureKind.SUBJECT_LAUNCH


class KillerLaunchError(TrialExecutionError):
    """Killer executable could not be spawned; every later trial would fail too."""

    kind = FailureKind.KILLER_LAUNCH


class TrialTimeoutError(TrialExecutionError):
    """Readiness or killer exit was not observed within the timeout."""

    kind = FailureKind.TIMEOUT


class TrialRunnerPort(ABC):
    """Port for executing one kill-latency trial."""

    @abstractmethod
    def run(self, trial: Trial) -> TrialSample:
        """Runs the trial end to end and returns its sample or raises TrialExecutionError."""
