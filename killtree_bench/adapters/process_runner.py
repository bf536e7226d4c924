from __future__ import annotations

import logging
import subprocess
import time
from datetime import datetime, timezone
from typing import Optional, Sequence

from ..domain.trial import Trial, TrialSample
from ..domain.value_objects import ReadinessMode
from ..infra.subject import default_subject_command, start_subject, stop_subject, wait_for_subject
from ..ports.runner import KillerLaunchError, TrialRunnerPort, TrialTimeoutError

LOG = logging.getLogger("killtree_bench.runner")


class ProcessTrialRunner(TrialRunnerPort):
    """Spawns a subject server, kills it with the strategy's executable and times the killer."""

    DEFAULT_TIMEOUT_MS = 5000
    DEFAULT_REAP_GRACE_MS = 1000

    def __init__(
        self,
        subject_command: Optional[Sequence[str]] = None,
        *,
        readiness: ReadinessMode = ReadinessMode.LISTENING,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        reap_grace_ms: int = DEFAULT_REAP_GRACE_MS,
    ) -> None:
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if reap_grace_ms < 0:
            raise ValueError("reap_grace_ms cannot be negative")
        self.subject_command = list(subject_command or default_subject_command())
        self.readiness = ReadinessMode(readiness)
        self.timeout_ms = timeout_ms
        self.reap_grace_ms = reap_grace_ms

    def run(self, trial: Trial) -> TrialSample:
        timeout = self.timeout_ms / 1000.0
        handle = start_subject(self.subject_command, trial.port, self.readiness)
        killer: Optional[subprocess.Popen] = None
        finished = False
        survived = False
        try:
            wait_for_subject(handle, self.readiness, timeout)
            command = trial.strategy.command(handle.pid)
            trial.started_at = datetime.now(timezone.utc).isoformat()
            start = time.perf_counter()
            try:
                killer = subprocess.Popen(command)
            except OSError as exc:
                raise KillerLaunchError(
                    f"failed to spawn killer {command[0]} for strategy {trial.strategy.name}: {exc}"
                ) from exc
            try:
                exit_code = killer.wait(timeout=timeout)
            except subprocess.TimeoutExpired as exc:
                raise TrialTimeoutError(
                    f"killer {killer.pid} did not exit within {self.timeout_ms}ms"
                ) from exc
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            if elapsed_ms > self.timeout_ms:
                raise TrialTimeoutError(
                    f"killer {killer.pid} took {elapsed_ms:.3f}ms, over the {self.timeout_ms}ms limit"
                )
            trial.elapsed_ms = elapsed_ms
            finished = True
        finally:
            if killer is not None and killer.poll() is None:
                killer.kill()
                killer.wait()
            grace = self.reap_grace_ms / 1000.0 if finished else 0.0
            survived = stop_subject(handle, grace)

        LOG.info("Killed server %s in %.3fms", handle.pid, elapsed_ms)
        if exit_code != 0:
            LOG.info("Killer for strategy %s exited with code %s", trial.strategy.name, exit_code)
        return TrialSample(
            index=trial.index,
            port=trial.port,
            subject_pid=handle.pid,
            elapsed_ms=elapsed_ms,
            killer_exit_code=exit_code,
            subject_survived=survived,
        )
