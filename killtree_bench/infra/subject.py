from __future__ import annotations

import enum
import logging
import queue
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from ..domain.value_objects import ReadinessMode
from ..ports.runner import SubjectLaunchError, TrialTimeoutError
from ..subject import ready_line

LOG = logging.getLogger("killtree_bench.subject")

_READER_JOIN_TIMEOUT = 1.0
_KILL_WAIT_TIMEOUT = 5.0


def default_subject_command() -> List[str]:
    return [sys.executable, str(Path(__file__).resolve().parent.parent / "subject.py")]


class SubjectState(str, enum.Enum):
    SPAWNING = "spawning"
    READY = "ready"
    TERMINATED = "terminated"
    FAILED = "failed"


@dataclass
class SubjectHandle:
    process: subprocess.Popen
    port: int
    state: SubjectState = SubjectState.SPAWNING
    lines: "queue.Queue[Optional[str]]" = field(default_factory=queue.Queue)
    reader: Optional[threading.Thread] = None

    @property
    def pid(self) -> int:
        return self.process.pid


def _forward_output(process: subprocess.Popen, lines: "queue.Queue[Optional[str]]") -> None:
    try:
        if process.stdout is None:
            raise ValueError(f"subject {process.pid} was started without a stdout pipe")
        for line in process.stdout:
            sys.stdout.write(line)
            sys.stdout.flush()
            lines.put(line.rstrip("\r\n"))
    finally:
        lines.put(None)


def start_subject(command: Sequence[str], port: int, readiness: ReadinessMode) -> SubjectHandle:
    argv = [*command, str(port)]
    capture = readiness is ReadinessMode.LISTENING
    try:
        process = subprocess.Popen(
            argv,
            stdout=subprocess.PIPE if capture else None,
            text=True,
            bufsize=1 if capture else -1,
        )
    except OSError as exc:
        raise SubjectLaunchError(f"failed to spawn subject {argv[0]}: {exc}") from exc
    handle = SubjectHandle(process=process, port=port)
    if capture:
        handle.reader = threading.Thread(
            target=_forward_output,
            args=(process, handle.lines),
            name=f"subject-{process.pid}-stdout",
            daemon=True,
        )
        handle.reader.start()
    LOG.info("Spawned server %s on port %s", process.pid, port)
    return handle


def wait_for_subject(handle: SubjectHandle, readiness: ReadinessMode, timeout: float) -> None:
    """Blocks until the subject is ready; marks it failed and raises otherwise."""

    if readiness is ReadinessMode.SPAWN:
        returncode = handle.process.poll()
        if returncode is not None:
            handle.state = SubjectState.FAILED
            raise SubjectLaunchError(
                f"subject {handle.pid} exited with code {returncode} before readiness"
            )
        handle.state = SubjectState.READY
        return

    expected = ready_line(handle.port)
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            handle.state = SubjectState.FAILED
            raise TrialTimeoutError(
                f"subject {handle.pid} not ready on port {handle.port} after {timeout:.3f}s"
            )
        try:
            line = handle.lines.get(timeout=remaining)
        except queue.Empty:
            continue
        if line is None:
            handle.state = SubjectState.FAILED
            try:
                returncode = handle.process.wait(timeout=max(deadline - time.monotonic(), 0.1))
            except subprocess.TimeoutExpired:
                returncode = None
            raise SubjectLaunchError(
                f"subject {handle.pid} closed stdout before readiness (exit code {returncode})"
            )
        if line.strip() == expected:
            handle.state = SubjectState.READY
            return


def stop_subject(handle: SubjectHandle, grace: float) -> bool:
    """Reaps the subject, force-killing it after ``grace`` seconds.

    Returns True when the subject was still alive and had to be killed here.
    """

    survived = False
    process = handle.process
    try:
        if process.poll() is None:
            try:
                process.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                survived = True
                LOG.warning("Subject %s still alive after %.3fs, killing it", process.pid, grace)
                process.kill()
                try:
                    process.wait(timeout=_KILL_WAIT_TIMEOUT)
                except subprocess.TimeoutExpired:
                    LOG.error("Subject %s did not exit after SIGKILL, leaving it behind", process.pid)
    finally:
        if handle.reader is not None:
            handle.reader.join(timeout=_READER_JOIN_TIMEOUT)
        reader_done = handle.reader is None or not handle.reader.is_alive()
        if process.stdout is not None and reader_done:
            process.stdout.close()
        if handle.state is not SubjectState.FAILED:
            handle.state = SubjectState.TERMINATED
    return survived
