"""
Job Runner
==========

Executes one Zetto job as a child process of the configured runnable command:

    $RUNNER <command> <input>

Guarantees:
  - stdout and stderr are captured into two separate buffers, never merged
  - every job is bounded in time (job timeout, or 15s when the job says 0)
  - the child runs in its own process group; on timeout the whole group is
    killed and the runner still waits for the child to be reaped
  - only exit code 0 within the time bound counts as success; the partial
    stdout of a failed run is never reported

Watchdog:
  - A watcher thread drains the pipes and posts the exit code on a queue
  - The caller waits on that queue with the job deadline
  - After a kill the queue is waited on again, for at most KILL_GRACE_SECONDS
"""

from __future__ import annotations
import json
import logging
import os
import queue
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

import psutil  # type: ignore

from .errors import ControlPlaneError, SupervisorError

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15
KILL_GRACE_SECONDS      = 5

# ─── Job Spec ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class JobSpec:
    """
    Received from the control plane on /pop.
    Consumed exactly once by JobRunner.run().
    """
    id:      str
    command: str           # Operation name understood by the runnable command
    input:   str           # Opaque payload, passed through as one argument
    timeout: int = 0       # Seconds; 0 means DEFAULT_TIMEOUT_SECONDS

    @classmethod
    def from_payload(cls, raw: dict) -> "JobSpec":
        job_id  = raw.get("id")
        command = raw.get("command")
        if not isinstance(job_id, str) or not isinstance(command, str):
            raise ControlPlaneError(f"Job payload is missing id/command: {str(raw)[:200]}")

        job_input = raw.get("input", "")
        if job_input is None:
            job_input = ""
        elif not isinstance(job_input, str):
            # Structured input is handed to the command as compact JSON
            job_input = json.dumps(job_input, separators=(",", ":"))

        try:
            timeout = int(raw.get("timeout") or 0)
        except (TypeError, ValueError) as e:
            raise ControlPlaneError(f"Job {job_id} has an invalid timeout: {raw.get('timeout')!r}") from e

        return cls(id=job_id, command=command, input=job_input, timeout=timeout)


# ─── Run Outcome ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RunOutcome:
    succeeded:   bool
    output:      Optional[str]   # None unless succeeded
    diagnostics: str             # Full stderr, always
    exit_code:   int
    timed_out:   bool = False


def resolve_timeout(timeout: int, default: int = DEFAULT_TIMEOUT_SECONDS) -> int:
    """A zero (or negative) timeout means the default bound, never 'no bound'."""
    return timeout if timeout > 0 else default


# ─── Job Runner ───────────────────────────────────────────────────────────────

class JobRunner:
    def __init__(self, command: Sequence[str], default_timeout: int = DEFAULT_TIMEOUT_SECONDS):
        if not command:
            raise ValueError("JobRunner needs a non-empty runnable command")
        self.command         = list(command)
        self.default_timeout = default_timeout

    def run(self, job: JobSpec) -> RunOutcome:
        """Run one job end-to-end and map its exit code to an outcome."""
        argv    = [*self.command, job.command, job.input]
        timeout = resolve_timeout(job.timeout, self.default_timeout)

        log.info(f"[runner] Starting job {job.id} ({job.command}, timeout {timeout}s)")
        outcome = self.execute(argv, timeout)
        status  = "SUCCEEDED" if outcome.succeeded else "FAILED"
        log.info(f"[runner] Job {job.id} → {status} (exit {outcome.exit_code})")
        return outcome

    def execute(self, argv: Sequence[str], timeout: int) -> RunOutcome:
        """
        Launch argv, race it against the deadline, and build the outcome.
        Raises SupervisorError if the process cannot be started, waited on,
        or killed.
        """
        log.debug(f"[runner] cmd: {' '.join(argv)}")
        try:
            proc = subprocess.Popen(
                list(argv),
                stdin             = subprocess.DEVNULL,
                stdout            = subprocess.PIPE,
                stderr            = subprocess.PIPE,
                start_new_session = True,   # own process group, killed as a unit
            )
        except OSError as e:
            raise SupervisorError(f"Could not start {argv[0]}: {e}") from e

        done: queue.Queue = queue.Queue(maxsize=1)
        streams: dict[str, bytes] = {}

        watcher = threading.Thread(
            target = self._watch,
            args   = (proc, done, streams),
            daemon = True,
            name   = f"watcher-{proc.pid}",
        )
        watcher.start()

        timed_out = False
        try:
            result = done.get(timeout=timeout)
        except queue.Empty:
            timed_out = True
            log.warning(f"[runner] Execution timeout after {timeout}s, killing process {proc.pid}")
            self._kill_tree(proc)
            result = self._drain(proc, done)

        if isinstance(result, BaseException):
            raise SupervisorError(f"Could not wait on process {proc.pid}: {result}") from result

        exit_code   = result
        diagnostics = streams.get("stderr", b"").decode("utf-8", errors="replace")

        if exit_code != 0 or timed_out:
            log.info(f"[runner] Exit code {exit_code}{' (killed)' if timed_out else ''}")
            return RunOutcome(
                succeeded   = False,
                output      = None,
                diagnostics = diagnostics,
                exit_code   = exit_code,
                timed_out   = timed_out,
            )

        return RunOutcome(
            succeeded   = True,
            output      = streams.get("stdout", b"").decode("utf-8", errors="replace"),
            diagnostics = diagnostics,
            exit_code   = 0,
        )

    @staticmethod
    def _watch(proc: subprocess.Popen, done: queue.Queue, streams: dict):
        """Background thread: drain both pipes, then post the exit code (or the error)."""
        try:
            stdout, stderr = proc.communicate()
        except Exception as e:
            done.put(e)
            return
        streams["stdout"] = stdout or b""
        streams["stderr"] = stderr or b""
        done.put(proc.returncode)

    @staticmethod
    def _drain(proc: subprocess.Popen, done: queue.Queue):
        """
        After a kill, wait for the watcher to report.
        A descendant that left our process group can keep the pipes open after
        the child is dead; in that case give up on the streams once the child
        itself has been reaped.
        """
        try:
            return done.get(timeout=KILL_GRACE_SECONDS)
        except queue.Empty:
            pass

        log.warning(
            f"[runner] Pipes of process {proc.pid} still held open {KILL_GRACE_SECONDS}s after kill, "
            f"a descendant escaped the process group; discarding its output"
        )
        try:
            return proc.wait(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired as e:
            raise SupervisorError(f"Process {proc.pid} still running after SIGKILL") from e

    def _kill_tree(self, proc: subprocess.Popen):
        """
        SIGKILL the child's process group, the child itself, and any descendant
        psutil can still see that moved to another group.
        """
        try:
            children = psutil.Process(proc.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            children = []

        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass  # whole group already gone
        except OSError as e:
            raise SupervisorError(f"Failed to kill process group {proc.pid}: {e}") from e

        try:
            proc.kill()
        except OSError as e:
            raise SupervisorError(f"Failed to kill process {proc.pid}: {e}") from e

        for child in children:
            try:
                child.kill()
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied as e:
                raise SupervisorError(f"Failed to kill descendant {child.pid}: {e}") from e
        log.info(f"[runner] Process group {proc.pid} killed ({len(children)} descendant(s) tracked)")
