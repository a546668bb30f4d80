"""
Zetto Runner Agent: Main Daemon
===============================

The entry point for the runner-side daemon.

Startup sequence:
  1. Load config (control-plane URL, API key, runnable command, poll interval)
  2. Ask the runnable command for its command list (`$RUNNER list {}`)
  3. Poll the control plane for a job, advertising that list
  4. Run the job under its time bound, one at a time
  5. Notify the result, then poll again straight away
  6. If there is no job, sleep for the poll interval

Failure policy:
  Any transport error, a failed command list, or a process that cannot be
  started or killed → log and exit 1. There is no retry loop; the process
  manager running the agent decides whether to restart it.

Safe shutdown:
  SIGTERM / SIGINT → finish the current job and its notify → exit 0
"""

from __future__ import annotations
import argparse
import logging
import os
import signal
import sys
import time
from pathlib import Path
from typing import Optional

from .capabilities import discover_commands
from .config import AgentConfig, resolve_config
from .control_plane import ControlPlaneClient
from .errors import AgentError
from .job_runner import JobRunner

# ─── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level  = logging.INFO,
    format = "[%(asctime)s] %(levelname)s %(name)s — %(message)s",
    datefmt= "%Y-%m-%dT%H:%M:%S",
)
log = logging.getLogger("zetto.agent")

# ─── Runner Agent ─────────────────────────────────────────────────────────────

class RunnerAgent:
    def __init__(
        self,
        client:        ControlPlaneClient,
        runner:        JobRunner,
        poll_interval: int = 10,
    ):
        self.client        = client
        self.runner        = runner
        self.poll_interval = poll_interval

        self._running      = True
        self.commands: Optional[list[str]] = None

    @classmethod
    def from_config(cls, cfg: AgentConfig) -> "RunnerAgent":
        return cls(
            client        = ControlPlaneClient(cfg.api_url, cfg.api_key, cfg.runner_name),
            runner        = JobRunner(cfg.runner),
            poll_interval = cfg.poll_interval,
        )

    # ─── Main Loop ────────────────────────────────────────────────────────────

    def run(self):
        """
        Bootstrap, then poll → execute → notify until stopped.
        Fatal conditions propagate as AgentError.
        """
        log.info("Started")
        self.commands = discover_commands(self.runner)

        log.info(f"Agent ready. Polling every {self.poll_interval}s when idle… (Ctrl+C to stop)")
        while self._running:
            self.run_once()

        log.info("Agent stopped cleanly.")

    def run_once(self) -> bool:
        """
        One loop iteration. Returns True if a job was executed and notified,
        False if the agent idled.
        """
        job = self.client.poll(self.commands or [])

        if job is None:
            log.info(f"[agent] No job found, waiting {self.poll_interval}s")
            time.sleep(self.poll_interval)
            return False

        outcome = self.runner.run(job)
        if outcome.timed_out:
            log.warning(f"[agent] Job {job.id} was killed after its time bound")

        self.client.notify(job, outcome)
        log.info(f"[agent] Job {job.id} reported (success={outcome.succeeded})")
        return True

    def stop(self):
        """Stop before the next poll. An in-flight job still runs and is reported."""
        self._running = False


# ─── Entry Point ──────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Zetto Runner Agent")
    parser.add_argument("--api-url",   dest="api_url",
                        help="Control-plane base URL (env: ZETTO_HOST)")
    parser.add_argument("--api-key",   dest="api_key",
                        help="Control-plane API key (env: ZETTO_API_KEY)")
    parser.add_argument("--runner",
                        help="Runnable command, e.g. 'python3 jobs.py' (env: ZETTO_RUNNER)")
    parser.add_argument("--poll",      dest="poll_interval",
                        help="Idle poll interval in seconds (env: ZETTO_POLLING_INTERVAL, default: 10)")
    parser.add_argument("--name",      dest="runner_name",
                        help="Runner name sent to the control plane (default: host name)")
    parser.add_argument("--config",    type=Path, default=None,
                        help="JSON config file (default: ~/.zetto/runner.json)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    try:
        cfg   = resolve_config(vars(args), os.environ, args.config)
        agent = RunnerAgent.from_config(cfg)

        signal.signal(signal.SIGTERM, lambda s, f: agent.stop())
        signal.signal(signal.SIGINT,  lambda s, f: agent.stop())

        log.info(f"Control plane: {cfg.api_url}")
        log.info(f"Runner:        {' '.join(cfg.runner)} (as {cfg.runner_name})")
        agent.run()
    except AgentError as e:
        log.critical(f"Fatal: {e}")
        sys.exit(1)
    return 0


if __name__ == "__main__":
    sys.exit(main())
