"""
Zetto Runner Agent
==================

The daemon that runs next to a runnable command and serves Zetto jobs.

What it does:
  1. Ask the runnable command which commands it supports (`list`)
  2. Poll the control plane for a job, advertising those commands
  3. Run the job as `$RUNNER <command> <input>` under a hard time bound
  4. Report success, stdout and stderr back to the control plane
  5. Sleep for the poll interval when there is nothing to do

Execution model:
  - One job at a time; the next poll only happens after the result is sent
  - stdout is the job's result and is only reported on exit code 0
  - stderr is always reported as the job's logs
  - A job that outlives its timeout (default 15s) is killed with its
    whole process tree

Requirements:
  pip install requests psutil

Usage:
  ZETTO_HOST=https://zetto.example ZETTO_API_KEY=<key> ZETTO_RUNNER="python3 jobs.py" \
      python -m zetto_agent
"""

from .capabilities import discover_commands
from .config import AgentConfig, resolve_config
from .control_plane import ControlPlaneClient, NotificationPayload
from .errors import (
    AgentError,
    CapabilityDiscoveryError,
    ConfigError,
    ControlPlaneError,
    SupervisorError,
)
from .job_runner import JobRunner, JobSpec, RunOutcome

__all__ = [
    "AgentConfig",
    "AgentError",
    "CapabilityDiscoveryError",
    "ConfigError",
    "ControlPlaneClient",
    "ControlPlaneError",
    "JobRunner",
    "JobSpec",
    "NotificationPayload",
    "RunOutcome",
    "SupervisorError",
    "discover_commands",
    "resolve_config",
]
