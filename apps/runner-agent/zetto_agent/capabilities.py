"""
Capability Discovery
====================

Asks the runnable command which operations it supports, by running the
reserved job:

    $RUNNER list {}

The command must print a JSON array of command names on stdout. The list is
fetched once at startup and advertised to the control plane on every poll.
"""

from __future__ import annotations
import json
import logging

from .errors import CapabilityDiscoveryError
from .job_runner import JobRunner, JobSpec

log = logging.getLogger(__name__)

LIST_JOB = JobSpec(id="list", command="list", input="{}")


def discover_commands(runner: JobRunner) -> list[str]:
    """
    Run the reserved list job and return the advertised command names.
    An agent that cannot enumerate its own commands must not serve jobs, so
    every failure here raises CapabilityDiscoveryError.
    """
    outcome = runner.run(LIST_JOB)
    if not outcome.succeeded:
        raise CapabilityDiscoveryError(
            f"Could not fetch commands list (exit {outcome.exit_code}): {outcome.diagnostics.strip()[:300]}"
        )

    try:
        commands = json.loads(outcome.output or "")
    except json.JSONDecodeError as e:
        raise CapabilityDiscoveryError(f"Commands list is not valid JSON: {e}") from e

    if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
        raise CapabilityDiscoveryError(
            f"Commands list must be a JSON array of strings, got: {(outcome.output or '').strip()[:200]}"
        )

    log.info(f"Runner advertises {len(commands)} command(s): {', '.join(commands)}")
    return commands
