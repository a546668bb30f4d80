"""
Agent Errors
============

Everything in here is fatal: the agent logs it and exits non-zero so the
process manager can restart it. Job failures are never raised, they are
reported to the control plane as data.
"""

from __future__ import annotations
from typing import Optional


class AgentError(RuntimeError):
    """Base class for unrecoverable agent conditions."""


class ConfigError(AgentError):
    """A required setting is missing or unusable."""


class SupervisorError(AgentError):
    """The runnable command could not be started, waited on, or killed."""


class CapabilityDiscoveryError(AgentError):
    """The reserved `list` job failed or returned garbage."""


class ControlPlaneError(AgentError):
    """Transport or protocol failure while talking to the control plane."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
