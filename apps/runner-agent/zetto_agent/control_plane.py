"""
Control-Plane Client
====================

The two HTTP calls the agent makes:

  POST {api_url}/pop     → next job for this runner (404 = nothing to do)
  POST {api_url}/notify  → result of a finished job

Both are authenticated with the API key and identify the runner by name.
Any transport error or unexpected status raises ControlPlaneError; the
agent does not retry, it exits and lets its process manager restart it.
"""

from __future__ import annotations
import json
import logging
from dataclasses import dataclass, asdict
from typing import Optional

import requests

from .errors import ControlPlaneError
from .job_runner import JobSpec, RunOutcome

log = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10

# Reported as the output of a failed run; control planes expect a string here
FAILED_OUTPUT = "null"

# ─── Notification ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NotificationPayload:
    run_id:  str
    success: bool
    output:  str
    logs:    str

    @classmethod
    def from_run(cls, job: JobSpec, outcome: RunOutcome) -> "NotificationPayload":
        return cls(
            run_id  = job.id,
            success = outcome.succeeded,
            output  = outcome.output if outcome.succeeded and outcome.output is not None else FAILED_OUTPUT,
            logs    = outcome.diagnostics,
        )

    def to_dict(self) -> dict:
        return asdict(self)


# ─── Client ───────────────────────────────────────────────────────────────────

class ControlPlaneClient:
    def __init__(
        self,
        api_url:     str,
        api_key:     str,
        runner_name: str,
        timeout:     int = REQUEST_TIMEOUT_SECONDS,
    ):
        self.api_url     = api_url.rstrip("/")
        self.api_key     = api_key
        self.runner_name = runner_name
        self.timeout     = timeout

    def _headers(self) -> dict:
        return {
            "Authorization": f"ApiKey {self.api_key}",
            "X-Runner-Name": self.runner_name,
            "Content-Type":  "application/json",
        }

    def _post(self, path: str, payload: dict) -> requests.Response:
        try:
            return requests.post(
                f"{self.api_url}/{path}",
                json    = payload,
                headers = self._headers(),
                timeout = self.timeout,
            )
        except requests.RequestException as e:
            raise ControlPlaneError(f"POST /{path} failed: {e}") from e

    def poll(self, commands: list[str]) -> Optional[JobSpec]:
        """
        Ask for the next job, advertising the commands this runner supports.
        Returns None when the control plane has nothing for us (404).
        """
        log.info(f"[control-plane] Polling from {self.runner_name}")
        resp = self._post("pop", {"commands": commands})

        if resp.status_code == 404:
            return None  # No job, normal
        if not 200 <= resp.status_code < 300:
            raise ControlPlaneError(
                f"Polling error {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            raw = resp.json()
        except ValueError as e:
            raise ControlPlaneError(f"Poll response is not JSON: {resp.text[:200]}") from e
        if not isinstance(raw, dict):
            raise ControlPlaneError(f"Poll response is not a job object: {resp.text[:200]}")

        job = JobSpec.from_payload(raw)
        log.info(f"[control-plane] Received job {job.id} ({job.command})")
        return job

    def notify(self, job: JobSpec, outcome: RunOutcome) -> None:
        """Report a finished run. Raises ControlPlaneError on any non-2xx status."""
        payload = NotificationPayload.from_run(job, outcome).to_dict()
        log.info(f"[control-plane] Sending payload {json.dumps(payload)[:500]}")

        resp = self._post("notify", payload)
        if not 200 <= resp.status_code < 300:
            raise ControlPlaneError(
                f"Notify error {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
