from __future__ import annotations

import sys
from pathlib import Path

import pytest

from zetto_agent.control_plane import NotificationPayload

FAKE_RUNNER = Path(__file__).resolve().parent / "fake_runner.py"


@pytest.fixture
def runner_cmd() -> list[str]:
    return [sys.executable, str(FAKE_RUNNER)]


class Drained(Exception):
    """Raised by FakeControlPlane once its scripted poll results run out."""


class FakeControlPlane:
    """In-memory control plane: replays scripted poll results and records notifications."""

    def __init__(self, script: list, events: list | None = None, notify_error: Exception | None = None):
        self.script = list(script)
        self.events = events if events is not None else []
        self.notify_error = notify_error
        self.polls: list[list[str]] = []
        self.notified: list[NotificationPayload] = []
        self.on_notify = None

    def poll(self, commands):
        self.polls.append(list(commands))
        self.events.append("poll")
        if not self.script:
            raise Drained()
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def notify(self, job, outcome):
        self.events.append(("notify", job.id))
        if self.notify_error is not None:
            raise self.notify_error
        self.notified.append(NotificationPayload.from_run(job, outcome))
        if self.on_notify is not None:
            self.on_notify()
