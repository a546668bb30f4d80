from __future__ import annotations

from typing import Any

import pytest
import requests

from zetto_agent import control_plane
from zetto_agent.control_plane import FAILED_OUTPUT, ControlPlaneClient, NotificationPayload
from zetto_agent.errors import ControlPlaneError
from zetto_agent.job_runner import JobSpec, RunOutcome

_NO_JSON = object()


class _FakeResponse:
    def __init__(self, status_code: int, body: Any = _NO_JSON, text: str = "") -> None:
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self) -> Any:
        if self._body is _NO_JSON:
            raise ValueError("No JSON object could be decoded")
        return self._body


class _Recorder:
    def __init__(self, response: _FakeResponse | Exception) -> None:
        self.response = response
        self.calls: list[dict[str, Any]] = []

    def __call__(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _client() -> ControlPlaneClient:
    return ControlPlaneClient("https://zetto.example/api/", "secret", "worker-1")


def _patch_post(monkeypatch: pytest.MonkeyPatch, response: _FakeResponse | Exception) -> _Recorder:
    recorder = _Recorder(response)
    monkeypatch.setattr(control_plane.requests, "post", recorder)
    return recorder


def test_poll_returns_job_and_sends_capabilities(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _patch_post(
        monkeypatch,
        _FakeResponse(200, {"id": "r1", "command": "echo", "input": "hi", "timeout": 5}),
    )

    job = _client().poll(["echo", "sleep"])

    assert job == JobSpec("r1", "echo", "hi", 5)
    call = recorder.calls[0]
    assert call["url"] == "https://zetto.example/api/pop"
    assert call["json"] == {"commands": ["echo", "sleep"]}
    assert call["timeout"] == 10
    assert call["headers"] == {
        "Authorization": "ApiKey secret",
        "X-Runner-Name": "worker-1",
        "Content-Type": "application/json",
    }


def test_poll_not_found_means_no_job(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_post(monkeypatch, _FakeResponse(404, text="no job"))

    assert _client().poll(["echo"]) is None


@pytest.mark.parametrize("status", [301, 401, 500, 503])
def test_poll_other_status_is_an_error(monkeypatch: pytest.MonkeyPatch, status: int) -> None:
    _patch_post(monkeypatch, _FakeResponse(status, text="nope"))

    with pytest.raises(ControlPlaneError) as excinfo:
        _client().poll(["echo"])
    assert excinfo.value.status_code == status


def test_poll_transport_failure_is_an_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_post(monkeypatch, requests.ConnectionError("connection refused"))

    with pytest.raises(ControlPlaneError, match="connection refused"):
        _client().poll(["echo"])


def test_poll_timeout_is_an_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_post(monkeypatch, requests.Timeout("read timed out"))

    with pytest.raises(ControlPlaneError):
        _client().poll(["echo"])


def test_poll_rejects_non_json_body(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_post(monkeypatch, _FakeResponse(200, text="<html>"))

    with pytest.raises(ControlPlaneError, match="not JSON"):
        _client().poll(["echo"])


def test_poll_rejects_non_object_body(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_post(monkeypatch, _FakeResponse(200, ["r1"], text='["r1"]'))

    with pytest.raises(ControlPlaneError, match="not a job object"):
        _client().poll(["echo"])


def test_notify_sends_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _patch_post(monkeypatch, _FakeResponse(204))
    job = JobSpec("r1", "echo", "hi", 5)
    outcome = RunOutcome(succeeded=True, output="hi", diagnostics="", exit_code=0)

    _client().notify(job, outcome)

    call = recorder.calls[0]
    assert call["url"] == "https://zetto.example/api/notify"
    assert call["json"] == {"run_id": "r1", "success": True, "output": "hi", "logs": ""}
    assert call["headers"]["Authorization"] == "ApiKey secret"


def test_notify_error_status(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_post(monkeypatch, _FakeResponse(500, text="oops"))
    outcome = RunOutcome(succeeded=False, output=None, diagnostics="boom", exit_code=1)

    with pytest.raises(ControlPlaneError) as excinfo:
        _client().notify(JobSpec("r1", "fail", "", 0), outcome)
    assert excinfo.value.status_code == 500


def test_notification_payload_from_failed_run() -> None:
    outcome = RunOutcome(succeeded=False, output=None, diagnostics="killed", exit_code=-9, timed_out=True)

    payload = NotificationPayload.from_run(JobSpec("r2", "sleep", "10", 1), outcome)

    # The wire format does not carry the timeout flag
    assert payload.to_dict() == {"run_id": "r2", "success": False, "output": "null", "logs": "killed"}


def test_failed_run_is_reported_with_string_sentinel(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _patch_post(monkeypatch, _FakeResponse(200))
    outcome = RunOutcome(succeeded=False, output=None, diagnostics="boom\n", exit_code=3)

    _client().notify(JobSpec("r3", "fail", "3", 5), outcome)

    sent = recorder.calls[0]["json"]
    assert sent["output"] == FAILED_OUTPUT == "null"
    assert isinstance(sent["output"], str)
    assert sent["logs"] == "boom\n"
