"""
Agent Configuration
===================

Resolved once at startup into an immutable AgentConfig.

Precedence, highest first:
  1. Command-line flags (--api-url, --api-key, --runner, --poll, --name)
  2. Environment (ZETTO_HOST, ZETTO_API_KEY, ZETTO_RUNNER,
     ZETTO_POLLING_INTERVAL, ZETTO_RUNNER_NAME)
  3. JSON file at ~/.zetto/runner.json (or --config PATH)
"""

from __future__ import annotations
import json
import logging
import shlex
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from .errors import ConfigError

log = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".zetto" / "runner.json"
DEFAULT_POLL_INTERVAL = 10

# setting → (environment variable, config file key)
_SOURCES = {
    "api_url":       ("ZETTO_HOST",             "api_url"),
    "api_key":       ("ZETTO_API_KEY",          "api_key"),
    "runner":        ("ZETTO_RUNNER",           "runner"),
    "poll_interval": ("ZETTO_POLLING_INTERVAL", "poll_interval"),
    "runner_name":   ("ZETTO_RUNNER_NAME",      "runner_name"),
}


@dataclass(frozen=True)
class AgentConfig:
    api_url:       str
    api_key:       str
    runner:        tuple[str, ...]   # argv prefix; job command and input are appended
    poll_interval: int = DEFAULT_POLL_INTERVAL
    runner_name:   str = ""


def load_config(path: Path) -> dict:
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Could not read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")
        return data
    return {}


def parse_poll_interval(value: Any) -> int:
    """Unset, unparsable or negative intervals fall back to the default."""
    try:
        interval = int(value)
    except (TypeError, ValueError):
        log.warning(f"Could not parse polling interval {value!r}, defaulting to {DEFAULT_POLL_INTERVAL} seconds")
        return DEFAULT_POLL_INTERVAL
    if interval < 0:
        log.warning(f"Negative polling interval {interval}, defaulting to {DEFAULT_POLL_INTERVAL} seconds")
        return DEFAULT_POLL_INTERVAL
    return interval


def _pick(name: str, cli: Mapping[str, Any], environ: Mapping[str, str], file_cfg: Mapping[str, Any]):
    env_var, file_key = _SOURCES[name]
    for value in (cli.get(name), environ.get(env_var), file_cfg.get(file_key)):
        if value not in (None, ""):
            return value
    return None


def resolve_config(
    cli:         Optional[Mapping[str, Any]] = None,
    environ:     Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
) -> AgentConfig:
    """
    Merge flags, environment and config file into an AgentConfig.
    Raises ConfigError if the control-plane address, API key or runnable
    command is missing.
    """
    cli      = cli or {}
    environ  = environ if environ is not None else {}
    file_cfg = load_config(config_path or CONFIG_PATH)

    api_url = _pick("api_url", cli, environ, file_cfg)
    if not api_url:
        raise ConfigError("Missing ZETTO_HOST environment")

    api_key = _pick("api_key", cli, environ, file_cfg)
    if not api_key:
        raise ConfigError("Missing ZETTO_API_KEY environment")

    runner = _pick("runner", cli, environ, file_cfg)
    if not runner:
        raise ConfigError("Missing ZETTO_RUNNER environment")
    # The config file may already hold an argv list
    argv = tuple(str(a) for a in runner) if isinstance(runner, list) else tuple(shlex.split(runner))
    if not argv:
        raise ConfigError("ZETTO_RUNNER is empty")

    raw_interval = _pick("poll_interval", cli, environ, file_cfg)
    if raw_interval is None:
        log.info(f"No polling interval set, defaulting to {DEFAULT_POLL_INTERVAL} seconds")
        poll_interval = DEFAULT_POLL_INTERVAL
    else:
        poll_interval = parse_poll_interval(raw_interval)

    runner_name = _pick("runner_name", cli, environ, file_cfg) or socket.gethostname()

    return AgentConfig(
        api_url       = str(api_url),
        api_key       = str(api_key),
        runner        = argv,
        poll_interval = poll_interval,
        runner_name   = str(runner_name),
    )
