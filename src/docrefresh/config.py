"""Update worker configuration.

Settings are resolved in three layers, later layers winning:

1. a YAML or JSON config file (flat mapping of setting names)::

       # docrefresh.yaml
       topics_dir: ./Languages
       max_parallel_agent_runs: 2
       github_repo_owner: octo-org
       github_repo_name: best-practices

2. environment variables (``DOCREFRESH_*``, ``OPENAI_*``,
   ``AZURE_OPENAI_*``, ``GITHUB_*``; see ``ENV_VARS``)
3. explicit overrides, e.g. CLI options
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .agents.tools.github_gateway import DEFAULT_ENDPOINT, DEFAULT_TOOLSETS
from .core.discovery import DEFAULT_PATTERN
from .core.models import FailurePolicy

log = logging.getLogger("docrefresh.config")

DEFAULT_STATE_DIR = Path.home() / ".docrefresh" / "runs"
MAX_CHARS_PER_TOKEN = 12


@dataclass
class UpdateWorkerSettings:
    """Everything the update worker needs to run."""

    enabled: bool = True

    # Discovery
    topics_dir: Path = field(default_factory=lambda: Path("Languages"))
    file_pattern: str = DEFAULT_PATTERN
    path_anchor: str = "Languages"

    # Engine
    max_parallel_agent_runs: int = 2
    estimated_chars_per_token: int = 4
    failure_policy: FailurePolicy = FailurePolicy.RECORD
    state_dir: Path = field(default_factory=lambda: DEFAULT_STATE_DIR)

    # Reasoning service
    model: str = "gpt-4o"
    openai_api_key: str = ""
    openai_base_url: str = ""
    azure_openai_endpoint: str = ""
    azure_openai_key: str = ""
    azure_openai_api_version: str = "2024-10-21"

    # Publishing
    github_token: str = ""
    github_repo_owner: str = ""
    github_repo_name: str = ""
    default_branch: str = "main"
    github_mcp_endpoint: str = DEFAULT_ENDPOINT
    github_mcp_toolsets: str = DEFAULT_TOOLSETS

    # Schedule (UTC)
    schedule_weekday: int = 0
    schedule_hour: int = 2
    schedule_minute: int = 0

    http_timeout: float = 30.0

    def clamped(self) -> UpdateWorkerSettings:
        """Return a copy with engine settings forced into their valid ranges."""
        return replace(
            self,
            max_parallel_agent_runs=max(1, self.max_parallel_agent_runs),
            estimated_chars_per_token=min(
                max(1, self.estimated_chars_per_token), MAX_CHARS_PER_TOKEN,
            ),
        )

    def publishing_issues(self) -> list[str]:
        """Names of the missing settings that publishing requires."""
        missing = []
        if not self.github_token:
            missing.append("GITHUB_TOKEN")
        if not self.github_repo_owner:
            missing.append("GITHUB_REPO_OWNER")
        if not self.github_repo_name:
            missing.append("GITHUB_REPO_NAME")
        return missing

    def reasoning_issues(self) -> list[str]:
        """Names of the missing settings that the reasoning service requires."""
        if self.azure_openai_endpoint:
            return [] if self.azure_openai_key else ["AZURE_OPENAI_KEY"]
        return [] if self.openai_api_key else ["OPENAI_API_KEY or AZURE_OPENAI_ENDPOINT"]


# ---------------------------------------------------------------------------
# Environment mapping
# ---------------------------------------------------------------------------

ENV_VARS: dict[str, str] = {
    "AZURE_OPENAI_DEPLOYMENT": "model",   # DOCREFRESH_MODEL wins when both are set
    "DOCREFRESH_ENABLED": "enabled",
    "DOCREFRESH_TOPICS_DIR": "topics_dir",
    "DOCREFRESH_FILE_PATTERN": "file_pattern",
    "DOCREFRESH_PATH_ANCHOR": "path_anchor",
    "DOCREFRESH_MAX_PARALLEL_AGENT_RUNS": "max_parallel_agent_runs",
    "DOCREFRESH_ESTIMATED_CHARS_PER_TOKEN": "estimated_chars_per_token",
    "DOCREFRESH_FAILURE_POLICY": "failure_policy",
    "DOCREFRESH_STATE_DIR": "state_dir",
    "DOCREFRESH_MODEL": "model",
    "DOCREFRESH_SCHEDULE_WEEKDAY": "schedule_weekday",
    "DOCREFRESH_SCHEDULE_HOUR": "schedule_hour",
    "DOCREFRESH_SCHEDULE_MINUTE": "schedule_minute",
    "DOCREFRESH_HTTP_TIMEOUT": "http_timeout",
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_BASE_URL": "openai_base_url",
    "AZURE_OPENAI_ENDPOINT": "azure_openai_endpoint",
    "AZURE_OPENAI_KEY": "azure_openai_key",
    "AZURE_OPENAI_API_VERSION": "azure_openai_api_version",
    "GITHUB_TOKEN": "github_token",
    "GITHUB_REPO_OWNER": "github_repo_owner",
    "GITHUB_REPO_NAME": "github_repo_name",
    "GITHUB_DEFAULT_BRANCH": "default_branch",
    "GITHUB_MCP_ENDPOINT": "github_mcp_endpoint",
    "GITHUB_MCP_TOOLSETS": "github_mcp_toolsets",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw file/env value to the type of setting *name*."""
    default = getattr(UpdateWorkerSettings(), name)
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"Invalid boolean for {name}: {value!r}")
    if isinstance(default, FailurePolicy):
        return FailurePolicy(str(value).strip().lower())
    if isinstance(default, Path):
        return Path(str(value)).expanduser()
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return str(value)


def _read_config_file(config_path: str | Path) -> dict[str, Any]:
    path = Path(config_path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(raw)
    else:
        data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_settings(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> UpdateWorkerSettings:
    """Resolve settings from file, environment and overrides.

    Parameters
    ----------
    config_path
        Optional YAML or JSON file.
    environ
        Environment to read; defaults to ``os.environ``.
    overrides
        Setting values that win over everything else; ``None`` is ignored.
    """
    known = {f.name for f in fields(UpdateWorkerSettings)}
    values: dict[str, Any] = {}

    if config_path:
        for key, raw in _read_config_file(config_path).items():
            if key not in known:
                log.warning("Ignoring unknown setting %r in %s", key, config_path)
                continue
            values[key] = _coerce(key, raw)

    env = os.environ if environ is None else environ
    for var, name in ENV_VARS.items():
        raw = env.get(var)
        if raw:
            values[name] = _coerce(name, raw)

    for name, raw in overrides.items():
        if name not in known:
            raise TypeError(f"Unknown setting: {name}")
        if raw is not None:
            values[name] = _coerce(name, raw)

    return UpdateWorkerSettings(**values).clamped()
