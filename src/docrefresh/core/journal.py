"""Durable run journal — the replay log behind resumable runs.

Every run instance owns one JSON file under the state directory::

    <state_dir>/<instance_id>.json
    {
      "instance_id": "...",
      "status": "running" | "completed",
      "created_at": "...",
      "run_input": {...},
      "events": [{"kind": "evaluation", "key": "...", "payload": {...}}, ...]
    }

Events are appended as each step completes. When a run is resumed, recorded
events are handed back instead of re-executing the step, and the journal
reports ``is_replaying`` until every recorded event has been consumed so
callers can keep log output idempotent.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import RunInput

log = logging.getLogger("docrefresh.journal")

_SUFFIX = ".json"


def new_instance_id() -> str:
    """Return a fresh run instance id."""
    return uuid.uuid4().hex


class RunJournal:
    """Append-only step log for one run instance."""

    def __init__(
        self,
        path: Path | None,
        instance_id: str,
        run_input: RunInput,
        *,
        events: list[dict[str, Any]] | None = None,
        status: str = "running",
        created_at: str | None = None,
    ) -> None:
        self.path = path
        self.instance_id = instance_id
        self.run_input = run_input
        self.status = status
        self.created_at = created_at or datetime.now(timezone.utc).isoformat()
        self._events: list[dict[str, Any]] = list(events or [])
        self._recorded = {(e["kind"], e["key"]) for e in self._events}
        self._consumed: set[tuple[str, str]] = set()

    # -- Replay --------------------------------------------------------------

    @property
    def resumed(self) -> bool:
        """True when the journal already held events when it was opened."""
        return bool(self._recorded)

    @property
    def is_replaying(self) -> bool:
        """True while recorded steps remain that have not been replayed."""
        return not self._recorded <= self._consumed

    def lookup(self, kind: str, key: str) -> dict[str, Any] | None:
        """Return the latest recorded payload for ``(kind, key)``, if any.

        A step recorded more than once (a retried failure) resolves to its
        newest outcome.
        """
        for event in reversed(self._events):
            if event["kind"] == kind and event["key"] == key:
                if (kind, key) in self._recorded:
                    self._consumed.add((kind, key))
                return event["payload"]
        return None

    # -- Recording -----------------------------------------------------------

    def record(self, kind: str, key: str, payload: dict[str, Any]) -> None:
        """Append an event and persist the journal."""
        self._events.append({"kind": kind, "key": key, "payload": payload})
        self.save()

    def complete(self) -> None:
        self.status = "completed"
        self.save()

    @property
    def events(self) -> list[dict[str, Any]]:
        return list(self._events)

    # -- Persistence ---------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "status": self.status,
            "created_at": self.created_at,
            "run_input": self.run_input.model_dump(mode="json"),
            "events": self._events,
        }

    def save(self) -> None:
        """Write the journal atomically (temp file + replace).

        In-memory journals (no path) are never written.
        """
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp, self.path)


class JournalStore:
    """Creates, loads and lists run journals in a state directory."""

    def __init__(self, state_dir: Path | str) -> None:
        self.state_dir = Path(state_dir).expanduser()

    def path_for(self, instance_id: str) -> Path:
        return self.state_dir / f"{instance_id}{_SUFFIX}"

    def exists(self, instance_id: str) -> bool:
        return self.path_for(instance_id).exists()

    def open(self, instance_id: str, run_input: RunInput) -> RunJournal:
        """Open the journal for *instance_id*, creating it when new.

        An existing journal keeps its recorded run input; the supplied one is
        only used for new instances.
        """
        if self.exists(instance_id):
            return self.load(instance_id)
        journal = RunJournal(self.path_for(instance_id), instance_id, run_input)
        journal.save()
        log.debug("Created run journal %s", journal.path)
        return journal

    def load(self, instance_id: str) -> RunJournal:
        """Load an existing journal; raises ``FileNotFoundError`` if missing."""
        path = self.path_for(instance_id)
        if not path.exists():
            raise FileNotFoundError(f"No run journal for instance {instance_id}: {path}")
        data = json.loads(path.read_text(encoding="utf-8"))
        return RunJournal(
            path,
            data["instance_id"],
            RunInput.model_validate(data["run_input"]),
            events=data.get("events", []),
            status=data.get("status", "running"),
            created_at=data.get("created_at"),
        )

    def list_runs(self) -> list[dict[str, Any]]:
        """Summaries of every journaled run, oldest first."""
        if not self.state_dir.exists():
            return []

        runs: list[dict[str, Any]] = []
        for path in sorted(self.state_dir.glob(f"*{_SUFFIX}")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as exc:
                log.warning("Skipping unreadable journal %s: %s", path, exc)
                continue
            runs.append({
                "instance_id": data.get("instance_id", path.stem),
                "status": data.get("status", "unknown"),
                "created_at": data.get("created_at", ""),
                "work_items": len(data.get("run_input", {}).get("work_items", [])),
                "events": len(data.get("events", [])),
            })
        runs.sort(key=lambda r: r["created_at"])
        return runs


class ReplaySafeLogger:
    """Logger wrapper that stays silent while its journal is replaying."""

    def __init__(self, logger: logging.Logger, journal: RunJournal) -> None:
        self._logger = logger
        self._journal = journal

    def _emit(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        if self._journal.is_replaying:
            return
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("exc_info", True)
        self._emit(logging.ERROR, msg, *args, **kwargs)
