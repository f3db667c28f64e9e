"""Shared data models for the update worker.

Everything that crosses a component boundary (discovery → engine → agents →
journal) is one of these Pydantic models, so runs can be persisted and
replayed from JSON without custom encoders.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Document metadata
# ---------------------------------------------------------------------------

class DocumentMetadata(BaseModel):
    """Front-matter of a tracked document.

    ``version`` and ``content_hash`` are opaque: they are only ever compared
    for equality or presence, never parsed.
    """

    topic_name: str = ""          # yaml key: language
    version: str = ""             # yaml key: language_version
    last_checked: str = ""        # ISO date, e.g. "2026-02-11"
    content_hash: str = ""        # hex digest, may be empty
    version_source_url: str = ""

    @property
    def is_empty(self) -> bool:
        return not any((
            self.topic_name,
            self.version,
            self.last_checked,
            self.content_hash,
            self.version_source_url,
        ))


# ---------------------------------------------------------------------------
# Run inputs
# ---------------------------------------------------------------------------

class WorkItem(BaseModel):
    """One tracked document, evaluated exactly once per run."""

    model_config = ConfigDict(frozen=True)

    topic_name: str
    file_path: str
    current_content: str

    @property
    def key(self) -> str:
        """Stable identifier used by the run journal."""
        return f"{self.topic_name}:{self.file_path}"


class RunInput(BaseModel):
    """Immutable input of a single run, built by the schedule trigger."""

    model_config = ConfigDict(frozen=True)

    work_items: list[WorkItem] = Field(default_factory=list)
    max_concurrent_evaluations: int = 2
    token_budget_hint: int = 4          # estimated characters per token
    trigger_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def run_date(self) -> str:
        """The date stamped into updated documents (``YYYY-MM-DD``)."""
        return self.trigger_time.astimezone(timezone.utc).strftime("%Y-%m-%d")


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class Verdict(BaseModel):
    """Outcome of evaluating one work item."""

    topic_name: str
    file_path: str
    needs_update: bool = False
    updated_content: str = ""
    change_summary: str = ""
    error: Optional[str] = None   # set only on failure markers

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def is_actionable(self) -> bool:
        """True when the verdict carries a replacement document to publish."""
        return self.needs_update and bool(self.updated_content.strip())


class EvaluationFailure(BaseModel):
    """A work item whose evaluation raised or returned unusable output."""

    topic_name: str
    file_path: str
    error: str
    cancelled: bool = False    # never journaled; a resume evaluates the item again


class PublishResult(BaseModel):
    """Locator of the change request opened for a run."""

    change_request_url: str


class FailurePolicy(str, Enum):
    """What the engine reports for a work item whose evaluation failed."""
    RECORD = "record"   # failure-marker verdict in the result
    OMIT = "omit"       # left out of the verdict list


class RunResult(BaseModel):
    """Everything a run returns, including non-update verdicts."""

    instance_id: str
    verdicts: list[Verdict] = Field(default_factory=list)
    failures: list[EvaluationFailure] = Field(default_factory=list)
    publish_result: Optional[PublishResult] = None
    publish_error: Optional[str] = None
    publish_skipped_reason: Optional[str] = None
    resumed: bool = False
    cancelled: bool = False
    not_started: list[str] = Field(default_factory=list)   # work item keys

    @property
    def updates(self) -> list[Verdict]:
        return [v for v in self.verdicts if v.is_actionable]

    def summary(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "evaluated": len(self.verdicts),
            "updates": len(self.updates),
            "failures": len(self.failures),
            "change_request_url": (
                self.publish_result.change_request_url
                if self.publish_result else None
            ),
            "publish_error": self.publish_error,
            "publish_skipped_reason": self.publish_skipped_reason,
            "resumed": self.resumed,
            "cancelled": self.cancelled,
        }
