"""Core building blocks: data models, front-matter codec, discovery, run journal."""

from .models import (
    DocumentMetadata,
    EvaluationFailure,
    FailurePolicy,
    PublishResult,
    RunInput,
    RunResult,
    Verdict,
    WorkItem,
)

__all__ = [
    "DocumentMetadata",
    "EvaluationFailure",
    "FailurePolicy",
    "PublishResult",
    "RunInput",
    "RunResult",
    "Verdict",
    "WorkItem",
]
