"""Agent layer: evaluation, publishing and the orchestration engine.

Modules
-------
base         — tool-augmented agent loop, tool-call traces, agent errors
llm_client   — async OpenAI / Azure OpenAI client construction
evaluator    — per-document drift evaluation with the verification toolbelt
publisher    — single pull request for all updates via the remote gateway
orchestrator — batched fan-out, aggregation, publish-once, journal replay
tools/       — tool contracts, verification toolbelt, GitHub gateway
"""

from .base import (
    AgentBase,
    AgentCancelled,
    AgentError,
    AgentOutputError,
    AgentRole,
    AgentRun,
    ToolCall,
)
from .evaluator import EvaluationAgent, EvaluationOutput
from .orchestrator import UpdateOrchestrator, estimate_tokens
from .publisher import PublishingAgent, PublishOutput, repository_path

__all__ = [
    "AgentBase",
    "AgentCancelled",
    "AgentError",
    "AgentOutputError",
    "AgentRole",
    "AgentRun",
    "EvaluationAgent",
    "EvaluationOutput",
    "PublishOutput",
    "PublishingAgent",
    "ToolCall",
    "UpdateOrchestrator",
    "estimate_tokens",
    "repository_path",
]
