"""Base agent interfaces and shared agent models.

Both agents in the system (evaluation and publishing) are tool-augmented
chat completions: one instruction goes in, the model calls tools as often
as it likes, and exactly one JSON object comes out. ``AgentBase`` owns that
loop so each agent only supplies its instructions, tools and output model.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC
from enum import Enum
from typing import Any, Optional, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from .llm_client import DEFAULT_MODEL, parse_json_reply
from .tools.contracts import AgentTool

logger = logging.getLogger("docrefresh.agents")

OutputT = TypeVar("OutputT", bound=BaseModel)

DEFAULT_MAX_TURNS = 24
TOOL_RESULT_CHARS = 20_000


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class AgentError(Exception):
    """An agent call could not produce a usable result."""


class AgentOutputError(AgentError):
    """The final reply was not valid JSON for the expected contract."""


class AgentCancelled(AgentError):
    """The run-scoped cancel signal fired while the agent was working."""


# ---------------------------------------------------------------------------
# Enums & models
# ---------------------------------------------------------------------------

class AgentRole(str, Enum):
    EVALUATOR = "evaluator"
    PUBLISHER = "publisher"


class ToolCallStatus(str, Enum):
    """Outcome of a single tool invocation."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class ToolCall(BaseModel):
    """A single tool invocation requested by the model."""

    id: str
    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: Any = None
    error: Optional[str] = None

    def reply_content(self) -> str:
        """Serialise the outcome as the ``tool`` message sent back to the model."""
        if self.status == ToolCallStatus.SUCCESS:
            payload = self.result if isinstance(self.result, str) else json.dumps(
                self.result, default=str,
            )
        else:
            payload = json.dumps({"error": self.error or self.status.value})
        return payload[:TOOL_RESULT_CHARS]


class AgentRun(BaseModel):
    """Result of one agent invocation: validated output plus its trace."""

    agent_role: AgentRole
    output: Any = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    turns: int = 0
    duration_ms: float = 0.0


# ---------------------------------------------------------------------------
# Abstract base agent
# ---------------------------------------------------------------------------

class AgentBase(ABC):
    """Base class for tool-augmented agents.

    Parameters
    ----------
    role
        The agent's role, used in logs and traces.
    client
        Shared async chat-completions client.
    model
        Model or deployment name.
    instructions
        System prompt for every invocation.
    max_turns
        Upper bound on model round trips per invocation.
    """

    def __init__(
        self,
        role: AgentRole,
        *,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        instructions: str = "",
        max_turns: int = DEFAULT_MAX_TURNS,
        temperature: float = 0.2,
    ) -> None:
        self.role = role
        self.model = model
        self.instructions = instructions
        self.max_turns = max(1, max_turns)
        self.temperature = temperature
        self._client = client

    async def invoke(
        self,
        message: str,
        *,
        tools: list[AgentTool],
        output_model: type[BaseModel],
        cancel_event: asyncio.Event | None = None,
    ) -> AgentRun:
        """Run the tool loop for one instruction and validate the final JSON.

        Returns a fresh ``AgentRun`` per call, so concurrent invocations on
        one agent never share a trace. Raises ``AgentCancelled`` as soon as
        *cancel_event* is seen set, before a model call or after a tool call.
        """
        t0 = time.perf_counter()
        trace = AgentRun(agent_role=self.role)
        bindings = {t.name: t for t in tools}
        tool_specs = [t.contract.to_openai_tool() for t in tools]
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self.instructions},
            {"role": "user", "content": message},
        ]

        for _ in range(self.max_turns):
            self._check_cancelled(cancel_event)
            trace.turns += 1
            kwargs: dict[str, Any] = {
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature,
                "response_format": {"type": "json_object"},
            }
            if tool_specs:
                kwargs["tools"] = tool_specs

            resp = await self._client.chat.completions.create(**kwargs)
            reply = resp.choices[0].message

            if not reply.tool_calls:
                trace.output = self._parse_output(reply.content or "", output_model)
                trace.duration_ms = (time.perf_counter() - t0) * 1000
                return trace

            messages.append({
                "role": "assistant",
                "content": reply.content or "",
                "tool_calls": [
                    {
                        "id": c.id,
                        "type": "function",
                        "function": {"name": c.function.name, "arguments": c.function.arguments},
                    }
                    for c in reply.tool_calls
                ],
            })
            for c in reply.tool_calls:
                tc = await self._dispatch(c.id, c.function.name, c.function.arguments, bindings)
                trace.tool_calls.append(tc)
                messages.append({
                    "role": "tool",
                    "tool_call_id": c.id,
                    "content": tc.reply_content(),
                })
                self._check_cancelled(cancel_event)

        trace.duration_ms = (time.perf_counter() - t0) * 1000
        raise AgentOutputError(
            f"{self.role.value} agent did not finish within {self.max_turns} turns"
        )

    # -- Internal -----------------------------------------------------------

    def _check_cancelled(self, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise AgentCancelled(f"{self.role.value} agent cancelled")

    async def _dispatch(
        self,
        call_id: str,
        name: str,
        raw_arguments: str,
        bindings: dict[str, AgentTool],
    ) -> ToolCall:
        """Validate and execute one tool call; failures go back to the model."""
        tc = ToolCall(id=call_id, tool_name=name)

        try:
            params = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError as exc:
            tc.status = ToolCallStatus.FAILED
            tc.error = f"Arguments are not valid JSON: {exc}"
            return tc
        if not isinstance(params, dict):
            tc.status = ToolCallStatus.FAILED
            tc.error = "Arguments must be a JSON object"
            return tc
        tc.parameters = params

        binding = bindings.get(name)
        if binding is None:
            tc.status = ToolCallStatus.SKIPPED
            tc.error = f"Unknown tool: {name}"
            return tc

        validation_errors = binding.contract.validate_params(params)
        if validation_errors:
            tc.status = ToolCallStatus.FAILED
            tc.error = "; ".join(validation_errors)
            return tc

        try:
            tc.result = await binding.handler(params)
            tc.status = ToolCallStatus.SUCCESS
        except Exception as exc:
            logger.warning("%s tool %s failed: %s", self.role.value, name, exc)
            tc.status = ToolCallStatus.FAILED
            tc.error = str(exc)
        return tc

    def _parse_output(self, text: str, output_model: type[OutputT]) -> OutputT:
        try:
            data = parse_json_reply(text)
        except json.JSONDecodeError as exc:
            raise AgentOutputError(
                f"{self.role.value} agent returned non-JSON output: {exc}"
            ) from exc
        try:
            return output_model.model_validate(data)
        except ValidationError as exc:
            raise AgentOutputError(
                f"{self.role.value} agent output failed validation: {exc}"
            ) from exc
