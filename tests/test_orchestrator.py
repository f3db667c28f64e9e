"""Tests for the update orchestration engine.

These tests validate:
1. Bounded batching — at most k evaluations in flight, strict batch order
2. Collection — verdicts stamped with the originating topic and path
3. Failure isolation and the RECORD / OMIT policies
4. Publish-once semantics, disabled publishing, publish failures
5. The three-topic end-to-end scenario, with fakes and with the real agent
6. Journal replay on resume, including retrying failed evaluations
7. Run-scoped cancellation
8. Token estimates
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Union

import httpx
import pytest

from docrefresh.agents.base import AgentCancelled
from docrefresh.agents.evaluator import EvaluationAgent
from docrefresh.agents.orchestrator import (
    UpdateOrchestrator,
    batches,
    clamp_settings,
    estimate_tokens,
)
from docrefresh.agents.tools.toolbelt import VerificationToolbelt
from docrefresh.core.journal import JournalStore
from docrefresh.core.models import (
    FailurePolicy,
    PublishResult,
    RunInput,
    Verdict,
    WorkItem,
)


class Crash(BaseException):
    """Simulates the process dying mid-run."""


Outcome = Union[Verdict, BaseException]


def make_item(topic: str) -> WorkItem:
    return WorkItem(
        topic_name=topic,
        file_path=f"/repo/Languages/{topic}/{topic.lower()}-best-practices.md",
        current_content=f"# {topic}\n",
    )


def verdict(topic: str, needs_update: bool = False, content: str = "") -> Verdict:
    return Verdict(
        topic_name=topic,
        file_path="",
        needs_update=needs_update,
        updated_content=content,
        change_summary="Updated" if needs_update else "No changes needed",
    )


class FakeEvaluator:
    """Records call order and concurrency; returns scripted outcomes."""

    def __init__(self, outcomes: dict[str, Outcome] | None = None, delay: float = 0.01):
        self.outcomes = outcomes or {}
        self.delay = delay
        self.calls: list[str] = []
        self.events: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def build_prompt(self, item: WorkItem, run_date: str) -> str:
        return f"Evaluate {item.topic_name} as of {run_date}\n{item.current_content}"

    async def evaluate(self, item, prompt, *, cancel_event=None) -> Verdict:
        self.calls.append(item.topic_name)
        self.events.append(("start", item.topic_name))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            outcome = self.outcomes.get(item.topic_name, verdict(item.topic_name))
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1
            self.events.append(("end", item.topic_name))


class FakePublisher:

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.prompts: list[str] = []
        self.verdicts: list[list[Verdict]] = []

    def build_prompt(self, verdicts: list[Verdict], run_date: str) -> str:
        self.verdicts.append(list(verdicts))
        return f"Publish {len(verdicts)} updates dated {run_date}"

    async def publish(self, prompt: str) -> PublishResult:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return PublishResult(change_request_url="https://github.com/o/r/pull/7")


def run_input(topics: list[str], k: int = 2, chars_per_token: int = 4) -> RunInput:
    return RunInput(
        work_items=[make_item(t) for t in topics],
        max_concurrent_evaluations=k,
        token_budget_hint=chars_per_token,
    )


# -- Real evaluation agent over a mocked web ---------------------------------

PAGES = {
    "https://a.example/docs": (200, "<p>A reference</p>"),
    "https://b.example/releases": (200, "<li>4.2.0</li><li>4.3.0-rc1</li>"),
    "https://c.example/gone": (404, "Not Found"),
}

# the one tool call each topic's agent makes before answering
FIRST_CALLS = {
    "A": ("check_resource_urls", {"urls": "https://a.example/docs"}),
    "B": ("check_latest_version", {
        "version_source_url": "https://b.example/releases",
        "current_version": "4.1",
        "language_name": "B",
    }),
    "C": ("check_resource_urls", {"urls": "https://c.example/gone"}),
}


def _completion(content: str | None = None, tool_calls: list | None = None) -> Any:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _decide(topic: str, tool_reply: str) -> dict[str, Any]:
    drifted = '"4.2.0"' in tool_reply or '"status_code": 404' in tool_reply
    return {
        "needsUpdate": drifted,
        "updatedContent": f"# {topic}\n\nRefreshed.\n" if drifted else "",
        "changeSummary": "Refreshed" if drifted else "No changes needed",
    }


class ScriptedLLM:
    """Chat-completions stand-in: one tool call per topic, then a verdict."""

    def __init__(self, on_call: Callable[[str], None] | None = None):
        self.on_call = on_call
        self.calls = 0
        self.tool_replies: dict[str, str] = {}
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self.create))

    async def create(self, **kwargs: Any) -> Any:
        self.calls += 1
        messages = kwargs["messages"]
        topic = re.search(r'for the "([^"]+)" topic', messages[1]["content"]).group(1)
        if self.on_call is not None:
            self.on_call(topic)

        if messages[-1]["role"] != "tool":
            name, arguments = FIRST_CALLS[topic]
            call = SimpleNamespace(
                id=f"{topic}-1",
                function=SimpleNamespace(name=name, arguments=json.dumps(arguments)),
            )
            return _completion(tool_calls=[call])

        reply = messages[-1]["content"]
        self.tool_replies[topic] = reply
        return _completion(content=json.dumps(_decide(topic, reply)))


def real_evaluator(llm: ScriptedLLM, on_request: Callable[[str], None] | None = None) -> EvaluationAgent:
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if on_request is not None:
            on_request(url)
        status, body = PAGES.get(url, (404, "Not Found"))
        return httpx.Response(status, text=body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EvaluationAgent(VerificationToolbelt(client), llm, model="test-model")


class CancellingEvaluator(FakeEvaluator):
    """Sets the run's cancel event when it starts evaluating *topic*."""

    def __init__(self, cancel: asyncio.Event, topic: str, outcomes: dict[str, Outcome] | None = None):
        super().__init__(outcomes)
        self.cancel = cancel
        self.topic = topic

    async def evaluate(self, item, prompt, *, cancel_event=None) -> Verdict:
        if item.topic_name == self.topic:
            self.cancel.set()
        return await super().evaluate(item, prompt, cancel_event=cancel_event)


# ===================================================================
# Helpers
# ===================================================================

class TestHelpers:

    def test_estimate_tokens(self):
        assert estimate_tokens(0, 4) == 0
        assert estimate_tokens(-5, 4) == 0
        assert estimate_tokens(9, 4) == 3
        assert estimate_tokens(8, 0) == 8

    def test_clamp_settings(self):
        assert clamp_settings(0, 0) == (1, 1)
        assert clamp_settings(-3, 40) == (1, 12)
        assert clamp_settings(5, 4) == (5, 4)

    def test_batches(self):
        items = [make_item(t) for t in "ABCDE"]
        groups = batches(items, 2)
        assert [[i.topic_name for i in g] for g in groups] == [["A", "B"], ["C", "D"], ["E"]]


# ===================================================================
# 1. Bounded batching
# ===================================================================

class TestBatching:

    @pytest.mark.asyncio
    async def test_at_most_k_in_flight(self):
        evaluator = FakeEvaluator()
        engine = UpdateOrchestrator(evaluator)
        result = await engine.run(run_input(list("ABCDE"), k=2))
        assert evaluator.max_in_flight == 2
        assert len(evaluator.calls) == 5
        assert len(result.verdicts) == 5

    @pytest.mark.asyncio
    async def test_batch_finishes_before_next_starts(self):
        evaluator = FakeEvaluator()
        await UpdateOrchestrator(evaluator).run(run_input(list("ABCDE"), k=2))

        position = {event: idx for idx, event in enumerate(evaluator.events)}
        for done in ("A", "B"):
            for later in ("C", "D", "E"):
                assert position[("end", done)] < position[("start", later)]
        for done in ("C", "D"):
            assert position[("end", done)] < position[("start", "E")]

    @pytest.mark.asyncio
    async def test_zero_parallelism_is_clamped(self):
        evaluator = FakeEvaluator()
        result = await UpdateOrchestrator(evaluator).run(run_input(list("ABC"), k=0))
        assert evaluator.max_in_flight == 1
        assert len(result.verdicts) == 3

    @pytest.mark.asyncio
    async def test_verdicts_keep_input_order(self):
        evaluator = FakeEvaluator()
        result = await UpdateOrchestrator(evaluator).run(run_input(["Go", "Rust", "Python"], k=3))
        assert [v.topic_name for v in result.verdicts] == ["Go", "Rust", "Python"]

    @pytest.mark.asyncio
    async def test_empty_run(self):
        publisher = FakePublisher()
        result = await UpdateOrchestrator(FakeEvaluator(), publisher).run(run_input([]))
        assert result.verdicts == []
        assert publisher.prompts == []


# ===================================================================
# 2. Collection
# ===================================================================

class TestCollection:

    @pytest.mark.asyncio
    async def test_verdict_stamped_with_item_identity(self):
        wrong = Verdict(topic_name="Hallucinated", file_path="/elsewhere.md", needs_update=False)
        evaluator = FakeEvaluator({"Go": wrong})
        result = await UpdateOrchestrator(evaluator).run(run_input(["Go"]))
        [v] = result.verdicts
        assert v.topic_name == "Go"
        assert v.file_path == make_item("Go").file_path


# ===================================================================
# 3. Failure isolation
# ===================================================================

class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_failure_recorded_as_marker(self):
        evaluator = FakeEvaluator({"B": RuntimeError("model timed out")})
        result = await UpdateOrchestrator(evaluator).run(run_input(list("ABC"), k=3))

        assert len(result.verdicts) == 3
        marker = result.verdicts[1]
        assert marker.topic_name == "B"
        assert marker.failed
        assert marker.needs_update is False
        assert "model timed out" in marker.error
        assert [f.topic_name for f in result.failures] == ["B"]
        assert evaluator.calls == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_omit_policy(self):
        evaluator = FakeEvaluator({"B": ValueError("bad json")})
        engine = UpdateOrchestrator(evaluator, failure_policy=FailurePolicy.OMIT)
        result = await engine.run(run_input(list("ABC")))
        assert [v.topic_name for v in result.verdicts] == ["A", "C"]
        assert [f.topic_name for f in result.failures] == ["B"]

    @pytest.mark.asyncio
    async def test_failed_item_never_published(self):
        publisher = FakePublisher()
        evaluator = FakeEvaluator({"A": RuntimeError("boom")})
        result = await UpdateOrchestrator(evaluator, publisher).run(run_input(["A"]))
        assert result.updates == []
        assert publisher.prompts == []

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self):
        evaluator = FakeEvaluator({"A": asyncio.CancelledError()})
        with pytest.raises(asyncio.CancelledError):
            await UpdateOrchestrator(evaluator).run(run_input(["A"]))


# ===================================================================
# 4. Publishing
# ===================================================================

class TestPublishing:

    @pytest.mark.asyncio
    async def test_no_updates_no_publish(self):
        publisher = FakePublisher()
        result = await UpdateOrchestrator(FakeEvaluator(), publisher).run(run_input(list("AB")))
        assert publisher.prompts == []
        assert result.publish_result is None
        assert result.publish_skipped_reason is None

    @pytest.mark.asyncio
    async def test_blank_content_is_not_an_update(self):
        publisher = FakePublisher()
        evaluator = FakeEvaluator({"A": verdict("A", True, "   ")})
        result = await UpdateOrchestrator(evaluator, publisher).run(run_input(["A"]))
        assert publisher.prompts == []
        assert result.verdicts[0].needs_update is True
        assert result.updates == []

    @pytest.mark.asyncio
    async def test_publish_once_with_all_updates(self):
        publisher = FakePublisher()
        evaluator = FakeEvaluator({
            "A": verdict("A", True, "new A"),
            "C": verdict("C", True, "new C"),
            "D": verdict("D", True, "new D"),
        })
        result = await UpdateOrchestrator(evaluator, publisher).run(run_input(list("ABCD"), k=2))
        assert len(publisher.prompts) == 1
        assert [v.topic_name for v in publisher.verdicts[0]] == ["A", "C", "D"]
        assert result.publish_result.change_request_url == "https://github.com/o/r/pull/7"

    @pytest.mark.asyncio
    async def test_publishing_disabled(self):
        evaluator = FakeEvaluator({"A": verdict("A", True, "new A")})
        engine = UpdateOrchestrator(
            evaluator, None, publish_disabled_reason="Publishing disabled: missing GITHUB_TOKEN",
        )
        result = await engine.run(run_input(["A"]))
        assert result.publish_result is None
        assert result.publish_skipped_reason == "Publishing disabled: missing GITHUB_TOKEN"
        assert len(result.updates) == 1

    @pytest.mark.asyncio
    async def test_publish_failure_keeps_verdicts(self):
        publisher = FakePublisher(error=RuntimeError("remote refused"))
        evaluator = FakeEvaluator({"A": verdict("A", True, "new A")})
        result = await UpdateOrchestrator(evaluator, publisher).run(run_input(list("AB")))
        assert len(result.verdicts) == 2
        assert result.publish_result is None
        assert "remote refused" in result.publish_error


# ===================================================================
# 5. End-to-end scenario
# ===================================================================

class TestThreeTopicScenario:

    @pytest.mark.asyncio
    async def test_aggregates_exactly_b_and_c(self):
        evaluator = FakeEvaluator({
            "A": verdict("A"),
            "B": verdict("B", True, "---\nlanguage_version: '2.0'\n---\n\n# B\n"),
            "C": verdict("C", True, "---\nlanguage_version: '5.1'\n---\n\n# C\n"),
        })
        publisher = FakePublisher()
        result = await UpdateOrchestrator(evaluator, publisher).run(run_input(list("ABC"), k=2))

        assert [v.topic_name for v in result.verdicts] == ["A", "B", "C"]
        assert [v.topic_name for v in result.updates] == ["B", "C"]
        assert len(publisher.prompts) == 1
        assert [v.topic_name for v in publisher.verdicts[0]] == ["B", "C"]
        assert result.summary()["updates"] == 2
        assert result.summary()["change_request_url"] == "https://github.com/o/r/pull/7"

    @pytest.mark.asyncio
    async def test_real_agent_over_mocked_web(self):
        llm = ScriptedLLM()
        publisher = FakePublisher()
        engine = UpdateOrchestrator(real_evaluator(llm), publisher)
        result = await engine.run(run_input(list("ABC"), k=2))

        b_reply = json.loads(llm.tool_replies["B"])
        assert b_reply["current_version"] == "4.1"
        assert b_reply["stable_versions_found"] == ["4.2.0"]

        [c_reply] = json.loads(llm.tool_replies["C"])
        assert c_reply["status_code"] == 404
        assert c_reply["is_accessible"] is False
        assert '"is_accessible": false' in llm.tool_replies["C"]

        [a_reply] = json.loads(llm.tool_replies["A"])
        assert a_reply["is_accessible"] is True

        assert result.failures == []
        assert [v.topic_name for v in result.updates] == ["B", "C"]
        assert len(publisher.prompts) == 1
        assert [v.topic_name for v in publisher.verdicts[0]] == ["B", "C"]
        assert llm.calls == 6


# ===================================================================
# 6. Journal replay
# ===================================================================

class TestResume:

    @pytest.mark.asyncio
    async def test_resume_replays_completed_evaluations(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        first = FakeEvaluator({
            "B": verdict("B", True, "new B"),
            "C": Crash(),
        })
        with pytest.raises(Crash):
            await UpdateOrchestrator(first, FakePublisher(), journal_store=store).run(
                run_input(list("ABC"), k=1), instance_id="run-1",
            )
        assert first.calls == ["A", "B", "C"]

        second = FakeEvaluator({"C": verdict("C", True, "new C")})
        publisher = FakePublisher()
        result = await UpdateOrchestrator(second, publisher, journal_store=store).resume("run-1")

        assert second.calls == ["C"]
        assert result.resumed is True
        assert [v.topic_name for v in result.updates] == ["B", "C"]
        assert len(publisher.prompts) == 1
        assert store.load("run-1").status == "completed"

    @pytest.mark.asyncio
    async def test_completed_run_replays_without_agents(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        evaluator = FakeEvaluator({"A": verdict("A", True, "new A")})
        publisher = FakePublisher()
        engine = UpdateOrchestrator(evaluator, publisher, journal_store=store)
        first = await engine.run(run_input(list("AB")), instance_id="run-2")

        again_eval, again_pub = FakeEvaluator(), FakePublisher()
        replay = await UpdateOrchestrator(again_eval, again_pub, journal_store=store).resume("run-2")

        assert again_eval.calls == []
        assert again_pub.prompts == []
        assert replay.verdicts == first.verdicts
        assert replay.publish_result == first.publish_result

    @pytest.mark.asyncio
    async def test_recorded_failures_are_replayed(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        failing = FakeEvaluator({"A": RuntimeError("boom")})
        await UpdateOrchestrator(failing, journal_store=store).run(run_input(["A"]), instance_id="r")

        again = FakeEvaluator()
        result = await UpdateOrchestrator(again, journal_store=store).resume("r")
        assert again.calls == []
        assert result.verdicts[0].failed
        assert [f.topic_name for f in result.failures] == ["A"]

    @pytest.mark.asyncio
    async def test_retry_failed_evaluates_again(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        limited = FakeEvaluator({"A": RuntimeError("429 rate limited")})
        first = await UpdateOrchestrator(limited, journal_store=store).run(
            run_input(list("AB")), instance_id="r",
        )
        assert [f.topic_name for f in first.failures] == ["A"]

        healthy = FakeEvaluator({"A": verdict("A", True, "new A")})
        publisher = FakePublisher()
        result = await UpdateOrchestrator(healthy, publisher, journal_store=store).resume(
            "r", retry_failed=True,
        )
        assert healthy.calls == ["A"]
        assert result.failures == []
        assert [v.topic_name for v in result.updates] == ["A"]
        assert len(publisher.prompts) == 1

        # the new verdict is what a plain resume replays from now on
        again = FakeEvaluator()
        replay = await UpdateOrchestrator(again, FakePublisher(), journal_store=store).resume("r")
        assert again.calls == []
        assert replay.failures == []
        assert replay.verdicts[0].updated_content == "new A"

    @pytest.mark.asyncio
    async def test_failed_publish_is_retried_on_resume(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        evaluator = FakeEvaluator({"A": verdict("A", True, "new A")})
        await UpdateOrchestrator(
            evaluator, FakePublisher(error=RuntimeError("down")), journal_store=store,
        ).run(run_input(["A"]), instance_id="p")

        publisher = FakePublisher()
        result = await UpdateOrchestrator(FakeEvaluator(), publisher, journal_store=store).resume("p")
        assert len(publisher.prompts) == 1
        assert result.publish_result is not None
        assert result.publish_error is None

    @pytest.mark.asyncio
    async def test_replayed_steps_are_not_logged(self, tmp_path: Path, caplog: pytest.LogCaptureFixture):
        store = JournalStore(tmp_path)
        with pytest.raises(Crash):
            await UpdateOrchestrator(FakeEvaluator({"B": Crash()}), journal_store=store).run(
                run_input(list("AB"), k=1), instance_id="log",
            )

        caplog.clear()
        with caplog.at_level(logging.INFO, logger="docrefresh.orchestrator"):
            await UpdateOrchestrator(FakeEvaluator(), journal_store=store).resume("log")

        messages = [r.getMessage() for r in caplog.records]
        assert not any(m.startswith("Evaluating A") for m in messages)
        assert any(m.startswith("Evaluating B") for m in messages)

    @pytest.mark.asyncio
    async def test_resume_requires_store(self):
        with pytest.raises(RuntimeError):
            await UpdateOrchestrator(FakeEvaluator()).resume("x")


# ===================================================================
# 7. Cancellation
# ===================================================================

class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        cancel = asyncio.Event()
        cancel.set()
        evaluator, publisher = FakeEvaluator(), FakePublisher()

        result = await UpdateOrchestrator(evaluator, publisher, journal_store=store).run(
            run_input(list("ABC"), k=1), instance_id="c", cancel_event=cancel,
        )

        assert evaluator.calls == []
        assert result.cancelled is True
        assert result.not_started == [make_item(t).key for t in "ABC"]
        assert result.verdicts == []
        assert publisher.prompts == []
        assert result.summary()["cancelled"] is True
        assert store.load("c").status == "running"

    @pytest.mark.asyncio
    async def test_no_batch_starts_after_cancel(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        cancel = asyncio.Event()
        evaluator = CancellingEvaluator(cancel, "B", {"A": verdict("A", True, "new A")})
        publisher = FakePublisher()

        result = await UpdateOrchestrator(evaluator, publisher, journal_store=store).run(
            run_input(list("ABC"), k=1), instance_id="c", cancel_event=cancel,
        )

        assert evaluator.calls == ["A", "B"]
        assert result.not_started == [make_item("C").key]
        [failure] = result.failures
        assert failure.topic_name == "B"
        assert failure.cancelled is True
        assert [v.topic_name for v in result.updates] == ["A"]
        assert publisher.prompts == []
        assert result.publish_skipped_reason == "Run cancelled before publishing"

        journal = store.load("c")
        assert journal.status == "running"
        assert [e["key"] for e in journal.events] == [make_item("A").key]

    @pytest.mark.asyncio
    async def test_resume_finishes_cancelled_run(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        cancel = asyncio.Event()
        first = CancellingEvaluator(cancel, "B", {"A": verdict("A", True, "new A")})
        await UpdateOrchestrator(first, FakePublisher(), journal_store=store).run(
            run_input(list("ABC"), k=1), instance_id="c", cancel_event=cancel,
        )

        second, publisher = FakeEvaluator(), FakePublisher()
        result = await UpdateOrchestrator(second, publisher, journal_store=store).resume("c")

        assert second.calls == ["B", "C"]
        assert result.cancelled is False
        assert result.failures == []
        assert len(publisher.prompts) == 1
        assert store.load("c").status == "completed"

    @pytest.mark.asyncio
    async def test_agent_cancellation_is_not_journaled(self, tmp_path: Path):
        store = JournalStore(tmp_path)
        evaluator = FakeEvaluator({"A": AgentCancelled("evaluator agent cancelled")})
        result = await UpdateOrchestrator(evaluator, journal_store=store).run(
            run_input(["A"]), instance_id="c",
        )
        [failure] = result.failures
        assert failure.cancelled is True
        assert store.load("c").events == []

        again = FakeEvaluator()
        await UpdateOrchestrator(again, journal_store=store).resume("c")
        assert again.calls == ["A"]

    @pytest.mark.asyncio
    async def test_real_agent_makes_no_model_calls_once_cancelled(self):
        llm = ScriptedLLM()
        publisher = FakePublisher()
        cancel = asyncio.Event()
        cancel.set()

        result = await UpdateOrchestrator(real_evaluator(llm), publisher).run(
            run_input(list("ABC"), k=1), cancel_event=cancel,
        )

        assert llm.calls == 0
        assert result.cancelled is True
        assert result.updates == []
        assert publisher.prompts == []

    @pytest.mark.asyncio
    async def test_real_agent_stops_after_tool_call(self):
        cancel = asyncio.Event()
        llm = ScriptedLLM()
        publisher = FakePublisher()
        evaluator = real_evaluator(llm, on_request=lambda url: cancel.set())

        result = await UpdateOrchestrator(evaluator, publisher).run(
            run_input(list("ABC"), k=1), cancel_event=cancel,
        )

        # A's first turn asked for a tool; the answer turn never happened
        assert llm.calls == 1
        [failure] = result.failures
        assert failure.topic_name == "A"
        assert failure.cancelled is True
        assert "AgentCancelled" in failure.error
        assert result.not_started == [make_item(t).key for t in "BC"]
        assert publisher.prompts == []


# ===================================================================
# 8. Token estimates
# ===================================================================

class TestTokenLogging:

    @pytest.mark.asyncio
    async def test_prompt_estimates_logged(self, caplog: pytest.LogCaptureFixture):
        with caplog.at_level(logging.INFO, logger="docrefresh.orchestrator"):
            await UpdateOrchestrator(FakeEvaluator()).run(run_input(["Go"], chars_per_token=40))
        messages = [r.getMessage() for r in caplog.records]
        assert any("Batch size 2, estimated 12 chars per token" in m for m in messages)
        assert any(m.startswith("Evaluating Go (") and "tokens)" in m for m in messages)
        assert any(m.startswith("Prompts total") for m in messages)
