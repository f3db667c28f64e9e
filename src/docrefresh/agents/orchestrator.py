"""Update orchestration engine — batch fan-out, aggregation, single publish.

For one run the engine:
1. Partitions the work items into sequential batches of
   ``max_concurrent_evaluations`` and evaluates each batch concurrently.
2. Stamps every verdict with the topic and path of its work item.
3. Aggregates the verdicts that carry a replacement document.
4. Invokes the publishing agent once with the whole aggregate, and only
   when it is non-empty.
5. Returns every verdict, whatever happened during publishing.

Each completed evaluation and a successful publish are appended to the
run journal as they finish. Running again with the same instance id
replays the journal instead of calling the agents again.

Once the run-scoped cancel event is set no further batch is started,
in-flight evaluations come back as cancelled failures (never journaled)
and nothing is published; the journal stays open for a later resume.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Optional, Protocol

from ..core.journal import JournalStore, ReplaySafeLogger, RunJournal, new_instance_id
from ..core.models import (
    EvaluationFailure,
    FailurePolicy,
    PublishResult,
    RunInput,
    RunResult,
    Verdict,
    WorkItem,
)
from .base import AgentCancelled

logger = logging.getLogger("docrefresh.orchestrator")

MAX_CHARS_PER_TOKEN = 12

_EVALUATION = "evaluation"
_PUBLISH = "publish"
_PUBLISH_KEY = "run"


# ---------------------------------------------------------------------------
# Agent interfaces
# ---------------------------------------------------------------------------

class Evaluator(Protocol):
    def build_prompt(self, item: WorkItem, run_date: str) -> str: ...

    async def evaluate(
        self,
        item: WorkItem,
        prompt: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> Verdict: ...


class Publisher(Protocol):
    def build_prompt(self, verdicts: list[Verdict], run_date: str) -> str: ...

    async def publish(self, prompt: str) -> PublishResult: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def estimate_tokens(chars: int, chars_per_token: int) -> int:
    """Rough prompt-size estimate: ``ceil(chars / chars_per_token)``."""
    if chars <= 0:
        return 0
    return math.ceil(chars / max(1, chars_per_token))


def clamp_settings(max_concurrent: int, chars_per_token: int) -> tuple[int, int]:
    """Clamp batch size to ``>= 1`` and chars-per-token to ``[1, 12]``."""
    return max(1, max_concurrent), min(max(1, chars_per_token), MAX_CHARS_PER_TOKEN)


def _is_set(event: asyncio.Event | None) -> bool:
    return event is not None and event.is_set()


def batches(items: list[WorkItem], size: int) -> list[list[WorkItem]]:
    """Split *items* into consecutive groups of at most *size*."""
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class UpdateOrchestrator:
    """Runs one update pass over a set of work items.

    Parameters
    ----------
    evaluator
        Produces a verdict for one work item.
    publisher
        Opens the change request; ``None`` disables publishing and the run
        completes with ``publish_skipped_reason`` set.
    journal_store
        Where run journals are kept; without one runs are journaled in
        memory only and cannot be resumed.
    failure_policy
        How a failed evaluation appears in ``RunResult.verdicts``.
    publish_disabled_reason
        Reported when *publisher* is ``None``.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        publisher: Optional[Publisher] = None,
        *,
        journal_store: Optional[JournalStore] = None,
        failure_policy: FailurePolicy = FailurePolicy.RECORD,
        publish_disabled_reason: str = "Publishing is not configured",
    ) -> None:
        self.evaluator = evaluator
        self.publisher = publisher
        self.journal_store = journal_store
        self.failure_policy = FailurePolicy(failure_policy)
        self.publish_disabled_reason = publish_disabled_reason

    # -- Entry points --------------------------------------------------------

    async def run(
        self,
        run_input: RunInput,
        *,
        instance_id: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Execute (or resume) the run *instance_id* for *run_input*."""
        instance_id = instance_id or new_instance_id()
        if self.journal_store is not None:
            journal = self.journal_store.open(instance_id, run_input)
        else:
            journal = RunJournal(None, instance_id, run_input)
        return await self._execute(journal, cancel_event)

    async def resume(
        self,
        instance_id: str,
        *,
        retry_failed: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Resume a journaled run with the run input it was started with.

        Recorded verdicts are always replayed. Recorded failures are replayed
        too unless *retry_failed* is set, in which case those items are
        evaluated again and the new outcome is journaled.
        """
        if self.journal_store is None:
            raise RuntimeError("Resuming a run requires a journal store")
        journal = self.journal_store.load(instance_id)
        return await self._execute(journal, cancel_event, retry_failed=retry_failed)

    # -- Run -----------------------------------------------------------------

    async def _execute(
        self,
        journal: RunJournal,
        cancel_event: asyncio.Event | None,
        *,
        retry_failed: bool = False,
    ) -> RunResult:
        run_input = journal.run_input
        log = ReplaySafeLogger(logger, journal)
        items = list(run_input.work_items)
        batch_size, chars_per_token = clamp_settings(
            run_input.max_concurrent_evaluations, run_input.token_budget_hint,
        )
        run_date = run_input.run_date

        if journal.resumed:
            logger.info(
                "Resuming run %s (%d recorded steps)", journal.instance_id, len(journal.events),
            )
        log.info("Run %s started: %d work items", journal.instance_id, len(items))
        log.info(
            "Batch size %d, estimated %d chars per token", batch_size, chars_per_token,
        )

        verdicts: list[Verdict] = []
        failures: list[EvaluationFailure] = []
        not_started: list[str] = []
        total_prompt_chars = 0

        for group in batches(items, batch_size):
            if _is_set(cancel_event):
                not_started.extend(item.key for item in group)
                continue

            prompts = [self.evaluator.build_prompt(item, run_date) for item in group]
            for item, prompt in zip(group, prompts):
                total_prompt_chars += len(prompt)
                log.info(
                    "Evaluating %s (%d chars, ~%d tokens)",
                    item.topic_name, len(prompt), estimate_tokens(len(prompt), chars_per_token),
                )

            outcomes = await asyncio.gather(*(
                self._evaluate_one(journal, log, item, prompt, cancel_event, retry_failed)
                for item, prompt in zip(group, prompts)
            ))

            for item, outcome in zip(group, outcomes):
                if isinstance(outcome, EvaluationFailure):
                    failures.append(outcome)
                    if self.failure_policy == FailurePolicy.RECORD:
                        verdicts.append(self._failure_marker(item, outcome.error))
                else:
                    verdicts.append(outcome)

        log.info(
            "Prompts total %d chars (~%d tokens) across %d work items",
            total_prompt_chars, estimate_tokens(total_prompt_chars, chars_per_token), len(items),
        )

        updates = [v for v in verdicts if v.is_actionable]
        log.info(
            "Evaluation finished: %d of %d need updates, %d failed",
            len(updates), len(verdicts), len(failures),
        )

        result = RunResult(
            instance_id=journal.instance_id,
            verdicts=verdicts,
            failures=failures,
            resumed=journal.resumed,
            not_started=not_started,
        )

        if _is_set(cancel_event):
            # journal stays "running" so the run can be resumed
            result.cancelled = True
            if updates:
                result.publish_skipped_reason = "Run cancelled before publishing"
            logger.warning(
                "Run %s cancelled: %d work items not started, %d cancelled in flight",
                journal.instance_id, len(not_started), sum(f.cancelled for f in failures),
            )
            return result

        if updates:
            await self._publish(journal, log, updates, run_date, chars_per_token, result)

        journal.complete()
        return result

    async def _evaluate_one(
        self,
        journal: RunJournal,
        log: ReplaySafeLogger,
        item: WorkItem,
        prompt: str,
        cancel_event: asyncio.Event | None,
        retry_failed: bool,
    ) -> Verdict | EvaluationFailure:
        """Evaluate one item, isolating its failure; replays when journaled."""
        recorded = journal.lookup(_EVALUATION, item.key)
        if recorded is not None:
            if recorded.get("failure") is None:
                logger.debug("Replaying evaluation of %s", item.key)
                return Verdict.model_validate(recorded["verdict"])
            if not retry_failed:
                logger.debug("Replaying failed evaluation of %s", item.key)
                return EvaluationFailure.model_validate(recorded["failure"])
            logger.info("Retrying failed evaluation of %s", item.topic_name)

        try:
            raw = await self.evaluator.evaluate(item, prompt, cancel_event=cancel_event)
        except Exception as exc:
            failure = EvaluationFailure(
                topic_name=item.topic_name,
                file_path=item.file_path,
                error=f"{type(exc).__name__}: {exc}",
                cancelled=isinstance(exc, AgentCancelled) or _is_set(cancel_event),
            )
            if failure.cancelled:
                logger.warning("Evaluation of %s cancelled", item.topic_name)
            else:
                log.error("Evaluation of %s failed: %s", item.topic_name, exc)
                journal.record(_EVALUATION, item.key, {"failure": failure.model_dump()})
            return failure

        if _is_set(cancel_event):
            # tool results gathered after the signal are not trustworthy
            logger.warning("Discarding verdict for %s: run cancelled", item.topic_name)
            return EvaluationFailure(
                topic_name=item.topic_name,
                file_path=item.file_path,
                error="Cancelled: verdict discarded",
                cancelled=True,
            )

        verdict = raw.model_copy(update={
            "topic_name": item.topic_name,
            "file_path": item.file_path,
        })
        log.info("Evaluated %s: needs_update=%s", item.topic_name, verdict.needs_update)
        journal.record(_EVALUATION, item.key, {"verdict": verdict.model_dump()})
        return verdict

    async def _publish(
        self,
        journal: RunJournal,
        log: ReplaySafeLogger,
        updates: list[Verdict],
        run_date: str,
        chars_per_token: int,
        result: RunResult,
    ) -> None:
        recorded = journal.lookup(_PUBLISH, _PUBLISH_KEY)
        if recorded is not None:
            result.publish_result = PublishResult.model_validate(recorded)
            return

        if self.publisher is None:
            result.publish_skipped_reason = self.publish_disabled_reason
            log.warning(
                "%d updates not published: %s", len(updates), self.publish_disabled_reason,
            )
            return

        prompt = self.publisher.build_prompt(updates, run_date)
        log.info(
            "Publishing %d updates (%d chars, ~%d tokens)",
            len(updates), len(prompt), estimate_tokens(len(prompt), chars_per_token),
        )
        try:
            published = await self.publisher.publish(prompt)
        except Exception as exc:
            log.exception("Publishing failed for run %s", journal.instance_id)
            result.publish_error = f"{type(exc).__name__}: {exc}"
            return

        journal.record(_PUBLISH, _PUBLISH_KEY, published.model_dump())
        result.publish_result = published
        log.info("Change request opened: %s", published.change_request_url)

    @staticmethod
    def _failure_marker(item: WorkItem, error: str) -> Verdict:
        return Verdict(
            topic_name=item.topic_name,
            file_path=item.file_path,
            needs_update=False,
            change_summary="Evaluation failed",
            error=error,
        )
