"""Evaluation agent — decides whether one document has drifted.

The agent receives a single structured instruction per work item and uses
the verification toolbelt to gather evidence (metadata, reference URL
reachability, latest stable version, content hashes). Its final reply is an
``EvaluationOutput`` JSON object which is turned into a ``Verdict``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field

from ..core.models import Verdict, WorkItem
from .base import AgentBase, AgentRole
from .llm_client import DEFAULT_MODEL
from .tools.toolbelt import VerificationToolbelt

logger = logging.getLogger("docrefresh.agents.evaluator")


EVALUATOR_INSTRUCTIONS = """\
You audit best-practices documents for technology topics. You verify the
document against its sources using the tools provided and decide whether it
needs updating. Only stable, generally available releases count; never treat
alpha, beta, release-candidate, preview, dev, canary, nightly or other
prerelease versions as an upgrade. Always reply with a single JSON object.
"""


class EvaluationOutput(BaseModel):
    """Final JSON reply of the evaluation agent."""

    model_config = ConfigDict(populate_by_name=True)

    language_name: Optional[str] = Field(default=None, alias="languageName")
    needs_update: bool = Field(alias="needsUpdate")
    updated_content: str = Field(default="", alias="updatedContent")
    change_summary: str = Field(alias="changeSummary")
    file_path: Optional[str] = Field(default=None, alias="filePath")


class EvaluationAgent(AgentBase):
    """Evaluates one work item per call with the verification toolbelt.

    Parameters
    ----------
    toolbelt
        Shared verification tools; bound to the run's cancel event per call.
    client
        Async chat-completions client.
    model
        Model or deployment name.
    """

    def __init__(
        self,
        toolbelt: VerificationToolbelt,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        **kwargs,
    ) -> None:
        super().__init__(
            AgentRole.EVALUATOR,
            client=client,
            model=model,
            instructions=EVALUATOR_INSTRUCTIONS,
            **kwargs,
        )
        self.toolbelt = toolbelt

    @staticmethod
    def build_prompt(item: WorkItem, run_date: str) -> str:
        """Render the evaluation instruction for *item*."""
        return f"""\
Evaluate the following best-practices document for the "{item.topic_name}" topic.

## Instructions

1. Use read_frontmatter to parse the document's metadata and extract:
   - the current language_version
   - the last_checked date
   - the resource_hash
   - the version_source_url
   - all resource URLs from the ## Resources section

2. Use check_resource_urls to verify that every resource URL is still
   accessible. Note any that return errors.

3. Use check_latest_version with the version_source_url and the current
   language_version to detect whether a new stable version was released.
   Only consider GA/stable releases. IGNORE alpha, beta, RC, preview, dev,
   canary, nightly and other prerelease versions.

4. If resource content may have changed, use fetch_url_content to get the
   full page and compare_content_hash to detect drift from the stored
   resource_hash.

5. Decide whether the document needs updating:
   - All URLs accessible, no version bump and matching hashes: no update.
   - Broken URLs, significantly changed content or a major/minor version
     bump: produce an updated document.

6. If an update IS needed, produce a COMPLETE updated markdown document that:
   - preserves the existing structure, sections and formatting conventions
   - updates the front-matter with the new language_version, {run_date} as
     last_checked and the new resource_hash
   - fixes any broken URLs
   - incorporates significant new best practices from the version update
   - does NOT describe beta, preview or prerelease features
   - keeps roughly the same length

7. Reply with a JSON object with these fields:
   - "languageName": "{item.topic_name}"
   - "needsUpdate": true or false
   - "updatedContent": the complete updated markdown ("" if no update)
   - "changeSummary": what changed and why (or "No changes needed")
   - "filePath": "{item.file_path}"

## Current Document Content

```markdown
{item.current_content}
```
"""

    async def evaluate(
        self,
        item: WorkItem,
        prompt: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> Verdict:
        """Run the tool loop for *item* and return its verdict.

        Raises ``AgentError`` on unusable output and ``AgentCancelled`` once
        *cancel_event* is set; transport errors from the reasoning client
        propagate unchanged.
        """
        tools = self.toolbelt.bind(cancel_event).agent_tools()
        run = await self.invoke(
            prompt, tools=tools, output_model=EvaluationOutput, cancel_event=cancel_event,
        )
        output: EvaluationOutput = run.output
        logger.debug(
            "%s: needs_update=%s (%d tool calls, %d turns)",
            item.topic_name, output.needs_update, len(run.tool_calls), run.turns,
        )
        return Verdict(
            topic_name=item.topic_name,
            file_path=item.file_path,
            needs_update=output.needs_update,
            updated_content=output.updated_content if output.needs_update else "",
            change_summary=output.change_summary,
        )
