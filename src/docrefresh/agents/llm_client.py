"""Async OpenAI client construction for the agents layer.

Provides:
- ``create_client()`` — an ``AsyncOpenAI`` (or ``AsyncAzureOpenAI``) client,
  built once at process start and passed to every agent.
- ``parse_json_reply()`` — tolerant JSON decoding of a model reply
  (handles markdown code fences).
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from openai import AsyncAzureOpenAI, AsyncOpenAI

logger = logging.getLogger("docrefresh.llm")

DEFAULT_MODEL = "gpt-4o"
DEFAULT_AZURE_API_VERSION = "2024-10-21"


def create_client(
    *,
    api_key: str | None = None,
    base_url: str | None = None,
    azure_endpoint: str | None = None,
    azure_api_version: str = DEFAULT_AZURE_API_VERSION,
) -> AsyncOpenAI:
    """Return an async chat-completions client.

    With *azure_endpoint* an ``AsyncAzureOpenAI`` client is built (key from
    *api_key* or ``AZURE_OPENAI_KEY``); otherwise a plain ``AsyncOpenAI``
    client (key from *api_key* or ``OPENAI_API_KEY``).
    """
    if azure_endpoint:
        key = api_key or os.environ.get("AZURE_OPENAI_KEY", "")
        if not key:
            raise RuntimeError(
                "No Azure OpenAI key found. Set AZURE_OPENAI_KEY or pass api_key=."
            )
        logger.debug("Using Azure OpenAI endpoint %s", azure_endpoint)
        return AsyncAzureOpenAI(
            api_key=key,
            azure_endpoint=azure_endpoint,
            api_version=azure_api_version,
        )

    key = api_key or os.environ.get("OPENAI_API_KEY", "")
    if not key:
        raise RuntimeError(
            "No OpenAI API key found. Set OPENAI_API_KEY or pass api_key=."
        )
    kwargs: dict[str, Any] = {"api_key": key}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)


def parse_json_reply(text: str) -> Any:
    """Decode a JSON reply, stripping a surrounding markdown code fence.

    Raises ``json.JSONDecodeError`` when the text is not JSON.
    """
    text = (text or "").strip()
    if text.startswith("```"):
        lines = text.splitlines()
        text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:])
    return json.loads(text)
