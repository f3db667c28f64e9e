"""Tool contract definitions and registry.

Each tool an agent may call is described by a ``ToolContract`` that
specifies its name, description and parameter schema. Contracts render to
the function-tool format of the chat completions API and validate the
arguments the model sends back before anything is dispatched.

The ``TOOL_REGISTRY`` maps tool names → contracts for the local
verification tools. Remote tools (from the GitHub gateway) are wrapped in
contracts at runtime with their upstream JSON schema.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Parameter & contract models
# ---------------------------------------------------------------------------

class ToolParameter(BaseModel):
    """Schema for a single parameter of a tool."""
    name: str
    type: str                       # "string", "integer", "array", ...
    description: str = ""
    required: bool = True
    default: Any = None


class ToolContract(BaseModel):
    """JSON-schema-style contract for an agent tool."""
    name: str                       # e.g. "check_resource_urls"
    description: str = ""
    category: str = ""              # "verification" | "repository"
    parameters: list[ToolParameter] = Field(default_factory=list)
    input_schema: dict[str, Any] | None = None  # raw schema for remote tools

    @property
    def param_names(self) -> list[str]:
        return [p.name for p in self.parameters]

    def json_schema(self) -> dict[str, Any]:
        """Return the JSON schema of the tool's arguments object."""
        if self.input_schema is not None:
            return self.input_schema
        properties: dict[str, Any] = {}
        for p in self.parameters:
            prop: dict[str, Any] = {"type": p.type}
            if p.description:
                prop["description"] = p.description
            properties[p.name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_openai_tool(self) -> dict[str, Any]:
        """Render as a chat-completions ``tools`` entry."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }

    def validate_params(self, params: dict[str, Any]) -> list[str]:
        """Return a list of validation errors (empty = valid)."""
        errors: list[str] = []
        if self.input_schema is not None:
            for name in self.input_schema.get("required", []):
                if name not in params:
                    errors.append(f"Missing required parameter: {name}")
            return errors
        for p in self.parameters:
            if p.required and p.name not in params:
                errors.append(f"Missing required parameter: {p.name}")
        return errors


@dataclass
class AgentTool:
    """A contract bound to the coroutine that executes it."""
    contract: ToolContract
    handler: Callable[[dict[str, Any]], Awaitable[Any]]

    @property
    def name(self) -> str:
        return self.contract.name


# ---------------------------------------------------------------------------
# Tool registry, populated at import time
# ---------------------------------------------------------------------------

TOOL_REGISTRY: dict[str, ToolContract] = {}


def register_tool(contract: ToolContract) -> ToolContract:
    """Register a tool contract in the global registry."""
    TOOL_REGISTRY[contract.name] = contract
    return contract


# ---------------------------------------------------------------------------
# Verification tools
# ---------------------------------------------------------------------------

READ_FRONTMATTER = register_tool(ToolContract(
    name="read_frontmatter",
    description=(
        "Parse the YAML front-matter of a best-practices markdown document. "
        "Returns language_version, last_checked, resource_hash and "
        "version_source_url, plus every URL in the ## Resources section."
    ),
    category="verification",
    parameters=[
        ToolParameter(name="markdown_content", type="string", description="Full markdown content of the document"),
    ],
))

CHECK_RESOURCE_URLS = register_tool(ToolContract(
    name="check_resource_urls",
    description=(
        "Check resource URLs for availability. Returns url, status_code, "
        "is_accessible and a snippet (first 500 chars) for each URL."
    ),
    category="verification",
    parameters=[
        ToolParameter(name="urls", type="string", description="Comma-separated list of URLs to check"),
    ],
))

FETCH_URL_CONTENT = register_tool(ToolContract(
    name="fetch_url_content",
    description=(
        "Fetch the text content of a single URL (up to 10000 characters) "
        "for deeper analysis of version information or significant changes."
    ),
    category="verification",
    parameters=[
        ToolParameter(name="url", type="string", description="The URL to fetch"),
    ],
))

CHECK_LATEST_VERSION = register_tool(ToolContract(
    name="check_latest_version",
    description=(
        "Fetch the version source page and list stable version strings found "
        "on it. Prerelease versions (alpha, beta, rc, preview, dev, canary, "
        "nightly, pre, snapshot, insider) are removed. Does not decide which "
        "version is newer."
    ),
    category="verification",
    parameters=[
        ToolParameter(name="version_source_url", type="string", description="Page listing releases, e.g. https://www.python.org/downloads/"),
        ToolParameter(name="current_version", type="string", description="Currently tracked version from front-matter, e.g. '3.13'"),
        ToolParameter(name="language_name", type="string", description="Language or framework name for context"),
    ],
))

COMPARE_CONTENT_HASH = register_tool(ToolContract(
    name="compare_content_hash",
    description=(
        "Compute a SHA-256 hash of the given content and compare it with the "
        "stored hash from front-matter. Returns new_hash, stored_hash, "
        "has_changed and is_first_check."
    ),
    category="verification",
    parameters=[
        ToolParameter(name="content", type="string", description="Content to hash, typically concatenated resource page content"),
        ToolParameter(name="stored_hash", type="string", description="Previously stored hash (empty string if none)", required=False, default=""),
    ],
))
