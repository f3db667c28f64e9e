"""Agent tools: contracts, the verification toolbelt and the GitHub gateway.

Tool modules
------------
frontmatter_tools — read_frontmatter
resource_tools    — check_resource_urls, fetch_url_content
version_tools     — check_latest_version (prerelease filtering)
hash_tools        — compare_content_hash
toolbelt          — VerificationToolbelt, binds the above to one HTTP client
github_gateway    — create_branch, push_files, create_pull_request (remote)
"""

from .contracts import TOOL_REGISTRY, AgentTool, ToolContract, ToolParameter
from .github_gateway import ALLOWED_TOOLS, GatewayError, GithubToolGateway
from .hash_tools import HashComparison, compare_content_hash, compute_hash
from .http import create_http_client
from .resource_tools import ReachabilityResult
from .toolbelt import VerificationToolbelt
from .version_tools import VersionCheckResult

__all__ = [
    "ALLOWED_TOOLS",
    "TOOL_REGISTRY",
    "AgentTool",
    "GatewayError",
    "GithubToolGateway",
    "HashComparison",
    "ReachabilityResult",
    "ToolContract",
    "ToolParameter",
    "VerificationToolbelt",
    "VersionCheckResult",
    "compare_content_hash",
    "compute_hash",
    "create_http_client",
]
