"""
Web Search Tool
===============

web_search queries the Brave Search API and returns a numbered list of
results (title, URL, description).

Brave API Notes:
- Uses httpx for async HTTP requests
- Auth is the X-Subscription-Token header (SEARCH_API_KEY)
- count is clamped to 1..10; results are localized to the US
"""

import httpx

from clawgate.tools import Tool, ToolContext, ToolRegistry, ToolResult
from clawgate.utils.logger import Logger

logger = Logger("WebTools")

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
DEFAULT_COUNT = 5


def format_results(results: list[dict]) -> str:
    if not results:
        return "No results found"

    lines = []
    for i, item in enumerate(results, start=1):
        lines.append(
            f"{i}. {item.get('title', '')}\n"
            f"   URL: {item.get('url', '')}\n"
            f"   {item.get('description', '')}\n"
        )
    return "\n".join(lines)


def _clamp_count(raw) -> int:
    try:
        count = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_COUNT
    return max(1, min(10, count))


def build_web_search_tool(
    api_key: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Tool:
    """
    Create the web_search tool bound to an API key.

    Args:
        api_key: Brave Search subscription token
        transport: Optional httpx transport (tests pass a MockTransport)
    """

    async def _search(params: dict, ctx: ToolContext) -> ToolResult:
        query = params.get("query")
        if not isinstance(query, str) or not query.strip():
            return ToolResult.fail("Missing 'query' parameter")

        count = _clamp_count(params.get("count", DEFAULT_COUNT))
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": api_key,
        }
        query_params = {"q": query, "count": str(count), "country": "US"}

        try:
            async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
                response = await client.get(BRAVE_SEARCH_URL, headers=headers, params=query_params)
        except httpx.HTTPError as e:
            logger.error("Search request failed", e)
            return ToolResult.fail(f"Search failed: {e}")

        if response.status_code >= 400:
            logger.error(f"Search API error: {response.status_code} - {response.text}")
            return ToolResult.fail(f"Search API error: {response.status_code} - {response.text}")

        try:
            results = response.json().get("web", {}).get("results", [])
        except ValueError as e:
            return ToolResult.fail(f"Search returned invalid JSON: {e}")

        return ToolResult.ok(format_results(results))

    return Tool(
        name="web_search",
        description="Search the web with Brave Search.",
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query",
                },
                "count": {
                    "type": "integer",
                    "description": "Number of results (1-10, default 5)",
                    "default": DEFAULT_COUNT,
                },
            },
            "required": ["query"],
        },
        execute=_search,
    )


def register_web_tools(registry: ToolRegistry, api_key: str) -> None:
    registry.register(build_web_search_tool(api_key))
