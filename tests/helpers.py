"""Helper functions for tests."""

import json
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlsplit

from mcp.types import TextContent

if TYPE_CHECKING:
    from fastmcp.client.client import CallToolResult


def get_text_content(result: "CallToolResult") -> str:
    """Extract text content from a CallToolResult.

    Args:
        result: The result from calling a tool

    Returns:
        The text content from the result

    Raises:
        AssertionError: If content is not TextContent
    """
    assert len(result.content) > 0, "Result has no content"
    content = result.content[0]
    assert isinstance(content, TextContent), f"Expected TextContent, got {type(content)}"
    return content.text


def get_json_content(result: "CallToolResult") -> dict[str, Any]:
    """Decode the JSON document a tool returned."""
    return json.loads(get_text_content(result))


def query_params(url: str) -> dict[str, str]:
    """Single-valued query parameters of an authorization URL."""
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}
