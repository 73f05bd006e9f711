"""Response builder utilities for structured JSON output.

All tools return JSON with a standard structure:

{
    "data": {...},           # Main data payload
    "metadata": {...}        # Provider, timestamps
}

or, on failure:

{
    "error": {"message": "...", "type": "...", "timestamp": "..."}
}
"""

import json
from datetime import datetime
from typing import Any, cast


def _convert_datetimes(obj: Any) -> str | dict[str, Any] | list[Any] | Any:
    """Recursively convert datetime objects to ISO strings."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, dict):
        return {str(k): _convert_datetimes(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_convert_datetimes(item) for item in obj]
    return obj


class ResponseBuilder:
    """Builder for standardized JSON responses."""

    @staticmethod
    def build_response(
        data: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        provider: str | None = None,
    ) -> str:
        """Build standardized JSON response.

        Args:
            data: Main data payload
            metadata: Optional metadata (will be enriched with timestamp)
            provider: Optional provider name for metadata

        Returns:
            JSON string with "data" and "metadata" keys
        """
        response: dict[str, Any] = {"data": cast(dict[str, Any], _convert_datetimes(data))}

        meta = cast(dict[str, Any], _convert_datetimes(metadata or {}))
        meta["fetched_at"] = datetime.now().isoformat()
        if provider:
            meta["provider"] = provider

        response["metadata"] = meta

        return json.dumps(response, indent=2)

    @staticmethod
    def build_error_response(
        error_message: str,
        error_type: str = "error",
        suggestions: list[str] | None = None,
    ) -> str:
        """Build standardized error response.

        Args:
            error_message: Human-readable error message
            error_type: Type of error (e.g., "not_found", "auth_failed", "not_authenticated")
            suggestions: Optional list of suggestions to resolve the error

        Returns:
            JSON string with error structure
        """
        response: dict[str, dict[str, str | list[str]]] = {
            "error": {
                "message": error_message,
                "type": error_type,
                "timestamp": datetime.now().isoformat(),
            }
        }

        if suggestions:
            response["error"]["suggestions"] = suggestions

        return json.dumps(response, indent=2)
