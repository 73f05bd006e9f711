"""Middleware that hands the companion's session managers to tools."""

from collections.abc import Callable
from typing import Any

from fastmcp.server.middleware import Middleware, MiddlewareContext

from .companion import Companion


class CompanionMiddleware(Middleware):
    """Injects the Companion into the context state for every tool call.

    This middleware:
    1. Receives the Companion at initialization
    2. Restores stored sessions once, before the first tool call
    3. Injects the Companion into the context state, read by tools via
       ctx.get_state("companion")
    """

    def __init__(self, companion: Companion) -> None:
        self.companion = companion
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        await self.companion.initialize()
        self._initialized = True

    async def on_call_tool(self, context: MiddlewareContext, call_next: Callable[..., Any]):
        """Inject the Companion before every tool call."""
        await self._ensure_initialized()
        if context.fastmcp_context:
            context.fastmcp_context.set_state("companion", self.companion)

        return await call_next(context)
