"""Glass Companion MCP Server - Main entry point."""

from dotenv import load_dotenv
from fastmcp import FastMCP

from .companion import Companion
from .config import configure_logging, load_config
from .middleware import CompanionMiddleware

# Load environment variables
load_dotenv()


def create_server(companion: Companion | None = None) -> FastMCP:
    """Create and configure the FastMCP server.

    Args:
        companion: Pre-built session managers; built from the environment when omitted

    Returns:
        Configured FastMCP instance
    """
    if companion is None:
        config = load_config()
        configure_logging(config)
        companion = Companion.from_config(config)

    mcp = FastMCP("Glass Companion")
    mcp.add_middleware(CompanionMiddleware(companion))

    from .tools.sessions import (
        begin_authorization,
        complete_authorization,
        export_credentials,
        get_session_state,
        sign_out,
    )

    mcp.tool(
        annotations={
            "readOnlyHint": False,
            "openWorldHint": True,
        }
    )(begin_authorization)
    mcp.tool(
        annotations={
            "readOnlyHint": False,
            "openWorldHint": True,
        }
    )(complete_authorization)
    mcp.tool(
        annotations={
            "readOnlyHint": True,
            "openWorldHint": False,
        }
    )(get_session_state)
    mcp.tool(
        annotations={
            "readOnlyHint": True,
            "openWorldHint": False,
        }
    )(export_credentials)
    mcp.tool(
        annotations={
            "readOnlyHint": False,
            "openWorldHint": False,
            "destructiveHint": True,
        }
    )(sign_out)

    return mcp


def main():
    """Main entry point for the Glass Companion MCP server."""
    mcp = create_server()
    mcp.run()


if __name__ == "__main__":
    main()
