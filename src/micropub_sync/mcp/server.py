"""MCP Server for Micropub content sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents reconcile a local Markdown workspace with a Micropub endpoint,
publish drafts and upload media.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Mapping
from typing import Any

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..config_loader import ensure_config
from ..core.responses import expect_json, send
from ..logger import setup_logging
from .context import ServiceContext
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

SERVER_NAME = "micropub-sync-server"


# ---------------------------------------------------------------------------
# Ping tool
# ---------------------------------------------------------------------------


async def _handle_ping(
    context: ServiceContext, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- query ``q=config`` on the Micropub endpoint."""
    response = await send(
        context.client, "ping", "GET", query={"q": "config"}
    )
    body = expect_json(response, "ping")
    service = body if isinstance(body, Mapping) else {}
    media = context.config.media_endpoint or service.get("media-endpoint")
    text = (
        f"Micropub endpoint {context.config.micropub_url} reachable "
        f"(HTTP {response.status}). "
        f"Media endpoint: {media or 'not configured'}"
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={
            "status": response.status,
            "micropubUrl": context.config.micropub_url,
            "mediaEndpoint": media,
        },
    )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test Micropub endpoint connectivity and token acceptance",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


def create_server(context: ServiceContext, registry: ToolRegistry) -> Server:
    """Build an MCP ``Server`` whose handlers close over *context*.

    Args:
        context: Services passed to every tool handler.
        registry: Tools to expose.

    Returns:
        A configured, not yet running, Server.
    """
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        """List available tools."""
        return registry.list_tools()

    @server.call_tool()
    async def handle_call_tool(
        name: str, arguments: dict | None
    ) -> types.CallToolResult:
        """Handle tool execution via ToolRegistry dispatch."""
        try:
            return await registry.call_tool(name, arguments, context)
        except ValueError as e:
            # Unknown tool name
            return build_error_response(
                "unknown_tool",
                str(e),
                "Use list_tools to see available tools.",
            )

    return server


def build_registry() -> ToolRegistry:
    """Registry with the ping tool and every content and media tool."""
    return ToolRegistry([PING_SPEC] + ALL_SPECS)


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict[str, Any] | None = None):
    """Run the MCP server with stdio transport.

    This function sets up logging for MCP mode (file only, never stdout),
    verifies the Micropub endpoint via the lifespan manager, and starts the
    server with stdio transport for JSON-RPC communication.

    Args:
        config_overrides: Optional dict with config values to override (url,
            token, media_endpoint, workspace, insecure, log_file)
    """
    log_file = (
        config_overrides.get("log_file") if config_overrides else None
    )

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(log_file=log_file)

    registry = build_registry()
    logger.info("Registered %d tools", registry.tool_count())

    async with server_lifespan(config_overrides=config_overrides) as context:
        server = create_server(context, registry)
        async with mcp.server.stdio.stdio_server() as (
            read_stream,
            write_stream,
        ):
            init_options = InitializationOptions(
                server_name=SERVER_NAME,
                server_version=__version__,
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            )
            await server.run(read_stream, write_stream, init_options)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Micropub Sync Server - Model Context Protocol server for Micropub content sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .micropub/config.yml)
  micropub-sync-server

  # Override the Micropub endpoint
  micropub-sync-server --url https://example.com/micropub

  # Sync a specific workspace and enable uploads
  micropub-sync-server --workspace ~/blog --media-endpoint https://example.com/media

  # Use with insecure SSL (development only)
  micropub-sync-server --url https://localhost:8443/micropub --insecure

  # Custom log file location
  micropub-sync-server --log-file /var/log/micropub-sync.log

  # Write a starter config file and exit
  micropub-sync-server --init-config

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--url",
        help="Override Micropub endpoint URL (takes precedence over MICROPUB_URL env var and config files)",
    )
    parser.add_argument(
        "--token",
        help="Override app token (takes precedence over MICROPUB_TOKEN env var and config files)"
        " (visible in process list -- prefer MICROPUB_TOKEN env var for security)",
    )
    parser.add_argument(
        "--media-endpoint",
        help="Override media endpoint URL (takes precedence over MICROPUB_MEDIA_ENDPOINT)",
    )
    parser.add_argument(
        "--workspace",
        help="Workspace root holding content/ and uploads/ (default: current directory)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/micropub-sync.log",
        help="Log file path (default: /tmp/micropub-sync.log)",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a commented starter .micropub/config.yml (unless a config file exists) and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"micropub-sync-server version {__version__}",
    )

    args = parser.parse_args()

    if args.init_config:
        print(f"Config file: {ensure_config()}", file=sys.stderr)
        return

    config_overrides: dict[str, Any] = {}
    if args.url:
        config_overrides["url"] = args.url
    if args.token:
        config_overrides["token"] = args.token
    if args.media_endpoint:
        config_overrides["media_endpoint"] = args.media_endpoint
    if args.workspace:
        config_overrides["workspace"] = args.workspace
    if args.insecure:
        config_overrides["insecure"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    # Reported before the stdio transport starts
    if config_overrides:
        override_keys = [k for k in config_overrides if k != "token"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides or None))
    except RuntimeError:
        # Already reported on stderr by the lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
