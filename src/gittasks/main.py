"""Main entry point for the gittasks MCP server."""

import argparse
import asyncio
import logging
import sys

import httpx
from fastmcp import FastMCP

from gittasks.config import Config
from gittasks.errors import ConfigError
from gittasks.store import validate_settings
from gittasks.tools import register_tools

logger = logging.getLogger(__name__)


def create_server(config: Config, http: httpx.AsyncClient | None = None) -> FastMCP:
    """Create and configure the MCP server with all components.

    Args:
        config: Configuration instance with all settings.
        http: Shared HTTP client for provider calls.
    """
    mcp = FastMCP(
        name="gittasks",
        instructions=(
            "gittasks manages markdown tasks stored in a Git repository. Each task is "
            "a file with a title, a priority from 1 (highest) to 5 and a markdown body. "
            "Use list_tasks to browse a project folder and read_task before editing; "
            "every change is a commit, and task_history shows earlier versions."
        ),
    )

    # Incomplete settings are reported now but only fail the calls that need them
    try:
        validate_settings(config.provider_settings())
    except ConfigError as e:
        logger.warning("Provider not usable yet: %s", e)

    logger.info("Registering task tools...")
    register_tools(mcp, config, http)

    logger.info("Server configured successfully")
    return mcp


async def serve(config: Config) -> None:
    """Run the server over SSE; the shared HTTP client is closed when it stops."""
    async with httpx.AsyncClient(timeout=config.http_timeout) as http:
        mcp = create_server(config, http)
        logger.info("Starting MCP server on port %s...", config.port)
        await mcp.run_async(transport="sse", host="0.0.0.0", port=config.port)


def main() -> None:
    """Main function - starts the MCP server."""
    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    parser = argparse.ArgumentParser(
        description="gittasks - MCP server for markdown tasks in a Git repository"
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Run in read-only mode (disable write tools)",
    )
    args = parser.parse_args()

    # CLI flag overrides env var
    config = Config.from_env(read_only_override=args.read_only if args.read_only else None)

    logger.info("=" * 50)
    logger.info("gittasks starting...")
    logger.info("  PROVIDER:  %s", config.provider)
    logger.info("  FOLDER:    %s", config.folder)
    logger.info("  PORT:      %s", config.port)
    logger.info("  RETRIES:   %s", config.max_retries)
    logger.info("  READ_ONLY: %s", config.read_only)
    logger.info("=" * 50)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        sys.exit(0)
    except Exception:
        logger.exception("Server error")
        sys.exit(1)


if __name__ == "__main__":
    main()
