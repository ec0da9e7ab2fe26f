#!/usr/bin/env python3
"""
TickTick MCP Server

This MCP server provides tools and resources to work with TickTick projects
and tasks over stdio. Configuration comes from the environment (or a .env
file next to this script):

    TICKTICK_ACCESS_TOKEN   OAuth access token (required)
    TICKTICK_BASE_URL       API base URL (default https://api.ticktick.com/open/v1)
    TICKTICK_TIMEOUT        Request timeout in seconds (default 10)
    TICKTICK_LOG_LEVEL      Log level (default INFO)
"""

import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from ticktick_mcp.client import TickTickClient
from ticktick_mcp.models import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, TickTickConfig
from ticktick_mcp.service import TickTickService
from ticktick_mcp.tools import register_resources, register_tools

logger = logging.getLogger("ticktick_mcp")


def load_config() -> TickTickConfig:
    """Build the client configuration from environment variables."""
    load_dotenv(Path(__file__).resolve().parent / ".env")
    return TickTickConfig(
        access_token=os.getenv("TICKTICK_ACCESS_TOKEN") or None,
        base_url=os.getenv("TICKTICK_BASE_URL", DEFAULT_BASE_URL),
        timeout=float(os.getenv("TICKTICK_TIMEOUT", DEFAULT_TIMEOUT)),
    )


def build_server(config: TickTickConfig) -> FastMCP:
    mcp = FastMCP("ticktick_mcp")
    service = TickTickService(TickTickClient(config))
    register_tools(mcp, lambda ctx: service)
    register_resources(mcp, service, config)
    return mcp


def main() -> None:
    # stdout carries the MCP stream
    logging.basicConfig(
        stream=sys.stderr,
        level=os.getenv("TICKTICK_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    )
    config = load_config()
    if not config.access_token:
        print("Error: TICKTICK_ACCESS_TOKEN is not set.", file=sys.stderr)
        print("Set it in the environment or in a .env file next to this script.", file=sys.stderr)
        sys.exit(1)

    logger.info("Starting TickTick MCP server (%s)", config.base_url)
    build_server(config).run()


if __name__ == "__main__":
    main()
