"""
TickTick MCP Server - Smithery Deployment

This MCP server provides tools to interact with TickTick projects and tasks.
Built with FastMCP and deployed on Smithery for hosted, install-free access.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Set, Tuple

from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel, ConfigDict, Field
from smithery.decorators import smithery

from ticktick_mcp.client import TickTickClient
from ticktick_mcp.models import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, TickTickConfig
from ticktick_mcp.service import TickTickService
from ticktick_mcp.tools import register_tools

smithery_server = smithery.server

logger = logging.getLogger(__name__)

MAX_CACHED_SESSIONS = 32


# ============================================================================
# Configuration Schema
# ============================================================================

class TickTickSessionConfig(BaseModel):
    """Configuration schema for user-provided API token."""
    model_config = ConfigDict(str_strip_whitespace=True)

    access_token: str = Field(
        ...,
        description="Your TickTick Open API access token (OAuth, scopes tasks:read tasks:write)",
        min_length=10
    )
    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="TickTick API base URL (use https://api.dida365.com/open/v1 for Dida365)"
    )


class ServiceCache:
    """
    One ``TickTickService`` per ``(access_token, base_url)``.

    Holds at most ``max_size`` services. The least recently used one is
    evicted and its HTTP client closed in the background.
    """

    def __init__(self, max_size: int = MAX_CACHED_SESSIONS):
        self.max_size = max_size
        self._services: "OrderedDict[Tuple[str, str], TickTickService]" = OrderedDict()
        self._closing: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._services

    def get(self, access_token: str, base_url: str) -> TickTickService:
        key = (access_token, base_url)
        if key in self._services:
            self._services.move_to_end(key)
            return self._services[key]

        config = TickTickConfig(access_token=access_token, base_url=base_url, timeout=DEFAULT_TIMEOUT)
        service = TickTickService(TickTickClient(config))
        self._services[key] = service
        if len(self._services) > self.max_size:
            _, evicted = self._services.popitem(last=False)
            logger.debug("Evicting cached session for %s", base_url)
            task = asyncio.get_running_loop().create_task(evicted.client.close())
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)
        return service


# ============================================================================
# Server Creation Function with Smithery Decorator
# ============================================================================

@smithery_server(config_schema=TickTickSessionConfig)
def create_server():
    """
    Create and configure the TickTick MCP server.

    This function is called by Smithery to initialize the server with user configuration.
    Each distinct session configuration gets its own client, reused across calls.

    Returns:
        Configured FastMCP server instance
    """
    mcp = FastMCP("ticktick_mcp")
    services = ServiceCache()

    def resolve_service(ctx: Context) -> TickTickService:
        session: TickTickSessionConfig = ctx.session_config
        return services.get(session.access_token, session.base_url)

    register_tools(mcp, resolve_service)

    # Return the configured server
    return mcp
