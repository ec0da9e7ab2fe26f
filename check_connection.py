#!/usr/bin/env python3
"""
Connection check for the TickTick MCP Server

This script verifies that your access token is working and the server can
reach the TickTick Open API.
"""

import asyncio
import os
import sys

from dotenv import load_dotenv

from ticktick_mcp.client import TickTickClient
from ticktick_mcp.errors import TickTickError
from ticktick_mcp.models import DEFAULT_BASE_URL, TickTickConfig
from ticktick_mcp.service import TickTickService


async def check_connection(service: TickTickService) -> bool:
    """Check that the token can list projects."""
    print("\n🔄 Testing connection to TickTick API...")
    try:
        projects = await service.list_projects()
    except TickTickError as e:
        print(f"❌ Connection failed: {e}")
        if e.status is not None:
            print(f"   Status code: {e.status}")
        return False

    print("✅ Successfully connected to TickTick!")
    print(f"   Found {len(projects)} projects")
    return True


async def check_features(service: TickTickService) -> None:
    """Exercise the read endpoints"""
    print("\n🧪 Testing API features...\n")

    print("1. Testing project data endpoint...")
    try:
        projects = await service.get_all_projects_with_tasks()
        total = sum(len(p.tasks) for p in projects)
        print(f"   ✓ Loaded {len(projects)} projects with {total} tasks")
    except TickTickError as e:
        print(f"   ✗ Project data test failed: {e}")

    print("2. Testing stats aggregate...")
    try:
        stats = await service.compute_stats()
        print(f"   ✓ {stats.pending_tasks} pending, {stats.overdue_tasks_count} overdue, "
              f"{stats.today_tasks_count} due today")
    except TickTickError as e:
        print(f"   ✗ Stats test failed: {e}")


async def main() -> int:
    """Run all checks"""
    print("=" * 50)
    print("TickTick MCP Server - Connection Test")
    print("=" * 50)

    load_dotenv()
    token = os.getenv("TICKTICK_ACCESS_TOKEN")
    if not token:
        print("❌ ERROR: TICKTICK_ACCESS_TOKEN environment variable not set")
        print("\nPlease set your access token:")
        print("  export TICKTICK_ACCESS_TOKEN='your-token-here'")
        return 1

    print(f"✓ Access token found: {token[:10]}...")
    config = TickTickConfig(
        access_token=token,
        base_url=os.getenv("TICKTICK_BASE_URL", DEFAULT_BASE_URL),
    )

    async with TickTickClient(config) as client:
        service = TickTickService(client)
        success = await check_connection(service)
        if success:
            await check_features(service)

    print("\n" + "=" * 50)
    if success:
        print("✅ All checks passed! Your setup is ready.")
        print("=" * 50)
        print("\nNext steps:")
        print("1. Add ticktick_server.py to your MCP client config")
        print("2. Restart the client")
        return 0

    print("❌ Checks failed. Please check your setup.")
    print("=" * 50)
    print("\nTroubleshooting:")
    print("1. Verify your access token is correct and not expired")
    print("2. Check you have internet connection")
    print("3. For Dida365 accounts set TICKTICK_BASE_URL=https://api.dida365.com/open/v1")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
