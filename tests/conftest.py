"""Shared test fixtures.

HTTP traffic goes through ``httpx.MockTransport`` so no test touches the
network, and the retry sleep is patched so backoff delays are recorded
instead of waited for.
"""

from __future__ import annotations

import json
from typing import Callable, List
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from ticktick_mcp.client import TickTickClient
from ticktick_mcp.models import TickTickConfig
from ticktick_mcp.service import TickTickService

BASE_URL = "https://api.test/open/v1"


class Recorder:
    """Wrap a handler and keep every request it receives."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def paths(self) -> List[str]:
        return [r.url.path.replace("/open/v1", "", 1) for r in self.requests]

    def body(self, index: int = -1):
        return json.loads(self.requests[index].content)


@pytest.fixture()
def config() -> TickTickConfig:
    return TickTickConfig(access_token="test-token", base_url=BASE_URL)


@pytest.fixture()
def mock_sleep():
    """Patch the backoff sleep; ``mock_sleep.await_args_list`` holds the delays."""
    with patch("ticktick_mcp.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.fixture()
def make_client(config):
    """Build a client whose requests are answered by ``handler``."""

    def _make(handler, **overrides) -> tuple[TickTickClient, Recorder]:
        recorder = Recorder(handler)
        cfg = config.model_copy(update=overrides) if overrides else config
        return TickTickClient(cfg, transport=httpx.MockTransport(recorder)), recorder

    return _make


@pytest.fixture()
def make_service(make_client):
    def _make(handler) -> tuple[TickTickService, Recorder]:
        client, recorder = make_client(handler)
        return TickTickService(client), recorder

    return _make
