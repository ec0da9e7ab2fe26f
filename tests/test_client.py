"""Tests for the resilient request engine."""

import asyncio

import httpx
import pytest

from ticktick_mcp.client import (
    PROJECT_NOT_FOUND_HINT,
    TASK_NOT_FOUND_HINT,
    retry_delay,
)
from ticktick_mcp.errors import (
    ForbiddenError,
    NetworkError,
    NotFoundError,
    RateLimitedError,
    RequestTimeoutError,
    ResponseParseError,
    ServerError,
    UnauthorizedError,
)


def _delays(mock_sleep):
    return [call.args[0] for call in mock_sleep.await_args_list]


@pytest.mark.asyncio
async def test_request_success_sends_auth_headers(make_client, mock_sleep):
    """Successful GET returns parsed JSON and carries bearer auth."""
    client, recorder = make_client(lambda r: httpx.Response(200, json=[{"id": "p1"}]))

    result = await client.request("GET", "/project")

    assert result == [{"id": "p1"}]
    request = recorder.requests[0]
    assert request.headers["Authorization"] == "Bearer test-token"
    assert request.headers["Content-Type"] == "application/json"
    assert recorder.paths == ["/project"]
    mock_sleep.assert_not_awaited()
    await client.close()


@pytest.mark.asyncio
async def test_request_token_override(make_client, mock_sleep):
    client, recorder = make_client(lambda r: httpx.Response(200, json={}))

    await client.request("GET", "/project", token="other-token")

    assert recorder.requests[0].headers["Authorization"] == "Bearer other-token"
    await client.close()


@pytest.mark.asyncio
async def test_request_without_token_fails_before_io(make_client, mock_sleep):
    client, recorder = make_client(lambda r: httpx.Response(200), access_token=None)

    with pytest.raises(UnauthorizedError):
        await client.request("GET", "/project")

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_rate_limit_retried_with_backoff_then_fails(make_client, mock_sleep):
    """429 is retried three times with 1s, 2s, 4s delays."""
    client, recorder = make_client(lambda r: httpx.Response(429, text="slow down"))

    with pytest.raises(RateLimitedError) as exc_info:
        await client.request("GET", "/project")

    assert len(recorder.requests) == 4
    assert _delays(mock_sleep) == [1.0, 2.0, 4.0]
    assert exc_info.value.status == 429
    assert exc_info.value.retryable is True
    await client.close()


@pytest.mark.asyncio
async def test_not_found_is_never_retried(make_client, mock_sleep):
    client, recorder = make_client(lambda r: httpx.Response(404, json={"errorMessage": "gone"}))

    with pytest.raises(NotFoundError) as exc_info:
        await client.request("GET", "/project/p1/task/t1")

    assert len(recorder.requests) == 1
    mock_sleep.assert_not_awaited()
    assert exc_info.value.hint == TASK_NOT_FOUND_HINT
    assert exc_info.value.kind == "not_found"
    assert "gone" in exc_info.value.message
    await client.close()


@pytest.mark.asyncio
async def test_project_not_found_hint(make_client, mock_sleep):
    client, _ = make_client(lambda r: httpx.Response(404))

    with pytest.raises(NotFoundError) as exc_info:
        await client.request("GET", "/project/p1")

    assert exc_info.value.hint == PROJECT_NOT_FOUND_HINT
    await client.close()


@pytest.mark.asyncio
async def test_unknown_exception_500_is_not_retried(make_client, mock_sleep):
    body = {"errorId": "abc", "errorCode": "unknown_exception", "errorMessage": "boom"}
    client, recorder = make_client(lambda r: httpx.Response(500, json=body))

    with pytest.raises(ServerError) as exc_info:
        await client.request("POST", "/task", json={"title": "x"})

    assert len(recorder.requests) == 1
    mock_sleep.assert_not_awaited()
    assert exc_info.value.retryable is False
    assert exc_info.value.error_code == "unknown_exception"
    await client.close()


@pytest.mark.asyncio
async def test_server_error_recovers_after_retry(make_client, mock_sleep):
    responses = iter([httpx.Response(502), httpx.Response(200, json={"id": "p1"})])
    client, recorder = make_client(lambda r: next(responses))

    result = await client.request("GET", "/project/p1")

    assert result == {"id": "p1"}
    assert len(recorder.requests) == 2
    assert _delays(mock_sleep) == [1.0]
    await client.close()


@pytest.mark.asyncio
async def test_exhausted_500_on_project_path_gets_hint(make_client, mock_sleep):
    client, recorder = make_client(lambda r: httpx.Response(500, text="oops"))

    with pytest.raises(ServerError) as exc_info:
        await client.request("GET", "/project/p1/data")

    assert len(recorder.requests) == 4
    assert exc_info.value.hint is not None
    assert "project" in exc_info.value.hint
    assert exc_info.value.details == {"body": "oops"}
    await client.close()


@pytest.mark.asyncio
async def test_other_status_is_permanent_server_error(make_client, mock_sleep):
    client, recorder = make_client(lambda r: httpx.Response(400, json={"errorMessage": "bad"}))

    with pytest.raises(ServerError) as exc_info:
        await client.request("POST", "/project", json={})

    assert exc_info.value.retryable is False
    assert exc_info.value.status == 400
    assert len(recorder.requests) == 1
    await client.close()


@pytest.mark.asyncio
async def test_other_status_ignores_retry_signals_in_body(make_client, mock_sleep):
    body = {"errorMessage": "try again later", "retryable": True}
    client, recorder = make_client(lambda r: httpx.Response(409, json=body))

    with pytest.raises(ServerError) as exc_info:
        await client.request("POST", "/task", json={"title": "x"})

    assert exc_info.value.retryable is False
    assert len(recorder.requests) == 1
    mock_sleep.assert_not_awaited()
    await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("status,error_type", [(401, UnauthorizedError), (403, ForbiddenError)])
async def test_auth_errors_are_not_retried(make_client, mock_sleep, status, error_type):
    client, recorder = make_client(lambda r: httpx.Response(status))

    with pytest.raises(error_type):
        await client.request("GET", "/project")

    assert len(recorder.requests) == 1
    await client.close()


@pytest.mark.asyncio
async def test_empty_delete_response_returns_none(make_client, mock_sleep):
    client, _ = make_client(lambda r: httpx.Response(200))

    assert await client.request("DELETE", "/project/p1/task/t1") is None
    await client.close()


@pytest.mark.asyncio
async def test_non_json_success_returns_none(make_client, mock_sleep):
    client, _ = make_client(lambda r: httpx.Response(200, text="OK"))

    assert await client.request("POST", "/project/p1/task/t1/complete") is None
    await client.close()


@pytest.mark.asyncio
async def test_malformed_json_raises_parse_error(make_client, mock_sleep):
    client, recorder = make_client(
        lambda r: httpx.Response(200, content=b"{not json", headers={"content-type": "application/json"})
    )

    with pytest.raises(ResponseParseError):
        await client.request("GET", "/project")

    assert len(recorder.requests) == 1
    await client.close()


@pytest.mark.asyncio
async def test_timeout_retried_then_raised(make_client, mock_sleep):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client, recorder = make_client(handler)

    with pytest.raises(RequestTimeoutError) as exc_info:
        await client.request("GET", "/project")

    assert len(recorder.requests) == 4
    assert exc_info.value.retryable is True
    await client.close()


@pytest.mark.asyncio
async def test_timeout_bounds_slow_response(make_client):
    """A response slower than the configured timeout is cancelled."""
    async def handler(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json=[])

    client, recorder = make_client(handler, timeout=0.05, max_retries=0)

    with pytest.raises(RequestTimeoutError) as exc_info:
        await client.request("GET", "/project")

    assert len(recorder.requests) == 1
    assert exc_info.value.retryable is True
    await client.close()


@pytest.mark.asyncio
async def test_network_error_is_retried(make_client, mock_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json=[])

    client, _ = make_client(handler)

    assert await client.request("GET", "/project") == []
    assert len(calls) == 2
    await client.close()


@pytest.mark.asyncio
async def test_network_error_after_retries(make_client, mock_sleep):
    def handler(request):
        raise httpx.ConnectError("dns failure", request=request)

    client, _ = make_client(handler, max_retries=1)

    with pytest.raises(NetworkError):
        await client.request("GET", "/project")

    assert _delays(mock_sleep) == [1.0]
    await client.close()


def test_retry_delay_is_capped():
    assert [retry_delay(n) for n in range(6)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


@pytest.mark.asyncio
async def test_client_context_manager_closes(make_client):
    client, _ = make_client(lambda r: httpx.Response(200, json=[]))

    async with client:
        await client.request("GET", "/project")
        assert client._client is not None

    assert client._client is None
