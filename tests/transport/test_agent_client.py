"""Tests for the httpx agent client, using httpx.MockTransport."""

import asyncio
import json

import allure
import httpx
import pytest

from turnstream.config import AgentConfig
from turnstream.errors import PermissionActionError, TransportError, UnauthorizedError
from turnstream.transport.agent_client import AgentClient, is_retryable_permission_error
from turnstream.transport.base import ChatMessage, TurnRequest


BASE_URL = "http://agent.test"


def make_request():
    return TurnRequest(
        messages=[ChatMessage("user", "hi")],
        conversation_id="conv-1",
        agent_id="helper",
    )


def run_with_client(handler, action, retry_attempts=3):
    """Run ``action(agent)`` against a client whose HTTP goes to ``handler``."""
    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            agent = AgentClient(
                AgentConfig(base_url=BASE_URL, api_key="secret"),
                http_client=http,
                retry_attempts=retry_attempts,
                retry_delay=0,
            )
            return await action(agent)
    return asyncio.run(main())


async def collect_stream(agent):
    return [chunk async for chunk in agent.stream_turn(make_request())]


@allure.feature("Agent Client")
@allure.story("Turn streaming")
def test_stream_turn_posts_payload_and_yields_body():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b'data: {"type": "content", "content": "hi"}\n')

    chunks = run_with_client(handler, collect_stream)

    assert b"".join(chunks) == b'data: {"type": "content", "content": "hi"}\n'
    assert seen["url"] == f"{BASE_URL}/api/chat"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["assistantType"] == "helper"
    assert seen["body"]["conversation_id"] == "conv-1"
    assert seen["body"]["messages"] == [{"role": "user", "content": "hi"}]


@allure.feature("Agent Client")
@allure.story("Error mapping")
@pytest.mark.parametrize("status", [401, 403])
def test_stream_turn_unauthorized(status):
    def handler(request):
        return httpx.Response(status)

    with pytest.raises(UnauthorizedError):
        run_with_client(handler, collect_stream)


@allure.feature("Agent Client")
@allure.story("Error mapping")
def test_stream_turn_server_error_is_transport_error():
    def handler(request):
        return httpx.Response(500, content=b"boom")

    with pytest.raises(TransportError) as exc_info:
        run_with_client(handler, collect_stream)
    assert exc_info.value.status_code == 500


@allure.feature("Agent Client")
@allure.story("Error mapping")
def test_stream_turn_connection_failure_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError):
        run_with_client(handler, collect_stream)


@allure.feature("Agent Client")
@allure.story("Permission actions")
def test_respond_to_permission_posts_decision():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "approved"})

    result = run_with_client(handler, lambda agent: agent.respond_to_permission("p1", True))

    assert result == {"status": "approved"}
    assert seen == {
        "method": "POST",
        "url": f"{BASE_URL}/api/permission/p1",
        "body": {"approved": True},
    }


@allure.feature("Agent Client")
@allure.story("Permission retry")
def test_respond_to_permission_retries_gateway_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    result = run_with_client(handler, lambda agent: agent.respond_to_permission("p1", False))

    assert result == {"ok": True}
    assert len(calls) == 3


@allure.feature("Agent Client")
@allure.story("Permission retry")
def test_respond_to_permission_does_not_retry_client_errors():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, text="bad id")

    with pytest.raises(PermissionActionError) as exc_info:
        run_with_client(handler, lambda agent: agent.respond_to_permission("p1", True))

    assert exc_info.value.status_code == 400
    assert exc_info.value.permission_id == "p1"
    assert len(calls) == 1


@allure.feature("Agent Client")
@allure.story("Permission retry")
def test_respond_to_permission_network_failure_after_retries():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(PermissionActionError):
        run_with_client(handler, lambda agent: agent.respond_to_permission("p1", True))
    assert len(calls) == 3


def test_respond_to_permission_unauthorized_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401)

    with pytest.raises(UnauthorizedError):
        run_with_client(handler, lambda agent: agent.respond_to_permission("p1", True))
    assert len(calls) == 1


def test_get_permission_returns_body():
    def handler(request):
        assert request.method == "GET"
        return httpx.Response(200, json={"permission_id": "p1", "status": "pending"})

    result = run_with_client(handler, lambda agent: agent.get_permission("p1"))
    assert result == {"permission_id": "p1", "status": "pending"}


def test_get_permission_wraps_non_object_body():
    def handler(request):
        return httpx.Response(200, json=["a", "b"])

    assert run_with_client(handler, lambda agent: agent.get_permission("p1")) == {"result": ["a", "b"]}


@pytest.mark.parametrize("error, expected", [
    (PermissionActionError("p", "gateway", status_code=502), True),
    (PermissionActionError("p", "rate limited", status_code=429), True),
    (PermissionActionError("p", "not found", status_code=404), False),
    (PermissionActionError("p", "no status"), False),
    (ValueError("other"), False),
])
def test_is_retryable_permission_error(error, expected):
    assert is_retryable_permission_error(error) is expected
