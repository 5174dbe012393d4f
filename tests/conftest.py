"""Shared fixtures for turnstream tests."""

import json
from typing import Any, Optional

import pytest

from turnstream.config import AgentConfig, StreamConfig
from turnstream.history.store import MessageStore, TurnRecords
from turnstream.transport.base import AgentBackend


class FakeBackend(AgentBackend):
    """Agent backend that replays canned chunks and records permission actions."""

    def __init__(self, chunks=(), permission_error: Optional[Exception] = None):
        super().__init__(AgentConfig(base_url="http://agent.test"))
        self.chunks = list(chunks)
        self.permission_error = permission_error
        self.requests = []
        self.responses = []

    async def stream_turn(self, request):
        self.requests.append(request)
        for chunk in self.chunks:
            yield chunk

    async def respond_to_permission(self, permission_id: str, approved: bool) -> dict:
        self.responses.append((permission_id, approved))
        if self.permission_error is not None:
            raise self.permission_error
        return {"permission_id": permission_id, "approved": approved}

    async def get_permission(self, permission_id: str) -> dict:
        return {"permission_id": permission_id, "status": "pending"}


class MemoryStore(MessageStore):
    """MessageStore keeping everything in lists; ``records`` overrides reloads."""

    def __init__(self, records: Optional[TurnRecords] = None):
        self.saved = []
        self.user_messages = []
        self.records = records
        self.permission_updates = []

    def save_assistant_message(self, conversation_id, content, metadata=None) -> str:
        self.saved.append((conversation_id, content, metadata or {}))
        return f"msg-{len(self.saved)}"

    def save_user_message(self, conversation_id, content):
        self.user_messages.append((conversation_id, content))
        return None

    def load_turn_records(self, conversation_id, message_id) -> TurnRecords:
        if self.records is not None:
            return self.records
        metadata = self.saved[-1][2]
        return TurnRecords(
            tool_calls=metadata.get("tool_calls", []),
            permissions=metadata.get("permissions", []),
        )

    def update_permission_status(self, message_id, permission_id, status) -> bool:
        self.permission_updates.append((message_id, permission_id, status))
        return True


def _envelope(event: Any) -> str:
    return "data: " + json.dumps(event)


@pytest.fixture
def envelope():
    """Format an event as an envelope line."""
    return _envelope


@pytest.fixture
def fake_backend():
    """Factory for FakeBackend instances."""
    return FakeBackend


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def stream_config():
    """Stream config without the reconciliation delay."""
    return StreamConfig(reload_delay=0)
