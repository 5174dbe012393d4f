"""
Base classes for agent backends in turnstream.
Defines the interface the engine uses to open a turn stream and to send
out-of-band permission decisions.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..config import AgentConfig


@dataclass
class ChatMessage:
    """A single message of the conversation history sent with a turn."""
    role: str
    content: str

    def to_dict(self) -> dict:
        """Convert to dictionary for API calls."""
        return {"role": self.role, "content": self.content}


@dataclass
class TurnRequest:
    """Everything needed to open one assistant turn."""
    messages: list[ChatMessage]
    conversation_id: str
    agent_id: str
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict:
        """Build the JSON body for the chat endpoint."""
        return {
            "messages": [m.to_dict() for m in self.messages],
            "assistantType": self.agent_id,
            "conversation_id": self.conversation_id,
            **self.extra,
        }


class AgentBackend(ABC):
    """
    Abstract base class for agent backends.

    An implementation opens the chunked response stream for a turn and
    accepts approve/deny decisions for pending permissions.
    """

    def __init__(self, config: Optional[AgentConfig] = None) -> None:
        """
        Initialize the backend.

        Args:
            config: Agent connection configuration
        """
        self._config = config or AgentConfig()
        self._headers: dict[str, str] = {}

    @property
    def base_url(self) -> str:
        """Backend base URL."""
        return self._config.base_url.rstrip("/")

    @property
    def config(self) -> AgentConfig:
        """Connection configuration."""
        return self._config

    @abstractmethod
    def stream_turn(self, request: TurnRequest) -> AsyncIterator[bytes]:
        """
        Open the response stream for one turn.

        Args:
            request: The turn to start

        Yields:
            Raw byte chunks as they arrive

        Raises:
            UnauthorizedError: If the backend rejects the credentials
            TransportError: If the stream cannot be opened or read
        """

    @abstractmethod
    async def respond_to_permission(self, permission_id: str, approved: bool) -> dict:
        """
        Approve or deny a pending permission.

        Args:
            permission_id: The permission to answer
            approved: True to approve, False to deny

        Returns:
            Backend response body

        Raises:
            PermissionActionError: If the backend does not accept the decision
        """

    @abstractmethod
    async def get_permission(self, permission_id: str) -> dict:
        """
        Fetch the backend's view of a permission.

        Args:
            permission_id: The permission to look up

        Returns:
            Backend response body
        """

    def permission_url(self, permission_id: str) -> str:
        """Build the URL of a permission resource."""
        path = self._config.permission_path.format(permission_id=permission_id)
        return f"{self.base_url}{path}"

    def chat_url(self) -> str:
        """Build the URL of the chat endpoint."""
        return f"{self.base_url}{self._config.chat_path}"

    def _build_headers(self) -> dict[str, str]:
        """Build request headers with authentication."""
        headers = {
            "Content-Type": "application/json",
        }
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        headers.update(self._headers)
        return headers

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.base_url})"
