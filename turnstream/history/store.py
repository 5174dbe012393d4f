"""
Message store interface.

The engine hands every completed turn to a MessageStore and, after a
short delay, reloads the persisted tool-call and permission records. The
store is authoritative on reload.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class TurnRecords:
    """
    Persisted per-turn records.

    Attributes:
        tool_calls: Dicts with at least ``id`` and ``status``, optionally ``result``
        permissions: Dicts with ``permission_id`` and ``status``
    """
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    permissions: list[dict[str, Any]] = field(default_factory=list)


class MessageStore(ABC):
    """Persistence collaborator for finished assistant turns."""

    @abstractmethod
    def save_assistant_message(
        self,
        conversation_id: Optional[str],
        content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> str:
        """
        Persist the final content of an assistant turn.

        Args:
            conversation_id: Conversation the turn belongs to
            content: Final message content
            metadata: Tool calls, permissions and reasoning of the turn

        Returns:
            The stored message id

        Raises:
            PersistenceError: If the message cannot be stored
        """

    @abstractmethod
    def load_turn_records(self, conversation_id: Optional[str], message_id: str) -> TurnRecords:
        """
        Reload the persisted tool-call and permission records of a message.

        Raises:
            PersistenceError: If the records cannot be read
        """

    def save_user_message(self, conversation_id: Optional[str], content: str) -> Optional[str]:
        """Persist a user message. Stores that keep whole conversations override this."""
        return None

    def update_permission_status(self, message_id: str, permission_id: str, status: str) -> bool:
        """Record a permission decision made after the turn was saved."""
        return False

    def get_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        """Get all messages of a conversation in order."""
        return []
