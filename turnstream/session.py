"""
Conversation session for turnstream.

A ChatSession owns the message history of one conversation and opens one
turn per ``send_message`` call.
"""
import logging
from typing import Optional

from .config import StreamConfig
from .engine.engine import TurnEngine, UpdateCallback
from .engine.context import TurnContext
from .engine.permissions import PermissionStatus
from .engine.projection import AssistantMessageProjection
from .errors import ErrorReporter, PersistenceError, log_error_reporter
from .history.store import MessageStore
from .transport.base import AgentBackend, ChatMessage, TurnRequest
from .utils import generate_id


logger = logging.getLogger(__name__)


class ChatSession:
    """
    One conversation with an agent.

    Attributes:
        conversation_id: Conversation identifier sent with every turn
        agent_id: Agent that answers the conversation
        history: Messages exchanged so far
        turns: Engines of the turns opened in this session, oldest first
    """

    def __init__(
        self,
        backend: AgentBackend,
        conversation_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        store: Optional[MessageStore] = None,
        stream_config: Optional[StreamConfig] = None,
        error_reporter: ErrorReporter = log_error_reporter,
    ) -> None:
        self.backend = backend
        self.conversation_id = conversation_id or generate_id("conv")
        self.agent_id = agent_id or backend.config.default_agent
        self.store = store
        self.stream_config = stream_config or StreamConfig()
        self._report = error_reporter
        self.history: list[ChatMessage] = []
        self.turns: list[TurnEngine] = []

    def load_history(self) -> int:
        """Load earlier messages of the conversation from the store."""
        if self.store is None:
            return 0
        messages = self.store.get_messages(self.conversation_id)
        self.history = [
            ChatMessage(role=m["role"], content=m["content"])
            for m in messages
            if m.get("role") in ("user", "assistant")
        ]
        return len(self.history)

    @property
    def current_turn(self) -> Optional[TurnEngine]:
        return self.turns[-1] if self.turns else None

    async def send_message(
        self,
        text: str,
        on_update: Optional[UpdateCallback] = None,
    ) -> AssistantMessageProjection:
        """
        Send a user message and stream the assistant's reply.

        Args:
            text: User message
            on_update: Called with every new projection

        Returns:
            The final projection of the turn

        Raises:
            UnauthorizedError: If the backend rejected the session
        """
        self.history.append(ChatMessage(role="user", content=text))
        if self.store is not None:
            try:
                self.store.save_user_message(self.conversation_id, text)
            except PersistenceError as e:
                logger.warning(f"User message not saved: {e}")

        request = TurnRequest(
            messages=list(self.history),
            conversation_id=self.conversation_id,
            agent_id=self.agent_id,
        )
        engine = TurnEngine(
            context=TurnContext(self.conversation_id, self.backend, self._report),
            config=self.stream_config,
            store=self.store,
            on_update=on_update,
            error_reporter=self._report,
        )
        self.turns.append(engine)

        projection = await engine.run(self.backend.stream_turn(request))
        if engine.completed:
            self.history.append(ChatMessage(role="assistant", content=projection.content))
        return projection

    def find_turn(self, permission_id: str) -> Optional[TurnEngine]:
        """Find the turn that received a permission request."""
        for engine in reversed(self.turns):
            if engine.context.permissions.knows(permission_id):
                return engine
        return None

    async def approve(self, permission_id: str) -> bool:
        return await self._respond(permission_id, approved=True)

    async def deny(self, permission_id: str) -> bool:
        return await self._respond(permission_id, approved=False)

    async def _respond(self, permission_id: str, approved: bool) -> bool:
        engine = self.find_turn(permission_id)
        if engine is None:
            logger.warning(f"No turn in this session requested permission {permission_id}")
            return False

        permissions = engine.context.permissions
        ok = await (permissions.approve(permission_id) if approved else permissions.deny(permission_id))

        # Decisions made after the turn was saved go to the stored message too
        message_id = engine.context.message_id
        if ok and message_id and self.store is not None:
            status = PermissionStatus.APPROVED if approved else PermissionStatus.DENIED
            try:
                self.store.update_permission_status(message_id, permission_id, status.value)
            except PersistenceError as e:
                logger.warning(f"Permission decision not saved: {e}")
        return ok
