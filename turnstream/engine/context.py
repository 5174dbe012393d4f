"""Per-turn state shared by the decoders and the engine."""

from typing import Optional

from ..errors import ErrorReporter, log_error_reporter
from ..transport.base import AgentBackend
from .permissions import PermissionTracker
from .projection import AssistantMessageProjection, project
from .timeline import TimelineBuilder
from .tool_calls import ToolCallRegistry


class TurnContext:
    """
    Everything one assistant turn owns.

    Created when the turn's stream is opened and threaded through every
    decode step, so a turn can be replayed by feeding lines to a fresh
    context and inspecting it afterwards.
    """

    def __init__(
        self,
        conversation_id: Optional[str] = None,
        backend: Optional[AgentBackend] = None,
        error_reporter: ErrorReporter = log_error_reporter,
    ) -> None:
        self.conversation_id = conversation_id
        self.message_id: Optional[str] = None
        self.error: Optional[str] = None
        self.report = error_reporter
        self.registry = ToolCallRegistry()
        self.timeline = TimelineBuilder()
        self.permissions = PermissionTracker(
            self.timeline, backend=backend, error_reporter=error_reporter
        )

    def project(self) -> AssistantMessageProjection:
        return project(self.timeline, self.registry, self.error)
