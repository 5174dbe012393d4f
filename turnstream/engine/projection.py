"""Render-ready view of an assistant turn."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .timeline import Segment, TimelineBuilder
from .tool_calls import ToolCallRegistry


@dataclass
class AssistantMessageProjection:
    """
    Derived message state observed by renderers and the message store.

    Attributes:
        content: Concatenation of all text segments
        reasoning: Closed reasoning blocks, plus the open one
        tool_calls: Tool call records as dicts
        is_thinking: A reasoning block is open
        timeline: Snapshot of the segment list
        error: Failure description when the turn could not complete
    """
    content: str = ""
    reasoning: list[str] = field(default_factory=list)
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    is_thinking: bool = False
    timeline: list[Segment] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "reasoning": list(self.reasoning),
            "tool_calls": list(self.tool_calls),
            "is_thinking": self.is_thinking,
            "timeline": [segment.to_dict() for segment in self.timeline],
            "error": self.error,
        }


def project(
    timeline: TimelineBuilder,
    registry: ToolCallRegistry,
    error: Optional[str] = None,
) -> AssistantMessageProjection:
    """Compute the projection of the current turn state."""
    return AssistantMessageProjection(
        content=timeline.content,
        reasoning=timeline.thinking.reasoning,
        tool_calls=[record.to_dict() for record in registry.records()],
        is_thinking=timeline.is_thinking,
        timeline=timeline.snapshot(),
        error=error,
    )
