"""
Ordered timeline of one assistant turn.

Segments are only ever appended. The open text segment and the open
thinking segment are the only ones extended in place; anything else that
is added first closes them, so text after a tool call never merges with
text before it.
"""
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Union

from .permissions import PendingPermission, PermissionStatus
from .thinking import ThinkingAccumulator
from .tool_calls import ToolCallRecord


@dataclass
class ThinkingSegment:
    content: str = ""
    is_active: bool = True
    kind: ClassVar[str] = "thinking"

    def snapshot(self) -> "ThinkingSegment":
        return ThinkingSegment(self.content, self.is_active)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "content": self.content, "is_active": self.is_active}


@dataclass
class TextSegment:
    content: str = ""
    kind: ClassVar[str] = "text"

    def snapshot(self) -> "TextSegment":
        return TextSegment(self.content)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "content": self.content}


@dataclass
class ToolCallSegment:
    """Points at the registry record; status changes show up without re-appending."""
    record: ToolCallRecord
    kind: ClassVar[str] = "tool_call"

    def snapshot(self) -> "ToolCallSegment":
        return ToolCallSegment(self.record.copy())

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, **self.record.to_dict()}


@dataclass
class PermissionSegment:
    permission: PendingPermission
    status: PermissionStatus = PermissionStatus.PENDING
    kind: ClassVar[str] = "permission"

    def snapshot(self) -> "PermissionSegment":
        return PermissionSegment(self.permission, self.status)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "status": self.status.value, **self.permission.to_dict()}


Segment = Union[ThinkingSegment, TextSegment, ToolCallSegment, PermissionSegment]


class TimelineBuilder:
    """
    Builds the segment list of a turn.

    Owns the ThinkingAccumulator; the open ThinkingSegment mirrors its
    content. Tool-call and permission segments are indexed by id.
    """

    def __init__(self) -> None:
        self._segments: list[Segment] = []
        self.thinking = ThinkingAccumulator()
        self._open_text: Optional[TextSegment] = None
        self._open_thinking: Optional[ThinkingSegment] = None
        self._tool_calls: dict[str, ToolCallSegment] = {}
        self._permissions: dict[str, PermissionSegment] = {}

    def __len__(self) -> int:
        return len(self._segments)

    @property
    def segments(self) -> list[Segment]:
        return list(self._segments)

    @property
    def content(self) -> str:
        """Concatenated text of all text segments."""
        return "".join(s.content for s in self._segments if isinstance(s, TextSegment))

    @property
    def is_thinking(self) -> bool:
        return self._open_thinking is not None

    def append_or_extend_text(self, content: str) -> None:
        if not content:
            return
        self.close_thinking()
        if self._open_text is None:
            self._open_text = TextSegment()
            self._segments.append(self._open_text)
        self._open_text.content += content

    def append_text_segment(self, content: str) -> None:
        """Append text as a segment of its own."""
        self.close_open()
        self.append_or_extend_text(content)
        self._open_text = None

    def open_or_extend_thinking(self, content: str = "") -> None:
        if self._open_thinking is None:
            self._open_text = None
            self.thinking.open()
            self._open_thinking = ThinkingSegment()
            self._segments.append(self._open_thinking)
        if content:
            self.thinking.append(content)
            self._open_thinking.content = self.thinking.content

    def close_thinking(self) -> None:
        if self._open_thinking is None:
            return
        self.thinking.close()
        self._open_thinking.is_active = False
        self._open_thinking = None

    def close_open(self) -> None:
        """Close the open text and thinking segments, if any."""
        self._open_text = None
        self.close_thinking()

    def upsert_tool_call(self, record: ToolCallRecord) -> ToolCallSegment:
        self.close_open()
        segment = self._tool_calls.get(record.display_id)
        if segment is None:
            segment = ToolCallSegment(record)
            self._tool_calls[record.display_id] = segment
            self._segments.append(segment)
        return segment

    def tool_call_segment(self, display_id: str) -> Optional[ToolCallSegment]:
        return self._tool_calls.get(display_id)

    def append_permission(self, permission: PendingPermission) -> PermissionSegment:
        self.close_open()
        segment = self._permissions.get(permission.permission_id)
        if segment is None:
            segment = PermissionSegment(permission)
            self._permissions[permission.permission_id] = segment
            self._segments.append(segment)
        return segment

    def permission_segment(self, permission_id: str) -> Optional[PermissionSegment]:
        return self._permissions.get(permission_id)

    def permission_segments(self) -> list[PermissionSegment]:
        return list(self._permissions.values())

    def snapshot(self) -> list[Segment]:
        return [segment.snapshot() for segment in self._segments]
