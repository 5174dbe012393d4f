"""Streaming timeline reconstruction for assistant turns."""
from .classifier import ClassifiedLine, LineClassifier, LineKind
from .context import TurnContext
from .decoders import LegacyEventDecoder, StructuredEventDecoder
from .engine import TurnEngine
from .events import parse_agent_event
from .legacy_result import parse_legacy_result
from .permissions import (
    PendingPermission,
    PermissionAction,
    PermissionStatus,
    PermissionTracker,
    transition,
)
from .projection import AssistantMessageProjection, project
from .thinking import ThinkingAccumulator
from .timeline import (
    PermissionSegment,
    TextSegment,
    ThinkingSegment,
    TimelineBuilder,
    ToolCallSegment,
)
from .tool_calls import (
    ToolCallRecord,
    ToolCallRegistry,
    ToolCallStatus,
    normalize_tool_result,
)

__all__ = [
    'ClassifiedLine', 'LineClassifier', 'LineKind',
    'TurnContext', 'TurnEngine',
    'LegacyEventDecoder', 'StructuredEventDecoder', 'parse_agent_event',
    'parse_legacy_result',
    'PendingPermission', 'PermissionAction', 'PermissionStatus', 'PermissionTracker', 'transition',
    'AssistantMessageProjection', 'project',
    'ThinkingAccumulator',
    'PermissionSegment', 'TextSegment', 'ThinkingSegment', 'TimelineBuilder', 'ToolCallSegment',
    'ToolCallRecord', 'ToolCallRegistry', 'ToolCallStatus', 'normalize_tool_result',
]
