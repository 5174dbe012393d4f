"""Typed structured events decoded from envelope payloads.

The agent backend emits loosely-typed JSON objects discriminated by
``event_kind`` (and, inside them, ``part_kind`` / ``part_delta_kind``).
``parse_agent_event`` turns such an object into one member of a closed set
of frozen dataclasses. Anything with an unknown tag becomes an explicit
``Unknown*`` value that the decoder ignores.

Fields are read from the nested ``part`` / ``delta`` / ``result`` object
when the backend nests them, otherwise from the event object itself.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class EventKind(str, Enum):
    """Top-level ``event_kind`` discriminator values."""
    PART_START = "part_start"
    PART_DELTA = "part_delta"
    FINAL_RESULT = "final_result"
    FUNCTION_TOOL_CALL = "function_tool_call"
    FUNCTION_TOOL_RESULT = "function_tool_result"
    PERMISSION_REQUIRED = "permission_required"
    PERMISSION_DENIED = "permission_denied"
    PERMISSION_TIMEOUT = "permission_timeout"


class PartKind(str, Enum):
    """``part_kind`` discriminator values."""
    TOOL_CALL = "tool-call"
    BUILTIN_TOOL_CALL = "builtin-tool-call"
    TOOL_RETURN = "tool-return"
    BUILTIN_TOOL_RETURN = "builtin-tool-return"
    RETRY_PROMPT = "retry-prompt"
    THINKING = "thinking"
    TEXT = "text"


class DeltaKind(str, Enum):
    """``part_delta_kind`` discriminator values."""
    THINKING = "thinking"
    TEXT = "text"
    TOOL_CALL = "tool_call"


TOOL_CALL_KINDS = frozenset({PartKind.TOOL_CALL.value, PartKind.BUILTIN_TOOL_CALL.value})
TOOL_RETURN_KINDS = frozenset({PartKind.TOOL_RETURN.value, PartKind.BUILTIN_TOOL_RETURN.value})


# -------------------------------------------------------------------------
# Parts
# -------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCallPart:
    """A tool invocation announced by the model.

    ``args`` is either a complete object or a (possibly partial) JSON string.
    """
    tool_call_id: Optional[str]
    tool_name: Optional[str]
    args: Any = None


@dataclass(frozen=True)
class ToolReturnPart:
    """The result of a tool invocation."""
    tool_call_id: Optional[str]
    tool_name: Optional[str]
    content: Any = None


@dataclass(frozen=True)
class RetryPromptPart:
    """A tool result asking the model to retry: the invocation failed."""
    tool_call_id: Optional[str]
    tool_name: Optional[str]
    content: Any = None


@dataclass(frozen=True)
class ThinkingPart:
    content: Optional[str] = None


@dataclass(frozen=True)
class TextPart:
    content: Optional[str] = None


@dataclass(frozen=True)
class UnknownPart:
    part_kind: Optional[str] = None


Part = Union[ToolCallPart, ToolReturnPart, RetryPromptPart, ThinkingPart, TextPart, UnknownPart]


# -------------------------------------------------------------------------
# Deltas
# -------------------------------------------------------------------------

@dataclass(frozen=True)
class ThinkingDelta:
    """Incremental reasoning content.

    A thinking delta carrying neither a content nor a signature fragment
    marks the end of the reasoning block (``closes_block``).
    """
    content_delta: Optional[str] = None
    closes_block: bool = False


@dataclass(frozen=True)
class TextDelta:
    content_delta: Optional[str] = None


@dataclass(frozen=True)
class ToolCallDelta:
    tool_call_id: Optional[str] = None
    tool_name_delta: Optional[str] = None
    args_delta: Any = None


@dataclass(frozen=True)
class UnknownDelta:
    delta_kind: Optional[str] = None


Delta = Union[ThinkingDelta, TextDelta, ToolCallDelta, UnknownDelta]


# -------------------------------------------------------------------------
# Events
# -------------------------------------------------------------------------

@dataclass(frozen=True)
class PartStartEvent:
    index: Optional[int]
    part: Part


@dataclass(frozen=True)
class PartDeltaEvent:
    index: Optional[int]
    delta: Delta


@dataclass(frozen=True)
class FinalResultEvent:
    """The model has committed to its final answer."""


@dataclass(frozen=True)
class FunctionToolCallEvent:
    part: Optional[ToolCallPart]


@dataclass(frozen=True)
class FunctionToolResultEvent:
    result: Union[ToolReturnPart, RetryPromptPart, UnknownPart, None]


@dataclass(frozen=True)
class PermissionRequiredEvent:
    permission_id: str
    tool_name: str
    tool_args: dict[str, Any] = field(default_factory=dict)
    tool_call_id: Optional[str] = None
    conversation_id: Optional[str] = None
    agent_id: Optional[str] = None


@dataclass(frozen=True)
class PermissionClosedEvent:
    """A permission was denied or timed out on the backend."""
    permission_id: str
    reason: str  # "denied" or "timeout"


@dataclass(frozen=True)
class UnknownEvent:
    event_kind: Any = None


AgentEvent = Union[
    PartStartEvent,
    PartDeltaEvent,
    FinalResultEvent,
    FunctionToolCallEvent,
    FunctionToolResultEvent,
    PermissionRequiredEvent,
    PermissionClosedEvent,
    UnknownEvent,
]


# -------------------------------------------------------------------------
# Parsing
# -------------------------------------------------------------------------

def _str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _index(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _nested(payload: dict, key: str) -> dict:
    """Return ``payload[key]`` when it is an object, else the payload itself."""
    value = payload.get(key)
    return value if isinstance(value, dict) else payload


def parse_part(data: dict, default_kind: Optional[str] = None) -> Part:
    """Parse a part object by its ``part_kind``.

    Args:
        data: The part object
        default_kind: Kind assumed when ``part_kind`` is missing

    Returns:
        A Part variant
    """
    kind = data.get("part_kind", default_kind)

    if kind in TOOL_CALL_KINDS:
        return ToolCallPart(
            tool_call_id=_str(data.get("tool_call_id")),
            tool_name=_str(data.get("tool_name")),
            args=data.get("args"),
        )
    if kind in TOOL_RETURN_KINDS:
        return ToolReturnPart(
            tool_call_id=_str(data.get("tool_call_id")),
            tool_name=_str(data.get("tool_name")),
            content=data.get("content"),
        )
    if kind == PartKind.RETRY_PROMPT.value:
        return RetryPromptPart(
            tool_call_id=_str(data.get("tool_call_id")),
            tool_name=_str(data.get("tool_name")),
            content=data.get("content"),
        )
    if kind == PartKind.THINKING.value:
        return ThinkingPart(content=_str(data.get("content")))
    if kind == PartKind.TEXT.value:
        return TextPart(content=_str(data.get("content")))
    return UnknownPart(part_kind=_str(kind))


def parse_delta(data: dict) -> Delta:
    """Parse a delta object by its ``part_delta_kind``."""
    kind = data.get("part_delta_kind")

    if kind == DeltaKind.THINKING.value:
        return ThinkingDelta(
            content_delta=_str(data.get("content_delta")),
            closes_block="content_delta" not in data and "signature_delta" not in data,
        )
    if kind == DeltaKind.TEXT.value:
        return TextDelta(content_delta=_str(data.get("content_delta")))
    if kind == DeltaKind.TOOL_CALL.value:
        return ToolCallDelta(
            tool_call_id=_str(data.get("tool_call_id")),
            tool_name_delta=_str(data.get("tool_name_delta")),
            args_delta=data.get("args_delta"),
        )
    return UnknownDelta(delta_kind=_str(kind))


def parse_agent_event(payload: dict) -> AgentEvent:
    """Turn a decoded envelope payload into a typed event.

    Args:
        payload: JSON object carrying an ``event_kind``

    Returns:
        The matching AgentEvent; UnknownEvent for unrecognised kinds
        or for permission events without an id
    """
    kind = payload.get("event_kind")
    index = _index(payload.get("index"))

    if kind == EventKind.PART_START.value:
        return PartStartEvent(index=index, part=parse_part(_nested(payload, "part")))

    if kind == EventKind.PART_DELTA.value:
        return PartDeltaEvent(index=index, delta=parse_delta(_nested(payload, "delta")))

    if kind == EventKind.FINAL_RESULT.value:
        return FinalResultEvent()

    if kind == EventKind.FUNCTION_TOOL_CALL.value:
        part = parse_part(_nested(payload, "part"), default_kind=PartKind.TOOL_CALL.value)
        return FunctionToolCallEvent(part=part if isinstance(part, ToolCallPart) else None)

    if kind == EventKind.FUNCTION_TOOL_RESULT.value:
        result = parse_part(_nested(payload, "result"), default_kind=PartKind.TOOL_RETURN.value)
        if not isinstance(result, (ToolReturnPart, RetryPromptPart, UnknownPart)):
            result = UnknownPart(part_kind=type(result).__name__)
        return FunctionToolResultEvent(result=result)

    if kind == EventKind.PERMISSION_REQUIRED.value:
        data = _nested(payload, "permission")
        permission_id = _str(data.get("permission_id"))
        if not permission_id:
            return UnknownEvent(event_kind=kind)
        tool_args = data.get("tool_args")
        return PermissionRequiredEvent(
            permission_id=permission_id,
            tool_name=_str(data.get("tool_name")) or "",
            tool_args=tool_args if isinstance(tool_args, dict) else {},
            tool_call_id=_str(data.get("tool_call_id")),
            conversation_id=_str(data.get("conversation_id")),
            agent_id=_str(data.get("agent")),
        )

    if kind in (EventKind.PERMISSION_DENIED.value, EventKind.PERMISSION_TIMEOUT.value):
        data = _nested(payload, "permission")
        permission_id = _str(data.get("permission_id"))
        if not permission_id:
            return UnknownEvent(event_kind=kind)
        reason = "timeout" if kind == EventKind.PERMISSION_TIMEOUT.value else "denied"
        return PermissionClosedEvent(permission_id=permission_id, reason=reason)

    return UnknownEvent(event_kind=kind)
