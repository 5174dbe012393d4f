"""
Event decoders.

``StructuredEventDecoder`` handles payloads with an ``event_kind``;
``LegacyEventDecoder`` handles the older ``type``-tagged objects, bare
JSON strings and plain text. Both apply their events to the same
TurnContext through the registry, the timeline and the permission tracker.
"""
import logging
from typing import Any, Optional, Union

from .context import TurnContext
from .events import (
    AgentEvent,
    FinalResultEvent,
    FunctionToolCallEvent,
    FunctionToolResultEvent,
    PartDeltaEvent,
    PartStartEvent,
    PermissionClosedEvent,
    PermissionRequiredEvent,
    RetryPromptPart,
    TextDelta,
    TextPart,
    ThinkingDelta,
    ThinkingPart,
    ToolCallDelta,
    ToolCallPart,
    ToolReturnPart,
    PartKind,
    parse_agent_event,
    parse_part,
)
from .permissions import PendingPermission
from .tool_calls import ToolCallStatus


logger = logging.getLogger(__name__)


class _DecoderBase:
    """Tool-call handling shared by both decoders."""

    def __init__(self, context: TurnContext) -> None:
        self.context = context

    def _apply_tool_call(self, part: ToolCallPart, index: Optional[int] = None) -> None:
        base_id = part.tool_call_id or self.context.registry.synthetic_id()
        record = self.context.registry.register_call(
            base_id, part.tool_name, part.args, index
        )
        self.context.timeline.upsert_tool_call(record)

    def _apply_tool_result(self, part: Union[ToolReturnPart, RetryPromptPart]) -> None:
        registry = self.context.registry
        base_id = part.tool_call_id
        if not base_id:
            pending = registry.latest_calling()
            base_id = pending.base_id if pending else registry.synthetic_id()
        record = registry.complete(
            base_id,
            part.content,
            tool_name=part.tool_name,
            failed=isinstance(part, RetryPromptPart),
        )
        self.context.timeline.upsert_tool_call(record)


class StructuredEventDecoder(_DecoderBase):
    """Applies ``event_kind`` events to the turn."""

    def decode(self, payload: dict) -> None:
        self.apply(parse_agent_event(payload))

    def apply(self, event: AgentEvent) -> None:
        timeline = self.context.timeline

        if isinstance(event, PartStartEvent):
            self._part_start(event)
        elif isinstance(event, PartDeltaEvent):
            self._part_delta(event)
        elif isinstance(event, FinalResultEvent):
            timeline.close_thinking()
        elif isinstance(event, FunctionToolCallEvent):
            if event.part is not None:
                self._apply_tool_call(event.part)
        elif isinstance(event, FunctionToolResultEvent):
            if isinstance(event.result, (ToolReturnPart, RetryPromptPart)):
                self._apply_tool_result(event.result)
            else:
                logger.debug(f"Ignoring tool result of kind {event.result}")
        elif isinstance(event, PermissionRequiredEvent):
            self.context.permissions.register(PendingPermission(
                permission_id=event.permission_id,
                tool_name=event.tool_name,
                tool_args=dict(event.tool_args),
                tool_call_id=event.tool_call_id,
                conversation_id=event.conversation_id or self.context.conversation_id,
                agent_id=event.agent_id,
            ))
        elif isinstance(event, PermissionClosedEvent):
            self.context.permissions.close_from_stream(event.permission_id, event.reason)
        else:
            logger.debug(f"Ignoring unknown event: {event}")

    def _part_start(self, event: PartStartEvent) -> None:
        part = event.part
        timeline = self.context.timeline

        if isinstance(part, ToolCallPart):
            self._apply_tool_call(part, event.index)
        elif isinstance(part, (ToolReturnPart, RetryPromptPart)):
            self._apply_tool_result(part)
        elif isinstance(part, ThinkingPart):
            timeline.open_or_extend_thinking(part.content or "")
        elif isinstance(part, TextPart):
            timeline.append_or_extend_text(part.content or "")
        else:
            logger.debug(f"Ignoring part start: {part}")

    def _part_delta(self, event: PartDeltaEvent) -> None:
        delta = event.delta
        timeline = self.context.timeline

        if isinstance(delta, ThinkingDelta):
            if delta.closes_block:
                timeline.close_thinking()
            else:
                timeline.open_or_extend_thinking(delta.content_delta or "")
        elif isinstance(delta, TextDelta):
            timeline.append_or_extend_text(delta.content_delta or "")
        elif isinstance(delta, ToolCallDelta):
            record = self.context.registry.apply_delta(
                delta.tool_call_id, event.index, delta.tool_name_delta, delta.args_delta
            )
            if record is not None:
                timeline.upsert_tool_call(record)
        else:
            logger.debug(f"Ignoring part delta: {delta}")


class LegacyEventDecoder(_DecoderBase):
    """Applies legacy ``type``-tagged payloads and plain text to the turn."""

    def decode(self, data: Any) -> None:
        timeline = self.context.timeline

        if isinstance(data, str):
            timeline.append_or_extend_text(data)
            return
        if not isinstance(data, dict):
            logger.debug(f"Ignoring legacy payload of type {type(data).__name__}")
            return

        if data.get("done") is True:
            self._reconcile_full_text(data.get("full_text"))
            return

        kind = data.get("type")
        if kind == "thinking_start":
            timeline.open_or_extend_thinking()
        elif kind in ("reasoning", "thinking"):
            fragment = data.get("content", data.get("delta"))
            if isinstance(fragment, str):
                timeline.open_or_extend_thinking(fragment)
        elif kind in ("thinking_done", "thinking_end"):
            timeline.close_thinking()
        elif kind == "content":
            self._text(data.get("content"))
        elif kind in ("delta", "text-delta"):
            self._text(data.get("delta"))
        elif kind == "tool_call":
            self._tool_call(data)
        elif kind == "tool_result":
            self._tool_result(data)
        elif kind is None and isinstance(data.get("content"), str):
            self._text(data["content"])
        else:
            logger.debug(f"Ignoring legacy payload type {kind!r}")

    def _text(self, value: Any) -> None:
        if isinstance(value, str):
            self.context.timeline.append_or_extend_text(value)

    def _tool_call(self, data: dict) -> None:
        registry = self.context.registry
        base_id = data.get("tool_call_id")
        if not isinstance(base_id, str) or not base_id:
            base_id = registry.synthetic_id()
        tool_name = data.get("tool_name") if isinstance(data.get("tool_name"), str) else None
        status = data.get("status", ToolCallStatus.CALLING.value)

        if status in (ToolCallStatus.COMPLETED.value, ToolCallStatus.ERROR.value):
            record = registry.complete(
                base_id,
                data.get("result"),
                tool_name=tool_name,
                failed=status == ToolCallStatus.ERROR.value,
            )
            if record.args is None and data.get("args") is not None:
                record.set_args(data["args"])
        else:
            record = registry.register_call(base_id, tool_name, data.get("args"))
        self.context.timeline.upsert_tool_call(record)

    def _tool_result(self, data: dict) -> None:
        nested = data.get("toolCall")
        if not isinstance(nested, dict):
            logger.debug("Legacy tool_result without a toolCall object ignored")
            return
        part = parse_part(nested, default_kind=PartKind.TOOL_RETURN.value)
        if isinstance(part, (ToolReturnPart, RetryPromptPart)):
            self._apply_tool_result(part)
        else:
            logger.debug(f"Ignoring legacy tool result: {part}")

    def _reconcile_full_text(self, full_text: Any) -> None:
        if not isinstance(full_text, str):
            return
        streamed = self.context.timeline.content
        if full_text.startswith(streamed):
            self.context.timeline.append_or_extend_text(full_text[len(streamed):])
        else:
            logger.info(
                f"Final text differs from streamed content "
                f"({len(full_text)} vs {len(streamed)} chars); keeping streamed content"
            )
