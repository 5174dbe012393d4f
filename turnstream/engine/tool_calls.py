"""
Tool-call registry for one assistant turn.

Tool invocations are keyed by the backend's tool call id (the *base id*).
The same base id can be invoked several times in one turn; every new
invocation gets the next occurrence number and a display id of
``base_id`` (occurrence 0) or ``base_id#n``.
"""
import json
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from ..constants import UNKNOWN_TOOL_NAME
from ..errors import UnrecognizedLegacyResultError
from ..utils import safe_json_loads
from .legacy_result import parse_legacy_result


logger = logging.getLogger(__name__)


class ToolCallStatus(str, Enum):
    """Lifecycle status of a tool invocation."""
    CALLING = "calling"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class ToolCallRecord:
    """
    One invocation of a tool.

    Attributes:
        base_id: Tool call id as sent by the backend
        occurrence: Invocation number for this base id, starting at 0
        tool_name: Name of the tool
        status: Lifecycle status
        args: Structured arguments, once known
        raw_args: Accumulated string argument fragments
        result: Normalized result
    """
    base_id: str
    occurrence: int = 0
    tool_name: str = UNKNOWN_TOOL_NAME
    status: ToolCallStatus = ToolCallStatus.CALLING
    args: Optional[dict[str, Any]] = None
    raw_args: str = ""
    result: Any = None

    @property
    def display_id(self) -> str:
        if self.occurrence == 0:
            return self.base_id
        return f"{self.base_id}#{self.occurrence}"

    @property
    def has_placeholder_name(self) -> bool:
        return not self.tool_name or self.tool_name == UNKNOWN_TOOL_NAME

    def set_args(self, args: Any) -> None:
        """Replace the arguments with a whole object or a JSON string."""
        if isinstance(args, dict):
            self.args = dict(args)
        elif isinstance(args, str):
            self.raw_args = args
            self._parse_raw_args()

    def append_args(self, fragment: Any) -> None:
        """Add an argument delta: string fragments accumulate, objects merge."""
        if isinstance(fragment, str):
            self.raw_args += fragment
            self._parse_raw_args()
        elif isinstance(fragment, dict):
            self.args = {**(self.args or {}), **fragment}

    def _parse_raw_args(self) -> None:
        # Partial JSON stays in raw_args until it parses
        parsed = safe_json_loads(self.raw_args)
        if isinstance(parsed, dict):
            self.args = parsed

    def copy(self) -> "ToolCallRecord":
        return replace(self, args=dict(self.args) if self.args is not None else None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.display_id,
            "tool_name": self.tool_name,
            "status": self.status.value,
            "args": self.args,
            "result": self.result,
        }


def normalize_tool_result(raw: Any) -> Any:
    """
    Normalize a raw tool result into structured data.

    Structured values pass through. Strings are parsed as JSON, then as
    the legacy literal-object form, and finally wrapped as
    ``{"content": text}``.

    Args:
        raw: Result as received from the backend

    Returns:
        Normalized result
    """
    if raw is None:
        return None
    if not isinstance(raw, str):
        return raw

    text = raw.strip()
    if not text:
        return ""

    try:
        return json.loads(text)
    except ValueError:
        pass

    try:
        return parse_legacy_result(text)
    except UnrecognizedLegacyResultError as e:
        logger.debug(f"Tool result kept as text: {e}")

    return {"content": text}


class ToolCallRegistry:
    """
    Id-keyed store of the tool invocations of one turn.

    Records are never removed. Deltas that carry no id are resolved
    through the part index recorded when the part started.
    """

    def __init__(self) -> None:
        self._records: dict[str, list[ToolCallRecord]] = {}
        self._order: list[ToolCallRecord] = []
        self._by_index: dict[int, str] = {}
        self._synthetic_count = 0

    def __len__(self) -> int:
        return len(self._order)

    def records(self) -> list[ToolCallRecord]:
        """All records in creation order."""
        return list(self._order)

    def occurrences(self, base_id: str) -> list[ToolCallRecord]:
        return list(self._records.get(base_id, []))

    def latest(self, base_id: str) -> Optional[ToolCallRecord]:
        records = self._records.get(base_id)
        return records[-1] if records else None

    def get(self, display_id: str) -> Optional[ToolCallRecord]:
        base_id, _, occurrence = display_id.partition("#")
        records = self._records.get(base_id, [])
        index = int(occurrence) if occurrence.isdigit() else 0
        return records[index] if index < len(records) else None

    def latest_calling(self) -> Optional[ToolCallRecord]:
        for record in reversed(self._order):
            if record.status is ToolCallStatus.CALLING:
                return record
        return None

    def synthetic_id(self) -> str:
        """Make up an id for a tool call the backend sent without one."""
        self._synthetic_count += 1
        return f"tool-call-{self._synthetic_count}"

    def register_call(
        self,
        base_id: str,
        tool_name: Optional[str] = None,
        args: Any = None,
        index: Optional[int] = None,
    ) -> ToolCallRecord:
        """
        Register a ``calling`` event for a tool call.

        A new occurrence is created when there is no record for the base id
        yet or the latest one is no longer calling; otherwise the latest
        record is updated in place.

        Args:
            base_id: Tool call id
            tool_name: Tool name, if known
            args: Arguments as an object or (partial) JSON string
            index: Stream part index announcing this call

        Returns:
            The record that was created or updated
        """
        record = self.latest(base_id)
        if record is None or record.status is not ToolCallStatus.CALLING:
            occurrence = 0 if record is None else record.occurrence + 1
            record = ToolCallRecord(base_id=base_id, occurrence=occurrence)
            self._records.setdefault(base_id, []).append(record)
            self._order.append(record)

        if tool_name:
            record.tool_name = tool_name
        if args is not None:
            record.set_args(args)
        if index is not None:
            self._by_index[index] = base_id
        return record

    def resolve(self, tool_call_id: Optional[str], index: Optional[int]) -> Optional[ToolCallRecord]:
        """Find the record a delta refers to, by explicit id or part index."""
        if tool_call_id and tool_call_id in self._records:
            return self.latest(tool_call_id)
        if index is not None and index in self._by_index:
            return self.latest(self._by_index[index])
        return None

    def apply_delta(
        self,
        tool_call_id: Optional[str],
        index: Optional[int],
        name_delta: Optional[str] = None,
        args_delta: Any = None,
    ) -> Optional[ToolCallRecord]:
        """Apply name/argument fragments to the referenced record."""
        record = self.resolve(tool_call_id, index)
        if record is None:
            if not tool_call_id:
                logger.debug(f"Tool call delta for unknown part index {index} ignored")
                return None
            record = self.register_call(tool_call_id, index=index)

        if name_delta:
            if record.has_placeholder_name:
                record.tool_name = name_delta
            else:
                record.tool_name += name_delta
        if args_delta is not None:
            record.append_args(args_delta)
        return record

    def complete(
        self,
        base_id: str,
        raw_result: Any,
        tool_name: Optional[str] = None,
        failed: bool = False,
    ) -> ToolCallRecord:
        """
        Store the result of a tool call.

        Args:
            base_id: Tool call id
            raw_result: Result as received
            tool_name: Tool name carried by the result, if any
            failed: The result is a retry request, i.e. the call failed

        Returns:
            The completed record
        """
        record = self.latest(base_id)
        if record is None:
            record = self.register_call(base_id)

        normalized = normalize_tool_result(raw_result)
        if failed:
            record.status = ToolCallStatus.ERROR
            if isinstance(normalized, str):
                record.result = {"error": normalized}
            else:
                record.result = {"error": "Tool retry requested", "details": normalized}
        else:
            record.status = ToolCallStatus.COMPLETED
            record.result = normalized

        if record.has_placeholder_name:
            if tool_name:
                record.tool_name = tool_name
            elif isinstance(normalized, dict) and isinstance(normalized.get("tool_name"), str):
                record.tool_name = normalized["tool_name"] or record.tool_name
        return record

    def fail_calling(self, message: str) -> list[ToolCallRecord]:
        """Mark every still-running call as failed."""
        failed = []
        for record in self._order:
            if record.status is ToolCallStatus.CALLING:
                record.status = ToolCallStatus.ERROR
                record.result = {"error": message}
                failed.append(record)
        return failed
