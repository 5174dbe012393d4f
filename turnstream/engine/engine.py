"""
Turn engine: reads one response stream and keeps its projection current.

The read loop pulls one chunk at a time, reassembles lines, routes each
line to a decoder and recomputes the projection after every line. Only a
loop that reaches the natural end of the stream hands the turn to the
message store.
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterable, Callable, Iterable, Optional

from ..config import StreamConfig
from ..errors import (
    ErrorReporter,
    ErrorType,
    MalformedEventError,
    PersistenceError,
    TransportError,
    UnauthorizedError,
    classify_status,
    describe_error,
    log_error_reporter,
)
from ..history.store import MessageStore, TurnRecords
from ..transport.base import AgentBackend
from ..transport.line_reader import aiter_lines
from ..utils import truncate_string
from .classifier import LineClassifier, LineKind
from .context import TurnContext
from .decoders import LegacyEventDecoder, StructuredEventDecoder
from .permissions import PermissionStatus
from .projection import AssistantMessageProjection
from .tool_calls import ToolCallStatus


logger = logging.getLogger(__name__)

UpdateCallback = Callable[[AssistantMessageProjection], Any]


class TurnEngine:
    """
    Streams one assistant turn into a TurnContext.

    Usage:
        engine = TurnEngine(on_update=view.update)
        projection = await engine.run(backend.stream_turn(request))

    Lines can also be fed directly with ``process_line`` / ``process_lines``.
    """

    def __init__(
        self,
        context: Optional[TurnContext] = None,
        config: Optional[StreamConfig] = None,
        store: Optional[MessageStore] = None,
        on_update: Optional[UpdateCallback] = None,
        error_reporter: ErrorReporter = log_error_reporter,
        backend: Optional[AgentBackend] = None,
    ) -> None:
        self.config = config or StreamConfig()
        self.context = context or TurnContext(backend=backend, error_reporter=error_reporter)
        self.context.permissions.on_change = self._publish
        self.store = store
        self.on_update = on_update
        self._report = error_reporter
        self._classifier = LineClassifier(self.config.envelope_prefix, self.config.done_sentinel)
        self._structured = StructuredEventDecoder(self.context)
        self._legacy = LegacyEventDecoder(self.context)
        self.projection = AssistantMessageProjection()
        self.saw_done = False
        self.completed = False

    # ------------------------------------------------------------------
    # Line processing
    # ------------------------------------------------------------------

    def process_line(self, line: str) -> AssistantMessageProjection:
        """Apply one logical line and return the updated projection."""
        classified = self._classifier.classify(line)

        if classified.kind is LineKind.ENVELOPE:
            self._handle_envelope(classified.payload)
        elif classified.kind is LineKind.INDEXED:
            self._handle_indexed(classified.payload)
        elif classified.kind is LineKind.DONE:
            self.saw_done = True
        elif classified.kind is LineKind.OTHER:
            logger.debug(f"Ignoring unclassified line: {truncate_string(classified.payload, 80)}")

        return self._publish()

    def process_lines(self, lines: Iterable[str]) -> AssistantMessageProjection:
        for line in lines:
            self.process_line(line)
        return self.projection

    def _handle_envelope(self, payload: str) -> None:
        try:
            data = self._decode_payload(payload)
        except MalformedEventError as e:
            if e.payload.startswith(("{", "[")):
                logger.debug(f"Dropping truncated payload: {truncate_string(e.payload, 80)}")
            else:
                self.context.timeline.append_or_extend_text(e.payload)
            return

        if isinstance(data, dict) and (data.get("error") or data.get("errorText")):
            message = str(data.get("error") or data.get("errorText"))
            self._report(describe_error(ErrorType.BACKEND_ERROR, message, recoverable=True))
            return

        if isinstance(data, dict) and "event_kind" in data:
            self._structured.decode(data)
        else:
            self._legacy.decode(data)

    def _handle_indexed(self, payload: str) -> None:
        try:
            data = self._decode_payload(payload)
        except MalformedEventError:
            self.context.timeline.append_or_extend_text(payload)
            return
        if isinstance(data, str):
            self.context.timeline.append_or_extend_text(data)
        else:
            logger.debug(f"Ignoring non-text indexed payload: {truncate_string(payload, 80)}")

    @staticmethod
    def _decode_payload(payload: str) -> Any:
        try:
            return json.loads(payload)
        except ValueError as e:
            raise MalformedEventError(f"Payload is not JSON: {e}", payload) from e

    def _publish(self) -> AssistantMessageProjection:
        self.projection = self.context.project()
        if self.on_update is not None:
            self.on_update(self.projection)
        return self.projection

    # ------------------------------------------------------------------
    # Stream lifecycle
    # ------------------------------------------------------------------

    async def run(self, chunks: AsyncIterable[bytes]) -> AssistantMessageProjection:
        """
        Read a whole stream and finalize the turn.

        Args:
            chunks: Raw byte chunks of the response

        Returns:
            The final projection

        Raises:
            UnauthorizedError: If the backend rejected the session
            asyncio.CancelledError: If the read loop is cancelled; nothing is saved
        """
        try:
            async for line in aiter_lines(chunks, self.config.encoding):
                self.process_line(line)
        except TransportError as e:
            return self.fail(e)
        except UnauthorizedError:
            self.context.timeline.close_open()
            self._publish()
            raise

        await self.finalize()
        return self.projection

    def fail(self, error: TransportError) -> AssistantMessageProjection:
        """Put the turn in a terminal state after a read failure."""
        logger.error(f"Turn failed: {error}")
        timeline = self.context.timeline
        timeline.close_open()
        for record in self.context.registry.fail_calling(self.config.failure_message):
            timeline.upsert_tool_call(record)
        timeline.append_text_segment(self.config.failure_message)
        self.context.error = str(error)
        self._report(describe_error(classify_status(error.status_code), str(error)))
        return self._publish()

    async def finalize(self) -> AssistantMessageProjection:
        """Close the turn, save it and reconcile with the stored records."""
        self.context.timeline.close_open()
        projection = self._publish()
        self.completed = True
        if self.store is None:
            return projection

        conversation_id = self.context.conversation_id
        try:
            message_id = self.store.save_assistant_message(
                conversation_id,
                projection.content,
                metadata={
                    "reasoning": projection.reasoning,
                    "tool_calls": projection.tool_calls,
                    "permissions": [
                        {**segment.permission.to_dict(), "status": segment.status.value}
                        for segment in self.context.timeline.permission_segments()
                    ],
                },
            )
            self.context.message_id = message_id
            await asyncio.sleep(self.config.reload_delay)
            records = self.store.load_turn_records(conversation_id, message_id)
        except PersistenceError as e:
            self._report(describe_error(ErrorType.PERSISTENCE_ERROR, str(e)))
            return projection

        self.reconcile(records)
        return self._publish()

    def reconcile(self, records: TurnRecords) -> None:
        """Overwrite in-memory tool-call and permission state with stored values."""
        registry = self.context.registry
        for stored in records.tool_calls:
            record = registry.get(str(stored.get("id", "")))
            if record is None:
                continue
            try:
                record.status = ToolCallStatus(stored.get("status", record.status.value))
            except ValueError:
                logger.warning(f"Stored tool call {record.display_id} has unknown status")
            if "result" in stored:
                record.result = stored["result"]

        for stored in records.permissions:
            try:
                status = PermissionStatus(stored.get("status"))
            except ValueError:
                logger.warning(f"Stored permission {stored.get('permission_id')} has unknown status")
                continue
            self.context.permissions.apply_stored_status(str(stored.get("permission_id")), status)
