"""
Permission request lifecycle.

A permission request arrives through the stream and is answered out of
band with an HTTP action. Both paths change the status of the same
timeline segment, so every status change goes through ``transition`` and
segments are always looked up by permission id.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..errors import (
    ErrorReporter,
    ErrorType,
    InvalidPermissionTransition,
    PermissionActionError,
    UnauthorizedError,
    describe_error,
    log_error_reporter,
)

if TYPE_CHECKING:
    from ..transport.base import AgentBackend
    from .timeline import TimelineBuilder


logger = logging.getLogger(__name__)


class PermissionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class PermissionAction(str, Enum):
    APPROVE = "approve"
    DENY = "deny"
    REVERT = "revert"


def transition(
    current: PermissionStatus,
    action: PermissionAction,
    action_failed: bool = False,
) -> PermissionStatus:
    """
    Compute the status a permission moves to.

    Only pending permissions can be approved or denied. A decided
    permission goes back to pending only when the action that decided it
    has just failed.

    Args:
        current: Current status
        action: Requested change
        action_failed: The action on this permission failed

    Returns:
        The new status

    Raises:
        InvalidPermissionTransition: If the change is not allowed
    """
    if current is PermissionStatus.PENDING:
        if action is PermissionAction.APPROVE:
            return PermissionStatus.APPROVED
        if action is PermissionAction.DENY:
            return PermissionStatus.DENIED
    elif action is PermissionAction.REVERT and action_failed:
        return PermissionStatus.PENDING
    raise InvalidPermissionTransition(current.value, action.value)


@dataclass
class PendingPermission:
    """A tool invocation waiting for the user's approval."""
    permission_id: str
    tool_name: str
    tool_args: dict[str, Any] = field(default_factory=dict)
    tool_call_id: Optional[str] = None
    conversation_id: Optional[str] = None
    agent_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "permission_id": self.permission_id,
            "tool_name": self.tool_name,
            "tool_args": self.tool_args,
            "tool_call_id": self.tool_call_id,
            "conversation_id": self.conversation_id,
            "agent_id": self.agent_id,
        }


class PermissionTracker:
    """
    Keeps permission segments and the awaiting-action set of one turn.

    ``approve`` / ``deny`` may run concurrently with the stream read loop.
    They update the segment optimistically, send the decision, and revert
    the segment to pending if sending fails.
    """

    def __init__(
        self,
        timeline: "TimelineBuilder",
        backend: Optional["AgentBackend"] = None,
        error_reporter: ErrorReporter = log_error_reporter,
        on_change: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._timeline = timeline
        self._backend = backend
        self._report = error_reporter
        self.on_change = on_change
        self._awaiting: dict[str, PendingPermission] = {}
        self._in_flight: set[str] = set()
        self._closed_by_stream: set[str] = set()

    @property
    def awaiting(self) -> list[PendingPermission]:
        """Permissions still waiting for a decision."""
        return list(self._awaiting.values())

    def is_awaiting(self, permission_id: str) -> bool:
        return permission_id in self._awaiting

    def knows(self, permission_id: str) -> bool:
        return self._timeline.permission_segment(permission_id) is not None

    def register(self, permission: PendingPermission) -> None:
        """Add a permission request from the stream."""
        self._timeline.append_permission(permission)
        self._awaiting[permission.permission_id] = permission

    def close_from_stream(self, permission_id: str, reason: str) -> None:
        """
        Handle a denial or timeout reported by the backend.

        If an action is in flight the segment keeps its optimistic status;
        should that action fail, the revert lands on denied instead of
        pending.
        """
        self._awaiting.pop(permission_id, None)
        segment = self._timeline.permission_segment(permission_id)
        if segment is None:
            logger.warning(f"Permission {reason} for unknown id {permission_id}")
            return
        self._closed_by_stream.add(permission_id)
        try:
            segment.status = transition(segment.status, PermissionAction.DENY)
        except InvalidPermissionTransition as e:
            logger.warning(f"Ignoring permission {reason} for {permission_id}: {e}")

    def apply_stored_status(self, permission_id: str, status: PermissionStatus) -> None:
        """
        Bring a segment in line with its persisted status.

        Skipped while an action on the permission is in flight. A stored
        status may decide a pending permission but never undo a decision.
        """
        segment = self._timeline.permission_segment(permission_id)
        if segment is None or segment.status is status:
            return
        if permission_id in self._in_flight:
            logger.debug(f"Keeping status of {permission_id}: action in flight")
            return
        action = (
            PermissionAction.APPROVE if status is PermissionStatus.APPROVED
            else PermissionAction.DENY if status is PermissionStatus.DENIED
            else PermissionAction.REVERT
        )
        try:
            segment.status = transition(segment.status, action)
        except InvalidPermissionTransition as e:
            logger.warning(f"Ignoring stored status for {permission_id}: {e}")
            return
        self._awaiting.pop(permission_id, None)

    async def approve(self, permission_id: str) -> bool:
        """Approve a pending permission. Returns True if the backend accepted it."""
        return await self._respond(permission_id, PermissionAction.APPROVE)

    async def deny(self, permission_id: str) -> bool:
        """Deny a pending permission. Returns True if the backend accepted it."""
        return await self._respond(permission_id, PermissionAction.DENY)

    async def _respond(self, permission_id: str, action: PermissionAction) -> bool:
        segment = self._timeline.permission_segment(permission_id)
        if segment is None:
            logger.warning(f"Cannot {action.value} unknown permission {permission_id}")
            return False
        if self._backend is None:
            logger.warning(f"No backend to {action.value} permission {permission_id}")
            return False
        if permission_id in self._in_flight:
            logger.warning(f"Permission {permission_id} already has an action in flight")
            return False

        try:
            segment.status = transition(segment.status, action)
        except InvalidPermissionTransition as e:
            logger.warning(str(e))
            return False

        self._in_flight.add(permission_id)
        self._notify()
        try:
            await self._backend.respond_to_permission(
                permission_id, action is PermissionAction.APPROVE
            )
        except UnauthorizedError:
            self._revert(permission_id)
            raise
        except PermissionActionError as e:
            self._revert(permission_id)
            self._report(describe_error(ErrorType.PERMISSION_ACTION, str(e)))
            return False
        finally:
            self._in_flight.discard(permission_id)
            self._notify()

        self._awaiting.pop(permission_id, None)
        return True

    def _revert(self, permission_id: str) -> None:
        segment = self._timeline.permission_segment(permission_id)
        if segment is None:
            return
        segment.status = transition(
            segment.status,
            PermissionAction.REVERT,
            action_failed=permission_id in self._in_flight,
        )
        if permission_id in self._closed_by_stream:
            # the backend already closed it; it cannot be answered again
            segment.status = transition(segment.status, PermissionAction.DENY)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()
