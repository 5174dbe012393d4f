"""
Property-based tests for the permission lifecycle.

Covers the status transition table and the optimistic approve/deny path
with its revert on failure.
"""

import asyncio

import allure
import pytest
from hypothesis import given, settings, strategies as st

from turnstream.engine.permissions import (
    PendingPermission,
    PermissionAction,
    PermissionStatus,
    PermissionTracker,
    transition,
)
from turnstream.engine.timeline import TimelineBuilder
from turnstream.errors import (
    ErrorType,
    InvalidPermissionTransition,
    PermissionActionError,
    UnauthorizedError,
)


PENDING = PermissionStatus.PENDING
APPROVED = PermissionStatus.APPROVED
DENIED = PermissionStatus.DENIED


@allure.feature("Permission Lifecycle")
@allure.story("Transition table")
@allure.severity(allure.severity_level.CRITICAL)
@pytest.mark.parametrize("current, action, failed, expected", [
    (PENDING, PermissionAction.APPROVE, False, APPROVED),
    (PENDING, PermissionAction.DENY, False, DENIED),
    (PENDING, PermissionAction.REVERT, True, None),
    (PENDING, PermissionAction.REVERT, False, None),
    (APPROVED, PermissionAction.APPROVE, False, None),
    (APPROVED, PermissionAction.DENY, False, None),
    (APPROVED, PermissionAction.REVERT, False, None),
    (APPROVED, PermissionAction.REVERT, True, PENDING),
    (DENIED, PermissionAction.APPROVE, False, None),
    (DENIED, PermissionAction.DENY, False, None),
    (DENIED, PermissionAction.REVERT, False, None),
    (DENIED, PermissionAction.REVERT, True, PENDING),
])
def test_transition_table(current, action, failed, expected):
    if expected is None:
        with pytest.raises(InvalidPermissionTransition):
            transition(current, action, action_failed=failed)
    else:
        assert transition(current, action, action_failed=failed) is expected


@allure.feature("Permission Lifecycle")
@allure.story("No reverse transitions without a failed action")
@settings(max_examples=100)
@given(st.lists(st.sampled_from([PermissionAction.APPROVE, PermissionAction.DENY]), max_size=10))
def test_decided_status_is_sticky(actions):
    """Without failures, the first decision is final."""
    status = PENDING
    for action in actions:
        try:
            status = transition(status, action)
        except InvalidPermissionTransition:
            pass
    expected = PENDING
    if actions:
        expected = APPROVED if actions[0] is PermissionAction.APPROVE else DENIED
    assert status is expected


class RecordingBackend:
    """Stands in for an AgentBackend's permission endpoint."""

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def respond_to_permission(self, permission_id, approved):
        self.calls.append((permission_id, approved))
        if self.error is not None:
            raise self.error
        return {}


def make_tracker(backend, reported=None, changes=None):
    timeline = TimelineBuilder()
    tracker = PermissionTracker(
        timeline,
        backend=backend,
        error_reporter=(reported.append if reported is not None else lambda result: None),
        on_change=(lambda: changes.append(timeline.permission_segment("p1").status)) if changes is not None else None,
    )
    timeline.append_or_extend_text("Running a command. ")
    tracker.register(PendingPermission("p1", "shell", {"cmd": "ls"}))
    timeline.append_or_extend_text("Waiting.")
    return tracker, timeline


@allure.feature("Permission Lifecycle")
@allure.story("Optimistic approve")
def test_approve_updates_status_in_place():
    backend = RecordingBackend()
    changes = []
    tracker, timeline = make_tracker(backend, changes=changes)
    position = timeline.segments.index(timeline.permission_segment("p1"))

    assert asyncio.run(tracker.approve("p1")) is True

    segment = timeline.permission_segment("p1")
    assert segment.status is APPROVED
    assert timeline.segments.index(segment) == position
    assert backend.calls == [("p1", True)]
    assert not tracker.is_awaiting("p1")
    assert changes[0] is APPROVED


@allure.feature("Permission Lifecycle")
@allure.story("Revert on failure")
def test_failed_deny_reverts_and_reports():
    backend = RecordingBackend(error=PermissionActionError("p1", "503", status_code=503))
    reported = []
    changes = []
    tracker, timeline = make_tracker(backend, reported=reported, changes=changes)

    assert asyncio.run(tracker.deny("p1")) is False

    assert timeline.permission_segment("p1").status is PENDING
    assert tracker.is_awaiting("p1")
    assert changes == [DENIED, PENDING]
    assert [r.error_type for r in reported] == [ErrorType.PERMISSION_ACTION]
    assert reported[0].recoverable


def test_unauthorized_reverts_and_propagates():
    backend = RecordingBackend(error=UnauthorizedError("expired"))
    tracker, timeline = make_tracker(backend)

    with pytest.raises(UnauthorizedError):
        asyncio.run(tracker.approve("p1"))
    assert timeline.permission_segment("p1").status is PENDING


def test_second_action_on_decided_permission_rejected():
    backend = RecordingBackend()
    tracker, timeline = make_tracker(backend)

    asyncio.run(tracker.approve("p1"))
    assert asyncio.run(tracker.deny("p1")) is False
    assert timeline.permission_segment("p1").status is APPROVED
    assert backend.calls == [("p1", True)]


def test_concurrent_actions_on_same_permission():
    class SlowBackend(RecordingBackend):
        async def respond_to_permission(self, permission_id, approved):
            self.calls.append((permission_id, approved))
            await self.gate.wait()
            return {}

    async def main():
        backend = SlowBackend()
        backend.gate = asyncio.Event()
        tracker, timeline = make_tracker(backend)
        first = asyncio.ensure_future(tracker.approve("p1"))
        await asyncio.sleep(0)
        second = await tracker.deny("p1")
        backend.gate.set()
        return await first, second, timeline.permission_segment("p1").status, backend.calls

    first, second, status, calls = asyncio.run(main())
    assert first is True
    assert second is False
    assert status is APPROVED
    assert calls == [("p1", True)]


def test_unknown_permission_and_missing_backend():
    tracker, _ = make_tracker(RecordingBackend())
    assert asyncio.run(tracker.approve("nope")) is False

    no_backend, timeline = make_tracker(None)
    assert asyncio.run(no_backend.approve("p1")) is False
    assert timeline.permission_segment("p1").status is PENDING


@allure.feature("Permission Lifecycle")
@allure.story("Denial and timeout from the stream")
@pytest.mark.parametrize("reason", ["denied", "timeout"])
def test_stream_close_denies_pending(reason):
    tracker, timeline = make_tracker(RecordingBackend())
    tracker.close_from_stream("p1", reason)
    assert timeline.permission_segment("p1").status is DENIED
    assert tracker.awaiting == []


def test_stream_close_after_approval_keeps_approval():
    tracker, timeline = make_tracker(RecordingBackend())
    asyncio.run(tracker.approve("p1"))
    tracker.close_from_stream("p1", "timeout")
    assert timeline.permission_segment("p1").status is APPROVED


def test_stored_status_overrides():
    tracker, timeline = make_tracker(RecordingBackend())
    tracker.apply_stored_status("p1", APPROVED)
    assert timeline.permission_segment("p1").status is APPROVED
    assert not tracker.is_awaiting("p1")


def test_stored_pending_does_not_undo_decision():
    tracker, timeline = make_tracker(RecordingBackend())
    asyncio.run(tracker.approve("p1"))
    tracker.apply_stored_status("p1", PENDING)
    tracker.apply_stored_status("p1", DENIED)
    assert timeline.permission_segment("p1").status is APPROVED


class GatedBackend(RecordingBackend):
    """Permission endpoint that answers only once ``gate`` is set."""

    def __init__(self, error=None):
        super().__init__(error)
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def respond_to_permission(self, permission_id, approved):
        self.calls.append((permission_id, approved))
        self.started.set()
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return {}


@allure.feature("Permission Lifecycle")
@allure.story("Stream and action racing on one permission")
@allure.severity(allure.severity_level.CRITICAL)
@pytest.mark.parametrize("reason", ["denied", "timeout"])
def test_stream_close_during_failed_approve_ends_denied(reason):
    async def main():
        backend = GatedBackend(error=PermissionActionError("p1", "gone", status_code=410))
        tracker, timeline = make_tracker(backend)
        pending = asyncio.ensure_future(tracker.approve("p1"))
        await backend.started.wait()
        tracker.close_from_stream("p1", reason)
        during = timeline.permission_segment("p1").status
        backend.gate.set()
        return await pending, during, timeline.permission_segment("p1").status, tracker

    accepted, during, final, tracker = asyncio.run(main())
    assert accepted is False
    assert during is APPROVED
    assert final is DENIED
    assert not tracker.is_awaiting("p1")


def test_stored_status_skipped_while_action_in_flight():
    async def main():
        backend = GatedBackend()
        tracker, timeline = make_tracker(backend)
        pending = asyncio.ensure_future(tracker.approve("p1"))
        await backend.started.wait()
        tracker.apply_stored_status("p1", PENDING)
        tracker.apply_stored_status("p1", DENIED)
        during = timeline.permission_segment("p1").status
        backend.gate.set()
        return await pending, during, timeline.permission_segment("p1").status

    accepted, during, final = asyncio.run(main())
    assert accepted is True
    assert during is APPROVED
    assert final is APPROVED
