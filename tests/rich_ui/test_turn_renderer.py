"""
Tests for terminal rendering of turn projections.
"""

import allure
from rich.console import Console

from turnstream.config import UIConfig
from turnstream.engine.permissions import PendingPermission, PermissionStatus
from turnstream.engine.projection import AssistantMessageProjection
from turnstream.engine.timeline import (
    PermissionSegment,
    TextSegment,
    ThinkingSegment,
    ToolCallSegment,
)
from turnstream.engine.tool_calls import ToolCallRecord, ToolCallStatus
from turnstream.rich_ui import TurnView, render_projection
from turnstream.rich_ui.turn_renderer import CURSOR


def render_text(projection, ui_config=None) -> str:
    console = Console(record=True, width=100, color_system=None)
    console.print(render_projection(projection, ui_config))
    return console.export_text()


def sample_projection(**overrides) -> AssistantMessageProjection:
    record = ToolCallRecord(
        base_id="t1",
        tool_name="search",
        status=ToolCallStatus.COMPLETED,
        args={"q": "weather"},
        result={"content": "sunny"},
    )
    fields = dict(
        content="It is sunny.",
        timeline=[
            ThinkingSegment("checking the forecast", is_active=False),
            ToolCallSegment(record),
            PermissionSegment(
                PendingPermission("p1", "shell", {"cmd": "ls"}),
                PermissionStatus.APPROVED,
            ),
            TextSegment("It is sunny."),
        ],
    )
    fields.update(overrides)
    return AssistantMessageProjection(**fields)


@allure.feature("Terminal Rendering")
@allure.story("Segments in timeline order")
def test_renders_every_segment_in_order():
    output = render_text(sample_projection())

    positions = [output.index(marker) for marker in (
        "Reasoning", "checking the forecast", "search", "weather", "sunny",
        "Permission required", "Approved", "It is sunny.",
    )]
    assert positions == sorted(positions)
    assert CURSOR not in output


def test_active_thinking_shows_cursor():
    projection = AssistantMessageProjection(
        is_thinking=True,
        timeline=[ThinkingSegment("still going", is_active=True)],
    )
    assert "still going" + CURSOR in render_text(projection)


def test_ui_options_hide_thinking_and_results():
    output = render_text(
        sample_projection(),
        UIConfig(show_thinking=False, show_tool_results=False),
    )
    assert "Reasoning" not in output
    assert "sunny" in output  # answer text only
    assert "result" not in output


def test_pending_permission_and_error():
    projection = AssistantMessageProjection(
        timeline=[PermissionSegment(PendingPermission("p7", "rm", {"path": "/tmp/x"}))],
        error="connection reset",
    )
    output = render_text(projection)
    assert "Waiting for approval" in output
    assert "p7" in output
    assert "connection reset" in output


def test_long_results_truncated():
    record = ToolCallRecord(base_id="t1", tool_name="dump", result={"content": "x" * 500})
    projection = AssistantMessageProjection(timeline=[ToolCallSegment(record)])
    output = render_text(projection, UIConfig(max_result_chars=40))
    assert "x" * 100 not in output
    assert "..." in output


def test_turn_view_keeps_last_projection():
    console = Console(record=True, width=80, color_system=None, force_terminal=False)
    projection = sample_projection()
    with TurnView(console) as view:
        view.update(projection)
    assert view.last is projection
    assert "It is sunny." in console.export_text()
