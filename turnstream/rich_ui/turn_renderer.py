"""Terminal rendering of assistant turn projections.

``render_projection`` turns a projection into one rich renderable with a
panel per reasoning block, tool call and permission request and Markdown
for answer text. ``TurnView`` keeps a ``Live`` display in sync with the
engine by acting as its ``on_update`` callback.
"""

from typing import Any, Optional

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..config import UIConfig
from ..engine.permissions import PermissionStatus
from ..engine.projection import AssistantMessageProjection
from ..engine.timeline import (
    PermissionSegment,
    TextSegment,
    ThinkingSegment,
    ToolCallSegment,
)
from ..engine.tool_calls import ToolCallRecord, ToolCallStatus
from ..utils import format_json, truncate_string


CURSOR = "▌"

TOOL_STATUS_STYLES = {
    ToolCallStatus.CALLING: ("⋯", "cyan"),
    ToolCallStatus.COMPLETED: ("✓", "green"),
    ToolCallStatus.ERROR: ("✗", "red"),
}

PERMISSION_STATUS_STYLES = {
    PermissionStatus.PENDING: ("?", "yellow", "Waiting for approval"),
    PermissionStatus.APPROVED: ("✓", "green", "Approved"),
    PermissionStatus.DENIED: ("✗", "red", "Denied"),
}


def render_thinking(segment: ThinkingSegment) -> Panel:
    """Reasoning block; an open block gets a streaming cursor."""
    display_content = segment.content.strip()
    if segment.is_active:
        display_content += CURSOR

    return Panel(
        Text(display_content, style="dim italic"),
        title="💭 Reasoning",
        title_align="left",
        border_style="yellow",
        padding=(0, 1),
    )


def render_tool_call(record: ToolCallRecord, ui_config: UIConfig) -> Panel:
    icon, style = TOOL_STATUS_STYLES[record.status]

    body = Table.grid(padding=(0, 1))
    body.add_column(style="bold")
    body.add_column()
    if record.args:
        body.add_row("args", Text(_preview(record.args, ui_config.max_result_chars)))
    elif record.raw_args:
        body.add_row("args", Text(truncate_string(record.raw_args, ui_config.max_result_chars)))
    if ui_config.show_tool_results and record.result is not None:
        body.add_row("result", Text(_preview(record.result, ui_config.max_result_chars)))

    return Panel(
        body,
        title=f"{icon} {record.tool_name}",
        title_align="left",
        subtitle=record.display_id,
        subtitle_align="right",
        border_style=style,
        padding=(0, 1),
    )


def render_permission(segment: PermissionSegment, max_chars: int) -> Panel:
    icon, style, label = PERMISSION_STATUS_STYLES[segment.status]
    permission = segment.permission

    body = Table.grid(padding=(0, 1))
    body.add_column(style="bold")
    body.add_column()
    body.add_row("tool", permission.tool_name or "-")
    if permission.tool_args:
        body.add_row("args", Text(_preview(permission.tool_args, max_chars)))
    body.add_row("status", Text(label, style=style))

    return Panel(
        body,
        title=f"{icon} Permission required",
        title_align="left",
        subtitle=permission.permission_id,
        subtitle_align="right",
        border_style=style,
        padding=(0, 1),
    )


def _preview(value: Any, max_chars: int) -> str:
    return truncate_string(format_json(value), max_chars)


def render_projection(
    projection: AssistantMessageProjection,
    ui_config: Optional[UIConfig] = None,
) -> Group:
    """
    Render a projection as a rich Group, one renderable per segment.

    Args:
        projection: Projection to render
        ui_config: Display options

    Returns:
        Group of renderables in timeline order
    """
    ui_config = ui_config or UIConfig()
    renderables: list[RenderableType] = []

    for segment in projection.timeline:
        if isinstance(segment, ThinkingSegment):
            if ui_config.show_thinking:
                renderables.append(render_thinking(segment))
        elif isinstance(segment, TextSegment):
            if segment.content:
                renderables.append(Markdown(segment.content))
        elif isinstance(segment, ToolCallSegment):
            renderables.append(render_tool_call(segment.record, ui_config))
        elif isinstance(segment, PermissionSegment):
            renderables.append(render_permission(segment, ui_config.max_result_chars))

    if projection.error:
        renderables.append(Text(f"✗ {projection.error}", style="red"))

    return Group(*renderables)


class TurnView:
    """
    Live terminal view of one turn.

    Usage:
        with TurnView(console) as view:
            await engine.run(chunks)   # engine.on_update = view.update
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        ui_config: Optional[UIConfig] = None,
        refresh_per_second: int = 15,
    ) -> None:
        self._console = console or Console()
        self._ui_config = ui_config or UIConfig()
        self._live = Live(
            Group(),
            console=self._console,
            refresh_per_second=refresh_per_second,
            vertical_overflow="visible",
        )
        self.last: Optional[AssistantMessageProjection] = None

    def __enter__(self) -> "TurnView":
        self._live.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self.last is not None:
            self._live.update(render_projection(self.last, self._ui_config))
        self._live.stop()

    def update(self, projection: AssistantMessageProjection) -> None:
        self.last = projection
        self._live.update(render_projection(projection, self._ui_config))
