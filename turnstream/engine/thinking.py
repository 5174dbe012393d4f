"""Tracking of the single open reasoning block of a turn."""

from typing import Optional


class ThinkingAccumulator:
    """
    State machine for reasoning blocks.

    At most one block is open at a time. Closing a block moves its content
    to ``closed``; a closed block is never reopened, the next fragment
    starts a new one.
    """

    def __init__(self) -> None:
        self.content = ""
        self.is_active = False
        self.closed: list[str] = []

    def open(self) -> bool:
        """Start a block unless one is already open.

        Returns:
            True if a new block was started
        """
        if self.is_active:
            return False
        self.content = ""
        self.is_active = True
        return True

    def append(self, fragment: str) -> None:
        if not self.is_active:
            self.open()
        self.content += fragment

    def close(self) -> Optional[str]:
        """Close the open block and return its content."""
        if not self.is_active:
            return None
        self.is_active = False
        content, self.content = self.content, ""
        if content:
            self.closed.append(content)
        return content

    @property
    def reasoning(self) -> list[str]:
        """Closed blocks in order, followed by the open one if it has content."""
        if self.is_active and self.content:
            return [*self.closed, self.content]
        return list(self.closed)
