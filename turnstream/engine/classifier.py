"""Line classification for the agent response stream.

Two encodings share one stream:

- envelope lines, ``data: <payload>``, carrying a JSON event (or the
  ``[DONE]`` sentinel that marks the end of the turn), and
- index lines, ``<digits>:<payload>``, carrying a JSON string literal or
  raw text.

The classifier only looks at the shape of a line; decoding and recovery
from bad payloads belong to the decoders.
"""

import re
from dataclasses import dataclass
from enum import Enum

from ..constants import DONE_SENTINEL, ENVELOPE_PREFIX


class LineKind(Enum):
    """Routing decision for one stream line."""
    ENVELOPE = "envelope"   # Structured/legacy event payload
    INDEXED = "indexed"     # Digit-prefixed text payload
    DONE = "done"           # End-of-turn sentinel
    EMPTY = "empty"         # Blank line or empty payload
    OTHER = "other"         # Not specially classified


@dataclass(frozen=True)
class ClassifiedLine:
    """A stream line tagged with its encoding.

    Attributes:
        kind: How the line should be routed
        payload: The part of the line after its prefix
    """
    kind: LineKind
    payload: str = ""


_INDEX_PREFIX = re.compile(r"^(\d+):")


class LineClassifier:
    """Routes reassembled lines to the matching decoder by prefix shape."""

    def __init__(
        self,
        envelope_prefix: str = ENVELOPE_PREFIX,
        done_sentinel: str = DONE_SENTINEL,
    ) -> None:
        # Tolerate a missing space after the field name ("data:{...}")
        self._bare_prefix = envelope_prefix.rstrip()
        self._done_sentinel = done_sentinel

    def classify(self, raw_line: str) -> ClassifiedLine:
        """Classify one logical line.

        Args:
            raw_line: A complete line without its terminator

        Returns:
            ClassifiedLine describing the routing decision
        """
        line = raw_line.strip()
        if not line:
            return ClassifiedLine(LineKind.EMPTY)

        if line.startswith(self._bare_prefix):
            payload = line[len(self._bare_prefix):].strip()
            if not payload:
                return ClassifiedLine(LineKind.EMPTY)
            if payload == self._done_sentinel:
                return ClassifiedLine(LineKind.DONE, payload)
            return ClassifiedLine(LineKind.ENVELOPE, payload)

        match = _INDEX_PREFIX.match(line)
        if match:
            payload = line[match.end():].strip()
            if not payload:
                return ClassifiedLine(LineKind.EMPTY)
            return ClassifiedLine(LineKind.INDEXED, payload)

        return ClassifiedLine(LineKind.OTHER, line)
