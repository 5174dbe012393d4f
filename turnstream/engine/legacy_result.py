"""Parser for the legacy literal-object tool result encoding.

Older backends sent tool results as the ``repr`` of a result object::

    ToolReturnPart(tool_name='search', content='it\\'s done', tool_call_id='t1')

This is not JSON and there is no library decoder for it. The scanner below
walks the text with a small set of named states and extracts the
single-quoted values of ``tool_name``, ``content`` and ``tool_call_id``.
Values of other fields are skipped, including nested calls and lists.

Only single-quoted values are read. A required field whose value is not
single-quoted (``None``, a nested object, a double-quoted string) makes
the whole parse fail so that callers fall back to the raw text.
"""

import re
from enum import Enum

from ..errors import LegacyResultFailure, UnrecognizedLegacyResultError


RESULT_FIELDS = ("tool_name", "content", "tool_call_id")
REQUIRED_FIELD = "content"

_LITERAL_HEAD = re.compile(r"^[A-Za-z_][\w.]*\(")

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "\\": "\\",
    "'": "'",
    '"': '"',
}


class ScanState(Enum):
    """States of the literal scanner."""
    SEEKING_FIELD = "seeking_field"    # Reading a field name up to '='
    SEEKING_QUOTE = "seeking_quote"    # After '=', waiting for the opening quote
    READING_VALUE = "reading_value"    # Inside a single-quoted value
    ESCAPE = "escape"                  # After a backslash inside a value
    SKIPPING_VALUE = "skipping_value"  # Inside a value that is not single-quoted
    DONE = "done"                      # Closing parenthesis reached


class LiteralScanner:
    """Scans the argument list of one ``TypeName(...)`` literal.

    Attributes:
        values: Single-quoted field values, unescaped, first occurrence wins
        unquoted: Names of fields whose value was not single-quoted
    """

    def __init__(self, text: str, start: int) -> None:
        self._text = text
        self._pos = start
        self.state = ScanState.SEEKING_FIELD
        self.values: dict[str, str] = {}
        self.unquoted: set[str] = set()
        self._name: list[str] = []
        self._name_done = False
        self._value: list[str] = []
        self._field = ""
        self._depth = 0
        self._quote = ""

    def run(self) -> int:
        """Scan until the closing parenthesis.

        Returns:
            Position of the closing parenthesis

        Raises:
            UnrecognizedLegacyResultError: On an unterminated value or
                when the argument list never closes
        """
        text = self._text
        while self._pos < len(text):
            handler = getattr(self, f"_on_{self.state.value}")
            if handler(text[self._pos]):
                self._pos += 1
            if self.state is ScanState.DONE:
                return self._pos - 1

        if self.state in (ScanState.READING_VALUE, ScanState.ESCAPE):
            raise UnrecognizedLegacyResultError(
                LegacyResultFailure.UNTERMINATED_VALUE, self._field
            )
        raise UnrecognizedLegacyResultError(LegacyResultFailure.NOT_A_LITERAL)

    # Each handler returns True when it consumed the character.

    def _on_seeking_field(self, ch: str) -> bool:
        if ch == "=" and self._name:
            self._field = "".join(self._name)
            self._name = []
            self._name_done = False
            self.state = ScanState.SEEKING_QUOTE
        elif ch == ")":
            self.state = ScanState.DONE
        elif ch.isspace():
            self._name_done = bool(self._name)
        elif ch.isalnum() or ch == "_":
            if self._name_done:
                self._name = []
                self._name_done = False
            self._name.append(ch)
        else:
            self._name = []
            self._name_done = False
        return True

    def _on_seeking_quote(self, ch: str) -> bool:
        if ch.isspace():
            return True
        if ch == "'":
            self._value = []
            self.state = ScanState.READING_VALUE
            return True
        self.unquoted.add(self._field)
        self._depth = 0
        self._quote = ""
        self.state = ScanState.SKIPPING_VALUE
        return False

    def _on_reading_value(self, ch: str) -> bool:
        if ch == "\\":
            self.state = ScanState.ESCAPE
        elif ch == "'":
            self.values.setdefault(self._field, "".join(self._value))
            self.state = ScanState.SEEKING_FIELD
        else:
            self._value.append(ch)
        return True

    def _on_escape(self, ch: str) -> bool:
        self._value.append(_ESCAPES.get(ch, "\\" + ch))
        self.state = ScanState.READING_VALUE
        return True

    def _on_skipping_value(self, ch: str) -> bool:
        if self._quote:
            if ch == "\\":
                self._pos += 1
            elif ch == self._quote:
                self._quote = ""
        elif ch in "'\"":
            self._quote = ch
        elif ch in "([{":
            self._depth += 1
        elif ch in ")]}":
            if self._depth == 0:
                self.state = ScanState.DONE
            else:
                self._depth -= 1
        elif ch == "," and self._depth == 0:
            self.state = ScanState.SEEKING_FIELD
        return True


def parse_legacy_result(text: str) -> dict[str, str]:
    """Decode a legacy literal-object tool result.

    Args:
        text: The raw result string

    Returns:
        Dict with ``content`` and, when present, ``tool_name`` and
        ``tool_call_id``

    Raises:
        UnrecognizedLegacyResultError: If the text is not in the legacy form
    """
    text = text.strip()
    head = _LITERAL_HEAD.match(text)
    if not head or not text.endswith(")"):
        raise UnrecognizedLegacyResultError(LegacyResultFailure.NOT_A_LITERAL)

    scanner = LiteralScanner(text, head.end())
    end = scanner.run()
    if end != len(text) - 1:
        raise UnrecognizedLegacyResultError(LegacyResultFailure.NOT_A_LITERAL)

    if REQUIRED_FIELD not in scanner.values:
        if REQUIRED_FIELD in scanner.unquoted:
            raise UnrecognizedLegacyResultError(
                LegacyResultFailure.UNQUOTED_VALUE, REQUIRED_FIELD
            )
        raise UnrecognizedLegacyResultError(
            LegacyResultFailure.MISSING_FIELD, REQUIRED_FIELD
        )

    return {name: scanner.values[name] for name in RESULT_FIELDS if name in scanner.values}
