"""
Located HTML diagnostics.

Builds the errors reported when a referenced file does not exist or fails to
build: the attribute's literal text is located in the document so the
diagnostic can show a line, a column and a short excerpt with a caret.
"""

import re
from typing import Any, Dict, Optional, Tuple


REASON_MISSING = "does not exist"
REASON_BUILD_FAILED = "failed to build"


class HTMLParseError(Exception):
    """A problem with one element reference inside an HTML document."""

    def __init__(self,
                 document: str,
                 element: str,
                 attribute: str,
                 value: str,
                 line: int = 0,
                 column: int = 0,
                 excerpt: str = '',
                 reason: str = REASON_MISSING):
        self.document = document
        self.element = element
        self.attribute = attribute
        self.value = value
        self.line = line
        self.column = column
        self.excerpt = excerpt
        self.reason = reason
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return f"HTMLParseError: Specified <{self.element}> {self.attribute} '{self.value}' {self.reason}!"

    @property
    def location(self) -> str:
        return f"{self.document}:{self.line}:{self.column}"

    def render(self) -> str:
        """Excerpt, caret line, message and location, one per line."""
        parts = []
        if self.excerpt:
            parts.append(self.excerpt)
            gutter = len(str(self.line)) + 1
            parts.append('^'.rjust(gutter + self.column))
        parts.append(self.message)
        parts.append(f"    at {self.location}")
        return '\n'.join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document': self.document,
            'element': self.element,
            'attribute': self.attribute,
            'value': self.value,
            'line': self.line,
            'column': self.column,
            'reason': self.reason,
        }


def _line_offset(text: str, line: int) -> int:
    """Character offset of the start of 1-based ``line``."""
    offset = 0
    for _ in range(max(line - 1, 0)):
        newline = text.find('\n', offset)
        if newline == -1:
            return len(text)
        offset = newline + 1
    return offset


def offset_to_position(text: str, offset: int) -> Tuple[int, int]:
    """1-based (line, column) of a character offset."""
    line = text.count('\n', 0, offset) + 1
    column = offset - (text.rfind('\n', 0, offset) + 1) + 1
    return line, column


def locate_attribute(text: str,
                     name: str,
                     value: str,
                     near_line: Optional[int] = None) -> Optional[Tuple[int, int]]:
    """
    Find where ``name="value"`` is written in a document.

    Accepts double, single or missing quotes and whitespace around ``=``.
    The search starts at ``near_line`` when the parser reported one and
    falls back to the whole document.

    Returns:
        1-based (line, column) of the attribute name, or None
    """
    pattern = re.compile(
        r'(?<![\w-])' + re.escape(name) + r'\s*=\s*(["\']?)' + re.escape(value) + r'\1',
        re.IGNORECASE,
    )
    starts = [0]
    if near_line:
        starts.insert(0, _line_offset(text, near_line))
    for start in starts:
        match = pattern.search(text, start)
        if match:
            return offset_to_position(text, match.start())
    return None


def excerpt(text: str, line: int, amount: int = 4) -> str:
    """The ``amount`` lines ending at ``line``, each prefixed with its number."""
    lines = text.split('\n')
    if line <= 0 or not lines:
        return ''
    end = min(line, len(lines))
    start = max(end - amount, 0)
    width = len(str(end))
    return '\n'.join(
        f"{str(i + 1).rjust(width)}:{lines[i].replace(chr(9), '    ')}"
        for i in range(start, end)
    )


def build_diagnostic(document: str,
                     text: str,
                     element: str,
                     attribute: str,
                     value: str,
                     reason: str = REASON_MISSING,
                     near_line: Optional[int] = None,
                     near_column: Optional[int] = None) -> HTMLParseError:
    """
    Create a located HTMLParseError for one element reference.

    Args:
        document: Path of the HTML document
        text: The document text the attribute is searched in
        element: Tag name of the element
        attribute: Attribute name
        value: Raw attribute value
        reason: Human readable failure reason
        near_line: Line reported by the HTML parser, used as a search hint
        near_column: Column reported by the HTML parser (0-based), used
            when the attribute text cannot be found

    Returns:
        The diagnostic, not yet reported
    """
    position = locate_attribute(text, attribute, value, near_line)
    if position is None:
        line = near_line or 0
        column = (near_column or 0) + 1 if near_line else 0
    else:
        line, column = position
    return HTMLParseError(
        document=document,
        element=element,
        attribute=attribute,
        value=value,
        line=line,
        column=column,
        excerpt=excerpt(text, line),
        reason=reason,
    )
