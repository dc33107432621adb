"""Line-based text surgery used by the extract and drop gestures.

All line numbers are 1-indexed and inclusive.  Line terminators stay attached
to their line, so ``extract_chunk`` followed by ``insert_chunk`` at the same
start line reproduces the original text byte for byte.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

from .errors import LineRangeError


@dataclass(frozen=True)
class ChunkSplit:
    remainder: str
    chunk: str


def split_lines(text: str) -> List[str]:
    r"""Split *text* after every ``\n``, keeping the terminators.

    Only ``\n`` ends a line, as in Tree-sitter row numbering.  Form feeds,
    ``\u2028`` and the other separators ``str.splitlines`` honours stay inside
    their line, and ``\r\n`` stays whole.
    """
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def line_count(text: str) -> int:
    return len(split_lines(text))


def extract_chunk(text: str, start_line: int, end_line: int) -> ChunkSplit:
    """Remove lines ``start_line..end_line`` from *text*.

    Returns:
        The remaining lines (original order) and the removed lines verbatim.

    Raises:
        LineRangeError: if ``start_line > end_line`` or either bound falls
            outside ``[1, line_count(text)]``.
    """
    lines = split_lines(text)
    total = len(lines)
    if start_line > end_line:
        raise LineRangeError(f"Start line {start_line} is after end line {end_line}")
    if start_line < 1 or end_line > total:
        raise LineRangeError(
            f"Lines {start_line}-{end_line} outside text of {total} line(s)"
        )

    chunk = "".join(lines[start_line - 1:end_line])
    remainder = "".join(lines[:start_line - 1] + lines[end_line:])
    return ChunkSplit(remainder=remainder, chunk=chunk)


def insert_chunk(text: str, chunk: str, at_line: int) -> str:
    """Splice *chunk* immediately before line *at_line* of *text*.

    An ``at_line`` past the last line appends.  A chunk that would run into
    the following line gets a line terminator so no two lines are merged.
    """
    if at_line < 1:
        raise LineRangeError(f"Insert line {at_line} must be >= 1")
    if not chunk:
        return text

    lines = split_lines(text)
    if at_line > len(lines):
        if text and not text.endswith("\n"):
            text += "\n"
        return text + chunk

    if not chunk.endswith("\n"):
        chunk += "\n"
    return "".join(lines[:at_line - 1]) + chunk + "".join(lines[at_line - 1:])


def line_at_offset(offset_y: float, line_height: int) -> int:
    """Map a vertical offset inside an editor node to a 1-indexed line."""
    if line_height <= 0:
        raise ValueError("line_height must be positive")
    return max(1, math.floor(offset_y / line_height) + 1)
