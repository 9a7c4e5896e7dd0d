"""Line-oriented LCS diffs and context collapsing for review output."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

__all__ = [
    "DiffLine",
    "DiffLineType",
    "collapse_context",
    "compute_diff",
    "count_changes",
    "render_diff",
    "split_lines",
]


class DiffLineType(str, Enum):
    """Classification of a single diff line."""

    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class DiffLine:
    """One line of diff output with its position in the old and new content."""

    line_type: DiffLineType
    content: str
    old_line_number: int | None = None
    new_line_number: int | None = None

    @property
    def is_change(self) -> bool:
        return self.line_type is not DiffLineType.UNCHANGED


def split_lines(content: str) -> list[str]:
    """Normalise line endings and split ``content`` into lines."""
    return content.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def compute_diff(old_content: str | None, new_content: str) -> list[DiffLine]:
    """Return the ordered diff between ``old_content`` and ``new_content``.

    ``None`` for ``old_content`` denotes a new file: every line is an addition.
    """
    new_lines = split_lines(new_content)
    if old_content is None:
        return [
            DiffLine(DiffLineType.ADDED, line, new_line_number=index)
            for index, line in enumerate(new_lines, start=1)
        ]
    old_lines = split_lines(old_content)
    table = _lcs_table(old_lines, new_lines)
    return _backtrack(old_lines, new_lines, table)


def _lcs_table(old_lines: Sequence[str], new_lines: Sequence[str]) -> list[list[int]]:
    rows = len(old_lines)
    cols = len(new_lines)
    table = [[0] * (cols + 1) for _ in range(rows + 1)]
    for i in range(1, rows + 1):
        old_line = old_lines[i - 1]
        current = table[i]
        previous = table[i - 1]
        for j in range(1, cols + 1):
            if old_line == new_lines[j - 1]:
                current[j] = previous[j - 1] + 1
            else:
                current[j] = max(previous[j], current[j - 1])
    return table


def _backtrack(
    old_lines: Sequence[str],
    new_lines: Sequence[str],
    table: list[list[int]],
) -> list[DiffLine]:
    diff: list[DiffLine] = []
    i = len(old_lines)
    j = len(new_lines)
    while i > 0 or j > 0:
        if i > 0 and j > 0 and old_lines[i - 1] == new_lines[j - 1]:
            diff.append(DiffLine(DiffLineType.UNCHANGED, old_lines[i - 1], i, j))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or table[i][j - 1] >= table[i - 1][j]):
            diff.append(DiffLine(DiffLineType.ADDED, new_lines[j - 1], new_line_number=j))
            j -= 1
        else:
            diff.append(DiffLine(DiffLineType.REMOVED, old_lines[i - 1], old_line_number=i))
            i -= 1
    diff.reverse()
    return diff


def _collapse_marker(hidden: int) -> DiffLine:
    return DiffLine(DiffLineType.UNCHANGED, f"... ({hidden} lines unchanged) ...")


def collapse_context(diff_lines: Sequence[DiffLine], radius: int = 3) -> list[DiffLine]:
    """Keep changes plus ``radius`` lines of context; fold every hidden run into one marker."""
    lines = list(diff_lines)
    changed = [index for index, line in enumerate(lines) if line.is_change]
    if not changed:
        return lines

    visible: set[int] = set()
    for index in changed:
        start = max(0, index - radius)
        stop = min(len(lines), index + radius + 1)
        visible.update(range(start, stop))

    result: list[DiffLine] = []
    hidden = 0
    for index, line in enumerate(lines):
        if index in visible:
            if hidden:
                result.append(_collapse_marker(hidden))
                hidden = 0
            result.append(line)
        else:
            hidden += 1
    if hidden:
        result.append(_collapse_marker(hidden))
    return result


def count_changes(diff_lines: Iterable[DiffLine]) -> tuple[int, int]:
    """Return ``(additions, deletions)`` for ``diff_lines``."""
    additions = 0
    deletions = 0
    for line in diff_lines:
        if line.line_type is DiffLineType.ADDED:
            additions += 1
        elif line.line_type is DiffLineType.REMOVED:
            deletions += 1
    return additions, deletions


def render_diff(diff_lines: Iterable[DiffLine]) -> str:
    """Render diff lines as plain text with line numbers and +/- gutters."""
    rendered: list[str] = []
    for line in diff_lines:
        if line.line_type is DiffLineType.ADDED:
            number, gutter = line.new_line_number, "+"
        elif line.line_type is DiffLineType.REMOVED:
            number, gutter = line.old_line_number, "-"
        else:
            number, gutter = line.old_line_number, " "
        label = f"{number:>4}" if number is not None else "    "
        rendered.append(f"{label} {gutter} {line.content}")
    return "\n".join(rendered)
