from __future__ import annotations

from steward.tools.diff import (
    DiffLineType,
    collapse_context,
    compute_diff,
    count_changes,
    render_diff,
)


def test_new_file_is_all_additions() -> None:
    lines = compute_diff(None, "a\nb\nc")

    assert [line.line_type for line in lines] == [DiffLineType.ADDED] * 3
    assert [line.new_line_number for line in lines] == [1, 2, 3]
    assert all(line.old_line_number is None for line in lines)


def test_identical_content_is_unchanged() -> None:
    lines = compute_diff("a\nb\nc", "a\nb\nc")

    assert [line.line_type for line in lines] == [DiffLineType.UNCHANGED] * 3
    assert [(line.old_line_number, line.new_line_number) for line in lines] == [(1, 1), (2, 2), (3, 3)]


def test_replacement_reports_removal_and_addition() -> None:
    lines = compute_diff("one\ntwo\nthree", "one\nTWO\nthree")

    changes = [(line.line_type, line.content) for line in lines if line.is_change]
    assert (DiffLineType.REMOVED, "two") in changes
    assert (DiffLineType.ADDED, "TWO") in changes
    assert count_changes(lines) == (1, 1)


def test_line_endings_are_normalised() -> None:
    lines = compute_diff("a\r\nb\r\n", "a\nb\n")

    assert all(line.line_type is DiffLineType.UNCHANGED for line in lines)


def test_collapse_keeps_context_and_marks_both_hidden_runs() -> None:
    before = [f"line {index}" for index in range(100)]
    after = [f"line {index}" for index in range(100, 200)]
    old = "\n".join(before + after)
    new = "\n".join(before + ["inserted"] + after)

    collapsed = collapse_context(compute_diff(old, new), radius=3)

    markers = [line for line in collapsed if line.content.startswith("... (")]
    assert [marker.content for marker in markers] == [
        "... (97 lines unchanged) ...",
        "... (97 lines unchanged) ...",
    ]
    assert all(marker.old_line_number is None and marker.new_line_number is None for marker in markers)
    assert len(collapsed) == 2 + 3 + 1 + 3


def test_collapse_without_changes_returns_input() -> None:
    lines = compute_diff("a\nb", "a\nb")

    assert collapse_context(lines) == lines
    assert collapse_context([]) == []


def test_render_diff_uses_gutters() -> None:
    rendered = render_diff(compute_diff("keep\ndrop", "keep\nadd"))

    assert "   1   keep" in rendered
    assert "   2 - drop" in rendered
    assert "   2 + add" in rendered
