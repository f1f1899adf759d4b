from __future__ import annotations

import pytest

from ledgerguard.tools.errors import AddressingError
from ledgerguard.tools.segments import (
    SegmentEditor,
    normalise_for_comparison,
    split_segments,
)


JOURNAL = "2025-01-01 * X\n  a $1\n  b -$1\n\n2025-01-02 * Y\n  a $2\n  b -$2\n\n"


def test_split_segments_keeps_newlines_and_unterminated_tail() -> None:
    assert split_segments("a\nb\nc") == ["a\n", "b\n", "c"]
    assert split_segments("a\n") == ["a\n"]


def test_split_segments_only_breaks_on_line_feed() -> None:
    assert split_segments("a\r\nb\x0cc\rd\n") == ["a\r\n", "b\x0cc\rd\n"]


def test_empty_text_is_one_addressable_segment() -> None:
    assert split_segments("") == [""]
    assert SegmentEditor("").extract(1, 1) == ""


def test_normalise_for_comparison_ignores_platform_newlines() -> None:
    assert normalise_for_comparison("a\r\nb") == "a\nb\n"
    assert normalise_for_comparison("a\nb\n") == "a\nb\n"


@pytest.mark.parametrize(
    ("start", "end", "message"),
    [
        (0, 1, "Invalid entry line range"),
        (3, 2, "Invalid entry line range"),
        (1, 9, "file only has 8 lines"),
    ],
)
def test_out_of_range_addresses_are_rejected(start: int, end: int, message: str) -> None:
    editor = SegmentEditor(JOURNAL)

    with pytest.raises(AddressingError, match=message):
        editor.extract(start, end)


def test_remove_collapses_following_blank_segment() -> None:
    editor = SegmentEditor(JOURNAL)

    result = editor.remove(1, 3)

    assert result.removed_text == "2025-01-01 * X\n  a $1\n  b -$1\n"
    assert result.trailing_blank_removed is True
    assert editor.to_text() == "2025-01-02 * Y\n  a $2\n  b -$2\n\n"


def test_remove_without_collapse_keeps_blank_segment() -> None:
    editor = SegmentEditor(JOURNAL)

    result = editor.remove(1, 3, collapse_following_blank=False)

    assert result.trailing_blank_removed is False
    assert editor.to_text() == "\n2025-01-02 * Y\n  a $2\n  b -$2\n\n"


def test_remove_last_range_has_nothing_to_collapse() -> None:
    editor = SegmentEditor("a\nb\n")

    result = editor.remove(2, 2)

    assert result.trailing_blank_removed is False
    assert editor.to_text() == "a\n"


def test_whitespace_only_segment_counts_as_blank() -> None:
    editor = SegmentEditor("x\n  \t\ny\n")

    assert editor.remove(1, 1).trailing_blank_removed is True
    assert editor.to_text() == "y\n"


def test_replace_normalises_and_terminates_replacement() -> None:
    editor = SegmentEditor("keep\nold\nkeep too\n")

    result = editor.replace(2, 2, "new\r\nlines")

    assert result.removed_text == "old\n"
    assert result.inserted_text == "new\nlines\n"
    assert editor.to_text() == "keep\nnew\nlines\nkeep too\n"


def test_replace_never_collapses_blank_segments() -> None:
    editor = SegmentEditor(JOURNAL)

    editor.replace(1, 3, "2025-01-01 * Z\n  a $3\n  b -$3\n")

    assert editor.to_text().startswith("2025-01-01 * Z\n  a $3\n  b -$3\n\n2025-01-02")


def test_replace_in_empty_file_yields_single_trailing_newline() -> None:
    editor = SegmentEditor("")

    editor.replace(1, 1, "2025-01-01 * Only\n  a 1\n  b -1")

    assert editor.to_text() == "2025-01-01 * Only\n  a 1\n  b -1\n"


def test_extract_replace_extract_round_trips() -> None:
    editor = SegmentEditor(JOURNAL)
    original = editor.extract(5, 7)

    editor.replace(5, 7, original)

    assert editor.extract(5, 7) == original
    assert editor.to_text() == JOURNAL
