"""Line-segment model used to address journal entries by line range.

A segment is a run of text up to and including its newline, or the final
unterminated tail of a file. Segments are the smallest unit any edit may touch,
so a caller can never split a line in half. Empty text still yields a single
empty segment which keeps ``1..1`` addressable for brand new journals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .errors import AddressingError

__all__ = [
    "RemovalResult",
    "ReplacementResult",
    "SegmentEditor",
    "ensure_trailing_newline",
    "normalise_for_comparison",
    "normalise_newlines",
    "split_segments",
]


def split_segments(content: str) -> List[str]:
    """Split ``content`` into newline-terminated segments."""
    # ``str.splitlines`` also breaks on CR and form feeds; journals only break on LF.
    segments: List[str] = []
    start = 0
    while True:
        index = content.find("\n", start)
        if index < 0:
            break
        segments.append(content[start : index + 1])
        start = index + 1
    if start < len(content):
        segments.append(content[start:])
    if not segments:
        segments.append("")
    return segments


def normalise_newlines(value: str) -> str:
    """Convert CRLF sequences to LF."""
    return value.replace("\r\n", "\n")


def ensure_trailing_newline(value: str) -> str:
    """Append a newline to ``value`` unless it already ends with one."""
    return value if value.endswith("\n") else f"{value}\n"


def normalise_for_comparison(text: str) -> str:
    """Normalise entry text so platform newline differences never cause mismatches."""
    return ensure_trailing_newline(normalise_newlines(text))


def _is_blank(segment: str) -> bool:
    return not segment.strip()


@dataclass(slots=True)
class RemovalResult:
    removed_text: str
    trailing_blank_removed: bool


@dataclass(slots=True)
class ReplacementResult:
    removed_text: str
    inserted_text: str


class SegmentEditor:
    """Mutable view of a journal file as a list of segments."""

    def __init__(self, content: str) -> None:
        self._segments = split_segments(content)

    def __len__(self) -> int:
        return len(self._segments)

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(self._segments)

    def extract(self, start_line: int, end_line: int) -> str:
        """Return the text of the inclusive 1-based range ``start_line..end_line``."""
        self._check_range(start_line, end_line)
        return "".join(self._segments[start_line - 1 : end_line])

    def remove(
        self,
        start_line: int,
        end_line: int,
        collapse_following_blank: bool = True,
    ) -> RemovalResult:
        """Remove a range, optionally swallowing one blank segment that follows it."""
        self._check_range(start_line, end_line)
        start_index = start_line - 1
        removed = self._segments[start_index:end_line]

        trailing_blank_removed = False
        stop = end_line
        if collapse_following_blank and end_line < len(self._segments):
            if _is_blank(self._segments[end_line]):
                trailing_blank_removed = True
                stop += 1

        del self._segments[start_index:stop]
        return RemovalResult(removed_text="".join(removed), trailing_blank_removed=trailing_blank_removed)

    def replace(self, start_line: int, end_line: int, replacement: str) -> ReplacementResult:
        """Substitute a range with ``replacement`` (newline-normalised, newline-terminated)."""
        self._check_range(start_line, end_line)
        inserted = ensure_trailing_newline(normalise_newlines(replacement))
        start_index = start_line - 1
        removed = self._segments[start_index:end_line]
        self._segments[start_index:end_line] = split_segments(inserted)
        return ReplacementResult(removed_text="".join(removed), inserted_text=inserted)

    def to_text(self) -> str:
        return "".join(self._segments)

    def __str__(self) -> str:
        return self.to_text()

    def _check_range(self, start_line: int, end_line: int) -> None:
        if start_line < 1 or end_line < start_line:
            raise AddressingError(
                "Invalid entry line range provided",
                details={"start_line": start_line, "end_line": end_line},
            )
        last_line = len(self._segments)
        if end_line > last_line:
            raise AddressingError(
                f"Entry references line {end_line}, but file only has {last_line} lines",
                details={"start_line": start_line, "end_line": end_line, "line_count": last_line},
            )
