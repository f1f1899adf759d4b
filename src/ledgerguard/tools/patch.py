"""Unified diff parsing and strict application against mirrored journal copies."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Literal, Sequence, Tuple

from .errors import PatchError, PatchMismatchError
from .telemetry import emit_event
from .workspace import read_journal_text, write_journal_text

LOGGER = logging.getLogger(__name__)

HunkLineType = Literal["context", "add", "remove"]

_HUNK_HEADER = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@"
)
_LINE_TYPES: dict[str, HunkLineType] = {" ": "context", "+": "add", "-": "remove"}


@dataclass(slots=True)
class HunkLine:
    type: HunkLineType
    content: str


@dataclass(slots=True)
class Hunk:
    """One contiguous change region within a file patch."""

    old_start: int
    old_length: int
    new_start: int
    new_length: int
    lines: List[HunkLine] = field(default_factory=list)


@dataclass(slots=True)
class FilePatch:
    """Ordered hunks targeting a single mirrored file."""

    file_path: Path
    hunks: List[Hunk] = field(default_factory=list)


def _default_count(value: str | None) -> int:
    """Return the number of lines represented in a hunk header."""
    return int(value) if value is not None else 1


def _resolve_target(operand: str, workspace_root: Path) -> Path:
    """Translate a ``+++`` operand into a path that must live under ``workspace_root``."""
    entry = operand.split("\t", 1)[0].strip()
    if len(entry) >= 2 and entry[0] == entry[-1] == '"':
        entry = entry[1:-1]
    if not entry:
        raise PatchError("Diff file header is missing a target path.")

    root = workspace_root.resolve()
    candidate = Path(entry)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    if not resolved.is_relative_to(root):
        raise PatchError(
            f"Diff references path outside workspace: {entry}",
            details={"path": entry, "workspace_root": root.as_posix()},
        )
    return resolved


def parse_unified_diff(diff: str, workspace_root: Path) -> List[FilePatch]:
    """Parse ``diff`` into file patches whose targets all lie under ``workspace_root``."""

    patches: List[FilePatch] = []
    current_patch: FilePatch | None = None
    current_hunk: Hunk | None = None
    old_remaining = 0
    new_remaining = 0

    for line in diff.split("\n"):
        # Body lines are consumed first so a removed "-- x" line is never read as a header.
        if current_hunk is not None and (old_remaining > 0 or new_remaining > 0):
            line_type = _LINE_TYPES.get(line[:1])
            if line_type is not None:
                current_hunk.lines.append(HunkLine(type=line_type, content=line[1:]))
                if line_type != "add":
                    old_remaining -= 1
                if line_type != "remove":
                    new_remaining -= 1
                continue

        if line.startswith("--- "):
            current_patch = None
            current_hunk = None
            continue

        if line.startswith("+++ "):
            current_patch = FilePatch(file_path=_resolve_target(line[4:], workspace_root))
            current_hunk = None
            patches.append(current_patch)
            continue

        if line.startswith("@@"):
            if current_patch is None:
                continue
            match = _HUNK_HEADER.match(line)
            if not match:
                raise PatchError(f"Malformed hunk header: {line}")
            current_hunk = Hunk(
                old_start=int(match.group("old_start")),
                old_length=_default_count(match.group("old_count")),
                new_start=int(match.group("new_start")),
                new_length=_default_count(match.group("new_count")),
            )
            old_remaining = current_hunk.old_length
            new_remaining = current_hunk.new_length
            current_patch.hunks.append(current_hunk)
            continue

        # Anything else (``\ No newline``, trailers, blank separators) is not part of a hunk body.

    return patches


def split_content(text: str) -> Tuple[List[str], bool]:
    """Split file text into lines, reporting whether it ended with a newline."""
    trailing_newline = text.endswith("\n")
    body = text[:-1] if trailing_newline else text
    lines = body.split("\n")
    if lines == [""]:
        lines = []
    return lines, trailing_newline


def join_content(lines: Sequence[str], trailing_newline: bool) -> str:
    return "\n".join(lines) + ("\n" if trailing_newline else "")


def apply_hunks(lines: Sequence[str], hunks: Iterable[Hunk], *, path: Path | None = None) -> List[str]:
    """Apply ``hunks`` in order with a single advancing cursor over ``lines``."""

    label = path.as_posix() if path else "<memory>"
    result: List[str] = []
    cursor = 0

    for number, hunk in enumerate(hunks, start=1):
        # A zero-length old range names the line *after which* the insertion goes.
        start = hunk.old_start if hunk.old_length == 0 else max(0, hunk.old_start - 1)
        if start < cursor:
            raise PatchError(
                f"Hunk #{number} for {label} overlaps a previous hunk.",
                details={"path": label, "hunk": number},
            )
        if start > len(lines):
            raise PatchMismatchError(
                f"Hunk #{number} for {label} starts at line {hunk.old_start}, "
                f"but the file only has {len(lines)} lines",
                details={"path": label, "hunk": number, "line": hunk.old_start},
            )

        result.extend(lines[cursor:start])
        cursor = start

        for change in hunk.lines:
            if change.type == "add":
                result.append(change.content)
                continue
            current = lines[cursor] if cursor < len(lines) else None
            if current != change.content:
                kind = "context" if change.type == "context" else "removed"
                raise PatchMismatchError(
                    f'Patch mismatch on {kind} line in {label}:{cursor + 1}: '
                    f'expected "{change.content}" got "{current if current is not None else ""}"',
                    details={
                        "path": label,
                        "hunk": number,
                        "line": cursor + 1,
                        "expected": change.content,
                        "actual": current,
                    },
                )
            if change.type == "context":
                result.append(current)
            cursor += 1

    result.extend(lines[cursor:])
    return result


def apply_patches(patches: Sequence[FilePatch]) -> Tuple[Path, ...]:
    """Apply every patch or none of them.

    All hunks are verified against in-memory copies first; files are only
    written once every patch in the call has applied cleanly.
    """

    pending: dict[Path, str] = {}
    try:
        for patch in patches:
            source = pending.get(patch.file_path)
            if source is None:
                source = read_journal_text(patch.file_path)
            lines, trailing_newline = split_content(source)
            updated = apply_hunks(lines, patch.hunks, path=patch.file_path)
            pending[patch.file_path] = join_content(updated, trailing_newline)
    except PatchError as error:
        emit_event("patch_apply_failed", reason=str(error), details=error.details)
        raise

    for path, content in pending.items():
        write_journal_text(path, content)

    touched = tuple(pending)
    LOGGER.debug("Applied %d patch(es) touching %d file(s)", len(patches), len(touched))
    emit_event("patch_applied", paths=touched, hunks=sum(len(patch.hunks) for patch in patches))
    return touched


__all__ = [
    "FilePatch",
    "Hunk",
    "HunkLine",
    "HunkLineType",
    "apply_hunks",
    "apply_patches",
    "join_content",
    "parse_unified_diff",
    "split_content",
]
