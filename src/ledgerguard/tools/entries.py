"""Address, verify and edit individual journal entries by line range.

Callers locate an entry (usually via :func:`locate_entries`) and later ask to
remove or replace it, supplying the text they believe is at that location.
Line numbers may be stale by then, so every edit re-reads the staged copy and
refuses to proceed unless the normalised text still matches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import AddressingError, DriftError, HledgerError, LedgerEditError
from .gates import CommandResult, Validator, run_validation
from .segments import RemovalResult, ReplacementResult, SegmentEditor, normalise_for_comparison
from .telemetry import emit_event
from .workspace import (
    create_workspace,
    discard_workspace,
    finalize_workspace,
    journal_lock,
    read_journal_text,
    write_journal_text,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class EntryLocation:
    """Inclusive, 1-based line range believed to hold one transaction."""

    file_path: Path
    start_line: int
    end_line: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file_path.as_posix(),
            "start_line": self.start_line,
            "end_line": self.end_line,
        }


@dataclass(slots=True)
class RemoveEntryResult:
    applied: bool
    journal_path: Path
    removed_entry: str
    trailing_blank_removed: bool
    check: CommandResult
    backup_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "journal_path": self.journal_path.as_posix(),
            "backup_path": self.backup_path.as_posix() if self.backup_path else None,
            "removed_entry": self.removed_entry,
            "trailing_blank_removed": self.trailing_blank_removed,
            "check_output": self.check.stdout,
        }


@dataclass(slots=True)
class ReplaceEntryResult:
    applied: bool
    journal_path: Path
    removed_entry: str
    inserted_entry: str
    check: CommandResult
    backup_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "journal_path": self.journal_path.as_posix(),
            "backup_path": self.backup_path.as_posix() if self.backup_path else None,
            "removed_entry": self.removed_entry,
            "inserted_entry": self.inserted_entry,
            "check_output": self.check.stdout,
        }


def verify_entry(editor: SegmentEditor, location: EntryLocation, expected: str, *, label: str = "Entry") -> str:
    """Return the text at ``location`` or raise :class:`DriftError` if it differs from ``expected``."""
    existing = normalise_for_comparison(editor.extract(location.start_line, location.end_line))
    if existing != normalise_for_comparison(expected):
        raise DriftError(
            f"{label} text does not match the content at the specified location",
            details={**location.to_dict(), "expected": expected, "actual": existing},
        )
    return existing


def _edit_entry(
    location: EntryLocation,
    edit: Callable[[SegmentEditor], T],
    *,
    validator: Validator,
    dry_run: bool,
    skip_backup: bool,
) -> tuple[T, CommandResult, Path | None]:
    """Stage the journal, apply ``edit``, validate, then commit or discard."""

    journal = Path(location.file_path)
    if not journal.is_file():
        raise AddressingError(f"Journal file not found: {journal}", details=location.to_dict())

    with journal_lock(journal):
        workspace = create_workspace(journal)
        try:
            editor = SegmentEditor(read_journal_text(workspace.temp_path))
            outcome = edit(editor)
            write_journal_text(workspace.temp_path, editor.to_text())

            check = run_validation(validator, workspace.temp_path)

            if dry_run:
                discard_workspace(workspace)
                return outcome, check, None

            backup_path = finalize_workspace(workspace, skip_backup=skip_backup)
        except BaseException:
            discard_workspace(workspace)
            raise

    return outcome, check, backup_path


def remove_entry(
    location: EntryLocation,
    entry_text: str,
    *,
    validator: Validator,
    dry_run: bool = False,
    collapse_whitespace: bool = True,
    skip_backup: bool = False,
) -> RemoveEntryResult:
    """Remove the entry at ``location`` provided it still reads ``entry_text``."""

    if not entry_text:
        raise LedgerEditError("Entry text is required")

    def edit(editor: SegmentEditor) -> RemovalResult:
        verify_entry(editor, location, entry_text)
        return editor.remove(location.start_line, location.end_line, collapse_whitespace)

    removal, check, backup_path = _edit_entry(
        location,
        edit,
        validator=validator,
        dry_run=dry_run,
        skip_backup=skip_backup,
    )
    emit_event("entry_removed", location=location.to_dict(), dry_run=dry_run, backup=backup_path)
    return RemoveEntryResult(
        applied=not dry_run,
        journal_path=Path(location.file_path),
        removed_entry=removal.removed_text,
        trailing_blank_removed=removal.trailing_blank_removed,
        check=check,
        backup_path=backup_path,
    )


def replace_entry(
    location: EntryLocation,
    original: str,
    replacement: str,
    *,
    validator: Validator,
    dry_run: bool = False,
    skip_backup: bool = False,
) -> ReplaceEntryResult:
    """Replace the entry at ``location`` with ``replacement``; blank lines are left alone."""

    if not original:
        raise LedgerEditError("Original entry text is required")
    if not replacement:
        raise LedgerEditError("Replacement entry text is required")

    def edit(editor: SegmentEditor) -> ReplacementResult:
        verify_entry(editor, location, original, label="Original entry")
        return editor.replace(location.start_line, location.end_line, replacement)

    replaced, check, backup_path = _edit_entry(
        location,
        edit,
        validator=validator,
        dry_run=dry_run,
        skip_backup=skip_backup,
    )
    emit_event("entry_replaced", location=location.to_dict(), dry_run=dry_run, backup=backup_path)
    return ReplaceEntryResult(
        applied=not dry_run,
        journal_path=Path(location.file_path),
        removed_entry=replaced.removed_text,
        inserted_entry=replaced.inserted_text,
        check=check,
        backup_path=backup_path,
    )


class _SourcePosition(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    source_name: str = Field(alias="sourceName")
    source_line: int = Field(alias="sourceLine")


class PrintedTransaction(BaseModel):
    """Subset of a transaction record from ``hledger print --output-format json``."""

    model_config = ConfigDict(extra="ignore")

    tdate: str
    tstatus: str = ""
    tdescription: str = ""
    tcomment: str | None = None
    tindex: int = 0
    ttags: List[Any] = Field(default_factory=list)
    tsourcepos: List[_SourcePosition] = Field(default_factory=list)


def _normalise_tag(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return {"tag": raw.get("tag"), "value": raw.get("value")}
    if isinstance(raw, (list, tuple)) and raw:
        return {"tag": raw[0], "value": raw[1] if len(raw) > 1 else None}
    return {"tag": str(raw), "value": None}


@dataclass(slots=True)
class LocatedEntry:
    """A transaction found in a journal together with its exact text and location."""

    date: str
    status: str
    description: str
    index: int
    entry_text: str
    location: EntryLocation
    relative_path: str
    comment: str | None = None
    tags: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "status": self.status,
            "description": self.description,
            "index": self.index,
            "comment": self.comment,
            "tags": list(self.tags),
            "entry_text": self.entry_text,
            "location": {
                "absolute_path": self.location.file_path.as_posix(),
                "relative_path": self.relative_path,
                "start_line": self.location.start_line,
                "end_line": self.location.end_line,
            },
        }


def _resolve_source(name: str) -> Path:
    candidate = Path(name).expanduser()
    try:
        return candidate.resolve(strict=True)
    except OSError:
        # Sources may be reported relative to the working directory.
        return candidate.resolve()


def locate_entries(
    payload: Sequence[Any],
    *,
    root_dir: Path,
    limit: int | None = None,
) -> list[LocatedEntry]:
    """Turn ``hledger print`` JSON records into addressable entries."""

    try:
        records = [PrintedTransaction.model_validate(item) for item in payload]
    except PydanticValidationError as error:
        raise HledgerError(f"Unexpected hledger print record: {error}") from error
    if limit:
        records = records[:limit]

    root = root_dir.resolve()
    editors: dict[Path, SegmentEditor] = {}
    entries: list[LocatedEntry] = []

    for record in records:
        if not record.tsourcepos:
            continue
        sources = {position.source_name for position in record.tsourcepos}
        if len(sources) != 1:
            raise AddressingError(
                "Encountered a transaction spanning multiple files, which is not supported",
                details={"index": record.tindex, "sources": sorted(sources)},
            )

        source = _resolve_source(record.tsourcepos[0].source_name)
        try:
            relative = source.relative_to(root).as_posix()
        except ValueError:
            relative = source.name

        editor = editors.get(source)
        if editor is None:
            editor = SegmentEditor(read_journal_text(source))
            editors[source] = editor

        lines = [position.source_line for position in record.tsourcepos]
        start_line = min(lines)
        raw_end = max(lines)
        # The engine reports the line after the entry as its end position.
        end_line = raw_end - 1 if raw_end > start_line else raw_end

        location = EntryLocation(file_path=source, start_line=start_line, end_line=end_line)
        entries.append(
            LocatedEntry(
                date=record.tdate,
                status=record.tstatus,
                description=record.tdescription,
                index=record.tindex,
                entry_text=editor.extract(start_line, end_line),
                location=location,
                relative_path=relative,
                comment=(record.tcomment or "").strip() or None,
                tags=[_normalise_tag(tag) for tag in record.ttags],
            )
        )

    LOGGER.debug("Located %d entries under %s", len(entries), root)
    return entries


__all__ = [
    "EntryLocation",
    "LocatedEntry",
    "PrintedTransaction",
    "RemoveEntryResult",
    "ReplaceEntryResult",
    "locate_entries",
    "remove_entry",
    "replace_entry",
    "verify_entry",
]
