"""Stage, commit and discard private copies of a journal file.

Every mutation works on ``<dir>/<name>.tmp-<token>`` and never on the journal
itself. A commit copies the pristine journal to ``<name>.bak-<timestamp>`` and
then renames the staged copy over it; if the backup cannot be written the
rename does not happen. A discard deletes the staged copy.
"""

from __future__ import annotations

import hashlib
import logging
import re
import shutil
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock, RLock
from typing import Any, Iterator
from uuid import uuid4
from weakref import WeakValueDictionary

from .errors import DriftError, LedgerEditError
from .gates import CommandResult, Validator, run_validation
from .telemetry import emit_event

LOGGER = logging.getLogger(__name__)

__all__ = [
    "AppendResult",
    "JournalWorkspace",
    "append_transaction",
    "backup_path_for",
    "backup_timestamp",
    "create_workspace",
    "determine_separator",
    "discard_workspace",
    "file_digest",
    "finalize_workspace",
    "journal_lock",
    "read_journal_text",
    "write_journal_text",
]

# Entries disappear once no caller holds the lock.
_PATH_LOCKS: "WeakValueDictionary[str, Any]" = WeakValueDictionary()
_PATH_LOCKS_GUARD = Lock()


@contextmanager
def journal_lock(target: Path | str) -> Iterator[None]:
    """Serialise mutations of ``target`` within this process, keyed by canonical path."""

    key = str(Path(target).expanduser().resolve())
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = RLock()
            _PATH_LOCKS[key] = lock
    lock.acquire()
    try:
        yield
    finally:
        lock.release()


def read_journal_text(path: Path) -> str:
    """Read ``path`` as UTF-8 without newline translation."""
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


def write_journal_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` as UTF-8 without newline translation."""
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(text)


def file_digest(path: Path) -> str | None:
    """Return the SHA-256 of ``path`` or ``None`` when it does not exist."""
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return None
    return hashlib.sha256(data).hexdigest()


def backup_timestamp(moment: datetime | None = None) -> str:
    """Render an ISO-8601 UTC timestamp that is safe to embed in file names."""
    current = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = current.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return re.sub(r"[:.]", "-", stamp)


def backup_path_for(journal_path: Path, timestamp: str | None = None) -> Path:
    """Suggest an unused backup location; a taken name gets a numeric suffix."""
    stem = f"{journal_path.name}.bak-{timestamp or backup_timestamp()}"
    candidate = journal_path.with_name(stem)
    counter = 1
    while candidate.exists():
        candidate = journal_path.with_name(f"{stem}-{counter}")
        counter += 1
    return candidate


@dataclass(slots=True)
class JournalWorkspace:
    """A staged, private copy of exactly one journal file."""

    journal_path: Path
    temp_path: Path
    dir: Path
    base: str
    journal_exists: bool
    original_digest: str | None = None
    # Directories made for staging, deepest first; removed again on discard.
    created_dirs: list[Path] = field(default_factory=list)


def _missing_parents(directory: Path) -> list[Path]:
    missing: list[Path] = []
    current = directory
    while not current.exists() and current != current.parent:
        missing.append(current)
        current = current.parent
    return missing


def _remove_created_dirs(directories: list[Path]) -> None:
    for directory in directories:
        try:
            directory.rmdir()
        except OSError:
            # Not empty or already gone; leave it.
            break


def create_workspace(journal_path: Path | str) -> JournalWorkspace:
    """Stage ``journal_path`` into a uniquely named temporary sibling."""

    journal = Path(journal_path)
    directory = journal.parent
    created_dirs = _missing_parents(directory)
    directory.mkdir(parents=True, exist_ok=True)

    base = journal.name
    temp_path = directory / f"{base}.tmp-{uuid4()}"
    journal_exists = journal.exists()

    try:
        if journal_exists:
            shutil.copy2(journal, temp_path)
        else:
            temp_path.write_bytes(b"")
        # Digest of what was staged, so concurrent writers are caught at commit.
        original_digest = file_digest(temp_path) if journal_exists else None
    except BaseException:
        temp_path.unlink(missing_ok=True)
        _remove_created_dirs(created_dirs)
        raise

    workspace = JournalWorkspace(
        journal_path=journal,
        temp_path=temp_path,
        dir=directory,
        base=base,
        journal_exists=journal_exists,
        original_digest=original_digest,
        created_dirs=created_dirs,
    )
    emit_event("workspace_created", journal=journal, temp=temp_path, existed=journal_exists)
    return workspace


def finalize_workspace(workspace: JournalWorkspace, *, skip_backup: bool = False) -> Path | None:
    """Commit the staged copy over the journal, returning the backup path if one was made.

    Raises :class:`DriftError` when the journal changed on disk after staging.
    The staged copy is left in place on failure so the caller can discard it.
    """

    journal = workspace.journal_path
    if workspace.journal_exists:
        if file_digest(journal) != workspace.original_digest:
            raise DriftError(
                f"{journal} changed on disk since it was staged; refusing to overwrite",
                details={"journal": journal.as_posix()},
            )
    elif journal.exists():
        raise DriftError(
            f"{journal} was created by another writer since it was staged; refusing to overwrite",
            details={"journal": journal.as_posix()},
        )

    backup_path: Path | None = None
    if workspace.journal_exists and not skip_backup:
        backup_path = backup_path_for(journal)
        try:
            shutil.copy2(journal, backup_path)
        except BaseException:
            backup_path.unlink(missing_ok=True)
            raise

    workspace.temp_path.replace(journal)
    # The journal now lives in those directories.
    workspace.created_dirs = []
    emit_event("workspace_committed", journal=journal, backup=backup_path)
    return backup_path


def discard_workspace(workspace: JournalWorkspace) -> None:
    """Delete the staged copy and any directories made for it; missing files are fine."""
    try:
        workspace.temp_path.unlink(missing_ok=True)
    except OSError as error:
        LOGGER.warning("Failed to remove staged copy %s: %s", workspace.temp_path, error)
        return
    _remove_created_dirs(workspace.created_dirs)
    emit_event("workspace_discarded", journal=workspace.journal_path, temp=workspace.temp_path)


def determine_separator(path: Path) -> str:
    """Choose the text to place between existing content and an appended entry."""
    with path.open("rb") as handle:
        handle.seek(0, 2)
        size = handle.tell()
        if size == 0:
            return ""
        handle.seek(size - 1)
        last = handle.read(1)
    return "\n" if last == b"\n" else "\n\n"


@dataclass(slots=True)
class AppendResult:
    """Outcome of appending a transaction to a journal."""

    applied: bool
    journal_path: Path
    transaction: str
    check: CommandResult
    backup_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "journal_path": self.journal_path.as_posix(),
            "backup_path": self.backup_path.as_posix() if self.backup_path else None,
            "transaction": self.transaction,
            "check_output": self.check.stdout,
        }


def append_transaction(
    journal_path: Path | str,
    transaction: str,
    *,
    validator: Validator,
    dry_run: bool = False,
    skip_backup: bool = False,
) -> AppendResult:
    """Append ``transaction`` to the journal after a successful validation."""

    journal = Path(journal_path)
    normalised = transaction.rstrip()
    if not normalised:
        raise LedgerEditError("Transaction text is empty.")

    with journal_lock(journal):
        workspace = create_workspace(journal)
        try:
            separator = determine_separator(workspace.temp_path) if workspace.journal_exists else ""
            with workspace.temp_path.open("a", encoding="utf-8", newline="") as handle:
                handle.write(f"{separator}{normalised}\n")

            check = run_validation(validator, workspace.temp_path)

            if dry_run:
                discard_workspace(workspace)
                return AppendResult(applied=False, journal_path=journal, transaction=normalised, check=check)

            backup_path = finalize_workspace(workspace, skip_backup=skip_backup)
        except BaseException:
            discard_workspace(workspace)
            raise

    emit_event("append_completed", journal=journal, backup=backup_path)
    return AppendResult(
        applied=True,
        journal_path=journal,
        transaction=normalised,
        check=check,
        backup_path=backup_path,
    )
