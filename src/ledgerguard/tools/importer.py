"""Import transactions from external data files into a staged journal.

The engine's ``import`` command writes straight into the file it is pointed
at, so it is pointed at the staged copy. The result is validated and
committed like any other mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from .errors import HledgerError
from .gates import CommandResult, Validator, run_validation
from .telemetry import emit_event
from .workspace import (
    JournalWorkspace,
    create_workspace,
    discard_workspace,
    file_digest,
    finalize_workspace,
    journal_lock,
)

LOGGER = logging.getLogger(__name__)

Importer = Callable[[Path], CommandResult]


@dataclass(slots=True)
class ImportResult:
    """Outcome of importing data files into a journal."""

    applied: bool
    journal_path: Path
    import_result: CommandResult
    backup_path: Path | None = None
    check: CommandResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "journal_path": self.journal_path.as_posix(),
            "backup_path": self.backup_path.as_posix() if self.backup_path else None,
            "command": self.import_result.command_line,
            "import_output": self.import_result.stdout,
            "check_output": self.check.stdout if self.check else None,
        }


def _staged_unchanged(workspace: JournalWorkspace) -> bool:
    if workspace.journal_exists:
        return file_digest(workspace.temp_path) == workspace.original_digest
    return workspace.temp_path.stat().st_size == 0


def import_transactions(
    journal_path: Path | str,
    *,
    importer: Importer,
    validator: Validator,
    dry_run: bool = False,
    skip_backup: bool = False,
) -> ImportResult:
    """Run ``importer`` against a staged copy of the journal and commit the result.

    ``importer`` receives the staged path and must leave new transactions in
    it. A dry run discards the staged copy after the importer has run; callers
    pass the engine's own dry-run flag so the output is a preview. An import
    that adds nothing is reported as not applied and leaves the journal alone.
    """

    journal = Path(journal_path)
    with journal_lock(journal):
        workspace = create_workspace(journal)
        try:
            imported = importer(workspace.temp_path)
            if not imported.success:
                raise HledgerError(
                    f"Import failed with exit code {imported.exit_code}",
                    exit_code=imported.exit_code,
                    stderr=imported.stderr,
                    command=imported.command_line,
                )

            if dry_run or _staged_unchanged(workspace):
                discard_workspace(workspace)
                return ImportResult(applied=False, journal_path=journal, import_result=imported)

            check = run_validation(validator, workspace.temp_path)
            backup_path = finalize_workspace(workspace, skip_backup=skip_backup)
        except BaseException:
            discard_workspace(workspace)
            raise

    emit_event("import_completed", journal=journal, backup=backup_path)
    return ImportResult(
        applied=True,
        journal_path=journal,
        import_result=imported,
        backup_path=backup_path,
        check=check,
    )


__all__ = ["ImportResult", "Importer", "import_transactions"]
