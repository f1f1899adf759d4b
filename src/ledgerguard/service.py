"""High-level journal operations with configuration applied.

``JournalService`` resolves target files, enforces read-only mode and wires the
hledger runner in as validator, diff generator and entry source. Tests swap in
their own callables through the ``validator`` and ``diff_generator`` fields.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .config import LedgerConfig
from .structured import PostingInstruction, TransactionDraft, render_transaction
from .tools.closing import CloseOptions, CloseResult, close_books
from .tools.entries import (
    EntryLocation,
    LocatedEntry,
    RemoveEntryResult,
    ReplaceEntryResult,
    locate_entries,
    remove_entry,
    replace_entry,
)
from .tools.errors import AddressingError, ReadOnlyModeError
from .tools.gates import CommandResult, Validator
from .tools.hledger import HledgerRunner
from .tools.importer import ImportResult, import_transactions
from .tools.rewrite import DiffGenerator, RewriteResult, rewrite_transactions
from .tools.workspace import AppendResult, append_transaction

LOGGER = logging.getLogger(__name__)

MAX_FIND_LIMIT = 200


@dataclass
class JournalService:
    journal_file: Path | None = None
    read_only: bool = False
    skip_backup: bool = False
    runner: HledgerRunner = field(default_factory=HledgerRunner)
    validator: Validator | None = None
    diff_generator: DiffGenerator | None = None

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        *,
        journal_file: Path | str | None = None,
        read_only: bool = False,
        skip_backup: bool = False,
        hledger: str | None = None,
    ) -> "JournalService":
        """Build a service from ``config``; explicit arguments take precedence."""

        command = [hledger] if hledger else list(config.hledger.command)
        journal = Path(journal_file).expanduser().absolute() if journal_file else config.journal.file
        return cls(
            journal_file=journal,
            read_only=read_only or config.journal.read_only,
            skip_backup=skip_backup or config.journal.skip_backup,
            runner=HledgerRunner(command=tuple(command), timeout=config.hledger.timeout),
        )

    # Collaborators

    def _validator(self) -> Validator:
        return self.validator or self.runner.check

    def _diff_generator(self) -> DiffGenerator:
        return self.diff_generator or self.runner.rewrite_diff

    def _ensure_writable(self, action: str, *, dry_run: bool = False) -> None:
        if self.read_only and not dry_run:
            raise ReadOnlyModeError(f"{action} is disabled while running in read-only mode")

    # Path resolution

    def journal_target(self, file: Path | str | None = None) -> Path:
        """Return the explicit ``file`` or the configured journal as an absolute path."""
        target = file or self.journal_file
        if not target:
            raise AddressingError("No journal file specified and no default journal is configured")
        return Path(target).expanduser().absolute()

    def resolve_entry_file(self, file: Path | str) -> Path:
        """Resolve an entry location's file, relative to the configured journal's directory."""
        path = Path(file).expanduser()
        if path.is_absolute():
            return path
        if self.journal_file:
            return Path(self.journal_file).resolve().parent / path
        return path.absolute()

    # Operations

    def add_transaction(
        self,
        draft: TransactionDraft,
        *,
        file: Path | str | None = None,
        dry_run: bool = False,
    ) -> AppendResult:
        """Render ``draft`` and append it to the journal."""
        self._ensure_writable("Adding transactions")
        return self.append_text(render_transaction(draft), file=file, dry_run=dry_run)

    def append_text(self, text: str, *, file: Path | str | None = None, dry_run: bool = False) -> AppendResult:
        self._ensure_writable("Adding transactions")
        return append_transaction(
            self.journal_target(file),
            text,
            validator=self._validator(),
            dry_run=dry_run,
            skip_backup=self.skip_backup,
        )

    def _location(self, file: Path | str, start_line: int, end_line: int) -> EntryLocation:
        return EntryLocation(file_path=self.resolve_entry_file(file), start_line=start_line, end_line=end_line)

    def remove_entry(
        self,
        file: Path | str,
        start_line: int,
        end_line: int,
        entry_text: str,
        *,
        dry_run: bool = False,
        collapse_whitespace: bool = True,
    ) -> RemoveEntryResult:
        self._ensure_writable("Removing entries", dry_run=dry_run)
        return remove_entry(
            self._location(file, start_line, end_line),
            entry_text,
            validator=self._validator(),
            dry_run=dry_run,
            collapse_whitespace=collapse_whitespace,
            skip_backup=self.skip_backup,
        )

    def replace_entry(
        self,
        file: Path | str,
        start_line: int,
        end_line: int,
        original: str,
        replacement: str,
        *,
        dry_run: bool = False,
    ) -> ReplaceEntryResult:
        self._ensure_writable("Replacing entries", dry_run=dry_run)
        return replace_entry(
            self._location(file, start_line, end_line),
            original,
            replacement,
            validator=self._validator(),
            dry_run=dry_run,
            skip_backup=self.skip_backup,
        )

    def rewrite(
        self,
        add_postings: Sequence[PostingInstruction],
        *,
        file: Path | str | None = None,
        query: str | None = None,
        dry_run: bool = False,
    ) -> RewriteResult:
        self._ensure_writable("Rewriting transactions", dry_run=dry_run)
        return rewrite_transactions(
            self.journal_target(file),
            add_postings,
            diff_generator=self._diff_generator(),
            validator=self._validator(),
            query=query,
            dry_run=dry_run,
            skip_backup=self.skip_backup,
        )

    def import_transactions(
        self,
        data_files: Sequence[Path | str],
        *,
        file: Path | str | None = None,
        rules_file: Path | str | None = None,
        catchup: bool = False,
        dry_run: bool = False,
    ) -> ImportResult:
        """Import ``data_files`` into the journal through a staged copy."""
        self._ensure_writable("Importing transactions", dry_run=dry_run)
        if not data_files:
            raise AddressingError("At least one data file is required")
        sources = [Path(path).expanduser().absolute() for path in data_files]
        rules = Path(rules_file).expanduser().absolute() if rules_file else None

        def importer(staged: Path) -> CommandResult:
            return self.runner.import_data(staged, sources, rules_file=rules, catchup=catchup, dry_run=dry_run)

        return import_transactions(
            self.journal_target(file),
            importer=importer,
            validator=self._validator(),
            dry_run=dry_run,
            skip_backup=self.skip_backup,
        )

    def close_books(
        self,
        options: CloseOptions | None = None,
        *,
        file: Path | str | None = None,
        dry_run: bool = False,
    ) -> CloseResult:
        """Generate closing transactions and append them unless ``dry_run``."""
        self._ensure_writable("Closing books", dry_run=dry_run)
        return close_books(
            self.journal_target(file),
            options or CloseOptions(),
            generator=self.runner.close,
            validator=self._validator(),
            dry_run=dry_run,
            skip_backup=self.skip_backup,
        )

    def find_entries(
        self,
        *,
        file: Path | str | None = None,
        query: str | None = None,
        limit: int | None = None,
    ) -> list[LocatedEntry]:
        """List addressable entries matching ``query``."""
        if limit is not None and not 1 <= limit <= MAX_FIND_LIMIT:
            raise AddressingError(f"limit must be between 1 and {MAX_FIND_LIMIT}")
        journal = self.journal_target(file)
        payload = self.runner.print_json(journal, query)
        return locate_entries(payload, root_dir=journal.parent, limit=limit)

    def check(self, file: Path | str | None = None) -> CommandResult:
        """Run the validator against the journal and return its result unchanged."""
        return self._validator()(self.journal_target(file))


__all__ = ["JournalService", "MAX_FIND_LIMIT"]
