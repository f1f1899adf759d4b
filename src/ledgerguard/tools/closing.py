"""Generate closing/opening transactions and append them to a journal."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from .errors import AddressingError, HledgerError
from .gates import CommandResult, Validator
from .hledger import split_query
from .telemetry import emit_event
from .workspace import append_transaction

LOGGER = logging.getLogger(__name__)

CLOSE_MODES = ("close", "open", "clopen", "assign", "assert", "retain")
ASSERTION_TYPES = ("=", "==", "=*", "==*")
ROUND_STYLES = ("none", "soft", "hard", "all")

CloseGenerator = Callable[[Path, Sequence[str]], CommandResult]


@dataclass(slots=True)
class CloseOptions:
    """Arguments forwarded to ``hledger close``."""

    mode: str = "clopen"
    tag_value: str | None = None
    explicit: bool = False
    show_costs: bool = False
    interleaved: bool = False
    assertion_type: str | None = None
    close_description: str | None = None
    close_account: str | None = None
    open_description: str | None = None
    open_account: str | None = None
    round: str | None = None
    begin: str | None = None
    end: str | None = None
    period: str | None = None
    query: str | None = None

    def to_args(self) -> list[str]:
        if self.mode not in CLOSE_MODES:
            raise AddressingError(f"Unknown close mode {self.mode!r}; expected one of {', '.join(CLOSE_MODES)}")
        if self.assertion_type and self.assertion_type not in ASSERTION_TYPES:
            raise AddressingError(f"Unknown assertion type {self.assertion_type!r}")
        if self.round and self.round not in ROUND_STYLES:
            raise AddressingError(f"Unknown rounding style {self.round!r}")

        args: list[str] = []
        for flag, value in (("--begin", self.begin), ("--end", self.end), ("--period", self.period)):
            if value:
                args.extend([flag, value])
        args.append(f"--{self.mode}={self.tag_value}" if self.tag_value else f"--{self.mode}")
        if self.explicit:
            args.append("--explicit")
        if self.show_costs:
            args.append("--show-costs")
        if self.interleaved:
            args.append("--interleaved")
        if self.assertion_type:
            args.append(f"--assertion-type={self.assertion_type}")
        for flag, value in (
            ("--close-desc", self.close_description),
            ("--close-acct", self.close_account),
            ("--open-desc", self.open_description),
            ("--open-acct", self.open_account),
        ):
            if value:
                args.extend([flag, value])
        if self.round:
            args.append(f"--round={self.round}")
        args.extend(split_query(self.query))
        return args


@dataclass(slots=True)
class CloseResult:
    """Outcome of generating (and possibly appending) closing transactions."""

    applied: bool
    journal_path: Path
    generated: str | None
    close_result: CommandResult
    backup_path: Path | None = None
    check: CommandResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "journal_path": self.journal_path.as_posix(),
            "backup_path": self.backup_path.as_posix() if self.backup_path else None,
            "command": self.close_result.command_line,
            "generated_transactions": self.generated,
            "check_output": self.check.stdout if self.check else None,
        }


def close_books(
    journal_path: Path | str,
    options: CloseOptions,
    *,
    generator: CloseGenerator,
    validator: Validator,
    dry_run: bool = False,
    skip_backup: bool = False,
) -> CloseResult:
    """Generate closing transactions for the journal and append them safely.

    The engine reads the real journal; only the append goes through a staged
    copy. A dry run or an empty result leaves the journal untouched.
    """

    journal = Path(journal_path)
    if not journal.exists():
        raise AddressingError(f"Journal file does not exist: {journal}", details={"journal": journal.as_posix()})

    args = options.to_args()
    generated_result = generator(journal, args)
    if not generated_result.success:
        raise HledgerError(
            f"Close failed with exit code {generated_result.exit_code}",
            exit_code=generated_result.exit_code,
            stderr=generated_result.stderr,
            command=generated_result.command_line,
        )

    generated = generated_result.stdout.strip() or None
    if dry_run or generated is None:
        return CloseResult(applied=False, journal_path=journal, generated=generated, close_result=generated_result)

    appended = append_transaction(journal, generated, validator=validator, skip_backup=skip_backup)
    emit_event("close_completed", journal=journal, mode=options.mode, backup=appended.backup_path)
    return CloseResult(
        applied=True,
        journal_path=journal,
        generated=generated,
        close_result=generated_result,
        backup_path=appended.backup_path,
        check=appended.check,
    )


__all__ = [
    "ASSERTION_TYPES",
    "CLOSE_MODES",
    "CloseGenerator",
    "CloseOptions",
    "CloseResult",
    "ROUND_STYLES",
    "close_books",
]
