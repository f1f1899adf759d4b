"""Journal mutation primitives used by the service layer."""

from .closing import CloseOptions, CloseResult, close_books
from .entries import EntryLocation, LocatedEntry, locate_entries, remove_entry, replace_entry
from .errors import (
    AddressingError,
    ConfigError,
    DriftError,
    HledgerError,
    HledgerTimeoutError,
    LedgerEditError,
    PatchError,
    PatchMismatchError,
    ReadOnlyModeError,
    ValidationFailure,
)
from .gates import CommandResult, Validator, run_validation
from .hledger import HledgerRunner
from .importer import ImportResult, import_transactions
from .mirror import RewriteWorkspace, build_mirror, commit_mirror, discard_mirror
from .patch import FilePatch, Hunk, HunkLine, apply_patches, parse_unified_diff
from .rewrite import RewriteResult, rewrite_transactions
from .segments import SegmentEditor, split_segments
from .workspace import AppendResult, JournalWorkspace, append_transaction, create_workspace, discard_workspace, finalize_workspace

__all__ = [
    "AddressingError",
    "AppendResult",
    "CloseOptions",
    "CloseResult",
    "CommandResult",
    "ConfigError",
    "DriftError",
    "EntryLocation",
    "FilePatch",
    "HledgerError",
    "HledgerRunner",
    "HledgerTimeoutError",
    "Hunk",
    "HunkLine",
    "ImportResult",
    "JournalWorkspace",
    "LedgerEditError",
    "LocatedEntry",
    "PatchError",
    "PatchMismatchError",
    "ReadOnlyModeError",
    "RewriteResult",
    "RewriteWorkspace",
    "SegmentEditor",
    "ValidationFailure",
    "Validator",
    "append_transaction",
    "apply_patches",
    "build_mirror",
    "close_books",
    "commit_mirror",
    "create_workspace",
    "discard_mirror",
    "discard_workspace",
    "finalize_workspace",
    "import_transactions",
    "locate_entries",
    "parse_unified_diff",
    "remove_entry",
    "replace_entry",
    "rewrite_transactions",
    "run_validation",
    "split_segments",
]
