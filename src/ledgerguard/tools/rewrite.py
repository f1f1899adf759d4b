"""Bulk transaction rewrites routed through a mirrored include graph.

``hledger rewrite --diff`` is run against a mirror of the journal set, never
the real files. The resulting diff is applied to the mirror, validated there,
and only the files it touched are copied back to their originals.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from .errors import LedgerEditError
from .gates import CommandResult, Validator, run_validation
from .mirror import build_mirror, commit_mirror, discard_mirror
from .patch import apply_patches, parse_unified_diff
from .telemetry import emit_event

if TYPE_CHECKING:  # pragma: no cover
    from ..structured import PostingInstruction

LOGGER = logging.getLogger(__name__)

DiffGenerator = Callable[[Path, Sequence[Any], Optional[str]], CommandResult]


@dataclass(slots=True)
class RewriteResult:
    """Outcome of a bulk rewrite."""

    applied: bool
    journal_path: Path
    diff: str | None
    changed_files: List[str] = field(default_factory=list)
    backup_paths: Dict[str, str] = field(default_factory=dict)
    check: CommandResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "journal_path": self.journal_path.as_posix(),
            "diff": self.diff,
            "changed_files": list(self.changed_files),
            "backup_paths": dict(self.backup_paths),
            "check_output": self.check.stdout if self.check else None,
        }


def _relative_to_root(path: Path, root_dir: Path) -> str:
    return Path(os.path.relpath(path, root_dir)).as_posix()


def rewrite_transactions(
    journal_path: Path | str,
    add_postings: Sequence["PostingInstruction"],
    *,
    diff_generator: DiffGenerator,
    validator: Validator,
    query: str | None = None,
    dry_run: bool = False,
    skip_backup: bool = False,
) -> RewriteResult:
    """Add ``add_postings`` to every transaction matching ``query``.

    A dry run still applies and validates the diff inside the mirror so that
    problems surface, but nothing is copied back.
    """

    if not add_postings:
        raise LedgerEditError("At least one posting to add is required")
    for posting in add_postings:
        if not (posting.account or "").strip() or not (posting.amount or "").strip():
            raise LedgerEditError("Each posting to add needs an account and an amount")

    workspace = build_mirror(journal_path)
    root_dir = workspace.root_dir
    try:
        generated = diff_generator(workspace.target_copy, add_postings, query)
        raw_diff = generated.stdout or ""
        display_diff = raw_diff.replace(workspace.workspace_root.as_posix(), root_dir.as_posix())

        if not raw_diff.strip():
            LOGGER.info("Rewrite of %s matched no transactions", workspace.target_original)
            emit_event("rewrite_completed", journal=workspace.target_original, applied=False, changed=0)
            return RewriteResult(applied=False, journal_path=workspace.target_original, diff=None)

        patches = parse_unified_diff(raw_diff, workspace.workspace_root)
        touched = apply_patches(patches)
        check = run_validation(validator, workspace.target_copy)
        originals = [workspace.copy_to_original.get(path, path) for path in touched]
        changed_files = [_relative_to_root(path, root_dir) for path in originals]

        if dry_run:
            emit_event("rewrite_completed", journal=workspace.target_original, applied=False, changed=len(touched))
            return RewriteResult(
                applied=False,
                journal_path=workspace.target_original,
                diff=display_diff,
                changed_files=changed_files,
                check=check,
            )

        backups = commit_mirror(workspace, touched, skip_backup=skip_backup)
    finally:
        discard_mirror(workspace)

    emit_event("rewrite_completed", journal=workspace.target_original, applied=True, changed=len(touched))
    return RewriteResult(
        applied=True,
        journal_path=workspace.target_original,
        diff=display_diff,
        changed_files=changed_files,
        backup_paths={
            _relative_to_root(original, root_dir): backup.as_posix() for original, backup in backups.items()
        },
        check=check,
    )


__all__ = ["DiffGenerator", "RewriteResult", "rewrite_transactions"]
