"""Mirror a journal and everything it includes into an isolated directory.

The mirror keeps each file at its path relative to the root journal's
directory so relative ``include`` directives keep resolving inside the mirror.
Files that live outside that directory are parked under ``__external__`` with
a flattened name. ``file_map`` and ``copy_to_original`` are the join keys used
to carry patched copies back to the real files.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from collections import deque
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Pattern
from uuid import uuid4

from .errors import DriftError, PatchError
from .telemetry import emit_event
from .workspace import backup_path_for, backup_timestamp, file_digest, journal_lock, read_journal_text

LOGGER = logging.getLogger(__name__)

EXTERNAL_DIR = "__external__"

_INCLUDE_DIRECTIVE = re.compile(r"^[ \t]*!?include[ \t]+(?P<target>.+)$", re.MULTILINE)
_GLOB_CHARS = re.compile(r"[*?]")


@dataclass(slots=True)
class RewriteWorkspace:
    """Mirrored include graph for one bulk rewrite."""

    root_dir: Path
    workspace_root: Path
    target_original: Path
    target_copy: Path
    file_map: Dict[Path, Path] = field(default_factory=dict)
    copy_to_original: Dict[Path, Path] = field(default_factory=dict)
    digests: Dict[Path, str | None] = field(default_factory=dict)


def parse_include_target(raw: str) -> str | None:
    """Strip trailing comments and quotes from an include directive's operand."""
    target = raw.strip()
    if ";" in target:
        target = target.split(";", 1)[0].strip()
    target = re.sub(r"^['\"]|['\"]$", "", target)
    return target or None


def glob_to_regex(pattern: str) -> Pattern[str]:
    """Translate ``*`` and ``?`` wildcards into an anchored regular expression."""
    translated = "".join(
        ".*" if char == "*" else "." if char == "?" else re.escape(char) for char in pattern
    )
    return re.compile(f"^{translated}$")


def expand_include(base_dir: Path, pattern: str) -> List[Path]:
    """Resolve an include operand, expanding wildcards in its final component."""
    absolute = base_dir / Path(pattern).expanduser()
    if not _GLOB_CHARS.search(pattern):
        return [absolute.resolve(strict=True)]

    directory = absolute.parent
    regex = glob_to_regex(absolute.name)
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        LOGGER.debug("Skipping unreadable include directory %s", directory)
        return []
    return [entry.resolve() for entry in entries if entry.is_file() and regex.match(entry.name)]


def mirror_relative_path(resolved: Path, root_dir: Path) -> Path:
    """Location of ``resolved`` inside the mirror, relative to its root."""
    try:
        return resolved.relative_to(root_dir)
    except ValueError:
        sanitised = re.sub(r"[:\\/]", "_", str(resolved))
        return Path(EXTERNAL_DIR) / sanitised


def build_mirror(root_file: Path | str) -> RewriteWorkspace:
    """Copy ``root_file`` and its transitive includes into a fresh temporary directory."""

    target_original = Path(root_file).expanduser().resolve(strict=True)
    root_dir = target_original.parent
    workspace_root = Path(tempfile.mkdtemp(prefix="ledgerguard-rewrite-")).resolve()
    workspace = RewriteWorkspace(
        root_dir=root_dir,
        workspace_root=workspace_root,
        target_original=target_original,
        target_copy=workspace_root / target_original.name,
    )

    try:
        worklist: deque[Path] = deque([target_original])
        visited: set[Path] = set()
        while worklist:
            resolved = worklist.popleft().resolve(strict=True)
            if resolved in visited:
                continue
            visited.add(resolved)

            destination = workspace_root / mirror_relative_path(resolved, root_dir)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(resolved, destination)
            workspace.file_map[resolved] = destination
            workspace.copy_to_original[destination] = resolved
            workspace.digests[resolved] = file_digest(destination)

            content = read_journal_text(destination)
            for match in _INCLUDE_DIRECTIVE.finditer(content):
                target = parse_include_target(match.group("target"))
                if target:
                    worklist.extend(expand_include(resolved.parent, target))
    except BaseException:
        shutil.rmtree(workspace_root, ignore_errors=True)
        raise

    emit_event("mirror_built", root=target_original, files=len(workspace.file_map), workspace=workspace_root)
    return workspace


def commit_mirror(
    workspace: RewriteWorkspace,
    changed_copies: Iterable[Path],
    *,
    skip_backup: bool = False,
) -> Dict[Path, Path]:
    """Copy changed mirror files back over their originals.

    Every changed original is checked for drift and backed up before any of
    them is replaced via an atomic rename from a sibling temporary file; a
    failed backup removes the backups already written and replaces nothing.
    Returns ``{original: backup}`` for the backups that were made.
    """

    targets: list[tuple[Path, Path]] = []
    for copy in sorted(set(changed_copies)):
        original = workspace.copy_to_original.get(copy)
        if original is None:
            raise PatchError(
                f"Patched file is not part of the mirrored journal set: {copy}",
                details={"path": copy.as_posix()},
            )
        targets.append((copy, original))

    backups: Dict[Path, Path] = {}
    if not targets:
        return backups

    timestamp = backup_timestamp()
    with ExitStack() as stack:
        for _, original in sorted(targets, key=lambda item: str(item[1])):
            stack.enter_context(journal_lock(original))

        for _, original in targets:
            if file_digest(original) != workspace.digests.get(original):
                raise DriftError(
                    f"{original} changed on disk since the rewrite started; refusing to overwrite",
                    details={"journal": original.as_posix()},
                )

        staged: list[tuple[Path, Path]] = []
        try:
            for copy, original in targets:
                temp_path = original.with_name(f"{original.name}.tmp-{uuid4()}")
                staged.append((temp_path, original))
                shutil.copy2(copy, temp_path)

            # Every backup is on disk before the first original is replaced.
            try:
                for _, original in staged:
                    if original.exists() and not skip_backup:
                        backup_path = backup_path_for(original, timestamp)
                        backups[original] = backup_path
                        shutil.copy2(original, backup_path)
            except BaseException:
                for backup_path in backups.values():
                    backup_path.unlink(missing_ok=True)
                raise

            for temp_path, original in staged:
                temp_path.replace(original)
        finally:
            for temp_path, _ in staged:
                temp_path.unlink(missing_ok=True)

    emit_event("mirror_committed", root=workspace.target_original, files=[item[1] for item in targets])
    return backups


def discard_mirror(workspace: RewriteWorkspace) -> None:
    """Remove the mirror directory; a directory that is already gone is fine."""
    if not os.path.exists(workspace.workspace_root):
        return
    try:
        shutil.rmtree(workspace.workspace_root)
    except OSError as error:
        LOGGER.warning("Failed to remove rewrite workspace %s: %s", workspace.workspace_root, error)
        return
    emit_event("mirror_discarded", workspace=workspace.workspace_root)


__all__ = [
    "EXTERNAL_DIR",
    "RewriteWorkspace",
    "build_mirror",
    "commit_mirror",
    "discard_mirror",
    "expand_include",
    "glob_to_regex",
    "mirror_relative_path",
    "parse_include_target",
]
