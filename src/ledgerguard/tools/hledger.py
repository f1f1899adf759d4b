"""Thin wrapper around the ``hledger`` executable."""

from __future__ import annotations

import json
import logging
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

from .errors import HledgerError, HledgerTimeoutError
from .gates import CommandResult

LOGGER = logging.getLogger(__name__)

DEFAULT_COMMAND: tuple[str, ...] = ("hledger",)
DEFAULT_TIMEOUT = 30.0


def split_query(query: str | None) -> list[str]:
    """Split a query string into arguments, honouring single and double quotes."""
    if not query or not query.strip():
        return []
    try:
        return shlex.split(query)
    except ValueError:
        # Unbalanced quotes; fall back to whitespace splitting.
        return query.split()


@dataclass(slots=True)
class HledgerRunner:
    """Run ``hledger`` subcommands with a time budget and captured output."""

    command: Sequence[str] = DEFAULT_COMMAND
    timeout: float = DEFAULT_TIMEOUT
    env: Mapping[str, str] | None = None

    def run(self, subcommand: str, args: Sequence[str] = (), *, check: bool = True) -> CommandResult:
        """Execute ``hledger <subcommand> <args>``.

        With ``check`` enabled a non-zero exit raises :class:`HledgerError`;
        otherwise the failing :class:`CommandResult` is returned to the caller.
        """

        executable = self.command[0] if self.command else ""
        if not executable or shutil.which(executable) is None:
            raise HledgerError(
                f"Executable not available: {executable or '<empty>'}",
                command=" ".join(self.command),
            )

        argv = [*self.command, subcommand, *[str(arg) for arg in args]]
        started = time.monotonic()
        try:
            process = subprocess.run(  # noqa: S603  # argv built from configuration
                argv,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=dict(self.env) if self.env is not None else None,
            )
        except subprocess.TimeoutExpired as error:
            raise HledgerTimeoutError(
                f"Command timed out after {self.timeout:g}s: {' '.join(argv)}",
                command=" ".join(argv),
            ) from error
        except OSError as error:
            raise HledgerError(
                f"Failed to spawn hledger: {error}",
                command=" ".join(argv),
            ) from error

        result = CommandResult(
            command=tuple(argv),
            exit_code=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
            duration=time.monotonic() - started,
        )
        LOGGER.debug("%s exited with %s in %.3fs", result.command_line, result.exit_code, result.duration)
        if check and not result.success:
            raise HledgerError(
                f"hledger {subcommand} failed with exit code {result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
                command=result.command_line,
            )
        return result

    def check(self, journal: Path) -> CommandResult:
        """Run the consistency check against ``journal`` without raising on failure."""
        return self.run("check", ["--file", str(journal)], check=False)

    def rewrite_diff(
        self,
        journal: Path,
        add_postings: Sequence[Any],
        query: str | None = None,
    ) -> CommandResult:
        """Ask ``hledger rewrite`` for a unified diff that adds ``add_postings``."""
        args: list[str] = ["--file", str(journal), "--diff"]
        for posting in add_postings:
            args.extend(["--add-posting", f"{posting.account}  {posting.amount}"])
        args.extend(split_query(query))
        return self.run("rewrite", args)

    def import_data(
        self,
        journal: Path,
        data_files: Sequence[Path],
        *,
        rules_file: Path | None = None,
        catchup: bool = False,
        dry_run: bool = False,
    ) -> CommandResult:
        """Run ``hledger import`` so that new transactions land in ``journal``."""
        args: list[str] = ["--file", str(journal)]
        if rules_file is not None:
            args.extend(["--rules", str(rules_file)])
        if catchup:
            args.append("--catchup")
        if dry_run:
            args.append("--dry-run")
        args.extend(str(path) for path in data_files)
        return self.run("import", args)

    def close(self, journal: Path, args: Sequence[str] = ()) -> CommandResult:
        """Ask ``hledger close`` to print closing and opening transactions."""
        return self.run("close", ["--file", str(journal), *args])

    def print_json(self, journal: Path, query: str | None = None) -> list[Any]:
        """Return ``hledger print`` output as parsed JSON, including source positions."""
        args = ["--file", str(journal), "--output-format", "json", "--location", *split_query(query)]
        result = self.run("print", args)
        if not result.stdout.strip():
            return []
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as error:
            raise HledgerError(
                f"Failed to parse hledger output as JSON: {error}",
                command=result.command_line,
            ) from error
        if not isinstance(payload, list):
            raise HledgerError("Expected a JSON list from hledger print", command=result.command_line)
        return payload


__all__ = ["DEFAULT_COMMAND", "DEFAULT_TIMEOUT", "HledgerRunner", "split_query"]
