from __future__ import annotations

import os
import stat
import sys
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ledgerguard.tools.gates import CommandResult  # noqa: E402


FAKE_HLEDGER = textwrap.dedent(
    '''
    """Stand-in for the hledger executable used by the test-suite."""

    import difflib
    import json
    import os
    import sys

    MODES = ("--close", "--open", "--clopen", "--assign", "--assert", "--retain")


    def _option(args, name):
        if name in args:
            return args[args.index(name) + 1]
        return None


    def _read(path):
        with open(path, encoding="utf-8", newline="") as handle:
            return handle.read()


    def check(args):
        content = _read(_option(args, "--file"))
        if "INVALID" in content:
            sys.stderr.write("hledger: could not balance this transaction\\n")
            return 1
        return 0


    def print_json(args):
        payload = os.environ.get("FAKE_HLEDGER_PRINT")
        sys.stdout.write(_read(payload) if payload else "[]")
        return 0


    def rewrite(args):
        path = _option(args, "--file")
        postings = [args[i + 1] for i, arg in enumerate(args) if arg == "--add-posting"]
        skip = {"--file", "--add-posting"}
        terms = []
        index = 0
        while index < len(args):
            if args[index] in skip:
                index += 2
                continue
            if not args[index].startswith("--"):
                terms.append(args[index])
            index += 1

        original = _read(path).splitlines(keepends=True)
        updated = []
        matching = False
        for number, line in enumerate(original):
            updated.append(line)
            if line[:1].isdigit():
                matching = all(term in line for term in terms)
            following = original[number + 1] if number + 1 < len(original) else ""
            is_last_posting = matching and line.startswith(" ") and not following.startswith(" ")
            if is_last_posting:
                if not line.endswith("\\n"):
                    updated[-1] = line + "\\n"
                for posting in postings:
                    updated.append("    " + posting + "\\n")
                matching = False
        sys.stdout.writelines(difflib.unified_diff(original, updated, fromfile=path, tofile=path))
        return 0


    def import_data(args):
        path = _option(args, "--file")
        takes_value = {"--file", "--rules"}
        sources = []
        index = 0
        while index < len(args):
            if args[index] in takes_value:
                index += 2
                continue
            if not args[index].startswith("--"):
                sources.append(args[index])
            index += 1

        entries = []
        for source in sources:
            for row in _read(source).splitlines():
                if not row.strip():
                    continue
                if "BROKEN" in row:
                    sys.stderr.write("hledger: could not parse " + source + "\\n")
                    return 1
                date, description, amount = row.split(",")
                entries.append(date + " " + description + "\\n    assets:bank  " + amount + "\\n    income:unknown\\n")

        if "--catchup" in args or not entries:
            sys.stdout.write("no new transactions found\\n")
            return 0
        if "--dry-run" in args:
            sys.stdout.write("\\n".join(entries))
            return 0

        content = _read(path)
        prefix = ""
        if content:
            prefix = "\\n" if content.endswith("\\n") else "\\n\\n"
        with open(path, "a", encoding="utf-8", newline="") as handle:
            handle.write(prefix + "\\n".join(entries))
        sys.stdout.write("imported %d new transactions\\n" % len(entries))
        return 0


    def close(args):
        content = _read(_option(args, "--file"))
        if "assets" not in content:
            return 0
        mode = next(arg for arg in args if arg.split("=")[0] in MODES)
        description = _option(args, "--close-desc") or "closing balances"
        account = _option(args, "--close-acct") or "equity:opening/closing balances"
        sys.stdout.write(
            "2025-12-31 " + description + "  ; " + mode.lstrip("-") + "\\n"
            "    assets:cash  $-4\\n"
            "    " + account + "\\n\\n"
        )
        return 0


    def main():
        command, args = sys.argv[1], sys.argv[2:]
        handlers = {
            "check": check,
            "close": close,
            "import": import_data,
            "print": print_json,
            "rewrite": rewrite,
        }
        return handlers[command](args)


    if __name__ == "__main__":
        sys.exit(main())
    '''
).lstrip()


@pytest.fixture()
def fake_hledger(tmp_path: Path) -> List[str]:
    """Write the fake engine and return the argv prefix that runs it."""

    script = tmp_path / "fake_hledger.py"
    script.write_text(FAKE_HLEDGER, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return [sys.executable, str(script)]


@dataclass
class RecordingValidator:
    """Validator double that records every path it is asked to check."""

    exit_code: int = 0
    stderr: str = ""
    seen: List[Path] = field(default_factory=list)
    contents: List[str] = field(default_factory=list)

    def __call__(self, path: Path) -> CommandResult:
        self.seen.append(path)
        self.contents.append(path.read_text(encoding="utf-8"))
        return CommandResult(
            command=("hledger", "check", "--file", str(path)),
            exit_code=self.exit_code,
            stdout="",
            stderr=self.stderr,
        )


@pytest.fixture()
def passing_validator() -> RecordingValidator:
    return RecordingValidator()


@pytest.fixture()
def failing_validator() -> RecordingValidator:
    return RecordingValidator(exit_code=1, stderr="hledger: could not balance this transaction\n")


@pytest.fixture()
def temp_siblings() -> Callable[[Path], List[Path]]:
    """Return a helper listing staged ``.tmp-`` siblings of a journal."""

    def _list(journal: Path) -> List[Path]:
        return sorted(journal.parent.glob(f"{journal.name}.tmp-*"))

    return _list


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("LEDGERGUARD_"):
            monkeypatch.delenv(name, raising=False)
