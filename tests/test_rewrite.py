from __future__ import annotations

from pathlib import Path
from typing import Any, List, Sequence

import pytest

from ledgerguard.structured import PostingInstruction
from ledgerguard.tools.errors import LedgerEditError, PatchError, PatchMismatchError, ValidationFailure
from ledgerguard.tools.gates import CommandResult
from ledgerguard.tools.hledger import HledgerRunner
from ledgerguard.tools.rewrite import rewrite_transactions


MAIN = "include food.journal\n\n2024-01-05 * Rent\n    expenses:rent  $500\n    assets:bank\n"
FOOD = "2024-01-02 * Groceries\n    expenses:food  $20\n    assets:cash\n"
BUDGET = [PostingInstruction(account="budget:food", amount="-1")]


@pytest.fixture()
def books(tmp_path: Path) -> Path:
    root = tmp_path / "books"
    root.mkdir()
    (root / "main.journal").write_text(MAIN, encoding="utf-8")
    (root / "food.journal").write_text(FOOD, encoding="utf-8")
    return root / "main.journal"


class DiffStub:
    """Diff generator double that builds a diff against the mirror it is handed."""

    def __init__(self, render) -> None:
        self.render = render
        self.calls: List[tuple[Path, Sequence[Any], str | None]] = []

    def __call__(self, journal: Path, add_postings: Sequence[Any], query: str | None) -> CommandResult:
        self.calls.append((journal, add_postings, query))
        return CommandResult(
            command=("hledger", "rewrite"),
            exit_code=0,
            stdout=self.render(journal.parent),
            stderr="",
        )


def _food_diff(mirror_root: Path) -> str:
    target = mirror_root / "food.journal"
    return (
        f"--- {target}\n+++ {target}\n"
        "@@ -1,3 +1,4 @@\n"
        " 2024-01-02 * Groceries\n"
        "     expenses:food  $20\n"
        "     assets:cash\n"
        "+    budget:food  -1\n"
    )


def test_rewrite_commits_only_touched_include(books: Path, passing_validator) -> None:
    stub = DiffStub(_food_diff)

    result = rewrite_transactions(
        books,
        BUDGET,
        query="expenses:food",
        diff_generator=stub,
        validator=passing_validator,
    )

    food = books.parent / "food.journal"
    assert result.applied is True
    assert result.changed_files == ["food.journal"]
    assert set(result.backup_paths) == {"food.journal"}
    assert Path(result.backup_paths["food.journal"]).read_text(encoding="utf-8") == FOOD
    assert food.read_text(encoding="utf-8") == FOOD + "    budget:food  -1\n"
    assert books.read_text(encoding="utf-8") == MAIN

    mirror_target, postings, query = stub.calls[0]
    assert mirror_target.name == "main.journal"
    assert mirror_target.parent != books.parent.resolve()
    assert not mirror_target.parent.exists()
    assert postings == BUDGET and query == "expenses:food"
    assert passing_validator.seen == [mirror_target]

    assert str(mirror_target.parent) not in (result.diff or "")
    assert str(books.parent.resolve() / "food.journal") in (result.diff or "")


def test_rewrite_dry_run_validates_in_mirror_only(books: Path, passing_validator) -> None:
    result = rewrite_transactions(
        books,
        BUDGET,
        diff_generator=DiffStub(_food_diff),
        validator=passing_validator,
        dry_run=True,
    )

    assert result.applied is False
    assert result.changed_files == ["food.journal"]
    assert result.backup_paths == {}
    assert "+    budget:food  -1" in (result.diff or "")
    assert len(passing_validator.seen) == 1
    assert (books.parent / "food.journal").read_text(encoding="utf-8") == FOOD
    assert list(books.parent.glob("*.bak-*")) == []


def test_rewrite_with_empty_diff_changes_nothing(books: Path, passing_validator) -> None:
    result = rewrite_transactions(
        books,
        BUDGET,
        diff_generator=DiffStub(lambda root: ""),
        validator=passing_validator,
    )

    assert result.applied is False
    assert result.diff is None
    assert result.changed_files == []
    assert passing_validator.seen == []


def test_rewrite_validation_failure_leaves_every_file_untouched(books: Path, failing_validator) -> None:
    with pytest.raises(ValidationFailure):
        rewrite_transactions(
            books,
            BUDGET,
            diff_generator=DiffStub(_food_diff),
            validator=failing_validator,
        )

    assert (books.parent / "food.journal").read_text(encoding="utf-8") == FOOD
    assert books.read_text(encoding="utf-8") == MAIN
    assert list(books.parent.glob("*.bak-*")) == []


def test_rewrite_mismatch_in_one_file_blocks_all(books: Path, passing_validator) -> None:
    def render(root: Path) -> str:
        main = root / "main.journal"
        return _food_diff(root) + (
            f"--- {main}\n+++ {main}\n"
            "@@ -3,3 +3,4 @@\n"
            " 2024-01-05 * Rent\n"
            "     expenses:rent  $999\n"
            "     assets:bank\n"
            "+    budget:food  -1\n"
        )

    with pytest.raises(PatchMismatchError):
        rewrite_transactions(books, BUDGET, diff_generator=DiffStub(render), validator=passing_validator)

    assert (books.parent / "food.journal").read_text(encoding="utf-8") == FOOD
    assert passing_validator.seen == []


def test_rewrite_rejects_diff_touching_real_files(books: Path, passing_validator) -> None:
    real = books.parent.resolve() / "food.journal"

    with pytest.raises(PatchError, match="outside workspace"):
        rewrite_transactions(
            books,
            BUDGET,
            diff_generator=DiffStub(lambda root: _food_diff(real.parent)),
            validator=passing_validator,
        )

    assert real.read_text(encoding="utf-8") == FOOD


def test_rewrite_requires_postings(books: Path, passing_validator) -> None:
    with pytest.raises(LedgerEditError):
        rewrite_transactions(books, [], diff_generator=DiffStub(_food_diff), validator=passing_validator)

    with pytest.raises(LedgerEditError):
        rewrite_transactions(
            books,
            [PostingInstruction(account="budget:food", amount=" ")],
            diff_generator=DiffStub(_food_diff),
            validator=passing_validator,
        )


def test_rewrite_end_to_end_with_engine(tmp_path: Path, fake_hledger: List[str]) -> None:
    journal = tmp_path / "main.journal"
    journal.write_text(
        "2024-01-02 * Groceries\n    expenses:food  $20\n    assets:cash\n\n"
        "2024-01-05 * Rent\n    expenses:rent  $500\n    assets:bank\n",
        encoding="utf-8",
    )
    runner = HledgerRunner(command=tuple(fake_hledger))

    result = rewrite_transactions(
        journal,
        BUDGET,
        query="Groceries",
        diff_generator=runner.rewrite_diff,
        validator=runner.check,
        skip_backup=True,
    )

    assert result.applied is True
    assert result.backup_paths == {}
    assert journal.read_text(encoding="utf-8") == (
        "2024-01-02 * Groceries\n    expenses:food  $20\n    assets:cash\n    budget:food  -1\n\n"
        "2024-01-05 * Rent\n    expenses:rent  $500\n    assets:bank\n"
    )
