from __future__ import annotations

from pathlib import Path

import pytest

from ledgerguard.tools.entries import locate_entries
from ledgerguard.tools.errors import AddressingError, HledgerError


JOURNAL = (
    "2025-01-01 * Coffee  ; morning\n"
    "    expenses:food  $4\n"
    "    assets:cash\n"
    "\n"
    "2025-01-02 Rent\n"
    "    expenses:rent  $500\n"
    "    assets:bank\n"
)


def _record(path: Path, start: int, end: int, index: int, **extra) -> dict:
    record = {
        "tdate": "2025-01-01",
        "tstatus": "Cleared",
        "tdescription": "Coffee",
        "tindex": index,
        "tcomment": " morning\n",
        "ttags": [["project", "alpha"]],
        "tsourcepos": [
            {"sourceName": str(path), "sourceLine": start, "sourceColumn": 1},
            {"sourceName": str(path), "sourceLine": end, "sourceColumn": 1},
        ],
        "tpostings": [],
    }
    record.update(extra)
    return record


def test_locate_entries_extracts_text_and_trims_end_line(tmp_path: Path) -> None:
    journal = tmp_path / "main.journal"
    journal.write_text(JOURNAL, encoding="utf-8")

    entries = locate_entries([_record(journal, 1, 4, 1)], root_dir=tmp_path)

    entry = entries[0]
    assert entry.location.start_line == 1
    assert entry.location.end_line == 3
    assert entry.entry_text == "2025-01-01 * Coffee  ; morning\n    expenses:food  $4\n    assets:cash\n"
    assert entry.relative_path == "main.journal"
    assert entry.comment == "morning"
    assert entry.tags == [{"tag": "project", "value": "alpha"}]
    assert entry.to_dict()["location"]["absolute_path"] == journal.resolve().as_posix()


def test_locate_entries_single_line_position(tmp_path: Path) -> None:
    journal = tmp_path / "main.journal"
    journal.write_text(JOURNAL, encoding="utf-8")
    record = _record(journal, 5, 5, 2, tsourcepos=[{"sourceName": str(journal), "sourceLine": 5}])

    entry = locate_entries([record], root_dir=tmp_path)[0]

    assert (entry.location.start_line, entry.location.end_line) == (5, 5)


def test_locate_entries_outside_root_uses_basename(tmp_path: Path) -> None:
    other = tmp_path / "elsewhere" / "extra.journal"
    other.parent.mkdir()
    other.write_text(JOURNAL, encoding="utf-8")
    root = tmp_path / "books"
    root.mkdir()

    entry = locate_entries([_record(other, 5, 8, 2)], root_dir=root)[0]

    assert entry.relative_path == "extra.journal"
    assert entry.entry_text.startswith("2025-01-02 Rent\n")


def test_locate_entries_limit_and_skip_unlocated(tmp_path: Path) -> None:
    journal = tmp_path / "main.journal"
    journal.write_text(JOURNAL, encoding="utf-8")
    records = [
        _record(journal, 1, 4, 1, tsourcepos=[]),
        _record(journal, 1, 4, 1),
        _record(journal, 5, 8, 2),
    ]

    assert [entry.index for entry in locate_entries(records, root_dir=tmp_path)] == [1, 2]
    assert len(locate_entries(records, root_dir=tmp_path, limit=2)) == 1


def test_locate_entries_rejects_multi_file_transactions(tmp_path: Path) -> None:
    journal = tmp_path / "main.journal"
    journal.write_text(JOURNAL, encoding="utf-8")
    record = _record(journal, 1, 4, 1)
    record["tsourcepos"][1]["sourceName"] = str(tmp_path / "other.journal")

    with pytest.raises(AddressingError, match="multiple files"):
        locate_entries([record], root_dir=tmp_path)


def test_locate_entries_rejects_unexpected_records(tmp_path: Path) -> None:
    with pytest.raises(HledgerError):
        locate_entries([{"tdescription": "no date"}], root_dir=tmp_path)
