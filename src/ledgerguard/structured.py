"""Typed payloads that describe transactions and posting edits."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal, Mapping, Sequence

from .tools.errors import AddressingError

_DATE_PATTERN = re.compile(r"^\d{4}(-\d{2}(-\d{2})?)?$")


@dataclass(slots=True)
class PostingDraft:
    """One posting line of a new transaction."""

    account: str
    amount: str | None = None
    comment: str | None = None
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class TransactionDraft:
    """Structured description of a transaction to append."""

    date: str
    description: str
    postings: Sequence[PostingDraft]
    status: Literal["*", "!"] | None = None
    code: str | None = None
    comment: str | None = None
    notes: Sequence[str] = ()


@dataclass(slots=True)
class PostingInstruction:
    """Posting that a rewrite adds to every matching transaction."""

    account: str
    amount: str


def validate_transaction(draft: TransactionDraft) -> None:
    if not _DATE_PATTERN.match(draft.date or ""):
        raise AddressingError("Invalid date format. Use YYYY, YYYY-MM, or YYYY-MM-DD")
    if draft.status not in (None, "*", "!"):
        raise AddressingError(f"Invalid transaction status: {draft.status!r}")
    if not (draft.description or "").strip():
        raise AddressingError("Description is required")
    if len(draft.postings) < 2:
        raise AddressingError("At least two postings are required")
    for posting in draft.postings:
        if not (posting.account or "").strip():
            raise AddressingError("Account is required")


def render_transaction(draft: TransactionDraft) -> str:
    """Render ``draft`` as journal text without a trailing newline."""

    validate_transaction(draft)

    header_parts = [draft.date]
    if draft.status:
        header_parts.append(draft.status)
    if draft.code:
        header_parts.append(f"({draft.code})")
    header_parts.append(draft.description)
    header = " ".join(header_parts)
    if draft.comment:
        header += f"  ; {draft.comment}"

    lines = [header]
    for posting in draft.postings:
        line = f"  {posting.account}"
        if posting.amount:
            line += f"  {posting.amount}"
        if posting.comment:
            line += f"  ; {posting.comment}"
        if posting.tags:
            line += "  ; " + ", ".join(f"{key}: {value}" for key, value in posting.tags.items())
        lines.append(line)

    for note in draft.notes:
        lines.append(f"  ; {note}")

    return "\n".join(lines)


__all__ = [
    "PostingDraft",
    "PostingInstruction",
    "TransactionDraft",
    "render_transaction",
    "validate_transaction",
]
