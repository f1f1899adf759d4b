"""CLI commands for validated edits of hledger journals."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Callable, List, Optional

import typer

from .config import DEFAULT_CONFIG_NAME, load_config
from .service import MAX_FIND_LIMIT, JournalService
from .structured import PostingDraft, PostingInstruction, TransactionDraft
from .tools.closing import CLOSE_MODES, CloseOptions
from .tools.errors import LedgerEditError

APP_HELP = "Safely edit plain-text accounting journals."

_AMOUNT_SEPARATOR = re.compile(r"\t+|\s{2,}")

app = typer.Typer(help=APP_HELP)


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _service(ctx: typer.Context) -> JournalService:
    service = ctx.obj
    if not isinstance(service, JournalService):
        raise typer.Exit(code=1)
    return service


def _run(action: Callable[[], Any]) -> Any:
    """Invoke ``action`` and turn journal errors into a one-line message and exit code 1."""
    try:
        return action()
    except LedgerEditError as error:
        typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1) from error


def _split_posting(raw: str) -> tuple[str, Optional[str]]:
    """Split ``"account  amount"`` on the first run of two spaces or a tab."""
    parts = _AMOUNT_SEPARATOR.split(raw.strip(), maxsplit=1)
    account = parts[0].strip()
    amount = parts[1].strip() if len(parts) > 1 else None
    return account, amount or None


def _text_argument(inline: Optional[str], path: Optional[Path], name: str) -> str:
    if inline is not None and path is not None:
        raise typer.BadParameter(f"Pass either --{name} or --{name}-file, not both.")
    if path is not None:
        return path.read_text(encoding="utf-8")
    if inline is None:
        raise typer.BadParameter(f"One of --{name} or --{name}-file is required.")
    return inline


@app.callback()
def main(
    ctx: typer.Context,
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    journal: Optional[str] = typer.Option(None, "--journal", "-f", help="Default journal file."),
    read_only: bool = typer.Option(False, "--read-only", help="Refuse every mutation except dry runs."),
    skip_backup: bool = typer.Option(False, "--skip-backup", help="Do not write .bak files on commit."),
    hledger: Optional[str] = typer.Option(None, "--hledger", help="hledger executable to run."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Load configuration and prepare the journal service."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config_data = _run(lambda: load_config(Path(config)))
    ctx.obj = JournalService.from_config(
        config_data,
        journal_file=journal,
        read_only=read_only,
        skip_backup=skip_backup,
        hledger=hledger,
    )


@app.command()
def add(
    ctx: typer.Context,
    date: str = typer.Option(..., "--date", help="Transaction date (YYYY-MM-DD)."),
    description: str = typer.Option(..., "--description", "-d", help="Payee / description."),
    posting: List[str] = typer.Option(
        ...,
        "--posting",
        "-p",
        help="Posting as 'account  amount' (two spaces or a tab before the amount). Repeatable.",
    ),
    status: Optional[str] = typer.Option(None, "--status", help="'*' (cleared) or '!' (pending)."),
    code: Optional[str] = typer.Option(None, "--code", help="Transaction code."),
    comment: Optional[str] = typer.Option(None, "--comment", help="Comment on the header line."),
    note: List[str] = typer.Option([], "--note", help="Additional comment line. Repeatable."),
    file: Optional[str] = typer.Option(None, "--file", help="Journal to append to."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate without writing."),
) -> None:
    """Append a new transaction after validating the result."""
    service = _service(ctx)
    postings = []
    for raw in posting:
        account, amount = _split_posting(raw)
        postings.append(PostingDraft(account=account, amount=amount))
    draft = TransactionDraft(
        date=date,
        description=description,
        postings=postings,
        status=status,  # type: ignore[arg-type]
        code=code,
        comment=comment,
        notes=tuple(note),
    )
    result = _run(lambda: service.add_transaction(draft, file=file, dry_run=dry_run))
    _echo_json(result.to_dict())


@app.command("remove-entry")
def remove_entry(
    ctx: typer.Context,
    file: str = typer.Option(..., "--file", help="Journal file holding the entry."),
    start: int = typer.Option(..., "--start", help="First line of the entry (1-based)."),
    end: int = typer.Option(..., "--end", help="Last line of the entry (inclusive)."),
    entry: Optional[str] = typer.Option(None, "--entry", help="Exact text expected at the location."),
    entry_file: Optional[Path] = typer.Option(
        None,
        "--entry-file",
        exists=True,
        dir_okay=False,
        help="Read the expected text from a file.",
    ),
    keep_blank: bool = typer.Option(False, "--keep-blank", help="Keep the blank line that follows the entry."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate without writing."),
) -> None:
    """Remove a transaction identified by location and exact text."""
    service = _service(ctx)
    entry_text = _text_argument(entry, entry_file, "entry")
    result = _run(
        lambda: service.remove_entry(
            file,
            start,
            end,
            entry_text,
            dry_run=dry_run,
            collapse_whitespace=not keep_blank,
        )
    )
    _echo_json(result.to_dict())


@app.command("replace-entry")
def replace_entry(
    ctx: typer.Context,
    file: str = typer.Option(..., "--file", help="Journal file holding the entry."),
    start: int = typer.Option(..., "--start", help="First line of the entry (1-based)."),
    end: int = typer.Option(..., "--end", help="Last line of the entry (inclusive)."),
    original: Optional[str] = typer.Option(None, "--original", help="Exact text expected at the location."),
    original_file: Optional[Path] = typer.Option(
        None,
        "--original-file",
        exists=True,
        dir_okay=False,
        help="Read the expected text from a file.",
    ),
    replacement: Optional[str] = typer.Option(None, "--replacement", help="Text to put in its place."),
    replacement_file: Optional[Path] = typer.Option(
        None,
        "--replacement-file",
        exists=True,
        dir_okay=False,
        help="Read the replacement text from a file.",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate without writing."),
) -> None:
    """Replace a transaction identified by location and exact text."""
    service = _service(ctx)
    original_text = _text_argument(original, original_file, "original")
    replacement_text = _text_argument(replacement, replacement_file, "replacement")
    result = _run(
        lambda: service.replace_entry(file, start, end, original_text, replacement_text, dry_run=dry_run)
    )
    _echo_json(result.to_dict())


@app.command()
def rewrite(
    ctx: typer.Context,
    add_posting: List[str] = typer.Option(
        ...,
        "--add-posting",
        help="Posting to add as 'account  amount'. Repeatable.",
    ),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="hledger query selecting transactions."),
    file: Optional[str] = typer.Option(None, "--file", help="Root journal file."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the diff without writing."),
) -> None:
    """Add postings to every matching transaction across the include graph."""
    service = _service(ctx)
    instructions = []
    for raw in add_posting:
        account, amount = _split_posting(raw)
        if not amount:
            raise typer.BadParameter(f"Posting needs an amount: {raw!r}", param_hint="--add-posting")
        instructions.append(PostingInstruction(account=account, amount=amount))
    result = _run(lambda: service.rewrite(instructions, file=file, query=query, dry_run=dry_run))
    _echo_json(result.to_dict())


@app.command("import")
def import_(
    ctx: typer.Context,
    data_files: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="CSV or other data files."),
    rules_file: Optional[Path] = typer.Option(
        None,
        "--rules",
        exists=True,
        dir_okay=False,
        help="Conversion rules file.",
    ),
    catchup: bool = typer.Option(False, "--catchup", help="Mark all current data as already imported."),
    file: Optional[str] = typer.Option(None, "--file", help="Journal to import into."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview the new transactions without writing."),
) -> None:
    """Import new transactions from data files."""
    service = _service(ctx)
    result = _run(
        lambda: service.import_transactions(
            data_files,
            file=file,
            rules_file=rules_file,
            catchup=catchup,
            dry_run=dry_run,
        )
    )
    _echo_json(result.to_dict())


@app.command()
def close(
    ctx: typer.Context,
    mode: str = typer.Option("clopen", "--mode", help=f"One of: {', '.join(CLOSE_MODES)}."),
    tag_value: Optional[str] = typer.Option(None, "--tag-value", help="Value for the mode's tag."),
    close_account: Optional[str] = typer.Option(None, "--close-acct", help="Destination account for balances."),
    close_description: Optional[str] = typer.Option(None, "--close-desc", help="Closing transaction description."),
    open_account: Optional[str] = typer.Option(None, "--open-acct", help="Source account for opening balances."),
    open_description: Optional[str] = typer.Option(None, "--open-desc", help="Opening transaction description."),
    assertion_type: Optional[str] = typer.Option(None, "--assertion-type", help="Balance assertion strictness."),
    explicit: bool = typer.Option(False, "--explicit", help="Show all amounts explicitly."),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="Close balances as of this date."),
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Accounts to close."),
    file: Optional[str] = typer.Option(None, "--file", help="Journal to close."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the generated entries without writing."),
) -> None:
    """Generate closing/opening transactions and append them to the journal."""
    service = _service(ctx)
    options = CloseOptions(
        mode=mode,
        tag_value=tag_value,
        explicit=explicit,
        assertion_type=assertion_type,
        close_description=close_description,
        close_account=close_account,
        open_description=open_description,
        open_account=open_account,
        end=end,
        query=query,
    )
    result = _run(lambda: service.close_books(options, file=file, dry_run=dry_run))
    _echo_json(result.to_dict())


@app.command("find-entry")
def find_entry(
    ctx: typer.Context,
    query: Optional[str] = typer.Option(None, "--query", "-q", help="hledger query selecting transactions."),
    file: Optional[str] = typer.Option(None, "--file", help="Root journal file."),
    limit: Optional[int] = typer.Option(None, "--limit", help=f"Return at most this many entries (1-{MAX_FIND_LIMIT})."),
) -> None:
    """List transactions with the exact text and location needed to edit them."""
    service = _service(ctx)
    entries = _run(lambda: service.find_entries(file=file, query=query, limit=limit))
    _echo_json({"count": len(entries), "entries": [entry.to_dict() for entry in entries]})


@app.command()
def check(
    ctx: typer.Context,
    file: Optional[str] = typer.Option(None, "--file", help="Journal to check."),
) -> None:
    """Run the journal check and report its output."""
    service = _service(ctx)
    result = _run(lambda: service.check(file))
    _echo_json(result.to_dict())
    if not result.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
