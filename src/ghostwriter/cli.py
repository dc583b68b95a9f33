"""Command-line interface for Ghostwriter."""

from pathlib import Path
from typing import Annotated

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from ghostwriter.accounts.service import account_service, parse_member_csv
from ghostwriter.invites.service import invite_service
from ghostwriter.ledger.credits import credit_service
from ghostwriter.logging_config import get_logger, setup_logging
from ghostwriter.storage.db import db

# Configure logging
setup_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="ghostwriter",
    help="Ghostwriter - credits and billing ledger administration",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("import-members")
def import_members(
    csv_path: Annotated[Path, typer.Argument(help="Community member export (CSV)", exists=True, dir_okay=False)],
    apply: Annotated[bool, typer.Option("--apply", help="Write changes (default is a dry run)")] = False,
    batch_size: Annotated[int, typer.Option("--batch-size", help="Rows per transaction")] = 100,
) -> None:
    """Load the membership allowlist from a CSV export."""
    rows = parse_member_csv(csv_path)
    console.print(f"[bold blue]Parsed {len(rows)} rows from {csv_path.name}[/bold blue]")

    totals = account_service.import_members(rows, dry_run=not apply, batch_size=batch_size)

    mode = "[bold green]APPLIED[/bold green]" if apply else "[yellow]DRY RUN[/yellow]"
    console.print(f"{mode}")
    console.print(f"  Inserted: {totals['inserted']}")
    console.print(f"  Updated: {totals['updated']}")
    console.print(f"  Skipped (no email): {totals['skipped_no_email']}")
    if not apply:
        console.print("Re-run with [bold]--apply[/bold] to write changes.")


@app.command("enforce-tiers")
def enforce_tiers(
    apply: Annotated[bool, typer.Option("--apply", help="Write changes (default is a dry run)")] = False,
) -> None:
    """Upgrade every allowlisted profile to the skool tier."""
    result = account_service.enforce_member_tiers(dry_run=not apply)

    mode = "[bold green]APPLIED[/bold green]" if apply else "[yellow]DRY RUN[/yellow]"
    console.print(f"{mode}")
    console.print(f"  Allowlisted profiles: {result['checked']}")
    console.print(f"  Upgraded to skool: {result['upgraded']}")


@app.command("rotate-invite-code")
def rotate_invite_code() -> None:
    """Retire the community invite code and issue a new one."""
    code = invite_service.rotate_community_code()
    console.print(f"[bold green]✓[/bold green] New community code: [bold]{code}[/bold]")


@app.command("ledger")
def show_ledger(
    email: Annotated[str, typer.Argument(help="User email")],
    limit: Annotated[int, typer.Option("--limit", "-l", help="Number of entries")] = 20,
) -> None:
    """Show the most recent ledger entries of a user."""
    try:
        entries = credit_service.get_ledger(email, limit=limit)
    except ValueError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(code=1)

    if not entries:
        console.print("[yellow]No ledger entries found[/yellow]")
        return

    table = Table(title=f"Ledger: {email}")
    table.add_column("ID", style="cyan")
    table.add_column("Date")
    table.add_column("Reason", style="magenta")
    table.add_column("Delta", justify="right")

    for entry in entries:
        delta = entry["delta"]
        style = "green" if delta >= 0 else "red"
        table.add_row(
            str(entry["id"]),
            entry["created_at"][:19],
            entry["reason"],
            f"[{style}]{delta:+d}[/{style}]",
        )

    console.print(table)


@app.command("reconcile")
def reconcile(
    email: Annotated[str, typer.Argument(help="User email")],
) -> None:
    """Compare a user's balance with a replay of their ledger."""
    try:
        result = credit_service.reconcile(email)
    except ValueError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[bold]User:[/bold] {result['email']}")
    console.print(f"[bold]Profile balance:[/bold] {result['profile_balance']}")
    console.print(f"[bold]Ledger balance:[/bold] {result['ledger_balance']}")
    console.print(f"[bold]Entries:[/bold] {result['entries']}")

    if result["drift"]:
        console.print(f"[bold red]✗[/bold red] Drift of {result['drift']:+d} credits")
        raise typer.Exit(code=1)

    console.print("[bold green]✓[/bold green] Balance matches ledger")


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Bind port")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", help="Restart on code changes")] = False,
) -> None:
    """Run the credits API."""
    console.print(f"[bold blue]Serving Ghostwriter API on {host}:{port}[/bold blue]")
    uvicorn.run("ghostwriter.api.main:app", host=host, port=port, reload=reload, log_config=None)


if __name__ == "__main__":
    app()
