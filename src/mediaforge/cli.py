"""Command-line interface for MediaForge operators."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from mediaforge.credits.models import CreditReason, LedgerMetadata
from mediaforge.credits.service import CreditService
from mediaforge.errors import MediaForgeError
from mediaforge.logging_config import get_logger, setup_logging
from mediaforge.storage.db import db

setup_logging()
logger = get_logger(__name__)

app = typer.Typer(
    name="mediaforge",
    help="MediaForge AI - credits, referrals and notifications",
    no_args_is_help=True,
)

console = Console()


@app.command("init")
def init_database() -> None:
    """Create tables and seed default pricing and packages."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()

    credits = CreditService(db)
    pricing_added = credits.initialize_default_pricing()
    packages_added = credits.initialize_default_packages()

    console.print("[bold green]✓[/bold green] Database initialized successfully")
    console.print(f"  Feature prices added: {pricing_added}")
    console.print(f"  Packages added: {packages_added}")


@app.command("pricing")
def show_pricing() -> None:
    """List feature prices."""
    rows = CreditService(db).list_feature_pricing()

    if not rows:
        console.print("[yellow]No pricing found - run 'mediaforge init'[/yellow]")
        return

    table = Table(title="Feature Pricing")
    table.add_column("Feature", style="cyan")
    table.add_column("Model", style="green")
    table.add_column("Credits", justify="right")
    table.add_column("Active")

    for row in rows:
        table.add_row(
            row.feature,
            row.provider,
            str(row.credits_per_use),
            "yes" if row.is_active else "[red]no[/red]",
        )

    console.print(table)


@app.command("grant")
def grant_credits(
    user_id: Annotated[str, typer.Argument(help="Clerk user ID")],
    amount: Annotated[int, typer.Argument(help="Credits to add")],
    description: Annotated[str, typer.Option("--description", "-d", help="Ledger description")] = "",
) -> None:
    """Grant bonus credits to a user."""
    try:
        result = CreditService(db).add_credits(
            user_id,
            amount,
            reason=CreditReason.BONUS,
            description=description or f"Operator grant - {amount} credits",
            metadata=LedgerMetadata(source="cli_grant"),
        )
    except MediaForgeError as e:
        console.print(f"[bold red]✗[/bold red] {e.message}")
        raise typer.Exit(code=1)

    console.print(
        f"[bold green]✓[/bold green] Added {result['credits_added']} credits to {user_id} "
        f"(balance: [bold]{result['new_balance']}[/bold])"
    )


@app.command("balance")
def show_balance(
    user_id: Annotated[str, typer.Argument(help="Clerk user ID")],
) -> None:
    """Show a user's balance and totals."""
    balance = CreditService(db).get_balance(user_id)

    console.print(f"[bold]{user_id}[/bold]")
    console.print(f"  Balance: {balance['balance']}")
    console.print(f"  Total purchased: {balance['total_purchased']}")
    console.print(f"  Total used: {balance['total_used']}")


if __name__ == "__main__":
    app()
