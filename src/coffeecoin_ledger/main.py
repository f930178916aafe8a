"""
Main CLI application for the CoffeeCoin ledger.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import Config
from .exceptions import ConfigurationError, LedgerError
from .models import ClassifiedTransfer, ContractOverview, RecentInteraction
from .service import LedgerService
from .utils import format_number

logger = logging.getLogger(__name__)


app = typer.Typer(
    name="coffeecoin",
    help="Serve and inspect the CoffeeCoin loyalty ledger."
)

console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Route all package logging through rich."""
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def load_config() -> Config:
    """Load application configuration."""
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        console.print(
            "\n[yellow]Run 'coffeecoin setup' to create a .env template.[/yellow]")
        raise typer.Exit(1)
    setup_logging(config.log_level)
    return config


def load_service(config: Config) -> LedgerService:
    try:
        return LedgerService.from_config(config)
    except LedgerError as e:
        console.print(f"[red]Could not initialise ledger service: {e}[/red]")
        raise typer.Exit(1)


def short(value: Optional[str], head: int = 10, tail: int = 8) -> str:
    if not value:
        return "N/A"
    if len(value) <= head + tail + 3:
        return value
    return f"{value[:head]}...{value[-tail:]}"


def display_overview(overview: ContractOverview) -> None:
    """Display the contract overview in a rich panel."""
    data = overview.to_dict()
    lines = [
        f"[bold blue]{overview.token_name}[/bold blue] ([green]{overview.token_symbol}[/green])",
        f"Contract: [yellow]{overview.contract_address}[/yellow]",
        f"Creator: {short(data['creatorAddress'])}",
        f"Creation tx: {short(data['creationTxHash'])}",
        f"Live total supply: [green]{format_number(overview.total_supply)}[/green]",
    ]

    labels = [
        ("totalMinted", "Total minted"),
        ("totalRedeemedToZeroAddress", "Redeemed (to 0x0)"),
        ("numberOfHolders", "Holders"),
        ("totalContractTransactions", "Contract transactions"),
    ]
    for key, label in labels:
        if key in data:
            lines.append(f"{label}: [green]{format_number(data[key])}[/green]")
        else:
            lines.append(f"{label}: [yellow]unavailable[/yellow]")

    console.print(Panel("\n".join(lines), title="Contract Overview", expand=False))
    if data["unavailableFields"]:
        console.print(
            f"[yellow]History source unreachable for: {', '.join(data['unavailableFields'])}[/yellow]")


def display_history(address: str, events: List[ClassifiedTransfer]) -> None:
    """Display classified transfers in a rich table."""
    if not events:
        console.print("[yellow]No CoffeeCoin transfers found.[/yellow]")
        return

    table = Table(title=f"\nCoffeeCoin history for {short(address, 6, 4)}")
    table.add_column("Type", style="blue", no_wrap=True)
    table.add_column("Amount", style="green", justify="right")
    table.add_column("From", style="magenta", no_wrap=True)
    table.add_column("To", style="magenta", no_wrap=True)
    table.add_column("Block", style="white", justify="right")
    table.add_column("Date", style="white", no_wrap=True)
    table.add_column("Transaction Hash", style="yellow", no_wrap=True)

    for event in events:
        table.add_row(
            event.type.value,
            f"{format_number(event.amount)} {event.token_symbol}",
            short(event.from_address, 6, 4),
            short(event.to_address, 6, 4),
            f"{event.block_number:,}",
            datetime.fromtimestamp(event.timestamp).strftime("%Y-%m-%d %H:%M"),
            f"{event.transaction_hash[:10]}...",
        )

    console.print(table)


def display_interactions(interactions: List[RecentInteraction]) -> None:
    """Display recent contract calls in a rich table."""
    if not interactions:
        console.print("[yellow]No recent contract interactions found.[/yellow]")
        return

    table = Table(title="\nRecent Contract Interactions")
    table.add_column("Tx Hash", style="yellow", no_wrap=True)
    table.add_column("Function Called", style="cyan")
    table.add_column("Caller (From)", style="magenta", no_wrap=True)
    table.add_column("Block", style="white", justify="right")
    table.add_column("Status", justify="right")

    for tx in interactions:
        status = "[green]Success[/green]" if tx.is_error == "0" else "[red]Error[/red]"
        table.add_row(
            short(tx.hash, 8, 6),
            tx.function_name,
            short(tx.from_address, 6, 4),
            format_number(tx.block_number),
            status,
        )

    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on"),
):
    """Run the HTTP API."""
    import uvicorn

    config = load_config()
    uvicorn.run(
        "coffeecoin_ledger.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        log_level=config.log_level.lower(),
    )


@app.command()
def overview(
    output_file: Optional[str] = typer.Option(
        None, "--output", "-o", help="Write the overview as JSON to this path"),
):
    """Show live token data and history aggregates for the contract."""
    config = load_config()
    service = load_service(config)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Scanning contract history...", total=None)
        try:
            result = service.contract_overview()
        except LedgerError as e:
            console.print(f"[red]Failed to fetch contract overview: {e}[/red]")
            raise typer.Exit(1)
        progress.update(task, description="✓ Scanned contract history")

    display_overview(result)

    if output_file:
        with open(output_file, 'w') as jsonfile:
            json.dump(result.to_dict(), jsonfile, indent=2)
        console.print(f"[green]Overview exported to {output_file}[/green]")


@app.command()
def history(
    address: str = typer.Argument(..., help="Wallet address to inspect"),
):
    """Show a wallet's CoffeeCoin transfers, newest first."""
    config = load_config()
    service = load_service(config)
    try:
        events = service.transaction_history(address)
    except LedgerError as e:
        console.print(f"[red]History fetch failed: {e}[/red]")
        raise typer.Exit(1)
    display_history(address, events)


@app.command()
def interactions(
    page: int = typer.Option(1, "--page", help="Etherscan page number"),
    offset: int = typer.Option(10, "--offset", help="Transactions per page (1-100)"),
):
    """Show the most recent calls made to the contract."""
    config = load_config()
    service = load_service(config)
    try:
        rows = service.recent_interactions(page=page, offset=offset)
    except LedgerError as e:
        console.print(f"[red]Failed to fetch contract interactions: {e}[/red]")
        raise typer.Exit(1)
    display_interactions(rows)


@app.command()
def setup():
    """Setup the application by creating a .env file template."""
    env_content = """# CoffeeCoin Ledger Configuration

# Required: chain access
SEPOLIA_RPC_URL=https://sepolia.infura.io/v3/your_project_id
COFFEE_COIN_CONTRACT_ADDRESS=0x_your_contract_address

# Required for minting and ETH drips
SERVER_WALLET_PRIVATE_KEY=

# Required for history, overview aggregates and drip checks
ETHERSCAN_API_KEY=your_etherscan_api_key_here

# Optional: protects /admin routes
# ADMIN_API_KEY=

# Pagination settings
PAGE_DELAY=0.3
OVERVIEW_TXLIST_MAX_PAGES=5
OVERVIEW_TOKENTX_MAX_PAGES=10

# Server settings
LOG_LEVEL=INFO
API_PORT=3001
"""

    env_path = Path(".env")
    if env_path.exists():
        console.print("[yellow].env file already exists![/yellow]")
        if not typer.confirm("Overwrite existing .env file?"):
            return

    with open(env_path, 'w') as f:
        f.write(env_content)

    console.print(f"[green]Created .env file at {env_path.absolute()}[/green]")
    console.print(
        "\n[yellow]Please edit the .env file and fill in your settings:[/yellow]")
    console.print("1. Point SEPOLIA_RPC_URL at a Sepolia RPC endpoint")
    console.print("2. Set COFFEE_COIN_CONTRACT_ADDRESS to the deployed token")
    console.print("3. Get an Etherscan API key from https://etherscan.io/apis")
    console.print("4. Run: coffeecoin serve")


if __name__ == "__main__":
    app()
