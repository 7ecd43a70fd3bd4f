"""
Orixa POS CLI.

Command-line interface for operational tasks.
"""

import asyncio
from datetime import datetime, timezone

import typer
from rich.console import Console
from rich.table import Table

from shared.config.constants import Roles
from shared.config.settings import settings

app = typer.Typer(
    name="orixa",
    help="Orixa POS operations CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Order Commands
# =============================================================================


@app.command()
def expire_pending(
    minutes: int = typer.Option(
        None,
        "--minutes",
        "-m",
        help="Cancel NEW orders unpaid for longer than this (defaults to PENDING_PAYMENT_EXPIRY_MINUTES)",
    ),
    publish: bool = typer.Option(True, help="Publish order.status.updated events"),
):
    """Cancel NEW orders whose payment was never confirmed."""
    from shared.infrastructure.db import get_db_context
    from pos_api.services.domain import OrderService
    from pos_api.services.events import dispatch_events, get_notifier

    minutes = settings.pending_payment_expiry_minutes if minutes is None else minutes
    if minutes <= 0:
        console.print("[yellow]Expiry sweep disabled (minutes <= 0)[/yellow]")
        return

    with get_db_context() as db:
        count, events = OrderService(db).expire_stale_orders(minutes)

    console.print(f"[green]✓ Cancelled {count} unpaid orders older than {minutes} minutes[/green]")
    if publish and events:
        asyncio.run(dispatch_events(get_notifier(), events))


@app.command()
def kitchen_board(
    outlet_id: int = typer.Argument(..., help="Outlet ID"),
):
    """Print the kitchen board of an outlet."""
    from shared.infrastructure.db import get_db_context
    from pos_api.services.domain import load_kitchen_board

    with get_db_context() as db:
        board = load_kitchen_board(db, outlet_id)

        table = Table(title=f"Kitchen board - outlet {outlet_id}")
        table.add_column("Column", style="cyan")
        table.add_column("Code", style="bold")
        table.add_column("Status")
        table.add_column("Table")
        table.add_column("Items")
        table.add_column("Age")

        now = datetime.now(timezone.utc)
        for column, orders in (
            ("incoming", board.incoming),
            ("cooking", board.cooking),
            ("ready", board.ready),
        ):
            for order in orders:
                created = order.created_at
                if created.tzinfo is None:
                    created = created.replace(tzinfo=timezone.utc)
                age_minutes = int((now - created).total_seconds() // 60)
                items = ", ".join(f"{i.qty}x {i.name_snapshot}" for i in order.items)
                table.add_row(
                    column,
                    order.order_code,
                    order.status,
                    order.table.name if order.table else "-",
                    items,
                    f"{age_minutes}m",
                )

    if table.row_count == 0:
        console.print("[yellow]Kitchen board is empty[/yellow]")
    else:
        console.print(table)


# =============================================================================
# Development Commands
# =============================================================================


@app.command()
def dev_token(
    user_id: int = typer.Option(1, help="Staff user id (sub claim)"),
    outlet_ids: list[int] = typer.Option([1], "--outlet", "-o", help="Outlet ids (repeatable)"),
    roles: list[str] = typer.Option([Roles.ADMIN], "--role", "-r", help="Roles (repeatable)"),
    company_id: int = typer.Option(1, help="Company id"),
    ttl_minutes: int = typer.Option(60, help="Token lifetime in minutes"),
):
    """Mint a staff JWT for local development."""
    from shared.security.auth import sign_jwt

    if settings.environment == "production":
        console.print("[red]Refusing to mint tokens in production[/red]")
        raise typer.Exit(1)

    unknown = set(roles) - set(Roles.ALL)
    if unknown:
        console.print(f"[red]Unknown roles: {', '.join(sorted(unknown))}[/red]")
        raise typer.Exit(1)

    token = sign_jwt(
        {
            "sub": str(user_id),
            "company_id": company_id,
            "outlet_ids": outlet_ids,
            "roles": roles,
        },
        ttl_seconds=ttl_minutes * 60,
    )
    console.print(token)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(None, help="Port (defaults to POS_API_PORT)"),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
):
    """Run the REST API with uvicorn."""
    import uvicorn

    uvicorn.run("pos_api.main:app", host=host, port=port or settings.pos_api_port, reload=reload)


@app.command()
def serve_ws(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(None, help="Port (defaults to WS_GATEWAY_PORT)"),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
):
    """Run the WebSocket gateway with uvicorn."""
    import uvicorn

    uvicorn.run("ws_gateway.main:app", host=host, port=port or settings.ws_gateway_port, reload=reload)


@app.command()
def version():
    """Show version information."""
    console.print("[bold]Orixa POS[/bold] v0.1.0")
    console.print(f"Environment: {settings.environment}")


if __name__ == "__main__":
    app()
