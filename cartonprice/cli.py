"""cartonprice CLI - async commands over the pricing engine.

Commands:
- init: Initialize database schema
- quote: Selling price for an item (special price, last-sale floor)
- preview: Calculated price with per-field overrides and provenance
- rate show|fetch|set|history: Daily USD->ILS rate
- margin set|history: Category margin versions
- freight set|history: Freight cost versions per port/container
- web serve: Run the HTTP API
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal
from uuid import UUID

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from sqlalchemy import or_, select

from cartonprice.config import get_config
from cartonprice.core.logging import configure_logging
from cartonprice.currency.resolver import CurrencyRateResolver
from cartonprice.db.connection import close_db, get_session, init_db
from cartonprice.db.models import CategoryModel
from cartonprice.errors import PricingError
from cartonprice.models import PricingOverrides
from cartonprice.pricing.resolvers import FreightResolver, MarginResolver
from cartonprice.pricing.service import PricingService

app = typer.Typer(
    name="cartonprice",
    help="cartonprice - Wholesale carton pricing",
    no_args_is_help=True,
)
rate_cli = typer.Typer(help="USD->ILS daily rate")
app.add_typer(rate_cli, name="rate")

margin_cli = typer.Typer(help="Category margin rules")
app.add_typer(margin_cli, name="margin")

freight_cli = typer.Typer(help="Freight rates")
app.add_typer(freight_cli, name="freight")

web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()


@app.callback()
def main():
    """cartonprice - Wholesale carton pricing."""
    config = get_config()
    configure_logging(config.log_level, json_logs=config.log_format == "json")


def _run(coro) -> None:
    """Run a command coroutine, printing pricing failures and exiting non-zero."""

    async def _wrapped():
        try:
            await coro
        finally:
            await close_db()

    try:
        asyncio.run(_wrapped())
    except PricingError as e:
        console.print(f"[red]✗[/red] {e.message}")
        if e.missing_fields:
            for field in e.missing_fields:
                console.print(f"    - {field}", style="yellow")
        raise typer.Exit(code=1) from e
    except ValueError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from e


def _dec(value: float | None) -> Decimal | None:
    """CLI floats to Decimal via their printed form (2.5 -> Decimal("2.5"))."""
    return None if value is None else Decimal(str(value))


def _parse_when(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"Invalid timestamp: {value}") from e


async def _find_category(session, ref: str) -> CategoryModel:
    try:
        stmt = select(CategoryModel).where(CategoryModel.id == UUID(ref))
    except ValueError:
        stmt = select(CategoryModel).where(
            or_(CategoryModel.name == ref, CategoryModel.name_en == ref, CategoryModel.name_he == ref)
        )
    result = await session.execute(stmt)
    category = result.scalars().first()
    if category is None:
        raise ValueError(f"Category not found: {ref}")
    return category


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def quote(
    item: str = typer.Argument(..., help="Item code or UUID"),
    customer: str | None = typer.Option(None, "--customer", "-c", help="Customer code"),
    quantity: int | None = typer.Option(None, "--qty", help="Units requested"),
    port: str | None = typer.Option(None, "--port", help="Port of origin"),
    container: int | None = typer.Option(None, "--container", help="Container size (CBM)"),
    language: str | None = typer.Option(None, "--lang", help="Message language (he/en)"),
):
    """Calculate the selling price for an item."""

    async def _quote():
        async with get_session() as session:
            service = PricingService(session, language=language)
            item_obj, result = await service.quote(
                item,
                customer_code=customer,
                quantity=quantity,
                port_of_origin=port,
                container_size_cbm=container,
            )

        table = Table(title=f"{item_obj.item_code} - {item_obj.display_name}")
        table.add_column("Field", style="cyan")
        table.add_column("Value", justify="right")

        table.add_row("Price source", result.price_source.value)
        if result.kind == "standard":
            table.add_row("Supplier price / carton (USD)", str(result.supplier_price_per_carton))
            table.add_row(
                "Freight / container (USD)",
                f"{result.freight_cost_per_container} ({result.freight_source.value})",
            )
            table.add_row("Freight / carton (USD)", str(result.freight_cost_per_carton))
            table.add_row("Total cost / carton (USD)", str(result.total_cost_per_carton))
            table.add_row("Margin %", str(result.margin_percentage))
            table.add_row("Calculated / carton (ILS)", str(result.calculated_price_per_carton_ils))
        else:
            table.add_row("Special price currency", result.special_price_currency.value)
        table.add_row("USD->ILS", str(result.usd_to_ils))
        table.add_row("Selling / carton (USD)", str(result.selling_price_per_carton_usd))
        table.add_row("Selling / carton (ILS)", str(result.selling_price_per_carton_ils))
        table.add_row("Selling / unit (ILS)", str(result.selling_price_per_unit_ils))
        table.add_row("Cartons", str(result.number_of_cartons))
        table.add_row("Total CBM", str(result.total_cbm))

        console.print(table)

    _run(_quote())


@app.command()
def preview(
    item: str = typer.Argument(..., help="Item code or UUID"),
    supplier_price: float | None = typer.Option(None, "--supplier-price", help="Override supplier price (USD)"),
    freight: float | None = typer.Option(None, "--freight", help="Override freight per container (USD)"),
    margin: float | None = typer.Option(None, "--margin", help="Override margin %"),
    usd_rate: float | None = typer.Option(None, "--usd-rate", help="Override USD->ILS rate"),
    box_cbm: float | None = typer.Option(None, "--box-cbm", help="Override carton volume"),
    qty_per_carton: int | None = typer.Option(None, "--qty-per-carton", help="Override units per carton"),
    port: str | None = typer.Option(None, "--port", help="Port of origin"),
    container: int | None = typer.Option(None, "--container", help="Container size (CBM)"),
    language: str | None = typer.Option(None, "--lang", help="Message language (he/en)"),
):
    """Preview the calculated price with overrides (no last-sale floor)."""

    async def _preview():
        overrides = PricingOverrides(
            supplier_price=_dec(supplier_price),
            freight_cost_per_container=_dec(freight),
            margin_percentage=_dec(margin),
            usd_to_ils=_dec(usd_rate),
            box_cbm=_dec(box_cbm),
            qty_per_carton=qty_per_carton,
        )
        async with get_session() as session:
            service = PricingService(session, language=language)
            item_obj, chain = await service.preview(
                item, overrides=overrides, port_of_origin=port, container_size_cbm=container
            )

        table = Table(title=f"{item_obj.item_code} - pricing chain")
        table.add_column("Step", style="cyan")
        table.add_column("Value", justify="right")
        table.add_column("Source", style="magenta")

        table.add_row("Supplier price / carton (USD)", str(chain.supplier_price_per_carton), chain.supplier_price_source.value)
        table.add_row("Units / carton", str(chain.qty_per_carton), chain.qty_per_carton_source.value)
        table.add_row("Carton CBM", str(chain.box_cbm), chain.box_cbm_source.value)
        table.add_row(
            f"Freight / {chain.container_size_cbm}CBM container",
            str(chain.freight_cost_per_container),
            chain.freight_source.value,
        )
        table.add_row("Freight / carton", str(chain.freight_cost_per_carton), "")
        table.add_row("Total cost / carton", str(chain.total_cost_per_carton), "")
        table.add_row("Margin %", str(chain.margin_percentage), chain.margin_source.value)
        table.add_row("USD->ILS", str(chain.usd_to_ils), chain.usd_rate_source.value)
        table.add_row("Calculated / carton (USD)", str(chain.calculated_price_per_carton_usd), "")
        table.add_row("Calculated / carton (ILS)", str(chain.calculated_price_per_carton_ils), "")
        if chain.last_sale_info is not None:
            table.add_row("Last sale (ILS)", str(chain.last_sale_info.price_ils), "reference")

        console.print(table)

    _run(_preview())


@rate_cli.command("show")
def rate_show():
    """Show the rate in force now (fetches today's rate if missing)."""

    async def _show():
        async with get_session() as session:
            row = await CurrencyRateResolver(session).current_rate()
            console.print(
                f"[bold]{row.rate_date}[/bold] USD {row.usd_rate} "
                f"+{row.margin_percentage}% = [green]{row.usd_rate_with_margin}[/green] ({row.source})"
            )

    _run(_show())


@rate_cli.command("fetch")
def rate_fetch(
    margin: float | None = typer.Option(None, "--margin", help="Rate margin % (default from config)"),
):
    """Fetch today's Bank of Israel rate if not stored yet."""

    async def _fetch():
        async with get_session() as session:
            row = await CurrencyRateResolver(session).refresh_today(_dec(margin))
            if row is None:
                console.print("[red]✗[/red] Bank of Israel rate unavailable")
                raise typer.Exit(code=1)
            console.print(f"[bold green]✓[/bold green] {row.rate_date}: {row.usd_rate_with_margin} ({row.source})")

    _run(_fetch())


@rate_cli.command("set")
def rate_set(
    usd_rate: float = typer.Argument(..., help="Bank USD->ILS rate"),
    margin: float | None = typer.Option(None, "--margin", help="Rate margin % (default from config)"),
):
    """Store a manual rate for today."""

    async def _set():
        async with get_session() as session:
            row = await CurrencyRateResolver(session).set_manual_rate(_dec(usd_rate), _dec(margin))
            console.print(f"[bold green]✓[/bold green] {row.rate_date}: {row.usd_rate_with_margin} (manual)")

    _run(_set())


@rate_cli.command("history")
def rate_history(limit: int = typer.Option(30, "--limit", help="Rows to show")):
    """List recent daily rates."""

    async def _history():
        async with get_session() as session:
            rows = await CurrencyRateResolver(session).history(limit=limit)

        table = Table(title="USD->ILS rates")
        table.add_column("Date", style="cyan")
        table.add_column("Bank rate", justify="right")
        table.add_column("Margin %", justify="right")
        table.add_column("Rate", justify="right", style="green")
        table.add_column("Source")
        table.add_column("Active")
        for row in rows:
            table.add_row(
                str(row.rate_date),
                str(row.usd_rate),
                str(row.margin_percentage),
                str(row.usd_rate_with_margin),
                row.source,
                "yes" if row.is_active else "no",
            )
        console.print(table)

    _run(_history())


@margin_cli.command("set")
def margin_set(
    category: str = typer.Argument(..., help="Category name or UUID"),
    percentage: float = typer.Argument(..., help="Margin % (0-100)"),
    valid_from: str | None = typer.Option(None, "--valid-from", help="Effective timestamp (ISO format)"),
    notes: str | None = typer.Option(None, "--notes"),
):
    """Add a new margin version for a category."""
    when = _parse_when(valid_from)

    async def _set():
        async with get_session() as session:
            cat = await _find_category(session, category)
            rule = await MarginResolver(session).set_margin(cat.id, _dec(percentage), when, notes)
            console.print(
                f"[bold green]✓[/bold green] {cat.name}: {rule.margin_percentage}% from {rule.valid_from}"
            )

    _run(_set())


@margin_cli.command("history")
def margin_history(
    category: str = typer.Argument(..., help="Category name or UUID"),
    limit: int = typer.Option(30, "--limit"),
):
    """List margin versions for a category."""

    async def _history():
        async with get_session() as session:
            cat = await _find_category(session, category)
            rules = await MarginResolver(session).history(cat.id, limit=limit)

        table = Table(title=f"Margins: {cat.name}")
        table.add_column("ID", justify="right")
        table.add_column("Valid from", style="cyan")
        table.add_column("Margin %", justify="right", style="green")
        table.add_column("Active")
        table.add_column("Notes", style="dim")
        for rule in rules:
            table.add_row(
                str(rule.id),
                str(rule.valid_from),
                str(rule.margin_percentage),
                "yes" if rule.is_active else "no",
                rule.notes or "",
            )
        console.print(table)

    _run(_history())


@freight_cli.command("set")
def freight_set(
    cost: float = typer.Argument(..., help="Freight cost per container (USD)"),
    port: str | None = typer.Option(None, "--port", help="Port of origin"),
    container: int | None = typer.Option(None, "--container", help="Container size (CBM)"),
    valid_from: str | None = typer.Option(None, "--valid-from", help="Effective timestamp (ISO format)"),
    notes: str | None = typer.Option(None, "--notes"),
):
    """Add a new freight version for a port/container pair."""
    pricing = get_config().pricing
    port = port or pricing.default_port_of_origin
    container = container or pricing.default_container_size_cbm
    when = _parse_when(valid_from)

    async def _set():
        async with get_session() as session:
            rate = await FreightResolver(session).set_rate(port, container, _dec(cost), when, notes)
            console.print(
                f"[bold green]✓[/bold green] {port}/{container}CBM: {rate.freight_cost} USD from {rate.valid_from}"
            )

    _run(_set())


@freight_cli.command("history")
def freight_history(
    port: str | None = typer.Option(None, "--port", help="Port of origin"),
    container: int | None = typer.Option(None, "--container", help="Container size (CBM)"),
    limit: int = typer.Option(30, "--limit"),
):
    """List freight versions for a port/container pair."""
    pricing = get_config().pricing
    port = port or pricing.default_port_of_origin
    container = container or pricing.default_container_size_cbm

    async def _history():
        async with get_session() as session:
            rates = await FreightResolver(session).history(port, container, limit=limit)

        table = Table(title=f"Freight: {port} / {container}CBM")
        table.add_column("ID", justify="right")
        table.add_column("Valid from", style="cyan")
        table.add_column("Cost (USD)", justify="right", style="green")
        table.add_column("Active")
        table.add_column("Notes", style="dim")
        for rate in rates:
            table.add_row(
                str(rate.id),
                str(rate.valid_from),
                str(rate.freight_cost),
                "yes" if rate.is_active else "no",
                rate.notes or "",
            )
        console.print(table)

    _run(_history())


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI pricing API."""
    import uvicorn

    typer.echo(f"Starting pricing API on http://{host}:{port}")
    uvicorn.run("cartonprice.web.app:app", host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    app()
