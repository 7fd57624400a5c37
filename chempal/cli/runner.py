# chempal/cli/runner.py

"""Headless CLI search runner that streams from the async orchestrator."""

import asyncio
import json
import logging
import signal
import sys

from rich.console import Console
from rich.table import Table

from chempal.config.settings import Settings
from chempal.models.product import Product
from chempal.services.search_orchestrator import SearchOrchestrator
from chempal.storage.http_cache import HttpCache
from chempal.storage.session_store import SessionStore

logger = logging.getLogger("chempal.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def resolve_sources(
    source_csv: str | None,
) -> list[dict[str, str]]:
    """Map a comma-separated list of supplier IDs to their config dicts.

    Returns all suppliers when *source_csv* is ``None``.
    Raises ``SystemExit`` on unknown IDs.
    """
    available = {s["id"]: s for s in Settings.AVAILABLE_SOURCES}
    if source_csv is None:
        return list(Settings.AVAILABLE_SOURCES)

    requested = [s.strip() for s in source_csv.split(",") if s.strip()]
    unknown = [r for r in requested if r not in available]
    if unknown:
        _err.print(f"[red]Unknown supplier(s): {', '.join(unknown)}[/red]")
        _err.print(f"[dim]Available: {', '.join(sorted(available))}[/dim]")
        raise SystemExit(1)
    return [available[r] for r in requested]


def _format_price(p: Product) -> str:
    text = f"{p.currency_symbol}{p.price:,.2f}"
    if p.usd_price is not None and p.currency_code != "USD":
        text += f" (${p.usd_price:,.2f})"
    return text


def _format_size(p: Product) -> str:
    qty = f"{p.quantity:g}"
    return f"{qty} {p.uom}"


def _print_table(products: list[Product]) -> None:
    """Render a Rich table of products to stdout, cheapest first."""
    table = Table(
        title="Search Results",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Size", justify="right")
    table.add_column("CAS", style="cyan")
    table.add_column("Supplier", style="magenta")
    table.add_column("URL", overflow="fold", style="dim")

    ranked = sorted(
        products,
        key=lambda p: p.usd_price if p.usd_price is not None else p.price,
    )
    for idx, p in enumerate(ranked, 1):
        table.add_row(
            str(idx),
            p.title[:50],
            _format_price(p),
            _format_size(p),
            p.cas or "-",
            p.supplier,
            p.url,
        )
    Console().print(table)


def _save(store: SessionStore, query: str, products: list[Product]) -> None:
    """Write the session file plus a timestamped export."""
    try:
        store.save_session(query, products, page=1, page_size=len(products))
        path = store.save_results(query, products)
        _err.print(f"[dim]Saved → {path}[/dim]")
    except OSError as exc:
        logger.error("Save failed: %s", exc, exc_info=True)
        _err.print(f"[red]Save failed: {exc}[/red]")


def _install_interrupt(abort: asyncio.Event) -> bool:
    """Route Ctrl-C to *abort*; False where signal handlers are unsupported."""
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, abort.set)
    except (NotImplementedError, RuntimeError):
        return False
    return True


def _remove_interrupt() -> None:
    try:
        asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError):
        pass


async def cli_search(
    query: str,
    source_csv: str | None,
    limit: int | None,
    output_format: str,
    save: bool = True,
) -> int:
    """Run a headless search and return an exit code (0=ok, 1=nothing found)."""
    sources = resolve_sources(source_csv)
    labels = ", ".join(s["label"] for s in sources)
    _err.print(f"[bold]Searching:[/bold] {query}  [dim]suppliers={labels}[/dim]")

    abort = asyncio.Event()
    handled = _install_interrupt(abort)
    orchestrator = SearchOrchestrator(cache=HttpCache())
    errors: list[str] = []
    products: list[Product] = []
    try:
        async for product in orchestrator.stream(
            query, sources, limit=limit, abort=abort, errors=errors
        ):
            products.append(product)
            _err.print(
                f"[green]+[/green] {product.supplier}: {product.title[:60]} "
                f"[dim]{_format_price(product)}[/dim]"
            )
    finally:
        if handled:
            _remove_interrupt()
        await orchestrator.close()

    if abort.is_set():
        _err.print("[yellow]Search aborted.[/yellow]")
    for error_msg in errors:
        _err.print(f"[red]Error: {error_msg}[/red]")

    if not products:
        _err.print("[yellow]No products found.[/yellow]")
        return 1
    _err.print(f"[green]✓ {len(products)} products[/green]")

    if save:
        _save(SessionStore(), query, products)

    if output_format == "table":
        _print_table(products)
    else:
        json.dump(
            [p.to_dict() for p in products],
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")
    return 0


def list_suppliers() -> int:
    """Print the supplier registry as a table."""
    table = Table(title="Suppliers", title_style="bold cyan")
    table.add_column("ID", style="bold", no_wrap=True)
    table.add_column("Name")
    table.add_column("Platform", style="dim")
    table.add_column("Country", justify="center")
    table.add_column("Shipping")
    table.add_column("Currency", justify="center")
    for source in Settings.AVAILABLE_SOURCES:
        table.add_row(
            source["id"],
            source["label"],
            source["supplier"].rsplit(".", 1)[-1].removesuffix("Supplier"),
            source.get("country", "-"),
            source.get("shipping", "-"),
            source.get("currency", "USD"),
        )
    Console().print(table)
    return 0
