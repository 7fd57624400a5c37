# chempal/services/search_orchestrator.py

"""Fans a query out to every enabled supplier and merges the results."""

import asyncio
import importlib
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chempal.config.settings import Settings
from chempal.models.product import Product
from chempal.services.exchange_rates import ExchangeRateService
from chempal.storage.http_cache import HttpCache

logger = logging.getLogger("chempal.orchestrator")

_DONE = object()


class SearchState(str, Enum):
    IDLE = "idle"
    FANNING_OUT = "fanning_out"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class SearchResult:
    """One search across multiple suppliers.

    Each call to :meth:`SearchOrchestrator.stream` records its own
    progress in the result it is given.
    """

    query: str
    products: list[Product] = field(
        default_factory=lambda: list[Product]()
    )
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )
    state: SearchState = SearchState.IDLE

    @property
    def aborted(self) -> bool:
        return self.state is SearchState.ABORTED

    def by_supplier(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for product in self.products:
            counts[product.supplier] = counts.get(product.supplier, 0) + 1
        return counts


def _load_supplier_class(dotted_path: str) -> type[Any]:
    """Dynamically import a supplier class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def supplier_list(
    source_ids: Sequence[str] | None = None,
) -> list[dict[str, str]]:
    """Registry entries for *source_ids* in the given order (all if None).

    Unknown ids are logged and skipped.
    """
    available = {s["id"]: s for s in Settings.AVAILABLE_SOURCES}
    if source_ids is None:
        return list(Settings.AVAILABLE_SOURCES)
    resolved: list[dict[str, str]] = []
    for source_id in source_ids:
        entry = available.get(source_id)
        if entry is None:
            logger.warning("Unknown supplier id '%s' ignored", source_id)
            continue
        resolved.append(entry)
    return resolved


class SearchOrchestrator:
    """Runs supplier adapters concurrently and streams their products.

    The HTTP cache and exchange-rate service are owned here and shared
    by every adapter the orchestrator starts.
    """

    def __init__(
        self,
        cache: HttpCache | None = None,
        rates: ExchangeRateService | None = None,
    ) -> None:
        self.settings = Settings()
        self.cache = cache if cache is not None else HttpCache()
        self.rates = rates if rates is not None else ExchangeRateService()

    # ── Private helpers ──────────────────────────────────

    def _resolve(
        self, sources: Sequence[str | dict[str, str]] | None,
    ) -> list[dict[str, str]]:
        if sources is None:
            return supplier_list()
        ids = [s for s in sources if isinstance(s, str)]
        known = {s["id"]: s for s in supplier_list(ids)}
        resolved: list[dict[str, str]] = []
        for source in sources:
            if isinstance(source, dict):
                resolved.append(source)
            elif source in known:
                resolved.append(known[source])
        return resolved

    async def _pump(
        self,
        source: dict[str, str],
        query: str,
        limit: int,
        abort: asyncio.Event,
        queue: "asyncio.Queue[Any]",
        errors: list[str],
    ) -> None:
        """Run one adapter, forwarding its products into *queue*."""
        supplier: Any = None
        try:
            supplier_cls = _load_supplier_class(source["supplier"])
            supplier = supplier_cls(
                source, abort=abort, cache=self.cache, rates=self.rates
            )
            async for product in supplier.execute(query, limit):
                await queue.put(product)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            errors.append(f"{source.get('id', '?')}: {exc}")
            logger.error(
                "Supplier %s failed for query '%s': %s",
                source.get("id"),
                query,
                exc,
                exc_info=True,
            )
        finally:
            queue.put_nowait(_DONE)
            if supplier is not None:
                try:
                    await supplier.close()
                except Exception as exc:
                    logger.debug("Closing %s failed: %s", source.get("id"), exc)

    # ── Streaming search ─────────────────────────────────

    async def stream(
        self,
        query: str,
        sources: Sequence[str | dict[str, str]] | None = None,
        limit: int | None = None,
        abort: asyncio.Event | None = None,
        errors: list[str] | None = None,
        result: SearchResult | None = None,
    ) -> AsyncIterator[Product]:
        """Yield products from all *sources* in arrival order.

        *sources* may mix supplier ids and registry dicts; ``None``
        means every registered supplier.  Setting *abort* ends the
        sequence quietly and cancels all in-flight adapter work.
        Adapter failures are appended to *errors*, or to the errors of
        *result*.  The search state is tracked on *result* when given.
        """
        abort = abort or asyncio.Event()
        run = result if result is not None else SearchResult(query=query)
        errors = errors if errors is not None else run.errors
        per_supplier = limit or self.settings.DEFAULT_RESULT_LIMIT
        selected = self._resolve(sources)

        run.state = SearchState.FANNING_OUT
        if abort.is_set() or not selected:
            run.state = (
                SearchState.ABORTED if abort.is_set() else SearchState.COMPLETED
            )
            return

        logger.info(
            "Searching '%s' across %d supplier(s): %s",
            query,
            len(selected),
            ", ".join(s["id"] for s in selected),
        )
        queue: asyncio.Queue[Any] = asyncio.Queue()
        tasks = [
            asyncio.create_task(
                self._pump(s, query, per_supplier, abort, queue, errors),
                name=f"supplier:{s['id']}",
            )
            for s in selected
        ]
        aborted = asyncio.create_task(abort.wait())
        remaining = len(tasks)
        emitted = 0
        run.state = SearchState.STREAMING
        try:
            while remaining:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait(
                    {getter, aborted}, return_when=asyncio.FIRST_COMPLETED
                )
                if aborted in done or abort.is_set():
                    getter.cancel()
                    run.state = SearchState.ABORTED
                    logger.info(
                        "Search '%s' aborted after %d product(s)", query, emitted
                    )
                    return
                item = getter.result()
                if item is _DONE:
                    remaining -= 1
                    continue
                emitted += 1
                yield item
            run.state = SearchState.COMPLETED
            logger.info("Search '%s' finished: %d product(s)", query, emitted)
        finally:
            aborted.cancel()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, aborted, return_exceptions=True)

    async def search(
        self,
        query: str,
        sources: Sequence[str | dict[str, str]] | None = None,
        limit: int | None = None,
        abort: asyncio.Event | None = None,
    ) -> SearchResult:
        """Collect :meth:`stream` into a :class:`SearchResult`."""
        result = SearchResult(query=query)
        async for product in self.stream(
            query, sources, limit, abort, result=result
        ):
            result.products.append(product)
        return result

    async def close(self) -> None:
        await self.rates.close()
