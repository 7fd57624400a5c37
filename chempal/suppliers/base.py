# chempal/suppliers/base.py

"""Abstract base class for all supplier adapters.

An adapter implements two coroutines:

* :meth:`SupplierBase.query_products` runs the supplier's search
  request(s), fuzzy-ranks the raw hits against the query, truncates to
  ``limit`` and returns one :class:`ProductBuilder` per candidate.
* :meth:`SupplierBase.get_product_data` optionally fetches a detail page
  to fill in what the search response lacked.

:meth:`SupplierBase.execute` drives both stages and yields finished
:class:`Product` objects as each candidate settles.  Every error raised
inside an adapter is caught and logged here, per adapter and per
candidate, so nothing an adapter does can fail a sibling.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any, TypeVar
from urllib.parse import urlencode, urljoin

import cloudscraper  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from chempal.config.settings import Settings
from chempal.filters.fuzzy import FuzzyMatch, fuzzy_rank
from chempal.models.product import Product
from chempal.models.product_builder import ProductBuilder, ProductDefaults
from chempal.parsers.price import get_symbol_for_code
from chempal.parsers.quantity import strip_quantity
from chempal.services.exchange_rates import ExchangeRateService
from chempal.storage.http_cache import HttpCache, HttpRequest, HttpResponse
from chempal.suppliers.exceptions import (
    InvalidResponseError,
    RequestLimitExceeded,
    SearchAborted,
    SupplierError,
)

T = TypeVar("T")


class SupplierBase(ABC):
    """Shared HTTP plumbing and the two-stage execute pipeline."""

    # Overridable per adapter class
    product_defaults: ProductDefaults = ProductDefaults()
    max_concurrent_requests: int = Settings.MAX_CONCURRENT_REQUESTS
    http_request_hard_limit: int = Settings.HTTP_REQUEST_HARD_LIMIT

    # Cloudflare challenge page markers (checked before keyword scan)
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    def __init__(
        self,
        source: dict[str, str],
        abort: asyncio.Event | None = None,
        cache: HttpCache | None = None,
        rates: ExchangeRateService | None = None,
    ) -> None:
        self.source_id: str = source["id"]
        self.supplier_name: str = source.get("label", source["id"])
        self.base_url: str = source["base_url"].rstrip("/")
        self.country: str | None = source.get("country")
        self.shipping: str | None = source.get("shipping")
        self.currency: str = source.get(
            "currency", self.product_defaults.currency_code
        ).upper()
        self.logger = logging.getLogger(f"chempal.{self.source_id}")
        self.settings = Settings()
        self.abort = abort or asyncio.Event()
        self.cache = cache
        self.rates = rates
        self.selectors: dict[str, Any] = self._load_selectors()

        self._session: curl_requests.AsyncSession | None = None
        self._request_count: int = 0
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.source_id} {self.base_url}>"

    # ── Adapter contract ─────────────────────────────────

    async def setup(self) -> None:
        """Run once before :meth:`query_products` (auth tokens etc.)."""

    @abstractmethod
    async def query_products(
        self, query: str, limit: int,
    ) -> list[ProductBuilder]:
        """Search the supplier and return up to *limit* builders."""
        ...

    async def get_product_data(
        self, builder: ProductBuilder,
    ) -> ProductBuilder | None:
        """Fill in detail fields; the default is a passthrough."""
        return builder

    # ── Pipeline ─────────────────────────────────────────

    def new_builder(self) -> ProductBuilder:
        """Builder pre-seeded with this supplier's defaults."""
        defaults = ProductDefaults(
            currency_code=self.currency,
            currency_symbol=get_symbol_for_code(self.currency),
            quantity=self.product_defaults.quantity,
            uom=self.product_defaults.uom,
        )
        return ProductBuilder(self.base_url, defaults)

    async def finish_product(self, builder: ProductBuilder) -> Product | None:
        """Attach supplier metadata and derived prices, then finalize."""
        builder.set_supplier_country(self.country)
        builder.set_supplier_shipping(self.shipping)
        if not builder.get("supplier"):
            builder.set_data(supplier=self.supplier_name)

        currency = builder.get("currency_code") or self.currency
        display = self.settings.DISPLAY_CURRENCY
        usd_rate: float | None = None
        local_rate: float | None = None
        if self.rates is not None and builder.get("price") is not None:
            usd_rate = await self.rates.get_rate(currency, "USD")
            local_rate = await self.rates.get_rate(currency, display)

        result = builder.finalize(
            usd_rate=usd_rate,
            local_currency=display,
            local_rate=local_rate,
        )
        if not result.ok:
            self.logger.info(
                "[%s] Dropped %r (%s%s)",
                self.source_id,
                builder.get("title"),
                result.reason.value if result.reason else "unknown",
                f": {', '.join(result.missing)}" if result.missing else "",
            )
        return result.product

    async def _process_candidate(
        self, builder: ProductBuilder, gate: asyncio.Semaphore,
    ) -> Product | None:
        """Detail-fetch and finish one candidate; never raises."""
        async with gate:
            try:
                self.check_abort()
                detailed = await self.get_product_data(builder)
                if detailed is None:
                    return None
                return await self.finish_product(detailed)
            except SearchAborted:
                return None
            except Exception as exc:
                self.logger.error(
                    "[%s] Candidate %r failed: %s",
                    self.source_id,
                    builder.get("title"),
                    exc,
                    exc_info=True,
                )
                return None
            finally:
                if self.settings.MIN_REQUEST_INTERVAL > 0:
                    await asyncio.sleep(self.settings.MIN_REQUEST_INTERVAL)

    async def execute(self, query: str, limit: int) -> AsyncIterator[Product]:
        """Yield finished products for *query* in completion order.

        Ends quietly, having yielded nothing more, on adapter failure
        or once the abort signal is set.
        """
        try:
            await self.setup()
            builders = await self.query_products(query, limit)
        except SearchAborted:
            self.logger.info("[%s] Aborted before results", self.source_id)
            return
        except Exception as exc:
            self.logger.error(
                "[%s] Search for '%s' failed: %s",
                self.source_id,
                query,
                exc,
                exc_info=True,
            )
            return

        if not builders:
            self.logger.info("[%s] No results for '%s'", self.source_id, query)
            return
        self.logger.info(
            "[%s] %d candidate(s) for '%s'", self.source_id, len(builders), query
        )

        gate = asyncio.Semaphore(max(1, self.max_concurrent_requests))
        tasks = [
            asyncio.create_task(self._process_candidate(b, gate))
            for b in builders[:limit]
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                product = await next_done
                if self.abort.is_set():
                    return
                if product is not None:
                    yield product
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    # ── Helpers for adapters ─────────────────────────────

    def href(self, path: str, params: dict[str, Any] | None = None) -> str:
        """Absolute URL for *path* on this supplier, with query *params*."""
        url = urljoin(self.base_url + "/", path)
        if params:
            sep = "&" if "?" in url else "?"
            url = f"{url}{sep}{urlencode(params)}"
        return url

    def fuzzy_filter(
        self,
        query: str,
        items: Sequence[T],
        title: Callable[[T], str] | None = None,
    ) -> list[FuzzyMatch[T]]:
        """Rank raw search hits against *query* using the shared cutoff."""
        if title is None:
            return fuzzy_rank(query, items, cutoff=self.settings.FUZZY_CUTOFF)
        return fuzzy_rank(query, items, title, cutoff=self.settings.FUZZY_CUTOFF)

    def group_variants(
        self,
        items: Sequence[dict[str, Any]],
        title: Callable[[dict[str, Any]], str],
    ) -> list[dict[str, Any]]:
        """Merge listings whose titles differ only by pack size.

        The first listing of each group becomes the parent and the rest
        are attached to it under ``"variants"``.
        """
        groups: dict[str, list[dict[str, Any]]] = {}
        for item in items:
            name = title(item)
            if not name:
                self.logger.debug("[%s] Untitled listing skipped", self.source_id)
                continue
            key = "".join(
                ch for ch in strip_quantity(name).lower() if ch.isalnum()
            )
            groups.setdefault(key, []).append(item)
        merged: list[dict[str, Any]] = []
        for members in groups.values():
            parent = dict(members[0])
            parent["variants"] = members[1:]
            merged.append(parent)
        return merged

    # ── Abort / budget ───────────────────────────────────

    def check_abort(self) -> None:
        """Raise :class:`SearchAborted` once the shared signal is set."""
        if self.abort.is_set():
            raise SearchAborted("search aborted", self.source_id)

    @property
    def request_count(self) -> int:
        return self._request_count

    def _count_request(self) -> None:
        self._request_count += 1
        if self._request_count > self.http_request_hard_limit:
            self.logger.warning(
                "[%s] Request %d exceeds hard limit %d",
                self.source_id,
                self._request_count,
                self.http_request_hard_limit,
            )
            raise RequestLimitExceeded(self.source_id, self.http_request_hard_limit)

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early (and raising) if the search is aborted."""
        self.check_abort()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self.abort.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise SearchAborted("aborted during backoff", self.source_id)

    async def _until_aborted(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, cancelling it if the abort signal fires."""
        self.check_abort()
        work = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(self.abort.wait())
        try:
            await asyncio.wait(
                {work, stop}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stop.cancel()
        if not work.done():
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            raise SearchAborted("request aborted", self.source_id)
        return work.result()

    # ── Resilience ───────────────────────────────────────

    def _load_selectors(self) -> dict[str, Any]:
        """Load CSS selectors for this supplier from selectors.json."""
        try:
            with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
                all_selectors: dict[str, Any] = json.load(f)
        except FileNotFoundError:
            return {}
        result: dict[str, Any] = all_selectors.get(self.source_id, {})
        return result

    def _validate_response(self, resp: HttpResponse) -> bool:
        """Check for Cloudflare challenge pages and CAPTCHA indicators."""
        text = resp.text
        if text.lstrip().startswith(("{", "[")):
            return True
        lower = text.lower()

        for marker in self._CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "[%s] Cloudflare challenge detected (marker: '%s')",
                    self.source_id,
                    marker,
                )
                return False

        # Real product pages mention "captcha" in scripts; only scan
        # short pages for the generic keywords.
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "[%s] CAPTCHA keyword '%s' detected",
                        self.source_id,
                        keyword,
                    )
                    return False
        return True

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single probe request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.source_id,
                elapsed,
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.settings.CIRCUIT_BREAKER_THRESHOLD:
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened after %d consecutive failures",
                self.source_id,
                self._consecutive_failures,
            )

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = (
            self.settings.REQUEST_DELAY * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, max_delay)
        self.logger.warning(
            "[%s] Rate-limited, delay escalated to %.1fs",
            self.source_id,
            self._current_delay,
        )

    # ── Transport ────────────────────────────────────────

    def _get_session(self) -> curl_requests.AsyncSession:
        if self._session is None:
            self._session = curl_requests.AsyncSession(
                impersonate=self.settings.IMPERSONATE_BROWSER
            )
        return self._session

    def _headers(self, extra: dict[str, str] | None) -> dict[str, str]:
        return {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self.base_url + "/",
            **(extra or {}),
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        data: Any = None,
    ) -> HttpResponse:
        """Issue a request with caching, retries and circuit breaker.

        Raises:
            SearchAborted: The abort signal was set.
            RequestLimitExceeded: The per-query request ceiling was hit.
            SupplierError: All attempts failed or the circuit is open.
        """
        self.check_abort()
        url = self.href(path)
        merged_headers = self._headers(headers)
        request = HttpRequest(
            method=method.upper(),
            url=url,
            params=params,
            headers=merged_headers,
            body=json_body if json_body is not None else data,
        )
        if self.cache is not None:
            cached = self.cache.get(request)
            if cached is not None:
                return cached

        if self._check_circuit():
            raise SupplierError("circuit breaker open", self.source_id)

        last_status: int | None = None
        for attempt in range(self.settings.MAX_RETRIES):
            self._count_request()
            try:
                raw = await self._until_aborted(
                    self._get_session().request(
                        method.upper(),
                        url,
                        params=params,
                        headers=merged_headers,
                        json=json_body,
                        data=data,
                        timeout=self._request_timeout,
                    )
                )
            except SupplierError:
                raise
            except Exception as exc:
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.source_id,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                await self._sleep(self._current_delay * (attempt + 1))
                continue

            resp = HttpResponse.from_transport(raw)
            last_status = resp.status_code
            if resp.ok:
                if not self._validate_response(resp):
                    self._escalate_delay()
                    await self._sleep(self._current_delay)
                    continue
                self._record_success()
                if self.cache is not None:
                    self.cache.put(request, resp)
                return resp

            self.logger.warning(
                "[%s] HTTP %d on attempt %d for %s",
                self.source_id,
                resp.status_code,
                attempt + 1,
                url,
            )
            if resp.status_code in (429, 403):
                self._escalate_delay()
                await self._sleep(self._current_delay)
            elif resp.status_code >= 500:
                await self._sleep(self._current_delay * (attempt + 1))
            else:
                break

        self._record_failure()
        raise SupplierError(
            f"{method.upper()} {url} failed (last status {last_status})",
            self.source_id,
        )

    async def http_get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        return await self._request("GET", path, params=params, headers=headers)

    async def http_post(
        self,
        path: str,
        json_body: Any = None,
        data: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        return await self._request(
            "POST", path, params=params, headers=headers,
            json_body=json_body, data=data,
        )

    async def http_get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """GET and decode JSON, raising InvalidResponseError on bad bodies."""
        resp = await self.http_get(
            path, params, {"Accept": "application/json", **(headers or {})}
        )
        try:
            return resp.json()
        except ValueError as exc:
            raise InvalidResponseError(
                f"non-JSON body: {exc}", self.source_id, resp.url
            ) from exc

    async def http_get_html(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> BeautifulSoup:
        """Fetch a page, falling back to cloudscraper on failure."""
        try:
            resp = await self.http_get(path, params, headers)
            return BeautifulSoup(resp.text, "lxml")
        except (SearchAborted, RequestLimitExceeded):
            raise
        except SupplierError as exc:
            self.logger.info(
                "[%s] curl_cffi exhausted (%s), falling back to cloudscraper",
                self.source_id,
                exc,
            )

        self._count_request()
        url = self.href(path, params)
        try:
            text = await self._until_aborted(
                asyncio.to_thread(self._cloudscraper_get, url, self._headers(headers))
            )
        except SupplierError:
            raise
        except Exception as exc:
            self.logger.error(
                "[%s] cloudscraper fallback also failed: %s",
                self.source_id,
                exc,
                exc_info=True,
            )
            raise SupplierError(f"GET {url} failed", self.source_id) from exc
        return BeautifulSoup(text, "lxml")

    def _cloudscraper_get(self, url: str, headers: dict[str, str]) -> str:
        _cs: Any = cloudscraper
        scraper: Any = _cs.create_scraper()
        resp: Any = scraper.get(url, headers=headers, timeout=self._request_timeout)
        if resp.status_code != 200:
            raise SupplierError(
                f"cloudscraper HTTP {resp.status_code}", self.source_id
            )
        return str(resp.text)
