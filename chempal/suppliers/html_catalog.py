# chempal/suppliers/html_catalog.py

"""Selector-driven adapter for shops that only expose HTML pages."""

from typing import Any

from bs4 import BeautifulSoup, Tag

from chempal.models.product_builder import ProductBuilder
from chempal.parsers.cas import find_cas
from chempal.parsers.price import parse_price
from chempal.parsers.quantity import parse_quantity_coalesce
from chempal.suppliers.base import SupplierBase
from chempal.suppliers.exceptions import InvalidResponseError


def _meta(soup: BeautifulSoup, selector: str | None) -> str | None:
    if not selector:
        return None
    node = soup.select_one(selector)
    if node is None:
        return None
    content = node.get("content")
    return str(content).strip() if content else None


def _listing_title(listing: dict[str, Any]) -> str:
    return str(listing["title"])


class HtmlCatalogSupplier(SupplierBase):
    """Scrapes a search listing, then each product page's meta tags.

    Every CSS selector and search parameter comes from this supplier's
    entry in ``selectors.json``; the listing supplies title, link and a
    display price, the product page supplies the authoritative price,
    currency, SKU, stock, description and pack size. Listings of the
    same substance in other pack sizes are folded into variants and keep
    their listing price.
    """

    def _selector(self, key: str) -> str:
        value = self.selectors.get(key)
        if not value:
            raise InvalidResponseError(
                f"selector '{key}' not configured", self.source_id
            )
        return str(value)

    async def setup(self) -> None:
        page_size = self.selectors.get("page_size_form")
        if isinstance(page_size, dict) and page_size:
            await self.http_post(self._selector("search_path"), data=page_size)

    async def query_products(
        self, query: str, limit: int,
    ) -> list[ProductBuilder]:
        params: dict[str, Any] = {
            self._selector("search_param"): query,
            **(self.selectors.get("search_extra") or {}),
        }
        soup = await self.http_get_html(self._selector("search_path"), params)
        cards = soup.select(self._selector("product_card"))
        if not cards:
            self.logger.info("[%s] No product cards on results page", self.source_id)
            return []

        listings = [
            listing for listing in map(self._listing, cards) if listing is not None
        ]
        # One product per substance; other pack sizes become its variants.
        grouped = self.group_variants(listings, _listing_title)
        ranked = self.fuzzy_filter(query, grouped, _listing_title)
        return [
            self._init_builder(match.item).set_match_score(match.score)
            for match in ranked[:limit]
        ]

    def _listing(self, card: Tag) -> dict[str, Any] | None:
        title_node = card.select_one(self._selector("title"))
        link_node = card.select_one(self.selectors.get("link") or self._selector("title"))
        if title_node is None or link_node is None:
            self.logger.debug("[%s] Card without title/link", self.source_id)
            return None
        title = title_node.get_text(" ", strip=True)
        href = link_node.get("href")
        if not title or not href:
            return None

        listing: dict[str, Any] = {"title": title, "url": self.href(str(href))}
        price_sel = self.selectors.get("listing_price")
        price_node = card.select_one(price_sel) if price_sel else None
        if price_node is not None:
            listing["price"] = price_node.get_text(" ", strip=True)
        quantity = parse_quantity_coalesce(title)
        if quantity is not None:
            listing["quantity"] = quantity.quantity
            listing["uom"] = quantity.uom.value
        return listing

    def _init_builder(self, listing: dict[str, Any]) -> ProductBuilder:
        builder = self.new_builder().set_basic_info(
            listing["title"], listing["url"], self.supplier_name
        )
        if "price" in listing:
            builder.set_pricing(listing["price"], self.currency)
        if "quantity" in listing:
            builder.set_quantity(listing["quantity"], listing["uom"])

        for sibling in listing["variants"]:
            parsed = parse_price(sibling.get("price"), self.currency)
            if parsed is None:
                self.logger.debug(
                    "[%s] Pack size without price: %s", self.source_id, sibling["url"]
                )
                continue
            size = {k: sibling[k] for k in ("quantity", "uom") if k in sibling}
            builder.add_variant(
                title=sibling["title"], url=sibling["url"], price=parsed.price, **size
            )
        return builder

    async def get_product_data(
        self, builder: ProductBuilder,
    ) -> ProductBuilder | None:
        soup = await self.http_get_html(str(builder.get("url")))

        amount = _meta(soup, self.selectors.get("meta_price"))
        currency = _meta(soup, self.selectors.get("meta_currency")) or self.currency
        if amount:
            builder.set_pricing(amount, currency)

        builder.set_id(_meta(soup, self.selectors.get("meta_sku")))
        description = _meta(soup, self.selectors.get("meta_description"))
        builder.set_description(description)
        availability = _meta(soup, self.selectors.get("meta_availability"))
        if availability:
            builder.set_availability(availability)

        og_title = _meta(soup, self.selectors.get("meta_title"))
        cas = find_cas(og_title) or find_cas(description)
        if cas:
            builder.set_cas(cas)
        builder.set_formula(description)

        qty_sel = self.selectors.get("quantity")
        qty_node = soup.select_one(qty_sel) if qty_sel else None
        quantity = parse_quantity_coalesce(
            qty_node.get_text(" ", strip=True) if qty_node is not None else None,
            og_title,
            builder.get("title"),
        )
        if quantity is not None:
            builder.set_quantity(quantity)
        return builder
