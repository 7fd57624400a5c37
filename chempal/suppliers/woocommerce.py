# chempal/suppliers/woocommerce.py

"""Adapter for WooCommerce shops via the public Store API (REST/JSON)."""

from typing import Any

from bs4 import BeautifulSoup

from chempal.models.product_builder import ProductBuilder
from chempal.parsers.cas import find_cas
from chempal.parsers.quantity import parse_quantity, parse_quantity_coalesce
from chempal.suppliers.base import SupplierBase
from chempal.suppliers.exceptions import InvalidResponseError


def _plain_text(html: str | None) -> str:
    if not html:
        return ""
    return BeautifulSoup(html, "lxml").get_text(" ", strip=True)


class WooCommerceSupplier(SupplierBase):
    """Any WordPress/WooCommerce store exposing ``/wp-json/wc/store/v1``.

    Search results already carry price, SKU and stock; the detail stage
    only runs for variable products, to price each variation.
    """

    SEARCH_PATH = "/wp-json/wc/store/v1/products"
    PRODUCT_PATH = "/wp-json/wc/store/v1/products/{id}"
    PAGE_SIZE = 100

    async def query_products(
        self, query: str, limit: int,
    ) -> list[ProductBuilder]:
        data: list[Any] = []
        for page in range(1, self.settings.MAX_PAGES + 1):
            batch = await self.http_get_json(
                self.SEARCH_PATH,
                params={"search": query, "per_page": self.PAGE_SIZE, "page": page},
            )
            if not isinstance(batch, list):
                raise InvalidResponseError(
                    f"expected a product list, got {type(batch).__name__}",
                    self.source_id,
                )
            data.extend(batch)
            if len(batch) < self.PAGE_SIZE:
                break
        items = [i for i in data if isinstance(i, dict) and i.get("name")]
        ranked = self.fuzzy_filter(query, items, lambda i: str(i["name"]))
        self.logger.debug(
            "[%s] %d/%d results after fuzzy filter",
            self.source_id,
            len(ranked),
            len(items),
        )
        return [
            self._init_builder(m.item).set_match_score(m.score)
            for m in ranked[:limit]
        ]

    def _init_builder(self, item: dict[str, Any]) -> ProductBuilder:
        builder = self.new_builder()
        description = str(item.get("description") or "")
        short_description = str(item.get("short_description") or "")
        builder.set_basic_info(
            _plain_text(str(item["name"])),
            str(item.get("permalink") or ""),
            self.supplier_name,
        )
        builder.set_id(item.get("id")).set_sku(item.get("sku"))

        prices = item.get("prices")
        if isinstance(prices, dict):
            builder.set_pricing(prices)
        if "is_in_stock" in item:
            builder.set_availability(bool(item["is_in_stock"]))

        cas = find_cas(description) or find_cas(short_description)
        if cas:
            builder.set_cas(cas)
        builder.set_formula(description or short_description)
        builder.set_description(_plain_text(short_description) or None)

        sizes: list[str] = []
        for variation in item.get("variations") or []:
            if not isinstance(variation, dict):
                continue
            variant: dict[str, Any] = {"id": variation.get("id")}
            for attribute in variation.get("attributes") or []:
                if str(attribute.get("name", "")).lower() != "size":
                    continue
                size = str(attribute.get("value") or "")
                sizes.append(size)
                qty = parse_quantity(size)
                if qty is not None:
                    variant["quantity"] = qty.quantity
                    variant["uom"] = qty.uom.value
                variant["title"] = f"{builder.get('title')} {size}".strip()
            builder.add_variant(**variant)

        quantity = parse_quantity_coalesce(
            item["name"], _plain_text(description), _plain_text(short_description), *sizes
        )
        if quantity is not None:
            builder.set_quantity(quantity)
        return builder.add_raw_data(item=item)

    async def get_product_data(
        self, builder: ProductBuilder,
    ) -> ProductBuilder | None:
        variants = builder.variants
        if not variants or all("price" in v for v in variants):
            return builder

        priced: list[dict[str, Any]] = []
        for variant in variants:
            if "price" in variant or variant.get("id") in (None, ""):
                priced.append(variant)
                continue
            data = await self.http_get_json(
                self.PRODUCT_PATH.format(id=variant["id"])
            )
            prices = data.get("prices") if isinstance(data, dict) else None
            if isinstance(prices, dict):
                minor = int(prices.get("currency_minor_unit") or 0)
                try:
                    variant = {
                        **variant,
                        "price": int(prices["price"]) / (10 ** minor),
                        "url": data.get("permalink") or None,
                        "sku": data.get("sku") or None,
                    }
                except (KeyError, TypeError, ValueError):
                    self.logger.debug(
                        "[%s] Unpriced variation %s", self.source_id, variant["id"]
                    )
            priced.append(variant)
        return builder.set_variants(priced)
