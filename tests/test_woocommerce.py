# tests/test_woocommerce.py

"""Tests for the WooCommerce Store API adapter."""

import unittest
from typing import Any
from unittest.mock import AsyncMock

from chempal.config.settings import Settings
from chempal.models.product import Availability, Product
from chempal.suppliers.woocommerce import WooCommerceSupplier

SOURCE = next(
    s for s in Settings.AVAILABLE_SOURCES if s["id"] == "carolina_chemical"
)

SIMPLE_ITEM: dict[str, Any] = {
    "id": 101,
    "name": "Sodium Chloride 500g",
    "permalink": "https://carolinachemical.com/product/sodium-chloride/",
    "sku": "NACL-500",
    "is_in_stock": True,
    "description": "<p>NaCl, lab grade. CAS 7647-14-5</p>",
    "short_description": "<p>Lab grade sodium chloride</p>",
    "prices": {
        "price": "1999",
        "currency_code": "USD",
        "currency_symbol": "$",
        "currency_minor_unit": 2,
    },
    "variations": [],
}

VARIABLE_ITEM: dict[str, Any] = {
    "id": 200,
    "name": "Potassium Chloride",
    "permalink": "https://carolinachemical.com/product/potassium-chloride/",
    "sku": "KCL",
    "is_in_stock": True,
    "description": "<p>KCl CAS 7447-40-7</p>",
    "short_description": "",
    "prices": {
        "price": "1500",
        "currency_code": "USD",
        "currency_minor_unit": 2,
    },
    "variations": [
        {"id": 201, "attributes": [{"name": "Size", "value": "500 g"}]},
        {"id": 202, "attributes": [{"name": "Size", "value": "1 kg"}]},
    ],
}

UNRELATED_ITEM: dict[str, Any] = {
    "id": 999,
    "name": "Qwxz Zzyv",
    "prices": {"price": "100", "currency_code": "USD", "currency_minor_unit": 2},
}

VARIATION_DETAILS: dict[str, dict[str, Any]] = {
    "/wp-json/wc/store/v1/products/201": {
        "permalink": "https://carolinachemical.com/product/potassium-chloride/?size=500g",
        "sku": "KCL-500",
        "prices": {"price": "1500", "currency_minor_unit": 2},
    },
    "/wp-json/wc/store/v1/products/202": {
        "permalink": "https://carolinachemical.com/product/potassium-chloride/?size=1kg",
        "sku": "KCL-1K",
        "prices": {"price": "2500", "currency_minor_unit": 2},
    },
}


def _api(search_results: list[dict[str, Any]]) -> AsyncMock:
    """Fake http_get_json serving search and variation endpoints."""

    async def _get_json(
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        if path == WooCommerceSupplier.SEARCH_PATH:
            return search_results
        return VARIATION_DETAILS[path]

    return AsyncMock(side_effect=_get_json)


async def _run(supplier: WooCommerceSupplier, query: str) -> list[Product]:
    """Drain execute() into a list."""
    return [p async for p in supplier.execute(query, 5)]


class TestWooCommerceSupplier(unittest.IsolatedAsyncioTestCase):
    """Search parsing and variation pricing."""

    async def test_simple_product(self) -> None:
        """A simple product maps onto every Product field it carries."""
        supplier = WooCommerceSupplier(SOURCE)
        supplier.http_get_json = _api([SIMPLE_ITEM, UNRELATED_ITEM])  # type: ignore[method-assign]
        products = await _run(supplier, "sodium chloride")

        self.assertEqual(len(products), 1)
        product = products[0]
        self.assertEqual(product.title, "Sodium Chloride 500g")
        self.assertEqual(product.price, 19.99)
        self.assertEqual(product.currency_code, "USD")
        self.assertEqual((product.quantity, product.uom), (500.0, "g"))
        self.assertEqual(product.cas, "7647-14-5")
        self.assertEqual(product.formula, "NaCl")
        self.assertEqual(product.sku, "NACL-500")
        self.assertEqual(product.id, "101")
        self.assertIs(product.availability, Availability.IN_STOCK)
        self.assertEqual(product.description, "Lab grade sodium chloride")
        self.assertEqual(product.supplier, "Carolina Chemical")
        self.assertIsNotNone(product.match_score)

    async def test_search_request(self) -> None:
        """The Store API is queried with the search term."""
        supplier = WooCommerceSupplier(SOURCE)
        api = _api([])
        supplier.http_get_json = api  # type: ignore[method-assign]
        self.assertEqual(await _run(supplier, "nacl"), [])
        args, kwargs = api.await_args
        self.assertEqual(args[0], "/wp-json/wc/store/v1/products")
        self.assertEqual(kwargs["params"]["search"], "nacl")

    async def test_full_pages_are_followed(self) -> None:
        """A full page triggers the next one; a short page ends the search."""
        supplier = WooCommerceSupplier(SOURCE)
        full_page = [dict(UNRELATED_ITEM, id=n) for n in range(supplier.PAGE_SIZE)]
        api = AsyncMock(side_effect=[full_page, [SIMPLE_ITEM]])
        supplier.http_get_json = api  # type: ignore[method-assign]
        products = await _run(supplier, "sodium chloride")

        self.assertEqual([p.title for p in products], ["Sodium Chloride 500g"])
        pages = [c.kwargs["params"]["page"] for c in api.await_args_list]
        self.assertEqual(pages, [1, 2])

    async def test_variations_priced_in_detail_stage(self) -> None:
        """Each size variation gets its own price, SKU and URL."""
        supplier = WooCommerceSupplier(SOURCE)
        supplier.http_get_json = _api([VARIABLE_ITEM])  # type: ignore[method-assign]
        products = await _run(supplier, "potassium chloride")

        self.assertEqual(len(products), 1)
        product = products[0]
        self.assertEqual((product.quantity, product.uom), (500.0, "g"))
        sizes = {(v.quantity, v.uom): v for v in product.variants}
        self.assertEqual(set(sizes), {(500.0, "g"), (1.0, "kg")})
        self.assertEqual(sizes[(1.0, "kg")].price, 25.0)
        self.assertEqual(sizes[(1.0, "kg")].sku, "KCL-1K")
        self.assertTrue(sizes[(1.0, "kg")].url.endswith("?size=1kg"))
        self.assertEqual(sizes[(1.0, "kg")].title, "Potassium Chloride 1 kg")

    async def test_non_list_response_yields_nothing(self) -> None:
        """An unexpected payload shape fails the adapter quietly."""
        supplier = WooCommerceSupplier(SOURCE)
        supplier.http_get_json = AsyncMock(return_value={"code": "rest_no_route"})  # type: ignore[method-assign]
        self.assertEqual(await _run(supplier, "nacl"), [])


if __name__ == "__main__":
    unittest.main()
