# chempal/suppliers/wix.py

"""Adapter for Wix Stores sites via the storefront GraphQL endpoint."""

import json
from typing import Any

from chempal.models.product_builder import ProductBuilder, ProductDefaults
from chempal.parsers.cas import find_cas
from chempal.parsers.quantity import parse_quantity, parse_quantity_coalesce
from chempal.suppliers.base import SupplierBase
from chempal.suppliers.exceptions import InvalidResponseError

# App id of Wix Stores inside the site's access-token document
WIX_STORES_APP_ID = "1380b703-ce81-ff05-f115-39571d94dfcd"
MAIN_COLLECTION_ID = "00000000-000000-000000-000000000001"

PRODUCTS_QUERY = """
query getFilteredProducts(
  $mainCollectionId: String!
  $filters: ProductFilters
  $sort: ProductSort
  $offset: Int
  $limit: Int
  $withOptions: Boolean = false
) {
  catalog {
    category(categoryId: $mainCollectionId) {
      productsWithMetaData(
        filters: $filters
        limit: $limit
        sort: $sort
        offset: $offset
        onlyVisible: true
      ) {
        totalCount
        list {
          id
          options {
            id
            key
            title @include(if: $withOptions)
            selections @include(if: $withOptions) {
              id
              value
              description
              key
              inStock
            }
          }
          productItems @include(if: $withOptions) {
            id
            optionsSelections
            price
            formattedPrice
          }
          productType
          price
          sku
          isInStock
          urlPart
          formattedPrice
          name
          description
          brand
        }
      }
    }
  }
}
"""


class WixSupplier(SupplierBase):
    """Any Wix Stores site.

    :meth:`setup` trades the public site for an instance token, which
    is then sent as ``Authorization`` on the GraphQL query.  Listings
    without an explicit size default to one each.
    """

    product_defaults = ProductDefaults(quantity=1, uom="ea")

    API_PATH = "/_api/wix-ecommerce-storefront-web/api"
    TOKEN_PATH = "/_api/v1/access-tokens"
    PAGE_LIMIT = 150

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._auth_headers: dict[str, str] = {}

    async def setup(self) -> None:
        data = await self.http_get_json(
            self.TOKEN_PATH, headers={"Cache-Control": "no-cache"}
        )
        try:
            token = data["apps"][WIX_STORES_APP_ID]["instance"]
        except (KeyError, TypeError) as exc:
            raise InvalidResponseError(
                "access token missing from response", self.source_id
            ) from exc
        self._auth_headers = {"Authorization": str(token)}

    @staticmethod
    def graphql_variables(query: str, limit: int) -> dict[str, Any]:
        return {
            "mainCollectionId": MAIN_COLLECTION_ID,
            "offset": 0,
            "limit": limit,
            "sort": None,
            "filters": {
                "term": {
                    "field": "name",
                    "op": "CONTAINS",
                    "values": [f"*{query}*"],
                },
            },
            "withOptions": True,
        }

    async def query_products(
        self, query: str, limit: int,
    ) -> list[ProductBuilder]:
        data = await self.http_get_json(
            self.API_PATH,
            params={
                "o": "getFilteredProducts",
                "s": "WixStoresWebClient",
                "q": PRODUCTS_QUERY,
                "v": json.dumps(self.graphql_variables(query, self.PAGE_LIMIT)),
            },
            headers=self._auth_headers,
        )
        try:
            items = data["data"]["catalog"]["category"]["productsWithMetaData"]["list"]
        except (KeyError, TypeError) as exc:
            raise InvalidResponseError(
                f"unexpected GraphQL response for '{query}'", self.source_id
            ) from exc
        if not isinstance(items, list):
            raise InvalidResponseError("product list is not a list", self.source_id)

        ranked = self.fuzzy_filter(
            query,
            [i for i in items if isinstance(i, dict) and i.get("name")],
            lambda i: str(i["name"]),
        )
        builders: list[ProductBuilder] = []
        for match in ranked:
            builder = self._init_builder(match.item)
            if builder is None:
                continue
            builders.append(builder.set_match_score(match.score))
            if len(builders) >= limit:
                break
        return builders

    def _variants(self, item: dict[str, Any]) -> list[dict[str, Any]]:
        """Join priced product items with their option selections."""
        options = item.get("options") or []
        selections = (options[0].get("selections") or []) if options else []
        by_selection: dict[Any, dict[str, Any]] = {}
        for selection in selections:
            if not isinstance(selection, dict) or "id" not in selection:
                continue
            value = str(selection.get("value") or "")
            entry: dict[str, Any] = {"title": value or None}
            qty = parse_quantity(value)
            if qty is not None:
                entry["quantity"] = qty.quantity
                entry["uom"] = qty.uom.value
            if "inStock" in selection:
                entry["availability"] = bool(selection["inStock"])
            by_selection[selection["id"]] = entry

        variants: list[dict[str, Any]] = []
        for product_item in item.get("productItems") or []:
            chosen = product_item.get("optionsSelections") or []
            if not chosen or product_item.get("price") is None:
                continue
            variant = {
                "id": product_item.get("id"),
                "price": float(product_item["price"]),
                **by_selection.get(chosen[0], {}),
            }
            variants.append(variant)
        return variants

    def _init_builder(self, item: dict[str, Any]) -> ProductBuilder | None:
        if not item.get("price") and not item.get("formattedPrice"):
            return None
        builder = self.new_builder()
        name = str(item["name"])
        description = str(item.get("description") or "")
        builder.set_basic_info(
            name,
            self.href(f"/product-page/{item.get('urlPart', '')}"),
            self.supplier_name,
        )
        if item.get("formattedPrice"):
            builder.set_pricing(str(item["formattedPrice"]), self.currency)
        if builder.get("price") is None and item.get("price") is not None:
            builder.set_pricing(float(item["price"]), self.currency)

        variants = self._variants(item)
        first_sized = next((v for v in variants if "quantity" in v), None)
        if first_sized is not None:
            builder.set_quantity(first_sized["quantity"], first_sized["uom"])
        else:
            quantity = parse_quantity_coalesce(name, description)
            if quantity is not None:
                builder.set_quantity(quantity)

        cas = find_cas(description) or find_cas(name)
        if cas:
            builder.set_cas(cas)
        builder.set_formula(description or name)
        builder.set_uuid(item.get("id"))
        builder.set_sku(item.get("sku"))
        builder.set_vendor(item.get("brand"))
        builder.set_description(description or None)
        if "isInStock" in item:
            builder.set_availability(bool(item["isInStock"]))
        return builder.set_variants(variants).add_raw_data(item=item)
