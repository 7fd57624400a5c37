# chempal/models/product_builder.py

"""Staged construction of :class:`Product` records.

A :class:`ProductBuilder` is owned by exactly one in-flight candidate.
Adapters call its chained setters in any order while the builder is
*building*; :meth:`ProductBuilder.finalize` then applies supplier
defaults, validates the required fields and moves the builder to
*built*.  A builder that fails validation yields a :class:`BuildResult`
carrying a :class:`DropReason` instead of a product, and never raises.
"""

import logging
import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any
from urllib.parse import urljoin, urlparse

from chempal.models.product import Availability, Product, Variant
from chempal.parsers.cas import find_cas, is_cas
from chempal.parsers.price import ParsedPrice, get_symbol_for_code, parse_price
from chempal.parsers.quantity import (
    QuantityObject,
    parse_quantity,
    standardize_uom,
    to_base_quantity,
)
from chempal.parsers.science import find_formula_in_html

logger = logging.getLogger("chempal.builder")

REQUIRED_FIELDS: tuple[str, ...] = (
    "title",
    "url",
    "supplier",
    "price",
    "quantity",
    "uom",
    "currency_code",
    "currency_symbol",
)

_PRODUCT_FIELDS = frozenset(f.name for f in fields(Product))
_VARIANT_FIELDS = frozenset(f.name for f in fields(Variant))


class BuilderStateError(RuntimeError):
    """Raised when a finalized builder is mutated or finalized again."""


class DropReason(str, Enum):
    """Why a builder produced no product."""

    MISSING_FIELDS = "missing_fields"
    INVALID_URL = "invalid_url"


@dataclass(frozen=True)
class ProductDefaults:
    """Supplier-level fallbacks applied at finalize time.

    ``quantity``/``uom`` are only filled in when the supplier opts in;
    left as ``None`` a candidate without a pack size is dropped.
    """

    currency_code: str = "USD"
    currency_symbol: str = "$"
    quantity: float | None = None
    uom: str | None = None


@dataclass(frozen=True)
class BuildResult:
    """Outcome of :meth:`ProductBuilder.finalize`."""

    product: Product | None = None
    reason: DropReason | None = None
    missing: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.product is not None


def determine_availability(value: Any) -> Availability | None:
    """Normalise a boolean or free-text stock status."""
    if isinstance(value, Availability):
        return value
    if isinstance(value, bool):
        return Availability.IN_STOCK if value else Availability.OUT_OF_STOCK
    if not isinstance(value, str):
        return None
    # schema.org URLs ("https://schema.org/InStock") reduce to their tail
    key = "".join(ch for ch in value.rsplit("/", 1)[-1].lower() if ch.isalpha())
    return {
        "instock": Availability.IN_STOCK,
        "available": Availability.IN_STOCK,
        "outofstock": Availability.OUT_OF_STOCK,
        "unavailable": Availability.OUT_OF_STOCK,
        "soldout": Availability.OUT_OF_STOCK,
        "preorder": Availability.PRE_ORDER,
        "backorder": Availability.BACKORDER,
        "onbackorder": Availability.BACKORDER,
        "discontinued": Availability.DISCONTINUED,
    }.get(key)


def _finite_non_negative(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


class ProductBuilder:
    """Accumulates partial product data for one candidate."""

    def __init__(
        self,
        base_url: str,
        defaults: ProductDefaults | None = None,
    ) -> None:
        self.base_url = base_url
        self.defaults = defaults or ProductDefaults()
        self._data: dict[str, Any] = {}
        self._variants: list[dict[str, Any]] = []
        self._raw: dict[str, Any] = {}
        self._built = False

    def __repr__(self) -> str:
        state = "built" if self._built else "building"
        return f"<ProductBuilder {state} {self._data.get('title')!r}>"

    # ── State ────────────────────────────────────────────

    @property
    def is_built(self) -> bool:
        return self._built

    def _ensure_building(self) -> None:
        if self._built:
            raise BuilderStateError("builder already finalized")

    # ── Setters ──────────────────────────────────────────

    def set_data(self, **data: Any) -> "ProductBuilder":
        """Bulk-assign known product fields; unknown keys are ignored.

        Price, quantity, unit and availability go through their setters
        so they are validated and normalised like any other input.
        """
        self._ensure_building()
        for key, value in data.items():
            if key == "variants":
                continue
            if key not in _PRODUCT_FIELDS:
                logger.debug("Ignoring unknown product field %r", key)
                continue
            if key == "price":
                self.set_pricing(value)
            elif key == "quantity":
                self.set_quantity(value)
            elif key == "uom":
                self.set_uom(value)
            elif key == "availability":
                self.set_availability(value)
            else:
                self._data[key] = value
        return self

    def set_basic_info(
        self, title: str, url: str, supplier: str,
    ) -> "ProductBuilder":
        self._ensure_building()
        if isinstance(title, str) and title.strip():
            self._data["title"] = " ".join(title.split())
        if isinstance(url, str) and url.strip():
            self._data["url"] = url.strip()
        if isinstance(supplier, str) and supplier.strip():
            self._data["supplier"] = supplier
        return self

    def set_pricing(
        self,
        price: ParsedPrice | str | float | dict[str, Any] | None,
        currency_code: str | None = None,
        currency_symbol: str | None = None,
    ) -> "ProductBuilder":
        """Set price and currency from a parsed price, text or number.

        Non-finite, negative or unparseable prices are rejected and
        leave any previously set price untouched.
        """
        self._ensure_building()
        if isinstance(price, str):
            stripped = price.strip()
            try:
                price = float(stripped)
            except ValueError:
                price = parse_price(stripped, currency_code)
        elif isinstance(price, dict):
            price = parse_price(price, currency_code)

        if isinstance(price, ParsedPrice):
            self._data["price"] = price.price
            self._data["currency_code"] = price.currency_code
            self._data["currency_symbol"] = price.currency_symbol
            return self

        if not _finite_non_negative(price):
            logger.warning("Rejected price %r for %r", price, self._data.get("title"))
            return self

        self._data["price"] = float(price)  # type: ignore[arg-type]
        if currency_code:
            self._data["currency_code"] = currency_code.upper()
            self._data["currency_symbol"] = (
                currency_symbol or get_symbol_for_code(currency_code)
            )
        elif currency_symbol:
            self._data["currency_symbol"] = currency_symbol
        return self

    def set_quantity(
        self,
        quantity: QuantityObject | str | float | None,
        uom: str | None = None,
    ) -> "ProductBuilder":
        """Set pack size from a parsed object, free text or number + unit."""
        self._ensure_building()
        if quantity is None:
            return self

        if isinstance(quantity, QuantityObject):
            self._data["quantity"] = quantity.quantity
            self._data["uom"] = quantity.uom.value
            return self

        if isinstance(quantity, str) and uom is None:
            parsed = parse_quantity(quantity)
            if parsed is not None:
                self._data["quantity"] = parsed.quantity
                self._data["uom"] = parsed.uom.value
                return self
            logger.debug("No unit in quantity %r", quantity)

        try:
            amount = float(quantity)
        except (TypeError, ValueError):
            logger.warning("Unknown quantity %r", quantity)
            return self
        if not math.isfinite(amount) or amount <= 0:
            logger.warning("Rejected quantity %r", quantity)
            return self
        self._data["quantity"] = amount
        if uom is not None:
            self.set_uom(uom)
        return self

    def set_uom(self, uom: str) -> "ProductBuilder":
        self._ensure_building()
        unit = standardize_uom(uom) if isinstance(uom, str) else None
        if unit is None:
            logger.warning("Unknown UOM %r", uom)
            return self
        self._data["uom"] = unit.value
        return self

    def set_formula(self, text: str | None) -> "ProductBuilder":
        self._ensure_building()
        formula = find_formula_in_html(text) if isinstance(text, str) else None
        if formula:
            self._data["formula"] = formula
        return self

    def set_cas(self, text: str | None) -> "ProductBuilder":
        """Store *text* if it is a CAS number, else the first CAS found in it."""
        self._ensure_building()
        if not isinstance(text, str):
            return self
        cas = text.strip() if is_cas(text) else find_cas(text)
        if cas:
            self._data["cas"] = cas
        return self

    def set_grade(self, grade: str | None) -> "ProductBuilder":
        self._ensure_building()
        if grade and grade.strip():
            self._data["grade"] = grade.strip()
        return self

    def set_concentration(self, conc: str | None) -> "ProductBuilder":
        self._ensure_building()
        if conc and conc.strip():
            self._data["conc"] = conc.strip()
        return self

    def set_description(self, description: str | None) -> "ProductBuilder":
        self._ensure_building()
        if description:
            self._data["description"] = description.strip()
        return self

    def set_id(self, id: str | int | None) -> "ProductBuilder":  # noqa: A002
        self._ensure_building()
        if id not in (None, ""):
            self._data["id"] = str(id)
        return self

    def set_uuid(self, uuid: str | None) -> "ProductBuilder":
        self._ensure_building()
        if uuid and uuid.strip():
            self._data["uuid"] = uuid.strip()
        return self

    def set_sku(self, sku: str | int | None) -> "ProductBuilder":
        self._ensure_building()
        if sku not in (None, "") and str(sku).strip():
            self._data["sku"] = str(sku).strip()
        return self

    def set_vendor(self, vendor: str | None) -> "ProductBuilder":
        self._ensure_building()
        if vendor:
            self._data["vendor"] = vendor
        return self

    def set_supplier_country(self, country: str | None) -> "ProductBuilder":
        self._ensure_building()
        if country:
            self._data["supplier_country"] = country
        return self

    def set_supplier_shipping(self, shipping: str | None) -> "ProductBuilder":
        self._ensure_building()
        if shipping:
            self._data["supplier_shipping"] = shipping
        return self

    def set_availability(self, value: Any) -> "ProductBuilder":
        self._ensure_building()
        availability = determine_availability(value)
        if availability is None:
            logger.debug("Unknown availability %r", value)
            return self
        self._data["availability"] = availability
        return self

    def set_match_score(self, score: float) -> "ProductBuilder":
        self._ensure_building()
        self._data["match_score"] = float(score)
        return self

    def add_raw_data(self, **data: Any) -> "ProductBuilder":
        """Attach source payload for later adapter stages (never emitted)."""
        self._ensure_building()
        self._raw.update(data)
        return self

    def add_variant(self, **variant: Any) -> "ProductBuilder":
        self._ensure_building()
        unknown = set(variant) - _VARIANT_FIELDS
        if unknown:
            logger.debug("Ignoring unknown variant fields %s", sorted(unknown))
        self._variants.append(
            {k: v for k, v in variant.items() if k in _VARIANT_FIELDS}
        )
        return self

    def add_variants(self, variants: list[dict[str, Any]]) -> "ProductBuilder":
        for variant in variants:
            self.add_variant(**variant)
        return self

    def set_variants(self, variants: list[dict[str, Any]]) -> "ProductBuilder":
        self._ensure_building()
        self._variants = []
        return self.add_variants(variants)

    # ── Accessors ────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    @property
    def raw_data(self) -> dict[str, Any]:
        return self._raw

    @property
    def variants(self) -> list[dict[str, Any]]:
        return list(self._variants)

    def dump(self) -> dict[str, Any]:
        """Snapshot of the partial product, variants included."""
        return {**self._data, "variants": [dict(v) for v in self._variants]}

    # ── Finalize ─────────────────────────────────────────

    def _href(self, path: str) -> str:
        return urljoin(self.base_url, path)

    def _apply_defaults(self) -> None:
        data = self._data
        if "price" in data and not data.get("currency_code"):
            data["currency_code"] = self.defaults.currency_code
        if "price" in data and not data.get("currency_symbol"):
            data["currency_symbol"] = get_symbol_for_code(
                data.get("currency_code") or self.defaults.currency_code
            )
        if "quantity" not in data and self.defaults.quantity is not None:
            data["quantity"] = self.defaults.quantity
        if "uom" not in data and self.defaults.uom is not None:
            unit = standardize_uom(self.defaults.uom)
            if unit is not None:
                data["uom"] = unit.value

    def _build_variant(
        self,
        raw: dict[str, Any],
        usd_rate: float | None,
        local_rate: float | None,
    ) -> Variant | None:
        data = self._data
        price = raw.get("price")
        if not _finite_non_negative(price):
            return None
        quantity = raw.get("quantity", data["quantity"])
        uom = raw.get("uom") or data["uom"]
        unit = standardize_uom(uom) if isinstance(uom, str) else None
        if not _finite_non_negative(quantity) or not quantity or unit is None:
            return None
        return Variant(
            title=raw.get("title") or data["title"],
            price=float(price),
            quantity=float(quantity),
            uom=unit.value,
            url=self._href(raw.get("url") or data["url"]),
            currency_code=data["currency_code"],
            currency_symbol=data["currency_symbol"],
            base_quantity=to_base_quantity(float(quantity), unit),
            usd_price=round(price * usd_rate, 2) if usd_rate else None,
            local_price=round(price * local_rate, 2) if local_rate else None,
            sku=str(raw["sku"]) if raw.get("sku") not in (None, "") else None,
            id=str(raw["id"]) if raw.get("id") not in (None, "") else None,
            grade=raw.get("grade"),
            conc=raw.get("conc"),
            availability=determine_availability(raw.get("availability")),
        )

    def missing_fields(self) -> tuple[str, ...]:
        """Required fields not yet set (before defaults)."""
        return tuple(
            name for name in REQUIRED_FIELDS
            if self._data.get(name) in (None, "")
        )

    def finalize(
        self,
        usd_rate: float | None = None,
        local_currency: str | None = None,
        local_rate: float | None = None,
    ) -> BuildResult:
        """Validate and freeze the product.

        Args:
            usd_rate: Multiplier from the product currency to USD.
            local_currency: Display currency code for ``local_price``.
            local_rate: Multiplier from the product currency to
                *local_currency*.

        Raises:
            BuilderStateError: If this builder was already finalized.
        """
        self._ensure_building()
        self._built = True
        self._apply_defaults()

        missing = self.missing_fields()
        if missing:
            logger.debug(
                "Dropping %r from %s: missing %s",
                self._data.get("title"),
                self._data.get("supplier"),
                ", ".join(missing),
            )
            return BuildResult(reason=DropReason.MISSING_FIELDS, missing=missing)

        data = dict(self._data)
        data["url"] = self._href(data["url"])
        if urlparse(data["url"]).scheme not in ("http", "https"):
            logger.debug("Dropping %r: bad url %s", data["title"], data["url"])
            return BuildResult(reason=DropReason.INVALID_URL)

        if data["currency_code"] == "USD":
            usd_rate = 1.0
        if local_currency and local_currency.upper() == data["currency_code"]:
            local_rate = 1.0

        data["base_quantity"] = to_base_quantity(data["quantity"], data["uom"])
        if usd_rate:
            data["usd_price"] = round(data["price"] * usd_rate, 2)
        if local_currency and local_rate:
            data["local_currency"] = local_currency.upper()
            data["local_price"] = round(data["price"] * local_rate, 2)

        variants = [
            self._build_variant(raw, usd_rate, local_rate if local_currency else None)
            for raw in self._variants
        ]
        data["variants"] = tuple(v for v in variants if v is not None)
        if len(data["variants"]) != len(variants):
            logger.debug(
                "Discarded %d invalid variant(s) of %r",
                len(variants) - len(data["variants"]),
                data["title"],
            )
        return BuildResult(product=Product(**data))

    def build(
        self,
        usd_rate: float | None = None,
        local_currency: str | None = None,
        local_rate: float | None = None,
    ) -> Product | None:
        """Finalize and return the product, or ``None`` when dropped."""
        return self.finalize(usd_rate, local_currency, local_rate).product
