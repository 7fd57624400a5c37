# chempal/models/product.py

"""Unified product record emitted by the supplier pipeline."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class Availability(str, Enum):
    """Normalised stock status."""

    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    PRE_ORDER = "pre_order"
    BACKORDER = "backorder"
    DISCONTINUED = "discontinued"


@dataclass(frozen=True)
class Variant:
    """A package-size or grade alternative owned by one Product."""

    title: str
    price: float
    quantity: float
    uom: str
    url: str = ""
    currency_code: str = "USD"
    currency_symbol: str = "$"
    base_quantity: float | None = None
    usd_price: float | None = None
    local_price: float | None = None
    sku: str | None = None
    id: str | None = None
    grade: str | None = None
    conc: str | None = None
    availability: Availability | None = None


@dataclass(frozen=True)
class Product:
    """A validated, immutable product listing from one supplier."""

    supplier: str
    title: str
    url: str
    price: float
    currency_code: str
    currency_symbol: str
    quantity: float
    uom: str
    base_quantity: float | None = None
    usd_price: float | None = None
    local_price: float | None = None
    local_currency: str | None = None
    cas: str | None = None
    formula: str | None = None
    grade: str | None = None
    conc: str | None = None
    description: str | None = None
    id: str | None = None
    uuid: str | None = None
    sku: str | None = None
    vendor: str | None = None
    availability: Availability | None = None
    supplier_country: str | None = None
    supplier_shipping: str | None = None
    match_score: float | None = None
    variants: tuple[Variant, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to JSON-friendly primitives (enums become strings)."""
        data = asdict(self)
        data["availability"] = (
            self.availability.value if self.availability else None
        )
        data["variants"] = [
            {
                **asdict(v),
                "availability": (
                    v.availability.value if v.availability else None
                ),
            }
            for v in self.variants
        ]
        return data
