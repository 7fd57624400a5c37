# chempal/parsers/quantity.py

"""Quantity and unit-of-measure parsing.

Supplier listings express pack sizes as free text ("500g", "1.234,56 kg",
"2 Liters", "10 pcs").  This module turns that text into a
:class:`QuantityObject` with a canonical :class:`UOM` and converts
quantities to a per-dimension base unit for comparison.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger("chempal.parsers")


class UOM(str, Enum):
    """Canonical units of measure."""

    PCS = "pcs"
    EA = "ea"
    KG = "kg"
    LB = "lb"
    ML = "ml"
    G = "g"
    L = "L"
    QT = "qt"
    GAL = "gal"
    MM = "mm"
    CM = "cm"
    M = "m"
    OZ = "oz"
    MG = "mg"
    KM = "km"

    def __str__(self) -> str:
        return self.value


UOM_ALIASES: dict[UOM, tuple[str, ...]] = {
    UOM.PCS: ("piece", "pieces", "pc", "pcs"),
    UOM.EA: ("ea", "each"),
    UOM.KG: ("kilogram", "kilograms", "kg", "kgs"),
    UOM.LB: ("pound", "pounds", "lb", "lbs"),
    UOM.ML: (
        "ml", "mls", "millilitre", "milliliter",
        "milliliters", "millilitres",
    ),
    UOM.G: ("gram", "grams", "g"),
    UOM.L: ("liter", "liters", "litre", "litres", "l"),
    UOM.QT: ("quart", "quarts", "qts", "qt"),
    UOM.GAL: ("gallon", "gallons", "gal"),
    UOM.MM: ("millimeter", "millimeters", "millimetre", "millimetres", "mm"),
    UOM.CM: ("centimeter", "centimeters", "centimetre", "centimetres", "cm"),
    UOM.M: ("meter", "meters", "metre", "metres", "m"),
    UOM.OZ: ("ounce", "ounces", "oz"),
    UOM.MG: ("milligram", "milligrams", "mg", "mgs"),
    UOM.KM: ("kilometer", "kilometers", "kilometre", "kilometres", "km"),
}

_ALIAS_LOOKUP: dict[str, UOM] = {
    alias: uom for uom, aliases in UOM_ALIASES.items() for alias in aliases
}

# Multiplier into the base unit of each dimension (g, ml, mm).
_BASE_FACTORS: dict[UOM, float] = {
    UOM.G: 1.0,
    UOM.KG: 1000.0,
    UOM.MG: 0.001,
    UOM.LB: 453.592,
    UOM.OZ: 28.3495,
    UOM.ML: 1.0,
    UOM.L: 1000.0,
    UOM.QT: 946.353,
    UOM.GAL: 3785.41,
    UOM.MM: 1.0,
    UOM.CM: 10.0,
    UOM.M: 1000.0,
    UOM.KM: 1_000_000.0,
}

# Longest alias first so "kgs" is tried before "kg".
_UNIT_PATTERN = "|".join(
    re.escape(alias) for alias in sorted(_ALIAS_LOOKUP, key=len, reverse=True)
)

_QUANTITY_RE = re.compile(
    rf"(?P<quantity>\d[\d.,]*)\s?(?P<uom>{_UNIT_PATTERN})(?![a-z])",
    re.IGNORECASE,
)

# "1.234,56" or "12,5": comma is the decimal separator.
_COMMA_DECIMAL_RE = re.compile(r"^(\d+\.\d+,\d{1,2}|\d{1,3},\d{1,2})$")


@dataclass(frozen=True)
class QuantityObject:
    """A parsed quantity with its unit."""

    quantity: float
    uom: UOM


def parse_number(raw: str) -> float | None:
    """Parse a number that may use either ``,`` or ``.`` as decimal mark.

    ``"1.234,56"`` and ``"12,5"`` are read as comma-decimal; anything
    else has its commas treated as thousands separators.
    """
    text = raw.strip()
    if not text:
        return None
    if _COMMA_DECIMAL_RE.match(text):
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")
    try:
        return float(text)
    except ValueError:
        return None


def standardize_uom(uom: str | None) -> UOM | None:
    """Map a unit alias (any case) to its canonical :class:`UOM`."""
    if not uom:
        return None
    key = uom.strip()
    if key == "L":
        return UOM.L
    return _ALIAS_LOOKUP.get(key.lower())


def parse_quantity(value: Any) -> QuantityObject | None:
    """Extract the first quantity/unit pair from *value*.

    Returns ``None`` when no pair is present, the number does not parse,
    the quantity is zero, or the unit is unknown.
    """
    if not isinstance(value, str) or not value:
        return None
    match = _QUANTITY_RE.search(value)
    if match is None:
        return None
    quantity = parse_number(match.group("quantity"))
    if not quantity:
        return None
    uom = standardize_uom(match.group("uom"))
    if uom is None:
        logger.debug("Unknown unit %r in %r", match.group("uom"), value)
        return None
    return QuantityObject(quantity=quantity, uom=uom)


def parse_quantity_coalesce(*values: Any) -> QuantityObject | None:
    """Return the first successful :func:`parse_quantity` of *values*."""
    for value in values:
        parsed = parse_quantity(value)
        if parsed is not None:
            return parsed
    return None


def is_quantity_object(value: Any) -> bool:
    """True when *value* looks like a usable :class:`QuantityObject`."""
    return (
        isinstance(value, QuantityObject)
        and value.quantity > 0
        and isinstance(value.uom, UOM)
    )


def to_base_quantity(quantity: float, uom: UOM | str) -> float:
    """Convert *quantity* into grams, millilitres or millimetres.

    Units outside those dimensions (pieces, each) are returned as-is.
    """
    unit = uom if isinstance(uom, UOM) else standardize_uom(uom)
    if unit is None:
        return quantity
    return quantity * _BASE_FACTORS.get(unit, 1.0)


def strip_quantity(text: str) -> str:
    """Remove every quantity token from *text* and tidy whitespace."""
    stripped = _QUANTITY_RE.sub("", text)
    stripped = re.sub(r"\(\s*\)|\[\s*\]", "", stripped)
    stripped = re.sub(r"\s*[-,/|]\s*$", "", stripped.strip())
    return re.sub(r"\s{2,}", " ", stripped).strip()
