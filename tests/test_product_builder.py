# tests/test_product_builder.py

"""Tests for staged Product construction."""

import unittest

from chempal.models.product import Availability, Product
from chempal.models.product_builder import (
    BuilderStateError,
    DropReason,
    ProductBuilder,
    ProductDefaults,
    determine_availability,
)
from chempal.parsers.quantity import QuantityObject, UOM

BASE = "https://shop.example.com"


def _complete_builder() -> ProductBuilder:
    """Builder holding every required field."""
    return (
        ProductBuilder(BASE)
        .set_basic_info("Sodium Chloride 500g", "/p/nacl", "Acme Chem")
        .set_pricing(19.99)
        .set_quantity("500g")
    )


class TestFinalize(unittest.TestCase):
    """Validation and product assembly."""

    def test_complete_builder_yields_product(self) -> None:
        """All required fields produce a Product."""
        result = _complete_builder().finalize()
        self.assertTrue(result.ok)
        product = result.product
        assert product is not None
        self.assertIsInstance(product, Product)
        self.assertEqual(product.title, "Sodium Chloride 500g")
        self.assertEqual(product.price, 19.99)
        self.assertEqual(product.quantity, 500.0)
        self.assertEqual(product.uom, "g")
        self.assertEqual(product.supplier, "Acme Chem")

    def test_relative_url_absolutised(self) -> None:
        """Relative URLs are resolved against the supplier base."""
        product = _complete_builder().build()
        assert product is not None
        self.assertEqual(product.url, "https://shop.example.com/p/nacl")

    def test_currency_defaults_applied(self) -> None:
        """A bare numeric price takes the default currency."""
        product = _complete_builder().build()
        assert product is not None
        self.assertEqual(product.currency_code, "USD")
        self.assertEqual(product.currency_symbol, "$")
        self.assertEqual(product.usd_price, 19.99)

    def test_base_quantity(self) -> None:
        """Finalize records the quantity in the dimension's base unit."""
        product = (
            ProductBuilder(BASE)
            .set_basic_info("Acetone", "/p/acetone", "Acme Chem")
            .set_pricing(30)
            .set_quantity(2.5, "L")
            .build()
        )
        assert product is not None
        self.assertEqual(product.uom, "L")
        self.assertEqual(product.base_quantity, 2500.0)

    def test_missing_price_dropped(self) -> None:
        """A builder without pricing is dropped with the reason."""
        result = (
            ProductBuilder(BASE)
            .set_basic_info("Sodium Chloride", "/p/nacl", "Acme Chem")
            .set_quantity("500g")
            .finalize()
        )
        self.assertFalse(result.ok)
        self.assertEqual(result.reason, DropReason.MISSING_FIELDS)
        self.assertIn("price", result.missing)

    def test_missing_quantity_dropped(self) -> None:
        """Without a pack size or supplier default the builder is dropped."""
        result = (
            ProductBuilder(BASE)
            .set_basic_info("Sodium Chloride", "/p/nacl", "Acme Chem")
            .set_pricing("$4.00")
            .finalize()
        )
        self.assertIsNone(result.product)
        self.assertIn("quantity", result.missing)
        self.assertIn("uom", result.missing)

    def test_supplier_quantity_default(self) -> None:
        """Suppliers may opt in to a default pack size."""
        product = (
            ProductBuilder(BASE, ProductDefaults(quantity=1, uom="each"))
            .set_basic_info("Borax", "/p/borax", "Acme Chem")
            .set_pricing(8)
            .build()
        )
        assert product is not None
        self.assertEqual(product.quantity, 1)
        self.assertEqual(product.uom, "ea")

    def test_non_http_url_dropped(self) -> None:
        """A URL that cannot be made absolute is rejected."""
        result = (
            ProductBuilder("")
            .set_basic_info("Borax", "/p/borax", "Acme Chem")
            .set_pricing(8)
            .set_quantity(QuantityObject(1.0, UOM.KG))
            .finalize()
        )
        self.assertEqual(result.reason, DropReason.INVALID_URL)

    def test_derived_prices(self) -> None:
        """USD and display-currency prices use the given rates."""
        product = (
            ProductBuilder("https://warchem.pl", ProductDefaults("PLN", "zł"))
            .set_basic_info("Kwas cytrynowy 1kg", "/p/1", "Warchem")
            .set_pricing("100,00 zł")
            .set_quantity("1kg")
            .build(usd_rate=0.25, local_currency="eur", local_rate=0.23)
        )
        assert product is not None
        self.assertEqual(product.currency_code, "PLN")
        self.assertEqual(product.usd_price, 25.0)
        self.assertEqual(product.local_currency, "EUR")
        self.assertEqual(product.local_price, 23.0)

    def test_unknown_rate_leaves_usd_price_unset(self) -> None:
        """A missing rate never drops the product."""
        product = (
            ProductBuilder("https://warchem.pl", ProductDefaults("PLN", "zł"))
            .set_basic_info("Kwas cytrynowy 1kg", "/p/1", "Warchem")
            .set_pricing("100,00 zł")
            .set_quantity("1kg")
            .build()
        )
        assert product is not None
        self.assertIsNone(product.usd_price)


class TestSetters(unittest.TestCase):
    """Input normalisation in the chained setters."""

    def test_rejects_bad_prices(self) -> None:
        """Negative, non-finite and unparseable prices are ignored."""
        builder = ProductBuilder(BASE)
        builder.set_pricing(-3).set_pricing(float("nan")).set_pricing("ask us")
        self.assertIsNone(builder.get("price"))

    def test_text_price_sets_currency(self) -> None:
        """A price with a symbol carries its currency."""
        builder = ProductBuilder(BASE).set_pricing("€12,50")
        self.assertEqual(builder.get("price"), 12.5)
        self.assertEqual(builder.get("currency_code"), "EUR")

    def test_unknown_uom_ignored(self) -> None:
        """Unknown units leave the UOM unset."""
        builder = ProductBuilder(BASE).set_quantity(3, "bushel")
        self.assertEqual(builder.get("quantity"), 3.0)
        self.assertIsNone(builder.get("uom"))

    def test_cas_and_formula(self) -> None:
        """CAS and formula are extracted from free text."""
        builder = (
            ProductBuilder(BASE)
            .set_cas("Sodium chloride CAS 7647-14-5")
            .set_formula("<b>NaCl</b> crystals")
        )
        self.assertEqual(builder.get("cas"), "7647-14-5")
        self.assertEqual(builder.get("formula"), "NaCl")

    def test_invalid_cas_ignored(self) -> None:
        """A failing check digit is not stored."""
        builder = ProductBuilder(BASE).set_cas("1234-56-0")
        self.assertIsNone(builder.get("cas"))

    def test_grade_concentration_and_uuid(self) -> None:
        """Descriptive fields are trimmed and blanks leave them unset."""
        product = (
            _complete_builder()
            .set_grade("  ACS Reagent ")
            .set_concentration("37%")
            .set_uuid("550e8400-e29b-41d4-a716-446655440000")
            .build()
        )
        assert product is not None
        self.assertEqual(product.grade, "ACS Reagent")
        self.assertEqual(product.conc, "37%")
        self.assertEqual(product.uuid, "550e8400-e29b-41d4-a716-446655440000")

        builder = ProductBuilder(BASE).set_grade("  ").set_concentration(None).set_uuid("")
        self.assertEqual(builder.dump(), {"variants": []})

    def test_set_data_ignores_unknown_keys(self) -> None:
        """Bulk assignment only accepts Product fields."""
        builder = ProductBuilder(BASE).set_data(title="X", colour="blue")
        self.assertEqual(builder.get("title"), "X")
        self.assertNotIn("colour", builder.dump())

    def test_set_data_validates_price_and_size(self) -> None:
        """Bulk-assigned price text and units are normalised, not stored raw."""
        product = (
            ProductBuilder(BASE)
            .set_basic_info("Sodium Chloride", "/p/nacl", "Acme Chem")
            .set_data(price="19.99", quantity="500", uom="grams", availability="In stock")
            .build()
        )
        assert product is not None
        self.assertEqual(product.price, 19.99)
        self.assertEqual((product.quantity, product.uom), (500.0, "g"))
        self.assertEqual(product.base_quantity, 500.0)
        self.assertIs(product.availability, Availability.IN_STOCK)

    def test_set_data_bad_values_drop_instead_of_raising(self) -> None:
        """Unusable bulk values leave the field unset and finalize drops."""
        result = (
            ProductBuilder(BASE)
            .set_basic_info("Sodium Chloride", "/p/nacl", "Acme Chem")
            .set_data(price="call us", quantity=[500], uom="furlong")
            .finalize(usd_rate=0.25)
        )
        self.assertFalse(result.ok)
        self.assertIs(result.reason, DropReason.MISSING_FIELDS)
        self.assertIn("price", result.missing)
        self.assertIn("quantity", result.missing)
        self.assertIn("uom", result.missing)

    def test_raw_data_not_emitted(self) -> None:
        """Raw payloads stay on the builder."""
        builder = _complete_builder().add_raw_data(item={"id": 1})
        self.assertEqual(builder.raw_data, {"item": {"id": 1}})
        product = builder.build()
        assert product is not None
        self.assertNotIn("item", product.to_dict())


class TestVariants(unittest.TestCase):
    """Variant inheritance and filtering."""

    def test_variants_inherit_parent_fields(self) -> None:
        """Missing variant fields come from the parent."""
        builder = _complete_builder().add_variant(title="Sodium Chloride 1kg", price=29.99, quantity=1, uom="kg")
        builder.add_variant(price=12.0, sku="NACL-S")
        product = builder.build()
        assert product is not None
        big, small = product.variants
        self.assertEqual(big.base_quantity, 1000.0)
        self.assertEqual(big.url, product.url)
        self.assertEqual(small.title, product.title)
        self.assertEqual(small.quantity, 500.0)
        self.assertEqual(small.sku, "NACL-S")

    def test_invalid_variants_discarded(self) -> None:
        """Variants without a usable price are dropped, not the product."""
        product = (
            _complete_builder()
            .set_variants([{"price": -1}, {"title": "no price"}, {"price": 5, "availability": False}])
            .build()
        )
        assert product is not None
        self.assertEqual(len(product.variants), 1)
        self.assertIs(product.variants[0].availability, Availability.OUT_OF_STOCK)


class TestBuilderState(unittest.TestCase):
    """Building -> Built transitions."""

    def test_finalize_twice_raises(self) -> None:
        """A built builder cannot be finalized again."""
        builder = _complete_builder()
        builder.finalize()
        self.assertTrue(builder.is_built)
        with self.assertRaises(BuilderStateError):
            builder.finalize()

    def test_setters_after_build_raise(self) -> None:
        """A built builder rejects further mutation."""
        builder = _complete_builder()
        builder.build()
        with self.assertRaises(BuilderStateError):
            builder.set_pricing(1.0)

    def test_dropped_builder_is_built(self) -> None:
        """Dropping still moves the builder to the built state."""
        builder = ProductBuilder(BASE)
        self.assertIsNone(builder.build())
        self.assertTrue(builder.is_built)


class TestDetermineAvailability(unittest.TestCase):
    """Stock status normalisation."""

    def test_values(self) -> None:
        """Booleans, schema.org URLs and phrases map to statuses."""
        self.assertIs(determine_availability(True), Availability.IN_STOCK)
        self.assertIs(
            determine_availability("https://schema.org/InStock"),
            Availability.IN_STOCK,
        )
        self.assertIs(determine_availability("Out of stock"), Availability.OUT_OF_STOCK)
        self.assertIs(determine_availability("on backorder"), Availability.BACKORDER)
        self.assertIsNone(determine_availability("maybe"))
        self.assertIsNone(determine_availability(None))


if __name__ == "__main__":
    unittest.main()
