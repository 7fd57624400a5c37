# tests/test_quantity.py

"""Tests for quantity and unit-of-measure parsing."""

import unittest

from chempal.parsers.quantity import (
    UOM,
    UOM_ALIASES,
    QuantityObject,
    is_quantity_object,
    parse_number,
    parse_quantity,
    parse_quantity_coalesce,
    standardize_uom,
    strip_quantity,
    to_base_quantity,
)


class TestStandardizeUom(unittest.TestCase):
    """Alias table lookups."""

    def test_every_alias_maps_to_its_unit(self) -> None:
        """Each alias in the table standardises to its canonical unit."""
        for uom, aliases in UOM_ALIASES.items():
            for alias in aliases:
                with self.subTest(alias=alias):
                    self.assertIs(standardize_uom(alias), uom)

    def test_case_insensitive(self) -> None:
        """Upper-case aliases are accepted."""
        self.assertIs(standardize_uom("KG"), UOM.KG)
        self.assertIs(standardize_uom("Grams"), UOM.G)

    def test_capital_l_is_litre(self) -> None:
        """A bare capital L is litres."""
        self.assertIs(standardize_uom("L"), UOM.L)

    def test_unknown_alias_returns_none(self) -> None:
        """Unknown units are not guessed."""
        self.assertIsNone(standardize_uom("furlong"))
        self.assertIsNone(standardize_uom(""))
        self.assertIsNone(standardize_uom(None))


class TestParseNumber(unittest.TestCase):
    """Locale-aware number parsing."""

    def test_comma_decimal_with_thousands(self) -> None:
        """'1.234,56' is European notation."""
        self.assertAlmostEqual(parse_number("1.234,56") or 0, 1234.56)

    def test_short_comma_decimal(self) -> None:
        """'12,5' uses comma as decimal mark."""
        self.assertEqual(parse_number("12,5"), 12.5)

    def test_comma_thousands(self) -> None:
        """'1,000' uses comma as thousands separator."""
        self.assertEqual(parse_number("1,000"), 1000.0)

    def test_garbage_returns_none(self) -> None:
        """Unparseable text returns None."""
        self.assertIsNone(parse_number("abc"))
        self.assertIsNone(parse_number("  "))


class TestParseQuantity(unittest.TestCase):
    """Free-text pack size extraction."""

    def test_european_kilograms(self) -> None:
        """'1.234,56 kg' parses as 1234.56 kg."""
        result = parse_quantity("1.234,56 kg")
        assert result is not None
        self.assertAlmostEqual(result.quantity, 1234.56)
        self.assertIs(result.uom, UOM.KG)

    def test_grams_without_space(self) -> None:
        """'100g' parses as 100 g."""
        self.assertEqual(parse_quantity("100g"), QuantityObject(100.0, UOM.G))

    def test_inside_title(self) -> None:
        """The first quantity in a product title is found."""
        self.assertEqual(
            parse_quantity("Sodium Chloride 500g, ACS grade"),
            QuantityObject(500.0, UOM.G),
        )

    def test_long_unit_names(self) -> None:
        """Spelled-out units are recognised."""
        self.assertEqual(parse_quantity("2 Liters"), QuantityObject(2.0, UOM.L))
        self.assertEqual(
            parse_quantity("5 kilograms"), QuantityObject(5.0, UOM.KG)
        )
        self.assertEqual(parse_quantity("10 pcs"), QuantityObject(10.0, UOM.PCS))
        self.assertEqual(parse_quantity("2.5 gal"), QuantityObject(2.5, UOM.GAL))

    def test_every_alias_parses_after_a_number(self) -> None:
        """Each alias in the table is accepted as a unit token."""
        for uom, aliases in UOM_ALIASES.items():
            for alias in aliases:
                with self.subTest(alias=alias):
                    self.assertEqual(
                        parse_quantity(f"2 {alias}"), QuantityObject(2.0, uom)
                    )

    def test_plural_abbreviations(self) -> None:
        """Plural short forms map to their singular unit."""
        self.assertEqual(parse_quantity("3 kgs"), QuantityObject(3.0, UOM.KG))
        self.assertEqual(parse_quantity("5 mls"), QuantityObject(5.0, UOM.ML))
        self.assertEqual(parse_quantity("2 mgs"), QuantityObject(2.0, UOM.MG))
        self.assertEqual(parse_quantity("10 each"), QuantityObject(10.0, UOM.EA))

    def test_unit_followed_by_letters_is_not_matched(self) -> None:
        """A digit run before an ordinary word is not a quantity."""
        self.assertIsNone(parse_quantity("3 grapes"))

    def test_zero_quantity_rejected(self) -> None:
        """Zero is not a pack size."""
        self.assertIsNone(parse_quantity("0 g"))

    def test_non_string_returns_none(self) -> None:
        """Non-strings return None rather than raising."""
        self.assertIsNone(parse_quantity(None))
        self.assertIsNone(parse_quantity(500))
        self.assertIsNone(parse_quantity("no size here"))

    def test_coalesce_takes_first_success(self) -> None:
        """Later inputs are only tried when earlier ones fail."""
        result = parse_quantity_coalesce(None, "Acetone", "1 L", "500 ml")
        self.assertEqual(result, QuantityObject(1.0, UOM.L))

    def test_coalesce_all_fail(self) -> None:
        """No parseable input yields None."""
        self.assertIsNone(parse_quantity_coalesce("Acetone", None))


class TestQuantityHelpers(unittest.TestCase):
    """Base conversion and title cleanup."""

    def test_is_quantity_object(self) -> None:
        """Only positive QuantityObjects qualify."""
        self.assertTrue(is_quantity_object(QuantityObject(1.0, UOM.G)))
        self.assertFalse(is_quantity_object(QuantityObject(0.0, UOM.G)))
        self.assertFalse(is_quantity_object({"quantity": 1, "uom": "g"}))

    def test_to_base_quantity_mass(self) -> None:
        """Kilograms and milligrams convert to grams."""
        self.assertEqual(to_base_quantity(1, UOM.KG), 1000.0)
        self.assertAlmostEqual(to_base_quantity(500, "mg"), 0.5)

    def test_to_base_quantity_volume(self) -> None:
        """Litres convert to millilitres."""
        self.assertEqual(to_base_quantity(2, "L"), 2000.0)

    def test_to_base_quantity_counts_unchanged(self) -> None:
        """Countable and unknown units pass through."""
        self.assertEqual(to_base_quantity(3, UOM.PCS), 3)
        self.assertEqual(to_base_quantity(3, "bogus"), 3)

    def test_strip_quantity(self) -> None:
        """Pack sizes are removed from titles."""
        self.assertEqual(strip_quantity("Sodium Chloride 500g"), "Sodium Chloride")
        self.assertEqual(strip_quantity("Acetone (1 L)"), "Acetone")


if __name__ == "__main__":
    unittest.main()
