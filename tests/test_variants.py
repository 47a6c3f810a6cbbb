# Overview: Pytest coverage for variant price resolution.

from decimal import Decimal

import pytest

from commerce_ledger.errors import ValidationError
from commerce_ledger.services.variants_service import (
    default_selections,
    parse_variations,
    resolve_variant_price,
    resolved_selections,
)


SIZE_COLOR = [
    {
        "name": "Size",
        "type": "text",
        "options": [
            {"value": "S", "priceAdjustment": 0},
            {"value": "M", "priceAdjustment": 200},
            {"value": "L", "priceAdjustment": 500},
        ],
    },
    {
        "name": "Color",
        "type": "color",
        "options": [
            {"value": "Red", "priceAdjustment": 50, "color": "#ff0000"},
            {"value": "Blue", "priceAdjustment": 0, "color": "#0000ff"},
        ],
    },
]


class TestResolveVariantPrice:
    """Lenient resolution used at pricing time."""

    def test_explicit_selections_are_summed(self):
        """Each selected option contributes its adjustment."""
        assert resolve_variant_price(SIZE_COLOR, {"Size": "L", "Color": "Blue"}) == Decimal("500")

    def test_missing_selection_defaults_to_first_option(self):
        """No selection for Color means Red (+50)."""
        assert resolve_variant_price(SIZE_COLOR, {"Size": "M"}) == Decimal("250")

    def test_no_selections_uses_all_defaults(self):
        assert resolve_variant_price(SIZE_COLOR, {}) == Decimal("50")
        assert resolve_variant_price(SIZE_COLOR, None) == Decimal("50")

    def test_unmatched_selection_contributes_zero(self):
        """A value that names no declared option adds nothing (not the default)."""
        assert resolve_variant_price(SIZE_COLOR, {"Size": "XXL", "Color": "Blue"}) == Decimal("0")

    def test_unknown_variation_names_ignored(self):
        assert resolve_variant_price(SIZE_COLOR, {"Size": "S", "Color": "Blue", "Material": "Silk"}) == Decimal("0")

    def test_negative_adjustments(self):
        variations = [{"name": "Pack", "options": [{"value": "Single", "priceAdjustment": -100}]}]
        assert resolve_variant_price(variations, {}) == Decimal("-100")

    def test_malformed_input_never_raises(self):
        """Junk degrades to zero delta for the affected variation."""
        junk = [
            "not a variation",
            {"name": "NoOptions"},
            {"name": "BadOptions", "options": "nope"},
            {"name": "BadAdjustment", "options": [{"value": "x", "priceAdjustment": "abc"}]},
            {"name": "Good", "options": [{"value": "y", "priceAdjustment": "10.5"}]},
        ]
        assert resolve_variant_price(junk, {"Good": "y"}) == Decimal("10.5")
        assert resolve_variant_price("garbage", {"a": 1}) == Decimal("0")
        assert resolve_variant_price(None, None) == Decimal("0")

    def test_non_string_variation_names_skipped(self):
        """Unhashable or missing names drop that variation, the rest still price."""
        variations = [
            {"name": ["bad"], "options": [{"value": "x", "priceAdjustment": 999}]},
            {"name": None, "options": [{"value": "y", "priceAdjustment": 999}]},
            {"name": "Size", "options": [{"value": "M", "priceAdjustment": 200}]},
        ]
        assert resolve_variant_price(variations, {"Size": "M"}) == Decimal("200")
        assert resolve_variant_price(variations, {}) == Decimal("200")
        assert default_selections(variations) == {"Size": "M"}
        assert resolved_selections(variations, {"Size": "M"}) == {"Size": "M"}

    def test_accepts_parsed_variations(self):
        parsed = parse_variations(SIZE_COLOR)
        assert resolve_variant_price(parsed, {"Size": "L"}) == Decimal("550")


class TestSelections:
    """Default and resolved selection maps."""

    def test_default_selections(self):
        assert default_selections(SIZE_COLOR) == {"Size": "S", "Color": "Red"}

    def test_resolved_selections_merges_over_defaults(self):
        assert resolved_selections(SIZE_COLOR, {"Size": "L"}) == {"Size": "L", "Color": "Red"}

    def test_resolved_selections_drops_unmatched(self):
        assert resolved_selections(SIZE_COLOR, {"Size": "XXL"}) == {"Color": "Red"}

    def test_resolved_selections_ignores_unknown_names(self):
        assert resolved_selections(SIZE_COLOR, {"Material": "Silk"}) == {"Size": "S", "Color": "Red"}


class TestParseVariations:
    """Strict parsing used when a product is saved."""

    def test_round_trip_shape(self):
        parsed = parse_variations(SIZE_COLOR)
        assert [v.name for v in parsed] == ["Size", "Color"]
        assert parsed[1].options[0].color == "#ff0000"
        assert parsed[0].to_dict()["options"][1] == {"value": "M", "priceAdjustment": "200"}

    def test_duplicate_variation_name_rejected(self):
        with pytest.raises(ValidationError):
            parse_variations([{"name": "Size", "options": []}, {"name": "Size", "options": []}])

    def test_duplicate_option_value_rejected(self):
        with pytest.raises(ValidationError):
            parse_variations([{"name": "Size", "options": [{"value": "S"}, {"value": "S"}]}])

    def test_invalid_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_variations([{"name": "Size", "type": "dropdown", "options": []}])

    def test_bad_adjustment_rejected(self):
        with pytest.raises(ValidationError):
            parse_variations([{"name": "Size", "options": [{"value": "S", "priceAdjustment": "abc"}]}])

    def test_not_a_list_rejected(self):
        with pytest.raises(ValidationError):
            parse_variations({"name": "Size"})

    def test_none_is_empty(self):
        assert parse_variations(None) == []
