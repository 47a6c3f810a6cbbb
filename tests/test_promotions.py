# Overview: Pytest coverage for promotion construction and evaluation.

from decimal import Decimal

import pytest

from commerce_ledger.errors import ValidationError
from commerce_ledger.services.promotions_service import (
    BuyXDiscount,
    BuyXGetY,
    FixedDiscount,
    PercentageDiscount,
    evaluate_promotions,
    free_units,
    promotion_from_dict,
)


BXGY = {"type": "buy_x_get_y", "buyQuantity": 2, "getQuantity": 1, "label": "Buy 2 get 1 free"}
BXD = {"type": "buy_x_discount", "buyQuantity": 3, "discountPercent": 20}
PCT = {"type": "percentage_discount", "discountPercent": 10}
FIXED = {"type": "fixed_discount", "fixedDiscount": 300}


class TestPromotionConstruction:
    """Variant fields are validated when a promotion is built."""

    def test_builds_each_variant(self):
        assert isinstance(promotion_from_dict(BXGY), BuyXGetY)
        assert isinstance(promotion_from_dict(BXD), BuyXDiscount)
        assert isinstance(promotion_from_dict(PCT), PercentageDiscount)
        assert isinstance(promotion_from_dict(FIXED), FixedDiscount)

    def test_snake_case_keys_accepted(self):
        promo = promotion_from_dict({"type": "buy_x_get_y", "buy_quantity": 1, "get_quantity": 1})
        assert promo.group_size == 2

    @pytest.mark.parametrize("payload", [
        {"type": "buy_x_get_y", "buyQuantity": 0, "getQuantity": 1},
        {"type": "buy_x_get_y", "buyQuantity": 2},
        {"type": "buy_x_discount", "buyQuantity": 2, "discountPercent": 0},
        {"type": "buy_x_discount", "buyQuantity": 2, "discountPercent": 120},
        {"type": "percentage_discount", "discountPercent": -5},
        {"type": "fixed_discount", "fixedDiscount": 0},
        {"type": "mystery_discount"},
        "not-an-object",
    ])
    def test_invalid_payloads_rejected(self, payload):
        with pytest.raises(ValidationError):
            promotion_from_dict(payload)

    def test_to_dict_round_trips_type(self):
        assert promotion_from_dict(BXGY).to_dict()["type"] == "buy_x_get_y"
        assert promotion_from_dict(PCT).to_dict()["discountPercent"] == "10"


class TestEvaluatePromotions:
    """Selection and savings arithmetic."""

    def test_buy_x_get_y_applies_per_group(self):
        """7 units with buy 2 get 1: two full groups, 2 free units."""
        result = evaluate_promotions([BXGY], 7, Decimal("1000"))
        assert result.applied is not None
        assert result.savings == Decimal("2000.00")

    def test_buy_x_get_y_below_group_size(self):
        result = evaluate_promotions([BXGY], 2, Decimal("1000"))
        assert result.applied is None
        assert result.savings == Decimal("0.00")

    def test_buy_x_discount_threshold(self):
        assert evaluate_promotions([BXD], 2, 100).applied is None
        result = evaluate_promotions([BXD], 3, 100)
        assert result.savings == Decimal("60.00")

    def test_fixed_discount_capped_at_raw_total(self):
        result = evaluate_promotions([FIXED], 1, Decimal("120"))
        assert result.savings == Decimal("120.00")

    def test_first_match_wins_no_stacking(self):
        result = evaluate_promotions([PCT, FIXED], 2, Decimal("2500"))
        assert result.applied.promo_type == "percentage_discount"
        assert result.savings == Decimal("500.00")

    def test_declaration_order_breaks_ties(self):
        result = evaluate_promotions([FIXED, PCT], 2, Decimal("2500"))
        assert result.applied.promo_type == "fixed_discount"
        assert result.savings == Decimal("300.00")

    def test_inapplicable_first_promotion_is_skipped(self):
        result = evaluate_promotions([BXGY, PCT], 1, Decimal("1000"))
        assert result.applied.promo_type == "percentage_discount"
        assert result.savings == Decimal("100.00")

    def test_savings_rounded_half_up(self):
        result = evaluate_promotions([{"type": "percentage_discount", "discountPercent": 12.5}], 1, Decimal("0.10"))
        assert result.savings == Decimal("0.01")

    def test_empty_promotions(self):
        result = evaluate_promotions([], 3, 100)
        assert result.applied is None
        assert result.savings == Decimal("0.00")
        assert result.hint is None

    def test_zero_quantity(self):
        result = evaluate_promotions([PCT], 0, 100)
        assert result.savings == Decimal("0.00")

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError):
            evaluate_promotions([PCT], -1, 100)

    @pytest.mark.parametrize("unit_price", ["abc", None, "NaN", True])
    def test_malformed_unit_price_rejected(self, unit_price):
        with pytest.raises(ValidationError):
            evaluate_promotions([PCT], 2, unit_price)

    def test_free_units(self):
        promo = promotion_from_dict(BXGY)
        assert free_units(promo, 6) == 2
        assert free_units(promo, 2) == 0
        assert free_units(promotion_from_dict(PCT), 6) == 0


class TestHints:
    """Advisory hints when no promotion applies."""

    def test_buy_x_get_y_hint(self):
        result = evaluate_promotions([BXGY], 2, 1000)
        assert result.hint == "Add 1 more to get Buy 2 get 1 free!"

    def test_buy_x_get_y_no_hint_far_below(self):
        assert evaluate_promotions([BXGY], 1, 1000).hint is None

    def test_buy_x_discount_hint_one_below(self):
        result = evaluate_promotions([BXD], 2, 100)
        assert result.hint == "Add 1 more to get 20% off!"

    def test_buy_x_discount_no_hint_two_below(self):
        assert evaluate_promotions([BXD], 1, 100).hint is None

    def test_hint_never_set_when_applied(self):
        assert evaluate_promotions([BXGY], 3, 1000).hint is None


class TestPromotionProperties:
    """Determinism and never over-discounting, swept over a grid of inputs."""

    PROMO_SETS = [
        [BXGY],
        [BXD],
        [PCT],
        [FIXED],
        [{"type": "percentage_discount", "discountPercent": 100}],
        [{"type": "fixed_discount", "fixedDiscount": 999999}],
        [BXGY, BXD, PCT, FIXED],
        [{"type": "buy_x_get_y", "buyQuantity": 1, "getQuantity": 5}],
    ]

    @pytest.mark.parametrize("promos", PROMO_SETS)
    def test_savings_within_bounds(self, promos):
        for quantity in range(0, 25):
            for unit_price in (Decimal("0"), Decimal("0.01"), Decimal("33.33"), Decimal("1000")):
                result = evaluate_promotions(promos, quantity, unit_price)
                raw_total = unit_price * quantity
                assert Decimal("0") <= result.savings <= raw_total

    @pytest.mark.parametrize("promos", PROMO_SETS)
    def test_deterministic(self, promos):
        for quantity in range(0, 12):
            first = evaluate_promotions(promos, quantity, Decimal("199.99"))
            second = evaluate_promotions(promos, quantity, Decimal("199.99"))
            assert first == second
