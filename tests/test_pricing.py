# Overview: Pytest coverage for order line pricing.

from decimal import Decimal

import pytest

from commerce_ledger.errors import NotFoundError, ValidationError
from commerce_ledger.services import products_service
from commerce_ledger.services.pricing_service import compute_pricing, price_order


TSHIRT = {
    "id": 1,
    "base_price": "1500",
    "shipping_fee": "400",
    "variations": [
        {"name": "Size", "options": [
            {"value": "M", "priceAdjustment": 0},
            {"value": "XL", "priceAdjustment": 300},
        ]},
    ],
    "promotions": [
        {"type": "buy_x_discount", "buyQuantity": 3, "discountPercent": 10},
    ],
}


class TestComputePricing:
    """Pure composition of variants and promotions."""

    def test_variant_delta_added_to_base(self):
        pricing = compute_pricing(TSHIRT, {"Size": "XL"}, 1)
        assert pricing.unit_price == Decimal("1800.00")
        assert pricing.subtotal == Decimal("1800.00")
        assert pricing.savings == Decimal("0.00")
        assert pricing.total == Decimal("2200.00")

    def test_promotion_applies_on_quantity(self):
        pricing = compute_pricing(TSHIRT, {"Size": "XL"}, 3)
        assert pricing.subtotal == Decimal("5400.00")
        assert pricing.savings == Decimal("540.00")
        assert pricing.total == Decimal("5260.00")
        assert pricing.applied_promotion["type"] == "buy_x_discount"

    def test_hint_surfaces_near_threshold(self):
        pricing = compute_pricing(TSHIRT, {}, 2)
        assert pricing.hint == "Add 1 more to get 10% off!"

    def test_resolved_selections_recorded(self):
        pricing = compute_pricing(TSHIRT, {}, 1)
        assert pricing.selections == {"Size": "M"}

    def test_no_shipping_fee(self):
        pricing = compute_pricing({"base_price": 100}, None, 2)
        assert pricing.shipping_fee == Decimal("0.00")
        assert pricing.total == Decimal("200.00")

    def test_total_never_negative(self):
        product = {"base_price": 100, "variations": [
            {"name": "Deal", "options": [{"value": "x", "priceAdjustment": -500}]}
        ]}
        pricing = compute_pricing(product, {}, 1)
        assert pricing.total == Decimal("0.00")

    def test_contact_for_price_rejected(self):
        with pytest.raises(ValidationError):
            compute_pricing({"base_price": None}, {}, 1)

    @pytest.mark.parametrize("quantity", [0, -1, "2.5", 1.0, True, None])
    def test_bad_quantity_rejected(self, quantity):
        with pytest.raises(ValidationError):
            compute_pricing(TSHIRT, {}, quantity)

    def test_to_dict_is_json_friendly(self):
        data = compute_pricing(TSHIRT, {"Size": "XL"}, 1).to_dict()
        assert data["total"] == "2200.00"
        assert data["free_units"] == 0


class TestPriceOrder:
    """Pricing a stored product."""

    def test_prices_saved_product(self, make_product):
        product = make_product(
            base_price="1000",
            shipping_fee="200",
            promotions=[{"type": "buy_x_get_y", "buyQuantity": 2, "getQuantity": 1}],
        )
        pricing = price_order(product.id, {}, 3)
        assert pricing.savings == Decimal("1000.00")
        assert pricing.free_units == 1
        assert pricing.total == Decimal("2200.00")

    def test_inactive_product_rejected(self, make_product):
        product = make_product()
        products_service.update_product(product.id, {"is_active": False})
        with pytest.raises(ValidationError):
            price_order(product.id, {}, 1)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            price_order(9999, {}, 1)


class TestProductValidation:
    """Products are validated strictly on save."""

    def test_bad_promotion_rejected_on_save(self, make_product):
        with pytest.raises(ValidationError):
            make_product(promotions=[{"type": "percentage_discount", "discountPercent": 0}])

    def test_bad_variation_rejected_on_save(self, make_product):
        with pytest.raises(ValidationError):
            make_product(variations=[{"name": "Size", "type": "dropdown", "options": []}])

    def test_stored_shape_is_normalized(self, make_product):
        product = make_product(promotions=[{"type": "fixed_discount", "fixed_discount": 50}])
        assert product.promotions == [{"type": "fixed_discount", "label": "", "fixedDiscount": "50"}]

    def test_valuation_method_cannot_change_through_update(self, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            products_service.update_product(product.id, {"valuation_method": "FIFO"})

    def test_promotions_must_be_a_list(self, make_product):
        with pytest.raises(ValidationError):
            make_product(promotions={"type": "fixed_discount", "fixedDiscount": 50})


class TestProductLookup:

    def test_get_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            products_service.get_product(4242)

    def test_list_active_only(self, make_product):
        make_product(name="Bag")
        hidden = make_product(name="Archived mug")
        products_service.update_product(hidden.id, {"is_active": False})

        names = [p["name"] for p in products_service.list_products()]
        assert names == ["Archived mug", "Bag"]

        active = products_service.list_products(active_only=True)
        assert [p["name"] for p in active] == ["Bag"]
