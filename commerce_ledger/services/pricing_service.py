# Overview: Order line pricing; composes variant resolution with promotion evaluation.

"""
Order Pricing

    unit_price = base_price + variant delta
    subtotal   = unit_price * quantity
    total      = subtotal - savings + shipping_fee     (never below 0)

All amounts are DA rounded to centimes (ROUND_HALF_UP). Pricing is a pure
function of the product definition and the order payload; it never touches
stock or tokens.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..errors import ValidationError
from ..money import ZERO_MONEY, to_money
from ..validation import coerce_positive_int
from .products_service import get_product
from .promotions_service import evaluate_promotions, free_units
from .variants_service import resolve_variant_price, resolved_selections


@dataclass(frozen=True)
class Pricing:
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    savings: Decimal
    shipping_fee: Decimal
    total: Decimal
    applied_promotion: dict | None = None
    free_units: int = 0
    hint: str | None = None
    selections: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "subtotal": str(self.subtotal),
            "savings": str(self.savings),
            "shipping_fee": str(self.shipping_fee),
            "total": str(self.total),
            "applied_promotion": self.applied_promotion,
            "free_units": self.free_units,
            "hint": self.hint,
            "selections": dict(self.selections),
        }


def _field(product, name):
    if isinstance(product, dict):
        return product.get(name)
    return getattr(product, name, None)


def compute_pricing(product, selections: dict | None, quantity) -> Pricing:
    """
    Price one order line.

    product may be a Product row or a dict with base_price, shipping_fee,
    variations and promotions.
    """
    quantity = coerce_positive_int(quantity, "quantity")

    base_price = _field(product, "base_price")
    if base_price is None:
        raise ValidationError("product has no price", details={"product_id": _field(product, "id")})

    variations = _field(product, "variations") or []
    promotions = _field(product, "promotions") or []
    shipping_raw = _field(product, "shipping_fee")

    unit_price = to_money(Decimal(str(base_price)) + resolve_variant_price(variations, selections))
    subtotal = to_money(unit_price * quantity)

    result = evaluate_promotions(promotions, quantity, unit_price)
    shipping_fee = to_money(shipping_raw) if shipping_raw is not None else ZERO_MONEY

    total = subtotal - result.savings + shipping_fee
    if total < 0:
        total = ZERO_MONEY

    return Pricing(
        unit_price=unit_price,
        quantity=quantity,
        subtotal=subtotal,
        savings=result.savings,
        shipping_fee=shipping_fee,
        total=to_money(total),
        applied_promotion=result.applied.to_dict() if result.applied else None,
        free_units=free_units(result.applied, quantity),
        hint=result.hint,
        selections=resolved_selections(variations, selections),
    )


def price_order(product_id: int, selections: dict | None, quantity) -> Pricing:
    """Load the product and price the line. Inactive products cannot be ordered."""
    product = get_product(product_id)
    if not product.is_active:
        raise ValidationError("product is not available", details={"product_id": product_id})
    return compute_pricing(product, selections, quantity)
