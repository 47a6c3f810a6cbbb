# Overview: Promotion parsing and evaluation; pure functions of (promotions, quantity, unit price).

"""
Promotion Evaluator

Evaluation rules (authoritative):
- Promotions are evaluated in DECLARATION ORDER; the first applicable one
  wins and evaluation stops (no stacking). Order is the tie-break policy.
- buy_x_get_y:          applicable iff quantity >= buy + get;
                        savings = floor(quantity / (buy + get)) * get * unit_price
- buy_x_discount:       applicable iff quantity >= buy;
                        savings = raw_total * percent / 100
- percentage_discount:  always applicable; savings = raw_total * percent / 100
- fixed_discount:       always applicable; savings = min(fixed, raw_total)
- Savings are rounded to minor units and clamped to [0, raw_total].
- When nothing applies, an advisory hint names the nearest threshold the
  customer is about to reach. Hints are output, never errors.

Variant-specific fields are validated when a promotion is constructed
(promotion_from_dict), not when it is evaluated.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..errors import ValidationError
from ..money import to_money, ZERO_MONEY
from ..validation import coerce_decimal, coerce_int, coerce_positive_int, optional_text

PROMO_BUY_X_GET_Y = "buy_x_get_y"
PROMO_BUY_X_DISCOUNT = "buy_x_discount"
PROMO_PERCENTAGE_DISCOUNT = "percentage_discount"
PROMO_FIXED_DISCOUNT = "fixed_discount"

HUNDRED = Decimal("100")


def _percent(value, field: str) -> Decimal:
    pct = coerce_decimal(value, field, min_value=Decimal("0"), max_value=HUNDRED)
    if pct <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return pct


@dataclass(frozen=True)
class Promotion:
    """Base for the promotion variants. Subclasses set promo_type."""

    label: str = ""

    promo_type = ""

    def applies_to(self, quantity: int) -> bool:
        raise NotImplementedError

    def savings(self, quantity: int, unit_price: Decimal, raw_total: Decimal) -> Decimal:
        raise NotImplementedError

    def hint(self, quantity: int) -> str | None:
        return None

    def _fields(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        data = {"type": self.promo_type, "label": self.label}
        data.update(self._fields())
        return data


@dataclass(frozen=True)
class BuyXGetY(Promotion):
    buy_quantity: int = 1
    get_quantity: int = 1

    promo_type = PROMO_BUY_X_GET_Y

    @property
    def group_size(self) -> int:
        return self.buy_quantity + self.get_quantity

    def applies_to(self, quantity: int) -> bool:
        return quantity >= self.group_size

    def savings(self, quantity, unit_price, raw_total):
        free_items = (quantity // self.group_size) * self.get_quantity
        return free_items * unit_price

    def hint(self, quantity):
        if self.buy_quantity <= quantity < self.group_size:
            return f"Add {self.group_size - quantity} more to get {self.label or self._default_label()}!"
        return None

    def _default_label(self) -> str:
        return f"buy {self.buy_quantity} get {self.get_quantity} free"

    def _fields(self):
        return {"buyQuantity": self.buy_quantity, "getQuantity": self.get_quantity}


@dataclass(frozen=True)
class BuyXDiscount(Promotion):
    buy_quantity: int = 1
    discount_percent: Decimal = Decimal("0")

    promo_type = PROMO_BUY_X_DISCOUNT

    def applies_to(self, quantity):
        return quantity >= self.buy_quantity

    def savings(self, quantity, unit_price, raw_total):
        return raw_total * self.discount_percent / HUNDRED

    def hint(self, quantity):
        # within one unit of the threshold
        if quantity == self.buy_quantity - 1:
            return f"Add {self.buy_quantity - quantity} more to get {self.discount_percent.normalize():f}% off!"
        return None

    def _fields(self):
        return {"buyQuantity": self.buy_quantity, "discountPercent": str(self.discount_percent)}


@dataclass(frozen=True)
class PercentageDiscount(Promotion):
    discount_percent: Decimal = Decimal("0")

    promo_type = PROMO_PERCENTAGE_DISCOUNT

    def applies_to(self, quantity):
        return True

    def savings(self, quantity, unit_price, raw_total):
        return raw_total * self.discount_percent / HUNDRED

    def _fields(self):
        return {"discountPercent": str(self.discount_percent)}


@dataclass(frozen=True)
class FixedDiscount(Promotion):
    fixed_discount: Decimal = Decimal("0")

    promo_type = PROMO_FIXED_DISCOUNT

    def applies_to(self, quantity):
        return True

    def savings(self, quantity, unit_price, raw_total):
        return min(self.fixed_discount, raw_total)

    def _fields(self):
        return {"fixedDiscount": str(self.fixed_discount)}


def _get(data: dict, camel: str, snake: str):
    return data.get(camel, data.get(snake))


def promotion_from_dict(data: dict) -> Promotion:
    """Build a validated promotion variant from its stored JSON shape."""
    if isinstance(data, Promotion):
        return data
    if not isinstance(data, dict):
        raise ValidationError("each promotion must be an object")

    promo_type = data.get("type")
    label = optional_text(data.get("label"), "promotion.label", max_length=120) or ""

    if promo_type == PROMO_BUY_X_GET_Y:
        return BuyXGetY(
            label=label,
            buy_quantity=coerce_positive_int(_get(data, "buyQuantity", "buy_quantity"), "buyQuantity"),
            get_quantity=coerce_positive_int(_get(data, "getQuantity", "get_quantity"), "getQuantity"),
        )
    if promo_type == PROMO_BUY_X_DISCOUNT:
        return BuyXDiscount(
            label=label,
            buy_quantity=coerce_positive_int(_get(data, "buyQuantity", "buy_quantity"), "buyQuantity"),
            discount_percent=_percent(_get(data, "discountPercent", "discount_percent"), "discountPercent"),
        )
    if promo_type == PROMO_PERCENTAGE_DISCOUNT:
        return PercentageDiscount(
            label=label,
            discount_percent=_percent(_get(data, "discountPercent", "discount_percent"), "discountPercent"),
        )
    if promo_type == PROMO_FIXED_DISCOUNT:
        fixed = coerce_decimal(_get(data, "fixedDiscount", "fixed_discount"), "fixedDiscount", min_value=Decimal("0"))
        if fixed <= 0:
            raise ValidationError("fixedDiscount must be greater than 0")
        return FixedDiscount(label=label, fixed_discount=fixed)

    raise ValidationError(f"Unknown promotion type: {promo_type!r}")


def parse_promotions(raw) -> list[Promotion]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("promotions must be a list")
    return [promotion_from_dict(p) for p in raw]


@dataclass(frozen=True)
class PromotionResult:
    applied: Promotion | None
    savings: Decimal
    hint: str | None = None

    def to_dict(self) -> dict:
        return {
            "applied_promotion": self.applied.to_dict() if self.applied else None,
            "savings": str(self.savings),
            "hint": self.hint,
        }


def evaluate_promotions(promotions, quantity: int, unit_price) -> PromotionResult:
    """
    Select at most one promotion and compute its savings.

    Same inputs always produce the same result.
    """
    quantity = coerce_int(quantity, "quantity")
    if quantity < 0:
        raise ValidationError("quantity must not be negative")
    promos = parse_promotions(list(promotions or []))
    unit_price = coerce_decimal(unit_price, "unit_price", min_value=None, max_value=None)
    raw_total = unit_price * quantity
    if raw_total < 0:
        raw_total = Decimal("0")

    for promo in promos:
        if promo.applies_to(quantity):
            saved = to_money(promo.savings(quantity, unit_price, raw_total))
            saved = max(ZERO_MONEY, min(saved, to_money(raw_total)))
            return PromotionResult(applied=promo, savings=saved)

    hint = None
    for promo in promos:
        hint = promo.hint(quantity)
        if hint:
            break
    return PromotionResult(applied=None, savings=ZERO_MONEY, hint=hint)


def free_units(promotion: Promotion | None, quantity: int) -> int:
    """Units shipped for free under a buy-x-get-y deal (0 for other types)."""
    if isinstance(promotion, BuyXGetY) and promotion.applies_to(quantity):
        return (quantity // promotion.group_size) * promotion.get_quantity
    return 0
