# Overview: Product catalog operations; validates pricing rules and stock policy before saving.

"""
Products Service

Variations and promotions are parsed strictly here so a product can never be
saved with a shape the pricing path would have to guess about. The stored
JSON is the normalized form (camelCase keys, decimal strings).

valuation_method is set at creation only; later changes go through
stock_service.set_valuation_method, which refuses once history exists.
"""
from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Product
from ..validation import (
    ValidationError,
    coerce_decimal,
    coerce_int,
    optional_text,
    require_choice,
    require_text,
)
from .promotions_service import parse_promotions
from .valuation import VALID_VALUATION_METHODS, VALUATION_WEIGHTED_AVERAGE
from .variants_service import parse_variations

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "base_price",
    "shipping_fee",
    "variations",
    "promotions",
    "track_stock",
    "low_stock_threshold",
    "is_active",
}


def _validate_patch(patch: dict, *, creating: bool) -> dict:
    if not isinstance(patch, dict):
        raise ValidationError("product payload must be an object")

    clean: dict = {}

    if creating or "name" in patch:
        clean["name"] = require_text(patch.get("name"), "name", max_length=255)
    if "sku" in patch:
        clean["sku"] = optional_text(patch.get("sku"), "sku", max_length=64)
    if "description" in patch:
        clean["description"] = optional_text(patch.get("description"), "description")
    if "base_price" in patch:
        clean["base_price"] = coerce_decimal(
            patch.get("base_price"), "base_price", min_value=0, allow_none=True
        )
    if "shipping_fee" in patch:
        fee = coerce_decimal(patch.get("shipping_fee"), "shipping_fee", min_value=0, allow_none=True)
        clean["shipping_fee"] = fee if fee is not None else 0
    if "variations" in patch:
        clean["variations"] = [v.to_dict() for v in parse_variations(patch.get("variations"))]
    if "promotions" in patch:
        clean["promotions"] = [p.to_dict() for p in parse_promotions(patch.get("promotions"))]
    if "track_stock" in patch:
        if not isinstance(patch.get("track_stock"), bool):
            raise ValidationError("track_stock must be a boolean")
        clean["track_stock"] = patch["track_stock"]
    if "is_active" in patch:
        if not isinstance(patch.get("is_active"), bool):
            raise ValidationError("is_active must be a boolean")
        clean["is_active"] = patch["is_active"]
    if "low_stock_threshold" in patch:
        threshold = coerce_int(patch.get("low_stock_threshold"), "low_stock_threshold")
        if threshold < 0:
            raise ValidationError("low_stock_threshold must not be negative")
        clean["low_stock_threshold"] = threshold

    return clean


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(*, active_only: bool = False) -> list[dict]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    return [p.to_dict() for p in query.order_by(Product.name.asc(), Product.id.asc()).all()]


def create_product(patch: dict) -> Product:
    """Create a product from a payload dict. Unknown keys are ignored."""
    clean = _validate_patch(patch, creating=True)

    method = patch.get("valuation_method") or VALUATION_WEIGHTED_AVERAGE
    require_choice(method, "valuation_method", VALID_VALUATION_METHODS)

    clean.setdefault("low_stock_threshold", current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 5))

    product = Product(valuation_method=method, **clean)
    db.session.add(product)
    db.session.commit()

    current_app.logger.info("Created product %s (%s)", product.id, product.name)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    if "valuation_method" in (patch or {}):
        raise ValidationError("valuation_method cannot be changed here; use set_valuation_method")

    product = get_product(product_id)
    clean = _validate_patch(patch, creating=False)
    for key, value in clean.items():
        if key in PRODUCT_MUTABLE_FIELDS:
            setattr(product, key, value)

    db.session.commit()
    return product
