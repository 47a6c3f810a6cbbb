# Overview: Persisted stock ledger; appends movements under a product lock and folds history into state.

"""
Stock Ledger Service

INVARIANTS (authoritative):
- stock_movements is append-only. State = fold(movements in id order). Ids
  are assigned under the product lock, so id order is commit order and does
  not depend on any writer's clock.
- On-hand quantity is never observable below zero: every append folds the
  history, applies the candidate movement and rejects it with
  InsufficientStock before anything is written.
- Appends for one product are serialized (row lock + in-process keyed lock),
  so two concurrent sales cannot both pass the availability check.
- An inflow without an explicit cost is booked at the current valuation, and
  the resolved cost is what gets stored. Replaying the stored rows therefore
  reproduces the incremental state exactly.
- Order hooks are idempotent per (product_id, type, reference). A sale books
  once per order; each return event books once per return reference, and
  returns for an order never exceed what the order sold.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InsufficientStock, NotFoundError
from ..extensions import db
from ..models import Product, StockMovement
from ..money import to_cost, to_money
from ..validation import (
    ValidationError,
    coerce_decimal,
    coerce_int,
    coerce_positive_int,
    optional_text,
    require_choice,
    require_text,
)
from .concurrency import lock_for_update, run_with_retry, serialized
from .valuation import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_PURCHASE,
    MOVEMENT_RETURN,
    MOVEMENT_SALE,
    VALID_MOVEMENT_TYPES,
    VALID_VALUATION_METHODS,
    VALUATION_WEIGHTED_AVERAGE,
    StockValuation,
    signed_delta,
    stock_status,
)

MAX_MOVEMENT_PAGE = 500


def _ordered_movements(product_id: int):
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


def _load_product(product_id: int, *, for_update: bool = False) -> Product:
    query = db.session.query(Product).filter(Product.id == product_id)
    if for_update:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def _state_dict(product: Product, valuation: StockValuation) -> dict:
    value = valuation.inventory_value
    state = {
        "product_id": product.id,
        "quantity": valuation.quantity,
        "unit_cost": to_cost(valuation.unit_cost),
        "status": stock_status(valuation.quantity, product.low_stock_threshold),
        "valuation_method": valuation.method,
        "inventory_value": to_money(value) if value is not None else None,
    }
    if valuation.method != VALUATION_WEIGHTED_AVERAGE:
        state["lots"] = [lot.to_dict() for lot in valuation.lots]
    return state


def _existing_reference(product_id: int, movement_type: str, reference: str) -> StockMovement | None:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id, type=movement_type, reference=reference)
        .first()
    )


def append_stock_movement(
    product_id: int,
    type: str,
    quantity,
    unit_cost=None,
    note: str | None = None,
    reference: str | None = None,
) -> dict:
    """
    Append one movement and return the resulting state.

    quantity is a positive magnitude for PURCHASE / SALE / RETURN and a
    signed, non-zero integer for ADJUSTMENT. PURCHASE requires unit_cost.

    Returns {product_id, quantity, unit_cost, status, ..., movement, duplicate}.
    duplicate is True when reference matched an existing movement of the same
    type; nothing is written in that case.

    Raises:
        ValidationError: malformed type / quantity / cost
        NotFoundError: unknown product
        InsufficientStock: the movement would take quantity below zero
        StorageUnavailable: storage kept failing after retries
    """
    require_choice(type, "type", VALID_MOVEMENT_TYPES)
    delta = signed_delta(type, coerce_int(quantity, "quantity"))

    if type == MOVEMENT_PURCHASE:
        cost = coerce_decimal(unit_cost, "unit_cost", min_value=Decimal("0"))
    elif delta > 0:
        cost = coerce_decimal(unit_cost, "unit_cost", min_value=Decimal("0"), allow_none=True)
    else:
        cost = None  # outflows are costed by the valuation method

    note = optional_text(note, "note", max_length=255)
    reference = optional_text(reference, "reference", max_length=64)

    def _op():
        product = _load_product(product_id, for_update=True)
        return _append_locked(product, type, delta, cost, note=note, reference=reference)

    with serialized("stock", product_id):
        return run_with_retry(_op)


def _append_locked(
    product: Product,
    movement_type: str,
    delta: int,
    cost: Decimal | None,
    *,
    note: str | None = None,
    reference: str | None = None,
    order_ref: str | None = None,
) -> dict:
    """Fold, apply and commit one movement. Caller holds the product lock."""
    product_id = product.id

    if reference is not None:
        existing = _existing_reference(product_id, movement_type, reference)
        if existing is not None:
            current_app.logger.warning(
                "Duplicate %s movement for product %s reference %s ignored",
                movement_type, product_id, reference,
            )
            valuation = StockValuation.replay(product.valuation_method, _ordered_movements(product_id))
            state = _state_dict(product, valuation)
            state["movement"] = existing.to_dict()
            state["duplicate"] = True
            return state

    valuation = StockValuation.replay(product.valuation_method, _ordered_movements(product_id))

    booked_cost = to_cost(cost) if cost is not None else None
    if delta > 0 and booked_cost is None:
        booked_cost = to_cost(valuation.unit_cost)

    try:
        applied = valuation.apply(movement_type, delta, booked_cost)
    except InsufficientStock as exc:
        raise InsufficientStock(
            available=exc.available, requested=exc.requested, product_id=product_id
        ) from None

    movement = StockMovement(
        product_id=product_id,
        type=movement_type,
        quantity_delta=delta,
        unit_cost=to_cost(applied.unit_cost),
        cost_of_goods=to_money(applied.cost_of_goods) if applied.cost_of_goods is not None else None,
        quantity_after=applied.quantity_after,
        unit_cost_after=to_cost(applied.unit_cost_after),
        note=note,
        reference=reference,
        order_ref=order_ref,
    )
    db.session.add(movement)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            "Movement already recorded for this reference",
            details={"product_id": product_id, "type": movement_type, "reference": reference},
        ) from None

    state = _state_dict(product, valuation)
    state["movement"] = movement.to_dict()
    state["duplicate"] = False
    return state


def get_stock_state(product_id: int) -> dict:
    """Fold the full movement history into {quantity, unit_cost, status, ...}."""
    product = _load_product(product_id)
    valuation = StockValuation.replay(product.valuation_method, _ordered_movements(product_id))
    state = _state_dict(product, valuation)
    state["movement_count"] = (
        db.session.query(db.func.count(StockMovement.id))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )
    return state


def list_stock_movements(product_id: int, limit=50) -> list[dict]:
    """Newest first."""
    _load_product(product_id)
    limit = coerce_int(limit, "limit")
    limit = max(1, min(limit, MAX_MOVEMENT_PAGE))
    rows = (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )
    return [mv.to_dict() for mv in rows]


def replay_stock_state(product_id: int) -> dict:
    """
    Audit: recompute state from scratch and compare against the per-movement
    snapshots written when each movement was appended.

    consistent is False if any snapshot disagrees with the fresh fold.
    """
    product = _load_product(product_id)
    valuation = StockValuation(product.valuation_method)
    mismatches = []

    for mv in _ordered_movements(product_id):
        valuation.apply(mv.type, mv.quantity_delta, mv.unit_cost)
        expected_cost = to_cost(valuation.unit_cost)
        if valuation.quantity != mv.quantity_after or expected_cost != mv.unit_cost_after:
            mismatches.append({
                "movement_id": mv.id,
                "recorded": {"quantity": mv.quantity_after, "unit_cost": mv.unit_cost_after},
                "replayed": {"quantity": valuation.quantity, "unit_cost": expected_cost},
            })

    if mismatches:
        current_app.logger.error(
            "Stock replay mismatch for product %s: %s movement(s) disagree", product_id, len(mismatches)
        )

    state = _state_dict(product, valuation)
    state["consistent"] = not mismatches
    state["mismatches"] = mismatches
    return state


def record_order_sale(product_id: int, quantity, order_ref: str) -> dict | None:
    """
    Order-acceptance hook. Books a SALE for the order unless the product does
    not track stock (returns None). Firing twice for one order books once.
    """
    order_ref = require_text(order_ref, "order_ref", max_length=64)
    qty = coerce_positive_int(quantity, "quantity")

    def _op():
        product = _load_product(product_id, for_update=True)
        if not product.track_stock:
            return None
        return _append_locked(
            product, MOVEMENT_SALE, -qty, None,
            note=f"Order {order_ref}", reference=order_ref, order_ref=order_ref,
        )

    with serialized("stock", product_id):
        return run_with_retry(_op)


def _order_returns(product_id: int, order_ref: str):
    return db.session.query(StockMovement).filter_by(
        product_id=product_id, type=MOVEMENT_RETURN, order_ref=order_ref
    )


def _next_return_ref(product_id: int, order_ref: str) -> str:
    n = _order_returns(product_id, order_ref).count() + 1
    while _existing_reference(product_id, MOVEMENT_RETURN, f"{order_ref}:{n}") is not None:
        n += 1
    return str(n)


def record_order_return(product_id: int, quantity, order_ref: str, return_ref: str | None = None) -> dict | None:
    """
    Order-return hook. Each call is one return event, so an order can come
    back in several parts until everything it sold has been returned.

    return_ref names the event (an RMA number, say). Firing twice with the
    same return_ref books once; without one, every call is a new return.

    Units come back at the cost they were sold at when the matching SALE
    exists, else at the current valuation.

    Raises:
        ValidationError: quantity exceeds what the order sold less earlier returns
    """
    order_ref = require_text(order_ref, "order_ref", max_length=64)
    return_ref = optional_text(return_ref, "return_ref", max_length=32)
    qty = coerce_positive_int(quantity, "quantity")

    def _op():
        product = _load_product(product_id, for_update=True)
        if not product.track_stock:
            return None

        reference = f"{order_ref}:{return_ref or _next_return_ref(product_id, order_ref)}"
        unit_cost = None
        sale = _existing_reference(product_id, MOVEMENT_SALE, order_ref)
        if sale is not None and _existing_reference(product_id, MOVEMENT_RETURN, reference) is None:
            sold = -sale.quantity_delta
            returned = sum(mv.quantity_delta for mv in _order_returns(product_id, order_ref))
            if qty > sold - returned:
                raise ValidationError(
                    "Cannot return more units than were sold",
                    details={"sold": sold, "returned": returned, "requested": qty, "order_ref": order_ref},
                )
            if sale.cost_of_goods is not None:
                unit_cost = to_cost(Decimal(sale.cost_of_goods) / sold)

        return _append_locked(
            product, MOVEMENT_RETURN, qty, unit_cost,
            note=f"Return for order {order_ref}", reference=reference, order_ref=order_ref,
        )

    with serialized("stock", product_id):
        return run_with_retry(_op)


def set_valuation_method(product_id: int, method: str) -> Product:
    """Change valuation method. Only allowed while the product has no movements."""
    require_choice(method, "valuation_method", VALID_VALUATION_METHODS)

    def _op():
        product = _load_product(product_id, for_update=True)
        if product.valuation_method == method:
            return product
        has_history = (
            db.session.query(StockMovement.id)
            .filter(StockMovement.product_id == product_id)
            .first()
            is not None
        )
        if has_history:
            raise ConflictError(
                "Valuation method cannot change once stock history exists",
                details={"product_id": product_id, "valuation_method": product.valuation_method},
            )
        product.valuation_method = method
        db.session.commit()
        current_app.logger.info("Product %s valuation method set to %s", product_id, method)
        return product

    with serialized("stock", product_id):
        return run_with_retry(_op)


__all__ = [
    "MOVEMENT_ADJUSTMENT",
    "MOVEMENT_PURCHASE",
    "MOVEMENT_RETURN",
    "MOVEMENT_SALE",
    "append_stock_movement",
    "get_stock_state",
    "list_stock_movements",
    "replay_stock_state",
    "record_order_sale",
    "record_order_return",
    "set_valuation_method",
]
