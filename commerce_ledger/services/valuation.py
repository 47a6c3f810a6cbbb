# Overview: Stock valuation fold over an ordered movement history (weighted average, FIFO, LIFO).

"""
Stock Valuation

RULES (authoritative):
- State is a fold over movements in append order; nothing else feeds it.
- PURCHASE and RETURN are inflows, SALE is an outflow, ADJUSTMENT is an
  inflow when positive and an outflow when negative.
- An inflow without a unit cost is valued at the current valuation.
- No movement may drive quantity below zero (InsufficientStock).

WEIGHTED_AVERAGE (PMP):
    inflow q @ c:  unit = (qty * unit + q * c) / (qty + q)
    outflow q:     qty -= q, unit unchanged
    qty == 0:      the last unit cost is retained
FIFO / LIFO:
    inflow appends a lot (q, c); outflow drains lots from the front (FIFO)
    or the back (LIFO), partially draining the last lot touched.
    Reported unit cost is the cost of the next unit that would be issued;
    once every lot is drained it stays at the cost of the last unit issued.

An uncosted inflow on a product that has never been costed yields an
uncosted lot (unit cost None). It counts toward quantity and is valued at
zero in averages and cost of goods sold.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from decimal import Decimal

from ..errors import InsufficientStock, ValidationError

VALUATION_WEIGHTED_AVERAGE = "WEIGHTED_AVERAGE"
VALUATION_FIFO = "FIFO"
VALUATION_LIFO = "LIFO"

VALID_VALUATION_METHODS = [
    VALUATION_WEIGHTED_AVERAGE,
    VALUATION_FIFO,
    VALUATION_LIFO,
]

MOVEMENT_PURCHASE = "PURCHASE"
MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"

VALID_MOVEMENT_TYPES = [
    MOVEMENT_PURCHASE,
    MOVEMENT_SALE,
    MOVEMENT_RETURN,
    MOVEMENT_ADJUSTMENT,
]

STOCK_OUT = "OUT_OF_STOCK"
STOCK_LOW = "LOW_STOCK"
STOCK_IN = "IN_STOCK"

ZERO = Decimal("0")


def stock_status(quantity: int, low_stock_threshold: int) -> str:
    if quantity <= 0:
        return STOCK_OUT
    if quantity <= low_stock_threshold:
        return STOCK_LOW
    return STOCK_IN


def signed_delta(movement_type: str, quantity: int) -> int:
    """
    Apply the sign convention to a movement quantity.

    PURCHASE / SALE / RETURN take a positive magnitude; ADJUSTMENT is signed.
    """
    if movement_type not in VALID_MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {movement_type}. Must be one of {VALID_MOVEMENT_TYPES}")
    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity == 0:
            raise ValidationError("Adjustment quantity must be non-zero")
        return quantity
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than 0")
    return -quantity if movement_type == MOVEMENT_SALE else quantity


@dataclass
class Lot:
    quantity: int
    unit_cost: Decimal | None

    def to_dict(self) -> dict:
        return {
            "quantity": self.quantity,
            "unit_cost": str(self.unit_cost) if self.unit_cost is not None else None,
        }


@dataclass(frozen=True)
class AppliedMovement:
    """What applying one movement did: the cost it was booked at and its COGS."""
    movement_type: str
    quantity_delta: int
    unit_cost: Decimal | None
    cost_of_goods: Decimal | None
    quantity_after: int
    unit_cost_after: Decimal | None


class StockValuation:
    """
    Running inventory state for one product under one valuation method.

    Use StockValuation.replay() to fold a stored history, then apply() to
    evaluate a candidate movement. apply() validates before mutating, so a
    rejected movement leaves the state untouched.
    """

    def __init__(self, method: str = VALUATION_WEIGHTED_AVERAGE):
        if method not in VALID_VALUATION_METHODS:
            raise ValidationError(f"Invalid valuation method: {method}. Must be one of {VALID_VALUATION_METHODS}")
        self.method = method
        self.quantity = 0
        self.unit_cost: Decimal | None = None
        self._lots: deque[Lot] = deque()

    @classmethod
    def replay(cls, method: str, movements) -> "StockValuation":
        """Fold movements (objects with type, quantity_delta, unit_cost) from scratch."""
        valuation = cls(method)
        for mv in movements:
            valuation.apply(mv.type, mv.quantity_delta, mv.unit_cost)
        return valuation

    @property
    def lots(self) -> list[Lot]:
        return [Lot(lot.quantity, lot.unit_cost) for lot in self._lots]

    @property
    def inventory_value(self) -> Decimal | None:
        if self.method == VALUATION_WEIGHTED_AVERAGE:
            if self.unit_cost is None:
                return None
            return self.unit_cost * self.quantity
        if not self._lots:
            return ZERO if self.quantity == 0 else None
        return sum(((lot.unit_cost or ZERO) * lot.quantity for lot in self._lots), ZERO)

    def apply(self, movement_type: str, quantity_delta: int, unit_cost: Decimal | None = None) -> AppliedMovement:
        if movement_type not in VALID_MOVEMENT_TYPES:
            raise ValidationError(f"Invalid movement type: {movement_type}")
        if quantity_delta == 0:
            raise ValidationError("Movement quantity must be non-zero")
        if movement_type == MOVEMENT_SALE and quantity_delta > 0:
            raise ValidationError("SALE movements must decrease stock")
        if movement_type in (MOVEMENT_PURCHASE, MOVEMENT_RETURN) and quantity_delta < 0:
            raise ValidationError(f"{movement_type} movements must increase stock")

        if quantity_delta > 0:
            booked, cogs = self._receive(quantity_delta, unit_cost)
        else:
            booked, cogs = self._issue(-quantity_delta)

        return AppliedMovement(
            movement_type=movement_type,
            quantity_delta=quantity_delta,
            unit_cost=booked,
            cost_of_goods=cogs,
            quantity_after=self.quantity,
            unit_cost_after=self.unit_cost,
        )

    # ------------------------------------------------------------------
    # inflow / outflow
    # ------------------------------------------------------------------

    def _receive(self, qty: int, unit_cost: Decimal | None):
        cost = unit_cost if unit_cost is not None else self.unit_cost

        if self.method == VALUATION_WEIGHTED_AVERAGE:
            if cost is not None:
                current = self.unit_cost if self.unit_cost is not None else ZERO
                total_qty = self.quantity + qty
                self.unit_cost = (self.quantity * current + qty * cost) / total_qty
            self.quantity += qty
            return cost, None

        self._lots.append(Lot(qty, cost))
        self.quantity += qty
        self._refresh_lot_cost()
        return cost, None

    def _issue(self, qty: int):
        if qty > self.quantity:
            raise InsufficientStock(available=self.quantity, requested=qty)

        if self.method == VALUATION_WEIGHTED_AVERAGE:
            self.quantity -= qty
            cogs = (self.unit_cost or ZERO) * qty
            return self.unit_cost, cogs

        cogs = ZERO
        remaining = qty
        last_cost = None
        from_back = self.method == VALUATION_LIFO
        while remaining > 0:
            lot = self._lots[-1] if from_back else self._lots[0]
            consumed = min(lot.quantity, remaining)
            cogs += consumed * (lot.unit_cost or ZERO)
            last_cost = lot.unit_cost
            lot.quantity -= consumed
            remaining -= consumed
            if lot.quantity == 0:
                if from_back:
                    self._lots.pop()
                else:
                    self._lots.popleft()

        self.quantity -= qty
        if not self._lots and last_cost is not None:
            # fully drained: keep the cost of the last unit issued
            self.unit_cost = last_cost
        self._refresh_lot_cost()
        return (cogs / qty), cogs

    def _refresh_lot_cost(self) -> None:
        if not self._lots:
            return
        lot = self._lots[-1] if self.method == VALUATION_LIFO else self._lots[0]
        if lot.unit_cost is not None:
            self.unit_cost = lot.unit_cost
