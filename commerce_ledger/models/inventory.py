from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    APPEND-ONLY: rows are never updated or deleted. On-hand quantity and unit
    cost are a fold over a product's movements in append order (id). The
    id rises under the product lock; created_at is informational only.

    quantity_delta is signed: PURCHASE / RETURN / positive ADJUSTMENT add,
    SALE / negative ADJUSTMENT remove.

    quantity_after / unit_cost_after snapshot the state right after this
    movement was applied; replay audits compare a fresh fold against them.

    reference is unique per (product_id, type, reference) so a hook fired
    twice books once. A SALE hook uses the order reference itself; each
    RETURN gets its own "<order_ref>:<return_ref>" reference. order_ref links
    both to the order so returns can be checked against what was sold.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint("product_id", "type", "reference", name="uq_stock_movements_product_type_ref"),
        db.Index("ix_stock_movements_product_seq", "product_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    # Cost the units were booked at (inflow) or issued at (outflow)
    unit_cost = db.Column(db.Numeric(14, 4), nullable=True)
    cost_of_goods = db.Column(db.Numeric(14, 2), nullable=True)

    quantity_after = db.Column(db.Integer, nullable=False)
    unit_cost_after = db.Column(db.Numeric(14, 4), nullable=True)

    note = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(128), nullable=True, index=True)
    order_ref = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity_delta": self.quantity_delta,
            "unit_cost": str(self.unit_cost) if self.unit_cost is not None else None,
            "cost_of_goods": str(self.cost_of_goods) if self.cost_of_goods is not None else None,
            "quantity_after": self.quantity_after,
            "unit_cost_after": str(self.unit_cost_after) if self.unit_cost_after is not None else None,
            "note": self.note,
            "reference": self.reference,
            "order_ref": self.order_ref,
            "created_at": to_utc_z(self.created_at),
        }
