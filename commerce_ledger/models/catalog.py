from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Sellable product with its pricing rules and stock policy.

    PRICING:
    - base_price NULL means "contact for price"; such a product cannot be priced.
    - variations / promotions are stored as JSON lists and parsed strictly on
      save (products_service), leniently at pricing time.

    STOCK:
    - track_stock=False products never get movements from the order hooks.
    - valuation_method is fixed once the product has any stock movement.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # DA, two decimal places
    base_price = db.Column(db.Numeric(12, 2), nullable=True)
    shipping_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    variations = db.Column(db.JSON, nullable=False, default=list)
    promotions = db.Column(db.JSON, nullable=False, default=list)

    track_stock = db.Column(db.Boolean, nullable=False, default=True)
    valuation_method = db.Column(db.String(32), nullable=False, default="WEIGHTED_AVERAGE")
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def get_variations(self) -> list:
        return list(self.variations or [])

    def get_promotions(self) -> list:
        return list(self.promotions or [])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "base_price": str(self.base_price) if self.base_price is not None else None,
            "shipping_fee": str(self.shipping_fee) if self.shipping_fee is not None else "0.00",
            "variations": self.get_variations(),
            "promotions": self.get_promotions(),
            "track_stock": self.track_stock,
            "valuation_method": self.valuation_method,
            "low_stock_threshold": self.low_stock_threshold,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
