from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class TokenTransaction(db.Model):
    """
    Immutable token ledger entry. Positive amount credits, negative debits.

    Balance = SUM(amount) for the user. Never updated or deleted.

    reference is unique per type when set (order id for unlocks, request id
    for purchases, referred user for referral bonuses) so a credit or debit
    cannot be booked twice for the same cause.
    """
    __tablename__ = "token_transactions"
    __table_args__ = (
        db.UniqueConstraint("type", "reference", name="uq_token_transactions_type_ref"),
        db.Index("ix_token_transactions_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "type": self.type,
            "description": self.description,
            "reference": self.reference,
            "created_at": to_utc_z(self.created_at),
        }


class TokenPurchaseRequest(db.Model):
    """
    Manual token purchase awaiting admin review.

    LIFECYCLE: PENDING -> APPROVED | REJECTED. Terminal states never change.
    At most one PENDING request per user (partial unique index).

    tokens holds the estimate at submission; on approval it is overwritten
    with the amount actually credited.
    """
    __tablename__ = "token_purchase_requests"
    __table_args__ = (
        db.Index(
            "uq_token_purchase_requests_one_pending",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'PENDING'"),
            postgresql_where=db.text("status = 'PENDING'"),
        ),
        db.Index("ix_token_purchase_requests_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    pack_id = db.Column(db.String(32), nullable=False)
    tokens = db.Column(db.Integer, nullable=False)
    price_da = db.Column(db.Integer, nullable=False)
    proof_ref = db.Column(db.String(512), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "pack_id": self.pack_id,
            "tokens": self.tokens,
            "price_da": self.price_da,
            "proof_ref": self.proof_ref,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "reviewed_at": to_utc_z(self.reviewed_at),
        }


class OrderUnlock(db.Model):
    """Record that an order's customer contact fields were paid for. One per order."""
    __tablename__ = "order_unlocks"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_order_unlocks_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    order_id = db.Column(db.String(64), nullable=False)
    tokens_spent = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "tokens_spent": self.tokens_spent,
            "created_at": to_utc_z(self.created_at),
        }
