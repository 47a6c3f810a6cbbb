from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class UserAccount(db.Model):
    """
    Per-user token account row.

    The balance itself is never stored here: it is always SUM(amount) over
    token_transactions. This row exists so every balance-changing operation
    has one row to lock (SELECT ... FOR UPDATE) per user.

    It also mirrors the user's plan tier from the subscription system and
    the token-bought ad-free window.
    """
    __tablename__ = "token_accounts"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_token_accounts_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)

    plan = db.Column(db.String(16), nullable=False, default="FREE")
    plan_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # PRO welcome bonus is granted at most once per user
    received_pro_bonus = db.Column(db.Boolean, nullable=False, default=False)

    ad_free_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan": self.plan,
            "plan_expires_at": to_utc_z(self.plan_expires_at),
            "received_pro_bonus": self.received_pro_bonus,
            "ad_free_until": to_utc_z(self.ad_free_until),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
