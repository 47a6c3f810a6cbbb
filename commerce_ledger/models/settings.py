from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class AppSetting(db.Model):
    """
    Admin-editable runtime settings stored as JSON under a key.

    The economy settings live in the single "app_settings" row; its value is
    deep-merged over the built-in defaults on read.
    """
    __tablename__ = "app_settings"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_app_settings_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.JSON, nullable=False, default=dict)

    updated_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }
