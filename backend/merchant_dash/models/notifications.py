from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._base import new_id


class Notification(db.Model):
    """
    Admin-to-merchant message.

    Created by an admin, marked read or deleted by the merchant.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_merchant_created", "merchant_id", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    merchant_id = db.Column(db.String(64), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(16), nullable=False, default="message")  # message, offer, update, alert
    is_read = db.Column(db.Boolean, nullable=False, default=False, index=True)
    admin_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "is_read": self.is_read,
            "admin_id": self.admin_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
