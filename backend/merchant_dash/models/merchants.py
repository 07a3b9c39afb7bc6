from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._base import new_id


class Merchant(db.Model):
    """Merchant profile, linked to the authenticated user that operates it."""
    __tablename__ = "merchants"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    user_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    merchant_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    merchant_name = db.Column(db.String(255), nullable=False)
    merchant_email = db.Column(db.String(255), nullable=True)
    merchant_phone = db.Column(db.String(32), nullable=True)
    merchant_location = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "merchant_id": self.merchant_id,
            "merchant_name": self.merchant_name,
            "merchant_email": self.merchant_email,
            "merchant_phone": self.merchant_phone,
            "merchant_location": self.merchant_location,
            "created_at": to_utc_z(self.created_at),
        }


class MerchantStatus(db.Model):
    """
    Storefront switches for a merchant.

    Exactly one row per merchant; the unique constraint on merchant_id is
    what makes default creation an idempotent upsert.
    """
    __tablename__ = "merchant_status"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    merchant_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    is_visible = db.Column(db.Boolean, nullable=False, default=True)
    prep_time = db.Column(db.Integer, nullable=False, default=30)  # minutes
    auto_print_receipt = db.Column(db.Boolean, nullable=False, default=False)
    order_chime_enabled = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "is_visible": self.is_visible,
            "prep_time": self.prep_time,
            "auto_print_receipt": self.auto_print_receipt,
            "order_chime_enabled": self.order_chime_enabled,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class MerchantActivityLog(db.Model):
    """Append-only admin tracking of storefront changes (online/offline)."""
    __tablename__ = "merchant_activity_log"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False)  # STORE_ONLINE, STORE_OFFLINE
    details = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "action": self.action,
            "details": self.details,
            "timestamp": to_utc_z(self.timestamp),
        }


class MerchantPerformanceLog(db.Model):
    """Append-only admin tracking of inventory and performance events."""
    __tablename__ = "merchant_performance_log"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.String(64), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    event_details = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "event_type": self.event_type,
            "event_details": self.event_details,
            "timestamp": to_utc_z(self.timestamp),
        }
