from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._base import new_id


class PaymentRequest(db.Model):
    """
    Merchant payout request (M-Pesa withdrawal).

    Created by the merchant; approved, rejected or completed by an admin.
    """
    __tablename__ = "payment_requests"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    merchant_id = db.Column(db.String(64), nullable=False, index=True)
    merchant_name = db.Column(db.String(255), nullable=True)

    amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, approved, rejected, completed
    mpesa_phone = db.Column(db.String(32), nullable=False)

    request_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approved_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "merchant_name": self.merchant_name,
            "amount": self.amount,
            "status": self.status,
            "mpesa_phone": self.mpesa_phone,
            "request_date": to_utc_z(self.request_date),
            "approved_date": to_utc_z(self.approved_date),
            "completion_date": to_utc_z(self.completion_date),
            "admin_notes": self.admin_notes,
            "version_id": self.version_id,
        }


class PaymentLog(db.Model):
    """Append-only admin audit of payout actions."""
    __tablename__ = "payment_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False)  # WITHDRAWAL_REQUESTED
    amount = db.Column(db.Integer, nullable=True)
    details = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "action": self.action,
            "amount": self.amount,
            "details": self.details,
            "timestamp": to_utc_z(self.timestamp),
        }
