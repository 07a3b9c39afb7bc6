from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._base import new_id


class Order(db.Model):
    """
    Customer order as placed by the external ordering process.

    The merchant only moves it through the fulfillment pipeline; rows are
    never deleted from the dashboard.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_merchant_created", "merchant_id", "created_at"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)

    # Human-facing order number (e.g., "ORD-1042")
    order_id = db.Column(db.String(64), nullable=False)
    merchant_id = db.Column(db.String(64), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, preparing, ready, delivered, cancelled
    total_amount = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "merchant_id": self.merchant_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "status": self.status,
            "total_amount": self.total_amount,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(64), db.ForeignKey("orders.id"), nullable=False, index=True)
    # Denormalised so feed filters can match items by merchant
    merchant_id = db.Column(db.String(64), nullable=True, index=True)

    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "merchant_id": self.merchant_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
        }
