from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._base import new_id


class InventoryItem(db.Model):
    """
    Per-merchant stock level for one product.

    status is derived from current_stock / maximum_stock on every write.
    """
    __tablename__ = "merchant_inventory"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_current_nonneg"),
        db.CheckConstraint("maximum_stock > 0", name="ck_inventory_maximum_pos"),
    )

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    merchant_id = db.Column(db.String(64), nullable=False, index=True)

    product_id = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=10)
    maximum_stock = db.Column(db.Integer, nullable=False, default=100)
    status = db.Column(db.String(16), nullable=False, default="danger")  # good, warning, danger

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "current_stock": self.current_stock,
            "minimum_stock": self.minimum_stock,
            "maximum_stock": self.maximum_stock,
            "status": self.status,
            "last_updated": to_utc_z(self.last_updated),
            "version_id": self.version_id,
        }
