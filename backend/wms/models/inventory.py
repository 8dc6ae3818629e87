from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


class InventoryCount(db.Model):
    """
    Physical inventory count session for one warehouse.

    LIFECYCLE:
    1. IN_PROGRESS: Counters submit quantities; scoped locations are COUNTING
    2. COMPLETED: Differences applied to the stock ledger, locations released
    3. CANCELLED: Abandoned, locations released, no ledger effect

    An admin may reopen a COMPLETED or CANCELLED count back to IN_PROGRESS,
    which re-locks its locations.
    """
    __tablename__ = "inventory_counts"
    __table_args__ = (
        db.Index("ix_inventory_counts_warehouse_status", "warehouse_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    # IN_PROGRESS, COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="IN_PROGRESS", index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    warehouse = db.relationship("Warehouse")
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    completed_by = db.relationship("User", foreign_keys=[completed_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryCount id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "name": self.name,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "completed_by_user_id": self.completed_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "location_ids": [scope.location_id for scope in self.scoped_locations],
            "version_id": self.version_id,
        }


class InventoryCountLocation(db.Model):
    """Locations placed under the count's COUNTING lock when it was opened."""
    __tablename__ = "inventory_count_locations"
    __table_args__ = (
        db.UniqueConstraint("inventory_count_id", "location_id", name="uq_inventory_count_locations"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_count_id = db.Column(db.Integer, db.ForeignKey("inventory_counts.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    inventory_count = db.relationship(
        "InventoryCount",
        backref=db.backref("scoped_locations", lazy=True, order_by="InventoryCountLocation.id"),
    )
    location = db.relationship("Location")


class InventoryLine(db.Model):
    """
    Counted quantity of one product at one location within a count.

    system_qty is captured at FIRST submission and frozen thereafter;
    counted_qty is overwritten by every later submission (last write wins).
    The difference is computed on demand and never stored.
    """
    __tablename__ = "inventory_lines"
    __table_args__ = (
        db.UniqueConstraint(
            "inventory_count_id", "location_id", "product_id",
            name="uq_inventory_lines_count_location_product",
        ),
        db.CheckConstraint("counted_qty >= 0", name="ck_inventory_lines_counted_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_count_id = db.Column(db.Integer, db.ForeignKey("inventory_counts.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    system_qty = db.Column(db.Integer, nullable=False)
    counted_qty = db.Column(db.Integer, nullable=False)

    counted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    counted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    inventory_count = db.relationship(
        "InventoryCount",
        backref=db.backref("lines", lazy=True, order_by="InventoryLine.id"),
    )
    location = db.relationship("Location")
    product = db.relationship("Product")

    @property
    def difference(self) -> int:
        return self.counted_qty - self.system_qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_count_id": self.inventory_count_id,
            "location_id": self.location_id,
            "location": self.location.barcode if self.location else None,
            "product_id": self.product_id,
            "product_sku": self.product.sku if self.product else None,
            "system_qty": self.system_qty,
            "counted_qty": self.counted_qty,
            "difference": self.difference,
            "counted_by_user_id": self.counted_by_user_id,
            "counted_at": to_utc_z(self.counted_at),
        }
