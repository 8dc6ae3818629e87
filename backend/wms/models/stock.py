from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


class Stock(db.Model):
    """
    One ledger row: a non-negative quantity of a product at a location,
    optionally scoped to a container.

    Several rows may exist for the same (product, location) pair (split
    across containers, or repeated unassigned inserts); quantity on hand is
    always the SUM over matching rows. Rows are updated in place and never
    deleted by the engine.
    """
    __tablename__ = "stock"
    __table_args__ = (
        db.CheckConstraint("qty >= 0", name="ck_stock_qty_non_negative"),
        db.Index("ix_stock_product_location", "product_id", "location_id"),
        db.Index("ix_stock_location", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)
    # NULL = unassigned stock lying directly on the location
    container_id = db.Column(db.Integer, db.ForeignKey("containers.id"), nullable=True, index=True)

    qty = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    location = db.relationship("Location")
    container = db.relationship("Container", backref=db.backref("stocks", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Stock id={self.id} product_id={self.product_id} "
            f"location_id={self.location_id} container_id={self.container_id} qty={self.qty}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "container_id": self.container_id,
            "qty": self.qty,
            "updated_at": to_utc_z(self.updated_at),
        }
