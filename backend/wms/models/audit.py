from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only record of what happened to stock, documents and counts.

    Rows are written in the same DB transaction as the change they describe
    and are never updated or deleted.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_action_created", "action", "created_at"),
        db.Index("ix_audit_logs_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened, e.g. STOCK_IN, DOC_CONFIRM, INV_LINE
    action = db.Column(db.String(32), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # What it refers to
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    container_id = db.Column(db.Integer, db.ForeignKey("containers.id"), nullable=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=True, index=True)
    # No FK: events outlive deleted counts
    inventory_count_id = db.Column(db.Integer, nullable=True, index=True)

    # Signed for STOCK_ADJ, positive otherwise
    qty = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.Text, nullable=True)

    # Optional structured metadata (keep small; do not denormalize domain state)
    payload = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "container_id": self.container_id,
            "document_id": self.document_id,
            "inventory_count_id": self.inventory_count_id,
            "qty": self.qty,
            "reason": self.reason,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
