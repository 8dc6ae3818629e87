from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


class Document(db.Model):
    """
    Stock movement document.

    TYPES:
    - PZ: goods received (inbound), needs destination location
    - WZ: goods issued (outbound), needs source location
    - MM: transfer between locations, needs both (different) locations
    - INV_ADJ: inventory adjustment (no ledger effect on confirm)

    LIFECYCLE:
    1. DRAFT: Created, lines being scanned
    2. CONFIRMED: Lines applied to the stock ledger (terminal, irreversible)
    3. CANCELLED: Abandoned before confirmation (terminal, no ledger effect)

    IMMUTABLE: Lines can only change while DRAFT; confirmation consumes a
    stable snapshot of them.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.Index("ix_documents_type_status", "type", "status"),
        db.Index("ix_documents_warehouse_created", "warehouse_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "PZ/2026/0042")
    number = db.Column(db.String(32), nullable=False, unique=True)

    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT")

    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    # External reference (supplier delivery note, order number, ...)
    reference_no = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Lifecycle user attribution
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Lifecycle timestamps
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    warehouse = db.relationship("Warehouse")
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    confirmed_by = db.relationship("User", foreign_keys=[confirmed_by_user_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Document id={self.id} number={self.number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "type": self.type,
            "status": self.status,
            "warehouse_id": self.warehouse_id,
            "reference_no": self.reference_no,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "confirmed_by_user_id": self.confirmed_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }


class DocumentLine(db.Model):
    """
    One scanned product + quantity on a document.

    Which of from/to location is required depends on the document type; the
    document engine validates that when the line is added and again at
    confirmation.
    """
    __tablename__ = "document_lines"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_document_lines_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    from_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    qty = db.Column(db.Integer, nullable=False)

    scanned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    document = db.relationship(
        "Document",
        backref=db.backref("lines", lazy=True, order_by="DocumentLine.id"),
    )
    product = db.relationship("Product")
    from_location = db.relationship("Location", foreign_keys=[from_location_id])
    to_location = db.relationship("Location", foreign_keys=[to_location_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "product_id": self.product_id,
            "product_sku": self.product.sku if self.product else None,
            "from_location_id": self.from_location_id,
            "from_location": self.from_location.barcode if self.from_location else None,
            "to_location_id": self.to_location_id,
            "to_location": self.to_location.barcode if self.to_location else None,
            "qty": self.qty,
            "scanned_by_user_id": self.scanned_by_user_id,
            "scanned_at": to_utc_z(self.scanned_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type, per-year document sequences.

    WHY: Prevent race conditions when two users open documents of the same
    type at once (a COUNT(*) + 1 scheme hands out duplicates).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "year", name="uq_doc_sequences_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
