from __future__ import annotations

from ..extensions import db
from wms.time_utils import to_utc_z


# Location status constants
LOCATION_STATUS_ACTIVE = "ACTIVE"
LOCATION_STATUS_BLOCKED = "BLOCKED"
LOCATION_STATUS_COUNTING = "COUNTING"

# User role constants
ROLE_ADMIN = "ADMIN"
ROLE_MANAGER = "MANAGER"
ROLE_WAREHOUSE = "WAREHOUSE"


class Warehouse(db.Model):
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Actor attribution only.

    Authentication lives outside this service; documents, counts and audit
    rows reference users by id, and the HTTP layer resolves the acting user
    from the request.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    # ADMIN, MANAGER, WAREHOUSE
    role = db.Column(db.String(16), nullable=False, default=ROLE_WAREHOUSE)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
        }


class Product(db.Model):
    """
    Product master data.

    LOOKUP PATTERN (scanner input):
    - exact EAN match, or
    - case-insensitive SKU match,
    restricted to active products. See catalog_service.find_active_product_by_code.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_ean", "ean"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    ean = db.Column(db.String(13), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="szt")

    # Pass-through only; the engine never prices anything
    price_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "ean": self.ean,
            "name": self.name,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
        }


class Location(db.Model):
    """
    A bin/shelf slot inside a warehouse, addressed by its barcode.

    STATUS:
    - ACTIVE: normal movement allowed
    - BLOCKED: cannot be used as a document source
    - COUNTING: under an inventory count lock; cannot be used as a document source

    The lock is enforced by the document engine when lines are added, not by
    the stock ledger.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.Index("ix_locations_warehouse_status", "warehouse_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    # Stored upper case; lookups normalize scanner input the same way
    barcode = db.Column(db.String(32), nullable=False, unique=True)
    zone = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=LOCATION_STATUS_ACTIVE)
    # Set only while BLOCKED
    block_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    warehouse = db.relationship("Warehouse", backref=db.backref("locations", lazy=True))

    def __repr__(self) -> str:
        return f"<Location id={self.id} barcode={self.barcode!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "barcode": self.barcode,
            "zone": self.zone,
            "status": self.status,
            "block_reason": self.block_reason,
        }


class Container(db.Model):
    """Tote/bin that can hold stock and be moved between locations as a unit."""
    __tablename__ = "containers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    barcode = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "name": self.name,
            "location_id": self.location_id,
            "is_active": self.is_active,
        }
