# Overview: Resolves scanner input to products, locations and containers; owns location status.

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..errors import (
    ContainerNotFoundError,
    DuplicateBarcodeError,
    LocationCountingError,
    LocationNotFoundError,
    ProductNotFoundError,
    ValidationError,
)
from ..models import Container, Location, Product, Warehouse
from ..models.catalog import (
    LOCATION_STATUS_ACTIVE,
    LOCATION_STATUS_BLOCKED,
    LOCATION_STATUS_COUNTING,
)
from . import audit_service
from .concurrency import lock_for_update, run_in_transaction


LOCATION_STATUSES = (LOCATION_STATUS_ACTIVE, LOCATION_STATUS_BLOCKED, LOCATION_STATUS_COUNTING)


def normalize_barcode(code: str | None) -> str:
    if code is None:
        return ""
    return code.strip().upper()


def find_active_product_by_code(code: str | None) -> Product:
    """
    Resolve a scanned product code.

    Matches an exact EAN or a case-insensitive SKU, among active products
    only. EAN wins when both would match different products.
    """
    code = (code or "").strip()
    if not code:
        raise ProductNotFoundError("Product code is required", {"code": code})

    candidates = (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            or_(Product.ean == code, func.lower(Product.sku) == code.lower()),
        )
        .order_by(Product.id.asc())
        .all()
    )
    if not candidates:
        raise ProductNotFoundError(f"Product {code} not found", {"code": code})

    for product in candidates:
        if product.ean == code:
            return product
    return candidates[0]


def find_location_by_barcode(code: str | None) -> Location:
    barcode = normalize_barcode(code)
    if not barcode:
        raise LocationNotFoundError("Location barcode is required", {"barcode": barcode})

    location = db.session.query(Location).filter_by(barcode=barcode).first()
    if not location:
        raise LocationNotFoundError(f"Location {barcode} not found", {"barcode": barcode})
    return location


def find_container_by_barcode(code: str | None) -> Container:
    barcode = normalize_barcode(code)
    container = (
        db.session.query(Container).filter_by(barcode=barcode).first() if barcode else None
    )
    if not container:
        raise ContainerNotFoundError(f"Container {barcode} not found", {"barcode": barcode})
    return container


def get_location_status(location: Location) -> str:
    return location.status


def set_location_status(location: Location, status: str) -> Location:
    if status not in LOCATION_STATUSES:
        raise ValidationError(f"Invalid location status: {status}")
    location.status = status
    return location


def set_locations_status(location_ids, status: str, *, only_from: str | None = None) -> list[Location]:
    """
    Bulk status change. With `only_from`, locations in any other status are
    left alone (e.g. releasing COUNTING must not reactivate a BLOCKED bin).

    Returns the locations that actually changed.
    """
    if status not in LOCATION_STATUSES:
        raise ValidationError(f"Invalid location status: {status}")
    ids = sorted(set(location_ids))
    if not ids:
        return []

    locations = db.session.query(Location).filter(Location.id.in_(ids)).order_by(Location.id.asc()).all()
    changed = []
    for location in locations:
        if only_from is not None and location.status != only_from:
            continue
        if location.status != status:
            location.status = status
            changed.append(location)
    db.session.flush()
    return changed


def update_location_status(
    *,
    location_id: int,
    user_id: int,
    status: str,
    block_reason: str | None = None,
) -> Location:
    """
    Operator status change between ACTIVE and BLOCKED.

    COUNTING is owned by inventory counts: it can be neither set nor cleared
    here. The reason is kept only while the location is BLOCKED.

    Raises:
        ValidationError: status other than ACTIVE or BLOCKED
        LocationNotFoundError
        LocationCountingError: location is under a count
    """
    if status not in (LOCATION_STATUS_ACTIVE, LOCATION_STATUS_BLOCKED):
        raise ValidationError(f"Invalid location status: {status}", {"status": status})

    def _op():
        location = lock_for_update(db.session.query(Location).filter_by(id=location_id)).first()
        if not location:
            raise LocationNotFoundError(f"Location {location_id} not found", {"location_id": location_id})
        if location.status == LOCATION_STATUS_COUNTING:
            raise LocationCountingError(
                f"Location {location.barcode} is being counted",
                {"location": location.barcode},
            )

        previous_status = location.status
        set_location_status(location, status)
        if status == LOCATION_STATUS_BLOCKED:
            location.block_reason = (block_reason or "").strip() or None
        else:
            location.block_reason = None
        db.session.flush()

        audit_service.record_event(
            audit_service.ACTION_LOCATION_STATUS,
            user_id=user_id,
            from_location_id=location.id,
            reason=location.block_reason,
            payload={"previous_status": previous_status, "status": status},
        )
        return location

    return run_in_transaction(_op)


# =============================================================================
# Master data
# =============================================================================

def create_product(*, sku: str, name: str, ean: str | None = None, unit: str = "szt") -> Product:
    """SKUs are unique case-insensitively; an EAN may belong to one product only."""
    sku = (sku or "").strip()
    name = (name or "").strip()
    ean = (ean or "").strip() or None
    if not sku or not name:
        raise ValidationError("sku and name are required")

    def _op():
        if db.session.query(Product.id).filter(func.lower(Product.sku) == sku.lower()).first():
            raise DuplicateBarcodeError(f"Product {sku} already exists", {"sku": sku})
        if ean and db.session.query(Product.id).filter(Product.ean == ean).first():
            raise DuplicateBarcodeError(f"EAN {ean} is already assigned", {"ean": ean})

        product = Product(sku=sku, name=name, ean=ean, unit=unit, is_active=True)
        db.session.add(product)
        db.session.flush()
        return product

    return run_in_transaction(_op)


def create_location(*, warehouse_id: int, barcode: str, zone: str | None = None) -> Location:
    barcode = normalize_barcode(barcode)
    if not barcode:
        raise ValidationError("barcode is required")

    def _op():
        if not db.session.get(Warehouse, warehouse_id):
            raise ValidationError(f"Warehouse {warehouse_id} not found", {"warehouse_id": warehouse_id})
        if db.session.query(Location.id).filter_by(barcode=barcode).first():
            raise DuplicateBarcodeError(f"Location {barcode} already exists", {"barcode": barcode})

        location = Location(warehouse_id=warehouse_id, barcode=barcode, zone=zone)
        db.session.add(location)
        db.session.flush()
        return location

    return run_in_transaction(_op)
