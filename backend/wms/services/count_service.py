# backend/wms/services/count_service.py
"""
Physical inventory count service.

WHY: Regular physical counts keep the ledger honest. Counters scan a
location and a product and submit what they see; the system quantity is
captured at the first submission so later corrections compare against the
same baseline. Completion writes the counted quantities into the ledger.

LIFECYCLE:
1. IN_PROGRESS: Count opened, scoped locations locked (COUNTING), lines submitted
2. COMPLETED: Differences applied to the ledger, locations released
3. CANCELLED: Abandoned, locations released, ledger untouched

An admin may reopen a COMPLETED or CANCELLED count; reopening re-locks the
count's locations but does not reverse adjustments already applied.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import (
    InventoryEmptyError,
    InventoryNotFoundError,
    InventoryNotInProgressError,
    LineNotFoundError,
    LocationBlockedError,
    LocationCountingError,
    ValidationError,
)
from ..models import InventoryCount, InventoryCountLocation, InventoryLine, Location, Stock, Warehouse
from ..models.catalog import LOCATION_STATUS_ACTIVE, LOCATION_STATUS_BLOCKED, LOCATION_STATUS_COUNTING
from ..pagination import paginate
from ..time_utils import utcnow
from . import audit_service, catalog_service
from .concurrency import lock_for_update, run_in_transaction
from .stock_service import get_ledger, require_non_negative_qty


# Count status constants
COUNT_STATUS_IN_PROGRESS = "IN_PROGRESS"
COUNT_STATUS_COMPLETED = "COMPLETED"
COUNT_STATUS_CANCELLED = "CANCELLED"

COUNT_STATUSES = (COUNT_STATUS_IN_PROGRESS, COUNT_STATUS_COMPLETED, COUNT_STATUS_CANCELLED)


def _get_count(count_id: int, *, for_update: bool = False) -> InventoryCount:
    query = db.session.query(InventoryCount).filter_by(id=count_id)
    if for_update:
        query = lock_for_update(query)
    count = query.first()
    if not count:
        raise InventoryNotFoundError(f"Inventory count {count_id} not found")
    return count


def _require_in_progress(count: InventoryCount) -> None:
    if count.status != COUNT_STATUS_IN_PROGRESS:
        raise InventoryNotInProgressError(
            f"Inventory count {count.id} is {count.status}",
            {"inventory_count_id": count.id, "status": count.status},
        )


def _get_line(count: InventoryCount, line_id: int) -> InventoryLine:
    line = db.session.query(InventoryLine).filter_by(id=line_id, inventory_count_id=count.id).first()
    if not line:
        raise LineNotFoundError(f"Line {line_id} not found on inventory count {count.id}")
    return line


def _count_location_ids(count: InventoryCount) -> set[int]:
    """Scoped locations plus every location that has a counted line."""
    scoped = {scope.location_id for scope in count.scoped_locations}
    counted = {
        location_id
        for (location_id,) in db.session.query(InventoryLine.location_id)
        .filter(InventoryLine.inventory_count_id == count.id)
        .distinct()
    }
    return scoped | counted


def _lock_locations(location_ids) -> None:
    """
    Put locations under the count lock.

    Only ACTIVE locations can be locked: a BLOCKED location must stay blocked
    once the count releases it, and a location is counted by one count at a time.
    """
    ids = sorted(set(location_ids))
    if not ids:
        return

    locations = (
        lock_for_update(db.session.query(Location).filter(Location.id.in_(ids)))
        .order_by(Location.id.asc())
        .all()
    )
    for location in locations:
        if location.status == LOCATION_STATUS_BLOCKED:
            raise LocationBlockedError(
                f"Location {location.barcode} is blocked",
                {"location": location.barcode},
            )
        if location.status == LOCATION_STATUS_COUNTING:
            raise LocationCountingError(
                f"Location {location.barcode} is already being counted",
                {"location": location.barcode},
            )

    catalog_service.set_locations_status(ids, LOCATION_STATUS_COUNTING, only_from=LOCATION_STATUS_ACTIVE)


def _line_payload(line: InventoryLine, **flags) -> dict:
    payload = {
        "inventory_count_id": line.inventory_count_id,
        "system_qty": line.system_qty,
        "counted_qty": line.counted_qty,
        "difference": line.difference,
        "location_barcode": line.location.barcode if line.location else None,
        "product_sku": line.product.sku if line.product else None,
    }
    payload.update(flags)
    return payload


def create_count(
    *,
    user_id: int,
    warehouse_id: int,
    name: str,
    location_ids: list[int] | None = None,
) -> InventoryCount:
    """
    Open a count (status: IN_PROGRESS) and lock the given locations.

    Raises:
        ValidationError: missing name, unknown warehouse or location
        LocationBlockedError, LocationCountingError: a location is not ACTIVE
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op():
        if not db.session.get(Warehouse, warehouse_id):
            raise ValidationError(f"Warehouse {warehouse_id} not found", {"warehouse_id": warehouse_id})

        ids = sorted(set(location_ids or []))
        if ids:
            found = {loc_id for (loc_id,) in db.session.query(Location.id).filter(Location.id.in_(ids))}
            missing = [loc_id for loc_id in ids if loc_id not in found]
            if missing:
                raise ValidationError("Unknown locations", {"location_ids": missing})

        count = InventoryCount(
            warehouse_id=warehouse_id,
            name=name,
            status=COUNT_STATUS_IN_PROGRESS,
            created_by_user_id=user_id,
        )
        db.session.add(count)
        db.session.flush()

        for loc_id in ids:
            db.session.add(InventoryCountLocation(inventory_count_id=count.id, location_id=loc_id))
        _lock_locations(ids)

        audit_service.record_event(
            audit_service.ACTION_INV_START,
            user_id=user_id,
            inventory_count_id=count.id,
            payload={"name": name, "location_ids": ids},
        )
        return count

    return run_in_transaction(_op)


def submit_count(
    *,
    count_id: int,
    user_id: int,
    location_barcode: str,
    product_code: str,
    counted_qty: int,
) -> InventoryLine:
    """
    Record what a counter found at a location.

    Upserts on (count, location, product). The first submission freezes
    system_qty from the ledger; later ones overwrite counted_qty only.
    The ledger is not modified.
    """
    require_non_negative_qty(counted_qty, "counted_qty")

    def _op():
        count = _get_count(count_id, for_update=True)
        _require_in_progress(count)

        location = catalog_service.find_location_by_barcode(location_barcode)
        product = catalog_service.find_active_product_by_code(product_code)

        line = (
            db.session.query(InventoryLine)
            .filter_by(inventory_count_id=count.id, location_id=location.id, product_id=product.id)
            .first()
        )
        updated = line is not None
        if line is None:
            line = InventoryLine(
                inventory_count_id=count.id,
                location_id=location.id,
                product_id=product.id,
                system_qty=get_ledger().quantity_on_hand(product.id, location.id),
                counted_qty=counted_qty,
                counted_by_user_id=user_id,
            )
            db.session.add(line)
        else:
            line.counted_qty = counted_qty
            line.counted_by_user_id = user_id
            line.counted_at = utcnow()
        db.session.flush()

        payload = _line_payload(line, updated=True) if updated else _line_payload(line)
        audit_service.record_event(
            audit_service.ACTION_INV_LINE,
            user_id=user_id,
            product_id=product.id,
            from_location_id=location.id,
            inventory_count_id=count.id,
            qty=counted_qty,
            payload=payload,
        )
        return line

    return run_in_transaction(_op)


def update_count_line(*, count_id: int, line_id: int, user_id: int, counted_qty: int) -> InventoryLine:
    require_non_negative_qty(counted_qty, "counted_qty")

    def _op():
        count = _get_count(count_id, for_update=True)
        _require_in_progress(count)
        line = _get_line(count, line_id)

        line.counted_qty = counted_qty
        line.counted_by_user_id = user_id
        line.counted_at = utcnow()
        db.session.flush()

        audit_service.record_event(
            audit_service.ACTION_INV_LINE,
            user_id=user_id,
            product_id=line.product_id,
            from_location_id=line.location_id,
            inventory_count_id=count.id,
            qty=counted_qty,
            payload=_line_payload(line, updated=True),
        )
        return line

    return run_in_transaction(_op)


def delete_count_line(*, count_id: int, line_id: int, user_id: int) -> None:
    def _op():
        count = _get_count(count_id, for_update=True)
        _require_in_progress(count)
        line = _get_line(count, line_id)

        audit_service.record_event(
            audit_service.ACTION_INV_LINE,
            user_id=user_id,
            product_id=line.product_id,
            from_location_id=line.location_id,
            inventory_count_id=count.id,
            qty=0,
            payload=_line_payload(line, deleted=True),
        )
        db.session.delete(line)
        db.session.flush()

    run_in_transaction(_op)


def complete_count(*, count_id: int, user_id: int) -> tuple[InventoryCount, list[dict]]:
    """
    Apply a count to the ledger.

    For every line whose counted quantity differs from its frozen system
    quantity, the (product, location) total is set to the counted quantity
    and a STOCK_ADJ event carries the signed difference. All locations of
    the count leave COUNTING. One transaction: any failure leaves the
    ledger, the locations and the count untouched.

    Returns:
        (count, adjustments)

    Raises:
        InventoryNotFoundError, InventoryNotInProgressError, InventoryEmptyError
    """
    def _op():
        count = _get_count(count_id, for_update=True)
        _require_in_progress(count)

        lines = (
            db.session.query(InventoryLine)
            .filter_by(inventory_count_id=count.id)
            .order_by(InventoryLine.id.asc())
            .all()
        )
        if not lines:
            raise InventoryEmptyError(f"Inventory count {count.id} has no lines")

        ledger = get_ledger(for_update=True)
        adjustments = []
        for line in lines:
            difference = line.difference
            if difference == 0:
                continue

            # A re-completed count finds the ledger already at counted_qty
            applied = ledger.set_quantity(line.product_id, line.location_id, line.counted_qty)
            if applied == 0:
                continue

            audit_service.record_event(
                audit_service.ACTION_STOCK_ADJ,
                user_id=user_id,
                product_id=line.product_id,
                from_location_id=line.location_id,
                inventory_count_id=count.id,
                qty=difference,
                reason=f"Inventory count: {count.name}",
                payload={
                    "system_qty": line.system_qty,
                    "counted_qty": line.counted_qty,
                    "applied": applied,
                },
            )
            adjustments.append({
                "line_id": line.id,
                "product_sku": line.product.sku,
                "location_barcode": line.location.barcode,
                "system_qty": line.system_qty,
                "counted_qty": line.counted_qty,
                "difference": difference,
                "applied": applied,
            })

        catalog_service.set_locations_status(
            _count_location_ids(count), LOCATION_STATUS_ACTIVE, only_from=LOCATION_STATUS_COUNTING
        )

        count.status = COUNT_STATUS_COMPLETED
        count.completed_by_user_id = user_id
        count.completed_at = utcnow()
        db.session.flush()

        audit_service.record_event(
            audit_service.ACTION_INV_COMPLETE,
            user_id=user_id,
            inventory_count_id=count.id,
            payload={"adjustments_count": len(adjustments), "lines": len(lines)},
        )
        return count, adjustments

    count, adjustments = run_in_transaction(_op)
    current_app.logger.info(
        "Inventory count %s completed by user %s (%d adjustments)", count.id, user_id, len(adjustments)
    )
    return count, adjustments


def cancel_count(*, count_id: int, user_id: int) -> InventoryCount:
    """Abandon an IN_PROGRESS count and release its locations. No ledger effect."""
    def _op():
        count = _get_count(count_id, for_update=True)
        if count.status != COUNT_STATUS_IN_PROGRESS:
            raise InventoryNotInProgressError(
                "Only counts in progress can be cancelled",
                {"inventory_count_id": count.id, "status": count.status},
            )

        catalog_service.set_locations_status(
            _count_location_ids(count), LOCATION_STATUS_ACTIVE, only_from=LOCATION_STATUS_COUNTING
        )

        count.status = COUNT_STATUS_CANCELLED
        count.cancelled_at = utcnow()
        db.session.flush()

        audit_service.record_event(
            audit_service.ACTION_INV_CANCEL,
            user_id=user_id,
            inventory_count_id=count.id,
        )
        return count

    return run_in_transaction(_op)


def reopen_count(*, count_id: int, user_id: int) -> InventoryCount:
    """
    Put a COMPLETED or CANCELLED count back IN_PROGRESS and re-lock its locations.

    Adjustments already written by completion stay in the ledger. Fails if a
    location has since been blocked or placed under another count.
    """
    def _op():
        count = _get_count(count_id, for_update=True)
        if count.status == COUNT_STATUS_IN_PROGRESS:
            raise ValidationError(
                f"Inventory count {count.id} is already in progress",
                {"inventory_count_id": count.id, "status": count.status},
            )

        previous_status = count.status
        _lock_locations(_count_location_ids(count))

        count.status = COUNT_STATUS_IN_PROGRESS
        count.completed_at = None
        count.completed_by_user_id = None
        count.cancelled_at = None
        db.session.flush()

        audit_service.record_event(
            audit_service.ACTION_INV_REOPEN,
            user_id=user_id,
            inventory_count_id=count.id,
            payload={"previous_status": previous_status},
        )
        return count

    return run_in_transaction(_op)


def delete_count(*, count_id: int, user_id: int) -> None:
    """
    Remove a count together with its lines and scope.

    COMPLETED counts back ledger adjustments and cannot be deleted. An
    IN_PROGRESS count releases its locations first. Audit events stay.
    """
    def _op():
        count = _get_count(count_id, for_update=True)
        if count.status == COUNT_STATUS_COMPLETED:
            raise ValidationError(
                f"Inventory count {count.id} is completed and cannot be deleted",
                {"inventory_count_id": count.id, "status": count.status},
            )

        if count.status == COUNT_STATUS_IN_PROGRESS:
            catalog_service.set_locations_status(
                _count_location_ids(count), LOCATION_STATUS_ACTIVE, only_from=LOCATION_STATUS_COUNTING
            )

        audit_service.record_event(
            audit_service.ACTION_INV_DELETE,
            user_id=user_id,
            inventory_count_id=count.id,
            payload={"name": count.name, "status": count.status, "lines": len(count.lines)},
        )

        for line in list(count.lines):
            db.session.delete(line)
        for scope in list(count.scoped_locations):
            db.session.delete(scope)
        db.session.flush()

        db.session.expire(count, ["lines", "scoped_locations"])
        db.session.delete(count)
        db.session.flush()

    run_in_transaction(_op)
    current_app.logger.info("Inventory count %s deleted by user %s", count_id, user_id)


def rename_count(*, count_id: int, name: str) -> InventoryCount:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op():
        count = _get_count(count_id, for_update=True)
        count.name = name
        db.session.flush()
        return count

    return run_in_transaction(_op)


# =============================================================================
# Queries
# =============================================================================

def get_count_summary(count_id: int) -> dict:
    count = _get_count(count_id)
    lines = (
        db.session.query(InventoryLine)
        .filter_by(inventory_count_id=count.id)
        .order_by(InventoryLine.id.asc())
        .all()
    )
    return {
        "count": count.to_dict(),
        "lines": [line.to_dict() for line in lines],
        "line_count": len(lines),
        "lines_with_difference": sum(1 for line in lines if line.difference != 0),
        "total_difference": sum(line.difference for line in lines),
    }


def list_counts(
    *,
    status: str | None = None,
    warehouse_id: int | None = None,
    page=None,
    limit=None,
) -> tuple[list[InventoryCount], dict]:
    query = db.session.query(InventoryCount)
    if status:
        if status not in COUNT_STATUSES:
            raise ValidationError(f"Invalid count status: {status}")
        query = query.filter(InventoryCount.status == status)
    if warehouse_id is not None:
        query = query.filter(InventoryCount.warehouse_id == warehouse_id)

    query = query.order_by(InventoryCount.created_at.desc(), InventoryCount.id.desc())
    return paginate(query, page, limit)


def get_location_for_counting(*, count_id: int, location_barcode: str) -> dict:
    """What the ledger expects at a location, next to what has been counted there."""
    count = _get_count(count_id)
    location = catalog_service.find_location_by_barcode(location_barcode)

    stocks = (
        db.session.query(Stock)
        .filter(Stock.location_id == location.id, Stock.qty > 0)
        .order_by(Stock.id.asc())
        .all()
    )
    expected: dict[int, dict] = {}
    for row in stocks:
        entry = expected.setdefault(row.product_id, {
            "product_id": row.product_id,
            "product_sku": row.product.sku,
            "product_name": row.product.name,
            "system_qty": 0,
        })
        entry["system_qty"] += row.qty

    lines = (
        db.session.query(InventoryLine)
        .filter_by(inventory_count_id=count.id, location_id=location.id)
        .order_by(InventoryLine.id.asc())
        .all()
    )
    return {
        "location": location.to_dict(),
        "expected_products": list(expected.values()),
        "counted_lines": [line.to_dict() for line in lines],
    }
