# Overview: Stock ledger (quantity per product/location/container) and stock queries.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, InvalidQuantityError, ValidationError
from ..models import Container, Location, Product, Stock
from ..pagination import paginate
from . import audit_service, catalog_service
from .concurrency import lock_for_update, run_in_transaction
"""
Stock Ledger Invariants (authoritative)

- Every row has qty >= 0, before and after every operation.
- Quantity on hand for (product, location) is the SUM of its rows.
- Multi-row deductions walk rows in ascending row id, so the same ledger
  state always yields the same per-row outcome.
- Rows are created on first positive movement, updated in place and never
  deleted here.
- The ledger never commits; callers own the transaction.
"""


class _AnyContainer:
    def __repr__(self) -> str:
        return "ANY_CONTAINER"


# Default for quantity_on_hand: sum over every row regardless of container
ANY_CONTAINER = _AnyContainer()


def require_positive_qty(qty, field: str = "qty") -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise InvalidQuantityError(f"{field} must be a positive integer", {field: qty})
    return qty


def require_non_negative_qty(qty, field: str = "qty") -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
        raise InvalidQuantityError(f"{field} must be a non-negative integer", {field: qty})
    return qty


class StockLedger:
    """
    Ledger algorithms over four storage primitives.

    Subclasses provide list_rows / find_row / create_row / write_qty; rows
    only need `product_id`, `location_id`, `container_id` and `qty`.
    """

    def list_rows(self, product_id: int, location_id: int) -> list:
        raise NotImplementedError

    def find_row(self, product_id: int, location_id: int, container_id: int | None):
        raise NotImplementedError

    def create_row(self, product_id: int, location_id: int, container_id: int | None, qty: int):
        raise NotImplementedError

    def write_qty(self, row, qty: int) -> None:
        raise NotImplementedError

    def quantity_on_hand(self, product_id: int, location_id: int, container_id=ANY_CONTAINER) -> int:
        """
        Sum of matching rows, 0 when there are none.

        container_id=None restricts to unassigned stock; leaving it out sums
        every row at the location.
        """
        rows = self.list_rows(product_id, location_id)
        if container_id is not ANY_CONTAINER:
            rows = [row for row in rows if row.container_id == container_id]
        return sum(row.qty for row in rows)

    def adjust(self, product_id: int, location_id: int, delta: int, container_id: int | None = None) -> int:
        """Apply a signed change to the exact-key row and return its new qty."""
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidQuantityError("delta must be an integer", {"delta": delta})

        row = self.find_row(product_id, location_id, container_id)
        if row is None:
            if delta < 0:
                raise InsufficientStockError(0, -delta)
            if delta == 0:
                return 0
            self.create_row(product_id, location_id, container_id, delta)
            return delta

        new_qty = row.qty + delta
        if new_qty < 0:
            raise InsufficientStockError(row.qty, -delta)
        self.write_qty(row, new_qty)
        return new_qty

    def deduct(self, product_id: int, location_id: int, qty: int) -> list[tuple[object, int]]:
        """
        Take `qty` from the (product, location) pair across all of its rows.

        Containers are ignored. Rows are drained in retrieval order until
        the quantity is covered; returns [(row, taken)] for touched rows.
        """
        require_positive_qty(qty)

        rows = self.list_rows(product_id, location_id)
        available = sum(row.qty for row in rows)
        if available < qty:
            raise InsufficientStockError(available, qty)

        touched = []
        remaining = qty
        for row in rows:
            if remaining == 0:
                break
            if row.qty <= 0:
                continue
            taken = min(row.qty, remaining)
            self.write_qty(row, row.qty - taken)
            touched.append((row, taken))
            remaining -= taken
        return touched

    def increase(self, product_id: int, location_id: int, qty: int):
        """Add to the unassigned row, creating it if absent."""
        require_positive_qty(qty)

        row = self.find_row(product_id, location_id, None)
        if row is None:
            return self.create_row(product_id, location_id, None, qty)
        self.write_qty(row, row.qty + qty)
        return row

    def set_quantity(self, product_id: int, location_id: int, qty: int) -> int:
        """
        Make the total for (product, location) equal `qty`; returns the signed change.

        Growth lands on the unassigned row. Shrinkage drains the unassigned
        row first, then container rows in deduction order.
        """
        require_non_negative_qty(qty)

        difference = qty - self.quantity_on_hand(product_id, location_id)
        if difference > 0:
            self.increase(product_id, location_id, difference)
        elif difference < 0:
            remaining = -difference
            unassigned = self.find_row(product_id, location_id, None)
            if unassigned is not None and unassigned.qty > 0:
                taken = min(unassigned.qty, remaining)
                self.write_qty(unassigned, unassigned.qty - taken)
                remaining -= taken
            if remaining:
                self.deduct(product_id, location_id, remaining)
        return difference

    def split(self, product_id: int, location_id: int, container_id: int, qty: int):
        """Move `qty` of unassigned stock into a container at the same location."""
        if container_id is None:
            raise ValidationError("container_id is required for a split")
        require_positive_qty(qty)

        source = self.find_row(product_id, location_id, None)
        available = source.qty if source is not None else 0
        if available < qty:
            raise InsufficientStockError(available, qty)
        self.write_qty(source, available - qty)

        target = self.find_row(product_id, location_id, container_id)
        if target is None:
            return self.create_row(product_id, location_id, container_id, qty)
        self.write_qty(target, target.qty + qty)
        return target


class SqlStockLedger(StockLedger):
    """Ledger over `Stock` rows in the current SQLAlchemy session."""

    def __init__(self, session=None, *, for_update: bool = False):
        self.session = session or db.session
        self.for_update = for_update

    def _query(self):
        query = self.session.query(Stock)
        return lock_for_update(query) if self.for_update else query

    def list_rows(self, product_id: int, location_id: int) -> list[Stock]:
        return (
            self._query()
            .filter(Stock.product_id == product_id, Stock.location_id == location_id)
            .order_by(Stock.id.asc())
            .all()
        )

    def find_row(self, product_id: int, location_id: int, container_id: int | None) -> Optional[Stock]:
        query = self._query().filter(Stock.product_id == product_id, Stock.location_id == location_id)
        if container_id is None:
            query = query.filter(Stock.container_id.is_(None))
        else:
            query = query.filter(Stock.container_id == container_id)
        return query.order_by(Stock.id.asc()).first()

    def create_row(self, product_id: int, location_id: int, container_id: int | None, qty: int) -> Stock:
        row = Stock(product_id=product_id, location_id=location_id, container_id=container_id, qty=qty)
        self.session.add(row)
        self.session.flush()
        return row

    def write_qty(self, row: Stock, qty: int) -> None:
        row.qty = qty
        self.session.flush()


@dataclass
class StockRow:
    id: int
    product_id: int
    location_id: int
    container_id: Optional[int]
    qty: int


class MemoryStockLedger(StockLedger):
    """In-process ledger; rows live in a list in creation order."""

    def __init__(self, rows: list[StockRow] | None = None):
        self.rows: list[StockRow] = list(rows or [])
        self._next_id = max((row.id for row in self.rows), default=0) + 1

    def list_rows(self, product_id: int, location_id: int) -> list[StockRow]:
        return sorted(
            (r for r in self.rows if r.product_id == product_id and r.location_id == location_id),
            key=lambda r: r.id,
        )

    def find_row(self, product_id: int, location_id: int, container_id: int | None) -> Optional[StockRow]:
        for row in self.list_rows(product_id, location_id):
            if row.container_id == container_id:
                return row
        return None

    def create_row(self, product_id: int, location_id: int, container_id: int | None, qty: int) -> StockRow:
        if qty < 0:
            raise InsufficientStockError(0, -qty)
        row = StockRow(self._next_id, product_id, location_id, container_id, qty)
        self._next_id += 1
        self.rows.append(row)
        return row

    def write_qty(self, row: StockRow, qty: int) -> None:
        if qty < 0:
            raise InsufficientStockError(row.qty, row.qty - qty)
        row.qty = qty


def get_ledger(*, for_update: bool = False) -> SqlStockLedger:
    return SqlStockLedger(db.session, for_update=for_update)


# =============================================================================
# Queries
# =============================================================================

def _stock_row_dict(row: Stock) -> dict:
    return {
        **row.to_dict(),
        "product_sku": row.product.sku if row.product else None,
        "product_name": row.product.name if row.product else None,
        "location": row.location.barcode if row.location else None,
        "container": row.container.barcode if row.container else None,
    }


def get_stock_by_code(product_code: str | None = None, location_barcode: str | None = None) -> dict:
    """
    Scanner lookup by product code, location barcode, or both.

    - product only: every positive row of the product, with its total
    - location only: every positive row at the location
    - both: the on-hand total for that pair
    """
    if not product_code and not location_barcode:
        raise ValidationError("product_code or location_barcode is required")

    result: dict = {}
    product = None

    if product_code:
        product = catalog_service.find_active_product_by_code(product_code)
        rows = (
            db.session.query(Stock)
            .filter(Stock.product_id == product.id, Stock.qty > 0)
            .order_by(Stock.location_id.asc(), Stock.id.asc())
            .all()
        )
        result["product"] = product.to_dict()
        result["stocks"] = [_stock_row_dict(r) for r in rows]
        result["total_qty"] = sum(r.qty for r in rows)

    if location_barcode:
        location = catalog_service.find_location_by_barcode(location_barcode)
        result["location"] = location.to_dict()
        if product is not None:
            result["stock"] = {"qty": get_ledger().quantity_on_hand(product.id, location.id)}
        else:
            rows = (
                db.session.query(Stock)
                .filter(Stock.location_id == location.id, Stock.qty > 0)
                .order_by(Stock.id.asc())
                .all()
            )
            result["stocks"] = [_stock_row_dict(r) for r in rows]
            result["total_qty"] = sum(r.qty for r in rows)

    return result


def list_stock(
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    warehouse_id: int | None = None,
    min_qty: int | None = None,
    max_qty: int | None = None,
    page=None,
    limit=None,
) -> tuple[list[dict], dict]:
    query = db.session.query(Stock).filter(Stock.qty > 0)

    if product_id is not None:
        query = query.filter(Stock.product_id == product_id)
    if location_id is not None:
        query = query.filter(Stock.location_id == location_id)
    if warehouse_id is not None:
        query = query.join(Location, Stock.location_id == Location.id).filter(Location.warehouse_id == warehouse_id)
    if min_qty is not None:
        query = query.filter(Stock.qty >= min_qty)
    if max_qty is not None:
        query = query.filter(Stock.qty <= max_qty)

    rows, meta = paginate(query.order_by(Stock.id.asc()), page, limit)
    return [_stock_row_dict(r) for r in rows], meta


def get_location_contents(location_barcode: str) -> dict:
    location = catalog_service.find_location_by_barcode(location_barcode)
    rows = (
        db.session.query(Stock)
        .join(Product, Stock.product_id == Product.id)
        .filter(Stock.location_id == location.id, Stock.qty > 0)
        .order_by(Product.sku.asc(), Stock.id.asc())
        .all()
    )
    return {
        "location": location.to_dict(),
        "items": [_stock_row_dict(r) for r in rows],
        "total_qty": sum(r.qty for r in rows),
    }


def get_container_contents(container_barcode: str) -> dict:
    container = catalog_service.find_container_by_barcode(container_barcode)
    rows = (
        db.session.query(Stock)
        .join(Product, Stock.product_id == Product.id)
        .filter(Stock.container_id == container.id, Stock.qty > 0)
        .order_by(Product.sku.asc())
        .all()
    )
    return {
        "container": container.to_dict(),
        "items": [_stock_row_dict(r) for r in rows],
        "total_qty": sum(r.qty for r in rows),
        "unique_products": len({r.product_id for r in rows}),
    }


# =============================================================================
# Container operations
# =============================================================================

def move_container(*, user_id: int, container_barcode: str, location_barcode: str) -> Container:
    """
    Re-home a container and every stock row inside it.

    Emits CONTAINER_MOVE. Quantities are unchanged, so no per-product
    stock events are written.
    """
    def _op():
        container = catalog_service.find_container_by_barcode(container_barcode)
        target = catalog_service.find_location_by_barcode(location_barcode)
        source_id = container.location_id
        source = db.session.get(Location, source_id) if source_id else None

        container.location_id = target.id
        rows = lock_for_update(db.session.query(Stock).filter(Stock.container_id == container.id)).all()
        for row in rows:
            row.location_id = target.id

        audit_service.record_event(
            audit_service.ACTION_CONTAINER_MOVE,
            user_id=user_id,
            container_id=container.id,
            from_location_id=source_id,
            to_location_id=target.id,
            payload={
                "barcode": container.barcode,
                "from_location": source.barcode if source else None,
                "to_location": target.barcode,
                "rows_moved": len(rows),
            },
        )
        return container

    container = run_in_transaction(_op)
    current_app.logger.info("Container %s moved to location %s", container.barcode, container.location_id)
    return container


def split_stock(
    *,
    user_id: int,
    product_code: str,
    location_barcode: str,
    container_barcode: str,
    qty: int,
) -> Stock:
    """
    Put `qty` of loose stock at a location into a container standing there.

    A container without a location is placed at this one.
    """
    def _op():
        product = catalog_service.find_active_product_by_code(product_code)
        location = catalog_service.find_location_by_barcode(location_barcode)
        container = catalog_service.find_container_by_barcode(container_barcode)

        if container.location_id is None:
            container.location_id = location.id
        elif container.location_id != location.id:
            raise ValidationError(
                f"Container {container.barcode} is not at location {location.barcode}",
                {"container": container.barcode, "location": location.barcode},
            )

        ledger = get_ledger(for_update=True)
        try:
            target = ledger.split(product.id, location.id, container.id, qty)
        except InsufficientStockError as exc:
            raise InsufficientStockError(
                exc.available, exc.requested, location=location.barcode, product=product.sku
            ) from exc

        audit_service.record_event(
            audit_service.ACTION_STOCK_SPLIT,
            user_id=user_id,
            product_id=product.id,
            from_location_id=location.id,
            to_location_id=location.id,
            container_id=container.id,
            qty=qty,
        )
        return target

    return run_in_transaction(_op)
