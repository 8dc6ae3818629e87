# Overview: Document engine (PZ/WZ/MM/INV_ADJ); numbering, line scanning, confirmation, cancellation.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    DocumentEmptyError,
    DocumentNotDraftError,
    DocumentNotFoundError,
    InsufficientStockError,
    InvalidDocumentLineError,
    LineNotFoundError,
    LocationBlockedError,
    LocationCountingError,
    ValidationError,
)
from ..models import Document, DocumentLine, DocumentSequence, Location, Warehouse
from ..models.catalog import LOCATION_STATUS_BLOCKED, LOCATION_STATUS_COUNTING
from ..pagination import paginate
from ..time_utils import current_year, utcnow
from . import audit_service, catalog_service
from .concurrency import lock_for_update, run_in_transaction
from .stock_service import require_positive_qty, get_ledger


# Document type constants
DOC_TYPE_PZ = "PZ"          # goods received
DOC_TYPE_WZ = "WZ"          # goods issued
DOC_TYPE_MM = "MM"          # transfer between locations
DOC_TYPE_INV_ADJ = "INV_ADJ"

DOCUMENT_TYPES = (DOC_TYPE_PZ, DOC_TYPE_WZ, DOC_TYPE_MM, DOC_TYPE_INV_ADJ)

# Document status constants
DOC_STATUS_DRAFT = "DRAFT"
DOC_STATUS_CONFIRMED = "CONFIRMED"
DOC_STATUS_CANCELLED = "CANCELLED"

DOCUMENT_STATUSES = (DOC_STATUS_DRAFT, DOC_STATUS_CONFIRMED, DOC_STATUS_CANCELLED)


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(*, document_type: str, year: int | None = None, pad: int = 4) -> str:
    """
    Atomically allocate the next document number for a type/year.

    Format: TYPE/YEAR/NNNN, e.g. "WZ/2026/0007". Numbering restarts at 1
    every year. Uses an UPDATE ... SET next_number = next_number + 1 so two
    concurrent callers can never receive the same number.

    Runs inside the caller's unit of work; a failed caller rolls the
    allocation back with everything else.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    year = year or current_year()

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _allocated() -> int:
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, year=year)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _allocated()
    else:
        seq = DocumentSequence(document_type=document_type, year=year, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Someone else created the sequence row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _allocated()

    return f"{document_type}/{year}/{next_num:0{pad}d}"


def _get_document(document_id: int, *, for_update: bool = False) -> Document:
    query = db.session.query(Document).filter_by(id=document_id)
    if for_update:
        query = lock_for_update(query)
    document = query.first()
    if not document:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return document


def _require_draft(document: Document) -> None:
    if document.status != DOC_STATUS_DRAFT:
        raise DocumentNotDraftError(
            f"Document {document.number} is {document.status}, expected DRAFT",
            {"document": document.number, "status": document.status},
        )


def create_document(
    *,
    user_id: int,
    document_type: str,
    warehouse_id: int,
    reference_no: str | None = None,
    notes: str | None = None,
) -> Document:
    """
    Open a new DRAFT document and allocate its number.

    Raises:
        ValidationError: unknown type or warehouse
    """
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError(f"Invalid document type: {document_type}", {"type": document_type})

    def _op():
        if not db.session.get(Warehouse, warehouse_id):
            raise ValidationError(f"Warehouse {warehouse_id} not found", {"warehouse_id": warehouse_id})

        document = Document(
            number=next_document_number(document_type=document_type),
            type=document_type,
            status=DOC_STATUS_DRAFT,
            warehouse_id=warehouse_id,
            reference_no=reference_no,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(document)
        db.session.flush()

        audit_service.record_event(
            audit_service.ACTION_DOC_CREATE,
            user_id=user_id,
            document_id=document.id,
            payload={"type": document_type, "number": document.number},
        )
        return document

    return run_in_transaction(_op)


def _check_source_location(location: Location) -> None:
    status = catalog_service.get_location_status(location)
    if status == LOCATION_STATUS_COUNTING:
        raise LocationCountingError(
            f"Location {location.barcode} is being counted",
            {"location": location.barcode},
        )
    if status == LOCATION_STATUS_BLOCKED:
        raise LocationBlockedError(
            f"Location {location.barcode} is blocked",
            {"location": location.barcode},
        )


def _check_line_locations(document_type: str, from_location, to_location) -> None:
    """Location requirements per document type."""
    if document_type == DOC_TYPE_PZ:
        if to_location is None:
            raise InvalidDocumentLineError("Destination location is required for PZ")
        if from_location is not None:
            raise InvalidDocumentLineError(
                "PZ lines take no source location", {"location": from_location.barcode}
            )
    if document_type == DOC_TYPE_WZ:
        if from_location is None:
            raise InvalidDocumentLineError("Source location is required for WZ")
        if to_location is not None:
            raise InvalidDocumentLineError(
                "WZ lines take no destination location", {"location": to_location.barcode}
            )
    if document_type == DOC_TYPE_MM:
        if from_location is None or to_location is None:
            raise InvalidDocumentLineError("Both source and destination locations are required for MM")
        if from_location.id == to_location.id:
            raise InvalidDocumentLineError(
                "Source and destination locations must differ",
                {"location": from_location.barcode},
            )


def add_document_line(
    *,
    document_id: int,
    user_id: int,
    product_code: str,
    qty: int,
    from_location_barcode: str | None = None,
    to_location_barcode: str | None = None,
) -> DocumentLine:
    """
    Scan a product onto a DRAFT document.

    Validates product, locations and (for WZ/MM) the current on-hand
    quantity at the source. Does not touch the ledger; confirmation repeats
    the stock check against whatever the ledger holds by then.
    """
    require_positive_qty(qty)

    def _op():
        document = _get_document(document_id, for_update=True)
        _require_draft(document)

        product = catalog_service.find_active_product_by_code(product_code)

        from_location = None
        if from_location_barcode:
            from_location = catalog_service.find_location_by_barcode(from_location_barcode)

        to_location = None
        if to_location_barcode:
            to_location = catalog_service.find_location_by_barcode(to_location_barcode)

        _check_line_locations(document.type, from_location, to_location)
        if from_location is not None:
            _check_source_location(from_location)

        if document.type in (DOC_TYPE_WZ, DOC_TYPE_MM):
            available = get_ledger().quantity_on_hand(product.id, from_location.id)
            if qty > available:
                raise InsufficientStockError(
                    available, qty, location=from_location.barcode, product=product.sku
                )

        line = DocumentLine(
            document_id=document.id,
            product_id=product.id,
            from_location_id=from_location.id if from_location else None,
            to_location_id=to_location.id if to_location else None,
            qty=qty,
            scanned_by_user_id=user_id,
        )
        db.session.add(line)
        db.session.flush()
        return line

    return run_in_transaction(_op)


def delete_document_line(*, document_id: int, line_id: int) -> None:
    def _op():
        document = _get_document(document_id, for_update=True)
        _require_draft(document)

        line = db.session.query(DocumentLine).filter_by(id=line_id, document_id=document.id).first()
        if not line:
            raise LineNotFoundError(f"Line {line_id} not found on document {document.number}")

        db.session.delete(line)
        db.session.flush()

    run_in_transaction(_op)


def _apply_line(ledger, document: Document, line: DocumentLine, user_id: int) -> dict:
    """Apply one line to the ledger and record its stock event."""
    product = line.product
    from_location = line.from_location
    to_location = line.to_location

    # Re-check against the ledger as it is now, not as it was at scan time
    _check_line_locations(document.type, from_location, to_location)

    if document.type in (DOC_TYPE_WZ, DOC_TYPE_MM):
        try:
            ledger.deduct(product.id, from_location.id, line.qty)
        except InsufficientStockError as exc:
            raise InsufficientStockError(
                exc.available, exc.requested, location=from_location.barcode, product=product.sku
            ) from exc

    if document.type in (DOC_TYPE_PZ, DOC_TYPE_MM):
        ledger.increase(product.id, to_location.id, line.qty)

    if document.type == DOC_TYPE_PZ:
        action = audit_service.ACTION_STOCK_IN
    elif document.type == DOC_TYPE_WZ:
        action = audit_service.ACTION_STOCK_OUT
    else:
        action = audit_service.ACTION_STOCK_MOVE

    audit_service.record_event(
        action,
        user_id=user_id,
        product_id=product.id,
        from_location_id=from_location.id if from_location else None,
        to_location_id=to_location.id if to_location else None,
        document_id=document.id,
        qty=line.qty,
    )

    return {
        "action": action,
        "line_id": line.id,
        "product_sku": product.sku,
        "from_location": from_location.barcode if from_location else None,
        "to_location": to_location.barcode if to_location else None,
        "qty": line.qty,
    }


def confirm_document(*, document_id: int, user_id: int) -> tuple[Document, list[dict]]:
    """
    Confirm a DRAFT document and apply its lines to the stock ledger.

    All lines and the status change form a single transaction: if any line
    fails (e.g. insufficient stock), nothing is persisted.

    Returns:
        (document, movements) where movements has one entry per applied line.

    Raises:
        DocumentNotFoundError, DocumentNotDraftError, DocumentEmptyError,
        InsufficientStockError, InvalidDocumentLineError
    """
    def _op():
        document = _get_document(document_id, for_update=True)
        _require_draft(document)

        lines = (
            db.session.query(DocumentLine)
            .filter_by(document_id=document.id)
            .order_by(DocumentLine.id.asc())
            .all()
        )
        if not lines:
            raise DocumentEmptyError(f"Document {document.number} has no lines")

        movements = []
        if document.type != DOC_TYPE_INV_ADJ:
            ledger = get_ledger(for_update=True)
            for line in lines:
                movements.append(_apply_line(ledger, document, line, user_id))

        document.status = DOC_STATUS_CONFIRMED
        document.confirmed_by_user_id = user_id
        document.confirmed_at = utcnow()
        db.session.flush()

        audit_service.record_event(
            audit_service.ACTION_DOC_CONFIRM,
            user_id=user_id,
            document_id=document.id,
            payload={"lines": len(lines)},
        )
        return document, movements

    document, movements = run_in_transaction(_op)
    current_app.logger.info(
        "Document %s confirmed by user %s (%d movements)", document.number, user_id, len(movements)
    )
    return document, movements


def cancel_document(*, document_id: int, user_id: int, reason: str | None = None) -> Document:
    """Cancel a DRAFT document. The ledger is never touched."""
    def _op():
        document = _get_document(document_id, for_update=True)
        _require_draft(document)

        document.status = DOC_STATUS_CANCELLED
        document.cancelled_by_user_id = user_id
        document.cancelled_at = utcnow()
        document.cancellation_reason = reason
        db.session.flush()

        audit_service.record_event(
            audit_service.ACTION_DOC_CANCEL,
            user_id=user_id,
            document_id=document.id,
            reason=reason,
        )
        return document

    return run_in_transaction(_op)


# =============================================================================
# Queries
# =============================================================================

def get_document_summary(document_id: int) -> dict:
    document = _get_document(document_id)
    lines = (
        db.session.query(DocumentLine)
        .filter_by(document_id=document.id)
        .order_by(DocumentLine.id.asc())
        .all()
    )
    return {
        "document": document.to_dict(),
        "lines": [line.to_dict() for line in lines],
        "line_count": len(lines),
        "total_qty": sum(line.qty for line in lines),
    }


def list_documents(
    *,
    document_type: str | None = None,
    status: str | None = None,
    warehouse_id: int | None = None,
    created_by_user_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page=None,
    limit=None,
) -> tuple[list[Document], dict]:
    """Newest first."""
    query = db.session.query(Document)

    if document_type:
        if document_type not in DOCUMENT_TYPES:
            raise ValidationError(f"Invalid document type: {document_type}")
        query = query.filter(Document.type == document_type)
    if status:
        if status not in DOCUMENT_STATUSES:
            raise ValidationError(f"Invalid document status: {status}")
        query = query.filter(Document.status == status)
    if warehouse_id is not None:
        query = query.filter(Document.warehouse_id == warehouse_id)
    if created_by_user_id is not None:
        query = query.filter(Document.created_by_user_id == created_by_user_id)
    if date_from is not None:
        query = query.filter(Document.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Document.created_at <= date_to)

    query = query.order_by(Document.created_at.desc(), Document.id.desc())
    return paginate(query, page, limit)
