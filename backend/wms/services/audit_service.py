# Overview: Append-only audit events for stock, document and count activity.

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditLog, Document
from ..pagination import paginate
from ..errors import DocumentNotFoundError
"""
Audit Invariants (authoritative)

- Append-only: rows are never updated or deleted.
- No domain logic here; callers decide what happened.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back confirmation leaves no events behind.
"""


# Document lifecycle
ACTION_DOC_CREATE = "DOC_CREATE"
ACTION_DOC_CONFIRM = "DOC_CONFIRM"
ACTION_DOC_CANCEL = "DOC_CANCEL"

# Ledger movements
ACTION_STOCK_IN = "STOCK_IN"
ACTION_STOCK_OUT = "STOCK_OUT"
ACTION_STOCK_MOVE = "STOCK_MOVE"
ACTION_STOCK_ADJ = "STOCK_ADJ"
ACTION_STOCK_SPLIT = "STOCK_SPLIT"
ACTION_CONTAINER_MOVE = "CONTAINER_MOVE"

# Inventory counts
ACTION_INV_START = "INV_START"
ACTION_INV_LINE = "INV_LINE"
ACTION_INV_COMPLETE = "INV_COMPLETE"
ACTION_INV_CANCEL = "INV_CANCEL"
ACTION_INV_REOPEN = "INV_REOPEN"
ACTION_INV_DELETE = "INV_DELETE"

# Locations
ACTION_LOCATION_STATUS = "LOCATION_STATUS"

AUDIT_ACTIONS = (
    ACTION_DOC_CREATE,
    ACTION_DOC_CONFIRM,
    ACTION_DOC_CANCEL,
    ACTION_STOCK_IN,
    ACTION_STOCK_OUT,
    ACTION_STOCK_MOVE,
    ACTION_STOCK_ADJ,
    ACTION_STOCK_SPLIT,
    ACTION_CONTAINER_MOVE,
    ACTION_INV_START,
    ACTION_INV_LINE,
    ACTION_INV_COMPLETE,
    ACTION_INV_CANCEL,
    ACTION_INV_REOPEN,
    ACTION_INV_DELETE,
    ACTION_LOCATION_STATUS,
)


class AuditError(Exception):
    """Raised when an audit event is malformed."""
    pass


def build_event(
    action: str,
    *,
    user_id: int | None,
    product_id: int | None = None,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    container_id: int | None = None,
    document_id: int | None = None,
    inventory_count_id: int | None = None,
    qty: int | None = None,
    reason: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """Map an event onto an (unsaved) AuditLog row. No session access."""
    if action not in AUDIT_ACTIONS:
        raise AuditError(f"Unknown audit action: {action}")

    return AuditLog(
        action=action,
        user_id=user_id,
        product_id=product_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        container_id=container_id,
        document_id=document_id,
        inventory_count_id=inventory_count_id,
        qty=qty,
        reason=reason,
        payload=payload,
    )


def record_event(action: str, **fields) -> AuditLog:
    """
    Append an audit event to the current transaction.

    Flushes so the row gets its id, but never commits: the event is
    persisted iff the enclosing unit of work commits.
    """
    event = build_event(action, **fields)
    db.session.add(event)
    db.session.flush()
    return event


def list_audit_logs(
    *,
    action: str | None = None,
    user_id: int | None = None,
    product_id: int | None = None,
    location_id: int | None = None,
    document_id: int | None = None,
    inventory_count_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page=None,
    limit=None,
) -> tuple[list[AuditLog], dict]:
    """Newest first. `location_id` matches either side of a movement."""
    query = db.session.query(AuditLog)

    if action:
        query = query.filter(AuditLog.action == action)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if product_id is not None:
        query = query.filter(AuditLog.product_id == product_id)
    if location_id is not None:
        query = query.filter(
            (AuditLog.from_location_id == location_id) | (AuditLog.to_location_id == location_id)
        )
    if document_id is not None:
        query = query.filter(AuditLog.document_id == document_id)
    if inventory_count_id is not None:
        query = query.filter(AuditLog.inventory_count_id == inventory_count_id)
    if date_from is not None:
        query = query.filter(AuditLog.created_at >= date_from)
    if date_to is not None:
        query = query.filter(AuditLog.created_at <= date_to)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return paginate(query, page, limit)


def get_document_history(document_id: int) -> list[AuditLog]:
    """All events of one document in the order they happened."""
    if not db.session.get(Document, document_id):
        raise DocumentNotFoundError(f"Document {document_id} not found")

    return (
        db.session.query(AuditLog)
        .filter(AuditLog.document_id == document_id)
        .order_by(AuditLog.id.asc())
        .all()
    )
