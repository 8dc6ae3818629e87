"""
Inventory count tests.

Verifies:
- counted lines freeze the system quantity at first submission
- completion sets the ledger to the counted quantity and records the difference
- scoped locations are COUNTING while the count runs and released afterwards
- completion is atomic
- reopen re-locks locations without reversing adjustments
- only ACTIVE locations can be placed under a count
"""

import pytest

from wms.errors import (
    InsufficientStockError,
    InvalidQuantityError,
    InventoryEmptyError,
    InventoryNotFoundError,
    InventoryNotInProgressError,
    LineNotFoundError,
    LocationBlockedError,
    LocationCountingError,
    ValidationError,
)
from wms.models import AuditLog, InventoryCount, InventoryLine, Location
from wms.models.catalog import LOCATION_STATUS_ACTIVE, LOCATION_STATUS_BLOCKED, LOCATION_STATUS_COUNTING
from wms.services import count_service, document_service
from wms.services.stock_service import SqlStockLedger


def _start(user, warehouse, locations=(), name="Cycle count A"):
    return count_service.create_count(
        user_id=user.id,
        warehouse_id=warehouse.id,
        name=name,
        location_ids=[loc.id for loc in locations],
    )


def _submit(count, user, location_barcode, product_code, counted_qty):
    return count_service.submit_count(
        count_id=count.id,
        user_id=user.id,
        location_barcode=location_barcode,
        product_code=product_code,
        counted_qty=counted_qty,
    )


def _complete(count, user):
    return count_service.complete_count(count_id=count.id, user_id=user.id)


def _status(db_session, location):
    return db_session.get(Location, location.id).status


# =============================================================================
# CREATION AND LOCKING
# =============================================================================


class TestCreateCount:
    def test_locks_scoped_locations(self, db_session, manager, warehouse, loc_a, loc_b):
        count = _start(manager, warehouse, [loc_a])

        assert count.status == "IN_PROGRESS"
        assert count.to_dict()["location_ids"] == [loc_a.id]
        assert _status(db_session, loc_a) == LOCATION_STATUS_COUNTING
        assert _status(db_session, loc_b) == LOCATION_STATUS_ACTIVE

    def test_requires_name(self, db_session, manager, warehouse):
        with pytest.raises(ValidationError):
            _start(manager, warehouse, name="  ")

    def test_unknown_location(self, db_session, manager, warehouse, loc_a):
        with pytest.raises(ValidationError) as exc:
            count_service.create_count(
                user_id=manager.id, warehouse_id=warehouse.id, name="X", location_ids=[loc_a.id, 9999]
            )
        assert exc.value.details == {"location_ids": [9999]}
        assert InventoryCount.query.count() == 0
        assert _status(db_session, loc_a) == LOCATION_STATUS_ACTIVE

    def test_counting_location_rejects_issues_until_cancelled(
        self, db_session, manager, warehouse, product, loc_a, put_stock
    ):
        put_stock(product, loc_a, 5)
        count = _start(manager, warehouse, [loc_a])

        doc = document_service.create_document(user_id=manager.id, document_type="WZ", warehouse_id=warehouse.id)

        def _issue():
            return document_service.add_document_line(
                document_id=doc.id, user_id=manager.id, product_code="ABC-100", qty=1,
                from_location_barcode="A-01-01",
            )

        with pytest.raises(LocationCountingError):
            _issue()

        count_service.cancel_count(count_id=count.id, user_id=manager.id)

        assert _status(db_session, loc_a) == LOCATION_STATUS_ACTIVE
        assert _issue().qty == 1

    def test_blocked_location_cannot_be_counted(self, db_session, manager, warehouse, loc_a, loc_b):
        db_session.get(Location, loc_a.id).status = LOCATION_STATUS_BLOCKED
        db_session.commit()

        with pytest.raises(LocationBlockedError) as exc:
            _start(manager, warehouse, [loc_a, loc_b])

        assert exc.value.details == {"location": "A-01-01"}
        assert InventoryCount.query.count() == 0
        assert _status(db_session, loc_a) == LOCATION_STATUS_BLOCKED
        assert _status(db_session, loc_b) == LOCATION_STATUS_ACTIVE

    def test_location_counted_by_one_count_at_a_time(self, db_session, manager, warehouse, loc_a):
        first = _start(manager, warehouse, [loc_a], name="First")

        with pytest.raises(LocationCountingError):
            _start(manager, warehouse, [loc_a], name="Second")

        count_service.cancel_count(count_id=first.id, user_id=manager.id)
        assert _status(db_session, loc_a) == LOCATION_STATUS_ACTIVE
        assert InventoryCount.query.count() == 1


# =============================================================================
# SUBMISSIONS
# =============================================================================


class TestSubmitCount:
    def test_first_submission_freezes_system_qty(self, db_session, worker, manager, warehouse, product, loc_a, put_stock):
        row = put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])

        line = _submit(count, worker, "A-01-01", "ABC-100", 7)
        assert (line.system_qty, line.counted_qty, line.difference) == (10, 7, -3)

        row.qty = 4
        db_session.commit()

        line = _submit(count, worker, "A-01-01", "ABC-100", 12)
        assert line.system_qty == 10
        assert line.counted_qty == 12
        assert InventoryLine.query.count() == 1

    def test_submission_leaves_ledger_alone(self, db_session, worker, manager, warehouse, product, loc_a, put_stock, on_hand):
        put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 3)
        assert on_hand(product, loc_a) == 10

    def test_product_never_stocked_has_zero_system_qty(self, db_session, worker, manager, warehouse, product, loc_a):
        count = _start(manager, warehouse, [loc_a])
        line = _submit(count, worker, "A-01-01", "5901234123457", 2)
        assert line.system_qty == 0

    def test_negative_counted_qty(self, db_session, worker, manager, warehouse, product, loc_a):
        count = _start(manager, warehouse, [loc_a])
        with pytest.raises(InvalidQuantityError):
            _submit(count, worker, "A-01-01", "ABC-100", -1)

    def test_zero_is_a_valid_count(self, db_session, worker, manager, warehouse, product, loc_a, put_stock):
        put_stock(product, loc_a, 4)
        count = _start(manager, warehouse, [loc_a])
        line = _submit(count, worker, "A-01-01", "ABC-100", 0)
        assert line.difference == -4

    def test_update_is_audited(self, db_session, worker, manager, warehouse, product, loc_a):
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 1)
        _submit(count, worker, "A-01-01", "ABC-100", 2)

        events = AuditLog.query.filter_by(action="INV_LINE").order_by(AuditLog.id.asc()).all()
        assert len(events) == 2
        assert "updated" not in events[0].payload
        assert events[1].payload["updated"] is True
        assert events[1].qty == 2

    def test_locks_count_header(self, db_session, worker, manager, warehouse, product, loc_a, monkeypatch):
        count = _start(manager, warehouse, [loc_a])
        locked = []

        def recording_lock(query):
            locked.append(query.column_descriptions[0]["entity"])
            return query.with_for_update()

        monkeypatch.setattr(count_service, "lock_for_update", recording_lock)
        line = _submit(count, worker, "A-01-01", "ABC-100", 1)
        count_service.update_count_line(count_id=count.id, line_id=line.id, user_id=worker.id, counted_qty=2)
        count_service.delete_count_line(count_id=count.id, line_id=line.id, user_id=worker.id)

        assert locked == [InventoryCount, InventoryCount, InventoryCount]

    def test_unknown_count(self, db_session, worker, product, loc_a):
        with pytest.raises(InventoryNotFoundError):
            count_service.submit_count(
                count_id=777, user_id=worker.id, location_barcode="A-01-01",
                product_code="ABC-100", counted_qty=1,
            )


class TestCountLines:
    def test_update_line(self, db_session, worker, manager, warehouse, product, loc_a, put_stock):
        put_stock(product, loc_a, 5)
        count = _start(manager, warehouse, [loc_a])
        line = _submit(count, worker, "A-01-01", "ABC-100", 5)

        updated = count_service.update_count_line(
            count_id=count.id, line_id=line.id, user_id=manager.id, counted_qty=8
        )
        assert updated.counted_qty == 8
        assert updated.system_qty == 5

    def test_delete_line(self, db_session, worker, manager, warehouse, product, loc_a):
        count = _start(manager, warehouse, [loc_a])
        line = _submit(count, worker, "A-01-01", "ABC-100", 5)

        count_service.delete_count_line(count_id=count.id, line_id=line.id, user_id=manager.id)

        assert InventoryLine.query.count() == 0
        deleted = AuditLog.query.filter_by(action="INV_LINE").order_by(AuditLog.id.desc()).first()
        assert deleted.payload["deleted"] is True
        assert deleted.qty == 0

    def test_line_from_other_count(self, db_session, worker, manager, warehouse, product, loc_a, loc_b):
        first = _start(manager, warehouse, [loc_a], name="First")
        second = _start(manager, warehouse, [loc_b], name="Second")
        line = _submit(first, worker, "A-01-01", "ABC-100", 1)

        with pytest.raises(LineNotFoundError):
            count_service.delete_count_line(count_id=second.id, line_id=line.id, user_id=manager.id)


# =============================================================================
# COMPLETION
# =============================================================================


class TestCompleteCount:
    def test_counted_quantity_wins(self, db_session, worker, manager, warehouse, product, loc_a, put_stock, on_hand):
        put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 7)
        _submit(count, worker, "A-01-01", "ABC-100", 12)

        completed, adjustments = _complete(count, manager)

        assert completed.status == "COMPLETED"
        assert completed.completed_by_user_id == manager.id
        assert on_hand(product, loc_a) == 12
        assert adjustments == [{
            "line_id": adjustments[0]["line_id"],
            "product_sku": "ABC-100",
            "location_barcode": "A-01-01",
            "system_qty": 10,
            "counted_qty": 12,
            "difference": 2,
            "applied": 2,
        }]

        adj = AuditLog.query.filter_by(action="STOCK_ADJ").one()
        assert adj.qty == 2
        assert adj.inventory_count_id == count.id
        assert adj.payload == {"system_qty": 10, "counted_qty": 12, "applied": 2}

    def test_releases_locations(self, db_session, worker, manager, warehouse, product, loc_a, loc_b, put_stock):
        put_stock(product, loc_a, 3)
        count = _start(manager, warehouse, [loc_a, loc_b])
        _submit(count, worker, "A-01-01", "ABC-100", 3)

        _complete(count, manager)

        assert _status(db_session, loc_a) == LOCATION_STATUS_ACTIVE
        assert _status(db_session, loc_b) == LOCATION_STATUS_ACTIVE

    def test_matching_lines_produce_no_adjustment(self, db_session, worker, manager, warehouse, product, loc_a, put_stock):
        put_stock(product, loc_a, 3)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 3)

        _, adjustments = _complete(count, manager)

        assert adjustments == []
        assert AuditLog.query.filter_by(action="STOCK_ADJ").count() == 0
        summary = AuditLog.query.filter_by(action="INV_COMPLETE").one()
        assert summary.payload == {"adjustments_count": 0, "lines": 1}

    def test_shrinks_container_stock_without_going_negative(
        self, db_session, worker, manager, warehouse, product, loc_a, container, put_stock, on_hand
    ):
        put_stock(product, loc_a, 1)
        put_stock(product, loc_a, 6, container=container)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 2)

        _, adjustments = _complete(count, manager)

        assert adjustments[0]["difference"] == -5
        assert on_hand(product, loc_a) == 2

    def test_empty_count(self, db_session, manager, warehouse, loc_a):
        count = _start(manager, warehouse, [loc_a])
        with pytest.raises(InventoryEmptyError):
            _complete(count, manager)
        assert _status(db_session, loc_a) == LOCATION_STATUS_COUNTING

    def test_completion_is_atomic(
        self, db_session, worker, manager, warehouse, product, other_product, loc_a, put_stock, on_hand, monkeypatch
    ):
        put_stock(product, loc_a, 10)
        put_stock(other_product, loc_a, 4)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 6)
        _submit(count, worker, "A-01-01", "XYZ-200", 9)

        original = SqlStockLedger.set_quantity
        calls = []

        def flaky_set_quantity(self, product_id, location_id, qty):
            calls.append(product_id)
            if len(calls) == 2:
                raise RuntimeError("storage failure")
            return original(self, product_id, location_id, qty)

        monkeypatch.setattr(SqlStockLedger, "set_quantity", flaky_set_quantity)

        with pytest.raises(RuntimeError):
            _complete(count, manager)

        assert on_hand(product, loc_a) == 10
        assert on_hand(other_product, loc_a) == 4
        assert db_session.get(InventoryCount, count.id).status == "IN_PROGRESS"
        assert _status(db_session, loc_a) == LOCATION_STATUS_COUNTING
        assert AuditLog.query.filter_by(action="STOCK_ADJ").count() == 0

    def test_cannot_complete_twice(self, db_session, worker, manager, warehouse, product, loc_a):
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 1)
        _complete(count, manager)

        with pytest.raises(InventoryNotInProgressError):
            _complete(count, manager)
        with pytest.raises(InventoryNotInProgressError):
            _submit(count, worker, "A-01-01", "ABC-100", 2)

    def test_released_location_accepts_issues(self, db_session, worker, manager, warehouse, product, loc_a, put_stock):
        put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 7)
        _complete(count, manager)

        doc = document_service.create_document(user_id=manager.id, document_type="WZ", warehouse_id=warehouse.id)
        with pytest.raises(InsufficientStockError):
            document_service.add_document_line(
                document_id=doc.id, user_id=manager.id, product_code="ABC-100", qty=8,
                from_location_barcode="A-01-01",
            )
        line = document_service.add_document_line(
            document_id=doc.id, user_id=manager.id, product_code="ABC-100", qty=7,
            from_location_barcode="A-01-01",
        )
        assert line.qty == 7


# =============================================================================
# CANCEL / REOPEN
# =============================================================================


class TestCancelAndReopen:
    def test_cancel_releases_without_ledger_effect(
        self, db_session, worker, manager, warehouse, product, loc_a, put_stock, on_hand
    ):
        put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 1)

        cancelled = count_service.cancel_count(count_id=count.id, user_id=manager.id)

        assert cancelled.status == "CANCELLED"
        assert on_hand(product, loc_a) == 10
        assert _status(db_session, loc_a) == LOCATION_STATUS_ACTIVE

    def test_blocked_location_stays_blocked(self, db_session, manager, warehouse, loc_a):
        count = _start(manager, warehouse, [loc_a])
        location = db_session.get(Location, loc_a.id)
        location.status = LOCATION_STATUS_BLOCKED
        db_session.commit()

        count_service.cancel_count(count_id=count.id, user_id=manager.id)

        assert _status(db_session, loc_a) == LOCATION_STATUS_BLOCKED

    def test_cancel_requires_in_progress(self, db_session, manager, warehouse, loc_a):
        count = _start(manager, warehouse, [loc_a])
        count_service.cancel_count(count_id=count.id, user_id=manager.id)
        with pytest.raises(InventoryNotInProgressError):
            count_service.cancel_count(count_id=count.id, user_id=manager.id)

    def test_reopen_relocks_and_keeps_adjustments(
        self, db_session, worker, admin, manager, warehouse, product, loc_a, put_stock, on_hand
    ):
        put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 7)
        _complete(count, manager)

        reopened = count_service.reopen_count(count_id=count.id, user_id=admin.id)

        assert reopened.status == "IN_PROGRESS"
        assert reopened.completed_at is None
        assert reopened.completed_by_user_id is None
        assert _status(db_session, loc_a) == LOCATION_STATUS_COUNTING
        assert on_hand(product, loc_a) == 7

        event = AuditLog.query.filter_by(action="INV_REOPEN").one()
        assert event.payload == {"previous_status": "COMPLETED"}

    def test_recompleting_writes_no_second_adjustment(
        self, db_session, worker, admin, manager, warehouse, product, loc_a, put_stock, on_hand
    ):
        put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 7)
        _complete(count, manager)
        count_service.reopen_count(count_id=count.id, user_id=admin.id)

        completed, adjustments = _complete(count, manager)

        assert completed.status == "COMPLETED"
        assert adjustments == []
        assert on_hand(product, loc_a) == 7
        assert [e.qty for e in AuditLog.query.filter_by(action="STOCK_ADJ").all()] == [-3]
        assert _status(db_session, loc_a) == LOCATION_STATUS_ACTIVE

    def test_reopen_refuses_blocked_location(self, db_session, worker, admin, manager, warehouse, product, loc_a):
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 1)
        _complete(count, manager)
        db_session.get(Location, loc_a.id).status = LOCATION_STATUS_BLOCKED
        db_session.commit()

        with pytest.raises(LocationBlockedError):
            count_service.reopen_count(count_id=count.id, user_id=admin.id)

        assert db_session.get(InventoryCount, count.id).status == "COMPLETED"
        assert _status(db_session, loc_a) == LOCATION_STATUS_BLOCKED

    def test_reopen_in_progress_count(self, db_session, admin, manager, warehouse, loc_a):
        count = _start(manager, warehouse, [loc_a])
        with pytest.raises(ValidationError):
            count_service.reopen_count(count_id=count.id, user_id=admin.id)


class TestDeleteCount:
    def test_delete_in_progress_releases_locations(
        self, db_session, worker, manager, warehouse, product, loc_a, put_stock, on_hand
    ):
        put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 4)
        count_id = count.id

        count_service.delete_count(count_id=count_id, user_id=manager.id)

        assert db_session.get(InventoryCount, count_id) is None
        assert InventoryLine.query.count() == 0
        assert _status(db_session, loc_a) == LOCATION_STATUS_ACTIVE
        assert on_hand(product, loc_a) == 10

        event = AuditLog.query.filter_by(action="INV_DELETE").one()
        assert event.inventory_count_id == count_id
        assert event.payload == {"name": "Cycle count A", "status": "IN_PROGRESS", "lines": 1}
        assert AuditLog.query.filter_by(action="INV_START", inventory_count_id=count_id).count() == 1

    def test_delete_cancelled(self, db_session, manager, warehouse, loc_a):
        count = _start(manager, warehouse, [loc_a])
        count_service.cancel_count(count_id=count.id, user_id=manager.id)

        count_service.delete_count(count_id=count.id, user_id=manager.id)

        assert InventoryCount.query.count() == 0

    def test_completed_count_is_kept(self, db_session, worker, manager, warehouse, product, loc_a):
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 1)
        _complete(count, manager)

        with pytest.raises(ValidationError):
            count_service.delete_count(count_id=count.id, user_id=manager.id)

        assert db_session.get(InventoryCount, count.id).status == "COMPLETED"
        assert AuditLog.query.filter_by(action="INV_DELETE").count() == 0

    def test_unknown_count(self, db_session, manager):
        with pytest.raises(InventoryNotFoundError):
            count_service.delete_count(count_id=404, user_id=manager.id)


# =============================================================================
# QUERIES
# =============================================================================


class TestCountQueries:
    def test_location_view(self, db_session, worker, manager, warehouse, product, other_product, loc_a, container, put_stock):
        put_stock(product, loc_a, 2)
        put_stock(product, loc_a, 3, container=container)
        put_stock(other_product, loc_a, 1)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 5)

        view = count_service.get_location_for_counting(count_id=count.id, location_barcode="A-01-01")

        expected = {e["product_sku"]: e["system_qty"] for e in view["expected_products"]}
        assert expected == {"ABC-100": 5, "XYZ-200": 1}
        assert len(view["counted_lines"]) == 1
        assert view["location"]["barcode"] == "A-01-01"

    def test_summary(self, db_session, worker, manager, warehouse, product, other_product, loc_a, put_stock):
        put_stock(product, loc_a, 10)
        count = _start(manager, warehouse, [loc_a])
        _submit(count, worker, "A-01-01", "ABC-100", 7)
        _submit(count, worker, "A-01-01", "XYZ-200", 2)

        summary = count_service.get_count_summary(count.id)

        assert summary["line_count"] == 2
        assert summary["lines_with_difference"] == 2
        assert summary["total_difference"] == -1

    def test_rename(self, db_session, manager, warehouse):
        count = _start(manager, warehouse)
        renamed = count_service.rename_count(count_id=count.id, name="Year end")
        assert renamed.name == "Year end"

    def test_list_by_status(self, db_session, manager, warehouse, loc_a, loc_b):
        first = _start(manager, warehouse, [loc_a], name="First")
        _start(manager, warehouse, [loc_b], name="Second")
        count_service.cancel_count(count_id=first.id, user_id=manager.id)

        items, meta = count_service.list_counts(status="CANCELLED")
        assert [c.id for c in items] == [first.id]
        assert meta["total"] == 1
