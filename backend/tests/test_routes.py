"""
HTTP API tests.

Verifies:
- X-User-Id attribution and role checks
- error payloads carry the machine-readable code and details
- end-to-end document and count flows through the API
- location blocking and count administration are ADMIN/MANAGER only
"""

import pytest

from wms.models import Location, User
from wms.models.catalog import LOCATION_STATUS_COUNTING


def _create_document(client, headers, warehouse, document_type):
    resp = client.post(
        "/api/documents",
        json={"type": document_type, "warehouse_id": warehouse.id},
        headers=headers,
    )
    assert resp.status_code == 201
    return resp.get_json()["document"]


# =============================================================================
# SYSTEM / ATTRIBUTION
# =============================================================================


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "healthy"


class TestAttribution:
    def test_missing_header(self, client):
        resp = client.get("/api/documents")
        assert resp.status_code == 401

    def test_malformed_header(self, client):
        resp = client.get("/api/documents", headers={"X-User-Id": "abc"})
        assert resp.status_code == 401

    def test_unknown_user(self, client):
        resp = client.get("/api/documents", headers={"X-User-Id": "999"})
        assert resp.status_code == 401

    def test_inactive_user(self, client, db_session, worker):
        headers = {"X-User-Id": str(worker.id)}
        db_session.get(User, worker.id).is_active = False
        db_session.commit()

        resp = client.get("/api/documents", headers=headers)
        assert resp.status_code == 401


# =============================================================================
# DOCUMENTS
# =============================================================================


class TestDocumentRoutes:
    def test_receive_then_issue(self, client, worker_headers, warehouse, product, loc_a, on_hand):
        pz = _create_document(client, worker_headers, warehouse, "PZ")
        resp = client.post(
            f"/api/documents/{pz['id']}/lines",
            json={"product_code": "5901234123457", "qty": 10, "to_location": "A-01-01"},
            headers=worker_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["line"]["product_sku"] == "ABC-100"

        resp = client.post(f"/api/documents/{pz['id']}/confirm", headers=worker_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["document"]["status"] == "CONFIRMED"
        assert len(body["movements"]) == 1

        wz = _create_document(client, worker_headers, warehouse, "WZ")
        client.post(
            f"/api/documents/{wz['id']}/lines",
            json={"product_code": "ABC-100", "qty": 4, "from_location": "A-01-01"},
            headers=worker_headers,
        )
        resp = client.post(f"/api/documents/{wz['id']}/confirm", headers=worker_headers)
        assert resp.status_code == 200
        assert on_hand(product, loc_a) == 6

    def test_insufficient_stock_payload(self, client, worker_headers, warehouse, product, loc_a, put_stock):
        put_stock(product, loc_a, 5)
        wz = _create_document(client, worker_headers, warehouse, "WZ")

        resp = client.post(
            f"/api/documents/{wz['id']}/lines",
            json={"product_code": "ABC-100", "qty": 8, "from_location": "A-01-01"},
            headers=worker_headers,
        )

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"] == {"available": 5, "requested": 8, "location": "A-01-01", "product": "ABC-100"}

    def test_missing_fields(self, client, worker_headers, warehouse):
        resp = client.post("/api/documents", json={"type": "PZ"}, headers=worker_headers)
        assert resp.status_code == 400

    def test_unknown_document(self, client, worker_headers):
        resp = client.get("/api/documents/404", headers=worker_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "DOCUMENT_NOT_FOUND"

    def test_unknown_product(self, client, worker_headers, warehouse, loc_a):
        pz = _create_document(client, worker_headers, warehouse, "PZ")
        resp = client.post(
            f"/api/documents/{pz['id']}/lines",
            json={"product_code": "NOPE", "qty": 1, "to_location": "A-01-01"},
            headers=worker_headers,
        )
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "PRODUCT_NOT_FOUND"

    def test_counting_location_conflict(self, client, worker_headers, db_session, warehouse, product, loc_a, put_stock):
        put_stock(product, loc_a, 5)
        db_session.get(Location, loc_a.id).status = LOCATION_STATUS_COUNTING
        db_session.commit()

        wz = _create_document(client, worker_headers, warehouse, "WZ")
        resp = client.post(
            f"/api/documents/{wz['id']}/lines",
            json={"product_code": "ABC-100", "qty": 1, "from_location": "A-01-01"},
            headers=worker_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "LOCATION_COUNTING"

    def test_cancel_and_list(self, client, worker_headers, warehouse):
        pz = _create_document(client, worker_headers, warehouse, "PZ")
        resp = client.post(
            f"/api/documents/{pz['id']}/cancel", json={"reason": "duplicate"}, headers=worker_headers
        )
        assert resp.status_code == 200
        assert resp.get_json()["document"]["status"] == "CANCELLED"

        resp = client.get("/api/documents?status=CANCELLED", headers=worker_headers)
        body = resp.get_json()
        assert [d["id"] for d in body["items"]] == [pz["id"]]
        assert body["pagination"]["total"] == 1

    def test_bad_date_filter(self, client, worker_headers):
        resp = client.get("/api/documents?date_from=yesterday", headers=worker_headers)
        assert resp.status_code == 400


# =============================================================================
# INVENTORY COUNTS
# =============================================================================


class TestInventoryRoutes:
    @pytest.fixture
    def count(self, client, manager_headers, warehouse, loc_a):
        resp = client.post(
            "/api/inventory",
            json={"warehouse_id": warehouse.id, "name": "Aisle A", "location_ids": [loc_a.id]},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        return resp.get_json()["count"]

    def test_count_flow(self, client, count, worker_headers, manager_headers, product, loc_a, put_stock, on_hand):
        put_stock(product, loc_a, 10)

        resp = client.post(
            f"/api/inventory/{count['id']}/lines",
            json={"location": "A-01-01", "product_code": "ABC-100", "counted_qty": 7},
            headers=worker_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["line"]["system_qty"] == 10

        resp = client.post(f"/api/inventory/{count['id']}/complete", headers=manager_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"]["status"] == "COMPLETED"
        assert body["adjustments"][0]["difference"] == -3
        assert on_hand(product, loc_a) == 7

    def test_worker_cannot_complete(self, client, count, worker_headers):
        resp = client.post(f"/api/inventory/{count['id']}/complete", headers=worker_headers)
        assert resp.status_code == 403
        assert resp.get_json()["required_roles"] == ["ADMIN", "MANAGER"]

    def test_only_admin_reopens(self, client, count, manager_headers, admin_headers):
        client.post(f"/api/inventory/{count['id']}/cancel", headers=manager_headers)

        resp = client.post(f"/api/inventory/{count['id']}/reopen", headers=manager_headers)
        assert resp.status_code == 403

        resp = client.post(f"/api/inventory/{count['id']}/reopen", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["count"]["status"] == "IN_PROGRESS"

    def test_empty_count(self, client, count, manager_headers):
        resp = client.post(f"/api/inventory/{count['id']}/complete", headers=manager_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVENTORY_EMPTY"

    def test_unknown_count(self, client, worker_headers):
        resp = client.get("/api/inventory/999", headers=worker_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "INVENTORY_NOT_FOUND"


# =============================================================================
# STOCK / AUDIT
# =============================================================================


class TestStockRoutes:
    def test_by_code(self, client, worker_headers, product, loc_a, loc_b, put_stock):
        put_stock(product, loc_a, 3)
        put_stock(product, loc_b, 4)

        resp = client.get("/api/stock/by-code?product=ABC-100", headers=worker_headers)
        assert resp.status_code == 200
        assert resp.get_json()["total_qty"] == 7

        resp = client.get("/api/stock/by-code?product=ABC-100&location=B-02-03", headers=worker_headers)
        assert resp.get_json()["stock"] == {"qty": 4}

    def test_by_code_requires_a_code(self, client, worker_headers):
        resp = client.get("/api/stock/by-code", headers=worker_headers)
        assert resp.status_code == 400

    def test_split_and_container_contents(self, client, worker_headers, product, loc_a, container, put_stock):
        put_stock(product, loc_a, 5)

        resp = client.post(
            "/api/stock/split",
            json={"product_code": "ABC-100", "location": "A-01-01", "container": "K000001", "qty": 2},
            headers=worker_headers,
        )
        assert resp.status_code == 200

        resp = client.get("/api/stock/containers/K000001", headers=worker_headers)
        body = resp.get_json()
        assert body["total_qty"] == 2
        assert body["unique_products"] == 1

    def test_move_container(self, client, worker_headers, product, loc_a, loc_b, container, put_stock, on_hand):
        put_stock(product, loc_a, 3, container=container)

        resp = client.post(
            "/api/stock/containers/K000001/move", json={"location": "B-02-03"}, headers=worker_headers
        )
        assert resp.status_code == 200
        assert on_hand(product, loc_a) == 0
        assert on_hand(product, loc_b) == 3


class TestAuditRoutes:
    def test_worker_cannot_browse(self, client, worker_headers):
        resp = client.get("/api/audit", headers=worker_headers)
        assert resp.status_code == 403

    def test_unknown_action_filter(self, client, admin_headers):
        resp = client.get("/api/audit?action=NOPE", headers=admin_headers)
        assert resp.status_code == 400

    def test_document_events(self, client, admin_headers, warehouse):
        pz = _create_document(client, admin_headers, warehouse, "PZ")

        resp = client.get(f"/api/audit?document_id={pz['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert [e["action"] for e in resp.get_json()["items"]] == ["DOC_CREATE"]

        resp = client.get(f"/api/audit/documents/{pz['id']}", headers=admin_headers)
        assert [e["action"] for e in resp.get_json()["items"]] == ["DOC_CREATE"]


class TestCountAdministration:
    def test_worker_cannot_open_count(self, client, worker_headers, warehouse, loc_a, db_session):
        resp = client.post(
            "/api/inventory",
            json={"warehouse_id": warehouse.id, "name": "Aisle A", "location_ids": [loc_a.id]},
            headers=worker_headers,
        )
        assert resp.status_code == 403
        assert db_session.get(Location, loc_a.id).status == "ACTIVE"

    def test_blocked_location_cannot_be_counted(self, client, manager_headers, warehouse, loc_a):
        client.put(f"/api/locations/{loc_a.id}/status", json={"status": "BLOCKED"}, headers=manager_headers)

        resp = client.post(
            "/api/inventory",
            json={"warehouse_id": warehouse.id, "name": "Aisle A", "location_ids": [loc_a.id]},
            headers=manager_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "LOCATION_BLOCKED"

    def test_delete_count(self, client, manager_headers, worker_headers, warehouse, loc_a, db_session):
        resp = client.post(
            "/api/inventory",
            json={"warehouse_id": warehouse.id, "name": "Aisle A", "location_ids": [loc_a.id]},
            headers=manager_headers,
        )
        count_id = resp.get_json()["count"]["id"]

        resp = client.delete(f"/api/inventory/{count_id}", headers=worker_headers)
        assert resp.status_code == 403

        resp = client.delete(f"/api/inventory/{count_id}", headers=manager_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/inventory/{count_id}", headers=manager_headers).status_code == 404
        assert db_session.get(Location, loc_a.id).status == "ACTIVE"


class TestLocationRoutes:
    def test_block_then_issue_is_rejected(self, client, manager_headers, worker_headers, warehouse, product, loc_a, put_stock):
        put_stock(product, loc_a, 5)

        resp = client.put(
            f"/api/locations/{loc_a.id}/status",
            json={"status": "BLOCKED", "block_reason": "Damaged rack"},
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["location"]["block_reason"] == "Damaged rack"

        wz = _create_document(client, worker_headers, warehouse, "WZ")
        resp = client.post(
            f"/api/documents/{wz['id']}/lines",
            json={"product_code": "ABC-100", "qty": 1, "from_location": "A-01-01"},
            headers=worker_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "LOCATION_BLOCKED"

    def test_worker_cannot_block(self, client, worker_headers, loc_a):
        resp = client.put(f"/api/locations/{loc_a.id}/status", json={"status": "BLOCKED"}, headers=worker_headers)
        assert resp.status_code == 403

    def test_status_required(self, client, manager_headers, loc_a):
        resp = client.put(f"/api/locations/{loc_a.id}/status", json={}, headers=manager_headers)
        assert resp.status_code == 400

    def test_unknown_location(self, client, manager_headers):
        resp = client.put("/api/locations/404/status", json={"status": "BLOCKED"}, headers=manager_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "LOCATION_NOT_FOUND"
