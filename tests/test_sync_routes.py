"""
Trigger surface tests: auth gate, scheduler and admin runs, single-operation runs, history and status
"""
from app.config import settings
from app.models import InventoryItem, SyncLog, utcnow
from conftest import SCHEDULER_TOKEN, inventory_payloads, make_integration, make_store

BASE = "/api/admin/sync"


def admin_headers(token):
    return {"Authorization": f"Bearer {token}"}


class TestHealth:
    def test_health_needs_no_auth(self, client):
        response = client.get(f"{BASE}/health")
        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_options_background_is_liveness(self, client, carrier):
        response = client.options(f"{BASE}/background")
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert carrier.requests == []


class TestAuthGate:
    def test_no_credentials_rejected_without_carrier_calls(self, client, integration, carrier, db_session):
        response = client.post(f"{BASE}/background")
        assert response.status_code == 401
        assert carrier.requests == []
        assert db_session.query(SyncLog).count() == 0

    def test_wrong_token_rejected(self, client, integration, carrier):
        response = client.post(f"{BASE}/background", headers={"X-Sync-Token": "guess"})
        assert response.status_code == 401
        response = client.post(f"{BASE}/background", headers=admin_headers("not-a-jwt"))
        assert response.status_code == 401
        assert carrier.requests == []

    def test_unset_scheduler_token_never_matches(self, client, integration, carrier, monkeypatch):
        monkeypatch.setattr(settings, "SYNC_AUTH_TOKEN", "")
        response = client.post(f"{BASE}/background", headers={"X-Sync-Token": ""})
        assert response.status_code == 401
        assert carrier.requests == []

    def test_history_requires_auth(self, client):
        assert client.get(f"{BASE}/background").status_code == 401

    def test_single_operation_requires_admin_session(self, client, integration):
        response = client.post(f"{BASE}/inventory", headers={"X-Sync-Token": SCHEDULER_TOKEN})
        assert response.status_code == 401


class TestSchedulerTrigger:
    def test_header_token_runs_full_sync(self, client, integration, carrier, db_session):
        carrier.collections["inventory"] = inventory_payloads(3)

        response = client.post(f"{BASE}/background", headers={"X-Sync-Token": SCHEDULER_TOKEN})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        summary = body["summary"]
        assert summary["totalOperations"] == 4
        assert summary["successfulOperations"] == 4
        assert summary["added"] == 3
        assert summary["operations"][-1]["operation"] == "inventory"
        assert db_session.query(InventoryItem).count() == 3
        assert db_session.query(SyncLog).one().trigger == "scheduler"

    def test_bearer_scheduler_token_with_store_and_operations(self, client, store, integration, carrier):
        response = client.post(
            f"{BASE}/background",
            headers=admin_headers(SCHEDULER_TOKEN),
            json={"storeId": store.id, "operations": ["inventory-locations"]},
        )
        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["storeId"] == store.id
        assert [op["operation"] for op in summary["operations"]] == ["inventory_locations"]
        assert carrier.pages_requested("inventory_locations") == [1]

    def test_unknown_operation_is_bad_request(self, client, integration, carrier):
        response = client.post(
            f"{BASE}/background", headers={"X-Sync-Token": SCHEDULER_TOKEN}, json={"operations": ["orders"]}
        )
        assert response.status_code == 400
        assert carrier.requests == []

    def test_failed_operations_still_return_summary(self, client, integration, carrier):
        carrier.failures["warehouses"] = 503
        response = client.post(f"{BASE}/background", headers={"X-Sync-Token": SCHEDULER_TOKEN})
        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["status"] == "completed_with_failures"
        assert summary["failedOperations"] == 1

    def test_history_lists_runs(self, client, integration):
        client.post(f"{BASE}/background", headers={"X-Sync-Token": SCHEDULER_TOKEN})
        response = client.get(f"{BASE}/background", headers={"X-Sync-Token": SCHEDULER_TOKEN})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalSyncs"] == 1
        assert data["lastSync"]["trigger"] == "scheduler"


class TestAdminTrigger:
    def test_admin_syncs_own_store(self, client, store, integration, auth_token, carrier, db_session):
        carrier.collections["inventory"] = inventory_payloads(2)
        response = client.post(f"{BASE}/background", headers=admin_headers(auth_token))
        assert response.status_code == 200
        assert response.json()["summary"]["storeId"] == store.id
        assert db_session.query(SyncLog).one().trigger == "admin"

    def test_admin_cannot_sync_another_store(self, client, integration, auth_token, db_session, carrier):
        other = make_store(db_session, "Other")
        response = client.post(f"{BASE}/background", headers=admin_headers(auth_token), json={"storeId": other.id})
        assert response.status_code == 403
        assert carrier.requests == []

    def test_concurrent_run_is_conflict(self, client, store, integration, auth_token, registry, carrier):
        with registry.acquire(store.id, "shipstation"):
            response = client.post(f"{BASE}/background", headers=admin_headers(auth_token))
        assert response.status_code == 409
        assert carrier.requests == []

    def test_admin_history_is_scoped_to_store(self, client, store, integration, auth_token, db_session):
        db_session.add(SyncLog(store_id=None, trigger="scheduler", timestamp=utcnow(), results=[]))
        db_session.commit()
        client.post(f"{BASE}/background", headers=admin_headers(auth_token))
        data = client.get(f"{BASE}/background", headers=admin_headers(auth_token)).json()["data"]
        assert data["totalSyncs"] == 1
        assert data["syncHistory"][0]["storeId"] == store.id

    def test_status(self, client, store, integration, auth_token):
        client.post(f"{BASE}/background", headers=admin_headers(auth_token))
        response = client.get(f"{BASE}/status", headers=admin_headers(auth_token))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["integration"]["isActive"] is True
        assert data["integration"]["syncStatus"] == "completed"
        assert data["statistics"]["totalSyncs"] == 1
        assert data["running"] is False

    def test_status_includes_scheduled_full_syncs(self, client, store, integration, auth_token, db_session):
        make_integration(db_session, make_store(db_session, "Neighbour"))
        response = client.post(f"{BASE}/background", headers={"X-Sync-Token": SCHEDULER_TOKEN})
        assert response.status_code == 200
        assert response.json()["summary"]["totalOperations"] == 8

        data = client.get(f"{BASE}/status", headers=admin_headers(auth_token)).json()["data"]
        assert data["statistics"]["totalSyncs"] == 1
        assert data["statistics"]["totalOperations"] == 4
        assert data["lastSync"]["trigger"] == "scheduler"
        assert {op["storeId"] for op in data["lastSync"]["operations"]} == {store.id}
        assert data["systemStatus"]["healthy"] is True

        history = client.get(f"{BASE}/background", headers=admin_headers(auth_token)).json()["data"]
        assert history["totalSyncs"] == 1



class TestSingleOperation:
    def test_inventory_operation(self, client, integration, auth_token, carrier):
        carrier.collections["inventory"] = inventory_payloads(5)
        response = client.post(f"{BASE}/inventory", headers=admin_headers(auth_token))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["operation"] == "inventory"
        assert (data["addedCount"], data["updatedCount"], data["totalCount"]) == (5, 0, 5)

    def test_dashed_operation_name(self, client, integration, auth_token, carrier):
        response = client.post(f"{BASE}/inventory-warehouses", headers=admin_headers(auth_token))
        assert response.status_code == 200
        assert response.json()["data"]["operation"] == "inventory_warehouses"

    def test_unknown_operation_is_not_found(self, client, integration, auth_token):
        response = client.post(f"{BASE}/orders", headers=admin_headers(auth_token))
        assert response.status_code == 404

    def test_unknown_operation_without_credential_is_not_found(self, client, auth_token, carrier):
        response = client.post(f"{BASE}/orders", headers=admin_headers(auth_token))
        assert response.status_code == 404
        assert carrier.requests == []


    def test_missing_credential_is_bad_request(self, client, auth_token, carrier):
        response = client.post(f"{BASE}/inventory", headers=admin_headers(auth_token))
        assert response.status_code == 400
        assert carrier.requests == []

    def test_carrier_failure_is_bad_gateway(self, client, integration, auth_token, carrier):
        carrier.failures["inventory"] = 429
        response = client.post(f"{BASE}/inventory", headers=admin_headers(auth_token))
        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["error"].startswith("HTTP 429")
