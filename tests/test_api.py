from fastapi.testclient import TestClient

from src.driver_core.main import create_app

client = TestClient(create_app())


def test_root_and_health():
    assert client.get("/").json()["status"] == "running"
    assert client.get("/api/health").json() == {"status": "ok"}


def test_normalize_legacy_status():
    response = client.post("/api/statuses/normalize", json={"raw": "picked_up"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "packageCollected"
    assert body["wire_value"] == "package_collected"
    assert body["action_label"] == "Navigate to Destination"
    assert body["stage"] == "headingToDelivery"
    assert body["diagnostic"] is None


def test_normalize_unknown_status_reports_diagnostic():
    body = client.post("/api/statuses/normalize", json={"raw": "warp"}).json()

    assert body["status"] == "pending"
    assert body["diagnostic"] == {"kind": "UnknownStatus", "raw": "warp"}


def test_next_states_use_wire_values():
    body = client.get("/api/statuses/driver_assigned/next").json()

    assert body["next"] == ["cancelled", "failed", "going_to_pickup"]


def test_invalid_transition_is_a_conflict():
    response = client.post("/api/statuses/validate", json={"current": "in_transit", "requested": "at_pickup"})

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRANSITION_INVALID"


def test_valid_transition_and_unknown_target():
    ok = client.post("/api/statuses/validate", json={"current": "at_destination", "requested": "delivered"})
    assert ok.status_code == 200
    assert ok.json()["valid"] is True

    unknown = client.post("/api/statuses/validate", json={"requested": "beamed_up"})
    assert unknown.status_code == 422


def test_snap_endpoint():
    response = client.post(
        "/api/tracking/snap",
        json={
            "fix": {"latitude": 0.0018, "longitude": 0.005},
            "geometry": [[0.0, 0.0], [0.01, 0.0]],
            "threshold_meters": 50,
            "destination": {"latitude": 0.0, "longitude": 0.01},
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["off_route"] is True
    assert body["arrived"] is False
    assert abs(body["progress"] - 0.5) < 1e-6


def test_snap_rejects_malformed_vertices():
    response = client.post("/api/tracking/snap", json={"fix": {"latitude": 0, "longitude": 0}, "geometry": [[1.0]]})

    assert response.status_code == 422


def test_snap_rejects_vertices_outside_coordinate_bounds():
    for vertex in ([181.0, 10.0], [10.0, -91.0]):
        response = client.post(
            "/api/tracking/snap",
            json={"fix": {"latitude": 0, "longitude": 0}, "geometry": [[0.0, 0.0], vertex]},
        )

        assert response.status_code == 422


def test_ledger_endpoint():
    response = client.post(
        "/api/remittance/ledger",
        json={
            "now": "2025-03-02T12:00:00Z",
            "balance": {
                "driver_id": "driver-1",
                "current_balance": 500,
                "pending_remittance": 500,
                "last_remittance_date": "2025-03-01T08:00:00Z",
                "next_remittance_due": "2025-03-02T08:00:00Z",
                "updated_at": "2025-03-01T08:00:00Z",
            },
            "remittances": [
                {"id": "R1", "driver_id": "driver-1", "amount": 500, "status": "pending", "created_at": "2025-03-01T08:00:00Z"}
            ],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["balance"]["has_overdue_balance"] is True
    assert body["balance"]["hours_until_due"] == 0
    assert body["remittances"][0]["stored_status"] == "pending"
    assert body["remittances"][0]["effective_status"] == "overdue"
    assert body["overdue_count"] == 1


def test_malformed_ledger_record_is_unprocessable():
    response = client.post(
        "/api/remittance/ledger",
        json={"remittances": [{"id": "R1", "driver_id": "d", "amount": 1, "status": "lost", "created_at": "2025-03-01T08:00:00Z"}]},
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_RECORD_INVALID"
