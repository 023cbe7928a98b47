"""
HTTP tests through the ASGI app.

These use only the ``client`` fixture for writes; direct sessions are opened
from ``session_factory`` between requests, never held across one.
"""
import uuid
from datetime import date, timedelta

from sqlalchemy import update

from conftest import PASSWORD, USERS
from medistock.models import User

API = "/api/v1"


async def receive_invoice(client, headers, seeded, number, lines, batch_number):
    response = await client.post(f"{API}/invoice-receiving/", headers=headers, json={
        "invoice_number": number,
        "invoice_date": date.today().isoformat(),
        "supplier_name": "Cipla Wholesale",
        "warehouse_id": str(seeded.warehouse_id),
        "lines": [
            {
                "product_id": str(seeded.products[code]),
                "batch_number": batch_number,
                "expiry_date": (date.today() + timedelta(days=400)).isoformat(),
                "received_qty": quantity,
            }
            for code, quantity in lines.items()
        ],
    })
    assert response.status_code == 201, response.text
    return response.json()


async def raise_qc(client, auth_headers, seeded, number="INV-API-0001", lines=None, batch_number="BATCH-API"):
    invoice = await receive_invoice(
        client, auth_headers("qc_inspector"), seeded, number, lines or {"PARA-500": 100}, batch_number
    )
    response = await client.post(f"{API}/quality-control/", headers=auth_headers("qc_manager"), json={
        "invoice_receiving_id": invoice["id"],
        "assigned_to": str(seeded.users["qc_inspector"]),
        "priority": "high",
    })
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================================
# AUTHENTICATION
# ============================================================================

async def test_login_returns_token_pair(client):
    email = USERS["qc_inspector"][0]
    response = await client.post(f"{API}/auth/login", json={"email": email, "password": PASSWORD})

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["expires_in"] > 0

    me = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == email
    assert "quality_control:submit" in me.json()["permissions"]
    assert "quality_control:approve" not in me.json()["permissions"]

    refreshed = await client.post(f"{API}/auth/refresh", json={"refresh_token": body["refresh_token"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["access_token"]


async def test_login_with_wrong_password(client):
    response = await client.post(
        f"{API}/auth/login", json={"email": USERS["viewer"][0], "password": "not-the-password"}
    )

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid email or password"}


async def test_access_token_cannot_be_used_to_refresh(client, auth_headers):
    token = auth_headers("viewer")["Authorization"].split()[1]
    response = await client.post(f"{API}/auth/refresh", json={"refresh_token": token})
    assert response.status_code == 401


async def test_requests_without_valid_token_are_unauthenticated(client):
    missing = await client.get(f"{API}/quality-control/")
    garbage = await client.get(f"{API}/quality-control/", headers={"Authorization": "Bearer not.a.jwt"})

    assert missing.status_code == 401
    assert garbage.status_code == 401
    assert missing.json()["success"] is False
    assert missing.headers["www-authenticate"] == "Bearer"


async def test_inactive_user_is_unauthenticated(client, session_factory, seeded, auth_headers):
    headers = auth_headers("qc_inspector_2")
    async with session_factory() as session:
        await session.execute(update(User).where(User.id == seeded.users["qc_inspector_2"]).values(is_active=False))
        await session.commit()

    response = await client.get(f"{API}/auth/me", headers=headers)
    assert response.status_code == 401


async def test_viewer_cannot_create(client, seeded, auth_headers):
    response = await client.post(f"{API}/quality-control/", headers=auth_headers("viewer"), json={
        "invoice_receiving_id": str(uuid.uuid4()),
    })

    assert response.status_code == 403
    assert response.json()["success"] is False
    assert "quality_control:create" in response.json()["message"]


# ============================================================================
# RECEIVING WORKFLOW
# ============================================================================

async def test_receiving_flow_posts_stock(client, seeded, auth_headers):
    qc = await raise_qc(client, auth_headers, seeded)
    assert qc["status"] == "pending"
    assert qc["priority"] == "high"
    assert qc["lines"][0]["received_qty"] == 100

    inspector, manager = auth_headers("qc_inspector"), auth_headers("qc_manager")
    response = await client.post(f"{API}/quality-control/{qc['id']}/start", headers=inspector)
    assert response.json()["status"] == "in_progress"

    response = await client.put(f"{API}/quality-control/{qc['id']}", headers=inspector, json={
        "products": [{"product_id": str(seeded.products["PARA-500"]), "result": "passed"}],
    })
    assert response.status_code == 200, response.text
    assert response.json()["lines"][0]["passed_qty"] == 100

    response = await client.post(f"{API}/quality-control/{qc['id']}/submit", headers=inspector)
    assert response.json()["status"] == "submitted"

    response = await client.post(
        f"{API}/quality-control/{qc['id']}/approve", headers=manager, json={"approval_remarks": "OK"}
    )
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "approved"

    wh_inspector, wh_manager = auth_headers("wh_inspector"), auth_headers("wh_manager")
    response = await client.post(f"{API}/warehouse-approval/", headers=wh_manager, json={
        "quality_control_id": qc["id"],
        "assigned_to": str(seeded.users["wh_inspector"]),
    })
    assert response.status_code == 201, response.text
    wa = response.json()
    assert wa["lines"][0]["qc_passed_qty"] == 100

    response = await client.put(f"{API}/warehouse-approval/{wa['id']}", headers=wh_inspector, json={
        "products": [{
            "product_id": str(seeded.products["PARA-500"]),
            "result": "approved",
            "storage_location": "COLD-02",
        }],
    })
    assert response.status_code == 200, response.text

    await client.post(f"{API}/warehouse-approval/{wa['id']}/submit", headers=wh_inspector)
    response = await client.post(f"{API}/warehouse-approval/{wa['id']}/approve", headers=wh_manager)
    assert response.status_code == 200, response.text
    approved = response.json()
    assert approved["status"] == "approved"
    assert approved["lines"][0]["inventory_integrated"] is True

    response = await client.get(
        f"{API}/inventory/",
        headers=wh_manager,
        params={"product_id": str(seeded.products["PARA-500"]), "batch_number": "BATCH-API"},
    )
    assert response.status_code == 200
    records = response.json()["items"]
    assert len(records) == 1
    assert records[0]["current_stock"] == 100
    assert records[0]["status"] == "available"
    assert records[0]["storage_location"] == "COLD-02"

    response = await client.get(f"{API}/inventory/{records[0]['id']}/movements", headers=wh_manager)
    assert [m["reference_type"] for m in response.json()] == ["warehouse_approval"]

    response = await client.get(f"{API}/invoice-receiving/{qc['invoice_receiving_id']}", headers=wh_manager)
    assert response.json()["workflow_status"] == "inventory_updated"
    assert response.json()["status"] == "completed"


async def test_invalid_transition_envelope(client, seeded, auth_headers):
    qc = await raise_qc(client, auth_headers, seeded)

    response = await client.post(f"{API}/quality-control/{qc['id']}/approve", headers=auth_headers("qc_manager"))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["current_status"] == "pending"
    assert body["allowed_actions"] == ["start", "update", "submit", "assign"]


async def test_reject_without_reason_is_rejected(client, seeded, auth_headers):
    qc = await raise_qc(client, auth_headers, seeded)
    await client.post(f"{API}/quality-control/{qc['id']}/submit", headers=auth_headers("qc_inspector"))

    response = await client.post(
        f"{API}/quality-control/{qc['id']}/reject", headers=auth_headers("qc_manager"), json={}
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Rejection reason is required"


async def test_malformed_and_unknown_ids(client, auth_headers):
    headers = auth_headers("qc_manager")

    malformed = await client.get(f"{API}/quality-control/not-a-uuid", headers=headers)
    assert malformed.status_code == 400
    assert malformed.json()["success"] is False
    assert "errors" in malformed.json()

    unknown = await client.get(f"{API}/quality-control/{uuid.uuid4()}", headers=headers)
    assert unknown.status_code == 404
    assert unknown.json() == {"success": False, "message": "Quality control record not found"}


async def test_create_validation_errors_use_envelope(client, auth_headers):
    response = await client.post(f"{API}/quality-control/", headers=auth_headers("qc_manager"), json={})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "invoice_receiving_id" in response.json()["message"]


async def test_bulk_assign_endpoint(client, seeded, auth_headers):
    first = await raise_qc(client, auth_headers, seeded, "INV-API-0101", batch_number="B-1")
    second = await raise_qc(client, auth_headers, seeded, "INV-API-0102", batch_number="B-2")
    missing = str(uuid.uuid4())

    response = await client.post(f"{API}/quality-control/bulk-assign", headers=auth_headers("qc_manager"), json={
        "ids": [first["id"], second["id"], missing],
        "assigned_to": str(seeded.users["qc_inspector_2"]),
        "priority": "urgent",
    })

    assert response.status_code == 200, response.text
    body = response.json()
    assert (body["requested"], body["assigned"], body["failed"]) == (3, 2, 1)
    failures = [result for result in body["results"] if not result["success"]]
    assert failures[0]["id"] == missing

    listing = await client.get(
        f"{API}/quality-control/",
        headers=auth_headers("qc_manager"),
        params={"assigned_to": str(seeded.users["qc_inspector_2"]), "priority": "urgent"},
    )
    assert listing.json()["total"] == 2


async def test_reporting_endpoints(client, seeded, auth_headers):
    await raise_qc(client, auth_headers, seeded)
    headers = auth_headers("qc_manager")

    dashboard = await client.get(f"{API}/quality-control/dashboard", headers=headers, params={"timeframe_days": 30})
    assert dashboard.status_code == 200, dashboard.text
    assert dashboard.json()["status_counts"]["pending"] == 1

    workload = await client.get(f"{API}/quality-control/workload", headers=headers)
    assert workload.json()["assignees"][0]["user_id"] == str(seeded.users["qc_inspector"])

    bad_scope = await client.get(f"{API}/quality-control/workload", headers=headers, params={"scope": "later"})
    assert bad_scope.status_code == 400

    statistics = await client.get(f"{API}/quality-control/statistics", headers=headers)
    assert statistics.json()["priority_breakdown"]["high"] == 1


# ============================================================================
# NOTIFICATIONS, AUDIT, HEALTH
# ============================================================================

async def test_notifications_for_current_user(client, seeded, auth_headers):
    await raise_qc(client, auth_headers, seeded, "INV-API-0201", batch_number="N-1")
    await raise_qc(client, auth_headers, seeded, "INV-API-0202", batch_number="N-2")
    headers = auth_headers("qc_inspector")

    response = await client.get(f"{API}/notifications/my", headers=headers)
    body = response.json()
    assert body["total"] == 2
    assert body["unread"] == 2
    assert {item["notification_type"] for item in body["items"]} == {"qc_assignment"}

    first_id = body["items"][0]["id"]
    read = await client.post(f"{API}/notifications/{first_id}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["is_read"] is True

    # Someone else's notification looks missing
    foreign = await client.post(f"{API}/notifications/{first_id}/read", headers=auth_headers("viewer"))
    assert foreign.status_code == 404

    all_read = await client.post(f"{API}/notifications/read-all", headers=headers)
    assert all_read.json() == {"updated": 1}

    unread = await client.get(f"{API}/notifications/my", headers=headers, params={"is_read": False})
    assert unread.json()["total"] == 0


async def test_audit_log_listing(client, seeded, auth_headers):
    qc = await raise_qc(client, auth_headers, seeded)

    response = await client.get(
        f"{API}/audit-logs", headers=auth_headers("qc_manager"), params={"entity_id": qc["id"]}
    )
    assert response.status_code == 200, response.text
    actions = [item["action"] for item in response.json()["items"]]
    assert actions == ["qc_create"]

    denied = await client.get(f"{API}/audit-logs", headers=auth_headers("qc_inspector"))
    assert denied.status_code == 403


async def test_health_and_root(client):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["checks"]["database"] == "connected"

    root = await client.get("/")
    assert root.json()["docs"] == "/docs"


async def test_update_holder_records_results_on_colleagues_qc(client, seeded, auth_headers):
    qc = await raise_qc(client, auth_headers, seeded)
    payload = {"products": [{"product_id": str(seeded.products["PARA-500"]), "result": "passed"}]}

    response = await client.put(
        f"{API}/quality-control/{qc['id']}", headers=auth_headers("qc_inspector_2"), json=payload
    )
    assert response.status_code == 200, response.text
    assert response.json()["lines"][0]["passed_qty"] == 100

    response = await client.post(f"{API}/quality-control/{qc['id']}/submit", headers=auth_headers("qc_inspector_2"))
    assert response.status_code == 403


# ============================================================================
# INVENTORY
# ============================================================================

async def test_reserve_release_and_adjust_endpoints(client, seeded, auth_headers):
    manager = auth_headers("wh_manager")
    response = await client.post(f"{API}/inventory/", headers=manager, json={
        "product_id": str(seeded.products["AMOX-250"]),
        "warehouse_id": str(seeded.warehouse_id),
        "batch_number": "AM-API",
        "quantity": 30,
    })
    assert response.status_code == 201, response.text
    record_id = response.json()["id"]

    response = await client.post(f"{API}/inventory/{record_id}/reserve", headers=manager, json={"quantity": 10})
    assert response.status_code == 200, response.text
    assert (response.json()["reserved_stock"], response.json()["available_stock"]) == (10, 20)

    response = await client.post(f"{API}/inventory/{record_id}/reserve", headers=manager, json={"quantity": 21})
    assert response.status_code == 400
    assert response.json()["success"] is False

    response = await client.post(f"{API}/inventory/{record_id}/release", headers=manager, json={"quantity": 4})
    assert response.json()["available_stock"] == 24

    response = await client.post(f"{API}/inventory/{record_id}/adjust", headers=manager, json={
        "adjustment_type": "remove", "quantity": 24, "reason": "Expired strips",
    })
    assert response.status_code == 200, response.text
    body = response.json()
    assert (body["current_stock"], body["reserved_stock"], body["available_stock"]) == (6, 6, 0)
    assert body["status"] == "reserved"

    response = await client.get(f"{API}/inventory/{record_id}/movements", headers=manager)
    assert [m["movement_type"] for m in response.json()] == ["inward", "reserve", "release", "outward"]


async def test_stock_changes_need_inventory_update(client, seeded, auth_headers):
    response = await client.post(
        f"{API}/inventory/{uuid.uuid4()}/reserve", headers=auth_headers("wh_inspector"), json={"quantity": 1}
    )
    assert response.status_code == 403
    assert "inventory:update" in response.json()["message"]
