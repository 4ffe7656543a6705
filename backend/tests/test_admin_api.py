"""
Delivery note API, approval chain administration, health and CLI tests.
"""

import pytest

from gudang.models import ApprovalLevel, Division
from gudang.services import approval_service


# =============================================================================
# DELIVERY NOTES
# =============================================================================


class TestDeliveryNotesApi:

    def test_create_returns_chain_and_notification(self, client, service_headers, chain, products):
        division, (supervisor, manager) = chain
        product_a, _ = products

        resp = client.post(
            "/api/delivery-notes",
            json={
                "customer_name": "PT Maju Jaya",
                "division_id": division.id,
                "delivery_date": "2026-10-20",
                "items": [{"product_id": product_a.id, "quantity": 2}],
            },
            headers=service_headers,
        )

        assert resp.status_code == 201
        body = resp.get_json()
        note = body["delivery_note"]
        assert note["approval_status"] == "pending_approval"
        assert [a["approver_name"] for a in note["approvals"]] == ["Supervisor", "Manager"]
        assert all("approval_token" not in a for a in note["approvals"])
        assert body["notification"]["sentTo"] == supervisor.email

    def test_create_insufficient_stock_is_409(self, client, service_headers, chain, products):
        division, _ = chain
        product_a, _ = products

        resp = client.post(
            "/api/delivery-notes",
            json={
                "customer_name": "PT Maju Jaya",
                "division_id": division.id,
                "delivery_date": "2026-10-20",
                "items": [{"product_id": product_a.id, "quantity": 11}],
            },
            headers=service_headers,
        )

        assert resp.status_code == 409
        assert "tidak mencukupi" in resp.get_json()["error"]

    def test_create_without_items_is_400(self, client, service_headers, chain):
        division, _ = chain

        resp = client.post(
            "/api/delivery-notes",
            json={"customer_name": "X", "division_id": division.id, "delivery_date": "2026-10-20", "items": []},
            headers=service_headers,
        )

        assert resp.status_code == 400

    def test_detail_includes_ledger_and_emails(self, client, service_headers, chain, make_note):
        division, _ = chain
        note = make_note(division)

        resp = client.get(f"/api/delivery-notes/{note.id}", headers=service_headers)

        assert resp.status_code == 200
        data = resp.get_json()["delivery_note"]
        assert len(data["items"]) == 2
        assert len(data["stock_transactions"]) == 2
        assert data["notifications"][0]["kind"] == "approval_request"

    def test_detail_unknown_is_404(self, client, service_headers, db_session):
        resp = client.get("/api/delivery-notes/999", headers=service_headers)
        assert resp.status_code == 404

    def test_list_filters(self, client, service_headers, chain, make_note):
        division, (supervisor, _) = chain
        note = make_note(division)
        approval_service.resolve(note.id, supervisor.id, "reject")

        pending = client.get("/api/delivery-notes?approval_status=pending_approval", headers=service_headers)
        rejected = client.get("/api/delivery-notes?approval_status=rejected", headers=service_headers)
        bad = client.get("/api/delivery-notes?approval_status=lost", headers=service_headers)

        assert pending.get_json()["delivery_notes"] == []
        assert [n["id"] for n in rejected.get_json()["delivery_notes"]] == [note.id]
        assert bad.status_code == 400

    def test_update_items_after_send_is_400(self, client, service_headers, chain, make_note, products):
        division, _ = chain
        product_a, _ = products
        note = make_note(division)
        client.put(f"/api/delivery-notes/{note.id}", json={"status": "sent"}, headers=service_headers)

        resp = client.put(
            f"/api/delivery-notes/{note.id}",
            json={"items": [{"product_id": product_a.id, "quantity": 1}]},
            headers=service_headers,
        )

        assert resp.status_code == 400

    def test_delete(self, client, service_headers, chain, make_note):
        division, _ = chain
        note = make_note(division)

        resp = client.delete(f"/api/delivery-notes/{note.id}", headers=service_headers)

        assert resp.status_code == 200
        assert client.get(f"/api/delivery-notes/{note.id}", headers=service_headers).status_code == 404

    def test_remind(self, client, service_headers, chain, make_note, email_sender):
        division, (supervisor, _) = chain
        note = make_note(division)
        email_sender.reset()

        resp = client.post(f"/api/delivery-notes/{note.id}/remind", headers=service_headers)

        assert resp.status_code == 200
        assert resp.get_json()["sentTo"] == supervisor.email
        assert email_sender.sent[0]["subject"].startswith("[REMINDER]")

    def test_remind_final_note_is_409(self, client, service_headers, chain, make_note):
        division, (supervisor, _) = chain
        note = make_note(division)
        approval_service.resolve(note.id, supervisor.id, "reject")

        resp = client.post(f"/api/delivery-notes/{note.id}/remind", headers=service_headers)

        assert resp.status_code == 409


# =============================================================================
# APPROVAL CHAIN ADMINISTRATION
# =============================================================================


class TestApprovalLevelsApi:

    def test_create_division_and_levels(self, client, service_headers, db_session):
        resp = client.post("/api/divisions", json={"name": "Gudang B"}, headers=service_headers)
        assert resp.status_code == 201
        division_id = resp.get_json()["division"]["id"]

        first = client.post(
            "/api/approval-levels",
            json={"division_id": division_id, "name": "Supervisor", "email": "spv@test"},
            headers=service_headers,
        )
        second = client.post(
            "/api/approval-levels",
            json={"division_id": division_id, "name": "Manager", "email": "mgr@test"},
            headers=service_headers,
        )

        assert first.get_json()["approval_level"]["level_order"] == 1
        assert second.get_json()["approval_level"]["level_order"] == 2

        listing = client.get(f"/api/approval-levels?division_id={division_id}", headers=service_headers)
        assert [lvl["name"] for lvl in listing.get_json()["approval_levels"]] == ["Supervisor", "Manager"]

    def test_duplicate_division_is_409(self, client, service_headers, chain):
        resp = client.post("/api/divisions", json={"name": "Gudang Utama"}, headers=service_headers)
        assert resp.status_code == 409

    def test_duplicate_order_is_409(self, client, service_headers, chain):
        division, _ = chain

        resp = client.post(
            "/api/approval-levels",
            json={"division_id": division.id, "name": "Lain", "email": "lain@test", "level_order": 1},
            headers=service_headers,
        )

        assert resp.status_code == 409

    @pytest.mark.parametrize(
        "body",
        [
            {"name": "X", "email": "x@test"},
            {"division_id": 1, "name": "X", "email": "not-an-email"},
            {"division_id": 1, "name": "   ", "email": "x@test"},
        ],
    )
    def test_invalid_level_is_400(self, client, service_headers, db_session, body):
        division = Division(name="Validasi")
        db_session.add(division)
        db_session.commit()
        if "division_id" in body:
            body = dict(body, division_id=division.id)

        resp = client.post("/api/approval-levels", json=body, headers=service_headers)

        assert resp.status_code == 400

    def test_level_with_waiting_notes_is_locked(self, client, service_headers, chain, make_note):
        division, (supervisor, _) = chain
        make_note(division)

        update = client.put(
            f"/api/approval-levels/{supervisor.id}", json={"email": "new@test"}, headers=service_headers
        )
        delete = client.delete(f"/api/approval-levels/{supervisor.id}", headers=service_headers)

        assert update.status_code == 409
        assert delete.status_code == 409

    def test_unused_level_can_change(self, client, service_headers, chain):
        division, (_, manager) = chain

        update = client.put(
            f"/api/approval-levels/{manager.id}", json={"email": "boss@test"}, headers=service_headers
        )
        assert update.status_code == 200
        assert update.get_json()["approval_level"]["email"] == "boss@test"

        delete = client.delete(f"/api/approval-levels/{manager.id}", headers=service_headers)
        assert delete.status_code == 200
        assert client.put(
            f"/api/approval-levels/{manager.id}", json={"name": "X"}, headers=service_headers
        ).status_code == 404


# =============================================================================
# HEALTH
# =============================================================================


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["email"]["status"] == "healthy"

    def test_cors_allows_configured_origins(self, client, db_session):
        allowed = client.get("/health", headers={"Origin": "http://localhost:5173"})
        other = client.get("/health", headers={"Origin": "https://evil.test"})

        assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "Access-Control-Allow-Origin" not in other.headers


# =============================================================================
# CLI
# =============================================================================


class TestCli:

    def test_create_chain(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["divisions", "create", "--name", "Gudang C"])
        assert result.exit_code == 0, result.output

        result = runner.invoke(
            args=["levels", "create", "--division", "Gudang C", "--name", "Supervisor", "--email", "spv@c.test"]
        )
        assert result.exit_code == 0, result.output
        assert "order 1" in result.output

        assert ApprovalLevel.query.filter_by(email="spv@c.test").count() == 1

    def test_unknown_division(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["levels", "create", "--division", "Nope", "--name", "X", "--email", "x@test"]
        )

        assert result.exit_code != 0
        assert "not found" in result.output

    def test_pending_and_remind(self, app, chain, make_note, email_sender):
        division, (supervisor, _) = chain
        note = make_note(division)
        email_sender.reset()
        runner = app.test_cli_runner()

        pending = runner.invoke(args=["approvals", "pending"])
        remind = runner.invoke(args=["approvals", "remind"])

        assert note.delivery_number in pending.output
        assert "Supervisor" in pending.output
        assert "Reminders sent: 1, failed: 0" in remind.output
        assert email_sender.sent[0]["to"] == [supervisor.email]
