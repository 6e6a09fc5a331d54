############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# test_api.py: End-to-end tests through the HTTP API
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""End-to-end API tests against an in-process application."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from backend.app.db import crud


def _storage_failure():
    return AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk full")))


class TestHealth:
    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.asyncio
    async def test_readiness(self, client):
        response = await client.get("/readyz")
        assert response.status_code == 200
        assert response.json()["checks"]["database"] is True

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "labchain_pending_requests" in response.text

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        response = await client.get("/healthz", headers={"X-Request-ID": "abc-123"})
        assert response.headers["x-request-id"] == "abc-123"


class TestAuthFlow:
    """First-time setup, login and logout."""

    @pytest.mark.asyncio
    async def test_setup_gate(self, client):
        assert (await client.get("/api/auth/setup")).json() == {"setup_required": True}

        response = await client.post(
            "/api/auth/setup", json={"username": "admin", "password": "correct horse"}
        )
        assert response.status_code == 201
        assert response.json()["username"] == "admin"
        assert "session" in response.cookies

        assert (await client.get("/api/auth/setup")).json() == {"setup_required": False}

        again = await client.post(
            "/api/auth/setup", json={"username": "second", "password": "correct horse"}
        )
        assert again.status_code == 409
        assert again.json()["detail"] == "Setup already completed"

    @pytest.mark.asyncio
    async def test_setup_logs_in(self, admin_client):
        response = await admin_client.get("/api/auth/me")
        assert response.status_code == 200
        assert response.json()["username"] == "admin"

    @pytest.mark.asyncio
    async def test_anonymous_admin_access_rejected(self, client):
        assert (await client.get("/api/auth/me")).status_code == 401
        assert (await client.get("/api/admin/node-requests")).status_code == 401
        assert (await client.post("/api/admin/node-requests/1/approve")).status_code == 401

    @pytest.mark.asyncio
    async def test_tampered_cookie_rejected(self, client):
        await client.post(
            "/api/auth/setup", json={"username": "admin", "password": "correct horse"}
        )
        client.cookies.clear()

        response = await client.get(
            "/api/auth/me", headers={"Cookie": "session=forged.value.here"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_and_logout(self, admin_client):
        await admin_client.post("/api/auth/logout")
        assert (await admin_client.get("/api/auth/me")).status_code == 401

        bad = await admin_client.post(
            "/api/auth/login", json={"username": "admin", "password": "wrong horse"}
        )
        assert bad.status_code == 401

        good = await admin_client.post(
            "/api/auth/login", json={"username": "admin", "password": "correct horse"}
        )
        assert good.status_code == 200
        assert (await admin_client.get("/api/auth/me")).status_code == 200

    @pytest.mark.asyncio
    async def test_logout_when_anonymous(self, client):
        response = await client.post("/api/auth/logout")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_password_change_revokes_other_sessions(self, app, admin_client):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as other:
            await other.post(
                "/api/auth/login", json={"username": "admin", "password": "correct horse"}
            )
            assert (await other.get("/api/auth/me")).status_code == 200

            response = await admin_client.post(
                "/api/auth/password",
                json={"current_password": "correct horse", "new_password": "battery staple"},
            )
            assert response.status_code == 200

            assert (await other.get("/api/auth/me")).status_code == 401
            assert (await admin_client.get("/api/auth/me")).status_code == 200

    @pytest.mark.asyncio
    async def test_password_change_wrong_current(self, admin_client):
        response = await admin_client.post(
            "/api/auth/password",
            json={"current_password": "nope nope", "new_password": "battery staple"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Current password is incorrect"

    @pytest.mark.asyncio
    async def test_change_username(self, admin_client):
        response = await admin_client.post("/api/auth/username", json={"username": "operator"})
        assert response.status_code == 200
        assert (await admin_client.get("/api/auth/me")).json()["username"] == "operator"


class TestNodeSubmissionFlow:
    """Submit, review and publish a community node."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, admin_client, node_payload):
        client = admin_client

        submitted = await client.post("/api/requests/nodes", json=node_payload)
        assert submitted.status_code == 201
        tracking_id = submitted.json()["tracking_id"]
        assert submitted.json()["status"] == "pending"

        lookup = await client.get(f"/api/requests/nodes/{tracking_id.lower()}")
        assert lookup.status_code == 200
        assert lookup.json()["status"] == "pending"
        assert "contact_email" not in lookup.json()
        assert "admin_notes" not in lookup.json()

        duplicate = await client.post("/api/requests/nodes", json=node_payload)
        assert duplicate.status_code == 409
        assert tracking_id in duplicate.json()["detail"]

        pending = await client.get("/api/admin/node-requests", params={"status": "pending"})
        assert [r["tracking_id"] for r in pending.json()] == [tracking_id]
        request_id = pending.json()[0]["id"]

        approved = await client.post(
            f"/api/admin/node-requests/{request_id}/approve", json={"admin_notes": "ok"}
        )
        assert approved.status_code == 200
        body = approved.json()
        assert body["request"]["status"] == "approved"
        assert body["listing_id"] is not None
        assert body["notification"] == {"success": False, "error": "Email disabled"}

        listing = (await client.get("/api/directory/bootnodes")).json()
        assert [n["enode"] for n in listing] == [node_payload["endpoint"]]

        assert (await client.get(f"/api/requests/nodes/{tracking_id}")).json()["status"] == "approved"

        reapprove = await client.post(f"/api/admin/node-requests/{request_id}/approve")
        assert reapprove.status_code == 409
        assert len((await client.get("/api/directory/bootnodes")).json()) == 1

        stats = (await client.get("/api/stats")).json()
        assert stats["boot_nodes"] == {"total": 1, "active": 1}

    @pytest.mark.asyncio
    async def test_reject_and_notes(self, admin_client, node_payload):
        submitted = await admin_client.post("/api/requests/nodes", json=node_payload)
        tracking_id = submitted.json()["tracking_id"]
        request_id = (await admin_client.get("/api/admin/node-requests")).json()[0]["id"]

        notes = await admin_client.put(
            f"/api/admin/node-requests/{request_id}/notes", json={"admin_notes": "pinged operator"}
        )
        assert notes.json()["admin_notes"] == "pinged operator"
        assert notes.json()["status"] == "pending"

        rejected = await admin_client.post(
            f"/api/admin/node-requests/{request_id}/reject", json={"reason": "not reachable"}
        )
        assert rejected.json()["request"]["admin_notes"] == "not reachable"
        assert (await admin_client.get(f"/api/requests/nodes/{tracking_id}")).json()["status"] == "rejected"

        # Rejected endpoints can be submitted again
        resubmitted = await admin_client.post("/api/requests/nodes", json=node_payload)
        assert resubmitted.status_code == 201

    @pytest.mark.asyncio
    async def test_invalid_submission(self, client, node_payload):
        response = await client.post(
            "/api/requests/nodes", json=dict(node_payload, node_type="validator")
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_tracking_id(self, client):
        assert (await client.get("/api/requests/nodes/REQ-00000000")).status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_request_id(self, admin_client):
        response = await admin_client.post("/api/admin/node-requests/999/approve")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_request(self, admin_client, node_payload):
        await admin_client.post("/api/requests/nodes", json=node_payload)
        request_id = (await admin_client.get("/api/admin/node-requests")).json()[0]["id"]

        assert (await admin_client.delete(f"/api/admin/node-requests/{request_id}")).status_code == 200
        assert (await admin_client.delete(f"/api/admin/node-requests/{request_id}")).status_code == 404


class TestTokenFlow:
    @pytest.mark.asyncio
    async def test_approve_and_transfer(self, admin_client, token_payload):
        submitted = await admin_client.post("/api/requests/tokens", json=token_payload)
        assert submitted.status_code == 201
        tracking_id = submitted.json()["tracking_id"]
        assert tracking_id.startswith("TKN-")

        request_id = (await admin_client.get("/api/admin/token-requests")).json()[0]["id"]

        early = await admin_client.post(
            f"/api/admin/token-requests/{request_id}/transfer", json={"transferred_amount": "100"}
        )
        assert early.status_code == 409

        await admin_client.post(f"/api/admin/token-requests/{request_id}/approve")
        transfer = await admin_client.post(
            f"/api/admin/token-requests/{request_id}/transfer", json={"transferred_amount": "75"}
        )
        assert transfer.status_code == 200

        status_view = (await admin_client.get(f"/api/requests/tokens/{tracking_id}")).json()
        assert status_view["status"] == "transferred"
        assert status_view["requested_amount"] == "100"
        assert status_view["transferred_amount"] == "75"
        assert "wallet_address" not in status_view
        assert "email" not in status_view

    @pytest.mark.asyncio
    async def test_invalid_wallet(self, client, token_payload):
        response = await client.post(
            "/api/requests/tokens", json=dict(token_payload, wallet_address="not-a-wallet")
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_status_filter(self, admin_client, token_payload):
        await admin_client.post("/api/requests/tokens", json=token_payload)
        await admin_client.post("/api/requests/tokens", json=token_payload)
        first_id = (await admin_client.get("/api/admin/token-requests")).json()[-1]["id"]
        await admin_client.post(f"/api/admin/token-requests/{first_id}/reject", json={"reason": "x"})

        rejected = await admin_client.get("/api/admin/token-requests", params={"status": "rejected"})
        assert [r["id"] for r in rejected.json()] == [first_id]

        overview = (await admin_client.get("/api/admin/overview")).json()
        assert overview["requests"]["token_requests"]["pending"] == 1
        assert overview["requests"]["token_requests"]["rejected"] == 1


class TestDirectoryAdmin:
    @pytest.mark.asyncio
    async def test_rpc_crud(self, admin_client):
        created = await admin_client.post(
            "/api/admin/rpc-endpoints",
            json={"name": "LAB Official", "endpoint": "https://rpc.labchain.la", "type": "official"},
        )
        assert created.status_code == 201
        rpc_id = created.json()["id"]

        await admin_client.post(
            "/api/admin/rpc-endpoints",
            json={"name": "Alpha community", "endpoint": "https://alpha.example"},
        )
        listing = (await admin_client.get("/api/directory/rpc")).json()
        assert [r["type"] for r in listing] == ["official", "community"]

        updated = await admin_client.patch(
            f"/api/admin/rpc-endpoints/{rpc_id}", json={"status": "inactive", "latency": "40ms"}
        )
        assert updated.json()["status"] == "inactive"
        assert updated.json()["name"] == "LAB Official"

        assert (await admin_client.delete(f"/api/admin/rpc-endpoints/{rpc_id}")).status_code == 200
        assert (await admin_client.delete(f"/api/admin/rpc-endpoints/{rpc_id}")).status_code == 404

    @pytest.mark.asyncio
    async def test_beacon_requires_address(self, admin_client):
        response = await admin_client.post("/api/admin/beacon-nodes", json={"name": "Nameless"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_boot_node_crud(self, admin_client):
        created = await admin_client.post(
            "/api/admin/boot-nodes", json={"name": "Boot", "enode": "enode://x@1.1.1.1:30303"}
        )
        node_id = created.json()["id"]
        assert created.json()["peers"] == 0

        patched = await admin_client.patch(f"/api/admin/boot-nodes/{node_id}", json={"peers": 12})
        assert patched.json()["peers"] == 12
        assert (await admin_client.patch("/api/admin/boot-nodes/999", json={"peers": 1})).status_code == 404


class TestEmailSettings:
    @pytest.mark.asyncio
    async def test_password_never_returned(self, admin_client):
        response = await admin_client.put(
            "/api/admin/settings/email",
            json={"smtp_host": "smtp.example.com", "smtp_pass": "hunter2", "smtp_secure": True},
        )
        assert response.status_code == 200

        view = (await admin_client.get("/api/admin/settings/email")).json()
        assert view["smtp_host"] == "smtp.example.com"
        assert view["smtp_secure"] == "true"
        assert view["smtp_pass_set"] is True
        assert "smtp_pass" not in view


class TestStorageFailures:
    """Storage errors on admin writes answer 500 with a message."""

    @pytest.mark.asyncio
    async def test_rpc_create(self, admin_client):
        with patch.object(crud, "create_rpc_endpoint", _storage_failure()):
            response = await admin_client.post(
                "/api/admin/rpc-endpoints",
                json={"name": "Broken", "endpoint": "https://broken.example"},
            )

        assert response.status_code == 500
        assert response.json()["detail"] == "Could not save directory change"
        assert (await admin_client.get("/api/directory/rpc")).json() == []

    @pytest.mark.asyncio
    async def test_boot_node_delete(self, admin_client):
        created = await admin_client.post(
            "/api/admin/boot-nodes", json={"name": "Boot", "enode": "enode://x@1.1.1.1:30303"}
        )
        node_id = created.json()["id"]

        with patch.object(crud, "delete_boot_node", _storage_failure()):
            response = await admin_client.delete(f"/api/admin/boot-nodes/{node_id}")

        assert response.status_code == 500
        assert len((await admin_client.get("/api/directory/bootnodes")).json()) == 1

    @pytest.mark.asyncio
    async def test_email_settings(self, admin_client):
        with patch.object(crud, "set_setting", _storage_failure()):
            response = await admin_client.put(
                "/api/admin/settings/email", json={"smtp_host": "smtp.example.com"}
            )

        assert response.status_code == 500
        assert response.json()["detail"] == "Could not save email settings"

    @pytest.mark.asyncio
    async def test_logout_survives_storage_error(self, admin_client):
        with patch.object(crud, "delete_session", _storage_failure()):
            response = await admin_client.post("/api/auth/logout")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_password_change_reports_unrevoked_sessions(self, admin_client):
        with patch.object(crud, "delete_user_sessions", _storage_failure()):
            response = await admin_client.post(
                "/api/auth/password",
                json={"current_password": "correct horse", "new_password": "battery staple"},
            )

        assert response.status_code == 500
