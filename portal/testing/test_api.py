# portal/testing/test_api.py
# End-to-end API tests through the full application and middleware stack
# Database session and blob store are swapped for test doubles via dependency_overrides
# RELEVANT FILES: ../main.py, ../routers/*.py, conftest.py

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio

from .. import main as main_module
from ..auth import get_token_service
from ..database import get_session
from ..main import create_app
from ..routers import clients as clients_router_module
from ..schemas import Role
from ..storage import get_blob_store
from .factories import (
    make_assignment,
    make_client,
    make_document,
    make_service,
    make_sub_service,
    make_user,
)


@pytest.fixture
def app(session, blob_store):
    app = create_app()

    async def override_session():
        yield session

    async def override_blob_store():
        return blob_store

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_blob_store] = override_blob_store
    return app


@pytest_asyncio.fixture
async def http(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def admin(session):
    user = await make_user(session, Role.ADMIN, email="admin@example.com", phone="5550001111")
    await session.commit()
    return user


def auth_header(user_id: str, role: Role) -> dict:
    return {"Cookie": f"auth_token={get_token_service().issue(user_id, role)}"}


class TestAuthEndpoints:
    @pytest.mark.asyncio
    async def test_login_sets_cookie(self, http, admin):
        response = await http.post(
            "/api/auth/login", json={"email": "Admin@Example.com", "phone": "555-000-1111"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"] == {
            "id": admin.id,
            "name": admin.name,
            "email": "admin@example.com",
            "role": "ADMIN",
        }

        set_cookie = response.headers["set-cookie"]
        assert "auth_token=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "Path=/" in set_cookie
        assert "samesite=lax" in set_cookie.lower()

        token = response.cookies["auth_token"]
        identity = get_token_service().verify(token)
        assert identity.user_id == admin.id
        assert identity.role == Role.ADMIN

    @pytest.mark.asyncio
    async def test_bad_credentials_are_401(self, http, admin):
        response = await http.post(
            "/api/auth/login", json={"email": "admin@example.com", "phone": "0000000000"}
        )
        assert response.status_code == 401
        assert response.json() == {"success": False}
        assert "set-cookie" not in response.headers

    @pytest.mark.asyncio
    async def test_malformed_login_is_400(self, http):
        response = await http.post("/api/auth/login", json={"email": "not-an-email"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_me_returns_server_verified_identity(self, http, admin):
        response = await http.get("/api/auth/me", headers=auth_header(admin.id, Role.ADMIN))
        assert response.status_code == 200
        assert response.json()["role"] == "ADMIN"

    @pytest.mark.asyncio
    async def test_me_without_cookie_is_401(self, http):
        response = await http.get("/api/auth/me")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_clears_cookie(self, http):
        response = await http.post("/api/auth/logout")
        assert response.status_code == 200
        assert "Max-Age=0" in response.headers["set-cookie"]


class TestPages:
    @pytest.mark.asyncio
    async def test_root_redirects_to_login(self, http):
        response = await http.get("/")
        assert response.status_code == 307
        assert response.headers["location"] == "/login"

    @pytest.mark.asyncio
    async def test_admin_dashboard_gate(self, http, session, admin):
        client = await make_client(session)
        await session.commit()

        no_cookie = await http.get("/admin/dashboard")
        assert no_cookie.status_code == 307
        assert no_cookie.headers["location"] == "/login"

        as_client = await http.get(
            "/admin/dashboard", headers=auth_header(client.user_id, Role.CLIENT)
        )
        assert as_client.status_code == 307
        assert as_client.headers["location"] == "/unauthorized"

        as_admin = await http.get("/admin/dashboard", headers=auth_header(admin.id, Role.ADMIN))
        assert as_admin.status_code == 200
        assert as_admin.json()["stats"]["clients"] == 1

    @pytest.mark.asyncio
    async def test_client_dashboard_groups_documents_by_service(self, http, session):
        client = await make_client(session)
        tax = await make_service(session, "Tax Filing")
        gst = await make_sub_service(session, tax, "GST")
        audit = await make_service(session, "Audit")
        statutory = await make_sub_service(session, audit, "Statutory")
        await make_assignment(session, client, tax, gst)
        await make_document(session, client, gst, "gst.pdf")
        await make_document(session, client, statutory, "audit.pdf")
        await session.commit()

        response = await http.get(
            "/client/dashboard", headers=auth_header(client.user_id, Role.CLIENT)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["client"]["id"] == client.id
        assert sorted(g["serviceName"] for g in body["documentGroups"]) == ["Audit", "Tax Filing"]

    @pytest.mark.asyncio
    async def test_health(self, http):
        with patch.object(main_module, "ping", AsyncMock(return_value=None)):
            ok = await http.get("/health")
        with patch.object(main_module, "ping", AsyncMock(side_effect=RuntimeError("down"))):
            down = await http.get("/health")

        assert ok.json()["status"] == "healthy"
        assert down.json()["status"] == "unhealthy"


class TestAdminCatalog:
    @pytest.mark.asyncio
    async def test_cors_preflight_answered_before_gate(self, http):
        response = await http.options(
            "/api/admin/clients",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
        assert response.headers["access-control-allow-credentials"] == "true"

    @pytest.mark.asyncio
    async def test_client_role_cannot_reach_admin_api(self, http, session):
        client = await make_client(session)
        await session.commit()

        response = await http.get(
            "/api/admin/services", headers=auth_header(client.user_id, Role.CLIENT)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_service_name_validation(self, http, admin):
        response = await http.post(
            "/api/admin/services", json={"name": " ab "}, headers=auth_header(admin.id, Role.ADMIN)
        )
        assert response.status_code == 400
        assert response.json()["data"]["errors"][0]["field"] == "name"

    @pytest.mark.asyncio
    async def test_catalog_and_sync_flow(self, http, session, admin):
        headers = auth_header(admin.id, Role.ADMIN)

        service = (
            await http.post(
                "/api/admin/services", json={"name": "Tax Filing"}, headers=headers
            )
        ).json()
        gst = (
            await http.post(
                "/api/admin/subservices",
                json={"name": "GST", "serviceId": service["id"]},
                headers=headers,
            )
        ).json()

        onboarded = await http.post(
            "/api/admin/clients",
            json={
                "name": "Client X",
                "email": "x@example.com",
                "phone": "9876543210",
                "serviceId": service["id"],
            },
            headers=headers,
        )
        assert onboarded.status_code == 200
        client = onboarded.json()
        assert [s["subServiceId"] for s in client["services"]] == [gst["id"]]

        created = await http.post(
            "/api/admin/subservices?sync=true",
            json={"name": "Income Tax", "serviceId": service["id"]},
            headers=headers,
        )
        assert created.status_code == 200

        assignments = (
            await http.get(
                f"/api/admin/client-services?clientId={client['id']}", headers=headers
            )
        ).json()
        assert sorted(a["subService"]["name"] for a in assignments) == ["GST", "Income Tax"]

        removed = await http.delete(
            f"/api/admin/subservices/{gst['id']}?sync=true", headers=headers
        )
        assert removed.status_code == 200

        synced = await http.post(
            f"/api/admin/services/{service['id']}/sync-clients", headers=headers
        )
        assert synced.json()["data"] == {"serviceId": service["id"], "clients": 1, "rows": 1}

        listed = (
            await http.get(f"/api/admin/subservices?serviceId={service['id']}", headers=headers)
        ).json()
        assert [s["name"] for s in listed] == ["Income Tax"]

    @pytest.mark.asyncio
    async def test_blank_sub_service_id_assigns_service_level(self, http, session, admin):
        client = await make_client(session)
        service = await make_service(session)
        await session.commit()

        response = await http.post(
            "/api/admin/client-services",
            json={"clientId": client.id, "serviceId": service.id, "subServiceId": ""},
            headers=auth_header(admin.id, Role.ADMIN),
        )

        assert response.status_code == 200
        assert response.json()["subServiceId"] is None

    @pytest.mark.asyncio
    async def test_duplicate_assignment_is_400(self, http, session, admin):
        client = await make_client(session)
        service = await make_service(session)
        await session.commit()
        headers = auth_header(admin.id, Role.ADMIN)
        payload = {"clientId": client.id, "serviceId": service.id}

        first = await http.post("/api/admin/client-services", json=payload, headers=headers)
        second = await http.post("/api/admin/client-services", json=payload, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["success"] is False

    @pytest.mark.asyncio
    async def test_service_with_documents_is_deactivated(self, http, session, admin):
        client = await make_client(session)
        service = await make_service(session)
        gst = await make_sub_service(session, service, "GST")
        await make_document(session, client, gst)
        await session.commit()

        response = await http.delete(
            f"/api/admin/services/{service.id}", headers=auth_header(admin.id, Role.ADMIN)
        )

        assert response.json()["data"] == {"result": "deactivated"}

    @pytest.mark.asyncio
    async def test_unused_service_is_deleted(self, http, session, admin):
        service = await make_service(session)
        await session.commit()

        response = await http.delete(
            f"/api/admin/services/{service.id}", headers=auth_header(admin.id, Role.ADMIN)
        )

        assert response.json()["data"] == {"result": "deleted"}


class TestDocumentsApi:
    @pytest.mark.asyncio
    async def test_upload_and_download(self, http, session, admin, blob_store):
        owner = await make_client(session)
        other = await make_client(session)
        service = await make_service(session)
        gst = await make_sub_service(session, service, "GST")
        await session.commit()

        uploaded = await http.post(
            "/api/admin/documents/upload",
            data={"clientId": owner.id, "subServiceId": gst.id},
            files={"file": ("return.pdf", b"%PDF-1.4", "application/pdf")},
            headers=auth_header(admin.id, Role.ADMIN),
        )
        assert uploaded.status_code == 200
        document_id = uploaded.json()["id"]
        assert len(blob_store.blobs) == 1

        own = await http.get(
            f"/api/documents/{document_id}/download",
            headers=auth_header(owner.user_id, Role.CLIENT),
        )
        assert own.status_code == 307
        assert own.headers["location"].startswith("https://storage.test/signed/")

        foreign = await http.get(
            f"/api/documents/{document_id}/download",
            headers=auth_header(other.user_id, Role.CLIENT),
        )
        assert foreign.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_reports_orphaned_blob(self, http, session, admin, blob_store):
        client = await make_client(session)
        service = await make_service(session)
        gst = await make_sub_service(session, service, "GST")
        document = await make_document(session, client, gst)
        await session.commit()
        key = document.storage_key
        blob_store.fail_remove = True

        response = await http.delete(
            f"/api/admin/documents/{document.id}", headers=auth_header(admin.id, Role.ADMIN)
        )

        assert response.status_code == 200
        assert response.json()["data"] == {
            "status": "partial_failure",
            "orphanedKey": key,
        }

    @pytest.mark.asyncio
    async def test_delete_client_removes_blobs(self, http, session, admin, blob_store):
        client = await make_client(session)
        service = await make_service(session)
        gst = await make_sub_service(session, service, "GST")
        document = await make_document(session, client, gst)
        await session.commit()
        blob_store.blobs[document.storage_key] = b"data"

        with patch.object(
            clients_router_module, "get_blob_store", AsyncMock(return_value=blob_store)
        ):
            response = await http.delete(
                f"/api/admin/clients/{client.id}", headers=auth_header(admin.id, Role.ADMIN)
            )

        assert response.status_code == 200
        assert response.json()["data"] == {"documents": 1, "orphanedKeys": []}
        assert blob_store.blobs == {}

        missing = await http.get(
            f"/api/admin/clients/{client.id}", headers=auth_header(admin.id, Role.ADMIN)
        )
        assert missing.status_code == 404
