"""API tests for lead intake and per-host content introspection."""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from pipeline_core.api_gateway.main import app
from pipeline_core.errors import ConfigurationError
from pipeline_core.shared_services.site_storage import SiteStorage
from pipeline_core.tenant_management.api_router import (
    get_record_repository,
    get_settings,
    get_site_storage,
)
from pipeline_core.tenant_management.models import RecordStage

LEAD = {
    "business_name": "  Acme Bakery ",
    "contact_name": "Jane Doe",
    "contact_email": "jane@acmebakery.com",
    "category": "bakery",
    "notes": "Prefers warm colors",
}


@pytest.fixture
def storage(settings, s3):
    return SiteStorage(settings, client=s3)


@pytest_asyncio.fixture
async def client(settings, repository, storage):
    app.dependency_overrides[get_record_repository] = lambda: repository
    app.dependency_overrides[get_site_storage] = lambda: storage
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["tenant_root_domain"] == f"preview.{body['root_domain']}"


# --- Lead intake ---

@pytest.mark.asyncio
async def test_apply_creates_new_record(client, repository, settings):
    response = await client.post("/api/apply", json=LEAD)

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["requestId"].startswith(settings.request_id_prefix)

    record = await repository.get_by_id(body["requestId"])
    assert record.stage == RecordStage.NEW
    assert record.business_name == "Acme Bakery"
    assert record.audit_note == "Prefers warm colors"
    assert record.slug == ""
    assert record.row == 2


@pytest.mark.asyncio
async def test_apply_requires_contact_email(client, repository):
    lead = {k: v for k, v in LEAD.items() if k != "contact_email"}

    response = await client.post("/api/apply", json=lead)

    assert response.status_code == 422
    assert await repository.scan() == []


@pytest.mark.asyncio
async def test_apply_rejects_blank_business_name(client):
    response = await client.post("/api/apply", json={**LEAD, "business_name": "   "})
    assert response.status_code == 422


# --- Content introspection ---

@pytest.mark.asyncio
async def test_root_host_is_not_a_tenant(client):
    for host in ("example.com", "www.example.com"):
        response = await client.get("/api/sitehtml", headers={"host": host})
        assert response.status_code == 200
        assert response.json() == {"ok": True, "kind": "root"}


@pytest.mark.asyncio
async def test_tenant_host_serves_live_html(client, storage):
    published = await storage.upload_site_html("acme-1234", "<!doctype html><html></html>")

    response = await client.get("/api/sitehtml", headers={"host": "acme-1234.preview.example.com"})

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "kind": "tenant",
        "slug": "acme-1234",
        "html": "<!doctype html><html></html>",
        "source": "r2",
        "version": published.version,
    }


@pytest.mark.asyncio
async def test_forwarded_host_wins(client, storage):
    await storage.upload_site_html("acme-1234", "<html>prod</html>")

    response = await client.get(
        "/api/sitehtml",
        headers={"host": "internal.vercel.app", "x-forwarded-host": "acme-1234.example.com, proxy.local"},
    )

    assert response.json()["slug"] == "acme-1234"


@pytest.mark.asyncio
async def test_unknown_tenant_is_404(client):
    response = await client.get("/api/sitehtml", headers={"host": "ghost-1.example.com"})

    assert response.status_code == 404
    assert response.json() == {
        "ok": False,
        "kind": "tenant",
        "slug": "ghost-1",
        "error": "site_source_not_found",
    }


class _BrokenStorage:
    async def get_live_html(self, slug):
        raise ConfigurationError("Object storage not configured")


@pytest.mark.asyncio
async def test_pipeline_errors_become_envelopes(client):
    app.dependency_overrides[get_site_storage] = lambda: _BrokenStorage()

    response = await client.get("/api/sitehtml", headers={"host": "acme-1234.example.com"})

    assert response.status_code == 503
    assert response.json() == {"ok": False, "error": "ConfigurationError"}
