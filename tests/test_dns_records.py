"""Tests for the DNS record manager against a fake zone."""
import pytest

from pipeline_core.errors import ConfigurationError, ProviderError, TransientNetworkError
from pipeline_core.shared_services.dns_records import DnsRecordManager
from tests.conftest import TARGET

HOST = "acme-1234.example.com"


def _manager(settings, providers):
    return DnsRecordManager(settings, client=providers.client())


@pytest.mark.asyncio
async def test_upsert_creates_then_noops(settings, providers):
    dns = _manager(settings, providers)

    first = await dns.upsert_cname(HOST)
    assert first.action == "created"
    assert first.created
    assert first.record_id

    second = await dns.upsert_cname(HOST)
    assert second.action == "noop"
    assert not second.created
    assert second.record_id == first.record_id

    assert len(providers.records_at(HOST)) == 1
    assert providers.records_at(HOST)[0]["content"] == TARGET


@pytest.mark.asyncio
async def test_upsert_updates_cname_with_other_target(settings, providers):
    record_id = providers.add_dns_record(HOST, content="old.target.net")

    result = await _manager(settings, providers).upsert_cname(HOST)

    assert result.action == "updated"
    assert not result.created
    assert providers.dns_records[record_id]["content"] == TARGET


@pytest.mark.asyncio
async def test_upsert_updates_proxied_cname(settings, providers):
    record_id = providers.add_dns_record(HOST, proxied=True)

    result = await _manager(settings, providers).upsert_cname(HOST)

    assert result.action == "updated"
    assert providers.dns_records[record_id]["proxied"] is False


@pytest.mark.asyncio
async def test_upsert_replaces_conflicting_a_record(settings, providers):
    providers.add_dns_record(HOST, type_="A", content="192.0.2.10")

    result = await _manager(settings, providers).upsert_cname(HOST)

    assert result.action == "recreated"
    assert result.created
    records = providers.records_at(HOST)
    assert [r["type"] for r in records] == ["CNAME"]


@pytest.mark.asyncio
async def test_dry_run_does_not_mutate(settings, providers):
    providers.add_dns_record(HOST, content="old.target.net")
    dns = _manager(settings, providers)

    updated = await dns.upsert_cname(HOST, dry_run=True)
    created = await dns.upsert_cname("new-1.example.com", dry_run=True)

    assert updated.action == "updated" and updated.dry_run
    assert created.action == "created" and not created.created
    assert providers.mutations == []


@pytest.mark.asyncio
async def test_delete_by_name_and_empty_id(settings, providers):
    providers.add_dns_record(HOST)
    providers.add_dns_record(HOST, type_="AAAA", content="2001:db8::1")
    providers.add_dns_record(HOST, type_="TXT", content="keep")
    dns = _manager(settings, providers)

    assert await dns.delete_by_name(HOST) == 2
    assert await dns.delete_by_name(HOST) == 0
    await dns.delete_record("")

    assert [r["type"] for r in providers.records_at(HOST)] == ["TXT"]


@pytest.mark.asyncio
async def test_transient_errors_are_retried(settings, providers):
    providers.fail_on("dns_records?name=", 503, times=1)

    result = await _manager(settings, providers).upsert_cname(HOST)

    assert result.action == "created"


@pytest.mark.asyncio
async def test_transient_errors_surface_after_exhaustion(settings, providers):
    providers.fail_on("dns_records?name=", 503)

    with pytest.raises(TransientNetworkError):
        await _manager(settings, providers).upsert_cname(HOST)

    lists = [r for r in providers.requests if r.method == "GET"]
    assert len(lists) == settings.http_max_attempts


@pytest.mark.asyncio
async def test_auth_failure_is_not_retried(settings, providers):
    providers.fail_on("dns_records", 403)

    with pytest.raises(ConfigurationError):
        await _manager(settings, providers).upsert_cname(HOST)

    assert len(providers.requests) == 1


@pytest.mark.asyncio
async def test_provider_rejection(settings, providers):
    providers.fail_on("POST https://api.cloudflare.com", 400)

    with pytest.raises(ProviderError):
        await _manager(settings, providers).upsert_cname(HOST)
