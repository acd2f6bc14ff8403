"""Tests for hosting-project domain attachment."""
import pytest

from pipeline_core.errors import PromotionTimeoutError, ProviderError
from pipeline_core.shared_services.domain_attachments import DomainAttachmentManager

HOST = "acme-1234.example.com"


class _FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _manager(settings, providers, clock=None):
    if clock is None:
        return DomainAttachmentManager(settings, client=providers.client())
    return DomainAttachmentManager(settings, client=providers.client(), sleep=clock.sleep, clock=clock)


@pytest.mark.asyncio
async def test_ensure_attaches_then_noops(settings, providers):
    domains = _manager(settings, providers)

    first = await domains.ensure(HOST)
    second = await domains.ensure(HOST)

    assert first.action == "create" and first.created
    assert second.action == "noop" and not second.created
    assert HOST in providers.attached


@pytest.mark.asyncio
async def test_dry_run_only_reads(settings, providers):
    domains = _manager(settings, providers)

    assert (await domains.ensure(HOST, dry_run=True)).action == "create"
    providers.attached.add(HOST)
    assert (await domains.ensure(HOST, dry_run=True)).action == "noop"
    assert providers.mutations == []


@pytest.mark.asyncio
async def test_other_rejections_raise(settings, providers):
    providers.fail_on("POST https://api.vercel.com", 400)

    with pytest.raises(ProviderError):
        await _manager(settings, providers).ensure(HOST)


@pytest.mark.asyncio
async def test_remove_is_idempotent(settings, providers):
    providers.attached.add(HOST)
    domains = _manager(settings, providers)

    await domains.remove(HOST)
    await domains.remove(HOST)

    assert HOST not in providers.attached


@pytest.mark.asyncio
async def test_team_slug_is_sent(settings, providers):
    settings.vercel_team_slug = "acme-team"

    await _manager(settings, providers).is_attached(HOST)

    assert providers.requests[-1].url.params["teamSlug"] == "acme-team"


@pytest.mark.asyncio
async def test_wait_until_ready_polls(settings, providers):
    providers.misconfigured[HOST] = True
    clock = _FakeClock()
    domains = _manager(settings, providers, clock)

    async def fix_after_first_sleep(seconds):
        await clock.sleep(seconds)
        providers.misconfigured[HOST] = False

    domains._sleep = fix_after_first_sleep

    config = await domains.wait_until_ready(HOST, timeout_seconds=60, interval_seconds=5)

    assert config["misconfigured"] is False
    assert clock.sleeps == [5]


@pytest.mark.asyncio
async def test_wait_until_ready_times_out_with_last_config(settings, providers):
    providers.misconfigured[HOST] = True
    clock = _FakeClock()

    with pytest.raises(PromotionTimeoutError) as exc_info:
        await _manager(settings, providers, clock).wait_until_ready(HOST, timeout_seconds=12, interval_seconds=5)

    assert exc_info.value.last_config == {"misconfigured": True}
    assert clock.sleeps == [5, 5]


@pytest.mark.asyncio
async def test_zero_timeout_checks_once(settings, providers):
    config = await _manager(settings, providers, _FakeClock()).wait_until_ready(HOST, timeout_seconds=0)
    assert config["misconfigured"] is False
