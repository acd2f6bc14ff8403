"""
Live Verification Runner

Marks built tenants LIVE once the preview serves their content:
``DEV_DONE | OPEN_DONE | VERIFY_ERROR -> LIVE``.

Gates, in order:
1. Object storage holds a live source for the slug
2. The preview host's introspection endpoint returns this tenant's HTML with its build marker
3. The preview URL answers 2xx/3xx

An unmet gate leaves the record untouched for a later run.
"""

from typing import Optional

from pipeline_core.config import PipelineConfig
from pipeline_core.shared_services.health import HealthVerifier, is_healthy_status
from pipeline_core.shared_services.hosts import parse_host
from pipeline_core.shared_services.notifications import TelegramNotifier, format_lines
from pipeline_core.shared_services.site_storage import SiteStorage
from pipeline_core.shared_services.source_checker import SourceAvailabilityChecker
from pipeline_core.tenant_management.db_service import TenantRecordRepository
from pipeline_core.tenant_management.models import RecordStage, TenantRecord

from .base_runner import StageGatedRunner, StageUpdate


class VerificationRunner(StageGatedRunner):
    """Preview verification."""

    runner_name = "live_verify"
    note_prefix = "live"
    trigger_stages = frozenset({RecordStage.DEV_DONE, RecordStage.OPEN_DONE, RecordStage.VERIFY_ERROR})
    error_stage = RecordStage.VERIFY_ERROR

    def __init__(
        self,
        repository: TenantRecordRepository,
        storage: SiteStorage,
        checker: SourceAvailabilityChecker,
        health: HealthVerifier,
        settings: Optional[PipelineConfig] = None,
        max_per_run: Optional[int] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        super().__init__(repository, settings, max_per_run, notifier)
        self.storage = storage
        self.checker = checker
        self.health = health

    def default_max_per_run(self) -> int:
        return self.settings.verify_max_per_run

    def is_candidate(self, record: TenantRecord) -> bool:
        return super().is_candidate(record) and bool(record.slug)

    async def process(self, record: TenantRecord) -> Optional[StageUpdate]:
        slug = record.slug
        url = record.preview_url or f"https://{self.settings.preview_hostname(slug)}"
        host = parse_host(url)

        if not await self.storage.has_live_source(slug):
            return None

        source = await self.checker.check(host, slug, tries=self.settings.source_check_tries)
        if not source.ok:
            return None

        head = await self.health.probe(url, tries=self.settings.source_check_tries)
        if not is_healthy_status(head):
            return None

        checks = f"storage:live,sitehtml:{source.code},head:{head}"
        return StageUpdate(
            stage=RecordStage.LIVE,
            note=f"live:verified({checks})",
            fields={"preview_url": url},
            message=format_lines(
                "LIVE",
                f"- business: {record.business_name or '(unnamed)'}",
                f"- slug: {slug}",
                f"- URL: {url}",
                f"- checks: {checks}",
                f"- ID: {record.id}",
            ),
        )
