"""
DNS Assignment Runner

Assigns each new lead a slug and points its preview hostname at the
hosting platform: ``NEW | DNS_ERROR (with slug) -> DNS_DONE``.
"""

from typing import Optional

from pipeline_core.config import PipelineConfig
from pipeline_core.shared_services.dns_records import DnsRecordManager
from pipeline_core.shared_services.notifications import TelegramNotifier
from pipeline_core.tenant_management.db_service import TenantRecordRepository
from pipeline_core.tenant_management.models import RecordStage, TenantRecord
from pipeline_core.tenant_management.slugs import is_valid_slug, make_suffix, normalize_slug, repair_slug

from .base_runner import StageGatedRunner, StageUpdate


class DnsAssignmentRunner(StageGatedRunner):
    """Slug assignment plus preview CNAME upsert."""

    runner_name = "dns_assignment"
    note_prefix = "dns"
    trigger_stages = frozenset({RecordStage.NEW, RecordStage.DNS_ERROR})
    error_stage = RecordStage.DNS_ERROR

    def __init__(
        self,
        repository: TenantRecordRepository,
        dns: DnsRecordManager,
        settings: Optional[PipelineConfig] = None,
        max_per_run: Optional[int] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        super().__init__(repository, settings, max_per_run, notifier)
        self.dns = dns

    def default_max_per_run(self) -> int:
        return self.settings.dns_max_per_run

    def is_candidate(self, record: TenantRecord) -> bool:
        if record.stage == RecordStage.DNS_ERROR:
            return bool(record.slug)
        return super().is_candidate(record)

    async def assign_slug(self, record: TenantRecord) -> str:
        """
        Slug for a record.

        A valid persisted slug is reused. An invalid one is repaired, and
        the old DNS name is removed before the new one is created. With no
        usable slug, one is derived from the business name and the id.
        """
        existing = record.slug
        if existing and is_valid_slug(existing):
            return existing

        slug = repair_slug(existing) if existing else None
        if not slug:
            slug = normalize_slug(record.business_name or record.id, make_suffix(record.id))

        if existing and existing != slug:
            removed = await self.dns.delete_by_name(self.settings.preview_hostname(existing))
            self.logger.info("slug_repaired", record_id=record.id, old=existing, new=slug,
                             removed_records=removed)

        if slug != existing:
            # Persist before any DNS mutation so a retry reuses the same slug.
            await self.repository.update(record.id, {"slug": slug})
        return slug

    async def process(self, record: TenantRecord) -> Optional[StageUpdate]:
        slug = await self.assign_slug(record)
        hostname = self.settings.preview_hostname(slug)
        result = await self.dns.upsert_cname(hostname)
        return StageUpdate(
            stage=RecordStage.DNS_DONE,
            note=f"dns:{result.action}",
            fields={"slug": slug, "preview_url": f"https://{hostname}"},
        )
