"""
Dev Build Runner

Builds a single-file HTML page from the stored design spec, stamps the
build marker and publishes it as the live version:
``DESIGN_DONE | DEV_ERROR -> DEV_DONE``.
"""

from typing import Optional

from pipeline_core.config import PipelineConfig
from pipeline_core.errors import VerificationFailure
from pipeline_core.shared_services.build_marker import stamp_build_marker
from pipeline_core.shared_services.content_agent import ContentAgent, extract_html
from pipeline_core.shared_services.notifications import TelegramNotifier
from pipeline_core.shared_services.site_storage import SiteStorage
from pipeline_core.tenant_management.db_service import TenantRecordRepository
from pipeline_core.tenant_management.models import RecordStage, TenantRecord

from .base_runner import StageGatedRunner, StageUpdate

BUILD_PROMPT = """You are a frontend developer.
Read the DESIGN_SPEC and build a complete single-file HTML page.
Output only HTML (<!doctype html> ...).
Production-quality visual polish, responsive layout.
No external JS libraries. Inline CSS only.

Project input:
{project}
"""


class DevBuildRunner(StageGatedRunner):
    """HTML build and publish."""

    runner_name = "dev_build"
    note_prefix = "dev"
    trigger_stages = frozenset({RecordStage.DESIGN_DONE, RecordStage.DEV_ERROR})
    error_stage = RecordStage.DEV_ERROR

    def __init__(
        self,
        repository: TenantRecordRepository,
        storage: SiteStorage,
        agent: ContentAgent,
        settings: Optional[PipelineConfig] = None,
        max_per_run: Optional[int] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        super().__init__(repository, settings, max_per_run, notifier)
        self.storage = storage
        self.agent = agent

    def default_max_per_run(self) -> int:
        return self.settings.dev_max_per_run

    def is_candidate(self, record: TenantRecord) -> bool:
        return super().is_candidate(record) and bool(record.slug)

    async def process(self, record: TenantRecord) -> Optional[StageUpdate]:
        spec = await self.storage.get_design_spec(record.slug)
        if not spec:
            return None

        project = "\n".join(
            [f"requestId: {record.id}", f"slug: {record.slug}", f"business: {record.business_name}", "", spec]
        )
        html = extract_html(await self.agent.generate(BUILD_PROMPT.format(project=project)))
        if not html:
            raise VerificationFailure("empty_html")

        html = stamp_build_marker(html, record.slug, self.settings)
        published = await self.storage.upload_site_html(record.slug, html)
        return StageUpdate(
            stage=RecordStage.DEV_DONE,
            note=f"dev:done({self.agent.model},version:{published.version})",
        )
