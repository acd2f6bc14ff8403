"""
Design Plan Runner

Writes a design spec for each DNS-complete tenant:
``DNS_DONE | DESIGN_ERROR -> DESIGN_DONE``. A failed generation stores a
fallback spec built from the brief and still advances.
"""

from typing import Optional

from pipeline_core.config import PipelineConfig
from pipeline_core.shared_services.content_agent import ContentAgent
from pipeline_core.shared_services.notifications import TelegramNotifier
from pipeline_core.shared_services.site_storage import SiteStorage
from pipeline_core.tenant_management.db_service import TenantRecordRepository
from pipeline_core.tenant_management.models import RecordStage, TenantRecord

from .base_runner import StageGatedRunner, StageUpdate

DESIGN_PROMPT = """You are a design planning agent.
Do not write code. Write a Markdown design document only (DESIGN_SPEC.md).

Required direction:
- A page with enough volume to scroll
- A large hero section with impactful copy and a strong visual
- A mood-board direction that fits the business category
- Emphasis blocks (badges, highlights, stats, reviews)
- A persuasive features section
- Slight variation in layout, color, typography and section order

Sections:
1) Brand position and tone
2) Core users and scenarios
3) Information architecture and section order (hero, features, trust, CTA)
4) Visual system (color, type, layout, motion)
5) Copy strategy (3 headlines, 5 CTAs)
6) Differentiation
7) Development handoff checklist

Business input:
{brief}
"""


def build_brief(record: TenantRecord) -> str:
    """Plain-text brief for the design agent."""
    return "\n".join(
        [
            f"requestId: {record.id}",
            f"business_name: {record.business_name}",
            f"category: {record.category}",
            f"region: {record.region}",
            f"goal: {record.goal}",
            f"website_url: {record.website_url}",
            f"slug: {record.slug}",
        ]
    )


def fallback_spec(brief: str, error: str) -> str:
    return f"# DESIGN_SPEC\n\nAutomatic generation failed: {error}\n\n## Brief\n\n{brief}"


class DesignPlanRunner(StageGatedRunner):
    """Design spec generation."""

    runner_name = "design_plan"
    note_prefix = "design-spec"
    trigger_stages = frozenset({RecordStage.DNS_DONE, RecordStage.DESIGN_ERROR})
    error_stage = RecordStage.DESIGN_ERROR

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
        return self.settings.design_max_per_run

    def is_candidate(self, record: TenantRecord) -> bool:
        return super().is_candidate(record) and bool(record.slug)

    async def process(self, record: TenantRecord) -> Optional[StageUpdate]:
        if await self.storage.get_design_spec(record.slug):
            return StageUpdate(stage=RecordStage.DESIGN_DONE, note="design-spec:exists")

        brief = build_brief(record)
        try:
            spec = await self.agent.generate(DESIGN_PROMPT.format(brief=brief))
            note = f"design-spec:done({self.agent.model})"
        except Exception as e:
            self.logger.warning("design_agent_failed", record_id=record.id, error=str(e))
            spec = fallback_spec(brief, str(e))
            note = "design-spec:fallback"

        if not spec.startswith("#"):
            spec = f"# DESIGN_SPEC\n\n{spec}"
        await self.storage.put_design_spec(record.slug, spec + "\n")
        return StageUpdate(stage=RecordStage.DESIGN_DONE, note=note)
