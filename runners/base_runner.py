"""
Stage-Gated Runner Base

Foundation for the batch runners that advance tenant records one pipeline
phase at a time:
- Stage-filtered candidate scan in row order
- Per-invocation processing cap
- Per-record lease
- Per-record failure isolation with a truncated error note
"""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field
from structlog import get_logger

from pipeline_core.config import PipelineConfig, get_config
from pipeline_core.shared_services.notifications import TelegramNotifier
from pipeline_core.tenant_management.db_service import TenantRecordRepository
from pipeline_core.tenant_management.models import RecordStage, TenantRecord, transition

logger = get_logger()


class RecordOutcome(str, Enum):
    """What a runner did with one candidate record."""

    ADVANCED = "advanced"
    FAILED = "failed"
    SKIPPED = "skipped"


class StageUpdate(BaseModel):
    """A successful record step: the new stage, an audit entry and extra fields."""

    stage: RecordStage
    note: str
    fields: dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = Field(default=None, description="Notification text, if any")


class RecordResult(BaseModel):
    record_id: str
    row: int
    outcome: RecordOutcome
    stage: Optional[RecordStage] = None
    detail: str = ""


class RunnerReport(BaseModel):
    """Summary of one runner invocation."""

    runner: str
    max_per_run: int
    results: list[RecordResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def _count(self, outcome: RecordOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def advanced(self) -> int:
        return self._count(RecordOutcome.ADVANCED)

    @property
    def failed(self) -> int:
        return self._count(RecordOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(RecordOutcome.SKIPPED)

    @property
    def processed(self) -> int:
        return self.advanced + self.failed


class StageGatedRunner(ABC):
    """
    Base class for all batch runners.

    Subclasses declare ``runner_name``, ``note_prefix``, ``trigger_stages``
    and ``error_stage`` and implement ``process``.
    """

    runner_name: str = "runner"
    note_prefix: str = "runner"
    trigger_stages: frozenset[RecordStage] = frozenset()
    error_stage: RecordStage = RecordStage.NEW

    def __init__(
        self,
        repository: TenantRecordRepository,
        settings: Optional[PipelineConfig] = None,
        max_per_run: Optional[int] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        """
        Initialize runner.

        Args:
            repository: Tenant record store
            settings: Optional configuration (defaults to the cached config)
            max_per_run: Processing cap (defaults to the runner's config value)
            notifier: Optional notifier for stage transitions
        """
        self.repository = repository
        self.settings = settings or get_config()
        self.max_per_run = max_per_run or self.default_max_per_run()
        self.notifier = notifier
        self.holder = f"{self.runner_name}:{uuid4().hex[:12]}"
        self.logger = logger.bind(runner=self.runner_name)

    @abstractmethod
    def default_max_per_run(self) -> int:
        """Processing cap when none is given."""

    def is_candidate(self, record: TenantRecord) -> bool:
        """Stage gate. Subclasses add field requirements."""
        return record.stage in self.trigger_stages

    @abstractmethod
    async def process(self, record: TenantRecord) -> Optional[StageUpdate]:
        """
        Run this phase for one record.

        Returns:
            The stage update, or None when a gate is not yet met (the record
            is left untouched and does not count against the cap)

        Raises:
            Exception: Any failure marks the record with ``error_stage``
        """

    def _truncate(self, text: str) -> str:
        return text[: self.settings.audit_error_max_chars]

    async def run(self) -> RunnerReport:
        """Process candidate records until the cap is reached."""
        report = RunnerReport(runner=self.runner_name, max_per_run=self.max_per_run)
        candidates = [r for r in await self.repository.scan(self.trigger_stages) if self.is_candidate(r)]
        self.logger.info("runner_started", candidates=len(candidates), max_per_run=self.max_per_run)

        for record in candidates:
            if report.processed >= self.max_per_run:
                break
            report.results.append(await self._run_one(record))

        report.completed_at = datetime.utcnow()
        self.logger.info(
            "runner_completed",
            advanced=report.advanced,
            failed=report.failed,
            skipped=report.skipped,
        )
        return report

    async def _run_one(self, record: TenantRecord) -> RecordResult:
        log = self.logger.bind(record_id=record.id, row=record.row, slug=record.slug or None)

        try:
            leased = await self.repository.acquire_lease(record.id, self.holder, self.settings.lease_ttl_seconds)
        except Exception as e:
            # Nothing was written without the lease, so the stage stays as is.
            error = self._truncate(str(e) or type(e).__name__)
            log.error("lease_acquire_failed", error=error, error_type=type(e).__name__)
            return RecordResult(record_id=record.id, row=record.row,
                                outcome=RecordOutcome.FAILED, detail=f"lease_error:{error}")

        if not leased:
            log.info("record_leased_elsewhere")
            return RecordResult(record_id=record.id, row=record.row,
                                outcome=RecordOutcome.SKIPPED, detail="leased")

        try:
            update = await self.process(record)
            if update is None:
                log.info("record_gate_unmet")
                return RecordResult(record_id=record.id, row=record.row,
                                    outcome=RecordOutcome.SKIPPED, detail="gate_unmet")

            current = await self.repository.get_by_id(record.id) or record
            fields = {
                **update.fields,
                "stage": transition(current.stage, update.stage),
                "audit_note": current.with_note(update.note),
            }
            await self.repository.update(record.id, fields)
            log.info("record_advanced", stage=update.stage.value, note=update.note)

            if update.message and self.notifier is not None:
                await self.notifier.send(update.message)

            return RecordResult(record_id=record.id, row=record.row,
                                outcome=RecordOutcome.ADVANCED, stage=update.stage, detail=update.note)

        except Exception as e:
            error = self._truncate(str(e) or type(e).__name__)
            log.error("record_failed", error=error, error_type=type(e).__name__)
            await self._mark_error(record, error)
            return RecordResult(record_id=record.id, row=record.row,
                                outcome=RecordOutcome.FAILED, stage=self.error_stage, detail=error)

        finally:
            try:
                await self.repository.release_lease(record.id, self.holder)
            except Exception as e:
                log.error("lease_release_failed", error=str(e))

    async def _mark_error(self, record: TenantRecord, error: str) -> None:
        """Write the error stage and note. A failed write is logged, not raised."""
        try:
            current = await self.repository.get_by_id(record.id) or record
            await self.repository.update(
                record.id,
                {
                    "stage": transition(current.stage, self.error_stage),
                    "audit_note": current.with_note(self._truncate(f"{self.note_prefix}:error:{error}")),
                },
            )
        except Exception as e:
            self.logger.error("record_error_write_failed", record_id=record.id, error=str(e))
