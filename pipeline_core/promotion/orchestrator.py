"""
Promotion Orchestrator

Preview-to-production cutover for one tenant:
1. Resolve the target (slug + record)
2. Verify source content on the preview host
3. Upsert the production DNS CNAME
4. Attach the production hostname to the hosting project
5. Poll the domain configuration until ready
6. HEAD-probe the production URL
7. Verify source content on the production host
8. Persist stage PROMOTED, production URL and an audit note; notify

Failures after step 3 unwind only the resources this run created.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

import httpx
from structlog import get_logger

from ..config import PipelineConfig, get_config
from ..errors import (
    LeaseUnavailableError,
    PromotionTimeoutError,
    ValidationError,
    VerificationFailure,
)
from ..shared_services.dns_records import DnsRecordManager
from ..shared_services.domain_attachments import DomainAttachmentManager
from ..shared_services.health import HealthVerifier, is_healthy_status
from ..shared_services.notifications import TelegramNotifier, format_lines
from ..shared_services.source_checker import SourceAvailabilityChecker
from ..tenant_management.db_service import TenantRecordRepository
from ..tenant_management.models import PROMOTABLE_STAGES, RecordStage, TenantRecord, transition
from ..tenant_management.resolver import TargetResolver, resolve_source_host
from .models import PromotionReport, PromotionRequest, PromotionState
from .saga import CompensationStack

logger = get_logger()


class PromotionOrchestrator:
    """Sequences the promotion steps and owns their rollback."""

    def __init__(
        self,
        repository: TenantRecordRepository,
        settings: Optional[PipelineConfig] = None,
        dns: Optional[DnsRecordManager] = None,
        domains: Optional[DomainAttachmentManager] = None,
        checker: Optional[SourceAvailabilityChecker] = None,
        health: Optional[HealthVerifier] = None,
        notifier: Optional[TelegramNotifier] = None,
        resolver: Optional[TargetResolver] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            repository: Tenant record store
            settings: Optional configuration (defaults to the cached config)
            dns: DNS record manager
            domains: Domain attachment manager
            checker: Source availability checker
            health: Health verifier
            notifier: Success notifier
            resolver: Target resolver (defaults to one over ``repository``)
            client: Shared HTTP client for default-constructed collaborators
        """
        self.settings = settings or get_config()
        self.repository = repository
        self.dns = dns or DnsRecordManager(self.settings, client=client)
        self.domains = domains or DomainAttachmentManager(self.settings, client=client)
        self.checker = checker or SourceAvailabilityChecker(self.settings, client=client)
        self.health = health or HealthVerifier(self.settings, client=client)
        self.notifier = notifier or TelegramNotifier(self.settings, client=client)
        self.resolver = resolver or TargetResolver(repository, self.settings)

    async def promote(self, request: PromotionRequest) -> PromotionReport:
        """
        Run one promotion.

        Never raises for pipeline failures; the report carries the final
        state, the failed step and what was rolled back.
        """
        report = PromotionReport(dry_run=request.dry_run)
        compensations = CompensationStack()
        holder = f"promote:{uuid4().hex[:12]}"
        leased: Optional[TenantRecord] = None
        record: Optional[TenantRecord] = None
        step = "configure"

        log = logger.bind(dry_run=request.dry_run)
        log.info("promotion_started", reference=request.reference.model_dump(exclude_none=True))

        try:
            self.settings.require_dns()
            self.settings.require_hosting()

            # Step 1: resolve
            step = "resolve"
            target = await self.resolver.resolve(
                request.reference, require_record=self.settings.promotion_require_record
            )
            slug = target.slug
            record = target.record
            report.slug = slug
            report.record_id = record.id if record else None
            log = log.bind(slug=slug)

            if record is not None and record.stage not in PROMOTABLE_STAGES:
                raise ValidationError(
                    f"Record {record.id} is not promotable (row {record.row}, stage={record.stage.value})"
                )

            if record is not None and not request.dry_run:
                step = "lease"
                if not await self.repository.acquire_lease(
                    record.id, holder, self.settings.lease_ttl_seconds
                ):
                    current = await self.repository.get_by_id(record.id)
                    raise LeaseUnavailableError(record.id, current.lease_holder if current else None)
                leased = record

            prod_host = self.settings.production_hostname(slug)
            report.prod_url = f"https://{prod_host}"
            report.created.hostname = prod_host

            # Step 2: preview source
            step = "source_check"
            source_host = resolve_source_host(
                slug,
                self.settings,
                record_url=record.preview_url if record else "",
                source_hint_host=target.source_hint_host,
            )
            report.source_host = source_host
            source = await self.checker.check(source_host, slug, tries=self.settings.source_check_tries)
            if not source.ok:
                raise VerificationFailure(
                    f"Source check failed on {source_host}: sitehtml={source.code}, marker={source.marker_ok}"
                )
            report.checks["source"] = f"sitehtml:{source.code},marker:ok"
            report.move_to(PromotionState.SOURCE_VERIFIED)
            log.info("promotion_source_verified", source_host=source_host, code=source.code)

            # Step 3: production DNS
            step = "dns"
            dns = await self.dns.upsert_cname(prod_host, dry_run=request.dry_run)
            if dns.created:
                report.created.dns_record_id = dns.record_id
                compensations.push("dns_record", self.dns.delete_record, dns.record_id)
            report.checks["dns"] = dns.action
            report.move_to(PromotionState.DNS_READY)
            log.info("promotion_dns_ready", action=dns.action, record_id=dns.record_id)

            # Step 4: domain attachment
            step = "domain_attach"
            attach = await self.domains.ensure(prod_host, dry_run=request.dry_run)
            if attach.created:
                report.created.domain_attached = True
                compensations.push("domain_attachment", self.domains.remove, prod_host)
            report.checks["domain"] = attach.action
            report.move_to(PromotionState.DOMAIN_ATTACHED)
            log.info("promotion_domain_attached", action=attach.action)

            if request.dry_run:
                log.info("promotion_dry_run_complete", checks=report.checks)
                return report

            # Step 5: domain readiness
            step = "domain_ready"
            timeout = (
                self.settings.promotion_timeout_seconds
                if request.timeout_seconds is None
                else request.timeout_seconds
            )
            await self.domains.wait_until_ready(prod_host, timeout)
            report.move_to(PromotionState.DOMAIN_CONFIG_READY)

            # Step 6: HEAD probe
            step = "head_probe"
            head = await self.health.probe(report.prod_url, tries=self.settings.prod_check_tries)
            report.checks["head"] = str(head)
            if not is_healthy_status(head):
                raise VerificationFailure(f"Prod HEAD check failed: {report.prod_url} status={head}")

            # Step 7: production source
            step = "prod_source_check"
            prod = await self.checker.check(prod_host, slug, tries=self.settings.prod_check_tries)
            report.checks["sitehtml"] = str(prod.code)
            if not prod.ok:
                raise VerificationFailure(
                    f"Prod sitehtml check failed: host={prod_host} sitehtml={prod.code} marker={prod.marker_ok}"
                )
            report.checks["marker"] = "ok"
            report.move_to(PromotionState.HEALTH_VERIFIED)

            # Step 8: persist
            step = "persist"
            if record is None:
                log.warning("promotion_record_missing", slug=slug)
            else:
                await self.repository.update(
                    record.id,
                    {
                        "stage": transition(record.stage, RecordStage.PROMOTED),
                        "prod_url": report.prod_url,
                        "audit_note": record.with_note(self._done_note(report)),
                    },
                )
            compensations.clear()
            report.move_to(PromotionState.PROMOTED)
            log.info("promotion_succeeded", prod_url=report.prod_url, checks=report.checks)

            if request.notify:
                try:
                    await self.notifier.send(self._success_message(report))
                except Exception as e:
                    log.error("promotion_notify_failed", error=str(e), error_type=type(e).__name__)

        except Exception as e:
            report.failed_step = step
            report.error = str(e)
            report.error_type = type(e).__name__
            report.state = PromotionState.FAILED
            report.history.append(PromotionState.FAILED)
            log.error(
                "promotion_failed",
                step=step,
                error=str(e),
                error_type=type(e).__name__,
                timed_out=isinstance(e, PromotionTimeoutError),
                created=report.created.model_dump(),
            )

            if not request.dry_run:
                report.rolled_back = await compensations.unwind()
                # Only the lease holder may write to the record.
                if leased is not None:
                    await self._record_failure(record, step, str(e))

        finally:
            if leased is not None:
                try:
                    await self.repository.release_lease(leased.id, holder)
                except Exception as e:
                    log.error("lease_release_failed", record_id=leased.id, error=str(e))
            report.completed_at = datetime.utcnow()

        return report

    def _done_note(self, report: PromotionReport) -> str:
        c = report.checks
        return (
            f"promote:done(prod:{report.prod_url}, checks:dns:{c.get('dns')},"
            f"domain:{c.get('domain')},head:{c.get('head')},sitehtml:{c.get('sitehtml')},marker:ok)"
        )

    def _success_message(self, report: PromotionReport) -> str:
        c = report.checks
        return format_lines(
            "PROMOTED",
            f"- slug: {report.slug}",
            f"- ID: {report.record_id}" if report.record_id else None,
            f"- prod: {report.prod_url}",
            f"- checks: dns({c.get('dns')}) + domain({c.get('domain')}) + head({c.get('head')})"
            f" + sitehtml({c.get('sitehtml')}) + marker(ok)",
        )

    async def _record_failure(self, record: TenantRecord, step: str, error: str) -> None:
        """Append a failure note. The stage is left unchanged."""
        entry = f"promote:failed(step={step}, error={error})"[: self.settings.audit_error_max_chars]
        try:
            current = await self.repository.get_by_id(record.id) or record
            await self.repository.update(record.id, {"audit_note": current.with_note(entry)})
        except Exception as e:
            logger.error("promotion_failure_note_failed", record_id=record.id, error=str(e))
