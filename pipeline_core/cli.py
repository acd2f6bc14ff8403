"""Command line entry points for the tenant site pipeline."""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

import httpx

from runners import DesignPlanRunner, DevBuildRunner, DnsAssignmentRunner, VerificationRunner

from .config import PipelineConfig, get_config
from .errors import PipelineError
from .logging_config import configure_logging
from .promotion.models import PromotionReport, PromotionRequest
from .promotion.orchestrator import PromotionOrchestrator
from .shared_services.content_agent import ContentAgent
from .shared_services.dns_records import DnsRecordManager
from .shared_services.health import HealthVerifier
from .shared_services.notifications import TelegramNotifier
from .shared_services.site_storage import SiteStorage
from .shared_services.source_checker import SourceAvailabilityChecker
from .tenant_management.db_service import MongoTenantRecordRepository, TenantRecordRepository
from .tenant_management.resolver import TargetReference

RUNNER_COMMANDS = ("run-dns", "run-design", "run-dev", "run-verify")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        settings = get_config()
    except ValueError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 1
    configure_logging(settings)
    try:
        return args.func(args, settings)
    except PipelineError as e:
        print(f"{args.command} failed: {e}", file=sys.stderr)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="site-pipeline", description="Tenant site pipeline commands")
    sub = parser.add_subparsers(dest="command", required=True)

    promote = sub.add_parser("promote", help="Promote a tenant from preview to production")
    promote.add_argument("target", nargs="?", help="Slug, request id or URL")
    promote.add_argument("--slug", help="Tenant slug")
    promote.add_argument("--id", dest="record_id", help="Request id")
    promote.add_argument("--url", help="Preview or production URL")
    promote.add_argument("--ref", help="Freeform reference")
    promote.add_argument("--dry-run", action="store_true", help="Decide DNS and domain actions only")
    promote.add_argument("--no-telegram", action="store_true", help="Skip the success notification")
    promote.add_argument(
        "--timeoutSec", "--timeout-sec",
        dest="timeout_sec",
        type=float,
        default=None,
        help="Domain readiness timeout in seconds",
    )
    promote.set_defaults(func=_cmd_promote)

    for name, help_text in zip(
        RUNNER_COMMANDS,
        (
            "Assign slugs and preview DNS to NEW leads",
            "Write design specs for DNS-complete tenants",
            "Build and publish HTML from design specs",
            "Verify built tenants and mark them LIVE",
        ),
    ):
        runner = sub.add_parser(name, help=help_text)
        runner.add_argument("--max", dest="max_per_run", type=int, default=None, help="Records per run")
        runner.set_defaults(func=_cmd_run)

    serve = sub.add_parser("serve", help="Serve the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=_cmd_serve)

    return parser


def build_reference(args: argparse.Namespace) -> TargetReference:
    """Map CLI flags to a reference. A positional target is a freeform ref."""
    return TargetReference(
        slug=args.slug,
        id=args.record_id,
        url=args.url,
        ref=args.ref or args.target,
    )


def open_repository(settings: PipelineConfig) -> TenantRecordRepository:
    return MongoTenantRecordRepository(settings=settings)


async def run_promotion(request: PromotionRequest, settings: PipelineConfig) -> PromotionReport:
    """Run one promotion with a shared HTTP client."""
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        orchestrator = PromotionOrchestrator(open_repository(settings), settings, client=client)
        return await orchestrator.promote(request)


def _cmd_promote(args: argparse.Namespace, settings: PipelineConfig) -> int:
    request = PromotionRequest(
        reference=build_reference(args),
        dry_run=args.dry_run,
        notify=not args.no_telegram,
        timeout_seconds=args.timeout_sec,
    )
    report = asyncio.run(run_promotion(request, settings))
    if report.succeeded:
        print(f"[promote] {report.diagnostic()} checks={report.checks}")
        return 0
    print(f"[promote] {report.diagnostic()}", file=sys.stderr)
    return 1


async def run_stage_runner(command: str, settings: PipelineConfig, max_per_run: Optional[int] = None):
    """Build and run the runner for ``command``."""
    repository = open_repository(settings)
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        notifier = TelegramNotifier(settings, client=client)
        if command == "run-dns":
            settings.require_dns()
            runner = DnsAssignmentRunner(
                repository, DnsRecordManager(settings, client=client), settings, max_per_run, notifier
            )
        elif command == "run-design":
            runner = DesignPlanRunner(
                repository, SiteStorage(settings), ContentAgent(settings), settings, max_per_run, notifier
            )
        elif command == "run-dev":
            runner = DevBuildRunner(
                repository, SiteStorage(settings), ContentAgent(settings), settings, max_per_run, notifier
            )
        else:
            runner = VerificationRunner(
                repository,
                SiteStorage(settings),
                SourceAvailabilityChecker(settings, client=client),
                HealthVerifier(settings, client=client),
                settings,
                max_per_run,
                notifier,
            )
        return await runner.run()


def _cmd_run(args: argparse.Namespace, settings: PipelineConfig) -> int:
    report = asyncio.run(run_stage_runner(args.command, settings, args.max_per_run))
    print(
        f"[{report.runner}] advanced={report.advanced} failed={report.failed} skipped={report.skipped}"
    )
    return 0


def _cmd_serve(args: argparse.Namespace, settings: PipelineConfig) -> int:
    import uvicorn

    uvicorn.run(
        "pipeline_core.api_gateway.main:app",
        host=args.host,
        port=args.port,
        reload=settings.is_local,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
