"""
Tenant Pipeline API Router

Lead intake and per-host content introspection endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from structlog import get_logger

from ..config import PipelineConfig, get_config
from ..errors import ValidationError
from ..shared_services.hosts import slug_from_host
from ..shared_services.site_storage import SiteStorage
from .db_service import MongoTenantRecordRepository, TenantRecordRepository
from .models import RecordStage, TenantRecord, new_request_id
from .schema import LeadApplyRequest, LeadApplyResponse, SiteHtmlResponse

logger = get_logger()

router = APIRouter(prefix="/api", tags=["Tenant Pipeline"])


def get_record_repository(request: Request) -> TenantRecordRepository:
    """Dependency to get the tenant record store."""
    repository = getattr(request.app.state, "record_repository", None)
    return repository or MongoTenantRecordRepository()


def get_site_storage(request: Request) -> SiteStorage:
    """Dependency to get site source storage."""
    storage = getattr(request.app.state, "site_storage", None)
    return storage or SiteStorage()


def get_settings() -> PipelineConfig:
    """Dependency to get pipeline configuration."""
    return get_config()


@router.post(
    "/apply",
    response_model=LeadApplyResponse,
    summary="Submit a site lead",
    description="Store a new lead as a NEW tenant record",
)
async def apply(
    request: LeadApplyRequest,
    repository: TenantRecordRepository = Depends(get_record_repository),
    settings: PipelineConfig = Depends(get_settings),
) -> LeadApplyResponse:
    """Create a tenant record in stage NEW and return its request id."""
    record = TenantRecord(
        id=new_request_id(settings.request_id_prefix),
        stage=RecordStage.NEW,
        business_name=request.business_name,
        website_url=request.website_url,
        contact_name=request.contact_name,
        contact_email=str(request.contact_email),
        contact_phone=request.contact_phone,
        category=request.category,
        region=request.region,
        goal=request.goal,
        audit_note=request.notes,
    )

    try:
        created = await repository.create(record)
    except ValidationError as e:
        logger.error("lead_create_failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("lead_received", record_id=created.id, row=created.row)
    return LeadApplyResponse(requestId=created.id)


def _request_host(request: Request) -> str:
    raw = request.headers.get("x-forwarded-host") or request.headers.get("host") or ""
    return raw.split(",")[0].strip().lower().split(":")[0]


@router.get(
    "/sitehtml",
    response_model=SiteHtmlResponse,
    response_model_exclude_none=True,
    summary="Tenant content for this host",
    description="Return the live HTML of the tenant addressed by the request host",
)
async def site_html(
    request: Request,
    storage: SiteStorage = Depends(get_site_storage),
    settings: PipelineConfig = Depends(get_settings),
) -> SiteHtmlResponse:
    """Resolve the tenant from the host and serve its live source."""
    slug = slug_from_host(_request_host(request), settings.tenant_suffixes())
    if not slug:
        return SiteHtmlResponse(ok=True, kind="root")

    source = await storage.get_live_html(slug)
    if source is None:
        body = SiteHtmlResponse(ok=False, kind="tenant", error="site_source_not_found", slug=slug)
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=body.model_dump(exclude_none=True),
        )

    return SiteHtmlResponse(
        ok=True,
        kind="tenant",
        slug=slug,
        html=source.html,
        source=source.source,
        version=source.version,
    )
