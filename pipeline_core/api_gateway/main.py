"""
Site Pipeline HTTP Gateway

Serves the public surface of the tenant site pipeline:
- Lead intake (``POST /api/apply``)
- Per-host content introspection (``GET /api/sitehtml``)
- Readiness of the configured providers (``GET /health``)
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from structlog import get_logger

from ..config import get_config
from ..errors import ConfigurationError, ConflictError, NotFoundError, PipelineError, ValidationError
from ..logging_config import configure_logging
from ..shared_services.site_storage import SiteStorage
from ..tenant_management.api_router import router as pipeline_router
from ..tenant_management.db_service import MongoTenantRecordRepository

config = get_config()
logger = get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the record store and site storage for the app's lifetime."""
    configure_logging(config)
    logger.info("site_gateway_starting", environment=config.environment.value, root_domain=config.root_domain)

    app.state.mongo_client = AsyncIOMotorClient(config.platform_mongo_db_url)
    records_db = app.state.mongo_client[config.platform_mongo_db_name]
    app.state.record_repository = MongoTenantRecordRepository(records_db, config)
    await app.state.record_repository.ensure_indexes()
    app.state.site_storage = SiteStorage(config)

    logger.info("site_gateway_ready", storage_ready=app.state.site_storage.ready)

    yield

    app.state.mongo_client.close()
    logger.info("site_gateway_stopped")


app = FastAPI(
    title="Tenant Site Pipeline",
    description="Lead intake and tenant content introspection for the multi-tenant site platform",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if not config.is_production else None,
    redoc_url="/redoc" if not config.is_production else None,
    openapi_url="/openapi.json" if not config.is_production else None,
)


@app.get("/health", tags=["Platform"], summary="Gateway and provider readiness")
async def health_check():
    return {
        "status": "healthy",
        "environment": config.environment.value,
        "version": VERSION,
        "root_domain": config.root_domain,
        "tenant_root_domain": config.tenant_root_domain,
        "storage_configured": config.r2_ready,
    }


_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    """Map pipeline errors that escape a route to an ``{ok: false}`` envelope."""
    code = next((c for kind, c in _ERROR_STATUS if isinstance(exc, kind)), status.HTTP_502_BAD_GATEWAY)
    logger.error(
        "gateway_request_failed",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        status=code,
    )
    return JSONResponse(status_code=code, content={"ok": False, "error": type(exc).__name__})


app.include_router(pipeline_router)
