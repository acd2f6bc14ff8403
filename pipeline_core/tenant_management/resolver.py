"""
Target Resolver

Maps a heterogeneous tenant reference (explicit slug, request id, URL, or
freeform token) to a canonical slug and its persisted record.
"""

from typing import Optional

from pydantic import BaseModel, Field
from structlog import get_logger

from ..config import PipelineConfig, get_config
from ..errors import AmbiguousReferenceError, InvalidSlugError, NotFoundError
from ..shared_services.hosts import parse_host, slug_from_url
from .db_service import TenantRecordRepository
from .models import TenantRecord
from .slugs import is_valid_slug

logger = get_logger()


class TargetReference(BaseModel):
    """A tenant reference. The first non-empty field, in declaration order, wins."""

    slug: Optional[str] = Field(default=None, description="Explicit tenant slug")
    id: Optional[str] = Field(default=None, description="Request id")
    url: Optional[str] = Field(default=None, description="Preview or production URL")
    ref: Optional[str] = Field(default=None, description="Freeform token")

    def is_empty(self) -> bool:
        return not any(_clean(v) for v in (self.slug, self.id, self.url, self.ref))


class ResolvedTarget(BaseModel):
    """Canonical slug plus the backing record, if any."""

    slug: str
    record: Optional[TenantRecord] = None
    source_hint_host: str = Field(default="", description="Host taken from a URL reference")


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


class TargetResolver:
    """Resolves references against the record store and tenant suffixes."""

    def __init__(
        self,
        repository: TenantRecordRepository,
        settings: Optional[PipelineConfig] = None,
    ):
        self.repository = repository
        self.settings = settings or get_config()

    async def resolve(self, reference: TargetReference, require_record: bool = False) -> ResolvedTarget:
        """
        Resolve a reference.

        Priority: explicit slug, explicit id, explicit URL, then freeform
        (URL-like tokens, then id-prefixed tokens, then a raw slug).

        Args:
            reference: The tenant reference
            require_record: Fail if the slug has no backing record

        Returns:
            The resolved target

        Raises:
            InvalidSlugError: If a slug fails the label grammar
            AmbiguousReferenceError: If nothing could be derived
            NotFoundError: If an id is unknown, or a record is required and missing
        """
        target = await self._resolve(reference)
        if require_record and target.record is None:
            raise NotFoundError(f"No record found for slug: {target.slug}")
        logger.info(
            "target_resolved",
            slug=target.slug,
            record_id=target.record.id if target.record else None,
            source_hint_host=target.source_hint_host or None,
        )
        return target

    async def _resolve(self, reference: TargetReference) -> ResolvedTarget:
        slug = _clean(reference.slug)
        if slug:
            return await self._by_slug(slug)

        record_id = _clean(reference.id)
        if record_id:
            return await self._by_id(record_id)

        url = _clean(reference.url)
        if url:
            target = await self._by_url(url)
            if target is None:
                raise AmbiguousReferenceError(f"Could not extract slug from URL: {url}")
            return target

        ref = _clean(reference.ref)
        if ref:
            return await self._by_freeform(ref)

        raise AmbiguousReferenceError(
            "Missing target. Use one of: --slug <slug> | --id <requestId> | --url <previewUrl> | --ref <value>"
        )

    async def _by_slug(self, slug: str, source_hint_host: str = "") -> ResolvedTarget:
        if not is_valid_slug(slug):
            raise InvalidSlugError(slug)
        record = await self.repository.get_by_slug(slug)
        return ResolvedTarget(slug=slug, record=record, source_hint_host=source_hint_host)

    async def _by_id(self, record_id: str) -> ResolvedTarget:
        record = await self.repository.get_by_id(record_id)
        if record is None:
            raise NotFoundError(f"Could not find record by id: {record_id}")
        if not is_valid_slug(record.slug):
            raise InvalidSlugError(record.slug, f"record {record_id} has an invalid or missing slug")
        return ResolvedTarget(slug=record.slug, record=record)

    async def _by_url(self, url: str) -> Optional[ResolvedTarget]:
        slug = slug_from_url(url, self.settings.tenant_suffixes())
        if not slug:
            return None
        return await self._by_slug(slug, source_hint_host=parse_host(url))

    async def _by_freeform(self, ref: str) -> ResolvedTarget:
        lowered = ref.lower()
        if lowered.startswith(("http://", "https://")) or "." in ref:
            target = await self._by_url(ref)
            if target is not None:
                return target

        prefix = self.settings.request_id_prefix.lower()
        if prefix and lowered.startswith(prefix):
            return await self._by_id(ref)

        if is_valid_slug(ref):
            return await self._by_slug(ref)

        raise AmbiguousReferenceError(f"Could not parse reference: {ref}")


def resolve_source_host(
    slug: str,
    settings: Optional[PipelineConfig] = None,
    record_url: str = "",
    source_hint_host: str = "",
) -> str:
    """
    Preview host to verify content on before a cutover.

    An explicit hint wins; a preview-style tenant root gives
    ``<slug>.<tenant_root>``; then the record's preview URL; finally
    ``<slug>.preview.<root>``.
    """
    settings = settings or get_config()
    hint = parse_host(source_hint_host)
    if hint:
        return hint

    tenant_root = settings.tenant_root_domain.lower()
    if tenant_root.startswith("preview.") or ".preview." in tenant_root:
        return f"{slug}.{tenant_root}"

    by_record = parse_host(record_url)
    if by_record:
        return by_record

    return f"{slug}.preview.{settings.root_domain}"
