"""
Site Source Storage

Versioned tenant HTML in S3-compatible object storage (Cloudflare R2).

Key layout under ``<prefix>/<slug>/``:
- ``<version>/index.html`` - immutable published version
- ``_live.json`` - pointer ``{slug, version, key, updated_at}`` to the live version
- ``index.html`` - legacy single-version key, read as a fallback
- ``DESIGN_SPEC.md`` - design plan consumed by the dev build
"""

import asyncio
import json
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError
from pydantic import BaseModel
from structlog import get_logger

from ..config import PipelineConfig, get_config
from ..errors import ConfigurationError
from ..tenant_management.slugs import to_base36

logger = get_logger()

_BASE36 = string.digits + string.ascii_lowercase
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def make_version(now_ms: Optional[int] = None) -> str:
    """Sortable unique version id, ``v<base36 millis><6 random chars>``."""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"v{to_base36(now_ms)}{suffix}"


class LivePointer(BaseModel):
    """The live version of a tenant site."""

    slug: str
    version: str
    key: str
    updated_at: str = ""


class SiteSource(BaseModel):
    """HTML served for a tenant plus where it came from."""

    html: str
    version: str = ""
    key: str
    source: str = "r2"


class UploadResult(BaseModel):
    version: str
    html_key: str
    pointer_key: str


def _is_missing(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code", "")) in _MISSING_CODES


class SiteStorage:
    """Object-storage access for tenant site sources."""

    def __init__(self, settings: Optional[PipelineConfig] = None, client: Any = None):
        """
        Initialize site storage.

        Args:
            settings: Optional configuration (defaults to the cached config)
            client: Optional pre-built S3 client (anything with the boto3
                ``put_object``/``get_object``/``head_object`` surface)
        """
        self.settings = settings or get_config()
        self._client = client
        self.prefix = self.settings.r2_key_prefix.strip("/")

    @property
    def ready(self) -> bool:
        return self._client is not None or self.settings.r2_ready

    @property
    def bucket(self) -> str:
        return self.settings.r2_bucket or ""

    def _ensure_client(self):
        if self._client is None:
            if not self.settings.r2_ready:
                raise ConfigurationError(
                    "Object storage not configured: R2_ENABLED / R2_BUCKET / "
                    "R2_ACCESS_KEY_ID / R2_SECRET_ACCESS_KEY / R2_ENDPOINT"
                )
            self._client = boto3.client(
                "s3",
                endpoint_url=self.settings.r2_endpoint_url(),
                aws_access_key_id=self.settings.r2_access_key_id,
                aws_secret_access_key=self.settings.r2_secret_access_key,
                region_name="auto",
                config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
            )
        return self._client

    # Keys

    def version_key(self, slug: str, version: str) -> str:
        return f"{self.prefix}/{slug}/{version}/index.html"

    def pointer_key(self, slug: str) -> str:
        return f"{self.prefix}/{slug}/_live.json"

    def legacy_key(self, slug: str) -> str:
        return f"{self.prefix}/{slug}/index.html"

    def design_spec_key(self, slug: str) -> str:
        return f"{self.prefix}/{slug}/DESIGN_SPEC.md"

    # Primitive object operations (blocking boto3 calls run in a worker thread)

    async def _put(self, key: str, body: str, content_type: str) -> None:
        client = self._ensure_client()
        await asyncio.to_thread(
            client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=body.encode("utf-8"),
            ContentType=content_type,
        )

    async def _get(self, key: str) -> Optional[str]:
        client = self._ensure_client()

        def read() -> Optional[str]:
            try:
                out = client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_missing(e):
                    return None
                raise
            return out["Body"].read().decode("utf-8")

        return await asyncio.to_thread(read)

    async def _exists(self, key: str) -> bool:
        client = self._ensure_client()

        def head() -> bool:
            try:
                client.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_missing(e):
                    return False
                raise
            return True

        return await asyncio.to_thread(head)

    # Site sources

    async def upload_site_html(self, slug: str, html: str, version: Optional[str] = None) -> UploadResult:
        """
        Publish ``html`` as a new version and move the live pointer to it.

        The version object is written before the pointer, so readers never
        see a pointer to a missing object.
        """
        version = version or make_version()
        html_key = self.version_key(slug, version)
        pointer_key = self.pointer_key(slug)

        await self._put(html_key, html, "text/html; charset=utf-8")
        pointer = LivePointer(
            slug=slug,
            version=version,
            key=html_key,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
        await self._put(pointer_key, json.dumps(pointer.model_dump(), indent=2), "application/json; charset=utf-8")

        logger.info("site_source_published", slug=slug, version=version, key=html_key)
        return UploadResult(version=version, html_key=html_key, pointer_key=pointer_key)

    async def get_live_pointer(self, slug: str) -> Optional[LivePointer]:
        """Live pointer for ``slug``, or None if absent or malformed."""
        if not self.ready:
            return None
        raw = await self._get(self.pointer_key(slug))
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("live_pointer_malformed", slug=slug)
            return None
        if not isinstance(data, dict) or not data.get("key") or not data.get("version"):
            return None
        return LivePointer(slug=data.get("slug") or slug, version=data["version"],
                           key=data["key"], updated_at=data.get("updated_at") or "")

    async def get_live_html(self, slug: str) -> Optional[SiteSource]:
        """Live HTML via the pointer, falling back to the legacy key."""
        if not self.ready:
            return None

        pointer = await self.get_live_pointer(slug)
        if pointer:
            html = await self._get(pointer.key)
            if html:
                return SiteSource(html=html, version=pointer.version, key=pointer.key)

        legacy = self.legacy_key(slug)
        html = await self._get(legacy)
        if html:
            return SiteSource(html=html, version="legacy", key=legacy, source="r2-legacy")
        return None

    async def has_live_source(self, slug: str) -> bool:
        """The live pointer exists and the object it names exists."""
        pointer = await self.get_live_pointer(slug)
        if not pointer:
            return False
        return await self._exists(pointer.key)

    # Design specs

    async def put_design_spec(self, slug: str, spec: str) -> str:
        key = self.design_spec_key(slug)
        await self._put(key, spec, "text/markdown; charset=utf-8")
        logger.info("design_spec_stored", slug=slug, key=key)
        return key

    async def get_design_spec(self, slug: str) -> Optional[str]:
        return await self._get(self.design_spec_key(slug))
