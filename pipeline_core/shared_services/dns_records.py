"""
DNS Record Manager

Idempotent CNAME upsert and delete against the Cloudflare v4 API.

Upsert:
1. List records at the hostname
2. Matching non-proxied CNAME -> noop
3. CNAME with other content -> update in place
4. No CNAME -> create; on a record-type conflict, delete the conflicting
   A/AAAA/CNAME records at that name and create once more ("recreated")
"""

from typing import Literal, Optional

import httpx
from pydantic import BaseModel, Field
from structlog import get_logger

from ..config import PipelineConfig, get_config
from ..errors import ConflictError, ProviderError
from .http import http_session, json_body, send
from .retry import RetryPolicy

logger = get_logger()

PROVIDER = "cloudflare"

# Cloudflare error codes for "a record with that host already exists".
CONFLICT_CODES = frozenset({81053, 81054, 81055, 81057, 81058})
CONFLICTING_TYPES = ("A", "AAAA", "CNAME")


class DnsRecord(BaseModel):
    """A DNS record as returned by the provider."""

    id: str
    type: str
    name: str
    content: str = Field(default="")
    ttl: int = Field(default=1)
    proxied: bool = Field(default=False)


class DnsUpsertResult(BaseModel):
    """Outcome of a CNAME upsert."""

    action: Literal["noop", "created", "updated", "recreated"]
    record_id: str = Field(default="")
    created: bool = Field(default=False, description="This call created the record")
    dry_run: bool = Field(default=False)


def _strip_dot(value: str) -> str:
    return (value or "").strip().lower().rstrip(".")


class DnsRecordManager:
    """CNAME management for one Cloudflare zone."""

    def __init__(
        self,
        settings: Optional[PipelineConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize DNS record manager.

        Args:
            settings: Optional configuration (defaults to the cached config)
            client: Optional shared HTTP client
            retry_policy: Policy for transient failures
        """
        self.settings = settings or get_config()
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.settings)
        self.zone_id = self.settings.cloudflare_zone_id or ""

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.cloudflare_api_token or ''}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> object:
        url = f"{self.settings.cloudflare_api_base}{path}"
        async with http_session(self.client, self.settings.http_timeout_seconds) as client:
            response = await send(client, method, url, PROVIDER, headers=self._headers(), **kwargs)
        body = json_body(response)
        if body.get("success"):
            return body.get("result")

        errors = body.get("errors") or []
        codes = {e.get("code") for e in errors if isinstance(e, dict)}
        if codes & CONFLICT_CODES:
            raise ConflictError(f"{PROVIDER} {method} {path}: {errors}")
        raise ProviderError(
            PROVIDER,
            f"API failed ({method} {path}): {errors or body.get('messages') or body}",
            status_code=response.status_code,
            body=body,
        )

    async def _call(self, method: str, path: str, **kwargs) -> object:
        return await self.retry_policy.call(self._request, method, path, **kwargs)

    async def list_by_name(self, hostname: str, record_type: Optional[str] = None) -> list[DnsRecord]:
        """List records at ``hostname``, optionally of one type."""
        params = {"name": hostname, "per_page": 100}
        if record_type:
            params["type"] = record_type
        result = await self._call("GET", f"/zones/{self.zone_id}/dns_records", params=params)
        return [DnsRecord(**r) for r in (result or [])]

    def _cname_body(self, hostname: str, target: str) -> dict:
        return {
            "type": "CNAME",
            "name": hostname,
            "content": target,
            "ttl": self.settings.dns_ttl,
            "proxied": False,
        }

    async def upsert_cname(
        self,
        hostname: str,
        target: Optional[str] = None,
        dry_run: bool = False,
    ) -> DnsUpsertResult:
        """
        Make ``hostname`` a non-proxied CNAME to ``target``.

        Args:
            hostname: Fully-qualified record name
            target: CNAME content (defaults to the configured target)
            dry_run: Decide the action without mutating anything

        Returns:
            The action taken (or that would be taken) and the record id
        """
        target = target or self.settings.cf_target_cname
        records = await self.list_by_name(hostname)
        cname = next((r for r in records if r.type == "CNAME"), None)

        if cname and _strip_dot(cname.content) == _strip_dot(target) and cname.proxied is False:
            logger.info("dns_record_unchanged", hostname=hostname, record_id=cname.id)
            return DnsUpsertResult(action="noop", record_id=cname.id, dry_run=dry_run)

        if cname:
            if dry_run:
                return DnsUpsertResult(action="updated", record_id=cname.id, dry_run=True)
            result = await self._call(
                "PUT",
                f"/zones/{self.zone_id}/dns_records/{cname.id}",
                json=self._cname_body(hostname, target),
            )
            record_id = (result or {}).get("id") or cname.id
            logger.info("dns_record_updated", hostname=hostname, record_id=record_id, target=target)
            return DnsUpsertResult(action="updated", record_id=record_id)

        if dry_run:
            return DnsUpsertResult(action="created", dry_run=True)

        try:
            record_id = await self._create(hostname, target)
            logger.info("dns_record_created", hostname=hostname, record_id=record_id, target=target)
            return DnsUpsertResult(action="created", record_id=record_id, created=True)
        except ConflictError as e:
            logger.warning("dns_record_conflict", hostname=hostname, error=str(e))

        removed = await self.delete_by_name(hostname, types=CONFLICTING_TYPES)
        record_id = await self._create(hostname, target)
        logger.info(
            "dns_record_recreated",
            hostname=hostname,
            record_id=record_id,
            removed_conflicts=removed,
        )
        return DnsUpsertResult(action="recreated", record_id=record_id, created=True)

    async def _create(self, hostname: str, target: str) -> str:
        result = await self._call(
            "POST",
            f"/zones/{self.zone_id}/dns_records",
            json=self._cname_body(hostname, target),
        )
        return (result or {}).get("id", "")

    async def delete_record(self, record_id: str) -> None:
        """Delete one record by id. An empty id is a no-op."""
        if not record_id:
            return
        await self._call("DELETE", f"/zones/{self.zone_id}/dns_records/{record_id}")
        logger.info("dns_record_deleted", record_id=record_id)

    async def delete_by_name(
        self,
        hostname: str,
        types: tuple[str, ...] = CONFLICTING_TYPES,
    ) -> int:
        """
        Delete records of ``types`` at ``hostname``.

        Returns:
            Number of records deleted (0 when already clean)
        """
        records = [r for r in await self.list_by_name(hostname) if r.type in types]
        for record in records:
            await self.delete_record(record.id)
        return len(records)
