"""
Domain Attachment Manager

Idempotent attach/detach of hostnames to the hosting project (Vercel API)
and a readiness poll on the domain configuration.
"""

import asyncio
import re
import time
from typing import Literal, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field
from structlog import get_logger

from ..config import PipelineConfig, get_config
from ..errors import PromotionTimeoutError, ProviderError
from .http import http_session, json_body, send
from .retry import RetryPolicy

logger = get_logger()

PROVIDER = "vercel"

_ALREADY_ATTACHED = re.compile(r"already exists|already in use|owned|exists", re.IGNORECASE)


class DomainAttachResult(BaseModel):
    """Outcome of an attach request."""

    action: Literal["create", "noop"]
    created: bool = Field(default=False, description="This call attached the domain")
    dry_run: bool = Field(default=False)


class DomainAttachmentManager:
    """Domain table management for one hosting project."""

    def __init__(
        self,
        settings: Optional[PipelineConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        self.settings = settings or get_config()
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.settings)
        self.project = quote(self.settings.vercel_project_id or "", safe="")
        self._sleep = sleep
        self._clock = clock

    def _params(self) -> dict[str, str]:
        if self.settings.vercel_team_slug:
            return {"teamSlug": self.settings.vercel_team_slug}
        return {}

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.vercel_token or ''}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.settings.vercel_api_base}{path}"
        async with http_session(self.client, self.settings.http_timeout_seconds) as client:
            return await send(
                client, method, url, PROVIDER,
                headers=self._headers(), params=self._params(), **kwargs,
            )

    async def _call(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await self.retry_policy.call(self._request, method, path, **kwargs)

    async def is_attached(self, hostname: str) -> bool:
        """Check whether the project already has ``hostname``."""
        response = await self._call(
            "GET", f"/v9/projects/{self.project}/domains/{quote(hostname, safe='')}"
        )
        if response.status_code == 404:
            return False
        if response.is_success:
            return True
        raise ProviderError(
            PROVIDER, f"domain lookup failed for {hostname}",
            status_code=response.status_code, body=json_body(response),
        )

    async def ensure(self, hostname: str, dry_run: bool = False) -> DomainAttachResult:
        """
        Attach ``hostname`` to the project.

        A conflict (already attached here or elsewhere) is a noop, not an error.

        Raises:
            ProviderError: For any other rejection
        """
        if dry_run:
            attached = await self.is_attached(hostname)
            return DomainAttachResult(action="noop" if attached else "create", dry_run=True)

        response = await self._call(
            "POST", f"/v10/projects/{self.project}/domains", json={"name": hostname}
        )
        if response.is_success:
            logger.info("domain_attached", hostname=hostname)
            return DomainAttachResult(action="create", created=True)

        body = json_body(response)
        if response.status_code == 409 or _ALREADY_ATTACHED.search(str(body)):
            logger.info("domain_already_attached", hostname=hostname, status=response.status_code)
            return DomainAttachResult(action="noop")

        raise ProviderError(
            PROVIDER, f"domain add failed for {hostname}: body={body}",
            status_code=response.status_code, body=body,
        )

    async def remove(self, hostname: str) -> None:
        """Detach ``hostname``. Already detached is a noop."""
        response = await self._call(
            "DELETE", f"/v9/projects/{self.project}/domains/{quote(hostname, safe='')}"
        )
        if response.status_code == 404:
            logger.info("domain_already_detached", hostname=hostname)
            return
        if not response.is_success:
            raise ProviderError(
                PROVIDER, f"domain remove failed for {hostname}",
                status_code=response.status_code, body=json_body(response),
            )
        logger.info("domain_detached", hostname=hostname)

    async def get_config(self, hostname: str) -> dict:
        """Fetch the domain configuration (``misconfigured`` etc.)."""
        response = await self._call("GET", f"/v6/domains/{quote(hostname, safe='')}/config")
        body = json_body(response)
        if not response.is_success:
            raise ProviderError(
                PROVIDER, f"domain config failed for {hostname}: body={body}",
                status_code=response.status_code, body=body,
            )
        return body

    async def wait_until_ready(
        self,
        hostname: str,
        timeout_seconds: float,
        interval_seconds: Optional[float] = None,
    ) -> dict:
        """
        Poll the domain configuration until ``misconfigured`` is false.

        The configuration is fetched at least once, then every
        ``interval_seconds`` until the timeout elapses.

        Raises:
            PromotionTimeoutError: With the last observed configuration
        """
        interval = (
            self.settings.domain_poll_interval_seconds
            if interval_seconds is None
            else interval_seconds
        )
        deadline = self._clock() + timeout_seconds
        last: Optional[dict] = None
        while True:
            last = await self.get_config(hostname)
            if last.get("misconfigured") is False:
                logger.info("domain_ready", hostname=hostname)
                return last
            if self._clock() + interval > deadline:
                break
            logger.debug("domain_not_ready", hostname=hostname, config=last)
            await self._sleep(interval)
        raise PromotionTimeoutError(hostname, timeout_seconds, last)
