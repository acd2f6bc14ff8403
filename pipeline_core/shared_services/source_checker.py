"""
Source Availability Checker

Confirms that a hostname answers its content-introspection endpoint with
this tenant's HTML, carrying this tenant's build marker. Routing that
answers with another tenant's (or cached) content does not pass.
"""

import re
from typing import Optional

import httpx
from pydantic import BaseModel, Field
from structlog import get_logger

from ..config import PipelineConfig, get_config
from ..errors import VerificationFailure
from .build_marker import has_build_marker
from .http import http_session
from .retry import RetryPolicy

logger = get_logger()

_HTML_OPEN = re.compile(r"<html", re.IGNORECASE)


class SourceCheckResult(BaseModel):
    """Outcome of a content-introspection check."""

    code: int = Field(default=0, description="Last HTTP status, 0 if never answered")
    marker_ok: bool = Field(default=False)

    @property
    def ok(self) -> bool:
        return bool(self.code) and self.marker_ok


class _ContentNotReady(VerificationFailure):
    def __init__(self, code: int, reason: str):
        self.code = code
        super().__init__(reason)


def envelope_matches(body: object, slug: str) -> bool:
    """Check a ``{ok, kind, slug, html}`` envelope belongs to ``slug``."""
    if not isinstance(body, dict):
        return False
    return bool(
        body.get("ok")
        and body.get("kind") == "tenant"
        and str(body.get("slug") or "").strip() == slug
        and _HTML_OPEN.search(str(body.get("html") or ""))
    )


class SourceAvailabilityChecker:
    """Polls ``GET https://<host><sitehtml_path>`` with a fixed delay."""

    def __init__(
        self,
        settings: Optional[PipelineConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_config()
        self.client = client

    def endpoint(self, hostname: str) -> str:
        return f"https://{hostname}{self.settings.sitehtml_path}"

    async def _fetch(self, url: str, slug: str) -> tuple[int, bool]:
        async with http_session(self.client, self.settings.http_timeout_seconds) as client:
            try:
                response = await client.get(
                    url, headers={"Cache-Control": "no-cache"}, follow_redirects=True
                )
            except httpx.TransportError as e:
                raise _ContentNotReady(0, f"transport error: {e!r}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success or not envelope_matches(body, slug):
            raise _ContentNotReady(response.status_code, "envelope mismatch")
        return response.status_code, has_build_marker(body.get("html"), slug, self.settings)

    async def check(self, hostname: str, slug: str, tries: Optional[int] = None) -> SourceCheckResult:
        """
        Check that ``hostname`` serves ``slug``'s source.

        Args:
            hostname: Host to query
            slug: Expected tenant slug
            tries: Attempts before giving up (defaults to config)

        Returns:
            Status code and whether the build marker matched. A host that
            never returned a matching envelope yields ``marker_ok=False``.
        """
        tries = tries or self.settings.source_check_tries
        policy = RetryPolicy.fixed(tries, self.settings.probe_delay_seconds)
        url = self.endpoint(hostname)
        last_code = 0

        try:
            async for attempt in policy.retrying(retry_on=(_ContentNotReady,)):
                with attempt:
                    try:
                        code, marker_ok = await self._fetch(url, slug)
                    except _ContentNotReady as e:
                        last_code = e.code or last_code
                        raise
                    logger.info(
                        "source_check_answered",
                        hostname=hostname,
                        slug=slug,
                        code=code,
                        marker_ok=marker_ok,
                    )
                    return SourceCheckResult(code=code, marker_ok=marker_ok)
        except _ContentNotReady:
            pass

        logger.warning("source_check_failed", hostname=hostname, slug=slug, code=last_code, tries=tries)
        return SourceCheckResult(code=last_code, marker_ok=False)
