"""
Health Verifier

Lightweight HEAD probe against a public URL.
"""

from typing import Optional

import httpx
from structlog import get_logger

from ..config import PipelineConfig, get_config
from .http import http_session
from .retry import RetryPolicy

logger = get_logger()


class _ProbeFailed(Exception):
    def __init__(self, code: int):
        self.code = code
        super().__init__(f"status={code}")


def is_healthy_status(code: int) -> bool:
    """2xx and 3xx count as up."""
    return 200 <= code < 400


class HealthVerifier:
    """Bounded HEAD probe; returns a status code instead of raising."""

    def __init__(
        self,
        settings: Optional[PipelineConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_config()
        self.client = client

    async def _head(self, url: str) -> int:
        async with http_session(self.client, self.settings.http_timeout_seconds) as client:
            try:
                response = await client.head(url, follow_redirects=False)
            except httpx.TransportError as e:
                logger.debug("health_probe_transport_error", url=url, error=repr(e))
                raise _ProbeFailed(0) from e
        if not is_healthy_status(response.status_code):
            raise _ProbeFailed(response.status_code)
        return response.status_code

    async def probe(self, url: str, tries: int = 3) -> int:
        """
        Probe ``url`` up to ``tries`` times.

        Returns:
            The first 2xx/3xx status, otherwise the last status seen
            (0 when the host never answered)
        """
        policy = RetryPolicy.fixed(tries, self.settings.probe_delay_seconds)
        last_code = 0
        try:
            async for attempt in policy.retrying(retry_on=(_ProbeFailed,)):
                with attempt:
                    try:
                        code = await self._head(url)
                    except _ProbeFailed as e:
                        last_code = e.code or last_code
                        raise
                    logger.info("health_probe_ok", url=url, code=code)
                    return code
        except _ProbeFailed:
            pass

        logger.warning("health_probe_failed", url=url, code=last_code, tries=tries)
        return last_code
