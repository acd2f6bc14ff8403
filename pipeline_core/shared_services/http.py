"""
HTTP Helpers

Shared httpx session handling and provider response classification.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from ..errors import ConfigurationError, TransientNetworkError


@asynccontextmanager
async def http_session(
    client: Optional[httpx.AsyncClient],
    timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived client closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as session:
        yield session


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    provider: str,
    **kwargs,
) -> httpx.Response:
    """
    Send a request and classify transport-level failures.

    Raises:
        TransientNetworkError: On timeouts, connection errors, 429 and 5xx
        ConfigurationError: On 401 and 403
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TransportError as e:
        raise TransientNetworkError(f"{provider} {method} {url}: {e!r}") from e

    if response.status_code == 429 or response.status_code >= 500:
        raise TransientNetworkError(
            f"{provider} {method} {url}: status={response.status_code}"
        )
    if response.status_code in (401, 403):
        raise ConfigurationError(
            f"{provider} rejected credentials: status={response.status_code}"
        )
    return response


def json_body(response: httpx.Response) -> dict:
    """Response JSON as a dict, or an empty dict for non-JSON bodies."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"data": body}
