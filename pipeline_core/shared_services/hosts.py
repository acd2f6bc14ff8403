"""
Tenant Host Helpers

Maps hostnames and URLs to tenant slugs using the configured tenant
root-domain suffixes.
"""

from typing import Iterable, Optional
from urllib.parse import urlparse

from ..tenant_management.slugs import is_valid_slug


def parse_host(url: Optional[str]) -> str:
    """
    Lower-case hostname of a URL, tolerating a missing scheme.

    Returns an empty string when nothing host-like can be parsed.
    """
    raw = (url or "").strip()
    if not raw:
        return ""
    if "://" not in raw:
        raw = f"https://{raw}"
    try:
        host = urlparse(raw).hostname or ""
    except ValueError:
        return ""
    return host.lower().rstrip(".")


def slug_from_host(host: Optional[str], suffixes: Iterable[str]) -> str:
    """
    Extract the tenant label from a host.

    Suffixes are tried longest first. Root and ``www`` hosts, and labels
    that fail the slug grammar, yield an empty string.
    """
    h = (host or "").lower().split(":")[0].rstrip(".")
    if not h:
        return ""
    for suffix in sorted({s.lower().rstrip(".") for s in suffixes if s}, key=len, reverse=True):
        if h == suffix or h == f"www.{suffix}":
            return ""
        if h.endswith(f".{suffix}"):
            candidate = h[: -(len(suffix) + 1)]
            return candidate if is_valid_slug(candidate) else ""
    return ""


def slug_from_url(url: Optional[str], suffixes: Iterable[str]) -> str:
    """Tenant slug for a URL, or an empty string."""
    return slug_from_host(parse_host(url), suffixes)
