"""
Build Marker

Provenance token embedded in a tenant page as a document-level meta tag,
``<meta name="<marker-name>" content="<prefix>:<slug>">``. Served content
carrying the token for a slug is that slug's source, not cached or foreign
content.
"""

import html as html_lib
import re
from typing import Optional

from ..config import PipelineConfig, get_config

_HEAD_OPEN = re.compile(r"<head\b[^>]*>", re.IGNORECASE)
_HTML_OPEN = re.compile(r"<html\b[^>]*>", re.IGNORECASE)


def marker_content(slug: str, settings: Optional[PipelineConfig] = None) -> str:
    """Marker token for a slug, e.g. ``rwz-live-v2:acme-1234``."""
    settings = settings or get_config()
    return f"{settings.build_marker_prefix}:{slug}"


def marker_tag(slug: str, settings: Optional[PipelineConfig] = None) -> str:
    settings = settings or get_config()
    return (
        f'<meta name="{html_lib.escape(settings.build_marker_name)}" '
        f'content="{html_lib.escape(marker_content(slug, settings))}">'
    )


def has_build_marker(html: Optional[str], slug: str, settings: Optional[PipelineConfig] = None) -> bool:
    """Check that ``html`` carries this slug's marker in a meta tag."""
    settings = settings or get_config()
    name = re.escape(settings.build_marker_name)
    token = re.escape(marker_content(slug, settings))
    pattern = re.compile(
        rf"<meta[^>]*name=[\"']{name}[\"'][^>]*content=[\"'][^\"']*{token}[^\"']*[\"'][^>]*>",
        re.IGNORECASE,
    )
    return bool(pattern.search(html or ""))


def stamp_build_marker(html: str, slug: str, settings: Optional[PipelineConfig] = None) -> str:
    """
    Insert the marker tag at the start of ``<head>``.

    A document that already carries the marker is returned unchanged.
    """
    if has_build_marker(html, slug, settings):
        return html
    tag = marker_tag(slug, settings)
    head = _HEAD_OPEN.search(html)
    if head:
        return f"{html[:head.end()]}{tag}{html[head.end():]}"
    root = _HTML_OPEN.search(html)
    if root:
        return f"{html[:root.end()]}<head>{tag}</head>{html[root.end():]}"
    return f"<head>{tag}</head>{html}"
