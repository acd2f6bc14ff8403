"""
Slug Normalization

Turns business-name text into DNS-label-safe tenant slugs and re-checks
persisted slugs against the label grammar.
"""

import re
import time
import unicodedata
from typing import Optional

SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
MAX_LABEL_LENGTH = 63
FALLBACK_PREFIX = "lead"
SUFFIX_LENGTH = 4

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_SEPARATORS = re.compile(r"[\s_]+")
_HYPHENS = re.compile(r"-+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def is_valid_slug(slug: Optional[str]) -> bool:
    """Check a slug against the DNS label grammar."""
    return bool(slug) and SLUG_PATTERN.match(slug) is not None


def to_base36(n: int) -> str:
    """Base-36 rendering of a non-negative integer."""
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        n, rem = divmod(n, 36)
        out = digits[rem] + out
        if n == 0:
            return out


def slugify(text: Optional[str]) -> str:
    """
    Reduce text to lower-case ASCII words joined by single hyphens.

    Diacritics are stripped; anything outside ``[a-z0-9]`` is dropped, so
    scripts without a Latin decomposition produce an empty string.
    """
    decomposed = unicodedata.normalize("NFKD", (text or "").lower())
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    spaced = ascii_only.replace("_", " ")
    cleaned = _DISALLOWED.sub("", spaced)
    hyphenated = _SEPARATORS.sub("-", cleaned.strip())
    return _HYPHENS.sub("-", hyphenated).strip("-")


def make_suffix(record_id: Optional[str] = None, now: Optional[float] = None) -> str:
    """
    Short disambiguating suffix.

    Last four alphanumerics of the record id; base36 time when the id has none.
    """
    alnum = _NON_ALNUM.sub("", (record_id or "").lower())
    if alnum:
        return alnum[-SUFFIX_LENGTH:]
    millis = int((now if now is not None else time.time()) * 1000)
    return to_base36(millis)[-SUFFIX_LENGTH:]


def normalize_slug(business_name: Optional[str], suffix: str) -> str:
    """
    Build a tenant slug from a business name and a suffix.

    Args:
        business_name: Arbitrary text
        suffix: Disambiguating suffix (see ``make_suffix``)

    Returns:
        A slug matching the DNS label grammar
    """
    suffix = slugify(suffix)[: MAX_LABEL_LENGTH - 2] or make_suffix()
    room = MAX_LABEL_LENGTH - len(suffix) - 1
    prefix = slugify(business_name)[:room].strip("-") or FALLBACK_PREFIX
    slug = f"{prefix}-{suffix}"
    if is_valid_slug(slug):
        return slug
    return f"{FALLBACK_PREFIX}-{make_suffix()}"


def repair_slug(slug: Optional[str]) -> Optional[str]:
    """
    Re-normalize a persisted slug that fails the grammar.

    Returns:
        The repaired slug, or None when nothing usable is left
    """
    repaired = slugify(slug)[:MAX_LABEL_LENGTH].strip("-")
    return repaired if is_valid_slug(repaired) else None
