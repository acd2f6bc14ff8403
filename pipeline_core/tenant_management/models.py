"""
Tenant Record Models

Defines the tenant record persisted in the external record store and the
stage state machine that the batch runners and the promotion orchestrator
advance.
"""

import secrets
import time
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..errors import StageTransitionError
from .slugs import to_base36

NOTE_SEPARATOR = " | "


class RecordStage(str, Enum):
    """Tenant pipeline stage, in pipeline order."""

    NEW = "NEW"  # Lead received
    DNS_DONE = "DNS_DONE"  # Slug assigned, preview CNAME in place
    DNS_ERROR = "DNS_ERROR"
    DESIGN_DONE = "DESIGN_DONE"  # Design spec stored
    DESIGN_ERROR = "DESIGN_ERROR"
    DEV_DONE = "DEV_DONE"  # HTML built and published
    DEV_ERROR = "DEV_ERROR"
    LIVE = "LIVE"  # Preview verified end-to-end
    VERIFY_ERROR = "VERIFY_ERROR"
    OPEN_DONE = "OPEN_DONE"  # Legacy equivalent of DEV_DONE
    PROMOTED = "PROMOTED"  # Serving on the production hostname

    @property
    def is_error(self) -> bool:
        """Check if this is an error stage."""
        return self.value.endswith("_ERROR")


STAGE_TRANSITIONS: dict[RecordStage, frozenset[RecordStage]] = {
    RecordStage.NEW: frozenset({RecordStage.DNS_DONE, RecordStage.DNS_ERROR}),
    RecordStage.DNS_ERROR: frozenset({RecordStage.DNS_DONE, RecordStage.DNS_ERROR}),
    RecordStage.DNS_DONE: frozenset({RecordStage.DESIGN_DONE, RecordStage.DESIGN_ERROR}),
    RecordStage.DESIGN_ERROR: frozenset({RecordStage.DESIGN_DONE, RecordStage.DESIGN_ERROR}),
    RecordStage.DESIGN_DONE: frozenset({RecordStage.DEV_DONE, RecordStage.DEV_ERROR}),
    RecordStage.DEV_ERROR: frozenset({RecordStage.DEV_DONE, RecordStage.DEV_ERROR}),
    RecordStage.DEV_DONE: frozenset(
        {RecordStage.LIVE, RecordStage.VERIFY_ERROR, RecordStage.PROMOTED}
    ),
    RecordStage.OPEN_DONE: frozenset(
        {RecordStage.LIVE, RecordStage.VERIFY_ERROR, RecordStage.PROMOTED}
    ),
    RecordStage.VERIFY_ERROR: frozenset(
        {RecordStage.LIVE, RecordStage.VERIFY_ERROR, RecordStage.PROMOTED}
    ),
    RecordStage.LIVE: frozenset({RecordStage.PROMOTED}),
    RecordStage.PROMOTED: frozenset({RecordStage.PROMOTED}),
}

# Stages whose content has been built and may be cut over to production.
PROMOTABLE_STAGES = frozenset(
    {RecordStage.DEV_DONE, RecordStage.OPEN_DONE, RecordStage.LIVE, RecordStage.PROMOTED}
)


def can_transition(current: RecordStage, target: RecordStage) -> bool:
    """Check whether the transition table allows ``current -> target``."""
    return target in STAGE_TRANSITIONS.get(current, frozenset())


def transition(current: RecordStage, target: RecordStage) -> RecordStage:
    """
    Validate a stage change.

    Args:
        current: Stage the record is in
        target: Stage the caller wants to write

    Returns:
        The target stage

    Raises:
        StageTransitionError: If the transition table does not allow it
    """
    if not can_transition(current, target):
        raise StageTransitionError(current.value, target.value)
    return target


def append_note(existing: Optional[str], entry: str) -> str:
    """Append an entry to a free-text audit note."""
    return NOTE_SEPARATOR.join(part for part in ((existing or "").strip(), entry.strip()) if part)


def new_request_id(prefix: str = "rwz_", now: Optional[float] = None) -> str:
    """Request id ``<prefix><base36 millis>_<4 random base36 chars>``."""
    millis = int((now if now is not None else time.time()) * 1000)
    tail = "".join(secrets.choice("0123456789abcdefghijklmnopqrstuvwxyz") for _ in range(4))
    return f"{prefix}{to_base36(millis)}_{tail}"


class TenantRecord(BaseModel):
    """
    A tenant request as persisted in the record store.

    ``row`` is the store's row index; ``id`` is the immutable request id.
    """

    id: str = Field(..., description="Opaque unique request identifier")
    row: int = Field(default=0, ge=0, description="Row index in the record store")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    stage: RecordStage = Field(default=RecordStage.NEW)

    # Business fields
    business_name: str = Field(default="")
    website_url: str = Field(default="")
    contact_name: str = Field(default="")
    contact_email: str = Field(default="")
    contact_phone: str = Field(default="")
    category: str = Field(default="")
    region: str = Field(default="")
    goal: str = Field(default="")

    # Provisioning fields
    slug: str = Field(default="")
    preview_url: str = Field(default="")
    prod_url: str = Field(default="")
    audit_note: str = Field(default="")

    # Per-record lease
    lease_holder: Optional[str] = Field(default=None)
    lease_expires_at: Optional[datetime] = Field(default=None)

    @field_validator("slug")
    @classmethod
    def strip_slug(cls, v: str) -> str:
        """Slugs are compared lower-case and without whitespace."""
        return (v or "").strip().lower()

    def with_note(self, entry: str) -> str:
        """Audit note with ``entry`` appended."""
        return append_note(self.audit_note, entry)

    def is_leased(self, now: Optional[datetime] = None) -> bool:
        """Check if an unexpired lease is held on this record."""
        now = now or datetime.utcnow()
        return bool(self.lease_holder and self.lease_expires_at and self.lease_expires_at > now)
