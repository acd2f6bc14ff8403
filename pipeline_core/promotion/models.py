"""
Promotion Models

Preview-to-production promotion state machine, request and report.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..errors import StageTransitionError
from ..tenant_management.resolver import TargetReference


class PromotionState(str, Enum):
    """Promotion progress. States are reached strictly in declaration order."""

    UNSTARTED = "UNSTARTED"
    SOURCE_VERIFIED = "SOURCE_VERIFIED"
    DNS_READY = "DNS_READY"
    DOMAIN_ATTACHED = "DOMAIN_ATTACHED"
    DOMAIN_CONFIG_READY = "DOMAIN_CONFIG_READY"
    HEALTH_VERIFIED = "HEALTH_VERIFIED"
    PROMOTED = "PROMOTED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PromotionState.PROMOTED, PromotionState.FAILED)


PROMOTION_SEQUENCE: tuple[PromotionState, ...] = (
    PromotionState.UNSTARTED,
    PromotionState.SOURCE_VERIFIED,
    PromotionState.DNS_READY,
    PromotionState.DOMAIN_ATTACHED,
    PromotionState.DOMAIN_CONFIG_READY,
    PromotionState.HEALTH_VERIFIED,
    PromotionState.PROMOTED,
)


def advance(current: PromotionState, target: PromotionState) -> PromotionState:
    """
    Validate a promotion state change.

    Any non-terminal state may fail; otherwise only the next state in
    the sequence is allowed.

    Raises:
        StageTransitionError: For skips, reversals and moves out of a terminal state
    """
    if current.is_terminal:
        raise StageTransitionError(current.value, target.value)
    if target == PromotionState.FAILED:
        return target
    i = PROMOTION_SEQUENCE.index(current)
    if i + 1 >= len(PROMOTION_SEQUENCE) or PROMOTION_SEQUENCE[i + 1] != target:
        raise StageTransitionError(current.value, target.value)
    return target


class PromotionRequest(BaseModel):
    """Input to a single promotion run."""

    reference: TargetReference
    dry_run: bool = Field(default=False, description="Decide DNS and domain actions without mutating")
    notify: bool = Field(default=True, description="Send a chat notification on success")
    timeout_seconds: Optional[float] = Field(
        default=None, ge=0, description="Domain readiness timeout (defaults to config)"
    )


class CreatedResources(BaseModel):
    """External resources this run created. Only these are rolled back."""

    hostname: str = ""
    dns_record_id: str = ""
    domain_attached: bool = False

    def any(self) -> bool:
        return bool(self.dns_record_id or self.domain_attached)


class PromotionReport(BaseModel):
    """Outcome of a promotion run."""

    state: PromotionState = Field(default=PromotionState.UNSTARTED)
    history: list[PromotionState] = Field(default_factory=lambda: [PromotionState.UNSTARTED])
    slug: str = ""
    record_id: Optional[str] = None
    prod_url: str = ""
    source_host: str = ""
    dry_run: bool = False

    checks: dict[str, str] = Field(default_factory=dict)
    created: CreatedResources = Field(default_factory=CreatedResources)
    rolled_back: list[str] = Field(default_factory=list)

    failed_step: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def move_to(self, target: PromotionState) -> None:
        self.state = advance(self.state, target)
        self.history.append(target)

    @property
    def succeeded(self) -> bool:
        """Promoted, or a dry run that completed its decision steps."""
        if self.dry_run:
            return self.state == PromotionState.DOMAIN_ATTACHED
        return self.state == PromotionState.PROMOTED

    def diagnostic(self) -> str:
        """One-line summary naming the failed step, for CLI output."""
        if self.state != PromotionState.FAILED:
            return f"{self.state.value} slug={self.slug} prod={self.prod_url or '-'}"
        created = (
            f"dns_record={self.created.dns_record_id or '-'} "
            f"domain_attached={self.created.domain_attached}"
        )
        return (
            f"FAILED step={self.failed_step} slug={self.slug or '-'} "
            f"error={self.error} created[{created}] rolled_back={self.rolled_back}"
        )
