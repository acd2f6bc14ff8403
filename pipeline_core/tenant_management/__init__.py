"""
Tenant Management Module

Tenant record model, stage state machine, record store, slug
normalization and target resolution.
"""

from .db_service import (
    InMemoryTenantRecordRepository,
    MongoTenantRecordRepository,
    TenantRecordRepository,
)
from .models import PROMOTABLE_STAGES, RecordStage, TenantRecord, transition
from .slugs import is_valid_slug, normalize_slug

__all__ = [
    "InMemoryTenantRecordRepository",
    "MongoTenantRecordRepository",
    "PROMOTABLE_STAGES",
    "RecordStage",
    "TenantRecord",
    "TenantRecordRepository",
    "is_valid_slug",
    "normalize_slug",
    "transition",
]
