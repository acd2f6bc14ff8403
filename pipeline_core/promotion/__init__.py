"""
Promotion Module

Preview-to-production cutover with compensating rollback.
"""

from .models import PromotionReport, PromotionRequest, PromotionState
from .orchestrator import PromotionOrchestrator
from .saga import CompensationStack

__all__ = [
    "CompensationStack",
    "PromotionOrchestrator",
    "PromotionReport",
    "PromotionRequest",
    "PromotionState",
]
