"""
Stage-Gated Batch Runners

One runner per pipeline phase; each advances records from its trigger
stages to the next stage.
"""

from .base_runner import RecordOutcome, RunnerReport, StageGatedRunner, StageUpdate
from .design_plan_runner import DesignPlanRunner
from .dev_build_runner import DevBuildRunner
from .dns_assignment_runner import DnsAssignmentRunner
from .verification_runner import VerificationRunner

__all__ = [
    "DesignPlanRunner",
    "DevBuildRunner",
    "DnsAssignmentRunner",
    "RecordOutcome",
    "RunnerReport",
    "StageGatedRunner",
    "StageUpdate",
    "VerificationRunner",
]
