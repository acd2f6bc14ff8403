"""
Shared Services

External-provider clients and helpers used by the promotion orchestrator
and the batch runners.
"""

from .dns_records import DnsRecordManager, DnsUpsertResult
from .domain_attachments import DomainAttachmentManager, DomainAttachResult
from .health import HealthVerifier
from .notifications import TelegramNotifier
from .retry import RetryPolicy
from .site_storage import SiteStorage
from .source_checker import SourceAvailabilityChecker, SourceCheckResult

__all__ = [
    "DnsRecordManager",
    "DnsUpsertResult",
    "DomainAttachmentManager",
    "DomainAttachResult",
    "HealthVerifier",
    "RetryPolicy",
    "SiteStorage",
    "SourceAvailabilityChecker",
    "SourceCheckResult",
    "TelegramNotifier",
]
