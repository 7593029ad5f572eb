"""Descriptor audit service and rules."""

from .rules import RULES, AuditContext, is_dynamic_version, is_prerelease_version
from .service import AuditInput, DescriptorAuditor

__all__ = [
    "RULES",
    "AuditContext",
    "AuditInput",
    "DescriptorAuditor",
    "is_dynamic_version",
    "is_prerelease_version",
]
