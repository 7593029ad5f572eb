"""Pipeline services for gradleguard."""

from .audit import AuditInput, DescriptorAuditor
from .loading import DescriptorLoader, LoadInput, LoadOutput
from .registry import MavenRegistryClient
from .reporting import ReportWriter
from .resolution import PlanResolver, ResolutionInput

__all__ = [
    "AuditInput",
    "DescriptorAuditor",
    "DescriptorLoader",
    "LoadInput",
    "LoadOutput",
    "MavenRegistryClient",
    "PlanResolver",
    "ReportWriter",
    "ResolutionInput",
]
