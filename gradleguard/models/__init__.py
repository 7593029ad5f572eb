"""Data models for gradleguard."""

from .descriptor import (
    BuildConfigField,
    BuildDescriptor,
    BuildTypeDecl,
    BundleConfig,
    DefaultConfigDecl,
    DependencyDeclaration,
    DependencyKind,
    Dialect,
    PluginDeclaration,
    RepositoryDeclaration,
    Setting,
    SigningConfigDecl,
    UnsupportedConstruct,
)
from .findings import AuditReport, DependencyStatus, Finding, Severity
from .plan import (
    BuildPlan,
    ResolvedValue,
    SdkBounds,
    SigningProfile,
    UnresolvedSetting,
    ValueSource,
    VariantPlan,
    mask_secret,
)

__all__ = [
    # Descriptor
    "BuildConfigField",
    "BuildDescriptor",
    "BuildTypeDecl",
    "BundleConfig",
    "DefaultConfigDecl",
    "DependencyDeclaration",
    "DependencyKind",
    "Dialect",
    "PluginDeclaration",
    "RepositoryDeclaration",
    "Setting",
    "SigningConfigDecl",
    "UnsupportedConstruct",
    # Plan
    "BuildPlan",
    "ResolvedValue",
    "SdkBounds",
    "SigningProfile",
    "UnresolvedSetting",
    "ValueSource",
    "VariantPlan",
    "mask_secret",
    # Findings
    "AuditReport",
    "DependencyStatus",
    "Finding",
    "Severity",
]
