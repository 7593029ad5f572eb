"""Maven repository lookups for dependency coordinates."""

from .client import MavenRegistryClient, is_checkable, pom_path

__all__ = ["MavenRegistryClient", "is_checkable", "pom_path"]
