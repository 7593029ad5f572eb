"""Core infrastructure components for gradleguard."""

from .config import Config, get_config
from .exceptions import (
    DescriptorSyntaxError,
    GradleGuardError,
    PipelineError,
    RegistryError,
    ServiceError,
    ValidationError,
)
from .logging import get_logger, setup_logging
from .types import ServiceResult, StageResult, StageStatus

__all__ = [
    "Config",
    "get_config",
    "GradleGuardError",
    "DescriptorSyntaxError",
    "PipelineError",
    "RegistryError",
    "ServiceError",
    "ValidationError",
    "get_logger",
    "setup_logging",
    "ServiceResult",
    "StageResult",
    "StageStatus",
]
