"""Build plan resolution service."""

from .properties import (
    build_environment,
    collect_properties,
    parse_assignments,
    parse_properties,
    read_properties_file,
)
from .service import PlanResolver, ResolutionInput, as_bool, as_int, typed_build_config_value

__all__ = [
    "PlanResolver",
    "ResolutionInput",
    "as_bool",
    "as_int",
    "build_environment",
    "collect_properties",
    "parse_assignments",
    "parse_properties",
    "read_properties_file",
    "typed_build_config_value",
]
