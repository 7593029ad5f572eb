"""Descriptor loading service."""

from .interpreter import DescriptorInterpreter, parse_coordinate
from .service import DescriptorLoader, LoadInput, LoadOutput, locate_descriptor

__all__ = [
    "DescriptorInterpreter",
    "DescriptorLoader",
    "LoadInput",
    "LoadOutput",
    "locate_descriptor",
    "parse_coordinate",
]
