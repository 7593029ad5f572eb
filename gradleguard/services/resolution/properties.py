"""
Environment and property table assembly.

The resolver never reads ``os.environ`` itself; callers build the mappings
here so that a resolution can be reproduced for any environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values

from ...core.exceptions import ValidationError
from ...core.logging import get_logger

logger = get_logger(__name__)


def _unescape(value: str) -> str:
    out: list[str] = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        escaped = next(chars, "")
        if escaped == "u":
            digits = "".join(next(chars, "") for _ in range(4))
            try:
                out.append(chr(int(digits, 16)))
            except ValueError:
                out.append("\\u" + digits)
        else:
            out.append({"t": "\t", "n": "\n", "r": "\r", "f": "\f"}.get(escaped, escaped))
    return "".join(out)


def parse_properties(text: str) -> dict[str, str]:
    """Parse Java ``.properties`` text.

    Handles ``#``/``!`` comments, ``=``, ``:`` and whitespace separators,
    backslash line continuations and escapes. Later keys win.
    """
    properties: dict[str, str] = {}
    logical = ""
    for raw_line in text.splitlines():
        line = raw_line.lstrip()
        if not logical and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            logical += line[:-1]
            continue
        logical += line
        key, value = _split_property(logical)
        properties[_unescape(key)] = _unescape(value)
        logical = ""
    if logical:
        key, value = _split_property(logical)
        properties[_unescape(key)] = _unescape(value)
    return properties


def _split_property(line: str) -> tuple[str, str]:
    index = 0
    while index < len(line):
        char = line[index]
        if char == "\\":
            index += 2
            continue
        if char in "=: \t\f":
            break
        index += 1
    key = line[:index]
    rest = line[index:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return key, rest


def read_properties_file(path: Path) -> dict[str, str]:
    """Read a ``.properties`` file; a missing file yields an empty table."""
    if not path.is_file():
        return {}
    return parse_properties(path.read_text(encoding="latin-1"))


def collect_properties(
    descriptor_path: Path,
    property_files: list[str],
    toolchain_defaults: Mapping[str, str],
    overrides: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Assemble the property table for one descriptor.

    Precedence, lowest first: toolchain defaults, property files in the
    project directory (the descriptor's parent), property files beside the
    descriptor, explicit overrides.

    Returns:
        Merged property table.
    """
    table: dict[str, str] = dict(toolchain_defaults)
    module_dir = descriptor_path.parent
    for directory in (module_dir.parent, module_dir):
        for name in property_files:
            path = directory / name
            found = read_properties_file(path)
            if found:
                logger.debug("Read property file", path=str(path), keys=len(found))
            table.update(found)
    if overrides:
        table.update(overrides)
    return table


def build_environment(
    env_file: Path | None = None,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Environment for resolution: ``base`` (default the process environment)
    overlaid with the variables of an optional dotenv file.

    Raises:
        ValidationError: If ``env_file`` is given but does not exist.
    """
    environment = dict(os.environ if base is None else base)
    if env_file is not None:
        if not env_file.is_file():
            raise ValidationError(
                message=f"Environment file not found: {env_file}",
                field_name="env_file",
            )
        values = dotenv_values(env_file)
        environment.update({key: value for key, value in values.items() if value is not None})
        logger.debug("Loaded environment file", path=str(env_file), variables=len(values))
    return environment


def parse_assignments(pairs: list[str], field_name: str = "property") -> dict[str, str]:
    """Parse ``key=value`` pairs given on the command line.

    Raises:
        ValidationError: If a pair has no ``=`` or an empty key.
    """
    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValidationError(
                message=f"Expected key=value, got {pair!r}",
                field_name=field_name,
                expected_type="key=value",
                actual_value=pair,
            )
        parsed[key.strip()] = value
    return parsed
