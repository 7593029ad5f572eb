"""
Descriptor Loading Service.

Reads a module build script, parses it, and interprets it into a typed
BuildDescriptor. The environment is not consulted here.
"""

from __future__ import annotations

import hashlib
import time
from pathlib import Path

import aiofiles
from pydantic import BaseModel, Field

from ...core.exceptions import DescriptorSyntaxError, ValidationError
from ...core.logging import get_logger
from ...core.types import ServiceResult
from ...dsl import parse
from ...dsl.ast import Script
from ...models.descriptor import BuildDescriptor, Dialect
from .interpreter import DescriptorInterpreter

logger = get_logger(__name__)

DESCRIPTOR_NAMES = ("build.gradle.kts", "build.gradle")


class LoadInput(BaseModel):
    """Input for the loading service."""

    path: Path = Field(description="Descriptor file, or a module directory containing one")
    dialect: Dialect | None = Field(default=None, description="Override dialect detection")


class LoadOutput(BaseModel):
    """Output from the loading service."""

    descriptor: BuildDescriptor
    statement_count: int = Field(default=0)
    content_hash: str = Field(description="SHA-256 of the descriptor text")


def locate_descriptor(path: Path) -> Path:
    """Find the build script for a path.

    Args:
        path: A build script, or a module directory (``android/app``) or
            Flutter project root containing one.

    Returns:
        Path to the build script.

    Raises:
        ValidationError: If no build script can be found.
    """
    if path.is_file():
        return path
    if path.is_dir():
        for candidate_dir in (path, path / "app", path / "android" / "app"):
            for name in DESCRIPTOR_NAMES:
                candidate = candidate_dir / name
                if candidate.is_file():
                    return candidate
    raise ValidationError(
        message=f"Build descriptor not found: {path}",
        field_name="path",
    )


def detect_dialect(path: Path) -> Dialect:
    """Kotlin DSL for ``.kts`` scripts, Groovy otherwise."""
    return Dialect.KOTLIN if path.name.endswith(".kts") else Dialect.GROOVY


class DescriptorLoader:
    """Service for loading build descriptors.

    This service:
    1. Locates the build script
    2. Tokenizes and parses it
    3. Interprets the syntax tree into a BuildDescriptor
    """

    def load_text(self, text: str, path: Path, dialect: Dialect | None = None) -> BuildDescriptor:
        """Interpret descriptor text without touching the filesystem.

        Args:
            text: Build script source.
            path: Path the text belongs to; relative paths resolve against its parent.
            dialect: Script dialect; detected from ``path`` when omitted.

        Returns:
            The interpreted descriptor.

        Raises:
            DescriptorSyntaxError: If the script cannot be parsed.
        """
        return self._parse_and_interpret(text, path, dialect)[1]

    def _parse_and_interpret(
        self, text: str, path: Path, dialect: Dialect | None
    ) -> tuple[Script, BuildDescriptor]:
        script = parse(text)
        interpreter = DescriptorInterpreter(path, dialect or detect_dialect(path))
        return script, interpreter.interpret(script)

    async def load(self, input_data: LoadInput) -> ServiceResult[LoadOutput]:
        """Load and interpret a build descriptor.

        Args:
            input_data: Loading input with the descriptor path

        Returns:
            ServiceResult containing LoadOutput or error
        """
        start_time = time.perf_counter()

        try:
            path = locate_descriptor(input_data.path).resolve()
            logger.info("Loading descriptor", path=str(path))

            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                text = await f.read()

            script, descriptor = self._parse_and_interpret(text, path, input_data.dialect)

            warnings: list[str] = []
            if not descriptor.settings and not descriptor.dependencies:
                warnings.append("Descriptor declares no android configuration or dependencies")
            if descriptor.unsupported:
                warnings.append(
                    f"{len(descriptor.unsupported)} statement(s) were not interpreted"
                )

            output = LoadOutput(
                descriptor=descriptor,
                statement_count=len(script.statements),
                content_hash=hashlib.sha256(text.encode("utf-8")).hexdigest(),
            )

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Descriptor loaded",
                path=str(path),
                duration_ms=round(duration_ms, 2),
                **descriptor.summary(),
            )

            result = ServiceResult.with_warnings(output, warnings, path=str(path))
            result.duration_ms = duration_ms
            return result

        except DescriptorSyntaxError as e:
            logger.error("Descriptor syntax error", error=str(e), line=e.line, column=e.column)
            return ServiceResult.fail(str(e), line=e.line, column=e.column)
        except ValidationError as e:
            logger.error("Descriptor validation failed", error=str(e))
            return ServiceResult.fail(str(e))
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Descriptor could not be read", error=str(e))
            return ServiceResult.fail(f"Could not read descriptor: {e}")
        except Exception as e:
            logger.exception("Unexpected error during loading")
            return ServiceResult.fail(f"Unexpected error: {e}")
