"""Report rendering and storage."""

from .service import (
    JSON_REPORT,
    MARKDOWN_REPORT,
    ReportOutput,
    ReportWriter,
    build_snapshot,
    render_markdown,
)

__all__ = [
    "JSON_REPORT",
    "MARKDOWN_REPORT",
    "ReportOutput",
    "ReportWriter",
    "build_snapshot",
    "render_markdown",
]
