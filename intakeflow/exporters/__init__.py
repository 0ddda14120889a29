"""Exporters for generated epics/stories and for request lists."""

from .base import BaseExporter
from .csv_exporter import CSVExporter
from .jira_exporter import JiraExporter
from .linear_exporter import LinearExporter
from .markdown_exporter import MarkdownExporter
from .models import ExportableEpic, ExportableStory, ExportOptions
from .requests_exporter import (
    REQUEST_COLUMNS,
    export_organization_requests,
    export_requests_csv,
)
from .transformer import load_epic_export, to_exportable_epic, to_exportable_stories

__all__ = [
    # Models
    "ExportableEpic",
    "ExportableStory",
    "ExportOptions",
    # Base
    "BaseExporter",
    # Exporters
    "CSVExporter",
    "JiraExporter",
    "LinearExporter",
    "MarkdownExporter",
    # Transformer functions
    "load_epic_export",
    "to_exportable_epic",
    "to_exportable_stories",
    # Request export
    "REQUEST_COLUMNS",
    "export_organization_requests",
    "export_requests_csv",
]

# Registry of available epic/story exporters
EXPORTERS = {
    "markdown": MarkdownExporter,
    "csv": CSVExporter,
    "jira": JiraExporter,
    "linear": LinearExporter,
}


def get_exporter(format_name: str, options: ExportOptions | None = None) -> BaseExporter:
    """
    Get an exporter instance by format name.

    Args:
        format_name: One of 'markdown', 'csv', 'jira', 'linear'
        options: Export options

    Raises:
        ValueError: If format_name is not recognized
    """
    format_lower = format_name.lower()
    if format_lower not in EXPORTERS:
        available = ", ".join(EXPORTERS.keys())
        raise ValueError(f"Unknown export format: {format_name}. Available: {available}")

    return EXPORTERS[format_lower](options)
