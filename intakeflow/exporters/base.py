"""Base exporter class for epic and story exporters."""

from abc import ABC, abstractmethod

from .models import ExportableEpic, ExportableStory, ExportOptions


class BaseExporter(ABC):
    """Base class for all epic/story exporters."""

    format_name: str = "Unknown"
    file_extension: str = "txt"
    mime_type: str = "text/plain"

    def __init__(self, options: ExportOptions | None = None):
        self.options = options or ExportOptions()

    @abstractmethod
    def export(self, epic: ExportableEpic, stories: list[ExportableStory]) -> str:
        """
        Transform an epic and its stories to the export format.

        Args:
            epic: The epic the stories belong to
            stories: Stories in backlog order

        Returns:
            Formatted string content
        """
        pass

    def export_bytes(self, epic: ExportableEpic, stories: list[ExportableStory]) -> bytes:
        """Export as UTF-8 encoded bytes."""
        return self.export(epic, stories).encode("utf-8")

    def get_filename(self, name: str = "epic") -> str:
        """
        Generate an export filename.

        Args:
            name: Epic or project name

        Returns:
            Filename with appropriate extension
        """
        safe_name = name.lower().replace(" ", "-").replace("_", "-")
        safe_name = "".join(c for c in safe_name if c.isalnum() or c == "-")
        return f"{safe_name or 'epic'}-stories.{self.file_extension}"

    def filter_stories(self, stories: list[ExportableStory]) -> list[ExportableStory]:
        return [s for s in stories if self.options.should_include_story(s)]
