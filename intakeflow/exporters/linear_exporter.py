"""Export stories to Linear-compatible CSV."""

import csv
import io

from .base import BaseExporter
from .models import ExportableEpic, ExportableStory


class LinearExporter(BaseExporter):
    """Export stories to Linear's CSV importer.

    Columns: Title, Description, Priority, Estimate, Labels, Project. The
    epic becomes the Project every issue is filed under.
    """

    format_name = "Linear"
    file_extension = "csv"
    mime_type = "text/csv"

    PRIORITY_MAP = {
        "high": "High",
        "medium": "Medium",
        "low": "Low",
    }

    def export(self, epic: ExportableEpic, stories: list[ExportableStory]) -> str:
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL)
        writer.writerow(["Title", "Description", "Priority", "Estimate", "Labels", "Project"])

        for story in self.filter_stories(stories):
            points = story.story_points if self.options.include_story_points else None
            writer.writerow(
                [
                    story.title,
                    self._build_description(story),
                    self.PRIORITY_MAP.get(story.band, "Medium"),
                    "" if points is None else points,
                    ",".join(story.clean_labels) if self.options.include_labels else "",
                    epic.title,
                ]
            )

        return output.getvalue()

    def _build_description(self, story: ExportableStory) -> str:
        parts = [story.description]
        if self.options.include_acceptance_criteria and story.acceptance_criteria:
            parts.append("\n\n## Acceptance Criteria\n")
            parts.extend(f"- [ ] {ac}\n" for ac in story.acceptance_criteria)
        if self.options.include_technical_notes and story.technical_notes:
            parts.append(f"\n\n**Technical notes:** {story.technical_notes}")
        return "".join(parts)
