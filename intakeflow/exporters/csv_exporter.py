"""Export stories to a generic CSV format."""

import csv
import io

from .base import BaseExporter
from .models import ExportableEpic, ExportableStory


class CSVExporter(BaseExporter):
    """Export stories to generic CSV, one row per story.

    Suitable for spreadsheet review and custom imports.
    """

    format_name = "CSV"
    file_extension = "csv"
    mime_type = "text/csv"

    def export(self, epic: ExportableEpic, stories: list[ExportableStory]) -> str:
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL)

        headers = ["ID", "Epic", "Title", "Description", "Priority", "Band", "Order"]
        if self.options.include_story_points:
            headers.append("Story Points")
        if self.options.include_acceptance_criteria:
            headers.append("Acceptance Criteria")
        if self.options.include_technical_notes:
            headers.append("Technical Notes")
        if self.options.include_labels:
            headers.append("Labels")
        writer.writerow(headers)

        for story in self.filter_stories(stories):
            row = [
                story.id,
                epic.title,
                story.title,
                story.description,
                story.priority,
                story.band.capitalize(),
                story.order,
            ]
            if self.options.include_story_points:
                row.append("" if story.story_points is None else story.story_points)
            if self.options.include_acceptance_criteria:
                criteria = enumerate(story.acceptance_criteria, start=1)
                row.append("; ".join(f"{i}. {ac}" for i, ac in criteria))
            if self.options.include_technical_notes:
                row.append(story.technical_notes or "")
            if self.options.include_labels:
                row.append("|".join(story.labels))
            writer.writerow(row)

        return output.getvalue()
