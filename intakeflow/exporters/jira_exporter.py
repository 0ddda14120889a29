"""Export an epic and its stories to Jira-compatible CSV."""

import csv
import io

from .base import BaseExporter
from .models import ExportableEpic, ExportableStory


class JiraExporter(BaseExporter):
    """Export to Jira's external CSV import format.

    The epic is the first row; every story row points at it through
    ``Parent`` (the epic's Issue Id). Description uses wiki markup.
    """

    format_name = "Jira"
    file_extension = "csv"
    mime_type = "text/csv"

    EPIC_ISSUE_ID = "1"

    PRIORITY_MAP = {
        "high": "High",
        "medium": "Medium",
        "low": "Low",
    }

    def export(self, epic: ExportableEpic, stories: list[ExportableStory]) -> str:
        output = io.StringIO()
        writer = csv.writer(output, quoting=csv.QUOTE_ALL)
        writer.writerow(
            [
                "Issue Id",
                "Parent",
                "Summary",
                "Description",
                "Issue Type",
                "Priority",
                "Story Points",
                "Labels",
            ]
        )

        writer.writerow(
            [self.EPIC_ISSUE_ID, "", epic.title, self._epic_description(epic), "Epic", "", "", ""]
        )

        for i, story in enumerate(self.filter_stories(stories), start=2):
            points = story.story_points if self.options.include_story_points else None
            writer.writerow(
                [
                    str(i),
                    self.EPIC_ISSUE_ID,
                    story.title,
                    self._story_description(story),
                    "Story",
                    self.PRIORITY_MAP.get(story.band, "Medium"),
                    "" if points is None else points,
                    self._build_labels(story),
                ]
            )

        return output.getvalue()

    def _epic_description(self, epic: ExportableEpic) -> str:
        parts = [epic.description]
        if epic.goals:
            parts.append("\n\nh3. Goals\n")
            parts.extend(f"* {goal}\n" for goal in epic.goals)
        if epic.success_criteria:
            parts.append("\n\nh3. Success Criteria\n")
            parts.extend(f"* {criterion}\n" for criterion in epic.success_criteria)
        if self.options.include_technical_notes and epic.technical_notes:
            parts.append(f"\n\nh3. Technical Notes\n{epic.technical_notes}\n")
        return "".join(parts)

    def _story_description(self, story: ExportableStory) -> str:
        parts = [story.description]
        if self.options.include_acceptance_criteria and story.acceptance_criteria:
            parts.append("\n\nh3. Acceptance Criteria\n")
            parts.extend(f"* {ac}\n" for ac in story.acceptance_criteria)
        if self.options.include_technical_notes and story.technical_notes:
            parts.append(f"\n\nh3. Technical Notes\n{story.technical_notes}\n")
        parts.append(f"\n----\n*ID:* {story.id}\n")
        return "".join(parts)

    def _build_labels(self, story: ExportableStory) -> str:
        """Space-separated; Jira labels cannot contain spaces."""
        if not self.options.include_labels:
            return ""
        return " ".join(label.replace(":", "_").replace(" ", "_") for label in story.labels)
