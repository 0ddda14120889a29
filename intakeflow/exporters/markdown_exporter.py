"""Export an epic and its stories to Markdown."""

from .base import BaseExporter
from .models import PRIORITY_BANDS, ExportableEpic, ExportableStory
from .transformer import total_points


class MarkdownExporter(BaseExporter):
    """Human-readable document: epic overview, summary table, then every story."""

    format_name = "Markdown"
    file_extension = "md"
    mime_type = "text/markdown"

    def export(self, epic: ExportableEpic, stories: list[ExportableStory]) -> str:
        stories = self.filter_stories(stories)
        lines = [f"# {epic.title}\n"]

        meta = [f"**Stories:** {len(stories)}"]
        if self.options.include_story_points:
            meta.append(f"**Story Points:** {total_points(stories)}")
        if epic.complexity:
            meta.append(f"**Complexity:** {epic.complexity}")
        if epic.external_key:
            meta.append(f"**Tracker:** {epic.external_key}")
        lines.append(" | ".join(meta) + "\n")

        if epic.description:
            lines.append(f"{epic.description}\n")
        lines.extend(self._bullets("Goals", epic.goals))
        lines.extend(self._bullets("Success Criteria", epic.success_criteria))
        if self.options.include_technical_notes and epic.technical_notes:
            lines.append(f"## Technical Notes\n\n{epic.technical_notes}\n")

        lines.append("## Summary\n")
        lines.append("| Priority | Stories | Points |")
        lines.append("|----------|---------|--------|")
        for band in PRIORITY_BANDS:
            in_band = [s for s in stories if s.band == band]
            if in_band:
                lines.append(f"| {band.capitalize()} | {len(in_band)} | {total_points(in_band)} |")
        lines.append("")

        lines.append("## Stories\n")
        for story in stories:
            lines.extend(self._format_story(story))
            lines.append("\n---\n")

        return "\n".join(lines)

    def _bullets(self, heading: str, items: list[str]) -> list[str]:
        if not items:
            return []
        return [f"## {heading}\n", *[f"- {item}" for item in items], ""]

    def _format_story(self, story: ExportableStory) -> list[str]:
        lines = [f"### {story.id}: {story.title}\n"]

        meta_parts = [f"**Priority:** {story.priority} ({story.band.capitalize()})"]
        if self.options.include_story_points and story.story_points is not None:
            meta_parts.append(f"**Points:** {story.story_points}")
        if story.external_key:
            meta_parts.append(f"**Tracker:** {story.external_key}")
        lines.append(" | ".join(meta_parts) + "\n")

        lines.append(f"{story.description}\n")

        if self.options.include_acceptance_criteria and story.acceptance_criteria:
            lines.append("**Acceptance Criteria:**\n")
            lines.extend(f"- [ ] {ac}" for ac in story.acceptance_criteria)
            lines.append("")

        if self.options.include_technical_notes and story.technical_notes:
            lines.append(f"**Technical Notes:** {story.technical_notes}\n")

        if self.options.include_labels and story.labels:
            lines.append("**Labels:** " + ", ".join(f"`{label}`" for label in story.labels) + "\n")

        return lines
