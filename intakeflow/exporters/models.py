"""Data models for epic and story export."""

from dataclasses import dataclass, field

# Priority band per story rank: top third high, middle third medium, rest low
PRIORITY_BANDS: tuple[str, ...] = ("high", "medium", "low")


@dataclass
class ExportableStory:
    """Normalized story format for export transformation."""

    id: str  # Generated: STORY-001, STORY-002, etc.
    title: str
    description: str  # "As a ..., I want ..., so that ..."
    acceptance_criteria: list[str] = field(default_factory=list)
    priority: int = 1  # 1 = highest
    band: str = "medium"  # high, medium, low
    order: int = 0
    story_points: int | None = None
    technical_notes: str | None = None
    labels: list[str] = field(default_factory=list)
    external_key: str | None = None

    @property
    def clean_labels(self) -> list[str]:
        """Labels with spaces and colons replaced (for tools that reject them)."""
        return [label.replace(":", "-").replace(" ", "-") for label in self.labels]


@dataclass
class ExportableEpic:
    """Normalized epic format for export transformation."""

    title: str
    description: str = ""
    goals: list[str] = field(default_factory=list)
    success_criteria: list[str] = field(default_factory=list)
    technical_notes: str | None = None
    complexity: str | None = None
    external_key: str | None = None


@dataclass
class ExportOptions:
    """Options for customizing story export."""

    include_acceptance_criteria: bool = True
    include_technical_notes: bool = True
    include_labels: bool = True
    include_story_points: bool = True
    story_id_prefix: str = "STORY"
    filter_bands: list[str] | None = None  # None means all bands

    def should_include_story(self, story: ExportableStory) -> bool:
        """Check if story should be included based on filter options."""
        if self.filter_bands is None:
            return True
        return story.band in self.filter_bands
