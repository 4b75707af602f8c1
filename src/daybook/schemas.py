"""Pydantic models for Daybook.

Two families live here: the output shapes the language model must produce
(validated by `daybook.contracts`), and the records exchanged with the
persistence layer. Wire keys are camelCase; Python attributes are snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Model output shapes -------------------------------------------------


class SearchTerms(BaseModel):
    """Keywords produced by the query planner."""

    keywords: list[str] = Field(
        min_length=3,
        max_length=7,
        description="Generic search keywords, no conversational words",
    )


class RerankResult(BaseModel):
    """Relevant activity ids for one rerank batch, most relevant first."""

    ranked_ids: list[str] = Field(
        description="Ids of the relevant activities, most relevant first. May be empty."
    )


class ExtractedActivity(CamelModel):
    """One activity extracted from a day's journal text."""

    description: NonEmptyStr = Field(description="A concise summary of the activity.")
    duration: float | None = Field(
        description="Duration in minutes. Convert hours or days to minutes. Null if not specified."
    )
    notes: str | None = Field(description="Any additional details or context.")
    tags: str = Field(
        description="Comma-separated string of relevant keywords or tags."
    )
    category_id: str = Field(
        description="The id of the category this activity belongs to."
    )

    @property
    def duration_minutes(self) -> int | None:
        """Duration rounded to whole minutes."""
        if self.duration is None:
            return None
        return round(self.duration)

    @property
    def tag_names(self) -> list[str]:
        """Tags split on commas, trimmed, blanks dropped."""
        return [t.strip() for t in self.tags.split(",") if t.strip()]


class JournalImport(BaseModel):
    """All activities extracted from one day."""

    activities: list[ExtractedActivity]


class SummarySection(CamelModel):
    title: str
    content: str


class TimeSpent(CamelModel):
    total_minutes: float | None = None
    breakdown: str | None = None


class Summary(CamelModel):
    """Structured answer to a search query."""

    main_summary: str = Field(
        description="Direct answer to the query, in markdown, grounded in the context."
    )
    sections: list[SummarySection] | None = None
    time_spent: TimeSpent | None = None


class TimeAnalysis(CamelModel):
    total_minutes: float
    professional_minutes: float
    project_minutes: float
    life_minutes: float
    breakdown_ratio: str = Field(
        description="e.g. '50% Professional / 20% Project / 30% Life'"
    )


class KeyActivity(CamelModel):
    category_name: str = Field(description="The name of the category")
    description: str
    time_spent: float | None = None


class TagStat(CamelModel):
    tag: str
    minutes: float
    count: int


class WeeklyReportContent(CamelModel):
    """Structured weekly report produced by the synthesizer."""

    title: str = Field(
        description="Report title, e.g. 'Weekly Report: June 10 - June 16, 2024'"
    )
    summary: str = Field(
        description="A 3-4 sentence narrative summary of the week."
    )
    time_analysis: TimeAnalysis
    key_activities: list[KeyActivity] = Field(
        min_length=3,
        max_length=5,
        description="The 3-5 most significant activities or accomplishments.",
    )
    tag_analysis: list[TagStat] = Field(
        min_length=3,
        max_length=7,
        description="The 3-7 most frequent tags and time spent on them.",
    )
    insights_and_trends: str = Field(
        description="Markdown insights: trends and correlations found in the data."
    )


# --- Persistence records -------------------------------------------------


class Category(CamelModel):
    id: str
    name: str
    description: str | None = None
    color: str = "#6B7280"
    icon: str | None = None
    is_default: bool = False


class Tag(CamelModel):
    id: str
    name: str


class JournalEntry(CamelModel):
    """One calendar day in the journal."""

    id: str
    date: str  # YYYY-MM-DD
    created_at: datetime
    updated_at: datetime


class Activity(CamelModel):
    """A stored activity, as handed to the search and report agents."""

    id: str
    entry_id: str
    date: str  # YYYY-MM-DD, denormalized from the entry
    description: str
    duration_minutes: int | None = None
    notes: str | None = None
    category_id: str
    category_name: str | None = None
    tags: list[str] = Field(default_factory=list)


class ActivityInput(CamelModel):
    """An activity submitted by hand rather than extracted by the model."""

    description: NonEmptyStr
    duration_minutes: int | None = None
    notes: str | None = None
    tags: str = ""
    category_id: str


HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class CategoryInput(CamelModel):
    """A category submitted for creation."""

    name: str = Field(min_length=1, max_length=50)
    description: str | None = None
    color: str = Field(default="#6B7280", pattern=HEX_COLOR)
    icon: str | None = None


class CategoryUpdate(CamelModel):
    """Fields to change on a category; omitted fields stay as they are."""

    name: str | None = Field(default=None, min_length=1, max_length=50)
    description: str | None = None
    color: str | None = Field(default=None, pattern=HEX_COLOR)
    icon: str | None = None


class ReportStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Report(CamelModel):
    id: str
    type: Literal["WEEKLY"] = "WEEKLY"
    start_date: str
    end_date: str
    status: ReportStatus = ReportStatus.PENDING
    content: WeeklyReportContent | None = None
    created_at: datetime


# --- Pipeline state ------------------------------------------------------


class SearchResult(CamelModel):
    summary: Summary
    activities: list[Activity]
    keywords: list[str]


class SearchState(TypedDict, total=False):
    """LangGraph state for the search pipeline."""

    query: str
    keywords: list[str]
    candidates: list[Activity]
    activities: list[Activity]  # Reranked, truncated for synthesis
    summary: Summary
