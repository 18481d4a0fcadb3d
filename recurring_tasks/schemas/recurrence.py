"""Recurrence schemas: rule descriptors and engine results."""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RECURRENCE_TYPES = ("daily", "weekly", "monthly", "quarterly", "half-yearly", "yearly")


class NeverEnds(BaseModel):
    """The series repeats indefinitely."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["never"] = "never"


class AfterCount(BaseModel):
    """The series stops after ``count`` occurrences."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["count"] = "count"
    count: int


class UntilDate(BaseModel):
    """No occurrence is due strictly after ``until``."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["date"] = "date"
    until: datetime


EndCondition = Annotated[Union[NeverEnds, AfterCount, UntilDate], Field(discriminator="kind")]


class RecurrenceOptions(BaseModel):
    """How a series repeats, before it is persisted.

    Value ranges are checked by ``RecurrenceValidator`` so that a malformed
    rule surfaces as ``InvalidRule`` rather than a schema error.
    """
    model_config = ConfigDict(frozen=True)

    type: str
    frequency: int = 1
    end_condition: EndCondition = Field(default_factory=NeverEnds)


class RecurrenceRuleDraft(RecurrenceOptions):
    """A rule ready to be stored, linked to its owner and first occurrence."""

    owner_id: str
    series_template_task_id: int


class RecurrenceRuleResponse(BaseModel):
    """Schema for recurrence pattern API responses."""

    id: int
    type: str
    frequency: int
    end_condition: EndCondition
    owner_id: str
    series_template_task_id: int
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None


class SeriesStarted(BaseModel):
    """Result of starting a recurring series."""
    rule_id: int
    first_task_id: int


class SeriesEnded(BaseModel):
    """Terminal result: the series produces no further occurrences."""
    model_config = ConfigDict(frozen=True)

    rule_id: int
    last_occurrence_index: int


class PreviewRequest(BaseModel):
    """Schema for previewing upcoming occurrences of a rule."""
    recurrence: RecurrenceOptions
    start_date: datetime
    count: int = Field(default=5, ge=1)


class PreviewResponse(BaseModel):
    dates: List[datetime]
    description: str
