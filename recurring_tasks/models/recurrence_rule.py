"""Recurrence Rule model for SQLModel."""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column
from sqlmodel import Field, SQLModel

from recurring_tasks.models.types import UTCDateTime
from recurring_tasks.schemas.recurrence import (
    AfterCount,
    EndCondition,
    NeverEnds,
    RecurrenceRuleDraft,
    UntilDate,
)
from recurring_tasks.services.errors import InvalidRule
from recurring_tasks.utils.timeutils import utc_now


def end_condition_columns(end_condition: EndCondition) -> Dict[str, Any]:
    """Flatten an end condition into its ``end_*`` column values."""
    if isinstance(end_condition, AfterCount):
        return {"end_type": "count", "end_count": end_condition.count, "end_date": None}
    if isinstance(end_condition, UntilDate):
        return {"end_type": "date", "end_count": None, "end_date": end_condition.until}
    return {"end_type": "never", "end_count": None, "end_date": None}


class RecurrenceRule(SQLModel, table=True):
    """Recurrence pattern shared by every occurrence of a task series."""

    __tablename__ = "recurrence_rule"

    id: Optional[int] = Field(default=None, primary_key=True)
    type: str = Field(max_length=20)  # daily, weekly, monthly, quarterly, half-yearly, yearly
    frequency: int = Field(default=1)  # every N units
    end_type: str = Field(default="never", max_length=10)  # never, count, date
    end_count: Optional[int] = Field(default=None)
    end_date: Optional[datetime] = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True), nullable=True)
    )
    owner_id: str = Field(index=True, max_length=100)
    series_template_task_id: int
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(UTCDateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(UTCDateTime(timezone=True), nullable=False)
    )

    @classmethod
    def from_draft(cls, draft: RecurrenceRuleDraft) -> "RecurrenceRule":
        now = utc_now()
        return cls(
            type=draft.type,
            frequency=draft.frequency,
            owner_id=draft.owner_id,
            series_template_task_id=draft.series_template_task_id,
            created_at=now,
            updated_at=now,
            **end_condition_columns(draft.end_condition),
        )

    @property
    def end_condition(self) -> EndCondition:
        if self.end_type == "never":
            return NeverEnds()
        if self.end_type == "count" and self.end_count is not None:
            return AfterCount(count=self.end_count)
        if self.end_type == "date" and self.end_date is not None:
            return UntilDate(until=self.end_date)
        raise InvalidRule(
            [f"stored end condition '{self.end_type}' is incomplete"],
            {"rule_id": self.id},
        )
