"""Task model for SQLModel."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from recurring_tasks.models.types import UTCDateTime
from recurring_tasks.utils.timeutils import utc_now


class Task(SQLModel, table=True):
    """Task entity. Recurring tasks are occurrences of a recurrence rule."""

    # At most one occurrence per position in a series
    __table_args__ = (
        UniqueConstraint("recurrence_rule_id", "occurrence_index", name="uq_task_rule_occurrence"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    created_by: str = Field(index=True, max_length=100)
    title: str = Field(max_length=200, min_length=1)
    description: Optional[str] = Field(default=None, max_length=1000)
    priority: str = Field(default="medium", max_length=20)  # high, medium, low
    status: str = Field(default="todo", max_length=20)  # todo, in_progress, completed
    due_date: Optional[datetime] = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True), nullable=True)
    )
    assigned_to: Optional[str] = Field(default=None, max_length=100)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Weak reference to the series; deleting the rule leaves occurrences in place
    recurrence_rule_id: Optional[int] = Field(default=None, index=True)
    occurrence_index: Optional[int] = Field(default=None)  # 1-based position in the series

    completed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True), nullable=True)
    )
    reminder_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(UTCDateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(UTCDateTime(timezone=True), nullable=False)
    )

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule_id is not None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"
