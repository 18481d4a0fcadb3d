"""Task schemas for recurring task management."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from recurring_tasks.schemas.recurrence import RecurrenceOptions

PRIORITY_PATTERN = r"^(high|medium|low)$"
STATUS_PATTERN = r"^(todo|in_progress|completed)$"


class TaskFields(BaseModel):
    """User supplied task content, copied onto every occurrence of a series."""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    priority: str = Field(default="medium", pattern=PRIORITY_PATTERN)
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    tags: List[str] = Field(default_factory=list, max_length=10)


class TaskTemplate(TaskFields):
    """The first occurrence of a new recurring series."""
    created_by: str


class TaskDraft(TaskTemplate):
    """A task ready to be persisted by a task store."""
    status: str = Field(default="todo", pattern=STATUS_PATTERN)
    recurrence_rule_id: Optional[int] = None
    occurrence_index: Optional[int] = None


class TaskUpdate(BaseModel):
    """Partial task update. Only fields that were explicitly set are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    priority: Optional[str] = Field(None, pattern=PRIORITY_PATTERN)
    status: Optional[str] = Field(None, pattern=STATUS_PATTERN)
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    recurrence_rule_id: Optional[int] = None
    occurrence_index: Optional[int] = None
    completed_at: Optional[datetime] = None
    reminder_ids: Optional[List[str]] = None


class TaskResponse(BaseModel):
    """Schema for task API responses."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_by: str
    title: str
    description: Optional[str] = None
    priority: str = "medium"
    status: str
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    tags: List[str] = []
    recurrence_rule_id: Optional[int] = None
    occurrence_index: Optional[int] = None
    completed_at: Optional[datetime] = None
    reminder_ids: List[str] = []
    created_at: datetime
    updated_at: datetime


class RecurringTaskCreate(BaseModel):
    """Schema for creating a task together with its recurrence pattern."""
    task: TaskFields
    recurrence: RecurrenceOptions


class CompleteTaskRequest(BaseModel):
    completed_at: Optional[datetime] = None


class CompletionResponse(BaseModel):
    """Completed task plus its successor, if the series continues."""
    task: TaskResponse
    next_occurrence: Optional[TaskResponse] = None
    series_ended: bool = False


class ReminderOffset(BaseModel):
    """Time before a task's due date at which a reminder fires.

    All zero means "at the time of the event".
    """
    model_config = ConfigDict(frozen=True)

    days: int = Field(default=0, ge=0)
    hours: int = Field(default=0, ge=0)
    minutes: int = Field(default=0, ge=0)

    @property
    def is_at_event_time(self) -> bool:
        return not (self.days or self.hours or self.minutes)


class ReminderResponse(BaseModel):
    identifier: Optional[str] = None
    fire_at: Optional[datetime] = None
