"""Recurrence router: recurring series, completion and reminders."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from recurring_tasks import config
from recurring_tasks.dapr.client import DaprEventPublisher, get_publisher
from recurring_tasks.db.config import get_session
from recurring_tasks.models.task import Task
from recurring_tasks.schemas.recurrence import (
    PreviewRequest,
    PreviewResponse,
    RecurrenceOptions,
    RecurrenceRuleResponse,
    SeriesStarted,
)
from recurring_tasks.schemas.task import (
    CompleteTaskRequest,
    CompletionResponse,
    RecurringTaskCreate,
    ReminderOffset,
    ReminderResponse,
    TaskResponse,
    TaskTemplate,
    TaskUpdate,
)
from recurring_tasks.services.errors import (
    InvalidRule,
    NotFound,
    NotRecurring,
    RecurrenceError,
    StoreFailure,
)
from recurring_tasks.services.recurrence_engine import MAX_OCCURRENCES, RecurrenceRuleEngine
from recurring_tasks.services.recurring_task_service import RecurrenceOrchestrator
from recurring_tasks.services.reminder_scheduler import ReminderScheduler
from recurring_tasks.services.task_store import SqlRuleStore, SqlTaskStore
from recurring_tasks.utils.metrics import metrics_collector

router = APIRouter(tags=["Recurrence"])  # No prefix since main.py adds /api prefix

engine = RecurrenceRuleEngine()


def get_orchestrator(
    session: Session = Depends(get_session),
    publisher: DaprEventPublisher = Depends(get_publisher),
) -> RecurrenceOrchestrator:
    """Dependency for getting a RecurrenceOrchestrator bound to the request session."""
    return RecurrenceOrchestrator(
        task_store=SqlTaskStore(session),
        rule_store=SqlRuleStore(session),
        engine=engine,
        publisher=publisher,
        metrics=metrics_collector,
    )


def get_reminder_scheduler(
    publisher: DaprEventPublisher = Depends(get_publisher),
) -> ReminderScheduler:
    return ReminderScheduler(publisher)


def to_http_error(error: RecurrenceError) -> HTTPException:
    """Translate a service error into an HTTP error."""
    if isinstance(error, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, (InvalidRule, NotRecurring)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    if isinstance(error, StoreFailure):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Task storage unavailable")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)


def check_owner(owner_id: str, user_id: str) -> None:
    # Verify that the user_id in the path owns the resource
    if owner_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this user's resources"
        )


def load_owned_task(orchestrator: RecurrenceOrchestrator, user_id: str, task_id: int) -> Task:
    try:
        task = orchestrator.task_store.get_task(task_id)
    except RecurrenceError as e:
        raise to_http_error(e)
    check_owner(task.created_by, user_id)
    return task


@router.post("/{user_id}/recurring-tasks", response_model=SeriesStarted, status_code=status.HTTP_201_CREATED)
async def create_recurring_task(
    user_id: str,
    payload: RecurringTaskCreate,
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
):
    """Create a task and the recurrence pattern that repeats it."""
    template = TaskTemplate(**payload.task.model_dump(), created_by=user_id)
    try:
        return orchestrator.start_series(template, payload.recurrence)
    except RecurrenceError as e:
        raise to_http_error(e)


@router.get("/{user_id}/recurrence-patterns", response_model=List[RecurrenceRuleResponse])
async def list_recurrence_patterns(
    user_id: str,
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
):
    """List the user's recurrence patterns, newest first."""
    try:
        return [
            RecurrenceRuleResponse(
                id=rule.id,
                type=rule.type,
                frequency=rule.frequency,
                end_condition=rule.end_condition,
                owner_id=rule.owner_id,
                series_template_task_id=rule.series_template_task_id,
                created_at=rule.created_at,
                updated_at=rule.updated_at,
                description=engine.describe(rule),
            )
            for rule in orchestrator.list_series(user_id)
        ]
    except RecurrenceError as e:
        raise to_http_error(e)


@router.get("/{user_id}/recurrence-patterns/{rule_id}/occurrences", response_model=List[TaskResponse])
async def list_occurrences(
    user_id: str,
    rule_id: int,
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
):
    """List the materialized occurrences of a recurrence pattern."""
    try:
        rule = orchestrator.rule_store.get_rule(rule_id)
        check_owner(rule.owner_id, user_id)
        return orchestrator.get_series_occurrences(rule_id)
    except RecurrenceError as e:
        raise to_http_error(e)


@router.get("/{user_id}/recurrence-patterns/{rule_id}/schedule", response_model=PreviewResponse)
async def get_schedule(
    user_id: str,
    rule_id: int,
    limit: int = Query(default=config.PREVIEW_MAX_OCCURRENCES, ge=1, le=MAX_OCCURRENCES),
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
):
    """Due dates of the whole series, starting from its first occurrence."""
    try:
        rule = orchestrator.rule_store.get_rule(rule_id)
        check_owner(rule.owner_id, user_id)
        first = orchestrator.task_store.get_task(rule.series_template_task_id)
    except RecurrenceError as e:
        raise to_http_error(e)

    if first.due_date is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Series has no due date"
        )
    return PreviewResponse(
        dates=engine.generate_all_occurrences(rule, first.due_date, limit=limit),
        description=engine.describe(rule),
    )


@router.delete("/{user_id}/recurrence-patterns/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_recurrence_pattern(
    user_id: str,
    rule_id: int,
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
):
    """Stop a series. Open occurrences are kept as plain tasks."""
    try:
        rule = orchestrator.rule_store.get_rule(rule_id)
        check_owner(rule.owner_id, user_id)
        orchestrator.end_series(rule_id)
    except RecurrenceError as e:
        raise to_http_error(e)


@router.post("/{user_id}/tasks/{task_id}/complete", response_model=CompletionResponse)
async def complete_task(
    user_id: str,
    task_id: int,
    payload: Optional[CompleteTaskRequest] = None,
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Complete a task and create the next occurrence of its series."""
    task = load_owned_task(orchestrator, user_id, task_id)
    pending_reminders = list(task.reminder_ids or [])

    try:
        result = orchestrator.complete_occurrence(
            task_id, completed_at=payload.completed_at if payload is not None else None
        )
        # Reminders of a completed occurrence are dropped even if a cancel event fails
        if pending_reminders:
            for identifier in pending_reminders:
                reminders.cancel_reminder(identifier)
            orchestrator.task_store.update_task(task_id, TaskUpdate(reminder_ids=[]))
    except RecurrenceError as e:
        raise to_http_error(e)

    return CompletionResponse(
        task=TaskResponse.model_validate(result.task),
        next_occurrence=(
            TaskResponse.model_validate(result.next_occurrence)
            if result.next_occurrence is not None else None
        ),
        series_ended=result.series_ended,
    )


@router.post("/recurrence/preview", response_model=PreviewResponse)
async def preview_recurrence(payload: PreviewRequest):
    """Preview upcoming occurrence dates of a recurrence pattern."""
    if payload.count > config.PREVIEW_MAX_OCCURRENCES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {config.PREVIEW_MAX_OCCURRENCES} occurrences can be previewed"
        )
    try:
        return PreviewResponse(
            dates=engine.generate_preview(payload.recurrence, payload.start_date, payload.count),
            description=engine.describe(payload.recurrence),
        )
    except RecurrenceError as e:
        raise to_http_error(e)


@router.get("/recurrence/defaults/{recurrence_type}", response_model=RecurrenceOptions)
async def get_default_options(recurrence_type: str):
    """Suggested options when recurrence is first enabled for a task."""
    try:
        return engine.default_options(recurrence_type)
    except RecurrenceError as e:
        raise to_http_error(e)


def load_schedulable_task(orchestrator: RecurrenceOrchestrator, user_id: str, task_id: int) -> Task:
    task = load_owned_task(orchestrator, user_id, task_id)
    if task.due_date is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Task has no due date"
        )
    return task


def record_reminder(
    orchestrator: RecurrenceOrchestrator, task: Task, identifier: Optional[str], offset: ReminderOffset
) -> ReminderResponse:
    """Remember a scheduled reminder on its task so completion can cancel it."""
    if identifier is None:
        return ReminderResponse()

    try:
        orchestrator.task_store.update_task(
            task.id, TaskUpdate(reminder_ids=list(task.reminder_ids or []) + [identifier])
        )
    except RecurrenceError as e:
        raise to_http_error(e)
    return ReminderResponse(identifier=identifier, fire_at=ReminderScheduler.reminder_time(task.due_date, offset))


@router.post("/{user_id}/tasks/{task_id}/reminders", response_model=ReminderResponse)
async def schedule_reminder(
    user_id: str,
    task_id: int,
    offset: ReminderOffset,
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Schedule a reminder ahead of a task's due date."""
    task = load_schedulable_task(orchestrator, user_id, task_id)
    return record_reminder(orchestrator, task, reminders.schedule_reminder(task, offset), offset)


@router.post("/{user_id}/tasks/{task_id}/reminders/default", response_model=ReminderResponse)
async def schedule_default_reminder(
    user_id: str,
    task_id: int,
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Schedule the standard reminder before a task's due date."""
    task = load_schedulable_task(orchestrator, user_id, task_id)
    offset = ReminderOffset(minutes=config.DEFAULT_REMINDER_MINUTES)
    return record_reminder(orchestrator, task, reminders.schedule_default_reminder(task), offset)


@router.delete("/{user_id}/tasks/{task_id}/reminders/{identifier}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_reminder(
    user_id: str,
    task_id: int,
    identifier: str,
    orchestrator: RecurrenceOrchestrator = Depends(get_orchestrator),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Cancel a scheduled reminder."""
    task = load_owned_task(orchestrator, user_id, task_id)
    if identifier not in (task.reminder_ids or []):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Reminder not found"
        )

    reminders.cancel_reminder(identifier)
    try:
        orchestrator.task_store.update_task(
            task_id, TaskUpdate(reminder_ids=[r for r in task.reminder_ids if r != identifier])
        )
    except RecurrenceError as e:
        raise to_http_error(e)
