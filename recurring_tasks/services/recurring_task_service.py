"""
Recurring Task Service

Starts recurring series and creates the next occurrence of a series when the
current one is completed. Occurrences are materialized one at a time.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from recurring_tasks.dapr.client import DaprEventPublisher
from recurring_tasks.models.recurrence_rule import RecurrenceRule
from recurring_tasks.models.task import Task
from recurring_tasks.schemas.recurrence import (
    RecurrenceOptions,
    RecurrenceRuleDraft,
    SeriesEnded,
    SeriesStarted,
)
from recurring_tasks.schemas.task import TaskDraft, TaskTemplate, TaskUpdate
from recurring_tasks.services.errors import NotRecurring, RecurrenceError, StoreFailure
from recurring_tasks.services.recurrence_engine import RecurrenceRuleEngine
from recurring_tasks.services.recurrence_validator import RecurrenceValidator
from recurring_tasks.services.task_store import RuleStore, TaskStore
from recurring_tasks.utils.logger import get_logger
from recurring_tasks.utils.metrics import MetricsCollector
from recurring_tasks.utils.timeutils import ensure_utc, utc_now

logger = get_logger(__name__)

OccurrenceOutcome = Union[Task, SeriesEnded]


@dataclass
class CompletionResult:
    """A completed task and what happened to its series."""

    task: Task
    outcome: Optional[OccurrenceOutcome] = None  # None for non-recurring tasks

    @property
    def next_occurrence(self) -> Optional[Task]:
        return self.outcome if isinstance(self.outcome, Task) else None

    @property
    def series_ended(self) -> bool:
        return isinstance(self.outcome, SeriesEnded)


class RecurrenceOrchestrator:
    """Coordinates recurrence rules, their occurrences and the task store."""

    def __init__(
        self,
        task_store: TaskStore,
        rule_store: RuleStore,
        engine: Optional[RecurrenceRuleEngine] = None,
        publisher: Optional[DaprEventPublisher] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.task_store = task_store
        self.rule_store = rule_store
        self.engine = engine or RecurrenceRuleEngine()
        self.publisher = publisher
        self.metrics = metrics or MetricsCollector()

    def start_series(self, template: TaskTemplate, options: RecurrenceOptions) -> SeriesStarted:
        """
        Create occurrence #1 of a new series together with its recurrence rule.

        Args:
            template: Content of the first occurrence
            options: How the series repeats

        Returns:
            Ids of the new rule and of the first task

        Raises:
            InvalidRule: Before anything is written
            StoreFailure: If the task, the rule or the link between them
                cannot be saved. A task whose rule could not be saved stays
                behind as a plain, non-recurring task.
        """
        RecurrenceValidator.ensure_valid(options)
        for warning in RecurrenceValidator.validate_series_template(template)["warnings"]:
            logger.warning(warning, title=template.title)

        with self.metrics.time_operation("start_series_seconds"):
            first_task = self.task_store.create_task(
                TaskDraft(**template.model_dump(), status="todo", occurrence_index=1)
            )

            try:
                rule = self.rule_store.create_rule(
                    RecurrenceRuleDraft(
                        type=options.type,
                        frequency=options.frequency,
                        end_condition=options.end_condition,
                        owner_id=template.created_by,
                        series_template_task_id=first_task.id,
                    )
                )
            except StoreFailure:
                self.metrics.error()
                logger.warning("Recurrence rule not saved; task left non-recurring", task_id=first_task.id)
                raise

            try:
                self.task_store.update_task(first_task.id, TaskUpdate(recurrence_rule_id=rule.id))
            except RecurrenceError:
                self.metrics.error()
                logger.warning("Linking task to rule failed; removing rule", task_id=first_task.id, rule_id=rule.id)
                try:
                    self.rule_store.delete_rule(rule.id)
                except RecurrenceError:
                    logger.exception("Removing unlinked rule failed", rule_id=rule.id)
                raise

        self.metrics.series_started()
        logger.info(
            "Started recurring series",
            rule_id=rule.id,
            task_id=first_task.id,
            type=options.type,
            frequency=options.frequency,
        )
        return SeriesStarted(rule_id=rule.id, first_task_id=first_task.id)

    def advance_on_completion(
        self,
        completed: Task,
        rule: RecurrenceRule,
        reference_date: datetime,
        announce_end: bool = True,
    ) -> OccurrenceOutcome:
        """
        Create the occurrence following ``completed``, unless the series is over.

        Calling this again for the same completion returns the successor
        created the first time instead of creating another one.

        Args:
            completed: The occurrence that was just completed
            rule: Its recurrence rule
            reference_date: Date the next due date is computed from
            announce_end: Count and publish the end of the series. Repeated
                completions of the final occurrence pass False.

        Returns:
            The next occurrence, or ``SeriesEnded``
        """
        if completed.recurrence_rule_id is None or completed.recurrence_rule_id != rule.id:
            raise NotRecurring(
                f"Task {completed.id} is not an occurrence of recurrence rule {rule.id}",
                {"task_id": completed.id, "rule_id": rule.id},
            )

        next_index = (completed.occurrence_index or 1) + 1
        candidate_date = self.engine.compute_next_date(rule, reference_date)

        if self.engine.has_series_ended(rule, next_index, candidate_date):
            if not announce_end:
                return SeriesEnded(rule_id=rule.id, last_occurrence_index=next_index - 1)
            self.metrics.series_ended()
            logger.info("Recurring series ended", rule_id=rule.id, last_occurrence_index=next_index - 1)
            self._publish("publish_series_ended", {
                "rule_id": rule.id,
                "last_task_id": completed.id,
                "last_occurrence_index": next_index - 1,
            })
            return SeriesEnded(rule_id=rule.id, last_occurrence_index=next_index - 1)

        existing = self.task_store.find_occurrence(rule.id, next_index)
        if existing is not None:
            logger.info("Next occurrence already exists", rule_id=rule.id, task_id=existing.id, occurrence_index=next_index)
            return existing

        draft = TaskDraft(
            created_by=completed.created_by,
            title=completed.title,
            description=completed.description,
            priority=completed.priority,
            due_date=candidate_date,
            assigned_to=completed.assigned_to,
            tags=list(completed.tags or []),
            status="todo",
            recurrence_rule_id=rule.id,
            occurrence_index=next_index,
        )
        try:
            with self.metrics.time_operation("create_occurrence_seconds"):
                next_task = self.task_store.create_task(draft)
        except StoreFailure:
            # A concurrent completion may have inserted the same occurrence
            existing = self.task_store.find_occurrence(rule.id, next_index)
            if existing is not None:
                logger.info("Next occurrence created concurrently", rule_id=rule.id, task_id=existing.id)
                return existing
            self.metrics.error()
            raise
        except RecurrenceError:
            self.metrics.error()
            raise

        self.metrics.occurrence_created()
        logger.info(
            "Created next occurrence",
            rule_id=rule.id,
            completed_task_id=completed.id,
            task_id=next_task.id,
            occurrence_index=next_index,
            due_date=candidate_date,
        )
        self._publish("publish_task_created", {
            "id": next_task.id,
            "created_by": next_task.created_by,
            "title": next_task.title,
            "due_date": candidate_date.isoformat(),
            "recurrence_rule_id": rule.id,
            "occurrence_index": next_index,
        })
        return next_task

    def complete_occurrence(self, task_id: int, completed_at: Optional[datetime] = None) -> CompletionResult:
        """
        Mark a task completed and, for recurring tasks, advance the series.

        The next due date is computed from the completed occurrence's own due
        date, so a late completion does not shift the schedule. Occurrences
        without a due date are anchored on their completion time.

        Raises:
            NotFound: If the task or its rule does not exist; nothing is written
        """
        completed_at = ensure_utc(completed_at) if completed_at is not None else utc_now()

        task = self.task_store.get_task(task_id)
        rule = self.rule_store.get_rule(task.recurrence_rule_id) if task.is_recurring else None

        already_completed = task.is_completed
        if not already_completed:
            task = self.task_store.update_task(
                task_id, TaskUpdate(status="completed", completed_at=completed_at)
            )
            self._publish("publish_task_completed", {
                "id": task.id,
                "created_by": task.created_by,
                "completed_at": completed_at.isoformat(),
                "recurrence_rule_id": task.recurrence_rule_id,
                "occurrence_index": task.occurrence_index,
            })

        if rule is None:
            return CompletionResult(task=task)

        reference_date = task.due_date or task.completed_at or completed_at
        return CompletionResult(task=task, outcome=self.advance_on_completion(
            task, rule, reference_date, announce_end=not already_completed
        ))

    def list_series(self, owner_id: str) -> List[RecurrenceRule]:
        return self.rule_store.list_rules(owner_id)

    def get_series_occurrences(self, rule_id: int) -> List[Task]:
        """Occurrences of a series in order. Raises ``NotFound`` for unknown rules."""
        self.rule_store.get_rule(rule_id)
        return self.task_store.list_occurrences(rule_id)

    def end_series(self, rule_id: int) -> None:
        """
        Delete a recurrence rule.

        Open occurrences are detached and become plain tasks; completed ones
        keep their (now dangling) reference as history.
        """
        self.rule_store.get_rule(rule_id)
        for occurrence in self.task_store.list_occurrences(rule_id):
            if not occurrence.is_completed:
                self.task_store.update_task(
                    occurrence.id, TaskUpdate(recurrence_rule_id=None, occurrence_index=None)
                )
        self.rule_store.delete_rule(rule_id)
        logger.info("Deleted recurring series", rule_id=rule_id)

    def _publish(self, method: str, data: Dict[str, Any]) -> None:
        if self.publisher is None:
            return
        try:
            getattr(self.publisher, method)(data)
        except Exception as e:
            logger.error("Failed to publish recurrence event", method=method, error=str(e))
